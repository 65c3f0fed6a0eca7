from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ResponseStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"


class PaginationMeta(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    page: int
    per_page: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool
    next_page: Optional[int] = None
    prev_page: Optional[int] = None


class ApiResponse(BaseModel):
    """Envelope shared by every HTTP response."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    status: ResponseStatus
    message: str
    data: Any = None
    meta: Optional[Dict[str, Any]] = None
    pagination: Optional[PaginationMeta] = None
    errors: Optional[List[Any]] = None
    warnings: Optional[List[str]] = None
    request_id: Optional[str] = None
    path: Optional[str] = None
