import uuid
from datetime import datetime, date
from enum import Enum
from pydantic import BaseModel, ConfigDict, FieldSerializationInfo, field_serializer
from pydantic.alias_generators import to_camel


class CamelCaseBaseModel(BaseModel):
    """
    Base model with camelCase field aliases and automatic serialization.

    - Input: camelCase or snake_case keys are accepted.
    - Internal: snake_case fields are used throughout the Python codebase.
    - Output: call `model_dump(by_alias=True)` to serialize fields back to camelCase
    for API responses; a plain `model_dump()` keeps snake_case, which is what the
    persistence layer stores.
    - Auto-serialization: UUIDs, Enums and datetimes are converted to strings and
    nested models follow the alias choice of the outer dump.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @field_serializer("*")
    def serialize_any(self, value, info: FieldSerializationInfo):
        """Global serializer for all fields with comprehensive type handling"""

        if value is None:
            return None

        if isinstance(value, BaseModel):
            return value.model_dump(by_alias=info.by_alias, mode=info.mode)

        if isinstance(value, uuid.UUID):
            return str(value)

        if isinstance(value, Enum):
            return value.value

        # datetime must come before date
        if isinstance(value, datetime):
            return value.isoformat()

        if isinstance(value, date):
            return value.isoformat()

        if isinstance(value, (list, tuple, set, frozenset)):
            items = sorted(value) if isinstance(value, (set, frozenset)) else value
            return [self.serialize_any(item, info) for item in items]

        if isinstance(value, dict):
            return {key: self.serialize_any(val, info) for key, val in value.items()}

        if isinstance(value, bytes):
            return value.decode("utf-8", errors="replace")

        if isinstance(value, (str, int, float, bool)):
            return value

        return str(value)
