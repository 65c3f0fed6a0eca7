from contextvars import ContextVar, Token
from typing import Optional

DEFAULT_REQUEST_ID = "app"

request_id_context: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> str:
    """Request ID of the current request, or `app` outside of one."""
    return request_id_context.get() or DEFAULT_REQUEST_ID


def set_request_id(request_id: str) -> Token:
    """Set the request ID in context; keep the token to restore it afterwards."""
    return request_id_context.set(request_id)


def reset_request_id(token: Token) -> None:
    request_id_context.reset(token)
