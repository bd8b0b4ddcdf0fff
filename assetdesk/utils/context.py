"""
Request Context Utilities.

Request-scoped values kept in contextvars (async-safe) so that log
lines emitted anywhere during a request carry the request id and the
authenticated user.

Usage:
    from assetdesk.utils.context import get_request_id

    logger.info("Processing", request_id=get_request_id())
"""

from contextvars import ContextVar, Token
from typing import Any, Optional


_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_user_id: ContextVar[Optional[str]] = ContextVar("user_id", default=None)


def get_request_id() -> Optional[str]:
    """Get current request ID (None outside of a request)."""
    return _request_id.get()


def set_request_id(request_id: str) -> Token:
    return _request_id.set(request_id)


def reset_request_id(token: Token) -> None:
    _request_id.reset(token)


def get_user_id() -> Optional[str]:
    """Get the authenticated user for the current request, if resolved."""
    return _user_id.get()


def set_user_id(user_id: Optional[str]) -> Token:
    return _user_id.set(user_id)


def reset_user_id(token: Token) -> None:
    _user_id.reset(token)


# ============================================================
# STRUCTLOG PROCESSOR
# ============================================================

def add_request_context(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """
    Structlog processor that adds request context to all logs.

    Usage:
        structlog.configure(
            processors=[
                add_request_context,
                structlog.processors.JSONRenderer(),
            ]
        )
    """
    request_id = get_request_id()
    if request_id:
        event_dict.setdefault("request_id", request_id)

    user_id = get_user_id()
    if user_id:
        event_dict.setdefault("user_id", user_id)

    return event_dict
