"""Current-user binding for the calling context (thread or task)."""

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Generator, Optional

from ..errors import AuthenticationError

_current_user: ContextVar[Optional[Any]] = ContextVar("restview_current_user", default=None)


@contextmanager
def set_current_user(user_id: Any) -> Generator[None, None, None]:
    """
    Bind ``user_id`` as the current user for the duration of the block.

    Usage:
        with set_current_user("42"):
            service.find_all("note", {})
    """
    token = _current_user.set(user_id)
    try:
        yield
    finally:
        _current_user.reset(token)


def current_user_id() -> Optional[Any]:
    """Current user id, or None when nobody is bound."""
    return _current_user.get()


def get_current_user_id() -> Any:
    user_id = _current_user.get()
    if user_id is None:
        raise AuthenticationError("User not authenticated")
    return user_id
