"""Shared application context for reusable dependencies."""
from __future__ import annotations

from typing import Any, Callable, Optional

_get_conn: Optional[Callable[[], Any]] = None
_get_current_employer: Optional[Callable[..., Any]] = None


def configure(
    *,
    get_conn: Callable[[], Any],
    get_current_employer: Callable[..., Any],
) -> None:
    """Register application-wide dependencies required by modular routers."""

    global _get_conn
    global _get_current_employer

    _get_conn = get_conn
    _get_current_employer = get_current_employer


def _require(value: Optional[Any], name: str) -> Any:
    if value is None:
        raise RuntimeError(f"Application context has not been configured yet: {name}")
    return value


def get_conn() -> Any:
    conn_factory = _require(_get_conn, "get_conn")
    return conn_factory()


def get_current_employer(*args: Any, **kwargs: Any) -> Any:
    dependency = _require(_get_current_employer, "get_current_employer")
    return dependency(*args, **kwargs)
