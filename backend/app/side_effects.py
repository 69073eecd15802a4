"""Wrapper for non-critical steps that run after a durable success."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, Mapping, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepResult(Generic[T]):
    """Outcome of a best-effort step."""

    step: str
    ok: bool
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def failed(self) -> bool:
        return not self.ok


def best_effort(
    step: str,
    func: Callable[..., T],
    *args: Any,
    log: Optional[logging.Logger] = None,
    context: Optional[Mapping[str, Any]] = None,
    **kwargs: Any,
) -> StepResult[T]:
    """Run ``func`` and capture any ``Exception`` it raises.

    Failures are logged with a traceback and returned as a failed
    ``StepResult``; they never propagate to the caller.
    """

    target = log or logger
    try:
        value = func(*args, **kwargs)
    except Exception as exc:
        target.exception(
            "Best-effort step %s failed",
            step,
            extra={"side_effect_step": step, **dict(context or {})},
        )
        return StepResult(step=step, ok=False, error=exc)
    return StepResult(step=step, ok=True, value=value)


__all__ = ["StepResult", "best_effort"]
