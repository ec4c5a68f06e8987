"""Per-stage outcomes for context assembly."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from context_atlas.core.logging import get_logger
from context_atlas.core.metrics import STAGE_DEGRADED

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class StageResult(Generic[T]):
    """Either the stage's value, or its empty default plus the failure reason."""

    stage: str
    value: T
    reason: str | None = None

    @property
    def is_degraded(self) -> bool:
        return self.reason is not None

    @classmethod
    def succeeded(cls, stage: str, value: T) -> "StageResult[T]":
        return cls(stage=stage, value=value)

    @classmethod
    def degraded(cls, stage: str, default: T, reason: str) -> "StageResult[T]":
        return cls(stage=stage, value=default, reason=reason)


def describe_failure(exc: BaseException) -> str:
    message = getattr(exc, "message", None) or str(exc)
    return f"{exc.__class__.__name__}: {message}" if message else exc.__class__.__name__


def record_degraded(stage: str, reason: str) -> None:
    STAGE_DEGRADED.labels(stage=stage).inc()
    logger.warning("Context stage %s degraded: %s", stage, reason, extra={"ctx_stage": stage})


def run_stage(stage: str, func: Callable[[], T], default: T) -> StageResult[T]:
    """Run one stage; any exception turns into a degraded result carrying ``default``."""
    try:
        return StageResult.succeeded(stage, func())
    except Exception as exc:
        reason = describe_failure(exc)
        record_degraded(stage, reason)
        return StageResult.degraded(stage, default, reason)


__all__ = ["StageResult", "describe_failure", "record_degraded", "run_stage"]
