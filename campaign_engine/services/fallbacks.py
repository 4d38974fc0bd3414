from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Generic, Optional, Sequence, TypeVar

from campaign_engine.errors import RemoteFatalError, RemoteObjectiveError
from campaign_engine.services.meta_ads import MetaAdsError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorClass(str, Enum):
    RETRYABLE = "retryable"
    FATAL = "fatal"


_INVALID_PARAMETER_CODE = 100
_RETRYABLE_MARKERS = (
    "invalid parameter",
    "invalid_parameter",
    "objective",
    "optimization goal",
    "optimization_goal",
    "destination type",
    "destination_type",
    "promoted object",
    "promoted_object",
    "placement",
    "instagram actor",
    "instagram_actor",
    "instagram account",
)


def classify_meta_error(exc: BaseException) -> ErrorClass:
    """The only place remote error text is inspected to decide whether a fallback may continue."""
    if not isinstance(exc, MetaAdsError):
        return ErrorClass.FATAL
    if exc.code == _INVALID_PARAMETER_CODE:
        return ErrorClass.RETRYABLE
    text = " ".join(part for part in (exc.remote_message, exc.user_message, str(exc)) if part).lower()
    if any(marker in text for marker in _RETRYABLE_MARKERS):
        return ErrorClass.RETRYABLE
    return ErrorClass.FATAL


@dataclass
class Strategy(Generic[T]):
    label: str
    run: Callable[[], T]


@dataclass
class Attempt:
    label: str
    ok: bool
    error: Optional[RemoteObjectiveError] = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "ok": self.ok,
            "error": self.error.message if self.error else None,
            "code": self.error.code if self.error else None,
            "subcode": self.error.subcode if self.error else None,
        }


@dataclass
class ChainOutcome(Generic[T]):
    value: T
    label: str
    attempts: list[Attempt] = field(default_factory=list)


def run_fallback_chain(
    strategies: Sequence[Strategy[T]],
    *,
    name: str,
    classify: Callable[[BaseException], ErrorClass] = classify_meta_error,
) -> ChainOutcome[T]:
    """
    Run ``strategies`` in order and return the first success.

    Remote errors classified as retryable move on to the next strategy; anything classified as
    fatal stops the chain immediately. Errors that are not remote failures (configuration,
    validation) propagate unchanged. When every strategy is rejected the last attempt's detail
    is raised as a ``RemoteFatalError``.
    """
    if not strategies:
        raise ValueError(f"{name}: no strategies to run")

    attempts: list[Attempt] = []
    for strategy in strategies:
        try:
            value = strategy.run()
        except MetaAdsError as exc:
            if classify(exc) is ErrorClass.FATAL:
                logger.warning(
                    "Fallback chain aborted on fatal remote error",
                    extra={"chain": name, "strategy": strategy.label, "code": exc.code, "error": exc.detail},
                )
                fatal_attempt = {
                    "label": strategy.label,
                    "ok": False,
                    "error": exc.detail,
                    "code": exc.code,
                    "subcode": exc.subcode,
                }
                raise RemoteFatalError(
                    f"{name} failed: {exc.detail}",
                    remote_message=exc.detail,
                    code=exc.code,
                    subcode=exc.subcode,
                    details={"attempts": [a.as_dict() for a in attempts] + [fatal_attempt]},
                ) from exc
            rejection = RemoteObjectiveError(exc.detail, code=exc.code, subcode=exc.subcode)
            attempts.append(Attempt(label=strategy.label, ok=False, error=rejection))
            logger.warning(
                "Fallback strategy rejected; trying next",
                extra={"chain": name, "strategy": strategy.label, "code": exc.code, "error": exc.detail},
            )
            continue
        attempts.append(Attempt(label=strategy.label, ok=True))
        return ChainOutcome(value=value, label=strategy.label, attempts=attempts)

    last = attempts[-1].error
    raise RemoteFatalError(
        f"{name} failed after {len(attempts)} attempts: {last.message if last else 'unknown error'}",
        remote_message=last.message if last else None,
        code=last.code if last else None,
        subcode=last.subcode if last else None,
        details={"attempts": [a.as_dict() for a in attempts]},
    )
