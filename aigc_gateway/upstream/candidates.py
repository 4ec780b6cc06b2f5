"""
Ordered candidate probing.

The upstream does not contractually fix route names for some capabilities
(file upload, image generation, credit lookup, chat), so callers hand over
an ordered list of strategies and take the first one that succeeds:

- strategies run strictly in order, one at a time;
- a strategy that raises (non-success status, transport error, timeout,
  unusable body) is skipped and the next one is tried;
- strategies after the winning one are never invoked;
- only when every strategy failed is an aggregate error raised.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from ..errors import ClientDisconnected, NoCandidateAvailable
from ..logging_config import logger

T = TypeVar("T")

Strategy = Callable[[], Awaitable[T]]


class CandidateRejected(Exception):
    """
    Raised by a strategy whose route answered but is not usable
    (non-success status, missing fields). Carries no caller-facing meaning.
    """

    def __init__(self, reason: str, *, status_code: int | None = None) -> None:
        super().__init__(reason)
        self.status_code = status_code


@dataclass(frozen=True)
class CandidateResult(Generic[T]):
    index: int
    value: T


def _default_exhausted(label: str) -> Callable[[int], NoCandidateAvailable]:
    def build(attempts: int) -> NoCandidateAvailable:
        return NoCandidateAvailable(
            f"{label}: no candidate route succeeded ({attempts} tried)",
            attempts=attempts,
        )

    return build


async def first_success(
    strategies: Sequence[Strategy[T]],
    *,
    label: str,
    on_exhausted: Callable[[int], NoCandidateAvailable] | None = None,
) -> CandidateResult[T]:
    """
    Run `strategies` in order and return the first successful result with its index.
    """
    exhausted = on_exhausted or _default_exhausted(label)
    attempts = 0
    for index, strategy in enumerate(strategies):
        attempts += 1
        try:
            value = await strategy()
        except CandidateRejected as exc:
            logger.info(
                "candidates[%s]: candidate #%d rejected (status=%s): %s",
                label,
                index,
                exc.status_code,
                exc,
            )
            continue
        except ClientDisconnected:
            raise
        except Exception as exc:
            # Transport failures and timeouts are treated like a rejection.
            logger.warning(
                "candidates[%s]: candidate #%d failed: %s: %s",
                label,
                index,
                type(exc).__name__,
                exc,
            )
            continue
        if index:
            logger.info("candidates[%s]: selected candidate #%d", label, index)
        return CandidateResult(index=index, value=value)

    logger.warning("candidates[%s]: all %d candidates exhausted", label, attempts)
    raise exhausted(attempts)


__all__ = ["CandidateRejected", "CandidateResult", "Strategy", "first_success"]
