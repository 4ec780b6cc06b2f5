"""
Synchronous wait over an asynchronous upstream job.

Some surfaces must answer with the finished artifact in the same HTTP
response. This module is the only place that loops on a job record; the
interval and budget come from configuration.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from ..auth import Credential
from ..cancellation import race_cancellation
from ..errors import JobFailed, WaitTimeout
from ..logging_config import logger
from .status import JobRecord, JobStatus

RecordFetcher = Callable[[Credential, str], Awaitable[Any]]


@dataclass(frozen=True)
class WaitPolicy:
    interval_seconds: float
    budget_seconds: float

    @classmethod
    def from_settings(cls, settings) -> "WaitPolicy":
        return cls(
            interval_seconds=settings.sync_poll_interval_seconds,
            budget_seconds=settings.sync_wait_budget_seconds,
        )


async def wait_for_completion(
    credential: Credential,
    job_id: str,
    fetch_record: RecordFetcher,
    *,
    policy: WaitPolicy,
    cancel: asyncio.Event | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> list[str]:
    """
    Poll `fetch_record` until the job is terminal or the budget is spent.

    Returns the result URLs (possibly empty when upstream reports success
    without an artifact). Raises JobFailed, WaitTimeout, or
    ClientDisconnected when `cancel` is set while waiting.
    """
    started = clock()
    polls = 0
    while True:
        raw = await race_cancellation(fetch_record(credential, job_id), cancel)
        polls += 1
        record = JobRecord.from_raw(raw)

        if record.status is JobStatus.COMPLETED:
            logger.info("wait: job %s completed after %d poll(s)", job_id, polls)
            return list(record.result_urls)
        if record.status is JobStatus.FAILED:
            logger.info("wait: job %s failed: %s", job_id, record.error_message)
            raise JobFailed(job_id, record.error_message or "generation failed")

        remaining = policy.budget_seconds - (clock() - started)
        if remaining <= 0:
            logger.warning(
                "wait: job %s still pending after %d poll(s), budget %.1fs exhausted",
                job_id,
                polls,
                policy.budget_seconds,
            )
            raise WaitTimeout(job_id, policy.budget_seconds)

        await race_cancellation(sleep(min(policy.interval_seconds, remaining)), cancel)


__all__ = ["RecordFetcher", "WaitPolicy", "wait_for_completion"]
