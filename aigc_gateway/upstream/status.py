"""
Status normalisation for upstream job records.

Upstream vendors describe job state in different vocabularies: a numeric
`successFlag` sentinel and/or a free-text state field. Both are collapsed
into the three-state `JobStatus`. The mapping lives in the two tables below
so a new vendor vocabulary is a data change.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class JobStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


# Numeric sentinel: 1 = success, 2 / 3 = distinct failure reasons.
SUCCESS_FLAG_TABLE: dict[int, JobStatus] = {
    1: JobStatus.COMPLETED,
    2: JobStatus.FAILED,
    3: JobStatus.FAILED,
}

STATE_TOKEN_TABLE: dict[str, JobStatus] = {
    "success": JobStatus.COMPLETED,
    "succeed": JobStatus.COMPLETED,
    "completed": JobStatus.COMPLETED,
    "done": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
    "error": JobStatus.FAILED,
    "fail": JobStatus.FAILED,
}

_STATE_FIELDS = ("state", "status", "task_status", "taskStatus")
_URL_LIST_FIELDS = ("resultUrls", "result_urls", "urls")
_ERROR_FIELDS = ("errorMessage", "failMsg", "error_message", "message")


def _payload(raw: Any) -> Mapping[str, Any]:
    """Most responses wrap the record in `data`; some return it bare."""
    if not isinstance(raw, Mapping):
        return {}
    data = raw.get("data")
    if isinstance(data, Mapping):
        return data
    return raw


def _success_flag(data: Mapping[str, Any]) -> int | None:
    flag = data.get("successFlag")
    if isinstance(flag, bool):
        return None
    if isinstance(flag, int):
        return flag
    if isinstance(flag, str) and flag.strip().isdigit():
        return int(flag.strip())
    return None


def _state_token(data: Mapping[str, Any]) -> str:
    for name in _STATE_FIELDS:
        value = data.get(name)
        if value is not None and value != "":
            return str(value).strip().lower()
    return ""


def normalize(raw: Any) -> JobStatus:
    """
    Collapse a raw record into pending / completed / failed.

    A recognised numeric sentinel wins over the text field. Anything not
    matching a known token stays pending.
    """
    data = _payload(raw)
    flag = _success_flag(data)
    if flag in SUCCESS_FLAG_TABLE:
        return SUCCESS_FLAG_TABLE[flag]
    return STATE_TOKEN_TABLE.get(_state_token(data), JobStatus.PENDING)


def _string_urls(value: Any) -> list[str]:
    if isinstance(value, str) and value:
        return [value]
    if isinstance(value, list):
        return [v for v in value if isinstance(v, str) and v]
    return []


def _result_json(data: Mapping[str, Any]) -> Mapping[str, Any]:
    # Market records carry their result as a JSON-encoded string.
    raw = data.get("resultJson")
    if isinstance(raw, Mapping):
        return raw
    if isinstance(raw, str) and raw.strip():
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        if isinstance(parsed, Mapping):
            return parsed
    return {}


def result_urls(raw: Any) -> list[str]:
    """
    Structured result URL list: `response.resultUrls`-style arrays or the
    decoded `resultJson`. Empty when the record carries no such list.
    """
    data = _payload(raw)
    containers: list[Mapping[str, Any]] = []
    for name in ("response", "result"):
        nested = data.get(name)
        if isinstance(nested, Mapping):
            containers.append(nested)
    containers.append(_result_json(data))
    for container in containers:
        for name in _URL_LIST_FIELDS[:2]:
            urls = _string_urls(container.get(name))
            if urls:
                return urls
    return []


def first_result_url(raw: Any) -> str | None:
    """
    First URL found across every known nesting shape, or None.
    """
    data = _payload(raw)
    response = data.get("response")
    if not isinstance(response, Mapping):
        response = data.get("result")
    if not isinstance(response, Mapping):
        response = {}

    for container in (response, data, _result_json(data)):
        for name in _URL_LIST_FIELDS:
            urls = _string_urls(container.get(name))
            if urls:
                return urls[0]

    task_result = data.get("task_result") or data.get("taskResult")
    if isinstance(task_result, Mapping):
        for media in ("videos", "images"):
            items = task_result.get(media)
            if isinstance(items, list) and items:
                first = items[0]
                if isinstance(first, Mapping) and isinstance(first.get("url"), str):
                    return first["url"]

    for name in ("video_url", "url"):
        value = data.get(name)
        if isinstance(value, str) and value:
            return value
    return None


def error_message(raw: Any, default: str = "generation failed") -> str:
    data = _payload(raw)
    for name in _ERROR_FIELDS:
        value = data.get(name)
        if isinstance(value, str) and value.strip():
            return value
    if isinstance(raw, Mapping):
        msg = raw.get("msg")
        if isinstance(msg, str) and msg.strip():
            return msg
    return default


def progress(raw: Any) -> float | None:
    value = _payload(raw).get("progress")
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    return None


@dataclass(frozen=True)
class JobRecord:
    """
    Normalised view of one poll response.

    failed => no result URLs; completed => no error message.
    """

    status: JobStatus
    result_urls: tuple[str, ...] = field(default_factory=tuple)
    error_message: str | None = None

    @classmethod
    def from_raw(cls, raw: Any) -> "JobRecord":
        status = normalize(raw)
        if status is JobStatus.FAILED:
            return cls(status=status, error_message=error_message(raw))
        urls = result_urls(raw)
        if not urls:
            first = first_result_url(raw)
            urls = [first] if first else []
        return cls(status=status, result_urls=tuple(urls))

    @property
    def first_url(self) -> str | None:
        return self.result_urls[0] if self.result_urls else None


__all__ = [
    "JobStatus",
    "JobRecord",
    "SUCCESS_FLAG_TABLE",
    "STATE_TOKEN_TABLE",
    "normalize",
    "result_urls",
    "first_result_url",
    "error_message",
    "progress",
]
