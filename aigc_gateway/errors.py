"""
Gateway error taxonomy.

Every failure the core can explain is a `GatewayError` subclass carrying the
HTTP status a surface should answer with and a machine-readable error code.
Surfaces translate these into their own envelopes; whatever escapes is turned
into a standard `ErrorResponse` by the top-level handler in `routes.py`.
"""

import json
from typing import Any, Dict, Optional

from fastapi import status
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standard error payload for gateway errors no surface translated:
    {
        "error": "upstream_rejected",
        "message": "Upstream returned 500",
        "code": 502,
        "details": {...}
    }
    """

    error: str = Field(..., description="Machine-readable error type")
    message: str = Field(..., description="Human-readable error message")
    code: int = Field(..., description="HTTP status code for this error")
    details: Optional[Dict[str, Any]] = Field(
        default=None, description="Optional structured error details"
    )


class GatewayError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "gateway_error"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            error=self.error,
            message=self.message,
            code=self.status_code,
            details=self.details,
        )


class MissingCredential(GatewayError):
    """No bearer token (or ?key=) was supplied."""

    status_code = status.HTTP_401_UNAUTHORIZED
    error = "missing_credential"


class InvalidPayload(GatewayError):
    """Malformed or empty input the caller controls."""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "invalid_payload"


class PayloadTooLarge(InvalidPayload):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    error = "payload_too_large"


class UnsupportedModel(InvalidPayload):
    error = "unsupported_model"


class UpstreamRejected(GatewayError):
    """A single upstream call answered with a non-success status."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error = "upstream_rejected"

    def __init__(self, operation: str, upstream_status: int, body: Any) -> None:
        super().__init__(
            f"{operation} failed ({upstream_status}): {_preview(body)}",
            details={"upstream_status": upstream_status},
        )
        self.operation = operation
        self.upstream_status = upstream_status
        self.body = body


class UpstreamMalformed(GatewayError):
    """Upstream answered with success but without the fields we rely on."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error = "upstream_malformed"


class UpstreamUnreachable(GatewayError):
    """A single upstream call failed at the transport level (network, timeout)."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error = "upstream_unreachable"


class ClientDisconnected(GatewayError):
    """The caller went away; remaining upstream work was abandoned."""

    status_code = 499
    error = "client_closed_request"


class NoCandidateAvailable(GatewayError):
    """Every candidate route was tried and none succeeded."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error = "no_candidate_available"

    def __init__(self, message: str, *, attempts: int = 0) -> None:
        super().__init__(message, details={"attempts": attempts})
        self.attempts = attempts


class IngestionFailed(NoCandidateAvailable):
    error = "ingestion_failed"


class NoChatEndpoint(NoCandidateAvailable):
    error = "no_chat_endpoint"


class JobFailed(GatewayError):
    """Upstream explicitly reported the job as failed."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error = "job_failed"

    def __init__(self, job_id: str, message: str) -> None:
        super().__init__(message, details={"job_id": job_id})
        self.job_id = job_id


class WaitTimeout(GatewayError):
    """The bounded synchronous wait ran out of budget; the job may still finish."""

    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    error = "wait_timeout"

    def __init__(self, job_id: str, budget_seconds: float) -> None:
        super().__init__(
            f"Job {job_id} did not finish within {budget_seconds:g}s",
            details={"job_id": job_id},
        )
        self.job_id = job_id
        self.budget_seconds = budget_seconds


def _preview(body: Any, limit: int = 500) -> str:
    if isinstance(body, str):
        text = body
    else:
        text = json.dumps(body, ensure_ascii=False, default=str)
    if len(text) > limit:
        return text[:limit] + "..."
    return text


__all__ = [
    "ErrorResponse",
    "GatewayError",
    "MissingCredential",
    "InvalidPayload",
    "PayloadTooLarge",
    "UnsupportedModel",
    "UpstreamRejected",
    "UpstreamMalformed",
    "UpstreamUnreachable",
    "ClientDisconnected",
    "NoCandidateAvailable",
    "IngestionFailed",
    "NoChatEndpoint",
    "JobFailed",
    "WaitTimeout",
]
