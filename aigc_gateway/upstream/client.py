"""
Client for the upstream job provider.

Every upstream capability has the same shape: submit a job, then poll its
record by id. The generic market routes are fixed; image generation and
credit lookup routes vary between deployments and are probed in order.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import quote

import httpx

from ..auth import Credential
from ..errors import UpstreamMalformed, UpstreamRejected, UpstreamUnreachable
from ..logging_config import logger
from .candidates import CandidateRejected, first_success

# Synonymous field names under which upstream returns a freshly minted job id.
JOB_ID_FIELDS = ("taskId", "task_id", "jobId", "job_id", "id")

IMAGE_ROUTE_CANDIDATES: tuple[tuple[str, str], ...] = (
    ("/api/v1/gpt-image/generate", "/api/v1/gpt-image/record-info"),
    ("/api/v1/gpt-image/generate", "/api/v1/gpt-image/recordInfo"),
    ("/api/v1/image/generate", "/api/v1/image/record-info"),
    ("/api/v1/images/generate", "/api/v1/images/record-info"),
)

CREDIT_ROUTE_CANDIDATES: tuple[str, ...] = (
    "/api/v1/chat/credit",
    "/api/v1/user/credits",
    "/api/v1/user/credit",
)

_CREDIT_FIELDS = ("credit", "credits", "balance", "remaining", "remain", "quota")
_USED_FIELDS = ("used", "usedCredit", "used_credits", "used_quota")


@dataclass(frozen=True)
class UpstreamReply:
    status_code: int
    body: Any

    @property
    def ok(self) -> bool:
        """
        2xx and, when the body carries a numeric business `code`, that code is 200.
        """
        if not 200 <= self.status_code < 300:
            return False
        if isinstance(self.body, Mapping):
            code = self.body.get("code")
            if isinstance(code, int) and not isinstance(code, bool) and code != 200:
                return False
        return True

    @property
    def effective_status(self) -> int:
        if 200 <= self.status_code < 300 and isinstance(self.body, Mapping):
            code = self.body.get("code")
            if isinstance(code, int) and not isinstance(code, bool):
                return code
        return self.status_code


@dataclass(frozen=True)
class ImageSubmission:
    job_id: str
    record_url: str


def extract_job_id(body: Any) -> str | None:
    """
    Look for the job id under every known synonym, in `data` first, then at the root.
    """
    if not isinstance(body, Mapping):
        return None
    containers = [body.get("data"), body]
    for container in containers:
        if not isinstance(container, Mapping):
            continue
        for name in JOB_ID_FIELDS:
            value = container.get(name)
            if isinstance(value, bool):
                continue
            if isinstance(value, (str, int)) and str(value).strip():
                return str(value).strip()
    return None


def _decode_body(response: httpx.Response) -> Any:
    text = response.text
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return {"raw": text}


class UpstreamClient:
    """
    Thin async wrapper over one request-scoped `httpx.AsyncClient`.

    Every call is bounded by `timeout`; the credential is forwarded as a
    bearer token and never logged.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        base_url: str,
        timeout: float,
    ) -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    @staticmethod
    def auth_headers(credential: Credential, *, json_body: bool = False) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {credential.token}",
            "Accept": "application/json",
        }
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def send(
        self,
        method: str,
        url: str,
        *,
        credential: Credential,
        json_body: Any | None = None,
        files: Any | None = None,
        timeout: float | None = None,
    ) -> UpstreamReply:
        """
        One upstream round trip. Transport errors propagate as httpx errors.
        """
        response = await self.http.request(
            method,
            url,
            headers=self.auth_headers(credential, json_body=json_body is not None),
            json=json_body,
            files=files,
            timeout=timeout if timeout is not None else self.timeout,
        )
        return UpstreamReply(status_code=response.status_code, body=_decode_body(response))

    async def _call(
        self,
        operation: str,
        method: str,
        path_or_url: str,
        *,
        credential: Credential,
        json_body: Any | None = None,
    ) -> UpstreamReply:
        url = path_or_url if path_or_url.startswith("http") else self.url(path_or_url)
        try:
            reply = await self.send(method, url, credential=credential, json_body=json_body)
        except httpx.TimeoutException as exc:
            logger.warning("upstream %s timed out after %.1fs", operation, self.timeout)
            raise UpstreamUnreachable(f"{operation} timed out") from exc
        except httpx.HTTPError as exc:
            logger.warning("upstream %s transport error: %s", operation, type(exc).__name__)
            raise UpstreamUnreachable(f"{operation} could not reach upstream") from exc

        if not reply.ok:
            logger.warning(
                "upstream %s rejected with status %s", operation, reply.effective_status
            )
            raise UpstreamRejected(operation, reply.effective_status, reply.body)
        return reply

    async def _submit(
        self, operation: str, path_or_url: str, credential: Credential, body: Any
    ) -> str:
        reply = await self._call(
            operation, "POST", path_or_url, credential=credential, json_body=body
        )
        job_id = extract_job_id(reply.body)
        if not job_id:
            raise UpstreamMalformed(
                f"{operation}: response carries no job id",
                details={"body": reply.body},
            )
        logger.info("upstream %s created job %s", operation, job_id)
        return job_id

    # Generic market jobs ------------------------------------------------

    async def create_job(
        self, credential: Credential, model: str, input_params: Mapping[str, Any]
    ) -> str:
        return await self._submit(
            "createTask",
            "/api/v1/jobs/createTask",
            credential,
            {"model": model, "input": dict(input_params)},
        )

    async def fetch_record(self, credential: Credential, job_id: str) -> Any:
        reply = await self._call(
            "recordInfo",
            "GET",
            f"/api/v1/jobs/recordInfo?taskId={quote(job_id, safe='')}",
            credential=credential,
        )
        return reply.body

    # Vendor-specific video jobs (ids look like veo_task_xxx) ------------

    async def create_veo_job(self, credential: Credential, body: Mapping[str, Any]) -> str:
        return await self._submit("veo generate", "/api/v1/veo/generate", credential, dict(body))

    async def fetch_veo_record(self, credential: Credential, job_id: str) -> Any:
        reply = await self._call(
            "veo record-info",
            "GET",
            f"/api/v1/veo/record-info?taskId={quote(job_id, safe='')}",
            credential=credential,
        )
        return reply.body

    # Image jobs (route names vary by deployment) --------------------------

    async def probe_candidates(
        self,
        urls: Sequence[str],
        build_request: Callable[[str], Awaitable[UpstreamReply]],
        *,
        label: str,
        accept: Callable[[UpstreamReply], bool] | None = None,
    ) -> tuple[int, UpstreamReply]:
        """
        Try `build_request(url)` for each url in order; the first reply accepted
        (default: success status) wins. Raises NoCandidateAvailable once all fail.
        """
        is_accepted = accept or (lambda reply: reply.ok)

        def strategy(url: str) -> Callable[[], Awaitable[UpstreamReply]]:
            async def run() -> UpstreamReply:
                reply = await build_request(url)
                if not is_accepted(reply):
                    raise CandidateRejected(
                        "reply not accepted", status_code=reply.effective_status
                    )
                return reply

            return run

        result = await first_success([strategy(u) for u in urls], label=label)
        return result.index, result.value

    async def create_image_job(
        self, credential: Credential, body: Mapping[str, Any]
    ) -> ImageSubmission:
        payload = dict(body)

        async def post(url: str) -> UpstreamReply:
            return await self.send("POST", url, credential=credential, json_body=payload)

        index, reply = await self.probe_candidates(
            [self.url(gen) for gen, _ in IMAGE_ROUTE_CANDIDATES],
            post,
            label="image generate",
            accept=lambda r: r.ok and extract_job_id(r.body) is not None,
        )
        job_id = extract_job_id(reply.body)
        record_url = self.url(IMAGE_ROUTE_CANDIDATES[index][1])
        logger.info("upstream image generate created job %s (route #%d)", job_id, index)
        return ImageSubmission(job_id=job_id, record_url=record_url)

    async def fetch_image_record(
        self, credential: Credential, submission: ImageSubmission
    ) -> Any:
        reply = await self._call(
            "image record-info",
            "GET",
            f"{submission.record_url}?taskId={quote(submission.job_id, safe='')}",
            credential=credential,
        )
        return reply.body

    # Account ------------------------------------------------------------

    async def fetch_credits(self, credential: Credential) -> dict[str, Any]:
        async def get(url: str) -> UpstreamReply:
            return await self.send("GET", url, credential=credential)

        _, reply = await self.probe_candidates(
            [self.url(p) for p in CREDIT_ROUTE_CANDIDATES], get, label="credit lookup"
        )
        data = reply.body.get("data") if isinstance(reply.body, Mapping) else None
        if not isinstance(data, Mapping):
            data = reply.body if isinstance(reply.body, Mapping) else {}
        credit = next((data[k] for k in _CREDIT_FIELDS if data.get(k) is not None), None)
        used = next((data[k] for k in _USED_FIELDS if data.get(k) is not None), None)
        return {"credit": credit, "used": used}

    # Result artifacts ---------------------------------------------------

    async def download(self, url: str) -> tuple[bytes, str | None]:
        """
        Fetch a result artifact. Result URLs are public; no credential is sent.
        """
        try:
            response = await self.http.get(url, timeout=self.timeout, follow_redirects=True)
        except httpx.HTTPError as exc:
            raise UpstreamUnreachable("result download failed") from exc
        if response.status_code >= 400:
            raise UpstreamRejected("result download", response.status_code, "")
        content_type = response.headers.get("content-type")
        if content_type:
            content_type = content_type.split(";")[0].strip() or None
        return response.content, content_type


__all__ = [
    "CREDIT_ROUTE_CANDIDATES",
    "IMAGE_ROUTE_CANDIDATES",
    "ImageSubmission",
    "JOB_ID_FIELDS",
    "UpstreamClient",
    "UpstreamReply",
    "extract_job_id",
]
