"""
Multimodal generateContent surface.

Text-only requests are answered locally with a deterministic prompt
expansion. Requests that want an image (or carry inline images) become an
upstream image job; the handler waits for it and returns the artifacts as
inline base64 parts.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from ..auth import Credential
from ..cancellation import race_cancellation
from ..errors import InvalidPayload
from ..logging_config import logger
from ..upstream.client import UpstreamClient
from ..upstream.media import MediaIngestor, ext_from_mime, sniff_mime
from ..upstream.waiter import WaitPolicy, wait_for_completion
from ..usage.ledger import UsageEntry, UsageLedger

MAX_INLINE_RESULTS = 4
DEFAULT_IMAGE_SIZE = "1024x1024"
DEFAULT_IMAGE_PROMPT = "Generate an image"
COMPLETION_TEXT = "✅ 生成完成"


@dataclass(frozen=True)
class InlineImage:
    mime_type: str
    data: str


@dataclass(frozen=True)
class MultimodalRequest:
    model_id: str
    prompt: str
    images: List[InlineImage] = field(default_factory=list)
    wants_image: bool = False
    candidate_count: int = 1
    image_size: str = DEFAULT_IMAGE_SIZE

    @property
    def usage_path(self) -> str:
        return f"/v1beta/models/{self.model_id}:generateContent"


def _inline_part(part: Mapping[str, Any]) -> InlineImage | None:
    inline = part.get("inline_data")
    if isinstance(inline, Mapping):
        mime, data = inline.get("mime_type"), inline.get("data")
    else:
        inline = part.get("inlineData")
        if not isinstance(inline, Mapping):
            return None
        mime, data = inline.get("mimeType"), inline.get("data")
    if not isinstance(data, str) or not data:
        return None
    return InlineImage(mime_type=mime or "", data=data)


def extract_prompt_and_images(body: Mapping[str, Any]) -> tuple[str, List[InlineImage]]:
    """
    Walk contents[].parts[]: trimmed text fragments are joined with a blank
    line; inline_data / inlineData parts are collected in order.
    """
    texts: List[str] = []
    images: List[InlineImage] = []
    contents = body.get("contents")
    if not isinstance(contents, list):
        return "", images
    for content in contents:
        parts = content.get("parts") if isinstance(content, Mapping) else None
        if not isinstance(parts, list):
            continue
        for part in parts:
            if not isinstance(part, Mapping):
                continue
            text = part.get("text")
            if isinstance(text, str) and text.strip():
                texts.append(text.strip())
            image = _inline_part(part)
            if image is not None:
                images.append(image)
    return "\n\n".join(texts).strip(), images


def _clamp_candidate_count(value: Any) -> int:
    try:
        count = int(value or 1)
    except (TypeError, ValueError):
        count = 1
    return min(MAX_INLINE_RESULTS, max(1, count))


def parse_request(model_id: str, body: Mapping[str, Any]) -> MultimodalRequest:
    prompt, images = extract_prompt_and_images(body)
    config = body.get("generationConfig")
    if not isinstance(config, Mapping):
        config = {}
    modalities = config.get("responseModalities")
    if not isinstance(modalities, list):
        modalities = []
    wants_image = "IMAGE" in modalities or "image" in model_id.lower()
    return MultimodalRequest(
        model_id=model_id,
        prompt=prompt,
        images=images,
        wants_image=wants_image,
        candidate_count=_clamp_candidate_count(config.get("candidateCount")),
        image_size=str(config.get("imageSize") or DEFAULT_IMAGE_SIZE),
    )


def expand_prompt(text: str) -> str:
    """Deterministic local prompt expansion; no outbound call."""
    if not text:
        return ""
    return "\n".join(
        [
            "请在保持原意的前提下，把下面的提示词扩写为适合生成高质量图片或视频的描述：",
            "",
            text,
            "",
            "建议补充：主体与动作、场景与光线、镜头与构图、画面风格、画幅比例，并避免违规内容。",
        ]
    )


def text_response(text: str) -> Dict[str, Any]:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def _decode_inline(image: InlineImage) -> bytes:
    try:
        return base64.b64decode(image.data, validate=False)
    except (binascii.Error, ValueError) as exc:
        raise InvalidPayload("inline_data is not valid base64") from exc


async def generate_content(
    client: UpstreamClient,
    ingestor: MediaIngestor,
    ledger: UsageLedger,
    credential: Credential,
    model_id: str,
    body: Mapping[str, Any],
    *,
    policy: WaitPolicy,
    cancel: asyncio.Event | None = None,
) -> Dict[str, Any]:
    request = parse_request(model_id, body)

    if not request.wants_image and not request.images:
        ledger.append(
            credential.key_hash,
            UsageEntry.record(
                model_name=f"local-prompt-polish:{model_id or 'text'}",
                prompt=request.prompt,
                image_count=0,
                path=request.usage_path,
                kind="text",
            ),
        )
        return text_response(expand_prompt(request.prompt) or request.prompt)

    files_url: List[str] = []
    for index, image in enumerate(request.images):
        buffer = _decode_inline(image)
        mime = image.mime_type or sniff_mime(buffer)
        files_url.append(
            await ingestor.ingest(
                credential, buffer, f"gemini-inline-{index}.{ext_from_mime(mime)}", mime
            )
        )

    submission = await client.create_image_job(
        credential,
        {
            "prompt": request.prompt or DEFAULT_IMAGE_PROMPT,
            "n": request.candidate_count,
            "size": request.image_size,
            "filesUrl": files_url,
        },
    )
    ledger.append(
        credential.key_hash,
        UsageEntry.record(
            model_name=f"kie-image:{model_id or 'image'}",
            prompt=request.prompt,
            image_count=len(files_url),
            path=request.usage_path,
            kind="image-create",
        ),
    )

    async def fetch(cred: Credential, _job_id: str) -> Any:
        return await client.fetch_image_record(cred, submission)

    urls = await wait_for_completion(
        credential, submission.job_id, fetch, policy=policy, cancel=cancel
    )

    parts: List[Dict[str, Any]] = [{"text": COMPLETION_TEXT}]
    for url in urls[: request.candidate_count]:
        content, content_type = await race_cancellation(client.download(url), cancel)
        parts.append(
            {
                "inline_data": {
                    "mime_type": content_type or sniff_mime(content),
                    "data": base64.b64encode(content).decode("ascii"),
                }
            }
        )
    logger.info(
        "generateContent %s: job %s returned %d inline result(s)",
        model_id,
        submission.job_id,
        len(parts) - 1,
    )
    return {"candidates": [{"content": {"parts": parts}}]}


__all__ = [
    "COMPLETION_TEXT",
    "InlineImage",
    "MAX_INLINE_RESULTS",
    "MultimodalRequest",
    "expand_prompt",
    "extract_prompt_and_images",
    "generate_content",
    "parse_request",
    "text_response",
]
