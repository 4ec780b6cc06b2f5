import hashlib
from dataclasses import dataclass, field

from fastapi import Header, Query

from .errors import MissingCredential


def derive_credential_hash(token: str) -> str:
    """
    Short one-way key for a caller credential.

    Only this hash is ever retained (usage ledger, poll cache); the raw
    token lives for the duration of one request.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]


@dataclass(frozen=True)
class Credential:
    token: str = field(repr=False)
    key_hash: str

    @classmethod
    def from_token(cls, token: str) -> "Credential":
        return cls(token=token, key_hash=derive_credential_hash(token))


def parse_bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


async def require_credential(
    authorization: str | None = Header(default=None),
) -> Credential:
    """
    Preferred and only form on most surfaces: `Authorization: Bearer <token>`.
    """
    token = parse_bearer(authorization)
    if not token:
        raise MissingCredential("Missing Authorization Bearer APIKey")
    return Credential.from_token(token)


async def require_credential_or_query_key(
    authorization: str | None = Header(default=None),
    x_goog_api_key: str | None = Header(default=None, alias="x-goog-api-key"),
    key: str | None = Query(default=None),
) -> Credential:
    """
    Multimodal-generate clients also send the key as `?key=` or `x-goog-api-key`.
    """
    token = parse_bearer(authorization)
    if not token and x_goog_api_key:
        token = x_goog_api_key.strip() or None
    if not token and key:
        token = key.strip() or None
    if not token:
        raise MissingCredential("Missing APIKey (Authorization Bearer or ?key=...)")
    return Credential.from_token(token)


__all__ = [
    "Credential",
    "derive_credential_hash",
    "parse_bearer",
    "require_credential",
    "require_credential_or_query_key",
]
