"""
Podcast events schema — Pydantic v2 models.

Wire names are camelCase (``feedUrl``, ``contentSha256``); Python attributes
are snake_case and serialize through aliases.

All hash fields use SHA-256 hex digests.
All event timestamps are ISO-8601 strings with millisecond precision in UTC.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# JWK Set (RFC 7517)
# ---------------------------------------------------------------------------

class JwkKey(_WireModel):
    kty: Literal["RSA"] = "RSA"
    kid: str = Field(..., min_length=1)
    use: Literal["sig"] = "sig"
    alg: Literal["RS256"] = "RS256"
    n: str  # base64url modulus
    e: str  # base64url exponent


class JwkSet(_WireModel):
    keys: list[JwkKey] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------

class EnvelopeHeader(_WireModel):
    alg: Literal["RS256"] = "RS256"
    typ: Literal["JWT"] = "JWT"


class EnvelopeClaims(_WireModel):
    sub: str  # feed url the events are about
    jku: str  # JWK Set url
    kid: str
    content_sha256: str = Field(..., alias="contentSha256")


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

class ListenEvent(_WireModel):
    kind: Literal["listen"] = "listen"
    feed_url: str = Field(..., alias="feedUrl")
    episode_url: str = Field(..., alias="episodeUrl")
    user_agent: str = Field(..., alias="userAgent")
    referer: Optional[str] = None
    time: str
    quartile: str
    listener_id: str = Field(..., alias="listenerId")


class ValidationResult(_WireModel):
    valid_listen_event_count: int = Field(..., alias="validListenEvents")
    feed_url: str = Field(..., alias="feedUrl")
    jwk_locator: str = Field(..., alias="jwk")  # "<jku>#<kid>"
