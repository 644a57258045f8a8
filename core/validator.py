"""
Receiving side of a podcast-events inbox.

Instead of processing events, the validator checks that a request is signed
by a strong identity (an envelope in the Authorization header whose key is
published at a JWK Set url) and that every event in the body is a valid
``listen`` event for the signed feed url.

Gates run strictly in order; the first failure ends the request:

  405  method is not POST
  401  no Authorization header
  403  Authorization is not ``Bearer <envelope>``
  400  body could not be read
  403  envelope failed to decode or verify
  400  claims / body / event problems
  500  anything unexpected
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .checks import (
    INVALID,
    is_string_record,
    is_valid_iso8601,
    is_valid_url,
    is_valid_uuid,
    try_decode_text,
    try_parse_json,
)
from .envelope import PublicKeyResolver, decode_envelope
from .errors import ClientError
from .resolver import make_resolver
from .schema import ValidationResult

logger = logging.getLogger(__name__)

_BEARER_RE = re.compile(r"Bearer (\S+)")

RESPONSE_HEADERS = {
    "content-type": "application/json; charset=utf-8",
    "access-control-allow-origin": "*",
}


@dataclass
class InboundRequest:
    """What the HTTP host hands to the validator."""
    method: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""
    body_error: Optional[str] = None  # set when the host failed to read the body

    def header(self, name: str) -> Optional[str]:
        name = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name:
                return value
        return None


@dataclass
class JsonResponse:
    status: int
    payload: dict
    headers: dict[str, str] = field(default_factory=lambda: dict(RESPONSE_HEADERS))

    @property
    def body(self) -> str:
        return json.dumps(self.payload, indent=2, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Gates
# ---------------------------------------------------------------------------

def _extract_envelope(request: InboundRequest) -> str:
    if request.method != "POST":
        raise ClientError("This endpoint only supports POST requests", 405)

    authorization = request.header("authorization")
    if authorization is None:
        raise ClientError("Expected Authorization header", 401)
    m = _BEARER_RE.fullmatch(authorization)
    if m is None:
        raise ClientError("Bad Authorization header, expected 'Bearer <jwt>", 403)
    return m.group(1)


def _check_claims(claims: Mapping[str, Any]) -> tuple[str, str, str]:
    for name in ("sub", "jku", "kid"):
        if not isinstance(claims.get(name), str):
            raise ClientError(f"Missing '{name}' claim in JWT")
    sub, jku, kid = claims["sub"], claims["jku"], claims["kid"]

    # the subject would normally have to be a known feed url; any url is accepted here
    if not is_valid_url(sub):
        raise ClientError("Bad 'sub' claim, expected feedUrl")
    return sub, jku, kid


def _parse_body(content: bytes) -> dict:
    text = try_decode_text(content)
    if text is None:
        raise ClientError("Bad request body, expected json text")
    obj = try_parse_json(text)
    if obj is INVALID:
        raise ClientError("Bad request body, expected valid json")
    if not is_string_record(obj):
        raise ClientError("Bad request body, expected json object")
    return obj


def validate_listen_event(number: int, event: Any, defaults: Mapping[str, Any], sub: str) -> None:
    """Check one element of ``events`` (1-based *number*) against *sub*."""

    def fail(msg: str) -> ClientError:
        return ClientError(f"Bad request body event number {number}, {msg}")

    if not is_string_record(event):
        raise fail("expected json object")
    rec = {**defaults, **event}

    kind = rec.get("kind")
    if not isinstance(kind, str):
        raise fail("expected 'kind' string")
    if kind != "listen":
        raise fail("this validator only supports the 'listen' event kind")
    feed_url = rec.get("feedUrl")
    if not isinstance(feed_url, str):
        raise fail("expected 'feedUrl' string")
    if feed_url != sub:
        raise fail(f"expected feedUrl {feed_url} to match sub {sub}")
    if not isinstance(rec.get("episodeUrl"), str):
        raise fail("expected 'episodeUrl' string")
    if not isinstance(rec.get("userAgent"), str):
        raise fail("expected 'userAgent' string")
    if "referer" in rec and not isinstance(rec["referer"], str):
        raise fail("expected 'referer' string")
    time = rec.get("time")
    if not isinstance(time, str):
        raise fail("expected 'time' string")
    if not is_valid_iso8601(time):
        raise fail(f"invalid time {time}")
    if not isinstance(rec.get("quartile"), str):
        raise fail("expected 'quartile' string")
    listener_id = rec.get("listenerId")
    if not isinstance(listener_id, str):
        raise fail("expected 'listenerId' string")
    if not is_valid_uuid(listener_id):
        raise fail(f"invalid listenerId {listener_id}")


async def validate_request(request: InboundRequest, resolver: PublicKeyResolver) -> ValidationResult:
    """Run every gate against *request*; raises ``ClientError`` on rejection."""
    envelope = _extract_envelope(request)

    if request.body_error is not None:
        raise ClientError(request.body_error, 400)
    content = request.body

    try:
        claims = await decode_envelope(envelope, content, resolver)
    except Exception as e:
        raise ClientError.wrap(403, e) from e

    sub, jku, kid = _check_claims(claims)

    # the body is now known to be exactly what the publisher signed
    obj = _parse_body(content)
    defaults = {k: v for k, v in obj.items() if k != "events"}
    events = obj.get("events")
    if not isinstance(events, list):
        raise ClientError("Bad request body, expected top-level 'events' array")

    for number, event in enumerate(events, 1):
        validate_listen_event(number, event, defaults, sub)

    # this is where trusted events would be forwarded for downstream processing
    return ValidationResult(
        valid_listen_event_count=len(events),
        feed_url=sub,
        jwk_locator=f"{jku}#{kid}",
    )


async def handle_request(
    request: InboundRequest,
    resolver: Optional[PublicKeyResolver] = None,
) -> JsonResponse:
    """Validate *request* and render the JSON response. Never raises."""
    try:
        result = await validate_request(request, resolver or make_resolver())
    except ClientError as e:
        logger.info(f"Rejected {request.method} request ({e.status}): {e}")
        return JsonResponse(status=e.status, payload={"error": str(e)})
    except Exception as e:
        logger.warning(f"Internal error validating request: {e}")
        return JsonResponse(status=500, payload={"error": str(e)})

    logger.info(f"Accepted {result.valid_listen_event_count} listen events for {result.feed_url}")
    return JsonResponse(status=200, payload=result.to_wire())
