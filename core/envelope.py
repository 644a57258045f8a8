"""
Signed envelope codec: a compact RS256 JWS whose claims commit to the
SHA-256 of the request body.

Wire form::

    b64url(header) . b64url(claims) . b64url(signature)

Decoding runs as a sequence of stages (format → header → claims → key →
signature → digest). Each stage returns a tagged ``Parsed`` result; the first
failure is raised as an ``EnvelopeError`` naming its stage.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from cryptography.hazmat.primitives.asymmetric import rsa

from .checks import INVALID, is_string_record, try_parse_json
from .crypto import b64url_decode, b64url_encode, sha256_hex, sign_bytes, verify_bytes
from .errors import DecodeStage, EnvelopeError
from .schema import EnvelopeClaims, EnvelopeHeader

logger = logging.getLogger(__name__)

T = TypeVar("T")

PublicKeyResolver = Callable[[str, str], Awaitable[rsa.RSAPublicKey]]

_ENVELOPE_RE = re.compile(r"([0-9a-zA-Z_-]+)\.([0-9a-zA-Z_-]+)\.([0-9a-zA-Z_-]+)")
_REQUIRED_CLAIMS = ("jku", "kid", "sub", "contentSha256")


@dataclass(frozen=True)
class Parsed(Generic[T]):
    """Outcome of one decode stage: a value or an error, never both."""
    value: Optional[T] = None
    error: Optional[EnvelopeError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    @classmethod
    def fail(cls, stage: DecodeStage, message: str) -> "Parsed[T]":
        return cls(error=EnvelopeError(stage, message))


def _to_json_segment(obj: dict) -> str:
    return b64url_encode(json.dumps(obj, separators=(",", ":"), ensure_ascii=False))


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def encode_envelope(
    subject: str,
    jwk_set_url: str,
    key_id: str,
    private_key: rsa.RSAPrivateKey,
    content: bytes,
) -> str:
    """Sign *content* on behalf of *subject*, returning the envelope string."""
    header = EnvelopeHeader()
    claims = EnvelopeClaims(
        sub=subject,
        jku=jwk_set_url,
        kid=key_id,
        content_sha256=sha256_hex(content),
    )

    signing_input = f"{_to_json_segment(header.to_wire())}.{_to_json_segment(claims.to_wire())}"
    signature = sign_bytes(signing_input.encode("utf-8"), private_key)
    return f"{signing_input}.{b64url_encode(signature)}"


# ---------------------------------------------------------------------------
# Decoding stages
# ---------------------------------------------------------------------------

def parse_format(envelope: str) -> Parsed[tuple[str, str, str]]:
    m = _ENVELOPE_RE.fullmatch(envelope) if isinstance(envelope, str) else None
    if m is None:
        return Parsed.fail(DecodeStage.FORMAT, "Unexpected JWT format")
    return Parsed(value=(m.group(1), m.group(2), m.group(3)))


def _parse_json_segment(segment: str) -> Any:
    try:
        text = b64url_decode(segment).decode("utf-8")
    except ValueError:
        return INVALID
    return try_parse_json(text)


def parse_header(segment: str) -> Parsed[dict]:
    header = _parse_json_segment(segment)
    if not is_string_record(header):
        return Parsed.fail(DecodeStage.HEADER, "Bad JWT header: expected json object")
    typ, alg = header.get("typ"), header.get("alg")
    if typ != "JWT":
        return Parsed.fail(DecodeStage.HEADER, f"Bad JWT header typ: {typ}, expected JWT")
    if alg != "RS256":
        return Parsed.fail(DecodeStage.HEADER, f"Bad JWT header alg: {alg}, expected RS256")
    return Parsed(value=header)


def parse_claims(segment: str) -> Parsed[dict]:
    claims = _parse_json_segment(segment)
    if not is_string_record(claims):
        return Parsed.fail(DecodeStage.CLAIMS, "Bad JWT payload: expected json object")
    for name in _REQUIRED_CLAIMS:
        value = claims.get(name)
        if not isinstance(value, str):
            return Parsed.fail(DecodeStage.CLAIMS, f"Bad JWT payload {name}: {value}, expected string")
    return Parsed(value=claims)


def check_signature(
    public_key: rsa.RSAPublicKey,
    header_segment: str,
    claims_segment: str,
    signature_segment: str,
) -> Parsed[None]:
    signing_input = f"{header_segment}.{claims_segment}".encode("utf-8")
    try:
        verified = verify_bytes(signing_input, b64url_decode(signature_segment), public_key)
    except Exception as e:
        logger.debug(f"Signature verification raised: {e}")
        verified = False
    if not verified:
        return Parsed.fail(DecodeStage.SIGNATURE, "Bad JWT: RSA signature verification failed")
    return Parsed(value=None)


def check_digest(content: bytes, claimed: str) -> Parsed[None]:
    actual = sha256_hex(content)
    if actual != claimed:
        return Parsed.fail(
            DecodeStage.DIGEST,
            f"Content sha {actual} does not match sha from header {claimed}",
        )
    return Parsed(value=None)


async def _resolve_key(resolver: PublicKeyResolver, jku: str, kid: str) -> Parsed[rsa.RSAPublicKey]:
    try:
        return Parsed(value=await resolver(jku, kid))
    except Exception as e:
        return Parsed.fail(DecodeStage.KEY, str(e))


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

async def decode_envelope(envelope: str, content: bytes, resolver: PublicKeyResolver) -> dict:
    """
    Verify *envelope* against *content* and return its claims.

    Steps:
      1. Split into three base64url segments.
      2. Parse and check the header (typ=JWT, alg=RS256).
      3. Parse the claims (string jku, kid, sub, contentSha256).
      4. Resolve the verifying key via ``resolver(jku, kid)``.
      5. Verify the RS256 signature over ``header.claims``.
      6. Compare ``contentSha256`` with the digest of *content*.

    Raises ``EnvelopeError`` at the first failing stage.
    """
    header_segment, claims_segment, signature_segment = parse_format(envelope).unwrap()
    parse_header(header_segment).unwrap()
    claims = parse_claims(claims_segment).unwrap()

    public_key = (await _resolve_key(resolver, claims["jku"], claims["kid"])).unwrap()

    check_signature(public_key, header_segment, claims_segment, signature_segment).unwrap()
    check_digest(content, claims["contentSha256"]).unwrap()

    logger.debug(f"Verified envelope for sub={claims['sub']} kid={claims['kid']}")
    return claims


def peek_envelope(envelope: str) -> tuple[dict, dict]:
    """Parse header and claims WITHOUT verifying anything. For display only."""
    header_segment, claims_segment, _ = parse_format(envelope).unwrap()
    return parse_header(header_segment).unwrap(), parse_claims(claims_segment).unwrap()
