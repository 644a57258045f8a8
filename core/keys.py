"""
Key encoding for RSA keys to and from PEM text and JWK / JWK Set JSON.

PEM blocks carry PKCS#8 (private) or SubjectPublicKeyInfo (public) DER,
base64-encoded and wrapped at 64 characters. JWKs follow RFC 7517 / RFC 7518
§6.3 with unpadded base64url big-endian integers.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
    load_der_private_key,
    load_der_public_key,
)

from .crypto import b64url_decode, b64url_encode
from .errors import KeyFormatError
from .schema import JwkKey, JwkSet

logger = logging.getLogger(__name__)

PemType = Literal["private", "public"]

PEM_LINE_LENGTH = 64
KEY_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.+/=-]+$")


def _pem_frame(pem_type: PemType) -> tuple[str, str]:
    if pem_type not in ("private", "public"):
        raise KeyFormatError(f"Bad PEM type: {pem_type}, expected 'private' or 'public'")
    label = pem_type.upper()
    return f"-----BEGIN {label} KEY-----", f"-----END {label} KEY-----"


# ---------------------------------------------------------------------------
# PEM
# ---------------------------------------------------------------------------

def export_pem(key: rsa.RSAPrivateKey | rsa.RSAPublicKey, pem_type: PemType) -> str:
    """Export *key* as a PEM block of the given type."""
    begin, end = _pem_frame(pem_type)
    if pem_type == "private":
        if not isinstance(key, rsa.RSAPrivateKey):
            raise KeyFormatError("Expected private key")
        der = key.private_bytes(Encoding.DER, PrivateFormat.PKCS8, NoEncryption())
    else:
        if not isinstance(key, rsa.RSAPublicKey):
            raise KeyFormatError("Expected public key")
        der = key.public_bytes(Encoding.DER, PublicFormat.SubjectPublicKeyInfo)

    b64 = base64.b64encode(der).decode("ascii")
    lines = [b64[i:i + PEM_LINE_LENGTH] for i in range(0, len(b64), PEM_LINE_LENGTH)]
    return "\n".join([begin, *lines, end])


def import_pem(text: str, pem_type: PemType) -> rsa.RSAPrivateKey | rsa.RSAPublicKey:
    """Import a PEM block produced by :func:`export_pem` (or openssl)."""
    begin, end = _pem_frame(pem_type)
    text = text.strip()
    if not text.startswith(begin) or not text.endswith(end) or len(text) < len(begin) + len(end):
        raise KeyFormatError(f"Bad PEM text, expected {begin} ... {end} framing")

    body = re.sub(r"\s+", "", text[len(begin):len(text) - len(end)])
    try:
        der = base64.b64decode(body, validate=True)
    except binascii.Error as e:
        raise KeyFormatError(f"Bad PEM body: {e}") from e

    try:
        if pem_type == "private":
            key = load_der_private_key(der, password=None)
            expected: type = rsa.RSAPrivateKey
        else:
            key = load_der_public_key(der)
            expected = rsa.RSAPublicKey
    except (ValueError, TypeError) as e:
        raise KeyFormatError(f"Cannot load {pem_type} key: {e}") from e

    if not isinstance(key, expected):
        raise KeyFormatError(f"Expected RSA {pem_type} key, found {type(key).__name__}")
    return key


# ---------------------------------------------------------------------------
# JWK
# ---------------------------------------------------------------------------

def _int_to_b64url(n: int) -> str:
    return b64url_encode(n.to_bytes((n.bit_length() + 7) // 8 or 1, "big"))


def _b64url_to_int(s: str) -> int:
    return int.from_bytes(b64url_decode(s), "big")


def export_public_jwk(key: Any) -> dict[str, str]:
    """Export an RSA public key as a JWK dict (kty, alg, n, e)."""
    if not isinstance(key, rsa.RSAPublicKey):
        raise KeyFormatError("Expected public key")
    numbers = key.public_numbers()
    return {
        "kty": "RSA",
        "alg": "RS256",
        "n": _int_to_b64url(numbers.n),
        "e": _int_to_b64url(numbers.e),
    }


def import_public_jwk(obj: Any) -> rsa.RSAPublicKey:
    """Import a JWK dict as a verify-only RS256 public key."""
    if not isinstance(obj, dict):
        raise KeyFormatError("Bad JWK, expected json object")
    kty = obj.get("kty")
    if kty != "RSA":
        raise KeyFormatError(f"Bad JWK kty: {kty}, expected RSA")
    alg = obj.get("alg")
    if alg is not None and alg != "RS256":
        raise KeyFormatError(f"Bad JWK alg: {alg}, expected RS256")
    use = obj.get("use")
    if use is not None and use != "sig":
        raise KeyFormatError(f"Bad JWK use: {use}, expected sig")
    n, e = obj.get("n"), obj.get("e")
    if not isinstance(n, str) or not n:
        raise KeyFormatError("Bad JWK, expected RSA n parameter")
    if not isinstance(e, str) or not e:
        raise KeyFormatError("Bad JWK, expected RSA e parameter")

    try:
        return rsa.RSAPublicNumbers(_b64url_to_int(e), _b64url_to_int(n)).public_key()
    except ValueError as exc:
        raise KeyFormatError(f"Bad JWK: {exc}") from exc


def generate_jwk_set(key_id: str, public_key: Any) -> dict[str, list[dict[str, str]]]:
    """Build a single-key JWK Set document for publishing at a jku URL."""
    if not isinstance(key_id, str) or not KEY_ID_PATTERN.fullmatch(key_id):
        raise KeyFormatError(
            f"Bad keyId: {key_id}, expected a non-empty string with no whitespace or special characters"
        )
    jwk = export_public_jwk(public_key)
    kty, alg = jwk["kty"], jwk["alg"]
    if kty != "RSA":
        raise KeyFormatError(f"Expected RSA public key, found {kty}")
    if alg != "RS256":
        raise KeyFormatError(f"Expected RS256 algorithm, found {alg}")

    logger.debug(f"Generated JWK Set for kid={key_id}")
    return JwkSet(keys=[JwkKey(kid=key_id, n=jwk["n"], e=jwk["e"])]).to_wire()


def timestamp_key_id(now: Optional[datetime] = None) -> str:
    """Key id from the digits of a UTC millisecond timestamp, e.g. 20221006160629015."""
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return now.strftime("%Y%m%d%H%M%S") + f"{now.microsecond // 1000:03d}"
