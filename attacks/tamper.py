"""
Envelope attack harness — tamper transformations for verification tests.

Each attack takes a valid ``(envelope, content)`` pair and returns a tampered
pair that a correct verifier must reject:

  A1: body byte flip (one byte of the signed body changes)
  A2: body swap (valid envelope detached and reused with another batch)
  A3: header downgrade (alg rewritten, signature kept)
  A4: claims substitution (sub rewritten, signature kept)
  A5: segment character flip (one char of the header or claims segment)
  A6: signature forgery (signing input re-signed with an unrelated key)
"""

from __future__ import annotations

import json
from typing import Callable, Optional

from cryptography.hazmat.primitives.asymmetric import rsa

from core.crypto import b64url_decode, b64url_encode, generate_keypair, sign_bytes

Tampered = tuple[str, bytes]

_B64URL_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"


def _split(envelope: str) -> list[str]:
    parts = envelope.split(".")
    if len(parts) != 3:
        raise ValueError("expected a three-segment envelope")
    return parts


def _rewrite_segment(segment: str, **changes) -> str:
    obj = json.loads(b64url_decode(segment))
    obj.update(changes)
    return b64url_encode(json.dumps(obj, separators=(",", ":")))


def a1_body_byte_flip(envelope: str, content: bytes, index: int = 0) -> Tampered:
    """A1: XOR one byte of the body; the claimed digest no longer matches."""
    if not content:
        return envelope, b"\x00"
    tampered = bytearray(content)
    tampered[index % len(tampered)] ^= 0x01
    return envelope, bytes(tampered)


def a2_body_swap(envelope: str, content: bytes, new_feed_url: str = "https://attacker.example/feed.xml") -> Tampered:
    """
    A2: Detach a valid envelope and present it with a different batch.

    The signature over header+claims is untouched and still verifies; only
    the content digest binding can catch this.
    """
    try:
        batch = json.loads(content)
    except ValueError:
        batch = {}
    if not isinstance(batch, dict):
        batch = {}
    batch["feedUrl"] = new_feed_url
    batch.setdefault("events", []).append({"injected": True})
    return envelope, json.dumps(batch).encode("utf-8")


def a3_header_downgrade(envelope: str, content: bytes, alg: str = "none") -> Tampered:
    """A3: Rewrite the header alg (e.g. 'none', 'HS256') and keep the signature."""
    header, claims, signature = _split(envelope)
    return f"{_rewrite_segment(header, alg=alg)}.{claims}.{signature}", content


def a4_claims_substitution(envelope: str, content: bytes, sub: str = "https://attacker.example/feed.xml") -> Tampered:
    """A4: Rewrite the signed subject and keep the original signature."""
    header, claims, signature = _split(envelope)
    return f"{header}.{_rewrite_segment(claims, sub=sub)}.{signature}", content


def a5_segment_char_flip(envelope: str, content: bytes, segment: int = 1, position: int = 0) -> Tampered:
    """A5: Replace one base64url character of segment 0 (header) or 1 (claims)."""
    parts = _split(envelope)
    target = parts[segment]
    pos = position % len(target)
    current = _B64URL_ALPHABET.index(target[pos])
    replacement = _B64URL_ALPHABET[(current + 1) % len(_B64URL_ALPHABET)]
    parts[segment] = target[:pos] + replacement + target[pos + 1:]
    return ".".join(parts), content


def a6_signature_forgery(
    envelope: str,
    content: bytes,
    forger_key: Optional[rsa.RSAPrivateKey] = None,
) -> Tampered:
    """A6: Re-sign the untouched header+claims with a key the directory does not publish."""
    header, claims, _ = _split(envelope)
    sk = forger_key or generate_keypair().private_key
    signature = sign_bytes(f"{header}.{claims}".encode("utf-8"), sk)
    return f"{header}.{claims}.{b64url_encode(signature)}", content


# ---------------------------------------------------------------------------
# Attack registry
# ---------------------------------------------------------------------------

ATTACKS: dict[str, Callable[[str, bytes], Tampered]] = {
    "A1_body_byte_flip": lambda e, c: a1_body_byte_flip(e, c),
    "A1_body_byte_flip_last": lambda e, c: a1_body_byte_flip(e, c, index=-1),
    "A2_body_swap": lambda e, c: a2_body_swap(e, c),
    "A3_alg_none": lambda e, c: a3_header_downgrade(e, c, alg="none"),
    "A3_alg_hs256": lambda e, c: a3_header_downgrade(e, c, alg="HS256"),
    "A4_claims_sub": lambda e, c: a4_claims_substitution(e, c),
    "A5_header_char": lambda e, c: a5_segment_char_flip(e, c, segment=0),
    "A5_claims_char": lambda e, c: a5_segment_char_flip(e, c, segment=1),
    "A6_forged_signature": lambda e, c: a6_signature_forgery(e, c),
}


def run_all_attacks(envelope: str, content: bytes) -> dict[str, Tampered]:
    """Run every attack and return {attack_name: (envelope, content)}."""
    return {name: attack_fn(envelope, content) for name, attack_fn in ATTACKS.items()}
