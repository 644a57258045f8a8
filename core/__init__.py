"""Podcast events core: signed envelopes, key encoding and batch validation."""

from .schema import (
    EnvelopeClaims,
    EnvelopeHeader,
    JwkKey,
    JwkSet,
    ListenEvent,
    ValidationResult,
)
from .crypto import (
    KeyPair,
    generate_keypair,
    sha256_hex,
    sign_bytes,
    verify_bytes,
)
from .keys import (
    export_pem,
    export_public_jwk,
    generate_jwk_set,
    import_pem,
    import_public_jwk,
)
from .envelope import decode_envelope, encode_envelope
from .errors import ClientError, DecodeStage, EnvelopeError, KeyFormatError, ResolverError
from .resolver import make_resolver, resolve_public_key
from .validator import InboundRequest, JsonResponse, handle_request, validate_request

__all__ = [
    "EnvelopeClaims",
    "EnvelopeHeader",
    "JwkKey",
    "JwkSet",
    "ListenEvent",
    "ValidationResult",
    "KeyPair",
    "generate_keypair",
    "sha256_hex",
    "sign_bytes",
    "verify_bytes",
    "export_pem",
    "export_public_jwk",
    "generate_jwk_set",
    "import_pem",
    "import_public_jwk",
    "decode_envelope",
    "encode_envelope",
    "ClientError",
    "DecodeStage",
    "EnvelopeError",
    "KeyFormatError",
    "ResolverError",
    "make_resolver",
    "resolve_public_key",
    "InboundRequest",
    "JsonResponse",
    "handle_request",
    "validate_request",
]
