"""Exception types shared by the codec, resolver and validator."""

from __future__ import annotations

from enum import Enum


class EventsError(Exception):
    """Base class for all podcast-events errors."""


class KeyFormatError(EventsError, ValueError):
    """A PEM block, JWK or key id could not be encoded or decoded."""


class ResolverError(EventsError):
    """The JWK Set directory could not supply the requested key."""


class DecodeStage(str, Enum):
    FORMAT = "format"
    HEADER = "header"
    CLAIMS = "claims"
    KEY = "key"
    SIGNATURE = "signature"
    DIGEST = "digest"


class EnvelopeError(EventsError):
    """Envelope decoding failed at a specific stage."""

    def __init__(self, stage: DecodeStage, message: str):
        super().__init__(message)
        self.stage = stage


class ClientError(EventsError):
    """A request problem attributable to the caller, with an HTTP status."""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.status = status

    @classmethod
    def wrap(cls, status: int, exc: BaseException) -> "ClientError":
        """Re-classify any exception under *status*, keeping its message."""
        return cls(str(exc), status)
