"""Error taxonomy for the EAS poll action module client."""

from __future__ import annotations

from typing import Optional


class EasPollError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(EasPollError, ValueError):
    """Caller input rejected (option count, expired end time, missing vote fields)."""


class MalformedIdentifierError(EasPollError, ValueError):
    """A publication or profile identifier could not be parsed."""


class DisconnectedSignerError(EasPollError):
    """The signing capability is not connected to any resolvable chain."""


class AttestationSigningError(EasPollError):
    """Nonce fetch or delegated signature request failed."""


class IndexerError(EasPollError):
    """The GraphQL indexer answered with a non-success status or a malformed body."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status
