"""Error taxonomy shared by the exchange, credential and history layers."""

from __future__ import annotations


class MoonyError(Exception):
    """Base class for all moony errors."""


class MissingCredentialsError(MoonyError):
    """Required API key, secret or passphrase is absent."""


class RemoteRequestError(MoonyError):
    """Transport failure, non-2xx status or exchange-level error code."""

    def __init__(self, message: str, *, status: int | None = None, code: str | None = None):
        super().__init__(message)
        self.status = status
        self.code = code


class DecryptionError(MoonyError):
    """Persisted credential blob is corrupt or was encrypted with another key."""


class CredentialStoreError(MoonyError):
    """Credential blob could not be written or deleted."""


class HistoryStoreError(MoonyError):
    """Balance history could not be read or written."""
