"""Encrypted, persisted store of exchange API credentials."""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import os
import socket
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, Protocol

from cryptography.fernet import Fernet, InvalidToken
from pydantic import BaseModel, SecretStr, ValidationError

from .errors import CredentialStoreError, DecryptionError
from .exchanges.kinds import ExchangeKind

logger = logging.getLogger(__name__)

BLOB_VERSION = 1


class Credential(BaseModel):
    """API credentials of one exchange account slot."""

    api_key: SecretStr = SecretStr("")
    api_secret: SecretStr = SecretStr("")
    passphrase: SecretStr | None = None

    model_config = {"extra": "forbid", "frozen": True}

    def is_complete(self, requires_passphrase: bool = False) -> bool:
        if not self.api_key.get_secret_value() or not self.api_secret.get_secret_value():
            return False
        if requires_passphrase and not (self.passphrase and self.passphrase.get_secret_value()):
            return False
        return True

    def to_plain(self) -> dict[str, str | None]:
        return {
            "api_key": self.api_key.get_secret_value(),
            "api_secret": self.api_secret.get_secret_value(),
            "passphrase": self.passphrase.get_secret_value() if self.passphrase else None,
        }


class BlobStore(Protocol):
    """Persistence port holding a single opaque blob."""

    def read(self) -> bytes | None: ...

    def write(self, data: bytes) -> None: ...

    def delete(self) -> None: ...


class Cipher(Protocol):
    """Encryption port; ``decrypt`` raises ``DecryptionError`` on bad input."""

    def encrypt(self, data: bytes) -> bytes: ...

    def decrypt(self, token: bytes) -> bytes: ...


class FileBlobStore:
    """Blob store backed by one file, replaced atomically on every write."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def read(self) -> bytes | None:
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            return None

    def write(self, data: bytes) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self) -> None:
        self.path.unlink(missing_ok=True)


def default_host_id() -> str:
    return socket.gethostname()


class FernetCipher:
    """Fernet encryption keyed by SHA-256 of an environment-bound identifier."""

    def __init__(self, host_id: str) -> None:
        key = base64.urlsafe_b64encode(hashlib.sha256(host_id.encode()).digest())
        self._fernet = Fernet(key)

    @classmethod
    def from_host(cls, host_id: Callable[[], str] = default_host_id) -> "FernetCipher":
        return cls(host_id())

    def encrypt(self, data: bytes) -> bytes:
        return self._fernet.encrypt(data)

    def decrypt(self, token: bytes) -> bytes:
        try:
            return self._fernet.decrypt(token)
        except (InvalidToken, ValueError, TypeError) as exc:
            raise DecryptionError("credential blob could not be decrypted") from exc


class CredentialStore:
    """Holds credentials for every exchange account slot.

    The store is the only writer of credentials. Exchange clients receive
    read-only ``Credential`` values through ``get``.
    """

    def __init__(
        self,
        blob_store: BlobStore,
        cipher: Cipher,
        slots: dict[ExchangeKind, int] | None = None,
    ) -> None:
        self._blob_store = blob_store
        self._cipher = cipher
        self._slots = {kind: 1 for kind in ExchangeKind}
        if slots:
            self._slots.update({ExchangeKind(k): max(int(v), 1) for k, v in slots.items()})
        self._lock = threading.Lock()
        self._credentials = self._empty()

    def _empty(self) -> dict[ExchangeKind, list[Credential]]:
        return {kind: [Credential() for _ in range(count)] for kind, count in self._slots.items()}

    def slot_count(self, kind: ExchangeKind) -> int:
        return self._slots.get(ExchangeKind(kind), 0)

    def get(self, kind: ExchangeKind, account_index: int = 0) -> Credential | None:
        slots = self._credentials.get(ExchangeKind(kind), [])
        if 0 <= account_index < len(slots):
            return slots[account_index]
        return None

    def is_configured(self, kind: ExchangeKind, account_index: int = 0) -> bool:
        credential = self.get(kind, account_index)
        return credential is not None and credential.is_complete(ExchangeKind(kind).requires_passphrase)

    def load(self) -> None:
        """Reload credentials from the persisted blob.

        A missing blob leaves all slots empty. A blob that cannot be
        decrypted or parsed is deleted and all slots are reset.
        """
        with self._lock:
            try:
                blob = self._blob_store.read()
            except OSError as e:
                logger.warning("Could not read stored credentials, starting empty: %s", e)
                self._credentials = self._empty()
                return

            if blob is None:
                self._credentials = self._empty()
                return

            try:
                document = json.loads(self._cipher.decrypt(blob))
                self._credentials = self._from_document(document)
            except (DecryptionError, ValueError, ValidationError, TypeError, AttributeError) as e:
                logger.warning("Discarding unreadable credential blob: %s", e)
                self._credentials = self._empty()
                try:
                    self._blob_store.delete()
                except OSError as delete_error:
                    logger.error("Failed to delete corrupt credential blob: %s", delete_error)
                return

        logger.info("Loaded credentials for %d configured account(s)", self._configured_count())

    def save(self) -> None:
        """Encrypt and write all credentials, replacing the previous blob."""
        with self._lock:
            self._save_locked()

    def _save_locked(self, credentials: dict[ExchangeKind, list[Credential]] | None = None) -> None:
        payload = json.dumps(self._to_document(credentials)).encode()
        try:
            self._blob_store.write(self._cipher.encrypt(payload))
        except OSError as e:
            raise CredentialStoreError(f"Failed to save credentials: {e}") from e

    def set(
        self,
        kind: ExchangeKind,
        api_key: str,
        api_secret: str,
        passphrase: str | None = None,
        *,
        account_index: int = 0,
    ) -> bool:
        """Replace one slot's credentials and persist.

        Returns False, without touching anything, when the slot does not exist.
        """
        kind = ExchangeKind(kind)
        with self._lock:
            slots = self._credentials[kind]
            if not 0 <= account_index < len(slots):
                logger.warning(
                    "Ignoring credentials for %s account %d: only %d slot(s) configured",
                    kind.value,
                    account_index,
                    len(slots),
                )
                return False

            updated = {k: list(v) for k, v in self._credentials.items()}
            updated[kind][account_index] = Credential(
                api_key=SecretStr(api_key),
                api_secret=SecretStr(api_secret),
                passphrase=SecretStr(passphrase) if passphrase and kind.requires_passphrase else None,
            )
            self._save_locked(updated)
            self._credentials = updated

        logger.info("Saved credentials for %s account %d", kind.value, account_index)
        return True

    def clear(self) -> None:
        """Reset every slot and delete the persisted blob."""
        with self._lock:
            try:
                self._blob_store.delete()
            except OSError as e:
                raise CredentialStoreError(f"Failed to delete credentials: {e}") from e
            self._credentials = self._empty()
        logger.info("Cleared all credentials")

    def _configured_count(self) -> int:
        return sum(
            1
            for kind, slots in self._credentials.items()
            for credential in slots
            if credential.is_complete(kind.requires_passphrase)
        )

    def _to_document(self, credentials: dict[ExchangeKind, list[Credential]] | None = None) -> dict[str, Any]:
        if credentials is None:
            credentials = self._credentials
        return {
            "version": BLOB_VERSION,
            "exchanges": {
                kind.value: [c.to_plain() for c in slots] for kind, slots in credentials.items()
            },
        }

    def _from_document(self, document: Any) -> dict[ExchangeKind, list[Credential]]:
        if not isinstance(document, dict) or not isinstance(document.get("exchanges"), dict):
            raise ValueError("credential document has no 'exchanges' mapping")

        credentials = self._empty()
        for name, stored in document["exchanges"].items():
            try:
                kind = ExchangeKind(name)
            except ValueError:
                logger.warning("Ignoring stored credentials for unknown exchange %r", name)
                continue
            if not isinstance(stored, list):
                raise ValueError(f"credentials for {name!r} must be a list")
            slots = credentials[kind]
            for index, item in enumerate(stored[: len(slots)]):
                slots[index] = Credential.model_validate(item)
        return credentials
