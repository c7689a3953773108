from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from .aggregator import BalanceAggregator
from .credentials import CredentialStore, FernetCipher, FileBlobStore, default_host_id
from .history import BalanceHistory

if TYPE_CHECKING:
    from .settings import Settings


@dataclass(slots=True)
class AppContainer:
    settings: "Settings"
    credentials: CredentialStore
    aggregator: BalanceAggregator
    history: BalanceHistory
    shutdown: asyncio.Event = field(default_factory=asyncio.Event)

    async def aclose(self) -> None:
        await self.aggregator.close()


def build_container(settings: "Settings", host_id: Callable[[], str] | None = None) -> AppContainer:
    """Construct the application services once, loading stored credentials."""
    if host_id is None:
        if settings.host_id is not None:
            secret = settings.host_id.get_secret_value()
            host_id = lambda: secret  # noqa: E731
        else:
            host_id = default_host_id

    credentials = CredentialStore(
        FileBlobStore(settings.storage.credentials_path),
        FernetCipher.from_host(host_id),
        slots=settings.account_slots(),
    )
    credentials.load()

    return AppContainer(
        settings=settings,
        credentials=credentials,
        aggregator=BalanceAggregator.from_settings(settings, credentials),
        history=BalanceHistory(
            settings.storage.history_path,
            retention_days=settings.storage.history_retention_days,
        ),
    )
