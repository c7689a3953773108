from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, SecretStr, model_validator

from .exchanges.kinds import ExchangeKind


class ProxySettings(BaseModel):
    enabled: bool = False
    url: str | None = None
    username: str | None = None
    password: SecretStr | None = None

    model_config = {"extra": "forbid"}


class HttpSettings(BaseModel):
    timeout_seconds: float = Field(default=10.0, gt=0)
    recv_window_ms: int = Field(default=5000, gt=0)
    user_agent: str = "moony/1.0"

    model_config = {"extra": "forbid"}


class AccountSettings(BaseModel):
    label: str = Field(min_length=1)
    kind: ExchangeKind
    account_index: int = Field(default=0, ge=0)
    enabled: bool = True
    sandbox: bool = False

    model_config = {"extra": "forbid"}


class CashSettings(BaseModel):
    label: str = "Savings Bank"
    asset: str = "USD"
    amount_usd: float = Field(default=0.0, ge=0)

    model_config = {"extra": "forbid"}


class StorageSettings(BaseModel):
    data_dir: Path = Path("data")
    credentials_file: str = "credentials.bin"
    history_file: str = "history.db"
    history_retention_days: int | None = Field(default=None, gt=0)

    model_config = {"extra": "forbid"}

    @property
    def credentials_path(self) -> Path:
        return self.data_dir / self.credentials_file

    @property
    def history_path(self) -> Path:
        return self.data_dir / self.history_file


class WatchSettings(BaseModel):
    interval_seconds: float = Field(default=300.0, gt=0)

    model_config = {"extra": "forbid"}


def _default_accounts() -> list[AccountSettings]:
    return [
        AccountSettings(label="Bybit", kind=ExchangeKind.BYBIT),
        AccountSettings(label="Binance", kind=ExchangeKind.BINANCE),
        AccountSettings(label="OKX 1", kind=ExchangeKind.OKX, account_index=0),
        AccountSettings(label="OKX 2", kind=ExchangeKind.OKX, account_index=1),
    ]


class Settings(BaseModel):
    env: str = "dev"
    host_id: SecretStr | None = None
    accounts: list[AccountSettings] = Field(default_factory=_default_accounts)
    cash: CashSettings = Field(default_factory=CashSettings)
    http: HttpSettings = Field(default_factory=HttpSettings)
    proxy: ProxySettings = Field(default_factory=ProxySettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    watch: WatchSettings = Field(default_factory=WatchSettings)

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def _check_labels(self) -> "Settings":
        labels = [a.label for a in self.accounts] + [self.cash.label]
        seen: set[str] = set()
        for label in labels:
            if label in seen:
                raise ValueError(f"duplicate account label: {label!r}")
            seen.add(label)
        return self

    @property
    def enabled_accounts(self) -> list[AccountSettings]:
        return [a for a in self.accounts if a.enabled]

    def account_slots(self) -> dict[ExchangeKind, int]:
        """Number of credential slots per exchange kind, derived from declared accounts."""
        slots: dict[ExchangeKind, int] = {}
        for account in self.accounts:
            slots[account.kind] = max(slots.get(account.kind, 0), account.account_index + 1)
        return slots

    def redacted(self) -> dict[str, Any]:
        data = self.model_dump(mode="json")
        if data.get("host_id") is not None:
            data["host_id"] = "***"
        proxy = data.get("proxy")
        if isinstance(proxy, dict) and proxy.get("password") is not None:
            proxy["password"] = "***"
        return data
