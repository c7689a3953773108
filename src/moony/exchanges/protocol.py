"""Normalized balance types and the exchange client protocol."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from ..credentials import Credential


@dataclass(frozen=True, slots=True)
class AssetBalance:
    """Balance of a single asset on one account.

    ``total`` is always ``free + locked``.
    """

    asset: str
    free: float
    locked: float

    @property
    def total(self) -> float:
        return self.free + self.locked

    @classmethod
    def from_total(cls, asset: str, total: float, *, free: float | None = None, locked: float | None = None) -> "AssetBalance":
        """Split a reported total into free and locked parts.

        Whichever of ``free``/``locked`` is given is clamped to ``[0, total]``
        and the other is derived, so the parts always sum to the total.
        """
        if locked is not None:
            locked = min(max(locked, 0.0), total)
            return cls(asset, total - locked, locked)
        if free is None:
            free = total
        free = min(max(free, 0.0), total)
        return cls(asset, free, total - free)

    def to_dict(self) -> dict[str, float | str]:
        return {"asset": self.asset, "free": self.free, "locked": self.locked, "total": self.total}


@dataclass(frozen=True, slots=True)
class ExchangeBalanceReport:
    """Result of one balance fetch: populated balances or an error, never both."""

    exchange: str
    balances: list[AssetBalance] = field(default_factory=list)
    total_usd: float = 0.0
    error: str | None = None

    @classmethod
    def failed(cls, exchange: str, error: str) -> "ExchangeBalanceReport":
        return cls(exchange=exchange, balances=[], total_usd=0.0, error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, object]:
        return {
            "exchange": self.exchange,
            "balances": [b.to_dict() for b in self.balances],
            "total_usd": self.total_usd,
            "error": self.error,
        }


class ExchangeClient(Protocol):
    """Protocol for exchange balance clients."""

    kind: str

    async def get_balance(self, label: str, credential: Credential | None) -> ExchangeBalanceReport:
        """Fetch and normalize the balances of one account.

        Args:
            label: Account label reported back in the result
            credential: Credentials of the account, ``None`` when not configured

        Returns:
            A report; failures are carried in ``error`` and never raised
        """
        ...

    async def close(self) -> None:
        """Close the HTTP session."""
        ...
