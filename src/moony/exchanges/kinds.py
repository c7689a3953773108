"""Closed set of supported exchange kinds."""

from __future__ import annotations

from enum import Enum


class ExchangeKind(str, Enum):
    """Supported exchange venues.

    Each kind carries its own credential shape: OKX requires a passphrase,
    the others authenticate with key and secret only.
    """

    BYBIT = "bybit"
    BINANCE = "binance"
    OKX = "okx"

    @property
    def requires_passphrase(self) -> bool:
        return self is ExchangeKind.OKX

    @property
    def display_name(self) -> str:
        return {
            ExchangeKind.BYBIT: "Bybit",
            ExchangeKind.BINANCE: "Binance",
            ExchangeKind.OKX: "OKX",
        }[self]
