"""moony: crypto exchange balance dashboard core."""

from .settings import Settings
from .exchanges import AssetBalance, ExchangeBalanceReport, ExchangeKind

__all__ = [
    "Settings",
    "AssetBalance",
    "ExchangeBalanceReport",
    "ExchangeKind",
]
