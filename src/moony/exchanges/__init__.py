"""Exchange adapters and request signing."""

from .base import BaseExchangeClient, ProxyConfig
from .factory import EXCHANGE_CLIENTS, create_exchange_client
from .kinds import ExchangeKind
from .protocol import AssetBalance, ExchangeBalanceReport, ExchangeClient

__all__ = [
    "AssetBalance",
    "BaseExchangeClient",
    "EXCHANGE_CLIENTS",
    "ExchangeBalanceReport",
    "ExchangeClient",
    "ExchangeKind",
    "ProxyConfig",
    "create_exchange_client",
]
