"""Factory for creating exchange client instances."""

from __future__ import annotations

from typing import Any, Type

from .base import BaseExchangeClient, ProxyConfig
from .binance import BinanceClient
from .bybit import BybitClient
from .kinds import ExchangeKind
from .okx import OKXClient


EXCHANGE_CLIENTS: dict[ExchangeKind, Type[BaseExchangeClient]] = {
    ExchangeKind.BYBIT: BybitClient,
    ExchangeKind.BINANCE: BinanceClient,
    ExchangeKind.OKX: OKXClient,
}


def create_exchange_client(
    kind: ExchangeKind | str,
    *,
    sandbox: bool = False,
    proxy: dict[str, Any] | None = None,
    **options: Any,
) -> BaseExchangeClient:
    """Create an exchange client instance.

    Args:
        kind: Exchange kind (bybit, binance, okx)
        sandbox: Use sandbox/testnet environment
        proxy: Proxy configuration (url, username, password)
        **options: Transport options (timeout_seconds, recv_window_ms, user_agent)

    Returns:
        Configured exchange client

    Raises:
        ValueError: If exchange is not supported
    """
    try:
        exchange_kind = ExchangeKind(kind.lower() if isinstance(kind, str) else kind)
    except ValueError:
        supported = ", ".join(k.value for k in EXCHANGE_CLIENTS)
        raise ValueError(f"Unsupported exchange: {kind}. Supported exchanges: {supported}") from None

    client_class = EXCHANGE_CLIENTS[exchange_kind]

    proxy_config = None
    if proxy:
        proxy_config = ProxyConfig(
            url=proxy.get("url"),
            username=proxy.get("username"),
            password=proxy.get("password"),
        )

    return client_class(sandbox=sandbox, proxy=proxy_config, **options)
