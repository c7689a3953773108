"""Binance exchange adapter."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .base import STABLE_ASSETS, BaseExchangeClient, to_float, usd_value
from .protocol import AssetBalance
from .signing import build_query, millis_timestamp, sign_binance

if TYPE_CHECKING:
    from ..credentials import Credential

logger = logging.getLogger(__name__)


class BinanceClient(BaseExchangeClient):
    """Binance spot account client."""

    kind = "binance"
    quote_asset = "USDT"

    @property
    def display_name(self) -> str:
        return "Binance"

    def get_base_url(self) -> str:
        if self.sandbox:
            return "https://testnet.binance.vision"
        return "https://api.binance.com"

    def _sign_params(self, credential: Credential, params: dict[str, Any]) -> dict[str, Any]:
        """Add timestamp, recvWindow and signature to params."""
        params = dict(params)
        params["timestamp"] = millis_timestamp()
        params["recvWindow"] = self.recv_window_ms
        params["signature"] = sign_binance(credential.api_secret.get_secret_value(), build_query(params))
        return params

    async def _fetch_balances(self, credential: Credential) -> tuple[list[AssetBalance], float]:
        headers = {"X-MBX-APIKEY": credential.api_key.get_secret_value()}
        account = await self._get_json("/api/v3/account", params=self._sign_params(credential, {}), headers=headers)

        balances: list[AssetBalance] = []
        raw = account.get("balances") if isinstance(account, dict) else None
        for item in raw or []:
            if not isinstance(item, dict):
                continue
            asset = str(item.get("asset") or "")
            balance = AssetBalance(asset, max(to_float(item.get("free")), 0.0), max(to_float(item.get("locked")), 0.0))
            if asset and balance.total > 0:
                balances.append(balance)

        if not balances:
            return [], 0.0

        prices: dict[str, float] = {}
        if any(b.asset.upper() not in STABLE_ASSETS for b in balances):
            prices = await self._fetch_prices()

        total_usd = sum(
            usd_value(b.asset, b.total, price=prices.get(f"{b.asset.upper()}{self.quote_asset}"))
            for b in balances
        )
        return balances, total_usd

    async def _fetch_prices(self) -> dict[str, float]:
        """Fetch last prices for every symbol."""
        data = await self._get_json("/api/v3/ticker/price")
        prices: dict[str, float] = {}
        for item in data if isinstance(data, list) else []:
            if isinstance(item, dict) and item.get("symbol"):
                prices[str(item["symbol"])] = to_float(item.get("price"))
        return prices
