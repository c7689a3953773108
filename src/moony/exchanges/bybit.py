"""Bybit exchange adapter."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..errors import RemoteRequestError
from .base import BaseExchangeClient, to_float, usd_value
from .protocol import AssetBalance
from .signing import build_query, millis_timestamp, sign_bybit

if TYPE_CHECKING:
    from ..credentials import Credential

logger = logging.getLogger(__name__)


class BybitClient(BaseExchangeClient):
    """Bybit v5 unified account client."""

    kind = "bybit"

    def __init__(self, *, account_type: str = "UNIFIED", **options: Any):
        super().__init__(**options)
        self.account_type = account_type

    @property
    def display_name(self) -> str:
        return "Bybit"

    def get_base_url(self) -> str:
        if self.sandbox:
            return "https://api-testnet.bybit.com"
        return "https://api.bybit.com"

    def _get_headers(self, credential: Credential, timestamp: str, signature: str) -> dict[str, str]:
        return {
            "X-BAPI-API-KEY": credential.api_key.get_secret_value(),
            "X-BAPI-TIMESTAMP": timestamp,
            "X-BAPI-SIGN": signature,
            "X-BAPI-RECV-WINDOW": str(self.recv_window_ms),
        }

    async def _fetch_balances(self, credential: Credential) -> tuple[list[AssetBalance], float]:
        path = "/v5/account/wallet-balance"
        # The server signs the query exactly as sent, so keep this order.
        params = {"accountType": self.account_type}
        timestamp = str(millis_timestamp())
        signature = sign_bybit(
            credential.api_secret.get_secret_value(),
            timestamp,
            credential.api_key.get_secret_value(),
            self.recv_window_ms,
            build_query(params),
        )

        data = await self._get_json(path, params=params, headers=self._get_headers(credential, timestamp, signature))
        if not isinstance(data, dict):
            return [], 0.0

        ret_code = data.get("retCode", 0)
        if str(ret_code) != "0":
            raise RemoteRequestError(
                f"Bybit error {ret_code}: {data.get('retMsg', 'unknown error')}",
                code=str(ret_code),
            )

        return self._parse_wallet(data)

    @staticmethod
    def _parse_wallet(data: dict[str, Any]) -> tuple[list[AssetBalance], float]:
        balances: list[AssetBalance] = []
        total_usd = 0.0

        result = data.get("result") or {}
        accounts = result.get("list") if isinstance(result, dict) else None
        for account in accounts or []:
            if not isinstance(account, dict):
                continue
            for coin in account.get("coin") or []:
                if not isinstance(coin, dict):
                    continue
                asset = str(coin.get("coin") or "")
                total = to_float(coin.get("walletBalance"))
                if not asset or total <= 0:
                    continue
                balances.append(AssetBalance.from_total(asset, total, locked=to_float(coin.get("locked"))))
                total_usd += usd_value(asset, total, reported=coin.get("usdValue"))

        return balances, total_usd
