"""OKX exchange adapter."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..errors import RemoteRequestError
from .base import BaseExchangeClient, to_float, usd_value
from .protocol import AssetBalance
from .signing import iso_timestamp, sign_okx

if TYPE_CHECKING:
    from ..credentials import Credential

logger = logging.getLogger(__name__)


class OKXClient(BaseExchangeClient):
    """OKX v5 trading account client."""

    kind = "okx"

    @property
    def requires_passphrase(self) -> bool:
        return True

    @property
    def display_name(self) -> str:
        return "OKX"

    def get_base_url(self) -> str:
        return "https://www.okx.com"

    def _get_headers(self, credential: Credential, timestamp: str, signature: str) -> dict[str, str]:
        headers = {
            "OK-ACCESS-KEY": credential.api_key.get_secret_value(),
            "OK-ACCESS-SIGN": signature,
            "OK-ACCESS-TIMESTAMP": timestamp,
            "OK-ACCESS-PASSPHRASE": credential.passphrase.get_secret_value() if credential.passphrase else "",
            "Content-Type": "application/json",
        }
        if self.sandbox:
            headers["x-simulated-trading"] = "1"
        return headers

    async def _fetch_balances(self, credential: Credential) -> tuple[list[AssetBalance], float]:
        path = "/api/v5/account/balance"
        timestamp = iso_timestamp()
        signature = sign_okx(credential.api_secret.get_secret_value(), timestamp, "GET", path)

        data = await self._get_json(path, headers=self._get_headers(credential, timestamp, signature))
        if not isinstance(data, dict):
            return [], 0.0

        code = str(data.get("code", "0"))
        if code != "0":
            raise RemoteRequestError(f"OKX error {code}: {data.get('msg') or 'unknown error'}", code=code)

        return self._parse_details(data)

    @staticmethod
    def _parse_details(data: dict[str, Any]) -> tuple[list[AssetBalance], float]:
        balances: list[AssetBalance] = []
        total_usd = 0.0

        accounts = data.get("data") or []
        first = accounts[0] if isinstance(accounts, list) and accounts else {}
        details = first.get("details") if isinstance(first, dict) else None
        for detail in details or []:
            if not isinstance(detail, dict):
                continue
            asset = str(detail.get("ccy") or "")
            total = to_float(detail.get("cashBal"))
            if not asset or total <= 0:
                continue
            balances.append(AssetBalance.from_total(asset, total, free=to_float(detail.get("availBal"))))
            total_usd += usd_value(asset, total, reported=detail.get("eqUsd"))

        return balances, total_usd
