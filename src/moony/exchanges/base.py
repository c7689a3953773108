"""Base client class for exchange adapters."""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import aiohttp

from ..errors import MissingCredentialsError, RemoteRequestError
from .protocol import AssetBalance, ExchangeBalanceReport

if TYPE_CHECKING:
    from ..credentials import Credential

logger = logging.getLogger(__name__)

# Assets valued 1:1 in USD when the exchange gives no valuation of its own.
STABLE_ASSETS = frozenset({"USD", "USDT", "USDC", "BUSD", "FDUSD", "TUSD", "DAI"})


class ProxyConfig:
    """HTTP proxy configuration."""

    def __init__(self, url: str | None = None, username: str | None = None, password: str | None = None):
        self.url = url
        self.username = username
        self.password = password

    @property
    def proxy_url(self) -> str | None:
        if not self.url:
            return None
        if self.username and self.password:
            protocol = self.url.split("://")[0] if "://" in self.url else "http"
            rest = self.url.split("://")[1] if "://" in self.url else self.url
            return f"{protocol}://{self.username}:{self.password}@{rest}"
        return self.url


def to_float(value: Any) -> float:
    """Parse a numeric field leniently; absent or malformed values count as zero."""
    if value is None or value == "":
        return 0.0
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    return result if math.isfinite(result) else 0.0


def usd_value(asset: str, total: float, *, reported: Any = None, price: float | None = None) -> float:
    """USD value of a holding.

    Prefers the exchange's own valuation, then stablecoin parity, then
    ``total * price``. Unknown prices value the asset at zero.
    """
    if reported is not None and reported != "":
        return to_float(reported)
    if asset.upper() in STABLE_ASSETS:
        return total
    if price:
        return total * price
    return 0.0


class BaseExchangeClient(ABC):
    """Base class for all exchange adapters.

    Subclasses implement ``_fetch_balances``; ``get_balance`` wraps it so
    that every failure becomes an error report instead of an exception.
    """

    kind: str = ""

    def __init__(
        self,
        *,
        sandbox: bool = False,
        proxy: ProxyConfig | None = None,
        timeout_seconds: float = 10.0,
        recv_window_ms: int = 5000,
        user_agent: str = "moony/1.0",
    ):
        """Initialize exchange client.

        Args:
            sandbox: Use sandbox/testnet environment
            proxy: Proxy configuration
            timeout_seconds: Total timeout per HTTP call
            recv_window_ms: Receive window sent with signed requests
            user_agent: User-Agent header value
        """
        self.sandbox = sandbox
        self.proxy = proxy or ProxyConfig()
        self.timeout_seconds = timeout_seconds
        self.recv_window_ms = recv_window_ms
        self.user_agent = user_agent
        self.session: aiohttp.ClientSession | None = None

    def get_base_url(self) -> str:
        """Get base API URL.

        Can be overridden by subclasses to handle sandbox/testnet URLs.
        """
        return "https://api.example.com"

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            self.session = aiohttp.ClientSession(timeout=timeout)
        return self.session

    async def _get_json(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Issue one GET request and decode its JSON body."""
        session = await self._ensure_session()
        url = f"{self.get_base_url()}{path}"
        request_headers = {"User-Agent": self.user_agent}
        if headers:
            request_headers.update(headers)

        async with session.get(url, params=params, headers=request_headers, proxy=self.proxy.proxy_url) as resp:
            if resp.status != 200:
                raise RemoteRequestError(
                    f"{self.kind} request {path} failed: HTTP {resp.status}",
                    status=resp.status,
                )
            return await resp.json(content_type=None)

    def check_credential(self, credential: Credential | None) -> Credential:
        if credential is None or not credential.is_complete(self.requires_passphrase):
            raise MissingCredentialsError(f"{self.display_name} API credentials not set")
        return credential

    @property
    def requires_passphrase(self) -> bool:
        return False

    @property
    def display_name(self) -> str:
        return self.kind

    async def get_balance(self, label: str, credential: Credential | None) -> ExchangeBalanceReport:
        """Fetch account balances and value them in USD."""
        try:
            credential = self.check_credential(credential)
            balances, total_usd = await self._fetch_balances(credential)
        except Exception as e:
            logger.warning("Error fetching %s balance: %s", label, e)
            return ExchangeBalanceReport.failed(label, str(e) or type(e).__name__)

        logger.debug("%s: %d assets, %.2f USD", label, len(balances), total_usd)
        return ExchangeBalanceReport(exchange=label, balances=balances, total_usd=total_usd)

    @abstractmethod
    async def _fetch_balances(self, credential: Credential) -> tuple[list[AssetBalance], float]:
        """Fetch non-zero balances and their summed USD value."""
        ...

    async def close(self) -> None:
        """Close connections."""
        if self.session:
            await self.session.close()
            self.session = None
