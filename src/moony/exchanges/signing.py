"""Request signing for each supported exchange.

All functions are pure: identical inputs give identical signatures and
nothing is logged or retained.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
from datetime import datetime, timezone
from typing import Any, Iterable


def hmac_sha256(secret: str, message: str) -> bytes:
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).digest()


def build_query(params: Iterable[tuple[str, Any]] | dict[str, Any]) -> str:
    """Join parameters as ``k=v&k=v`` in the given order, without re-sorting."""
    items = params.items() if isinstance(params, dict) else params
    return "&".join(f"{k}={v}" for k, v in items)


def sign_bybit(secret: str, timestamp: str, api_key: str, recv_window: int | str, query: str) -> str:
    """Bybit v5: hex HMAC-SHA256 of ``timestamp + apiKey + recvWindow + queryString``."""
    message = f"{timestamp}{api_key}{recv_window}{query}"
    return hmac_sha256(secret, message).hex()


def sign_binance(secret: str, query: str) -> str:
    """Binance: hex HMAC-SHA256 of the query string, which already holds ``timestamp``."""
    return hmac_sha256(secret, query).hex()


def sign_okx(secret: str, timestamp: str, method: str, path: str, body: str = "") -> str:
    """OKX v5: base64 HMAC-SHA256 of ``timestamp + METHOD + requestPath + body``."""
    message = f"{timestamp}{method.upper()}{path}{body}"
    return base64.b64encode(hmac_sha256(secret, message)).decode()


def millis_timestamp(now: datetime | None = None) -> int:
    now = now or datetime.now(timezone.utc)
    return int(now.timestamp() * 1000)


def iso_timestamp(now: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. ``2024-01-01T00:00:00.000Z``."""
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"
