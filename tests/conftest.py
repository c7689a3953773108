"""Pytest configuration and fixtures."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from moony.credentials import Credential, CredentialStore
from moony.errors import DecryptionError
from moony.exchanges.kinds import ExchangeKind


def create_async_response(status=200, json_data=None):
    """Create a mock async response usable as ``async with session.get(...)``."""
    resp = AsyncMock()
    resp.status = status
    resp.json = AsyncMock(return_value=json_data if json_data is not None else {})
    resp.__aenter__ = AsyncMock(return_value=resp)
    resp.__aexit__ = AsyncMock(return_value=None)
    return resp


def mock_session(*responses):
    """Session whose ``get`` returns the given responses in order."""
    session = MagicMock()
    session.get = MagicMock(side_effect=list(responses))
    return session


class MemoryBlobStore:
    """In-memory blob store for credential tests."""

    def __init__(self, data: bytes | None = None):
        self.data = data
        self.writes = 0
        self.deletes = 0

    def read(self):
        return self.data

    def write(self, data):
        self.writes += 1
        self.data = data

    def delete(self):
        self.deletes += 1
        self.data = None


class ReversingCipher:
    """Trivial reversible cipher so tests can inspect blobs without real encryption."""

    PREFIX = b"enc:"

    def encrypt(self, data):
        return self.PREFIX + data[::-1]

    def decrypt(self, token):
        if not token.startswith(self.PREFIX):
            raise DecryptionError("bad token")
        return token[len(self.PREFIX):][::-1]


@pytest.fixture
def api_key():
    """Test API key."""
    return "test_api_key_123456"


@pytest.fixture
def api_secret():
    """Test API secret."""
    return "test_api_secret_789012"


@pytest.fixture
def passphrase():
    """Test passphrase."""
    return "test_passphrase_345678"


@pytest.fixture
def credential(api_key, api_secret):
    return Credential(api_key=api_key, api_secret=api_secret)


@pytest.fixture
def okx_credential(api_key, api_secret, passphrase):
    return Credential(api_key=api_key, api_secret=api_secret, passphrase=passphrase)


@pytest.fixture
def blob_store():
    return MemoryBlobStore()


@pytest.fixture
def credential_store(blob_store):
    return CredentialStore(
        blob_store,
        ReversingCipher(),
        slots={ExchangeKind.BYBIT: 1, ExchangeKind.BINANCE: 1, ExchangeKind.OKX: 2},
    )


@pytest.fixture
def sample_bybit_response():
    return {
        "retCode": 0,
        "retMsg": "OK",
        "result": {
            "list": [
                {
                    "accountType": "UNIFIED",
                    "coin": [
                        {"coin": "BTC", "walletBalance": "0.5", "locked": "0.1", "usdValue": "30000"},
                        {"coin": "USDT", "walletBalance": "1000", "locked": "0", "usdValue": "1000"},
                        {"coin": "ETH", "walletBalance": "0", "locked": "0", "usdValue": "0"},
                    ],
                }
            ]
        },
    }


@pytest.fixture
def sample_binance_account():
    return {
        "balances": [
            {"asset": "BTC", "free": "0.5", "locked": "0.1"},
            {"asset": "ETH", "free": "10.0", "locked": "2.0"},
            {"asset": "USDT", "free": "1000.0", "locked": "0.0"},
            {"asset": "BNB", "free": "0.0", "locked": "0.0"},
        ]
    }


@pytest.fixture
def sample_binance_prices():
    return [
        {"symbol": "BTCUSDT", "price": "50000.00"},
        {"symbol": "ETHUSDT", "price": "2000.00"},
        {"symbol": "ETHBTC", "price": "0.04"},
    ]


@pytest.fixture
def sample_okx_response():
    return {
        "code": "0",
        "msg": "",
        "data": [
            {
                "totalEq": "1000",
                "details": [
                    {"ccy": "BTC", "cashBal": "0.01", "availBal": "0.008", "eqUsd": "600"},
                    {"ccy": "USDT", "cashBal": "400", "availBal": "400", "eqUsd": "400"},
                    {"ccy": "DOGE", "cashBal": "0", "availBal": "0", "eqUsd": "0"},
                ],
            }
        ],
    }
