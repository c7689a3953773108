"""Tests for exchange adapters with mocked HTTP responses."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import create_async_response, mock_session
from moony.credentials import Credential
from moony.exchanges.binance import BinanceClient
from moony.exchanges.bybit import BybitClient
from moony.exchanges.okx import OKXClient
from moony.exchanges.protocol import AssetBalance, ExchangeBalanceReport


def _assert_invariants(report: ExchangeBalanceReport):
    for balance in report.balances:
        assert balance.total > 0
        assert balance.total == pytest.approx(balance.free + balance.locked)
        assert balance.free >= 0
        assert balance.locked >= 0


class TestAssetBalance:
    def test_total_is_free_plus_locked(self):
        balance = AssetBalance("BTC", 0.5, 0.1)
        assert balance.total == pytest.approx(0.6)

    def test_from_total_with_locked(self):
        balance = AssetBalance.from_total("BTC", 1.0, locked=0.25)
        assert balance.free == pytest.approx(0.75)
        assert balance.locked == pytest.approx(0.25)

    def test_from_total_clamps_free_above_total(self):
        balance = AssetBalance.from_total("USDT", 10.0, free=12.0)
        assert balance.free == 10.0
        assert balance.locked == 0.0

    def test_failed_report_is_empty(self):
        report = ExchangeBalanceReport.failed("OKX 1", "boom")
        assert report.error == "boom"
        assert report.balances == []
        assert report.total_usd == 0
        assert not report.ok


class TestBybitAdapter:
    """Tests for Bybit adapter."""

    @pytest.mark.asyncio
    async def test_get_balance(self, credential, sample_bybit_response):
        client = BybitClient()
        session = mock_session(create_async_response(200, sample_bybit_response))
        client._ensure_session = AsyncMock(return_value=session)

        report = await client.get_balance("Bybit", credential)

        assert report.error is None
        assert report.exchange == "Bybit"
        assert [b.asset for b in report.balances] == ["BTC", "USDT"]
        assert report.balances[0].locked == pytest.approx(0.1)
        assert report.balances[0].free == pytest.approx(0.4)
        assert report.total_usd == pytest.approx(31000)
        _assert_invariants(report)

    @pytest.mark.asyncio
    async def test_signed_headers(self, credential, sample_bybit_response):
        client = BybitClient(recv_window_ms=7000)
        session = mock_session(create_async_response(200, sample_bybit_response))
        client._ensure_session = AsyncMock(return_value=session)

        await client.get_balance("Bybit", credential)

        _, kwargs = session.get.call_args
        headers = kwargs["headers"]
        assert headers["X-BAPI-API-KEY"] == credential.api_key.get_secret_value()
        assert headers["X-BAPI-RECV-WINDOW"] == "7000"
        assert len(headers["X-BAPI-SIGN"]) == 64
        assert kwargs["params"] == {"accountType": "UNIFIED"}

    @pytest.mark.asyncio
    async def test_missing_usd_value_uses_stable_parity(self, credential):
        client = BybitClient()
        payload = {
            "retCode": 0,
            "result": {"list": [{"coin": [
                {"coin": "USDC", "walletBalance": "25", "locked": ""},
                {"coin": "SOL", "walletBalance": "3"},
            ]}]},
        }
        client._ensure_session = AsyncMock(return_value=mock_session(create_async_response(200, payload)))

        report = await client.get_balance("Bybit", credential)

        assert report.total_usd == pytest.approx(25)
        assert [b.asset for b in report.balances] == ["USDC", "SOL"]

    @pytest.mark.asyncio
    async def test_non_finite_balance_is_dropped(self, credential):
        client = BybitClient()
        payload = {
            "retCode": 0,
            "result": {"list": [{"coin": [
                {"coin": "BTC", "walletBalance": "NaN", "usdValue": "5"},
                {"coin": "ETH", "walletBalance": "1", "locked": "inf", "usdValue": "Infinity"},
            ]}]},
        }
        client._ensure_session = AsyncMock(return_value=mock_session(create_async_response(200, payload)))

        report = await client.get_balance("Bybit", credential)

        assert [b.asset for b in report.balances] == ["ETH"]
        assert report.balances[0].locked == 0
        assert report.total_usd == 0
        _assert_invariants(report)

    @pytest.mark.asyncio
    async def test_error_ret_code(self, credential):
        client = BybitClient()
        payload = {"retCode": 10003, "retMsg": "API key is invalid.", "result": {}}
        client._ensure_session = AsyncMock(return_value=mock_session(create_async_response(200, payload)))

        report = await client.get_balance("Bybit", credential)

        assert "API key is invalid" in report.error
        assert report.balances == []
        assert report.total_usd == 0

    @pytest.mark.asyncio
    async def test_missing_credentials_short_circuits(self):
        client = BybitClient()
        client._ensure_session = AsyncMock()

        report = await client.get_balance("Bybit", None)

        assert report.error == "Bybit API credentials not set"
        client._ensure_session.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_secret_is_missing(self, api_key):
        client = BybitClient()
        client._ensure_session = AsyncMock()

        report = await client.get_balance("Bybit", Credential(api_key=api_key, api_secret=""))

        assert report.error == "Bybit API credentials not set"
        client._ensure_session.assert_not_called()

    def test_sandbox_url(self):
        assert "testnet" in BybitClient(sandbox=True).get_base_url()


class TestBinanceAdapter:
    """Tests for Binance adapter."""

    @pytest.mark.asyncio
    async def test_get_balance(self, credential, sample_binance_account, sample_binance_prices):
        client = BinanceClient()
        session = mock_session(
            create_async_response(200, sample_binance_account),
            create_async_response(200, sample_binance_prices),
        )
        client._ensure_session = AsyncMock(return_value=session)

        report = await client.get_balance("Binance", credential)

        assert report.error is None
        assert [b.asset for b in report.balances] == ["BTC", "ETH", "USDT"]
        assert report.balances[0].total == pytest.approx(0.6)
        # 0.6 BTC * 50000 + 12 ETH * 2000 + 1000 USDT
        assert report.total_usd == pytest.approx(30000 + 24000 + 1000)
        assert session.get.call_count == 2
        _assert_invariants(report)

    @pytest.mark.asyncio
    async def test_signed_query(self, credential, sample_binance_account, sample_binance_prices):
        client = BinanceClient()
        session = mock_session(
            create_async_response(200, sample_binance_account),
            create_async_response(200, sample_binance_prices),
        )
        client._ensure_session = AsyncMock(return_value=session)

        await client.get_balance("Binance", credential)

        first_call = session.get.call_args_list[0]
        params = first_call.kwargs["params"]
        assert list(params)[:2] == ["timestamp", "recvWindow"]
        assert len(params["signature"]) == 64
        assert first_call.kwargs["headers"]["X-MBX-APIKEY"] == credential.api_key.get_secret_value()
        assert first_call.args[0].endswith("/api/v3/account")

    @pytest.mark.asyncio
    async def test_stable_only_skips_price_lookup(self, credential):
        client = BinanceClient()
        account = {"balances": [{"asset": "USDT", "free": "50", "locked": "5"}]}
        session = mock_session(create_async_response(200, account))
        client._ensure_session = AsyncMock(return_value=session)

        report = await client.get_balance("Binance", credential)

        assert report.total_usd == pytest.approx(55)
        assert session.get.call_count == 1

    @pytest.mark.asyncio
    async def test_unknown_price_counts_zero(self, credential):
        client = BinanceClient()
        account = {"balances": [{"asset": "XYZ", "free": "10", "locked": "0"}]}
        session = mock_session(
            create_async_response(200, account),
            create_async_response(200, [{"symbol": "BTCUSDT", "price": "50000"}]),
        )
        client._ensure_session = AsyncMock(return_value=session)

        report = await client.get_balance("Binance", credential)

        assert report.error is None
        assert [b.asset for b in report.balances] == ["XYZ"]
        assert report.total_usd == 0

    @pytest.mark.asyncio
    async def test_malformed_fields_are_zero_filled(self, credential):
        client = BinanceClient()
        account = {"balances": [
            {"asset": "USDT", "free": "abc", "locked": None},
            {"asset": "USDC", "free": "3"},
            "garbage",
        ]}
        client._ensure_session = AsyncMock(return_value=mock_session(create_async_response(200, account)))

        report = await client.get_balance("Binance", credential)

        assert report.error is None
        assert [b.asset for b in report.balances] == ["USDC"]
        assert report.total_usd == pytest.approx(3)

    @pytest.mark.asyncio
    async def test_http_error(self, credential):
        client = BinanceClient()
        client._ensure_session = AsyncMock(return_value=mock_session(create_async_response(401, {"msg": "bad"})))

        report = await client.get_balance("Binance", credential)

        assert "HTTP 401" in report.error
        assert report.balances == []
        assert report.total_usd == 0

    @pytest.mark.asyncio
    async def test_timeout_becomes_error_report(self, credential):
        client = BinanceClient()
        session = MagicMock()
        session.get = MagicMock(side_effect=asyncio.TimeoutError())
        client._ensure_session = AsyncMock(return_value=session)

        report = await client.get_balance("Binance", credential)

        assert report.error == "TimeoutError"
        assert report.total_usd == 0


class TestOKXAdapter:
    """Tests for OKX adapter."""

    @pytest.mark.asyncio
    async def test_get_balance(self, okx_credential, sample_okx_response):
        client = OKXClient()
        session = mock_session(create_async_response(200, sample_okx_response))
        client._ensure_session = AsyncMock(return_value=session)

        report = await client.get_balance("OKX 1", okx_credential)

        assert report.error is None
        assert report.exchange == "OKX 1"
        assert [b.asset for b in report.balances] == ["BTC", "USDT"]
        assert report.balances[0].free == pytest.approx(0.008)
        assert report.balances[0].locked == pytest.approx(0.002)
        assert report.total_usd == pytest.approx(1000)
        _assert_invariants(report)

    @pytest.mark.asyncio
    async def test_signed_headers(self, okx_credential, sample_okx_response):
        client = OKXClient()
        session = mock_session(create_async_response(200, sample_okx_response))
        client._ensure_session = AsyncMock(return_value=session)

        await client.get_balance("OKX 1", okx_credential)

        _, kwargs = session.get.call_args
        headers = kwargs["headers"]
        assert headers["OK-ACCESS-PASSPHRASE"] == okx_credential.passphrase.get_secret_value()
        assert headers["OK-ACCESS-TIMESTAMP"].endswith("Z")
        assert "x-simulated-trading" not in headers

    @pytest.mark.asyncio
    async def test_requires_passphrase(self, credential):
        client = OKXClient()
        client._ensure_session = AsyncMock()

        report = await client.get_balance("OKX 2", credential)

        assert report.error == "OKX API credentials not set"
        client._ensure_session.assert_not_called()

    @pytest.mark.asyncio
    async def test_error_code(self, okx_credential):
        client = OKXClient()
        payload = {"code": "50113", "msg": "Invalid Sign", "data": []}
        client._ensure_session = AsyncMock(return_value=mock_session(create_async_response(200, payload)))

        report = await client.get_balance("OKX 1", okx_credential)

        assert report.error == "OKX error 50113: Invalid Sign"
        assert report.balances == []

    @pytest.mark.asyncio
    async def test_empty_data(self, okx_credential):
        client = OKXClient()
        client._ensure_session = AsyncMock(
            return_value=mock_session(create_async_response(200, {"code": "0", "data": []}))
        )

        report = await client.get_balance("OKX 1", okx_credential)

        assert report.error is None
        assert report.balances == []
        assert report.total_usd == 0

    @pytest.mark.asyncio
    async def test_non_finite_usd_value_is_zero_filled(self, okx_credential):
        payload = {"code": "0", "data": [{"details": [
            {"ccy": "BTC", "cashBal": "0.01", "availBal": "nan", "eqUsd": "NaN"},
            {"ccy": "USDT", "cashBal": "200", "availBal": "200", "eqUsd": "200"},
        ]}]}
        client = OKXClient()
        client._ensure_session = AsyncMock(return_value=mock_session(create_async_response(200, payload)))

        report = await client.get_balance("OKX 1", okx_credential)

        assert report.total_usd == pytest.approx(200)
        assert report.balances[0].free == 0
        assert report.balances[0].locked == pytest.approx(0.01)
        _assert_invariants(report)

    def test_sandbox_header(self, okx_credential):
        client = OKXClient(sandbox=True)
        headers = client._get_headers(okx_credential, "2024-01-01T00:00:00.000Z", "sig")
        assert headers["x-simulated-trading"] == "1"


@pytest.mark.asyncio
async def test_close_closes_session():
    client = OKXClient()
    session = MagicMock()
    session.close = AsyncMock()
    client.session = session

    await client.close()

    session.close.assert_awaited_once()
    assert client.session is None
