"""Concurrent balance fetch across every configured account."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from .credentials import CredentialStore
from .exchanges.factory import create_exchange_client
from .exchanges.kinds import ExchangeKind
from .exchanges.protocol import AssetBalance, ExchangeBalanceReport, ExchangeClient
from .settings import AccountSettings, CashSettings, Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CashEntry:
    """Fixed manual ledger entry reported alongside the exchanges."""

    label: str
    asset: str
    amount_usd: float

    def report(self) -> ExchangeBalanceReport:
        balances = [AssetBalance(self.asset, self.amount_usd, 0.0)] if self.amount_usd > 0 else []
        return ExchangeBalanceReport(exchange=self.label, balances=balances, total_usd=self.amount_usd)

    @classmethod
    def from_settings(cls, cash: CashSettings) -> "CashEntry":
        return cls(label=cash.label, asset=cash.asset, amount_usd=cash.amount_usd)


class BalanceAggregator:
    """Fans out to every account and joins the results in declared order."""

    def __init__(
        self,
        accounts: list[AccountSettings],
        credentials: CredentialStore,
        clients: dict[tuple[ExchangeKind, bool], ExchangeClient],
        cash: CashEntry,
    ) -> None:
        self.accounts = list(accounts)
        self.credentials = credentials
        self.clients = clients
        self.cash = cash

    @classmethod
    def from_settings(cls, settings: Settings, credentials: CredentialStore) -> "BalanceAggregator":
        proxy = None
        if settings.proxy.enabled and settings.proxy.url:
            proxy = {
                "url": settings.proxy.url,
                "username": settings.proxy.username,
                "password": settings.proxy.password.get_secret_value() if settings.proxy.password else None,
            }

        clients: dict[tuple[ExchangeKind, bool], ExchangeClient] = {}
        for account in settings.enabled_accounts:
            key = (account.kind, account.sandbox)
            if key in clients:
                continue
            clients[key] = create_exchange_client(
                account.kind,
                sandbox=account.sandbox,
                proxy=proxy,
                timeout_seconds=settings.http.timeout_seconds,
                recv_window_ms=settings.http.recv_window_ms,
                user_agent=settings.http.user_agent,
            )
            logger.debug("Initialized %s client (sandbox=%s)", account.kind.value, account.sandbox)

        return cls(settings.enabled_accounts, credentials, clients, CashEntry.from_settings(settings.cash))

    @property
    def labels(self) -> list[str]:
        return [a.label for a in self.accounts] + [self.cash.label]

    async def _fetch_account(self, account: AccountSettings) -> ExchangeBalanceReport:
        client = self.clients.get((account.kind, account.sandbox))
        if client is None:
            return ExchangeBalanceReport.failed(account.label, f"No client for {account.kind.value}")
        credential = self.credentials.get(account.kind, account.account_index)
        try:
            return await client.get_balance(account.label, credential)
        except Exception as e:
            # a raising client must not cancel its siblings
            logger.error("Unhandled error from %s client: %s", account.kind.value, e, exc_info=True)
            return ExchangeBalanceReport.failed(account.label, str(e) or type(e).__name__)

    async def get_all_balances(self) -> list[ExchangeBalanceReport]:
        """Fetch every account concurrently, then append the cash entry.

        Output order follows the declared accounts regardless of completion
        order; one failing account never affects the others.
        """
        async with asyncio.TaskGroup() as tg:
            tasks = [tg.create_task(self._fetch_account(account)) for account in self.accounts]

        reports = [task.result() for task in tasks]
        reports.append(self.cash.report())

        failed = [r.exchange for r in reports if not r.ok]
        if failed:
            logger.info("Fetched %d reports, %d failed: %s", len(reports), len(failed), ", ".join(failed))
        else:
            logger.info("Fetched %d reports", len(reports))
        return reports

    async def close(self) -> None:
        for client in self.clients.values():
            await client.close()


def total_usd(reports: list[ExchangeBalanceReport]) -> float:
    return sum(r.total_usd for r in reports)
