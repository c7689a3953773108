from __future__ import annotations

import asyncio
import logging

from .aggregator import total_usd
from .di import AppContainer
from .errors import HistoryStoreError
from .metrics import get_metrics

logger = logging.getLogger(__name__)


async def run_once(container: AppContainer) -> None:
    """Fetch all balances, record a snapshot and log the rolling metrics."""
    reports = await container.aggregator.get_all_balances()
    total = total_usd(reports)

    for report in reports:
        if report.error:
            logger.warning("%s: %s", report.exchange, report.error)

    try:
        history = await asyncio.to_thread(container.history.save_reports, reports)
    except HistoryStoreError as e:
        logger.error("Snapshot not recorded: %s", e)
        return

    metrics = get_metrics(history)
    if metrics is None:
        logger.info("total=%.2f USD", total)
        return

    logger.info(
        "total=%.2f USD 24h=%+.2f (%+.2f%%) 7d=%+.2f (%+.2f%%) 30d=%+.2f (%+.2f%%)",
        total,
        metrics.daily.change,
        metrics.daily.percentage,
        metrics.weekly.change,
        metrics.weekly.percentage,
        metrics.monthly.change,
        metrics.monthly.percentage,
    )


async def run(container: AppContainer) -> None:
    logger.info("runtime starting")
    logger.debug("settings=%s", container.settings.redacted())

    interval = container.settings.watch.interval_seconds
    try:
        while not container.shutdown.is_set():
            await run_once(container)
            try:
                await asyncio.wait_for(container.shutdown.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
    finally:
        await container.aclose()

    logger.info("runtime stopped")
