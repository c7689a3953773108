from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config import load_settings
from .di import AppContainer, build_container
from .logging import configure_logging
from .runtime import run, run_once
from .settings import StorageSettings, WatchSettings

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main entry point supporting both CLI commands and the background watcher.

    - `moony watch`: poll balances and record snapshots periodically
    - `moony <typer-subcommand>`: run CLI mode (e.g. `moony balances`)
    """
    if argv is None:
        argv = sys.argv[1:]

    if argv and argv[0] == "watch":
        return _run_watch_mode(argv[1:])

    return _run_cli_mode(argv)


def _run_watch_mode(argv: list[str]) -> int:
    """Run the periodic snapshot loop until interrupted."""
    parser = argparse.ArgumentParser(
        prog="moony watch", description="Poll exchange balances and record snapshots"
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to YAML config file (default: MOONY_CONFIG or ./config.yml)",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between snapshots (overrides watch.interval_seconds)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Record a single snapshot and exit",
    )

    args = parser.parse_args(argv)
    settings = load_settings(args.config)
    if args.interval is not None:
        if args.interval <= 0:
            parser.error("--interval must be positive")
        settings = settings.model_copy(update={"watch": WatchSettings(interval_seconds=args.interval)})

    configure_logging(settings.storage.data_dir / "logs")
    container = build_container(settings)

    logger.info("moony watch booting (interval=%ss)", settings.watch.interval_seconds)
    try:
        asyncio.run(_watch(container, once=args.once))
    except KeyboardInterrupt:
        logger.info("interrupted")
    logger.info("moony watch exit")

    return 0


async def _watch(container: AppContainer, *, once: bool) -> None:
    if not once:
        await run(container)
        return
    try:
        await run_once(container)
    finally:
        await container.aclose()


def _run_cli_mode(argv: list[str]) -> int:
    """Run in CLI mode using Typer."""
    try:
        configure_logging(StorageSettings().data_dir / "logs")

        from .cli import run_cli
        run_cli(argv)
        return 0
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 0
    except Exception as e:
        logger.error("CLI error: %s", e, exc_info=True)
        return 1
