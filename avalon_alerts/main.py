from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
from pathlib import Path

import httpx
import structlog

from avalon_alerts.config import AlertsConfig, DEFAULT_CONFIG_PATH, load_config
from avalon_alerts.leader_api import LeaderApiClient
from avalon_alerts.models import PersistedState
from avalon_alerts.notifications.telegram import TelegramConfig, TelegramNotifier
from avalon_alerts.scheduler import JobScheduler
from avalon_alerts.store import StateStore
from avalon_alerts.watchers import EndpointWatcher, LeaderWatcher


logger = structlog.get_logger(__name__)

USER_AGENT = "Avalon Alerts Bot"


def configure_logging(level_name: str) -> None:
    level = getattr(logging, str(level_name).upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    # Avoid leaking secrets (Telegram token is embedded in the Telegram API URL).
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def build_telegram_config(config: AlertsConfig) -> TelegramConfig | None:
    tg = config.telegram
    if not tg.enabled:
        return None
    return TelegramConfig(
        bot_token=tg.bot_token.strip(),
        chat_id=tg.chat_id.strip(),
        api_url=tg.api_url,
        parse_mode=tg.parse_mode,
        timeout_seconds=tg.timeout_seconds,
    )


def build_watchers(
    config: AlertsConfig,
    *,
    state: PersistedState,
    store: StateStore,
    http_client: httpx.AsyncClient,
    notifier: TelegramNotifier,
    scheduler: JobScheduler | None,
) -> tuple[LeaderWatcher, EndpointWatcher]:
    leader_watcher = LeaderWatcher(
        state,
        store,
        LeaderApiClient(http_client, config.apis),
        notifier,
        config.watcher.schedule,
        retries=config.watcher.retries,
        retry_delay_seconds=config.intervals.retry,
        scheduler=scheduler,
    )
    endpoint_watcher = EndpointWatcher(
        state,
        store,
        http_client,
        notifier,
        config.apiwatcher.nodes,
        config.apiwatcher.schedule,
        probe_path=config.apiwatcher.probe_path,
        probe_timeout_seconds=config.apiwatcher.probe_timeout_seconds,
        probe_concurrency=config.apiwatcher.probe_concurrency,
        tolerance_seconds=config.apiwatcher.tolerance_seconds,
    )
    return leader_watcher, endpoint_watcher


def register_jobs(
    scheduler: JobScheduler,
    config: AlertsConfig,
    leader_watcher: LeaderWatcher,
    endpoint_watcher: EndpointWatcher,
) -> None:
    """Both watches run once right away, then on their configured intervals."""
    scheduler.add_interval_job(
        "leader_watch",
        leader_watcher.run_cycle,
        seconds=config.intervals.watcher,
        run_immediately=True,
        description="Leader watch",
    )
    if config.apiwatcher.nodes:
        scheduler.add_interval_job(
            "endpoint_watch",
            endpoint_watcher.run_cycle,
            seconds=config.intervals.apiwatcher,
            run_immediately=True,
            description="API node watch",
        )
    else:
        logger.info("No API nodes configured; endpoint watch disabled")


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            signal.signal(sig, lambda *_: stop_event.set())


async def run(config: AlertsConfig, once: bool) -> int:
    store = StateStore(Path(config.db))
    state = store.load()

    async with httpx.AsyncClient(headers={"User-Agent": USER_AGENT}) as http_client:
        notifier = TelegramNotifier(http_client, build_telegram_config(config))
        if config.announce_startup:
            await notifier.notify("Avalon alerts bot starting...")

        if once:
            leader_watcher, endpoint_watcher = build_watchers(
                config, state=state, store=store, http_client=http_client, notifier=notifier, scheduler=None
            )
            await leader_watcher.run_once()
            if config.apiwatcher.nodes:
                await endpoint_watcher.run_cycle()
            return 0

        scheduler = JobScheduler()
        leader_watcher, endpoint_watcher = build_watchers(
            config, state=state, store=store, http_client=http_client, notifier=notifier, scheduler=scheduler
        )
        register_jobs(scheduler, config, leader_watcher, endpoint_watcher)

        stop_event = asyncio.Event()
        _install_signal_handlers(stop_event)
        scheduler.start()
        logger.info("Bot running", jobs=scheduler.list_jobs())
        try:
            await stop_event.wait()
        finally:
            scheduler.stop()
            logger.info("Shutdown complete")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Avalon leader and API node alerts bot")
    parser.add_argument(
        "--config",
        default=os.getenv("AVALON_ALERTS_CONFIG", DEFAULT_CONFIG_PATH),
        help="Path to YAML config",
    )
    parser.add_argument("--once", action="store_true", help="Run one leader and one API node cycle and exit")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (INFO, WARNING, ...); overrides the config file",
    )
    args = parser.parse_args()

    config = load_config(args.config)
    configure_logging(args.log_level or config.log_level)

    return asyncio.run(run(config, once=bool(args.once)))


if __name__ == "__main__":
    raise SystemExit(main())
