# src/pricewatch/main.py
import os
import asyncio
import signal
import sys
import time
from datetime import datetime, timezone
from typing import Optional

import structlog
from dotenv import load_dotenv

from pricewatch.config import Settings, load_settings
from pricewatch.alerts.cycle import CycleConfig, CycleOrchestrator
from pricewatch.alerts.errors import ConfigError, FetchError, PersistError
from pricewatch.alerts.notifiers import ConsoleNotifier, FanoutNotifier
from pricewatch.alerts.state import RuleSet
from pricewatch.ingest.binance import BinancePriceSource
from pricewatch.notify.email import EmailNotifier
from pricewatch.notify.telegram import TelegramNotifier
from pricewatch.utils.logging import configure_logging
from pricewatch.utils.types import Notifier, StateStore

# State stores
from storage.json_file import JsonFileStateStore
from storage.redis_state import RedisStateStore

load_dotenv()
log = structlog.get_logger()


# ---------------------------
# Poll driver
# ---------------------------

async def run_forever(
    orchestrator: CycleOrchestrator,
    rules: RuleSet,
    interval_s: float,
    stop: asyncio.Event,
    max_cycles: Optional[int] = None,
) -> int:
    """
    Run cycles back to back with `interval_s` between them until `stop` is set.
    The stop event is only looked at between cycles, so a cycle is never cut
    off halfway through writing state. Returns the number of cycles run.
    """
    cycles = 0
    while not stop.is_set():
        try:
            report = await orchestrator.run_cycle(rules)
        except FetchError as e:
            # nothing evaluated, nothing written; next cycle retries on its own
            log.warning("cycle_aborted", err=str(e))
        except PersistError as e:
            log.error("cycle_state_not_saved", err=str(e), alerted=len(rules.alerted()))
        else:
            if not report.ok:
                log.warning("cycle_notify_failed", err=str(report.notify_error), fired=len(report.fired))
        cycles += 1
        if max_cycles is not None and cycles >= max_cycles:
            break
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval_s)
        except asyncio.TimeoutError:
            pass
    log.info("watcher_stopped", cycles=cycles)
    return cycles


# ---------------------------
# Wiring
# ---------------------------

def build_store(settings: Settings) -> StateStore:
    if settings.state.backend == "redis":
        return RedisStateStore.from_url(settings.state.redis_url, key=settings.state.redis_key, seed=settings.rules)
    return JsonFileStateStore(settings.config_path)


def build_notifiers(settings: Settings) -> list:
    out: list = []
    if settings.email is not None:
        out.append(EmailNotifier(settings.email))
        log.info("email_enabled", to=len(settings.email.to_emails))
    if settings.telegram is not None:
        out.append(TelegramNotifier(settings.telegram))
        log.info("telegram_enabled")
    if not out:
        log.info("no_delivery_configured_using_console")
        out.append(ConsoleNotifier())
    return out


def combine(notifiers: list) -> Notifier:
    if len(notifiers) == 1:
        return notifiers[0]
    return FanoutNotifier(notifiers)


def log_startup(rules: RuleSet, settings: Settings) -> None:
    log.info(
        "watcher_started",
        rules=len(rules),
        symbols=len(rules.symbols()),
        interval_s=settings.check_interval,
        withhold_s=settings.withhold_seconds,
    )
    for r in rules.alerted():
        log.info(
            "rule_in_alerted_state",
            rule=r.key,
            since=datetime.fromtimestamp(r.last_alerted_at, tz=timezone.utc).isoformat(),
            for_s=max(0, int(time.time()) - r.last_alerted_at),
        )


# ---------------------------
# Main
# ---------------------------

async def main() -> int:
    configure_logging()
    try:
        settings = load_settings()
    except ConfigError as e:
        log.error("config_invalid", err=str(e))
        return 2

    store = build_store(settings)
    try:
        rules = await store.load()
    except (ConfigError, PersistError) as e:
        log.error("state_load_failed", err=str(e))
        return 2

    source = BinancePriceSource(settings.binance)
    notifiers = build_notifiers(settings)
    orchestrator = CycleOrchestrator(
        source=source,
        notifier=combine(notifiers),
        store=store,
        cfg=CycleConfig(withhold_seconds=settings.withhold_seconds, tz_name=settings.tz_name),
    )

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # e.g. Windows event loops
            pass

    # PRICEWATCH_ONCE=1 → a single cycle (cron-style)
    once = os.getenv("PRICEWATCH_ONCE", "0").lower() in ("1", "true", "yes")

    log_startup(rules, settings)
    await source.start()
    try:
        await run_forever(orchestrator, rules, settings.check_interval, stop, max_cycles=1 if once else None)
    finally:
        # graceful shutdown to avoid unclosed sessions
        await source.stop()
        for n in notifiers:
            if isinstance(n, TelegramNotifier):
                await n.stop()
        if isinstance(store, RedisStateStore):
            await store.close()
    return 0


def cli() -> None:
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    cli()
