# src/pricewatch/alerts/cycle.py
from __future__ import annotations

import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Optional

import structlog

from pricewatch.alerts.errors import FetchError, MissingPriceData, NotifyError, PersistError
from pricewatch.alerts.evaluator import DEFAULT_WITHHOLD_SECONDS, Outcome, evaluate
from pricewatch.alerts.formatting import format_batch, format_subject
from pricewatch.alerts.rules import AlertRule
from pricewatch.alerts.state import RuleSet
from pricewatch.utils.types import Notifier, PriceSource, StateStore

log = structlog.get_logger("cycle")


@dataclass(slots=True)
class FiredAlert:
    rule: AlertRule
    price: Decimal
    message: str


@dataclass(slots=True)
class CycleReport:
    started_at: int
    fired: list[FiredAlert] = field(default_factory=list)
    reset: list[AlertRule] = field(default_factory=list)
    suppressed: list[AlertRule] = field(default_factory=list)
    skipped: list[MissingPriceData] = field(default_factory=list)
    notified: bool = False
    notify_error: Optional[NotifyError] = None

    @property
    def ok(self) -> bool:
        return self.notify_error is None


@dataclass(slots=True)
class CycleConfig:
    withhold_seconds: int = DEFAULT_WITHHOLD_SECONDS
    tz_name: str = "UTC"


class CycleOrchestrator:
    """
    Runs exactly one poll cycle per call: fetch → evaluate all → notify once → persist.

    Inputs:
      - source:   PriceSource  (one batched fetch per cycle)
      - notifier: Notifier     (at most one send per cycle)
      - store:    StateStore   (whole-set save after every fetched cycle)
      - clock:    Callable[[], float] epoch seconds, injectable for tests

    Does not loop or sleep; the driver in pricewatch.main owns scheduling.
    """
    def __init__(
        self,
        source: PriceSource,
        notifier: Notifier,
        store: StateStore,
        cfg: Optional[CycleConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.source = source
        self.notifier = notifier
        self.store = store
        self.cfg = cfg or CycleConfig()
        self.clock = clock

    async def run_cycle(self, rules: RuleSet) -> CycleReport:
        now = int(self.clock())
        report = CycleReport(started_at=now)
        symbols = rules.symbols()

        # 1) fetch; a total failure leaves every rule untouched
        try:
            prices = await self.source.fetch_prices(symbols)
        except FetchError as e:
            log.error("price_fetch_failed", err=str(e), symbols=len(symbols))
            raise

        # 2-3) evaluate rules that got a price
        for rule in rules:
            price = prices.get(rule.symbol)
            if price is None:
                gap = MissingPriceData(rule.symbol)
                report.skipped.append(gap)
                log.warning("price_missing", symbol=rule.symbol, rule=rule.key)
                continue
            self._apply(rules, rule, price, now, report)

        # 4) one aggregated notification
        if report.fired:
            await self._notify(report)

        # 5) persist regardless of notifier outcome
        try:
            await self.store.save(rules)
        except PersistError as e:
            log.error("state_persist_failed", err=str(e), fired=len(report.fired))
            raise

        log.info(
            "cycle_done",
            rules=len(rules),
            fired=len(report.fired),
            reset=len(report.reset),
            suppressed=len(report.suppressed),
            skipped=len(report.skipped),
            notified=report.notified,
        )
        return report

    def _apply(self, rules: RuleSet, rule: AlertRule, price: Decimal, now: int, report: CycleReport) -> None:
        ev = evaluate(rule, price, now, self.cfg.withhold_seconds)
        if ev.outcome is Outcome.FIRE:
            rules.apply(rule, ev.new_last_alerted_at)
            report.fired.append(FiredAlert(rule=rule, price=price, message=ev.message or ""))
            log.info("alert_fired", symbol=rule.symbol, rule=rule.key, price=str(price))
        elif ev.outcome is Outcome.RESET:
            rules.apply(rule, None)
            report.reset.append(rule)
            log.info("alert_reset", symbol=rule.symbol, rule=rule.key, price=str(price))
        elif ev.outcome is Outcome.SUPPRESSED:
            report.suppressed.append(rule)
            log.debug("alert_suppressed", symbol=rule.symbol, rule=rule.key, price=str(price),
                      last_alerted_at=rule.last_alerted_at)
        else:
            log.debug("condition_not_met", symbol=rule.symbol, rule=rule.key, price=str(price))

    async def _notify(self, report: CycleReport) -> None:
        # rendering sits inside the guard too: whatever goes wrong here, the cycle still persists
        try:
            subject = format_subject([f.rule for f in report.fired])
            body = format_batch([f.message for f in report.fired], report.started_at, self.cfg.tz_name)
            await self.notifier.send(subject, body)
            report.notified = True
        except NotifyError as e:
            # state is still saved as fired: a delivery outage drops this alert, it is not resent
            report.notify_error = e
            log.error("notify_failed", err=str(e), fired=len(report.fired))
        except Exception as e:
            report.notify_error = NotifyError(f"{type(e).__name__}: {e}")
            log.exception("notify_crashed", err=str(e), fired=len(report.fired))
