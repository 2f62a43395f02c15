from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from pricewatch.alerts.formatting import format_alert_message
from pricewatch.alerts.rules import AlertRule

DEFAULT_WITHHOLD_SECONDS = 86_400


class Outcome(str, Enum):
    IDLE = "idle"              # not met, nothing to clear
    RESET = "reset"            # not met, was alerted → cleared
    FIRE = "fire"              # met, not alerted or cooldown expired
    SUPPRESSED = "suppressed"  # met, alerted and still cooling down


@dataclass(slots=True, frozen=True)
class Evaluation:
    outcome: Outcome
    new_last_alerted_at: Optional[int]
    message: Optional[str] = None

    @property
    def fired(self) -> bool:
        return self.outcome is Outcome.FIRE

    @property
    def changed(self) -> bool:
        return self.outcome in (Outcome.FIRE, Outcome.RESET)


def evaluate(
    rule: AlertRule,
    price: Decimal,
    now: int,
    cooldown_seconds: int = DEFAULT_WITHHOLD_SECONDS,
) -> Evaluation:
    """
    Decide the transition for one rule given the latest observed price.

    Four outcomes, nothing else:
      not met, no state          → IDLE        (no change)
      not met, alerted           → RESET       (last_alerted_at = None)
      met, no state or expired   → FIRE        (last_alerted_at = now, message)
      met, alerted, cooling down → SUPPRESSED  (no change)

    Cooldown is expired only when now - last_alerted_at > cooldown_seconds.
    A clock that went backwards (now < last_alerted_at) counts as cooling down.
    Pure: does not touch `rule`; the caller applies new_last_alerted_at.
    """
    last = rule.last_alerted_at

    if not rule.condition.is_met(price, rule.threshold):
        if last is not None:
            return Evaluation(Outcome.RESET, None)
        return Evaluation(Outcome.IDLE, None)

    if last is None or _elapsed(now, last) > cooldown_seconds:
        return Evaluation(Outcome.FIRE, now, format_alert_message(rule, price))

    return Evaluation(Outcome.SUPPRESSED, last)


def _elapsed(now: int, last: int) -> int:
    # backwards clock → -1, which never exceeds a non-negative cooldown
    if now < last:
        return -1
    return now - last
