# src/pricewatch/alerts/rules.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from pricewatch.alerts.errors import ConfigError


class Condition(str, Enum):
    ABOVE = "above"
    BELOW = "below"

    @classmethod
    def parse(cls, raw: Any) -> "Condition":
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            raise ConfigError(f"unknown alert_condition {raw!r} (expected 'above' or 'below')") from None

    def is_met(self, price: Decimal, threshold: Decimal) -> bool:
        # strict: equality never triggers
        if self is Condition.ABOVE:
            return price > threshold
        return price < threshold


@dataclass(slots=True)
class AlertRule:
    """
    One threshold condition for one instrument.
    - symbol:          exchange symbol, e.g. "BTCUSDT"
    - threshold:       compared with a strict inequality
    - condition:       ABOVE → price > threshold, BELOW → price < threshold
    - last_alerted_at: epoch seconds of the last fire while the condition has
                       stayed true; None means "not in alerted state"
    """
    symbol: str
    threshold: Decimal
    condition: Condition
    last_alerted_at: Optional[int] = None

    @property
    def key(self) -> str:
        return f"{self.symbol}:{self.condition.value}:{self.threshold}"

    @property
    def alerted(self) -> bool:
        return self.last_alerted_at is not None

    @classmethod
    def from_dict(cls, d: dict) -> "AlertRule":
        """Build from a `currencies` entry of the config / state document."""
        if not isinstance(d, dict):
            raise ConfigError(f"rule must be an object, got {type(d).__name__}")
        symbol = str(d.get("symbol") or "").strip().upper()
        if not symbol:
            raise ConfigError("rule is missing 'symbol'")
        if "threshold" not in d:
            raise ConfigError(f"rule {symbol} is missing 'threshold'")
        threshold = parse_decimal(d["threshold"])
        if threshold is None:
            raise ConfigError(f"rule {symbol} has invalid threshold {d['threshold']!r}")
        condition = Condition.parse(d.get("alert_condition", d.get("condition")))
        last = d.get("last_alerted_at")
        if last is not None:
            try:
                last = int(last)
            except (TypeError, ValueError):
                raise ConfigError(f"rule {symbol} has invalid last_alerted_at {last!r}") from None
        return cls(symbol=symbol, threshold=threshold, condition=condition, last_alerted_at=last)

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "threshold": _json_number(self.threshold),
            "alert_condition": self.condition.value,
            "last_alerted_at": self.last_alerted_at,
        }


def parse_decimal(raw: Any) -> Optional[Decimal]:
    """
    Decimal from a JSON number or numeric string. Floats go through str() so
    50000.1 stays 50000.1. Returns None for anything non-finite or unparsable.
    """
    if isinstance(raw, bool) or raw is None:
        return None
    try:
        val = raw if isinstance(raw, Decimal) else Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return None
    if not val.is_finite():
        return None
    return val


def _json_number(d: Decimal) -> int | str:
    # whole numbers stay JSON numbers; fractions are written as strings so no float rounding creeps in
    if d == d.to_integral_value():
        return int(d)
    return str(d)
