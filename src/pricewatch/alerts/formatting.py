from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Sequence
from zoneinfo import ZoneInfo

from pricewatch.alerts.rules import AlertRule

def _fmt_ts(ts_s: int, tz_name: str) -> str:
    tz = ZoneInfo(tz_name)
    return datetime.fromtimestamp(ts_s, tz).strftime("%Y-%m-%d %H:%M:%S %Z")  # e.g., 2026-10-19 14:02:11 UTC

def _fmt_price(px: Decimal) -> str:
    # drop exponent noise like 5E+4 while keeping every significant digit
    s = format(px, "f")
    return s.rstrip("0").rstrip(".") if "." in s else s

def format_alert_message(rule: AlertRule, price: Decimal) -> str:
    return (
        f"Alert triggered for {rule.symbol}: price {_fmt_price(price)} "
        f"is {rule.condition.value} threshold {_fmt_price(rule.threshold)}"
    )

def format_subject(fired: Sequence[AlertRule]) -> str:
    if len(fired) == 1:
        return f"Price alert: {fired[0].symbol}"
    return f"Price alerts: {len(fired)} triggered"

def format_batch(messages: Sequence[str], checked_at: int, tz_name: str = "UTC") -> str:
    """One notification body for every rule that fired in a cycle."""
    lines = list(messages)
    lines.append("")
    lines.append(f"Checked at {_fmt_ts(checked_at, tz_name)}")
    return "\n".join(lines)
