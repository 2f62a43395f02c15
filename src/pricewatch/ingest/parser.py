from __future__ import annotations
from decimal import Decimal
from typing import Any, Optional
from pricewatch.alerts.rules import parse_decimal
from pricewatch.utils.types import Quote

def parse_ticker_msg(m: Any) -> Optional[Quote]:
    """
    Return Quote if `m` is a usable ticker entry; else None.

    Binance /api/v3/ticker/price entries look like:
      - "symbol": "BTCUSDT"
      - "price":  "51000.12000000"   (string, exact decimal)
    Some mirrors use "s"/"p" short keys; both are accepted.
    """
    if not isinstance(m, dict):
        return None

    sym = m.get("symbol") or m.get("s")
    raw = m.get("price") if "price" in m else m.get("p")
    if not sym or raw is None:
        return None

    px = parse_decimal(raw)
    # malformed or non-positive prices are treated as "no data"
    if px is None or px <= Decimal(0):
        return None

    return Quote(symbol=str(sym).upper(), px=px)
