from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable, Protocol

if TYPE_CHECKING:
    from pricewatch.alerts.state import RuleSet

# ---- ingest-level primitives ----

@dataclass(slots=True)
class Quote:
    symbol: str
    px: Decimal

# ---- collaborator interfaces ----

class PriceSource(Protocol):
    async def fetch_prices(self, symbols: Iterable[str]) -> dict[str, Decimal]:
        """Prices for the symbols the source has data for; raises FetchError on total failure."""
        ...

class Notifier(Protocol):
    async def send(self, subject: str, body: str) -> None:
        """Deliver one message; raises NotifyError."""
        ...

class StateStore(Protocol):
    async def load(self) -> "RuleSet":
        ...

    async def save(self, rules: "RuleSet") -> None:
        """Whole-set overwrite; raises PersistError."""
        ...

