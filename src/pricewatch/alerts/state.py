from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional

from pricewatch.alerts.rules import AlertRule


@dataclass(slots=True)
class RuleSet:
    """
    The rule set owned by the poll loop. Passed into each cycle; the only
    mutation a cycle performs is `apply()` of a new last_alerted_at.
    """
    rules: list[AlertRule] = field(default_factory=list)

    def __iter__(self) -> Iterator[AlertRule]:
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)

    def symbols(self) -> list[str]:
        return sorted({r.symbol for r in self.rules})

    def apply(self, rule: AlertRule, last_alerted_at: Optional[int]) -> None:
        rule.last_alerted_at = last_alerted_at

    def alerted(self) -> list[AlertRule]:
        return [r for r in self.rules if r.alerted]

    def to_dicts(self) -> list[dict]:
        return [r.to_dict() for r in self.rules]

    @classmethod
    def from_dicts(cls, items: Iterable[dict]) -> "RuleSet":
        return cls(rules=[AlertRule.from_dict(d) for d in items])
