# src/pricewatch/alerts/notifiers.py
from __future__ import annotations
import structlog
from typing import Sequence

from pricewatch.alerts.errors import NotifyError
from pricewatch.utils.types import Notifier

log = structlog.get_logger("notifier")

class ConsoleNotifier:
    """Prints the batch; the fallback when no delivery channel is configured."""
    async def send(self, subject: str, body: str) -> None:
        print(f"[ALERT] {subject}\n{body}", flush=True)

class FanoutNotifier:
    """
    Sends the same message to every channel. All channels are tried; if any
    failed, one NotifyError naming them is raised afterwards.
    """
    def __init__(self, notifiers: Sequence[Notifier]):
        self._notifiers = list(notifiers)

    async def send(self, subject: str, body: str) -> None:
        failed: list[str] = []
        for n in self._notifiers:
            try:
                await n.send(subject, body)
            except NotifyError as e:
                name = type(n).__name__
                log.warning("notifier_failed", notifier=name, err=str(e))
                failed.append(f"{name}: {e}")
        if failed:
            raise NotifyError("; ".join(failed))
