from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import Optional

import aiohttp
import structlog

from pricewatch.alerts.errors import NotifyError

log = structlog.get_logger("telegram")

# Telegram rejects longer texts
MAX_MESSAGE_CHARS = 4096

# --------- config & client ----------

@dataclass(slots=True)
class TelegramConfig:
    bot_token: str
    chat_id: str                # personal chat id or group id
    parse_mode: Optional[str] = None  # "HTML" or "MarkdownV2" or None
    timeout_s: float = 8.0
    api_base: str = "https://api.telegram.org"

class TelegramNotifier:
    """
    Sends one batch message per call via the Bot API sendMessage method.
    Single attempt: any non-200 answer or network error raises NotifyError.
    """
    def __init__(self, cfg: TelegramConfig, session: Optional[aiohttp.ClientSession] = None):
        self.cfg = cfg
        self._session = session
        self._owns_session = session is None

    async def start(self):
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.cfg.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

    async def stop(self):
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None

    async def send(self, subject: str, body: str) -> None:
        if self._session is None:
            await self.start()
        text = self.format_text(subject, body)
        await self._send(text)

    @staticmethod
    def format_text(subject: str, body: str) -> str:
        text = f"{subject}\n\n{body}"
        if len(text) > MAX_MESSAGE_CHARS:
            text = text[: MAX_MESSAGE_CHARS - 1] + "…"
        return text

    async def _send(self, text: str):
        assert self._session is not None
        url = f"{self.cfg.api_base}/bot{self.cfg.bot_token}/sendMessage"
        payload = {"chat_id": self.cfg.chat_id, "text": text}
        if self.cfg.parse_mode:
            payload["parse_mode"] = self.cfg.parse_mode

        try:
            async with self._session.post(url, data=payload) as resp:
                if resp.status == 200:
                    log.info("telegram_sent", chat_id=self.cfg.chat_id)
                    return
                detail = await _maybe_text(resp)
                log.warning("telegram_send_failed", status=resp.status, body=detail)
                raise NotifyError(f"Telegram answered HTTP {resp.status}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.warning("telegram_network_error", err=str(e))
            raise NotifyError(f"Telegram request failed: {e!r}") from e

async def _maybe_text(resp: aiohttp.ClientResponse) -> str:
    try:
        return await resp.text()
    except Exception:
        return "<no body>"

def config_from_env() -> TelegramConfig:
    """Raises KeyError when TELEGRAM_BOT_TOKEN / TELEGRAM_CHAT_ID are unset."""
    return TelegramConfig(
        bot_token=os.environ["TELEGRAM_BOT_TOKEN"],
        chat_id=os.environ["TELEGRAM_CHAT_ID"],
        parse_mode=os.getenv("TELEGRAM_PARSE_MODE") or None,
    )
