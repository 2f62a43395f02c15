from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Iterator, Optional

import aiohttp
import structlog

from pricewatch.alerts.errors import FetchError
from pricewatch.ingest import parser  # must expose parse_ticker_msg(dict)->Quote|None


@dataclass(slots=True)
class BinanceConfig:
    base_url: str = "https://api.binance.com"
    timeout_s: float = 10.0
    # retries inside one fetch; 0 means a single attempt
    max_retries: int = 0
    initial_backoff_s: float = 0.5
    max_backoff_s: float = 8.0
    # each delay is scaled by a factor drawn from [1 - jitter, 1 + jitter]
    retry_jitter: float = 0.2

    def retry_delays(self) -> Iterator[float]:
        """Sleep before each retry: doubling from initial_backoff_s, capped, jittered."""
        delay = self.initial_backoff_s
        for _ in range(self.max_retries):
            yield delay * random.uniform(1.0 - self.retry_jitter, 1.0 + self.retry_jitter)
            delay = min(delay * 2.0, self.max_backoff_s)


class BinancePriceSource:
    """
    Batched price fetch from the Binance public REST API.

    One GET /api/v3/ticker/price per cycle returns every listed symbol; the
    result is filtered to the requested ones. Symbols the exchange does not
    list (or answers with a malformed price) are simply absent from the result.
    Any transport error, timeout, non-200 status or unexpected payload raises
    FetchError for the whole batch.

    Usage:
        src = BinancePriceSource(BinanceConfig())
        await src.start()
        prices = await src.fetch_prices(["BTCUSDT", "ETHUSDT"])
        await src.stop()
    """

    def __init__(self, cfg: Optional[BinanceConfig] = None, session: Optional[aiohttp.ClientSession] = None):
        self.cfg = cfg or BinanceConfig()
        self._session = session
        self._owns_session = session is None
        self._log = structlog.get_logger("binance")

    async def start(self) -> None:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.cfg.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

    async def stop(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    @property
    def url(self) -> str:
        return f"{self.cfg.base_url.rstrip('/')}/api/v3/ticker/price"

    async def fetch_prices(self, symbols: Iterable[str]) -> dict[str, Decimal]:
        wanted = {s.upper() for s in symbols}
        if not wanted:
            return {}
        if self._session is None:
            await self.start()

        delays = self.cfg.retry_delays()
        attempt = 0
        while True:
            attempt += 1
            try:
                payload = await self._get_all()
                break
            except FetchError as e:
                delay = next(delays, None)
                if delay is None:
                    raise
                self._log.warning("fetch_retry", err=str(e), attempt=attempt, backoff_s=round(delay, 3))
                await asyncio.sleep(delay)

        out: dict[str, Decimal] = {}
        for m in payload:
            q = parser.parse_ticker_msg(m)
            if q is None:
                sym = m.get("symbol") if isinstance(m, dict) else None
                if sym and str(sym).upper() in wanted:
                    self._log.warning("malformed_price", symbol=sym, raw=m.get("price"))
                continue
            if q.symbol in wanted:
                out[q.symbol] = q.px
        return out

    async def _get_all(self) -> list:
        assert self._session is not None
        try:
            async with self._session.get(self.url) as resp:
                if resp.status != 200:
                    detail = await _maybe_text(resp)
                    raise FetchError(f"HTTP {resp.status} from {self.url}: {detail[:200]}")
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FetchError(f"request to {self.url} failed: {e!r}") from e
        except ValueError as e:
            raise FetchError(f"invalid JSON from {self.url}: {e}") from e
        if not isinstance(data, list):
            raise FetchError(f"unexpected payload from {self.url}: {type(data).__name__}")
        return data


async def _maybe_text(resp: aiohttp.ClientResponse) -> str:
    try:
        return await resp.text()
    except Exception:
        return "<no body>"
