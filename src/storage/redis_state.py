# src/storage/redis_state.py
from __future__ import annotations

import json
from typing import Optional

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from pricewatch.alerts.errors import PersistError
from pricewatch.alerts.state import RuleSet

log = structlog.get_logger("state_redis")


class RedisStateStore:
    """
    Rule-set snapshot as one JSON string under a single key. The first load
    (key absent) returns the seed rules from config; every save overwrites
    the key with the full set.
    """
    def __init__(self, r: Redis, key: str = "pricewatch:rules", seed: Optional[RuleSet] = None):
        self.r = r
        self.key = key
        self.seed = seed or RuleSet()

    @classmethod
    def from_url(cls, url: str, key: str = "pricewatch:rules", seed: Optional[RuleSet] = None) -> "RedisStateStore":
        return cls(Redis.from_url(url, decode_responses=True), key=key, seed=seed)

    async def load(self) -> RuleSet:
        try:
            raw = await self.r.get(self.key)
        except RedisError as e:
            raise PersistError(f"cannot read {self.key} from redis: {e}") from e
        if raw is None:
            log.info("state_seeded", key=self.key, rules=len(self.seed))
            return self.seed
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        try:
            items = json.loads(raw)
        except json.JSONDecodeError as e:
            raise PersistError(f"snapshot at {self.key} is not valid JSON: {e}") from e
        rules = RuleSet.from_dicts(items)
        log.info("state_loaded", key=self.key, rules=len(rules), alerted=len(rules.alerted()))
        return rules

    async def save(self, rules: RuleSet) -> None:
        payload = json.dumps(rules.to_dicts())
        try:
            await self.r.set(self.key, payload)
        except RedisError as e:
            raise PersistError(f"cannot write {self.key} to redis: {e}") from e

    async def close(self) -> None:
        await self.r.aclose()
