# src/pricewatch/config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pricewatch.alerts.errors import ConfigError
from pricewatch.alerts.evaluator import DEFAULT_WITHHOLD_SECONDS
from pricewatch.alerts.state import RuleSet
from pricewatch.ingest.binance import BinanceConfig
from pricewatch.notify.email import EmailConfig
from pricewatch.notify.telegram import TelegramConfig, config_from_env

DEFAULT_CONFIG_PATH = "config.json"
DEFAULT_CHECK_INTERVAL = 60


@dataclass(slots=True)
class StateConfig:
    backend: str = "file"  # "file" | "redis"
    redis_url: str = "redis://localhost:6379/0"
    redis_key: str = "pricewatch:rules"


@dataclass(slots=True)
class Settings:
    """
    Everything the process needs, read once at startup.

    config.json shape:
      {
        "check_interval": 60,
        "withhold_seconds": 86400,
        "currencies": [{"symbol": "BTCUSDT", "threshold": 50000, "alert_condition": "above"}],
        "email":    {"smtp_host": ..., "smtp_port": 587, "from": ..., "to": [...]},
        "telegram": {"bot_token": ..., "chat_id": ...},
        "binance":  {"base_url": ..., "timeout_s": 10},
        "state":    {"backend": "file"}
      }
    Secrets may instead come from the environment (.env is loaded by main).
    """
    config_path: Path
    rules: RuleSet
    check_interval: int = DEFAULT_CHECK_INTERVAL
    withhold_seconds: int = DEFAULT_WITHHOLD_SECONDS
    tz_name: str = "UTC"
    email: Optional[EmailConfig] = None
    telegram: Optional[TelegramConfig] = None
    binance: BinanceConfig = field(default_factory=BinanceConfig)
    state: StateConfig = field(default_factory=StateConfig)


def config_path_from_env() -> Path:
    return Path(os.getenv("PRICEWATCH_CONFIG", DEFAULT_CONFIG_PATH))


def read_document(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            doc = json.load(fh)
    except FileNotFoundError:
        raise ConfigError(f"config file not found: {path}") from None
    except json.JSONDecodeError as e:
        raise ConfigError(f"config file {path} is not valid JSON: {e}") from e
    if not isinstance(doc, dict):
        raise ConfigError(f"config file {path} must hold a JSON object")
    return doc


def load_settings(path: Optional[Path] = None) -> Settings:
    path = Path(path) if path is not None else config_path_from_env()
    doc = read_document(path)

    rules_raw = doc.get("currencies", [])
    if not isinstance(rules_raw, list):
        raise ConfigError("'currencies' must be a list")
    rules = RuleSet.from_dicts(rules_raw)

    check_interval = _positive_int(doc.get("check_interval"), "check_interval", DEFAULT_CHECK_INTERVAL)
    # null / missing → one day
    withhold = doc.get("withhold_seconds")
    if withhold is None:
        withhold = DEFAULT_WITHHOLD_SECONDS
    withhold = _non_negative_int(withhold, "withhold_seconds")

    return Settings(
        config_path=path,
        rules=rules,
        check_interval=check_interval,
        withhold_seconds=withhold,
        tz_name=_timezone(doc.get("timezone")),
        email=_email_config(doc.get("email")),
        telegram=_telegram_config(doc.get("telegram")),
        binance=_binance_config(_section(doc, "binance")),
        state=_state_config(_section(doc, "state")),
    )


# ---------------- sections ---------------- #

def _section(doc: dict, name: str) -> dict:
    raw = doc.get(name) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"'{name}' must be an object")
    return raw


def _timezone(raw: Any) -> str:
    name = str(raw or "UTC")
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigError(f"unknown timezone {name!r}") from None
    return name


def _email_config(raw: Any) -> Optional[EmailConfig]:
    if not raw:
        return None
    if not isinstance(raw, dict):
        raise ConfigError("'email' must be an object")
    host = raw.get("smtp_host") or os.getenv("SMTP_HOST")
    sender = raw.get("from") or raw.get("from_email")
    to = raw.get("to") or raw.get("to_emails") or []
    if isinstance(to, str):
        to = [to]
    if not host or not sender or not to:
        raise ConfigError("'email' needs smtp_host, from and at least one 'to' address")
    security = str(raw.get("security", "starttls")).lower()
    if security not in ("starttls", "ssl", "none"):
        raise ConfigError(f"unknown email security mode {security!r}")
    return EmailConfig(
        smtp_host=host,
        from_email=sender,
        to_emails=[str(a) for a in to],
        smtp_port=_port(raw.get("smtp_port", 465 if security == "ssl" else 587)),
        # env wins so secrets can stay out of the JSON document
        smtp_username=os.getenv("SMTP_USERNAME") or raw.get("username"),
        smtp_password=os.getenv("SMTP_PASSWORD") or raw.get("password"),
        security=security,
        subject_prefix=str(raw.get("subject_prefix", "[pricewatch]")),
    )


def _telegram_config(raw: Any) -> Optional[TelegramConfig]:
    if not raw:
        try:
            return config_from_env()
        except KeyError:
            return None
    if not isinstance(raw, dict):
        raise ConfigError("'telegram' must be an object")
    token = os.getenv("TELEGRAM_BOT_TOKEN") or raw.get("bot_token")
    chat_id = os.getenv("TELEGRAM_CHAT_ID") or raw.get("chat_id")
    if not token or not chat_id:
        raise ConfigError("'telegram' needs bot_token and chat_id")
    return TelegramConfig(bot_token=str(token), chat_id=str(chat_id), parse_mode=raw.get("parse_mode"))


def _binance_config(raw: dict) -> BinanceConfig:
    cfg = BinanceConfig()
    if "base_url" in raw:
        cfg.base_url = str(raw["base_url"])
    if "timeout_s" in raw:
        cfg.timeout_s = _positive_float(raw["timeout_s"], "binance.timeout_s")
    if "max_retries" in raw:
        cfg.max_retries = _non_negative_int(raw["max_retries"], "binance.max_retries")
    return cfg


def _state_config(raw: dict) -> StateConfig:
    cfg = StateConfig()
    backend = str(raw.get("backend", cfg.backend)).lower()
    if backend not in ("file", "redis"):
        raise ConfigError(f"unknown state backend {backend!r}")
    cfg.backend = backend
    cfg.redis_url = os.getenv("REDIS_URL") or raw.get("redis_url") or cfg.redis_url
    cfg.redis_key = str(raw.get("redis_key", cfg.redis_key))
    return cfg


def _non_negative_int(raw: Any, name: str) -> int:
    if isinstance(raw, bool):
        raise ConfigError(f"'{name}' must be an integer number of seconds")
    try:
        val = int(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"'{name}' must be an integer number of seconds") from None
    if val < 0:
        raise ConfigError(f"'{name}' must not be negative")
    return val


def _port(raw: Any) -> int:
    val = _non_negative_int(raw, "email.smtp_port")
    if not 0 < val < 65536:
        raise ConfigError(f"'email.smtp_port' out of range: {val}")
    return val


def _positive_float(raw: Any, name: str) -> float:
    if isinstance(raw, bool):
        raise ConfigError(f"'{name}' must be a number")
    try:
        val = float(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"'{name}' must be a number") from None
    if not val > 0:
        raise ConfigError(f"'{name}' must be positive")
    return val


def _positive_int(raw: Any, name: str, default: int) -> int:
    if raw is None:
        return default
    val = _non_negative_int(raw, name)
    if val == 0:
        raise ConfigError(f"'{name}' must be positive")
    return val
