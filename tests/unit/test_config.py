import json
from decimal import Decimal

import pytest

from pricewatch.alerts.errors import ConfigError
from pricewatch.alerts.rules import Condition
from pricewatch.config import load_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for k in ("SMTP_USERNAME", "SMTP_PASSWORD", "SMTP_HOST", "TELEGRAM_BOT_TOKEN",
              "TELEGRAM_CHAT_ID", "REDIS_URL", "PRICEWATCH_CONFIG"):
        monkeypatch.delenv(k, raising=False)


def _cfg(tmp_path, doc):
    p = tmp_path / "config.json"
    p.write_text(json.dumps(doc), encoding="utf-8")
    return p


def test_defaults_when_optional_keys_missing(tmp_path):
    p = _cfg(tmp_path, {"currencies": [{"symbol": "btcusdt", "threshold": 50000.5, "alert_condition": "Above"}]})
    s = load_settings(p)
    assert s.check_interval == 60
    assert s.withhold_seconds == 86_400
    assert s.email is None and s.telegram is None
    assert s.state.backend == "file"
    rule = s.rules.rules[0]
    assert rule.symbol == "BTCUSDT"
    assert rule.threshold == Decimal("50000.5")
    assert rule.condition is Condition.ABOVE
    assert rule.last_alerted_at is None


def test_null_withhold_falls_back_to_one_day(tmp_path):
    p = _cfg(tmp_path, {"check_interval": 15, "withhold_seconds": None, "currencies": []})
    s = load_settings(p)
    assert s.check_interval == 15
    assert s.withhold_seconds == 86_400


def test_unknown_condition_is_rejected(tmp_path):
    p = _cfg(tmp_path, {"currencies": [{"symbol": "BTCUSDT", "threshold": 1, "alert_condition": "crosses"}]})
    with pytest.raises(ConfigError, match="crosses"):
        load_settings(p)


@pytest.mark.parametrize("doc", [
    {"currencies": [{"symbol": "BTCUSDT", "threshold": "abc", "alert_condition": "above"}]},
    {"currencies": [{"threshold": 1, "alert_condition": "above"}]},
    {"currencies": {}},
    {"check_interval": 0},
    {"withhold_seconds": -1},
    {"state": {"backend": "sqlite"}},
    {"email": {"smtp_host": "smtp.example.com"}},
    {"timezone": "Europe/Nowhere"},
    {"email": {"smtp_host": "smtp.example.com", "from": "a@example.com", "to": "b@example.com", "smtp_port": "abc"}},
    {"email": {"smtp_host": "smtp.example.com", "from": "a@example.com", "to": "b@example.com", "smtp_port": 70000}},
    {"binance": {"timeout_s": "fast"}},
    {"binance": {"timeout_s": 0}},
    {"binance": []},
    {"state": ["redis"]},
])
def test_invalid_documents(tmp_path, doc):
    with pytest.raises(ConfigError):
        load_settings(_cfg(tmp_path, doc))


def test_missing_file_and_bad_json(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_settings(tmp_path / "missing.json")
    bad = tmp_path / "bad.json"
    bad.write_text("{nope", encoding="utf-8")
    with pytest.raises(ConfigError, match="not valid JSON"):
        load_settings(bad)


def test_email_secrets_from_env_win(tmp_path, monkeypatch):
    monkeypatch.setenv("SMTP_PASSWORD", "from-env")
    p = _cfg(tmp_path, {
        "currencies": [],
        "email": {"smtp_host": "smtp.example.com", "from": "a@example.com", "to": "b@example.com",
                  "username": "a", "password": "from-file"},
    })
    s = load_settings(p)
    assert s.email.to_emails == ["b@example.com"]
    assert s.email.smtp_password == "from-env"
    assert s.email.smtp_username == "a"
    assert s.email.smtp_port == 587


def test_telegram_from_env_when_section_absent(tmp_path, monkeypatch):
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
    monkeypatch.setenv("TELEGRAM_CHAT_ID", "42")
    s = load_settings(_cfg(tmp_path, {"currencies": []}))
    assert s.telegram is not None
    assert s.telegram.chat_id == "42"


def test_path_from_env(tmp_path, monkeypatch):
    p = _cfg(tmp_path, {"check_interval": 5, "currencies": []})
    monkeypatch.setenv("PRICEWATCH_CONFIG", str(p))
    assert load_settings().check_interval == 5


def test_timezone_is_kept_when_known(tmp_path):
    s = load_settings(_cfg(tmp_path, {"timezone": "Europe/Berlin", "currencies": []}))
    assert s.tz_name == "Europe/Berlin"
    assert load_settings(_cfg(tmp_path, {"currencies": []})).tz_name == "UTC"


def test_unknown_timezone_names_the_zone(tmp_path):
    with pytest.raises(ConfigError, match="Europe/Nowhere"):
        load_settings(_cfg(tmp_path, {"timezone": "Europe/Nowhere", "currencies": []}))


def test_binance_section_values(tmp_path):
    s = load_settings(_cfg(tmp_path, {"binance": {"timeout_s": "2.5", "max_retries": 3}, "currencies": []}))
    assert s.binance.timeout_s == 2.5
    assert s.binance.max_retries == 3
