import json

import pytest

from pricewatch.alerts.errors import PersistError
from storage.json_file import JsonFileStateStore

DOC = {
    "check_interval": 30,
    "withhold_seconds": 3600,
    "email": {"smtp_host": "smtp.example.com", "from": "a@example.com", "to": ["b@example.com"]},
    "currencies": [
        {"symbol": "BTCUSDT", "threshold": 50000, "alert_condition": "above"},
        {"symbol": "ETHUSDT", "threshold": "2000.5", "alert_condition": "below", "last_alerted_at": 1700000000},
    ],
}


def _write(path, doc):
    path.write_text(json.dumps(doc), encoding="utf-8")


@pytest.mark.asyncio
async def test_load_reads_rules_from_currencies(tmp_path):
    p = tmp_path / "config.json"
    _write(p, DOC)
    rules = await JsonFileStateStore(p).load()
    assert rules.symbols() == ["BTCUSDT", "ETHUSDT"]
    assert [r.last_alerted_at for r in rules] == [None, 1700000000]


@pytest.mark.asyncio
async def test_save_rewrites_rules_and_keeps_other_keys(tmp_path):
    p = tmp_path / "config.json"
    _write(p, DOC)
    store = JsonFileStateStore(p)
    rules = await store.load()
    rules.apply(rules.rules[0], 1700000500)
    rules.apply(rules.rules[1], None)

    await store.save(rules)

    saved = json.loads(p.read_text(encoding="utf-8"))
    assert saved["check_interval"] == 30
    assert saved["email"] == DOC["email"]
    assert saved["currencies"][0]["last_alerted_at"] == 1700000500
    assert saved["currencies"][1]["last_alerted_at"] is None
    assert saved["currencies"][0]["threshold"] == 50000
    assert saved["currencies"][1]["threshold"] == "2000.5"
    # no temp files left behind
    assert [f.name for f in tmp_path.iterdir()] == ["config.json"]

    again = await JsonFileStateStore(p).load()
    assert again.to_dicts() == rules.to_dicts()


@pytest.mark.asyncio
async def test_missing_file_raises_persist_error(tmp_path):
    with pytest.raises(PersistError):
        await JsonFileStateStore(tmp_path / "nope.json").load()


@pytest.mark.asyncio
async def test_unwritable_target_raises_persist_error(tmp_path):
    p = tmp_path / "config.json"
    _write(p, DOC)
    store = JsonFileStateStore(p)
    rules = await store.load()
    store.path = tmp_path / "missing-dir" / "config.json"
    with pytest.raises(PersistError):
        await store.save(rules)
