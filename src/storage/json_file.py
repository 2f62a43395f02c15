# src/storage/json_file.py
from __future__ import annotations

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

import structlog

from pricewatch.alerts.errors import PersistError
from pricewatch.alerts.state import RuleSet

log = structlog.get_logger("state_file")

RULES_FIELD = "currencies"


class JsonFileStateStore:
    """
    Keeps the rule set (with last_alerted_at) inside the JSON config document
    itself, under "currencies". save() rewrites the whole list atomically
    (temp file in the same directory + os.replace) and leaves every other key
    of the document as it was loaded.
    """
    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)
        self._doc: Optional[dict[str, Any]] = None

    async def load(self) -> RuleSet:
        doc = await asyncio.to_thread(self._read)
        self._doc = doc
        rules = RuleSet.from_dicts(doc.get(RULES_FIELD) or [])
        log.info("state_loaded", path=str(self.path), rules=len(rules), alerted=len(rules.alerted()))
        return rules

    async def save(self, rules: RuleSet) -> None:
        if self._doc is None:
            self._doc = await asyncio.to_thread(self._read)
        doc = dict(self._doc)
        doc[RULES_FIELD] = rules.to_dicts()
        await asyncio.to_thread(self._write, doc)
        self._doc = doc

    def _read(self) -> dict[str, Any]:
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                doc = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistError(f"cannot read state from {self.path}: {e}") from e
        if not isinstance(doc, dict):
            raise PersistError(f"state file {self.path} must hold a JSON object")
        return doc

    def _write(self, doc: dict[str, Any]) -> None:
        directory = self.path.parent
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=directory)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(doc, fh, indent=2)
                fh.write("\n")
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            raise PersistError(f"cannot write state to {self.path}: {e}") from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
