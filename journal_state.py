"""Persisted state for incremental journal processing.

The state file is a single JSON document::

    {
      "lastProcessed": "...",
      "journals": {"Blog Public": {"lastExport", "entries", "totalEntries"}, ...},
      "migrations": {"pending": [...], "completed": [...]}
    }

It is read permissively and always rewritten in full. Only one process may
write it at a time; callers serialize workflow runs.
"""

from __future__ import annotations

import copy
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from journal_diff import build_snapshot
from journal_models import Entry, utc_now_iso

DEFAULT_STATE_FILE = Path("data") / "journal-state.json"
PUBLIC_JOURNAL = "Blog Public"
PUBLISHED_JOURNAL = "Blog Published"


class PersistenceError(RuntimeError):
    """Raised when the state file cannot be written."""


def empty_snapshot() -> Dict[str, Any]:
    return {"lastExport": None, "entries": {}, "totalEntries": 0}


def default_state(journal_names: Sequence[str] = (PUBLIC_JOURNAL, PUBLISHED_JOURNAL)) -> Dict[str, Any]:
    return {
        "lastProcessed": None,
        "journals": {name: empty_snapshot() for name in journal_names},
        "migrations": {"pending": [], "completed": []},
    }


class StateStore:
    """Owns the state file and the in-memory copy of it."""

    def __init__(
        self,
        path: Path = DEFAULT_STATE_FILE,
        journal_names: Sequence[str] = (PUBLIC_JOURNAL, PUBLISHED_JOURNAL),
    ) -> None:
        self.path = Path(path)
        self.journal_names = tuple(journal_names)
        self.state = self.load()

    def load(self) -> Dict[str, Any]:
        """Read the state file, falling back to the default shape."""

        if not self.path.exists():
            return default_state(self.journal_names)
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(f"Failed to load journal state from {self.path}: {exc}")
            return default_state(self.journal_names)
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed journal state in {self.path}")
            return default_state(self.journal_names)

        state = default_state(self.journal_names)
        state["lastProcessed"] = data.get("lastProcessed")
        journals = data.get("journals")
        if isinstance(journals, dict):
            state["journals"].update(journals)
        migrations = data.get("migrations")
        if isinstance(migrations, dict):
            state["migrations"]["pending"] = list(migrations.get("pending") or [])
            state["migrations"]["completed"] = list(migrations.get("completed") or [])
        return state

    def save(self, state: Optional[Dict[str, Any]] = None) -> None:
        """Write ``state`` (or the current state) in one atomic replace."""

        payload = self.state if state is None else state
        try:
            text = json.dumps(payload, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"Journal state is not serializable: {exc}") from exc

        tmp_path: Optional[str] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(text)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            if tmp_path and os.path.exists(tmp_path):
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
            raise PersistenceError(f"Failed to save journal state to {self.path}: {exc}") from exc

        if state is not None:
            self.state = state

    def journal_snapshot(self, journal_name: str) -> Optional[Dict[str, Any]]:
        """Return the last snapshot, or None if the journal was never exported."""

        snapshot = self.state["journals"].get(journal_name)
        if not snapshot or snapshot.get("lastExport") is None:
            return None
        return snapshot

    def update_journal_snapshot(self, journal_name: str, entries: Sequence[Entry]) -> Dict[str, Any]:
        now = utc_now_iso()
        snapshot = build_snapshot(entries, now)
        new_state = copy.deepcopy(self.state)
        new_state["journals"][journal_name] = snapshot
        new_state["lastProcessed"] = now
        self.save(new_state)
        logger.info(f"Snapshot for {journal_name} updated: {snapshot['totalEntries']} entries")
        return snapshot

    def replace_migrations(self, migrations: Dict[str, List[Dict[str, Any]]]) -> None:
        new_state = copy.deepcopy(self.state)
        new_state["migrations"] = migrations
        self.save(new_state)

    def journal_summary(self) -> Dict[str, Any]:
        journals = self.state["journals"]
        return {
            "lastProcessed": self.state.get("lastProcessed"),
            "journals": [
                {
                    "name": name,
                    "lastExport": journals[name].get("lastExport"),
                    "totalEntries": journals[name].get("totalEntries", 0),
                }
                for name in journals
            ],
            "pendingMigrations": len(self.state["migrations"]["pending"]),
            "completedMigrations": len(self.state["migrations"]["completed"]),
        }
