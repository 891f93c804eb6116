"""Ledger of Public -> Published migration requests.

Records live in the state file under ``migrations``. A record is created
``pending`` and moves to ``completed`` exactly once; completing an unknown or
already-completed id only logs a warning.
"""

from __future__ import annotations

import copy
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from loguru import logger

from journal_models import Entry, utc_now_iso
from journal_state import StateStore

_last_generated_ms = 0


def generate_migration_id() -> str:
    """Return ``migration-<epoch ms>``, strictly increasing within the process."""

    global _last_generated_ms
    now_ms = int(time.time() * 1000)
    if now_ms <= _last_generated_ms:
        now_ms = _last_generated_ms + 1
    _last_generated_ms = now_ms
    return f"migration-{now_ms}"


class MigrationLedger:
    def __init__(self, store: StateStore) -> None:
        self.store = store

    @property
    def _migrations(self) -> Dict[str, List[Dict[str, Any]]]:
        return self.store.state["migrations"]

    def request_migration(self, entries: Sequence[Entry], migration_id: Optional[str] = None) -> str:
        """Append a pending migration for ``entries`` and persist it."""

        known = {record["id"] for record in self._all_records()}
        if migration_id is None:
            migration_id = generate_migration_id()
            while migration_id in known:
                migration_id = generate_migration_id()
        elif migration_id in known:
            raise ValueError(f"Migration {migration_id} already exists")

        record = {
            "id": migration_id,
            "timestamp": utc_now_iso(),
            "status": "pending",
            "entries": [
                {"uuid": entry.uuid, "title": entry.title, "creationDate": entry.creation_date}
                for entry in entries
            ],
        }
        migrations = copy.deepcopy(self._migrations)
        migrations["pending"].append(record)
        self.store.replace_migrations(migrations)
        logger.info(f"Migration {migration_id} requested for {len(record['entries'])} entries")
        return migration_id

    def complete_migration(self, migration_id: str, completed_entries: Iterable[Any] = ()) -> Optional[Dict[str, Any]]:
        migrations = copy.deepcopy(self._migrations)
        index = next(
            (idx for idx, record in enumerate(migrations["pending"]) if record.get("id") == migration_id),
            None,
        )
        if index is None:
            logger.warning(f"Migration {migration_id} not found in pending list")
            return None

        record = migrations["pending"].pop(index)
        record["status"] = "completed"
        record["completedAt"] = utc_now_iso()
        record["completedEntries"] = list(completed_entries)
        migrations["completed"].append(record)
        self.store.replace_migrations(migrations)
        logger.info(f"Migration {migration_id} completed")
        return record

    def list_pending(self) -> List[Dict[str, Any]]:
        return sorted(self._migrations["pending"], key=lambda r: _parse_time(r.get("timestamp")), reverse=True)

    def list_completed(self, limit: int = 10) -> List[Dict[str, Any]]:
        ordered = sorted(
            self._migrations["completed"],
            key=lambda r: _parse_time(r.get("completedAt")),
            reverse=True,
        )
        return ordered[:limit]

    def pending_entry_uuids(self) -> Set[str]:
        return {
            item.get("uuid")
            for record in self._migrations["pending"]
            for item in record.get("entries", [])
            if item.get("uuid")
        }

    def average_entries_per_migration(self) -> float:
        records = self._all_records()
        if not records:
            return 0
        total = sum(len(record.get("entries", [])) for record in records)
        return round(total / len(records), 2)

    def oldest_pending_migration(self) -> Optional[Dict[str, Any]]:
        pending = self._migrations["pending"]
        if not pending:
            return None
        return min(pending, key=lambda r: _parse_time(r.get("timestamp")))

    def generate_report(self) -> Dict[str, Any]:
        return {
            "generatedAt": utc_now_iso(),
            "summary": self.store.journal_summary(),
            "recentMigrations": self.list_completed(5),
            "pendingActions": self.list_pending(),
            "statistics": {
                "totalProcessingRuns": len(self._all_records()),
                "avgEntriesPerMigration": self.average_entries_per_migration(),
                "oldestPendingMigration": self.oldest_pending_migration(),
            },
        }

    def _all_records(self) -> List[Dict[str, Any]]:
        return list(self._migrations["completed"]) + list(self._migrations["pending"])


def _parse_time(value: Any) -> datetime:
    if not value:
        return datetime.min
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return datetime.min
    # Compare naive UTC values so mixed inputs sort together.
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
