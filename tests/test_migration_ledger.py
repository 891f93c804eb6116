"""Tests for migration_ledger: request/complete lifecycle and reporting."""

import pytest
from loguru import logger

from journal_state import StateStore
from migration_ledger import MigrationLedger, generate_migration_id


@pytest.fixture
def ledger(store):
    return MigrationLedger(store)


def _pending_record(migration_id, timestamp, uuids=("a",)):
    return {
        "id": migration_id,
        "timestamp": timestamp,
        "status": "pending",
        "entries": [{"uuid": uuid, "title": None, "creationDate": None} for uuid in uuids],
    }


def test_generated_ids_are_unique_and_increasing():
    ids = [generate_migration_id() for _ in range(50)]
    numbers = [int(value.split("-")[1]) for value in ids]

    assert len(set(ids)) == 50
    assert numbers == sorted(numbers)
    assert all(value.startswith("migration-") for value in ids)


def test_request_persists_pending_record(ledger, state_path, make_entry):
    migration_id = ledger.request_migration([make_entry("a", title="Hello"), make_entry("b")])

    reloaded = StateStore(state_path)
    pending = reloaded.state["migrations"]["pending"]

    assert [record["id"] for record in pending] == [migration_id]
    assert pending[0]["status"] == "pending"
    assert pending[0]["entries"][0] == {
        "uuid": "a",
        "title": "Hello",
        "creationDate": "2024-01-01T09:00:00Z",
    }


def test_duplicate_explicit_id_is_rejected(ledger, make_entry):
    ledger.request_migration([make_entry("a")], migration_id="migration-1")

    with pytest.raises(ValueError):
        ledger.request_migration([make_entry("b")], migration_id="migration-1")


def test_complete_moves_record_exactly_once(ledger, make_entry):
    logs = []
    sink = logger.add(logs.append, level="WARNING")
    try:
        migration_id = ledger.request_migration([make_entry("a")])

        record = ledger.complete_migration(migration_id, ["a"])
        again = ledger.complete_migration(migration_id, ["a"])
    finally:
        logger.remove(sink)

    assert record["status"] == "completed"
    assert record["completedEntries"] == ["a"]
    assert "completedAt" in record
    assert again is None
    assert ledger.list_pending() == []
    assert [r["id"] for r in ledger.list_completed()] == [migration_id]
    assert any("not found in pending list" in str(message) for message in logs)


def test_unknown_id_changes_nothing(ledger, store):
    before = store.state

    assert ledger.complete_migration("migration-404") is None
    assert store.state is before


def test_listings_are_most_recent_first(ledger, store):
    store.replace_migrations(
        {
            "pending": [
                _pending_record("migration-1", "2024-01-01T00:00:00+00:00"),
                _pending_record("migration-3", "2024-03-01T00:00:00+00:00"),
                _pending_record("migration-2", "2024-02-01T00:00:00Z"),
            ],
            "completed": [],
        }
    )

    assert [r["id"] for r in ledger.list_pending()] == ["migration-3", "migration-2", "migration-1"]
    assert ledger.oldest_pending_migration()["id"] == "migration-1"


def test_list_completed_respects_limit(ledger, store):
    completed = []
    for day in range(1, 13):
        record = _pending_record(f"migration-{day}", f"2024-01-{day:02d}T00:00:00+00:00")
        record.update(status="completed", completedAt=f"2024-02-{day:02d}T00:00:00+00:00")
        completed.append(record)
    store.replace_migrations({"pending": [], "completed": completed})

    recent = ledger.list_completed()

    assert len(recent) == 10
    assert recent[0]["id"] == "migration-12"
    assert [r["id"] for r in ledger.list_completed(limit=2)] == ["migration-12", "migration-11"]


def test_pending_entry_uuids(ledger, make_entry):
    ledger.request_migration([make_entry("a"), make_entry("b")])
    ledger.request_migration([make_entry("c")])

    assert ledger.pending_entry_uuids() == {"a", "b", "c"}


def test_report_on_empty_ledger(ledger):
    report = ledger.generate_report()

    assert report["recentMigrations"] == []
    assert report["pendingActions"] == []
    assert report["statistics"] == {
        "totalProcessingRuns": 0,
        "avgEntriesPerMigration": 0,
        "oldestPendingMigration": None,
    }
    assert report["summary"]["pendingMigrations"] == 0


def test_report_statistics(ledger, make_entry):
    first = ledger.request_migration([make_entry("a"), make_entry("b")])
    ledger.request_migration([make_entry("c")])
    ledger.request_migration([make_entry("d"), make_entry("e"), make_entry("f"), make_entry("g")])
    ledger.complete_migration(first, ["a", "b"])

    report = ledger.generate_report()

    assert report["statistics"]["totalProcessingRuns"] == 3
    assert report["statistics"]["avgEntriesPerMigration"] == 2.33
    assert [r["id"] for r in report["recentMigrations"]] == [first]
    assert len(report["pendingActions"]) == 2
    assert report["summary"]["pendingMigrations"] == 2
    assert report["summary"]["completedMigrations"] == 1
