"""Tests for journal_state: loading, atomic saves and snapshot updates."""

import json

import pytest

from journal_state import PUBLIC_JOURNAL, PUBLISHED_JOURNAL, PersistenceError, StateStore, default_state


class TestLoad:
    def test_missing_file_yields_default_shape(self, store):
        assert store.state == default_state()
        assert set(store.state["journals"]) == {PUBLIC_JOURNAL, PUBLISHED_JOURNAL}
        assert store.journal_snapshot(PUBLIC_JOURNAL) is None

    def test_corrupt_file_falls_back_to_default(self, state_path):
        state_path.parent.mkdir(parents=True)
        state_path.write_text("{not json", encoding="utf-8")

        assert StateStore(state_path).state == default_state()

    def test_non_object_document_falls_back_to_default(self, state_path):
        state_path.parent.mkdir(parents=True)
        state_path.write_text("[1, 2, 3]", encoding="utf-8")

        assert StateStore(state_path).state == default_state()

    def test_partial_document_is_merged_into_default_shape(self, state_path):
        state_path.parent.mkdir(parents=True)
        state_path.write_text(
            json.dumps(
                {
                    "lastProcessed": "2024-01-01T00:00:00+00:00",
                    "journals": {
                        PUBLIC_JOURNAL: {
                            "lastExport": "2024-01-01T00:00:00+00:00",
                            "entries": {"a": {"modifiedDate": "2024-01-01T00:00:00Z"}},
                            "totalEntries": 1,
                        }
                    },
                }
            ),
            encoding="utf-8",
        )

        store = StateStore(state_path)

        assert store.state["lastProcessed"] == "2024-01-01T00:00:00+00:00"
        assert store.journal_snapshot(PUBLIC_JOURNAL)["totalEntries"] == 1
        assert store.journal_snapshot(PUBLISHED_JOURNAL) is None
        assert store.state["migrations"] == {"pending": [], "completed": []}


class TestSave:
    def test_round_trips_through_disk(self, store, state_path, make_entry):
        store.update_journal_snapshot(PUBLIC_JOURNAL, [make_entry("a"), make_entry("b")])

        reloaded = StateStore(state_path)

        assert reloaded.state == store.state
        assert reloaded.journal_snapshot(PUBLIC_JOURNAL)["totalEntries"] == 2
        assert reloaded.state["lastProcessed"] == reloaded.journal_snapshot(PUBLIC_JOURNAL)["lastExport"]

    def test_no_temporary_files_are_left_behind(self, store, state_path, make_entry):
        store.update_journal_snapshot(PUBLIC_JOURNAL, [make_entry("a")])

        assert sorted(p.name for p in state_path.parent.iterdir()) == [state_path.name]

    def test_unserializable_state_raises_and_keeps_memory_state(self, store):
        before = store.state
        broken = default_state()
        broken["lastProcessed"] = object()

        with pytest.raises(PersistenceError):
            store.save(broken)

        assert store.state is before

    def test_unwritable_location_raises(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        store = StateStore(blocker / "state.json")

        with pytest.raises(PersistenceError):
            store.save()

    def test_failed_write_preserves_previous_file(self, store, state_path, make_entry, monkeypatch):
        store.update_journal_snapshot(PUBLIC_JOURNAL, [make_entry("a")])
        original = state_path.read_text(encoding="utf-8")

        def refuse(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("journal_state.os.replace", refuse)

        with pytest.raises(PersistenceError):
            store.update_journal_snapshot(PUBLIC_JOURNAL, [make_entry("b")])

        assert state_path.read_text(encoding="utf-8") == original
        assert list(store.state["journals"][PUBLIC_JOURNAL]["entries"]) == ["a"]
        assert sorted(p.name for p in state_path.parent.iterdir()) == [state_path.name]


class TestSummary:
    def test_journal_summary(self, store, make_entry):
        store.update_journal_snapshot(PUBLISHED_JOURNAL, [make_entry("x")])

        summary = store.journal_summary()

        assert summary["pendingMigrations"] == 0
        assert summary["completedMigrations"] == 0
        by_name = {item["name"]: item for item in summary["journals"]}
        assert by_name[PUBLISHED_JOURNAL]["totalEntries"] == 1
        assert by_name[PUBLIC_JOURNAL]["lastExport"] is None
