"""Change detection between a journal export and its last snapshot.

Everything here is a pure function over data handed in by the caller; the
state file is only read and written by ``journal_state.StateStore``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from loguru import logger

from journal_models import Entry, normalize_timestamp, utc_now_iso


@dataclass
class DiffResult:
    added: List[Entry] = field(default_factory=list)
    modified: List[Entry] = field(default_factory=list)
    removed: List[Dict[str, Any]] = field(default_factory=list)
    unchanged: List[Entry] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.modified or self.removed)

    def counts(self) -> Dict[str, int]:
        return {
            "added": len(self.added),
            "modified": len(self.modified),
            "removed": len(self.removed),
            "unchanged": len(self.unchanged),
        }


class EntryState(str, Enum):
    """Where an entry sits in the Public -> Published lifecycle."""

    DRAFT = "draft"  # known from a snapshot but in neither journal now
    PUBLIC = "public"
    MIGRATING = "migrating"  # present in both journals
    PUBLISHED = "published"


def build_snapshot(entries: Sequence[Entry], now: Optional[str] = None) -> Dict[str, Any]:
    """Return the snapshot document for ``entries`` as of ``now``."""

    timestamp = now or utc_now_iso()
    snapshot_entries: Dict[str, Dict[str, Any]] = {}
    for entry in entries:
        snapshot_entries[entry.uuid] = {
            "title": entry.title,
            "creationDate": entry.creation_date,
            "modifiedDate": entry.modified_date,
            "lastSeen": timestamp,
        }
    return {
        "lastExport": timestamp,
        "entries": snapshot_entries,
        "totalEntries": len(snapshot_entries),
    }


def diff_entries(
    journal_name: str,
    current_entries: Sequence[Entry],
    previous_snapshot: Optional[Mapping[str, Any]],
) -> DiffResult:
    """Classify ``current_entries`` against ``previous_snapshot``.

    A missing snapshot means the journal has never been processed, so every
    entry is ``added``. Bucket order follows input order.
    """

    current = _dedupe(journal_name, current_entries)

    if previous_snapshot is None:
        return DiffResult(added=list(current))

    previous_entries: Mapping[str, Mapping[str, Any]] = previous_snapshot.get("entries") or {}
    result = DiffResult()
    current_uuids: Set[str] = set()

    for entry in current:
        current_uuids.add(entry.uuid)
        previous = previous_entries.get(entry.uuid)
        if previous is None:
            result.added.append(entry)
        elif normalize_timestamp(entry.modified_date) != normalize_timestamp(previous.get("modifiedDate")):
            result.modified.append(entry)
        else:
            result.unchanged.append(entry)

    for uuid, previous in previous_entries.items():
        if uuid not in current_uuids:
            result.removed.append({"uuid": uuid, **dict(previous)})

    logger.debug(f"{journal_name}: {result.counts()}")
    return result


def detect_journal_movements(
    previous_public: Mapping[str, Mapping[str, Any]],
    previous_published: Mapping[str, Mapping[str, Any]],
    public_entries: Sequence[Entry],
    published_entries: Sequence[Entry],
    detected_at: Optional[str] = None,
) -> Dict[str, List[Any]]:
    """Compare the previous snapshots of both journals with the current exports.

    An entry has moved to Published when the last Public snapshot knew it, the
    last Published snapshot did not, and the current Published export has it.
    It may still linger in Public until the move is reconciled.
    """

    timestamp = detected_at or utc_now_iso()
    public_uuids = {entry.uuid for entry in public_entries}
    published_uuids = {entry.uuid for entry in published_entries}

    movements: Dict[str, List[Any]] = {
        "movedToPublished": [],
        "movedFromPublished": [],
        "newInPublic": [],
        "newInPublished": [],
    }

    for uuid, previous in previous_public.items():
        if uuid in published_uuids and uuid not in previous_published:
            movements["movedToPublished"].append({"uuid": uuid, **dict(previous), "detectedAt": timestamp})

    for uuid, previous in previous_published.items():
        if uuid in public_uuids and uuid not in previous_public and uuid not in published_uuids:
            movements["movedFromPublished"].append({"uuid": uuid, **dict(previous), "detectedAt": timestamp})

    movements["newInPublic"] = [entry for entry in public_entries if entry.uuid not in previous_public]
    movements["newInPublished"] = [entry for entry in published_entries if entry.uuid not in previous_published]
    return movements


def classify_entry_states(
    public_uuids: Iterable[str],
    published_uuids: Iterable[str],
    known_uuids: Iterable[str] = (),
) -> Dict[str, EntryState]:
    public = set(public_uuids)
    published = set(published_uuids)
    states: Dict[str, EntryState] = {}
    for uuid in set(known_uuids) | public | published:
        if uuid in public and uuid in published:
            states[uuid] = EntryState.MIGRATING
        elif uuid in published:
            states[uuid] = EntryState.PUBLISHED
        elif uuid in public:
            states[uuid] = EntryState.PUBLIC
        else:
            states[uuid] = EntryState.DRAFT
    return states


def detect_state_transitions(
    previous: Mapping[str, EntryState],
    current: Mapping[str, EntryState],
) -> List[Tuple[str, Optional[EntryState], EntryState]]:
    """Return ``(uuid, before, after)`` for every uuid whose state changed."""

    transitions: List[Tuple[str, Optional[EntryState], EntryState]] = []
    for uuid in sorted(current):
        before = previous.get(uuid)
        after = current[uuid]
        if before != after:
            transitions.append((uuid, before, after))
    return transitions


def _dedupe(journal_name: str, entries: Sequence[Entry]) -> List[Entry]:
    seen: Set[str] = set()
    unique: List[Entry] = []
    for entry in entries:
        if entry.uuid in seen:
            logger.warning(f"{journal_name}: duplicate entry {entry.uuid} in export, keeping the first")
            continue
        seen.add(entry.uuid)
        unique.append(entry)
    return unique
