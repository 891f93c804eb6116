"""Compare the Blog Public and Blog Published journals and track migrations.

Entries are written in Blog Public; once an entry has been processed it is
moved to Blog Published. Each run exports both journals, diffs them against
the last snapshots in the state file, records which entries still need to be
migrated, and prints a JSON workflow summary.

Usage example:

    python journal_workflow.py --state-file data/journal-state.json --headed

Credentials are read from ``--email``/``--password``, the ``DAYONE_EMAIL`` and
``DAYONE_PASSWORD`` environment variables, or an interactive prompt.
"""

from __future__ import annotations

import argparse
import getpass
import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from loguru import logger

from dayone_exporter import (
    DEFAULT_DOWNLOAD_DIR,
    BrowserSession,
    DayOneExporter,
    ExportError,
    ExporterConfig,
    cleanup_downloads,
    open_browser_session,
)
from journal_diff import DiffResult, detect_journal_movements, diff_entries
from journal_models import Entry, utc_now_iso
from journal_state import DEFAULT_STATE_FILE, PUBLIC_JOURNAL, PUBLISHED_JOURNAL, StateStore
from migration_ledger import MigrationLedger

MOVE_ACTION = "MOVE_TO_PUBLISHED"


@dataclass
class WorkflowSummary:
    timestamp: str
    journal_counts: Dict[str, int]
    failed_journals: List[str]
    new_entries: List[Dict[str, Any]]
    entries_to_move: List[Dict[str, Any]]
    changes: Dict[str, Dict[str, int]] = field(default_factory=dict)
    movements: Dict[str, List[str]] = field(default_factory=dict)
    requested_migration: Optional[str] = None
    completed_migrations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "journals": self.journal_counts,
            "failedJournals": self.failed_journals,
            "processed": {
                "newEntries": len(self.new_entries),
                "entriesToMove": len(self.entries_to_move),
            },
            "entries": {
                "new": self.new_entries,
                "toMove": self.entries_to_move,
            },
            "changes": self.changes,
            "movements": self.movements,
            "migrations": {
                "requested": self.requested_migration,
                "completed": self.completed_migrations,
            },
        }


def compare_journals(
    public_entries: Sequence[Entry],
    published_entries: Sequence[Entry],
) -> Tuple[List[Entry], List[Entry]]:
    """Split Public entries into (not yet published, already in Published)."""

    published_uuids = {entry.uuid for entry in published_entries}
    new_entries = [entry for entry in public_entries if entry.uuid not in published_uuids]
    to_move = [entry for entry in public_entries if entry.uuid in published_uuids]
    return new_entries, to_move


def create_migration_commands(entries_to_move: Sequence[Entry]) -> List[Dict[str, Any]]:
    return [
        {
            "uuid": entry.uuid,
            "title": entry.display_title,
            "command": f'# Move "{entry.display_title}" from Public to Published',
            "action": MOVE_ACTION,
        }
        for entry in entries_to_move
    ]


class JournalWorkflow:
    def __init__(
        self,
        acquire: Callable[[str], List[Entry]],
        store: StateStore,
        ledger: MigrationLedger,
        public_journal: str = PUBLIC_JOURNAL,
        published_journal: str = PUBLISHED_JOURNAL,
    ) -> None:
        self.acquire = acquire
        self.store = store
        self.ledger = ledger
        self.public_journal = public_journal
        self.published_journal = published_journal

    def export_journal(self, journal_name: str) -> Optional[List[Entry]]:
        """Return the journal's entries, or None when the export failed."""

        try:
            entries = self.acquire(journal_name)
        except ExportError as exc:
            logger.warning(f"Failed to export {journal_name}: {exc}")
            return None
        logger.info(f"Found {len(entries)} entries in {journal_name}")
        return entries

    def run_workflow(self) -> WorkflowSummary:
        results = {
            self.public_journal: self.export_journal(self.public_journal),
            self.published_journal: self.export_journal(self.published_journal),
        }
        failed = [name for name, entries in results.items() if entries is None]
        public_entries = results[self.public_journal] or []
        published_entries = results[self.published_journal] or []

        changes: Dict[str, DiffResult] = {}
        for name, entries in results.items():
            if entries is not None:
                changes[name] = diff_entries(name, entries, self.store.journal_snapshot(name))

        movements: Dict[str, List[str]] = {}
        if not failed:
            previous_public = (self.store.journal_snapshot(self.public_journal) or {}).get("entries", {})
            previous_published = (self.store.journal_snapshot(self.published_journal) or {}).get("entries", {})
            detected = detect_journal_movements(
                previous_public, previous_published, public_entries, published_entries
            )
            movements = {
                "movedToPublished": [item["uuid"] for item in detected["movedToPublished"]],
                "movedFromPublished": [item["uuid"] for item in detected["movedFromPublished"]],
            }

        new_entries, entries_to_move = compare_journals(public_entries, published_entries)
        logger.info(f"{len(new_entries)} new entries to process")
        logger.info(f"{len(entries_to_move)} entries to move to Published")

        for name, entries in results.items():
            if entries is not None:
                self.store.update_journal_snapshot(name, entries)

        requested = None
        if self.public_journal not in failed:
            already_pending = self.ledger.pending_entry_uuids()
            unrequested = [entry for entry in new_entries if entry.uuid not in already_pending]
            if unrequested:
                requested = self.ledger.request_migration(unrequested)

        completed: List[str] = []
        if self.published_journal not in failed:
            completed = self.reconcile_migrations({entry.uuid for entry in published_entries})

        return WorkflowSummary(
            timestamp=utc_now_iso(),
            journal_counts={name: len(entries or []) for name, entries in results.items()},
            failed_journals=failed,
            new_entries=[entry.to_summary() for entry in new_entries],
            entries_to_move=[
                {"uuid": entry.uuid, "title": entry.display_title, "action": "moved_to_published"}
                for entry in entries_to_move
            ],
            changes={name: diff.counts() for name, diff in changes.items()},
            movements=movements,
            requested_migration=requested,
            completed_migrations=completed,
        )

    def reconcile_migrations(self, published_uuids: set[str]) -> List[str]:
        """Complete pending migrations whose entries all reached Published."""

        completed = []
        for record in self.ledger.list_pending():
            uuids = [item.get("uuid") for item in record.get("entries", [])]
            if uuids and all(uuid in published_uuids for uuid in uuids):
                self.ledger.complete_migration(record["id"], uuids)
                completed.append(record["id"])
        return completed


def configure_logging(verbose: bool = False) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else "INFO",
        format="<level>[{level.name}]</level> {message}",
    )


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Export the Day One Public/Published journals and track migrations."
    )
    parser.add_argument(
        "--state-file",
        type=Path,
        default=DEFAULT_STATE_FILE,
        help=f"Journal state JSON file (default: {DEFAULT_STATE_FILE}).",
    )
    parser.add_argument(
        "--download-dir",
        type=Path,
        default=DEFAULT_DOWNLOAD_DIR,
        help=f"Directory for exported files (default: {DEFAULT_DOWNLOAD_DIR}).",
    )
    parser.add_argument(
        "--debug-dir",
        type=Path,
        help="Directory for failure screenshots/HTML (default: <download-dir>/debug).",
    )
    parser.add_argument("--public-journal", default=PUBLIC_JOURNAL)
    parser.add_argument("--published-journal", default=PUBLISHED_JOURNAL)
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Launch the browser in headless mode (default).",
    )
    parser.add_argument(
        "--headed",
        action="store_true",
        help="Launch the browser with a visible window for troubleshooting.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="Seconds to wait for page elements before timing out (default: 10).",
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Also write the workflow summary JSON to this file.",
    )
    parser.add_argument(
        "--report",
        action="store_true",
        help="Print the migration ledger report and exit without exporting.",
    )
    parser.add_argument(
        "--keep-downloads",
        action="store_true",
        help="Keep the export files this run recovered.",
    )
    parser.add_argument(
        "--email",
        help=(
            "Day One account email. If omitted, the script reads from the "
            "DAYONE_EMAIL environment variable or prompts interactively."
        ),
    )
    parser.add_argument(
        "--password",
        help=(
            "Day One password. If omitted, the script reads from the "
            "DAYONE_PASSWORD environment variable or prompts interactively."
        ),
    )
    parser.add_argument("--verbose", action="store_true", help="Log polling detail.")
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.headless and args.headed:
        parser.error("--headless and --headed cannot be used together")

    return args


def prompt_for_credentials(args: argparse.Namespace) -> Tuple[str, str]:
    email = (args.email or os.environ.get("DAYONE_EMAIL") or "").strip()
    password = args.password or os.environ.get("DAYONE_PASSWORD")

    if not email:
        email = input("Day One email: ").strip()
    if not password:
        password = getpass.getpass("Day One password: ")

    return email, password


def build_exporter_config(args: argparse.Namespace) -> ExporterConfig:
    return ExporterConfig(
        download_dir=args.download_dir,
        debug_dir=args.debug_dir,
        headless=not args.headed,
        executable_path=os.environ.get("DAYONE_BROWSER_PATH") or None,
        timeout=args.timeout,
    )


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)

    store = StateStore(args.state_file, (args.public_journal, args.published_journal))
    ledger = MigrationLedger(store)

    if args.report:
        print(json.dumps(ledger.generate_report(), indent=2, ensure_ascii=False))
        return 0

    email, password = prompt_for_credentials(args)
    config = build_exporter_config(args)

    session: Optional[BrowserSession] = None
    try:
        with open_browser_session(config) as session:
            exporter = DayOneExporter(session, config, email, password)
            workflow = JournalWorkflow(
                exporter.acquire_entries,
                store,
                ledger,
                public_journal=args.public_journal,
                published_journal=args.published_journal,
            )
            summary = workflow.run_workflow()
    finally:
        if session is not None and not args.keep_downloads:
            cleanup_downloads(session.artifacts)

    payload = json.dumps(summary.to_dict(), indent=2, ensure_ascii=False)
    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(payload, encoding="utf-8")
        print(f"Saved summary to {args.output}")
    print(payload)
    return 1 if len(summary.failed_journals) == 2 else 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
