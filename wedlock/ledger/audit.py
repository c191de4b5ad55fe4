"""
Event Journal Audit Tool — chain integrity and per-couple lifecycle replay.

Two checks are run against the journal database:

1. The hash chain is recomputed end to end, so any retroactively altered
   entry is detected.
2. With --pair or --record, the entries of one couple's Record are replayed
   through the lifecycle (engaged → married → dissolved) and every event
   that could not have been committed from the replayed state is reported.

Usage:
    wedlock-audit
    wedlock-audit --pair alice bob
    wedlock-audit --record 3f9a... --database-url sqlite:///wedlock_journal.db
"""

from __future__ import annotations

import argparse
import sys

from rich.console import Console
from rich.table import Table

from wedlock.config import settings
from wedlock.ledger.models import JournalEntryDB
from wedlock.ledger.service import EventJournal
from wedlock.protocol.keys import derive_record_key
from wedlock.protocol.schema import JournalEventType, LifecycleStatus

console = Console()

E = JournalEventType
S = LifecycleStatus

# event type -> (states it may follow, state it leads to; None keeps the state)
LIFECYCLE_TRANSITIONS: dict[JournalEventType, tuple[set[LifecycleStatus | None], LifecycleStatus | None]] = {
    E.ENGAGEMENT_PROPOSED: ({None, S.DISSOLVED}, None),
    E.ENGAGED: ({None, S.DISSOLVED}, S.ENGAGED),
    E.WEDDING_DATE_CHANGED: ({S.ENGAGED}, None),
    E.ENGAGEMENT_REVOKED: ({S.ENGAGED}, S.DISSOLVED),
    E.GUEST_LIST_PROPOSED: ({S.ENGAGED}, None),
    E.GUEST_LIST_CONFIRMED: ({S.ENGAGED}, None),
    E.VETO_VOTE_CAST: ({S.ENGAGED}, None),
    E.WEDDING_VETOED: ({S.ENGAGED}, S.DISSOLVED),
    E.MARRIAGE_PROPOSED: ({S.ENGAGED}, None),
    E.MARRIED: ({S.ENGAGED}, S.MARRIED),
    E.DIVORCE_VOTE_CAST: ({S.MARRIED}, None),
    E.DIVORCED: ({S.MARRIED}, S.DISSOLVED),
}


def replay_lifecycle(
    entries: list[JournalEntryDB],
) -> tuple[LifecycleStatus | None, list[tuple[int, str]]]:
    """
    Replay one Record's entries, oldest first.

    Returns:
        The final lifecycle state and a list of (sequence_number, problem).
    """
    current: LifecycleStatus | None = None
    problems: list[tuple[int, str]] = []
    for entry in entries:
        try:
            event = JournalEventType(entry.event_type)
        except ValueError:
            problems.append((entry.sequence_number, f"unknown event {entry.event_type!r}"))
            continue
        if event not in LIFECYCLE_TRANSITIONS:
            problems.append((entry.sequence_number, f"{event.value} is not a Record event"))
            continue

        allowed, target = LIFECYCLE_TRANSITIONS[event]
        if current not in allowed:
            state = current.value if current else "no record"
            problems.append((entry.sequence_number, f"{event.value} while {state}"))
        if target is not None:
            current = target
    return current, problems


def audit_record(journal: EventJournal, record_key: str) -> bool:
    """Print one couple's timeline and report lifecycle violations."""
    entries = journal.get_entries_for_record(record_key)
    console.print(f"\n  Record [magenta]{record_key[:16]}[/magenta]: {len(entries)} entries")
    if not entries:
        console.print("  [yellow]No journal entries for this record[/yellow]")
        return True

    final, problems = replay_lifecycle(entries)
    flagged = dict(problems)

    table = Table(show_lines=False)
    table.add_column("Seq", style="cyan", width=6)
    table.add_column("Recorded at", width=12)
    table.add_column("Event", style="green", width=22)
    table.add_column("Actor", style="yellow", width=16)
    table.add_column("Details")
    for entry in entries:
        details = ", ".join(f"{k}={v}" for k, v in (entry.content or {}).items())
        if entry.sequence_number in flagged:
            details = f"[bold red]{flagged[entry.sequence_number]}[/bold red]"
        table.add_row(
            str(entry.sequence_number),
            str(entry.recorded_at),
            entry.event_type,
            entry.actor,
            details,
        )
    console.print(table)

    console.print(f"  Final state: [bold]{final.value if final else 'no record'}[/bold]")
    if problems:
        console.print(f"  [bold red]✗ {len(problems)} lifecycle violation(s)[/bold red]")
        return False
    console.print("  [bold green]✓ Lifecycle consistent[/bold green]")
    return True


def run_audit(database_url: str, record_key: str | None = None) -> bool:
    """
    Verify the hash chain and, optionally, one Record's lifecycle.

    Returns:
        True when every check passed.
    """
    journal = EventJournal(database_url)
    try:
        count = journal.get_entry_count()
        console.print(f"[bold blue]Wedlock journal audit[/bold blue]: {count} entries")

        is_valid, position, message = journal.verify_chain()
        if is_valid:
            console.print(f"  [bold green]✓[/bold green] {message}")
        else:
            console.print(f"  [bold red]✗ Chain broken at entry {position}:[/bold red] {message}")

        if record_key is not None:
            is_valid = audit_record(journal, record_key) and is_valid
        return is_valid
    finally:
        journal.close()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Verify the Wedlock event journal and replay a couple's lifecycle"
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy URL of the journal (defaults to .env settings)",
    )
    target = parser.add_mutually_exclusive_group()
    target.add_argument(
        "--pair",
        nargs=2,
        metavar=("PRINCIPAL_A", "PRINCIPAL_B"),
        help="Replay the lifecycle of the Record shared by two principals",
    )
    target.add_argument("--record", help="Replay the lifecycle of a Record key")
    args = parser.parse_args(argv)

    record_key = args.record
    if args.pair:
        record_key = derive_record_key(*args.pair)

    db_url = args.database_url or settings.journal_database_url
    is_valid = run_audit(db_url, record_key=record_key)
    sys.exit(0 if is_valid else 1)


if __name__ == "__main__":
    main()
