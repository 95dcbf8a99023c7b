#!/usr/bin/env python3
"""
Rebuild the derived item flags of every planner.

Items cache whether a priority or time block references them. This script
recomputes those flags from the stored references and reports the items
whose cached values had drifted.

Usage:
    python scripts/reconcile_flags.py [--dry-run]

Options:
    --dry-run    Report drifted items without writing the corrections
"""
import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlmodel import Session, select

from timebox.core.database import create_db_and_tables, engine
from timebox.models import Planner
from timebox.planner.reconcile import flag_drift, reconcile_all


def report_drift(session: Session) -> int:
    """Print drifted items without changing anything. Returns how many."""
    drifted = 0
    for planner in session.exec(select(Planner)).all():
        for item, expected in flag_drift(session, planner):
            drifted += 1
            print(
                f"  {planner.planner_date} {item.id} '{item.text}': "
                f"priority {item.is_priority}->{expected.is_priority}, "
                f"scheduled {item.is_scheduled}->{expected.is_scheduled}"
            )
    return drifted


def main(dry_run: bool = False):
    create_db_and_tables()
    with Session(engine) as session:
        if dry_run:
            print("Dry run: checking derived flags")
            drifted = report_drift(session)
            print(f"{drifted} item(s) would be corrected")
            return

        stats = reconcile_all(session)
        print(f"Checked {stats['planners']} planner(s), corrected {stats['corrected']} item(s)")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Rebuild derived item flags")
    parser.add_argument("--dry-run", action="store_true", help="Report without writing")
    args = parser.parse_args()
    main(dry_run=args.dry_run)
