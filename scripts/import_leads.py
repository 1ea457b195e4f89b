#!/usr/bin/env python3
"""
CSV Lead Import Script

Claims every row of a CSV file as a lead owned by the given seller, through
the same ownership rules as manual entries:
- Rows whose business is already saved are reported with the current owner
- Rows without a name are skipped
- Summary statistics and error logging

Leads are written to the store selected by CRM_STORE; use "supabase" for
an import that outlives the script.

Usage:
    python scripts/import_leads.py path/to/leads.csv --actor Diego
    python scripts/import_leads.py path/to/leads.csv --actor Diego --dry-run
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path

# Add parent directory to path to import modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.identity import roster_actor
from repositories.client import load_settings
from repositories.factory import open_store
from services.lead_csv_service import read_lead_candidates
from services.session import Session


@dataclass
class ImportResult:
    """Results from CSV import operation."""
    total_rows: int = 0
    claimed: int = 0
    conflicts: int = 0
    skipped: int = 0
    errors: list[dict] = field(default_factory=list)


def import_csv(csv_path: str, actor_name: str, dry_run: bool = False) -> ImportResult:
    """
    Import leads from a CSV file for `actor_name`.

    Raises:
        FileNotFoundError: If CSV file doesn't exist
        ValueError: If CSV is malformed
    """
    csv_file = Path(csv_path)
    if not csv_file.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    with open(csv_file, "r", encoding="utf-8-sig") as f:
        parsed = read_lead_candidates(f)

    result = ImportResult(
        total_rows=len(parsed.candidates) + len(parsed.skipped),
        skipped=len(parsed.skipped),
        errors=list(parsed.skipped),
    )

    print(f"Reading CSV: {csv_path}")
    print(f"Actor: {actor_name}")
    print(f"Dry run: {dry_run}")
    print()

    if dry_run:
        result.claimed = len(parsed.candidates)
        return result

    settings = load_settings()
    actor = roster_actor(actor_name, settings.administrators)
    with Session(open_store(settings), actor) as session:
        outcome = session.ownership.claim_many(parsed.candidates, actor)

    result.claimed = len(outcome.claimed)
    result.conflicts = len(outcome.conflicts)
    result.errors.extend(
        {"name": conflict.candidate.name, "owner": conflict.owner, "error": conflict.message}
        for conflict in outcome.conflicts
    )
    return result


def print_summary(result: ImportResult) -> None:
    """Print import summary statistics."""
    print()
    print("=" * 60)
    print("IMPORT SUMMARY")
    print("=" * 60)
    print(f"Total Rows:       {result.total_rows}")
    print(f"Claimed:          {result.claimed}")
    print(f"Already Owned:    {result.conflicts}")
    print(f"Skipped:          {result.skipped}")
    print()

    if result.errors:
        print(f"Errors:           {len(result.errors)}")
        print()
        print("First 5 errors:")
        for error in result.errors[:5]:
            print(f"  - {error.get('name') or 'Row ' + str(error.get('row_num', 'N/A'))}: {error['error']}")
        if len(result.errors) > 5:
            print(f"  ... and {len(result.errors) - 5} more")
    else:
        print("No errors!")

    print("=" * 60)


def save_error_log(errors: list[dict], output_path: str) -> None:
    """Save error details to JSON file."""
    if not errors:
        return

    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(errors, f, indent=2, default=str)

    print(f"\nError log saved to: {output_path}")


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Import leads from CSV, claiming them for one seller",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Basic import
  python scripts/import_leads.py leads.csv --actor Diego

  # Dry run (parse only, don't claim)
  python scripts/import_leads.py leads.csv --actor Diego --dry-run

  # Save error log to custom path
  python scripts/import_leads.py leads.csv --actor Diego --error-log errors.json
        """
    )

    parser.add_argument("csv_path", help="Path to the CSV file to import")
    parser.add_argument("--actor", required=True, help="Seller who will own the imported leads")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse and validate CSV without claiming anything"
    )
    parser.add_argument(
        "--error-log",
        default="import_errors.json",
        help="Path to save error log (default: import_errors.json)"
    )

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        result = import_csv(args.csv_path, args.actor, dry_run=args.dry_run)
    except (FileNotFoundError, ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print_summary(result)
    save_error_log(result.errors, args.error_log)
    return 0 if not result.conflicts else 2


if __name__ == "__main__":
    sys.exit(main())
