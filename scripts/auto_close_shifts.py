"""
Periodic maintenance for shifts and held bonuses.

Closes ACTIVE shifts whose scheduled end passed more than 30 minutes ago and
settles HELD bonuses whose hold expired: released, or burned when the day
they were earned on collapsed. Safe to run from cron:

  */10 * * * * python scripts/auto_close_shifts.py
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.umbra.modules.bonuses.service import process_held_payments
from app.umbra.modules.shifts.service import auto_close_overdue_shifts
from scripts._db_utils import resolve_database_url, script_session

logger = logging.getLogger("umbra.auto_close")


def run(*, database_url: str | None = None, release_bonuses: bool = True) -> dict:
    db_url = resolve_database_url(database_url)
    with script_session(db_url) as s:
        closed = auto_close_overdue_shifts(s)
        held = process_held_payments(s) if release_bonuses else {"released": 0, "burned": 0}
        closed_ids = [shift.id for shift in closed]
    return {
        "closed": len(closed_ids),
        "closedShiftIds": closed_ids,
        "releasedPayments": held["released"],
        "burnedPayments": held["burned"],
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Close overdue shifts and release held bonuses.")
    parser.add_argument("--database-url", default=None, help="Overrides DATABASE_URL.")
    parser.add_argument("--no-release", action="store_true", help="Leave held bonus payments untouched.")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    result = run(database_url=args.database_url, release_bonuses=not args.no_release)
    logger.info(
        "Closed %s shift(s) %s; released %s and burned %s held payment(s)",
        result["closed"],
        result["closedShiftIds"],
        result["releasedPayments"],
        result["burnedPayments"],
    )


if __name__ == "__main__":
    main()
