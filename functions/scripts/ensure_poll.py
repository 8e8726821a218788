"""
CLI helper to create the configured poll if missing and print its standings.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from newsboard.config import get_settings
from newsboard.dependencies import get_db_client
from newsboard.tally import tally

logger = logging.getLogger(__name__)


def main() -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Initialize the team poll")
    parser.add_argument(
        "--slug",
        type=str,
        default=settings.poll_slug,
        help="Poll slug to fetch or create",
    )
    parser.add_argument(
        "--close",
        action="store_true",
        help="Mark the poll inactive so no further votes are accepted",
    )
    parser.add_argument(
        "--open",
        action="store_true",
        help="Mark the poll active again",
    )
    parser.add_argument(
        "--show",
        action="store_true",
        help="Print the current ranking",
    )
    args = parser.parse_args()
    logging.basicConfig(level=settings.log_level.upper())

    if args.close and args.open:
        parser.error("--close and --open are mutually exclusive")

    db = get_db_client()
    poll = db.ensure_poll(
        args.slug,
        title=settings.poll_title,
        description=settings.poll_description,
        roster=settings.poll_roster,
    )
    logger.info("Poll %s (%s) has %d teams", poll.slug, poll.poll_id, len(poll.teams))

    if args.close or args.open:
        poll = db.set_poll_active(poll.poll_id, args.open)
        logger.info("Poll %s is now %s", poll.slug, "open" if poll.is_active else "closed")

    if args.show:
        result = tally(poll.teams, db.list_votes(poll.poll_id))
        print(f"{poll.title} ({result.total_votes} votes)")
        for index, entry in enumerate(result.entries, start=1):
            print(f"#{index:<3} {entry.candidate:<40} {entry.votes:>5}  {entry.percentage:5.1f}%")
    return 0


if __name__ == "__main__":
    sys.exit(main())
