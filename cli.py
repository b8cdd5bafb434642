"""
cli.py
Command line entry point.
Run: studio init-db [--sample] | studio settlement ... | studio check-integrity
"""

from __future__ import annotations

import argparse
import logging
import sys

import config
import db
import progress
import settlement
import utils
from errors import StudioError

logger = logging.getLogger(__name__)


def cmd_init_db(args) -> None:
    db.init_db()
    if args.sample:
        utils.insert_sample_data()
        logger.info("Sample data inserted.")


def cmd_settlement(args) -> None:
    programs = db.load_programs()
    sessions = db.load_sessions()
    result = settlement.aggregate(
        sessions, programs, args.trainer, utils.parse_iso(args.start), utils.parse_iso(args.end), args.branch
    )
    df = utils.settlement_to_dataframe(result, programs, db.load_members(), db.load_branches(), args.lang)
    if args.csv:
        sys.stdout.buffer.write(df.to_csv(index=False).encode("utf-8"))
        return
    print(f"sessions: {result.session_count}  trainer fee: {result.total_fee:,}  revenue: {result.total_revenue:,}")
    if not df.empty:
        print(df.to_string(index=False))


def cmd_check_integrity(args) -> int:
    sessions = db.load_sessions()
    problems = 0
    for program in db.load_programs():
        try:
            progress.check_integrity(program, sessions)
        except StudioError as e:
            problems += 1
            logger.warning("Program %s: %s", program.id, e.message)
    print(f"{problems} program(s) with inconsistent counters")
    return 1 if problems else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="studio", description="Studio session & settlement tools")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init-db", help="create tables")
    p.add_argument("--sample", action="store_true", help="also insert sample data")
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser("settlement", help="trainer settlement for a date range")
    p.add_argument("--trainer", required=True)
    p.add_argument("--start", required=True, help="YYYY-MM-DD")
    p.add_argument("--end", required=True, help="YYYY-MM-DD")
    p.add_argument("--branch", default=None)
    p.add_argument("--lang", default=None, choices=sorted(config.FIXED_RATE_LABELS))
    p.add_argument("--csv", action="store_true", help="write CSV to stdout")
    p.set_defaults(func=cmd_settlement)

    p = sub.add_parser("check-integrity", help="compare program counters with completed sessions")
    p.set_defaults(func=cmd_check_integrity)
    return parser


def main(argv=None) -> int:
    config.setup_logging()
    args = build_parser().parse_args(argv)
    try:
        return args.func(args) or 0
    except StudioError as e:
        print(e.message, file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
