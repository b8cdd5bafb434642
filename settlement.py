"""
settlement.py
Trainer settlement over a date range, built from the fees stored on completed sessions.

Trust boundary: nothing here checks who is asking. Callers restrict a trainer
to their own trainer_id (permissions.settlement_scope) before calling aggregate().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta

from models import Session

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "session_datetime",
    "program_name",
    "attended_members",
    "branch_name",
    "unit_price",
    "trainer_fee",
    "session_revenue",
    "rate",
]


@dataclass(frozen=True)
class Settlement:
    session_count: int
    total_fee: int
    total_revenue: int
    sessions: tuple  # most recent first


@dataclass(frozen=True)
class TrainerStat:
    trainer_id: str
    trainer_name: str
    session_count: int
    total_fee: int


EMPTY_SETTLEMENT = Settlement(session_count=0, total_fee=0, total_revenue=0, sessions=())


def _program_map(programs) -> dict:
    if isinstance(programs, dict):
        return programs
    return {p.id: p for p in programs}


def aggregate(
    sessions,
    programs,
    trainer_id: str,
    start: date,
    end: date,
    branch_id: str | None = None,
) -> Settlement:
    """
    Completed sessions of ``trainer_id`` dated within [start, end] (both inclusive),
    optionally limited to programs of ``branch_id``.
    """
    if start > end:
        logger.debug("Vacuous settlement range %s..%s for trainer %s", start, end, trainer_id)
        return EMPTY_SETTLEMENT

    program_map = _program_map(programs)
    picked: list[Session] = []
    for s in sessions:
        if s.trainer_id != trainer_id or not s.is_completed:
            continue
        if not start <= s.date <= end:
            continue
        if branch_id:
            program = program_map.get(s.program_id)
            if program is None or program.branch_id != branch_id:
                continue
        picked.append(s)

    if not picked:
        return EMPTY_SETTLEMENT

    picked.sort(key=lambda s: (s.date, s.start_time, s.id), reverse=True)
    return Settlement(
        session_count=len(picked),
        total_fee=sum(s.trainer_fee for s in picked),
        total_revenue=sum(s.session_fee for s in picked),
        sessions=tuple(picked),
    )


def export_rows(settlement: Settlement, programs, members, branches, lang: str | None = None) -> list[dict]:
    """Flat rows for the settlement table / CSV, in EXPORT_COLUMNS order."""
    program_map = _program_map(programs)
    member_names = {m.id: m.name for m in members}
    branch_names = {b.id: b.name for b in branches}

    rows = []
    for s in settlement.sessions:
        program = program_map.get(s.program_id)
        rows.append(
            {
                "session_datetime": f"{s.date.isoformat()} {s.start_time.strftime('%H:%M')}",
                "program_name": program.program_name if program else "",
                "attended_members": ", ".join(member_names.get(mid, mid) for mid in s.attended_member_ids),
                "branch_name": branch_names.get(program.branch_id, program.branch_id) if program else "",
                "unit_price": program.unit_price if program else 0,
                "trainer_fee": s.trainer_fee,
                "session_revenue": s.session_fee,
                "rate": s.trainer_rate.describe(lang),
            }
        )
    return rows


def trainer_stats(trainers, sessions, programs, start: date, end: date, branch_id: str | None = None) -> list[TrainerStat]:
    """Dashboard summary: one line per trainer, highest total fee first."""
    program_map = _program_map(programs)
    stats = []
    for t in trainers:
        if branch_id and branch_id not in t.branch_ids:
            continue
        result = aggregate(sessions, program_map, t.id, start, end, branch_id)
        stats.append(TrainerStat(t.id, t.name, result.session_count, result.total_fee))
    stats.sort(key=lambda st: st.total_fee, reverse=True)
    return stats


# ---------- Range presets ----------

def this_month(today: date) -> tuple[date, date]:
    start = today.replace(day=1)
    next_month = (start.replace(day=28) + timedelta(days=4)).replace(day=1)
    return start, next_month - timedelta(days=1)


def last_month(today: date) -> tuple[date, date]:
    end = today.replace(day=1) - timedelta(days=1)
    return end.replace(day=1), end


def all_time(sessions, trainer_id: str) -> tuple[date, date] | None:
    """First and last day the trainer completed a session, or None."""
    dates = [s.date for s in sessions if s.trainer_id == trainer_id and s.is_completed]
    if not dates:
        return None
    return min(dates), max(dates)
