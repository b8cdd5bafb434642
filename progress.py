"""
progress.py
Per-program session tracker: slot states, remaining sessions, last visit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime

from errors import InconsistentState
from models import MemberProgram, Session

logger = logging.getLogger(__name__)

SLOT_EMPTY = "empty"
SLOT_BOOKED = "booked"
SLOT_COMPLETED = "completed"
SLOT_OVERDUE = "overdue"


@dataclass(frozen=True)
class SlotView:
    number: int
    state: str
    session: Session | None = None

    @property
    def trainer_id(self) -> str | None:
        return self.session.trainer_id if self.session else None

    @property
    def date(self) -> date | None:
        return self.session.date if self.session else None

    @property
    def attended_member_ids(self) -> tuple:
        return self.session.attended_member_ids if self.session else ()


def _sessions_by_number(program: MemberProgram, sessions) -> dict[int, Session]:
    by_number: dict[int, Session] = {}
    for s in sessions:
        if s.program_id != program.id:
            continue
        if s.session_number in by_number:
            raise InconsistentState(
                f"'{program.program_name}' 프로그램에 {s.session_number}회차 세션이 중복되어 있습니다."
            )
        by_number[s.session_number] = s
    return by_number


def derive_slots(program: MemberProgram, sessions, now: datetime) -> list[SlotView]:
    """
    One SlotView per purchased session, in order.
    A booked session whose start lies before ``now`` is shown as overdue.
    Session times are naive local time; an aware ``now`` is converted to local time first.
    """
    if now.tzinfo is not None:
        now = now.astimezone().replace(tzinfo=None)
    by_number = _sessions_by_number(program, sessions)
    slots = []
    for i in range(1, program.total_sessions + 1):
        s = by_number.get(i)
        if s is None:
            slots.append(SlotView(i, SLOT_EMPTY))
        elif s.is_completed:
            slots.append(SlotView(i, SLOT_COMPLETED, s))
        elif s.starts_at < now:
            slots.append(SlotView(i, SLOT_OVERDUE, s))
        else:
            slots.append(SlotView(i, SLOT_BOOKED, s))

    stray = sorted(n for n in by_number if not 1 <= n <= program.total_sessions)
    if stray:
        logger.debug("Program %s has sessions outside its slots: %s", program.id, stray)
    return slots


def remaining(program: MemberProgram) -> int:
    return program.total_sessions - program.completed_sessions


def last_completed_session(sessions) -> Session | None:
    # Latest date wins; ties go to the higher session number
    completed = [s for s in sessions if s.is_completed]
    if not completed:
        return None
    return max(completed, key=lambda s: (s.date, s.session_number))


def days_since_last_session(sessions, today: date) -> int | None:
    last = last_completed_session(sessions)
    if last is None:
        return None
    return (today - last.date).days


def check_integrity(program: MemberProgram, sessions) -> None:
    """
    Raise InconsistentState when the program's counter disagrees with its sessions.
    Meant for periodic checks, not for every render.
    """
    by_number = _sessions_by_number(program, sessions)
    completed = sum(1 for s in by_number.values() if s.is_completed)
    if completed != program.completed_sessions:
        raise InconsistentState(
            f"'{program.program_name}' 프로그램의 완료 횟수({program.completed_sessions})가 "
            f"완료된 세션 수({completed})와 다릅니다."
        )
