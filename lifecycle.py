"""
lifecycle.py
Session booking and completion.

Completion returns the new session together with the new program; the caller
must persist both in one transaction (see db.complete_session) and must make
sure the same session is never completed twice concurrently.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime, time

import rates
from errors import InconsistentState, NotAuthorized
from models import MemberProgram, Session, Trainer

logger = logging.getLogger(__name__)


def book_session(
    program: MemberProgram,
    existing_sessions,
    session_id: str,
    session_number: int,
    trainer_id: str,
    session_date: date,
    start_time: time,
    duration: int | None = None,
) -> Session:
    """Create a booked session. Only programs with status 'valid' accept new bookings."""
    if program.status != "valid":
        raise InconsistentState(f"'{program.program_name}' 프로그램은 현재 예약할 수 없습니다 ({program.status}).")
    if not 1 <= session_number <= program.total_sessions:
        raise InconsistentState(
            f"회차 번호 {session_number}는 1~{program.total_sessions} 범위를 벗어났습니다."
        )
    taken = {s.session_number for s in existing_sessions if s.program_id == program.id}
    if session_number in taken:
        raise InconsistentState(f"{session_number}회차는 이미 예약되어 있습니다.")

    return Session(
        id=session_id,
        program_id=program.id,
        session_number=session_number,
        trainer_id=trainer_id,
        date=session_date,
        start_time=start_time,
        duration=duration if duration is not None else program.default_session_duration,
    )


def complete_session(
    session: Session,
    program: MemberProgram,
    trainer: Trainer,
    attended_member_ids,
    completed_at: datetime,
) -> tuple[Session, MemberProgram]:
    """
    Freeze fees on the session and bump the program counter.
    Every check runs before anything is built, so a failure leaves both records untouched.
    """
    if session.is_completed:
        raise InconsistentState(f"{session.session_number}회차는 이미 완료된 수업입니다.")
    if session.program_id != program.id:
        raise InconsistentState(f"세션 {session.id}는 프로그램 {program.id}에 속하지 않습니다.")
    if trainer.id != session.trainer_id:
        raise InconsistentState(f"세션 {session.id}의 담당 강사가 아닙니다: {trainer.id}")

    attended = tuple(attended_member_ids)
    outsiders = set(attended) - set(program.member_ids)
    if outsiders:
        raise InconsistentState(f"프로그램 회원이 아닌 참석자가 있습니다: {', '.join(sorted(outsiders))}")
    if program.completed_sessions >= program.total_sessions:
        raise InconsistentState(f"'{program.program_name}' 프로그램의 잔여 횟수가 없습니다.")

    rate = rates.resolve(trainer, program.branch_id)
    fees = rates.compute_fees(program.unit_price, rate)

    done = replace(
        session,
        status="completed",
        attended_member_ids=attended,
        session_fee=fees.session_fee,
        trainer_fee=fees.trainer_fee,
        trainer_rate=rate,
        completed_at=completed_at,
    )
    updated_program = replace(program, completed_sessions=program.completed_sessions + 1)
    logger.info(
        "Completed session %s (program %s #%s): trainer_fee=%s session_fee=%s",
        session.id, program.id, session.session_number, fees.trainer_fee, fees.session_fee,
    )
    return done, updated_program


def assign_trainer(program: MemberProgram, trainer: Trainer) -> MemberProgram:
    if not trainer.is_active:
        raise NotAuthorized("비활성 상태의 강사는 배정할 수 없습니다.")
    if program.assigned_trainer_id == trainer.id:
        return program
    return replace(program, assigned_trainer_id=trainer.id)


def set_trainer_active(trainer: Trainer, is_active: bool) -> Trainer:
    if trainer.is_active == is_active:
        return trainer
    return replace(trainer, is_active=is_active)
