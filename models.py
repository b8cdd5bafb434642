"""
models.py
Domain records (branches, trainers, programs, sessions, users) as frozen dataclasses.
Records are never mutated in place; transitions return new instances via dataclasses.replace.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Union

from config import fixed_rate_label
from errors import InconsistentState

PROGRAM_STATUSES = ("valid", "suspended", "expired")
SESSION_STATUSES = ("booked", "completed")
ROLES = ("unassigned", "trainer", "manager", "admin")

# Stored in place of a percentage when a fixed rate was applied
FIXED_RATE_SENTINEL = -1


@dataclass(frozen=True)
class Branch:
    id: str
    name: str


@dataclass(frozen=True)
class Percentage:
    """Share of the unit price, 0..1."""

    value: float

    kind = "percentage"

    def describe(self, lang: str | None = None) -> str:
        return f"{self.value * 100:.1f}%"

    def to_stored(self) -> float:
        return self.value


@dataclass(frozen=True)
class Fixed:
    """Absolute amount per session, independent of the unit price."""

    amount: int

    kind = "fixed"

    @property
    def value(self) -> int:
        return self.amount

    def describe(self, lang: str | None = None) -> str:
        return fixed_rate_label(lang)

    def to_stored(self) -> int:
        return FIXED_RATE_SENTINEL


BranchRate = Union[Percentage, Fixed]


def rate_from_stored(stored_rate: float, trainer_fee: int) -> BranchRate:
    """
    Rebuild the tagged rate of a completed session from its stored columns.
    A fixed rate is stored as the sentinel; its amount is the frozen trainer fee.
    """
    if stored_rate == FIXED_RATE_SENTINEL:
        return Fixed(int(trainer_fee))
    return Percentage(float(stored_rate))


def rate_from_dict(d: dict) -> BranchRate:
    if d["type"] == "fixed":
        return Fixed(int(d["value"]))
    if d["type"] == "percentage":
        return Percentage(float(d["value"]))
    raise ValueError(f"Unknown rate type: {d['type']!r}")


def rate_to_dict(rate: BranchRate) -> dict:
    return {"type": rate.kind, "value": rate.value}


@dataclass(frozen=True)
class Trainer:
    id: str
    name: str
    is_active: bool = True
    # branch_id -> rate; a missing branch means the trainer cannot bill there
    branch_rates: dict = field(default_factory=dict)
    branch_ids: tuple = ()


@dataclass(frozen=True)
class Member:
    id: str
    name: str
    contact: str = ""
    branch_id: str | None = None


@dataclass(frozen=True)
class MemberProgram:
    id: str
    member_ids: tuple
    program_name: str
    total_sessions: int
    unit_price: int
    branch_id: str
    completed_sessions: int = 0
    status: str = "valid"  # valid / suspended / expired
    assigned_trainer_id: str | None = None
    default_session_duration: int = 50  # minutes

    def __post_init__(self):
        if self.status not in PROGRAM_STATUSES:
            raise ValueError(f"Unknown program status: {self.status!r}")
        if not 0 <= self.completed_sessions <= self.total_sessions:
            raise InconsistentState(
                f"완료 횟수({self.completed_sessions})가 총 횟수({self.total_sessions}) 범위를 벗어났습니다."
            )

    @property
    def remaining_sessions(self) -> int:
        return self.total_sessions - self.completed_sessions


@dataclass(frozen=True)
class Session:
    id: str
    program_id: str
    session_number: int  # 1-based, unique within a program
    trainer_id: str
    date: date
    start_time: time
    duration: int  # minutes
    status: str = "booked"  # booked / completed
    attended_member_ids: tuple = ()
    # Set only on completion, frozen afterwards
    session_fee: int | None = None
    trainer_fee: int | None = None
    trainer_rate: BranchRate | None = None
    completed_at: datetime | None = None

    def __post_init__(self):
        if self.status not in SESSION_STATUSES:
            raise ValueError(f"Unknown session status: {self.status!r}")
        fees = (self.session_fee, self.trainer_fee, self.trainer_rate)
        if self.status == "completed" and any(f is None for f in fees):
            raise InconsistentState(f"완료된 세션 {self.id}에 정산 정보가 없습니다.")
        if self.status == "booked" and any(f is not None for f in fees):
            raise InconsistentState(f"예약 상태의 세션 {self.id}에 정산 정보가 있습니다.")

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.date, self.start_time)

    @property
    def stored_trainer_rate(self) -> float | None:
        if self.trainer_rate is None:
            return None
        return self.trainer_rate.to_stored()


@dataclass(frozen=True)
class User:
    id: str
    name: str | None
    role: str = "unassigned"  # unassigned / trainer / manager / admin
    # Only meaningful for managers
    assigned_branch_ids: frozenset = frozenset()
    # Only meaningful for trainers
    trainer_profile_id: str | None = None

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Unknown role: {self.role!r}")
