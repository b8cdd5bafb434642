"""
rates.py
Trainer rate lookup and per-session fee calculation.

Fees are computed once, when a session is completed, and stored on the session.
Reports read the stored values and never call into this module again.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from errors import InvalidRate, NotAuthorized
from models import BranchRate, Fixed, Percentage, Trainer


@dataclass(frozen=True)
class Fees:
    trainer_fee: int
    session_fee: int


def resolve(trainer: Trainer, branch_id: str) -> BranchRate:
    """Rate the trainer bills at ``branch_id``; NotAuthorized if none or trainer inactive."""
    if not trainer.is_active:
        raise NotAuthorized(f"비활성 상태의 강사({trainer.name})는 정산할 수 없습니다.")
    rate = trainer.branch_rates.get(branch_id)
    if rate is None:
        raise NotAuthorized()
    return rate


def round_money(amount) -> int:
    """Nearest whole currency unit, ties away from zero (half up)."""
    return int(Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def validate_rate(rate: BranchRate) -> None:
    if not math.isfinite(rate.value):
        raise InvalidRate(f"요율 값이 숫자가 아닙니다: {rate.value}")
    if rate.value < 0:
        raise InvalidRate(f"요율은 음수일 수 없습니다: {rate.value}")
    if isinstance(rate, Percentage) and rate.value > 1:
        raise InvalidRate(f"비율 요율은 0에서 1 사이여야 합니다: {rate.value}")


def compute_fees(base_price: int, rate: BranchRate) -> Fees:
    """
    Trainer fee and studio revenue for one session.
    Revenue is always the full unit price; the trainer fee is a cost on top of it.
    """
    validate_rate(rate)
    if base_price < 0:
        raise ValueError(f"Base price must not be negative: {base_price}")
    if isinstance(rate, Fixed):
        trainer_fee = round_money(rate.amount)
    else:
        trainer_fee = round_money(Decimal(str(base_price)) * Decimal(str(rate.value)))
    return Fees(trainer_fee=trainer_fee, session_fee=round_money(base_price))
