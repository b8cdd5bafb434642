"""
utils.py
Dates, tabular exports, sample data.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
import pandas as pd

import db
from models import Branch, Fixed, Member, MemberProgram, Percentage, Session, Trainer, User
from settlement import EXPORT_COLUMNS, Settlement, export_rows

SLOT_COLUMNS = ["number", "state", "trainer_id", "date", "attended_member_ids"]


def parse_iso(d: str) -> date:
    return date.fromisoformat(d)


def parse_hhmm(t: str) -> time:
    return datetime.strptime(t, "%H:%M").time()


def settlement_to_dataframe(settlement: Settlement, programs, members, branches, lang: str | None = None) -> pd.DataFrame:
    rows = export_rows(settlement, programs, members, branches, lang)
    if not rows:
        return pd.DataFrame(columns=EXPORT_COLUMNS)
    return pd.DataFrame(rows, columns=EXPORT_COLUMNS)


def settlement_to_csv_bytes(settlement: Settlement, programs, members, branches, lang: str | None = None) -> bytes:
    # BOM so spreadsheet apps pick up UTF-8 (Korean names)
    df = settlement_to_dataframe(settlement, programs, members, branches, lang)
    return df.to_csv(index=False).encode("utf-8-sig")


def slots_to_dataframe(slots) -> pd.DataFrame:
    rows = [
        {
            "number": s.number,
            "state": s.state,
            "trainer_id": s.trainer_id,
            "date": s.date.isoformat() if s.date else None,
            "attended_member_ids": ", ".join(s.attended_member_ids),
        }
        for s in slots
    ]
    if not rows:
        return pd.DataFrame(columns=SLOT_COLUMNS)
    return pd.DataFrame(rows, columns=SLOT_COLUMNS)


def insert_sample_data() -> None:
    """
    Insert two branches, two trainers (one percentage, one fixed), three members,
    two programs with a few sessions, and one user per role.
    Safe to run multiple times: existing programs and sessions are left as they are.
    """
    today = date.today()

    for b in (Branch("gangnam", "강남점"), Branch("hongdae", "홍대점")):
        db.save_branch(b)

    db.save_trainer(
        Trainer(
            id="t-kim",
            name="김강사",
            branch_rates={"gangnam": Percentage(0.5), "hongdae": Percentage(0.45)},
            branch_ids=("gangnam", "hongdae"),
        )
    )
    db.save_trainer(
        Trainer(id="t-lee", name="이강사", branch_rates={"gangnam": Fixed(30000)}, branch_ids=("gangnam",))
    )

    for m in (
        Member("m-1", "박회원", "010-0000-0001", "gangnam"),
        Member("m-2", "최회원", "010-0000-0002", "gangnam"),
        Member("m-3", "정회원", "010-0000-0003", "hongdae"),
    ):
        db.save_member(m)

    programs = [
        MemberProgram(
            id="p-1", member_ids=("m-1", "m-2"), program_name="2:1 PT 10회", total_sessions=10,
            unit_price=100000, branch_id="gangnam", assigned_trainer_id="t-kim",
        ),
        MemberProgram(
            id="p-2", member_ids=("m-3",), program_name="PT 20회", total_sessions=20,
            unit_price=70000, branch_id="hongdae", assigned_trainer_id="t-kim",
        ),
    ]
    # Existing programs keep their completion counters
    for p in programs:
        if db.fetch_one("SELECT id FROM programs WHERE id = ?", (p.id,)) is None:
            db.save_program(p)

    sessions = [
        Session("s-1", "p-1", 1, "t-kim", today - timedelta(days=14), time(10, 0), 50),
        Session("s-2", "p-1", 2, "t-kim", today - timedelta(days=7), time(10, 0), 50),
        Session("s-3", "p-1", 3, "t-kim", today + timedelta(days=7), time(10, 0), 50),
        Session("s-4", "p-2", 1, "t-kim", today - timedelta(days=3), time(19, 0), 50),
    ]
    for s in sessions:
        existing = db.fetch_one("SELECT status FROM sessions WHERE id = ?", (s.id,))
        if existing is None:
            db.save_session(s)

    now = datetime.now().replace(microsecond=0)
    for sid, attended in (("s-1", ("m-1", "m-2")), ("s-2", ("m-1",)), ("s-4", ("m-3",))):
        row = db.fetch_one("SELECT status FROM sessions WHERE id = ?", (sid,))
        if row["status"] == "booked":
            db.complete_session(sid, attended, now)

    for u in (
        User("u-admin", "관리자", role="admin"),
        User("u-manager", "매니저", role="manager", assigned_branch_ids=frozenset({"gangnam"})),
        User("u-trainer", "김강사", role="trainer", trainer_profile_id="t-kim"),
        User("u-new", "신규", role="unassigned"),
    ):
        db.save_user(u)
