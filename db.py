"""
db.py
SQLite persistence for the studio records, plus the two transactional writes:
session completion and role transitions (with their audit entries).
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, time
from pathlib import Path

import config
import lifecycle
import roles
from errors import InconsistentState
from models import (
    Branch,
    Member,
    MemberProgram,
    Session,
    Trainer,
    User,
    rate_from_dict,
    rate_from_stored,
    rate_to_dict,
)

logger = logging.getLogger(__name__)

DB_FILE = Path(config.DATABASE_PATH)


@contextmanager
def get_conn():
    conn = sqlite3.connect(DB_FILE, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def execute(sql: str, params: tuple = ()) -> int:
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.lastrowid


def fetch_one(sql: str, params: tuple = ()):
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.fetchone()


def fetch_all(sql: str, params: tuple = ()) -> list[sqlite3.Row]:
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.fetchall()


def _create_tables() -> None:
    # List-valued fields (member ids, branch ids, rates) are stored as JSON text
    execute(
        """
        CREATE TABLE IF NOT EXISTS branches (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL
        )
        """
    )

    execute(
        """
        CREATE TABLE IF NOT EXISTS trainers (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            is_active INTEGER NOT NULL DEFAULT 1,
            branch_ids TEXT NOT NULL DEFAULT '[]',
            branch_rates TEXT NOT NULL DEFAULT '{}'
        )
        """
    )

    execute(
        """
        CREATE TABLE IF NOT EXISTS members (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            contact TEXT NOT NULL DEFAULT '',
            branch_id TEXT
        )
        """
    )

    execute(
        """
        CREATE TABLE IF NOT EXISTS programs (
            id TEXT PRIMARY KEY,
            member_ids TEXT NOT NULL,
            program_name TEXT NOT NULL,
            total_sessions INTEGER NOT NULL,
            unit_price INTEGER NOT NULL,
            branch_id TEXT NOT NULL,
            completed_sessions INTEGER NOT NULL DEFAULT 0,
            status TEXT NOT NULL CHECK(status IN ('valid','suspended','expired')),
            assigned_trainer_id TEXT,
            default_session_duration INTEGER NOT NULL DEFAULT 50,
            CHECK(completed_sessions BETWEEN 0 AND total_sessions)
        )
        """
    )

    execute(
        """
        CREATE TABLE IF NOT EXISTS sessions (
            id TEXT PRIMARY KEY,
            program_id TEXT NOT NULL,
            session_number INTEGER NOT NULL,
            trainer_id TEXT NOT NULL,
            date TEXT NOT NULL,
            start_time TEXT NOT NULL,
            duration INTEGER NOT NULL,
            status TEXT NOT NULL CHECK(status IN ('booked','completed')),
            attended_member_ids TEXT NOT NULL DEFAULT '[]',
            session_fee INTEGER,
            trainer_fee INTEGER,
            trainer_rate REAL,
            completed_at TEXT,
            UNIQUE(program_id, session_number),
            FOREIGN KEY(program_id) REFERENCES programs(id) ON DELETE CASCADE
        )
        """
    )

    execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            name TEXT,
            role TEXT NOT NULL CHECK(role IN ('unassigned','trainer','manager','admin')),
            assigned_branch_ids TEXT NOT NULL DEFAULT '[]',
            trainer_profile_id TEXT
        )
        """
    )

    execute(
        """
        CREATE TABLE IF NOT EXISTS audit_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            timestamp TEXT NOT NULL,
            actor TEXT,
            user_id TEXT NOT NULL,
            before_role TEXT NOT NULL,
            before_branch_ids TEXT NOT NULL,
            after_role TEXT NOT NULL,
            after_branch_ids TEXT NOT NULL,
            details TEXT
        )
        """
    )


def init_db() -> None:
    """Create the tables if they do not exist yet."""
    _create_tables()
    logger.info("Database ready at %s", DB_FILE)


# ---------- Row <-> record ----------

def _row_to_trainer(r) -> Trainer:
    rates = {bid: rate_from_dict(v) for bid, v in json.loads(r["branch_rates"]).items()}
    return Trainer(
        id=r["id"],
        name=r["name"],
        is_active=bool(r["is_active"]),
        branch_rates=rates,
        branch_ids=tuple(json.loads(r["branch_ids"])),
    )


def _row_to_program(r) -> MemberProgram:
    return MemberProgram(
        id=r["id"],
        member_ids=tuple(json.loads(r["member_ids"])),
        program_name=r["program_name"],
        total_sessions=r["total_sessions"],
        unit_price=r["unit_price"],
        branch_id=r["branch_id"],
        completed_sessions=r["completed_sessions"],
        status=r["status"],
        assigned_trainer_id=r["assigned_trainer_id"],
        default_session_duration=r["default_session_duration"],
    )


def _row_to_session(r) -> Session:
    completed = r["status"] == "completed"
    return Session(
        id=r["id"],
        program_id=r["program_id"],
        session_number=r["session_number"],
        trainer_id=r["trainer_id"],
        date=date.fromisoformat(r["date"]),
        start_time=time.fromisoformat(r["start_time"]),
        duration=r["duration"],
        status=r["status"],
        attended_member_ids=tuple(json.loads(r["attended_member_ids"])),
        session_fee=r["session_fee"] if completed else None,
        trainer_fee=r["trainer_fee"] if completed else None,
        trainer_rate=rate_from_stored(r["trainer_rate"], r["trainer_fee"]) if completed else None,
        completed_at=datetime.fromisoformat(r["completed_at"]) if r["completed_at"] else None,
    )


def _row_to_user(r) -> User:
    return User(
        id=r["id"],
        name=r["name"],
        role=r["role"],
        assigned_branch_ids=frozenset(json.loads(r["assigned_branch_ids"])),
        trainer_profile_id=r["trainer_profile_id"],
    )


def _session_params(s: Session) -> tuple:
    return (
        s.id, s.program_id, s.session_number, s.trainer_id,
        s.date.isoformat(), s.start_time.strftime("%H:%M"), s.duration, s.status,
        json.dumps(list(s.attended_member_ids)),
        s.session_fee, s.trainer_fee, s.stored_trainer_rate,
        s.completed_at.isoformat(timespec="seconds") if s.completed_at else None,
    )


def _user_params(u: User) -> tuple:
    return (u.id, u.name, u.role, json.dumps(sorted(u.assigned_branch_ids)), u.trainer_profile_id)


# ---------- Saves ----------

def save_branch(b: Branch) -> None:
    execute("INSERT OR REPLACE INTO branches(id, name) VALUES(?,?)", (b.id, b.name))


def save_trainer(t: Trainer) -> None:
    execute(
        "INSERT OR REPLACE INTO trainers(id, name, is_active, branch_ids, branch_rates) VALUES(?,?,?,?,?)",
        (
            t.id, t.name, int(t.is_active), json.dumps(list(t.branch_ids)),
            json.dumps({bid: rate_to_dict(rate) for bid, rate in t.branch_rates.items()}),
        ),
    )


def save_member(m: Member) -> None:
    execute(
        "INSERT OR REPLACE INTO members(id, name, contact, branch_id) VALUES(?,?,?,?)",
        (m.id, m.name, m.contact, m.branch_id),
    )


def save_program(p: MemberProgram) -> None:
    execute(
        """
        INSERT OR REPLACE INTO programs(id, member_ids, program_name, total_sessions, unit_price,
            branch_id, completed_sessions, status, assigned_trainer_id, default_session_duration)
        VALUES(?,?,?,?,?,?,?,?,?,?)
        """,
        (
            p.id, json.dumps(list(p.member_ids)), p.program_name, p.total_sessions, p.unit_price,
            p.branch_id, p.completed_sessions, p.status, p.assigned_trainer_id, p.default_session_duration,
        ),
    )


def save_session(s: Session) -> None:
    """Insert a booked session or update a booked one. Completed rows are never rewritten."""
    if s.is_completed:
        raise InconsistentState("완료된 세션은 complete_session()으로만 기록할 수 있습니다.")
    with get_conn() as conn:
        conn.execute("BEGIN IMMEDIATE")
        if _session_status(conn, s.id) == "completed":
            raise InconsistentState(f"완료된 세션 {s.id}은 수정할 수 없습니다.")
        try:
            cur = conn.execute(
                """
                INSERT INTO sessions(id, program_id, session_number, trainer_id, date, start_time,
                    duration, status, attended_member_ids, session_fee, trainer_fee, trainer_rate, completed_at)
                VALUES(?,?,?,?,?,?,?,?,?,?,?,?,?)
                ON CONFLICT(id) DO UPDATE SET
                    session_number=excluded.session_number, trainer_id=excluded.trainer_id,
                    date=excluded.date, start_time=excluded.start_time, duration=excluded.duration
                WHERE sessions.status = 'booked'
                """,
                _session_params(s),
            )
        except sqlite3.IntegrityError as e:
            raise InconsistentState(f"{s.session_number}회차는 이미 예약되어 있습니다.") from e
        # 0 rows: the row was completed after the status check
        if cur.rowcount != 1:
            raise InconsistentState(f"완료된 세션 {s.id}은 수정할 수 없습니다.")


def _session_status(conn, session_id: str) -> str | None:
    row = conn.execute("SELECT status FROM sessions WHERE id = ?", (session_id,)).fetchone()
    return row["status"] if row else None


def save_user(u: User) -> None:
    execute(
        "INSERT OR REPLACE INTO users(id, name, role, assigned_branch_ids, trainer_profile_id) VALUES(?,?,?,?,?)",
        _user_params(u),
    )


# ---------- Loads ----------

def load_branches() -> list[Branch]:
    return [Branch(r["id"], r["name"]) for r in fetch_all("SELECT * FROM branches ORDER BY name ASC")]


def load_trainers() -> list[Trainer]:
    return [_row_to_trainer(r) for r in fetch_all("SELECT * FROM trainers ORDER BY name ASC")]


def load_members() -> list[Member]:
    rows = fetch_all("SELECT * FROM members ORDER BY name ASC")
    return [Member(r["id"], r["name"], r["contact"], r["branch_id"]) for r in rows]


def load_programs() -> list[MemberProgram]:
    return [_row_to_program(r) for r in fetch_all("SELECT * FROM programs ORDER BY id ASC")]


def load_sessions(program_id: str | None = None) -> list[Session]:
    if program_id:
        rows = fetch_all(
            "SELECT * FROM sessions WHERE program_id = ? ORDER BY session_number ASC", (program_id,)
        )
    else:
        rows = fetch_all("SELECT * FROM sessions ORDER BY date ASC, start_time ASC")
    return [_row_to_session(r) for r in rows]


def load_users() -> list[User]:
    return [_row_to_user(r) for r in fetch_all("SELECT * FROM users ORDER BY id ASC")]


def get_user(user_id: str) -> User | None:
    r = fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))
    return _row_to_user(r) if r else None


def load_audit_log() -> list[sqlite3.Row]:
    return fetch_all("SELECT * FROM audit_log ORDER BY id DESC")


# ---------- Transactional writes ----------

def _one(conn, sql: str, params: tuple):
    row = conn.execute(sql, params).fetchone()
    if row is None:
        raise InconsistentState(f"대상을 찾을 수 없습니다: {params[0]}")
    return row


def complete_session(session_id: str, attended_member_ids, completed_at: datetime) -> tuple[Session, MemberProgram]:
    """
    Complete a session and bump its program counter in one transaction.
    Both UPDATEs are guarded, so a session is completed at most once even when two
    callers race; the loser gets InconsistentState and nothing is written.
    """
    with get_conn() as conn:
        conn.execute("BEGIN IMMEDIATE")
        session = _row_to_session(_one(conn, "SELECT * FROM sessions WHERE id = ?", (session_id,)))
        program = _row_to_program(_one(conn, "SELECT * FROM programs WHERE id = ?", (session.program_id,)))
        trainer = _row_to_trainer(_one(conn, "SELECT * FROM trainers WHERE id = ?", (session.trainer_id,)))

        done, updated_program = lifecycle.complete_session(
            session, program, trainer, attended_member_ids, completed_at
        )

        cur = conn.execute(
            """
            UPDATE sessions
            SET status=?, attended_member_ids=?, session_fee=?, trainer_fee=?, trainer_rate=?, completed_at=?
            WHERE id=? AND status='booked'
            """,
            (
                done.status, json.dumps(list(done.attended_member_ids)), done.session_fee,
                done.trainer_fee, done.stored_trainer_rate, done.completed_at.isoformat(timespec="seconds"),
                done.id,
            ),
        )
        if cur.rowcount != 1:
            raise InconsistentState(f"{session.session_number}회차는 이미 완료된 수업입니다.")

        cur = conn.execute(
            "UPDATE programs SET completed_sessions=? WHERE id=? AND completed_sessions=?",
            (updated_program.completed_sessions, program.id, program.completed_sessions),
        )
        if cur.rowcount != 1:
            raise InconsistentState(f"'{program.program_name}' 프로그램이 동시에 변경되었습니다.")

    return done, updated_program


def _insert_audit(conn, entry: roles.AuditEntry) -> None:
    conn.execute(
        """
        INSERT INTO audit_log(timestamp, actor, user_id, before_role, before_branch_ids,
            after_role, after_branch_ids, details)
        VALUES(?,?,?,?,?,?,?,?)
        """,
        (
            entry.timestamp.isoformat(timespec="seconds"), entry.actor, entry.user_id,
            entry.before_role, json.dumps(sorted(entry.before_branch_ids)),
            entry.after_role, json.dumps(sorted(entry.after_branch_ids)), entry.details,
        ),
    )


def _write_user_change(transition, user_id: str) -> User:
    """Run ``transition(user, trainers, audit)`` and persist the result with its audit rows."""
    with get_conn() as conn:
        conn.execute("BEGIN IMMEDIATE")
        user = _row_to_user(_one(conn, "SELECT * FROM users WHERE id = ?", (user_id,)))
        trainers = [_row_to_trainer(r) for r in conn.execute("SELECT * FROM trainers").fetchall()]

        entries: list[roles.AuditEntry] = []
        updated = transition(user, trainers, entries.append)
        if updated == user:
            return user

        conn.execute(
            "UPDATE users SET role=?, assigned_branch_ids=?, trainer_profile_id=? WHERE id=?",
            _user_params(updated)[2:] + (updated.id,),
        )
        for entry in entries:
            _insert_audit(conn, entry)
    return updated


def apply_role_transition(command: roles.RoleTransition, actor: str | None = None, now: datetime | None = None) -> User:
    return _write_user_change(
        lambda user, trainers, audit: roles.apply_role_transition(
            user, command, trainers, actor=actor, now=now, audit=audit
        ),
        command.user_id,
    )


def remove_manager_branch(user_id: str, branch_id: str, actor: str | None = None, now: datetime | None = None) -> User:
    return _write_user_change(
        lambda user, trainers, audit: roles.remove_manager_branch(
            user, branch_id, trainers, actor=actor, now=now, audit=audit
        ),
        user_id,
    )


def demote_user(user_id: str, actor: str | None = None, now: datetime | None = None) -> User:
    return _write_user_change(
        lambda user, trainers, audit: roles.demote(user, trainers, actor=actor, now=now, audit=audit),
        user_id,
    )
