"""
roles.py
Role assignment state machine for the permissions board.

A user is always in exactly one of: unassigned, trainer(profile branches),
manager(assigned branches), admin. Each command returns a new User; admins never
move. Every real change is reported to the audit sink; no-ops are not.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime

from errors import BranchMismatch
from models import User

logger = logging.getLogger(__name__)

DRAG_ROLES = ("unassigned", "trainer", "manager")


@dataclass(frozen=True)
class RoleTransition:
    """Move ``user_id`` to ``target_role`` (with ``target_branch_id`` for manager/trainer targets)."""

    user_id: str
    target_role: str
    target_branch_id: str | None = None
    # Profile to link when a user without one is moved to a trainer target
    trainer_profile_id: str | None = None


@dataclass(frozen=True)
class AuditEntry:
    actor: str | None
    timestamp: datetime
    user_id: str
    before_role: str
    before_branch_ids: frozenset
    after_role: str
    after_branch_ids: frozenset
    details: str = ""


def parse_drop_target(user_id: str, target_id: str) -> RoleTransition | None:
    """
    Board targets look like 'manager-<branchId>', 'trainer-<branchId>' or
    'unassigned-global' (optionally prefixed with 'droppable-').
    Returns None for anything else.
    """
    if target_id.startswith("droppable-"):
        target_id = target_id[len("droppable-"):]
    role, _, branch = target_id.partition("-")
    if role not in DRAG_ROLES:
        return None
    if not branch or branch == "global":
        branch = None
    if role in ("manager", "trainer") and branch is None:
        return None
    return RoleTransition(user_id=user_id, target_role=role, target_branch_id=branch)


def _branch_scope(user: User, trainers) -> frozenset:
    if user.role == "manager":
        return frozenset(user.assigned_branch_ids)
    if user.role == "trainer" and user.trainer_profile_id:
        profile = _find_trainer(trainers, user.trainer_profile_id)
        return frozenset(profile.branch_ids) if profile else frozenset()
    return frozenset()


def _find_trainer(trainers, trainer_id: str):
    for t in trainers:
        if t.id == trainer_id:
            return t
    return None


def _record(audit, before: User, after: User, trainers, actor, now, details: str) -> None:
    logger.info(
        "User %s: %s%s -> %s%s",
        after.id, before.role, sorted(_branch_scope(before, trainers)),
        after.role, sorted(_branch_scope(after, trainers)),
    )
    if audit is None:
        return
    audit(
        AuditEntry(
            actor=actor,
            timestamp=now or datetime.now(),
            user_id=after.id,
            before_role=before.role,
            before_branch_ids=_branch_scope(before, trainers),
            after_role=after.role,
            after_branch_ids=_branch_scope(after, trainers),
            details=details,
        )
    )


def _to_manager(user: User, branch_id: str) -> User:
    if user.role == "manager":
        if branch_id in user.assigned_branch_ids:
            return user
        return replace(user, assigned_branch_ids=frozenset(user.assigned_branch_ids) | {branch_id})
    return replace(user, role="manager", assigned_branch_ids=frozenset({branch_id}), trainer_profile_id=None)


def _to_trainer(user: User, branch_id: str, profile_id: str | None, trainers) -> User:
    # An existing trainer keeps its link; anyone else takes the profile the command carries
    if user.role == "trainer" and user.trainer_profile_id:
        profile_id = user.trainer_profile_id
    else:
        profile_id = profile_id or user.trainer_profile_id
    if profile_id is None:
        raise BranchMismatch("연결된 강사 프로필이 없습니다.")
    profile = _find_trainer(trainers, profile_id)
    if profile is None or branch_id not in profile.branch_ids:
        raise BranchMismatch()
    if user.role == "trainer" and user.trainer_profile_id == profile_id:
        return user
    return replace(user, role="trainer", assigned_branch_ids=frozenset(), trainer_profile_id=profile_id)


def apply_role_transition(
    user: User,
    command: RoleTransition,
    trainers=(),
    actor: str | None = None,
    now: datetime | None = None,
    audit=None,
) -> User:
    """
    Apply a board move. Unknown targets, admin users and moves onto the user's
    current state return ``user`` unchanged. A trainer target whose branch is not
    served by the linked profile raises BranchMismatch.
    """
    if user.role == "admin" or command.user_id != user.id:
        logger.debug("Ignoring move of user %s onto %s", user.id, command.target_role)
        return user

    role, branch_id = command.target_role, command.target_branch_id
    if role == "manager" and branch_id:
        updated = _to_manager(user, branch_id)
        details = f"{branch_id} 지점 매니저로 배정"
    elif role == "trainer" and branch_id:
        updated = _to_trainer(user, branch_id, command.trainer_profile_id, trainers)
        details = f"{branch_id} 지점 강사로 배정"
    elif role == "unassigned" and branch_id is None:
        return demote(user, trainers, actor=actor, now=now, audit=audit)
    else:
        logger.debug("Ignoring unrecognized target %r for user %s", command, user.id)
        return user

    if updated != user:
        _record(audit, user, updated, trainers, actor, now, details)
    return updated


def remove_manager_branch(
    user: User,
    branch_id: str,
    trainers=(),
    actor: str | None = None,
    now: datetime | None = None,
    audit=None,
) -> User:
    """Drop one branch from a manager. The role never changes, even when no branch is left."""
    if user.role != "manager" or branch_id not in user.assigned_branch_ids:
        return user
    updated = replace(user, assigned_branch_ids=frozenset(user.assigned_branch_ids) - {branch_id})
    _record(audit, user, updated, trainers, actor, now, f"{branch_id} 지점에서 배정 해제")
    return updated


def demote(
    user: User,
    trainers=(),
    actor: str | None = None,
    now: datetime | None = None,
    audit=None,
) -> User:
    """Explicit demotion to 'unassigned', clearing branches and the trainer link."""
    if user.role in ("admin", "unassigned"):
        return user
    updated = replace(user, role="unassigned", assigned_branch_ids=frozenset(), trainer_profile_id=None)
    _record(audit, user, updated, trainers, actor, now, "모든 지점에서 배정 해제")
    return updated
