"""
permissions.py
What a user may see or do, derived from role and branch assignment.
"""

from __future__ import annotations

from dataclasses import dataclass

from errors import NotAuthorized
from models import User


@dataclass(frozen=True)
class PermissionCheck:
    can_view: bool = False
    can_edit: bool = False
    can_delete: bool = False
    can_manage: bool = False


ROLE_PERMISSIONS = {
    "admin": PermissionCheck(True, True, True, True),
    "manager": PermissionCheck(True, True, False, True),
    "trainer": PermissionCheck(True, True, False, False),
    "unassigned": PermissionCheck(),
}


def get_permissions(user: User | None) -> PermissionCheck:
    if user is None:
        return PermissionCheck()
    return ROLE_PERMISSIONS.get(user.role, PermissionCheck())


def authorized_branch_ids(user: User | None, trainers, all_branch_ids) -> frozenset:
    """
    Admin: every branch. Manager: its assigned branches.
    Trainer: the branches of its linked trainer profile.
    """
    if user is None:
        return frozenset()
    if user.role == "admin":
        return frozenset(all_branch_ids)
    if user.role == "manager":
        return frozenset(user.assigned_branch_ids)
    if user.role == "trainer" and user.trainer_profile_id:
        for t in trainers:
            if t.id == user.trainer_profile_id:
                return frozenset(t.branch_ids)
    return frozenset()


def can_access_branch(user: User | None, branch_id: str, trainers=()) -> bool:
    if user is None:
        return False
    if user.role == "admin":
        return True
    return branch_id in authorized_branch_ids(user, trainers, ())


def can_view_all_revenue(user: User | None) -> bool:
    return user is not None and user.role in ("admin", "manager")


def settlement_scope(actor: User, trainer_id: str) -> str:
    """
    Trainer id the actor may settle. Trainers only ever see their own profile.
    """
    if actor.role == "trainer":
        if actor.trainer_profile_id != trainer_id:
            raise NotAuthorized("본인의 정산 내역만 조회할 수 있습니다.")
        return trainer_id
    if actor.role in ("admin", "manager"):
        return trainer_id
    raise NotAuthorized("정산 내역을 조회할 권한이 없습니다.")
