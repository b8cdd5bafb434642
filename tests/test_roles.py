"""
Role assignment state machine tests.
"""

import unittest
from datetime import datetime

import roles
from errors import BranchMismatch
from models import Trainer, User
from roles import RoleTransition


class RoleTransitionTests(unittest.TestCase):
    def setUp(self):
        self.trainers = [Trainer("t1", "김강사", branch_ids=("A",))]
        self.audit = []
        self.now = datetime(2025, 3, 1, 9, 0)

    def apply(self, user, role, branch=None, profile=None):
        command = RoleTransition(user.id, role, branch, profile)
        return roles.apply_role_transition(
            user, command, self.trainers, actor="u-admin", now=self.now, audit=self.audit.append
        )

    def test_admin_never_moves(self):
        admin = User("u1", "관리자", role="admin")
        for role, branch in (("manager", "A"), ("trainer", "A"), ("unassigned", None), ("admin", None)):
            with self.subTest(role=role):
                self.assertIs(self.apply(admin, role, branch), admin)
        self.assertEqual(self.audit, [])

    def test_manager_gains_second_branch(self):
        manager = User("u2", "매니저", role="manager", assigned_branch_ids=frozenset({"A"}))
        updated = self.apply(manager, "manager", "B")
        self.assertEqual(updated.role, "manager")
        self.assertEqual(updated.assigned_branch_ids, frozenset({"A", "B"}))
        self.assertEqual(len(self.audit), 1)
        entry = self.audit[0]
        self.assertEqual((entry.before_role, entry.after_role), ("manager", "manager"))
        self.assertEqual(entry.after_branch_ids, frozenset({"A", "B"}))
        self.assertEqual(entry.actor, "u-admin")
        self.assertEqual(entry.timestamp, self.now)

    def test_manager_same_branch_is_noop(self):
        manager = User("u2", "매니저", role="manager", assigned_branch_ids=frozenset({"A"}))
        self.assertIs(self.apply(manager, "manager", "A"), manager)
        self.assertEqual(self.audit, [])

    def test_trainer_becomes_manager(self):
        trainer = User("u3", "김강사", role="trainer", trainer_profile_id="t1")
        updated = self.apply(trainer, "manager", "B")
        self.assertEqual(updated.role, "manager")
        self.assertEqual(updated.assigned_branch_ids, frozenset({"B"}))
        self.assertIsNone(updated.trainer_profile_id)

    def test_unassigned_becomes_manager(self):
        user = User("u4", "신규")
        updated = self.apply(user, "manager", "B")
        self.assertEqual((updated.role, updated.assigned_branch_ids), ("manager", frozenset({"B"})))

    def test_trainer_target_outside_profile_fails(self):
        trainer = User("u3", "김강사", role="trainer", trainer_profile_id="t1")
        with self.assertRaises(BranchMismatch):
            self.apply(trainer, "trainer", "B")
        self.assertEqual(trainer.role, "trainer")
        self.assertEqual(self.trainers[0].branch_ids, ("A",))
        self.assertEqual(self.audit, [])

    def test_unassigned_with_profile_becomes_trainer(self):
        user = User("u4", "신규")
        updated = self.apply(user, "trainer", "A", profile="t1")
        self.assertEqual(updated.role, "trainer")
        self.assertEqual(updated.trainer_profile_id, "t1")
        self.assertEqual(self.audit[0].after_branch_ids, frozenset({"A"}))

    def test_stale_profile_link_is_replaced_by_command_profile(self):
        self.trainers.append(Trainer("t-old", "이전강사", branch_ids=("B",)))
        user = User("u5", "신규", trainer_profile_id="t-old")
        updated = self.apply(user, "trainer", "A", profile="t1")
        self.assertEqual((updated.role, updated.trainer_profile_id), ("trainer", "t1"))
        self.assertEqual(self.audit[0].after_branch_ids, frozenset({"A"}))

    def test_existing_trainer_keeps_its_profile(self):
        self.trainers.append(Trainer("t2", "박강사", branch_ids=("A",)))
        trainer = User("u3", "김강사", role="trainer", trainer_profile_id="t1")
        self.assertIs(self.apply(trainer, "trainer", "A", profile="t2"), trainer)
        self.assertEqual(self.audit, [])

    def test_trainer_target_without_profile_fails(self):
        with self.assertRaises(BranchMismatch):
            self.apply(User("u4", "신규"), "trainer", "A")

    def test_manager_becomes_trainer(self):
        manager = User("u2", "매니저", role="manager", assigned_branch_ids=frozenset({"A"}))
        updated = self.apply(manager, "trainer", "A", profile="t1")
        self.assertEqual(updated.role, "trainer")
        self.assertEqual(updated.assigned_branch_ids, frozenset())

    def test_trainer_same_context_is_noop(self):
        trainer = User("u3", "김강사", role="trainer", trainer_profile_id="t1")
        self.assertIs(self.apply(trainer, "trainer", "A"), trainer)
        self.assertEqual(self.audit, [])

    def test_unrecognized_target_is_ignored(self):
        user = User("u4", "신규")
        self.assertIs(self.apply(user, "owner", "A"), user)
        self.assertIs(self.apply(user, "manager", None), user)
        self.assertEqual(self.audit, [])

    def test_command_for_other_user_is_ignored(self):
        user = User("u4", "신규")
        command = RoleTransition("u5", "manager", "A")
        self.assertIs(roles.apply_role_transition(user, command, self.trainers), user)


class ManagerBranchRemovalTests(unittest.TestCase):
    def test_removing_last_branch_keeps_role(self):
        manager = User("u2", "매니저", role="manager", assigned_branch_ids=frozenset({"A"}))
        audit = []
        updated = roles.remove_manager_branch(manager, "A", audit=audit.append)
        self.assertEqual(updated.role, "manager")
        self.assertEqual(updated.assigned_branch_ids, frozenset())
        self.assertEqual(len(audit), 1)

    def test_removing_unknown_branch_is_noop(self):
        manager = User("u2", "매니저", role="manager", assigned_branch_ids=frozenset({"A"}))
        self.assertIs(roles.remove_manager_branch(manager, "B"), manager)

    def test_explicit_demotion(self):
        manager = User("u2", "매니저", role="manager", assigned_branch_ids=frozenset({"A", "B"}))
        updated = roles.demote(manager)
        self.assertEqual((updated.role, updated.assigned_branch_ids), ("unassigned", frozenset()))
        admin = User("u1", "관리자", role="admin")
        self.assertIs(roles.demote(admin), admin)


class DropTargetTests(unittest.TestCase):
    def test_parse_targets(self):
        self.assertEqual(
            roles.parse_drop_target("u1", "droppable-manager-branch-1"),
            RoleTransition("u1", "manager", "branch-1"),
        )
        self.assertEqual(roles.parse_drop_target("u1", "trainer-A"), RoleTransition("u1", "trainer", "A"))
        self.assertEqual(roles.parse_drop_target("u1", "unassigned-global"), RoleTransition("u1", "unassigned"))

    def test_unrecognized_targets(self):
        for target in ("admin-A", "manager-global", "active-droppable", "nonsense"):
            with self.subTest(target=target):
                self.assertIsNone(roles.parse_drop_target("u1", target))
