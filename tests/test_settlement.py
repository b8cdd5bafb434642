"""
Settlement aggregation, export rows and range preset tests.
"""

import unittest
from datetime import date, time

import settlement
from models import Branch, Fixed, Member, MemberProgram, Percentage, Session, Trainer


def completed(sid, program_id, number, day, trainer_id="t1", fee=50000, revenue=100000, rate=Percentage(0.5), at=time(10, 0)):
    return Session(
        sid, program_id, number, trainer_id, day, at, 50,
        status="completed", attended_member_ids=("m1", "m2"),
        session_fee=revenue, trainer_fee=fee, trainer_rate=rate,
    )


class AggregateTests(unittest.TestCase):
    def setUp(self):
        self.programs = [
            MemberProgram(
                id="p1", member_ids=("m1", "m2"), program_name="2:1 PT", total_sessions=10,
                unit_price=100000, branch_id="b1", completed_sessions=3,
            ),
            MemberProgram(
                id="p2", member_ids=("m1", "m2"), program_name="PT 20회", total_sessions=20,
                unit_price=70000, branch_id="b2", completed_sessions=1,
            ),
        ]
        self.sessions = [
            completed("s1", "p1", 1, date(2025, 3, 1)),
            completed("s2", "p1", 2, date(2025, 3, 15)),
            completed("s3", "p1", 3, date(2025, 3, 31), at=time(23, 30)),
            completed("s4", "p2", 1, date(2025, 3, 10), fee=30000, revenue=70000, rate=Fixed(30000)),
            completed("s5", "p1", 4, date(2025, 3, 12), trainer_id="t2"),
            Session("s6", "p1", 5, "t1", date(2025, 3, 20), time(10, 0), 50),
        ]

    def test_totals_and_order(self):
        result = settlement.aggregate(self.sessions, self.programs, "t1", date(2025, 3, 1), date(2025, 3, 31))
        self.assertEqual(result.session_count, 4)
        self.assertEqual(result.total_fee, 50000 * 3 + 30000)
        self.assertEqual(result.total_revenue, 100000 * 3 + 70000)
        self.assertEqual([s.id for s in result.sessions], ["s3", "s2", "s4", "s1"])

    def test_bounds_are_inclusive_by_day(self):
        result = settlement.aggregate(self.sessions, self.programs, "t1", date(2025, 3, 31), date(2025, 3, 31))
        self.assertEqual([s.id for s in result.sessions], ["s3"])

    def test_branch_filter(self):
        result = settlement.aggregate(
            self.sessions, self.programs, "t1", date(2025, 3, 1), date(2025, 3, 31), branch_id="b2"
        )
        self.assertEqual(result.session_count, 1)
        self.assertEqual(result.total_fee, 30000)
        self.assertEqual(result.total_revenue, 70000)

    def test_no_matches_is_zero(self):
        result = settlement.aggregate(self.sessions, self.programs, "t1", date(2025, 4, 1), date(2025, 4, 30))
        self.assertEqual(
            (result.session_count, result.total_fee, result.total_revenue, result.sessions), (0, 0, 0, ())
        )

    def test_reversed_range_is_empty(self):
        result = settlement.aggregate(self.sessions, self.programs, "t1", date(2025, 3, 31), date(2025, 3, 1))
        self.assertEqual(result, settlement.EMPTY_SETTLEMENT)

    def test_sorted_descending_by_date(self):
        result = settlement.aggregate(self.sessions, self.programs, "t1", date(2025, 1, 1), date(2025, 12, 31))
        dates = [s.date for s in result.sessions]
        self.assertEqual(dates, sorted(dates, reverse=True))

    def test_trainer_stats(self):
        trainers = [
            Trainer("t1", "김강사", branch_ids=("b1", "b2")),
            Trainer("t2", "이강사", branch_ids=("b1",)),
        ]
        stats = settlement.trainer_stats(trainers, self.sessions, self.programs, date(2025, 3, 1), date(2025, 3, 31))
        self.assertEqual([(s.trainer_id, s.session_count, s.total_fee) for s in stats], [("t1", 4, 180000), ("t2", 1, 50000)])

        stats = settlement.trainer_stats(
            trainers, self.sessions, self.programs, date(2025, 3, 1), date(2025, 3, 31), branch_id="b2"
        )
        self.assertEqual([s.trainer_id for s in stats], ["t1"])


class ExportRowsTests(unittest.TestCase):
    def test_columns_and_descriptors(self):
        programs = [
            MemberProgram(
                id="p1", member_ids=("m1", "m2"), program_name="2:1 PT", total_sessions=10,
                unit_price=100000, branch_id="b1", completed_sessions=2,
            )
        ]
        sessions = [
            completed("s1", "p1", 1, date(2025, 3, 1)),
            completed("s2", "p1", 2, date(2025, 3, 2), fee=30000, rate=Fixed(30000), at=time(9, 5)),
        ]
        result = settlement.aggregate(sessions, programs, "t1", date(2025, 3, 1), date(2025, 3, 31))
        rows = settlement.export_rows(
            result, programs, [Member("m1", "박회원"), Member("m2", "최회원")], [Branch("b1", "강남점")], lang="en"
        )
        self.assertEqual(list(rows[0]), settlement.EXPORT_COLUMNS)
        self.assertEqual(rows[0]["session_datetime"], "2025-03-02 09:05")
        self.assertEqual(rows[0]["rate"], "fixed")
        self.assertEqual(rows[0]["attended_members"], "박회원, 최회원")
        self.assertEqual(rows[0]["branch_name"], "강남점")
        self.assertEqual(rows[1]["rate"], "50.0%")
        self.assertEqual(rows[1]["unit_price"], 100000)
        self.assertEqual(rows[1]["trainer_fee"], 50000)
        self.assertEqual(rows[1]["session_revenue"], 100000)


class RangePresetTests(unittest.TestCase):
    def test_this_month(self):
        self.assertEqual(settlement.this_month(date(2024, 2, 10)), (date(2024, 2, 1), date(2024, 2, 29)))
        self.assertEqual(settlement.this_month(date(2025, 12, 31)), (date(2025, 12, 1), date(2025, 12, 31)))

    def test_last_month(self):
        self.assertEqual(settlement.last_month(date(2025, 1, 15)), (date(2024, 12, 1), date(2024, 12, 31)))

    def test_all_time(self):
        sessions = [completed("s1", "p1", 1, date(2025, 3, 1)), completed("s2", "p1", 2, date(2025, 5, 9))]
        self.assertEqual(settlement.all_time(sessions, "t1"), (date(2025, 3, 1), date(2025, 5, 9)))
        self.assertIsNone(settlement.all_time(sessions, "t9"))
