import unittest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from unittest import mock

from paycycle.bill_projection import (
    MAX_BACKWARD_CYCLES,
    Bill,
    ProjectedBill,
    bill_occurrences,
    bills_total,
    project_bills,
)
from paycycle.exceptions import ComputationLimitExceeded, InvalidBillError
from paycycle.tests.fixtures import CREATED, scenario_bills


class BillsTotalTests(unittest.TestCase):
    def test_scenario_total_for_two_weeks(self) -> None:
        total = bills_total(scenario_bills(), date(2024, 4, 15), date(2024, 4, 29))

        self.assertEqual(total, Decimal("930"))

    def test_interval_totals_are_additive(self) -> None:
        bills = scenario_bills()
        start = date(2024, 3, 1)
        end = date(2024, 7, 31)
        for split in (date(2024, 3, 1), date(2024, 4, 19), date(2024, 5, 1), date(2024, 7, 30)):
            with self.subTest(split=split):
                left = bills_total(bills, start, split)
                right = bills_total(bills, split + timedelta(days=1), end)
                self.assertEqual(left + right, bills_total(bills, start, end))

    def test_inactive_bills_never_contribute(self) -> None:
        inactive = [bill for bill in scenario_bills() if not bill.is_active]

        self.assertEqual(bills_total(inactive, date(2024, 1, 1), date(2024, 12, 31)), Decimal("0"))
        self.assertEqual(bills_total(inactive, date(2024, 4, 10), date(2024, 4, 10)), Decimal("0"))

    def test_invalid_bills_are_skipped_without_aborting(self) -> None:
        bills = [
            Bill(name="Bad amount", amount="abc", frequency="monthly", created_at=CREATED, due_date=20),
            Bill(name="Bad day", amount=Decimal("10"), frequency="monthly", created_at=CREATED, due_date=0),
            Bill(name="No date", amount=Decimal("10"), frequency="one-off", created_at=CREATED),
            Bill(name="Yearly", amount=Decimal("10"), frequency="yearly", created_at=CREATED),
            Bill(name="Phone", amount=Decimal("300"), frequency="monthly", created_at=CREATED, due_date=20),
        ]

        with self.assertLogs("paycycle.bill_projection", level="WARNING") as captured:
            total = bills_total(bills, date(2024, 4, 15), date(2024, 4, 29))

        self.assertEqual(total, Decimal("300"))
        self.assertEqual(
            len([record for record in captured.records if record.levelname == "WARNING"]), 4
        )

    def test_distant_anchor_drops_only_that_bill(self) -> None:
        bills = [
            Bill(
                name="Future gym",
                amount=Decimal("40"),
                frequency="weekly",
                created_at=datetime(2050, 1, 1),
            ),
            Bill(name="Phone", amount=Decimal("300"), frequency="monthly", created_at=CREATED, due_date=20),
        ]

        with self.assertLogs("paycycle.bill_projection", level="ERROR"):
            total = bills_total(bills, date(2024, 4, 15), date(2024, 4, 29))

        self.assertEqual(total, Decimal("300"))

    def test_guard_failure_drops_only_that_bill(self) -> None:
        bills = [
            Bill(name="Rent", amount=Decimal("1500"), frequency="monthly", created_at=CREATED, due_date=20),
            Bill(name="Concert", amount=Decimal("80"), frequency="one-off", created_at=CREATED, due_date=date(2024, 4, 25)),
        ]

        with mock.patch("paycycle.bill_projection.add_months", return_value=date(2024, 4, 20)):
            with self.assertLogs("paycycle.bill_projection", level="ERROR"):
                total = bills_total(bills, date(2024, 4, 15), date(2024, 5, 29))

        self.assertEqual(total, Decimal("80"))

    def test_rejects_reversed_range(self) -> None:
        with self.assertRaises(ValueError):
            bills_total([], date(2024, 4, 29), date(2024, 4, 15))

    def test_counts_every_occurrence_of_recurring_bill(self) -> None:
        weekly = Bill(
            name="Groceries",
            amount=Decimal("150"),
            frequency="weekly",
            created_at=datetime(2024, 4, 10),
        )

        total = bills_total([weekly], date(2024, 4, 1), date(2024, 4, 30))

        self.assertEqual(total, Decimal("600"))


class BillOccurrenceTests(unittest.TestCase):
    def test_one_off_inclusive_on_both_ends(self) -> None:
        bill = Bill(
            name="Concert",
            amount=Decimal("80"),
            frequency="one-off",
            created_at=CREATED,
            due_date=date(2024, 4, 29),
        )

        self.assertEqual(
            bill_occurrences(bill, date(2024, 4, 15), date(2024, 4, 29)), [date(2024, 4, 29)]
        )
        self.assertEqual(
            bill_occurrences(bill, date(2024, 4, 29), date(2024, 5, 5)), [date(2024, 4, 29)]
        )
        self.assertEqual(bill_occurrences(bill, date(2024, 4, 15), date(2024, 4, 28)), [])

    def test_one_off_uses_supplied_timezone(self) -> None:
        bill = Bill(
            name="Late night",
            amount=Decimal("80"),
            frequency="one-off",
            created_at=CREATED,
            due_date=datetime(2024, 4, 29, 23, 30, tzinfo=timezone.utc),
        )
        plus_ten = timezone(timedelta(hours=10))

        self.assertEqual(
            bill_occurrences(bill, date(2024, 4, 15), date(2024, 4, 29)), [date(2024, 4, 29)]
        )
        self.assertEqual(
            bill_occurrences(bill, date(2024, 4, 15), date(2024, 4, 29), tz=plus_ten), []
        )

    def test_monthly_spans_several_months_with_clamp(self) -> None:
        bill = Bill(name="Insurance", amount=Decimal("90"), frequency="monthly", created_at=CREATED, due_date=31)

        occurrences = bill_occurrences(bill, date(2024, 1, 15), date(2024, 6, 30))

        self.assertEqual(
            occurrences,
            [
                date(2024, 1, 31),
                date(2024, 2, 29),
                date(2024, 3, 31),
                date(2024, 4, 30),
                date(2024, 5, 31),
                date(2024, 6, 30),
            ],
        )

    def test_monthly_skips_day_before_range_start(self) -> None:
        bill = Bill(name="Rent", amount=Decimal("1500"), frequency="monthly", created_at=CREATED, due_date=1)

        self.assertEqual(bill_occurrences(bill, date(2024, 4, 15), date(2024, 4, 29)), [])
        self.assertEqual(
            bill_occurrences(bill, date(2024, 4, 15), date(2024, 5, 1)), [date(2024, 5, 1)]
        )

    def test_fortnightly_walks_back_from_future_anchor(self) -> None:
        bill = Bill(
            name="Childcare",
            amount=Decimal("250"),
            frequency="fortnightly",
            created_at=datetime(2024, 6, 14),
        )

        occurrences = bill_occurrences(bill, date(2024, 4, 15), date(2024, 5, 20))

        self.assertEqual(occurrences, [date(2024, 4, 19), date(2024, 5, 3), date(2024, 5, 17)])

    def test_fortnightly_aligns_old_anchor(self) -> None:
        bill = Bill(
            name="Childcare",
            amount=Decimal("250"),
            frequency="fortnightly",
            created_at=datetime(2020, 1, 3),
        )

        occurrences = bill_occurrences(bill, date(2024, 4, 15), date(2024, 4, 29))

        self.assertEqual(occurrences, [date(2024, 4, 19)])

    def test_anchor_exactly_at_backward_limit_is_allowed(self) -> None:
        start = date(2024, 4, 15)
        bill = Bill(
            name="Gym",
            amount=Decimal("40"),
            frequency="fortnightly",
            created_at=start + timedelta(days=14 * MAX_BACKWARD_CYCLES),
        )

        self.assertEqual(bill_occurrences(bill, start, start), [start])

    def test_anchor_past_backward_limit_raises(self) -> None:
        start = date(2024, 4, 15)
        bill = Bill(
            name="Gym",
            amount=Decimal("40"),
            frequency="weekly",
            created_at=start + timedelta(days=7 * (MAX_BACKWARD_CYCLES + 1)),
        )

        with self.assertRaises(ComputationLimitExceeded):
            bill_occurrences(bill, start, start + timedelta(days=30))

    def test_long_range_keeps_weekly_bills(self) -> None:
        weekly = Bill(name="Paper", amount=Decimal("10"), frequency="weekly", created_at=datetime(2000, 1, 1))
        monthly = Bill(name="Paper", amount=Decimal("10"), frequency="monthly", created_at=CREATED, due_date=1)

        self.assertEqual(
            bills_total([weekly], date(2000, 1, 1), date(2199, 12, 31)), Decimal("104360")
        )
        self.assertEqual(
            bills_total([monthly], date(2000, 1, 1), date(2199, 12, 31)), Decimal("24000")
        )

    def test_non_advancing_monthly_date_raises(self) -> None:
        bill = Bill(name="Rent", amount=Decimal("1500"), frequency="monthly", created_at=CREATED, due_date=20)

        with mock.patch("paycycle.bill_projection.add_months", return_value=date(2024, 4, 20)):
            with self.assertRaises(ComputationLimitExceeded):
                bill_occurrences(bill, date(2024, 4, 15), date(2024, 6, 30))

    def test_forward_ceiling_raises(self) -> None:
        bill = Bill(name="Gym", amount=Decimal("40"), frequency="weekly", created_at=datetime(2024, 4, 1))

        with mock.patch("paycycle.bill_projection._interval_ceiling", return_value=1):
            with self.assertRaises(ComputationLimitExceeded):
                bill_occurrences(bill, date(2024, 4, 15), date(2024, 4, 29))

    def test_invalid_frequency_raises(self) -> None:
        bill = Bill(name="Tax", amount=Decimal("10"), frequency="quarterly", created_at=CREATED)

        with self.assertRaises(InvalidBillError):
            bill_occurrences(bill, date(2024, 4, 15), date(2024, 4, 29))


class ProjectBillsTests(unittest.TestCase):
    def test_lists_dated_occurrences_in_order(self) -> None:
        projections = project_bills(scenario_bills(), date(2024, 4, 15), date(2024, 4, 29))

        self.assertEqual(
            projections,
            [
                ProjectedBill(date=date(2024, 4, 17), name="Groceries", amount=Decimal("150"), frequency="weekly"),
                ProjectedBill(date=date(2024, 4, 19), name="Childcare", amount=Decimal("250"), frequency="fortnightly"),
                ProjectedBill(date=date(2024, 4, 20), name="Phone", amount=Decimal("300"), frequency="monthly"),
                ProjectedBill(date=date(2024, 4, 24), name="Groceries", amount=Decimal("150"), frequency="weekly"),
                ProjectedBill(date=date(2024, 4, 25), name="Concert", amount=Decimal("80"), frequency="oneoff"),
            ],
        )
        self.assertEqual(sum(entry.amount for entry in projections), Decimal("930"))


if __name__ == "__main__":
    unittest.main()
