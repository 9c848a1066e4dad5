import unittest
from decimal import Decimal

from paycycle.cycle_conversion import (
    annualize,
    derive_desired_pay_amount,
    target_cycle_amount,
)


class CycleConversionTests(unittest.TestCase):
    def test_annualizes_monthly_salary(self) -> None:
        self.assertEqual(annualize(Decimal("5000"), "monthly"), Decimal("60000"))

    def test_annualizes_weekly_and_fortnightly(self) -> None:
        self.assertEqual(annualize(100, "weekly"), Decimal("5200"))
        self.assertEqual(annualize("100", "Fortnightly"), Decimal("2600"))

    def test_fortnightly_equivalent_of_annual_salary(self) -> None:
        amount = target_cycle_amount(Decimal("60000"), "fortnightly")

        self.assertEqual(amount.quantize(Decimal("0.01")), Decimal("2307.69"))

    def test_round_trip_returns_original_amount(self) -> None:
        for amount in (Decimal("5000"), Decimal("1234.56"), Decimal("0.01"), Decimal("98765.43")):
            for frequency in ("monthly", "fortnightly", "weekly"):
                with self.subTest(amount=amount, frequency=frequency):
                    self.assertEqual(
                        target_cycle_amount(annualize(amount, frequency), frequency),
                        amount,
                    )

    def test_invalid_inputs_return_none(self) -> None:
        self.assertIsNone(annualize(None, "monthly"))
        self.assertIsNone(annualize(Decimal("0"), "monthly"))
        self.assertIsNone(annualize(Decimal("-10"), "monthly"))
        self.assertIsNone(annualize("abc", "monthly"))
        self.assertIsNone(annualize(Decimal("NaN"), "monthly"))
        self.assertIsNone(annualize(Decimal("5000"), None))
        self.assertIsNone(target_cycle_amount(None, "weekly"))
        self.assertIsNone(target_cycle_amount(Decimal("60000"), "daily"))

    def test_unsupported_frequency_is_logged(self) -> None:
        with self.assertLogs("paycycle.cycle_conversion", level="WARNING"):
            self.assertIsNone(annualize(Decimal("5000"), "quarterly"))

    def test_derives_desired_pay_amount(self) -> None:
        derived = derive_desired_pay_amount(Decimal("5000"), "monthly", "fortnightly")

        self.assertEqual(derived, Decimal("60000") / 26)
        self.assertIsNone(derive_desired_pay_amount(None, "monthly", "fortnightly"))


if __name__ == "__main__":
    unittest.main()
