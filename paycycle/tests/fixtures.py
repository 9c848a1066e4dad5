from datetime import datetime
from decimal import Decimal

from paycycle.bill_projection import Bill

CREATED = datetime(2024, 1, 1, 9, 0)


def scenario_bills() -> list[Bill]:
    return [
        Bill(name="Rent", amount=Decimal("1500"), frequency="monthly", created_at=CREATED, due_date=1),
        Bill(name="Phone", amount=Decimal("300"), frequency="monthly", created_at=CREATED, due_date=20),
        Bill(
            name="Childcare",
            amount=Decimal("250"),
            frequency="fortnightly",
            created_at=datetime(2024, 4, 5, 8, 30),
        ),
        Bill(
            name="Groceries",
            amount=Decimal("150"),
            frequency="weekly",
            created_at=datetime(2024, 4, 10, 18, 0),
        ),
        Bill(
            name="Dentist",
            amount=Decimal("100"),
            frequency="one-off",
            created_at=CREATED,
            due_date=datetime(2024, 3, 20, 10, 0),
        ),
        Bill(
            name="Concert",
            amount=Decimal("80"),
            frequency="one-off",
            created_at=CREATED,
            due_date=datetime(2024, 4, 25, 19, 0),
        ),
        Bill(
            name="Car service",
            amount=Decimal("450"),
            frequency="one-off",
            created_at=CREATED,
            due_date=datetime(2024, 5, 10, 9, 0),
        ),
        Bill(
            name="Old streaming",
            amount=Decimal("20"),
            frequency="monthly",
            created_at=CREATED,
            due_date=10,
            is_active=False,
        ),
    ]
