import hmac
import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import bcrypt
from fastapi import FastAPI, HTTPException, Header, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    create_engine,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError

from paycycle.bill_projection import SUPPORTED_FREQUENCIES, Bill, project_bills
from paycycle.calendar_utils import (
    normalize_frequency,
    resolve_weekday,
    weekday_name,
)
from paycycle.config import load_config
from paycycle.cycle_conversion import annualize, derive_desired_pay_amount
from paycycle.exceptions import EmailDeliveryError
from paycycle.logging_config import setup_logging
from paycycle.notifications import (
    ResendEmailSender,
    plan_payday_reminder,
    render_reminder_email,
)
from paycycle.payday_projection import PaySettings, next_actual_payday, next_preferred_payday
from paycycle.schedule_generator import generate_projected_schedule, summarize_upcoming

logger = logging.getLogger(__name__)

CONFIG = load_config()
CENTS = Decimal("0.01")
SUPPORTED_ACTUAL_FREQUENCIES = {"monthly"}
SUPPORTED_DESIRED_FREQUENCIES = {"weekly", "fortnightly"}

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=[CONFIG.frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

connect_args = {}
if CONFIG.database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(CONFIG.database_url, connect_args=connect_args)
metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), unique=True, nullable=False),
    Column("hashed_password", String(255), nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

pay_settings = Table(
    "pay_settings",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), unique=True, nullable=False),
    Column("actual_pay_amount", Numeric(12, 2)),
    Column("actual_pay_frequency", String(20), nullable=False, server_default="monthly"),
    Column("actual_pay_day_of_month", Integer),
    Column("desired_pay_frequency", String(20)),
    Column("desired_pay_day_of_week", String(10)),
    Column("desired_pay_amount", Numeric(12, 2)),
    Column("next_actual_payday_date", Date),
    Column("updated_at", DateTime, nullable=False, server_default=func.now()),
)

bills = Table(
    "bills",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("name", String(255), nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("frequency", String(20), nullable=False),
    Column("due_day", Integer),
    Column("due_on", Date),
    Column("is_active", Boolean, nullable=False, server_default="1"),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

payday_reminders = Table(
    "payday_reminders",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), unique=True, nullable=False),
    Column("email", String(255), nullable=False),
    Column("payday", Date, nullable=False),
    Column("send_on", Date, nullable=False),
    Column("target_amount", Numeric(12, 2), nullable=False),
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("sent_at", DateTime),
    Column("last_error", String(500)),
)


@app.on_event("startup")
def init_db() -> None:
    setup_logging(CONFIG.log_level)
    metadata.create_all(engine)


class CredentialsPayload(BaseModel):
    email: str
    password: str


class UserResponse(BaseModel):
    id: int
    email: str
    created_at: datetime | None = None


class PaySettingsPayload(BaseModel):
    actual_pay_amount: Decimal | None = None
    actual_pay_frequency: str = "monthly"
    actual_pay_day_of_month: int | None = None
    desired_pay_frequency: str | None = None
    desired_pay_day_of_week: str | None = None
    next_actual_payday_date: date | None = None

    @classmethod
    def validate_payload(cls, payload: "PaySettingsPayload") -> "PaySettingsPayload":
        if payload.actual_pay_amount is not None and payload.actual_pay_amount <= 0:
            raise ValueError("Actual pay amount must be greater than zero.")
        actual_frequency = normalize_frequency(payload.actual_pay_frequency)
        if actual_frequency not in SUPPORTED_ACTUAL_FREQUENCIES:
            raise ValueError("Only monthly actual pay is supported.")
        payload.actual_pay_frequency = actual_frequency
        day = payload.actual_pay_day_of_month
        if day is not None and not 1 <= day <= 31:
            raise ValueError("Pay day of month must be between 1 and 31.")
        if payload.desired_pay_frequency is not None:
            desired_frequency = normalize_frequency(payload.desired_pay_frequency)
            if desired_frequency not in SUPPORTED_DESIRED_FREQUENCIES:
                raise ValueError("Preferred pay frequency must be weekly or fortnightly.")
            payload.desired_pay_frequency = desired_frequency
        if payload.desired_pay_day_of_week is not None:
            weekday = resolve_weekday(payload.desired_pay_day_of_week)
            if weekday is None:
                raise ValueError("Invalid preferred pay day of week.")
            payload.desired_pay_day_of_week = weekday_name(weekday)
        return payload


class PaySettingsResponse(BaseModel):
    user_id: int
    actual_pay_amount: Decimal | None = None
    actual_pay_frequency: str
    actual_pay_day_of_month: int | None = None
    desired_pay_frequency: str | None = None
    desired_pay_day_of_week: str | None = None
    desired_pay_amount: Decimal | None = None
    next_actual_payday_date: date | None = None
    annual_salary: Decimal | None = None
    next_preferred_payday: date | None = None


class BillPayload(BaseModel):
    name: str
    amount: Decimal
    frequency: str
    due_day: int | None = None
    due_on: date | None = None
    is_active: bool = True
    created_at: datetime | None = None

    @classmethod
    def validate_payload(cls, payload: "BillPayload") -> "BillPayload":
        payload.name = payload.name.strip()
        if not payload.name:
            raise ValueError("Bill name required.")
        if payload.amount <= 0:
            raise ValueError("Bill amount must be greater than zero.")
        normalized = normalize_frequency(payload.frequency)
        if normalized not in SUPPORTED_FREQUENCIES:
            raise ValueError("Only one-off, weekly, fortnightly, or monthly bills are supported.")
        payload.frequency = normalized
        if normalized == "oneoff":
            if payload.due_on is None:
                raise ValueError("One-off bills require a due date.")
            payload.due_day = None
        elif normalized == "monthly":
            if payload.due_day is None or not 1 <= payload.due_day <= 31:
                raise ValueError("Monthly bills require a due day between 1 and 31.")
            payload.due_on = None
        else:
            payload.due_day = None
            payload.due_on = None
        return payload


class BillResponse(BaseModel):
    id: int
    user_id: int
    name: str
    amount: Decimal
    frequency: str
    due_day: int | None = None
    due_on: date | None = None
    is_active: bool
    created_at: datetime | None = None


class UpcomingBillEntry(BaseModel):
    date: date
    bill_id: int | None = None
    name: str
    amount: Decimal
    frequency: str


class UpcomingBillsResponse(BaseModel):
    start_date: date
    end_date: date
    total: Decimal
    entries: list[UpcomingBillEntry]


class ScheduleItemResponse(BaseModel):
    allowance_date: date
    allowance_amount: Decimal
    bills_due_in_period: Decimal
    leftover_for_period: Decimal


class ScheduleResponse(BaseModel):
    status: str
    items: list[ScheduleItemResponse]


class DashboardResponse(BaseModel):
    start_date: date
    end_date: date
    upcoming_bills_total: Decimal
    desired_pay_amount: Decimal | None = None
    leftover_amount: Decimal | None = None
    next_preferred_payday: date | None = None


class ReminderDispatchFailure(BaseModel):
    user_id: int
    error: str
    retriable: bool


class ReminderDispatchResponse(BaseModel):
    sent: int
    failed: list[ReminderDispatchFailure]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))


def get_user_id(x_user_id: str | None = Header(None)) -> int:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing user identity.")
    try:
        user_id = int(x_user_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid user identity.") from exc
    with engine.begin() as conn:
        result = conn.execute(select(users.c.id).where(users.c.id == user_id))
        if not result.first():
            raise HTTPException(status_code=404, detail="User not found.")
    return user_id


def get_email_sender() -> ResendEmailSender | None:
    if not CONFIG.resend_api_key or not CONFIG.email_from_address:
        return None
    return ResendEmailSender(
        api_key=CONFIG.resend_api_key,
        from_address=CONFIG.email_from_address,
        api_url=CONFIG.resend_api_url,
    )


def resolve_today(as_of: date | None) -> date:
    if as_of is not None:
        return as_of
    return datetime.now(CONFIG.tzinfo).date()


def settings_from_row(row) -> PaySettings:
    return PaySettings(
        actual_pay_amount=row["actual_pay_amount"],
        actual_pay_frequency=row["actual_pay_frequency"],
        actual_pay_day_of_month=row["actual_pay_day_of_month"],
        desired_pay_frequency=row["desired_pay_frequency"],
        desired_pay_day_of_week=row["desired_pay_day_of_week"],
        desired_pay_amount=row["desired_pay_amount"],
        next_actual_payday_date=row["next_actual_payday_date"],
    )


def bill_from_row(row) -> Bill:
    frequency = row["frequency"]
    if frequency == "monthly":
        due_date = row["due_day"]
    elif frequency == "oneoff":
        due_date = row["due_on"]
    else:
        due_date = None
    return Bill(
        name=row["name"],
        amount=row["amount"],
        frequency=frequency,
        created_at=_as_utc(row["created_at"]),
        due_date=due_date,
        is_active=row["is_active"],
        bill_id=row["id"],
    )


def bill_response_from_row(row) -> BillResponse:
    return BillResponse(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        amount=row["amount"],
        frequency=row["frequency"],
        due_day=row["due_day"],
        due_on=row["due_on"],
        is_active=row["is_active"],
        created_at=row["created_at"],
    )


def fetch_settings(conn, user_id: int) -> PaySettings | None:
    row = conn.execute(
        select(pay_settings).where(pay_settings.c.user_id == user_id)
    ).mappings().first()
    if not row:
        return None
    return settings_from_row(row)


def fetch_active_bills(conn, user_id: int) -> list[Bill]:
    rows = conn.execute(
        select(bills)
        .where(bills.c.user_id == user_id, bills.c.is_active.is_(True))
        .order_by(bills.c.created_at.desc())
    ).mappings().all()
    return [bill_from_row(row) for row in rows]


def schedule_reminder(conn, user_id: int, settings: PaySettings, today: date) -> None:
    email = conn.execute(
        select(users.c.email).where(users.c.id == user_id)
    ).scalar_one_or_none()
    reminder = plan_payday_reminder(
        settings, email, today, lead_days=CONFIG.reminder_lead_days
    )
    conn.execute(payday_reminders.delete().where(payday_reminders.c.user_id == user_id))
    if reminder is None:
        return
    conn.execute(
        insert(payday_reminders).values(
            user_id=user_id,
            email=reminder.email,
            payday=reminder.payday,
            send_on=reminder.send_on,
            target_amount=reminder.target_amount,
            status="pending",
        )
    )
    logger.info(
        "Payday reminder scheduled",
        extra={
            "user_id": user_id,
            "payday": reminder.payday.isoformat(),
            "send_on": reminder.send_on.isoformat(),
        },
    )


def claim_reminder(conn, reminder_id: int) -> bool:
    result = conn.execute(
        update(payday_reminders)
        .where(payday_reminders.c.id == reminder_id, payday_reminders.c.status == "pending")
        .values(status="sending")
    )
    return result.rowcount == 1


def replan_stale_reminder(conn, row, today: date) -> None:
    """Move a reminder whose payday has passed onto the next payday."""
    settings = fetch_settings(conn, row["user_id"])
    reminder = plan_payday_reminder(
        settings, row["email"], today, lead_days=CONFIG.reminder_lead_days
    )
    stmt = update(payday_reminders).where(
        payday_reminders.c.id == row["id"], payday_reminders.c.status == "pending"
    )
    if reminder is None:
        conn.execute(stmt.values(status="cancelled"))
        logger.info("Stale payday reminder cancelled", extra={"user_id": row["user_id"]})
        return
    conn.execute(
        stmt.values(
            payday=reminder.payday,
            send_on=reminder.send_on,
            target_amount=reminder.target_amount,
            last_error=None,
        )
    )
    logger.info(
        "Stale payday reminder rescheduled",
        extra={
            "user_id": row["user_id"],
            "stale_payday": row["payday"].isoformat(),
            "payday": reminder.payday.isoformat(),
            "send_on": reminder.send_on.isoformat(),
        },
    )


def require_dispatch_token(token: str | None) -> None:
    expected = CONFIG.reminder_dispatch_token
    if not expected:
        raise HTTPException(status_code=503, detail="Reminder dispatch is not configured.")
    if not token or not hmac.compare_digest(token, expected):
        raise HTTPException(status_code=401, detail="Invalid dispatch token.")


def build_settings_response(user_id: int, settings: PaySettings, today: date) -> PaySettingsResponse:
    return PaySettingsResponse(
        user_id=user_id,
        actual_pay_amount=settings.actual_pay_amount,
        actual_pay_frequency=settings.actual_pay_frequency,
        actual_pay_day_of_month=settings.actual_pay_day_of_month,
        desired_pay_frequency=settings.desired_pay_frequency,
        desired_pay_day_of_week=settings.desired_pay_day_of_week,
        desired_pay_amount=settings.desired_pay_amount,
        next_actual_payday_date=settings.next_actual_payday_date,
        annual_salary=annualize(settings.actual_pay_amount, settings.actual_pay_frequency),
        next_preferred_payday=next_preferred_payday(settings, today),
    )


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _quantize(amount: Decimal | None) -> Decimal | None:
    if amount is None:
        return None
    return amount.quantize(CENTS)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/auth/signup", response_model=UserResponse)
def signup(payload: CredentialsPayload) -> UserResponse:
    email = payload.email.strip().lower()
    if not email or not payload.password:
        raise HTTPException(status_code=400, detail="Email and password required.")
    hashed_password = hash_password(payload.password)

    stmt = (
        insert(users)
        .values(email=email, hashed_password=hashed_password)
        .returning(users.c.id, users.c.email, users.c.created_at)
    )
    try:
        with engine.begin() as conn:
            row = conn.execute(stmt).mappings().first()
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail="Email already exists.") from exc

    if not row:
        raise HTTPException(status_code=500, detail="Failed to create user.")
    return UserResponse(id=row["id"], email=row["email"], created_at=row["created_at"])


@app.post("/auth/login", response_model=UserResponse)
def login(payload: CredentialsPayload) -> UserResponse:
    email = payload.email.strip().lower()
    with engine.begin() as conn:
        row = conn.execute(select(users).where(users.c.email == email)).mappings().first()

    if not row or not verify_password(payload.password, row["hashed_password"]):
        raise HTTPException(status_code=401, detail="Invalid credentials.")

    return UserResponse(id=row["id"], email=row["email"], created_at=row["created_at"])


@app.get("/settings", response_model=PaySettingsResponse)
def get_pay_settings(
    as_of: date | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> PaySettingsResponse:
    user_id = get_user_id(x_user_id)
    with engine.begin() as conn:
        settings = fetch_settings(conn, user_id)
    if settings is None:
        raise HTTPException(status_code=404, detail="Pay settings not found.")
    return build_settings_response(user_id, settings, resolve_today(as_of))


@app.put("/settings", response_model=PaySettingsResponse)
def update_pay_settings(
    payload: PaySettingsPayload,
    as_of: date | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> PaySettingsResponse:
    user_id = get_user_id(x_user_id)
    try:
        payload = PaySettingsPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    today = resolve_today(as_of)
    desired_amount = derive_desired_pay_amount(
        payload.actual_pay_amount,
        payload.actual_pay_frequency,
        payload.desired_pay_frequency,
    )
    next_payday = payload.next_actual_payday_date or next_actual_payday(
        today, payload.actual_pay_day_of_month
    )
    values = {
        "actual_pay_amount": payload.actual_pay_amount,
        "actual_pay_frequency": payload.actual_pay_frequency,
        "actual_pay_day_of_month": payload.actual_pay_day_of_month,
        "desired_pay_frequency": payload.desired_pay_frequency,
        "desired_pay_day_of_week": payload.desired_pay_day_of_week,
        "desired_pay_amount": _quantize(desired_amount),
        "next_actual_payday_date": next_payday,
        "updated_at": func.now(),
    }
    with engine.begin() as conn:
        result = conn.execute(
            update(pay_settings).where(pay_settings.c.user_id == user_id).values(**values)
        )
        if result.rowcount == 0:
            conn.execute(insert(pay_settings).values(user_id=user_id, **values))
        settings = fetch_settings(conn, user_id)
        schedule_reminder(conn, user_id, settings, today)

    return build_settings_response(user_id, settings, today)


@app.get("/bills", response_model=list[BillResponse])
def list_bills(
    include_inactive: bool = Query(False),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[BillResponse]:
    user_id = get_user_id(x_user_id)
    conditions = [bills.c.user_id == user_id]
    if not include_inactive:
        conditions.append(bills.c.is_active.is_(True))
    with engine.begin() as conn:
        rows = conn.execute(
            select(bills).where(*conditions).order_by(bills.c.created_at.desc(), bills.c.id.desc())
        ).mappings().all()
    return [bill_response_from_row(row) for row in rows]


@app.post("/bills", response_model=BillResponse)
def create_bill(
    payload: BillPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> BillResponse:
    user_id = get_user_id(x_user_id)
    try:
        payload = BillPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    values = {
        "user_id": user_id,
        "name": payload.name,
        "amount": payload.amount,
        "frequency": payload.frequency,
        "due_day": payload.due_day,
        "due_on": payload.due_on,
        "is_active": payload.is_active,
    }
    if payload.created_at is not None:
        values["created_at"] = payload.created_at
    with engine.begin() as conn:
        row = conn.execute(
            insert(bills).values(**values).returning(*bills.c)
        ).mappings().first()

    if not row:
        raise HTTPException(status_code=500, detail="Failed to create bill.")
    return bill_response_from_row(row)


@app.put("/bills/{bill_id}", response_model=BillResponse)
def update_bill(
    bill_id: int,
    payload: BillPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> BillResponse:
    user_id = get_user_id(x_user_id)
    if payload.created_at is not None:
        raise HTTPException(
            status_code=400, detail="Bill creation time can only be set when creating a bill."
        )
    try:
        payload = BillPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    stmt = (
        update(bills)
        .where(bills.c.id == bill_id, bills.c.user_id == user_id)
        .values(
            name=payload.name,
            amount=payload.amount,
            frequency=payload.frequency,
            due_day=payload.due_day,
            due_on=payload.due_on,
            is_active=payload.is_active,
        )
        .returning(*bills.c)
    )
    with engine.begin() as conn:
        row = conn.execute(stmt).mappings().first()

    if not row:
        raise HTTPException(status_code=404, detail="Bill not found.")
    return bill_response_from_row(row)


@app.delete("/bills/{bill_id}")
def delete_bill(bill_id: int, x_user_id: str | None = Header(None, alias="x-user-id")) -> dict:
    user_id = get_user_id(x_user_id)
    stmt = bills.delete().where(bills.c.id == bill_id, bills.c.user_id == user_id)
    with engine.begin() as conn:
        result = conn.execute(stmt)
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="Bill not found.")
    return {"status": "deleted"}


@app.get("/bills/upcoming", response_model=UpcomingBillsResponse)
def upcoming_bills(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> UpcomingBillsResponse:
    user_id = get_user_id(x_user_id)
    start_date = start_date or resolve_today(None)
    end_date = end_date or start_date + timedelta(days=CONFIG.upcoming_bills_days)
    if start_date > end_date:
        raise HTTPException(status_code=400, detail="Start date must be on or before end date.")

    with engine.begin() as conn:
        active_bills = fetch_active_bills(conn, user_id)

    projections = project_bills(active_bills, start_date, end_date, tz=CONFIG.tzinfo)
    entries = [
        UpcomingBillEntry(
            date=projection.date,
            bill_id=projection.bill_id,
            name=projection.name,
            amount=projection.amount,
            frequency=projection.frequency,
        )
        for projection in projections
    ]
    total = sum((entry.amount for entry in entries), Decimal("0"))
    return UpcomingBillsResponse(
        start_date=start_date,
        end_date=end_date,
        total=total,
        entries=entries,
    )


@app.get("/schedule", response_model=ScheduleResponse)
def projected_schedule(
    count: int | None = Query(None, ge=1, le=104),
    as_of: date | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> ScheduleResponse:
    user_id = get_user_id(x_user_id)
    with engine.begin() as conn:
        settings = fetch_settings(conn, user_id)
        active_bills = fetch_active_bills(conn, user_id)

    if settings is None:
        return ScheduleResponse(status="incomplete_settings", items=[])
    items = generate_projected_schedule(
        settings,
        active_bills,
        count=count or CONFIG.schedule_default_count,
        today=resolve_today(as_of),
        tz=CONFIG.tzinfo,
    )
    if not items:
        return ScheduleResponse(status="incomplete_settings", items=[])
    return ScheduleResponse(
        status="ok",
        items=[
            ScheduleItemResponse(
                allowance_date=item.allowance_date,
                allowance_amount=item.allowance_amount,
                bills_due_in_period=item.bills_due_in_period,
                leftover_for_period=item.leftover_for_period,
            )
            for item in items
        ],
    )


@app.get("/dashboard", response_model=DashboardResponse)
def dashboard(
    as_of: date | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> DashboardResponse:
    user_id = get_user_id(x_user_id)
    today = resolve_today(as_of)
    with engine.begin() as conn:
        settings = fetch_settings(conn, user_id) or PaySettings()
        active_bills = fetch_active_bills(conn, user_id)

    summary = summarize_upcoming(
        settings,
        active_bills,
        today,
        days=CONFIG.upcoming_bills_days,
        tz=CONFIG.tzinfo,
    )
    return DashboardResponse(
        start_date=summary.range_start,
        end_date=summary.range_end,
        upcoming_bills_total=summary.upcoming_bills_total,
        desired_pay_amount=summary.desired_pay_amount,
        leftover_amount=summary.leftover_amount,
        next_preferred_payday=next_preferred_payday(settings, today),
    )


@app.post("/reminders/dispatch", response_model=ReminderDispatchResponse)
def dispatch_reminders(
    as_of: date | None = Query(None),
    x_dispatch_token: str | None = Header(None, alias="x-dispatch-token"),
) -> ReminderDispatchResponse:
    require_dispatch_token(x_dispatch_token)
    sender = get_email_sender()
    if sender is None:
        raise HTTPException(status_code=503, detail="E-mail delivery is not configured.")
    today = resolve_today(as_of)
    with engine.begin() as conn:
        due_rows = conn.execute(
            select(payday_reminders).where(
                payday_reminders.c.status == "pending",
                payday_reminders.c.send_on <= today,
            )
        ).mappings().all()

    sent = 0
    failures: list[ReminderDispatchFailure] = []
    for row in due_rows:
        with engine.begin() as conn:
            if row["payday"] < today:
                replan_stale_reminder(conn, row, today)
                continue
            if not claim_reminder(conn, row["id"]):
                continue
        message = render_reminder_email(row["email"], row["target_amount"], row["payday"])
        try:
            sender.send(message)
        except EmailDeliveryError as exc:
            logger.warning(
                "Payday reminder delivery failed",
                extra={"user_id": row["user_id"], "retriable": exc.retriable},
            )
            failures.append(
                ReminderDispatchFailure(
                    user_id=row["user_id"], error=str(exc), retriable=exc.retriable
                )
            )
            with engine.begin() as conn:
                conn.execute(
                    update(payday_reminders)
                    .where(payday_reminders.c.id == row["id"])
                    .values(
                        status="pending" if exc.retriable else "failed",
                        last_error=str(exc)[:500],
                    )
                )
            continue
        sent += 1
        with engine.begin() as conn:
            conn.execute(
                update(payday_reminders)
                .where(payday_reminders.c.id == row["id"])
                .values(status="sent", sent_at=func.now(), last_error=None)
            )
    return ReminderDispatchResponse(sent=sent, failed=failures)
