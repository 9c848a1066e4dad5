from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from paycycle.exceptions import EmailDeliveryError
from paycycle.payday_projection import PaySettings, next_preferred_payday

logger = logging.getLogger(__name__)

DEFAULT_LEAD_DAYS = 2
REMINDER_SUBJECT = "Your Smoothed Payday Reminder"
UNKNOWN_DATE_TEXT = "an upcoming date"


@dataclass(frozen=True)
class PaydayReminder:
    email: str
    payday: date
    send_on: date
    target_amount: Decimal


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    text: str
    html: str


def reminder_send_date(payday: date, lead_days: int = DEFAULT_LEAD_DAYS) -> date:
    return payday - timedelta(days=lead_days)


def plan_payday_reminder(
    settings: PaySettings | None,
    email: str | None,
    today: date,
    lead_days: int = DEFAULT_LEAD_DAYS,
) -> PaydayReminder | None:
    """Work out the next reminder for a user, or ``None`` when one can't be sent.

    Missing e-mail, amount or weekday settings are not errors; the reminder
    is skipped and the reason logged.
    """
    if settings is None or not email:
        logger.info("Skipping payday reminder: no settings or e-mail address.")
        return None
    if settings.desired_pay_amount is None:
        logger.info("Skipping payday reminder: desired pay amount not set.")
        return None
    payday = next_preferred_payday(settings, today)
    if payday is None:
        logger.info("Skipping payday reminder: preferred payday cannot be computed.")
        return None
    send_on = max(reminder_send_date(payday, lead_days), today)
    return PaydayReminder(
        email=email,
        payday=payday,
        send_on=send_on,
        target_amount=settings.desired_pay_amount,
    )


def format_currency(amount: Decimal | None) -> str:
    if amount is None:
        return "N/A"
    quantized = Decimal(amount).quantize(Decimal("0.01"))
    sign = "-" if quantized < 0 else ""
    return f"{sign}${abs(quantized):,.2f}"


def format_display_date(value: date | None) -> str:
    if value is None:
        return UNKNOWN_DATE_TEXT
    return f"{value:%A}, {value:%B} {value.day}, {value.year}"


def render_reminder_email(
    email: str,
    target_amount: Decimal | None,
    payday: date | None,
    schedule_url: str | None = None,
) -> EmailMessage:
    local_part = email.split("@")[0] if email else ""
    greeting = f"Hi {local_part}," if local_part else "Hi there,"
    formatted_amount = format_currency(target_amount)
    formatted_date = format_display_date(payday)
    lines = [
        greeting,
        "",
        "Just a friendly reminder that your next smoothed payment of approximately "
        f"{formatted_amount} is scheduled for {formatted_date}.",
        "",
        "Make sure your primary account has sufficient funds available for a smooth transfer.",
    ]
    if schedule_url:
        lines.extend(["", f"You can view your full schedule here: {schedule_url}"])
    lines.extend(["", "PayCycle"])
    html_parts = [f"<p>{greeting}</p>"]
    html_parts.append(
        "<p>Just a friendly reminder that your next smoothed payment of approximately "
        f"<strong>{formatted_amount}</strong> is scheduled for "
        f"<strong>{formatted_date}</strong>.</p>"
    )
    html_parts.append(
        "<p>Make sure your primary account has sufficient funds available for a smooth transfer.</p>"
    )
    if schedule_url:
        html_parts.append(f'<p><a href="{schedule_url}">{schedule_url}</a></p>')
    return EmailMessage(
        to=email,
        subject=REMINDER_SUBJECT,
        text="\n".join(lines),
        html="".join(html_parts),
    )


@dataclass
class ResendEmailSender:
    api_key: str
    from_address: str
    api_url: str = "https://api.resend.com/emails"
    timeout_seconds: float = 8

    def send(self, message: EmailMessage) -> str | None:
        body = json.dumps(
            {
                "from": self.from_address,
                "to": [message.to],
                "subject": message.subject,
                "text": message.text,
                "html": message.html,
            }
        ).encode("utf-8")
        request = Request(
            self.api_url,
            data=body,
            method="POST",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        try:
            with urlopen(request, timeout=self.timeout_seconds) as response:
                payload = json.load(response)
        except HTTPError as exc:
            retriable = exc.code >= 500 or exc.code == 429
            raise EmailDeliveryError(
                f"E-mail provider rejected message ({exc.code})", retriable=retriable
            ) from exc
        except (URLError, TimeoutError, json.JSONDecodeError) as exc:
            raise EmailDeliveryError("E-mail provider unavailable") from exc
        message_id = payload.get("id") if isinstance(payload, dict) else None
        logger.info("Payday reminder sent", extra={"email_id": message_id})
        return message_id
