import logging
import smtplib
from datetime import date, datetime
from decimal import Decimal
from email.message import EmailMessage
from html import escape
from typing import Any, Dict, List

from airlines import airline_display_name
from config import (
    ALERT_FROM_EMAIL,
    ALERT_FROM_NAME,
    FRONTEND_BASE_URL,
    SMTP_HOST,
    SMTP_PASSWORD,
    SMTP_PORT,
    SMTP_USERNAME,
)
from errors import NotificationError

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£"}


# =======================================
# SECTION: FORMAT HELPERS
# =======================================

def format_money(amount, currency: str = "USD") -> str:
    value = Decimal(str(amount)).quantize(Decimal("0.01"))
    symbol = CURRENCY_SYMBOLS.get((currency or "").upper())
    if symbol:
        return f"{symbol}{value:,.2f}"
    return f"{value:,.2f} {currency}"


def format_departure_date(raw) -> str:
    if isinstance(raw, datetime):
        raw = raw.date()
    if isinstance(raw, date):
        return raw.strftime("%a %d %b %Y")
    try:
        return date.fromisoformat(str(raw)[:10]).strftime("%a %d %b %Y")
    except ValueError:
        return str(raw or "")


def _smtp_configured() -> bool:
    return bool(SMTP_USERNAME and SMTP_PASSWORD and ALERT_FROM_EMAIL)


def _send(msg: EmailMessage) -> None:
    with smtplib.SMTP(SMTP_HOST, SMTP_PORT) as server:
        server.starttls()
        server.login(SMTP_USERNAME, SMTP_PASSWORD)
        server.send_message(msg)


# =======================================
# SECTION: PRICE DROP EMAIL
# =======================================

def build_price_drop_email(
    user_email: str,
    flight_details: Dict[str, Any],
    new_price,
    savings_this_drop,
    currency: str = "USD",
) -> EmailMessage:
    dep = flight_details.get("departure_airport") or ""
    arr = flight_details.get("arrival_airport") or ""
    airline = airline_display_name(flight_details.get("airline"))
    dep_label = format_departure_date(flight_details.get("departure_date"))
    price_label = format_money(new_price, currency)
    savings_label = format_money(savings_this_drop, currency)
    dashboard_url = f"{FRONTEND_BASE_URL.rstrip('/')}/dashboard"

    subject = f"Price Drop Alert! Your flight to {arr} is now cheaper"

    lines: List[str] = []
    lines.append("We found a significant price drop for your upcoming trip:")
    lines.append("")
    lines.append(f"Route: {dep} → {arr}")
    lines.append(f"Airline: {airline}")
    lines.append(f"Departure: {dep_label}")
    lines.append("")
    lines.append(f"New lower price: {price_label}")
    lines.append(f"That's a new saving of {savings_label}!")
    lines.append("")
    lines.append("You can claim this difference from the airline. See your dashboard for details:")
    lines.append(dashboard_url)
    lines.append("")
    lines.append("You are receiving this email because you are tracking this flight on FareAware.")

    html = f"""\
<!DOCTYPE html>
<html lang="en">
<body style="font-family: Arial, sans-serif; background-color: #f4f4f7; margin: 0; padding: 0;">
  <div style="max-width: 600px; margin: 20px auto; background: #ffffff; border-radius: 8px;">
    <div style="background: #667eea; color: #ffffff; padding: 32px; text-align: center;">
      <h1 style="margin: 0;">Great News!</h1>
    </div>
    <div style="padding: 24px 32px; color: #333333;">
      <p>We found a significant price drop for your upcoming trip:</p>
      <h2 style="text-align: center;">{escape(dep)} &rarr; {escape(arr)}</h2>
      <p style="text-align: center; color: #495057;">{escape(airline)} - {escape(dep_label)}</p>
      <div style="border: 2px solid #28a745; border-radius: 6px; padding: 16px; text-align: center;">
        <div style="color: #6c757d;">New Lower Price</div>
        <div style="font-size: 32px; font-weight: bold; color: #28a745;">{escape(price_label)}</div>
        <div style="color: #28a745;">That's a new saving of {escape(savings_label)}!</div>
      </div>
      <p style="text-align: center;">
        <a href="{escape(dashboard_url)}" style="background: #667eea; color: #ffffff; padding: 12px 24px;
           border-radius: 5px; text-decoration: none;">View My Dashboard</a>
      </p>
    </div>
    <div style="padding: 16px; text-align: center; font-size: 12px; color: #6c757d;">
      You are receiving this email because you are tracking this flight on FareAware.
    </div>
  </div>
</body>
</html>
"""

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = f"{ALERT_FROM_NAME} <{ALERT_FROM_EMAIL}>"
    msg["To"] = user_email
    msg.set_content("\n".join(lines))
    msg.add_alternative(html, subtype="html")
    return msg


def send_price_drop_email(
    user_email: str,
    flight_details: Dict[str, Any],
    new_price,
    savings_this_drop,
    currency: str = "USD",
) -> None:
    if not _smtp_configured():
        raise NotificationError("SMTP settings are not fully configured on the server")
    if not user_email:
        raise NotificationError("Price drop email has no recipient")

    msg = build_price_drop_email(user_email, flight_details, new_price, savings_this_drop, currency)
    try:
        _send(msg)
    except (smtplib.SMTPException, OSError) as e:
        raise NotificationError(f"SMTP send to {user_email} failed: {e}")

    logger.info(
        "[email] price drop sent to=%s route=%s-%s price=%s",
        user_email,
        flight_details.get("departure_airport"),
        flight_details.get("arrival_airport"),
        new_price,
    )
