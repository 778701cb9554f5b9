"""
Overdue payment reminders.

Meant to run once a day (``python app.py --send-reminders`` from cron).  Every
unpaid booking that ended ``REMINDER_OVERDUE_DAYS`` days ago gets one reminder
email, provided its customer has an email address.  Records are only read.
"""

from datetime import date, timedelta

from config import REMINDER_OVERDUE_DAYS, get_logger
from mailer import OutgoingEmail, get_mail_gateway
from models import Booking, PaymentStatus
from repository import find_bookings

logger = get_logger(__name__)

REMINDER_SUBJECT = "Payment reminder for booking #{booking_id}"

REMINDER_BODY = """Dear {name},

Our records show that the payment for your booking #{booking_id}, which ended on {end_date}, is still outstanding.

Please settle the amount due at your earliest convenience. If you have already paid, please ignore this message.

Thank you,
Car Rental Team
"""


def overdue_target_date(today: date) -> date:
    return today - timedelta(days=REMINDER_OVERDUE_DAYS)


def find_overdue_bookings(today=None) -> list:
    """Unpaid bookings that ended exactly the overdue period ago and can be emailed."""
    today = today or date.today()
    return find_bookings(
        end_date=overdue_target_date(today),
        exclude_payment_status=PaymentStatus.PAID,
        customer_has_email=True,
    )


def build_reminder(booking: Booking) -> OutgoingEmail:
    customer = booking.customer
    return OutgoingEmail(
        to=customer.email,
        subject=REMINDER_SUBJECT.format(booking_id=booking.id),
        body=REMINDER_BODY.format(
            name=customer.name,
            booking_id=booking.id,
            end_date=booking.end_date.strftime('%d/%m/%Y'),
        ),
    )


def send_overdue_reminders(today=None, gateway=None) -> list:
    """
    Email a payment reminder for every overdue booking.

    Returns the reminders that were dispatched.  When nothing is overdue the
    mail gateway is not called at all.
    """
    today = today or date.today()
    logger.info(f"Overdue reminder run for {today}, target end date {overdue_target_date(today)}")

    reminders = [build_reminder(booking) for booking in find_overdue_bookings(today)]
    if not reminders:
        logger.info("No overdue bookings, nothing to send")
        return []

    gateway = gateway or get_mail_gateway()
    gateway.send_batch(reminders)
    logger.info(f"Dispatched {len(reminders)} overdue reminder(s)")
    return reminders
