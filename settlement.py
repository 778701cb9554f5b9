"""
Billing update hooks that run when a payment is settled.

A billing is settled when its payment status changes into Paid from any other
value.  Settling frees the rented car and emails the customer a confirmation;
the booking's payment fields are updated to match the billing.
"""

from config import get_logger
from mailer import OutgoingEmail, get_mail_gateway
from models import Billing, Car, CarStatus, PaymentStatus
from repository import get_booking, get_car, on_update, run_after_commit, stage

logger = get_logger(__name__)

CONFIRMATION_SUBJECT = "Payment received for booking #{booking_id}"

CONFIRMATION_BODY = (
    "<p>Dear customer,</p>"
    "<p>We have received your payment of {amount:.2f} for the rental of the <strong>{model}</strong>.</p>"
    "<p>The car has been checked back in. Thank you for choosing us.</p>"
    "<p>Car Rental Team</p>"
)


def is_settlement(old, new) -> bool:
    return new.payment_status == PaymentStatus.PAID and old.payment_status != PaymentStatus.PAID


def build_confirmation(billing: Billing, car: Car) -> OutgoingEmail:
    return OutgoingEmail(
        to=billing.customer_email,
        subject=CONFIRMATION_SUBJECT.format(booking_id=billing.booking_id),
        body=CONFIRMATION_BODY.format(amount=billing.total_amount, model=car.model),
        html=True,
    )


@on_update(Billing)
def settle_payments(changes):
    """
    Release the car and confirm the payment for every settled billing.

    Every car update and email is prepared before any of them is applied, so
    a missing car aborts the whole batch.  Car updates are written with the
    billing; the confirmations go out in one batch once that write commits
    and are dropped if it rolls back.
    """
    cars = []
    emails = []
    for old, new in changes:
        if not is_settlement(old, new):
            continue
        car = get_car(new.car_id)
        car.status = CarStatus.AVAILABLE
        cars.append(car)
        if new.customer_email:
            emails.append(build_confirmation(new, car))
        else:
            logger.warning(f"Billing {new.id} has no customer email, skipping confirmation")
        logger.info(f"Billing {new.id} settled, car {car.id} ({car.model}) is available again")

    if cars:
        stage(*cars)
    if emails:
        run_after_commit(get_mail_gateway().send_batch, emails)


@on_update(Billing)
def mirror_payment_to_booking(changes):
    """Copy a settled billing's payment status and date onto its booking."""
    bookings = []
    for old, new in changes:
        if not is_settlement(old, new):
            continue
        booking = get_booking(new.booking_id)
        booking.payment_status = PaymentStatus.PAID
        booking.payment_date = new.payment_date
        bookings.append(booking)
    if bookings:
        stage(*bookings)
