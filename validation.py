"""
Field validation rules for customers, cars, bookings and billings.

Each ``validate_*`` function returns a list of ``FieldError`` pairs rather
than raising, so callers can report every violated field at once.  The
persistence layer calls :func:`check` on every new or changed record before
it is written and rejects the write with :class:`ValidationError`.

Unset fields that the database fills in on insert (statuses, booking date,
mileage) are not reported as missing.
"""

import re
from collections import namedtuple
from datetime import date

from database import db
from models import Billing, Booking, Car, CarStatus, Customer, PaymentStatus

EMAIL_RE = re.compile(r"[\w.+-]+@[\w-]+(\.[\w-]+)*\.\w+")
PHONE_RE = re.compile(r"\+?\d+")

FieldError = namedtuple('FieldError', ['field', 'reason'])


class ValidationError(Exception):
    """Raised when a record violates one or more field rules."""

    def __init__(self, errors):
        self.errors = list(errors)
        summary = '; '.join(f"{e.field}: {e.reason}" for e in self.errors)
        super().__init__(summary or 'invalid record')


def validate_customer(customer: Customer, today: date) -> list:
    errors = []
    if not customer.name:
        errors.append(FieldError('name', 'Name is required.'))
    if customer.email is not None and not EMAIL_RE.fullmatch(customer.email):
        errors.append(FieldError('email', 'Email address is not valid.'))
    if customer.phone and not PHONE_RE.fullmatch(customer.phone):
        errors.append(FieldError('phone', 'Phone number must contain digits only.'))
    return errors


def validate_car(car: Car, today: date) -> list:
    errors = []
    if not car.model:
        errors.append(FieldError('model', 'Model is required.'))
    if car.status is not None and car.status not in CarStatus.CHOICES:
        errors.append(FieldError('status', f"Status must be one of {', '.join(CarStatus.CHOICES)}."))
    if car.mileage is not None and car.mileage < 0:
        errors.append(FieldError('mileage', 'Mileage cannot be negative.'))
    if car.daily_rental_price is None or car.daily_rental_price <= 0:
        errors.append(FieldError('daily_rental_price', 'Daily rental price must be greater than zero.'))
    return errors


def validate_booking(booking: Booking, today: date) -> list:
    errors = []
    if booking.start_date is None:
        errors.append(FieldError('start_date', 'Start date is required.'))
    if booking.end_date is None:
        errors.append(FieldError('end_date', 'End date is required.'))
    if booking.start_date and booking.end_date and booking.end_date < booking.start_date:
        errors.append(FieldError('end_date', 'End date cannot be before the start date.'))
    if booking.booking_date and booking.booking_date > today:
        errors.append(FieldError('booking_date', 'Booking date cannot be in the future.'))
    errors.extend(_payment_errors(booking.payment_status, booking.payment_date))
    return errors


def validate_billing(billing: Billing, today: date) -> list:
    errors = []
    if billing.total_amount is None or billing.total_amount <= 0:
        errors.append(FieldError('total_amount', 'Total amount must be greater than zero.'))
    if billing.customer_email is not None and not EMAIL_RE.fullmatch(billing.customer_email):
        errors.append(FieldError('customer_email', 'Email address is not valid.'))
    if billing.payment_status is not None and billing.payment_status not in PaymentStatus.CHOICES:
        errors.append(FieldError('payment_status', f"Payment status must be one of {', '.join(PaymentStatus.CHOICES)}."))
    elif billing.payment_status == PaymentStatus.PAID and billing.payment_date is None:
        errors.append(FieldError('payment_date', 'Payment date is required once paid.'))
    booking = billing.booking
    if booking is None and billing.booking_id is not None:
        # Pending records do not lazy-load relationships from their foreign key
        booking = db.session.get(Booking, billing.booking_id)
    if billing.payment_date and booking is not None and booking.booking_date:
        if billing.payment_date < booking.booking_date:
            errors.append(FieldError('payment_date', 'Payment date cannot be before the booking date.'))
    return errors


def _payment_errors(status, payment_date):
    if status is not None and status not in PaymentStatus.CHOICES:
        return [FieldError('payment_status', f"Payment status must be one of {', '.join(PaymentStatus.CHOICES)}.")]
    if status == PaymentStatus.PAID and payment_date is None:
        return [FieldError('payment_date', 'Payment date is required once paid.')]
    if status != PaymentStatus.PAID and payment_date is not None:
        return [FieldError('payment_date', 'Payment date is only allowed once paid.')]
    return []


VALIDATORS = {
    Customer: validate_customer,
    Car: validate_car,
    Booking: validate_booking,
    Billing: validate_billing,
}


def validate(record, today=None) -> list:
    """Return the violated field rules for any business record."""
    validator = VALIDATORS.get(type(record))
    if validator is None:
        return []
    return validator(record, today or date.today())


def check(record, today=None):
    errors = validate(record, today)
    if errors:
        raise ValidationError(errors)
