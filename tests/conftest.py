import os
from datetime import date

# Must be set before the application modules read their configuration
os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['MAIL_SUPPRESS_SEND'] = 'true'
os.environ['REMINDER_OVERDUE_DAYS'] = '3'

import pytest  # noqa: E402

from app import app as flask_app  # noqa: E402
from database import db  # noqa: E402
from models import Billing, Booking, Car, CarStatus, Customer, PaymentStatus  # noqa: E402
from repository import save  # noqa: E402


class RecordingGateway:
    """Stands in for the mail gateway and keeps every batch it is given."""

    def __init__(self):
        self.batches = []

    def send_batch(self, emails):
        emails = list(emails)
        self.batches.append(emails)
        return [True] * len(emails)

    @property
    def sent(self):
        return [email for batch in self.batches for email in batch]


class RecordFactory:
    def customer(self, name='Alice Martin', email='a@x.com', phone='0501234567'):
        customer = Customer(name=name, email=email, phone=phone)
        save(customer)
        return customer

    def car(self, model='Toyota Corolla', status=CarStatus.RENTED, mileage=12000, daily_rental_price=150.0):
        car = Car(model=model, status=status, mileage=mileage, daily_rental_price=daily_rental_price)
        save(car)
        return car

    def booking(self, customer, car, start_date=date(2024, 5, 10), end_date=date(2024, 5, 17),
                booking_date=date(2024, 5, 1), payment_status=PaymentStatus.UNPAID, payment_date=None):
        booking = Booking(customer=customer, car=car, start_date=start_date, end_date=end_date,
                          booking_date=booking_date, payment_status=payment_status,
                          payment_date=payment_date)
        save(booking)
        return booking

    def billing(self, booking, total_amount=450.0, payment_status=PaymentStatus.UNPAID,
                payment_date=None, car_id='booking'):
        billing = Billing(
            booking=booking,
            car_id=booking.car_id if car_id == 'booking' else car_id,
            customer_id=booking.customer_id,
            customer_email=booking.customer.email,
            total_amount=total_amount,
            payment_status=payment_status,
            payment_date=payment_date,
        )
        save(billing)
        return billing


@pytest.fixture
def app():
    flask_app.config['TESTING'] = True
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def gateway(app):
    original = app.extensions['mail_gateway']
    recording = RecordingGateway()
    app.extensions['mail_gateway'] = recording
    yield recording
    app.extensions['mail_gateway'] = original


@pytest.fixture
def factory(app):
    return RecordFactory()
