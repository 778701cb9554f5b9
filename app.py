"""Car rental billing back office.

This Flask application keeps track of customers, cars, bookings and the
billing records raised against them.  Two pieces of the payment workflow run
on top of the records:

* a daily job that emails customers whose booking ended three days ago and
  is still unpaid (``reminders.py``), and
* an update hook that, when a billing is marked as paid, puts the car back
  into the available fleet and emails a payment confirmation
  (``settlement.py``).

To run the app locally:

    # Install the project and its dependencies
    pip install -e .

    # Initialise the database
    python app.py --init-db

    # Send today's overdue payment reminders (schedule this daily, e.g. cron)
    python app.py --send-reminders

    # Start the development server
    python app.py

Settings are read from the environment or a ``.env`` file; see ``config.py``.
Form dates use the European format (DD/MM/YYYY).
"""

import argparse
from datetime import date, datetime

from flask import Flask, jsonify, request
from sqlalchemy import inspect

import config
from config import get_logger
from database import db
from mailer import init_mail
from models import Billing, Booking, Car, Customer, PaymentStatus
from reminders import find_overdue_bookings, send_overdue_reminders
from repository import RecordNotFound, get_billing, get_booking, get_car, get_customer, install, save
from validation import FieldError, ValidationError

logger = get_logger(__name__)

DATE_FORMAT = '%d/%m/%Y'

app = Flask(__name__)
app.config['SECRET_KEY'] = config.SECRET_KEY
app.config['SQLALCHEMY_DATABASE_URI'] = config.DATABASE_URL
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config.update(
    MAIL_SERVER=config.MAIL_SERVER,
    MAIL_PORT=config.MAIL_PORT,
    MAIL_USE_TLS=config.MAIL_USE_TLS,
    MAIL_USERNAME=config.MAIL_USERNAME,
    MAIL_PASSWORD=config.MAIL_PASSWORD,
    MAIL_DEFAULT_SENDER=config.MAIL_DEFAULT_SENDER,
    MAIL_SENDER_NAME=config.MAIL_SENDER_NAME,
    MAIL_SUPPRESS_SEND=config.MAIL_SUPPRESS_SEND,
)

db.init_app(app)
init_mail(app)

# Validation and update hooks run on every flush of the app's session
install(db.session)
import settlement  # noqa: E402,F401  registers the billing update hooks


# ---------------------------------------------------------------------------
# Helpers

def parse_date(field: str, required: bool = True):
    """Parse a DD/MM/YYYY form field, or return None when optional and blank."""
    value = request.form.get(field, '').strip()
    if not value:
        if required:
            raise ValidationError([FieldError(field, 'This field is required.')])
        return None
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        raise ValidationError([FieldError(field, 'Use the DD/MM/YYYY format.')]) from None


def parse_number(field: str, cast=float, default=None):
    value = request.form.get(field, '').strip()
    if not value:
        return default
    try:
        return cast(value)
    except ValueError:
        raise ValidationError([FieldError(field, 'Must be a number.')]) from None


def as_dict(record) -> dict:
    data = {}
    for attr in inspect(record).mapper.column_attrs:
        value = getattr(record, attr.key)
        if isinstance(value, date):
            value = value.strftime(DATE_FORMAT)
        data[attr.key] = value
    return data


@app.errorhandler(ValidationError)
def validation_failed(error):
    return jsonify({'errors': [{'field': e.field, 'reason': e.reason} for e in error.errors]}), 400


@app.errorhandler(RecordNotFound)
def record_not_found(error):
    return jsonify({'error': str(error)}), 404


# ---------------------------------------------------------------------------
# Records

@app.route('/customers', methods=['POST'])
def add_customer():
    customer = Customer(
        name=request.form['name'],
        email=request.form.get('email') or None,
        phone=request.form.get('phone') or None,
    )
    save(customer)
    return jsonify(as_dict(customer)), 201


@app.route('/cars', methods=['POST'])
def add_car():
    car = Car(
        model=request.form['model'],
        mileage=parse_number('mileage', int, 0),
        daily_rental_price=parse_number('daily_rental_price'),
    )
    if request.form.get('status'):
        car.status = request.form['status']
    save(car)
    return jsonify(as_dict(car)), 201


@app.route('/bookings', methods=['POST'])
def add_booking():
    """Reserve a car for a customer over a date range."""
    customer = get_customer(parse_number('customer_id', int))
    car = get_car(parse_number('car_id', int))
    booking = Booking(
        customer=customer,
        car=car,
        start_date=parse_date('start_date'),
        end_date=parse_date('end_date'),
        booking_date=parse_date('booking_date', required=False) or date.today(),
        payment_status=PaymentStatus.UNPAID,
    )
    save(booking)
    return jsonify(as_dict(booking)), 201


@app.route('/bookings/overdue')
def list_overdue_bookings():
    """Bookings that today's reminder run would email."""
    return jsonify([as_dict(b) for b in find_overdue_bookings()])


@app.route('/billings', methods=['POST'])
def add_billing():
    """Raise a billing for a booking.  Car, customer and email come from the booking."""
    booking = get_booking(parse_number('booking_id', int))
    billing = Billing(
        booking=booking,
        car_id=booking.car_id,
        customer_id=booking.customer_id,
        customer_email=booking.customer.email,
        total_amount=parse_number('total_amount'),
        payment_status=PaymentStatus.UNPAID,
    )
    save(billing)
    return jsonify(as_dict(billing)), 201


@app.route('/billings/<int:billing_id>/pay', methods=['POST'])
def pay_billing(billing_id: int):
    """
    Record the payment of a billing.  Saving it fires the settlement hooks,
    which free the car and email the customer.
    """
    billing = get_billing(billing_id)
    if billing.payment_status == PaymentStatus.PAID:
        return jsonify({'error': f"Billing {billing_id} is already paid"}), 409
    billing.payment_status = PaymentStatus.PAID
    billing.payment_date = parse_date('payment_date', required=False) or date.today()
    save(billing)
    logger.info(f"Payment recorded for billing {billing_id}")
    return jsonify(as_dict(billing))


@app.route('/health')
def health():
    return jsonify({'status': 'ok', 'timestamp': datetime.utcnow().isoformat()})


def init_db():
    """Initialise the database tables."""
    db.create_all()
    logger.info("Database initialised.")


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description="Car rental billing app")
    parser.add_argument('--init-db', action='store_true', help='Initialise the database')
    parser.add_argument('--send-reminders', action='store_true',
                        help='Email reminders for unpaid bookings that are overdue')
    args = parser.parse_args()
    if args.init_db:
        with app.app_context():
            init_db()
    elif args.send_reminders:
        with app.app_context():
            send_overdue_reminders()
    else:
        app.run(debug=config.DEBUG_MODE, port=config.PORT)
