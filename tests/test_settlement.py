from datetime import date

import pytest

import settlement
from database import db
from models import Billing, Booking, Car, CarStatus, PaymentStatus
from repository import RecordNotFound, save
from validation import ValidationError

PAID_ON = date(2024, 5, 18)


def pay(*billings, paid_on=PAID_ON):
    for billing in billings:
        billing.payment_status = PaymentStatus.PAID
        billing.payment_date = paid_on
    save(*billings)


@pytest.fixture
def rented(factory):
    customer = factory.customer(name='Alice Martin', email='a@x.com')
    car = factory.car(model='Nissan Patrol', status=CarStatus.RENTED)
    booking = factory.booking(customer, car)
    return car, booking


@pytest.fixture
def staged_updates(monkeypatch):
    calls = []
    monkeypatch.setattr(settlement, 'stage', lambda *records: calls.append(records))
    return calls


def test_unpaid_to_paid_frees_car_and_confirms(rented, factory, gateway):
    car, booking = rented
    billing = factory.billing(booking, total_amount=450.0)

    pay(billing)

    assert db.session.get(Car, car.id).status == CarStatus.AVAILABLE
    assert len(gateway.batches) == 1
    [email] = gateway.batches[0]
    assert email.to == 'a@x.com'
    assert email.html
    assert 'Nissan Patrol' in email.body
    assert '450.00' in email.body


def test_confirmation_goes_to_stored_billing_email(rented, factory, gateway):
    car, booking = rented
    billing = factory.billing(booking)
    billing.customer_email = 'accounts@x.com'
    save(billing)

    pay(billing)

    assert [e.to for e in gateway.sent] == ['accounts@x.com']


def test_settlement_is_mirrored_onto_booking(rented, factory, gateway):
    car, booking = rented
    billing = factory.billing(booking)

    pay(billing)

    booking = db.session.get(Booking, booking.id)
    assert booking.payment_status == PaymentStatus.PAID
    assert booking.payment_date == PAID_ON


def test_paid_to_paid_changes_nothing(rented, factory, gateway, staged_updates):
    car, booking = rented
    billing = factory.billing(booking, payment_status=PaymentStatus.PAID, payment_date=PAID_ON)

    billing.total_amount = 500.0
    save(billing)

    assert staged_updates == []
    assert gateway.batches == []
    assert db.session.get(Car, car.id).status == CarStatus.RENTED


def test_paid_to_unpaid_changes_nothing(rented, factory, gateway, staged_updates):
    car, booking = rented
    billing = factory.billing(booking, payment_status=PaymentStatus.PAID, payment_date=PAID_ON)

    billing.payment_status = PaymentStatus.UNPAID
    billing.payment_date = None
    save(billing)

    assert staged_updates == []
    assert gateway.batches == []
    assert db.session.get(Car, car.id).status == CarStatus.RENTED


def test_unrelated_billing_update_changes_nothing(rented, factory, gateway, staged_updates):
    car, booking = rented
    billing = factory.billing(booking)

    billing.total_amount = 600.0
    save(billing)

    assert staged_updates == []
    assert gateway.batches == []


def test_batch_of_settlements_is_sent_together(factory, gateway):
    first_car = factory.car(model='Kia Rio')
    second_car = factory.car(model='Mazda 6')
    first = factory.billing(factory.booking(factory.customer(email='a@x.com'), first_car))
    second = factory.billing(factory.booking(factory.customer(email='b@x.com'), second_car))
    already_paid = factory.billing(
        factory.booking(factory.customer(email='c@x.com'), factory.car(model='Audi A4')),
        payment_status=PaymentStatus.PAID, payment_date=PAID_ON,
    )
    already_paid.total_amount = 999.0

    pay(first, second)

    assert len(gateway.batches) == 1
    assert [e.to for e in gateway.batches[0]] == ['a@x.com', 'b@x.com']
    assert {c.status for c in Car.query.filter(Car.id.in_([first_car.id, second_car.id]))} == {CarStatus.AVAILABLE}


def test_settlement_stages_car_once(rented, factory, gateway, staged_updates):
    car, booking = rented
    billing = factory.billing(booking)

    billing.payment_status = PaymentStatus.PAID
    billing.payment_date = PAID_ON
    db.session.flush()

    # One call for the freed car, one for the mirrored booking
    cars, bookings = staged_updates
    assert [c.id for c in cars] == [car.id]
    assert [b.id for b in bookings] == [booking.id]
    db.session.rollback()


def test_confirmation_waits_for_commit(rented, factory, gateway):
    car, booking = rented
    billing = factory.billing(booking)

    billing.payment_status = PaymentStatus.PAID
    billing.payment_date = PAID_ON
    db.session.flush()
    assert gateway.batches == []

    db.session.commit()
    assert [e.to for e in gateway.sent] == ['a@x.com']


def test_rolled_back_settlement_sends_no_confirmation(rented, factory, gateway):
    car, booking = rented
    billing = factory.billing(booking)

    billing.payment_status = PaymentStatus.PAID
    billing.payment_date = PAID_ON
    db.session.flush()
    db.session.rollback()

    assert gateway.batches == []
    assert db.session.get(Car, car.id).status == CarStatus.RENTED

    # A later commit in the same session does not pick up the dropped emails
    billing.total_amount = 475.0
    save(billing)
    assert gateway.batches == []


def test_missing_car_aborts_settlement(factory, gateway):
    booking = factory.booking(factory.customer(), factory.car())
    billing = factory.billing(booking, car_id=None)

    with pytest.raises(RecordNotFound):
        pay(billing)

    assert gateway.batches == []
    assert db.session.get(Billing, billing.id).payment_status == PaymentStatus.UNPAID


def test_rejected_car_update_sends_no_email(rented, factory, gateway):
    car, booking = rented
    billing = factory.billing(booking)
    car.mileage = -1

    with pytest.raises(ValidationError):
        pay(billing)

    assert gateway.batches == []
    assert db.session.get(Car, car.id).status == CarStatus.RENTED


def test_billing_without_email_still_frees_car(rented, factory, gateway):
    car, booking = rented
    billing = factory.billing(booking)
    billing.customer_email = None
    save(billing)

    pay(billing)

    assert gateway.batches == []
    assert db.session.get(Car, car.id).status == CarStatus.AVAILABLE
