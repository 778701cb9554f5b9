"""
Query and write helpers for the business records.

Besides the per-entity finders, this module carries the update hooks:
callbacks registered with :func:`on_update` run inside the flush that writes
the updated records, before anything reaches the database, and receive the
``(old, new)`` pair for every changed record of their model.  Every new or
changed record is validated before the hooks run, and whatever the hooks
change is validated after; a violation aborts the flush with
:class:`validation.ValidationError`.

Side effects that must not outlive a failed write, such as emails, are
queued with :func:`run_after_commit`.
"""

from datetime import date

from sqlalchemy import event, inspect, or_, select

from config import get_logger
from database import db
from models import Billing, Booking, Car, Customer
from validation import ValidationError, check

logger = get_logger(__name__)

_update_hooks = []


class RecordNotFound(LookupError):
    pass


class RecordSnapshot:
    """Read-only view of a record's column values before its pending changes."""

    def __init__(self, record):
        state = inspect(record)
        values = {}
        unloaded = []
        for attr in state.mapper.column_attrs:
            history = state.attrs[attr.key].history
            if history.deleted:
                values[attr.key] = history.deleted[0]
            elif history.unchanged:
                values[attr.key] = history.unchanged[0]
            elif history.added:
                # Overwritten before the previous value was ever loaded
                unloaded.append(attr)
            else:
                values[attr.key] = getattr(record, attr.key)
        if unloaded:
            # Not flushed yet, so the database still holds the previous values
            mapper = state.mapper
            row = state.session.execute(
                select(*[attr.columns[0] for attr in unloaded]).where(
                    *[col == value for col, value in zip(mapper.primary_key, state.identity)]
                )
            ).one()
            values.update(zip([attr.key for attr in unloaded], row))
        self._model = type(record)
        self._values = values

    def changed(self, record) -> list:
        """Column names whose value on ``record`` differs from the snapshot."""
        return [key for key, value in self._values.items() if getattr(record, key) != value]

    def __getattr__(self, name):
        values = self.__dict__.get('_values', {})
        try:
            return values[name]
        except KeyError:
            raise AttributeError(name) from None

    def __repr__(self) -> str:
        return f"<{self._model.__name__} snapshot {self._values}>"


# ---------------------------------------------------------------------------
# Update hooks

def on_update(model):
    """Register ``callback(changes)`` for updates of ``model`` records."""
    def decorator(callback):
        _update_hooks.append((model, callback))
        return callback
    return decorator


def remove_update_hook(model, callback):
    _update_hooks.remove((model, callback))


def _updated_records(session, model):
    records = [obj for obj in session.dirty
               if isinstance(obj, model) and session.is_modified(obj)]
    return sorted(records, key=lambda obj: obj.id)


def _validate_pending(session, today, skip=frozenset()):
    pending = list(session.new) + [obj for obj in session.dirty if session.is_modified(obj)]
    for record in pending:
        if record in skip:
            continue
        try:
            check(record, today)
        except ValidationError as e:
            logger.info(f"Rejected write of {record!r}: {e}")
            raise
    return set(pending)


def _before_flush(session, flush_context, instances):
    # Hooks only see writes that passed validation; records the hooks change
    # are checked afterwards.
    today = date.today()
    validated = _validate_pending(session, today)

    for model, callback in list(_update_hooks):
        changes = []
        for obj in _updated_records(session, model):
            old = RecordSnapshot(obj)
            if old.changed(obj):
                changes.append((old, obj))
        if changes:
            logger.debug(f"Dispatching {len(changes)} {model.__name__} update(s) to {callback.__name__}")
            callback(changes)

    _validate_pending(session, today, skip=validated)


def run_after_commit(callback, *args):
    """
    Call ``callback(*args)`` once the current transaction commits.  Queued
    calls are dropped if the transaction rolls back or ends uncommitted.
    """
    db.session.info.setdefault('after_commit', []).append((callback, args))


def _after_commit(session):
    for callback, args in session.info.pop('after_commit', []):
        callback(*args)


def _discard_after_commit(session, *args):
    dropped = session.info.pop('after_commit', None)
    if dropped:
        logger.info(f"Transaction not committed, dropped {len(dropped)} deferred call(s)")


def _transaction_ended(session, transaction):
    if transaction.parent is None:
        _discard_after_commit(session)


_LISTENERS = (
    ('before_flush', _before_flush),
    ('after_commit', _after_commit),
    ('after_rollback', _discard_after_commit),
    ('after_transaction_end', _transaction_ended),
)


def install(session):
    """Attach validation, update hooks and deferred calls to a session (or scoped session)."""
    for identifier, listener in _LISTENERS:
        if not event.contains(session, identifier, listener):
            event.listen(session, identifier, listener)


# ---------------------------------------------------------------------------
# Writes

def save(*records):
    """Insert or update records and commit; roll back and re-raise on failure."""
    try:
        db.session.add_all(records)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def stage(*records):
    """
    Add records to the current unit of work without committing.  Used from
    update hooks, where the surrounding flush writes them.  Records are
    validated here so a violation surfaces before the hook goes on to other
    side effects.
    """
    for record in records:
        check(record)
    db.session.add_all(records)


# ---------------------------------------------------------------------------
# Lookups

def _get(model, record_id):
    record = db.session.get(model, record_id) if record_id is not None else None
    if record is None:
        raise RecordNotFound(f"{model.__name__} {record_id} not found")
    return record


def get_customer(customer_id) -> Customer:
    return _get(Customer, customer_id)


def get_car(car_id) -> Car:
    return _get(Car, car_id)


def get_booking(booking_id) -> Booking:
    return _get(Booking, booking_id)


def get_billing(billing_id) -> Billing:
    return _get(Billing, billing_id)


# ---------------------------------------------------------------------------
# Queries

def find_customers(email=None, name=None):
    query = Customer.query
    if email is not None:
        query = query.filter(Customer.email == email)
    if name is not None:
        query = query.filter(Customer.name.ilike(f"%{name}%"))
    return query.order_by(Customer.name.asc()).all()


def find_cars(status=None, model=None):
    query = Car.query
    if status is not None:
        query = query.filter(Car.status == status)
    if model is not None:
        query = query.filter(Car.model.ilike(f"%{model}%"))
    return query.order_by(Car.id.asc()).all()


def find_bookings(end_date=None, exclude_payment_status=None, customer_has_email=None,
                  customer_id=None, car_id=None):
    """
    Bookings matching every given filter.  ``exclude_payment_status`` keeps
    bookings whose status differs from the value, including those with no
    status at all.  ``customer_has_email`` filters on whether the booking's
    customer has an email address on file.
    """
    query = Booking.query
    if end_date is not None:
        query = query.filter(Booking.end_date == end_date)
    if exclude_payment_status is not None:
        query = query.filter(or_(Booking.payment_status != exclude_payment_status,
                                 Booking.payment_status.is_(None)))
    if customer_has_email is not None:
        query = query.join(Customer, Booking.customer_id == Customer.id)
        if customer_has_email:
            query = query.filter(Customer.email.isnot(None))
        else:
            query = query.filter(Customer.email.is_(None))
    if customer_id is not None:
        query = query.filter(Booking.customer_id == customer_id)
    if car_id is not None:
        query = query.filter(Booking.car_id == car_id)
    return query.order_by(Booking.id.asc()).all()


def find_billings(booking_id=None, payment_status=None):
    query = Billing.query
    if booking_id is not None:
        query = query.filter(Billing.booking_id == booking_id)
    if payment_status is not None:
        query = query.filter(Billing.payment_status == payment_status)
    return query.order_by(Billing.id.asc()).all()
