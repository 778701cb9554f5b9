"""Business records of the car rental back office.

Customers reserve cars through bookings; each booking is charged through a
billing record.  Payment status lives on both the booking and the billing
and is kept in step by the settlement hooks in ``settlement.py``.
"""

from datetime import date

from database import db


class CarStatus:
    AVAILABLE = 'Available'
    RENTED = 'Rented'
    MAINTENANCE = 'Maintenance'

    CHOICES = (AVAILABLE, RENTED, MAINTENANCE)


class PaymentStatus:
    UNPAID = 'Unpaid'
    PAID = 'Paid'

    CHOICES = (UNPAID, PAID)


class Customer(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(254))
    phone = db.Column(db.String(50))

    bookings = db.relationship('Booking', back_populates='customer')

    def __repr__(self) -> str:
        return f"<Customer {self.name}>"


class Car(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    model = db.Column(db.String(120), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=CarStatus.AVAILABLE)
    mileage = db.Column(db.Integer, nullable=False, default=0)
    daily_rental_price = db.Column(db.Float, nullable=False)

    bookings = db.relationship('Booking', back_populates='car')

    def __repr__(self) -> str:
        return f"<Car {self.model} {self.status}>"


class Booking(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customer.id'), nullable=False)
    car_id = db.Column(db.Integer, db.ForeignKey('car.id'), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    booking_date = db.Column(db.Date, nullable=False, default=date.today)
    payment_status = db.Column(db.String(10), default=PaymentStatus.UNPAID)
    payment_date = db.Column(db.Date, nullable=True)

    customer = db.relationship('Customer', back_populates='bookings')
    car = db.relationship('Car', back_populates='bookings')
    billings = db.relationship('Billing', back_populates='booking')

    def __repr__(self) -> str:
        return f"<Booking {self.id} {self.start_date} to {self.end_date}>"


class Billing(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey('booking.id'), nullable=False)
    car_id = db.Column(db.Integer, db.ForeignKey('car.id'))
    customer_id = db.Column(db.Integer, db.ForeignKey('customer.id'))
    # Copied from the customer when the billing is raised
    customer_email = db.Column(db.String(254))
    total_amount = db.Column(db.Float, nullable=False)
    payment_date = db.Column(db.Date, nullable=True)
    payment_status = db.Column(db.String(10), default=PaymentStatus.UNPAID)

    booking = db.relationship('Booking', back_populates='billings')
    car = db.relationship('Car')
    customer = db.relationship('Customer')

    def __repr__(self) -> str:
        return f"<Billing {self.id} {self.total_amount} {self.payment_status}>"
