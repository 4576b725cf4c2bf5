import uuid
from datetime import datetime
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from . import db, login_manager

CABIN_CLASSES = ("economy", "business", "first")
FLIGHT_STATUSES = ("scheduled", "delayed", "cancelled", "completed")
BOOKING_STATUSES = ("confirmed", "cancelled", "completed")


def new_id() -> str:
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value else None


# User model
class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    profile = db.relationship("Profile", back_populates="user", uselist=False)
    bookings = db.relationship("Booking", back_populates="user")

    def set_password(self, plaintext: str):
        self.password_hash = generate_password_hash(plaintext)

    def check_password(self, plaintext: str) -> bool:
        return check_password_hash(self.password_hash, plaintext)

    @property
    def full_name(self):
        if self.profile and self.profile.first_name and self.profile.last_name:
            return f"{self.profile.first_name} {self.profile.last_name}"
        return None

    def __repr__(self):
        return f"<User {self.email}>"


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, user_id)


# account details, keyed by the user id
class Profile(db.Model):
    __tablename__ = "profiles"

    id = db.Column(db.String(36), db.ForeignKey("users.id"), primary_key=True)
    first_name = db.Column(db.String(64))
    last_name = db.Column(db.String(64))
    phone = db.Column(db.String(32))
    address = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship("User", back_populates="profile")

    def __repr__(self):
        return f"<Profile user={self.id} name={self.first_name or ''} {self.last_name or ''}>"


class Airport(db.Model):
    __tablename__ = "airports"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(120), nullable=False)
    city = db.Column(db.String(64), nullable=False)
    country = db.Column(db.String(64), nullable=False)
    iata_code = db.Column(db.String(3), unique=True, nullable=False, index=True)
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    @property
    def label(self) -> str:
        return f"{self.iata_code} - {self.city}, {self.name}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "city": self.city,
            "country": self.country,
            "iata_code": self.iata_code,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<Airport {self.iata_code}>"


class Flight(db.Model):
    __tablename__ = "flights"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    flight_number = db.Column(db.String(10), nullable=False)
    airline = db.Column(db.String(64), nullable=False)
    departure_airport_id = db.Column(db.String(36), db.ForeignKey("airports.id"), nullable=False, index=True)
    arrival_airport_id = db.Column(db.String(36), db.ForeignKey("airports.id"), nullable=False, index=True)
    departure_time = db.Column(db.DateTime, nullable=False, index=True)
    arrival_time = db.Column(db.DateTime, nullable=False)
    price = db.Column(db.Float, nullable=False, default=0.0)
    available_seats = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default="scheduled")
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    departure_airport = db.relationship("Airport", foreign_keys=[departure_airport_id], lazy="joined")
    arrival_airport = db.relationship("Airport", foreign_keys=[arrival_airport_id], lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "flight_number": self.flight_number,
            "airline": self.airline,
            "departure_airport": self.departure_airport_id,
            "arrival_airport": self.arrival_airport_id,
            "departure_time": _iso(self.departure_time),
            "arrival_time": _iso(self.arrival_time),
            "price": self.price,
            "available_seats": self.available_seats,
            "status": self.status,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<Flight {self.flight_number} {self.departure_time}>"


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
    flight_id = db.Column(db.String(36), db.ForeignKey("flights.id"), nullable=False, index=True)
    booking_date = db.Column(db.DateTime, default=datetime.utcnow)
    status = db.Column(db.String(16), nullable=False, default="confirmed")
    total_amount = db.Column(db.Float, nullable=False)
    cabin_class = db.Column(db.String(16), nullable=False, default="economy")
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    user = db.relationship("User", back_populates="bookings")
    flight = db.relationship("Flight")
    passengers = db.relationship(
        "Passenger",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="Passenger.created_at",
    )

    def __repr__(self):
        return f"<Booking {self.id} {self.status}>"


class Passenger(db.Model):
    __tablename__ = "passengers"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    booking_id = db.Column(db.String(36), db.ForeignKey("bookings.id"), nullable=False, index=True)
    first_name = db.Column(db.String(64), nullable=False)
    last_name = db.Column(db.String(64), nullable=False)
    date_of_birth = db.Column(db.Date)
    passport_number = db.Column(db.String(32))
    passport_expiry = db.Column(db.Date)
    email = db.Column(db.String(120))
    phone = db.Column(db.String(32))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    booking = db.relationship("Booking", back_populates="passengers")

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    def __repr__(self):
        return f"<Passenger {self.full_name}>"


# search cache: flight snapshots by id plus a log of searches pointing at them
class CachedFlight(db.Model):
    __tablename__ = "cached_flights"

    id = db.Column(db.String(36), primary_key=True)
    payload = db.Column(db.JSON, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class CachedSearch(db.Model):
    __tablename__ = "cached_searches"

    id = db.Column(db.Integer, primary_key=True)
    origin = db.Column(db.String(3), nullable=False, index=True)
    destination = db.Column(db.String(3), nullable=False, index=True)
    departure_date = db.Column(db.String(10), nullable=False)
    cabin_class = db.Column(db.String(16), nullable=False)
    results = db.Column(db.JSON, nullable=False)
    count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f"<CachedSearch {self.origin}->{self.destination} {self.departure_date} {self.cabin_class}>"
