from datetime import datetime

import pytest

from flightbook import create_app, db
from flightbook.config import TestingConfig
from flightbook.models import Airport, Flight, User, Profile

PASSWORD = "secret123"


@pytest.fixture
def app(tmp_path):
    class Config(TestingConfig):
        STORAGE_ROOT = str(tmp_path / "storage")

    app = create_app(Config)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def data(app):
    """Airports and flights used across the suite; returns their ids."""
    with app.app_context():
        jfk = Airport(name="John F. Kennedy International Airport", city="New York", country="United States", iata_code="JFK")
        lax = Airport(name="Los Angeles International Airport", city="Los Angeles", country="United States", iata_code="LAX")
        lhr = Airport(name="Heathrow Airport", city="London", country="United Kingdom", iata_code="LHR")
        db.session.add_all([jfk, lax, lhr])
        db.session.flush()

        def flight(number, origin, dest, depart, arrive, price):
            f = Flight(
                flight_number=number,
                airline="SkyWings",
                departure_airport_id=origin.id,
                arrival_airport_id=dest.id,
                departure_time=depart,
                arrival_time=arrive,
                price=price,
                available_seats=120,
            )
            db.session.add(f)
            return f

        late = flight("SW202", jfk, lax, datetime(2030, 5, 1, 15, 30), datetime(2030, 5, 1, 21, 0), 310.0)
        early = flight("SW201", jfk, lax, datetime(2030, 5, 1, 8, 0), datetime(2030, 5, 1, 13, 45), 289.5)
        next_day = flight("SW203", jfk, lax, datetime(2030, 5, 2, 8, 0), datetime(2030, 5, 2, 13, 45), 275.0)
        back = flight("SW204", lax, jfk, datetime(2030, 5, 8, 9, 0), datetime(2030, 5, 8, 17, 10), 299.0)
        db.session.flush()

        ids = {
            "jfk": jfk.id,
            "lax": lax.id,
            "lhr": lhr.id,
            "early": early.id,
            "late": late.id,
            "next_day": next_day.id,
            "back": back.id,
        }
        db.session.commit()
    return ids


def make_user(app, email="traveler@example.com", password=PASSWORD) -> str:
    with app.app_context():
        user = User(email=email)
        user.set_password(password)
        db.session.add(user)
        db.session.flush()
        user_id = user.id
        db.session.add(Profile(id=user_id))
        db.session.commit()
    return user_id


@pytest.fixture
def user_id(app):
    return make_user(app)


def login(client, email="traveler@example.com", password=PASSWORD):
    return client.post("/auth/login", data={"email": email, "password": password})


@pytest.fixture
def auth_client(client, user_id):
    login(client)
    return client


def make_booking(app, user_id, flight_id, passengers=None, status="confirmed", cabin_class="economy") -> str:
    from flightbook.models import Booking, Passenger

    passengers = passengers or [("Ada", "Lovelace")]
    with app.app_context():
        booking = Booking(
            user_id=user_id,
            flight_id=flight_id,
            total_amount=289.5 * len(passengers),
            cabin_class=cabin_class,
            status=status,
        )
        db.session.add(booking)
        db.session.flush()
        for first, last in passengers:
            db.session.add(Passenger(booking_id=booking.id, first_name=first, last_name=last, email="ada@example.com"))
        booking_id = booking.id
        db.session.commit()
    return booking_id


class UnreachableS3:
    """boto3 client stand-in whose every call fails with ``error``."""

    def __init__(self, error):
        self.error = error

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise self.error
        return fail


@pytest.fixture
def offline_storage(app):
    from botocore.exceptions import EndpointConnectionError
    from flightbook.storage import EXTENSION_KEY, S3Bucket

    bucket = S3Bucket(
        "tickets",
        bucket="flightbook-tickets",
        region="eu-west-1",
        client=UnreachableS3(EndpointConnectionError(endpoint_url="https://flightbook-tickets.s3.eu-west-1.amazonaws.com")),
    )
    app.extensions[EXTENSION_KEY]["tickets"] = bucket
    return bucket
