import json
import random
import re

import pytest

from flightbook import db
from flightbook.models import Booking
from flightbook.storage import StorageError, get_bucket
from flightbook.tickets import (
    AuthenticationRequired,
    TicketError,
    TicketNotFound,
    generate_e_ticket,
    generate_pdf_ticket,
    generate_seat_number,
    generate_ticket_number,
    get_e_ticket,
    resolve_ticket_download,
    ticket_exists,
    ticket_path,
)

from conftest import make_booking

BOOKING_ID = "3f2a9c1e-5b7d-4e21-9a0f-0c1d2e3f4a5b"

SEARCH_FLIGHT = {
    "id": "f-1",
    "flight_number": "SW201",
    "airline": "SkyWings",
    "departure_airport": "airport-jfk",
    "arrival_airport": "airport-lax",
    "departure_airport_details": {"iata_code": "JFK"},
    "arrival_airport_details": {"iata_code": "LAX"},
    "departure_time": "2030-05-01T08:00:00",
    "arrival_time": "2030-05-01T13:45:00",
}
BOOKING = {"id": BOOKING_ID, "cabin_class": "business", "total_amount": 579.0, "created_at": "2030-04-01T10:00:00"}
PASSENGERS = [
    {"first_name": "Grace", "last_name": "Hopper", "passport_number": "X1234567"},
    {"first_name": "Alan", "last_name": "Turing"},
]


class FailingBucket:
    def upload(self, *args, **kwargs):
        raise StorageError("bucket is read-only")


def test_ticket_number_format():
    number = generate_ticket_number(BOOKING_ID)
    assert re.fullmatch(r"TKT\d{8}3F2A9C1E", number)


def test_seat_numbers_follow_cabin_rows():
    rng = random.Random(7)
    rows = {
        cabin: {int(generate_seat_number(cabin, rng)[:-1]) for _ in range(200)}
        for cabin in ("first", "business", "economy", "unknown")
    }
    assert rows["first"] <= set(range(1, 4))
    assert rows["business"] <= set(range(4, 10))
    assert rows["economy"] <= set(range(10, 41))
    assert rows["unknown"] <= set(range(10, 41))
    assert generate_seat_number("economy", rng)[-1] in "ABCDEF"


def test_ticket_paths():
    assert ticket_path("b1", "u1") == "u1/b1/ticket.json"
    assert ticket_path("b1") == "b1/ticket.json"
    assert ticket_path("b1", "u1", "ticket.pdf") == "u1/b1/ticket.pdf"


def test_generate_e_ticket_from_search_result(app):
    with app.test_request_context():
        result = generate_e_ticket(BOOKING, PASSENGERS, SEARCH_FLIGHT, "user-1")
        stored = json.loads(get_bucket().download("user-1/" + BOOKING_ID + "/ticket.json"))

    ticket = result["ticket_data"]
    assert stored == ticket
    assert ticket["booking_id"] == BOOKING_ID
    assert ticket["flight_info"]["departure_airport"] == "JFK"
    assert ticket["flight_info"]["arrival_airport"] == "LAX"
    assert ticket["flight_info"]["cabin_class"] == "business"
    assert [p["passport_number"] for p in ticket["passengers"]] == ["X1234567", "Not provided"]
    assert ticket["purchase_info"]["payment_method"] == "Credit Card"
    assert ticket["barcode"] == "3F2A9C1E5B7D4E21"
    assert "token=" in result["ticket_url"]


def test_generate_e_ticket_from_models(app, data, user_id):
    booking_id = make_booking(app, user_id, data["early"])
    with app.test_request_context():
        booking = db.session.get(Booking, booking_id)
        ticket = generate_e_ticket(booking, booking.passengers, booking.flight, user_id)["ticket_data"]
    assert ticket["flight_info"]["departure_airport"] == "JFK"
    assert ticket["flight_info"]["departure_time"] == "2030-05-01T08:00:00"
    assert ticket["passengers"][0]["name"] == "Ada Lovelace"


def test_generate_e_ticket_requires_user(app):
    with app.test_request_context():
        with pytest.raises(AuthenticationRequired):
            generate_e_ticket(BOOKING, PASSENGERS, SEARCH_FLIGHT, None)


def test_generate_e_ticket_upload_failure(app):
    with app.test_request_context():
        with pytest.raises(TicketError, match="Cannot upload ticket"):
            generate_e_ticket(BOOKING, PASSENGERS, SEARCH_FLIGHT, "user-1", storage=FailingBucket())


def test_get_e_ticket_falls_back_to_legacy_path(app):
    legacy = {"ticket_number": "TKTLEGACY", "booking_id": BOOKING_ID}
    with app.test_request_context():
        get_bucket().upload(f"{BOOKING_ID}/ticket.json", json.dumps(legacy))
        found = get_e_ticket(BOOKING_ID, "user-1")
        assert found["ticket_data"] == legacy
        assert ticket_exists(BOOKING_ID, "user-1")

        with pytest.raises(TicketNotFound, match="Ticket not found"):
            get_e_ticket("no-such-booking", "user-1")
        assert not ticket_exists("no-such-booking", "user-1")


def test_get_e_ticket_skips_unreadable_json(app):
    with app.test_request_context():
        get_bucket().upload(f"user-1/{BOOKING_ID}/ticket.json", "{not json")
        get_bucket().upload(f"{BOOKING_ID}/ticket.json", json.dumps({"ticket_number": "TKTOLD"}))
        assert get_e_ticket(BOOKING_ID, "user-1")["ticket_data"]["ticket_number"] == "TKTOLD"


def test_pdf_ticket_is_stored_next_to_json(app):
    with app.test_request_context():
        result = generate_pdf_ticket(BOOKING, PASSENGERS, SEARCH_FLIGHT, "user-1")
        pdf = get_bucket().download(f"user-1/{BOOKING_ID}/ticket.pdf")
    assert pdf.startswith(b"%PDF")
    assert result["pdf_url"] and result["html_url"] is None
    assert "Boarding Pass" in result["html_content"]


def test_pdf_falls_back_to_simple_layout(app, monkeypatch):
    def broken(ticket_data):
        raise RuntimeError("font missing")

    monkeypatch.setattr("flightbook.tickets.render_ticket_pdf", broken)
    with app.test_request_context():
        generate_pdf_ticket(BOOKING, PASSENGERS, SEARCH_FLIGHT, "user-1")
        assert get_bucket().download(f"user-1/{BOOKING_ID}/ticket.pdf").startswith(b"%PDF")


def test_html_ticket_when_pdf_disabled(app):
    app.config["TICKET_PDF_ENABLED"] = False
    with app.test_request_context():
        result = generate_pdf_ticket(BOOKING, PASSENGERS, SEARCH_FLIGHT, "user-1")
        bucket = get_bucket()
        assert bucket.exists(f"user-1/{BOOKING_ID}/ticket.html")
        assert not bucket.exists(f"user-1/{BOOKING_ID}/ticket.pdf")
    assert result["html_url"] and result["pdf_url"] is None


def test_resolve_ticket_download(app):
    with app.test_request_context():
        assert resolve_ticket_download(BOOKING_ID, "user-1") is None

        generate_e_ticket(BOOKING, PASSENGERS, SEARCH_FLIGHT, "user-1")
        found = resolve_ticket_download(BOOKING_ID, "user-1")
        assert "Grace Hopper" in found["html"]

        generate_pdf_ticket(BOOKING, PASSENGERS, SEARCH_FLIGHT, "user-1")
        found = resolve_ticket_download(BOOKING_ID, "user-1")
        assert f"/storage/tickets/user-1/{BOOKING_ID}/ticket.pdf" in found["url"]
