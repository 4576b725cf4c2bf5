import logging
import re
from datetime import date
from flask import Blueprint, render_template, request, redirect, url_for, flash
from flask_login import login_required, current_user
from sqlalchemy.exc import SQLAlchemyError
from .models import Booking, Flight, Passenger, CABIN_CLASSES
from .notifications import send_booking_confirmation
from .state import (
    clear_booking_context,
    entered_passengers,
    get_booking_context,
    set_entered_passengers,
    start_booking_context,
)
from .tickets import TicketError, generate_e_ticket
from . import db

logger = logging.getLogger(__name__)

booking_bp = Blueprint("booking", __name__, url_prefix="/booking")

MAX_PASSENGERS = 9
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class BookingError(Exception):
    pass


# one passenger from the form; blank optionals become None
def validate_passenger(form) -> tuple[dict, dict]:
    data = {
        "first_name": (form.get("first_name") or "").strip(),
        "last_name": (form.get("last_name") or "").strip(),
        "date_of_birth": (form.get("date_of_birth") or "").strip(),
        "passport_number": (form.get("passport_number") or "").strip() or None,
        "email": (form.get("email") or "").strip() or None,
        "phone": (form.get("phone") or "").strip() or None,
    }
    errors = {}

    if len(data["first_name"]) < 2:
        errors["first_name"] = "First name is required"
    if len(data["last_name"]) < 2:
        errors["last_name"] = "Last name is required"

    if not data["date_of_birth"]:
        errors["date_of_birth"] = "Date of birth is required"
    else:
        try:
            dob = date.fromisoformat(data["date_of_birth"])
        except ValueError:
            errors["date_of_birth"] = "Please enter date of birth as YYYY-MM-DD"
        else:
            if dob > date.today():
                errors["date_of_birth"] = "Date of birth cannot be in the future"

    if data["email"] and not EMAIL_RE.match(data["email"]):
        errors["email"] = "Invalid email"

    return data, errors


def booking_total(price, passenger_count: int) -> float:
    return max(round(float(price or 0) * passenger_count, 2), 0.01)


def create_booking(user, flight, passengers: list[dict], cabin_class: str | None = None) -> Booking:
    """Insert a confirmed booking and its passengers in one transaction."""
    if not passengers:
        raise BookingError("No passenger information provided")

    cabin = (cabin_class or "economy").lower()
    if cabin not in CABIN_CLASSES:
        cabin = "economy"

    logger.info("Creating booking for %s with %d passenger(s)", flight.flight_number, len(passengers))
    try:
        booking = Booking(
            user_id=user.id,
            flight_id=flight.id,
            total_amount=booking_total(flight.price, len(passengers)),
            cabin_class=cabin,
            status="confirmed",
        )
        db.session.add(booking)
        db.session.flush()
        if not booking.id:
            raise BookingError("Failed to create booking: No booking ID returned")

        for p in passengers:
            dob = p.get("date_of_birth")
            db.session.add(Passenger(
                booking_id=booking.id,
                first_name=p["first_name"],
                last_name=p["last_name"],
                date_of_birth=date.fromisoformat(dob) if isinstance(dob, str) and dob else dob,
                passport_number=p.get("passport_number") or None,
                email=p.get("email") or user.email or "",
                phone=p.get("phone") or None,
            ))
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error("Booking creation error: %s", e)
        raise BookingError("An error occurred during booking") from e
    except BookingError:
        db.session.rollback()
        raise

    logger.info("Booking created successfully: %s", booking.id)
    return booking


# ticket and confirmation email are best effort; the booking stands either way
def _after_booking(booking, flight):
    ticket_url = None
    try:
        result = generate_e_ticket(booking, booking.passengers, flight, current_user.id)
        ticket_url = result["ticket_url"]
        logger.info("E-ticket generated: %s", ticket_url)
    except TicketError as e:
        logger.error("Error with ticket for booking %s: %s", booking.id, e)

    send_booking_confirmation(booking, flight, ticket_url)


def _context_flight(ctx):
    flight_id = ctx.get("flight_id")
    return db.session.get(Flight, flight_id) if flight_id else None


# picks a flight from the search results and starts the passenger form
@booking_bp.route("/new")
@login_required
def new_booking():
    flight_id = request.args.get("flight_id", "")
    pax = request.args.get("pax", default=1, type=int) or 1
    passenger_count = max(1, min(pax, MAX_PASSENGERS))
    cabin_class = (request.args.get("cabin_class") or "economy").lower()

    flight = db.session.get(Flight, flight_id) if flight_id else None
    if not flight:
        flash("That flight is no longer available.", "warning")
        return redirect(url_for("search.index"))

    start_booking_context(
        flight.id,
        cabin_class if cabin_class in CABIN_CLASSES else "economy",
        passenger_count,
    )
    return redirect(url_for("booking.passengers"))


@booking_bp.route("/passengers", methods=["GET", "POST"])
@login_required
def passengers():
    ctx = get_booking_context()
    flight = _context_flight(ctx)
    if not flight:
        flash("Please choose a flight first.", "warning")
        return redirect(url_for("search.index"))

    passenger_count = ctx.get("passenger_count") or 1
    entered = entered_passengers()
    cabin_class = ctx.get("cabin_class") or "economy"

    def render(errors=None, form=None, status=200):
        return render_template(
            "booking.html",
            flight=flight,
            cabin_class=cabin_class,
            passenger_count=passenger_count,
            current=len(entered) + 1,
            entered=entered,
            errors=errors or {},
            form=form or {},
        ), status

    if request.method == "GET":
        return render()

    data, errors = validate_passenger(request.form)
    if errors:
        return render(errors=errors, form=request.form, status=400)

    entered.append(data)
    if len(entered) < passenger_count:
        set_entered_passengers(entered)
        return redirect(url_for("booking.passengers"))

    try:
        booking = create_booking(current_user, flight, entered, cabin_class)
    except BookingError as e:
        set_entered_passengers(entered[:-1])
        flash(str(e), "danger")
        return redirect(url_for("booking.passengers"))

    clear_booking_context()
    _after_booking(booking, flight)

    flash("Booking confirmed! Check your bookings page for details.", "success")
    return redirect(url_for("bookings.my_bookings"))


@booking_bp.route("/cancel", methods=["POST"])
@login_required
def cancel():
    clear_booking_context()
    return redirect(url_for("search.index"))
