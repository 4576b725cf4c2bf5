import logging
from flask import Blueprint, render_template, redirect, url_for, flash, abort
from flask_login import login_required, current_user
from sqlalchemy.orm import selectinload
from .models import Booking
from .tickets import (
    TicketError,
    TicketNotFound,
    generate_pdf_ticket,
    get_e_ticket,
    resolve_ticket_download,
    ticket_exists,
)
from . import db

logger = logging.getLogger(__name__)

bookings_bp = Blueprint("bookings", __name__, url_prefix="/bookings")


def _owned_booking_or_redirect(booking_id):
    """Return (booking, None) for the owner, or (None, response) otherwise."""
    booking = db.session.get(Booking, booking_id)
    if not booking:
        abort(404)
    if booking.user_id != current_user.id:
        flash("You do not have permission to view this booking", "danger")
        return None, redirect(url_for("bookings.my_bookings"))
    return booking, None


# lists the current user's bookings, newest first
@bookings_bp.route("/")
@login_required
def my_bookings():
    bookings = (
        Booking.query
        .options(selectinload(Booking.passengers))
        .filter_by(user_id=current_user.id)
        .order_by(Booking.created_at.desc())
        .all()
    )
    return render_template("bookings.html", bookings=bookings)


@bookings_bp.route("/<booking_id>")
@login_required
def booking_detail(booking_id):
    booking, response = _owned_booking_or_redirect(booking_id)
    if response:
        return response

    ticket = None
    try:
        ticket = get_e_ticket(booking.id, current_user.id)
    except TicketNotFound:
        logger.info("No stored ticket for booking %s", booking.id)

    return render_template(
        "booking_detail.html",
        booking=booking,
        flight=booking.flight,
        passengers=booking.passengers,
        ticket=ticket,
    )


@bookings_bp.route("/<booking_id>/cancel", methods=["POST"])
@login_required
def cancel_booking(booking_id):
    booking, response = _owned_booking_or_redirect(booking_id)
    if response:
        return response

    if booking.status == "cancelled":
        flash("This booking is already cancelled.", "info")
        return redirect(url_for("bookings.booking_detail", booking_id=booking.id))

    booking.status = "cancelled"
    db.session.add(booking)
    db.session.commit()
    logger.info("Booking %s cancelled by %s", booking.id, current_user.id)

    flash("Booking cancelled successfully", "success")
    return redirect(url_for("bookings.booking_detail", booking_id=booking.id))


# serves the ticket: generate when missing, else stored PDF, HTML, or JSON rendered as HTML
@bookings_bp.route("/<booking_id>/ticket")
@login_required
def download_ticket(booking_id):
    booking, response = _owned_booking_or_redirect(booking_id)
    if response:
        return response

    if not ticket_exists(booking.id, current_user.id):
        try:
            result = generate_pdf_ticket(booking, booking.passengers, booking.flight, current_user.id)
        except TicketError as e:
            logger.error("Error generating ticket for booking %s: %s", booking.id, e)
            flash("Error generating ticket. Please try again.", "danger")
            return redirect(url_for("bookings.booking_detail", booking_id=booking.id))
        url = result.get("pdf_url") or result.get("html_url")
        if url:
            return redirect(url)
        return result["html_content"]

    found = resolve_ticket_download(booking.id, current_user.id)
    if not found:
        flash("Ticket not found.", "warning")
        return redirect(url_for("bookings.booking_detail", booking_id=booking.id))
    if "url" in found:
        return redirect(found["url"])
    return found["html"]


# replaces the stored ticket with a freshly generated one (new number and seats)
@bookings_bp.route("/<booking_id>/ticket/regenerate", methods=["POST"])
@login_required
def regenerate_ticket(booking_id):
    booking, response = _owned_booking_or_redirect(booking_id)
    if response:
        return response

    try:
        result = generate_pdf_ticket(booking, booking.passengers, booking.flight, current_user.id)
    except TicketError as e:
        logger.error("Error regenerating ticket for booking %s: %s", booking.id, e)
        flash("Failed to generate ticket. Please try again.", "danger")
        return redirect(url_for("bookings.booking_detail", booking_id=booking.id))

    logger.info("Ticket %s regenerated for booking %s", result["ticket_data"]["ticket_number"], booking.id)
    flash("E-ticket regenerated successfully", "success")
    return redirect(url_for("bookings.booking_detail", booking_id=booking.id))
