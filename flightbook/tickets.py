"""
E-ticket pipeline.

A ticket is a plain dict (see ``build_ticket_data``) stored as JSON in the
tickets bucket under ``<user_id>/<booking_id>/ticket.json``. Older tickets
were written without the user prefix (``<booking_id>/ticket.json``); every
lookup tries the user-scoped path first and then that legacy path.

Next to the JSON a rendered copy is kept: ``ticket.pdf`` when PDF rendering
is enabled, otherwise ``ticket.html``.
"""
import json
import logging
import random
import time
from urllib.parse import quote

from flask import current_app, render_template

from .pdf import render_ticket_pdf, render_simple_ticket_pdf
from .storage import StorageError, get_bucket

logger = logging.getLogger(__name__)

TICKET_JSON = "ticket.json"
TICKET_PDF = "ticket.pdf"
TICKET_HTML = "ticket.html"

SEAT_ROWS = {
    "economy": (10, 40),
    "business": (4, 9),
    "first": (1, 3),
}
SEAT_LETTERS = "ABCDEF"

TERMS = """
TERMS AND CONDITIONS

1. Please arrive at the airport at least 2 hours before departure for domestic flights and 3 hours for international flights.
2. Valid identification is required for all passengers.
3. Baggage allowance varies by cabin class and airline policy.
4. Changes to your booking may incur additional fees.
5. Refunds are subject to the fare rules of your ticket.

For complete terms and conditions, please visit our website.
"""


class TicketError(Exception):
    pass


class TicketNotFound(TicketError):
    pass


class AuthenticationRequired(TicketError):
    pass


def ticket_path(booking_id: str, user_id: str | None = None, name: str = TICKET_JSON) -> str:
    if user_id:
        return f"{user_id}/{booking_id}/{name}"
    return f"{booking_id}/{name}"


def generate_ticket_number(booking_id: str) -> str:
    stamp = str(int(time.time() * 1000))[-8:]
    unique = booking_id.replace("-", "")[:8]
    return f"TKT{stamp}{unique}".upper()


def generate_seat_number(cabin_class: str | None, rng=random) -> str:
    low, high = SEAT_ROWS.get((cabin_class or "").lower(), SEAT_ROWS["economy"])
    return f"{rng.randint(low, high)}{rng.choice(SEAT_LETTERS)}"


def generate_qr_code(booking_id: str) -> str:
    return f"https://api.qrserver.com/v1/create-qr-code/?size=150x150&data={quote(booking_id)}"


def generate_barcode(booking_id: str) -> str:
    return booking_id.replace("-", "")[:16].upper()


def _get(obj, name, default=None):
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _iso(value):
    return value.isoformat() if hasattr(value, "isoformat") else value


# models carry the Airport relation; search-result dicts carry an id plus *_details
def _airport_code(flight, side: str) -> str:
    airport = _get(flight, f"{side}_airport")
    if isinstance(airport, str):
        details = _get(flight, f"{side}_airport_details") or {}
        return details.get("iata_code") or airport
    return _get(airport, "iata_code") or ""


def build_ticket_data(booking, passengers, flight) -> dict:
    booking_id = str(_get(booking, "id"))
    cabin_class = _get(booking, "cabin_class") or "economy"
    return {
        "ticket_number": generate_ticket_number(booking_id),
        "booking_id": booking_id,
        "flight_info": {
            "flight_number": _get(flight, "flight_number"),
            "airline": _get(flight, "airline"),
            "departure_airport": _airport_code(flight, "departure"),
            "arrival_airport": _airport_code(flight, "arrival"),
            "departure_time": _iso(_get(flight, "departure_time")),
            "arrival_time": _iso(_get(flight, "arrival_time")),
            "cabin_class": cabin_class,
        },
        "passengers": [
            {
                "name": f"{_get(p, 'first_name')} {_get(p, 'last_name')}",
                "passport_number": _get(p, "passport_number") or "Not provided",
                "seat_number": generate_seat_number(cabin_class),
            }
            for p in passengers
        ],
        "purchase_info": {
            "total_amount": _get(booking, "total_amount"),
            "purchase_date": _iso(_get(booking, "created_at")),
            "payment_method": "Credit Card",
        },
        "qr_code": generate_qr_code(booking_id),
        "barcode": generate_barcode(booking_id),
        "terms": TERMS,
    }


def _ticket_url(bucket, path: str) -> str | None:
    url = bucket.public_url(path)
    if url:
        return url
    try:
        return bucket.signed_url(path, current_app.config.get("TICKET_URL_EXPIRES", 60 * 60 * 24 * 7))
    except StorageError as e:
        logger.warning("Could not sign ticket url %s: %s", path, e)
        return None


def generate_e_ticket(booking, passengers, flight, user_id: str | None, storage=None) -> dict:
    if not user_id:
        raise AuthenticationRequired("Authentication required to generate ticket")

    bucket = storage or get_bucket()
    ticket_data = build_ticket_data(booking, passengers, flight)
    path = ticket_path(ticket_data["booking_id"], user_id)

    try:
        bucket.upload(path, json.dumps(ticket_data), content_type="application/json", upsert=True)
    except StorageError as e:
        logger.error("Failed to generate e-ticket for booking %s: %s", ticket_data["booking_id"], e)
        raise TicketError(f"Cannot upload ticket: {e}") from e

    logger.info("E-ticket %s stored at %s", ticket_data["ticket_number"], path)
    return {"ticket_data": ticket_data, "ticket_url": _ticket_url(bucket, path)}


def _candidate_paths(booking_id: str, user_id: str | None, name: str = TICKET_JSON) -> list[str]:
    paths = []
    if user_id:
        paths.append(ticket_path(booking_id, user_id, name))
    paths.append(ticket_path(booking_id, None, name))
    return paths


def _has_ticket_json(bucket, path: str) -> bool:
    folder = path.rsplit("/", 1)[0]
    return any(entry.get("name") == TICKET_JSON for entry in bucket.list(folder, limit=10))


def get_e_ticket(booking_id: str, user_id: str | None = None, storage=None) -> dict:
    """Load a stored ticket, user-scoped path first, then the legacy path.

    Raises TicketNotFound when neither location holds a readable ticket.
    """
    bucket = storage or get_bucket()
    for path in _candidate_paths(booking_id, user_id):
        try:
            if not _has_ticket_json(bucket, path):
                continue
            ticket_data = json.loads(bucket.download(path).decode("utf-8"))
        except (StorageError, ValueError) as e:
            logger.warning("Ticket lookup at %s failed: %s", path, e)
            continue
        return {"ticket_data": ticket_data, "ticket_url": _ticket_url(bucket, path)}

    raise TicketNotFound("Ticket not found")


def ticket_exists(booking_id: str, user_id: str | None = None, storage=None) -> bool:
    bucket = storage or get_bucket()
    try:
        return any(_has_ticket_json(bucket, path) for path in _candidate_paths(booking_id, user_id))
    except StorageError as e:
        logger.error("Error checking ticket existence: %s", e)
        return False


def generate_ticket_html(ticket_data: dict) -> str:
    return render_template("ticket.html", ticket=ticket_data)


def generate_pdf_ticket(booking, passengers, flight, user_id: str | None, storage=None) -> dict:
    """Generate the ticket JSON plus a rendered copy and upload both.

    The rendered copy is a PDF when TICKET_PDF_ENABLED is set (falling back to
    the simple layout if the full one fails to draw) and HTML otherwise.
    """
    bucket = storage or get_bucket()
    result = generate_e_ticket(booking, passengers, flight, user_id, storage=bucket)
    ticket_data = result["ticket_data"]
    html = generate_ticket_html(ticket_data)

    if current_app.config.get("TICKET_PDF_ENABLED", True):
        try:
            document = render_ticket_pdf(ticket_data)
        except Exception as e:
            logger.error("Error rendering ticket PDF, using simple layout: %s", e)
            document = render_simple_ticket_pdf(ticket_data)
        name, content_type = TICKET_PDF, "application/pdf"
    else:
        document = html.encode("utf-8")
        name, content_type = TICKET_HTML, "text/html"

    path = ticket_path(ticket_data["booking_id"], user_id, name)
    try:
        bucket.upload(path, document, content_type=content_type, upsert=True)
    except StorageError as e:
        raise TicketError(f"Cannot upload ticket PDF: {e}") from e

    url = _ticket_url(bucket, path)
    return {
        "ticket_data": ticket_data,
        "ticket_url": result["ticket_url"],
        "pdf_url": url if name == TICKET_PDF else None,
        "html_url": url if name == TICKET_HTML else None,
        "html_content": html,
    }


def resolve_ticket_download(booking_id: str, user_id: str | None, storage=None) -> dict | None:
    """Find the best stored form of a ticket for download.

    Returns ``{"url": ...}`` for a stored PDF or HTML copy, ``{"html": ...}``
    when only the JSON exists (rendered on the fly), or ``None``.
    """
    bucket = storage or get_bucket()
    if user_id:
        for name in (TICKET_PDF, TICKET_HTML):
            path = ticket_path(booking_id, user_id, name)
            try:
                if not bucket.exists(path):
                    continue
            except StorageError as e:
                logger.warning("Could not check %s: %s", path, e)
                continue
            url = _ticket_url(bucket, path)
            if url:
                return {"url": url}

    try:
        stored = get_e_ticket(booking_id, user_id, storage=bucket)
    except TicketNotFound:
        return None
    return {"html": generate_ticket_html(stored["ticket_data"])}
