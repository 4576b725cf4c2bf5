from io import BytesIO
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.graphics.barcode import code128

from .formatting import format_datetime, terms_lines

HEADER_BLUE = colors.Color(59 / 255, 130 / 255, 246 / 255)


def _header(c, ticket_data, width, height):
    c.setFillColor(HEADER_BLUE)
    c.rect(0, height - 30 * mm, width, 30 * mm, fill=1, stroke=0)
    c.setFillColor(colors.white)
    c.setFont("Helvetica-Bold", 24)
    c.drawCentredString(width / 2, height - 15 * mm, "Boarding Pass")
    c.setFont("Helvetica", 16)
    c.drawCentredString(width / 2, height - 25 * mm, f"E-Ticket #{ticket_data['ticket_number']}")
    c.setFillColor(colors.black)


# Full boarding pass: route, flight details, passengers, barcode, terms
def render_ticket_pdf(ticket_data: dict) -> bytes:
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    width, height = A4
    info = ticket_data["flight_info"]

    _header(c, ticket_data, width, height)

    # Route
    y = height - 50 * mm
    c.setFont("Helvetica-Bold", 28)
    c.drawString(30 * mm, y, info["departure_airport"])
    c.drawRightString(width - 30 * mm, y, info["arrival_airport"])
    c.setLineWidth(1.5)
    c.line(70 * mm, y + 3 * mm, width - 70 * mm, y + 3 * mm)
    c.setFont("Helvetica", 9)
    c.setFillColor(colors.grey)
    c.drawString(30 * mm, y - 6 * mm, "Departure")
    c.drawRightString(width - 30 * mm, y - 6 * mm, "Arrival")
    c.setFillColor(colors.black)

    # Flight details row
    y -= 22 * mm
    details = [
        ("Flight", f"{info['airline']} {info['flight_number']}"),
        ("Departure", format_datetime(info["departure_time"])),
        ("Arrival", format_datetime(info["arrival_time"])),
        ("Class", (info["cabin_class"] or "").upper()),
    ]
    col = (width - 40 * mm) / len(details)
    for idx, (label, value) in enumerate(details):
        x = 20 * mm + col * idx + col / 2
        c.setFont("Helvetica", 9)
        c.setFillColor(colors.grey)
        c.drawCentredString(x, y, label)
        c.setFillColor(colors.black)
        c.setFont("Helvetica-Bold", 11)
        c.drawCentredString(x, y - 6 * mm, value)

    c.setLineWidth(0.5)
    c.setStrokeColor(colors.lightgrey)
    c.line(20 * mm, y - 12 * mm, width - 20 * mm, y - 12 * mm)
    c.setStrokeColor(colors.black)

    # Passengers
    y -= 22 * mm
    c.setFont("Helvetica-Bold", 14)
    c.drawString(20 * mm, y, "Passengers")
    y -= 8 * mm
    for passenger in ticket_data["passengers"]:
        c.setFont("Helvetica-Bold", 11)
        c.drawString(25 * mm, y, passenger["name"])
        c.setFont("Helvetica", 10)
        line = f"Seat: {passenger['seat_number']}"
        if passenger.get("passport_number") and passenger["passport_number"] != "Not provided":
            line += f"    Passport: {passenger['passport_number']}"
        c.drawString(25 * mm, y - 5 * mm, line)
        y -= 13 * mm

    # Barcode
    y -= 5 * mm
    barcode = code128.Code128(ticket_data["barcode"], barHeight=15 * mm, humanReadable=True)
    barcode.drawOn(c, width - 100 * mm, y - 15 * mm)
    c.setFont("Helvetica", 9)
    c.setFillColor(colors.grey)
    c.drawString(20 * mm, y - 5 * mm, f"Booking: {ticket_data['booking_id']}")
    c.drawString(20 * mm, y - 10 * mm, "Scan the barcode at the airport")
    c.setFillColor(colors.black)

    # Terms
    y -= 30 * mm
    c.setDash(6, 3)
    c.line(20 * mm, y, width - 20 * mm, y)
    c.setDash()
    y -= 6 * mm
    c.setFont("Helvetica-Bold", 10)
    c.drawString(20 * mm, y, "Terms and Conditions")
    c.setFont("Helvetica", 8)
    for line in terms_lines(ticket_data.get("terms")):
        y -= 4.5 * mm
        c.drawString(20 * mm, y, line)

    c.showPage()
    c.save()
    return buffer.getvalue()


# Minimal layout used when the full one cannot be drawn
def render_simple_ticket_pdf(ticket_data: dict) -> bytes:
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    width, height = A4
    info = ticket_data["flight_info"]

    _header(c, ticket_data, width, height)

    c.setFont("Helvetica-Bold", 20)
    c.drawCentredString(width / 2, height - 50 * mm, f"{info['departure_airport']} -> {info['arrival_airport']}")

    c.setFont("Helvetica", 12)
    c.drawString(20 * mm, height - 70 * mm, f"Flight: {info['airline']} {info['flight_number']}")
    c.drawString(20 * mm, height - 80 * mm, f"Class: {(info['cabin_class'] or '').upper()}")

    c.setFont("Helvetica", 14)
    c.drawString(20 * mm, height - 100 * mm, "Passengers:")
    y = height - 110 * mm
    for passenger in ticket_data["passengers"]:
        c.drawString(30 * mm, y, f"{passenger['name']} - Seat: {passenger['seat_number']}")
        y -= 10 * mm

    c.showPage()
    c.save()
    return buffer.getvalue()
