import logging
from flask import current_app, render_template
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

logger = logging.getLogger(__name__)


def send_email(to_email, subject, html) -> bool:
    api_key = current_app.config.get("SENDGRID_API_KEY")
    if not api_key or not to_email:
        logger.info("Email to %s skipped (no SendGrid key or recipient)", to_email)
        return False
    try:
        sg = SendGridAPIClient(api_key)
        message = Mail(
            from_email=current_app.config.get("MAIL_SENDER"),
            to_emails=to_email,
            subject=subject,
            html_content=html,
        )
        sg.send(message)
    except Exception as e:
        logger.error("Email error: %s", e)
        return False
    return True


# booking confirmation with a link to the stored e-ticket, if there is one
def send_booking_confirmation(booking, flight, ticket_url=None) -> bool:
    html = render_template(
        "email/booking_confirmation.html",
        booking=booking,
        flight=flight,
        ticket_url=ticket_url,
    )
    return send_email(booking.user.email, "Booking Confirmed", html)
