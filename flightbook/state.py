from flask import session

BOOKING_SESSION_KEY = "booking_context"


def get_booking_context() -> dict:
    return session.get(BOOKING_SESSION_KEY) or {}


def _save(ctx: dict) -> dict:
    session[BOOKING_SESSION_KEY] = ctx
    session.modified = True
    return ctx


def start_booking_context(flight_id: str, cabin_class: str, passenger_count: int) -> dict:
    """
    Fresh context for the passenger pages; anything from an earlier flow is dropped.
    """
    return _save({
        "flight_id": flight_id,
        "cabin_class": cabin_class,
        "passenger_count": passenger_count,
        "passengers": [],
    })


def entered_passengers() -> list[dict]:
    return list(get_booking_context().get("passengers") or [])


def set_entered_passengers(passengers: list[dict]) -> dict:
    ctx = get_booking_context()
    ctx["passengers"] = list(passengers)
    return _save(ctx)


def clear_booking_context():
    session.pop(BOOKING_SESSION_KEY, None)
