import logging
from datetime import date, datetime, timedelta
from flask import Blueprint, render_template, request, jsonify
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from .models import Airport, Flight, CABIN_CLASSES
from .search_cache import get_cached_flight_search_results, store_flight_search_results

logger = logging.getLogger(__name__)

search_bp = Blueprint("search", __name__)

DEFAULT_SEARCH = {
    "origin": "",
    "destination": "",
    "departure_date": "",
    "return_date": "",
    "adults": 1,
    "children": 0,
    "infants": 0,
    "cabin_class": "economy",
    "is_round_trip": False,
}


class SearchError(Exception):
    pass


def _int_field(raw, default: int) -> int | None:
    if raw is None or str(raw).strip() == "":
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _date_field(raw) -> date | None:
    try:
        return date.fromisoformat((raw or "").strip())
    except ValueError:
        return None


# validates the search form; returns the normalized params and a field -> message map
def parse_search_params(form) -> tuple[dict, dict]:
    params = dict(DEFAULT_SEARCH)
    errors = {}

    origin = (form.get("origin") or "").strip().upper()
    destination = (form.get("destination") or "").strip().upper()
    params["origin"] = origin
    params["destination"] = destination
    if len(origin) < 3:
        errors["origin"] = "Please select origin"
    if len(destination) < 3:
        errors["destination"] = "Please select destination"

    departure_raw = (form.get("departure_date") or "").strip()
    params["departure_date"] = departure_raw
    departure = None
    if not departure_raw:
        errors["departure_date"] = "Please select departure date"
    else:
        departure = _date_field(departure_raw)
        if departure is None:
            errors["departure_date"] = "Please enter departure date as YYYY-MM-DD"

    for field, minimum, message in (
        ("adults", 1, "At least 1 adult required"),
        ("children", 0, "Cannot be negative"),
        ("infants", 0, "Cannot be negative"),
    ):
        value = _int_field(form.get(field), DEFAULT_SEARCH[field])
        if value is None:
            errors[field] = "Please enter a number"
            continue
        params[field] = value
        if value < minimum:
            errors[field] = message

    cabin = (form.get("cabin_class") or "economy").strip().lower()
    params["cabin_class"] = cabin
    if cabin not in CABIN_CLASSES:
        errors["cabin_class"] = "Please select a cabin class"

    params["is_round_trip"] = (form.get("round_trip") or "").lower() in ("1", "on", "true", "yes")
    return_raw = (form.get("return_date") or "").strip()
    params["return_date"] = return_raw
    if params["is_round_trip"]:
        returning = _date_field(return_raw)
        if not return_raw:
            errors["return_date"] = "Please select return date"
        elif returning is None:
            errors["return_date"] = "Please enter return date as YYYY-MM-DD"
        elif departure and returning < departure:
            errors["return_date"] = "Return date cannot be before departure"

    return params, errors


def passenger_count(params: dict) -> int:
    return (params.get("adults") or 0) + (params.get("children") or 0)


def search_airports(term: str, limit: int = 5) -> list[Airport]:
    term = (term or "").strip()
    # " - " means the field already holds a formatted selection
    if len(term) < 2 or " - " in term:
        return []
    return (
        Airport.query
        .filter(or_(
            Airport.iata_code.ilike(f"{term}%"),
            Airport.name.ilike(f"%{term}%"),
            Airport.city.ilike(f"%{term}%"),
        ))
        .order_by(Airport.iata_code.asc())
        .limit(limit)
        .all()
    )


def _airport_by_code(code: str) -> Airport | None:
    return Airport.query.filter_by(iata_code=code.upper()).first()


def _search_leg(origin: str, destination: str, day: str, cabin_class: str) -> list[dict]:
    origin_airport = _airport_by_code(origin)
    if not origin_airport:
        raise SearchError(f"Origin airport not found: {origin}")
    destination_airport = _airport_by_code(destination)
    if not destination_airport:
        raise SearchError(f"Destination airport not found: {destination}")

    start = datetime.combine(date.fromisoformat(day), datetime.min.time())
    end = start + timedelta(days=1)
    flights = (
        Flight.query
        .filter(
            Flight.departure_airport_id == origin_airport.id,
            Flight.arrival_airport_id == destination_airport.id,
            Flight.departure_time >= start,
            Flight.departure_time < end,
        )
        .order_by(Flight.departure_time.asc())
        .all()
    )

    results = []
    for flight in flights:
        row = flight.to_dict()
        row["departure_airport_details"] = origin_airport.to_dict()
        row["arrival_airport_details"] = destination_airport.to_dict()
        row["cabin_class"] = cabin_class
        results.append(row)
    return results


def _cached_leg(origin: str, destination: str, day: str, cabin_class: str) -> list[dict]:
    query = {"origin": origin, "destination": destination, "departure_date": day, "cabin_class": cabin_class}

    cached = get_cached_flight_search_results(query)
    if cached:
        logger.info("Using cached flight results for %s->%s on %s", origin, destination, day)
        return cached

    flights = _search_leg(origin, destination, day, cabin_class)
    if flights:
        try:
            store_flight_search_results(query, flights)
        except SQLAlchemyError as e:
            logger.error("Error storing flight results in cache: %s", e)
    return flights


def search_flights(params: dict) -> dict:
    """Run a validated search; the cache is consulted per leg."""
    outbound = _cached_leg(params["origin"], params["destination"], params["departure_date"], params["cabin_class"])
    inbound = []
    if params.get("is_round_trip") and params.get("return_date"):
        inbound = _cached_leg(params["destination"], params["origin"], params["return_date"], params["cabin_class"])
    return {"outbound": outbound, "inbound": inbound}


@search_bp.route("/")
def index():
    return render_template("index.html", params=DEFAULT_SEARCH, errors={}, results=None)


@search_bp.route("/search", methods=["GET"], endpoint="search")
def search_page():
    params, errors = parse_search_params(request.args)
    if errors:
        return render_template("index.html", params=params, errors=errors, results=None), 400

    try:
        results = search_flights(params)
    except SearchError as e:
        return render_template("index.html", params=params, errors={"form": str(e)}, results=None), 404

    return render_template(
        "index.html",
        params=params,
        errors={},
        results=results,
        passenger_count=passenger_count(params),
    )


@search_bp.get("/api/airports")
def airports_api():
    airports = search_airports(request.args.get("q", ""))
    return jsonify([dict(a.to_dict(), label=a.label) for a in airports])
