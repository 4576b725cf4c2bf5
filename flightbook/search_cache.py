import logging
from datetime import datetime, timedelta
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from .models import CachedFlight, CachedSearch
from . import db

logger = logging.getLogger(__name__)

MATCH_FIELDS = ("origin", "destination", "departure_date", "cabin_class")


def _query_key(query: dict) -> dict:
    return {field: str(query.get(field) or "") for field in MATCH_FIELDS}


def _cutoff():
    ttl = int(current_app.config.get("SEARCH_CACHE_TTL") or 0)
    if ttl <= 0:
        return None
    return datetime.utcnow() - timedelta(seconds=ttl)


# stores flight snapshots by id and logs the search that produced them
def store_flight_search_results(query: dict, flights: list[dict]) -> None:
    key = _query_key(query)
    try:
        for flight in flights:
            cached = db.session.get(CachedFlight, flight["id"])
            if cached:
                cached.payload = flight
            else:
                db.session.add(CachedFlight(id=flight["id"], payload=flight))

        db.session.add(CachedSearch(
            results=[f["id"] for f in flights],
            count=len(flights),
            **key,
        ))
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise


def get_cached_flight_search_results(query: dict) -> list[dict] | None:
    """Return the flights of the newest cached search matching ``query``.

    Matching compares origin, destination, departure date and cabin class.
    Searches older than SEARCH_CACHE_TTL are ignored. ``None`` means no usable
    entry, including when the cache itself cannot be read.
    """
    key = _query_key(query)
    try:
        q = CachedSearch.query.filter_by(**key)
        cutoff = _cutoff()
        if cutoff is not None:
            q = q.filter(CachedSearch.created_at >= cutoff)
        search = q.order_by(CachedSearch.created_at.desc(), CachedSearch.id.desc()).first()
        if not search:
            return None
        return get_flights_by_ids(search.results or [])
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error("Error retrieving cached flight search results: %s", e)
        return None


def get_flights_by_ids(flight_ids: list[str]) -> list[dict]:
    if not flight_ids:
        return []
    rows = CachedFlight.query.filter(CachedFlight.id.in_(flight_ids)).all()
    by_id = {row.id: row.payload for row in rows}
    # keep stored order; ids evicted since are skipped
    return [by_id[fid] for fid in flight_ids if fid in by_id]


def purge_expired_searches() -> int:
    cutoff = _cutoff()
    if cutoff is None:
        return 0
    try:
        deleted = CachedSearch.query.filter(CachedSearch.created_at < cutoff).delete(synchronize_session=False)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    logger.info("Purged %d expired cached searches", deleted)
    return deleted
