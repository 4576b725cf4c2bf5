from datetime import date, datetime


def _as_datetime(value):
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def format_datetime(value, fmt: str = "%b %d, %Y %H:%M") -> str:
    dt = _as_datetime(value)
    return dt.strftime(fmt) if dt else ""


def format_date(value, fmt: str = "%b %d, %Y") -> str:
    return format_datetime(value, fmt)


def format_time(value) -> str:
    return format_datetime(value, "%H:%M")


def format_money(value) -> str:
    return f"${float(value or 0):,.2f}"


def format_duration(departure, arrival) -> str:
    start, end = _as_datetime(departure), _as_datetime(arrival)
    if not start or not end or end < start:
        return ""
    minutes = int((end - start).total_seconds() // 60)
    return f"{minutes // 60}h {minutes % 60}m"


def terms_lines(terms: str | None) -> list[str]:
    """Numbered clauses of a terms block, one per line."""
    lines = [line.strip() for line in (terms or "").splitlines()]
    return [line for line in lines if line[:1].isdigit()]


def register_filters(app):
    app.jinja_env.filters["datetime"] = format_datetime
    app.jinja_env.filters["date"] = format_date
    app.jinja_env.filters["time"] = format_time
    app.jinja_env.filters["money"] = format_money
    app.jinja_env.globals["duration"] = format_duration
    app.jinja_env.globals["terms_lines"] = terms_lines
