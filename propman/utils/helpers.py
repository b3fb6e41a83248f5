"""Shared request-parsing helpers for blueprints and services.

parse_date_input:  raises ValueError on bad input
parse_month:       YYYY-MM filter for the cash-flow forecast
get_json_body:     JSON object body or a 400 error tuple
"""
from datetime import date, datetime

from flask import request

from propman.utils.errors import E, api_error


def parse_date_input(value):
    """Parse a date string, raising ValueError on bad input.

    Supports: YYYY-MM-DD, DD.MM.YYYY, full ISO timestamps, date objects.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    for parse in (
        date.fromisoformat,
        lambda s: datetime.fromisoformat(s).date(),
        lambda s: datetime.strptime(s, "%d.%m.%Y").date(),
    ):
        try:
            return parse(text)
        except ValueError:
            continue
    raise ValueError("Invalid date format. Use YYYY-MM-DD or DD.MM.YYYY.")


def parse_month(value) -> tuple[int, int]:
    """Parse ``YYYY-MM`` into (year, month); raises ValueError on bad input."""
    try:
        parsed = datetime.strptime(str(value or "").strip(), "%Y-%m")
    except ValueError as exc:
        raise ValueError("Invalid month. Use YYYY-MM.") from exc
    return parsed.year, parsed.month


def get_json_body():
    """Return (data, None) for a JSON object body, else (None, error_response)."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None, api_error(E.BAD_REQUEST, "Request body must be a JSON object")
    return data, None
