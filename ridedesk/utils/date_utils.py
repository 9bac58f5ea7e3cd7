from datetime import date, datetime
from typing import Any, Dict

from ridedesk.utils.errors import InputValidationError


def parse_iso_date(value: str, field: str = "date") -> date:
    """Parse a ``YYYY-MM-DD`` string, raising a 400-mapped error naming ``field``."""
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise InputValidationError(f"Invalid {field}, expected YYYY-MM-DD", field=field)


def exact_date_filter(field_id: str, day: date, time_zone: str = "UTC") -> Dict[str, Any]:
    """
    Build a table-service filter matching a single calendar day.

    The service has no plain equality operator for dates, so the day is expressed
    as a closed range: isOnOrAfter(day) AND isOnOrBefore(day).
    """
    value = {"mode": "exactDate", "exactDate": day.isoformat(), "timeZone": time_zone}
    return {
        "conjunction": "and",
        "filterSet": [
            {"fieldId": field_id, "operator": "isOnOrAfter", "value": dict(value)},
            {"fieldId": field_id, "operator": "isOnOrBefore", "value": dict(value)},
        ],
    }
