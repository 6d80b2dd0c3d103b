"""
Input parsing and validation for event payloads.

Request bodies arrive either as JSON or as multipart form fields (all
strings), so every parser here accepts both representations.
"""

import re
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from eventhub.errors import InvalidDate, InvalidId, MissingField, ValidationError

# --- CONSTANTS FOR VALIDATION ---
TITLE_MAX_LENGTH = 200
LOCATION_MAX_LENGTH = 255
VALID_CATEGORIES = ["conference", "workshop", "social", "other"]
REQUIRED_FIELDS = ["title", "description", "date", "location", "category"]
MAX_ID = 2**31 - 1  # SERIAL upper bound

# API field name -> events column. creator and attendees are deliberately absent.
UPDATABLE_FIELDS = {
    "title": "title",
    "description": "description",
    "date": "event_date",
    "location": "location",
    "category": "category",
    "maxAttendees": "max_attendees",
}

_ID_PATTERN = re.compile(r"^[0-9]+$")


def parse_dt(val: Any) -> Optional[datetime]:
    """
    Safely parse an ISO-8601 or datetime-local string to an aware datetime.

    Naive values are taken as UTC.

    Returns:
        datetime: The parsed datetime, or None if invalid.
    """
    if isinstance(val, datetime):
        dt = val
    elif isinstance(val, str) and val.strip():
        val = val.strip()
        # Handles 'YYYY-MM-DDTHH:MM' and '...Z' or '...+00:00'
        if val.endswith("Z"):
            val = val[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(val)
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_id(raw: Any, label: str = "event") -> int:
    """
    Turn a path/query identifier into an int.

    Raises:
        InvalidId: Not a positive integer that fits the id column.
    """
    text = str(raw).strip() if raw is not None else ""
    if not _ID_PATTERN.match(text) or not 0 < int(text) <= MAX_ID:
        raise InvalidId(f"Invalid {label} ID")
    return int(text)


def parse_max_attendees(val: Any) -> Optional[int]:
    """
    None, "" and "null" mean unlimited; anything else must be a positive integer.
    """
    if val is None or (isinstance(val, str) and val.strip().lower() in ("", "null")):
        return None
    if isinstance(val, bool):
        raise ValidationError("maxAttendees must be a positive integer")
    if isinstance(val, int):
        number = val
    elif isinstance(val, str) and val.strip().isdigit():
        number = int(val.strip())
    else:
        raise ValidationError("maxAttendees must be a positive integer")

    if number < 1:
        raise ValidationError("maxAttendees must be a positive integer")
    return number


def ensure_future(dt: datetime, now: Optional[datetime] = None) -> datetime:
    """Raise InvalidDate unless `dt` is strictly after `now`."""
    now = now or datetime.now(timezone.utc)
    if dt <= now:
        raise InvalidDate()
    return dt


def _clean_text(field: str, val: Any, max_length: Optional[int] = None) -> str:
    if not isinstance(val, str) or not val.strip():
        raise ValidationError(f"{field} cannot be empty")
    val = val.strip()
    if max_length and len(val) > max_length:
        raise ValidationError(f"{field} must be {max_length} characters or less")
    return val


def _parse_field(field: str, val: Any, now: datetime) -> Any:
    if field == "title":
        return _clean_text(field, val, TITLE_MAX_LENGTH)
    if field == "description":
        return _clean_text(field, val)
    if field == "location":
        return _clean_text(field, val, LOCATION_MAX_LENGTH)
    if field == "category":
        if val not in VALID_CATEGORIES:
            raise ValidationError(f"category must be one of: {', '.join(VALID_CATEGORIES)}")
        return val
    if field == "date":
        dt = parse_dt(val)
        if dt is None:
            raise ValidationError("Invalid date format. Use ISO-8601.")
        return ensure_future(dt, now)
    if field == "maxAttendees":
        return parse_max_attendees(val)
    raise ValidationError(f"Unknown field: {field}")


def _is_blank(val: Any) -> bool:
    return val is None or (isinstance(val, str) and not val.strip())


def _require_object(data: Any) -> None:
    if not isinstance(data, Mapping):
        raise ValidationError("Request body must be a JSON object")


def validate_new_event(data: Mapping[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Validate a create payload and map it to column values.

    Raises:
        MissingField: A required field is absent or blank.
        InvalidDate: The date is not in the future.
        ValidationError: Any other malformed value.
    """
    _require_object(data)
    now = now or datetime.now(timezone.utc)

    missing = [f for f in REQUIRED_FIELDS if _is_blank(data.get(f))]
    if missing:
        raise MissingField(f"Please provide all required fields: {', '.join(missing)}")

    return {
        UPDATABLE_FIELDS[f]: _parse_field(f, data.get(f), now)
        for f in UPDATABLE_FIELDS
        if f in REQUIRED_FIELDS or f in data
    }


def validate_event_update(data: Mapping[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Validate a partial update and map it to column values.

    Only allow-listed fields present in `data` are returned; everything else
    (creator, attendees, ids...) is ignored.
    """
    _require_object(data)
    now = now or datetime.now(timezone.utc)
    return {
        UPDATABLE_FIELDS[f]: _parse_field(f, data.get(f), now)
        for f in UPDATABLE_FIELDS
        if f in data
    }
