"""
Event lifecycle: listing, CRUD with ownership checks, and join/leave with
capacity and timing rules.

Every mutation runs in a single transaction that first locks the event row
(SELECT ... FOR UPDATE) and only then reads the attendee state it validates
against. Concurrent joins on the same event therefore queue on the lock and
each one sees the attendee count left by the previous one, so the capacity
check and the insert behave as one atomic step.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from werkzeug.datastructures import FileStorage

from eventhub.errors import (
    AlreadyJoined,
    CreatorCannotLeave,
    EventFull,
    EventPast,
    Forbidden,
    NotAttending,
    NotFound,
    ValidationError,
)
from eventhub.events_service.validation import (
    parse_dt,
    parse_id,
    validate_event_update,
    validate_new_event,
)

EVENT_SELECT = """
    SELECT
        e.event_id, e.title, e.description, e.event_date, e.location,
        e.category, e.max_attendees, e.image_url, e.created_at, e.updated_at,
        e.creator_id, u.name AS creator_name, u.email AS creator_email,
        COALESCE((
            SELECT json_agg(
                json_build_object('id', au.user_id, 'name', au.name, 'email', au.email)
                ORDER BY a.joined_at, a.user_id
            )
            FROM event_attendees a
            JOIN users au ON au.user_id = a.user_id
            WHERE a.event_id = e.event_id
        ), '[]'::json) AS attendees
    FROM events e
    JOIN users u ON u.user_id = e.creator_id
"""

LOCK_EVENT_SQL = """
    SELECT event_id, creator_id, event_date, max_attendees, image_url
    FROM events
    WHERE event_id = %s
    FOR UPDATE;
"""

ATTENDANCE_SQL = """
    SELECT
        COUNT(*) AS attendee_count,
        COALESCE(BOOL_OR(user_id = %s), FALSE) AS attending
    FROM event_attendees
    WHERE event_id = %s;
"""


def _iso(val: Any) -> Optional[str]:
    return val.isoformat() if isinstance(val, datetime) else val


def serialize_event(row: Mapping[str, Any]) -> Dict[str, Any]:
    """Convert a row from EVENT_SELECT into the API representation."""
    attendees = list(row["attendees"] or [])
    return {
        "id": row["event_id"],
        "title": row["title"],
        "description": row["description"],
        "date": _iso(row["event_date"]),
        "location": row["location"],
        "category": row["category"],
        "maxAttendees": row["max_attendees"],
        "imageUrl": row["image_url"] or "",
        "creator": {
            "id": row["creator_id"],
            "name": row["creator_name"],
            "email": row["creator_email"],
        },
        "attendees": attendees,
        "attendeeCount": len(attendees),
        "createdAt": _iso(row["created_at"]),
        "updatedAt": _iso(row["updated_at"]),
    }


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class EventService:
    def __init__(self, db, storage=None, hub=None, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.storage = storage
        self.hub = hub
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # --- READS ---
    def list_events(self, filters: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Return events matching the filters, newest first.

        Recognised filters:
            category: exact match
            startDate / endDate: inclusive bounds on the event date
            creator (or userId): creator id
            search: case-insensitive substring of title, description or location
        """
        filters = filters or {}
        clauses: List[str] = []
        params: List[Any] = []

        if filters.get("category"):
            clauses.append("e.category = %s")
            params.append(filters["category"])

        for key, op in (("startDate", ">="), ("endDate", "<=")):
            if filters.get(key):
                bound = parse_dt(filters[key])
                if bound is None:
                    raise ValidationError(f"Invalid {key}. Use ISO-8601.")
                clauses.append(f"e.event_date {op} %s")
                params.append(bound)

        creator = filters.get("creator") or filters.get("userId")
        if creator:
            clauses.append("e.creator_id = %s")
            params.append(parse_id(creator, "creator"))

        if filters.get("search"):
            pattern = f"%{_escape_like(str(filters['search']))}%"
            clauses.append("(e.title ILIKE %s OR e.description ILIKE %s OR e.location ILIKE %s)")
            params.extend([pattern, pattern, pattern])

        sql = EVENT_SELECT
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY e.created_at DESC, e.event_id DESC;"

        with self.db.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                return [serialize_event(row) for row in cur.fetchall()]

    def list_user_events(self, user_id: int) -> List[Dict[str, Any]]:
        return self.list_events({"creator": user_id})

    def get_event(self, event_id: Any) -> Dict[str, Any]:
        event_id = parse_id(event_id)
        with self.db.connection() as conn:
            with conn.cursor() as cur:
                return self._fetch_event(cur, event_id)

    # --- CREATE / UPDATE / DELETE ---
    def create_event(
        self,
        requester: Mapping[str, Any],
        fields: Mapping[str, Any],
        image: Optional[FileStorage] = None,
    ) -> Dict[str, Any]:
        """
        Create an event owned by `requester`, who becomes its first attendee.

        Raises:
            MissingField, InvalidDate, ValidationError
        """
        columns = validate_new_event(fields, self.clock())
        columns["image_url"] = self._store_image(image) if image else ""
        columns["creator_id"] = requester["id"]

        names = ", ".join(columns)
        placeholders = ", ".join(["%s"] * len(columns))

        try:
            with self.db.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"INSERT INTO events ({names}) VALUES ({placeholders}) RETURNING event_id;",
                        list(columns.values()),
                    )
                    event_id = cur.fetchone()["event_id"]
                    cur.execute(
                        "INSERT INTO event_attendees (event_id, user_id) VALUES (%s, %s);",
                        (event_id, requester["id"]),
                    )
                    event = self._fetch_event(cur, event_id)
        except Exception:
            self._discard_image(columns["image_url"])
            raise

        logging.info(f"[Events] User {requester['id']} created event {event_id}")
        self._broadcast(event_id, "eventUpdated", event)
        return event

    def update_event(
        self,
        requester: Mapping[str, Any],
        event_id: Any,
        fields: Mapping[str, Any],
        image: Optional[FileStorage] = None,
    ) -> Dict[str, Any]:
        """
        Apply a partial update. Only the creator may update.

        Raises:
            InvalidId, NotFound, Forbidden, InvalidDate, ValidationError
        """
        event_id = parse_id(event_id)
        new_image_url = None

        try:
            with self.db.connection() as conn:
                with conn.cursor() as cur:
                    current = self._lock_event(cur, event_id)
                    if current["creator_id"] != requester["id"]:
                        raise Forbidden("Not authorized to update this event")

                    columns = validate_event_update(fields, self.clock())
                    if not columns and not image:
                        raise ValidationError("No valid fields to update")

                    if columns.get("max_attendees") is not None:
                        attendance = self._attendance(cur, event_id, requester["id"])
                        if columns["max_attendees"] < attendance["attendee_count"]:
                            raise ValidationError("maxAttendees cannot be lower than the current number of attendees")

                    if image:
                        new_image_url = self._store_image(image)
                        columns["image_url"] = new_image_url

                    assignments = ", ".join(f"{col} = %s" for col in columns)
                    cur.execute(
                        f"UPDATE events SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE event_id = %s;",
                        list(columns.values()) + [event_id],
                    )
                    event = self._fetch_event(cur, event_id)
        except Exception:
            self._discard_image(new_image_url)
            raise

        if new_image_url:
            self._discard_image(current["image_url"])

        logging.info(f"[Events] User {requester['id']} updated event {event_id}: {', '.join(columns)}")
        self._broadcast(event_id, "eventUpdated", event)
        return event

    def delete_event(self, requester: Mapping[str, Any], event_id: Any) -> Dict[str, Any]:
        """
        Permanently delete an event and its attendee list. Only the creator may delete.

        Raises:
            InvalidId, NotFound, Forbidden
        """
        event_id = parse_id(event_id)

        with self.db.connection() as conn:
            with conn.cursor() as cur:
                current = self._lock_event(cur, event_id)
                if current["creator_id"] != requester["id"]:
                    raise Forbidden("Not authorized to delete this event")

                cur.execute("DELETE FROM events WHERE event_id = %s;", (event_id,))

        self._discard_image(current["image_url"])
        logging.info(f"[Events] User {requester['id']} deleted event {event_id}")
        self._broadcast(event_id, "eventDeleted", {"eventId": event_id})
        return {"success": True, "message": "Event deleted successfully", "eventId": event_id}

    # --- ATTENDANCE ---
    def join_event(self, requester: Mapping[str, Any], event_id: Any) -> Dict[str, Any]:
        """
        Add `requester` to the attendee list.

        Raises:
            InvalidId, NotFound, AlreadyJoined, EventFull, EventPast
        """
        event_id = parse_id(event_id)
        user_id = requester["id"]

        with self.db.connection() as conn:
            with conn.cursor() as cur:
                current = self._lock_event(cur, event_id)
                attendance = self._attendance(cur, event_id, user_id)

                if attendance["attending"]:
                    raise AlreadyJoined()
                max_attendees = current["max_attendees"]
                if max_attendees and attendance["attendee_count"] >= max_attendees:
                    raise EventFull()
                if current["event_date"] <= self.clock():
                    raise EventPast("Cannot join past events")

                cur.execute(
                    "INSERT INTO event_attendees (event_id, user_id) VALUES (%s, %s) ON CONFLICT DO NOTHING;",
                    (event_id, user_id),
                )
                event = self._fetch_event(cur, event_id)

        logging.info(f"[Events] User {user_id} joined event {event_id}")
        self._broadcast(event_id, "eventUpdated", event)
        return event

    def leave_event(self, requester: Mapping[str, Any], event_id: Any) -> Dict[str, Any]:
        """
        Remove `requester` from the attendee list.

        The creator always stays an attendee of their own event.

        Raises:
            InvalidId, NotFound, NotAttending, CreatorCannotLeave, EventPast
        """
        event_id = parse_id(event_id)
        user_id = requester["id"]

        with self.db.connection() as conn:
            with conn.cursor() as cur:
                current = self._lock_event(cur, event_id)
                attendance = self._attendance(cur, event_id, user_id)

                if not attendance["attending"]:
                    raise NotAttending()
                if current["creator_id"] == user_id:
                    raise CreatorCannotLeave()
                if current["event_date"] <= self.clock():
                    raise EventPast("Cannot leave past events")

                cur.execute(
                    "DELETE FROM event_attendees WHERE event_id = %s AND user_id = %s;",
                    (event_id, user_id),
                )
                event = self._fetch_event(cur, event_id)

        logging.info(f"[Events] User {user_id} left event {event_id}")
        self._broadcast(event_id, "eventUpdated", event)
        return event

    # --- HELPERS ---
    def _fetch_event(self, cur, event_id: int) -> Dict[str, Any]:
        cur.execute(EVENT_SELECT + " WHERE e.event_id = %s;", (event_id,))
        row = cur.fetchone()
        if not row:
            raise NotFound("Event not found")
        return serialize_event(row)

    def _lock_event(self, cur, event_id: int) -> Mapping[str, Any]:
        cur.execute(LOCK_EVENT_SQL, (event_id,))
        row = cur.fetchone()
        if not row:
            raise NotFound("Event not found")
        return row

    def _attendance(self, cur, event_id: int, user_id: int) -> Mapping[str, Any]:
        # Must run after _lock_event so the count reflects every committed join.
        cur.execute(ATTENDANCE_SQL, (user_id, event_id))
        return cur.fetchone()

    def _store_image(self, image: FileStorage) -> str:
        if self.storage is None:
            raise ValidationError("Image uploads are not enabled")
        return self.storage.save(image)

    def _discard_image(self, url: Optional[str]) -> None:
        if url and self.storage is not None:
            try:
                self.storage.delete(url)
            except OSError:
                logging.warning(f"[Storage] Could not remove {url}", exc_info=True)

    def _broadcast(self, event_id: int, name: str, payload: Dict[str, Any]) -> None:
        if self.hub is not None:
            self.hub.broadcast(event_id, name, payload)
