from datetime import timedelta

import pytest

from conftest import NOW
from eventhub.errors import (
    AlreadyJoined,
    CreatorCannotLeave,
    EventFull,
    EventPast,
    Forbidden,
    InvalidDate,
    InvalidId,
    MissingField,
    NotAttending,
    NotFound,
    ValidationError,
)
from eventhub.events_service.service import EventService

CREATOR = {"id": 1, "name": "User 1", "email": "user1@example.com", "role": "user"}
OTHER = {"id": 2, "name": "User 2", "email": "user2@example.com", "role": "user"}


@pytest.fixture
def storage(mocker):
    return mocker.Mock()


@pytest.fixture
def hub(mocker):
    return mocker.Mock()


@pytest.fixture
def service(mock_db, storage, hub):
    db, _, _ = mock_db
    return EventService(db, storage=storage, hub=hub, clock=lambda: NOW)


def lock_row(creator_id=1, max_attendees=None, event_date=None, image_url=""):
    return {
        "event_id": 1,
        "creator_id": creator_id,
        "event_date": event_date or NOW + timedelta(days=7),
        "max_attendees": max_attendees,
        "image_url": image_url,
    }


def attendance(count, attending):
    return {"attendee_count": count, "attending": attending}


def executed_sql(cursor):
    return [c.args[0] for c in cursor.execute.call_args_list]


# --- LIST / GET ---
def test_list_events_serializes_rows(service, mock_db, event_row):
    _, _, cursor = mock_db
    cursor.fetchall.return_value = [event_row(event_id=2, attendee_ids=(1, 3)), event_row(event_id=1)]

    events = service.list_events({})

    assert [e["id"] for e in events] == [2, 1]
    first = events[0]
    assert first["creator"] == {"id": 1, "name": "User 1", "email": "user1@example.com"}
    assert [a["id"] for a in first["attendees"]] == [1, 3]
    assert first["attendeeCount"] == 2
    assert first["date"] == (NOW + timedelta(days=7)).isoformat()
    assert "ORDER BY e.created_at DESC" in cursor.execute.call_args.args[0]


def test_list_events_applies_filters(service, mock_db):
    _, _, cursor = mock_db
    cursor.fetchall.return_value = []

    service.list_events({
        "category": "workshop",
        "startDate": "2026-07-01",
        "endDate": "2026-07-31T23:59:59Z",
        "userId": "5",
        "search": "conf",
    })

    sql, params = cursor.execute.call_args.args
    assert "e.category = %s" in sql
    assert "e.event_date >= %s" in sql
    assert "e.event_date <= %s" in sql
    assert "e.creator_id = %s" in sql
    assert "e.title ILIKE %s OR e.description ILIKE %s OR e.location ILIKE %s" in sql
    assert params[0] == "workshop"
    assert params[3] == 5
    assert params[4:] == ["%conf%", "%conf%", "%conf%"]


def test_list_events_escapes_search_wildcards(service, mock_db):
    _, _, cursor = mock_db
    cursor.fetchall.return_value = []

    service.list_events({"search": "100%_off"})

    _, params = cursor.execute.call_args.args
    assert params[0] == "%100\\%\\_off%"


def test_list_events_without_filters_has_no_where(service, mock_db):
    _, _, cursor = mock_db
    cursor.fetchall.return_value = []

    service.list_events(None)

    sql, params = cursor.execute.call_args.args
    assert "WHERE e." not in sql
    assert params == []


def test_list_events_bad_date_filter(service):
    with pytest.raises(ValidationError):
        service.list_events({"startDate": "next tuesday"})


def test_list_events_bad_creator_filter(service):
    with pytest.raises(InvalidId):
        service.list_events({"creator": "abc"})


def test_get_event(service, mock_db, event_row):
    _, _, cursor = mock_db
    cursor.fetchone.return_value = event_row(event_id=3)

    assert service.get_event("3")["id"] == 3
    assert cursor.execute.call_args.args[1] == (3,)


def test_get_event_not_found(service, mock_db):
    _, _, cursor = mock_db
    cursor.fetchone.return_value = None

    with pytest.raises(NotFound):
        service.get_event(42)


def test_get_event_invalid_id(service, mock_db):
    db, _, _ = mock_db
    with pytest.raises(InvalidId):
        service.get_event("not-an-id")
    db.connection.assert_not_called()


# --- CREATE ---
def valid_fields(**overrides):
    fields = {
        "title": "PyCon Meetup",
        "description": "Talks and pizza",
        "date": (NOW + timedelta(hours=1)).isoformat(),
        "location": "Main Hall",
        "category": "conference",
    }
    fields.update(overrides)
    return fields


def test_create_event_adds_creator_as_attendee(service, mock_db, event_row, hub):
    _, _, cursor = mock_db
    cursor.fetchone.side_effect = [{"event_id": 10}, event_row(event_id=10)]

    event = service.create_event(CREATOR, valid_fields(maxAttendees="25"))

    assert event["id"] == 10
    insert_sql, insert_params = cursor.execute.call_args_list[0].args
    assert insert_sql.startswith("INSERT INTO events")
    assert "max_attendees" in insert_sql
    assert 25 in insert_params
    assert insert_params[-1] == CREATOR["id"]
    attendee_sql, attendee_params = cursor.execute.call_args_list[1].args
    assert "INSERT INTO event_attendees" in attendee_sql
    assert attendee_params == (10, CREATOR["id"])
    hub.broadcast.assert_called_once_with(10, "eventUpdated", event)


def test_create_event_missing_field(service, mock_db):
    db, _, _ = mock_db
    fields = valid_fields()
    del fields["location"]

    with pytest.raises(MissingField) as exc:
        service.create_event(CREATOR, fields)

    assert "location" in exc.value.message
    db.connection.assert_not_called()


def test_create_event_date_in_past(service):
    with pytest.raises(InvalidDate):
        service.create_event(CREATOR, valid_fields(date=(NOW - timedelta(seconds=1)).isoformat()))


def test_create_event_stores_image_after_validation(service, mock_db, storage, event_row):
    _, _, cursor = mock_db
    cursor.fetchone.side_effect = [{"event_id": 10}, event_row(event_id=10)]
    storage.save.return_value = "/uploads/1-2.png"
    image = object()

    service.create_event(CREATOR, valid_fields(), image=image)

    storage.save.assert_called_once_with(image)
    assert "/uploads/1-2.png" in cursor.execute.call_args_list[0].args[1]


def test_create_event_invalid_fields_skip_image(service, storage):
    with pytest.raises(ValidationError):
        service.create_event(CREATOR, valid_fields(category="party"), image=object())
    storage.save.assert_not_called()


def test_create_event_db_failure_removes_image(service, mock_db, storage):
    _, _, cursor = mock_db
    cursor.execute.side_effect = RuntimeError("db down")
    storage.save.return_value = "/uploads/1-2.png"

    with pytest.raises(RuntimeError):
        service.create_event(CREATOR, valid_fields(), image=object())

    storage.delete.assert_called_once_with("/uploads/1-2.png")


# --- UPDATE ---
def test_update_event_by_creator(service, mock_db, event_row, hub):
    _, _, cursor = mock_db
    cursor.fetchone.side_effect = [lock_row(), event_row(title="New title")]

    event = service.update_event(CREATOR, "1", {"title": "New title", "creator": 2, "attendees": [2]})

    assert event["title"] == "New title"
    sql = executed_sql(cursor)
    assert "FOR UPDATE" in sql[0]
    update_sql, update_params = cursor.execute.call_args_list[1].args
    assert update_sql.startswith("UPDATE events SET title = %s, updated_at")
    assert "creator_id" not in update_sql
    assert update_params == ["New title", 1]
    hub.broadcast.assert_called_once()


def test_update_event_non_creator_forbidden(service, mock_db):
    _, _, cursor = mock_db
    cursor.fetchone.side_effect = [lock_row(creator_id=1)]

    with pytest.raises(Forbidden):
        service.update_event(OTHER, 1, {"title": "Hijacked"})

    assert not any(s.startswith("UPDATE") for s in executed_sql(cursor))


def test_update_event_not_found(service, mock_db):
    _, _, cursor = mock_db
    cursor.fetchone.return_value = None

    with pytest.raises(NotFound):
        service.update_event(CREATOR, 1, {"title": "x"})


def test_update_event_past_date(service, mock_db):
    _, _, cursor = mock_db
    cursor.fetchone.side_effect = [lock_row()]

    with pytest.raises(InvalidDate):
        service.update_event(CREATOR, 1, {"date": (NOW - timedelta(days=1)).isoformat()})


def test_update_event_no_fields(service, mock_db):
    _, _, cursor = mock_db
    cursor.fetchone.side_effect = [lock_row()]

    with pytest.raises(ValidationError):
        service.update_event(CREATOR, 1, {"attendees": []})


def test_update_event_cap_below_attendance(service, mock_db):
    _, _, cursor = mock_db
    cursor.fetchone.side_effect = [lock_row(), attendance(3, True)]

    with pytest.raises(ValidationError):
        service.update_event(CREATOR, 1, {"maxAttendees": 2})


def test_update_event_replaces_image(service, mock_db, storage, event_row):
    _, _, cursor = mock_db
    cursor.fetchone.side_effect = [lock_row(image_url="/uploads/old.png"), event_row(image_url="/uploads/new.png")]
    storage.save.return_value = "/uploads/new.png"

    event = service.update_event(CREATOR, 1, {}, image=object())

    assert event["imageUrl"] == "/uploads/new.png"
    storage.delete.assert_called_once_with("/uploads/old.png")


# --- DELETE ---
def test_delete_event_by_creator(service, mock_db, hub):
    _, _, cursor = mock_db
    cursor.fetchone.side_effect = [lock_row()]

    result = service.delete_event(CREATOR, "1")

    assert result == {"success": True, "message": "Event deleted successfully", "eventId": 1}
    assert cursor.execute.call_args.args == ("DELETE FROM events WHERE event_id = %s;", (1,))
    hub.broadcast.assert_called_once_with(1, "eventDeleted", {"eventId": 1})


def test_delete_event_non_creator_forbidden(service, mock_db, hub):
    _, _, cursor = mock_db
    cursor.fetchone.side_effect = [lock_row(creator_id=1)]

    with pytest.raises(Forbidden):
        service.delete_event(OTHER, 1)

    assert not any(s.startswith("DELETE") for s in executed_sql(cursor))
    hub.broadcast.assert_not_called()


# --- JOIN / LEAVE ---
def test_join_event(service, mock_db, event_row):
    _, _, cursor = mock_db
    cursor.fetchone.side_effect = [lock_row(max_attendees=5), attendance(1, False), event_row(attendee_ids=(1, 2))]

    event = service.join_event(OTHER, 1)

    assert [a["id"] for a in event["attendees"]] == [1, 2]
    sql = executed_sql(cursor)
    assert "FOR UPDATE" in sql[0]
    # attendance is read only after the row lock is held
    assert "COUNT(*)" in sql[1]
    assert "INSERT INTO event_attendees" in sql[2]


def test_join_event_already_joined(service, mock_db):
    _, _, cursor = mock_db
    cursor.fetchone.side_effect = [lock_row(), attendance(2, True)]

    with pytest.raises(AlreadyJoined):
        service.join_event(OTHER, 1)


def test_join_event_full(service, mock_db):
    # User A created E with maxAttendees=1, so E is already full
    _, _, cursor = mock_db
    cursor.fetchone.side_effect = [lock_row(max_attendees=1), attendance(1, False)]

    with pytest.raises(EventFull):
        service.join_event(OTHER, 1)

    assert not any("INSERT" in s for s in executed_sql(cursor))


def test_join_event_past(service, mock_db):
    _, _, cursor = mock_db
    cursor.fetchone.side_effect = [lock_row(event_date=NOW - timedelta(hours=1)), attendance(1, False)]

    with pytest.raises(EventPast):
        service.join_event(OTHER, 1)


def test_join_event_not_found(service, mock_db):
    _, _, cursor = mock_db
    cursor.fetchone.return_value = None

    with pytest.raises(NotFound):
        service.join_event(OTHER, 1)


def test_leave_event(service, mock_db, event_row, hub):
    _, _, cursor = mock_db
    cursor.fetchone.side_effect = [lock_row(), attendance(2, True), event_row(attendee_ids=(1,))]

    event = service.leave_event(OTHER, 1)

    assert [a["id"] for a in event["attendees"]] == [1]
    delete_sql, params = cursor.execute.call_args_list[2].args
    assert delete_sql.startswith("DELETE FROM event_attendees")
    assert params == (1, OTHER["id"])
    hub.broadcast.assert_called_once()


def test_join_then_leave_restores_attendees(service, mock_db, event_row):
    _, _, cursor = mock_db
    before = event_row(attendee_ids=(1,))
    cursor.fetchone.side_effect = [
        lock_row(), attendance(1, False), event_row(attendee_ids=(1, 2)),
        lock_row(), attendance(2, True), event_row(attendee_ids=(1,)),
    ]

    service.join_event(OTHER, 1)
    after = service.leave_event(OTHER, 1)

    assert after["attendees"] == before["attendees"]


def test_leave_event_not_attending(service, mock_db):
    _, _, cursor = mock_db
    cursor.fetchone.side_effect = [lock_row(), attendance(1, False)]

    with pytest.raises(NotAttending):
        service.leave_event(OTHER, 1)


def test_leave_event_creator_cannot_leave(service, mock_db):
    _, _, cursor = mock_db
    cursor.fetchone.side_effect = [lock_row(creator_id=1), attendance(1, True)]

    with pytest.raises(CreatorCannotLeave):
        service.leave_event(CREATOR, 1)


def test_leave_event_past(service, mock_db):
    _, _, cursor = mock_db
    cursor.fetchone.side_effect = [lock_row(event_date=NOW - timedelta(days=1)), attendance(2, True)]

    with pytest.raises(EventPast):
        service.leave_event(OTHER, 1)


def test_service_without_hub_or_storage(mock_db, event_row):
    db, _, cursor = mock_db
    cursor.fetchone.side_effect = [lock_row(), attendance(1, False), event_row(attendee_ids=(1, 2))]

    service = EventService(db, clock=lambda: NOW)

    assert service.join_event(OTHER, 1)["attendeeCount"] == 2
    with pytest.raises(ValidationError):
        service.create_event(CREATOR, valid_fields(), image=object())
