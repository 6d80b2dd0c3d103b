import os
from datetime import datetime, timedelta, timezone

import pytest

from eventhub.config import Settings
from eventhub.extensions import EXTENSION_KEY
from eventhub.gateway.server import create_app

# Ensure JWT_SECRET is set for tests
os.environ["JWT_SECRET"] = "test_secret"

NOW = datetime(2026, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def mock_db(mocker):
    """
    Mocks the Database object, its pooled connection and cursor.
    """
    mock_conn = mocker.MagicMock()
    mock_cursor = mocker.MagicMock()

    # Setup the context manager for cursor
    mock_cursor.__enter__.return_value = mock_cursor
    mock_cursor.__exit__.return_value = None
    mock_conn.cursor.return_value = mock_cursor

    # db.connection() is a context manager yielding the connection
    db = mocker.MagicMock()
    db.connection.return_value.__enter__.return_value = mock_conn
    db.connection.return_value.__exit__.return_value = None

    return db, mock_conn, mock_cursor


@pytest.fixture
def settings(tmp_path):
    return Settings(jwt_secret="test_secret", upload_folder=str(tmp_path / "uploads"))


@pytest.fixture
def app(settings, mock_db):
    db, _, _ = mock_db
    app = create_app(settings, db=db)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def services(app):
    return app.extensions[EXTENSION_KEY]


@pytest.fixture
def login_as(services, mocker):
    """
    Returns a helper that issues a real token and stubs the user lookup.

    Usage:
        headers = login_as(1)
        client.post("/api/events", headers=headers, ...)
    """
    def _login(user_id=1, role="user"):
        user = {"id": user_id, "name": f"User {user_id}", "email": f"user{user_id}@example.com", "role": role}
        mocker.patch.object(services.users, "get_active_user", return_value=user)
        return {"Authorization": f"Bearer {services.tokens.issue(user_id)}"}

    return _login


@pytest.fixture
def event_row():
    """
    Factory for rows shaped like the events SELECT (creator + attendees resolved).
    """
    def _row(event_id=1, creator_id=1, attendee_ids=(1,), **overrides):
        row = {
            "event_id": event_id,
            "title": "PyCon Meetup",
            "description": "Talks and pizza",
            "event_date": NOW + timedelta(days=7),
            "location": "Main Hall",
            "category": "conference",
            "max_attendees": None,
            "image_url": "",
            "created_at": NOW - timedelta(days=1),
            "updated_at": NOW - timedelta(days=1),
            "creator_id": creator_id,
            "creator_name": f"User {creator_id}",
            "creator_email": f"user{creator_id}@example.com",
            "attendees": [
                {"id": uid, "name": f"User {uid}", "email": f"user{uid}@example.com"}
                for uid in attendee_ids
            ],
        }
        row.update(overrides)
        return row

    return _row
