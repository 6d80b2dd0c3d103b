"""
Events service routes: list, read, create, update, delete events, and join/leave.
Business rules live in `events_service.service`; handlers only translate HTTP.
"""

import logging
from typing import Any, Mapping, Optional, Tuple

from flask import Blueprint, Response, g, jsonify, request
from werkzeug.datastructures import FileStorage

from eventhub.auth_service.middleware import optional_auth, protect
from eventhub.extensions import get_json_object, get_services

events_bp = Blueprint("events", __name__)


# --- REQUEST LOGGING ---
@events_bp.before_request
def before_request() -> None:
    logging.info(f"[Events] Incoming {request.method} {request.path}")


@events_bp.after_request
def after_request(response: Response) -> Response:
    logging.info(f"[Events] Response {response.status}")
    return response


def _event_payload() -> Tuple[Mapping[str, Any], Optional[FileStorage]]:
    """
    Read event fields from a multipart form or a JSON body.

    Returns:
        tuple: (fields, image) where image is the uploaded `image` file, if any.
    """
    if request.mimetype == "multipart/form-data" or request.form:
        image = request.files.get("image")
        if image is not None and not image.filename:
            image = None
        return request.form, image
    return get_json_object(), None


@events_bp.route("", methods=["GET"])
@optional_auth
def list_events() -> Tuple[Response, int]:
    """
    Return all events matching the query filters, newest first.

    Query: category, startDate, endDate, creator (or userId), search.
    """
    events = get_services().events.list_events(request.args)
    return jsonify(events), 200


@events_bp.route("/mine", methods=["GET"])
@protect
def list_my_events() -> Tuple[Response, int]:
    """Events created by the authenticated user."""
    events = get_services().events.list_user_events(g.current_user["id"])
    return jsonify(events), 200


@events_bp.route("/<event_id>", methods=["GET"])
@optional_auth
def get_event(event_id: str) -> Tuple[Response, int]:
    """
    Returns:
        200: Event object.
        400: Malformed id.
        404: Event not found.
    """
    return jsonify(get_services().events.get_event(event_id)), 200


@events_bp.route("", methods=["POST"])
@protect
def create_event() -> Tuple[Response, int]:
    """
    Create an event owned by the caller.

    Required: title, description, date (future, ISO-8601), location, category.
    Optional: maxAttendees, image (multipart, jpg/jpeg/png/gif, 5MB max).

    Returns:
        201: The created event.
        400: Validation error.
        401: Not authenticated.
    """
    fields, image = _event_payload()
    event = get_services().events.create_event(g.current_user, fields, image)
    return jsonify(event), 201


@events_bp.route("/<event_id>", methods=["PUT"])
@protect
def update_event(event_id: str) -> Tuple[Response, int]:
    """
    Update an event. Creator only; only the fields sent are changed.

    Returns:
        200: The updated event.
        400: Validation error.
        403: Caller is not the creator.
        404: Event not found.
    """
    fields, image = _event_payload()
    event = get_services().events.update_event(g.current_user, event_id, fields, image)
    return jsonify(event), 200


@events_bp.route("/<event_id>", methods=["DELETE"])
@protect
def delete_event(event_id: str) -> Tuple[Response, int]:
    """Delete an event. Creator only."""
    result = get_services().events.delete_event(g.current_user, event_id)
    return jsonify(result), 200


@events_bp.route("/<event_id>/join", methods=["POST"])
@protect
def join_event(event_id: str) -> Tuple[Response, int]:
    """
    Join an event as an attendee.

    Returns:
        200: The updated event.
        400: Already attending, event full, or event in the past.
    """
    return jsonify(get_services().events.join_event(g.current_user, event_id)), 200


@events_bp.route("/<event_id>/leave", methods=["POST"])
@protect
def leave_event(event_id: str) -> Tuple[Response, int]:
    """
    Leave an event.

    Returns:
        200: The updated event.
        400: Not attending, caller is the creator, or event in the past.
    """
    return jsonify(get_services().events.leave_event(g.current_user, event_id)), 200
