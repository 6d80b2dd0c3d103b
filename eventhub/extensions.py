"""
Service container attached to the Flask app.

`create_app` builds one `Services` instance and stores it under
`app.extensions["eventhub"]`; request handlers reach it through
`get_services()` instead of importing module-level singletons.
`get_json_object()` is the shared reader for JSON request bodies.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional

from flask import current_app, request

from eventhub.errors import ValidationError

if TYPE_CHECKING:
    from eventhub.auth_service.users import UserService
    from eventhub.auth_service.utils import TokenService
    from eventhub.config import Settings
    from eventhub.events_service.service import EventService
    from eventhub.realtime.socket_manager import NotificationHub

EXTENSION_KEY = "eventhub"


@dataclass
class Services:
    settings: "Settings"
    db: object
    tokens: "TokenService"
    users: "UserService"
    events: "EventService"
    hub: Optional["NotificationHub"] = None


def get_services() -> Services:
    return current_app.extensions[EXTENSION_KEY]


def get_json_object() -> Dict[str, Any]:
    """
    Request body as a JSON object. A missing or unparseable body reads as {}.

    Raises:
        ValidationError: The body is valid JSON but not an object.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data
