"""
Real-time notification fan-out over Socket.IO.

Clients subscribe to an event by emitting `joinEvent` with its id and are
placed in the room `event:<id>`. The HTTP side calls `broadcast()` after a
committed change. Delivery is best-effort and at-most-once: nothing is
persisted or replayed, and a failed emit is logged, never raised.
"""

import logging
from typing import Any, Dict, Optional

import socketio
from socketio import exceptions as sio_exceptions

from eventhub.errors import InvalidId, Unauthorized
from eventhub.events_service.validation import parse_id


def room_name(event_id: Any) -> str:
    return f"event:{event_id}"


class NotificationHub:
    """Owns the Socket.IO server; mount it with `socketio.WSGIApp(hub.sio, app)`."""

    def __init__(self, cors_allowed_origins=None, token_service=None):
        self.token_service = token_service
        self.sio = socketio.Server(
            async_mode="threading",
            cors_allowed_origins=cors_allowed_origins or [],
            logger=False,
            engineio_logger=False,
        )
        self._setup_handlers()

    def _setup_handlers(self) -> None:
        self.sio.on("connect")(self.handle_connect)
        self.sio.on("disconnect")(self.handle_disconnect)
        self.sio.on("joinEvent")(self.handle_join_event)
        self.sio.on("leaveEvent")(self.handle_leave_event)

    # --- CONNECTION ---
    def handle_connect(self, sid: str, environ: Dict[str, Any], auth: Optional[Dict[str, Any]] = None) -> None:
        """
        Accept anonymous clients; a client that sends `auth.token` must send a valid one.
        """
        token = (auth or {}).get("token")
        user_id = None
        if token and self.token_service is not None:
            try:
                user_id = self.token_service.verify(token).user_id
            except Unauthorized as exc:
                logging.warning(f"[Socket] Refused {sid}: {exc.message}")
                raise sio_exceptions.ConnectionRefusedError(exc.message)

        self.sio.save_session(sid, {"user_id": user_id})
        logging.info(f"[Socket] Client connected: {sid} (user={user_id})")

    def handle_disconnect(self, sid: str, *args) -> None:
        logging.info(f"[Socket] Client disconnected: {sid}")

    # --- ROOMS ---
    def handle_join_event(self, sid: str, event_id: Any) -> Dict[str, Any]:
        try:
            room = room_name(parse_id(event_id))
        except InvalidId as exc:
            return exc.to_dict()

        self.sio.enter_room(sid, room)
        logging.info(f"[Socket] {sid} joined {room}")
        return {"room": room, "joined": True}

    def handle_leave_event(self, sid: str, event_id: Any) -> Dict[str, Any]:
        try:
            room = room_name(parse_id(event_id))
        except InvalidId as exc:
            return exc.to_dict()

        self.sio.leave_room(sid, room)
        logging.info(f"[Socket] {sid} left {room}")
        return {"room": room, "left": True}

    # --- BROADCAST ---
    def broadcast(self, event_id: Any, name: str, payload: Dict[str, Any]) -> bool:
        """Emit `name` to everyone in the event's room. Returns False if the emit failed."""
        try:
            self.sio.emit(name, payload, room=room_name(event_id))
        except Exception:
            logging.warning(f"[Socket] Broadcast {name} to {room_name(event_id)} failed", exc_info=True)
            return False
        return True
