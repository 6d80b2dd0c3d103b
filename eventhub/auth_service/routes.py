"""
Authentication route handlers.

Provides routes for:
- User registration
- User login
- Profile retrieval (/me)
- Admin user listing

Token logic lives in `auth_service.utils`, credential checks in
`auth_service.users`.
"""

import logging
from typing import Any, Dict, Tuple

from flask import Blueprint, Response, g, jsonify, request

from eventhub.auth_service.middleware import authorize, protect
from eventhub.extensions import get_json_object, get_services

auth_bp = Blueprint("auth", __name__)


# --- REQUEST LOGGING ---
@auth_bp.before_request
def before_request() -> None:
    logging.info(f"[Auth] Incoming {request.method} {request.path}")


@auth_bp.after_request
def after_request(response: Response) -> Response:
    logging.info(f"[Auth] Response {response.status}")
    return response


def _with_token(user: Dict[str, Any]) -> Dict[str, Any]:
    return {**user, "token": get_services().tokens.issue(user["id"])}


# --- REGISTER ---
@auth_bp.route("/register", methods=["POST"])
def register() -> Tuple[Response, int]:
    """
    Register a new user.

    Expects a JSON body with name, email and password (6+ characters).

    Returns:
        201: User summary (id, name, email, role) plus "token".
        400: Missing fields, invalid input, or email already exists.
    """
    data = get_json_object()
    user = get_services().users.register(data.get("name"), data.get("email"), data.get("password"))

    # Issue a token right away so the client is logged in after signing up
    return jsonify(_with_token(user)), 201


# --- LOGIN ---
@auth_bp.route("/login", methods=["POST"])
def login() -> Tuple[Response, int]:
    """
    Authenticate a user and return a JWT.

    Returns:
        200: User summary plus "token".
        400: Missing credentials.
        401: Invalid credentials or deactivated account.
    """
    data = get_json_object()
    user = get_services().users.authenticate(data.get("email"), data.get("password"))
    return jsonify(_with_token(user)), 200


# --- GET CURRENT USER ---
@auth_bp.route("/me", methods=["GET"])
@protect
def get_current_user() -> Tuple[Response, int]:
    return jsonify(g.current_user), 200


# --- LIST USERS (ADMIN ONLY) ---
@auth_bp.route("/users", methods=["GET"])
@protect
@authorize("admin")
def list_users() -> Tuple[Response, int]:
    return jsonify(get_services().users.list_users()), 200
