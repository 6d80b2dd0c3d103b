"""
Request authentication decorators.

    @protect            -> 401 unless a valid token for an active user is sent
    @optional_auth      -> resolves the user when possible, never rejects
    @authorize("admin") -> 403 unless g.current_user has one of the roles

`authorize` must sit below `protect` so the user is resolved first.
"""

from functools import wraps
from typing import Any, Callable, Dict

from flask import g, request

from eventhub.auth_service.utils import extract_bearer
from eventhub.errors import Forbidden, Unauthorized
from eventhub.extensions import get_services


def resolve_current_user() -> Dict[str, Any]:
    """
    Verify the bearer token on the current request and load its user.

    Raises:
        Unauthorized: Missing/malformed header, invalid or expired token,
            unknown or deactivated user.
    """
    services = get_services()
    token = extract_bearer(request.headers.get("Authorization"))
    claims = services.tokens.verify(token)
    return services.users.get_active_user(claims.user_id)


def protect(view: Callable) -> Callable:
    @wraps(view)
    def wrapper(*args, **kwargs):
        g.current_user = resolve_current_user()
        return view(*args, **kwargs)

    return wrapper


def optional_auth(view: Callable) -> Callable:
    @wraps(view)
    def wrapper(*args, **kwargs):
        try:
            g.current_user = resolve_current_user()
        except Unauthorized:
            g.current_user = None
        return view(*args, **kwargs)

    return wrapper


def authorize(*roles: str) -> Callable[[Callable], Callable]:
    def decorator(view: Callable) -> Callable:
        @wraps(view)
        def wrapper(*args, **kwargs):
            user = g.get("current_user")
            if not user or user.get("role") not in roles:
                raise Forbidden()
            return view(*args, **kwargs)

        return wrapper

    return decorator
