"""
Credential store: user registration, login checks and lookups.
"""

import logging
import re
from typing import Any, Dict, List, Optional

import psycopg2.errors
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from eventhub.errors import EmailTaken, MissingField, Unauthorized, ValidationError

PASSWORD_MIN_LENGTH = 6
NAME_MAX_LENGTH = 100
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

USER_COLUMNS = "user_id, name, email, role, is_active"


def _require_str(field: str, val: Any) -> str:
    if val is None:
        return ""
    if not isinstance(val, str):
        raise ValidationError(f"{field} must be a string")
    return val


def user_summary(row: Any) -> Dict[str, Any]:
    """Public view of a user row; never includes the password hash."""
    return {
        "id": row["user_id"],
        "name": row["name"],
        "email": row["email"],
        "role": row["role"],
    }


class UserService:
    def __init__(self, db, hasher: Optional[PasswordHasher] = None):
        self.db = db
        self.hasher = hasher or PasswordHasher()

    def register(self, name: Optional[str], email: Optional[str], password: Optional[str]) -> Dict[str, Any]:
        """
        Create a new user with role 'user'.

        Raises:
            MissingField: name, email or password absent.
            ValidationError: Non-string field, malformed email, short password or long name.
            EmailTaken: Email already registered.
        """
        name = _require_str("name", name).strip()
        email = _require_str("email", email).strip().lower()
        password = _require_str("password", password)

        if not name or not email or not password:
            raise MissingField("Name, email and password are required")
        if len(name) > NAME_MAX_LENGTH:
            raise ValidationError(f"Name must be {NAME_MAX_LENGTH} characters or less")
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("Please provide a valid email")
        if len(password) < PASSWORD_MIN_LENGTH:
            raise ValidationError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")

        pw_hash = self.hasher.hash(password)

        sql = f"""
            INSERT INTO users (name, email, password_hash)
            VALUES (%s, %s, %s)
            RETURNING {USER_COLUMNS};
        """
        try:
            with self.db.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(sql, (name, email, pw_hash))
                    user = cur.fetchone()
        except psycopg2.errors.UniqueViolation:
            raise EmailTaken()

        logging.info(f"[Auth] Registered user {user['user_id']}")
        return user_summary(user)

    def authenticate(self, email: Optional[str], password: Optional[str]) -> Dict[str, Any]:
        """
        Check credentials and return the user summary.

        Raises:
            MissingField: email or password absent.
            ValidationError: email or password is not a string.
            Unauthorized: Unknown email, wrong password or deactivated account.
        """
        email = _require_str("email", email).strip().lower()
        password = _require_str("password", password)
        if not email or not password:
            raise MissingField("Email and password required")

        sql = f"SELECT {USER_COLUMNS}, password_hash FROM users WHERE email = %s;"
        with self.db.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (email,))
                user = cur.fetchone()

        if not user:
            raise Unauthorized("Invalid credentials")

        try:
            self.hasher.verify(user["password_hash"], password)
        except (VerificationError, InvalidHashError):
            raise Unauthorized("Invalid credentials")

        if not user["is_active"]:
            raise Unauthorized("User account is deactivated")

        return user_summary(user)

    def get_active_user(self, user_id: int) -> Dict[str, Any]:
        """
        Load the user a token refers to.

        Raises:
            Unauthorized: User missing or deactivated.
        """
        sql = f"SELECT {USER_COLUMNS} FROM users WHERE user_id = %s;"
        with self.db.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (user_id,))
                user = cur.fetchone()

        if not user:
            raise Unauthorized("User not found or has been deleted")
        if not user["is_active"]:
            raise Unauthorized("User account is deactivated")

        return user_summary(user)

    def list_users(self) -> List[Dict[str, Any]]:
        sql = f"SELECT {USER_COLUMNS} FROM users ORDER BY user_id ASC;"
        with self.db.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql)
                return [user_summary(row) for row in cur.fetchall()]
