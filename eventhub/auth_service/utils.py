"""
Shared authentication helpers.
Provides token creation, verification, and bearer header parsing.
"""

from datetime import datetime, timedelta, timezone
from typing import NamedTuple, Optional

import jwt

from eventhub.errors import InvalidToken, TokenExpired, Unauthorized


class TokenClaims(NamedTuple):
    user_id: int
    expires_at: datetime


class TokenService:
    """
    Issues and verifies HS256 bearer tokens.

    Verification depends only on the token and the shared secret, so a single
    instance is safe to share between request threads.
    """

    def __init__(self, secret: str, expiration_minutes: int = 1440, algorithm: str = "HS256"):
        if not secret:
            raise RuntimeError("JWT_SECRET is missing. Set it in .env")
        self.secret = secret
        self.expiration = timedelta(minutes=expiration_minutes)
        self.algorithm = algorithm

    # --- JWT CREATION ---
    def issue(self, user_id: int) -> str:
        """
        Generates a new JWT for a given user.

        Args:
            user_id (int): The unique ID of the user.

        Returns:
            str: Encoded JWT string.
        """
        now = datetime.now(timezone.utc)

        payload = {
            "sub": str(user_id),
            "iat": now,
            "exp": now + self.expiration,
        }

        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    # --- JWT VALIDATION ---
    def verify(self, token: str) -> TokenClaims:
        """
        Validate a JWT and return its claims.

        Raises:
            TokenExpired: Signature is valid but `exp` is in the past.
            InvalidToken: Bad signature, malformed token or subject.
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpired()
        except jwt.InvalidTokenError:
            raise InvalidToken()

        try:
            user_id = int(payload["sub"])
        except (TypeError, ValueError):
            raise InvalidToken()

        expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
        return TokenClaims(user_id=user_id, expires_at=expires_at)


def extract_bearer(header: Optional[str]) -> str:
    """
    Pull the token out of an `Authorization: Bearer <token>` header value.

    Raises:
        Unauthorized: Header missing or not of the Bearer form.
    """
    if not header:
        raise Unauthorized()

    scheme, _, token = header.strip().partition(" ")
    token = token.strip()
    if scheme != "Bearer" or not token or " " in token:
        raise Unauthorized("Malformed Authorization header")

    return token
