"""JWT access token creation and verification.

Tokens are issued by the account service; this service only verifies them.
``create_access_token`` exists for the CLI and tests.
"""

import uuid
from datetime import UTC, datetime, timedelta

import jwt

from app.settings import settings


class AuthError(Exception):
    """Raised when a request carries no valid bearer token.

    Handled by the exception handler registered in main.py.
    """

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(message)


def create_access_token(subject: uuid.UUID | str, expires_delta: timedelta | None = None) -> str:
    expire = datetime.now(UTC) + (
        expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    )
    payload = {"sub": str(subject), "exp": expire}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, object]:
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])


def owner_id_from_token(token: str) -> uuid.UUID:
    """Return the owner UUID carried in the token's ``sub`` claim.

    Raises:
        AuthError: The token is expired, malformed or has no UUID subject.
    """
    try:
        payload = decode_access_token(token)
    except jwt.ExpiredSignatureError as exc:
        raise AuthError("UNAUTHORIZED", "Access token has expired.") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthError("UNAUTHORIZED", "Invalid access token.") from exc

    try:
        return uuid.UUID(str(payload["sub"]))
    except (KeyError, ValueError) as exc:
        raise AuthError("UNAUTHORIZED", "Access token has no valid subject.") from exc
