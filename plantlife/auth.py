"""JWT bearer authentication.

OTP delivery happens outside this service; once a phone number has been
confirmed the client receives an access token whose subject is the user id.
"""

from datetime import timedelta
from uuid import UUID

import jwt
from fastapi import Depends
from starlette.requests import HTTPConnection

from plantlife.config import Settings, get_settings
from plantlife.dependencies import get_services
from plantlife.entities import User
from plantlife.exceptions import UnauthenticatedError
from plantlife.logging_config import bind_user_context, get_logger
from plantlife.services import Services
from plantlife.utils import utcnow

logger = get_logger(__name__)


def create_access_token(user_id: UUID | str, settings: Settings | None = None) -> str:
    """Create a JWT access token for a user."""
    settings = settings or get_settings()
    expire = utcnow() + timedelta(minutes=settings.access_token_expire_minutes)
    payload = {"sub": str(user_id), "exp": expire, "type": "access"}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings | None = None) -> UUID:
    """Validate a token and return its user id. Raises UnauthenticatedError."""
    settings = settings or get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise UnauthenticatedError("Token expired") from None
    except jwt.InvalidTokenError:
        raise UnauthenticatedError("Invalid token") from None

    if payload.get("type") != "access":
        raise UnauthenticatedError("Invalid token type")
    try:
        return UUID(payload["sub"])
    except (KeyError, ValueError):
        raise UnauthenticatedError("Invalid token subject") from None


def bearer_token(connection: HTTPConnection) -> str | None:
    """Token from the Authorization header, or the ``token`` query parameter."""
    header = connection.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header.removeprefix("Bearer ").strip() or None
    return connection.query_params.get("token") or None


async def get_current_user(
    connection: HTTPConnection,
    services: Services = Depends(get_services),
) -> User:
    """FastAPI dependency: the authenticated user, or 401."""
    token = bearer_token(connection)
    if token is None:
        raise UnauthenticatedError("Missing or invalid Authorization header")
    user_id = decode_access_token(token, connection.app.state.settings)
    user = await services.identity.get(user_id)
    if user is None:
        raise UnauthenticatedError("User no longer exists")
    bind_user_context(user.id)
    return user


async def get_current_user_optional(
    connection: HTTPConnection,
    services: Services = Depends(get_services),
) -> User | None:
    """FastAPI dependency: optional auth. Returns None instead of raising."""
    if bearer_token(connection) is None:
        return None
    try:
        return await get_current_user(connection, services)
    except UnauthenticatedError:
        return None
