"""FastAPI dependencies for database, authentication and external collaborators."""

import hmac
from typing import AsyncGenerator, Optional

import jwt
from fastapi import Depends, Header, Request
from jwt import PyJWTError
from sqlalchemy.ext.asyncio import AsyncSession

from ..gateways import NotificationGateway, build_notification_gateway
from ..providers import ProviderClient, build_provider_client
from .config import Settings, settings
from .database import get_async_session
from .exceptions import AuthenticationError


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database dependency that provides async database sessions.

    Yields:
        AsyncSession: Database session
    """
    async for session in get_async_session():
        yield session


def get_app_settings() -> Settings:
    return settings


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthenticationError(detail="Authorization header missing")
    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError(detail="Invalid authorization header format")
    if scheme.lower() != "bearer":
        raise AuthenticationError(detail="Invalid authentication scheme")
    return token


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    config: Settings = Depends(get_app_settings),
) -> dict:
    """
    Authentication dependency that validates Bearer tokens.

    Args:
        authorization: Authorization header with Bearer token

    Returns:
        dict: User information from validated token; ``user_id`` is the acting admin

    Raises:
        AuthenticationError: If token is invalid or missing
    """
    token = _bearer_token(authorization)
    try:
        # PyJWT rejects expired tokens itself when ``exp`` is present
        payload = jwt.decode(token, config.bearer_token_secret, algorithms=["HS256"])
    except PyJWTError as e:
        raise AuthenticationError(detail=f"Token validation failed: {str(e)}")

    user_id = payload.get("sub")
    if user_id is None:
        raise AuthenticationError(detail="Invalid token payload")

    return {
        "user_id": user_id,
        "username": payload.get("username"),
        "email": payload.get("email"),
        "roles": payload.get("roles", []),
    }


async def require_cron_secret(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    config: Settings = Depends(get_app_settings),
) -> str:
    """
    Guard for endpoints called by an external scheduler.

    Returns:
        str: Actor name recorded for the triggered work
    """
    token = _bearer_token(authorization)
    if not config.cron_secret or not hmac.compare_digest(token, config.cron_secret):
        raise AuthenticationError(detail="Invalid scheduler credentials")
    return "scheduler"


async def get_scheduler_or_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    config: Settings = Depends(get_app_settings),
) -> str:
    """Accept either the scheduler secret or an admin token; returns the actor."""
    token = _bearer_token(authorization)
    if config.cron_secret and hmac.compare_digest(token, config.cron_secret):
        return "scheduler"
    user = await get_current_user(authorization, config)
    return user["user_id"]


def get_provider_client(request: Request) -> ProviderClient:
    """Provider client shared by the application, created on first use."""
    provider = getattr(request.app.state, "provider_client", None)
    if provider is None:
        provider = build_provider_client(settings)
        request.app.state.provider_client = provider
    return provider


def get_notification_gateway(request: Request) -> NotificationGateway:
    """Notification gateway shared by the application, created on first use."""
    gateway = getattr(request.app.state, "notification_gateway", None)
    if gateway is None:
        gateway = build_notification_gateway(settings)
        request.app.state.notification_gateway = gateway
    return gateway
