from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import BackgroundTasks, Depends, Header, Request

from finivis.core.config import Settings
from finivis.core.errors import AuthenticationError, PermissionDeniedError
from finivis.db.dal import Database
from finivis.services.notifications import EmailSender, FixedWindowRateLimiter, Outbox
from finivis.services.rates.cache_service import CentralRateCacheService

"""Shared router dependencies.

Everything request-scoped hangs off ``app.state`` (set up in ``create_app``)
so an app built with a settings override never touches the cached global
settings.
"""

logger = logging.getLogger("finivis.auth")

ADMIN_ROLES = {"admin", "forex_admin"}


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_db(request: Request) -> Database:
    return Database(request.app.state.settings.db_path)


def get_rate_service(request: Request) -> CentralRateCacheService:
    return request.app.state.rate_service


def get_email_sender(request: Request) -> EmailSender:
    return request.app.state.email_sender


def get_email_limiter(request: Request) -> FixedWindowRateLimiter:
    return request.app.state.email_limiter


def get_outbox(
    background_tasks: BackgroundTasks,
    sender: EmailSender = Depends(get_email_sender),
) -> Outbox:
    return Outbox(sender, background_tasks)


def is_admin(profile: Dict[str, Any], roles: list, settings: Settings) -> bool:
    if ADMIN_ROLES.intersection(roles):
        return True
    return (profile.get("email") or "").lower() in settings.admin_emails


def get_current_user(
    authorization: Optional[str] = Header(None),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> Dict[str, Any]:
    if not authorization:
        raise AuthenticationError("Authentication required")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Authentication required")
    profile = db.get_profile_by_token(token.strip())
    if not profile:
        logger.warning("rejected unknown bearer token")
        raise AuthenticationError("Invalid authentication token")
    roles = db.get_roles(profile["id"])
    profile["roles"] = roles
    profile["is_admin"] = is_admin(profile, roles, settings)
    return profile


def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if not user["is_admin"]:
        logger.warning("admin route refused for user %s", user["id"])
        raise PermissionDeniedError("Admin access required")
    return user


def public_profile(profile: Dict[str, Any]) -> Dict[str, Any]:
    """Profile as returned to clients: never echo the API token."""
    return {k: v for k, v in profile.items() if k != "api_token"}
