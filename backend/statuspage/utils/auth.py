"""Shared-secret checks for the cron trigger, reports and admin endpoints."""
import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException, Query

from ..config import settings

logger = logging.getLogger(__name__)


def secrets_match(provided: Optional[str], expected: Optional[str]) -> bool:
    """Constant-time comparison; an unset expected secret never matches."""
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Token part of an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def unauthorized(reason: str) -> HTTPException:
    logger.warning(f"Rejected request: {reason}")
    return HTTPException(status_code=401, detail="Unauthorized")


async def verify_cron_trigger(authorization: Optional[str] = Header(None)):
    """Guard for the POST cycle trigger.

    Open when no CRON_SECRET is configured, otherwise the bearer token must match.
    """
    if not settings.cron_secret:
        return
    if not secrets_match(bearer_token(authorization), settings.cron_secret):
        raise unauthorized("bad cron bearer token")


async def verify_secret(
    authorization: Optional[str] = Header(None),
    secret: Optional[str] = Query(None),
):
    """Guard accepting the secret as a bearer token or a ``?secret=`` parameter.

    Requires a configured CRON_SECRET.
    """
    if secrets_match(bearer_token(authorization), settings.cron_secret):
        return
    if secrets_match(secret, settings.cron_secret):
        return
    raise unauthorized("missing or invalid secret")


async def verify_admin(authorization: Optional[str] = Header(None)):
    """Guard for admin writes: bearer CRON_SECRET only."""
    if not secrets_match(bearer_token(authorization), settings.cron_secret):
        raise unauthorized("admin token required")
