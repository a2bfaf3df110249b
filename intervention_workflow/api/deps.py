"""API Dependencies - Common dependencies for routes"""
from typing import Optional
from fastapi import Header, Query

from ..config.settings import settings
from ..domain.models import ActorContext
from ..domain.enums import InterventionStatus
from ..domain.errors import AuthenticationError
from ..utils.jwt import get_current_user as _jwt_get_current_user  # Internal use only
from ..utils.logger import set_correlation_id, get_logger
from ..utils.idgen import generate_correlation_id

logger = get_logger(__name__)


async def get_correlation_id_dep(
    x_correlation_id: Optional[str] = Header(None, alias="X-Correlation-Id")
) -> str:
    """
    Get or generate correlation ID for request tracing

    If client provides X-Correlation-Id, use it.
    Otherwise generate a new one.
    """
    correlation_id = x_correlation_id or generate_correlation_id()
    set_correlation_id(correlation_id)
    return correlation_id


async def get_current_user_dep(
    authorization: Optional[str] = Header(None)
) -> ActorContext:
    """
    Dependency to get current user from Authorization header

    Raises:
        AuthenticationError: token missing or invalid (rendered as 401)
    """
    if not authorization:
        raise AuthenticationError("Authorization header is missing")
    return _jwt_get_current_user(authorization)


async def verify_cron_secret_dep(
    authorization: Optional[str] = Header(None)
) -> None:
    """
    Guard for the external cron trigger.

    The shared secret travels as a bearer token. With no secret configured the
    endpoint stays closed.
    """
    if not settings.cron_secret:
        logger.warning("Cron trigger called but no cron secret is configured")
        raise AuthenticationError("Cron trigger is not enabled")
    if authorization != f"Bearer {settings.cron_secret}":
        raise AuthenticationError("Invalid cron secret")


async def get_expected_status_dep(
    expected_status: Optional[InterventionStatus] = Query(
        None, description="Status the client last saw; a stale one is answered with 409"
    )
) -> Optional[InterventionStatus]:
    return expected_status
