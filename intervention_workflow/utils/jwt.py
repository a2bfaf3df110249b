"""JWT Token Validation - Bearer tokens issued by the auth provider"""
import jwt
from typing import Any, Dict, Optional
from pydantic import ValidationError as PydanticValidationError

from ..config.settings import settings
from ..domain.errors import AuthenticationError
from ..domain.models import ActorContext
from .logger import get_logger

logger = get_logger(__name__)


class JWTValidator:
    """
    Shared-secret JWT validator

    Claims consumed: ``sub`` (user ID), ``role``, ``team_id``, and optionally
    ``name`` and ``email``. The engine trusts nothing else about the caller.
    """

    def validate_token(self, token: str) -> Dict[str, Any]:
        """
        Validate a bearer token

        Args:
            token: Bearer token (with or without 'Bearer ' prefix)

        Returns:
            Decoded token claims

        Raises:
            AuthenticationError: If token is invalid
        """
        if not token:
            raise AuthenticationError("Token is missing")

        if token.startswith("Bearer "):
            token = token[7:]

        options = {"verify_exp": True, "verify_aud": bool(settings.jwt_audience)}
        try:
            return jwt.decode(
                token,
                settings.jwt_secret,
                algorithms=[settings.jwt_algorithm],
                audience=settings.jwt_audience or None,
                options=options
            )
        except jwt.ExpiredSignatureError:
            logger.warning("Token expired")
            raise AuthenticationError("Token has expired")
        except jwt.InvalidAudienceError as e:
            logger.warning(f"Invalid token audience: {e}")
            raise AuthenticationError("Invalid token audience")
        except jwt.PyJWTError as e:
            logger.warning(f"JWT validation error: {e}")
            raise AuthenticationError(f"Invalid token: {str(e)}")

    def get_actor_context(self, token: str) -> ActorContext:
        """Build the actor context from validated claims"""
        claims = self.validate_token(token)

        user_id = claims.get("sub")
        if not user_id:
            raise AuthenticationError("Token has no subject")

        try:
            actor = ActorContext(
                user_id=user_id,
                role=claims.get("role"),
                team_id=claims.get("team_id") or "",
                name=claims.get("name") or "",
                email=claims.get("email") or None
            )
        except PydanticValidationError as e:
            logger.warning(f"Token claims rejected: {e.errors()[0].get('msg')}")
            raise AuthenticationError("Token claims are incomplete or invalid")

        logger.debug(f"Authenticated {actor.user_id} as {actor.role.value}")
        return actor


# Global validator instance
_jwt_validator: Optional[JWTValidator] = None


def get_jwt_validator() -> JWTValidator:
    """Get global JWT validator instance"""
    global _jwt_validator
    if _jwt_validator is None:
        _jwt_validator = JWTValidator()
    return _jwt_validator


def get_current_user(authorization: str) -> ActorContext:
    """
    Get current user from authorization header

    Args:
        authorization: Authorization header value

    Returns:
        ActorContext
    """
    if not authorization:
        raise AuthenticationError("Authorization header is missing")

    return get_jwt_validator().get_actor_context(authorization)
