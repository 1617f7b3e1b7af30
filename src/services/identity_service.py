"""Bearer token issue and resolution.

Tokens are signed user IDs; the actor's role and active flag are loaded from the
user record on every resolution so deactivation takes effect immediately.
"""

import logging

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from src.core.config import settings
from src.core.errors import UnauthorizedError
from src.core.logging import span
from src.domain.user import Actor
from src.services import user_service


logger = logging.getLogger(__name__)

TOKEN_SALT = "taskhub-bearer"


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(str(settings.secret_key), salt=TOKEN_SALT)


def issue_token(user_id: str) -> str:
    """Sign a bearer token for a user."""
    return _serializer().dumps({"sub": user_id})


def read_token(token: str) -> str:
    """Return the user ID a token was issued for.

    Raises:
        UnauthorizedError: If the token is malformed, tampered with or expired
    """
    try:
        data = _serializer().loads(token, max_age=settings.token_max_age_seconds)
    except SignatureExpired as e:
        logger.info("token_expired")
        raise UnauthorizedError("Token expired") from e
    except BadSignature as e:
        logger.warning("token_invalid")
        raise UnauthorizedError("Not authorized, token failed") from e

    user_id = data.get("sub") if isinstance(data, dict) else None
    if not isinstance(user_id, str) or not user_id:
        raise UnauthorizedError("Not authorized, token failed")
    return user_id


async def resolve(token: str | None) -> Actor:
    """Resolve a bearer token to the acting user.

    Raises:
        UnauthorizedError: Missing, invalid or expired token, unknown or inactive user
    """
    with span("identity_service.resolve"):
        if not token:
            raise UnauthorizedError("Not authorized, no token")

        user_id = read_token(token)
        user = await user_service.find_user(user_id=user_id)
        if user is None:
            logger.warning("token_unknown_user", extra={"user_id": user_id})
            raise UnauthorizedError("Not authorized, user not found")
        if not user.is_active:
            logger.warning("token_inactive_user", extra={"user_id": user_id})
            raise UnauthorizedError("User account is deactivated")

        return user.to_actor()
