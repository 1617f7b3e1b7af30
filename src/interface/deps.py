"""FastAPI dependencies shared by the routers."""

from fastapi import Header, Request

from src.domain.user import Actor
from src.services import identity_service
from src.services.task_service import TaskService


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_actor(authorization: str | None = Header(default=None)) -> Actor:
    """Resolve the acting user from the bearer token (raises UnauthorizedError)."""
    return await identity_service.resolve(bearer_token(authorization))


def get_task_service(request: Request) -> TaskService:
    return request.app.state.task_service
