from src.services import (
    identity_service,
    user_service,
)


__all__ = [
    "identity_service",
    "user_service",
]
