"""User domain models and enums."""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.core.config import Constants


class Role(StrEnum):
    """Role an actor plays across the shared task pool."""

    ADMIN = "admin"
    VENDOR = "vendor"
    CUSTOMER = "customer"


class Actor(BaseModel):
    """Authenticated participant; immutable for the lifetime of a session."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="User ID")
    role: Role = Field(..., description="Role used by the visibility policy")
    is_active: bool = Field(default=True, description="Deactivated actors are refused everything")
    name: str = Field(default="", description="Display name used in event payloads and comments")

    def summary(self) -> dict[str, str]:
        """Compact actor description carried in realtime payloads."""
        return {"id": self.id, "name": self.name, "role": self.role.value}


class User(BaseModel):
    """User data transfer object."""

    id: str = Field(..., description="Unique user ID")
    name: str = Field(..., description="Display name of the user")
    email: str = Field(..., description="Unique email address")
    role: Role = Field(default=Role.CUSTOMER, description="User role")
    is_active: bool = Field(default=True, description="Whether the account may act")
    created: str | None = Field(default=None, description="Creation timestamp (ISO format)")
    updated: str | None = Field(default=None, description="Last update timestamp (ISO format)")

    @field_validator("name")
    @classmethod
    def validate_name_usable(cls, v: str) -> str:
        """Validate name is non-empty and within the length limit."""
        v = v.strip()

        if not v:
            raise ValueError("Name cannot be empty")

        if len(v) > Constants.NAME_MAX_LENGTH:
            raise ValueError(f"Name too long (max {Constants.NAME_MAX_LENGTH} characters)")

        return v

    def to_actor(self) -> Actor:
        return Actor(id=self.id, role=self.role, is_active=self.is_active, name=self.name)


class UserTaskStats(BaseModel):
    """Counts over the unarchived tasks assigned to one user."""

    total: int = 0
    todo: int = 0
    inprogress: int = 0
    done: int = 0
    total_time_spent_seconds: int = 0


class UserDetails(User):
    """User plus the workload assigned to them."""

    task_stats: UserTaskStats = Field(default_factory=UserTaskStats)


class UserPage(BaseModel):
    """One page of a user listing."""

    items: list[User]
    total: int
    page: int
    limit: int
    pages: int


class UserOverview(BaseModel):
    total: int = 0
    active: int = 0
    inactive: int = 0
    admins: int = 0
    vendors: int = 0
    customers: int = 0


class UserStats(BaseModel):
    """Account counts for administrators."""

    overview: UserOverview = Field(default_factory=UserOverview)
    role_distribution: dict[str, int] = Field(
        default_factory=dict, description="Active users per role"
    )
    recent_users: list[User] = Field(default_factory=list, description="Newest active users")
