"""Caller identity models."""

from enum import Enum

from pydantic import BaseModel, Field


class Role(str, Enum):
    """Platform role of an authenticated user."""

    USER = "user"
    ADMIN = "admin"


class Identity(BaseModel):
    """An already-authenticated caller."""

    user_id: str = Field(..., min_length=1)
    role: Role = Role.USER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def can_access(self, owner_id: str) -> bool:
        """Owners and administrators may act on a store."""
        return self.is_admin or self.user_id == owner_id
