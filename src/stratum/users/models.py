"""Pydantic models for the users module.

``User`` is the stored entity. The request models carry the input
validation rules for the HTTP layer and the service.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stratum.database import ensure_utc, generate_id, utcnow

EMAIL_PATTERN = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"


class User(BaseModel):
    """A registered user."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=generate_id)
    username: str
    email: str
    full_name: str
    age: int | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("created_at", "updated_at")
    @classmethod
    def validate_timestamps(cls, v: datetime) -> datetime:
        """Store timestamps as UTC-aware datetimes."""
        return ensure_utc(v)


class CreateUserRequest(BaseModel):
    """Payload for creating a user."""

    username: str = Field(min_length=3, max_length=50)
    email: str = Field(pattern=EMAIL_PATTERN)
    full_name: str = Field(min_length=2, max_length=100)
    age: int | None = Field(None, ge=1, le=150)


class UpdateUserRequest(BaseModel):
    """Partial update payload; omitted fields stay unchanged."""

    username: str | None = Field(None, min_length=3, max_length=50)
    email: str | None = Field(None, pattern=EMAIL_PATTERN)
    full_name: str | None = Field(None, min_length=2, max_length=100)
    age: int | None = Field(None, ge=1, le=150)


class UserStatistics(BaseModel):
    """Aggregate figures over all users."""

    total_users: int
    users_with_age: int
    average_age: float | None = None
