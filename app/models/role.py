"""Role documents referenced by staff members."""
from __future__ import annotations

from datetime import datetime

from beanie import Document, Indexed
from pydantic import Field, field_validator


class Role(Document):
    """Named role; the name is stored lowercase (``mentor``, ``admin``, ``super admin``)."""

    name: Indexed(str, unique=True)
    description: str | None = None
    is_active: bool = True
    is_default: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("name")
    @classmethod
    def normalize_name(cls, value: str) -> str:
        return " ".join(value.split()).lower()

    class Settings:
        name = "roles"
        use_state_management = True
