"""Staff members (mentors, admins) and the separate admin account store."""
from datetime import datetime
from typing import Optional

from beanie import Document, Indexed
from pydantic import EmailStr, Field


class Staff(Document):
    """Staff member owned by the administration subsystem; read-only here."""

    full_name: str
    email: Indexed(EmailStr, unique=True)
    phone: Optional[str] = None
    department: Optional[str] = None
    branch_id: Optional[str] = None
    role_id: Optional[str] = None  # Role document id
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "staff"
        use_state_management = True


class AdminAccount(Document):
    """Platform account that may hold the ``super admin`` role.

    Its role is a plain string (e.g. "Super Admin"); comparisons are
    case-insensitive.
    """

    name: str
    email: Indexed(EmailStr, unique=True)
    role: str = ""
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "users"
        use_state_management = True
