"""Actor resolution: who is calling, and which role tier do they hold.

Lookup order is fixed: the staff store is consulted first (mentors and
admins), then the separate admin account store (super admins). The first
store that knows the id decides the role; nothing falls through after that.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
import logging
from typing import Optional, Protocol

from app.config import settings
from app.errors import ActorNotFound, PermissionDenied
from app.models.role import Role
from app.models.staff import AdminAccount, Staff
from app.services.ids import to_object_id

logger = logging.getLogger(__name__)


class ActorRole(str, Enum):
    SUPER_ADMIN = "super admin"
    ADMIN = "admin"
    MENTOR = "mentor"

    @property
    def bypasses_entitlement(self) -> bool:
        return self in (ActorRole.SUPER_ADMIN, ActorRole.ADMIN)


class ActorKind(str, Enum):
    STAFF = "staff"
    ACCOUNT = "account"


@dataclass(frozen=True)
class Actor:
    id: str
    kind: ActorKind
    role: ActorRole

    @property
    def is_admin(self) -> bool:
        return self.role.bypasses_entitlement


def normalize_role_name(name: str | None) -> str:
    return " ".join((name or "").split()).lower()


class ActorDirectory(Protocol):
    """Read access to the stores that know about staff and admin accounts.

    ``staff_role`` / ``account_role`` return ``None`` when the store has no
    active entry for the id, and the raw role name (possibly empty) otherwise.
    """

    async def staff_role(self, actor_id: str) -> Optional[str]:
        raise NotImplementedError

    async def account_role(self, actor_id: str) -> Optional[str]:
        raise NotImplementedError

    async def staff_exists(self, staff_id: str) -> bool:
        raise NotImplementedError

    async def default_marker_id(self) -> Optional[str]:
        """Staff member that auto-generated records are attributed to."""
        raise NotImplementedError


class BeanieActorDirectory(ActorDirectory):
    async def _active_staff(self, staff_id: str) -> Optional[Staff]:
        oid = to_object_id(staff_id)
        if oid is None:
            return None
        staff = await Staff.get(oid)
        if not staff or not staff.is_active:
            return None
        return staff

    async def staff_role(self, actor_id: str) -> Optional[str]:
        staff = await self._active_staff(actor_id)
        if staff is None:
            return None
        role_oid = to_object_id(staff.role_id)
        role = await Role.get(role_oid) if role_oid else None
        if not role or not role.is_active:
            return ""
        return role.name

    async def account_role(self, actor_id: str) -> Optional[str]:
        oid = to_object_id(actor_id)
        if oid is None:
            return None
        account = await AdminAccount.get(oid)
        if not account or not account.is_active:
            return None
        return account.role

    async def staff_exists(self, staff_id: str) -> bool:
        return await self._active_staff(staff_id) is not None

    async def default_marker_id(self) -> Optional[str]:
        if settings.attendance_marker_staff_id:
            if await self.staff_exists(settings.attendance_marker_staff_id):
                return settings.attendance_marker_staff_id
            logger.warning(
                "ATTENDANCE_MARKER_STAFF_ID %s is not an active staff member; falling back to an admin",
                settings.attendance_marker_staff_id,
            )
        admin_role = await Role.find_one(Role.name == ActorRole.ADMIN.value)
        if not admin_role:
            return None
        staff = await Staff.find_one(Staff.role_id == str(admin_role.id), Staff.is_active == True)
        return str(staff.id) if staff else None


async def resolve_actor(directory: ActorDirectory, actor_id: str) -> tuple[ActorKind, str]:
    """Return the store that owns ``actor_id`` and its lowercase role name."""
    role = await directory.staff_role(actor_id)
    if role is not None:
        return ActorKind.STAFF, normalize_role_name(role)
    role = await directory.account_role(actor_id)
    if role is not None:
        return ActorKind.ACCOUNT, normalize_role_name(role)
    raise ActorNotFound(actor_id)


async def classify_actor(directory: ActorDirectory, actor_id: str) -> Actor:
    """Resolve ``actor_id`` to one of the recognized role tiers.

    Raises ``ActorNotFound`` if no store knows the id and ``PermissionDenied``
    if the role is not one of super admin, admin or mentor.
    """
    kind, role_name = await resolve_actor(directory, actor_id)
    try:
        role = ActorRole(role_name)
    except ValueError:
        raise PermissionDenied(f"Role '{role_name or 'none'}' may not access attendance")
    return Actor(id=actor_id, kind=kind, role=role)


async def ensure_default_roles() -> None:
    """Ensure the built-in roles exist."""
    for role in ActorRole:
        existing = await Role.find_one(Role.name == role.value)
        if existing:
            if not existing.is_default:
                existing.is_default = True
                existing.updated_at = datetime.utcnow()
                await existing.save()
            continue
        await Role(
            name=role.value,
            description=f"Default {role.value.title()} role",
            is_active=True,
            is_default=True,
        ).insert()
