"""Which interns may an actor see or mark attendance for.

Mentors get the interns reachable through their weekly schedule. Admin tiers
are never resolved: their entitlement is ``UNRESTRICTED``, which stands for
"every intern" without building the list.
"""
from __future__ import annotations

import logging
from typing import Union

from app.services.roles import Actor
from app.services.schedule_graph import ScheduleFilters, ScheduleGraphReader, flatten_schedule

logger = logging.getLogger(__name__)


class Unrestricted:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNRESTRICTED"


UNRESTRICTED = Unrestricted()

Entitlement = Union[frozenset, Unrestricted]


def is_unrestricted(entitlement: Entitlement) -> bool:
    return entitlement is UNRESTRICTED


def is_empty(entitlement: Entitlement) -> bool:
    """True when nothing may be returned; callers short-circuit instead of querying."""
    return not is_unrestricted(entitlement) and not entitlement


def allows(entitlement: Entitlement, intern_id: str) -> bool:
    return is_unrestricted(entitlement) or intern_id in entitlement


def intersect(left: Entitlement, right: Entitlement) -> Entitlement:
    if is_unrestricted(left):
        return right
    if is_unrestricted(right):
        return left
    return frozenset(left) & frozenset(right)


def narrow_to_intern(entitlement: Entitlement, intern_id: str | None) -> Entitlement:
    """Fold an explicit single-intern filter into the entitlement."""
    if not intern_id:
        return entitlement
    return intersect(entitlement, frozenset({intern_id}))


class EntitlementResolver:
    def __init__(self, graph: ScheduleGraphReader):
        self.graph = graph

    async def resolve(self, mentor_id: str) -> frozenset[str]:
        """Intern ids reachable through the mentor's weekly schedule.

        A mentor without a schedule is entitled to nobody.
        """
        slots = await self.graph.schedule_slots(mentor_id)
        if slots is None:
            logger.debug("Mentor %s has no weekly schedule", mentor_id)
            return frozenset()
        return await flatten_schedule(self.graph, slots)

    async def for_actor(self, actor: Actor) -> Entitlement:
        if actor.role.bypasses_entitlement:
            return UNRESTRICTED
        return await self.resolve(actor.id)


class FilterComposer:
    """Narrows an entitlement with ad-hoc query filters.

    Schedule-shaped filters (course, branch, weekday group, time slot) are
    resolved by a second flattening over every weekly schedule; an explicit
    batch filter is applied to that batch's members. The result is the
    intersection of all the pieces, so filters compose in any order.
    """

    def __init__(self, graph: ScheduleGraphReader):
        self.graph = graph

    async def compose(self, base: Entitlement, filters: ScheduleFilters | None = None) -> Entitlement:
        filters = filters or ScheduleFilters()
        allowed = base
        if is_empty(allowed) or filters.is_empty:
            return allowed

        if filters.has_schedule_filter:
            slots = await self.graph.all_slots()
            allowed = intersect(allowed, await flatten_schedule(self.graph, slots, filters))
            if is_empty(allowed):
                return frozenset()

        if filters.batch_id:
            members = await self.graph.batch_members([filters.batch_id])
            allowed = intersect(allowed, frozenset(members.get(filters.batch_id, ())))

        return allowed
