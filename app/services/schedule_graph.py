"""Read-only walk of the mentor -> time slot -> weekday group -> batch -> intern graph."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

from app.models.intern import CourseStatus, Intern, InternProfile
from app.models.schedule import Batch, TimeSlotEntry, WeekdayGroup, WeeklySchedule
from app.services.ids import to_object_ids


@dataclass(frozen=True)
class ScheduleFilters:
    """Optional dimensions that narrow a flattening.

    ``days`` and ``timing_id`` prune the schedule itself; ``course_id`` and
    ``branch_id`` prune the interns reached through it. ``batch_id`` is not a
    schedule filter: it is applied to batch membership directly.
    """

    course_id: Optional[str] = None
    branch_id: Optional[str] = None
    days: Optional[WeekdayGroup] = None
    timing_id: Optional[str] = None
    batch_id: Optional[str] = None

    @property
    def has_schedule_filter(self) -> bool:
        return any((self.course_id, self.branch_id, self.days, self.timing_id))

    @property
    def has_intern_filter(self) -> bool:
        return bool(self.course_id or self.branch_id)

    @property
    def is_empty(self) -> bool:
        return not (self.has_schedule_filter or self.batch_id)


class ScheduleGraphReader(Protocol):
    async def schedule_slots(self, mentor_id: str) -> Optional[list[TimeSlotEntry]]:
        """Slots of the mentor's weekly schedule, or ``None`` if they have none."""
        raise NotImplementedError

    async def all_slots(self) -> list[TimeSlotEntry]:
        """Slots of every weekly schedule."""
        raise NotImplementedError

    async def batch_members(self, batch_ids: Iterable[str]) -> dict[str, list[str]]:
        raise NotImplementedError

    async def interns(self, intern_ids: Iterable[str]) -> list[InternProfile]:
        raise NotImplementedError

    async def ongoing_interns(self, restrict_to: Optional[Iterable[str]] = None) -> list[InternProfile]:
        raise NotImplementedError


class BeanieScheduleGraph(ScheduleGraphReader):
    async def schedule_slots(self, mentor_id: str) -> Optional[list[TimeSlotEntry]]:
        schedule = await WeeklySchedule.find_one(WeeklySchedule.mentor_id == mentor_id)
        if not schedule:
            return None
        return schedule.schedule

    async def all_slots(self) -> list[TimeSlotEntry]:
        slots: list[TimeSlotEntry] = []
        async for schedule in WeeklySchedule.find_all():
            slots.extend(schedule.schedule)
        return slots

    async def batch_members(self, batch_ids: Iterable[str]) -> dict[str, list[str]]:
        oids = to_object_ids(set(batch_ids))
        if not oids:
            return {}
        batches = await Batch.find({"_id": {"$in": oids}}).to_list()
        return {str(b.id): list(b.intern_ids) for b in batches}

    async def interns(self, intern_ids: Iterable[str]) -> list[InternProfile]:
        oids = to_object_ids(set(intern_ids))
        if not oids:
            return []
        interns = await Intern.find({"_id": {"$in": oids}}).to_list()
        return [InternProfile.from_document(i) for i in interns]

    async def ongoing_interns(self, restrict_to: Optional[Iterable[str]] = None) -> list[InternProfile]:
        query: dict = {"course_status": CourseStatus.ONGOING.value}
        if restrict_to is not None:
            query["_id"] = {"$in": to_object_ids(set(restrict_to))}
        interns = await Intern.find(query).sort("full_name").to_list()
        return [InternProfile.from_document(i) for i in interns]


def schedule_batch_ids(slots: Iterable[TimeSlotEntry], filters: ScheduleFilters | None = None) -> set[str]:
    """Batch ids reachable from ``slots``, keeping only matching slots and weekday groups."""
    filters = filters or ScheduleFilters()
    batch_ids: set[str] = set()
    for slot in slots:
        if filters.timing_id and slot.timing_id != filters.timing_id:
            continue
        for entry in slot.sub_details:
            if filters.days and entry.days != filters.days:
                continue
            batch_ids.update(entry.batch_ids)
    return batch_ids


async def flatten_schedule(
    graph: ScheduleGraphReader,
    slots: Iterable[TimeSlotEntry],
    filters: ScheduleFilters | None = None,
) -> frozenset[str]:
    """Distinct intern ids reachable through ``slots``.

    The same batch may sit under several slots; interns are deduplicated by id.
    """
    filters = filters or ScheduleFilters()
    batch_ids = schedule_batch_ids(slots, filters)
    if not batch_ids:
        return frozenset()

    members = await graph.batch_members(batch_ids)
    intern_ids = {intern_id for ids in members.values() for intern_id in ids}
    if not intern_ids or not filters.has_intern_filter:
        return frozenset(intern_ids)

    profiles = await graph.interns(intern_ids)
    return frozenset(
        p.id
        for p in profiles
        if (not filters.course_id or p.course_id == filters.course_id)
        and (not filters.branch_id or p.branch_id == filters.branch_id)
    )
