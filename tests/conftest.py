from __future__ import annotations

import itertools
import os
from collections import Counter
from datetime import datetime
from typing import Iterable, Optional

import pytest

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("ATTENDANCE_CRON_ENABLED", "false")

from pymongo.errors import BulkWriteError, DuplicateKeyError  # noqa: E402

from app.models.attendance import AttendanceDraft  # noqa: E402
from app.models.intern import CourseStatus, InternProfile  # noqa: E402
from app.models.schedule import TimeSlotEntry, WeekdayGroup, WeekdayGroupEntry  # noqa: E402
from app.services.attendance_store import AttendanceQuery, AttendanceRepository  # noqa: E402
from app.services.entitlement import is_unrestricted  # noqa: E402
from app.services.roles import ActorDirectory  # noqa: E402
from app.services.schedule_graph import ScheduleGraphReader  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


def slot(timing_id: str, *groups: tuple[WeekdayGroup, list[str]]) -> TimeSlotEntry:
    return TimeSlotEntry(
        timing_id=timing_id,
        sub_details=[WeekdayGroupEntry(days=days, subject="Python", batch_ids=batch_ids) for days, batch_ids in groups],
    )


def intern(intern_id: str, course_id: str = "course-x", branch_id: str = "branch-1", status=CourseStatus.ONGOING) -> InternProfile:
    return InternProfile(
        id=intern_id,
        full_name=f"Intern {intern_id}",
        email=f"{intern_id.lower()}@example.com",
        course_id=course_id,
        branch_id=branch_id,
        batch="B1",
        course_status=status,
    )


class InMemoryGraph(ScheduleGraphReader):
    def __init__(self, schedules=None, batches=None, interns=None):
        self.schedules: dict[str, list[TimeSlotEntry]] = schedules or {}
        self.batches: dict[str, list[str]] = batches or {}
        self.intern_profiles: dict[str, InternProfile] = {i.id: i for i in (interns or [])}
        self.all_slots_calls = 0

    async def schedule_slots(self, mentor_id: str) -> Optional[list[TimeSlotEntry]]:
        return self.schedules.get(mentor_id)

    async def all_slots(self) -> list[TimeSlotEntry]:
        self.all_slots_calls += 1
        return [s for slots in self.schedules.values() for s in slots]

    async def batch_members(self, batch_ids: Iterable[str]) -> dict[str, list[str]]:
        return {b: list(self.batches[b]) for b in set(batch_ids) if b in self.batches}

    async def interns(self, intern_ids: Iterable[str]) -> list[InternProfile]:
        return [self.intern_profiles[i] for i in sorted(set(intern_ids)) if i in self.intern_profiles]

    async def ongoing_interns(self, restrict_to: Optional[Iterable[str]] = None) -> list[InternProfile]:
        wanted = None if restrict_to is None else set(restrict_to)
        return [
            p
            for p in sorted(self.intern_profiles.values(), key=lambda p: p.id)
            if p.course_status == CourseStatus.ONGOING and (wanted is None or p.id in wanted)
        ]


class InMemoryDirectory(ActorDirectory):
    def __init__(self, staff=None, accounts=None, marker: Optional[str] = None):
        self.staff: dict[str, str] = staff or {}
        self.accounts: dict[str, str] = accounts or {}
        self.marker = marker

    async def staff_role(self, actor_id: str) -> Optional[str]:
        return self.staff.get(actor_id)

    async def account_role(self, actor_id: str) -> Optional[str]:
        return self.accounts.get(actor_id)

    async def staff_exists(self, staff_id: str) -> bool:
        return staff_id in self.staff

    async def default_marker_id(self) -> Optional[str]:
        return self.marker


class StoredAttendance(AttendanceDraft):
    id: str
    seq: int
    created_at: datetime
    updated_at: datetime


class InMemoryAttendanceRepository(AttendanceRepository):
    """Mimics the Mongo collection, including the partial unique index.

    ``rejected_interns`` fail the bulk insert with a non-duplicate write error
    (as a schema validator would); ``broken_interns`` fail every lookup.
    """

    def __init__(self):
        self.records: list[StoredAttendance] = []
        self._seq = itertools.count(1)
        self.broken_interns: set[str] = set()
        self.rejected_interns: set[str] = set()
        self.find_calls = 0
        self.status_count_calls = 0

    def _clash(self, intern_id: str, day: str) -> bool:
        return any(r.is_active and r.intern_id == intern_id and r.date == day for r in self.records)

    def _store(self, draft: AttendanceDraft) -> StoredAttendance:
        seq = next(self._seq)
        now = datetime.utcnow()
        record = StoredAttendance(**draft.model_dump(), id=f"rec-{seq}", seq=seq, created_at=now, updated_at=now)
        self.records.append(record)
        return record

    async def find_active(self, intern_id: str, day: str):
        if intern_id in self.broken_interns:
            raise RuntimeError(f"bad reference {intern_id}")
        return next((r for r in self.records if r.is_active and r.intern_id == intern_id and r.date == day), None)

    async def get(self, record_id: str):
        return next((r for r in self.records if r.id == record_id), None)

    async def insert(self, draft: AttendanceDraft):
        if draft.is_active and self._clash(draft.intern_id, draft.date):
            raise DuplicateKeyError("E11000 duplicate key error", code=11000)
        return self._store(draft)

    async def insert_many(self, drafts: list[AttendanceDraft]) -> int:
        inserted, errors = 0, []
        for index, draft in enumerate(drafts):
            if draft.intern_id in self.rejected_interns:
                errors.append({"index": index, "code": 121, "errmsg": "Document failed validation"})
                continue
            if self._clash(draft.intern_id, draft.date):
                errors.append({"index": index, "code": 11000, "errmsg": "E11000 duplicate key error"})
                continue
            self._store(draft)
            inserted += 1
        if errors:
            raise BulkWriteError({"nInserted": inserted, "writeErrors": errors})
        return inserted

    async def update(self, record, changes: dict):
        for key, value in changes.items():
            setattr(record, key, value)
        record.updated_at = datetime.utcnow()
        return record

    def _matches(self, record: StoredAttendance, query: AttendanceQuery) -> bool:
        if query.active_only and not record.is_active:
            return False
        if not is_unrestricted(query.allowed) and record.intern_id not in query.allowed:
            return False
        if query.intern_id and record.intern_id != query.intern_id:
            return False
        if query.date and record.date != query.date:
            return False
        if query.date_from and record.date < query.date_from:
            return False
        if query.date_to and record.date > query.date_to:
            return False
        if query.status is not None and record.status != query.status:
            return False
        return True

    async def find(self, query: AttendanceQuery, skip: int = 0, limit: Optional[int] = None) -> list:
        self.find_calls += 1
        rows = sorted(
            (r for r in self.records if self._matches(r, query)),
            key=lambda r: (r.date, r.seq),
            reverse=True,
        )
        rows = rows[skip:]
        return rows[:limit] if limit else rows

    async def count(self, query: AttendanceQuery) -> int:
        return sum(1 for r in self.records if self._matches(r, query))

    async def status_counts(self, query: AttendanceQuery, by_date: bool = False):
        self.status_count_calls += 1
        counts = Counter(
            (r.date if by_date else None, r.status) for r in self.records if self._matches(r, query)
        )
        return [(day, status, n) for (day, status), n in counts.items()]


@pytest.fixture
def graph() -> InMemoryGraph:
    """Mentor M1 teaches B1 {A, B} and B2 {B, C}; B1 sits under two slots.

    Mentor M2 teaches B3 {D}. Mentor M3 has no schedule. E is completed.
    """
    return InMemoryGraph(
        schedules={
            "M1": [
                slot("T1", (WeekdayGroup.MWF, ["B1"])),
                slot("T2", (WeekdayGroup.TTS, ["B1", "B2"])),
            ],
            "M2": [slot("T1", (WeekdayGroup.TTS, ["B3"]))],
        },
        batches={"B1": ["A", "B"], "B2": ["B", "C"], "B3": ["D"]},
        interns=[
            intern("A", course_id="course-y"),
            intern("B", course_id="course-x"),
            intern("C", course_id="course-y", branch_id="branch-2"),
            intern("D", course_id="course-x", branch_id="branch-2"),
            intern("E", status=CourseStatus.COMPLETED),
        ],
    )


@pytest.fixture
def directory() -> InMemoryDirectory:
    return InMemoryDirectory(
        staff={"M1": "Mentor", "M2": "mentor", "M3": "MENTOR", "ADM": "Admin", "ACC": "accountant", "NOROLE": ""},
        accounts={"ROOT": "Super Admin"},
        marker="ADM",
    )


@pytest.fixture
def repo() -> InMemoryAttendanceRepository:
    return InMemoryAttendanceRepository()
