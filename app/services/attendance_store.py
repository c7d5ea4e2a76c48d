"""One active attendance record per intern per calendar day.

The unique index on (intern_id, date) is the final arbiter. The explicit
``create`` path reports an existing record as ``DuplicateAttendance``; the
idempotent paths (``upsert_daily``, bulk seeding) treat a unique-index
violation as "already there" and carry on.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging
import math
from typing import Any, Optional, Protocol

from pymongo import DESCENDING
from pymongo.errors import BulkWriteError, DuplicateKeyError

from app.errors import DuplicateAttendance, NotFound
from app.models.attendance import AttendanceDraft, AttendanceRecord
from app.services.dates import canonical_date
from app.services.entitlement import UNRESTRICTED, Entitlement, is_unrestricted
from app.services.ids import to_object_id

logger = logging.getLogger(__name__)

DUPLICATE_KEY = 11000


@dataclass
class AttendanceQuery:
    allowed: Entitlement = UNRESTRICTED
    intern_id: Optional[str] = None
    date: Optional[str] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    status: Optional[bool] = None
    active_only: bool = True


@dataclass
class BulkInsertResult:
    inserted: int = 0
    duplicates: int = 0
    failures: list[tuple[Optional[int], str]] = field(default_factory=list)  # (draft index, error)


def to_mongo_filter(query: AttendanceQuery) -> dict:
    mongo: dict[str, Any] = {}
    if query.active_only:
        mongo["is_active"] = True

    if not is_unrestricted(query.allowed):
        allowed = sorted(query.allowed)
        if query.intern_id:
            allowed = [i for i in allowed if i == query.intern_id]
        mongo["intern_id"] = {"$in": allowed}
    elif query.intern_id:
        mongo["intern_id"] = query.intern_id

    if query.date:
        mongo["date"] = query.date
    elif query.date_from or query.date_to:
        bounds = {}
        if query.date_from:
            bounds["$gte"] = query.date_from
        if query.date_to:
            bounds["$lte"] = query.date_to
        mongo["date"] = bounds

    if query.status is not None:
        mongo["status"] = query.status
    return mongo


class AttendanceRepository(Protocol):
    async def find_active(self, intern_id: str, day: str):
        raise NotImplementedError

    async def get(self, record_id: str):
        raise NotImplementedError

    async def insert(self, draft: AttendanceDraft):
        """Insert one record; raises ``DuplicateKeyError`` on a unique-index clash."""
        raise NotImplementedError

    async def insert_many(self, drafts: list[AttendanceDraft]) -> int:
        """Unordered bulk insert; raises ``BulkWriteError`` if any document fails."""
        raise NotImplementedError

    async def update(self, record, changes: dict):
        raise NotImplementedError

    async def find(self, query: AttendanceQuery, skip: int = 0, limit: Optional[int] = None) -> list:
        """Matching records, newest day first."""
        raise NotImplementedError

    async def count(self, query: AttendanceQuery) -> int:
        raise NotImplementedError

    async def status_counts(self, query: AttendanceQuery, by_date: bool = False) -> list[tuple[Optional[str], bool, int]]:
        """``(date or None, status, count)`` rows grouped by status (and day)."""
        raise NotImplementedError


class BeanieAttendanceRepository(AttendanceRepository):
    async def find_active(self, intern_id: str, day: str):
        return await AttendanceRecord.find_one(
            {"intern_id": intern_id, "date": day, "is_active": True}
        )

    async def get(self, record_id: str):
        oid = to_object_id(record_id)
        if oid is None:
            return None
        return await AttendanceRecord.get(oid)

    async def insert(self, draft: AttendanceDraft):
        record = AttendanceRecord(**draft.model_dump())
        await record.insert()
        return record

    async def insert_many(self, drafts: list[AttendanceDraft]) -> int:
        if not drafts:
            return 0
        result = await AttendanceRecord.insert_many(
            [AttendanceRecord(**d.model_dump()) for d in drafts], ordered=False
        )
        return len(result.inserted_ids)

    async def update(self, record, changes: dict):
        for key, value in changes.items():
            setattr(record, key, value)
        record.updated_at = datetime.utcnow()
        await record.save()
        return record

    async def find(self, query: AttendanceQuery, skip: int = 0, limit: Optional[int] = None) -> list:
        cursor = AttendanceRecord.find(to_mongo_filter(query)).sort(
            [("date", DESCENDING), ("created_at", DESCENDING)]
        )
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return await cursor.to_list()

    async def count(self, query: AttendanceQuery) -> int:
        return await AttendanceRecord.find(to_mongo_filter(query)).count()

    async def status_counts(self, query: AttendanceQuery, by_date: bool = False) -> list[tuple[Optional[str], bool, int]]:
        group_id: dict[str, str] = {"status": "$status"}
        if by_date:
            group_id["date"] = "$date"
        rows = await AttendanceRecord.find(to_mongo_filter(query)).aggregate(
            [{"$group": {"_id": group_id, "count": {"$sum": 1}}}]
        ).to_list()
        return [
            (row["_id"].get("date"), bool(row["_id"]["status"]), row["count"])
            for row in rows
        ]


def page_envelope(total: int, page: int, limit: int) -> dict:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "currentPage": page,
        "totalPages": total_pages,
        "totalCount": total,
        "hasNextPage": page * limit < total,
        "hasPrevPage": page > 1,
        "limit": limit,
    }


class AttendanceStore:
    def __init__(self, repository: AttendanceRepository):
        self.repository = repository

    async def get(self, record_id: str):
        record = await self.repository.get(record_id)
        if not record:
            raise NotFound("Interns attendance not found")
        return record

    async def create(self, draft: AttendanceDraft):
        """Explicit create: fails if the intern already has an active record that day."""
        if await self.repository.find_active(draft.intern_id, draft.date):
            raise DuplicateAttendance()
        try:
            return await self.repository.insert(draft)
        except DuplicateKeyError:
            logger.warning(
                "Concurrent write for intern %s on %s; reporting as duplicate", draft.intern_id, draft.date
            )
            raise DuplicateAttendance(code="concurrent_write")

    async def upsert_daily(
        self,
        intern_id: str,
        day,
        status: bool,
        marked_by: str,
        remarks: Optional[str] = None,
    ):
        """Create or update the (intern, day) record. Safe to repeat."""
        day = canonical_date(day)
        record = await self.repository.find_active(intern_id, day)
        if record is None:
            draft = AttendanceDraft(
                intern_id=intern_id,
                date=day,
                status=status,
                marked_by=marked_by,
                remarks=remarks or "Updated via API",
            )
            try:
                return await self.repository.insert(draft)
            except DuplicateKeyError:
                record = await self.repository.find_active(intern_id, day)
                if record is None:
                    raise
                logger.info("Record for intern %s on %s appeared concurrently; updating it", intern_id, day)

        changes: dict[str, Any] = {"status": status, "marked_by": marked_by}
        if remarks:
            changes["remarks"] = remarks
        return await self.repository.update(record, changes)

    async def update(self, record_id: str, changes: dict):
        record = await self.get(record_id)
        if not changes:
            return record
        return await self.repository.update(record, changes)

    async def soft_delete(self, record_id: str):
        record = await self.get(record_id)
        return await self.repository.update(record, {"is_active": False})

    async def insert_missing(self, drafts: list[AttendanceDraft]) -> BulkInsertResult:
        """Unordered bulk insert.

        Unique-index clashes count as already satisfied. Any other per-document
        write error is reported back by draft index; the remaining documents
        are still inserted.
        """
        if not drafts:
            return BulkInsertResult()
        try:
            return BulkInsertResult(inserted=await self.repository.insert_many(drafts))
        except BulkWriteError as exc:
            details = exc.details or {}
            result = BulkInsertResult(inserted=details.get("nInserted", 0))
            for err in details.get("writeErrors", []):
                if err.get("code") == DUPLICATE_KEY:
                    result.duplicates += 1
                else:
                    result.failures.append((err.get("index"), err.get("errmsg") or f"write error {err.get('code')}"))
            if result.duplicates:
                logger.info("%d records already existed during bulk insert", result.duplicates)
            return result

    async def paginate(self, query: AttendanceQuery, page: int = 1, limit: int = 10) -> tuple[list, int]:
        total = await self.repository.count(query)
        records = await self.repository.find(query, skip=(page - 1) * limit, limit=limit)
        return records, total

    async def find(self, query: AttendanceQuery) -> list:
        return await self.repository.find(query)

    async def find_active(self, intern_id: str, day):
        return await self.repository.find_active(intern_id, canonical_date(day))
