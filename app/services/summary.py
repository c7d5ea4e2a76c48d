"""Present/absent counts and the calendar-month matrix."""
from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Optional

from app.models.intern import InternProfile
from app.services.attendance_store import AttendanceQuery, AttendanceRepository
from app.services.dates import day_of_month
from app.services.entitlement import Entitlement, is_empty, narrow_to_intern


def _empty_summary() -> dict:
    return {"present": 0, "absent": 0, "totalRecords": 0}


class SummaryAggregator:
    def __init__(self, repository: AttendanceRepository):
        self.repository = repository

    async def summarize(
        self,
        allowed: Entitlement,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        intern_id: Optional[str] = None,
    ) -> dict:
        """Counts of active records by status within the entitlement."""
        summary = _empty_summary()
        allowed = narrow_to_intern(allowed, intern_id)
        if is_empty(allowed):
            return summary
        query = AttendanceQuery(allowed=allowed, intern_id=intern_id, date_from=date_from, date_to=date_to)
        for _, status, count in await self.repository.status_counts(query):
            summary["present" if status else "absent"] += count
            summary["totalRecords"] += count
        return summary

    async def daily_breakdown(
        self,
        allowed: Entitlement,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> list[dict]:
        """Per-day counts, oldest day first."""
        if is_empty(allowed):
            return []
        query = AttendanceQuery(allowed=allowed, date_from=date_from, date_to=date_to)
        by_day: dict[str, dict] = defaultdict(_empty_summary)
        for day, status, count in await self.repository.status_counts(query, by_date=True):
            entry = by_day[day]
            entry["present" if status else "absent"] += count
            entry["totalRecords"] += count
        return [{"date": day, **by_day[day]} for day in sorted(by_day)]


def month_matrix(interns: Iterable[InternProfile], records: Iterable, days_in_month: int) -> list[dict]:
    """One row per intern, one cell per day; ``None`` where nothing was marked."""
    statuses: dict[str, dict[int, bool]] = defaultdict(dict)
    for record in records:
        statuses[record.intern_id][day_of_month(record.date)] = record.status

    rows = []
    for intern in sorted(interns, key=lambda i: (i.full_name.lower(), i.id)):
        marked = statuses.get(intern.id, {})
        days = [marked.get(day) for day in range(1, days_in_month + 1)]
        rows.append(
            {
                "intern": intern.id,
                "fullName": intern.full_name,
                "batch": intern.batch,
                "days": days,
                "present": sum(1 for d in days if d is True),
                "absent": sum(1 for d in days if d is False),
            }
        )
    return rows
