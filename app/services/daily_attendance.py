"""Seed absent-by-default attendance for every ongoing intern.

Runs once a day from the in-process scheduler and on demand from the API.
Both paths call the same idempotent generator: interns that already have a
record for the day are skipped, and the unique index catches anything that
slips through a race.
"""
from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
import logging
from typing import Awaitable, Callable, Iterable, Optional
from zoneinfo import ZoneInfo

from app.config import settings
from app.errors import NotFound
from app.models.attendance import AttendanceDraft
from app.services import dates
from app.services.attendance_store import AttendanceStore
from app.services.roles import ActorDirectory
from app.services.schedule_graph import ScheduleGraphReader

logger = logging.getLogger(__name__)

AUTO_REMARK = "Auto-generated daily attendance record"


@dataclass
class GenerationResult:
    date: str
    created: int = 0
    skipped: int = 0
    errors: list[dict] = field(default_factory=list)

    def as_dict(self) -> dict:
        return asdict(self)


class DailyAttendanceGenerator:
    def __init__(self, graph: ScheduleGraphReader, store: AttendanceStore, directory: ActorDirectory):
        self.graph = graph
        self.store = store
        self.directory = directory

    async def generate_for_today(
        self,
        restrict_to: Optional[Iterable[str]] = None,
        day: Optional[str] = None,
    ) -> GenerationResult:
        """Stage a default absent record for each ongoing intern without one.

        ``restrict_to`` limits the run to those intern ids (a mentor's
        entitlement). A failure on one intern is logged and recorded in the
        result; the remaining interns are still seeded.
        """
        day = dates.canonical_date(day) if day else dates.today()
        result = GenerationResult(date=day)

        if restrict_to is not None:
            restrict_to = set(restrict_to)
            if not restrict_to:
                logger.info("No interns to seed for %s: empty restriction", day)
                return result

        interns = await self.graph.ongoing_interns(restrict_to)
        logger.info("Found %d ongoing interns for %s", len(interns), day)
        if not interns:
            return result

        marker_id = await self.directory.default_marker_id()
        if not marker_id:
            raise NotFound("No staff member available to mark attendance")

        drafts: list[AttendanceDraft] = []
        for intern in interns:
            try:
                if await self.store.find_active(intern.id, day):
                    logger.debug("Attendance already exists for intern %s on %s", intern.id, day)
                    result.skipped += 1
                    continue
                drafts.append(
                    AttendanceDraft(
                        intern_id=intern.id,
                        date=day,
                        status=False,
                        marked_by=marker_id,
                        remarks=AUTO_REMARK,
                    )
                )
            except Exception as exc:
                logger.error("Error creating attendance for intern %s: %s", intern.id, exc)
                result.errors.append({"intern": intern.id, "error": str(exc)})

        outcome = await self.store.insert_missing(drafts)
        result.created = outcome.inserted
        result.skipped += outcome.duplicates
        for index, message in outcome.failures:
            intern_id = drafts[index].intern_id if index is not None and 0 <= index < len(drafts) else None
            logger.error("Error creating attendance for intern %s: %s", intern_id, message)
            result.errors.append({"intern": intern_id, "error": message})
        logger.info(
            "Daily attendance for %s: %d created, %d skipped, %d errors",
            day,
            result.created,
            result.skipped,
            len(result.errors),
        )
        return result


def seconds_until_next_run(now: datetime, hour: int, minute: int) -> float:
    """Seconds from ``now`` (timezone-aware) to the next ``hour:minute`` local time.

    The difference is taken in UTC: across a DST change, a local day is not
    24 hours long.
    """
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now:
        target = (now + timedelta(days=1)).replace(hour=hour, minute=minute, second=0, microsecond=0)
    return (target.astimezone(timezone.utc) - now.astimezone(timezone.utc)).total_seconds()


async def run_daily_attendance_cron(
    make_generator: Callable[[], DailyAttendanceGenerator],
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """Run the generator once per local day until cancelled."""
    tz = ZoneInfo(settings.timezone)
    logger.info(
        "Attendance cron started - runs daily at %02d:%02d %s",
        settings.attendance_cron_hour,
        settings.attendance_cron_minute,
        settings.timezone,
    )
    while True:
        delay = seconds_until_next_run(
            datetime.now(tz), settings.attendance_cron_hour, settings.attendance_cron_minute
        )
        await sleep(delay)
        logger.info("Running daily attendance creation cron job...")
        try:
            await make_generator().generate_for_today()
        except Exception:
            logger.exception("Error in daily attendance creation cron job")
