import io
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
import pandas as pd

from app.api.deps import (
    ActorEntitlement,
    AdminOnly,
    Composer,
    CurrentActor,
    Directory,
    Generator,
    Graph,
    Store,
    Summaries,
)
from app.config import settings
from app.errors import NotFound, PermissionDenied, ValidationError
from app.models.attendance import (
    AttendanceCreate,
    AttendanceDraft,
    AttendanceUpdate,
    SingleAttendanceUpdate,
    record_to_dict,
)
from app.models.schedule import WeekdayGroup
from app.services import dates
from app.services.attendance_store import AttendanceQuery, page_envelope
from app.services.entitlement import Entitlement, allows, is_empty, is_unrestricted, narrow_to_intern
from app.services.schedule_graph import ScheduleFilters
from app.services.summary import month_matrix

router = APIRouter()


def schedule_filters(
    branch_id: Optional[str] = Query(None, alias="branchId"),
    course_id: Optional[str] = Query(None, alias="courseId"),
    days: Optional[WeekdayGroup] = Query(None, description="Weekday group"),
    timing_id: Optional[str] = Query(None, alias="timingId"),
    batch_id: Optional[str] = Query(None, alias="batchId"),
) -> ScheduleFilters:
    return ScheduleFilters(
        course_id=course_id,
        branch_id=branch_id,
        days=days,
        timing_id=timing_id,
        batch_id=batch_id,
    )


Filters = Annotated[ScheduleFilters, Depends(schedule_filters)]


def _require_entitled(entitlement: Entitlement, intern_id: str) -> None:
    if not allows(entitlement, intern_id):
        raise PermissionDenied("You are not assigned to this intern")


async def _require_intern(graph: Graph, intern_id: str):
    profiles = await graph.interns([intern_id])
    if not profiles:
        raise NotFound("Intern not found")
    return profiles[0]


def _required_range(start_date: Optional[str], end_date: Optional[str]) -> tuple[str, str]:
    if not start_date or not end_date:
        raise ValidationError("Start date and end date are required")
    return dates.date_range(start_date, end_date)


@router.post("", status_code=201)
async def create_attendance(
    data: AttendanceCreate,
    entitlement: ActorEntitlement,
    graph: Graph,
    directory: Directory,
    store: Store,
):
    """Mark one intern for one day. Fails if the day is already marked."""
    day = dates.canonical_date(data.date)
    await _require_intern(graph, data.intern)
    if not await directory.staff_exists(data.marked_by):
        raise NotFound("Marked by user not found")
    _require_entitled(entitlement, data.intern)

    record = await store.create(
        AttendanceDraft(
            intern_id=data.intern,
            date=day,
            status=data.status,
            check_in_time=data.check_in_time,
            check_out_time=data.check_out_time,
            total_hours=data.total_hours,
            remarks=data.remarks,
            marked_by=data.marked_by,
        )
    )
    return {"message": "Interns attendance created successfully", "data": record_to_dict(record)}


@router.get("")
async def list_attendance(
    entitlement: ActorEntitlement,
    composer: Composer,
    store: Store,
    filters: Filters,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.attendance_default_page_size, ge=1, le=settings.attendance_max_page_size),
    intern: Optional[str] = None,
    date: Optional[str] = None,
    status: Optional[bool] = None,
):
    """Paginated records, newest day first, limited to the caller's interns."""
    allowed = await composer.compose(narrow_to_intern(entitlement, intern), filters)
    if is_empty(allowed):
        return {"message": "Interns attendance retrieved successfully", "data": [], "pagination": page_envelope(0, page, limit)}

    query = AttendanceQuery(
        allowed=allowed,
        intern_id=intern,
        date=dates.canonical_date(date) if date else None,
        status=status,
    )
    records, total = await store.paginate(query, page=page, limit=limit)
    return {
        "message": "Interns attendance retrieved successfully",
        "data": [record_to_dict(r) for r in records],
        "pagination": page_envelope(total, page, limit),
    }


@router.get("/interns-by-date")
async def interns_by_date(
    entitlement: ActorEntitlement,
    composer: Composer,
    graph: Graph,
    store: Store,
    filters: Filters,
    date: str = Query(..., description="YYYY-MM-DD"),
):
    """Interns marked on ``date``, with their status for that day."""
    day = dates.canonical_date(date)
    allowed = await composer.compose(entitlement, filters)
    if is_empty(allowed):
        return {"message": "Interns with attendance retrieved successfully", "data": [], "totalCount": 0}

    records = await store.find(AttendanceQuery(allowed=allowed, date=day))
    profiles = {p.id: p for p in await graph.interns({r.intern_id for r in records})}
    data = []
    for record in records:
        profile = profiles.get(record.intern_id)
        data.append(
            {
                "id": record.intern_id,
                "fullName": profile.full_name if profile else None,
                "email": profile.email if profile else None,
                "courseStatus": profile.course_status if profile else None,
                "branchId": profile.branch_id if profile else None,
                "courseId": profile.course_id if profile else None,
                "batch": profile.batch if profile else None,
                "attendanceStatus": record.status,
                "attendanceId": str(record.id),
                "checkInTime": record.check_in_time,
                "checkOutTime": record.check_out_time,
                "totalHours": record.total_hours,
                "remarks": record.remarks,
                "markedBy": record.marked_by,
            }
        )
    return {"message": "Interns with attendance retrieved successfully", "data": data, "totalCount": len(data)}


@router.get("/month")
async def month_view(
    entitlement: ActorEntitlement,
    composer: Composer,
    graph: Graph,
    store: Store,
    filters: Filters,
    year: Optional[int] = Query(None, ge=2000, le=9999),
    month: Optional[int] = Query(None, ge=1, le=12),
):
    """Calendar matrix for a month: one row per intern, ``null`` for unmarked days."""
    current = dates.today()
    year = year or int(current[:4])
    month = month or int(current[5:7])
    first, last, days_in_month = dates.month_bounds(year, month)

    allowed = await composer.compose(entitlement, filters)
    if is_empty(allowed):
        return {"year": year, "month": month, "daysInMonth": days_in_month, "data": []}

    records = await store.find(AttendanceQuery(allowed=allowed, date_from=first, date_to=last))
    if is_unrestricted(allowed):
        interns = {p.id: p for p in await graph.ongoing_interns()}
        missing = {r.intern_id for r in records} - interns.keys()
        interns.update({p.id: p for p in await graph.interns(missing)})
        profiles = list(interns.values())
    else:
        profiles = await graph.interns(allowed)

    return {
        "year": year,
        "month": month,
        "daysInMonth": days_in_month,
        "data": month_matrix(profiles, records, days_in_month),
    }


@router.get("/summary/overview")
async def summary_overview(
    entitlement: ActorEntitlement,
    composer: Composer,
    summaries: Summaries,
    filters: Filters,
    intern: Optional[str] = None,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
):
    date_from, date_to = dates.date_range(start_date, end_date)
    allowed = await composer.compose(narrow_to_intern(entitlement, intern), filters)
    summary = await summaries.summarize(allowed, date_from, date_to, intern_id=intern)
    return {"message": "Interns attendance summary retrieved successfully", "data": summary}


@router.get("/summary-report")
async def summary_report(
    entitlement: ActorEntitlement,
    composer: Composer,
    summaries: Summaries,
    filters: Filters,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
):
    """Per-day present/absent counts over an inclusive date range."""
    date_from, date_to = _required_range(start_date, end_date)
    allowed = await composer.compose(entitlement, filters)
    days = await summaries.daily_breakdown(allowed, date_from, date_to)
    totals = {
        "present": sum(d["present"] for d in days),
        "absent": sum(d["absent"] for d in days),
        "totalRecords": sum(d["totalRecords"] for d in days),
    }
    return {
        "message": "Attendance summary retrieved successfully",
        "data": {"startDate": date_from, "endDate": date_to, "days": days, "totals": totals},
    }


@router.get("/date-range/range")
async def attendance_by_date_range(
    entitlement: ActorEntitlement,
    store: Store,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    intern: Optional[str] = None,
):
    date_from, date_to = _required_range(start_date, end_date)
    allowed = narrow_to_intern(entitlement, intern)
    if is_empty(allowed):
        return {"message": "Interns attendance retrieved successfully", "data": []}
    records = await store.find(
        AttendanceQuery(allowed=allowed, intern_id=intern, date_from=date_from, date_to=date_to)
    )
    return {"message": "Interns attendance retrieved successfully", "data": [record_to_dict(r) for r in records]}


@router.get("/report")
async def download_attendance_report(
    entitlement: ActorEntitlement,
    composer: Composer,
    graph: Graph,
    store: Store,
    filters: Filters,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    format: str = Query("csv", enum=["csv", "excel"]),
):
    """Download attendance for a date range as CSV or Excel."""
    date_from, date_to = _required_range(start_date, end_date)
    allowed = await composer.compose(entitlement, filters)
    records = [] if is_empty(allowed) else await store.find(
        AttendanceQuery(allowed=allowed, date_from=date_from, date_to=date_to)
    )
    if not records:
        raise NotFound("No records found for the given criteria")

    profiles = {p.id: p for p in await graph.interns({r.intern_id for r in records})}
    data = []
    for record in sorted(records, key=lambda r: (r.date, r.intern_id)):
        profile = profiles.get(record.intern_id)
        data.append(
            {
                "Date": record.date,
                "Intern ID": record.intern_id,
                "Intern Name": profile.full_name if profile else "Unknown",
                "Batch": profile.batch if profile else "",
                "Status": "Present" if record.status else "Absent",
                "Remarks": record.remarks or "",
            }
        )
    df = pd.DataFrame(data)
    filename = f"attendance_{date_from}_{date_to}"

    if format == "csv":
        stream = io.StringIO()
        df.to_csv(stream, index=False)
        return StreamingResponse(
            iter([stream.getvalue()]),
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}.csv"},
        )
    output = io.BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name="Attendance")
    output.seek(0)
    return StreamingResponse(
        output,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={filename}.xlsx"},
    )


@router.post("/create-daily")
async def create_daily_attendance(entitlement: ActorEntitlement, generator: Generator):
    """Seed today's absent records: every ongoing intern for admins, own interns for mentors."""
    restrict_to = None if is_unrestricted(entitlement) else entitlement
    result = await generator.generate_for_today(restrict_to)
    return {
        "message": "Daily attendance records created successfully",
        "data": result.as_dict(),
    }


@router.put("/update-single")
async def update_single_attendance(
    data: SingleAttendanceUpdate,
    actor: CurrentActor,
    entitlement: ActorEntitlement,
    graph: Graph,
    store: Store,
):
    """Set one intern's status for one day, creating the record if needed."""
    day = dates.canonical_date(data.date)
    await _require_intern(graph, data.intern_id)
    _require_entitled(entitlement, data.intern_id)
    record = await store.upsert_daily(data.intern_id, day, data.status, actor.id, data.remarks)
    return {"message": "Intern attendance updated successfully", "data": record_to_dict(record)}


@router.get("/{record_id}")
async def get_attendance(record_id: str, entitlement: ActorEntitlement, store: Store):
    record = await store.get(record_id)
    _require_entitled(entitlement, record.intern_id)
    return {"message": "Interns attendance retrieved successfully", "data": record_to_dict(record)}


@router.put("/{record_id}")
async def update_attendance(record_id: str, data: AttendanceUpdate, entitlement: ActorEntitlement, store: Store):
    record = await store.get(record_id)
    _require_entitled(entitlement, record.intern_id)
    changes = data.model_dump(exclude_unset=True)
    if changes.get("status", False) is None:
        raise ValidationError("Status must be a boolean value (true for present, false for absent)")
    record = await store.update(record_id, changes)
    return {"message": "Interns attendance updated successfully", "data": record_to_dict(record)}


@router.delete("/{record_id}")
async def delete_attendance(record_id: str, admin: AdminOnly, store: Store):
    """Soft delete: the record stays but no longer counts."""
    await store.soft_delete(record_id)
    return {"message": "Interns attendance deleted successfully"}
