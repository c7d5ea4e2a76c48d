from datetime import datetime
from typing import Any, Optional

from beanie import Document
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictBool, field_validator
from pymongo import ASCENDING, IndexModel

from app.services.dates import canonical_date


class AttendanceRecord(Document):
    """Attendance of one intern on one calendar day.

    ``date`` is the canonical ``YYYY-MM-DD`` string, never a timestamp. At most
    one active record exists per (intern_id, date); soft-deleted records are
    kept but no longer count against the unique index.
    """

    intern_id: str
    date: str
    status: bool = False  # True = present, False = absent
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    total_hours: Optional[float] = None
    remarks: Optional[str] = None
    marked_by: str  # staff id
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("date", mode="before")
    @classmethod
    def normalize_date(cls, value):
        return canonical_date(value)

    class Settings:
        name = "interns_attendance"
        use_state_management = True
        indexes = [
            IndexModel(
                [("intern_id", ASCENDING), ("date", ASCENDING)],
                name="intern_date_active_unique",
                unique=True,
                partialFilterExpression={"is_active": True},
            ),
            IndexModel([("date", ASCENDING), ("status", ASCENDING)], name="date_status"),
        ]


class AttendanceDraft(BaseModel):
    """Fields of a record about to be inserted."""

    intern_id: str
    date: str
    status: bool = False
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    total_hours: Optional[float] = None
    remarks: Optional[str] = None
    marked_by: str
    is_active: bool = True

    @field_validator("date", mode="before")
    @classmethod
    def normalize_date(cls, value):
        return canonical_date(value)


# --- Request bodies (wire names are camelCase) ---

class AttendanceCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    intern: str = Field(min_length=1)
    date: str = Field(min_length=1)
    status: StrictBool
    check_in_time: Optional[datetime] = Field(None, alias="checkInTime")
    check_out_time: Optional[datetime] = Field(None, alias="checkOutTime")
    total_hours: Optional[float] = Field(None, alias="totalHours", ge=0)
    remarks: Optional[str] = None
    marked_by: str = Field(alias="markedBy", min_length=1)


class AttendanceUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: Optional[StrictBool] = None
    check_in_time: Optional[datetime] = Field(None, alias="checkInTime")
    check_out_time: Optional[datetime] = Field(None, alias="checkOutTime")
    total_hours: Optional[float] = Field(None, alias="totalHours", ge=0)
    remarks: Optional[str] = None


class SingleAttendanceUpdate(BaseModel):
    """Body of the idempotent per-day upsert."""

    intern_id: str = Field(validation_alias=AliasChoices("internId", "intern_id", "intern"), min_length=1)
    date: str = Field(min_length=1)
    status: StrictBool
    remarks: Optional[str] = None


def record_to_dict(record: Any) -> dict:
    """Serialize a stored record for API responses."""
    return {
        "id": str(record.id),
        "intern": record.intern_id,
        "date": record.date,
        "status": record.status,
        "statusText": "Present" if record.status else "Absent",
        "checkInTime": record.check_in_time,
        "checkOutTime": record.check_out_time,
        "totalHours": record.total_hours,
        "remarks": record.remarks,
        "markedBy": record.marked_by,
        "isActive": record.is_active,
        "createdAt": record.created_at,
        "updatedAt": record.updated_at,
    }
