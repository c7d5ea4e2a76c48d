"""Teaching schedule graph: timings, batches and mentors' weekly schedules."""
from datetime import datetime
from enum import Enum
from typing import Optional

from beanie import Document, Indexed, Insert, Replace, Save, SaveChanges, before_event
from pydantic import BaseModel, Field


class WeekdayGroup(str, Enum):
    MWF = "MWF"  # Mon/Wed/Fri
    TTS = "TTS"  # Tue/Thu/Sat


class Timing(Document):
    """A teaching time slot, e.g. "08:30 AM - 11:30 AM"."""

    branch_id: Optional[str] = None
    time_slot: str
    is_active: bool = True

    class Settings:
        name = "timings"
        use_state_management = True


class Batch(Document):
    batch_name: str
    branch_id: Optional[str] = None
    status: str = "Active"  # Active, Inactive, Closed
    intern_ids: list[str] = Field(default_factory=list)
    total_interns: int = 0
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @before_event(Insert, Replace, Save, SaveChanges)
    def sync_total_interns(self):
        self.total_interns = len(self.intern_ids)

    class Settings:
        name = "batches"
        use_state_management = True


class WeekdayGroupEntry(BaseModel):
    days: WeekdayGroup
    subject: Optional[str] = None
    batch_ids: list[str] = Field(default_factory=list)


class TimeSlotEntry(BaseModel):
    timing_id: Optional[str] = None
    sub_details: list[WeekdayGroupEntry] = Field(default_factory=list)


class WeeklySchedule(Document):
    """At most one per mentor."""

    mentor_id: Indexed(str, unique=True)
    schedule: list[TimeSlotEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "weekly_schedules"
        use_state_management = True
