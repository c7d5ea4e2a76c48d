"""Interns enrolled in a course."""
from datetime import date, datetime
from enum import Enum
from typing import Optional

from beanie import Document
from pydantic import BaseModel, Field


class CourseStatus(str, Enum):
    ONGOING = "Ongoing"
    COMPLETED = "Completed"
    DROPPED = "Dropped"


class Intern(Document):
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    course_id: Optional[str] = None
    branch_id: Optional[str] = None
    batch: Optional[str] = None  # batch label
    course_started_date: Optional[date] = None
    course_status: CourseStatus = CourseStatus.ONGOING
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "interns"
        use_state_management = True
        indexes = ["course_status", "branch_id"]


class InternProfile(BaseModel):
    """The slice of an intern the attendance engine reads."""

    id: str
    full_name: str = ""
    email: Optional[str] = None
    course_id: Optional[str] = None
    branch_id: Optional[str] = None
    batch: Optional[str] = None
    course_status: CourseStatus = CourseStatus.ONGOING

    @classmethod
    def from_document(cls, intern: Intern) -> "InternProfile":
        return cls(
            id=str(intern.id),
            full_name=intern.full_name,
            email=intern.email,
            course_id=intern.course_id,
            branch_id=intern.branch_id,
            batch=intern.batch,
            course_status=intern.course_status,
        )
