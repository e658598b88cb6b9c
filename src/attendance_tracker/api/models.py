"""Pydantic models for the session HTTP API."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from attendance_tracker.domain.sessions import AttendanceEntry, SessionRecord


class StartSessionRequest(BaseModel):
    """Body for opening a session."""

    name: str = Field(min_length=1)
    max_attendance: int = Field(ge=0)


class ValidateFaceRequest(BaseModel):
    """Body carrying a base64-encoded JPEG photo."""

    face: str


class UpdateAttendanceRequest(BaseModel):
    """Body for a manual attendance correction."""

    attendance: int = Field(ge=0)


class AttendanceEntryView(BaseModel):
    """Attendance state of one member."""

    member_name: str
    attendance_count: int
    validated: bool
    last_validated_at: datetime | None = None

    @classmethod
    def from_entry(cls, entry: AttendanceEntry) -> "AttendanceEntryView":
        return cls(
            member_name=entry.member_name,
            attendance_count=entry.attendance_count,
            validated=entry.validated,
            last_validated_at=entry.last_validated_at,
        )


class SessionView(BaseModel):
    """Session payload returned to clients."""

    id: UUID
    group_name: str
    name: str
    created_by: str
    created_at: datetime
    ended_at: datetime | None = None
    max_attendance: int
    attendance: list[AttendanceEntryView]

    @classmethod
    def from_record(cls, session: SessionRecord) -> "SessionView":
        return cls(
            id=session.id,
            group_name=session.group_name,
            name=session.name,
            created_by=session.created_by,
            created_at=session.created_at,
            ended_at=session.ended_at,
            max_attendance=session.max_attendance,
            attendance=[
                AttendanceEntryView.from_entry(entry) for entry in session.attendance
            ],
        )
