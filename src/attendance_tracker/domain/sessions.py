"""Domain models for attendance sessions and their ledger."""

from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from datetime import datetime
from uuid import UUID

from attendance_tracker.domain.errors import MaxAttendanceExceededError


@dataclass(frozen=True)
class AttendanceEntry:
    """Attendance state of one member within a session."""

    member_name: str
    attendance_count: int = 0
    validated: bool = False
    last_validated_at: datetime | None = None


@dataclass(frozen=True)
class AttendanceLedger:
    """Per-session mapping from member name to attendance state.

    The ledger is immutable: every mutation returns a new ledger, so the
    engine can compute a target state and commit it in one conditional write.
    A mutation that changes nothing returns the same instance.
    """

    entries: dict[str, AttendanceEntry] = field(default_factory=dict)

    def get(self, member_name: str) -> AttendanceEntry | None:
        """Return the entry for a member, if present."""
        return self.entries.get(member_name)

    def __iter__(self) -> Iterator[AttendanceEntry]:
        return iter(self.entries.values())

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, member_name: object) -> bool:
        return member_name in self.entries

    def record_validation(
        self, member_name: str, max_attendance: int, validated_at: datetime
    ) -> "AttendanceLedger":
        """Apply one automatic face validation for a member.

        Creates the entry when absent and is a no-op when the member was
        already validated. Raises MaxAttendanceExceededError when the
        increment would push the count above the cap.
        """
        current = self.entries.get(member_name)
        if current is not None and current.validated:
            return self
        count = (current.attendance_count if current else 0) + 1
        if count > max_attendance:
            raise MaxAttendanceExceededError()
        return self._with_entry(
            AttendanceEntry(
                member_name=member_name,
                attendance_count=count,
                validated=True,
                last_validated_at=validated_at,
            )
        )

    def set_attendance(
        self, member_name: str, attendance: int, max_attendance: int
    ) -> "AttendanceLedger":
        """Overwrite a member's count, keeping the validation history."""
        if attendance < 0:
            raise ValueError("attendance must be non-negative")
        if attendance > max_attendance:
            raise MaxAttendanceExceededError()
        current = self.entries.get(member_name) or AttendanceEntry(member_name)
        if current.attendance_count == attendance and member_name in self.entries:
            return self
        return self._with_entry(replace(current, attendance_count=attendance))

    def _with_entry(self, entry: AttendanceEntry) -> "AttendanceLedger":
        entries = dict(self.entries)
        entries[entry.member_name] = entry
        return AttendanceLedger(entries=entries)


@dataclass(frozen=True)
class SessionRecord:
    """Represents a persisted attendance session.

    `version` is bumped by the store on every committed write and is the
    token conditional writes are checked against.
    """

    id: UUID
    group_name: str
    name: str
    created_by: str
    created_at: datetime
    max_attendance: int
    ended_at: datetime | None = None
    attendance: AttendanceLedger = field(default_factory=AttendanceLedger)
    version: int = 0

    @property
    def is_active(self) -> bool:
        return self.ended_at is None

    def end(self, ended_at: datetime) -> "SessionRecord":
        """Return the terminal copy of this session."""
        return replace(self, ended_at=ended_at)

    def with_attendance(self, attendance: AttendanceLedger) -> "SessionRecord":
        return replace(self, attendance=attendance)
