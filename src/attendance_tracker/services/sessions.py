"""Session lifecycle engine for face-validated attendance."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol
from uuid import UUID

from attendance_tracker.domain.errors import (
    ConcurrencyConflictError,
    GroupNotFoundError,
    MemberNotFoundError,
    SessionAlreadyExistsError,
    SessionHasEndedError,
    SessionIsActiveError,
    SessionNotFoundError,
)
from attendance_tracker.domain.groups import Group
from attendance_tracker.domain.sessions import AttendanceEntry, SessionRecord
from attendance_tracker.services.faces import FaceAdjudicator
from attendance_tracker.services.groups import GroupDirectory, find_member

logger = logging.getLogger(__name__)


class SessionRepository(Protocol):
    """Persistence interface for attendance sessions.

    Writes are conditional on the version the caller read; a write whose
    expected version no longer matches the stored one is rejected.
    """

    def create_session(  # noqa: PLR0913
        self,
        group_name: str,
        name: str,
        created_by: str,
        max_attendance: int,
        created_at: datetime,
    ) -> SessionRecord:
        """Create a new active session and return it."""

    def get_session(self, session_id: UUID) -> SessionRecord | None:
        """Return a session by id, if present."""

    def find_session(
        self, group_name: str, created_by: str, name: str
    ) -> SessionRecord | None:
        """Return the active session with this name, else the latest ended one."""

    def list_sessions(
        self, group_name: str, created_by: str, *, active: bool
    ) -> list[SessionRecord]:
        """Return the group's active or ended sessions."""

    def replace_session(
        self, session: SessionRecord, expected_version: int
    ) -> SessionRecord | None:
        """Store the session if its version is unchanged; return the new record."""

    def delete_session(self, session_id: UUID, expected_version: int) -> bool:
        """Delete the session if its version is unchanged."""

    def delete_sessions(self, group_name: str, created_by: str, *, active: bool) -> int:
        """Delete every active or ended session of a group; return the count."""


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a successful face validation."""

    member_name: str
    attendance_count: int
    already_validated: bool
    similarity: float


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class SessionService:
    """Owns session lifecycle rules and the optimistic write path."""

    session_repository: SessionRepository
    group_directory: GroupDirectory
    face_adjudicator: FaceAdjudicator
    max_write_attempts: int = 5
    clock: Callable[[], datetime] = field(default=_utcnow)

    def start_session(
        self,
        group_name: str,
        created_by: str,
        session_name: str,
        max_attendance: int,
    ) -> SessionRecord:
        """Open a new active session with an empty ledger."""
        if max_attendance < 0:
            raise ValueError("max_attendance must be non-negative")
        self._require_group(group_name, created_by)
        existing = self.session_repository.find_session(
            group_name, created_by, session_name
        )
        if existing is not None and existing.is_active:
            raise SessionAlreadyExistsError()
        session = self.session_repository.create_session(
            group_name=group_name,
            name=session_name,
            created_by=created_by,
            max_attendance=max_attendance,
            created_at=self.clock(),
        )
        logger.info(
            "Session started",
            extra={"session_id": str(session.id), "group_name": group_name},
        )
        return session

    def validate_face(
        self,
        group_name: str,
        session_name: str,
        created_by: str,
        face_image: bytes,
    ) -> ValidationResult:
        """Count a photo as attendance for the member it matches."""
        self.face_adjudicator.ensure_single_face(face_image)
        session = self._require_session(group_name, created_by, session_name)
        if not session.is_active:
            raise SessionHasEndedError()
        group = self._require_group(group_name, created_by)
        members = self.group_directory.list_members(group)
        match = self.face_adjudicator.identify(face_image, members)

        def mark_present(current: SessionRecord) -> SessionRecord:
            if not current.is_active:
                raise SessionHasEndedError()
            ledger = current.attendance.record_validation(
                match.member_name, current.max_attendance, self.clock()
            )
            return current.with_attendance(ledger)

        stored, changed = self._commit(session, mark_present)
        entry = stored.attendance.entries[match.member_name]
        if changed:
            logger.info(
                "Attendance validated",
                extra={"session_id": str(stored.id), "member": match.member_name},
            )
        return ValidationResult(
            member_name=match.member_name,
            attendance_count=entry.attendance_count,
            already_validated=not changed,
            similarity=match.similarity,
        )

    def end_session(
        self, group_name: str, session_name: str, created_by: str
    ) -> SessionRecord:
        """Move an active session to its terminal state."""
        session = self._require_session(group_name, created_by, session_name)

        def close(current: SessionRecord) -> SessionRecord:
            if not current.is_active:
                raise SessionHasEndedError()
            return current.end(self.clock())

        stored, _ = self._commit(session, close)
        logger.info("Session ended", extra={"session_id": str(stored.id)})
        return stored

    def update_member_attendance(  # noqa: PLR0913
        self,
        group_name: str,
        session_name: str,
        created_by: str,
        member_name: str,
        attendance: int,
    ) -> AttendanceEntry:
        """Manually correct a member's count on an ended session."""
        if attendance < 0:
            raise ValueError("attendance must be non-negative")
        session = self._require_session(group_name, created_by, session_name)
        if session.is_active:
            raise SessionIsActiveError()
        group = self._require_group(group_name, created_by)
        if find_member(self.group_directory.list_members(group), member_name) is None:
            raise MemberNotFoundError()

        def correct(current: SessionRecord) -> SessionRecord:
            ledger = current.attendance.set_attendance(
                member_name, attendance, current.max_attendance
            )
            return current.with_attendance(ledger)

        stored, _ = self._commit(session, correct)
        return stored.attendance.entries[member_name]

    def list_active_sessions(
        self, group_name: str, created_by: str
    ) -> list[SessionRecord]:
        return self.session_repository.list_sessions(
            group_name, created_by, active=True
        )

    def list_ended_sessions(
        self, group_name: str, created_by: str
    ) -> list[SessionRecord]:
        return self.session_repository.list_sessions(
            group_name, created_by, active=False
        )

    def get_session_details(
        self, group_name: str, session_name: str, created_by: str
    ) -> SessionRecord:
        """Return a finalized session with its ledger."""
        session = self._require_session(group_name, created_by, session_name)
        if session.is_active:
            raise SessionIsActiveError("Session has not been finalized.")
        return session

    def delete_session(
        self, group_name: str, session_name: str, created_by: str
    ) -> None:
        """Delete one session of the group."""
        current = self._require_session(group_name, created_by, session_name)
        for attempt in range(1, self.max_write_attempts + 1):
            if self.session_repository.delete_session(
                current.id, expected_version=current.version
            ):
                logger.info("Session deleted", extra={"session_id": str(current.id)})
                return
            if attempt < self.max_write_attempts:
                current = self._reload(current, attempt)
        raise self._conflict(current)

    def delete_active_sessions(self, group_name: str, created_by: str) -> int:
        deleted = self.session_repository.delete_sessions(
            group_name, created_by, active=True
        )
        logger.info(
            "Active sessions deleted",
            extra={"group_name": group_name, "count": deleted},
        )
        return deleted

    def delete_ended_sessions(self, group_name: str, created_by: str) -> int:
        deleted = self.session_repository.delete_sessions(
            group_name, created_by, active=False
        )
        logger.info(
            "Ended sessions deleted",
            extra={"group_name": group_name, "count": deleted},
        )
        return deleted

    def _commit(
        self,
        session: SessionRecord,
        mutate: Callable[[SessionRecord], SessionRecord],
    ) -> tuple[SessionRecord, bool]:
        """Apply `mutate` with a conditional write, re-reading on conflicts.

        `mutate` re-checks its preconditions on every attempt and returns the
        same instance when there is nothing to write.
        """
        current = session
        for attempt in range(1, self.max_write_attempts + 1):
            updated = mutate(current)
            if updated is current:
                return current, False
            stored = self.session_repository.replace_session(
                updated, expected_version=current.version
            )
            if stored is not None:
                return stored, True
            if attempt < self.max_write_attempts:
                current = self._reload(current, attempt)
        raise self._conflict(current)

    def _reload(self, session: SessionRecord, attempt: int) -> SessionRecord:
        logger.info(
            "Session write conflict, retrying",
            extra={"session_id": str(session.id), "attempt": attempt},
        )
        refreshed = self.session_repository.get_session(session.id)
        if refreshed is None:
            raise SessionNotFoundError()
        return refreshed

    def _conflict(self, session: SessionRecord) -> ConcurrencyConflictError:
        logger.warning(
            "Giving up on contended session",
            extra={
                "session_id": str(session.id),
                "attempts": self.max_write_attempts,
            },
        )
        return ConcurrencyConflictError()

    def _require_session(
        self, group_name: str, created_by: str, session_name: str
    ) -> SessionRecord:
        session = self.session_repository.find_session(
            group_name, created_by, session_name
        )
        if session is None:
            raise SessionNotFoundError()
        return session

    def _require_group(self, group_name: str, created_by: str) -> Group:
        group = self.group_directory.find_group(group_name, created_by)
        if group is None:
            raise GroupNotFoundError()
        return group
