"""Supabase-backed session repository."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from postgrest.exceptions import APIError
from supabase import Client

from attendance_tracker.domain.errors import SessionAlreadyExistsError
from attendance_tracker.domain.sessions import (
    AttendanceEntry,
    AttendanceLedger,
    SessionRecord,
)
from attendance_tracker.services.sessions import SessionRepository

_TABLE = "attendance_sessions"
_COLUMNS = (
    "id, group_name, name, created_by, created_at, ended_at, "
    "max_attendance, attendance_json, version"
)
# Raised by the partial unique index on active (group_name, created_by, name).
_UNIQUE_VIOLATION = "23505"


@dataclass
class SupabaseSessionRepository(SessionRepository):
    """Supabase implementation for attendance sessions."""

    client: Client

    def create_session(  # noqa: PLR0913
        self,
        group_name: str,
        name: str,
        created_by: str,
        max_attendance: int,
        created_at: datetime,
    ) -> SessionRecord:
        """Create a session row and return it."""
        try:
            response = (
                self.client.table(_TABLE)
                .insert(
                    {
                        "group_name": group_name,
                        "name": name,
                        "created_by": created_by,
                        "created_at": created_at.isoformat(),
                        "ended_at": None,
                        "max_attendance": max_attendance,
                        "attendance_json": {},
                        "version": 0,
                    }
                )
                .execute()
            )
        except APIError as exc:
            if exc.code == _UNIQUE_VIOLATION:
                raise SessionAlreadyExistsError() from exc
            raise
        if not response.data:
            raise RuntimeError("Failed to create session")
        return _row_to_session(response.data[0])

    def get_session(self, session_id: UUID) -> SessionRecord | None:
        """Return a session by id, if present."""
        response = (
            self.client.table(_TABLE)
            .select(_COLUMNS)
            .eq("id", str(session_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _row_to_session(response.data[0])

    def find_session(
        self, group_name: str, created_by: str, name: str
    ) -> SessionRecord | None:
        """Return the active session with this name, else the latest ended one."""
        response = (
            self.client.table(_TABLE)
            .select(_COLUMNS)
            .eq("group_name", group_name)
            .eq("created_by", created_by)
            .eq("name", name)
            .execute()
        )
        sessions = [_row_to_session(row) for row in response.data or []]
        return pick_session(sessions)

    def list_sessions(
        self, group_name: str, created_by: str, *, active: bool
    ) -> list[SessionRecord]:
        """Return the group's active or ended sessions, oldest first."""
        query = (
            self.client.table(_TABLE)
            .select(_COLUMNS)
            .eq("group_name", group_name)
            .eq("created_by", created_by)
        )
        query = (
            query.is_("ended_at", "null")
            if active
            else query.not_.is_("ended_at", "null")
        )
        response = query.order("created_at").execute()
        return [_row_to_session(row) for row in response.data or []]

    def replace_session(
        self, session: SessionRecord, expected_version: int
    ) -> SessionRecord | None:
        """Write the session only if the stored version still matches."""
        response = (
            self.client.table(_TABLE)
            .update(
                {
                    "ended_at": (
                        session.ended_at.isoformat() if session.ended_at else None
                    ),
                    "max_attendance": session.max_attendance,
                    "attendance_json": _ledger_to_json(session.attendance),
                    "version": expected_version + 1,
                }
            )
            .eq("id", str(session.id))
            .eq("version", expected_version)
            .execute()
        )
        if not response.data:
            return None
        return _row_to_session(response.data[0])

    def delete_session(self, session_id: UUID, expected_version: int) -> bool:
        """Delete the row only if the stored version still matches."""
        response = (
            self.client.table(_TABLE)
            .delete()
            .eq("id", str(session_id))
            .eq("version", expected_version)
            .execute()
        )
        return bool(response.data)

    def delete_sessions(self, group_name: str, created_by: str, *, active: bool) -> int:
        """Delete every active or ended session of a group."""
        query = (
            self.client.table(_TABLE)
            .delete()
            .eq("group_name", group_name)
            .eq("created_by", created_by)
        )
        query = (
            query.is_("ended_at", "null")
            if active
            else query.not_.is_("ended_at", "null")
        )
        response = query.execute()
        return len(response.data or [])


def pick_session(sessions: list[SessionRecord]) -> SessionRecord | None:
    """Prefer the active session, then the most recently created one."""
    if not sessions:
        return None
    for session in sessions:
        if session.is_active:
            return session
    return max(sessions, key=lambda session: session.created_at)


def _row_to_session(row: dict[str, object]) -> SessionRecord:
    ended_at = row.get("ended_at")
    return SessionRecord(
        id=UUID(str(row["id"])),
        group_name=str(row["group_name"]),
        name=str(row["name"]),
        created_by=str(row["created_by"]),
        created_at=_parse_timestamp(row["created_at"]),
        ended_at=_parse_timestamp(ended_at) if ended_at else None,
        max_attendance=int(row["max_attendance"]),
        attendance=_ledger_from_json(row.get("attendance_json") or {}),
        version=int(row.get("version") or 0),
    )


def _ledger_to_json(ledger: AttendanceLedger) -> dict[str, dict[str, object]]:
    return {
        entry.member_name: {
            "attendance_count": entry.attendance_count,
            "validated": entry.validated,
            "last_validated_at": (
                entry.last_validated_at.isoformat()
                if entry.last_validated_at
                else None
            ),
        }
        for entry in ledger
    }


def _ledger_from_json(raw: object) -> AttendanceLedger:
    entries: dict[str, AttendanceEntry] = {}
    if isinstance(raw, dict):
        for member_name, payload in raw.items():
            if not isinstance(payload, dict):
                continue
            validated_at = payload.get("last_validated_at")
            entries[str(member_name)] = AttendanceEntry(
                member_name=str(member_name),
                attendance_count=int(payload.get("attendance_count", 0)),
                validated=bool(payload.get("validated", False)),
                last_validated_at=(
                    _parse_timestamp(validated_at) if validated_at else None
                ),
            )
    return AttendanceLedger(entries=entries)


def _parse_timestamp(value: object) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))
