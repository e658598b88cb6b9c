"""Shared test fixtures."""

import math
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest

from attendance_tracker.config import Settings
from attendance_tracker.containers import AppContainer
from attendance_tracker.domain.errors import SessionAlreadyExistsError
from attendance_tracker.domain.groups import FaceDescriptor, Group, Member
from attendance_tracker.domain.sessions import SessionRecord
from attendance_tracker.services.faces import FaceAdjudicator, FaceMatch, FaceMatcher
from attendance_tracker.services.groups import GroupDirectory
from attendance_tracker.services.sessions import SessionRepository, SessionService

OWNER_ID = "owner-1"
GROUP_NAME = "turma-a"

ALICE_DESCRIPTOR: FaceDescriptor = (1.0, 0.0, 0.0)
BOB_DESCRIPTOR: FaceDescriptor = (0.0, 1.0, 0.0)
STRANGER_DESCRIPTOR: FaceDescriptor = (0.0, 0.0, 1.0)

ALICE_PHOTO = b"\xff\xd8\xff-alice"
BOB_PHOTO = b"\xff\xd8\xff-bob"
STRANGER_PHOTO = b"\xff\xd8\xff-stranger"
EMPTY_PHOTO = b"\xff\xd8\xff-empty"
CROWD_PHOTO = b"\xff\xd8\xff-crowd"


@dataclass
class FakeFaceMatcher(FaceMatcher):
    """Face matcher keyed by the raw photo bytes."""

    descriptors: dict[bytes, FaceDescriptor] = field(
        default_factory=lambda: {
            ALICE_PHOTO: ALICE_DESCRIPTOR,
            BOB_PHOTO: BOB_DESCRIPTOR,
            STRANGER_PHOTO: STRANGER_DESCRIPTOR,
        }
    )
    face_counts: dict[bytes, int] = field(
        default_factory=lambda: {EMPTY_PHOTO: 0, CROWD_PHOTO: 3}
    )
    tolerance: float = 0.5
    match_calls: int = 0

    def count_faces(self, image: bytes) -> int:
        return self.face_counts.get(image, 1)

    def extract_descriptor(self, image: bytes) -> FaceDescriptor:
        return self.descriptors[image]

    def match_best(
        self, descriptor: FaceDescriptor, templates: Mapping[str, FaceDescriptor]
    ) -> FaceMatch | None:
        self.match_calls += 1
        best: FaceMatch | None = None
        for name, template in templates.items():
            distance = math.dist(descriptor, template)
            if distance <= self.tolerance and (
                best is None or 1.0 - distance > best.similarity
            ):
                best = FaceMatch(member_name=name, similarity=1.0 - distance)
        return best


@dataclass
class InMemoryGroupDirectory(GroupDirectory):
    """In-memory group directory for tests."""

    groups: dict[tuple[str, str], Group] = field(default_factory=dict)
    members: dict[UUID, list[Member]] = field(default_factory=dict)

    def add_group(self, name: str, owner_id: str, members: list[Member]) -> Group:
        group = Group(
            id=uuid4(),
            name=name,
            owner_id=owner_id,
            created_at=datetime(2026, 1, 1, tzinfo=UTC),
        )
        self.groups[(name, owner_id)] = group
        self.members[group.id] = list(members)
        return group

    def find_group(self, name: str, owner_id: str) -> Group | None:
        return self.groups.get((name, owner_id))

    def list_members(self, group: Group) -> list[Member]:
        return list(self.members.get(group.id, []))


@dataclass
class InMemorySessionRepository(SessionRepository):
    """In-memory session repository with version-checked writes.

    `before_write` runs once, outside the lock, right before the next
    conditional write; tests use it to let a competing operation commit
    in between a read and a write.
    """

    sessions: dict[UUID, SessionRecord] = field(default_factory=dict)
    before_write: Callable[[], None] | None = None
    get_calls: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def create_session(  # noqa: PLR0913
        self,
        group_name: str,
        name: str,
        created_by: str,
        max_attendance: int,
        created_at: datetime,
    ) -> SessionRecord:
        with self._lock:
            for existing in self.sessions.values():
                if (
                    existing.is_active
                    and existing.group_name == group_name
                    and existing.created_by == created_by
                    and existing.name == name
                ):
                    raise SessionAlreadyExistsError()
            session = SessionRecord(
                id=uuid4(),
                group_name=group_name,
                name=name,
                created_by=created_by,
                created_at=created_at,
                max_attendance=max_attendance,
            )
            self.sessions[session.id] = session
            return session

    def get_session(self, session_id: UUID) -> SessionRecord | None:
        with self._lock:
            self.get_calls += 1
            return self.sessions.get(session_id)

    def find_session(
        self, group_name: str, created_by: str, name: str
    ) -> SessionRecord | None:
        with self._lock:
            matches = [
                session
                for session in self.sessions.values()
                if session.group_name == group_name
                and session.created_by == created_by
                and session.name == name
            ]
        for session in matches:
            if session.is_active:
                return session
        if not matches:
            return None
        return max(matches, key=lambda session: session.created_at)

    def list_sessions(
        self, group_name: str, created_by: str, *, active: bool
    ) -> list[SessionRecord]:
        with self._lock:
            return [
                session
                for session in self.sessions.values()
                if session.group_name == group_name
                and session.created_by == created_by
                and session.is_active is active
            ]

    def replace_session(
        self, session: SessionRecord, expected_version: int
    ) -> SessionRecord | None:
        self._run_before_write()
        with self._lock:
            stored = self.sessions.get(session.id)
            if stored is None or stored.version != expected_version:
                return None
            updated = replace(session, version=expected_version + 1)
            self.sessions[session.id] = updated
            return updated

    def delete_session(self, session_id: UUID, expected_version: int) -> bool:
        self._run_before_write()
        with self._lock:
            stored = self.sessions.get(session_id)
            if stored is None or stored.version != expected_version:
                return False
            del self.sessions[session_id]
            return True

    def delete_sessions(self, group_name: str, created_by: str, *, active: bool) -> int:
        with self._lock:
            doomed = [
                session.id
                for session in self.sessions.values()
                if session.group_name == group_name
                and session.created_by == created_by
                and session.is_active is active
            ]
            for session_id in doomed:
                del self.sessions[session_id]
            return len(doomed)

    def _run_before_write(self) -> None:
        hook, self.before_write = self.before_write, None
        if hook is not None:
            hook()


@dataclass
class TickingClock:
    """Deterministic clock advancing one minute per call."""

    current: datetime = datetime(2026, 3, 2, 8, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.current += timedelta(minutes=1)
        return self.current


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key=(
            "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9."
            "eyJyb2xlIjoic2VydmljZV9yb2xlIn0."
            "c2lnbmF0dXJl"
        ),
    )


@pytest.fixture
def group_directory() -> InMemoryGroupDirectory:
    directory = InMemoryGroupDirectory()
    directory.add_group(
        GROUP_NAME,
        OWNER_ID,
        [Member("Alice", ALICE_DESCRIPTOR), Member("Bob", BOB_DESCRIPTOR)],
    )
    return directory


@pytest.fixture
def face_matcher() -> FakeFaceMatcher:
    return FakeFaceMatcher()


@pytest.fixture
def session_repository() -> InMemorySessionRepository:
    return InMemorySessionRepository()


@pytest.fixture
def session_service(
    session_repository: InMemorySessionRepository,
    group_directory: InMemoryGroupDirectory,
    face_matcher: FakeFaceMatcher,
) -> SessionService:
    return SessionService(
        session_repository=session_repository,
        group_directory=group_directory,
        face_adjudicator=FaceAdjudicator(face_matcher),
        clock=TickingClock(),
    )


@pytest.fixture
def container(settings: Settings, session_service: SessionService) -> AppContainer:
    return AppContainer(settings=settings, session_service=session_service)
