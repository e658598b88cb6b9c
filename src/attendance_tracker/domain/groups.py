"""Domain models for groups and their members."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

FaceDescriptor = tuple[float, ...]


@dataclass(frozen=True)
class Member:
    """A person registered in a group with a face template."""

    name: str
    face_descriptor: FaceDescriptor


@dataclass(frozen=True)
class Group:
    """An owner-scoped collection of members."""

    id: UUID
    name: str
    owner_id: str
    created_at: datetime
