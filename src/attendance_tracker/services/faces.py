"""Face validation policy on top of a pluggable matcher."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol

from attendance_tracker.domain.errors import (
    FaceDoesntMatchError,
    MultipleFacesDetectedError,
    NoFacesDetectedError,
)
from attendance_tracker.domain.groups import FaceDescriptor, Member


@dataclass(frozen=True)
class FaceMatch:
    """Best candidate returned by a matcher."""

    member_name: str
    similarity: float


class FaceMatcher(Protocol):
    """Interface for face detection and template matching."""

    def count_faces(self, image: bytes) -> int:
        """Return how many faces are detectable in the image."""

    def extract_descriptor(self, image: bytes) -> FaceDescriptor:
        """Return the descriptor of the single face in the image."""

    def match_best(
        self, descriptor: FaceDescriptor, templates: Mapping[str, FaceDescriptor]
    ) -> FaceMatch | None:
        """Return the best template above the matcher threshold, if any."""


@dataclass
class FaceAdjudicator:
    """Decides which group member, if any, a submitted photo belongs to."""

    matcher: FaceMatcher

    def ensure_single_face(self, image: bytes) -> None:
        """Reject images that do not contain exactly one face."""
        faces = self.matcher.count_faces(image)
        if faces == 0:
            raise NoFacesDetectedError()
        if faces > 1:
            raise MultipleFacesDetectedError()

    def identify(self, image: bytes, members: Sequence[Member]) -> FaceMatch:
        """Return the matching member; a non-match is final."""
        templates = {member.name: member.face_descriptor for member in members}
        if not templates:
            raise FaceDoesntMatchError()
        descriptor = self.matcher.extract_descriptor(image)
        match = self.matcher.match_best(descriptor, templates)
        if match is None or match.member_name not in templates:
            raise FaceDoesntMatchError()
        return match
