"""Face matcher backed by the face_recognition (dlib) library."""

import io
from collections.abc import Mapping
from dataclasses import dataclass

import face_recognition
import numpy as np

from attendance_tracker.domain.groups import FaceDescriptor
from attendance_tracker.services.faces import FaceMatch, FaceMatcher


@dataclass
class FaceRecognitionMatcher(FaceMatcher):
    """Detects faces and compares 128-d encodings by euclidean distance."""

    tolerance: float = 0.6
    model: str = "hog"

    def count_faces(self, image: bytes) -> int:
        """Return the number of face locations found in the image."""
        pixels = _load_image(image)
        return len(face_recognition.face_locations(pixels, model=self.model))

    def extract_descriptor(self, image: bytes) -> FaceDescriptor:
        """Return the encoding of the first face found in the image."""
        pixels = _load_image(image)
        locations = face_recognition.face_locations(pixels, model=self.model)
        encodings = face_recognition.face_encodings(
            pixels, known_face_locations=locations
        )
        if not encodings:
            raise RuntimeError("No face encoding could be computed")
        return tuple(float(value) for value in encodings[0])

    def match_best(
        self, descriptor: FaceDescriptor, templates: Mapping[str, FaceDescriptor]
    ) -> FaceMatch | None:
        """Return the closest template within tolerance."""
        if not templates:
            return None
        names = list(templates)
        known = np.array([templates[name] for name in names], dtype=np.float64)
        distances = face_recognition.face_distance(
            known, np.asarray(descriptor, dtype=np.float64)
        )
        best = int(np.argmin(distances))
        distance = float(distances[best])
        if distance > self.tolerance:
            return None
        return FaceMatch(member_name=names[best], similarity=1.0 - distance)


def _load_image(image: bytes) -> np.ndarray:
    """Decode image bytes into an RGB pixel array."""
    return face_recognition.load_image_file(io.BytesIO(image))
