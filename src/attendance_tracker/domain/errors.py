"""Typed failures raised by the attendance engine."""

from enum import Enum
from typing import ClassVar


class ErrorKind(str, Enum):
    """Failure categories callers branch on."""

    GROUP_NOT_FOUND = "GroupNotFound"
    SESSION_NOT_FOUND = "SessionNotFound"
    MEMBER_NOT_FOUND = "MemberNotFound"
    SESSION_ALREADY_EXISTS = "SessionAlreadyExists"
    SESSION_HAS_ENDED = "SessionHasEnded"
    SESSION_IS_ACTIVE = "SessionIsActive"
    NO_FACES_DETECTED = "NoFacesDetected"
    MULTIPLE_FACES_DETECTED = "MultipleFacesDetected"
    FACE_DOESNT_MATCH = "FaceDoesntMatch"
    MAX_ATTENDANCE_EXCEEDED = "MaxAttendanceExceeded"
    INTERNAL = "Internal"


class AttendanceError(Exception):
    """Base class for every expected engine failure."""

    kind: ClassVar[ErrorKind] = ErrorKind.INTERNAL
    default_message: ClassVar[str] = "Internal error."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class GroupNotFoundError(AttendanceError):
    kind = ErrorKind.GROUP_NOT_FOUND
    default_message = "Group not found."


class SessionNotFoundError(AttendanceError):
    kind = ErrorKind.SESSION_NOT_FOUND
    default_message = "Session not found."


class MemberNotFoundError(AttendanceError):
    kind = ErrorKind.MEMBER_NOT_FOUND
    default_message = "Member not found."


class SessionAlreadyExistsError(AttendanceError):
    kind = ErrorKind.SESSION_ALREADY_EXISTS
    default_message = "An active session with this name already exists."


class SessionHasEndedError(AttendanceError):
    kind = ErrorKind.SESSION_HAS_ENDED
    default_message = "Session has already ended."


class SessionIsActiveError(AttendanceError):
    kind = ErrorKind.SESSION_IS_ACTIVE
    default_message = "Session is still active."


class NoFacesDetectedError(AttendanceError):
    kind = ErrorKind.NO_FACES_DETECTED
    default_message = "No faces were detected in the image."


class MultipleFacesDetectedError(AttendanceError):
    kind = ErrorKind.MULTIPLE_FACES_DETECTED
    default_message = "More than one face was detected in the image."


class FaceDoesntMatchError(AttendanceError):
    kind = ErrorKind.FACE_DOESNT_MATCH
    default_message = "Face does not match any member of the group."


class MaxAttendanceExceededError(AttendanceError):
    kind = ErrorKind.MAX_ATTENDANCE_EXCEEDED
    default_message = "Maximum attendance exceeded."


class ConcurrencyConflictError(AttendanceError):
    """Raised when a session keeps changing underneath a conditional write."""

    kind = ErrorKind.INTERNAL
    default_message = "Session was modified concurrently; giving up."
