"""FastAPI application factory."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import TYPE_CHECKING, Literal

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from attendance_tracker.api.models import (
    AttendanceEntryView,
    SessionView,
    StartSessionRequest,
    UpdateAttendanceRequest,
    ValidateFaceRequest,
)
from attendance_tracker.app_logging import configure_logging
from attendance_tracker.domain.errors import AttendanceError, ErrorKind
from attendance_tracker.domain.sessions import SessionRecord
from attendance_tracker.services.sessions import SessionService

if TYPE_CHECKING:
    from attendance_tracker.containers import AppContainer

_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.GROUP_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.SESSION_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.MEMBER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.SESSION_ALREADY_EXISTS: status.HTTP_409_CONFLICT,
    ErrorKind.SESSION_HAS_ENDED: status.HTTP_409_CONFLICT,
    ErrorKind.SESSION_IS_ACTIVE: status.HTTP_409_CONFLICT,
    ErrorKind.NO_FACES_DETECTED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.MULTIPLE_FACES_DETECTED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.FACE_DOESNT_MATCH: 422,
    ErrorKind.MAX_ATTENDANCE_EXCEEDED: 422,
}

_INTERNAL_ERROR_BODY = {"error": "Internal server error."}
_JPEG_SIGNATURE = b"\xff\xd8\xff"


def get_session_service(request: Request) -> SessionService:
    container: AppContainer = request.app.state.container
    return container.session_service


def require_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Return the caller id forwarded by the authenticating gateway."""
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    return x_user_id


def create_app(container: AppContainer) -> FastAPI:  # noqa: PLR0915
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    app = FastAPI()
    app.state.container = container

    @app.exception_handler(AttendanceError)
    async def attendance_error_handler(
        request: Request, exc: AttendanceError
    ) -> JSONResponse:
        status_code = _STATUS_BY_KIND.get(exc.kind)
        if status_code is None:
            logger.error(
                "Internal attendance failure",
                extra={"path": request.url.path, "error": exc.message},
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=_INTERNAL_ERROR_BODY,
            )
        return JSONResponse(
            status_code=status_code,
            content={"error": exc.message, "kind": exc.kind.value},
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.exception("Unhandled error", extra={"path": request.url.path})
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_INTERNAL_ERROR_BODY,
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/groups/{group_name}/sessions", status_code=status.HTTP_201_CREATED)
    def start_session(
        group_name: str,
        body: StartSessionRequest,
        user_id: str = Depends(require_user_id),
        service: SessionService = Depends(get_session_service),
    ) -> dict[str, object]:
        """Open a new attendance session for a group."""
        session = service.start_session(
            group_name, user_id, body.name, body.max_attendance
        )
        return {
            "message": "Session started.",
            "session": SessionView.from_record(session).model_dump(mode="json"),
        }

    @app.get("/groups/{group_name}/sessions/active")
    def list_active_sessions(
        group_name: str,
        user_id: str = Depends(require_user_id),
        service: SessionService = Depends(get_session_service),
    ) -> dict[str, object]:
        """List sessions still collecting attendance."""
        return _sessions_payload(service.list_active_sessions(group_name, user_id))

    @app.get("/groups/{group_name}/sessions/ended")
    def list_ended_sessions(
        group_name: str,
        user_id: str = Depends(require_user_id),
        service: SessionService = Depends(get_session_service),
    ) -> dict[str, object]:
        """List finalized sessions."""
        return _sessions_payload(service.list_ended_sessions(group_name, user_id))

    @app.delete("/groups/{group_name}/sessions")
    def delete_sessions(
        group_name: str,
        state: Literal["active", "ended"] = Query(),
        user_id: str = Depends(require_user_id),
        service: SessionService = Depends(get_session_service),
    ) -> dict[str, object]:
        """Delete every active or every ended session of a group.

        Sessions named `active` or `ended` are deleted by the single route.
        """
        if state == "active":
            deleted = service.delete_active_sessions(group_name, user_id)
            return {"message": "Active sessions deleted.", "deleted": deleted}
        deleted = service.delete_ended_sessions(group_name, user_id)
        return {"message": "Ended sessions deleted.", "deleted": deleted}

    @app.put("/groups/{group_name}/sessions/{session_name}")
    def validate_face(
        group_name: str,
        session_name: str,
        body: ValidateFaceRequest,
        user_id: str = Depends(require_user_id),
        service: SessionService = Depends(get_session_service),
    ) -> dict[str, object]:
        """Count a submitted photo as attendance."""
        image = _decode_jpeg(body.face)
        if image is None:
            raise HTTPException(
                status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
                detail="Face must be a base64-encoded .jpg image.",
            )
        result = service.validate_face(group_name, session_name, user_id, image)
        return {
            "message": "Face validated.",
            "member_name": result.member_name,
            "attendance_count": result.attendance_count,
            "already_validated": result.already_validated,
        }

    @app.post("/groups/{group_name}/sessions/{session_name}/end")
    def end_session(
        group_name: str,
        session_name: str,
        user_id: str = Depends(require_user_id),
        service: SessionService = Depends(get_session_service),
    ) -> dict[str, object]:
        """Finalize an active session.

        Ending a session twice answers 409 `SessionHasEnded`, the same status
        validation uses for an ended session.
        """
        service.end_session(group_name, session_name, user_id)
        return {"message": "Session ended."}

    @app.get("/groups/{group_name}/sessions/{session_name}/details")
    def session_details(
        group_name: str,
        session_name: str,
        user_id: str = Depends(require_user_id),
        service: SessionService = Depends(get_session_service),
    ) -> dict[str, object]:
        """Return the final attendance report of an ended session."""
        session = service.get_session_details(group_name, session_name, user_id)
        return SessionView.from_record(session).model_dump(mode="json")

    @app.patch(
        "/groups/{group_name}/sessions/{session_name}/details/{member_name}/attendance"
    )
    def update_member_attendance(  # noqa: PLR0913
        group_name: str,
        session_name: str,
        member_name: str,
        body: UpdateAttendanceRequest,
        user_id: str = Depends(require_user_id),
        service: SessionService = Depends(get_session_service),
    ) -> dict[str, object]:
        entry = service.update_member_attendance(
            group_name, session_name, user_id, member_name, body.attendance
        )
        return {
            "message": "Member updated.",
            "entry": AttendanceEntryView.from_entry(entry).model_dump(mode="json"),
        }

    @app.delete("/groups/{group_name}/sessions/{session_name}")
    def delete_session(
        group_name: str,
        session_name: str,
        user_id: str = Depends(require_user_id),
        service: SessionService = Depends(get_session_service),
    ) -> dict[str, object]:
        """Delete one session, whatever its name."""
        service.delete_session(group_name, session_name, user_id)
        return {"message": "Session deleted."}

    return app


def _sessions_payload(sessions: list[SessionRecord]) -> dict[str, object]:
    """Build a listing payload, answering 404 when nothing matches."""
    if not sessions:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="No sessions were found."
        )
    return {
        "sessions": [
            SessionView.from_record(session).model_dump(mode="json")
            for session in sessions
        ]
    }


def _decode_jpeg(payload: str) -> bytes | None:
    """Decode a base64 (optionally data-URL) JPEG, or return None."""
    _, _, encoded = payload.rpartition("base64,")
    try:
        image = base64.b64decode(encoded.strip(), validate=True)
    except (binascii.Error, ValueError):
        return None
    if not image.startswith(_JPEG_SIGNATURE):
        return None
    return image
