"""Dependency container wiring for the application."""

from dataclasses import dataclass

from supabase import create_client

from attendance_tracker.adapters.supabase_group_directory import SupabaseGroupDirectory
from attendance_tracker.adapters.supabase_session_repository import (
    SupabaseSessionRepository,
)
from attendance_tracker.config import Settings
from attendance_tracker.services.faces import FaceAdjudicator, FaceMatcher
from attendance_tracker.services.sessions import SessionService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    session_service: SessionService


def build_container(
    settings: Settings | None = None, face_matcher: FaceMatcher | None = None
) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    if face_matcher is None:
        # Deferred so dlib is only loaded when the real matcher is wired.
        from attendance_tracker.adapters.face_recognition_matcher import (  # noqa: PLC0415
            FaceRecognitionMatcher,
        )

        face_matcher = FaceRecognitionMatcher(
            tolerance=resolved_settings.face_match_tolerance,
            model=resolved_settings.face_detection_model,
        )
    session_service = SessionService(
        session_repository=SupabaseSessionRepository(supabase_client),
        group_directory=SupabaseGroupDirectory(supabase_client),
        face_adjudicator=FaceAdjudicator(face_matcher),
        max_write_attempts=resolved_settings.max_write_attempts,
    )
    return AppContainer(
        settings=resolved_settings,
        session_service=session_service,
    )
