"""Session persistence: ORM models, repository and background saver."""

from .deps import (  # noqa: F401
    build_session_saver,
    get_session_saver,
    get_session_store,
)
from .models import AssistantSession, Base  # noqa: F401
from .saver import SessionSaver  # noqa: F401
from .sessions import SessionRepository, SessionStore, StoredSession  # noqa: F401
