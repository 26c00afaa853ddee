"""Session endpoints: resume and save one conversation per dashboard."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from .deps import AssistantConfigDep, SessionStoreDep
from .models import SessionEnvelope, SessionUpsertRequest

router = APIRouter(prefix="/api/metis", tags=["sessions"])


@router.get("/sessions")
async def get_session(
    store: SessionStoreDep,
    assistant: AssistantConfigDep,
    dashboard: str | None = None,
) -> SessionEnvelope:
    """Most recently updated session of the dashboard, or ``null``."""
    stored = await store.resume(dashboard or assistant.default_dashboard)
    if stored is None:
        return SessionEnvelope(session=None)
    return SessionEnvelope(session=stored.model_dump(mode="json"))


@router.post("/sessions", response_model=None)
async def save_session(
    body: SessionUpsertRequest,
    store: SessionStoreDep,
    assistant: AssistantConfigDep,
) -> dict[str, bool] | JSONResponse:
    """Create or replace a session's message list."""
    if not body.id or body.messages is None:
        return JSONResponse(
            status_code=400, content={"error": "Missing id or messages"}
        )
    await store.upsert(
        body.id, body.dashboard or assistant.default_dashboard, body.messages
    )
    return {"ok": True}
