from dataclasses import asdict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from facilitator.container import Container
from facilitator.routes.deps import get_container

router = APIRouter(prefix="/api", tags=["sessions"])


# ------------------------------------------------------------------
# Request bodies
# ------------------------------------------------------------------


class SessionCreate(BaseModel):
    title: str
    scheduled_at: float | None = None
    user_id: str = "anonymous"


class SlideBody(BaseModel):
    id: str
    title: str = ""
    duration: int = 15
    agent_instructions: str = ""
    facilitator_notes: str = ""
    color: str | None = None


class SessionUpdate(BaseModel):
    title: str | None = None
    scheduled_at: float | None = None
    slides: list[SlideBody] | None = None
    template: bool | None = None
    user_id: str = "anonymous"


class SlideCreate(BaseModel):
    title: str | None = None
    user_id: str = "anonymous"


# ------------------------------------------------------------------
# Session endpoints
# ------------------------------------------------------------------


@router.post("/sessions")
async def create_session(body: SessionCreate, container: Container = Depends(get_container)) -> dict:
    session_id, slide_id = await container.sessions.create_session(
        body.title, body.scheduled_at, body.user_id
    )
    return {"session_id": session_id, "first_slide_id": slide_id}


@router.get("/sessions")
async def list_sessions(user_id: str = "anonymous", container: Container = Depends(get_container)) -> list[dict]:
    sessions = await container.sessions.list_user_sessions(user_id)
    return [asdict(s) for s in sessions]


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, container: Container = Depends(get_container)) -> dict:
    return asdict(await container.sessions.get_session(session_id))


@router.patch("/sessions/{session_id}")
async def update_session(
    session_id: str,
    body: SessionUpdate,
    container: Container = Depends(get_container),
) -> dict:
    fields = body.model_dump(exclude_unset=True, exclude={"user_id"})
    await container.sessions.update_session(session_id, fields, body.user_id)
    return asdict(await container.sessions.get_session(session_id))


@router.post("/sessions/{session_id}/slides")
async def add_slide(
    session_id: str,
    body: SlideCreate,
    container: Container = Depends(get_container),
) -> dict:
    slide = await container.sessions.add_slide(session_id, body.title, body.user_id)
    return slide.to_doc()
