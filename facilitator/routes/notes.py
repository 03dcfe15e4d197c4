from fastapi import APIRouter, Depends, File, Form, UploadFile

from facilitator.container import Container
from facilitator.routes.deps import get_container
from facilitator.services.content import MediaBlob

router = APIRouter(prefix="/api", tags=["notes"])


def _blob(upload: UploadFile, default_type: str) -> MediaBlob:
    return MediaBlob(upload, upload.content_type or default_type)


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------


@router.get("/sessions/{session_id}/notes")
async def get_notes(session_id: str, container: Container = Depends(get_container)) -> list[dict]:
    """Newest-first notes of a session, with download URLs for their files."""
    notes = await container.notes.list_notes(session_id)
    result = []
    for note in notes:
        doc = note.to_doc()
        if note.file is not None:
            doc["file"]["url"] = await container.notes.get_file_url(note.file.storage_path)
        result.append(doc)
    return result


@router.post("/sessions/{session_id}/notes")
async def upload_note(
    session_id: str,
    file: UploadFile = File(...),
    text: str | None = Form(None),
    user_id: str = Form("anonymous"),
    container: Container = Depends(get_container),
) -> dict:
    """Store a document, image or audio file as a note and enrich it in the background."""
    container.enrichment.watch(session_id)
    note = await container.notes.add_file_note(
        session_id, _blob(file, "application/octet-stream"), user_id, full_text=text
    )
    return note.to_doc()


@router.post("/sessions/{session_id}/notes/enrich")
async def enrich_notes(session_id: str, container: Container = Depends(get_container)) -> dict:
    """Run one enrichment pass over the session's notes right away."""
    notes = await container.notes.list_notes(session_id)
    written = await container.enrichment.reconcile(notes)
    return {"session_id": session_id, "written": written}


@router.post("/sessions/{session_id}/slides/{slide_id}/voice")
async def send_voice_message(
    session_id: str,
    slide_id: str,
    audio: UploadFile = File(...),
    transcript: str | None = Form(None),
    user_id: str = Form("anonymous"),
    container: Container = Depends(get_container),
) -> dict:
    """Store a voice message and answer it on the slide.

    Progress is visible on the slide's responses WebSocket while this runs.
    """
    container.enrichment.watch(session_id)
    response = await container.notes.record_voice_message(
        session_id, slide_id, _blob(audio, "audio/webm"), transcript, user_id
    )
    return response.to_doc()


@router.post("/transcribe")
async def transcribe(audio: UploadFile = File(...), container: Container = Depends(get_container)) -> dict:
    text = await container.assistant.transcribe_audio(_blob(audio, "audio/webm"))
    return {"text": text}
