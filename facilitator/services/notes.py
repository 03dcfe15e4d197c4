import logging
import mimetypes
import uuid
from typing import Awaitable, Callable

from facilitator.database import SERVER_TIMESTAMP, DocumentStore, Query, Subscription
from facilitator.errors import FacilitatorError
from facilitator.models import FileKind, Provenance, Response, SessionFile, SessionNote
from facilitator.services.content import MediaBlob, to_inline_part
from facilitator.services.storage import BlobStore

logger = logging.getLogger(__name__)


def file_extension(mime_type: str) -> str:
    base_type = mime_type.split(";")[0].strip().lower()
    if "webm" in base_type:
        return "webm"
    guessed = mimetypes.guess_extension(base_type)
    if guessed:
        return guessed.lstrip(".")
    return "audio" if base_type.startswith("audio/") else "bin"


class NoteService:
    """Captured inputs: files in the blob store plus their note records."""

    def __init__(self, store: DocumentStore, blobs: BlobStore, assistant) -> None:
        self.store = store
        self.blobs = blobs
        self.assistant = assistant

    # ------------------------------------------------------------------
    # Notes and files
    # ------------------------------------------------------------------
    async def add_session_note(self, note: SessionNote, user_id: str = "anonymous") -> None:
        """Persist a new note.  A resolved file URL is never written."""
        doc = note.to_doc()
        doc.update(
            created_at=SERVER_TIMESTAMP,
            updated_at=SERVER_TIMESTAMP,
            created_by=user_id,
            updated_by=user_id,
        )
        if doc.get("file") and doc["file"].get("created_at") is None:
            doc["file"]["created_at"] = SERVER_TIMESTAMP
        await self.store.set("notes", note.id, doc)

    async def upload_session_file(self, file: SessionFile, data: bytes) -> None:
        await self.blobs.put(file.storage_path, data)

    async def get_file_url(self, storage_path: str) -> str | None:
        try:
            return await self.blobs.resolve_url(storage_path)
        except (FacilitatorError, ValueError) as exc:
            logger.error("Error getting download URL for %s: %s", storage_path, exc)
            return None

    async def list_notes(self, session_id: str) -> list[SessionNote]:
        docs = await self.store.query(Query("notes", {"session_id": session_id}, descending=True))
        return [SessionNote.from_doc(d) for d in docs]

    def subscribe_to_session_notes(
        self,
        session_id: str,
        on_change: Callable[[list[SessionNote]], Awaitable[None] | None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Subscription:
        """Newest-first notes with file URLs resolved on the in-memory copies."""

        async def deliver(docs: list[dict]) -> None:
            notes = [SessionNote.from_doc(d) for d in docs]
            for note in notes:
                if note.file and note.file.storage_path and not note.file.url:
                    note.file.url = await self.get_file_url(note.file.storage_path)
            result = on_change(notes)
            if result is not None:
                await result

        return self.store.subscribe(
            Query("notes", {"session_id": session_id}, descending=True), deliver, on_error
        )

    async def add_file_note(
        self,
        session_id: str,
        blob: MediaBlob,
        user_id: str = "anonymous",
        full_text: str | None = None,
    ) -> SessionNote:
        """Store an uploaded file and create its (not yet enriched) note."""
        part = await to_inline_part(blob)
        file_id = str(uuid.uuid4())
        session_file = SessionFile(
            id=file_id,
            session_id=session_id,
            kind=FileKind.from_mime_type(part.mime_type),
            storage_path=BlobStore.session_path(
                session_id, f"{file_id}.{file_extension(part.mime_type)}"
            ),
            created_by=user_id,
        )
        await self.upload_session_file(session_file, part.raw)

        has_text = bool(full_text and full_text.strip())
        note = SessionNote(
            id=str(uuid.uuid4()),
            session_id=session_id,
            full_text=full_text if has_text else None,
            full_text_model_used=Provenance.DEVICE_LOCAL if has_text else Provenance.NONE,
            file=session_file,
        )
        await self.add_session_note(note, user_id)
        return SessionNote.from_doc(await self.store.get("notes", note.id))

    # ------------------------------------------------------------------
    # Capture flow
    # ------------------------------------------------------------------
    async def record_voice_message(
        self,
        session_id: str,
        slide_id: str,
        audio: MediaBlob,
        transcript: str | None = None,
        user_id: str = "anonymous",
    ) -> Response:
        """Store a recorded voice message as a note, then answer it on the slide.

        *transcript* is the best-effort live transcript from the capturing
        device, if any.
        """
        data = await audio.read()
        blob = MediaBlob(data, audio.mime_type or "audio/webm")
        await self.add_file_note(session_id, blob, user_id, full_text=transcript)
        return await self.assistant.send_voice_message(
            session_id, slide_id, MediaBlob(data, blob.mime_type), transcript, user_id
        )
