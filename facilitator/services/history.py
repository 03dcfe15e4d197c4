import json
import logging
from dataclasses import dataclass

from facilitator.database import DocumentStore, Query
from facilitator.errors import FacilitatorError
from facilitator.models import Response, SessionNote
from facilitator.services.content import (
    ASSISTANT,
    USER,
    MediaBlob,
    Part,
    Turn,
    file_mime_type,
    to_inline_part,
)
from facilitator.services.storage import BlobStore

logger = logging.getLogger(__name__)


@dataclass
class _Event:
    role: str
    timestamp: float
    note: SessionNote | None = None
    response: Response | None = None


class HistoryBuilder:
    """Rebuild a session's conversation from its notes and responses.

    Notes become participant (``user``) turns and committed responses become
    ``assistant`` turns, oldest first.  Consecutive events of the same role
    are folded into one turn.  The newest note is left out: it is the input
    of the turn being generated.
    """

    def __init__(self, store: DocumentStore, blobs: BlobStore) -> None:
        self.store = store
        self.blobs = blobs

    async def build(self, session_id: str) -> list[Turn]:
        notes = [
            SessionNote.from_doc(d)
            for d in await self.store.query(Query("notes", {"session_id": session_id}))
        ]
        responses = [
            Response.from_doc(d)
            for d in await self.store.query(Query("responses", {"session_id": session_id}))
        ]

        if notes:
            latest = max(range(len(notes)), key=lambda i: (notes[i].created_at or 0, i))
            del notes[latest]

        events = [_Event(USER, n.created_at or 0, note=n) for n in notes]
        events += [_Event(ASSISTANT, r.created_at or 0, response=r) for r in responses]
        events.sort(key=lambda e: e.timestamp)  # stable: ties keep notes first

        turns: list[Turn] = []
        for event in events:
            part = await self._event_part(event)
            if part is None:
                continue
            if turns and turns[-1].role == event.role:
                turns[-1].parts.append(part)
            else:
                turns.append(Turn(role=event.role, parts=[part]))
        return turns

    async def _event_part(self, event: _Event) -> Part | None:
        if event.response is not None:
            return json.dumps(
                {"sections": [s.to_doc() for s in event.response.sections]},
                ensure_ascii=False,
            )

        note = event.note
        if note.full_text and note.full_text.strip():
            return note.full_text
        if note.file is None:
            logger.debug("Note %s has neither text nor file; left out of history", note.id)
            return None

        try:
            url = note.file.url or await self.blobs.resolve_url(note.file.storage_path)
            data = await self.blobs.fetch(url)
            return await to_inline_part(MediaBlob(data, file_mime_type(note.file)))
        except (FacilitatorError, ValueError) as exc:
            logger.warning("Skipping note %s in history: %s", note.id, exc)
            return None
