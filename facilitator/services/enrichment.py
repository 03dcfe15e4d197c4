import asyncio
import logging

from facilitator.database import SERVER_TIMESTAMP, DocumentStore, Query, Subscription
from facilitator.errors import EnrichmentStepError
from facilitator.models import FileKind, Provenance, SessionFile, SessionNote
from facilitator.services.content import MediaBlob, file_mime_type
from facilitator.services.storage import BlobStore

logger = logging.getLogger(__name__)


class NoteEnrichmentReconciler:
    """Fill in the derived fields of stored notes.

    For every note it derives a model transcript from the attached file when
    there is none yet, then a title, summary and emoji from the text.  Staged
    fields are written back in one sparse update.  A fully enriched note is
    left untouched, so passes can be repeated (and overlap) freely.
    """

    def __init__(
        self,
        store: DocumentStore,
        blobs: BlobStore,
        assistant,
        user_id: str = "enrichment",
    ) -> None:
        self.store = store
        self.blobs = blobs
        self.assistant = assistant
        self.user_id = user_id
        self._tasks: set[asyncio.Task] = set()
        self._watches: dict[str, Subscription] = {}

    @staticmethod
    def needs_transcript(note: SessionNote) -> bool:
        return note.file is not None and note.full_text_model_used is not Provenance.MODEL_DERIVED

    @staticmethod
    def needs_summary(note: SessionNote) -> bool:
        derived = (
            note.title_model_used is Provenance.MODEL_DERIVED
            and note.summary_model_used is Provenance.MODEL_DERIVED
        )
        return not derived and (not note.title or not note.summary)

    @classmethod
    def needs_enrichment(cls, note: SessionNote) -> bool:
        has_text = bool(note.full_text and note.full_text.strip())
        return cls.needs_transcript(note) or (has_text and cls.needs_summary(note))

    async def reconcile(self, notes: list[SessionNote]) -> int:
        """Enrich every note that is missing derived fields.

        Returns the number of notes written.  A failing note is logged and
        skipped; it never stops the rest of the pass.
        """
        written = 0
        for note in notes:
            if not self.needs_enrichment(note):
                continue
            try:
                if await self.enrich(note):
                    written += 1
            except EnrichmentStepError as exc:
                logger.warning("%s", exc.description, exc_info=exc.__cause__)
        return written

    async def enrich(self, note: SessionNote) -> bool:
        staged: dict = {}
        text = note.full_text

        if self.needs_transcript(note):
            try:
                text = await self._file_text(note.file)
            except Exception as exc:
                raise EnrichmentStepError(note.id, "transcript", exc) from exc
            staged["full_text"] = text
            staged["full_text_model_used"] = Provenance.MODEL_DERIVED.value

        if text and text.strip() and self.needs_summary(note):
            try:
                summary = await self.assistant.generate_summary(text)
            except Exception as exc:
                raise EnrichmentStepError(note.id, "summary", exc) from exc
            if not summary.title or not summary.summary:
                raise EnrichmentStepError(
                    note.id, "summary", ValueError("model returned an empty title or summary")
                )
            staged.update(
                title=summary.title,
                title_model_used=Provenance.MODEL_DERIVED.value,
                summary=summary.summary,
                summary_model_used=Provenance.MODEL_DERIVED.value,
                emoji=summary.emoji,
            )

        if not staged:
            return False

        staged["updated_at"] = SERVER_TIMESTAMP
        staged["updated_by"] = self.user_id
        try:
            await self.store.update("notes", note.id, staged)
        except Exception as exc:
            raise EnrichmentStepError(note.id, "write", exc) from exc
        logger.info("Enriched note %s (%s)", note.id, ", ".join(sorted(staged)))
        return True

    async def _file_text(self, file: SessionFile) -> str:
        url = file.url or await self.blobs.resolve_url(file.storage_path)
        blob = MediaBlob(await self.blobs.fetch(url), file_mime_type(file))
        if file.kind is FileKind.AUDIO:
            return await self.assistant.transcribe_audio(blob)
        return await self.assistant.extract_text(blob)

    # ------------------------------------------------------------------
    # Live watching
    # ------------------------------------------------------------------
    def watch(self, session_id: str) -> Subscription:
        """Run a pass over the session's notes on every change to them."""
        existing = self._watches.get(session_id)
        if existing is not None and not existing.cancelled:
            return existing

        def on_change(docs: list[dict]) -> None:
            notes = [SessionNote.from_doc(d) for d in docs]
            task = asyncio.ensure_future(self.reconcile(notes))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        def on_error(exc: Exception) -> None:
            logger.error("Note feed for session %s failed: %s", session_id, exc)

        sub = self.store.subscribe(
            Query("notes", {"session_id": session_id}, descending=True), on_change, on_error
        )
        self._watches[session_id] = sub
        return sub

    def unwatch(self, session_id: str) -> None:
        sub = self._watches.pop(session_id, None)
        if sub is not None:
            sub.cancel()

    async def wait_idle(self) -> None:
        """Wait for all scheduled passes, including ones they trigger."""
        while True:
            await self.store.wait_idle()
            if not self._tasks:
                return
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        for session_id in list(self._watches):
            self.unwatch(session_id)
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
