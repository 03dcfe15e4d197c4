import asyncio
import logging
from dataclasses import dataclass

from facilitator.database import DocumentStore
from facilitator.errors import DocumentNotFound, FacilitatorError, MediaReadError
from facilitator.models import Response, Session, Slide, TemporaryResponse
from facilitator.prompts import (
    CONTENT_INSTRUCTIONS_HEADER,
    DEFAULT_CONTENT_INSTRUCTIONS,
    EXTRACT_TEXT_PROMPT,
    GENERATE_SUMMARY_PROMPT,
    SYSTEM_INSTRUCTIONS,
)
from facilitator.services.content import InlinePart, MediaBlob, Part, to_inline_part
from facilitator.services.extraction import DocumentExtractor
from facilitator.services.generation import GenerationOrchestrator
from facilitator.services.history import HistoryBuilder
from facilitator.services.responses import ResponseContext, ResponseReconciler

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Groq strict mode requires additionalProperties: false
# everywhere and all properties in "required".
# ---------------------------------------------------------------------------

SUMMARY_SCHEMA = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "summary": {"type": "string"},
        "emoji": {"type": "string"},
    },
    "required": ["title", "summary", "emoji"],
    "additionalProperties": False,
}


@dataclass
class NoteSummary:
    title: str
    summary: str
    emoji: str


def build_turn_parts(slide: Slide | None, media: InlinePart) -> list[Part]:
    """Content instructions, the fixed formatting instructions, then the media."""
    instructions = DEFAULT_CONTENT_INSTRUCTIONS
    if slide is not None and slide.agent_instructions.strip():
        instructions = slide.agent_instructions
    return [f"{CONTENT_INSTRUCTIONS_HEADER}\n{instructions}", SYSTEM_INSTRUCTIONS, media]


class AssistantService:
    """Model-backed operations: voice turns, transcription, extraction, summaries."""

    def __init__(
        self,
        store: DocumentStore,
        reconciler: ResponseReconciler,
        history: HistoryBuilder,
        orchestrator: GenerationOrchestrator,
        transcriber,
        summarizer,
        vision=None,
    ) -> None:
        self.store = store
        self.reconciler = reconciler
        self.history = history
        self.orchestrator = orchestrator
        self.transcriber = transcriber
        self.summarizer = summarizer
        self.vision = vision
        self._background: set[asyncio.Task] = set()

    async def send_voice_message(
        self,
        session_id: str,
        slide_id: str,
        audio: MediaBlob,
        transcript_hint: str | None = None,
        user_id: str = "anonymous",
    ) -> Response:
        """Answer a voice message on a slide and store the answer.

        The preview slot for the slide holds an empty temporary response from
        the start, fills with sections while the answer streams in, and is
        cleared once the answer is committed or the turn fails.
        """
        context = ResponseContext(self.reconciler, session_id, slide_id, user_id)
        context.set_temporary(TemporaryResponse())
        started = asyncio.Event()

        if transcript_hint:
            task = asyncio.create_task(
                self.orchestrator.run_preamble(transcript_hint, context, started)
            )
            self._background.add(task)
            task.add_done_callback(self._background.discard)

        try:
            session_doc = await self.store.get("sessions", session_id)
            if session_doc is None:
                raise DocumentNotFound("sessions", session_id)
            slide = Session.from_doc(session_doc).find_slide(slide_id)

            parts = build_turn_parts(slide, await to_inline_part(audio))
            history = await self.history.build(session_id)
            result = await self.orchestrator.run(history, parts, context, started)
        except FacilitatorError as exc:
            context.clear_temporary()
            logger.error(
                "Error sending voice message for %s/%s: %s", session_id, slide_id, exc.description
            )
            raise
        finally:
            started.set()
        return result.response

    async def transcribe_audio(self, audio: MediaBlob) -> str:
        part = await to_inline_part(audio)
        return await self.transcriber.transcribe(part.raw)

    async def extract_text(self, blob: MediaBlob) -> str:
        """Return the verbatim text of a document or image."""
        part = await to_inline_part(blob)
        if part.mime_type.startswith("image/"):
            if self.vision is None:
                raise MediaReadError("No vision model configured for image input")
            return await self.vision.read_image(part.data, part.mime_type, EXTRACT_TEXT_PROMPT)
        return await DocumentExtractor.extract_async(part.raw, part.mime_type)

    async def generate_summary(self, text: str) -> NoteSummary:
        messages = [
            {"role": "system", "content": GENERATE_SUMMARY_PROMPT},
            {"role": "user", "content": text},
        ]
        result = await self.summarizer.chat_json(
            messages, SUMMARY_SCHEMA, schema_name="note_summary"
        )
        return NoteSummary(
            title=result.get("title", "").strip(),
            summary=result.get("summary", "").strip(),
            emoji=result.get("emoji", "").strip(),
        )

    async def close(self) -> None:
        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*self._background, return_exceptions=True)
