"""Explicit wiring of the core components.

Collaborators that talk to the outside world (model, transcriber, blob
HTTP client) can be passed in; anything left out is built from settings.
"""

from facilitator.clients import GroqClient
from facilitator.config import Settings
from facilitator.database import DocumentStore
from facilitator.services.assistant import AssistantService
from facilitator.services.content import MessageRenderer
from facilitator.services.enrichment import NoteEnrichmentReconciler
from facilitator.services.generation import GenerationOrchestrator
from facilitator.services.history import HistoryBuilder
from facilitator.services.notes import NoteService
from facilitator.services.responses import ResponseReconciler
from facilitator.services.sessions import SessionService
from facilitator.services.storage import BlobStore
from facilitator.services.transcription import WhisperService


class Container:
    def __init__(
        self,
        config: Settings,
        *,
        groq: GroqClient | None = None,
        generation_model=None,
        preamble_model=None,
        summary_model=None,
        vision_model=None,
        transcriber=None,
    ) -> None:
        self.config = config
        self.groq = groq or GroqClient(config=config)
        generation_model = generation_model or self.groq.with_model(
            config.generation_model, reasoning=True
        )
        preamble_model = preamble_model or self.groq.with_model(config.fast_model)
        summary_model = summary_model or self.groq.with_model(config.summary_model)
        vision_model = vision_model or self.groq.with_model(config.vision_model)
        self.transcriber = transcriber or WhisperService(config)

        self.store = DocumentStore(config.database_path)
        self.blobs = BlobStore(config.storage_root, config.public_base_url)
        self.renderer = MessageRenderer(self.transcriber, vision_model)
        self.responses = ResponseReconciler(self.store)
        self.history = HistoryBuilder(self.store, self.blobs)
        self.orchestrator = GenerationOrchestrator(
            generation_model,
            self.renderer,
            preamble_model=preamble_model,
            timeout=config.generation_timeout_seconds,
        )
        self.assistant = AssistantService(
            self.store,
            self.responses,
            self.history,
            self.orchestrator,
            self.transcriber,
            summary_model,
            vision_model,
        )
        self.enrichment = NoteEnrichmentReconciler(self.store, self.blobs, self.assistant)
        self.sessions = SessionService(self.store)
        self.notes = NoteService(self.store, self.blobs, self.assistant)

    async def init(self) -> None:
        await self.store.connect()

    async def close(self) -> None:
        await self.enrichment.close()
        await self.assistant.close()
        await self.store.close()
        await self.blobs.close()
        await self.groq.close()
