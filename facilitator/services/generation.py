import asyncio
import json
import logging
import re
from dataclasses import dataclass

from facilitator.errors import EmptyModelOutput, MalformedModelOutput, TransportError
from facilitator.models import Response, Section, TemporaryResponse
from facilitator.prompts import THINKING_PREAMBLE_PROMPT
from facilitator.services.content import MessageRenderer, Part, Turn
from facilitator.services.responses import ResponseContext

logger = logging.getLogger(__name__)

SECTION_COUNT = 4

_FENCE_RE = re.compile(r"```(?:json)?[ \t]*\n?|\n?```")
_SECTIONS_ARRAY_RE = re.compile(r'"sections"\s*:\s*\[')
_decoder = json.JSONDecoder()


# ---------------------------------------------------------------------------
# JSON extraction
# ---------------------------------------------------------------------------


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences (with an optional ``json`` tag)."""
    return _FENCE_RE.sub("", text).strip()


def parse_sections(text: str) -> list[Section] | None:
    """Parse a complete ``{"sections": [...]}`` answer, or return ``None``."""
    cleaned = strip_code_fences(text)
    if not cleaned:
        return None
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict) or not isinstance(data.get("sections"), list):
        return None
    return [Section.from_doc(s) for s in data["sections"]]


def parse_partial_sections(text: str) -> list[Section] | None:
    """Parse as many complete section objects as the text holds so far.

    Returns ``None`` until at least one section object is complete.
    """
    complete = parse_sections(text)
    if complete is not None:
        return complete

    cleaned = strip_code_fences(text)
    match = _SECTIONS_ARRAY_RE.search(cleaned)
    if match is None:
        return None

    sections: list[Section] = []
    pos = match.end()
    while True:
        while pos < len(cleaned) and cleaned[pos] in " \t\r\n,":
            pos += 1
        if pos >= len(cleaned) or cleaned[pos] != "{":
            break
        try:
            obj, pos = _decoder.raw_decode(cleaned, pos)
        except json.JSONDecodeError:
            break
        sections.append(Section.from_doc(obj))
    return sections or None


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


@dataclass
class FinalResult:
    sections: list[Section]
    thinking_text: str
    response: Response


class GenerationOrchestrator:
    """Run one streaming generation turn and reconcile it into responses.

    *model* is anything with ``await model.stream_chat(messages)`` returning
    a ``ChatStream``-like object (async iterable of chunks with ``text`` and
    ``thought``, plus ``await final()`` and ``await aclose()``).
    """

    def __init__(
        self,
        model,
        renderer: MessageRenderer,
        *,
        preamble_model=None,
        timeout: float | None = None,
    ) -> None:
        self.model = model
        self.renderer = renderer
        self.preamble_model = preamble_model
        self.timeout = timeout

    async def run(
        self,
        history: list[Turn],
        parts: list[Part],
        context: ResponseContext,
        started: asyncio.Event | None = None,
    ) -> FinalResult:
        """Stream the answer into the preview slot, then commit it.

        *started* is set as soon as the first chunk arrives.
        """
        try:
            if self.timeout:
                text, thought = await asyncio.wait_for(
                    self._stream(history, parts, context, started), self.timeout
                )
            else:
                text, thought = await self._stream(history, parts, context, started)
        except asyncio.TimeoutError as exc:
            raise TransportError(f"Generation timed out after {self.timeout:g}s") from exc

        if not text.strip():
            if thought.strip():
                logger.error("Model returned reasoning but no answer (%d chars)", len(thought))
                raise EmptyModelOutput("Model returned reasoning but no answer")
            logger.error("No response text received from model")
            raise EmptyModelOutput()

        sections = parse_sections(text)
        if sections is None:
            logger.error("Failed to parse model response as JSON: %.500s", text)
            raise MalformedModelOutput(text)
        if len(sections) != SECTION_COUNT:
            logger.warning("Model returned %d sections instead of %d", len(sections), SECTION_COUNT)

        response = await context.commit(sections, thought or None)
        return FinalResult(sections=sections, thinking_text=thought, response=response)

    async def _stream(
        self,
        history: list[Turn],
        parts: list[Part],
        context: ResponseContext,
        started: asyncio.Event | None,
    ) -> tuple[str, str]:
        messages = await self.renderer.to_messages(history, parts)
        stream = await self.model.stream_chat(messages)

        text = ""
        thought = ""
        parsed_once = False
        try:
            async for chunk in stream:
                if started is not None:
                    started.set()
                text += chunk.text
                thought += chunk.thought

                sections = parse_partial_sections(text)
                if sections is not None:
                    parsed_once = True
                    context.set_temporary(
                        TemporaryResponse(sections=sections, thinking_text=thought)
                    )
                elif chunk.thought and not parsed_once:
                    context.set_temporary(TemporaryResponse(thinking_text=thought))

            final = await stream.final()
        except BaseException:
            await stream.aclose()
            raise
        return final.text, final.thought

    async def run_preamble(
        self,
        transcript: str,
        context: ResponseContext,
        started: asyncio.Event,
    ) -> None:
        """Stream a short "here is what I'll do" text into the preview.

        Stops consuming as soon as *started* is set by the main turn.
        Failures are logged and never reach the main turn.
        """
        if self.preamble_model is None or not transcript:
            return
        prompt = THINKING_PREAMBLE_PROMPT.format(transcript=transcript)
        try:
            stream = await self.preamble_model.stream_chat([{"role": "user", "content": prompt}])
            try:
                text = ""
                async for chunk in stream:
                    if started.is_set():
                        break
                    text += chunk.text
                    context.set_temporary(TemporaryResponse(preamble_text=text))
            finally:
                await stream.aclose()
        except Exception:
            logger.warning("Thinking preamble failed", exc_info=True)
