"""Content parts and their conversion for the model collaborator.

A *part* is either a plain ``str`` or an ``InlinePart`` holding base64
media.  Groq chat models only read text, so ``MessageRenderer`` turns every
inline part into text (transcript, extracted text or image reading) right
before a request is built.
"""

import base64
import binascii
import hashlib
import inspect
import logging
import mimetypes
from dataclasses import dataclass, field
from typing import Any, Union

from facilitator.errors import FacilitatorError, MediaReadError
from facilitator.models import FileKind, SessionFile
from facilitator.prompts import EXTRACT_TEXT_PROMPT
from facilitator.services.extraction import DocumentExtractor

logger = logging.getLogger(__name__)

USER = "user"
ASSISTANT = "assistant"


@dataclass
class MediaBlob:
    """Binary media plus its MIME type.

    ``data`` is either the bytes themselves or a file-like object whose
    ``read()`` (sync or async) returns them.
    """

    data: Any
    mime_type: str = "application/octet-stream"

    async def read(self) -> Any:
        reader = getattr(self.data, "read", None)
        if reader is None:
            return self.data
        result = reader()
        if inspect.isawaitable(result):
            result = await result
        return result


@dataclass
class InlinePart:
    data: str  # base64
    mime_type: str

    @property
    def raw(self) -> bytes:
        return base64.b64decode(self.data)

    @property
    def digest(self) -> str:
        return hashlib.sha1(self.data.encode("ascii")).hexdigest()


Part = Union[str, InlinePart]


@dataclass
class Turn:
    role: str
    parts: list[Part] = field(default_factory=list)


def file_mime_type(file: SessionFile) -> str:
    """Best MIME type for a stored file, falling back on its kind."""
    guessed, _ = mimetypes.guess_type(file.storage_path)
    if file.kind is FileKind.AUDIO:
        return guessed if guessed and guessed.startswith("audio/") else "audio/webm"
    if file.kind is FileKind.IMAGE:
        return guessed if guessed and guessed.startswith("image/") else "image/png"
    return guessed or "application/pdf"


async def to_inline_part(blob: MediaBlob) -> InlinePart:
    """Read *blob* and return it as base64 inline data."""
    try:
        data = await blob.read()
    except (OSError, ValueError) as exc:
        raise MediaReadError(f"Failed to read media: {exc}") from exc
    if isinstance(data, memoryview):
        data = data.tobytes()
    if not isinstance(data, (bytes, bytearray)):
        raise MediaReadError(f"Unexpected media encoding: {type(data).__name__}")
    try:
        encoded = base64.b64encode(bytes(data)).decode("ascii")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise MediaReadError(f"Failed to encode media: {exc}") from exc
    return InlinePart(data=encoded, mime_type=blob.mime_type or "application/octet-stream")


class MessageRenderer:
    """Render turns and parts into Groq chat messages.

    Rendered media texts are cached by content digest, so a file that shows
    up in history on every turn is only transcribed once.
    """

    def __init__(self, transcriber, vision=None) -> None:
        self.transcriber = transcriber
        self.vision = vision
        self._cache: dict[str, str] = {}

    async def part_text(self, part: InlinePart) -> str:
        cached = self._cache.get(part.digest)
        if cached is not None:
            return cached

        mime_type = part.mime_type.split(";")[0].strip().lower()
        try:
            raw = part.raw
        except binascii.Error as exc:
            raise MediaReadError(f"Inline part is not valid base64: {exc}") from exc

        if mime_type.startswith("audio/"):
            text = "Transcript van het audiobericht:\n" + await self.transcriber.transcribe(raw)
        elif mime_type.startswith("image/"):
            if self.vision is None:
                raise MediaReadError("No vision model configured for image input")
            text = "Tekst uit afbeelding:\n" + await self.vision.read_image(
                part.data, mime_type, EXTRACT_TEXT_PROMPT
            )
        else:
            text = "Tekst uit document:\n" + await DocumentExtractor.extract_async(raw, mime_type)

        self._cache[part.digest] = text
        return text

    async def render_parts(self, parts: list[Part], lenient: bool = False) -> str:
        """Join the text of ``parts``.

        With ``lenient`` set, media that cannot be read is logged and left
        out instead of raising.
        """
        texts: list[str] = []
        for part in parts:
            if isinstance(part, InlinePart):
                try:
                    texts.append(await self.part_text(part))
                except FacilitatorError as exc:
                    if not lenient:
                        raise
                    logger.warning(
                        "Leaving unreadable %s media out of history: %s",
                        part.mime_type,
                        exc.description,
                    )
            elif part:
                texts.append(part)
        return "\n\n".join(texts)

    async def to_messages(self, history: list[Turn], parts: list[Part]) -> list[dict]:
        messages = []
        for turn in history:
            content = await self.render_parts(turn.parts, lenient=True)
            if content:
                messages.append({"role": turn.role, "content": content})
        messages.append({"role": USER, "content": await self.render_parts(parts)})
        return messages
