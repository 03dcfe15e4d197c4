import asyncio
import json

import pytest

from facilitator.clients import StreamChunk, StreamResult
from facilitator.config import Settings
from facilitator.container import Container
from facilitator.database import DocumentStore
from facilitator.services.storage import BlobStore

SECTIONS = [
    {"emoji": "💡", "title": "Kernpunt", "description": "Wat de groep noemde."},
    {"emoji": "❓", "title": "Vraag", "description": "Wat nog open ligt?"},
    {"emoji": "🔁", "title": "Verbinding", "description": "Hoe het samenhangt."},
    {"emoji": "🚀", "title": "Volgende stap", "description": "Wat nu?"},
]


def answer_chunks(sections=SECTIONS, size=40, thought=""):
    """Split a ``{"sections": [...]}`` answer into small stream chunks."""
    text = "```json\n" + json.dumps({"sections": sections}, ensure_ascii=False) + "\n```"
    chunks = [StreamChunk(thought=thought)] if thought else []
    chunks += [StreamChunk(text=text[i : i + size]) for i in range(0, len(text), size)]
    return chunks


class FakeStream:
    def __init__(self, chunks, error=None, delay=0.0):
        self.chunks = list(chunks)
        self.error = error
        self.delay = delay
        self.closed = False
        self.consumed: list[StreamChunk] = []
        self._iterator = None

    def __aiter__(self):
        if self._iterator is None:
            self._iterator = self._iterate()
        return self._iterator

    async def _iterate(self):
        for chunk in self.chunks:
            await asyncio.sleep(self.delay)
            self.consumed.append(chunk)
            yield chunk
        if self.error is not None:
            raise self.error

    async def final(self):
        async for _chunk in self:
            pass
        return StreamResult(
            text="".join(c.text for c in self.consumed),
            thought="".join(c.thought for c in self.consumed),
        )

    async def aclose(self):
        self.closed = True


class FakeModel:
    """Hands out one prepared stream per ``stream_chat`` call."""

    def __init__(self, *streams, open_error=None):
        self.streams = list(streams)
        self.open_error = open_error
        self.calls: list[list[dict]] = []

    async def stream_chat(self, messages, **kwargs):
        self.calls.append(messages)
        if self.open_error is not None:
            raise self.open_error
        stream = self.streams.pop(0)
        if not isinstance(stream, FakeStream):
            stream = FakeStream(stream)
        return stream


class FakeTranscriber:
    def __init__(self, text="dit is het transcript", error=None):
        self.text = text
        self.error = error
        self.calls: list[bytes] = []

    async def transcribe(self, data):
        self.calls.append(data)
        if self.error is not None:
            raise self.error
        return self.text


class FakeSummarizer:
    def __init__(self, result=None, error=None):
        self.result = result or {"title": " Titel ", "summary": "Samenvatting", "emoji": "📝"}
        self.error = error
        self.calls: list[list[dict]] = []

    async def chat_json(self, messages, schema, *, schema_name="response", **kwargs):
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return dict(self.result)


class FakeVision:
    def __init__(self, text="tekst op de foto"):
        self.text = text
        self.calls: list[tuple[str, str]] = []

    async def read_image(self, data_b64, mime_type, prompt):
        self.calls.append((data_b64, mime_type))
        return self.text


@pytest.fixture
async def store(tmp_path):
    db = DocumentStore(str(tmp_path / "test.db"))
    await db.connect()
    yield db
    await db.close()


@pytest.fixture
def blobs(tmp_path):
    return BlobStore(str(tmp_path / "storage"))


@pytest.fixture
def config(tmp_path):
    return Settings(
        groq_api_key="test-key",
        database_path=str(tmp_path / "facilitator.db"),
        storage_root=str(tmp_path / "storage"),
        log_dir=str(tmp_path / "logs"),
    )


@pytest.fixture
def fakes():
    return {
        "generation_model": FakeModel(),
        "preamble_model": FakeModel(),
        "summary_model": FakeSummarizer(),
        "vision_model": FakeVision(),
        "transcriber": FakeTranscriber(),
    }


@pytest.fixture
async def container(config, fakes):
    c = Container(config, **fakes)
    await c.init()
    yield c
    await c.close()
