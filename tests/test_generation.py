import asyncio
import json

import pytest

from facilitator.clients import StreamChunk
from facilitator.errors import EmptyModelOutput, MalformedModelOutput, TransportError
from facilitator.services.content import MessageRenderer, Turn
from facilitator.services.generation import (
    GenerationOrchestrator,
    parse_partial_sections,
    parse_sections,
    strip_code_fences,
)
from facilitator.services.responses import ResponseContext, ResponseReconciler

from .conftest import SECTIONS, FakeModel, FakeStream, FakeTranscriber, answer_chunks

ANSWER = json.dumps({"sections": SECTIONS}, ensure_ascii=False)


def test_fenced_json_parses_like_plain_json():
    fenced = f"```json\n{ANSWER}\n```"
    assert parse_sections(fenced) == parse_sections(ANSWER)
    assert len(parse_sections(fenced)) == 4


def test_strip_code_fences_without_language_tag():
    assert strip_code_fences("```\n{}\n```") == "{}"
    assert strip_code_fences("  {}  ") == "{}"


def test_parse_sections_rejects_wrong_shapes():
    assert parse_sections("") is None
    assert parse_sections("not json") is None
    assert parse_sections("[1, 2]") is None
    assert parse_sections('{"sections": "nope"}') is None


def test_partial_sections_grow_with_the_text():
    counts = []
    for end in range(1, len(ANSWER) + 1):
        sections = parse_partial_sections(ANSWER[:end])
        counts.append(0 if sections is None else len(sections))

    assert counts[0] == 0
    assert counts == sorted(counts)
    assert counts[-1] == 4
    assert set(counts) == {0, 1, 2, 3, 4}


def test_partial_sections_of_half_an_object():
    assert parse_partial_sections('{"sections": [{"emoji": "💡", "tit') is None
    sections = parse_partial_sections('```json\n{"sections": [{"title": "A"}, {"title": "B')
    assert [s.title for s in sections] == ["A"]


@pytest.fixture
def reconciler(store):
    return ResponseReconciler(store)


@pytest.fixture
def context(reconciler):
    return ResponseContext(reconciler, "s1", "slide-1", "tester")


def make_orchestrator(model, **kwargs):
    return GenerationOrchestrator(model, MessageRenderer(FakeTranscriber()), **kwargs)


async def test_run_commits_sections_and_clears_preview(context, reconciler):
    previews = []
    original = reconciler.set_temporary

    def record(session_id, slide_id, partial):
        previews.append(len(partial.sections))
        original(session_id, slide_id, partial)

    reconciler.set_temporary = record
    model = FakeModel(answer_chunks(thought="**Plan**\nEerst luisteren"))
    started = asyncio.Event()

    result = await make_orchestrator(model).run([], ["hallo"], context, started)

    assert started.is_set()
    assert len(result.sections) == 4
    assert result.thinking_text == "**Plan**\nEerst luisteren"
    assert previews == sorted(previews)
    assert previews[-1] == 4
    assert reconciler.get_temporary("s1", "slide-1") is None

    stored = await reconciler.list_responses("s1", "slide-1")
    assert [r.id for r in stored] == [result.response.id]
    assert stored[0].created_by == "tester"
    assert stored[0].thinking_sections[0].title == "Plan"


async def test_thinking_only_chunks_publish_a_preview(context, reconciler):
    seen = []
    reconciler.subscribe_to_responses("s1", "slide-1", seen.append)
    model = FakeModel([StreamChunk(thought="**Stap 1**\nNadenken")] + answer_chunks())

    await make_orchestrator(model).run([], ["hallo"], context)

    thinking_previews = [
        items[-1] for items in seen
        if items and getattr(items[-1], "thinking_text", None) == "**Stap 1**\nNadenken"
        and not getattr(items[-1], "sections", True)
    ]
    assert thinking_previews


async def test_history_is_sent_before_the_new_turn(context):
    model = FakeModel(answer_chunks())
    history = [Turn("user", ["eerste"]), Turn("assistant", ['{"sections": []}'])]

    await make_orchestrator(model).run(history, ["tweede"], context)

    messages = model.calls[0]
    assert [m["role"] for m in messages] == ["user", "assistant", "user"]
    assert messages[-1]["content"] == "tweede"


async def test_malformed_answer_raises_and_writes_nothing(context, reconciler):
    model = FakeModel([StreamChunk(text="Sorry, ik kan dat niet.")])

    with pytest.raises(MalformedModelOutput) as info:
        await make_orchestrator(model).run([], ["hallo"], context)

    assert info.value.raw_text == "Sorry, ik kan dat niet."
    assert await reconciler.list_responses("s1", "slide-1") == []


async def test_empty_answer_raises(context):
    with pytest.raises(EmptyModelOutput):
        await make_orchestrator(FakeModel([])).run([], ["hallo"], context)


async def test_reasoning_without_answer_raises(context):
    model = FakeModel([StreamChunk(thought="hmm")])
    with pytest.raises(EmptyModelOutput, match="reasoning"):
        await make_orchestrator(model).run([], ["hallo"], context)


async def test_stream_failure_propagates(context, reconciler):
    stream = FakeStream(answer_chunks()[:2], error=TransportError("connection reset"))

    with pytest.raises(TransportError):
        await make_orchestrator(FakeModel(stream)).run([], ["hallo"], context)
    assert await reconciler.list_responses("s1", "slide-1") == []
    assert stream.closed


async def test_open_failure_propagates(context):
    model = FakeModel(open_error=TransportError("401"))
    with pytest.raises(TransportError):
        await make_orchestrator(model).run([], ["hallo"], context)


async def test_hung_stream_times_out(context):
    stream = FakeStream(answer_chunks(), delay=1.0)
    orchestrator = make_orchestrator(FakeModel(stream), timeout=0.05)

    with pytest.raises(TransportError, match="timed out"):
        await orchestrator.run([], ["hallo"], context)
    assert stream.closed


async def test_preamble_stops_once_main_turn_starts(context, reconciler):
    chunks = [StreamChunk(text=f"woord{i} ") for i in range(50)]
    stream = FakeStream(chunks, delay=0.01)
    orchestrator = make_orchestrator(FakeModel(), preamble_model=FakeModel(stream))
    started = asyncio.Event()

    task = asyncio.create_task(orchestrator.run_preamble("transcript", context, started))
    while reconciler.get_temporary("s1", "slide-1") is None:
        await asyncio.sleep(0.005)
    started.set()
    await task

    preview = reconciler.get_temporary("s1", "slide-1")
    assert stream.closed
    assert preview.preamble_text.startswith("woord0")
    assert len(stream.consumed) < len(chunks)


async def test_preamble_failure_is_contained(context, reconciler):
    orchestrator = make_orchestrator(
        FakeModel(), preamble_model=FakeModel(open_error=TransportError("down"))
    )
    await orchestrator.run_preamble("transcript", context, asyncio.Event())
    assert reconciler.get_temporary("s1", "slide-1") is None


async def test_preamble_prompt_carries_transcript(context):
    preamble = FakeModel([StreamChunk(text="Ik ga...")])
    orchestrator = make_orchestrator(FakeModel(), preamble_model=preamble)

    await orchestrator.run_preamble("we hadden het over planning", context, asyncio.Event())

    assert "we hadden het over planning" in preamble.calls[0][0]["content"]
