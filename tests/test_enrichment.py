import asyncio

from facilitator.errors import TransportError
from facilitator.models import FileKind, Provenance, SessionFile, SessionNote
from facilitator.services.content import MediaBlob
from facilitator.services.enrichment import NoteEnrichmentReconciler


async def stored_notes(container, session_id="s1"):
    return await container.notes.list_notes(session_id)


async def test_audio_note_gets_transcript_and_summary(container, fakes):
    await container.notes.add_file_note(
        "s1", MediaBlob(b"audio", "audio/webm"), "tester", full_text="ruwe live tekst"
    )
    [note] = await stored_notes(container)
    assert note.full_text_model_used is Provenance.DEVICE_LOCAL

    written = await container.enrichment.reconcile([note])

    [note] = await stored_notes(container)
    assert written == 1
    assert note.full_text == "dit is het transcript"
    assert note.full_text_model_used is Provenance.MODEL_DERIVED
    assert note.title == "Titel"
    assert note.title_model_used is Provenance.MODEL_DERIVED
    assert note.summary == "Samenvatting"
    assert note.summary_model_used is Provenance.MODEL_DERIVED
    assert note.emoji == "📝"
    assert note.updated_by == "enrichment"
    assert note.is_enriched
    assert fakes["transcriber"].calls == [b"audio"]


async def test_second_pass_writes_nothing(container, fakes):
    await container.notes.add_file_note("s1", MediaBlob(b"audio", "audio/webm"), "tester")
    await container.enrichment.reconcile(await stored_notes(container))
    summaries = len(fakes["summary_model"].calls)

    written = await container.enrichment.reconcile(await stored_notes(container))

    assert written == 0
    assert len(fakes["summary_model"].calls) == summaries
    assert len(fakes["transcriber"].calls) == 1


async def test_text_only_note_gets_summary_only(container, fakes):
    await container.notes.add_session_note(
        SessionNote(id="n1", session_id="s1", full_text="getypte notitie"), "tester"
    )

    await container.enrichment.reconcile(await stored_notes(container))

    [note] = await stored_notes(container)
    assert note.full_text == "getypte notitie"
    assert note.full_text_model_used is Provenance.NONE
    assert note.title == "Titel"
    assert fakes["transcriber"].calls == []
    assert "getypte notitie" in fakes["summary_model"].calls[0][-1]["content"]


async def test_image_and_document_use_text_extraction(container, fakes):
    await container.notes.add_file_note("s1", MediaBlob(b"\x89PNG", "image/png"), "tester")
    await container.notes.add_file_note(
        "s1", MediaBlob("agenda: planning".encode(), "text/plain"), "tester"
    )

    await container.enrichment.reconcile(await stored_notes(container))

    texts = sorted(n.full_text for n in await stored_notes(container))
    assert texts == ["agenda: planning", "tekst op de foto"]
    assert len(fakes["vision_model"].calls) == 1


async def test_failing_note_is_skipped_and_others_continue(container, fakes):
    await container.notes.add_session_note(
        SessionNote(id="good", session_id="s1", full_text="goede notitie", created_at=1), "tester"
    )
    broken_file = SessionFile(
        id="f1", session_id="s1", kind=FileKind.AUDIO, storage_path="sessions/s1/missing.webm"
    )
    await container.notes.add_session_note(
        SessionNote(id="bad", session_id="s1", file=broken_file), "tester"
    )

    written = await container.enrichment.reconcile(await stored_notes(container))

    assert written == 1
    notes = {n.id: n for n in await stored_notes(container)}
    assert notes["good"].title == "Titel"
    assert notes["bad"].full_text is None


async def test_summary_failure_leaves_note_untouched(container, fakes):
    fakes["summary_model"].error = TransportError("rate limited")
    await container.notes.add_session_note(
        SessionNote(id="n1", session_id="s1", full_text="tekst"), "tester"
    )

    assert await container.enrichment.reconcile(await stored_notes(container)) == 0
    [note] = await stored_notes(container)
    assert note.title is None


def test_needs_enrichment():
    empty = SessionNote(id="n", session_id="s")
    assert not NoteEnrichmentReconciler.needs_enrichment(empty)

    typed = SessionNote(id="n", session_id="s", full_text="x")
    assert NoteEnrichmentReconciler.needs_enrichment(typed)

    done = SessionNote(
        id="n",
        session_id="s",
        full_text="x",
        full_text_model_used=Provenance.MODEL_DERIVED,
        title="t",
        summary="s",
        file=SessionFile(id="f", session_id="s", kind=FileKind.AUDIO, storage_path="sessions/s/a"),
    )
    assert not NoteEnrichmentReconciler.needs_enrichment(done)

    summarized = SessionNote(
        id="n",
        session_id="s",
        full_text="x",
        title_model_used=Provenance.MODEL_DERIVED,
        summary_model_used=Provenance.MODEL_DERIVED,
    )
    assert not NoteEnrichmentReconciler.needs_summary(summarized)


async def test_watch_enriches_new_notes(container, fakes):
    sub = container.enrichment.watch("s1")
    assert container.enrichment.watch("s1") is sub

    await container.notes.add_file_note("s1", MediaBlob(b"audio", "audio/webm"), "tester")
    await container.enrichment.wait_idle()

    [note] = await stored_notes(container)
    assert note.is_enriched

    container.enrichment.unwatch("s1")
    assert sub.cancelled


async def test_empty_summary_is_a_failed_step(container, fakes):
    fakes["summary_model"].result = {"title": "  ", "summary": "Samenvatting", "emoji": ""}
    await container.notes.add_session_note(
        SessionNote(id="n1", session_id="s1", full_text="tekst"), "tester"
    )

    assert await container.enrichment.reconcile(await stored_notes(container)) == 0
    [note] = await stored_notes(container)
    assert note.title is None
    assert note.title_model_used is Provenance.NONE


async def test_watch_settles_when_the_summary_comes_back_empty(container, fakes):
    fakes["summary_model"].result = {"title": "", "summary": "", "emoji": ""}
    container.enrichment.watch("s1")

    await container.notes.add_file_note("s1", MediaBlob(b"audio", "audio/webm"), "tester")
    await container.enrichment.wait_idle()
    await asyncio.sleep(0.05)
    await container.enrichment.wait_idle()

    assert len(fakes["summary_model"].calls) <= 2
    [note] = await stored_notes(container)
    assert note.title is None
    container.enrichment.unwatch("s1")
