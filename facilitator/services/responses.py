import logging
import re
from dataclasses import dataclass, field
from typing import Callable

from facilitator.database import SERVER_TIMESTAMP, DocumentStore, Query, Subscription
from facilitator.models import Response, Section, TemporaryResponse, ThinkingSection

logger = logging.getLogger(__name__)

# A line that is only a bolded heading, e.g. "**Weighing the options**".
_HEADING_RE = re.compile(r"^\s*\*\*(?P<title>[^*\n]+?)\*\*\s*:?\s*$")


def parse_thinking_sections(text: str | None) -> list[ThinkingSection]:
    """Split model reasoning text into ``{title, summary}`` pairs.

    Each bolded heading line starts a section that runs until the next
    heading or the end of the text.  Text before the first heading is
    dropped.  Best effort: anything unrecognised yields ``[]``.
    """
    if not isinstance(text, str):
        return []

    sections: list[ThinkingSection] = []
    title: str | None = None
    body: list[str] = []
    for line in text.splitlines():
        match = _HEADING_RE.match(line)
        if match:
            if title is not None:
                sections.append(ThinkingSection(title=title, summary="\n".join(body).strip()))
            title = match.group("title").strip()
            body = []
        elif title is not None:
            body.append(line)
    if title is not None:
        sections.append(ThinkingSection(title=title, summary="\n".join(body).strip()))
    return sections


def view_doc(item: Response | TemporaryResponse) -> dict:
    """JSON shape of one entry of a visible response list."""
    if isinstance(item, TemporaryResponse):
        doc = item.to_doc()
        doc["thinking_sections"] = [t.to_doc() for t in parse_thinking_sections(item.thinking_text)]
        return doc
    return {**item.to_doc(), "temporary": False}


ViewCallback = Callable[[list], None]


@dataclass(eq=False)
class _ResponseView:
    on_change: ViewCallback
    on_error: Callable[[Exception], None] | None
    durable: list[Response] = field(default_factory=list)
    loaded: bool = False

    def emit(self, temporary: TemporaryResponse | None) -> None:
        items: list = list(self.durable)
        if temporary is not None:
            items.append(temporary)
        self.on_change(items)


class ResponseReconciler:
    """Owns the temporary (in-flight) and durable responses per slide.

    Per ``(session_id, slide_id)``::

        Idle --set_temporary--> Live --set_temporary--> Live
        Live --commit--> (durable write, slot cleared) Idle
        any  --clear_temporary--> Idle

    Consumers see ``durable responses ++ [temporary]``.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store
        self._temporary: dict[tuple[str, str], TemporaryResponse] = {}
        self._views: dict[tuple[str, str], list[_ResponseView]] = {}

    # ------------------------------------------------------------------
    # Temporary slot
    # ------------------------------------------------------------------
    def get_temporary(self, session_id: str, slide_id: str) -> TemporaryResponse | None:
        return self._temporary.get((session_id, slide_id))

    def is_live(self, session_id: str, slide_id: str) -> bool:
        return (session_id, slide_id) in self._temporary

    def set_temporary(self, session_id: str, slide_id: str, partial: TemporaryResponse) -> None:
        """Overwrite the preview for a slide. Last write wins."""
        key = (session_id, slide_id)
        self._temporary[key] = partial
        self._emit(key)

    def clear_temporary(self, session_id: str, slide_id: str) -> None:
        key = (session_id, slide_id)
        if self._temporary.pop(key, None) is not None:
            self._emit(key)

    # ------------------------------------------------------------------
    # Durable responses
    # ------------------------------------------------------------------
    async def commit(
        self,
        session_id: str,
        slide_id: str,
        sections: list[Section],
        thinking_text: str | None = None,
        user_id: str = "anonymous",
    ) -> Response:
        """Append the final answer to the durable collection and clear the preview."""
        key = (session_id, slide_id)
        doc_id = await self.store.create(
            "responses",
            {
                "session_id": session_id,
                "slide_id": slide_id,
                "sections": [s.to_doc() for s in sections],
                "thinking_text": thinking_text or None,
                "thinking_sections": [t.to_doc() for t in parse_thinking_sections(thinking_text)],
                "created_at": SERVER_TIMESTAMP,
                "created_by": user_id,
            },
        )
        response = Response.from_doc(await self.store.get("responses", doc_id))

        # The change feed catches up asynchronously; show the new response now.
        for view in self._views.get(key, []):
            if all(r.id != response.id for r in view.durable):
                view.durable.append(response)
        self._temporary.pop(key, None)
        self._emit(key)
        logger.info("Committed response %s for slide %s/%s", response.id, session_id, slide_id)
        return response

    async def list_responses(self, session_id: str, slide_id: str) -> list[Response]:
        docs = await self.store.query(
            Query("responses", {"session_id": session_id, "slide_id": slide_id})
        )
        return [Response.from_doc(d) for d in docs]

    async def visible_responses(
        self, session_id: str, slide_id: str
    ) -> list[Response | TemporaryResponse]:
        items: list = await self.list_responses(session_id, slide_id)
        temporary = self.get_temporary(session_id, slide_id)
        if temporary is not None:
            items.append(temporary)
        return items

    def subscribe_to_responses(
        self,
        session_id: str,
        slide_id: str,
        on_change: ViewCallback,
        on_error: Callable[[Exception], None] | None = None,
    ) -> Subscription:
        """Push ``durable ++ [temporary]`` whenever either side changes.

        *on_change* is called synchronously and must not block.
        """
        key = (session_id, slide_id)
        view = _ResponseView(on_change=on_change, on_error=on_error)
        self._views.setdefault(key, []).append(view)

        def on_durable(docs: list[dict]) -> None:
            view.durable = [Response.from_doc(d) for d in docs]
            view.loaded = True
            view.emit(self._temporary.get(key))

        inner = self.store.subscribe(
            Query("responses", {"session_id": session_id, "slide_id": slide_id}),
            on_durable,
            on_error,
        )

        def remove(_sub: Subscription) -> None:
            inner.cancel()
            views = self._views.get(key, [])
            if view in views:
                views.remove(view)
            if not views:
                self._views.pop(key, None)

        return Subscription(remove)

    def _emit(self, key: tuple[str, str]) -> None:
        temporary = self._temporary.get(key)
        for view in list(self._views.get(key, [])):
            if not view.loaded and temporary is None:
                continue
            try:
                view.emit(temporary)
            except Exception as exc:
                if view.on_error is None:
                    logger.exception("Response view callback failed")
                else:
                    view.on_error(exc)


@dataclass
class ResponseContext:
    """The reconciler bound to one slide, as handed to a generation turn."""

    reconciler: ResponseReconciler
    session_id: str
    slide_id: str
    user_id: str = "anonymous"

    def set_temporary(self, partial: TemporaryResponse) -> None:
        self.reconciler.set_temporary(self.session_id, self.slide_id, partial)

    def clear_temporary(self) -> None:
        self.reconciler.clear_temporary(self.session_id, self.slide_id)

    async def commit(self, sections: list[Section], thinking_text: str | None = None) -> Response:
        return await self.reconciler.commit(
            self.session_id, self.slide_id, sections, thinking_text, self.user_id
        )
