import random
import uuid
from typing import Callable

from facilitator.database import SERVER_TIMESTAMP, DocumentStore, Query, Subscription
from facilitator.errors import DocumentNotFound
from facilitator.models import Session, Slide

SLIDE_COLORS = [
    "red", "orange", "amber", "yellow", "lime", "green", "emerald", "teal",
    "cyan", "sky", "blue", "indigo", "violet", "purple", "fuchsia", "pink", "rose",
]

UPDATABLE_FIELDS = {"title", "scheduled_at", "slides", "template"}


def new_slide(title: str = "Slide 1") -> Slide:
    return Slide(
        id=str(uuid.uuid4()),
        title=title,
        duration=15,
        color=random.choice(SLIDE_COLORS),
    )


class SessionService:
    """Sessions and their slide lists."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def create_session(
        self,
        title: str,
        scheduled_at: float | None = None,
        user_id: str = "anonymous",
    ) -> tuple[str, str]:
        """Create a session with one default slide. Returns ``(session_id, slide_id)``."""
        slide = new_slide()
        session_id = await self.store.create(
            "sessions",
            {
                "title": title,
                "scheduled_at": scheduled_at,
                "created_at": SERVER_TIMESTAMP,
                "updated_at": SERVER_TIMESTAMP,
                "created_by": user_id,
                "updated_by": user_id,
                "template": False,
                "slides": [slide.to_doc()],
            },
        )
        return session_id, slide.id

    async def get_session(self, session_id: str) -> Session:
        doc = await self.store.get("sessions", session_id)
        if doc is None:
            raise DocumentNotFound("sessions", session_id)
        return Session.from_doc(doc)

    async def list_user_sessions(self, user_id: str) -> list[Session]:
        docs = await self.store.query(
            Query("sessions", {"created_by": user_id}, descending=True)
        )
        return [Session.from_doc(d) for d in docs]

    async def update_session(self, session_id: str, fields: dict, user_id: str = "anonymous") -> None:
        """Replace the given top-level fields.

        ``slides`` is replaced as a whole list; the last writer wins.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update session fields: {', '.join(sorted(unknown))}")
        payload = dict(fields)
        if "slides" in payload:
            payload["slides"] = [
                s.to_doc() if isinstance(s, Slide) else Slide.from_doc(s).to_doc()
                for s in payload["slides"]
            ]
        payload["updated_at"] = SERVER_TIMESTAMP
        payload["updated_by"] = user_id
        await self.store.update("sessions", session_id, payload)

    async def add_slide(self, session_id: str, title: str | None = None, user_id: str = "anonymous") -> Slide:
        session = await self.get_session(session_id)
        slide = new_slide(title or f"Slide {len(session.slides) + 1}")
        await self.update_session(session_id, {"slides": session.slides + [slide]}, user_id)
        return slide

    def subscribe_to_session(
        self,
        session_id: str,
        on_change: Callable[[Session | None], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Subscription:
        return self.store.subscribe_document(
            "sessions",
            session_id,
            lambda doc: on_change(Session.from_doc(doc) if doc else None),
            on_error,
        )

    def subscribe_to_user_sessions(
        self,
        user_id: str,
        on_change: Callable[[list[Session]], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Subscription:
        return self.store.subscribe(
            Query("sessions", {"created_by": user_id}, descending=True),
            lambda docs: on_change([Session.from_doc(d) for d in docs]),
            on_error,
        )
