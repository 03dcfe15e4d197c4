"""Stored records and their document (dict) shapes.

Documents written by older clients may lack fields or carry legacy enum
values; ``from_doc`` constructors fill in defaults instead of failing.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Provenance(str, Enum):
    """Which process produced a derived note field."""

    NONE = "none"
    DEVICE_LOCAL = "device-local"
    MODEL_DERIVED = "model-derived"

    @classmethod
    def parse(cls, value: Any) -> "Provenance":
        if value == "browser":
            return cls.DEVICE_LOCAL
        try:
            return cls(value)
        except ValueError:
            return cls.NONE


class FileKind(str, Enum):
    DOCUMENT = "document"
    IMAGE = "image"
    AUDIO = "audio"

    @classmethod
    def parse(cls, value: Any) -> "FileKind":
        if value == "pdf":
            return cls.DOCUMENT
        try:
            return cls(value)
        except ValueError:
            return cls.DOCUMENT

    @classmethod
    def from_mime_type(cls, mime_type: str) -> "FileKind":
        if mime_type.startswith("audio/"):
            return cls.AUDIO
        if mime_type.startswith("image/"):
            return cls.IMAGE
        return cls.DOCUMENT


def _opt_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _opt_float(value: Any) -> float | None:
    return float(value) if isinstance(value, (int, float)) else None


@dataclass
class Slide:
    id: str
    title: str = ""
    duration: int = 15  # minutes
    agent_instructions: str = ""
    facilitator_notes: str = ""
    color: str | None = None

    @classmethod
    def from_doc(cls, doc: dict) -> "Slide":
        return cls(
            id=str(doc.get("id", "")),
            title=doc.get("title") or "",
            duration=int(doc.get("duration") or 0),
            agent_instructions=doc.get("agent_instructions") or "",
            facilitator_notes=doc.get("facilitator_notes") or "",
            color=_opt_str(doc.get("color")),
        )

    def to_doc(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "duration": self.duration,
            "agent_instructions": self.agent_instructions,
            "facilitator_notes": self.facilitator_notes,
            "color": self.color,
        }


@dataclass
class Session:
    id: str
    title: str
    scheduled_at: float | None = None
    slides: list[Slide] = field(default_factory=list)
    template: bool = False
    created_at: float | None = None
    created_by: str = ""
    updated_at: float | None = None
    updated_by: str = ""

    @classmethod
    def from_doc(cls, doc: dict) -> "Session":
        return cls(
            id=doc["id"],
            title=doc.get("title") or "",
            scheduled_at=_opt_float(doc.get("scheduled_at")),
            slides=[Slide.from_doc(s) for s in doc.get("slides") or []],
            template=bool(doc.get("template", False)),
            created_at=_opt_float(doc.get("created_at")),
            created_by=doc.get("created_by") or "",
            updated_at=_opt_float(doc.get("updated_at")),
            updated_by=doc.get("updated_by") or "",
        )

    def find_slide(self, slide_id: str) -> Slide | None:
        return next((s for s in self.slides if s.id == slide_id), None)


@dataclass
class SessionFile:
    id: str
    session_id: str
    kind: FileKind
    storage_path: str
    created_at: float | None = None
    created_by: str = ""
    # Resolved download URL. Never persisted.
    url: str | None = None

    @classmethod
    def from_doc(cls, doc: dict) -> "SessionFile":
        return cls(
            id=str(doc.get("id", "")),
            session_id=doc.get("session_id") or "",
            kind=FileKind.parse(doc.get("kind", doc.get("type"))),
            storage_path=doc.get("storage_path") or "",
            created_at=_opt_float(doc.get("created_at")),
            created_by=doc.get("created_by") or "",
        )

    def to_doc(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "kind": self.kind.value,
            "storage_path": self.storage_path,
            "created_at": self.created_at,
            "created_by": self.created_by,
        }


@dataclass
class SessionNote:
    id: str
    session_id: str
    full_text: str | None = None
    full_text_model_used: Provenance = Provenance.NONE
    title: str | None = None
    title_model_used: Provenance = Provenance.NONE
    summary: str | None = None
    summary_model_used: Provenance = Provenance.NONE
    emoji: str | None = None
    file: SessionFile | None = None
    created_at: float | None = None
    created_by: str = ""
    updated_at: float | None = None
    updated_by: str = ""

    @classmethod
    def from_doc(cls, doc: dict) -> "SessionNote":
        file_doc = doc.get("file")
        return cls(
            id=doc["id"],
            session_id=doc.get("session_id") or "",
            full_text=_opt_str(doc.get("full_text")),
            full_text_model_used=Provenance.parse(doc.get("full_text_model_used")),
            title=_opt_str(doc.get("title")),
            title_model_used=Provenance.parse(doc.get("title_model_used")),
            summary=_opt_str(doc.get("summary")),
            summary_model_used=Provenance.parse(doc.get("summary_model_used")),
            emoji=_opt_str(doc.get("emoji")),
            file=SessionFile.from_doc(file_doc) if isinstance(file_doc, dict) else None,
            created_at=_opt_float(doc.get("created_at")),
            created_by=doc.get("created_by") or "",
            updated_at=_opt_float(doc.get("updated_at")),
            updated_by=doc.get("updated_by") or "",
        )

    def to_doc(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "full_text": self.full_text,
            "full_text_model_used": self.full_text_model_used.value,
            "title": self.title,
            "title_model_used": self.title_model_used.value,
            "summary": self.summary,
            "summary_model_used": self.summary_model_used.value,
            "emoji": self.emoji,
            "file": self.file.to_doc() if self.file else None,
            "created_at": self.created_at,
            "created_by": self.created_by,
            "updated_at": self.updated_at,
            "updated_by": self.updated_by,
        }

    @property
    def is_enriched(self) -> bool:
        return (
            self.full_text_model_used is Provenance.MODEL_DERIVED
            and bool(self.title)
            and bool(self.summary)
        )


@dataclass
class Section:
    emoji: str = ""
    title: str = ""
    description: str = ""

    @classmethod
    def from_doc(cls, doc: Any) -> "Section":
        if not isinstance(doc, dict):
            return cls()
        return cls(
            emoji=str(doc.get("emoji") or ""),
            title=str(doc.get("title") or ""),
            description=str(doc.get("description") or ""),
        )

    def to_doc(self) -> dict:
        return {"emoji": self.emoji, "title": self.title, "description": self.description}


@dataclass
class ThinkingSection:
    title: str
    summary: str

    def to_doc(self) -> dict:
        return {"title": self.title, "summary": self.summary}


@dataclass
class Response:
    id: str
    session_id: str
    slide_id: str
    sections: list[Section] = field(default_factory=list)
    thinking_text: str | None = None
    thinking_sections: list[ThinkingSection] = field(default_factory=list)
    created_at: float | None = None
    created_by: str = ""

    @classmethod
    def from_doc(cls, doc: dict) -> "Response":
        return cls(
            id=doc["id"],
            session_id=doc.get("session_id") or "",
            slide_id=doc.get("slide_id") or "",
            sections=[Section.from_doc(s) for s in doc.get("sections") or []],
            thinking_text=_opt_str(doc.get("thinking_text")),
            thinking_sections=[
                ThinkingSection(title=t.get("title") or "", summary=t.get("summary") or "")
                for t in doc.get("thinking_sections") or []
                if isinstance(t, dict)
            ],
            created_at=_opt_float(doc.get("created_at")),
            created_by=doc.get("created_by") or "",
        )

    def to_doc(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "slide_id": self.slide_id,
            "sections": [s.to_doc() for s in self.sections],
            "thinking_text": self.thinking_text,
            "thinking_sections": [t.to_doc() for t in self.thinking_sections],
            "created_at": self.created_at,
            "created_by": self.created_by,
        }


@dataclass
class TemporaryResponse:
    """In-flight preview of a generation turn. Never persisted."""

    sections: list[Section] = field(default_factory=list)
    thinking_text: str = ""
    # Output of the short "what am I going to do" preamble turn.
    preamble_text: str = ""

    def to_doc(self) -> dict:
        return {
            "temporary": True,
            "sections": [s.to_doc() for s in self.sections],
            "thinking_text": self.thinking_text,
            "preamble_text": self.preamble_text,
        }
