class FacilitatorError(Exception):
    """Base class for every failure the core surfaces to its callers."""

    @property
    def description(self) -> str:
        """Human-readable text for the caller to present."""
        return str(self) or self.__class__.__name__


class MediaReadError(FacilitatorError):
    """Binary media could not be read or converted to an inline part."""


class TransportError(FacilitatorError):
    """A model, blob store or document store call failed."""


class GenerationError(FacilitatorError):
    """A generation turn finished without a usable structured answer."""


class MalformedModelOutput(GenerationError):
    def __init__(self, raw_text: str) -> None:
        preview = raw_text if len(raw_text) <= 200 else raw_text[:200] + "..."
        super().__init__(f"Model output could not be parsed as JSON: {preview!r}")
        self.raw_text = raw_text


class EmptyModelOutput(GenerationError):
    def __init__(self, message: str = "Model produced no output") -> None:
        super().__init__(message)


class EnrichmentStepError(FacilitatorError):
    def __init__(self, note_id: str, step: str, cause: BaseException) -> None:
        super().__init__(f"Enrichment step '{step}' failed for note {note_id}: {cause}")
        self.note_id = note_id
        self.step = step


class DocumentNotFound(FacilitatorError):
    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"{collection} document {doc_id} not found")
        self.collection = collection
        self.doc_id = doc_id
