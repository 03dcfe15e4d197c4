import asyncio
import io

import fitz  # PyMuPDF
from pptx import Presentation

from facilitator.errors import MediaReadError

PDF_TYPES = {"application/pdf"}
PPTX_TYPES = {
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
}


class DocumentExtractor:
    """Pull plain text out of PDF, PPTX and text documents."""

    @staticmethod
    def extract(data: bytes, mime_type: str) -> str:
        """Dispatch on MIME type.  Blocking; call through ``extract_async``."""
        base_type = mime_type.split(";")[0].strip().lower()
        if base_type in PDF_TYPES:
            return DocumentExtractor._extract_pdf(data)
        if base_type in PPTX_TYPES:
            return DocumentExtractor._extract_pptx(data)
        if base_type.startswith("text/") or base_type in ("application/json", "application/xml"):
            try:
                return data.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise MediaReadError(f"Document is not valid UTF-8 text: {exc}") from exc
        raise MediaReadError(f"Unsupported document type: {mime_type}")

    @staticmethod
    async def extract_async(data: bytes, mime_type: str) -> str:
        return await asyncio.to_thread(DocumentExtractor.extract, data, mime_type)

    # ------------------------------------------------------------------
    # PDF
    # ------------------------------------------------------------------
    @staticmethod
    def _extract_pdf(data: bytes) -> str:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:  # PyMuPDF raises its own FileDataError family
            raise MediaReadError(f"Could not open PDF: {exc}") from exc
        try:
            pages = [doc[i].get_text().strip() for i in range(len(doc))]
        finally:
            doc.close()
        return "\n\n".join(p for p in pages if p)

    # ------------------------------------------------------------------
    # PPTX
    # ------------------------------------------------------------------
    @staticmethod
    def _extract_pptx(data: bytes) -> str:
        try:
            prs = Presentation(io.BytesIO(data))
        except Exception as exc:
            raise MediaReadError(f"Could not open presentation: {exc}") from exc

        slides: list[str] = []
        for slide in prs.slides:
            texts: list[str] = []
            for shape in slide.shapes:
                if shape.has_text_frame:
                    frame_text = shape.text_frame.text.strip()
                    if frame_text:
                        texts.append(frame_text)
            if texts:
                slides.append("\n".join(texts))
        return "\n\n".join(slides)
