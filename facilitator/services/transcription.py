import asyncio
import io
import logging
import threading

from faster_whisper import WhisperModel

from facilitator.config import Settings

logger = logging.getLogger(__name__)


class WhisperService:
    """Lazy wrapper around a faster-whisper model.

    The model is downloaded and loaded on the first transcription, not at
    import time or server startup.  On Apple Silicon with ``int8``,
    ``small`` takes roughly 5-10 s per 60 s of audio.
    """

    def __init__(self, config: Settings) -> None:
        self.config = config
        self._model: WhisperModel | None = None
        self._lock = threading.Lock()

    @property
    def model(self) -> WhisperModel:
        with self._lock:
            if self._model is None:
                logger.info("Loading whisper model %s", self.config.whisper_model)
                self._model = WhisperModel(
                    self.config.whisper_model,
                    device=self.config.whisper_device,
                    compute_type=self.config.whisper_compute_type,
                )
            return self._model

    def transcribe_segments(self, audio: bytes) -> list[dict]:
        """Transcribe encoded audio (webm, wav, mp3, ...).  Blocking.

        Returns::

            [{"start": float, "end": float, "text": str, "confidence": float}, ...]

        ``confidence`` is the raw average log-probability from Whisper
        (negative; closer to 0 means higher confidence).
        """
        segments, _info = self.model.transcribe(
            io.BytesIO(audio),
            beam_size=5,
            language=self.config.whisper_language or None,
        )
        # segments is a lazy generator; the list comprehension forces evaluation
        return [
            {
                "start": seg.start,
                "end": seg.end,
                "text": seg.text.strip(),
                "confidence": round(seg.avg_logprob, 4),
            }
            for seg in segments
        ]

    async def transcribe(self, audio: bytes) -> str:
        """Return the plain transcript, running Whisper in a worker thread."""
        segments = await asyncio.to_thread(self.transcribe_segments, audio)
        return " ".join(s["text"] for s in segments if s["text"])
