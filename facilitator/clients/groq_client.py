import json
from dataclasses import dataclass
from typing import AsyncIterator

from groq import APIError, AsyncGroq

from facilitator.config import Settings, settings as default_settings
from facilitator.errors import TransportError


@dataclass
class StreamChunk:
    text: str = ""
    thought: str = ""


@dataclass
class StreamResult:
    text: str
    thought: str


class ChatStream:
    """One streaming completion.

    Iterate it for ``StreamChunk`` deltas; ``final()`` drains whatever is left
    and returns the aggregated answer and reasoning text.
    """

    def __init__(self, stream) -> None:
        self._stream = stream
        self._iterator: AsyncIterator[StreamChunk] | None = None
        self._text: list[str] = []
        self._thought: list[str] = []

    def __aiter__(self) -> AsyncIterator[StreamChunk]:
        if self._iterator is None:
            self._iterator = self._iterate()
        return self._iterator

    async def _iterate(self) -> AsyncIterator[StreamChunk]:
        try:
            async for chunk in self._stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                text = delta.content or ""
                thought = getattr(delta, "reasoning", None) or ""
                if not text and not thought:
                    continue
                self._text.append(text)
                self._thought.append(thought)
                yield StreamChunk(text=text, thought=thought)
        except APIError as exc:
            raise TransportError(f"Model stream failed: {exc}") from exc

    async def final(self) -> StreamResult:
        async for _chunk in self:
            pass
        return StreamResult(text="".join(self._text), thought="".join(self._thought))

    async def aclose(self) -> None:
        await self._stream.close()


class GroqClient:
    """Groq chat completions bound to one model.

    ``with_model()`` returns a view on another model that reuses the same
    ``AsyncGroq`` connection pool, so the generation, preamble, summary and
    vision models all share one client::

        groq = GroqClient(config=settings)
        fast = groq.with_model(settings.fast_model)
        stream = await groq.with_model(settings.generation_model, reasoning=True).stream_chat(messages)
        async for chunk in stream:
            ...
        result = await stream.final()

    Every SDK failure surfaces as ``TransportError``.
    """

    def __init__(
        self,
        model: str | None = None,
        api_key: str | None = None,
        config: Settings | None = None,
    ) -> None:
        config = config or default_settings
        self._model = model or config.generation_model
        self._reasoning_format = config.reasoning_format or None
        self._client = AsyncGroq(
            api_key=api_key or config.groq_api_key,
            timeout=config.generation_timeout_seconds,
        )

    @property
    def default_model(self) -> str:
        return self._model

    def with_model(self, model_name: str, *, reasoning: bool = False) -> "GroqClient":
        """Bind *model_name* on the shared client.

        Reasoning output is only requested when *reasoning* is true; most
        models reject ``reasoning_format``.
        """
        clone = GroqClient.__new__(GroqClient)
        clone._model = model_name
        clone._reasoning_format = self._reasoning_format if reasoning else None
        clone._client = self._client
        return clone

    async def close(self) -> None:
        await self._client.close()

    def _request(self, messages: list[dict], model: str | None, **options) -> dict:
        request = {"model": model or self._model, "messages": messages}
        request.update((k, v) for k, v in options.items() if v is not None)
        return request

    async def _create(self, request: dict, failure: str):
        try:
            return await self._client.chat.completions.create(**request)
        except APIError as exc:
            raise TransportError(f"{failure}: {exc}") from exc

    async def chat(
        self,
        messages: list[dict],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        request = self._request(messages, model, temperature=temperature, max_tokens=max_tokens)
        resp = await self._create(request, "Model call failed")
        return resp.choices[0].message.content or ""

    async def chat_json(
        self,
        messages: list[dict],
        response_schema: dict,
        *,
        schema_name: str = "response",
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> dict:
        """Completion constrained to *response_schema* (Groq strict mode).

        Strict mode wants ``additionalProperties: false`` on every object and
        every property listed under ``required``.
        """
        request = self._request(messages, model, temperature=temperature, max_tokens=max_tokens)
        request["response_format"] = {
            "type": "json_schema",
            "json_schema": {"name": schema_name, "strict": True, "schema": response_schema},
        }
        resp = await self._create(request, "Model call failed")
        try:
            return json.loads(resp.choices[0].message.content or "")
        except json.JSONDecodeError as exc:
            raise TransportError(f"Model returned invalid JSON: {exc}") from exc

    async def stream_chat(
        self,
        messages: list[dict],
        *,
        model: str | None = None,
        temperature: float | None = None,
    ) -> ChatStream:
        """Open a streaming completion.

        Failures while opening raise ``TransportError`` here; failures
        mid-stream raise it from the iteration.
        """
        request = self._request(
            messages,
            model,
            temperature=temperature,
            reasoning_format=self._reasoning_format,
        )
        request["stream"] = True
        return ChatStream(await self._create(request, "Could not open model stream"))

    async def read_image(self, data_b64: str, mime_type: str, prompt: str) -> str:
        """Ask a vision model about an inline image. Returns the answer text."""
        content = [
            {"type": "text", "text": prompt},
            {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{data_b64}"}},
        ]
        return await self.chat([{"role": "user", "content": content}])
