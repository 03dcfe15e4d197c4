import asyncio
import os
from pathlib import Path
from urllib.parse import quote, unquote, urlparse

import httpx

from facilitator.errors import TransportError


class BlobStore:
    """Media files on local disk, addressed by ``sessions/{session_id}/...`` paths."""

    def __init__(
        self,
        root: str,
        public_base_url: str = "",
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.root = Path(root).resolve()
        self.public_base_url = public_base_url.rstrip("/")
        self._http = http
        self._owns_http = http is None

    @staticmethod
    def session_path(session_id: str, filename: str) -> str:
        """Return the storage path for a file belonging to a session."""
        return f"sessions/{session_id}/{filename}"

    def _local_path(self, path: str) -> Path:
        parts = path.split("/")
        if (
            path.startswith("/")
            or len(parts) < 3
            or parts[0] != "sessions"
            or any(p in ("", ".", "..") for p in parts)
        ):
            raise ValueError(f"Invalid storage path: {path!r}")
        return self.root.joinpath(*parts)

    async def put(self, path: str, data: bytes) -> None:
        target = self._local_path(path)

        def _write() -> None:
            os.makedirs(target.parent, exist_ok=True)
            with open(target, "wb") as f:
                f.write(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            raise TransportError(f"Could not store {path}: {exc}") from exc

    async def resolve_url(self, path: str) -> str:
        target = self._local_path(path)
        if not await asyncio.to_thread(target.exists):
            raise TransportError(f"No stored file at {path}")
        if self.public_base_url:
            return f"{self.public_base_url}/files/{quote(path)}"
        return target.as_uri()

    async def fetch(self, url: str) -> bytes:
        """Return the bytes behind a URL produced by ``resolve_url``."""
        parsed = urlparse(url)
        if parsed.scheme == "file":
            try:
                return await asyncio.to_thread(Path(unquote(parsed.path)).read_bytes)
            except OSError as exc:
                raise TransportError(f"Could not read {url}: {exc}") from exc
        if parsed.scheme in ("http", "https"):
            if self._http is None:
                self._http = httpx.AsyncClient(timeout=30.0)
            try:
                resp = await self._http.get(url)
                resp.raise_for_status()
            except httpx.HTTPError as exc:
                raise TransportError(f"Could not download {url}: {exc}") from exc
            return resp.content
        raise TransportError(f"Unsupported URL scheme: {url}")

    async def close(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None
