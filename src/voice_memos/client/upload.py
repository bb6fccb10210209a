"""Client-side upload of audio to the transcription endpoint with progress.

The body is handed to httpx as a generator of fixed-size chunks, so every
chunk the transport pulls is a "bytes sent" tick. A single-shot post cannot
report progress while the request body is being transmitted.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from voice_memos.audio.formats import resolve_upload_mime_type
from voice_memos.types import UploadProgress

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]

DEFAULT_CHUNK_SIZE = 64 * 1024


class UploadError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class UploadAborted(UploadError):
    def __init__(self) -> None:
        super().__init__("Upload aborted")


@dataclass(frozen=True, slots=True)
class AudioPayload:
    data: bytes
    content_type: str = "audio/webm"
    filename: str | None = None
    memo_id: str | None = None
    source: str | None = None


@dataclass(frozen=True, slots=True)
class FormPayload:
    fields: Mapping[str, str] = field(default_factory=dict)
    files: Mapping[str, tuple[str, bytes, str]] = field(default_factory=dict)


def manual_upload_payload(data: bytes, filename: str | None, content_type: str | None = None) -> AudioPayload:
    """Build the payload for a user-picked file, rejecting formats the picker does not offer."""
    resolved = resolve_upload_mime_type(content_type, filename)
    if resolved is None:
        raise UploadError("Unsupported audio format")
    return AudioPayload(data=data, content_type=resolved, filename=filename, source="manual")


class ProgressTracker:
    """Turns byte counts into percent callbacks, in the order they arrive."""

    def __init__(self, on_progress: ProgressCallback) -> None:
        self.on_progress = on_progress

    def tick(self, loaded: int, total: int | None) -> None:
        percent = UploadProgress(loaded=loaded, total=total).percent
        if percent is None:
            return
        self.on_progress(percent)

    def complete(self) -> None:
        self.on_progress(100)


class ChunkedUploadTransport:
    def __init__(
        self,
        url: str,
        *,
        client: httpx.Client | None = None,
        headers: Mapping[str, str] | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        timeout_seconds: float = 600.0,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")
        self.url = url
        self.headers = dict(headers or {})
        self.chunk_size = chunk_size
        self._client = client or httpx.Client(timeout=timeout_seconds)
        self._owns_client = client is None
        self._aborted = threading.Event()

    def abort(self) -> None:
        self._aborted.set()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> ChunkedUploadTransport:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def upload(self, payload: AudioPayload | FormPayload, on_progress: ProgressCallback | None = None) -> Any:
        self._aborted.clear()
        body, headers = self._encode(payload)

        if on_progress is None:
            content: bytes | Iterator[bytes] = body
            tracker = None
        else:
            tracker = ProgressTracker(on_progress)
            content = self._iter_chunks(body, tracker)
            headers["Content-Length"] = str(len(body))

        try:
            response = self._client.post(self.url, content=content, headers=headers)
        except UploadAborted:
            logger.info("Upload to %s aborted", self.url)
            raise
        except httpx.TransportError as exc:
            logger.error("Upload to %s failed: %s", self.url, exc)
            raise UploadError(f"Upload failed: {exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise UploadError(self._error_message(response), status_code=response.status_code)

        if tracker is not None:
            tracker.complete()

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise UploadError("Upload response was not valid JSON", status_code=response.status_code) from exc

    def _encode(self, payload: AudioPayload | FormPayload) -> tuple[bytes, dict[str, str]]:
        headers = dict(self.headers)
        if isinstance(payload, AudioPayload):
            headers["Content-Type"] = payload.content_type
            if payload.filename:
                headers["X-Filename"] = payload.filename
            if payload.memo_id:
                headers["X-Memo-Id"] = payload.memo_id
            if payload.source:
                headers["X-Upload-Source"] = payload.source
            return payload.data, headers

        # Let httpx build the multipart body and boundary, then stream the bytes.
        encoded = httpx.Request(
            "POST",
            self.url,
            data=dict(payload.fields),
            files=dict(payload.files) or None,
        )
        body = encoded.read()
        headers["Content-Type"] = encoded.headers["Content-Type"]
        return body, headers

    def _iter_chunks(self, body: bytes, tracker: ProgressTracker) -> Iterator[bytes]:
        total = len(body)
        loaded = 0
        for start in range(0, total, self.chunk_size):
            if self._aborted.is_set():
                raise UploadAborted()
            chunk = body[start:start + self.chunk_size]
            yield chunk
            loaded += len(chunk)
            tracker.tick(loaded, total)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict) and isinstance(payload.get("error"), str):
            return str(payload["error"])
        return f"Upload failed ({response.status_code})"
