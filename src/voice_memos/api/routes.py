from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any

from starlette.datastructures import UploadFile
from starlette.requests import Request
from starlette.responses import FileResponse, JSONResponse, Response
from starlette.routing import Route

from voice_memos.api.auth import resolve_owner
from voice_memos.audio.formats import (
    DEFAULT_PENDING_MIME_TYPE,
    MANUAL_UPLOAD_ACCEPT,
    normalize_upload_content_type,
    resolve_upload_mime_type,
)
from voice_memos.db.memos import DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT, MemosRepository
from voice_memos.errors import AuthError, ClientInputError, MemoServiceError, PayloadTooLargeError
from voice_memos.services.live_sessions import LiveSessionManager
from voice_memos.services.storage import AudioStorage
from voice_memos.services.transcription import TRANSCRIBE_MODEL, TranscriptionService
from voice_memos.types import RawAudio

logger = logging.getLogger(__name__)

# Anything smaller cannot hold meaningful speech.
LIVE_MIN_AUDIO_BYTES = 1000
MANUAL_MEMO_TITLE = "Manual Voice Memo"
DEFAULT_MEMO_TITLE = "Voice Memo"
MANUAL_UPLOAD_SOURCE = "manual"


@dataclass(frozen=True, slots=True)
class ParsedUpload:
    audio: RawAudio
    memo_id: str | None


def _error_response(exc: MemoServiceError) -> JSONResponse:
    return JSONResponse(exc.to_payload(), status_code=exc.status_code)


def _as_int(raw: str | None, default: int) -> int:
    try:
        return int(raw) if raw is not None else default
    except ValueError:
        return default


class MemoRoutes:
    def __init__(
        self,
        *,
        memos: MemosRepository,
        live_sessions: LiveSessionManager,
        transcription: TranscriptionService,
        storage: AudioStorage,
        max_upload_bytes: int,
        api_key: str | None = None,
    ) -> None:
        self.memos = memos
        self.live_sessions = live_sessions
        self.transcription = transcription
        self.storage = storage
        self.max_upload_bytes = max_upload_bytes
        self.api_key = api_key

    def routes(self) -> list[Route]:
        return [
            Route("/api/transcribe", self.transcribe, methods=["POST"]),
            Route("/api/transcribe/live", self.transcribe_live, methods=["POST"]),
            Route("/api/memos", self.list_memos, methods=["GET"]),
            Route("/api/memos", self.create_memo, methods=["POST"]),
            Route("/api/memos/live", self.create_live_memo, methods=["POST"]),
            Route("/audio/{name}", self.read_audio, methods=["GET"]),
        ]

    async def transcribe(self, request: Request) -> Response:
        started = time.monotonic()
        try:
            owner_id = self._require_owner(request)
            upload = await self._parse_upload(request)
            result = await self.transcription.transcribe(upload.audio)
            audio_url = await asyncio.to_thread(self.storage.save, upload.audio)
            try:
                memo = self._persist_transcript(upload, owner_id, result.text, audio_url)
            except MemoServiceError:
                self.storage.discard(audio_url)
                raise
        except MemoServiceError as exc:
            logger.error("Transcribe request failed (%s): %s", exc.status_code, exc.message)
            return _error_response(exc)

        logger.info("Transcribe request for memo %s took %.0fms", memo["id"], (time.monotonic() - started) * 1000)
        return JSONResponse(
            {
                "success": True,
                "id": memo["id"],
                "text": result.text,
                "url": audio_url,
                "modelUsed": TRANSCRIBE_MODEL,
            }
        )

    async def transcribe_live(self, request: Request) -> Response:
        """Best-effort partial transcription; failures answer with empty text."""
        try:
            self._require_owner(request)
        except AuthError as exc:
            return _error_response(exc)

        try:
            upload = await self._parse_upload(request)
        except ClientInputError:
            return JSONResponse({"text": ""})
        if len(upload.audio.data) < LIVE_MIN_AUDIO_BYTES:
            return JSONResponse({"text": ""})

        try:
            result = await self.transcription.transcribe(upload.audio)
        except MemoServiceError as exc:
            logger.warning("Live transcription failed: %s", exc.message)
            return JSONResponse({"text": ""})
        return JSONResponse({"text": result.text})

    async def create_live_memo(self, request: Request) -> Response:
        owner_id = resolve_owner(request, self.api_key)
        try:
            live_memo = self.live_sessions.create_session(owner_id)
        except MemoServiceError as exc:
            return _error_response(exc)
        return JSONResponse({"memoId": live_memo.id}, status_code=201)

    async def create_memo(self, request: Request) -> Response:
        owner_id = resolve_owner(request, self.api_key)
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return _error_response(ClientInputError("Invalid JSON body"))
        if not isinstance(body, dict):
            return _error_response(ClientInputError("Invalid JSON body"))

        transcript = body.get("transcript")
        if not isinstance(transcript, str) or not transcript.strip():
            return _error_response(ClientInputError("'transcript' is required", status_code=422))

        title = body.get("title")
        audio_url = body.get("audioUrl")
        metadata: dict[str, Any] = {}
        if isinstance(audio_url, str) and audio_url:
            metadata["source"] = "manual_audio_url"

        try:
            memo = self.memos.insert(
                user_id=owner_id,
                title=title if isinstance(title, str) and title else MANUAL_MEMO_TITLE,
                transcript=transcript,
                audio_url=audio_url if isinstance(audio_url, str) else "",
                metadata=metadata,
            )
        except MemoServiceError as exc:
            return _error_response(exc)

        return JSONResponse(
            {
                "memo": {
                    "id": memo["id"],
                    "title": memo["title"],
                    "transcript": memo["transcript"],
                    "audioUrl": memo["audio_url"],
                    "createdAt": memo["created_at"],
                }
            },
            status_code=201,
        )

    async def list_memos(self, request: Request) -> Response:
        owner_id = resolve_owner(request, self.api_key)
        if owner_id is None:
            return JSONResponse({"memos": [], "total": 0, "limit": DEFAULT_LIST_LIMIT, "offset": 0})

        params = request.query_params
        limit = max(1, min(_as_int(params.get("limit"), DEFAULT_LIST_LIMIT), MAX_LIST_LIMIT))
        offset = max(0, _as_int(params.get("offset"), 0))
        search = params.get("search", "")

        try:
            rows, total = self.memos.list_for_owner(owner_id, search=search, limit=limit, offset=offset)
        except MemoServiceError as exc:
            return _error_response(exc)

        memos = [
            {
                "id": row["id"],
                "title": row.get("title"),
                "transcript": row.get("transcript") or "",
                "url": row.get("audio_url") or None,
                "wordCount": len((row.get("transcript") or "").split()),
                "createdAt": row.get("created_at"),
                "updatedAt": row.get("created_at"),
            }
            for row in rows
        ]
        return JSONResponse({"memos": memos, "total": total, "limit": limit, "offset": offset})

    async def read_audio(self, request: Request) -> Response:
        path = self.storage.resolve(request.path_params["name"])
        if path is None:
            return JSONResponse({"error": "Audio not found"}, status_code=404)
        return FileResponse(path)

    def _require_owner(self, request: Request) -> str:
        owner_id = resolve_owner(request, self.api_key)
        if owner_id is None:
            raise AuthError()
        return owner_id

    async def _parse_upload(self, request: Request) -> ParsedUpload:
        declared = _as_int(request.headers.get("content-length"), 0)
        if declared > self.max_upload_bytes:
            raise PayloadTooLargeError(self.max_upload_bytes)

        content_type = request.headers.get("content-type", "").lower()
        if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
            form = await request.form()
            file = form.get("file")
            if not isinstance(file, UploadFile):
                raise ClientInputError("No audio file provided")
            data = await file.read()
            filename = file.filename or None
            mime_type = file.content_type or DEFAULT_PENDING_MIME_TYPE
            memo_value = form.get("memoId")
            memo_id = memo_value.strip() if isinstance(memo_value, str) and memo_value.strip() else None
            source = form.get("source")
        else:
            data = await request.body()
            filename = request.headers.get("x-filename") or None
            mime_type = content_type.split(";", 1)[0].strip() or DEFAULT_PENDING_MIME_TYPE
            memo_id = (request.headers.get("x-memo-id") or "").strip() or None
            source = request.headers.get("x-upload-source")

        if isinstance(source, str) and source.strip().lower() == MANUAL_UPLOAD_SOURCE:
            resolved = resolve_upload_mime_type(mime_type, filename)
            if resolved is None:
                raise ClientInputError(
                    "Unsupported audio format",
                    detail=f"Manual uploads accept: {MANUAL_UPLOAD_ACCEPT}",
                )
            mime_type = resolved
        else:
            mime_type = normalize_upload_content_type(mime_type, filename)

        if not data:
            raise ClientInputError("No audio file provided")
        if len(data) > self.max_upload_bytes:
            raise PayloadTooLargeError(self.max_upload_bytes)

        logger.info("Received upload name=%s size=%d type=%s", filename, len(data), mime_type)
        return ParsedUpload(audio=RawAudio(data=data, mime_type=mime_type, filename=filename), memo_id=memo_id)

    def _persist_transcript(
        self,
        upload: ParsedUpload,
        owner_id: str,
        transcript: str,
        audio_url: str,
    ) -> dict[str, Any]:
        title = upload.audio.filename or DEFAULT_MEMO_TITLE
        metadata = {
            "mime_type": upload.audio.mime_type,
            "size_bytes": len(upload.audio.data),
            "model": TRANSCRIBE_MODEL,
        }

        if upload.memo_id:
            updated = self.memos.update_owned(
                upload.memo_id,
                owner_id,
                title=title,
                transcript=transcript,
                audio_url=audio_url,
                metadata=metadata,
            )
            if updated is not None:
                logger.info("Updated live memo %s", upload.memo_id)
                return updated
            logger.info("Live memo %s not found for owner, inserting a new memo", upload.memo_id)

        return self.memos.insert(
            user_id=owner_id,
            title=title,
            transcript=transcript,
            audio_url=audio_url,
            metadata=metadata,
        )
