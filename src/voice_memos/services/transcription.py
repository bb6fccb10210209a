from __future__ import annotations

import logging
import time
from typing import Protocol

from voice_memos.audio.formats import DEFAULT_PENDING_MIME_TYPE
from voice_memos.types import RawAudio, RecognitionConfig, TranscodedAudio, TranscriptResult

logger = logging.getLogger(__name__)

TRANSCRIBE_MODEL = "nvidia/parakeet-ctc-0.6b-asr"


class Transcoder(Protocol):
    async def transcode(self, data: bytes, mime_type: str) -> TranscodedAudio: ...


class Recognizer(Protocol):
    async def recognize(self, audio: TranscodedAudio, config: RecognitionConfig) -> TranscriptResult: ...


class TranscriptionService:
    def __init__(
        self,
        transcoder: Transcoder,
        recognizer: Recognizer,
        *,
        credential: str,
        language_code: str = "en-US",
    ) -> None:
        self.transcoder = transcoder
        self.recognizer = recognizer
        self.credential = credential
        self.language_code = language_code

    async def transcribe(self, raw: RawAudio, *, credential: str | None = None) -> TranscriptResult:
        """Transcode ``raw`` to PCM and run it through the recognizer.

        TranscodeError and RecognitionError propagate unchanged; the PCM buffer
        is dropped as soon as the recognizer returns.
        """
        started = time.monotonic()
        mime_type = raw.mime_type or DEFAULT_PENDING_MIME_TYPE

        transcoded = await self.transcoder.transcode(raw.data, mime_type)
        transcoded_at = time.monotonic()

        config = RecognitionConfig(
            language_code=self.language_code,
            credential=credential if credential is not None else self.credential,
        )
        result = await self.recognizer.recognize(transcoded, config)

        logger.info(
            "Transcribed %s (%d bytes): transcode %.0fms, recognize %.0fms, %d chars",
            raw.filename or mime_type,
            len(raw.data),
            (transcoded_at - started) * 1000,
            (time.monotonic() - transcoded_at) * 1000,
            len(result.text),
        )
        return result
