"""NVIDIA Riva speech recognition over gRPC.

The ASR schema is compiled from the bundled ``.proto`` files once per process
and the TLS channel is opened once by the runtime. Both are shared read-only
across concurrent calls; each ``recognize`` call builds its own request and
metadata.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass
from types import ModuleType
from typing import Any

import grpc

from voice_memos.errors import RecognitionError
from voice_memos.types import RecognitionConfig, TranscodedAudio, TranscriptAlternative, TranscriptResult

logger = logging.getLogger(__name__)

ASR_PROTO = "voice_memos/protos/riva_asr.proto"

# Values of nvidia.riva.AudioEncoding
AUDIO_ENCODINGS = {"LINEAR_PCM": 1, "FLAC": 2, "MULAW": 3, "OGGOPUS": 4, "ALAW": 20}

_UNAUTHORIZED_CODES = (grpc.StatusCode.UNAUTHENTICATED, grpc.StatusCode.PERMISSION_DENIED)


@dataclass(frozen=True, slots=True)
class RivaSchema:
    protos: ModuleType
    services: ModuleType


@functools.cache
def load_schema() -> RivaSchema:
    protos, services = grpc.protos_and_services(ASR_PROTO)
    logger.info("Loaded Riva ASR schema from %s", ASR_PROTO)
    return RivaSchema(protos=protos, services=services)


def open_channel(target: str, authority: str | None = None) -> grpc.Channel:
    options = [("grpc.default_authority", authority)] if authority else []
    return grpc.secure_channel(target, grpc.ssl_channel_credentials(), options=options)


def bearer_metadata(credential: str, function_id: str | None = None) -> tuple[tuple[str, str], ...]:
    metadata = [("authorization", f"Bearer {credential.strip()}")]
    if function_id:
        metadata.append(("function-id", function_id))
    return tuple(metadata)


def build_request(schema: RivaSchema, audio: TranscodedAudio, config: RecognitionConfig) -> Any:
    try:
        encoding = AUDIO_ENCODINGS[config.encoding]
    except KeyError as exc:
        raise ValueError(f"Unsupported audio encoding: {config.encoding}") from exc

    return schema.protos.RecognizeRequest(
        config=schema.protos.RecognitionConfig(
            encoding=encoding,
            sample_rate_hertz=config.sample_rate_hertz,
            language_code=config.language_code,
            max_alternatives=config.max_alternatives,
            enable_automatic_punctuation=True,
        ),
        audio=audio.pcm,
    )


def parse_response(response: Any) -> TranscriptResult:
    """Map a RecognizeResponse onto a TranscriptResult.

    Riva splits long audio on silence, so the text joins the top alternative of
    every result. A response without results means no speech, not a failure.
    """
    results = getattr(response, "results", None)
    if results is None:
        raise RecognitionError("malformed", "Recognize response has no results field")

    # Every result contributes its top alternative, not only results[0].
    pieces: list[str] = []
    for result in results:
        alternatives = getattr(result, "alternatives", None) or []
        if len(alternatives) > 0:
            piece = str(alternatives[0].transcript or "").strip()
            if piece:
                pieces.append(piece)

    first_alternatives: list[TranscriptAlternative] = []
    if len(results) > 0:
        for alternative in getattr(results[0], "alternatives", None) or []:
            confidence = getattr(alternative, "confidence", None)
            first_alternatives.append(
                TranscriptAlternative(
                    transcript=str(alternative.transcript or "").strip(),
                    confidence=float(confidence) if confidence is not None else None,
                )
            )

    return TranscriptResult(text=" ".join(pieces).strip(), alternatives=first_alternatives)


def classify_rpc_error(exc: grpc.RpcError) -> RecognitionError:
    code = exc.code() if callable(getattr(exc, "code", None)) else None
    details = exc.details() if callable(getattr(exc, "details", None)) else None
    message = str(details or exc or "gRPC call failed")

    if code in _UNAUTHORIZED_CODES:
        return RecognitionError("unauthorized", message, cause=exc)
    if code == grpc.StatusCode.DEADLINE_EXCEEDED:
        return RecognitionError("timeout", message, cause=exc)
    label = code.name if isinstance(code, grpc.StatusCode) else "UNKNOWN"
    return RecognitionError("transport", f"{label}: {message}", cause=exc)


def await_call(call: grpc.Future) -> asyncio.Future:
    """Adapt a callback-style gRPC future into an asyncio future.

    The result is settled exactly once from the event loop thread. Cancelling
    the returned future cancels the RPC.
    """
    loop = asyncio.get_running_loop()
    outcome: asyncio.Future = loop.create_future()

    def _settle(done: grpc.Future) -> None:
        if outcome.done():
            return
        if done.cancelled():
            outcome.cancel()
            return
        error = done.exception()
        if error is not None:
            outcome.set_exception(error)
        else:
            outcome.set_result(done.result())

    def _on_call_done(done: grpc.Future) -> None:
        if not loop.is_closed():
            loop.call_soon_threadsafe(_settle, done)

    def _on_outcome_done(fut: asyncio.Future) -> None:
        if fut.cancelled():
            call.cancel()

    outcome.add_done_callback(_on_outcome_done)
    call.add_done_callback(_on_call_done)
    return outcome


class RivaRecognizer:
    def __init__(
        self,
        stub: Any,
        schema: RivaSchema,
        *,
        function_id: str | None = None,
        timeout_seconds: float | None = 120.0,
        channel: grpc.Channel | None = None,
    ) -> None:
        self.stub = stub
        self.schema = schema
        self.function_id = function_id
        self.timeout_seconds = timeout_seconds
        self._channel = channel

    @classmethod
    def connect(
        cls,
        target: str,
        *,
        authority: str | None = None,
        function_id: str | None = None,
        timeout_seconds: float | None = 120.0,
    ) -> RivaRecognizer:
        schema = load_schema()
        channel = open_channel(target, authority)
        stub = schema.services.RivaSpeechRecognitionStub(channel)
        logger.info("Opened Riva channel to %s", target)
        return cls(
            stub,
            schema,
            function_id=function_id,
            timeout_seconds=timeout_seconds,
            channel=channel,
        )

    async def recognize(self, audio: TranscodedAudio, config: RecognitionConfig) -> TranscriptResult:
        request = build_request(self.schema, audio, config)
        metadata = bearer_metadata(config.credential, self.function_id)

        try:
            call = self.stub.Recognize.future(request, metadata=metadata, timeout=self.timeout_seconds)
            response = await await_call(call)
        except grpc.RpcError as exc:
            error = classify_rpc_error(exc)
            logger.error("Riva Recognize failed (%s): %s", error.kind, error.details)
            raise error from exc

        result = parse_response(response)
        if not result.text:
            logger.info("Riva returned no speech for %d bytes of PCM", len(audio.pcm))
        return result

    def close(self) -> None:
        if self._channel is not None:
            self._channel.close()
