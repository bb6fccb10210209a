import pytest

from voice_memos.errors import RecognitionError, TranscodeError
from voice_memos.services.transcription import TranscriptionService
from voice_memos.types import RawAudio, TranscodedAudio, TranscriptResult


class FakeTranscoder:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls = []
        self.error = error

    async def transcode(self, data: bytes, mime_type: str) -> TranscodedAudio:
        self.calls.append((data, mime_type))
        if self.error:
            raise self.error
        return TranscodedAudio(pcm=b"pcm:" + data)


class FakeRecognizer:
    def __init__(self, text: str = "hello world", error: Exception | None = None) -> None:
        self.calls = []
        self.text = text
        self.error = error

    async def recognize(self, audio, config) -> TranscriptResult:
        self.calls.append((audio, config))
        if self.error:
            raise self.error
        return TranscriptResult(text=self.text)


@pytest.mark.asyncio
async def test_transcribe_pipes_pcm_into_recognizer() -> None:
    transcoder = FakeTranscoder()
    recognizer = FakeRecognizer()
    service = TranscriptionService(transcoder, recognizer, credential="server-key", language_code="en-GB")

    result = await service.transcribe(RawAudio(data=b"ogg", mime_type="audio/ogg", filename="a.ogg"))

    assert result.text == "hello world"
    assert transcoder.calls == [(b"ogg", "audio/ogg")]
    audio, config = recognizer.calls[0]
    assert audio.pcm == b"pcm:ogg"
    assert config.language_code == "en-GB"
    assert config.credential == "server-key"
    assert config.encoding == "LINEAR_PCM"
    assert config.sample_rate_hertz == 16000


@pytest.mark.asyncio
async def test_transcribe_defaults_mime_and_accepts_credential_override() -> None:
    transcoder = FakeTranscoder()
    recognizer = FakeRecognizer()
    service = TranscriptionService(transcoder, recognizer, credential="server-key")

    await service.transcribe(RawAudio(data=b"blob", mime_type=""), credential="caller-key")

    assert transcoder.calls == [(b"blob", "audio/webm")]
    assert recognizer.calls[0][1].credential == "caller-key"


@pytest.mark.asyncio
async def test_transcode_failure_skips_recognition() -> None:
    recognizer = FakeRecognizer()
    service = TranscriptionService(
        FakeTranscoder(error=TranscodeError("conversion_failed", "bad input")),
        recognizer,
        credential="k",
    )

    with pytest.raises(TranscodeError) as excinfo:
        await service.transcribe(RawAudio(data=b"x", mime_type="audio/webm"))

    assert excinfo.value.kind == "conversion_failed"
    assert recognizer.calls == []


@pytest.mark.asyncio
async def test_recognition_failure_propagates() -> None:
    service = TranscriptionService(
        FakeTranscoder(),
        FakeRecognizer(error=RecognitionError("unauthorized", "bad key")),
        credential="k",
    )

    with pytest.raises(RecognitionError) as excinfo:
        await service.transcribe(RawAudio(data=b"x", mime_type="audio/webm"))

    assert excinfo.value.kind == "unauthorized"


@pytest.mark.asyncio
async def test_no_speech_returns_empty_text() -> None:
    service = TranscriptionService(FakeTranscoder(), FakeRecognizer(text=""), credential="k")

    result = await service.transcribe(RawAudio(data=b"silence", mime_type="audio/webm"))

    assert result.text == ""
