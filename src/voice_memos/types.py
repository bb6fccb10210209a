from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

TranscodeFailure = Literal["tool_missing", "conversion_failed", "timeout"]
RecognitionFailure = Literal["unauthorized", "transport", "timeout", "malformed"]

PCM_SAMPLE_RATE_HERTZ = 16000
LIVE_MEMO_TITLE = "Live Recording"


@dataclass(frozen=True, slots=True)
class RawAudio:
    data: bytes
    mime_type: str
    filename: str | None = None


@dataclass(frozen=True, slots=True)
class TranscodedAudio:
    pcm: bytes
    sample_rate_hertz: int = PCM_SAMPLE_RATE_HERTZ
    channels: int = 1


@dataclass(frozen=True, slots=True)
class RecognitionConfig:
    language_code: str
    credential: str
    encoding: str = "LINEAR_PCM"
    sample_rate_hertz: int = PCM_SAMPLE_RATE_HERTZ
    max_alternatives: int = 1


@dataclass(frozen=True, slots=True)
class TranscriptAlternative:
    transcript: str
    confidence: float | None = None


@dataclass(frozen=True, slots=True)
class TranscriptResult:
    text: str
    alternatives: list[TranscriptAlternative] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class UploadProgress:
    loaded: int
    total: int | None

    @property
    def percent(self) -> int | None:
        if not self.total or self.total <= 0:
            return None
        return max(0, min(100, round(self.loaded / self.total * 100)))


@dataclass(frozen=True, slots=True)
class LiveMemo:
    id: str
    owner_id: str
    title: str = LIVE_MEMO_TITLE
    transcript: str = ""
    audio_url: str = ""
