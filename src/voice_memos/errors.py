"""Error taxonomy shared by the transcription pipeline and the HTTP surface."""

from __future__ import annotations

from voice_memos.types import RecognitionFailure, TranscodeFailure


class MemoServiceError(Exception):
    """Base error; ``status_code`` is what the HTTP layer responds with."""

    status_code = 500

    def __init__(self, message: str, *, detail: str | None = None, cause: Exception | None = None):
        self.message = message
        self.detail = detail
        self.cause = cause
        super().__init__(message)

    def to_payload(self) -> dict[str, str]:
        payload = {"error": self.message}
        if self.detail:
            payload["detail"] = self.detail
        return payload


class ClientInputError(MemoServiceError):
    """Malformed body, missing field or unsupported upload format."""

    def __init__(self, message: str, *, status_code: int = 400, detail: str | None = None):
        super().__init__(message, detail=detail)
        self.status_code = status_code


class PayloadTooLargeError(ClientInputError):
    def __init__(self, max_bytes: int):
        max_mb = round(max_bytes / (1024 * 1024))
        super().__init__(
            "Audio file too large",
            status_code=413,
            detail=f"Please keep uploads under {max_mb}MB.",
        )


class AuthError(MemoServiceError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class TranscodeError(MemoServiceError):
    status_code = 502

    def __init__(self, kind: TranscodeFailure, details: str = "", cause: Exception | None = None):
        self.kind = kind
        self.details = details
        super().__init__(
            f"Audio transcoding failed ({kind})",
            detail=details or None,
            cause=cause,
        )


class RecognitionError(MemoServiceError):
    status_code = 502

    def __init__(self, kind: RecognitionFailure, details: str = "", cause: Exception | None = None):
        self.kind = kind
        self.details = details
        super().__init__(
            f"Speech recognition failed ({kind})",
            detail=details or None,
            cause=cause,
        )


class PersistenceError(MemoServiceError):
    status_code = 500

    def __init__(self, message: str = "Failed to save memo", cause: Exception | None = None):
        super().__init__(message, detail=str(cause) if cause else None, cause=cause)
