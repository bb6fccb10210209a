from __future__ import annotations

DEFAULT_PENDING_MIME_TYPE = "audio/webm"
MANUAL_UPLOAD_ACCEPT = ".mp3,.m4a,audio/mpeg,audio/mp3,audio/mp4,audio/x-m4a"


def resolve_upload_mime_type(mime_type: str | None, filename: str | None) -> str | None:
    """Canonical mime type for a manual upload, or None when the format is not accepted.

    The declared mime type wins over the file extension. WAV is never accepted
    here even though it is a valid transcoding input.
    """
    normalized_mime = (mime_type or "").lower()
    if "wav" in normalized_mime:
        return None
    if "mpeg" in normalized_mime or "mp3" in normalized_mime:
        return "audio/mpeg"
    if "mp4" in normalized_mime or "m4a" in normalized_mime:
        return "audio/mp4"

    normalized_name = (filename or "").lower()
    if normalized_name.endswith(".mp3"):
        return "audio/mpeg"
    if normalized_name.endswith(".m4a"):
        return "audio/mp4"
    return None


def extension_for_mime(mime_type: str | None) -> str:
    normalized_mime = (mime_type or "").lower()
    if "m4a" in normalized_mime:
        return "m4a"
    if "ogg" in normalized_mime:
        return "ogg"
    if "mp4" in normalized_mime:
        return "mp4"
    if "wav" in normalized_mime:
        return "wav"
    if "mpeg" in normalized_mime or "mp3" in normalized_mime:
        return "mp3"
    return "webm"


def normalize_upload_content_type(mime_type: str | None, filename: str | None) -> str:
    """Content type used when persisting the source audio."""
    normalized = (mime_type or "").lower()
    name = (filename or "").lower()

    if "m4a" in normalized or "mp4" in normalized or name.endswith((".m4a", ".mp4")):
        return "audio/mp4"
    if "mpeg" in normalized or "mp3" in normalized or name.endswith(".mp3"):
        return "audio/mpeg"
    if "ogg" in normalized or name.endswith(".ogg"):
        return "audio/ogg"
    if "wav" in normalized or name.endswith(".wav"):
        return "audio/wav"

    if normalized and normalized != "application/octet-stream":
        return mime_type or DEFAULT_PENDING_MIME_TYPE
    return DEFAULT_PENDING_MIME_TYPE
