from __future__ import annotations

import json
import logging
import re
import time
from pathlib import Path
from typing import Any

from voice_memos.audio.formats import extension_for_mime
from voice_memos.errors import PersistenceError
from voice_memos.types import RawAudio

logger = logging.getLogger(__name__)


def _sanitize_path_component(value: str, fallback: str) -> str:
    clean = re.sub(r"[^a-zA-Z0-9._-]+", "_", value.strip())
    clean = clean.strip("._")
    return clean or fallback


def _word_count(text: str | None) -> int:
    return len((text or "").split())


def to_markdown(memo: dict[str, Any]) -> str:
    """Render a memo as markdown with YAML-style front matter."""
    lines: list[str] = ["---"]

    front_matter = {
        "id": memo.get("id"),
        "title": memo.get("title") or "Voice Memo",
        "created_at": memo.get("created_at"),
        "audio_url": memo.get("audio_url") or None,
        "word_count": _word_count(memo.get("transcript")),
    }
    for key, value in front_matter.items():
        if value is None:
            continue
        lines.append(f"{key}: {json.dumps(value)}")
    lines.append("---")
    lines.append("")

    lines.append(f"# {front_matter['title']}")
    lines.append("")
    lines.append((memo.get("transcript") or "").strip())

    return "\n".join(lines).strip() + "\n"


class AudioStorage:
    def __init__(self, data_dir: Path, public_base_url: str | None = None) -> None:
        self.data_dir = data_dir
        self.audio_root = data_dir / "audio"
        self.audio_root.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url

    def save(self, audio: RawAudio) -> str:
        """Persist the source upload and return the reference stored on the memo."""
        fallback = f"audio.{extension_for_mime(audio.mime_type)}"
        name = _sanitize_path_component(audio.filename or fallback, fallback)
        file_name = f"{int(time.time() * 1000)}_{name}"
        path = self.audio_root / file_name

        try:
            path.write_bytes(audio.data)
        except OSError as exc:
            logger.exception("Failed to write audio file %s", path)
            raise PersistenceError("Failed to store audio file", cause=exc) from exc

        logger.info("Stored %d bytes of %s at %s", len(audio.data), audio.mime_type, path)
        if self.public_base_url:
            return f"{self.public_base_url}/audio/{file_name}"
        return str(path)

    def discard(self, reference: str) -> None:
        """Remove a file previously returned by ``save``; unknown references are ignored."""
        path = self.resolve(reference.rsplit("/", 1)[-1])
        if path is None:
            return
        try:
            path.unlink()
        except FileNotFoundError:
            return
        logger.info("Discarded orphaned audio file %s", path)

    def resolve(self, file_name: str) -> Path | None:
        candidate = self.audio_root / _sanitize_path_component(file_name, "")
        if candidate.parent != self.audio_root or not candidate.is_file():
            return None
        return candidate
