from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


@dataclass(slots=True)
class Settings:
    host: str
    port: int
    mcp_path: str
    health_path: str
    log_level: str
    data_dir: Path
    database_path: Path
    nvidia_api_key: str
    riva_target: str
    riva_authority: str
    riva_function_id: str | None
    riva_language_code: str
    ffmpeg_path: str
    ffmpeg_build_root: str
    transcode_timeout_seconds: float
    recognition_timeout_seconds: float
    max_upload_bytes: int
    public_base_url: str | None
    api_key: str | None
    mcp_owner_id: str | None


def _as_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    return int(raw)


def _as_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    return float(raw)


def _normalized_path(path: str) -> str:
    if not path.startswith("/"):
        path = f"/{path}"
    return path


def load_settings() -> Settings:
    load_dotenv()
    data_dir = Path(os.getenv("DATA_DIR", "/data")).resolve()
    database_path = Path(os.getenv("DATABASE_PATH", str(data_dir / "voice_memos.sqlite3"))).resolve()

    nvidia_api_key = os.getenv("NVIDIA_API_KEY", "").strip()
    if not nvidia_api_key:
        raise RuntimeError("NVIDIA_API_KEY is required")

    riva_target = os.getenv("RIVA_TARGET", "grpc.nvcf.nvidia.com:443")
    public_base_url = os.getenv("PUBLIC_BASE_URL") or None

    return Settings(
        host=os.getenv("HOST", "0.0.0.0"),
        port=_as_int("PORT", 3000),
        mcp_path=_normalized_path(os.getenv("MCP_PATH", "/mcp")),
        health_path=_normalized_path(os.getenv("HEALTH_PATH", "/healthz")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        data_dir=data_dir,
        database_path=database_path,
        nvidia_api_key=nvidia_api_key,
        riva_target=riva_target,
        riva_authority=os.getenv("RIVA_AUTHORITY", riva_target.rsplit(":", 1)[0]),
        riva_function_id=os.getenv("RIVA_FUNCTION_ID", "d8dd4e9b-fbf5-4fb0-9dba-8cf436c8d965") or None,
        riva_language_code=os.getenv("RIVA_LANGUAGE_CODE", "en-US"),
        ffmpeg_path=os.getenv("FFMPEG_PATH", "ffmpeg"),
        ffmpeg_build_root=os.getenv("FFMPEG_BUILD_ROOT", "/ROOT"),
        transcode_timeout_seconds=_as_float("TRANSCODE_TIMEOUT_SECONDS", 120.0),
        recognition_timeout_seconds=_as_float("RECOGNITION_TIMEOUT_SECONDS", 120.0),
        max_upload_bytes=_as_int("MAX_UPLOAD_BYTES", 75 * 1024 * 1024),
        public_base_url=public_base_url.rstrip("/") if public_base_url else None,
        api_key=os.getenv("API_KEY") or None,
        mcp_owner_id=os.getenv("MCP_OWNER_ID") or None,
    )
