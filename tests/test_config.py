from pathlib import Path

import pytest

from voice_memos import config
from voice_memos.config import load_settings

ENV_VARS = (
    "DATA_DIR",
    "DATABASE_PATH",
    "NVIDIA_API_KEY",
    "RIVA_TARGET",
    "RIVA_AUTHORITY",
    "RIVA_FUNCTION_ID",
    "PORT",
    "MCP_PATH",
    "LOG_LEVEL",
    "PUBLIC_BASE_URL",
    "MAX_UPLOAD_BYTES",
    "API_KEY",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "load_dotenv", lambda: None)
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_requires_nvidia_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NVIDIA_API_KEY", "   ")

    with pytest.raises(RuntimeError, match="NVIDIA_API_KEY"):
        load_settings()


def test_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("NVIDIA_API_KEY", "nvapi-key\n")
    monkeypatch.setenv("DATA_DIR", str(tmp_path))

    settings = load_settings()

    assert settings.nvidia_api_key == "nvapi-key"
    assert settings.port == 3000
    assert settings.database_path == (tmp_path / "voice_memos.sqlite3").resolve()
    assert settings.riva_target == "grpc.nvcf.nvidia.com:443"
    assert settings.riva_authority == "grpc.nvcf.nvidia.com"
    assert settings.riva_function_id == "d8dd4e9b-fbf5-4fb0-9dba-8cf436c8d965"
    assert settings.max_upload_bytes == 75 * 1024 * 1024
    assert settings.api_key is None


def test_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("NVIDIA_API_KEY", "nvapi-key")
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    monkeypatch.setenv("RIVA_TARGET", "localhost:50051")
    monkeypatch.setenv("RIVA_FUNCTION_ID", "")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("MCP_PATH", "tools")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://memos.example.com/")

    settings = load_settings()

    assert settings.riva_authority == "localhost"
    assert settings.riva_function_id is None
    assert settings.port == 8080
    assert settings.mcp_path == "/tools"
    assert settings.log_level == "DEBUG"
    assert settings.public_base_url == "https://memos.example.com"
