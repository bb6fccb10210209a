from __future__ import annotations

import atexit
import logging

from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse

from voice_memos.api.routes import MemoRoutes
from voice_memos.config import Settings, load_settings
from voice_memos.db.database import Database
from voice_memos.db.memos import MemosRepository
from voice_memos.mcp_tools import ToolRegistry
from voice_memos.services.live_sessions import LiveSessionManager
from voice_memos.services.recognizer import RivaRecognizer
from voice_memos.services.storage import AudioStorage
from voice_memos.services.transcoder import FfmpegTranscoder
from voice_memos.services.transcription import TranscriptionService

logger = logging.getLogger(__name__)


class AppRuntime:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.database = Database(settings.database_path)
        self.memos = MemosRepository(self.database)
        self.live_sessions = LiveSessionManager(self.memos)
        self.storage = AudioStorage(settings.data_dir, public_base_url=settings.public_base_url)

        self.transcoder = FfmpegTranscoder(
            settings.ffmpeg_path,
            build_root=settings.ffmpeg_build_root,
            timeout_seconds=settings.transcode_timeout_seconds,
            temp_root=settings.data_dir / "_work",
        )
        self.recognizer = RivaRecognizer.connect(
            settings.riva_target,
            authority=settings.riva_authority,
            function_id=settings.riva_function_id,
            timeout_seconds=settings.recognition_timeout_seconds,
        )
        self.transcription = TranscriptionService(
            self.transcoder,
            self.recognizer,
            credential=settings.nvidia_api_key,
            language_code=settings.riva_language_code,
        )

    def close(self) -> None:
        self.recognizer.close()
        self.database.close()


def create_app(runtime: AppRuntime) -> FastMCP:
    mcp = FastMCP(name="voice-memos")

    tools = ToolRegistry(runtime.memos, runtime.settings.mcp_owner_id)
    tools.register(mcp)

    routes = MemoRoutes(
        memos=runtime.memos,
        live_sessions=runtime.live_sessions,
        transcription=runtime.transcription,
        storage=runtime.storage,
        max_upload_bytes=runtime.settings.max_upload_bytes,
        api_key=runtime.settings.api_key,
    )
    for route in routes.routes():
        mcp.custom_route(route.path, methods=sorted(route.methods or []))(route.endpoint)

    @mcp.custom_route(runtime.settings.health_path, methods=["GET"])
    async def health(_: Request) -> JSONResponse:
        return JSONResponse(
            {
                "ok": True,
                "db_path": str(runtime.settings.database_path),
                "mcp_path": runtime.settings.mcp_path,
                "riva_target": runtime.settings.riva_target,
            }
        )

    return mcp


def cli() -> None:
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )

    runtime = AppRuntime(settings)
    atexit.register(runtime.close)

    app = create_app(runtime)
    logger.info("Starting voice memo server on %s:%s%s", settings.host, settings.port, settings.mcp_path)
    app.run(
        transport="http",
        host=settings.host,
        port=settings.port,
        path=settings.mcp_path,
    )


if __name__ == "__main__":
    cli()
