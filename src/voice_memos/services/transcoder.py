from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
from pathlib import Path

from voice_memos.audio.formats import extension_for_mime
from voice_memos.errors import TranscodeError
from voice_memos.types import PCM_SAMPLE_RATE_HERTZ, TranscodedAudio

logger = logging.getLogger(__name__)


def remap_build_root(path: str, build_root: str, runtime_root: str) -> str:
    """Rewrite ``path`` from the build-time root onto the runtime root.

    Bundled binaries can report the root they were packaged under (``/ROOT/...``)
    rather than where the process actually runs. Paths outside ``build_root``
    are returned untouched.
    """
    root = build_root.rstrip("/")
    if not root:
        return path
    if path != root and not path.startswith(root + "/"):
        return path
    relative = path[len(root):].lstrip("/")
    return os.path.join(runtime_root, relative) if relative else runtime_root


def resolve_tool_command(configured: str, build_root: str, cwd: str | None = None) -> str:
    candidate = remap_build_root(configured, build_root, cwd if cwd is not None else os.getcwd())

    if os.sep not in candidate:
        found = shutil.which(candidate)
        if found is None:
            raise TranscodeError("tool_missing", f"{candidate} was not found on PATH")
        return found

    if not os.path.isfile(candidate) or not os.access(candidate, os.X_OK):
        raise TranscodeError("tool_missing", f"{candidate} is not an executable file")
    return candidate


class FfmpegTranscoder:
    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        *,
        build_root: str = "/ROOT",
        timeout_seconds: float = 120.0,
        temp_root: Path | None = None,
    ) -> None:
        self.ffmpeg_path = ffmpeg_path
        self.build_root = build_root
        self.timeout_seconds = timeout_seconds
        self.temp_root = temp_root
        if self.temp_root is not None:
            self.temp_root.mkdir(parents=True, exist_ok=True)

    async def transcode(self, data: bytes, mime_type: str) -> TranscodedAudio:
        executable = resolve_tool_command(self.ffmpeg_path, self.build_root)

        # Both files live in a per-request directory removed on every exit path.
        with tempfile.TemporaryDirectory(prefix="memo-transcode-", dir=self.temp_root) as work_dir:
            input_path = Path(work_dir) / f"input.{extension_for_mime(mime_type)}"
            output_path = Path(work_dir) / "output.raw"
            await asyncio.to_thread(input_path.write_bytes, data)

            await self._run(self.build_command(executable, input_path, output_path))

            if not output_path.exists():
                raise TranscodeError("conversion_failed", "ffmpeg produced no output file")
            pcm = await asyncio.to_thread(output_path.read_bytes)

        logger.info("Converted %d bytes of %s to %d bytes of PCM", len(data), mime_type, len(pcm))
        return TranscodedAudio(pcm=pcm)

    @staticmethod
    def build_command(executable: str, input_path: Path, output_path: Path) -> list[str]:
        return [
            executable,
            "-hide_banner",
            "-loglevel",
            "error",
            "-nostdin",
            "-y",
            "-i",
            str(input_path),
            "-ar",
            str(PCM_SAMPLE_RATE_HERTZ),
            "-ac",
            "1",
            "-f",
            "s16le",
            "-acodec",
            "pcm_s16le",
            str(output_path),
        ]

    async def _run(self, cmd: list[str]) -> None:
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as exc:
            raise TranscodeError("tool_missing", str(exc), cause=exc) from exc

        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            await self._kill(process)
            logger.error("ffmpeg timed out after %.1fs", self.timeout_seconds)
            raise TranscodeError(
                "timeout",
                f"ffmpeg did not finish within {self.timeout_seconds:g}s",
                cause=exc,
            ) from exc
        except asyncio.CancelledError:
            await self._kill(process)
            raise

        diagnostics = stderr.decode("utf-8", "ignore").strip()
        if process.returncode != 0 or diagnostics:
            logger.error("ffmpeg failed (exit %s): %s", process.returncode, diagnostics[:2000])
            raise TranscodeError(
                "conversion_failed",
                diagnostics[:2000] or f"ffmpeg exited with code {process.returncode}",
            )

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()
