from __future__ import annotations

import asyncio
import subprocess
from pathlib import Path

from tube2mp3.errors import TranscodeError
from tube2mp3.logging_utils import get_logger


logger = get_logger(__name__)


class AudioTranscodeService:
    """Converts a downloaded media file to MP3 using the ffmpeg CLI.

    The input container is probed by ffmpeg itself, so whatever the
    fetcher saved (mp4, m4a, webm) is accepted. Output is always a
    constant-bitrate MP3 with the video stream dropped.
    """

    def __init__(self, *, ffmpeg_binary: str = "ffmpeg", bitrate: str = "192k") -> None:
        self._ffmpeg = ffmpeg_binary
        self._bitrate = bitrate

    async def transcode_file(self, source: Path, dest: Path) -> Path:
        logger.info("[START] transcode %s -> %s", source, dest)
        return await asyncio.to_thread(self._ffmpeg_transcode, source=source, dest=dest)

    def build_command(self, source: Path, dest: Path) -> list[str]:
        return [
            self._ffmpeg,
            "-hide_banner",
            "-loglevel",
            "error",
            "-y",
            "-i",
            str(source),
            "-vn",
            "-f",
            "mp3",
            "-b:a",
            self._bitrate,
            str(dest),
        ]

    def _ffmpeg_transcode(self, *, source: Path, dest: Path) -> Path:
        """Invoke ffmpeg CLI and check that it produced a non-empty file."""
        cmd = self.build_command(source, dest)
        logger.info("[FFMPEG] cmd=%s", " ".join(cmd))

        try:
            proc = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=False,
            )
        except OSError as exc:
            logger.error("ffmpeg execution failed: %s", exc, exc_info=True)
            raise TranscodeError(f"ffmpeg execution failed: {exc}") from exc

        if proc.returncode != 0:
            message = proc.stderr.decode("utf-8", errors="ignore") or str(
                proc.returncode
            )
            logger.error("ffmpeg transcoding failed %s -> %s: %s", source, dest, message)
            raise TranscodeError(f"ffmpeg transcoding failed: {message}")

        try:
            size = dest.stat().st_size
        except OSError as exc:
            raise TranscodeError(f"ffmpeg output missing: {exc}") from exc
        if size == 0:
            logger.error("ffmpeg produced no output data %s -> %s", source, dest)
            raise TranscodeError("ffmpeg produced no output data")

        logger.info("[FFMPEG] produced %d bytes of audio data", size)
        return dest
