from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, ConfigDict, ValidationError

from tubely.services.errors import ProcessingFaultError
from tubely.services.keys import VideoGeometry, classify_aspect_ratio

logger = logging.getLogger(__name__)

FAST_START_SUFFIX = ".processing"


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    stdout: bytes
    stderr: bytes

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    def run(self, args: Sequence[str]) -> CommandResult: ...


class SubprocessRunner:
    """Runs external tools to completion and captures their output."""

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout

    def run(self, args: Sequence[str]) -> CommandResult:
        try:
            completed = subprocess.run(
                list(args),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ProcessingFaultError(f"{args[0]} is not installed") from exc
        except subprocess.TimeoutExpired as exc:
            raise ProcessingFaultError(f"{args[0]} timed out after {self.timeout}s") from exc
        return CommandResult(completed.returncode, completed.stdout, completed.stderr)


class ProbeStream(BaseModel):
    model_config = ConfigDict(extra="ignore")

    index: int | None = None
    codec_type: str | None = None
    width: int | None = None
    height: int | None = None
    display_aspect_ratio: str | None = None


class ProbeOutput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    streams: list[ProbeStream] = []

    def first_video_stream(self) -> ProbeStream | None:
        return next((s for s in self.streams if s.codec_type == "video"), None)


def fast_start_path(source: Path) -> Path:
    return source.with_name(source.name + FAST_START_SUFFIX)


class MediaProcessor:
    def __init__(
        self,
        runner: CommandRunner,
        ffmpeg_binary: str = "ffmpeg",
        ffprobe_binary: str = "ffprobe",
    ) -> None:
        self.runner = runner
        self.ffmpeg_binary = ffmpeg_binary
        self.ffprobe_binary = ffprobe_binary

    def remux_for_fast_start(self, source: Path, destination: Path | None = None) -> Path:
        """Copy streams into a new MP4 with the moov atom moved to the front.

        Samples are not re-encoded. ``destination`` defaults to
        ``<source>.processing``; on failure its contents must be ignored.
        """
        destination = destination or fast_start_path(source)
        result = self.runner.run(
            [
                self.ffmpeg_binary,
                "-nostdin",
                "-y",
                "-i", str(source),
                "-c", "copy",
                "-movflags", "faststart",
                "-f", "mp4",
                str(destination),
            ]
        )
        if not result.ok:
            logger.error(
                "ffmpeg remux of %s exited with %d: %s",
                source,
                result.returncode,
                _tail(result.stderr),
            )
            raise ProcessingFaultError(f"ffmpeg exited with status {result.returncode}")
        return destination

    def probe(self, path: Path) -> ProbeOutput:
        result = self.runner.run(
            [
                self.ffprobe_binary,
                "-v", "error",
                "-print_format", "json",
                "-show_streams",
                str(path),
            ]
        )
        if not result.ok:
            logger.error(
                "ffprobe of %s exited with %d: %s",
                path,
                result.returncode,
                _tail(result.stderr),
            )
            raise ProcessingFaultError(f"ffprobe exited with status {result.returncode}")

        try:
            output = ProbeOutput.model_validate_json(result.stdout)
        except ValidationError as exc:
            raise ProcessingFaultError("ffprobe returned unparsable output") from exc

        if not output.streams:
            raise ProcessingFaultError("ffprobe reported no streams")
        return output

    def probe_geometry(self, path: Path) -> VideoGeometry:
        stream = self.probe(path).first_video_stream()
        ratio = stream.display_aspect_ratio if stream is not None else None
        return classify_aspect_ratio(ratio)


def _tail(stderr: bytes, limit: int = 500) -> str:
    return stderr.decode("utf-8", errors="replace")[-limit:].strip()
