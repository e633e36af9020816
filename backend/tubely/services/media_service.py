"""
Media Inspection and Normalization Service for Tubely

Wraps the two external media tools the video pipeline depends on behind small
capability interfaces, so the pipeline can be exercised with fakes and the
tools can be swapped without touching it:

- MediaProbe: classify a staged video into an AspectBucket. Implemented by
  FFprobeMediaProbe, which reads ``streams[0].display_aspect_ratio`` from
  ``ffprobe -print_format json -show_streams``.
- MediaNormalizer: remux a staged MP4 so its ``moov`` atom precedes the media
  data (``-movflags faststart``), letting players start before the whole file
  has downloaded. Implemented by FFmpegMediaNormalizer with stream copy, so no
  re-encoding happens.

Both tools run through asyncio subprocesses with a timeout; a process that
exceeds it is killed and reaped before the failure is raised.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from tubely.config import Settings
from tubely.core.exceptions import ProbeFailure, TranscodeFailure
from tubely.models.video import AspectBucket


# Configure module logger
logger = logging.getLogger(__name__)

ASPECT_RATIO_BUCKETS: dict[str, AspectBucket] = {
    "16:9": AspectBucket.LANDSCAPE,
    "9:16": AspectBucket.PORTRAIT,
}

NORMALIZED_SUFFIX = ".processing"

# Longest stderr excerpt carried into exception details
STDERR_EXCERPT_CHARS = 2000


# =============================================================================
# Capability Interfaces
# =============================================================================


class MediaProbe(Protocol):
    """Derives the aspect bucket of a staged video."""

    async def get_aspect_ratio(self, file_path: Path) -> AspectBucket: ...


class MediaNormalizer(Protocol):
    """Produces a progressive-playback copy of a staged video."""

    async def process_for_fast_start(self, file_path: Path) -> Path: ...


# =============================================================================
# Subprocess Helper
# =============================================================================


@dataclass
class CommandResult:
    """Outcome of an external media command."""

    returncode: int
    stdout: bytes
    stderr: bytes

    @property
    def stderr_excerpt(self) -> str:
        return self.stderr.decode("utf-8", errors="replace").strip()[-STDERR_EXCERPT_CHARS:]


async def run_media_command(cmd: list[str], timeout: float) -> CommandResult:
    """
    Run an external command, capturing its output, with a hard timeout.

    Args:
        cmd: Program and arguments.
        timeout: Seconds to wait for the process to exit.

    Returns:
        CommandResult: Exit status and captured output.

    Raises:
        TimeoutError: If the process is still running after ``timeout``
            seconds; the process has been killed and reaped.
        OSError: If the program cannot be started (e.g. not installed).
    """
    logger.debug("Running media command: %s", " ".join(cmd))

    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except (TimeoutError, asyncio.CancelledError):
        process.kill()
        await process.wait()
        raise

    return CommandResult(returncode=process.returncode, stdout=stdout, stderr=stderr)


# =============================================================================
# Aspect Ratio Inspection
# =============================================================================


def classify_aspect_ratio(display_aspect_ratio: str | None) -> AspectBucket:
    """
    Map an ffprobe display aspect ratio string onto an AspectBucket.

    Only the exact strings "16:9" and "9:16" are recognized; anything else,
    including a missing ratio, is OTHER.

    Example:
        >>> classify_aspect_ratio("16:9")
        <AspectBucket.LANDSCAPE: 'landscape'>
        >>> classify_aspect_ratio("4:3")
        <AspectBucket.OTHER: 'other'>
    """
    if not display_aspect_ratio:
        return AspectBucket.OTHER
    return ASPECT_RATIO_BUCKETS.get(display_aspect_ratio.strip(), AspectBucket.OTHER)


def parse_probe_output(stdout: bytes) -> str | None:
    """
    Extract ``streams[0].display_aspect_ratio`` from ffprobe JSON output.

    Raises:
        ProbeFailure: If the output is not JSON or lists no streams.
    """
    try:
        data = json.loads(stdout)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProbeFailure(f"ffprobe output is not valid JSON: {e!s}") from e

    streams = data.get("streams") if isinstance(data, dict) else None
    if not streams or not isinstance(streams, list) or not isinstance(streams[0], dict):
        raise ProbeFailure("ffprobe reported no streams")

    ratio = streams[0].get("display_aspect_ratio")
    return ratio if isinstance(ratio, str) else None


class FFprobeMediaProbe:
    """
    MediaProbe backed by the ffprobe binary.

    Example:
        ```python
        probe = FFprobeMediaProbe(settings)
        bucket = await probe.get_aspect_ratio(Path("/tmp/tubely_upload_x/tubely-upload"))
        ```
    """

    def __init__(self, settings: Settings) -> None:
        self.ffprobe_path = settings.ffprobe_path
        self.timeout = settings.media_command_timeout_seconds

    def build_command(self, file_path: Path) -> list[str]:
        return [
            self.ffprobe_path,
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_streams",
            str(file_path),
        ]

    async def get_aspect_ratio(self, file_path: Path) -> AspectBucket:
        """
        Classify a staged video by its first stream's display aspect ratio.

        Raises:
            ProbeFailure: If ffprobe cannot run, times out, exits non-zero, or
                produces output without streams.
        """
        try:
            result = await run_media_command(self.build_command(file_path), self.timeout)
        except TimeoutError as e:
            raise ProbeFailure(f"ffprobe timed out after {self.timeout}s") from e
        except OSError as e:
            raise ProbeFailure(f"Couldn't run ffprobe: {e!s}") from e

        if result.returncode != 0:
            raise ProbeFailure(
                f"ffprobe exited with status {result.returncode}: {result.stderr_excerpt}"
            )

        ratio = parse_probe_output(result.stdout)
        bucket = classify_aspect_ratio(ratio)
        logger.info(
            "Probed video aspect ratio",
            extra={"display_aspect_ratio": ratio, "aspect_bucket": bucket.value},
        )
        return bucket


# =============================================================================
# Fast-start Normalization
# =============================================================================


def _remove_partial_output(output_path: Path) -> None:
    try:
        output_path.unlink(missing_ok=True)
    except OSError as cleanup_error:
        logger.warning(
            "Failed to remove partial remux output '%s': %s", output_path, str(cleanup_error)
        )


class FFmpegMediaNormalizer:
    """
    MediaNormalizer backed by the ffmpeg binary.

    Writes ``<input>.processing`` next to the input; because the input lives in
    a request staging directory, the output is removed with it.
    """

    def __init__(self, settings: Settings) -> None:
        self.ffmpeg_path = settings.ffmpeg_path
        self.timeout = settings.media_command_timeout_seconds

    def build_command(self, input_path: Path, output_path: Path) -> list[str]:
        return [
            self.ffmpeg_path,
            "-hide_banner",
            "-nostdin",
            "-loglevel",
            "error",
            "-y",
            "-i",
            str(input_path),
            "-c",
            "copy",
            "-movflags",
            "faststart",
            "-f",
            "mp4",
            str(output_path),
        ]

    async def process_for_fast_start(self, file_path: Path) -> Path:
        """
        Remux a staged video with its index moved to the front.

        Returns:
            Path: The normalized file.

        Raises:
            TranscodeFailure: If ffmpeg cannot run, times out, exits non-zero,
                or produces no output. Partial output is removed first.
        """
        output_path = file_path.with_name(file_path.name + NORMALIZED_SUFFIX)

        try:
            result = await run_media_command(
                self.build_command(file_path, output_path), self.timeout
            )
        except TimeoutError as e:
            _remove_partial_output(output_path)
            raise TranscodeFailure(f"ffmpeg timed out after {self.timeout}s") from e
        except OSError as e:
            _remove_partial_output(output_path)
            raise TranscodeFailure(f"Couldn't run ffmpeg: {e!s}") from e
        except asyncio.CancelledError:
            _remove_partial_output(output_path)
            raise

        if result.returncode != 0:
            _remove_partial_output(output_path)
            raise TranscodeFailure(
                f"ffmpeg exited with status {result.returncode}: {result.stderr_excerpt}"
            )

        if not output_path.is_file() or output_path.stat().st_size == 0:
            _remove_partial_output(output_path)
            raise TranscodeFailure("ffmpeg produced no output")

        logger.info(
            "Remuxed video for fast start",
            extra={"output": output_path, "bytes": output_path.stat().st_size},
        )
        return output_path
