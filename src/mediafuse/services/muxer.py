"""
Audio/video/subtitle muxing with ffmpeg.

Inputs are staged from storage into a private scratch directory, merged by
an ffmpeg child process and the output is uploaded back to storage. The
scratch directory is removed on every exit path.
"""

import logging
import tempfile
from pathlib import Path, PurePosixPath

from mediafuse.core.config import Settings, get_settings
from mediafuse.core.exceptions import MediaFuseError, MuxError, ProcessTimeoutError
from mediafuse.integrations.storage_client import ObjectStorage
from mediafuse.models.enums import MuxQuality
from mediafuse.models.mux import MuxRequest, MuxResult
from mediafuse.services.process import AsyncProcessRunner, ProcessPort

logger = logging.getLogger(__name__)

# (crf, preset) used when the video stream has to be re-encoded
QUALITY_PRESETS: dict[MuxQuality, tuple[str, str]] = {
    MuxQuality.HIGH: ("18", "slow"),
    MuxQuality.MEDIUM: ("23", "medium"),
    MuxQuality.LOW: ("28", "veryfast"),
}

CONTENT_TYPES = {
    "mp4": "video/mp4",
    "mov": "video/quicktime",
    "mkv": "video/x-matroska",
    "webm": "video/webm",
}


def build_output_locator(video_locator: str, output_format: str = "mp4") -> str:
    """Derive the merged artifact locator from the video locator."""
    head, sep, name = video_locator.rpartition("/")
    stem = PurePosixPath(name).stem or "video"
    return f"{head}{sep}{stem}_merged.{output_format}"


def escape_filter_path(path: Path) -> str:
    """Escape a path for use inside an ffmpeg filter argument."""
    return str(path).replace("\\", "\\\\").replace(":", "\\:").replace("'", "\\'")


def build_ffmpeg_args(
    request: MuxRequest,
    video_path: Path,
    output_path: Path,
    audio_path: Path | None = None,
    subtitle_path: Path | None = None,
    binary: str = "ffmpeg",
) -> list[str]:
    """
    Build the ffmpeg command line for a mux request.

    The video stream is copied unless subtitles are burned in, in which
    case it is re-encoded with libx264 using the request's quality preset.

    Args:
        request: Mux request (format and quality)
        video_path: Local video input
        output_path: Local output file
        audio_path: Local narration input
        subtitle_path: Local SRT file to burn in
        binary: ffmpeg executable

    Returns:
        Argument list, program first
    """
    args = [binary, "-hide_banner", "-nostdin", "-nostats", "-y", "-i", str(video_path)]
    if audio_path is not None:
        args += ["-i", str(audio_path)]

    if subtitle_path is not None:
        crf, preset = QUALITY_PRESETS[request.quality]
        args += [
            "-vf",
            f"subtitles={escape_filter_path(subtitle_path)}",
            "-c:v",
            "libx264",
            "-crf",
            crf,
            "-preset",
            preset,
            "-pix_fmt",
            "yuv420p",
        ]
    else:
        args += ["-c:v", "copy"]

    if audio_path is not None:
        args += [
            "-map",
            "0:v:0",
            "-map",
            "1:a:0",
            "-c:a",
            "aac",
            "-b:a",
            "128k",
            "-shortest",
        ]

    if request.output_format == "mp4":
        args += ["-movflags", "+faststart"]

    args.append(str(output_path))
    return args


def _suffix(locator: str, default: str) -> str:
    return PurePosixPath(locator).suffix or default


class MediaMuxer:
    """
    Merges a video with narration and optional subtitles.

    Never retries; a failed mux surfaces as MuxError and the caller
    decides how to degrade.

    Example:
        ```python
        muxer = MediaMuxer(storage)
        result = await muxer.mux(request, build_output_locator(request.video_locator))
        ```
    """

    def __init__(
        self,
        storage: ObjectStorage,
        process_runner: ProcessPort | None = None,
        settings: Settings | None = None,
    ) -> None:
        """
        Initialize the muxer.

        Args:
            storage: Storage holding inputs and receiving the output
            process_runner: Runner for the ffmpeg child process
            settings: Application settings instance
        """
        settings = settings or get_settings()
        self._storage = storage
        self._runner = process_runner or AsyncProcessRunner(
            tail_lines=settings.mux_stderr_tail_lines
        )
        self._binary = settings.ffmpeg_binary
        self._timeout = settings.mux_timeout_seconds
        self._scratch_dir = settings.scratch_dir

    async def mux(self, request: MuxRequest, output_locator: str) -> MuxResult:
        """
        Mux the request's inputs into a single artifact.

        Args:
            request: Locators of the inputs and encoding options
            output_locator: Where the merged artifact is stored

        Returns:
            MuxResult with merged=True

        Raises:
            MuxError: If staging, the ffmpeg run or the upload fails
        """
        logger.info(
            "Muxing media",
            extra={
                "video_locator": request.video_locator,
                "has_audio": request.audio_locator is not None,
                "has_subtitles": request.subtitle_locator is not None,
                "output_locator": output_locator,
            },
        )

        try:
            if self._scratch_dir is not None:
                Path(self._scratch_dir).mkdir(parents=True, exist_ok=True)
            scratch_dir = tempfile.TemporaryDirectory(prefix="mediafuse-mux-", dir=self._scratch_dir)
        except OSError as e:
            raise MuxError(f"Cannot create mux scratch directory: {e}") from e

        with scratch_dir as tmp:
            scratch = Path(tmp)
            video_path = scratch / f"video{_suffix(request.video_locator, '.mp4')}"
            audio_path = (
                scratch / f"audio{_suffix(request.audio_locator, '.mp3')}"
                if request.audio_locator
                else None
            )
            subtitle_path = scratch / "subtitles.srt" if request.subtitle_locator else None
            output_path = scratch / f"output.{request.output_format}"

            try:
                await self._storage.download_to_path(request.video_locator, video_path)
                if audio_path is not None:
                    await self._storage.download_to_path(request.audio_locator, audio_path)
                if subtitle_path is not None:
                    await self._storage.download_to_path(request.subtitle_locator, subtitle_path)
            except MediaFuseError as e:
                raise MuxError(f"Failed to stage mux inputs: {e.message}") from e
            except OSError as e:
                raise MuxError(f"Failed to stage mux inputs: {e}") from e

            args = build_ffmpeg_args(
                request,
                video_path=video_path,
                output_path=output_path,
                audio_path=audio_path,
                subtitle_path=subtitle_path,
                binary=self._binary,
            )

            try:
                result = await self._runner.run(args, timeout=self._timeout)
            except FileNotFoundError as e:
                raise MuxError(f"Muxer executable not found: {self._binary}") from e
            except OSError as e:
                raise MuxError(f"Failed to start muxer: {e}") from e
            except ProcessTimeoutError as e:
                raise MuxError(e.message, stderr_tail=e.stderr_tail) from e

            if result.exit_code != 0:
                logger.warning(
                    "ffmpeg exited with an error",
                    extra={"exit_code": result.exit_code, "stderr_tail": result.stderr_tail},
                )
                raise MuxError(
                    f"ffmpeg exited with code {result.exit_code}",
                    exit_code=result.exit_code,
                    stderr_tail=result.stderr_tail,
                )

            if not output_path.exists() or output_path.stat().st_size == 0:
                raise MuxError(
                    "ffmpeg produced no output",
                    exit_code=result.exit_code,
                    stderr_tail=result.stderr_tail,
                )

            try:
                size_bytes = await self._storage.upload_from_path(
                    output_path,
                    output_locator,
                    content_type=CONTENT_TYPES.get(request.output_format),
                )
            except MediaFuseError as e:
                raise MuxError(f"Failed to store muxed output: {e.message}") from e
            except OSError as e:
                raise MuxError(f"Failed to store muxed output: {e}") from e

        logger.info(
            "Mux complete",
            extra={"output_locator": output_locator, "size_bytes": size_bytes},
        )
        return MuxResult(
            output_locator=output_locator,
            size_bytes=size_bytes,
            has_audio=request.audio_locator is not None,
            has_subtitles=request.subtitle_locator is not None,
            merged=True,
        )
