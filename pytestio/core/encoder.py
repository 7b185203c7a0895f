"""Video encoding of captured frame sequences using ffmpeg."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pytestio.core.errors import EncodeError, EncodeTimeoutError

logger = logging.getLogger("pytestio.encoder")


@dataclass(frozen=True)
class QualitySetting:
    """Constant rate factor and output width for a quality preset."""

    crf: int
    scale: str


QUALITY_SETTINGS = {
    "high": QualitySetting(crf=18, scale="1920:trunc(ow/a/2)*2"),
    "medium": QualitySetting(crf=23, scale="1280:trunc(ow/a/2)*2"),
    "low": QualitySetting(crf=32, scale="800:trunc(ow/a/2)*2"),
}

# Container -> video codec
VIDEO_TYPES = {
    "mp4": "libx264",
    "webm": "libvpx-vp9",
}

DEFAULT_QUALITY = "medium"
DEFAULT_VIDEO_TYPE = "mp4"
DEFAULT_MAX_DURATION = 180

INPUT_FRAME_RATE = 10
FRAME_PATTERN = "%04d.png"
# Polling captures slower than real time; stretch playback to compensate
PLAYBACK_STRETCH = "3.0"


def quality_setting(quality: str | int | None) -> QualitySetting:
    """Resolve a preset name or raw CRF value.

    Numeric values are used as the CRF with the medium output scale. Unknown
    names fall back to medium.
    """
    if isinstance(quality, bool):
        quality = None
    if isinstance(quality, (int, float)):
        return QualitySetting(crf=int(quality), scale=QUALITY_SETTINGS["medium"].scale)
    if isinstance(quality, str) and quality.strip().isdigit():
        return QualitySetting(crf=int(quality), scale=QUALITY_SETTINGS["medium"].scale)
    return QUALITY_SETTINGS.get(str(quality or DEFAULT_QUALITY).lower(), QUALITY_SETTINGS[DEFAULT_QUALITY])


def video_codec(video_type: str | None) -> str:
    return VIDEO_TYPES.get((video_type or DEFAULT_VIDEO_TYPE).lower(), VIDEO_TYPES[DEFAULT_VIDEO_TYPE])


class VideoEncoder:
    """Encode a directory of numbered PNG frames into a video.

    Usage:
        encoder = VideoEncoder(video_type="webm", quality="high", max_duration=60)
        video_path = encoder.encode(frames_dir, frames_dir / "test.webm")
    """

    def __init__(
        self,
        video_type: str = DEFAULT_VIDEO_TYPE,
        quality: str | int = DEFAULT_QUALITY,
        max_duration: int = DEFAULT_MAX_DURATION,
        ffmpeg_path: str = "ffmpeg",
    ):
        """Initialize encoder.

        Args:
            video_type: Container, "mp4" or "webm"
            quality: Preset name ("high", "medium", "low") or raw CRF value
            max_duration: Hard wall-clock limit for the encoder in seconds
            ffmpeg_path: ffmpeg executable
        """
        self.video_type = video_type
        self.quality = quality
        self.max_duration = max_duration
        self.ffmpeg_path = ffmpeg_path

    def build_args(self, frames_dir: Path, output_path: Path) -> list[str]:
        """Build the ffmpeg argument list (without the executable)."""
        setting = quality_setting(self.quality)
        return [
            "-y",
            "-r", str(INPUT_FRAME_RATE),
            "-i", str(Path(frames_dir) / FRAME_PATTERN),
            "-vcodec", video_codec(self.video_type),
            "-crf", str(setting.crf),
            "-pix_fmt", "yuv420p",
            "-vf", f"scale={setting.scale},setpts={PLAYBACK_STRETCH}*PTS",
            "-movflags", "+faststart",
            str(output_path),
        ]

    def encode(self, frames_dir: Path, output_path: Path) -> Path:
        """Run ffmpeg over ``frames_dir``.

        Args:
            frames_dir: Directory containing ``%04d.png`` frames
            output_path: Video file to write

        Returns:
            Path to the encoded video

        Raises:
            EncodeTimeoutError: If ffmpeg exceeds ``max_duration`` (it is killed)
            EncodeError: If ffmpeg is missing, exits non-zero or writes no output
        """
        cmd = [self.ffmpeg_path, *self.build_args(frames_dir, output_path)]
        logger.debug(f"Encoding video: {' '.join(cmd)}")

        try:
            result = subprocess.run(cmd, capture_output=True, timeout=self.max_duration)
        except subprocess.TimeoutExpired as e:
            raise EncodeTimeoutError(
                f"ffmpeg timed out after {self.max_duration}s encoding {frames_dir}"
            ) from e
        except FileNotFoundError as e:
            raise EncodeError(f"ffmpeg not found: {self.ffmpeg_path}") from e

        if result.returncode != 0:
            stderr = result.stderr.decode(errors="replace").strip() if result.stderr else "Unknown error"
            raise EncodeError(f"ffmpeg exited with code {result.returncode}: {stderr}")

        output_path = Path(output_path)
        if not output_path.exists() or output_path.stat().st_size == 0:
            raise EncodeError(f"ffmpeg produced no output at {output_path}")

        logger.info(f"Encoded video: {output_path} ({output_path.stat().st_size} bytes)")
        return output_path


@dataclass(frozen=True)
class RecorderOptions:
    """Recording options shared by the native and frame-capture strategies."""

    video_type: str = DEFAULT_VIDEO_TYPE
    quality: str | int = DEFAULT_QUALITY
    max_duration: int = DEFAULT_MAX_DURATION

    @classmethod
    def from_mapping(cls, options: dict[str, Any] | None) -> RecorderOptions:
        """Build options from a config mapping.

        Accepts snake_case keys and the camelCase spelling used by
        WebdriverIO configs (``videoType``, ``maxDuration``).
        """
        options = options or {}
        video_type = options.get("video_type", options.get("videoType")) or DEFAULT_VIDEO_TYPE
        quality = options.get("quality", DEFAULT_QUALITY)
        max_duration = options.get("max_duration", options.get("maxDuration"))

        try:
            max_duration = int(max_duration) if max_duration is not None else DEFAULT_MAX_DURATION
        except (TypeError, ValueError):
            max_duration = DEFAULT_MAX_DURATION

        if str(video_type).lower() not in VIDEO_TYPES:
            logger.warning(f"Unsupported video type '{video_type}', using {DEFAULT_VIDEO_TYPE}")
            video_type = DEFAULT_VIDEO_TYPE

        return cls(video_type=str(video_type).lower(), quality=quality, max_duration=max_duration)

    @property
    def content_type(self) -> str:
        return f"video/{self.video_type}"
