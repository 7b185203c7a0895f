"""Frame-capture recording for sessions without native screen recording.

Screenshots are polled into a per-test temporary directory as ``0000.png``,
``0001.png``, ... and encoded into a video with ffmpeg when recording stops.
"""

from __future__ import annotations

import functools
import io
import logging
import re
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Any

from PIL import Image, ImageDraw

from pytestio.core.encoder import RecorderOptions, VideoEncoder
from pytestio.models.info import TestInfo

logger = logging.getLogger("pytestio.frame_recorder")

SCREENSHOT_INTERVAL = 0.5  # seconds
MAX_NAME_LENGTH = 250

_FRAME_FILE = re.compile(r"^(\d+)\.png$")


def format_frame_number(frame_number: int) -> str:
    return f"{frame_number:04d}"


def create_test_name(
    title: str,
    project_name: str | None = None,
    worker_index: int = 0,
    max_characters: int = MAX_NAME_LENGTH,
) -> str:
    """Build a filesystem-safe, worker-unique name for a test recording.

    Whitespace becomes ``-``, dots become ``-``, anything outside
    ``[A-Za-z0-9_!~-]`` is dropped. Names longer than ``max_characters`` keep
    their head and tail joined by ``_``.

    Args:
        title: Test title
        project_name: Project name, "default" when unset
        worker_index: Worker index, keeps parallel recordings apart
        max_characters: Maximum length of the result

    Returns:
        Sanitized name
    """
    name = f"{project_name or 'default'}-worker-{worker_index}-{title}"
    name = re.sub(r"\s+", "-", name)
    name = name.replace(".", "-")
    name = re.sub(r"[^A-Za-z0-9_!~\-]", "", name)

    if len(name) > max_characters:
        keep = (max_characters - 1) // 2
        name = f"{name[:keep]}_{name[-keep:]}"

    return name


def extract_frame_numbers(frames: list[Path] | list[str]) -> list[int]:
    """Sorted frame indices parsed from ``NNNN.png`` file names.

    Indices past 9999 keep growing (``10000.png``).
    """
    numbers = []
    for frame in frames:
        match = _FRAME_FILE.match(Path(frame).name)
        if match:
            numbers.append(int(match.group(1)))
    return sorted(numbers)


def find_missing_frames(frame_numbers: list[int]) -> list[tuple[int, int]]:
    """Find gaps in a sorted frame sequence.

    Returns:
        ``(missing, previous)`` pairs, where ``previous`` is the nearest
        existing frame before ``missing``
    """
    if not frame_numbers:
        return []

    existing = set(frame_numbers)
    missing = []
    previous = frame_numbers[0]
    for current in range(frame_numbers[0] + 1, frame_numbers[-1] + 1):
        if current in existing:
            previous = current
        else:
            missing.append((current, previous))
    return missing


def fill_missing_frames(frames_dir: Path, missing: list[tuple[int, int]]) -> None:
    """Copy the preceding frame into every gap."""
    for target, source in missing:
        shutil.copyfile(
            frames_dir / f"{format_frame_number(source)}.png",
            frames_dir / f"{format_frame_number(target)}.png",
        )


def interpolate_missing_frames(frames_dir: Path) -> int:
    """Make the frame sequence in ``frames_dir`` gapless.

    Returns:
        Number of frames written
    """
    frame_numbers = extract_frame_numbers(list(frames_dir.glob("*.png")))
    missing = find_missing_frames(frame_numbers)
    if missing:
        logger.debug(f"Filling {len(missing)} missing frames in {frames_dir}")
        fill_missing_frames(frames_dir, missing)
    return len(missing)


@functools.lru_cache(maxsize=1)
def placeholder_image() -> bytes:
    """PNG written in place of a frame whose screenshot failed."""
    img = Image.new("RGB", (400, 300), "#f5f5f5")
    draw = ImageDraw.Draw(img)
    draw.rectangle((1, 1, 398, 298), outline="#dddddd", width=2)

    for text, y, fill in (("Image not found", 130, "#666666"), ("Screenshot unavailable", 165, "#999999")):
        left, _, right, _ = draw.textbbox((0, 0), text)
        draw.text(((400 - (right - left)) // 2, y), text, fill=fill)

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


class FrameRecorder:
    """Record a session by polling screenshots and encoding them with ffmpeg.

    Usage:
        recorder = FrameRecorder(driver, test_info, RecorderOptions())
        recorder.start()
        # ... test body ...
        recorder.stop()  # encodes and attaches "video", then removes frames
    """

    def __init__(
        self,
        driver: Any,
        test_info: TestInfo,
        options: RecorderOptions | None = None,
        base_dir: Path | None = None,
        interval: float = SCREENSHOT_INTERVAL,
        encoder: VideoEncoder | None = None,
    ):
        """Initialize recorder.

        Args:
            driver: Session handle with ``get_screenshot_as_png()``
            test_info: Test receiving the video attachment
            options: Video type, quality and encoder time limit
            base_dir: Parent of the frame directory (system temp dir by default)
            interval: Seconds between screenshots
            encoder: Encoder to use instead of one built from ``options``
        """
        self._driver = driver
        self._test_info = test_info
        self._options = options or RecorderOptions()
        self._base_dir = Path(base_dir or tempfile.gettempdir())
        self._interval = interval
        self._encoder = encoder or VideoEncoder(
            video_type=self._options.video_type,
            quality=self._options.quality,
            max_duration=self._options.max_duration,
        )

        self._test_name = ""
        self._output_dir: Path | None = None
        self._frame_number = 0
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def output_dir(self) -> Path | None:
        return self._output_dir

    @property
    def frame_count(self) -> int:
        return self._frame_number

    @property
    def is_recording(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Create the frame directory and start polling."""
        self._test_name = create_test_name(
            self._test_info.title,
            self._test_info.project_name,
            self._test_info.worker_index,
        )
        self._output_dir = self._base_dir / self._test_name
        # Drop frames left by an interrupted run
        shutil.rmtree(self._output_dir, ignore_errors=True)
        self._output_dir.mkdir(parents=True)
        self._frame_number = 0

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._capture_loop,
            name=f"pytestio-frames-{self._test_name[:32]}",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"Frame recording started: {self._output_dir}")

    def _capture_loop(self) -> None:
        while not self._stop_event.wait(self._interval):
            self.capture_frame()

    def capture_frame(self) -> Path | None:
        """Write the next frame; a placeholder replaces a failed screenshot."""
        if self._output_dir is None:
            return None

        frame_path = self._output_dir / f"{format_frame_number(self._frame_number)}.png"
        self._frame_number += 1

        try:
            frame_path.write_bytes(self._driver.get_screenshot_as_png())
        except Exception as e:
            logger.debug(f"Screenshot failed for {frame_path.name}, writing placeholder: {e}")
            try:
                frame_path.write_bytes(placeholder_image())
            except OSError as write_error:
                logger.error(f"Failed to write placeholder image: {write_error}")

        return frame_path

    def _stop_polling(self) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=max(self._interval * 4, 2))
            if self._thread.is_alive():
                logger.warning("Frame capture thread did not exit cleanly")
            self._thread = None

    def stop(self) -> bool:
        """Stop polling, encode the frames and attach the video.

        The frame directory is removed whether or not encoding succeeds.

        Returns:
            True if a video was attached, False when no frames were captured

        Raises:
            EncodeError: If ffmpeg fails or times out
        """
        self._stop_polling()

        try:
            return self._generate_video()
        finally:
            self._cleanup()

    def _generate_video(self) -> bool:
        if self._output_dir is None:
            return False

        frames = sorted(self._output_dir.glob("*.png"))
        if not frames:
            logger.info("No frames captured, skipping video")
            return False

        interpolate_missing_frames(self._output_dir)

        video_path = self._output_dir / f"{self._test_name}.{self._options.video_type}"
        self._encoder.encode(self._output_dir, video_path)
        self._test_info.attach("video", video_path.read_bytes(), self._options.content_type)
        return True

    def _cleanup(self) -> None:
        if self._output_dir is not None:
            shutil.rmtree(self._output_dir, ignore_errors=True)
            logger.debug(f"Removed frame directory: {self._output_dir}")
        self._frame_number = 0
