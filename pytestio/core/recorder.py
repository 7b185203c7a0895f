"""Screen recording bound to a remote session.

Device sessions record natively through the automation server
(``start_recording_screen``/``stop_recording_screen``). Desktop browsers have
no native recorder, so their screen is captured frame by frame and encoded
locally (see ``frame_recorder``).
"""

from __future__ import annotations

import base64
import logging
from pathlib import Path
from typing import Any

from pytestio.core.encoder import RecorderOptions
from pytestio.core.frame_recorder import FrameRecorder
from pytestio.models.info import TestInfo

logger = logging.getLogger("pytestio.recorder")

# Bounds of the server-side recording time limit, in seconds
MIN_TIME_LIMIT = 1
MAX_TIME_LIMIT = 1800


def clamp_time_limit(max_duration: int | None) -> int:
    return min(max(int(max_duration or 180), MIN_TIME_LIMIT), MAX_TIME_LIMIT)


def attach_screenshot(driver: Any, test_info: TestInfo) -> bool:
    """Attach a PNG screenshot once the test reached a terminal status.

    Returns:
        True if a screenshot was attached

    Raises:
        Exception: Whatever the session raises while taking the screenshot
    """
    if not test_info.is_finished:
        logger.debug(f"Skipping screenshot for status {test_info.status!r}")
        return False

    test_info.attach("screenshot", driver.get_screenshot_as_png(), "image/png")
    return True


class NativeRecorder:
    """Recording managed by the automation server on the device."""

    def __init__(self, driver: Any, test_info: TestInfo, options: RecorderOptions | None = None):
        self._driver = driver
        self._test_info = test_info
        self._options = options or RecorderOptions()

    def start(self) -> None:
        """Ask the server to start recording the device screen."""
        time_limit = clamp_time_limit(self._options.max_duration)
        self._driver.start_recording_screen(
            videoType=self._options.video_type,
            videoQuality=self._options.quality,
            timeLimit=time_limit,
        )
        logger.info(f"Native recording started (timeLimit={time_limit}s)")

    def stop(self) -> bool:
        """Stop recording and attach the returned video.

        Returns:
            True if a video was attached
        """
        payload = self._driver.stop_recording_screen()
        if not payload:
            logger.warning("Native recording returned no video")
            return False

        self._test_info.attach("video", base64.b64decode(payload), self._options.content_type)
        return True


class Recorder:
    """Records one test's session with the strategy matching the session kind.

    Failures are logged and never propagate: a missing video must not fail
    the test.

    Usage:
        recorder = Recorder(driver, test_info, {"quality": "high"}, is_browser=False)
        recorder.start()
        # ... test body ...
        recorder.screenshot()
        recorder.stop()
    """

    def __init__(
        self,
        driver: Any,
        test_info: TestInfo,
        options: RecorderOptions | dict[str, Any] | None = None,
        is_browser: bool = False,
        base_dir: Path | None = None,
    ):
        """Initialize recorder.

        Args:
            driver: Remote session handle
            test_info: Test receiving attachments
            options: RecorderOptions or a mapping of recording options
            is_browser: True for desktop browser sessions (frame capture)
            base_dir: Parent directory for captured frames
        """
        if not isinstance(options, RecorderOptions):
            options = RecorderOptions.from_mapping(options)

        self._driver = driver
        self._test_info = test_info
        self._options = options
        self._is_browser = is_browser
        self._strategy: NativeRecorder | FrameRecorder
        if is_browser:
            self._strategy = FrameRecorder(driver, test_info, options, base_dir=base_dir)
        else:
            self._strategy = NativeRecorder(driver, test_info, options)
        self._started = False

    @property
    def options(self) -> RecorderOptions:
        return self._options

    @property
    def strategy(self) -> NativeRecorder | FrameRecorder:
        return self._strategy

    @property
    def is_started(self) -> bool:
        return self._started

    def start(self) -> bool:
        """Start recording. Returns False (and logs) on failure."""
        kind = "frame" if self._is_browser else "native"
        try:
            self._strategy.start()
        except Exception as e:
            logger.error(f"Failed to start {kind} screen recording: {e}")
            return False

        self._started = True
        return True

    def stop(self) -> bool:
        """Stop recording and attach the video. Returns False (and logs) on failure."""
        if not self._started:
            return False
        self._started = False

        kind = "frame" if self._is_browser else "native"
        try:
            return self._strategy.stop()
        except Exception as e:
            logger.error(f"Failed to stop {kind} screen recording: {e}")
            return False

    def screenshot(self) -> bool:
        """Attach a final screenshot (see ``attach_screenshot``)."""
        return attach_screenshot(self._driver, self._test_info)
