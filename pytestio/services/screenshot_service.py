"""Service that saves a screenshot of the remote session when a test fails."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any

from pytestio.services.base import BaseService

logger = logging.getLogger("pytestio.services.screenshot")


class ScreenshotService(BaseService):
    """Save failure screenshots to disk.

    Options:
        screenshot_path: Target directory (default "./screenshots")
        screenshot_on_failure: Save a screenshot for failed tests (default True)
    """

    def __init__(
        self,
        options: dict[str, Any] | None = None,
        capabilities: dict[str, Any] | None = None,
        config: dict[str, Any] | None = None,
    ):
        super().__init__(options, capabilities, config)
        self.screenshot_path = Path(
            self.options.get("screenshot_path") or self.options.get("screenshotPath") or "./screenshots"
        )
        self.screenshot_on_failure = (
            self.options.get("screenshot_on_failure", self.options.get("screenshotOnFailure")) is not False
        )
        self.screenshot_index = 0
        self._driver: Any = None

    def before(self, capabilities: dict[str, Any], specs: list[str], driver: Any = None) -> None:
        self._driver = driver

    def after_test(self, test: Any, context: Any, result: Any) -> None:
        if not result.passed and result.error and self.screenshot_on_failure:
            self.take_screenshot(f"failed-{test.title}")

    def after(self, exit_code: int, capabilities: dict[str, Any], specs: list[str]) -> None:
        self._driver = None

    def take_screenshot(self, name: str) -> Path | None:
        """Save a screenshot of the current session.

        Returns:
            Path of the saved file, or None if there is no session or it failed
        """
        if self._driver is None:
            return None

        self.screenshot_index += 1
        timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S-%f")
        safe_name = re.sub(r"[^\w\-]+", "-", name).strip("-")
        path = self.screenshot_path / f"{self.screenshot_index}-{safe_name}-{timestamp}.png"

        try:
            self.screenshot_path.mkdir(parents=True, exist_ok=True)
            path.write_bytes(self._driver.get_screenshot_as_png())
        except Exception as e:
            logger.warning(f"Could not save screenshot: {e}")
            return None

        logger.info(f"Screenshot saved: {path}")
        return path
