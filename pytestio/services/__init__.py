"""Built-in services."""

from pytestio.services.base import BaseService
from pytestio.services.logging_service import LoggingService
from pytestio.services.screenshot_service import ScreenshotService

__all__ = [
    "BaseService",
    "LoggingService",
    "ScreenshotService",
]
