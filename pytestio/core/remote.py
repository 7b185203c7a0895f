"""Remote session client boundary."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from appium import webdriver
from appium.options.common import AppiumOptions

logger = logging.getLogger("pytestio.remote")

DEFAULT_PROTOCOL = "http"
DEFAULT_HOSTNAME = "127.0.0.1"
DEFAULT_PORT = 4723

# Remote log levels mapped to stdlib levels for the selenium/appium loggers
LOG_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "silent": logging.CRITICAL + 1,
}


class RemoteClient(Protocol):
    """Opens and closes remote automation sessions."""

    def open(self, config: dict[str, Any]) -> Any:
        """Open a session for ``config`` (including its "capabilities")."""

    def close(self, driver: Any) -> None:
        """Close a session opened by ``open``."""


@dataclass(frozen=True)
class CapabilityFlags:
    """Session kind derived from a capability map."""

    is_android: bool = False
    is_ios: bool = False
    is_browser: bool = False

    @property
    def is_mobile(self) -> bool:
        return not self.is_browser

    @classmethod
    def from_capabilities(cls, capabilities: dict[str, Any] | None) -> CapabilityFlags:
        """Classify capabilities.

        A desktop browser declares ``browserName`` without
        ``appium:browserName``; everything else is a device session.
        """
        capabilities = capabilities or {}
        platform = str(capabilities.get("platformName") or "").upper()
        return cls(
            is_android=platform == "ANDROID",
            is_ios=platform == "IOS",
            is_browser="browserName" in capabilities and "appium:browserName" not in capabilities,
        )


def build_url(config: dict[str, Any]) -> str:
    """Build the remote endpoint URL from connection settings."""
    protocol = config.get("protocol") or DEFAULT_PROTOCOL
    hostname = config.get("hostname") or DEFAULT_HOSTNAME
    port = config.get("port") or DEFAULT_PORT
    path = config.get("path") or ""
    if path and not path.startswith("/"):
        path = f"/{path}"

    credentials = ""
    if config.get("user") and config.get("key"):
        credentials = f"{config['user']}:{config['key']}@"

    return f"{protocol}://{credentials}{hostname}:{port}{path}"


def apply_log_level(level: str | None) -> None:
    """Set the selenium/appium client loggers to a remote log level name."""
    value = LOG_LEVELS.get((level or "silent").lower(), logging.WARNING)
    for name in ("selenium", "appium"):
        logging.getLogger(name).setLevel(value)


class AppiumRemoteClient:
    """Open sessions with the Appium Python client."""

    def open(self, config: dict[str, Any]) -> Any:
        """Create a ``webdriver.Remote`` session.

        Args:
            config: Connection settings plus a "capabilities" mapping

        Returns:
            Appium WebDriver instance
        """
        apply_log_level(config.get("log_level"))

        options = AppiumOptions()
        options.load_capabilities(dict(config.get("capabilities") or {}))

        url = build_url(config)
        logger.info(f"Opening remote session at {url.split('@')[-1]}")
        return webdriver.Remote(command_executor=url, options=options)

    def close(self, driver: Any) -> None:
        driver.quit()
