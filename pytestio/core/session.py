"""Remote session lifecycle for one test.

``SessionManager`` moves through these states::

    IDLE -> CONFIGURING -> OPENING -> ACTIVE -> CLOSING -> CLOSED
      \\-> SKIPPED (no capabilities)

Opening failures propagate; every closing step is guarded on its own so a
failing screenshot or recording never leaves the remote session open.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from rich.console import Console

from pytestio.core.command import InstrumentedDriver
from pytestio.core.config import RecordingMode
from pytestio.core.errors import SessionOpenError
from pytestio.core.hooks import Hooks
from pytestio.core.recorder import Recorder, attach_screenshot
from pytestio.core.remote import AppiumRemoteClient, CapabilityFlags, RemoteClient
from pytestio.models.info import TestInfo

logger = logging.getLogger("pytestio.session")

DEFAULT_REMOTE_HOST = "http://127.0.0.1:4723"
DEFAULT_SYSTEM_PORT = 8210
DEFAULT_MJPEG_PORT = 9110
DEFAULT_LOG_LEVEL = "silent"

_console = Console()


class SessionState(Enum):
    IDLE = "idle"
    CONFIGURING = "configuring"
    OPENING = "opening"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"
    SKIPPED = "skipped"


def format_annotation(value: Any) -> str:
    """Render a capability value for a test annotation."""
    if isinstance(value, (dict, list)):
        try:
            return json.dumps(value)
        except (TypeError, ValueError):
            return str(value)
    return str(value)


class SessionManager:
    """Opens, instruments, records and closes one remote session.

    Usage:
        manager = SessionManager(config, capabilities, test_info, recording=True)
        with manager as driver:
            if driver is not None:
                driver.find_element("accessibility id", "Login").click()
    """

    def __init__(
        self,
        config: dict[str, Any] | None,
        capabilities: dict[str, Any] | None,
        test_info: TestInfo,
        recording: RecordingMode | bool | dict[str, Any] | None = None,
        screenshot: bool = False,
        worker_index: int | None = None,
        trace_enabled: bool = False,
        client: RemoteClient | None = None,
        hooks: Hooks | None = None,
        recording_dir: Path | None = None,
    ):
        """Initialize manager.

        Args:
            config: Connection settings (protocol, hostname, port, path, log_level, ...)
            capabilities: Capability map; empty means no session
            test_info: Test receiving annotations, steps and attachments
            recording: Recording setting (RecordingMode, bool or options mapping)
            screenshot: Attach a final screenshot when the session closes
            worker_index: Worker index for port offsets (defaults to test_info's)
            trace_enabled: Also allocate a per-worker MJPEG port
            client: Remote client (Appium by default)
            hooks: Hook dispatcher for per-command service hooks
            recording_dir: Parent directory for frame-capture recordings
        """
        self._config = dict(config or {})
        self._capabilities = dict(capabilities or {})
        self._test_info = test_info
        self._recording = RecordingMode.from_value(recording)
        self._screenshot = screenshot
        self._worker_index = test_info.worker_index if worker_index is None else worker_index
        self._trace_enabled = trace_enabled
        self._client = client or AppiumRemoteClient()
        self._hooks = hooks
        self._recording_dir = recording_dir

        self.flags = CapabilityFlags.from_capabilities(self._capabilities)
        self.state = SessionState.IDLE

        self._raw_driver: Any = None
        self._driver: InstrumentedDriver | None = None
        self._recorder: Recorder | None = None

    @staticmethod
    def is_valid(capabilities: dict[str, Any] | None) -> bool:
        """A session is only created for a non-empty capability map."""
        return bool(capabilities)

    @property
    def config(self) -> dict[str, Any]:
        return self._config

    @property
    def capabilities(self) -> dict[str, Any]:
        return self._capabilities

    @property
    def driver(self) -> InstrumentedDriver | None:
        return self._driver

    @property
    def raw_driver(self) -> Any:
        return self._raw_driver

    @property
    def recorder(self) -> Recorder | None:
        return self._recorder

    @property
    def session_id(self) -> str | None:
        return getattr(self._raw_driver, "session_id", None)

    def configure(self) -> None:
        """Apply device port offsets and connection defaults."""
        self.state = SessionState.CONFIGURING
        if self.flags.is_mobile:
            self._configure_mobile()
        self._configure_common()

    def _configure_mobile(self) -> None:
        default = urlparse(DEFAULT_REMOTE_HOST)
        self._config["protocol"] = self._config.get("protocol") or default.scheme
        self._config["hostname"] = self._config.get("hostname") or default.hostname
        self._config["port"] = self._config.get("port") or default.port

        system_port = DEFAULT_SYSTEM_PORT + self._worker_index
        if self.flags.is_android:
            self._capabilities["appium:systemPort"] = system_port
        if self.flags.is_ios:
            self._capabilities["appium:wdaLocalPort"] = system_port
        if self._trace_enabled:
            self._capabilities["appium:mjpegServerPort"] = DEFAULT_MJPEG_PORT + self._worker_index

        logger.debug(
            f"Mobile session on worker {self._worker_index}: "
            f"{self._config['protocol']}://{self._config['hostname']}:{self._config['port']}"
        )

    def _configure_common(self) -> None:
        self._config["log_level"] = self._config.get("log_level") or DEFAULT_LOG_LEVEL

    def open(self) -> InstrumentedDriver | None:
        """Open the remote session.

        Returns:
            Instrumented session handle, or None when the session is skipped

        Raises:
            SessionOpenError: If the remote client fails to open the session
            RuntimeError: If called twice
        """
        if self.state not in (SessionState.IDLE, SessionState.CONFIGURING):
            raise RuntimeError(f"Session cannot be opened from state {self.state.value}")

        if not self.is_valid(self._capabilities):
            self.state = SessionState.SKIPPED
            logger.info(f"No capabilities for '{self._test_info.title}', skipping session")
            _console.print("[yellow]pytestio[/yellow] › Skipping › No capabilities provided.")
            return None

        if self.state is SessionState.IDLE:
            self.configure()
        self.state = SessionState.OPENING

        for key, value in self._capabilities.items():
            self._test_info.annotate(key, format_annotation(value))

        try:
            self._raw_driver = self._client.open({**self._config, "capabilities": dict(self._capabilities)})
        except Exception as e:
            self.state = SessionState.CLOSED
            raise SessionOpenError(f"Failed to open remote session: {e}") from e

        self._driver = InstrumentedDriver(self._raw_driver, self._test_info.step, self._hooks)

        if self.session_id:
            self._test_info.annotate("Session ID", format_annotation(self.session_id))

        if self._recording.enabled:
            self._recorder = Recorder(
                self._raw_driver,
                self._test_info,
                self._recording.options,
                is_browser=self.flags.is_browser,
                base_dir=self._recording_dir,
            )
            self._recorder.start()

        self.state = SessionState.ACTIVE
        logger.info(f"Session opened: {self.session_id}")
        return self._driver

    def close(self) -> None:
        """Screenshot, stop recording and close the remote session.

        Each step is guarded; failures are logged and never raised. Calling
        this on a session that is not active is a no-op.
        """
        if self.state is not SessionState.ACTIVE:
            return

        self.state = SessionState.CLOSING

        if self._screenshot:
            try:
                attach_screenshot(self._raw_driver, self._test_info)
            except Exception as e:
                logger.error(f"Final screenshot failed: {e}")

        if self._recorder is not None:
            try:
                self._recorder.stop()
            except Exception as e:
                logger.error(f"Stopping recording failed: {e}")

        try:
            self._client.close(self._raw_driver)
        except Exception as e:
            logger.error(f"Closing remote session failed: {e}")

        logger.info(f"Session closed: {self.session_id}")
        self._driver = None
        self._raw_driver = None
        self._recorder = None
        self.state = SessionState.CLOSED

    def __enter__(self) -> InstrumentedDriver | None:
        return self.open()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
