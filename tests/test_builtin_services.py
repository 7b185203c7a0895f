"""Tests for the built-in logging and screenshot services."""

import io
from unittest.mock import MagicMock

from rich.console import Console

from conftest import FakeDriver
from pytestio.core.descriptors import build_result, build_test
from pytestio.models.info import TestInfo
from pytestio.services import BaseService, LoggingService, ScreenshotService


def make_console():
    buffer = io.StringIO()
    return Console(file=buffer, width=200, color_system=None), buffer


def finished(status, error=None):
    info = TestInfo(
        title="test_login",
        title_path=["a.py", "TestAuth", "test_login"],
        status=status,
        error=error,
        duration=0.25,
    )
    return build_test(info), build_result(info)


class TestBaseService:
    """Tests for BaseService."""

    def test_stores_constructor_arguments(self):
        """Options, capabilities and config are kept; missing ones are empty."""
        service = BaseService({"a": 1}, {"platformName": "Android"})

        assert service.options == {"a": 1}
        assert service.capabilities == {"platformName": "Android"}
        assert service.config == {}
        assert service.service_name == "BaseService"

    def test_hooks_are_no_ops(self):
        """Every worker hook can be called without effect."""
        service = BaseService()

        assert service.before({}, []) is None
        assert service.before_test(None, None) is None
        assert service.after_command("get", [], None, None) is None
        assert service.after({}, {}, []) is None


class TestLoggingService:
    """Tests for LoggingService."""

    def test_logs_commands(self):
        """Commands are printed before they run."""
        console, buffer = make_console()
        service = LoggingService({}, console=console)

        service.before_command("find_element", ["id", "login"])

        assert 'Command: find_element(["id", "login"])' in buffer.getvalue()

    def test_command_logging_can_be_disabled(self):
        """log_commands=False silences command output."""
        console, buffer = make_console()
        service = LoggingService({"logCommands": False}, console=console)

        service.before_command("get", ["https://example.com"])
        service.after_command("get", [], None, RuntimeError("x"))

        assert buffer.getvalue() == ""

    def test_command_errors(self):
        """Failed commands are reported."""
        console, buffer = make_console()
        service = LoggingService({}, console=console)

        service.after_command("click", [], None, RuntimeError("stale element"))
        service.after_command("get", [], "ok", None)

        output = buffer.getvalue()
        assert "Command click failed" in output
        assert "stale element" in output
        assert "Command get" not in output

    def test_test_start_and_finish(self):
        """Test start and result are printed with the full name."""
        console, buffer = make_console()
        service = LoggingService({}, console=console)
        test, result = finished("passed")

        service.before_test(test, None)
        service.after_test(test, None, result)

        output = buffer.getvalue()
        assert "starting test TestAuth test_login test_login" in output
        assert "✅ test TestAuth test_login test_login finished in 250ms" in output

    def test_failed_test_icon(self):
        """Failed tests are marked as failed."""
        console, buffer = make_console()
        service = LoggingService({}, console=console)
        test, result = finished("failed", AssertionError("nope"))

        service.after_test(test, None, result)

        assert "❌" in buffer.getvalue()


class TestScreenshotService:
    """Tests for ScreenshotService."""

    def test_defaults(self):
        """Screenshots go to ./screenshots and are taken on failure."""
        service = ScreenshotService({})

        assert str(service.screenshot_path) == "screenshots"
        assert service.screenshot_on_failure is True

    def test_failed_test_saves_screenshot(self, tmp_path):
        """A failed test with an error writes a numbered PNG."""
        service = ScreenshotService({"screenshot_path": str(tmp_path)})
        service.before({}, [], FakeDriver())
        test, result = finished("failed", AssertionError("nope"))

        service.after_test(test, None, result)

        files = list(tmp_path.glob("*.png"))
        assert len(files) == 1
        assert files[0].name.startswith("1-failed-test_login-")

    def test_passed_test_saves_nothing(self, tmp_path):
        """Passing tests get no screenshot."""
        service = ScreenshotService({"screenshotPath": str(tmp_path)})
        service.before({}, [], FakeDriver())
        test, result = finished("passed")

        service.after_test(test, None, result)

        assert list(tmp_path.glob("*.png")) == []

    def test_disabled_on_failure(self, tmp_path):
        """screenshot_on_failure=False disables failure screenshots."""
        service = ScreenshotService({"screenshot_path": str(tmp_path), "screenshot_on_failure": False})
        service.before({}, [], FakeDriver())
        test, result = finished("failed", AssertionError("nope"))

        service.after_test(test, None, result)

        assert list(tmp_path.glob("*.png")) == []

    def test_no_session(self, tmp_path):
        """Without a session there is nothing to capture."""
        service = ScreenshotService({"screenshot_path": str(tmp_path)})

        assert service.take_screenshot("manual") is None

    def test_after_releases_driver(self, tmp_path):
        """The session handle is dropped at the end of the session."""
        service = ScreenshotService({"screenshot_path": str(tmp_path)})
        service.before({}, [], FakeDriver())

        service.after(0, {}, [])

        assert service.take_screenshot("late") is None

    def test_screenshot_failure_returns_none(self, tmp_path):
        """A failing screenshot is logged and returns None."""
        driver = MagicMock()
        driver.get_screenshot_as_png.side_effect = RuntimeError("session gone")
        service = ScreenshotService({"screenshot_path": str(tmp_path)})
        service.before({}, [], driver)

        assert service.take_screenshot("manual") is None
