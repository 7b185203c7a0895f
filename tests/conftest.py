"""Shared fakes for pytestio tests."""

import base64

import pytest

from pytestio.core.report import TestArtifacts
from pytestio.models.info import TestInfo

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-frame"


class FakeElement:
    """Element handle recording interactions."""

    def __init__(self, element_id):
        self.id = element_id
        self.clicked = 0
        self.sent_keys = []

    def click(self):
        self.clicked += 1

    def send_keys(self, *values):
        self.sent_keys.extend(values)

    def find_element(self, by, value):
        return FakeElement(f"{self.id}/{value}")

    def _internal(self):
        return "internal"

    def __eq__(self, other):
        return isinstance(other, FakeElement) and other.id == self.id

    def __hash__(self):
        return hash(self.id)


class FakeExecutor:
    """Command executor with a WebDriver-style command table."""

    _commands = {
        "get": ("POST", "/session/$sessionId/url"),
        "getTitle": ("GET", "/session/$sessionId/title"),
        "findElement": ("POST", "/session/$sessionId/element"),
        "quit": ("DELETE", "/session/$sessionId"),
    }

    def __init__(self):
        self.sent = []

    def execute(self, command, params=None):
        self.sent.append((command, params))
        if command == "getTitle":
            return {"value": "Example Domain"}
        return {"value": None}


class FakeDriver:
    """Remote session handle with the methods pytestio calls."""

    def __init__(self, session_id="session-123", screenshot=PNG_BYTES, video=b"video-bytes"):
        self.session_id = session_id
        self.command_executor = FakeExecutor()
        self.calls = []
        self.quit_called = False
        self.recording_options = None
        self._screenshot = screenshot
        self._video = video

    def find_element(self, by, value):
        self.calls.append(("find_element", by, value))
        return FakeElement(value)

    def find_elements(self, by, value):
        self.calls.append(("find_elements", by, value))
        return [FakeElement(f"{value}-0"), FakeElement(f"{value}-1")]

    def get(self, url):
        self.calls.append(("get", url))

    @property
    def title(self):
        return self.command_executor.execute("getTitle")["value"]

    def execute_script(self, script, *args):
        for arg in args:
            if not isinstance(arg, (FakeElement, list, dict, str, int, float, type(None))):
                raise TypeError(f"Object of type {type(arg).__name__} is not JSON serializable")
        self.calls.append(("execute_script", script, args))
        return None

    def get_screenshot_as_png(self):
        if isinstance(self._screenshot, Exception):
            raise self._screenshot
        return self._screenshot

    def start_recording_screen(self, **options):
        self.recording_options = options

    def stop_recording_screen(self):
        if not self._video:
            return ""
        return base64.b64encode(self._video).decode()

    def quit(self):
        self.quit_called = True


class FakeClient:
    """Remote client handing out a FakeDriver."""

    def __init__(self, driver=None, error=None):
        self.driver = driver or FakeDriver()
        self.error = error
        self.opened = []
        self.closed = []

    def open(self, config):
        self.opened.append(config)
        if self.error is not None:
            raise self.error
        return self.driver

    def close(self, driver):
        self.closed.append(driver)
        driver.quit()


@pytest.fixture
def fake_driver():
    return FakeDriver()


@pytest.fixture
def fake_client(fake_driver):
    return FakeClient(fake_driver)


@pytest.fixture
def test_info(tmp_path):
    """TestInfo for tests/test_login.py::TestLogin::test_ok with artifacts in tmp_path."""
    return TestInfo(
        title="test_ok",
        node_id="tests/test_login.py::TestLogin::test_ok",
        file="tests/test_login.py",
        title_path=["tests/test_login.py", "TestLogin", "test_ok"],
        project_name="android",
        artifacts=TestArtifacts(tmp_path / "artifacts"),
    )
