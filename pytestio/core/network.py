"""Replay remote-session traffic into a browser page's network layer.

Commands sent to the automation server never pass through the page, so
network assertions made against the page would see nothing. ``NetworkBridge``
records every command the driver sends and, when capturing stops, replays
each one as a mocked request inside the page.
"""

from __future__ import annotations

import json
import logging
import string
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger("pytestio.network")

DEFAULT_SESSION_ID = "unknown"
MOCK_DOMAIN = "https://pytestio"
METHODS_WITHOUT_BODY = frozenset({"GET", "HEAD"})
SKIPPED_COMMANDS = frozenset({"quit", "deleteSession"})

# Runs inside the page
_FETCH_SCRIPT = """
async ({ url, options }) => {
    const response = await fetch(url, options);
    return response.json();
}
"""


@dataclass
class CapturedNetworkEvent:
    """One remote command as sent by the driver."""

    endpoint: str
    method: str
    command: str | None = None
    body: Any = None
    result: Any = None

    @property
    def route_pattern(self) -> str:
        return f"**/{self.endpoint.lstrip('/')}"

    @property
    def has_body(self) -> bool:
        return self.method.upper() not in METHODS_WITHOUT_BODY and self.body is not None


class NetworkBridge:
    """Capture driver commands and replay them as page network traffic.

    Usage:
        bridge = NetworkBridge(driver, page)
        bridge.start_capturing()
        # ... test drives the remote session ...
        bridge.stop_capturing()  # page now observed one request per command
    """

    def __init__(self, driver: Any, page: Any):
        """Initialize bridge.

        Args:
            driver: Remote session handle exposing ``command_executor``
            page: Page-like router with ``route()`` and ``evaluate()``
        """
        self._driver = driver
        self._page = page
        self._session_id = DEFAULT_SESSION_ID
        self._events: list[CapturedNetworkEvent] = []
        self._executor: Any = None
        self._original_execute: Any = None
        self._patched_instance_attr = False

    @property
    def events(self) -> list[CapturedNetworkEvent]:
        return list(self._events)

    @property
    def is_capturing(self) -> bool:
        return self._executor is not None

    def start_capturing(self) -> None:
        """Start recording commands sent through the driver's executor."""
        if self.is_capturing:
            return

        self._session_id = getattr(self._driver, "session_id", None) or DEFAULT_SESSION_ID
        executor = getattr(self._driver, "command_executor", None)
        if executor is None or not callable(getattr(executor, "execute", None)):
            logger.warning("Driver has no command executor, network capture disabled")
            return

        self._executor = executor
        self._original_execute = executor.execute
        self._patched_instance_attr = "execute" in vars(executor)

        original = self._original_execute

        def execute(command: str, params: dict[str, Any] | None = None) -> Any:
            event = self._build_event(command, params)
            response = original(command, params)
            if event is not None:
                event.result = response.get("value") if isinstance(response, dict) else response
                self._events.append(event)
            return response

        executor.execute = execute
        logger.debug(f"Network capture started for session {self._session_id}")

    def _build_event(self, command: str, params: dict[str, Any] | None) -> CapturedNetworkEvent | None:
        if command in SKIPPED_COMMANDS:
            return None

        commands = getattr(self._executor, "_commands", None) or {}
        command_info = commands.get(command)
        if not command_info:
            return None

        method, path = command_info
        params = dict(params or {})
        session_id = params.pop("sessionId", None) or self._session_id
        endpoint = string.Template(path).safe_substitute({**params, "sessionId": session_id})

        return CapturedNetworkEvent(
            endpoint=endpoint,
            method=str(method).upper(),
            command=command,
            body=params or None,
        )

    def _restore(self) -> None:
        if self._executor is None:
            return
        if self._patched_instance_attr:
            self._executor.execute = self._original_execute
        else:
            del self._executor.execute
        self._executor = None
        self._original_execute = None

    def _headers(self, event: CapturedNetworkEvent) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "webdriver-command": event.command or "unknown",
            "webdriver-method": event.method,
            "webdriver-session-id": self._session_id,
        }

    def _create_mock_route(self, event: CapturedNetworkEvent) -> None:
        headers = self._headers(event)
        body = json.dumps(event.result if event.result is not None else {}, default=str)

        def fulfill(route: Any, *_: Any) -> None:
            route.fulfill(status=200, content_type="application/json", headers=headers, body=body)

        self._page.route(event.route_pattern, fulfill)

    def _simulate_request(self, event: CapturedNetworkEvent) -> Any:
        options: dict[str, Any] = {
            "method": event.method,
            "headers": {"Content-Type": "application/json"},
        }
        if event.has_body:
            options["body"] = json.dumps(event.body, default=str)

        return self._page.evaluate(_FETCH_SCRIPT, {"url": f"{MOCK_DOMAIN}{event.endpoint}", "options": options})

    def stop_capturing(self) -> int:
        """Stop capturing and replay every captured command into the page.

        Replay failures are logged per event and never raised. Captured
        events are discarded afterwards.

        Returns:
            Number of events replayed successfully
        """
        self._restore()

        replayed = 0
        for event in self._events:
            try:
                self._create_mock_route(event)
                self._simulate_request(event)
                replayed += 1
            except Exception as e:
                logger.warning(f"Failed to replay {event.method} {event.endpoint}: {e}")

        logger.debug(f"Replayed {replayed}/{len(self._events)} captured commands")
        self._events.clear()
        return replayed
