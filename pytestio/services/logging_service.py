"""Service that reports test and command activity on the console."""

from __future__ import annotations

import json
import logging
from typing import Any

from rich.console import Console

from pytestio.services.base import BaseService

logger = logging.getLogger("pytestio.services.logging")


class LoggingService(BaseService):
    """Print test starts, results and (optionally) every remote command.

    Options:
        log_commands: Print each command before it runs (default True)
    """

    def __init__(
        self,
        options: dict[str, Any] | None = None,
        capabilities: dict[str, Any] | None = None,
        config: dict[str, Any] | None = None,
        console: Console | None = None,
    ):
        super().__init__(options, capabilities, config)
        self.log_commands = self.options.get("log_commands", self.options.get("logCommands")) is not False
        self._console = console or Console()

    def before_command(self, command_name: str, args: list[Any]) -> None:
        if self.log_commands:
            self._console.print(f"🔧 Command: {command_name}({json.dumps(args, default=str)})", markup=False)

    def after_command(self, command_name: str, args: list[Any], result: Any, error: Any) -> None:
        if self.log_commands and error is not None:
            self._console.print(f"[red]❌ Command {command_name} failed:[/red] {error}")
            logger.warning(f"Command {command_name} failed: {error}")

    def before_test(self, test: Any, context: Any) -> None:
        self._console.print(f"📝 LoggingService: starting test {test.full_name}", markup=False)

    def after_test(self, test: Any, context: Any, result: Any) -> None:
        icon = "✅" if result.passed else "❌"
        self._console.print(
            f"📝 LoggingService: {icon} test {test.full_name} finished in {result.duration:.0f}ms",
            markup=False,
        )
