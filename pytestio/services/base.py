"""Base class for worker-scoped services."""

from __future__ import annotations

from typing import Any


class BaseService:
    """No-op implementations of the worker hooks.

    Subclass and override the hooks you need. Constructed with
    ``(options, capabilities, config)``.
    """

    def __init__(
        self,
        options: dict[str, Any] | None = None,
        capabilities: dict[str, Any] | None = None,
        config: dict[str, Any] | None = None,
    ):
        self.options = options or {}
        self.capabilities = capabilities or {}
        self.config = config or {}
        self.service_name = type(self).__name__

    def before(self, capabilities: dict[str, Any], specs: list[str], driver: Any = None) -> None:
        pass

    def before_suite(self, suite: Any) -> None:
        pass

    def before_test(self, test: Any, context: Any) -> None:
        pass

    def before_hook(self, test: Any, context: Any, hook_name: str) -> None:
        pass

    def before_command(self, command_name: str, args: list[Any]) -> None:
        pass

    def after_command(self, command_name: str, args: list[Any], result: Any, error: Any) -> None:
        pass

    def after_hook(self, test: Any, context: Any, result: Any, hook_name: str) -> None:
        pass

    def after_test(self, test: Any, context: Any, result: Any) -> None:
        pass

    def after_suite(self, suite: Any) -> None:
        pass

    def after(self, exit_code: int, capabilities: dict[str, Any], specs: list[str]) -> None:
        pass
