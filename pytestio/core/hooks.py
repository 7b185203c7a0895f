"""Lifecycle hook phases with their fixed argument tuples.

Each method maps one session phase to a service hook. Suite, test and result
arguments are passed as descriptors shaped for WebdriverIO-style services.
"""

from __future__ import annotations

import logging
from typing import Any

from pytestio.core.descriptors import build_result, build_suite, build_test
from pytestio.core.services import Services
from pytestio.models.info import TestInfo

logger = logging.getLogger("pytestio.hooks")


class Hooks:
    """Dispatch lifecycle phases to launcher and worker services."""

    def __init__(self, services: Services):
        self._services = services

    # Launcher phases

    def on_prepare(self, config: dict[str, Any], capabilities: list[dict[str, Any]]) -> list[Any]:
        """Before any worker starts: ``(config, capabilities)``."""
        return self._services.exec_launcher("on_prepare", [config, capabilities])

    def on_worker_start(
        self,
        cid: str,
        capabilities: dict[str, Any],
        specs: list[str],
        args: dict[str, Any],
        exec_argv: list[str],
    ) -> list[Any]:
        """Worker process started: ``(cid, capabilities, specs, args, exec_argv)``."""
        return self._services.exec_launcher(
            "on_worker_start", [cid, capabilities, specs, args, exec_argv]
        )

    def on_worker_end(self, cid: str, exit_code: int, specs: list[str], retries: int = 0) -> list[Any]:
        """Worker process finishing: ``(cid, exit_code, specs, retries)``."""
        return self._services.exec_launcher("on_worker_end", [cid, exit_code, specs, retries])

    def on_complete(
        self,
        exit_code: int,
        config: dict[str, Any],
        capabilities: list[dict[str, Any]],
        results: dict[str, int],
    ) -> list[Any]:
        """All tests of the worker done: ``(exit_code, config, capabilities, results)``."""
        return self._services.exec_launcher("on_complete", [exit_code, config, capabilities, results])

    # Worker phases

    def before_session(
        self,
        config: dict[str, Any],
        capabilities: dict[str, Any],
        specs: list[str],
        cid: str,
    ) -> list[Any]:
        """Before the remote session opens: ``(config, capabilities, specs, cid)``."""
        return self._services.exec_worker("before_session", [config, capabilities, specs, cid])

    def before(self, capabilities: dict[str, Any], specs: list[str], driver: Any) -> list[Any]:
        """Session open: ``(capabilities, specs, driver)``."""
        return self._services.exec_worker("before", [capabilities, specs, driver])

    def before_suite(self, info: TestInfo) -> list[Any]:
        """``(suite,)``"""
        return self._services.exec_worker("before_suite", [build_suite(info)])

    def before_test(self, info: TestInfo, context: Any) -> list[Any]:
        """``(test, context)``"""
        test = build_test(info)
        logger.debug(f"Before test: title={test.title!r} full_name={test.full_name!r} parent={test.parent!r}")
        return self._services.exec_worker("before_test", [test, context])

    def before_hook(self, info: TestInfo, context: Any, hook_name: str) -> list[Any]:
        """``(test, context, hook_name)``"""
        return self._services.exec_worker("before_hook", [build_test(info), context, hook_name])

    def before_command(self, command_name: str, args: list[Any]) -> list[Any]:
        """``(command_name, args)``"""
        return self._services.exec_worker("before_command", [command_name, args])

    def after_command(self, command_name: str, args: list[Any], result: Any, error: Any) -> list[Any]:
        """``(command_name, args, result, error)``"""
        return self._services.exec_worker("after_command", [command_name, args, result, error])

    def after_hook(self, info: TestInfo, context: Any, hook_name: str) -> list[Any]:
        """``(test, context, result, hook_name)``"""
        return self._services.exec_worker(
            "after_hook", [build_test(info), context, build_result(info), hook_name]
        )

    def after_test(self, info: TestInfo, context: Any) -> list[Any]:
        """``(test, context, result)``"""
        return self._services.exec_worker("after_test", [build_test(info), context, build_result(info)])

    def after_suite(self, info: TestInfo) -> list[Any]:
        """``(suite,)``"""
        return self._services.exec_worker("after_suite", [build_suite(info)])

    def after(self, exit_code: int, capabilities: dict[str, Any], specs: list[str]) -> list[Any]:
        """All tests of the session done: ``(exit_code, capabilities, specs)``."""
        return self._services.exec_worker("after", [exit_code, capabilities, specs])

    def after_session(self, config: dict[str, Any], capabilities: dict[str, Any], specs: list[str]) -> list[Any]:
        """Remote session closed: ``(config, capabilities, specs)``."""
        return self._services.exec_worker("after_session", [config, capabilities, specs])
