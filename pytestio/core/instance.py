"""Worker-level orchestration of services across the tests of one worker."""

from __future__ import annotations

import logging
from typing import Any

from pytestio.core.config import ProjectOptions
from pytestio.core.hooks import Hooks
from pytestio.core.results import ResultCollector
from pytestio.core.services import Services
from pytestio.models.info import TestInfo, WorkerInfo

logger = logging.getLogger("pytestio.instance")


class Instance:
    """Runs the launcher and worker hook phases for one worker process.

    Phase order per worker::

        worker_start   -> on_prepare, on_worker_start
        test_start     -> before_session            (per test)
        test_middle    -> before, before_suite, before_test, before_hook
        test_end       -> after_hook, after_test, after_suite, after
        session_end    -> after_session
        worker_end     -> on_worker_end, on_complete

    Usage:
        instance = Instance(worker_info, project_options, specs=["tests/test_login.py"])
        instance.worker_start()
        instance.test_start(config, capabilities, services)
        instance.test_middle(test_info, driver)
        ...
        instance.test_end(test_info)
        instance.session_end()
        instance.worker_end()
    """

    def __init__(
        self,
        worker_info: WorkerInfo,
        options: ProjectOptions,
        specs: list[str] | None = None,
        collector: ResultCollector | None = None,
    ):
        self.services = Services()
        self.hooks = Hooks(self.services)
        self.collector = collector or ResultCollector()

        self.worker_info = worker_info
        self._options = options
        self._specs = list(specs or [])
        self._config: dict[str, Any] = {}
        self._started = False

    @property
    def worker_id(self) -> str:
        return self.worker_info.cid

    @property
    def config(self) -> dict[str, Any]:
        """Current WebdriverIO-style config passed to service hooks."""
        return self._config

    @property
    def specs(self) -> list[str]:
        return self._specs

    @property
    def capabilities(self) -> dict[str, Any]:
        capabilities = self._config.get("capabilities") or [{}]
        return capabilities[0]

    def worker_start(self) -> None:
        """Initialize launcher services and run the launcher start hooks."""
        if self._started:
            return

        capabilities = dict(self._options.capabilities)
        self._config = {
            **self._options.config,
            "capabilities": [capabilities],
            "services": list(self._options.services),
            "framework": "pytest",
            "specs": self._specs,
        }

        self.services.init_launcher(self._config)
        self.hooks.on_prepare(self._config, self._config["capabilities"])
        self.hooks.on_worker_start(self.worker_id, capabilities, self._specs, self._config, [])
        self._started = True
        logger.info(f"Worker {self.worker_id} started with {len(self._specs)} spec files")

    def test_start(
        self,
        config: dict[str, Any],
        capabilities: dict[str, Any],
        services: list[Any],
    ) -> None:
        """Create worker services for a test and run ``before_session``.

        Args:
            config: Resolved connection config for the test
            capabilities: Resolved capabilities for the test
            services: Resolved service list for the test
        """
        self._config = {
            **self._config,
            **config,
            "capabilities": [capabilities],
            "services": list(services),
        }

        self.services.init_worker(self._config)
        self.hooks.before_session(self._config, capabilities, self._specs, self.worker_id)

    def test_middle(self, info: TestInfo, driver: Any) -> None:
        """Run the hooks between session open and the test body."""
        self.hooks.before(self.capabilities, self._specs, driver)
        self.hooks.before_suite(info)
        self.hooks.before_test(info, info)
        self.hooks.before_hook(info, info, "before_test")

    def test_end(self, info: TestInfo) -> int:
        """Run the hooks after the test body and record the outcome.

        Returns:
            Exit code passed to the ``after`` hook (0 when the test passed)
        """
        self.hooks.after_hook(info, info, "after_test")
        self.hooks.after_test(info, info)
        self.hooks.after_suite(info)

        exit_code = 0 if info.status == "passed" else 1
        self.hooks.after(exit_code, self.capabilities, self._specs)
        self.collector.add(self.worker_id, info.status, info.duration)
        return exit_code

    def session_end(self) -> None:
        self.hooks.after_session(self._config, self.capabilities, self._specs)

    def worker_end(self) -> int:
        """Run the launcher end hooks and drop all services.

        Returns:
            Worker exit code (1 if any of its tests failed)
        """
        exit_code = self.collector.worker_exit_code(self.worker_id)
        stats = self.collector.worker_stats(self.worker_id)
        results = {
            "finished": stats.total if stats else 0,
            "passed": stats.passed if stats else 0,
            "failed": stats.failed if stats else 0,
        }

        self.hooks.on_worker_end(self.worker_id, exit_code, self._specs, self._options.retries)
        self.hooks.on_complete(exit_code, self._config, self._config.get("capabilities") or [], results)
        self.services.cleanup()
        self._started = False
        logger.info(f"Worker {self.worker_id} finished: {results}")
        return exit_code
