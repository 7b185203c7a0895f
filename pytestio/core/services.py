"""Service discovery, lifecycle and hook dispatch.

Services are plain Python objects implementing any subset of the hook
vocabulary in ``HOOK_NAMES``. They are configured as a list of entries, each
one of:

- an entry-point name registered under the ``pytestio.services`` group
- an import string, ``"package.module:Attribute"`` or ``"package.module"``
- a class, or a module/namespace exposing ``launcher`` and/or ``service``
- a ready-made instance

optionally paired with an options dict (``["name", {...}]``).

Launcher-scoped instances live for the whole worker process; worker-scoped
instances are created for every test.
"""

from __future__ import annotations

import asyncio
import importlib
import inspect
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from importlib.metadata import entry_points
from typing import Any, Callable

from rich.console import Console
from rich.table import Table

from pytestio.core.errors import HookError, ServiceResolutionError

logger = logging.getLogger("pytestio.services")

ENTRY_POINT_GROUP = "pytestio.services"

# Hook vocabulary, in session phase order
HOOK_NAMES = (
    "on_prepare",
    "on_worker_start",
    "before_session",
    "before",
    "before_suite",
    "before_test",
    "before_hook",
    "before_command",
    "after_command",
    "after_hook",
    "after_test",
    "after_suite",
    "after",
    "after_session",
    "on_worker_end",
    "on_complete",
)

LAUNCHER_HOOKS = frozenset({"on_prepare", "on_worker_start", "on_worker_end", "on_complete"})
WORKER_HOOKS = frozenset(HOOK_NAMES) - LAUNCHER_HOOKS

_error_console = Console(stderr=True)


@dataclass
class ServiceEntry:
    """A configured service: identifier plus construction options."""

    identifier: Any
    options: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_config(cls, value: Any) -> ServiceEntry:
        """Normalize one configured service value.

        Accepts ``"name"``, ``["name", {...}]``, ``("name", {...})``,
        ``{"name": ..., "options": {...}}``, classes and instances.
        """
        if isinstance(value, ServiceEntry):
            return value
        if isinstance(value, (list, tuple)) and value:
            options = value[1] if len(value) > 1 and isinstance(value[1], dict) else {}
            return cls(identifier=value[0], options=dict(options))
        if isinstance(value, dict) and "name" in value:
            return cls(identifier=value["name"], options=dict(value.get("options") or {}))
        return cls(identifier=value)

    @property
    def name(self) -> str:
        """Stable name used for logging and the ignored-services list."""
        identifier = self.identifier
        if isinstance(identifier, str):
            return identifier
        if inspect.isclass(identifier) or inspect.ismodule(identifier):
            return identifier.__name__
        return type(identifier).__name__


@dataclass
class ResolvedService:
    """Launcher and worker parts of one service.

    ``launcher``/``worker`` are either classes (instantiated per scope) or a
    shared instance.
    """

    name: str
    launcher: Any = None
    worker: Any = None


@dataclass
class ServiceInstance:
    """An instantiated service and the name it was configured under."""

    name: str
    instance: Any


def _implements(target: Any, hooks: frozenset[str]) -> bool:
    return any(callable(getattr(target, hook, None)) for hook in hooks)


def _load_identifier(identifier: str) -> Any:
    """Load a service target from an entry-point name or import string."""
    for ep in entry_points(group=ENTRY_POINT_GROUP):
        if ep.name == identifier:
            return ep.load()

    module_name, _, attribute = identifier.partition(":")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ServiceResolutionError(f"Cannot resolve service '{identifier}': {e}") from e

    if not attribute:
        return module
    try:
        return getattr(module, attribute)
    except AttributeError as e:
        raise ServiceResolutionError(
            f"Module '{module_name}' has no service attribute '{attribute}'"
        ) from e


def resolve_service(entry: ServiceEntry) -> ResolvedService:
    """Split a configured service into its launcher and worker parts.

    Modules and namespaces declare the parts explicitly through ``launcher``
    and ``service`` attributes. Classes and instances are classified by the
    hooks they implement: launcher hooks make them launcher-scoped, any other
    hook makes them worker-scoped, and implementing both kinds runs them at
    both scopes.

    Raises:
        ServiceResolutionError: If the identifier cannot be loaded or exposes
            no service at all
    """
    target = entry.identifier
    if isinstance(target, str):
        target = _load_identifier(target)

    if inspect.ismodule(target) or (
        not inspect.isclass(target) and (hasattr(target, "launcher") or hasattr(target, "service"))
    ):
        launcher = getattr(target, "launcher", None)
        worker = getattr(target, "service", None)
        if launcher is None and worker is None:
            raise ServiceResolutionError(
                f"Service '{entry.name}' exposes neither 'launcher' nor 'service'"
            )
        return ResolvedService(name=entry.name, launcher=launcher, worker=worker)

    return ResolvedService(
        name=entry.name,
        launcher=target if _implements(target, LAUNCHER_HOOKS) else None,
        worker=target if _implements(target, WORKER_HOOKS) else None,
    )


def _instantiate(target: Any, options: dict[str, Any], capabilities: Any, config: dict[str, Any]) -> Any:
    """Construct a service class with ``(options, capabilities, config)``.

    Classes accepting fewer positional parameters receive only the leading
    ones. Non-class targets are returned as-is.
    """
    if not inspect.isclass(target):
        return target

    args = (options, capabilities, config)
    try:
        params = inspect.signature(target).parameters.values()
    except (TypeError, ValueError):
        return target(*args)

    if any(p.kind is p.VAR_POSITIONAL for p in params):
        return target(*args)

    positional = [
        p for p in params
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
    ]
    return target(*args[:len(positional)])


def _run_awaitable(awaitable: Any) -> Any:
    """Run an awaitable hook result to completion.

    Inside a running event loop (e.g. an async test calling the driver) the
    awaitable gets its own loop on a helper thread.
    """

    async def _wait() -> Any:
        return await awaitable

    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(_wait())

    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="pytestio-hook") as executor:
        return executor.submit(asyncio.run, _wait()).result()


class Services:
    """Manages service lifecycle and hook execution for one worker process.

    Hook lookups are cached per scope and hook name. Launcher entries stay
    valid until ``cleanup()``; worker entries are rebuilt whenever
    ``init_worker()`` creates new worker instances.

    Usage:
        services = Services()
        services.init_launcher({"services": ["logging"], "capabilities": [caps]})
        services.exec_launcher("on_prepare", [config, [caps]])
        services.init_worker(config)
        services.exec_worker("before_test", [test, context])
        services.cleanup()
    """

    def __init__(self) -> None:
        self.launcher_services: list[ServiceInstance] = []
        self.worker_services: list[ServiceInstance] = []
        self.ignored_services: list[str] = []
        self._config: dict[str, Any] = {}
        self._initialized = False
        self._hook_cache: dict[str, list[tuple[str, Callable[..., Any]]]] = {}

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @staticmethod
    def _entries(config: dict[str, Any]) -> list[ServiceEntry]:
        return [ServiceEntry.from_config(value) for value in config.get("services") or []]

    @staticmethod
    def _first_capabilities(config: dict[str, Any]) -> dict[str, Any]:
        capabilities = config.get("capabilities") or {}
        if isinstance(capabilities, list):
            return capabilities[0] if capabilities else {}
        return capabilities

    def init_launcher(self, config: dict[str, Any]) -> None:
        """Instantiate launcher-scoped services once per worker process.

        A second call while initialized is a no-op.

        Args:
            config: Worker config with "services" and "capabilities" keys
        """
        if self._initialized:
            return

        self._config = dict(config)
        entries = self._entries(self._config)
        if not entries:
            return

        capabilities = self._first_capabilities(self._config)
        for entry in entries:
            resolved = resolve_service(entry)
            if resolved.launcher is not None:
                instance = _instantiate(resolved.launcher, entry.options, capabilities, self._config)
                self.launcher_services.append(ServiceInstance(resolved.name, instance))
                logger.debug(f"Launcher service initialized: {resolved.name}")
            if resolved.worker is None:
                self.ignored_services.append(resolved.name)

        self._initialized = True
        logger.info(
            f"Services initialized: {len(self.launcher_services)} launcher, "
            f"{len(self.ignored_services)} launcher-only"
        )

    def init_worker(self, config: dict[str, Any]) -> None:
        """Instantiate worker-scoped services for one test.

        Services the launcher marked as launcher-only are skipped.

        Args:
            config: Test config with "services" and "capabilities" keys
        """
        self._config = {**self._config, **config}
        capabilities = self._first_capabilities(self._config)

        self.worker_services = []
        for entry in self._entries(self._config):
            if entry.name in self.ignored_services:
                continue
            resolved = resolve_service(entry)
            if resolved.worker is None:
                continue
            instance = _instantiate(resolved.worker, entry.options, capabilities, self._config)
            self.worker_services.append(ServiceInstance(resolved.name, instance))
            logger.debug(f"Worker service initialized: {resolved.name}")

        self._clear_scope("worker")

    def _clear_scope(self, scope: str) -> None:
        for key in [k for k in self._hook_cache if k.startswith(f"{scope}:")]:
            del self._hook_cache[key]

    def _hooks(self, scope: str, hook_name: str) -> list[tuple[str, Callable[..., Any]]]:
        cache_key = f"{scope}:{hook_name}"
        if cache_key not in self._hook_cache:
            services = self.launcher_services if scope == "launcher" else self.worker_services
            self._hook_cache[cache_key] = [
                (service.name, getattr(service.instance, hook_name))
                for service in services
                if callable(getattr(service.instance, hook_name, None))
            ]
        return self._hook_cache[cache_key]

    def _execute(self, scope: str, hook_name: str, args: list[Any] | tuple[Any, ...] | None) -> list[Any]:
        hooks = self._hooks(scope, hook_name)
        if not hooks:
            return []

        results = []
        for service_name, hook in hooks:
            try:
                result = hook(*(args or ()))
                if inspect.isawaitable(result):
                    result = _run_awaitable(result)
                results.append(result)
            except Exception as e:
                error = HookError(hook_name, service_name, e)
                logger.error(str(error))
                _error_console.print(f"[red]pytestio[/red] › {error}")
                results.append(error)

        return results

    def exec_launcher(self, hook_name: str, args: list[Any] | tuple[Any, ...] | None = None) -> list[Any]:
        """Run a hook on launcher-scoped services in registration order.

        Args:
            hook_name: Hook to run
            args: Positional arguments passed to every implementation

        Returns:
            One entry per implementation: its return value, or a HookError
        """
        return self._execute("launcher", hook_name, args)

    def exec_worker(self, hook_name: str, args: list[Any] | tuple[Any, ...] | None = None) -> list[Any]:
        """Run a hook on worker-scoped services in registration order.

        Args:
            hook_name: Hook to run
            args: Positional arguments passed to every implementation

        Returns:
            One entry per implementation: its return value, or a HookError
        """
        return self._execute("worker", hook_name, args)

    def cleanup(self) -> None:
        """Drop all service instances and cached hooks. Safe to call repeatedly."""
        self._initialized = False
        self.launcher_services = []
        self.worker_services = []
        self.ignored_services = []
        self._hook_cache.clear()

    def status(self) -> dict[str, Any]:
        """Summarize initialized services and the hooks they implement."""

        def describe(services: list[ServiceInstance]) -> list[dict[str, Any]]:
            return [
                {
                    "name": s.name,
                    "class": type(s.instance).__name__,
                    "hooks": [h for h in HOOK_NAMES if callable(getattr(s.instance, h, None))],
                }
                for s in services
            ]

        return {
            "initialized": self._initialized,
            "configured": [e.name for e in self._entries(self._config)],
            "launcher": describe(self.launcher_services),
            "worker": describe(self.worker_services),
            "ignored": list(self.ignored_services),
        }

    def print_status(self, console: Console | None = None) -> None:
        """Render ``status()`` as a table."""
        console = console or Console()
        status = self.status()

        table = Table(title="pytestio services")
        table.add_column("Scope")
        table.add_column("Service")
        table.add_column("Class")
        table.add_column("Hooks")
        for scope in ("launcher", "worker"):
            for service in status[scope]:
                table.add_row(scope, service["name"], service["class"], ", ".join(service["hooks"]))
        for name in status["ignored"]:
            table.add_row("ignored", name, "", "")

        console.print(table)
