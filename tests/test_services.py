"""Tests for service resolution, lifecycle and hook dispatch."""

import asyncio
import types
from unittest.mock import MagicMock, patch

import pytest

from pytestio.core.errors import HookError, ServiceResolutionError
from pytestio.core.services import ServiceEntry, Services, resolve_service
from pytestio.services.logging_service import LoggingService


class LauncherOnly:
    def __init__(self, options, capabilities, config):
        self.options = options
        self.capabilities = capabilities
        self.prepared = []

    def on_prepare(self, config, capabilities):
        self.prepared.append((config, capabilities))
        return "prepared"


class WorkerOnly:
    instances = 0

    def __init__(self, options, capabilities, config):
        WorkerOnly.instances += 1
        self.options = options
        self.capabilities = capabilities

    def before_test(self, test, context):
        return f"before {test}"


class BothScopes:
    def __init__(self, options):
        self.options = options

    def on_complete(self, exit_code, config, capabilities, results):
        return exit_code

    def after_test(self, test, context, result):
        return result


class Failing:
    def __init__(self, options, capabilities, config):
        pass

    def before_test(self, test, context):
        raise RuntimeError("boom")


class AsyncService:
    def __init__(self, options, capabilities, config):
        pass

    async def before_test(self, test, context):
        return "awaited"


def make_config(*services, capabilities=None):
    return {"services": list(services), "capabilities": [capabilities or {"platformName": "Android"}]}


class TestServiceEntry:
    """Tests for ServiceEntry.from_config."""

    def test_plain_name(self):
        """A string is an identifier without options."""
        entry = ServiceEntry.from_config("logging")
        assert entry.identifier == "logging"
        assert entry.options == {}
        assert entry.name == "logging"

    def test_name_with_options(self):
        """A [name, options] pair carries options."""
        entry = ServiceEntry.from_config(["logging", {"log_commands": False}])
        assert entry.identifier == "logging"
        assert entry.options == {"log_commands": False}

    def test_mapping_form(self):
        """A {name, options} mapping is accepted."""
        entry = ServiceEntry.from_config({"name": "screenshot", "options": {"screenshot_path": "/tmp"}})
        assert entry.identifier == "screenshot"
        assert entry.options == {"screenshot_path": "/tmp"}

    def test_class_name(self):
        """Classes are named after the class."""
        assert ServiceEntry.from_config(WorkerOnly).name == "WorkerOnly"


class TestResolveService:
    """Tests for resolve_service."""

    def test_launcher_hooks_make_launcher(self):
        """A class with only launcher hooks has no worker part."""
        resolved = resolve_service(ServiceEntry(LauncherOnly))
        assert resolved.launcher is LauncherOnly
        assert resolved.worker is None

    def test_worker_hooks_make_worker(self):
        """A class with only worker hooks has no launcher part."""
        resolved = resolve_service(ServiceEntry(WorkerOnly))
        assert resolved.launcher is None
        assert resolved.worker is WorkerOnly

    def test_both_scopes(self):
        """A class implementing both kinds of hooks runs at both scopes."""
        resolved = resolve_service(ServiceEntry(BothScopes))
        assert resolved.launcher is BothScopes
        assert resolved.worker is BothScopes

    def test_namespace_with_launcher_and_service(self):
        """A namespace declares its parts explicitly."""
        namespace = types.SimpleNamespace(launcher=LauncherOnly, service=WorkerOnly)

        resolved = resolve_service(ServiceEntry(namespace))

        assert resolved.launcher is LauncherOnly
        assert resolved.worker is WorkerOnly

    def test_import_string(self):
        """A "module:Attribute" string is imported."""
        with patch("pytestio.core.services.entry_points", return_value=[]):
            resolved = resolve_service(
                ServiceEntry("pytestio.services.logging_service:LoggingService")
            )

        assert resolved.worker is LoggingService

    def test_entry_point_name(self):
        """A registered entry-point name is loaded."""
        ep = MagicMock()
        ep.name = "logging"
        ep.load.return_value = LoggingService

        with patch("pytestio.core.services.entry_points", return_value=[ep]):
            resolved = resolve_service(ServiceEntry("logging"))

        assert resolved.worker is LoggingService
        assert resolved.name == "logging"

    def test_unknown_module_raises(self):
        """An unknown module raises ServiceResolutionError."""
        with patch("pytestio.core.services.entry_points", return_value=[]):
            with pytest.raises(ServiceResolutionError):
                resolve_service(ServiceEntry("pytestio_missing_service_module"))

    def test_missing_attribute_raises(self):
        """A missing attribute raises ServiceResolutionError."""
        with patch("pytestio.core.services.entry_points", return_value=[]):
            with pytest.raises(ServiceResolutionError, match="NoSuchService"):
                resolve_service(ServiceEntry("pytestio.services.base:NoSuchService"))

    def test_namespace_without_parts_raises(self):
        """A module exposing neither part raises ServiceResolutionError."""
        module = types.ModuleType("empty_service")

        with pytest.raises(ServiceResolutionError, match="neither"):
            resolve_service(ServiceEntry(module))


class TestServicesLifecycle:
    """Tests for init_launcher, init_worker and cleanup."""

    def test_init_launcher_instantiates_launcher_services(self):
        """Launcher classes receive (options, capabilities, config)."""
        services = Services()
        config = make_config([LauncherOnly, {"key": "value"}])

        services.init_launcher(config)

        assert services.is_initialized
        assert len(services.launcher_services) == 1
        instance = services.launcher_services[0].instance
        assert instance.options == {"key": "value"}
        assert instance.capabilities == {"platformName": "Android"}

    def test_launcher_only_services_are_ignored_by_workers(self):
        """Services without a worker part are skipped by init_worker."""
        services = Services()
        config = make_config(LauncherOnly)

        services.init_launcher(config)
        services.init_worker(config)

        assert services.ignored_services == ["LauncherOnly"]
        assert services.worker_services == []

    def test_init_launcher_is_idempotent(self):
        """A second init_launcher call is a no-op."""
        services = Services()
        config = make_config(LauncherOnly)

        services.init_launcher(config)
        services.init_launcher(config)

        assert len(services.launcher_services) == 1

    def test_no_services_configured(self):
        """Nothing is created without configured services."""
        services = Services()

        services.init_launcher({"capabilities": [{}]})
        services.init_worker({"capabilities": [{}]})

        assert services.launcher_services == []
        assert services.worker_services == []
        assert services.exec_worker("before_test", [None, None]) == []

    def test_init_worker_creates_new_instances_per_test(self):
        """Worker services are instantiated for every test."""
        WorkerOnly.instances = 0
        services = Services()
        config = make_config(WorkerOnly)

        services.init_launcher(config)
        services.init_worker(config)
        first = services.worker_services[0].instance
        services.init_worker(config)
        second = services.worker_services[0].instance

        assert WorkerOnly.instances == 2
        assert first is not second

    def test_fewer_constructor_parameters(self):
        """Classes taking only options are constructed with options."""
        services = Services()
        config = make_config([BothScopes, {"a": 1}])

        services.init_launcher(config)
        services.init_worker(config)

        assert services.launcher_services[0].instance.options == {"a": 1}
        assert services.worker_services[0].instance.options == {"a": 1}

    def test_instances_are_used_as_is(self):
        """A ready-made instance is registered without construction."""
        service = WorkerOnly({}, {}, {})
        services = Services()

        services.init_worker(make_config(service))

        assert services.worker_services[0].instance is service

    def test_cleanup_drops_everything(self):
        """cleanup() clears all instances and can be called repeatedly."""
        services = Services()
        config = make_config(LauncherOnly, WorkerOnly)
        services.init_launcher(config)
        services.init_worker(config)

        services.cleanup()
        services.cleanup()

        assert not services.is_initialized
        assert services.launcher_services == []
        assert services.worker_services == []
        assert services.ignored_services == []
        assert services.exec_launcher("on_prepare", [{}, []]) == []


class TestHookDispatch:
    """Tests for exec_launcher and exec_worker."""

    def test_exec_launcher_returns_results(self):
        """Launcher hooks receive the given arguments."""
        services = Services()
        services.init_launcher(make_config(LauncherOnly))

        results = services.exec_launcher("on_prepare", [{"a": 1}, [{}]])

        assert results == ["prepared"]
        assert services.launcher_services[0].instance.prepared == [({"a": 1}, [{}])]

    def test_results_in_registration_order(self):
        """One result per implementation, in configured order."""
        services = Services()
        services.init_worker(make_config(WorkerOnly, AsyncService))

        results = services.exec_worker("before_test", ["t", None])

        assert results == ["before t", "awaited"]

    def test_failing_hook_returns_hook_error(self):
        """A raising hook yields a HookError and does not stop other services."""
        services = Services()
        services.init_worker(make_config(Failing, WorkerOnly))

        results = services.exec_worker("before_test", ["t", None])

        assert isinstance(results[0], HookError)
        assert results[0].hook_name == "before_test"
        assert results[0].service == "Failing"
        assert isinstance(results[0].__cause__, RuntimeError)
        assert results[1] == "before t"

    def test_unimplemented_hook_returns_empty(self):
        """Hooks nobody implements return an empty list."""
        services = Services()
        services.init_worker(make_config(WorkerOnly))

        assert services.exec_worker("after_session", [{}, {}, []]) == []

    def test_worker_hook_cache_follows_init_worker(self):
        """Hooks are looked up again after worker services change."""
        services = Services()
        services.init_worker(make_config(WorkerOnly))
        assert services.exec_worker("before_test", ["t", None]) == ["before t"]

        services.init_worker(make_config(AsyncService))

        assert services.exec_worker("before_test", ["t", None]) == ["awaited"]

    def test_async_hook_inside_running_loop(self):
        """Async hooks complete when dispatched from code already inside an event loop."""
        services = Services()
        services.init_worker(make_config(AsyncService))

        async def body():
            return services.exec_worker("before_test", ["t", None])

        assert asyncio.run(body()) == ["awaited"]

    def test_both_scope_service_gets_two_instances(self):
        """A both-scope service has separate launcher and worker instances."""
        services = Services()
        config = make_config(BothScopes)
        services.init_launcher(config)
        services.init_worker(config)

        launcher = services.launcher_services[0].instance
        worker = services.worker_services[0].instance

        assert launcher is not worker
        assert services.exec_launcher("on_complete", [1, {}, [], {}]) == [1]
        assert services.exec_worker("after_test", ["t", None, "r"]) == ["r"]


class TestServicesStatus:
    """Tests for status() and print_status()."""

    def test_status_lists_services_and_hooks(self):
        """status() reports instances per scope with their hooks."""
        services = Services()
        config = make_config(LauncherOnly, WorkerOnly)
        services.init_launcher(config)
        services.init_worker(config)

        status = services.status()

        assert status["initialized"] is True
        assert status["configured"] == ["LauncherOnly", "WorkerOnly"]
        assert status["launcher"] == [{"name": "LauncherOnly", "class": "LauncherOnly", "hooks": ["on_prepare"]}]
        assert status["worker"] == [{"name": "WorkerOnly", "class": "WorkerOnly", "hooks": ["before_test"]}]
        assert status["ignored"] == ["LauncherOnly"]

    def test_print_status_renders_table(self):
        """print_status() prints one table."""
        services = Services()
        services.init_worker(make_config(WorkerOnly))
        console = MagicMock()

        services.print_status(console)

        console.print.assert_called_once()
