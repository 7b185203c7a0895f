"""Tests for Instance phase orchestration."""

import types

import pytest

from conftest import FakeClient
from pytestio.core.config import ProjectOptions
from pytestio.core.instance import Instance
from pytestio.core.results import ResultCollector
from pytestio.core.services import HOOK_NAMES
from pytestio.core.session import SessionManager
from pytestio.models.info import TestInfo, WorkerInfo

ANDROID = {"platformName": "Android"}


class PhaseLog:
    """Service implementing every hook, recording (name, args)."""

    calls = []

    def __init__(self, options, capabilities, config):
        self.options = options

    def __getattr__(self, name):
        if name not in HOOK_NAMES:
            raise AttributeError(name)

        def hook(*args):
            PhaseLog.calls.append((name, args))

        return hook


SERVICE = types.SimpleNamespace(launcher=PhaseLog, service=PhaseLog)


@pytest.fixture(autouse=True)
def reset_log():
    PhaseLog.calls = []


@pytest.fixture
def instance():
    options = ProjectOptions(
        name="android",
        config={"hostname": "127.0.0.1"},
        capabilities=ANDROID,
        services=[SERVICE],
        retries=1,
    )
    return Instance(WorkerInfo(worker_index=1, project_name="android"), options, specs=["tests/test_a.py"])


@pytest.fixture
def info():
    return TestInfo(
        title="test_login",
        file="tests/test_a.py",
        title_path=["tests/test_a.py", "TestAuth", "test_login"],
        project_name="android",
        duration=0.5,
    )


def names():
    return [name for name, _ in PhaseLog.calls]


def run_test(instance, info, status):
    instance.test_start({"port": 4723}, ANDROID, [SERVICE])
    instance.test_middle(info, driver=None)
    info.status = status
    exit_code = instance.test_end(info)
    instance.session_end()
    return exit_code


class TestInstancePhases:
    """Tests for the order and arguments of lifecycle phases."""

    def test_full_lifecycle_order(self, instance, info):
        """Hooks run in session phase order."""
        instance.worker_start()
        run_test(instance, info, "passed")
        instance.worker_end()

        assert names() == [
            "on_prepare",
            "on_worker_start",
            "before_session",
            "before",
            "before_suite",
            "before_test",
            "before_hook",
            "after_hook",
            "after_test",
            "after_suite",
            "after",
            "after_session",
            "on_worker_end",
            "on_complete",
        ]

    def test_worker_start_builds_config(self, instance):
        """Launcher hooks receive the worker config and capability list."""
        instance.worker_start()

        _, (config, capabilities) = PhaseLog.calls[0]
        assert config["hostname"] == "127.0.0.1"
        assert config["framework"] == "pytest"
        assert config["specs"] == ["tests/test_a.py"]
        assert capabilities == [ANDROID]

        _, (cid, caps, specs, args, exec_argv) = PhaseLog.calls[1]
        assert cid == "0-1"
        assert caps == ANDROID
        assert specs == ["tests/test_a.py"]
        assert exec_argv == []

    def test_worker_start_is_idempotent(self, instance):
        """Launcher start hooks run once per worker."""
        instance.worker_start()
        instance.worker_start()

        assert names().count("on_prepare") == 1

    def test_test_start_merges_config(self, instance):
        """before_session receives the merged config and the worker cid."""
        instance.worker_start()
        instance.test_start({"port": 4723}, ANDROID, [SERVICE])

        name, (config, capabilities, specs, cid) = PhaseLog.calls[-1]
        assert name == "before_session"
        assert config["hostname"] == "127.0.0.1"
        assert config["port"] == 4723
        assert capabilities == ANDROID
        assert cid == "0-1"

    def test_before_hook_and_after_hook_names(self, instance, info):
        """The per-test hooks are named before_test and after_test."""
        instance.worker_start()
        run_test(instance, info, "passed")

        before_hook = next(args for name, args in PhaseLog.calls if name == "before_hook")
        after_hook = next(args for name, args in PhaseLog.calls if name == "after_hook")
        assert before_hook[2] == "before_test"
        assert after_hook[3] == "after_test"

    def test_passed_test_exit_code(self, instance, info):
        """A passed test gives exit code 0 to the after hook."""
        instance.worker_start()

        assert run_test(instance, info, "passed") == 0

        after = next(args for name, args in PhaseLog.calls if name == "after")
        assert after == (0, ANDROID, ["tests/test_a.py"])

    def test_failed_test_exit_code(self, instance, info):
        """A failed test gives exit code 1 and fails the worker."""
        instance.worker_start()

        assert run_test(instance, info, "failed") == 1
        assert instance.worker_end() == 1

        worker_end = next(args for name, args in PhaseLog.calls if name == "on_worker_end")
        assert worker_end == ("0-1", 1, ["tests/test_a.py"], 1)

    def test_on_complete_results(self, instance, info):
        """on_complete receives the worker's finished/passed/failed counts."""
        instance.worker_start()
        run_test(instance, info, "passed")
        run_test(instance, info, "failed")
        instance.worker_end()

        _, (exit_code, config, capabilities, results) = PhaseLog.calls[-1]
        assert exit_code == 1
        assert capabilities == [ANDROID]
        assert results == {"finished": 2, "passed": 1, "failed": 1}

    def test_worker_end_without_tests(self, instance):
        """A worker that ran nothing exits with 0."""
        instance.worker_start()

        assert instance.worker_end() == 0
        _, (_, _, _, results) = PhaseLog.calls[-1]
        assert results == {"finished": 0, "passed": 0, "failed": 0}

    def test_worker_end_cleans_up_services(self, instance, info):
        """Services are dropped after the worker ends."""
        instance.worker_start()
        run_test(instance, info, "passed")

        instance.worker_end()

        assert instance.services.launcher_services == []
        assert instance.services.worker_services == []

    def test_results_go_to_shared_collector(self, info):
        """Outcomes are recorded in the collector passed in."""
        collector = ResultCollector()
        instance = Instance(WorkerInfo(), ProjectOptions(capabilities=ANDROID), collector=collector)
        instance.worker_start()

        run_test(instance, info, "passed")

        assert collector.worker_stats("0-0").passed == 1

    def test_commands_reach_worker_services(self, instance, info):
        """Driver commands of a managed session run the command hooks."""
        instance.worker_start()
        instance.test_start({}, ANDROID, [SERVICE])
        manager = SessionManager({}, ANDROID, info, client=FakeClient(), hooks=instance.hooks)

        manager.open().get("https://example.com")
        manager.close()

        assert ("before_command", ("get", ["https://example.com"])) in PhaseLog.calls
        assert ("after_command", ("get", ["https://example.com"], None, None)) in PhaseLog.calls
