"""pytest plugin: remote sessions with WebdriverIO-style services.

Loaded through the ``pytest11`` entry point. Registers:
  - CLI options: --pytestio-project, --pytestio-config, --pytestio-output,
    --pytestio-record, --pytestio-screenshot
  - Marker:   pytestio(config=, capabilities=, services=, recording=, screenshot=)
  - Fixtures: pytestio_settings, pytestio_remote_client, pytestio_instance,
    pytestio_test_info, pytestio_options, pytestio_config, capabilities,
    recording_screen, take_screenshot, pytestio_session, driver, remote_page
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Generator

import pytest
from dotenv import find_dotenv, load_dotenv
from pytest import StashKey

from pytestio.core.config import (
    ConfigLoader,
    PytestioConfig,
    RecordingMode,
    ResolvedOptions,
    TestOverrides,
    resolve,
    setup_logging,
)
from pytestio.core.instance import Instance
from pytestio.core.network import NetworkBridge
from pytestio.core.remote import AppiumRemoteClient, RemoteClient
from pytestio.core.report import TestArtifacts, sanitize_node_id
from pytestio.core.results import ResultCollector
from pytestio.core.session import SessionManager
from pytestio.models.info import TestInfo, WorkerInfo

logger = logging.getLogger("pytestio.plugin")

MARKER_NAME = "pytestio"
WORKER_OUTPUT_KEY = "pytestio_results"

settings_key = StashKey[PytestioConfig]()
collector_key = StashKey[ResultCollector]()
phase_report_key = StashKey[dict[str, pytest.TestReport]]()
call_error_key = StashKey[BaseException]()


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("pytestio", "remote sessions with WebdriverIO-style services")
    group.addoption(
        "--pytestio-project",
        action="store",
        default=None,
        help="project from pytestio.yaml to run (default: first project)",
    )
    group.addoption(
        "--pytestio-config",
        action="store",
        default=None,
        help="config file to use instead of ./pytestio.yaml",
    )
    group.addoption(
        "--pytestio-output",
        action="store",
        default=None,
        help="directory for attachments, reports and debug.log",
    )
    group.addoption(
        "--pytestio-record",
        action="store_true",
        default=False,
        help="record the screen of every remote session",
    )
    group.addoption(
        "--pytestio-screenshot",
        action="store_true",
        default=False,
        help="attach a final screenshot of every remote session",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        f"{MARKER_NAME}(config=None, capabilities=None, services=None, recording=None, screenshot=None): "
        "per-test remote session overrides",
    )

    load_dotenv(find_dotenv(usecwd=True))

    config_file = config.getoption("--pytestio-config")
    try:
        settings = ConfigLoader.load(
            project_name=config.getoption("--pytestio-project"),
            config_file=Path(config_file) if config_file else None,
        )
    except ValueError as e:
        raise pytest.UsageError(str(e)) from e

    project = settings.project
    if config.getoption("--pytestio-output"):
        project.output_dir = Path(config.getoption("--pytestio-output"))
    if config.getoption("--pytestio-record") and not isinstance(project.recording, dict):
        project.recording = True
    if config.getoption("--pytestio-screenshot"):
        project.screenshot = True

    log_file = setup_logging(settings.verbose, project.output_dir)
    if log_file:
        logger.info(f"Debug log: {log_file}")

    config.stash[settings_key] = settings
    config.stash[collector_key] = ResultCollector()


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo[None]) -> Generator[None, Any, None]:
    """Keep each phase's report (and the test's exception) on the item."""
    outcome = yield
    report = outcome.get_result()
    item.stash.setdefault(phase_report_key, {})[report.when] = report
    if call.excinfo is not None and report.when in ("setup", "call"):
        item.stash[call_error_key] = call.excinfo.value


def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    """Ship this worker's results to the xdist controller."""
    workeroutput = getattr(session.config, "workeroutput", None)
    if workeroutput is not None and collector_key in session.config.stash:
        workeroutput[WORKER_OUTPUT_KEY] = session.config.stash[collector_key].to_dict()


@pytest.hookimpl(optionalhook=True)
def pytest_testnodedown(node: Any, error: Any) -> None:
    """Merge a finished xdist worker's results into the controller's collector."""
    data = getattr(node, "workeroutput", {}).get(WORKER_OUTPUT_KEY)
    if data and collector_key in node.config.stash:
        node.config.stash[collector_key].merge(data)


def pytest_terminal_summary(terminalreporter: Any, exitstatus: int, config: pytest.Config) -> None:
    if hasattr(config, "workeroutput") or collector_key not in config.stash:
        return

    summary = config.stash[collector_key].summary()
    if not summary["total_tests"]:
        return

    terminalreporter.write_sep("-", "pytestio")
    terminalreporter.write_line(
        f"sessions: {summary['total_tests']} | passed: {summary['passed']} | "
        f"failed: {summary['failed']} | skipped: {summary['skipped']} | "
        f"workers: {summary['workers']} | success rate: {summary['success_rate']}%"
    )


def _worker_index() -> int:
    """Index of this xdist worker ("gw3" -> 3), 0 without xdist."""
    match = re.search(r"(\d+)$", os.environ.get("PYTEST_XDIST_WORKER", ""))
    return int(match.group(1)) if match else 0


def _overrides(item: pytest.Item) -> TestOverrides:
    """Collect ``pytestio`` marker kwargs; markers closer to the test win."""
    values: dict[str, Any] = {}
    for marker in reversed(list(item.iter_markers(MARKER_NAME))):
        values.update(marker.kwargs)

    return TestOverrides(
        config=values.get("config"),
        capabilities=values.get("capabilities"),
        services=values.get("services"),
        recording=values.get("recording"),
        screenshot=values.get("screenshot"),
    )


def info_from_item(item: pytest.Item, settings: PytestioConfig, artifacts: TestArtifacts | None = None) -> TestInfo:
    """Build the TestInfo for a collected test item."""
    parts = item.nodeid.split("::")
    title_path = [parts[0], *parts[1:-1], item.name]
    return TestInfo(
        title=item.name,
        node_id=item.nodeid,
        file=str(getattr(item, "path", parts[0])),
        title_path=title_path,
        project_name=settings.project.name,
        retry=max(getattr(item, "execution_count", 1) - 1, 0),
        retries=settings.project.retries,
        worker_index=_worker_index(),
        artifacts=artifacts,
    )


def finalize_info(item: pytest.Item, info: TestInfo) -> None:
    """Copy status, duration and error from the phase reports into ``info``."""
    reports = item.stash.get(phase_report_key, {})
    setup, call = reports.get("setup"), reports.get("call")

    if call is not None:
        info.status = call.outcome
        info.duration = call.duration
    elif setup is not None and setup.outcome != "passed":
        info.status = "failed" if setup.failed else "skipped"
        info.duration = setup.duration
    else:
        info.status = "interrupted"

    info.error = item.stash.get(call_error_key, None) if info.status == "failed" else None


@pytest.fixture(scope="session")
def pytestio_settings(pytestconfig: pytest.Config) -> PytestioConfig:
    """Loaded configuration of the selected project."""
    return pytestconfig.stash[settings_key]


@pytest.fixture(scope="session")
def pytestio_remote_client() -> RemoteClient:
    """Client used to open remote sessions. Override to plug in another client."""
    return AppiumRemoteClient()


@pytest.fixture(scope="session")
def pytestio_instance(request: pytest.FixtureRequest, pytestio_settings: PytestioConfig) -> Generator[Instance, None, None]:
    """Worker-lifetime service orchestration (launcher hooks)."""
    project = pytestio_settings.project
    specs = sorted({str(item.path) for item in request.session.items if hasattr(item, "path")})
    worker_info = WorkerInfo(
        worker_index=_worker_index(),
        parallel_index=_worker_index(),
        project_name=project.name,
        test_dir=str(request.config.rootpath),
    )

    instance = Instance(worker_info, project, specs, request.config.stash[collector_key])
    instance.worker_start()
    yield instance
    instance.worker_end()


@pytest.fixture
def pytestio_options(request: pytest.FixtureRequest, pytestio_settings: PytestioConfig) -> ResolvedOptions:
    """Project options merged with the test's ``pytestio`` markers."""
    return resolve(pytestio_settings.project, _overrides(request.node))


@pytest.fixture
def pytestio_test_info(
    request: pytest.FixtureRequest,
    pytestio_settings: PytestioConfig,
) -> Generator[TestInfo, None, None]:
    """TestInfo of the running test; writes report.json on teardown."""
    item = request.node
    artifacts = TestArtifacts(
        pytestio_settings.project.output_dir / sanitize_node_id(item.nodeid),
        item.user_properties,
    )
    info = info_from_item(item, pytestio_settings, artifacts)
    yield info

    if info.status is None:
        finalize_info(item, info)
    artifacts.write_json(info.status, info.duration)


@pytest.fixture
def pytestio_config(pytestio_options: ResolvedOptions) -> dict[str, Any]:
    """Connection config: project config merged with the marker's ``config``."""
    return pytestio_options.config


@pytest.fixture
def capabilities(pytestio_options: ResolvedOptions) -> dict[str, Any]:
    """Capabilities: project capabilities merged with the marker's ``capabilities``."""
    return pytestio_options.capabilities


@pytest.fixture
def recording_screen(pytestio_options: ResolvedOptions) -> RecordingMode:
    return pytestio_options.recording


@pytest.fixture
def take_screenshot(pytestio_options: ResolvedOptions) -> bool:
    return pytestio_options.screenshot


@pytest.fixture
def pytestio_session(
    request: pytest.FixtureRequest,
    pytestio_settings: PytestioConfig,
    pytestio_instance: Instance,
    pytestio_remote_client: RemoteClient,
    pytestio_test_info: TestInfo,
    pytestio_config: dict[str, Any],
    capabilities: dict[str, Any],
    recording_screen: RecordingMode,
    take_screenshot: bool,
    pytestio_options: ResolvedOptions,
) -> Generator[SessionManager, None, None]:
    """Remote session for one test, wrapped in the worker service hooks.

    Hook order: before_session, [open], before, before_suite, before_test,
    before_hook, [test], after_hook, after_test, after_suite, after,
    [screenshot, stop recording, close], after_session.
    """
    manager = SessionManager(
        pytestio_config,
        capabilities,
        pytestio_test_info,
        recording=recording_screen,
        screenshot=take_screenshot,
        trace_enabled=pytestio_settings.project.trace_enabled,
        client=pytestio_remote_client,
        hooks=pytestio_instance.hooks,
    )

    if not manager.is_valid(capabilities):
        manager.open()
        yield manager
        return

    manager.configure()
    pytestio_instance.test_start(manager.config, manager.capabilities, pytestio_options.services)
    try:
        driver = manager.open()
        pytestio_instance.test_middle(pytestio_test_info, driver)

        yield manager

        finalize_info(request.node, pytestio_test_info)
        pytestio_instance.test_end(pytestio_test_info)
    finally:
        manager.close()
        pytestio_instance.session_end()


@pytest.fixture
def driver(pytestio_session: SessionManager) -> Any:
    """Instrumented remote session handle; skips the test without capabilities."""
    if pytestio_session.driver is None:
        pytest.skip("pytestio: no capabilities provided")
    return pytestio_session.driver


@pytest.fixture
def remote_page(request: pytest.FixtureRequest, pytestio_session: SessionManager) -> Generator[Any, None, None]:
    """pytest-playwright ``page`` that replays the remote session's commands."""
    try:
        page = request.getfixturevalue("page")
    except pytest.FixtureLookupError:
        pytest.skip("remote_page requires pytest-playwright")

    if pytestio_session.raw_driver is None:
        yield page
        return

    bridge = NetworkBridge(pytestio_session.raw_driver, page)
    bridge.start_capturing()
    yield page
    bridge.stop_capturing()
