"""Core modules for pytestio."""

from pytestio.core.command import InstrumentedDriver, InstrumentedElement
from pytestio.core.config import (
    ConfigLoader,
    ProjectOptions,
    PytestioConfig,
    RecordingMode,
    ResolvedOptions,
    TestOverrides,
    merge_options,
    resolve,
    resolve_recording,
    resolve_screenshot,
)
from pytestio.core.descriptors import (
    ResultDescriptor,
    SuiteDescriptor,
    TestDescriptor,
    build_result,
    build_suite,
    build_test,
)
from pytestio.core.encoder import RecorderOptions, VideoEncoder
from pytestio.core.errors import (
    EncodeError,
    EncodeTimeoutError,
    HookError,
    PytestioError,
    RecordingError,
    ServiceResolutionError,
    SessionOpenError,
)
from pytestio.core.frame_recorder import FrameRecorder
from pytestio.core.hooks import Hooks
from pytestio.core.instance import Instance
from pytestio.core.network import CapturedNetworkEvent, NetworkBridge
from pytestio.core.recorder import NativeRecorder, Recorder
from pytestio.core.remote import AppiumRemoteClient, CapabilityFlags, RemoteClient
from pytestio.core.report import TestArtifacts
from pytestio.core.results import ResultCollector
from pytestio.core.services import ServiceEntry, Services
from pytestio.core.session import SessionManager, SessionState

__all__ = [
    "AppiumRemoteClient",
    "CapabilityFlags",
    "CapturedNetworkEvent",
    "ConfigLoader",
    "EncodeError",
    "EncodeTimeoutError",
    "FrameRecorder",
    "HookError",
    "Hooks",
    "Instance",
    "InstrumentedDriver",
    "InstrumentedElement",
    "NativeRecorder",
    "NetworkBridge",
    "ProjectOptions",
    "PytestioConfig",
    "PytestioError",
    "Recorder",
    "RecorderOptions",
    "RecordingError",
    "RecordingMode",
    "RemoteClient",
    "ResolvedOptions",
    "ResultCollector",
    "ResultDescriptor",
    "ServiceEntry",
    "ServiceResolutionError",
    "Services",
    "SessionManager",
    "SessionOpenError",
    "SessionState",
    "SuiteDescriptor",
    "TestArtifacts",
    "TestDescriptor",
    "TestOverrides",
    "VideoEncoder",
    "build_result",
    "build_suite",
    "build_test",
    "merge_options",
    "resolve",
    "resolve_recording",
    "resolve_screenshot",
]
