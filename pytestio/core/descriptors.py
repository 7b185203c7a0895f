"""Suite, test and result descriptors in the shape services expect.

Services written for the WebdriverIO ecosystem read Mocha-style objects
(``title``, ``parent``, ``fullTitle``, ``fullName``, ``retries`` ...). These
are rebuilt from pytest's test information for every hook call.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pytestio.models.info import TestInfo

DEFAULT_SUITE_TITLE = "Default Suite"


def resolve_suite_title(info: TestInfo) -> str:
    """Resolve the suite title for a test.

    Order: parent title path segment, project name, file name, "Default Suite".
    """
    if info.parent_title:
        return info.parent_title
    if info.project_name:
        return info.project_name
    if info.file:
        stem = Path(info.file).stem
        if stem:
            return stem
    return DEFAULT_SUITE_TITLE


@dataclass(frozen=True)
class SuiteDescriptor:
    """Mocha-shaped suite."""

    title: str
    file: str = ""
    full_title: str = ""
    parent: str | None = None
    pending: bool = False
    duration: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "fullTitle": self.full_title,
            "fullName": self.full_title,
            "parent": {"title": self.parent} if self.parent else None,
            "file": self.file,
            "pending": self.pending,
            "duration": self.duration,
        }


@dataclass(frozen=True)
class TestDescriptor:
    """Mocha-shaped test.

    ``full_name`` repeats the test title on purpose: one consumer splits the
    dash-joined ``full_title`` pair, another splits a space-joined triple.
    """

    __test__ = False

    title: str
    parent: str
    full_title: str
    full_name: str
    file: str = ""
    duration: float = 0.0
    pending: bool = False
    state: str = "unknown"
    retries: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "parent": self.parent,
            "fullTitle": self.full_title,
            "fullName": self.full_name,
            "description": self.title,
            "file": self.file,
            "duration": self.duration,
            "pending": self.pending,
            "state": self.state,
            "retries": self.retries,
        }


@dataclass(frozen=True)
class ResultDescriptor:
    """Mocha-shaped test result."""

    passed: bool
    status: str = "UNKNOWN"
    duration: float = 0.0
    error: dict[str, str] | None = None
    exception: str = ""
    retries: dict[str, int] = field(default_factory=lambda: {"attempts": 0, "limit": 0})
    result: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "status": self.status,
            "duration": self.duration,
            "error": dict(self.error) if self.error else None,
            "exception": self.exception,
            "retries": dict(self.retries),
            "result": self.result,
        }


def _milliseconds(seconds: float | None) -> float:
    """Mocha reports durations in milliseconds; pytest in seconds."""
    return round((seconds or 0.0) * 1000, 3)


def build_suite(info: TestInfo) -> SuiteDescriptor:
    """Build the suite descriptor for a test."""
    title = resolve_suite_title(info)
    return SuiteDescriptor(
        title=title,
        file=info.file or "",
        full_title=title,
        parent=info.project_name if info.parent_title and info.project_name else None,
        pending=info.status == "skipped",
        duration=_milliseconds(info.duration),
    )


def build_test(info: TestInfo) -> TestDescriptor:
    """Build the test descriptor for a test."""
    suite_title = resolve_suite_title(info)
    title = info.title or "Unknown Test"
    return TestDescriptor(
        title=title,
        parent=suite_title,
        full_title=f"{suite_title} - {title}",
        full_name=f"{suite_title} {title} {title}",
        file=info.file or "",
        duration=_milliseconds(info.duration),
        pending=info.status == "skipped",
        state=info.status or "unknown",
        retries=info.retry or 0,
    )


def _error_mapping(error: Any) -> dict[str, str] | None:
    if error is None:
        return None
    if isinstance(error, BaseException):
        return {
            "name": type(error).__name__,
            "message": str(error) or "Unknown error",
            "stack": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
        }
    return {"name": "Error", "message": str(error), "stack": ""}


def build_result(info: TestInfo) -> ResultDescriptor:
    """Build the result descriptor for a finished (or unfinished) test."""
    status = info.status or ""
    return ResultDescriptor(
        passed=status == "passed",
        status=status.upper() or "UNKNOWN",
        duration=_milliseconds(info.duration),
        error=_error_mapping(info.error),
        exception=str(info.error) if info.error is not None else "",
        retries={"attempts": info.retry or 0, "limit": info.retries or 0},
    )
