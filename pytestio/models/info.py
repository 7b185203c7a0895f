"""Host-framework view of a running test."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pytestio.core.report import TestArtifacts

# Statuses after which a test is considered finished
TERMINAL_STATUSES = frozenset({"passed", "failed", "timedOut", "interrupted"})


@dataclass
class WorkerInfo:
    """Worker process identity."""

    worker_index: int = 0
    parallel_index: int = 0
    project_name: str = "default"
    test_dir: str = "."

    @property
    def cid(self) -> str:
        """Capability id in WebdriverIO form, e.g. "0-1"."""
        return f"{self.parallel_index}-{self.worker_index}"


@dataclass
class TestInfo:
    """Information about the current test, as reported by pytest.

    Every field except ``title`` is optional so that descriptors can be built
    at any point of the test lifecycle.
    """

    # Tell pytest not to collect this as a test class
    __test__ = False

    title: str
    node_id: str = ""
    file: str = ""
    title_path: list[str] = field(default_factory=list)
    project_name: str | None = None
    status: str | None = None
    retry: int = 0
    retries: int = 0
    error: Any = None
    duration: float = 0.0
    worker_index: int = 0
    artifacts: TestArtifacts | None = None

    @property
    def parent_title(self) -> str | None:
        """Title of the enclosing group (test class), if any.

        ``title_path`` is ``[file, *groups, title]``; the parent is the last
        group segment.
        """
        if len(self.title_path) > 2:
            return self.title_path[-2]
        return None

    @property
    def is_finished(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def annotate(self, type: str, description: str) -> None:
        if self.artifacts is not None:
            self.artifacts.annotate(type, description)

    def attach(self, name: str, body: bytes, content_type: str) -> None:
        if self.artifacts is not None:
            self.artifacts.attach(name, body, content_type)

    def step(self, title: str) -> None:
        if self.artifacts is not None:
            self.artifacts.step(title)
