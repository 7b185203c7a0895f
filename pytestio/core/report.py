"""Per-test report sink: annotations, steps and attachments."""

from __future__ import annotations

import json
import logging
import mimetypes
import re
import threading
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger("pytestio.report")

_UNSAFE_PATH_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_node_id(node_id: str, max_length: int = 200) -> str:
    """Turn a pytest node id into a single safe directory name.

    Args:
        node_id: Node id like "tests/test_login.py::TestLogin::test_ok[a]"
        max_length: Maximum length of the result

    Returns:
        Name like "tests-test_login.py-TestLogin-test_ok-a"
    """
    name = _UNSAFE_PATH_CHARS.sub("-", node_id).strip("-")
    return name[:max_length] or "test"


@dataclass
class Annotation:
    """A key/description pair shown alongside the test result."""

    type: str
    description: str


@dataclass
class Attachment:
    """A file attached to the test report."""

    name: str
    content_type: str
    path: str
    size: int


@dataclass
class Step:
    """A logged step, e.g. one remote driver call."""

    title: str
    timestamp: float


class TestArtifacts:
    """Collect report entries for one test and write them to disk.

    Annotations are mirrored into pytest's ``user_properties`` so they show up
    in junit XML. Attachments are written immediately under ``output_dir``;
    ``write_json()`` produces a ``report.json`` summary.

    Usage:
        artifacts = TestArtifacts(Path("test-results/test_login"))
        artifacts.annotate("Session ID", "abc123")
        artifacts.attach("video", video_bytes, "video/mp4")
        artifacts.write_json(status="passed")
    """

    __test__ = False

    def __init__(self, output_dir: Path, user_properties: list[tuple[str, Any]] | None = None):
        """Initialize sink.

        Args:
            output_dir: Directory to write attachments and report.json to
            user_properties: Optional pytest ``item.user_properties`` list
        """
        self._output_dir = Path(output_dir)
        self._user_properties = user_properties
        self._lock = threading.Lock()
        self.annotations: list[Annotation] = []
        self.attachments: list[Attachment] = []
        self.steps: list[Step] = []

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    def annotate(self, type: str, description: str) -> None:
        """Add an annotation.

        Args:
            type: Annotation type (e.g. capability name, "Session ID")
            description: Annotation text
        """
        self.annotations.append(Annotation(type=type, description=description))
        if self._user_properties is not None:
            self._user_properties.append((type, description))

    def step(self, title: str) -> None:
        """Record a step entry."""
        logger.debug(f"step: {title}")
        with self._lock:
            self.steps.append(Step(title=title, timestamp=time.time()))

    def attach(self, name: str, body: bytes, content_type: str) -> Path:
        """Write an attachment next to the report.

        Args:
            name: Attachment name ("video", "screenshot", ...)
            body: Raw bytes
            content_type: MIME type used to pick the file extension

        Returns:
            Path of the written file
        """
        extension = mimetypes.guess_extension(content_type) or ".bin"
        if content_type == "video/webm":
            extension = ".webm"

        with self._lock:
            self._output_dir.mkdir(parents=True, exist_ok=True)
            index = sum(1 for a in self.attachments if a.name == name)
            filename = f"{name}{extension}" if index == 0 else f"{name}-{index}{extension}"
            path = self._output_dir / filename
            path.write_bytes(body)
            self.attachments.append(
                Attachment(name=name, content_type=content_type, path=str(path), size=len(body))
            )

        logger.info(f"Attached {name} ({content_type}, {len(body)} bytes) -> {path}")
        return path

    def to_dict(self, status: str | None = None, duration: float | None = None) -> dict[str, Any]:
        """Convert collected entries to a JSON-compatible dict."""
        return {
            "status": status,
            "duration": duration,
            "timestamp": datetime.now().isoformat(),
            "annotations": [asdict(a) for a in self.annotations],
            "steps": [asdict(s) for s in self.steps],
            "attachments": [asdict(a) for a in self.attachments],
        }

    def write_json(self, status: str | None = None, duration: float | None = None) -> Path | None:
        """Write report.json when anything was collected.

        Returns:
            Path to report.json, or None if there was nothing to report
        """
        if not (self.annotations or self.steps or self.attachments):
            return None

        self._output_dir.mkdir(parents=True, exist_ok=True)
        path = self._output_dir / "report.json"
        with open(path, "w") as f:
            json.dump(self.to_dict(status, duration), f, indent=2)

        return path
