"""Data models for pytestio."""

from pytestio.models.info import TERMINAL_STATUSES, TestInfo, WorkerInfo

__all__ = [
    "TERMINAL_STATUSES",
    "TestInfo",
    "WorkerInfo",
]
