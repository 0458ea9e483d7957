"""
Storage package - Execution log implementations.
"""

from typing import Optional

from agentflow.storage.base import ExecutionLog
from agentflow.storage.memory import InMemoryExecutionLog
from agentflow.storage.sqlite import SqliteExecutionLog


def create_execution_log(path: Optional[str] = None) -> ExecutionLog:
    """SQLite log when a path is given, in-memory otherwise."""
    if path:
        return SqliteExecutionLog(path)
    return InMemoryExecutionLog()


__all__ = [
    "ExecutionLog",
    "InMemoryExecutionLog",
    "SqliteExecutionLog",
    "create_execution_log",
]
