"""
In-Memory Execution Log.

Provides async-safe storage of execution records. Used when no database
path is configured, and by the tests.
"""

from typing import Any, Dict, List, Optional
from copy import deepcopy
import asyncio

from agentflow.engine.state import ExecutionRecord, ExecutionStatus


class InMemoryExecutionLog:
    """
    In-memory storage for execution records.

    Records are stored by execution id. Results are deep-copied on write
    so later mutation of the live state never leaks into history.
    """

    def __init__(self):
        self._records: Dict[str, ExecutionRecord] = {}
        self._lock = asyncio.Lock()

    async def create(self, record: ExecutionRecord) -> ExecutionRecord:
        """
        Store a new record.

        Args:
            record: The record to store

        Returns:
            The stored record
        """
        async with self._lock:
            stored = record.model_copy(deep=True)
            self._records[stored.id] = stored
            return stored

    async def update(
        self,
        execution_id: str,
        status: ExecutionStatus,
        results: Dict[str, Any],
    ) -> Optional[ExecutionRecord]:
        """Set the status and results snapshot of a record."""
        async with self._lock:
            if execution_id not in self._records:
                return None
            stored = self._records[execution_id]
            stored.status = status
            stored.results = deepcopy(results)
            return stored

    async def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        """Get a record by execution id."""
        async with self._lock:
            return self._records.get(execution_id)

    async def list_by_workflow(self, workflow_id: str) -> List[ExecutionRecord]:
        """List records of one workflow, newest first."""
        async with self._lock:
            records = [r for r in self._records.values() if r.workflow_id == workflow_id]
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    async def close(self) -> None:
        pass

    def __len__(self) -> int:
        return len(self._records)
