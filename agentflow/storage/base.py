"""
Execution log interface.

The log keeps one ExecutionRecord per run, created when the run starts
and updated when it reaches a terminal status.
"""

from typing import Any, Dict, List, Optional, Protocol

from agentflow.engine.state import ExecutionRecord, ExecutionStatus


class ExecutionLog(Protocol):
    """Durable, keyed store of execution records."""

    async def create(self, record: ExecutionRecord) -> ExecutionRecord:
        ...

    async def update(
        self,
        execution_id: str,
        status: ExecutionStatus,
        results: Dict[str, Any],
    ) -> Optional[ExecutionRecord]:
        ...

    async def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        ...

    async def list_by_workflow(self, workflow_id: str) -> List[ExecutionRecord]:
        ...

    async def close(self) -> None:
        ...
