"""
State Management for the Execution Engine.

ExecutionState is the live view of a workflow's current (or most recent)
run. ExecutionStateStore owns it for one workflow and writes the durable
ExecutionRecord when a run starts and when it reaches a terminal status.
"""

from typing import Any, Callable, Dict, Optional, TYPE_CHECKING
from datetime import datetime, timezone
from enum import Enum
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
import uuid

if TYPE_CHECKING:
    from agentflow.storage.base import ExecutionLog


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionStatus(str, Enum):
    """Status of a workflow execution."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ExecutionState(BaseModel):
    """
    Live state of one run.

    Attributes:
        execution_id: Id of the run (matches the ExecutionRecord id)
        workflow_id: Workflow being run
        status: running, completed or failed
        current_node_id: Node most recently started
        results: node id -> output of its latest execution
        errors: node id -> failure message ("execution" for run-level failures)
        started_at: When the run began
        completed_at: When the run reached a terminal status
    """

    execution_id: str
    workflow_id: str
    status: ExecutionStatus = ExecutionStatus.RUNNING
    current_node_id: Optional[str] = None
    results: Dict[str, Any] = Field(default_factory=dict)
    errors: Dict[str, str] = Field(default_factory=dict)
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    @property
    def is_terminal(self) -> bool:
        return self.status != ExecutionStatus.RUNNING

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON shape sent to clients."""
        return self.model_dump(mode="json", by_alias=True)


class ExecutionRecord(BaseModel):
    """Durable row describing one run."""
    id: str
    workflow_id: str
    status: ExecutionStatus
    results: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ExecutionStateStore:
    """
    Holds the live ExecutionState of one workflow.

    Only the run currently executing mutates the state, through update().
    Readers get deep copies from status().
    """

    def __init__(self, workflow_id: str, execution_log: "ExecutionLog"):
        self.workflow_id = workflow_id
        self.execution_log = execution_log
        self._current: Optional[ExecutionState] = None

    def begin(self, workflow_id: Optional[str] = None) -> ExecutionState:
        """Replace the live state with a fresh running state."""
        self._current = ExecutionState(
            execution_id=str(uuid.uuid4()),
            workflow_id=workflow_id or self.workflow_id,
        )
        return self._current

    def update(self, mutator: Callable[[ExecutionState], None]) -> ExecutionState:
        """Apply a mutation to the live state."""
        if self._current is None:
            raise RuntimeError("No execution has begun")
        mutator(self._current)
        return self._current

    def status(self) -> Optional[ExecutionState]:
        """Read-only snapshot of the live state, or None before the first run."""
        if self._current is None:
            return None
        return self._current.model_copy(deep=True)

    async def persist_create(self, record: ExecutionRecord) -> None:
        await self.execution_log.create(record)

    async def persist_update(
        self,
        execution_id: str,
        status: ExecutionStatus,
        results: Dict[str, Any],
    ) -> None:
        await self.execution_log.update(execution_id, status, results)
