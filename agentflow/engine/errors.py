"""
Exceptions raised by the execution engine.

Every failure a caller can observe is a WorkflowError. Errors raised
inside a node carry the node id so the run can record them against it;
errors without a node id are recorded under the "execution" key.
"""

from typing import Optional


class WorkflowError(Exception):
    """Base class for run failures."""

    def __init__(self, message: str, node_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.node_id = node_id


class GraphError(WorkflowError):
    """The workflow definition cannot be executed as a graph."""


class NodeExecutionError(WorkflowError):
    """A node handler failed."""

    def __init__(self, node_id: str, message: str):
        super().__init__(message, node_id=node_id)


class NodeTimeoutError(NodeExecutionError):
    """A node handler did not finish within its deadline."""


class ExecutionCancelled(WorkflowError):
    """The run was cancelled before it finished."""


class ConditionError(ValueError):
    """A condition predicate could not be parsed or evaluated."""


class BroadcastError(RuntimeError):
    """A single observer could not accept an event."""
