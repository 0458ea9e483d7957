"""
Engine package - Workflow execution components.
"""

from agentflow.engine.errors import (
    WorkflowError,
    GraphError,
    NodeExecutionError,
    NodeTimeoutError,
    ExecutionCancelled,
)
from agentflow.engine.node import Node, NodeType
from agentflow.engine.graph import Edge, WorkflowDefinition, WorkflowGraph
from agentflow.engine.state import ExecutionState, ExecutionStateStore, ExecutionStatus, ExecutionRecord
from agentflow.engine.events import EventBroadcaster, EventType, Subscription
from agentflow.engine.handlers import HandlerContext
from agentflow.engine.executor import WorkflowExecutor, ExecutorOptions, CancellationToken
from agentflow.engine.supervisor import WorkflowActor, WorkflowSupervisor, ExecutionOutcome

__all__ = [
    "WorkflowError",
    "GraphError",
    "NodeExecutionError",
    "NodeTimeoutError",
    "ExecutionCancelled",
    "Node",
    "NodeType",
    "Edge",
    "WorkflowDefinition",
    "WorkflowGraph",
    "ExecutionState",
    "ExecutionStateStore",
    "ExecutionStatus",
    "ExecutionRecord",
    "EventBroadcaster",
    "EventType",
    "Subscription",
    "HandlerContext",
    "WorkflowExecutor",
    "ExecutorOptions",
    "CancellationToken",
    "WorkflowActor",
    "WorkflowSupervisor",
    "ExecutionOutcome",
]
