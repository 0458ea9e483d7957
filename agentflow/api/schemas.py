"""
Pydantic Schemas for API Request/Response Models.

These schemas define the structure of data flowing through the API,
providing automatic validation and documentation.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from agentflow.engine.graph import WorkflowDefinition
from agentflow.engine.state import ExecutionRecord, ExecutionState, ExecutionStatus


# ============================================================
# Execution Schemas
# ============================================================

class ExecuteRequest(BaseModel):
    """Request to run a workflow."""
    workflow: WorkflowDefinition = Field(..., description="Definition to execute")
    input: Any = Field(None, description="Payload handed to the start node")

    class Config:
        json_schema_extra = {
            "example": {
                "workflow": {
                    "id": "summarize-demo",
                    "name": "Summarize",
                    "nodes": [
                        {"id": "start", "type": "start", "data": {"label": "Start"}},
                        {
                            "id": "llm",
                            "type": "llm",
                            "data": {"label": "Summarize", "prompt": "Summarize: {{text}}"},
                        },
                        {"id": "end", "type": "end", "data": {"label": "End"}},
                    ],
                    "edges": [
                        {"id": "e1", "source": "start", "target": "llm"},
                        {"id": "e2", "source": "llm", "target": "end"},
                    ],
                },
                "input": {"text": "hi"},
            }
        }


class ExecuteResponse(BaseModel):
    """Outcome of a run."""
    success: bool
    execution_id: str = Field(..., alias="executionId")
    status: ExecutionStatus
    results: Dict[str, Any]
    errors: Dict[str, str] = Field(default_factory=dict)
    error: Optional[str] = None
    failed_node_id: Optional[str] = Field(None, alias="failedNodeId")

    class Config:
        populate_by_name = True


class StatusResponse(BaseModel):
    """Live state of a workflow's current or most recent run."""
    execution: Optional[ExecutionState] = None
    observer_count: int = Field(0, alias="observerCount")

    class Config:
        populate_by_name = True


class CancelResponse(BaseModel):
    """Response after a cancellation request."""
    workflow_id: str = Field(..., alias="workflowId")
    cancelled: bool

    class Config:
        populate_by_name = True


class ExecutionListResponse(BaseModel):
    """Execution history of a workflow."""
    executions: List[ExecutionRecord]
    total: int


# ============================================================
# Error Schemas
# ============================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
