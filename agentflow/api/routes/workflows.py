"""
Workflow Execution API Routes.

Endpoints for running a workflow, polling its live state, cancelling a
run and reading execution history.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
import logging

from agentflow.api.schemas import (
    CancelResponse,
    ErrorResponse,
    ExecuteRequest,
    ExecuteResponse,
    ExecutionListResponse,
    StatusResponse,
)
from agentflow.engine.state import ExecutionRecord
from agentflow.engine.supervisor import WorkflowSupervisor


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflows", tags=["Workflows"])


def get_supervisor(request: Request) -> WorkflowSupervisor:
    """Supervisor created by the application lifespan."""
    return request.app.state.supervisor


# ============================================================
# Execution Endpoints
# ============================================================

@router.post(
    "/{workflow_id}/execute",
    response_model=ExecuteResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Definition id does not match the path"},
        500: {"model": ExecuteResponse, "description": "Execution failed"},
    },
)
async def execute_workflow(
    workflow_id: str,
    request: ExecuteRequest,
    supervisor: WorkflowSupervisor = Depends(get_supervisor),
):
    """
    Execute a workflow with the given input.

    The request waits for the run to finish. Runs of the same workflow are
    executed one at a time in submission order. A failed run answers 500
    with the partial results, the per-node errors and the failure message.
    """
    if request.workflow.id != workflow_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Workflow id '{request.workflow.id}' does not match '{workflow_id}'",
        )

    outcome = await supervisor.execute(request.workflow, request.input)

    response = ExecuteResponse(
        success=outcome.succeeded,
        execution_id=outcome.execution_id,
        status=outcome.status,
        results=outcome.results,
        errors=outcome.errors,
        error=outcome.error,
        failed_node_id=outcome.failed_node_id,
    )
    if not outcome.succeeded:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=response.model_dump(mode="json", by_alias=True),
        )
    return response


@router.get(
    "/{workflow_id}/status",
    response_model=StatusResponse,
)
async def get_workflow_status(
    workflow_id: str,
    supervisor: WorkflowSupervisor = Depends(get_supervisor),
) -> StatusResponse:
    """
    Get the live state of the workflow's current or most recent run.

    Use this to poll a run started by another client.
    """
    return StatusResponse(**supervisor.get_status(workflow_id))


@router.post(
    "/{workflow_id}/cancel",
    response_model=CancelResponse,
)
async def cancel_workflow(
    workflow_id: str,
    supervisor: WorkflowSupervisor = Depends(get_supervisor),
) -> CancelResponse:
    """Cancel the run in progress, if any."""
    cancelled = supervisor.cancel(workflow_id, "Execution cancelled by request")
    return CancelResponse(workflow_id=workflow_id, cancelled=cancelled)


# ============================================================
# History Endpoints
# ============================================================

@router.get(
    "/{workflow_id}/executions",
    response_model=ExecutionListResponse,
)
async def list_executions(
    workflow_id: str,
    supervisor: WorkflowSupervisor = Depends(get_supervisor),
) -> ExecutionListResponse:
    """List the recorded runs of a workflow, newest first."""
    records = await supervisor.execution_log.list_by_workflow(workflow_id)
    return ExecutionListResponse(executions=records, total=len(records))


@router.get(
    "/{workflow_id}/executions/{execution_id}",
    response_model=ExecutionRecord,
    responses={404: {"model": ErrorResponse}},
)
async def get_execution(
    workflow_id: str,
    execution_id: str,
    supervisor: WorkflowSupervisor = Depends(get_supervisor),
) -> ExecutionRecord:
    """Get one recorded run."""
    record = await supervisor.execution_log.get(execution_id)
    if record is None or record.workflow_id != workflow_id:
        raise HTTPException(status_code=404, detail=f"Execution '{execution_id}' not found")
    return record
