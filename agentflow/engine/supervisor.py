"""
Per-workflow actors.

Every workflow id is served by one WorkflowActor that owns the workflow's
live ExecutionState, its observers and its executor. Runs reach the actor
through a command queue drained by a single worker task, so at most one
run mutates a workflow's state at a time. Status reads, subscriptions and
cancellation do not wait in the queue.
"""

from typing import Any, Dict, Optional, TYPE_CHECKING
from dataclasses import dataclass, field
import asyncio
import logging

from agentflow.engine.errors import ExecutionCancelled, WorkflowError
from agentflow.engine.events import EventBroadcaster, Subscription
from agentflow.engine.executor import CancellationToken, ExecutorOptions, WorkflowExecutor
from agentflow.engine.graph import WorkflowDefinition
from agentflow.engine.handlers import HandlerContext
from agentflow.engine.state import ExecutionStateStore, ExecutionStatus

if TYPE_CHECKING:
    from agentflow.storage.base import ExecutionLog


logger = logging.getLogger(__name__)

STOPPED_REASON = "Workflow actor stopped"


@dataclass
class ExecutionOutcome:
    """What the caller of execute() gets back."""
    execution_id: str
    status: ExecutionStatus
    results: Dict[str, Any] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None
    failed_node_id: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "executionId": self.execution_id,
            "status": self.status.value,
            "results": self.results,
            "errors": self.errors,
            "error": self.error,
            "failedNodeId": self.failed_node_id,
        }


@dataclass
class _ExecuteCommand:
    definition: WorkflowDefinition
    payload: Any
    future: "asyncio.Future[ExecutionOutcome]"


class WorkflowActor:
    """
    Single logical owner of one workflow's runs.

    Usage:
        actor = WorkflowActor("wf-1", execution_log, context)
        outcome = await actor.execute(definition, {"text": "hi"})
        await actor.stop()
    """

    def __init__(
        self,
        workflow_id: str,
        execution_log: "ExecutionLog",
        context: HandlerContext,
        options: Optional[ExecutorOptions] = None,
        max_pending_events: int = 1000,
    ):
        self.workflow_id = workflow_id
        self.state_store = ExecutionStateStore(workflow_id, execution_log)
        self.broadcaster = EventBroadcaster(workflow_id, max_pending=max_pending_events)
        self.executor = WorkflowExecutor(self.state_store, self.broadcaster, context, options)

        self._commands: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._cancel_token: Optional[CancellationToken] = None
        self._current: Optional[_ExecuteCommand] = None
        self._stopping = False

    @property
    def is_running(self) -> bool:
        """Whether a run is in progress."""
        return self._cancel_token is not None

    @property
    def queued(self) -> int:
        """Runs waiting behind the current one."""
        return self._commands.qsize() if self._commands else 0

    @property
    def is_idle(self) -> bool:
        """Never ran, nothing queued and nobody watching."""
        return (
            self._worker is None
            and self.queued == 0
            and self.broadcaster.observer_count == 0
            and self.state_store.status() is None
        )

    def _ensure_worker(self) -> asyncio.Queue:
        if self._commands is None:
            self._commands = asyncio.Queue()
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(
                self._process_commands(), name=f"workflow-actor:{self.workflow_id}"
            )
        return self._commands

    async def execute(self, definition: WorkflowDefinition, payload: Any) -> ExecutionOutcome:
        """
        Run a workflow and wait for it to finish.

        Runs submitted while another is in progress wait their turn.
        """
        if self._stopping:
            raise ExecutionCancelled(STOPPED_REASON)
        commands = self._ensure_worker()
        future = asyncio.get_running_loop().create_future()
        await commands.put(_ExecuteCommand(definition, payload, future))
        return await future

    async def _process_commands(self) -> None:
        try:
            while True:
                command = await self._commands.get()
                if self._stopping:
                    self._reject(command)
                    self._commands.task_done()
                    continue

                self._current = command
                try:
                    outcome = await self._run(command.definition, command.payload)
                except asyncio.CancelledError:
                    if not command.future.done():
                        command.future.set_result(
                            self._failed_outcome(ExecutionCancelled(STOPPED_REASON))
                        )
                    raise
                except Exception as e:
                    logger.exception(f"Workflow actor {self.workflow_id} command failed: {e}")
                    if not command.future.done():
                        command.future.set_exception(e)
                else:
                    if not command.future.done():
                        command.future.set_result(outcome)
                finally:
                    self._current = None
                    self._commands.task_done()
        except asyncio.CancelledError:
            while not self._commands.empty():
                self._reject(self._commands.get_nowait())
                self._commands.task_done()
            raise

    @staticmethod
    def _reject(command: _ExecuteCommand) -> None:
        if not command.future.done():
            command.future.set_exception(ExecutionCancelled(STOPPED_REASON))

    def _failed_outcome(self, error: WorkflowError) -> ExecutionOutcome:
        snapshot = self.state_store.status()
        return ExecutionOutcome(
            execution_id=snapshot.execution_id,
            status=ExecutionStatus.FAILED,
            results=snapshot.results,
            errors=snapshot.errors,
            error=error.message,
            failed_node_id=error.node_id,
        )

    async def _run(self, definition: WorkflowDefinition, payload: Any) -> ExecutionOutcome:
        token = CancellationToken()
        self._cancel_token = token
        try:
            state = await self.executor.run(definition, payload, token)
        except WorkflowError as e:
            return self._failed_outcome(e)
        finally:
            self._cancel_token = None

        return ExecutionOutcome(
            execution_id=state.execution_id,
            status=state.status,
            results=state.results,
            errors=state.errors,
        )

    def cancel(self, reason: Optional[str] = None) -> bool:
        """
        Cancel the run in progress.

        Returns:
            False if nothing was running
        """
        if self._cancel_token is None:
            return False
        self._cancel_token.cancel(reason)
        logger.info(f"Cancellation requested for workflow {self.workflow_id}")
        return True

    def subscribe(self) -> Subscription:
        """Add an observer; it first receives the current state if there is one."""
        state = self.state_store.status()
        return self.broadcaster.subscribe(state.to_dict() if state else None)

    def unsubscribe(self, subscription: Subscription) -> None:
        self.broadcaster.unsubscribe(subscription)

    def status(self) -> Dict[str, Any]:
        """Live state and observer count, for polling clients."""
        state = self.state_store.status()
        return {
            "execution": state.to_dict() if state else None,
            "observerCount": self.broadcaster.observer_count,
        }

    async def stop(self, timeout: float = 5.0) -> None:
        """
        Cancel the current run, stop the worker and close observers.

        The run in progress gets up to ``timeout`` seconds to observe the
        cancellation and finish as failed. Queued runs are rejected with
        ExecutionCancelled.
        """
        self._stopping = True
        self.cancel(STOPPED_REASON)
        current = self._current
        if current is not None:
            await asyncio.wait({current.future}, timeout=timeout)
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        self.broadcaster.close()


class WorkflowSupervisor:
    """
    Creates and holds one WorkflowActor per workflow id.

    Usage:
        supervisor = WorkflowSupervisor(execution_log, context)
        outcome = await supervisor.execute(definition, payload)
        status = supervisor.get_status(definition.id)
    """

    def __init__(
        self,
        execution_log: "ExecutionLog",
        context: HandlerContext,
        options: Optional[ExecutorOptions] = None,
        max_pending_events: int = 1000,
    ):
        self.execution_log = execution_log
        self.context = context
        self.options = options
        self.max_pending_events = max_pending_events
        self._actors: Dict[str, WorkflowActor] = {}

    def actor(self, workflow_id: str) -> WorkflowActor:
        """Get the actor of a workflow, creating it on first use."""
        actor = self._actors.get(workflow_id)
        if actor is None:
            actor = WorkflowActor(
                workflow_id,
                self.execution_log,
                self.context,
                self.options,
                self.max_pending_events,
            )
            self._actors[workflow_id] = actor
            logger.debug(f"Created actor for workflow {workflow_id}")
        return actor

    async def execute(self, definition: WorkflowDefinition, payload: Any) -> ExecutionOutcome:
        return await self.actor(definition.id).execute(definition, payload)

    def subscribe(self, workflow_id: str) -> Subscription:
        return self.actor(workflow_id).subscribe()

    def unsubscribe(self, workflow_id: str, subscription: Subscription) -> None:
        """Remove an observer; an actor left idle is discarded."""
        actor = self._actors.get(workflow_id)
        if actor is None:
            subscription.close()
            return
        actor.unsubscribe(subscription)
        if actor.is_idle:
            del self._actors[workflow_id]
            logger.debug(f"Discarded idle actor for workflow {workflow_id}")

    def get_status(self, workflow_id: str) -> Dict[str, Any]:
        actor = self._actors.get(workflow_id)
        if actor is None:
            return {"execution": None, "observerCount": 0}
        return actor.status()

    def cancel(self, workflow_id: str, reason: Optional[str] = None) -> bool:
        actor = self._actors.get(workflow_id)
        return actor.cancel(reason) if actor else False

    async def shutdown(self) -> None:
        for actor in list(self._actors.values()):
            await actor.stop()
        self._actors.clear()

    def __len__(self) -> int:
        return len(self._actors)
