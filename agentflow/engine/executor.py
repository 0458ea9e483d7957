"""
Async Workflow Executor.

The executor runs a workflow definition against an input payload,
walking the graph depth-first from its start node, dispatching each node
to its handler, recording results and errors in the live ExecutionState
and broadcasting lifecycle events at every transition.
"""

from typing import Any, List, Optional, Tuple
from dataclasses import dataclass
import asyncio
import contextlib
import logging
import time

from agentflow.config import settings
from agentflow.engine.errors import (
    ExecutionCancelled,
    GraphError,
    NodeExecutionError,
    NodeTimeoutError,
    WorkflowError,
)
from agentflow.engine.events import EventBroadcaster, EventType, make_event
from agentflow.engine.graph import WorkflowDefinition, WorkflowGraph
from agentflow.engine.handlers import BranchOutput, HandlerContext, get_handler
from agentflow.engine.node import Node
from agentflow.engine.state import (
    ExecutionRecord,
    ExecutionState,
    ExecutionStateStore,
    ExecutionStatus,
    utcnow,
)


# Configure logging
logger = logging.getLogger(__name__)


@dataclass
class ExecutorOptions:
    """
    Limits applied to every run.

    Attributes:
        max_node_visits: Node executions allowed per run before the graph
            is treated as cyclic
        node_timeout: Seconds a single handler call may take (None = no limit)
        max_retries: Extra attempts for a failing node
        retry_backoff: Delay before the first retry, doubled per attempt
    """
    max_node_visits: int = 1000
    node_timeout: Optional[float] = 300.0
    max_retries: int = 0
    retry_backoff: float = 0.5

    @classmethod
    def from_settings(cls) -> "ExecutorOptions":
        return cls(
            max_node_visits=settings.MAX_NODE_VISITS,
            node_timeout=settings.NODE_TIMEOUT_SECONDS,
            max_retries=settings.NODE_MAX_RETRIES,
            retry_backoff=settings.NODE_RETRY_BACKOFF_SECONDS,
        )


class CancellationToken:
    """Signals a running workflow to stop at its next suspension point."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason = "Execution cancelled"

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: Optional[str] = None) -> None:
        if reason:
            self.reason = reason
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self, node_id: Optional[str] = None) -> None:
        if self.cancelled:
            raise ExecutionCancelled(self.reason, node_id=node_id)


class WorkflowExecutor:
    """
    Async workflow executor for one workflow.

    Executes a definition with given input, handling:
    - Graph validation
    - Depth-first, strictly sequential node execution
    - Per-node timeout, retry and cancellation
    - State updates and lifecycle events
    - Durable execution records

    Usage:
        executor = WorkflowExecutor(state_store, broadcaster, context)
        state = await executor.run(definition, {"text": "hi"})
    """

    def __init__(
        self,
        state_store: ExecutionStateStore,
        broadcaster: EventBroadcaster,
        context: HandlerContext,
        options: Optional[ExecutorOptions] = None,
    ):
        """
        Initialize the executor.

        Args:
            state_store: Owner of the live ExecutionState
            broadcaster: Observer registry for lifecycle events
            context: Collaborators passed to node handlers
            options: Run limits (defaults from settings)
        """
        self.state_store = state_store
        self.broadcaster = broadcaster
        self.context = context
        self.options = options or ExecutorOptions.from_settings()

    async def run(
        self,
        definition: WorkflowDefinition,
        payload: Any,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ExecutionState:
        """
        Execute a workflow with the given input.

        Args:
            definition: The workflow to run
            payload: Input of the start node
            cancel_token: Optional token to stop the run early

        Returns:
            Snapshot of the final ExecutionState

        Raises:
            WorkflowError: The run failed; the live state holds the partial
                results and errors
            asyncio.CancelledError: The surrounding task was cancelled; the
                run is marked failed and persisted before this propagates
        """
        token = cancel_token or CancellationToken()
        state = self.state_store.begin(definition.id)
        execution_id = state.execution_id
        start_time = time.time()

        logger.info(f"Starting execution {execution_id} of workflow {definition.id}")

        try:
            await self.state_store.persist_create(ExecutionRecord(
                id=execution_id,
                workflow_id=definition.id,
                status=ExecutionStatus.RUNNING,
                created_at=state.started_at,
            ))

            graph = WorkflowGraph.from_definition(definition)

            self._emit(EventType.EXECUTION_STARTED, execution=self._snapshot())

            await self._traverse(graph, payload, token)

            self.state_store.update(self._mark_completed)
            await self.state_store.persist_update(
                execution_id, ExecutionStatus.COMPLETED, self._snapshot_state().results
            )

        except asyncio.CancelledError:
            if not self._snapshot_state().is_terminal:
                reason = token.reason if token.cancelled else "Execution interrupted"
                await self._fail(ExecutionCancelled(reason))
            raise

        except Exception as e:
            error = e if isinstance(e, WorkflowError) else WorkflowError(str(e))
            if not isinstance(e, WorkflowError):
                logger.exception(f"Execution {execution_id} failed unexpectedly: {e}")
            await self._fail(error)
            if error is e:
                raise
            raise error from e

        final = self._snapshot_state()
        self._emit(EventType.EXECUTION_COMPLETED, execution=final.to_dict())
        logger.info(
            f"Execution {execution_id} completed in "
            f"{(time.time() - start_time) * 1000:.1f}ms "
            f"({len(final.results)} nodes with results)"
        )
        return final

    async def _traverse(
        self,
        graph: WorkflowGraph,
        payload: Any,
        token: CancellationToken,
    ) -> None:
        """
        Walk the graph depth-first with an explicit worklist.

        Successors are pushed in reverse so they pop in edge order, which
        reproduces a recursive pre-order walk. Nodes reachable through
        several paths run once per path.
        """
        worklist: List[Tuple[str, Any]] = [(graph.start_node.id, payload)]
        visits = 0

        while worklist:
            token.raise_if_cancelled()

            node_id, node_input = worklist.pop()
            visits += 1
            if visits > self.options.max_node_visits:
                raise GraphError(
                    f"Node visit limit ({self.options.max_node_visits}) exceeded; "
                    f"the workflow graph likely contains a cycle"
                )

            node = graph.nodes[node_id]
            output, branch = await self._execute_node(node, node_input, token)

            successors = graph.successors(node_id, branch)
            for successor_id in reversed(successors):
                worklist.append((successor_id, output))

    async def _execute_node(
        self,
        node: Node,
        payload: Any,
        token: CancellationToken,
    ) -> Tuple[Any, Optional[bool]]:
        """Execute a single node and record its outcome."""
        def mark_started(state: ExecutionState) -> None:
            state.current_node_id = node.id

        self.state_store.update(mark_started)
        self._emit(EventType.NODE_STARTED, nodeId=node.id)
        logger.info(f"Executing node: {node.label} [{node.id}] ({node.type.value})")

        node_start_time = time.time()
        try:
            result = await self._call_with_retries(node, payload, token)
        except WorkflowError as e:
            self._record_node_failure(node, e.message)
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            self._record_node_failure(node, message)
            raise NodeExecutionError(node.id, message) from e

        branch = None
        output = result
        if isinstance(result, BranchOutput):
            output, branch = result.value, result.branch

        def mark_completed(state: ExecutionState) -> None:
            state.results[node.id] = output

        self.state_store.update(mark_completed)
        self._emit(EventType.NODE_COMPLETED, nodeId=node.id, result=output)
        logger.debug(
            f"Node {node.id} finished in {(time.time() - node_start_time) * 1000:.1f}ms"
        )
        return output, branch

    async def _call_with_retries(
        self,
        node: Node,
        payload: Any,
        token: CancellationToken,
    ) -> Any:
        attempts = self.options.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return await self._call_handler(node, payload, token)
            except ExecutionCancelled:
                raise
            except Exception as e:
                if attempt >= attempts:
                    raise
                delay = self.options.retry_backoff * (2 ** (attempt - 1))
                logger.warning(
                    f"Node {node.id} failed (attempt {attempt}/{attempts}): {e}; "
                    f"retrying in {delay:.2f}s"
                )
                await self._sleep(delay, token, node.id)

    async def _call_handler(
        self,
        node: Node,
        payload: Any,
        token: CancellationToken,
    ) -> Any:
        """Run the handler, racing it against the deadline and the cancel token."""
        token.raise_if_cancelled(node.id)

        handler = get_handler(node.type)
        if handler is None:
            raise NodeExecutionError(node.id, f"No handler for node type '{node.type.value}'")

        task = asyncio.ensure_future(handler(node.data, payload, self.context))
        cancel_wait = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait(
                {task, cancel_wait},
                timeout=self.options.node_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            cancel_wait.cancel()

        if task in done:
            return task.result()

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

        token.raise_if_cancelled(node.id)
        raise NodeTimeoutError(
            node.id, f"Node '{node.id}' timed out after {self.options.node_timeout}s"
        )

    async def _sleep(self, delay: float, token: CancellationToken, node_id: str) -> None:
        if delay <= 0:
            return
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(token.wait(), timeout=delay)
        token.raise_if_cancelled(node_id)

    def _record_node_failure(self, node: Node, message: str) -> None:
        def mark_failed(state: ExecutionState) -> None:
            state.errors[node.id] = message

        self.state_store.update(mark_failed)
        self._emit(EventType.NODE_FAILED, nodeId=node.id, error=message)
        logger.error(f"Node {node.id} failed: {message}")

    async def _fail(self, error: WorkflowError) -> None:
        """Move the run to failed, persist it and notify observers."""
        def mark_failed(state: ExecutionState) -> None:
            state.status = ExecutionStatus.FAILED
            state.completed_at = utcnow()
            if error.node_id is None:
                state.errors["execution"] = error.message

        state = self.state_store.update(mark_failed)
        logger.error(
            f"Execution {state.execution_id} failed"
            + (f" at node {error.node_id}" if error.node_id else "")
            + f": {error.message}"
        )

        try:
            await self.state_store.persist_update(
                state.execution_id, ExecutionStatus.FAILED, dict(state.results)
            )
        except Exception as e:
            logger.exception(f"Could not persist failure of execution {state.execution_id}: {e}")

        self._emit(EventType.EXECUTION_FAILED, execution=self._snapshot())

    @staticmethod
    def _mark_completed(state: ExecutionState) -> None:
        state.status = ExecutionStatus.COMPLETED
        state.completed_at = utcnow()

    def _snapshot_state(self) -> ExecutionState:
        return self.state_store.status()

    def _snapshot(self) -> dict:
        return self._snapshot_state().to_dict()

    def _emit(self, event_type: EventType, **data: Any) -> None:
        self.broadcaster.broadcast(make_event(event_type, **data))
