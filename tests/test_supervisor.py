"""
Tests for per-workflow actors and the supervisor.
"""

import asyncio

import httpx
import pytest

from agentflow.backends.inference import InferenceResult
from agentflow.engine.errors import ExecutionCancelled
from agentflow.engine.executor import ExecutorOptions
from agentflow.engine.handlers import HandlerContext
from agentflow.engine.state import ExecutionStatus
from agentflow.engine.supervisor import STOPPED_REASON, ExecutionOutcome, WorkflowSupervisor
from agentflow.storage.memory import InMemoryExecutionLog

from conftest import FakeInference, make_definition


class GatedInference(FakeInference):
    """Backend that holds every call until released, tracking overlap."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()
        self.entered = asyncio.Event()
        self.active = 0
        self.max_active = 0

    async def infer(self, model, messages, temperature):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.entered.set()
        try:
            await self.gate.wait()
        finally:
            self.active -= 1
        return InferenceResult(text=messages[-1]["content"])


def make_supervisor(inference=None) -> WorkflowSupervisor:
    context = HandlerContext(
        inference=inference or FakeInference(),
        http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={}))
        ),
    )
    return WorkflowSupervisor(
        InMemoryExecutionLog(), context, ExecutorOptions(node_timeout=5.0)
    )


def llm_definition(workflow_id: str = "wf-test"):
    return make_definition(
        [
            ("start", "start", None),
            ("llm", "llm", {"prompt": "{{text}}"}),
            ("end", "end", None),
        ],
        [("start", "llm"), ("llm", "end")],
        workflow_id=workflow_id,
    )


async def wait_until(predicate, timeout: float = 5.0) -> None:
    async def poll():
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout=timeout)


class TestExecutionOutcome:
    """Tests for ExecutionOutcome."""

    def test_to_dict(self):
        """Test the camel-cased outcome shape."""
        outcome = ExecutionOutcome(
            execution_id="e1",
            status=ExecutionStatus.FAILED,
            results={"start": 1},
            errors={"llm": "boom"},
            error="boom",
            failed_node_id="llm",
        )
        assert not outcome.succeeded
        assert outcome.to_dict() == {
            "executionId": "e1",
            "status": "failed",
            "results": {"start": 1},
            "errors": {"llm": "boom"},
            "error": "boom",
            "failedNodeId": "llm",
        }


class TestWorkflowSupervisor:
    """Tests for WorkflowSupervisor and WorkflowActor."""

    @pytest.mark.asyncio
    async def test_execute(self):
        """Test a successful run through the supervisor."""
        supervisor = make_supervisor()

        outcome = await supervisor.execute(llm_definition(), {"text": "hi"})

        assert outcome.succeeded
        assert outcome.results["llm"]["text"] == "echo: hi"
        assert outcome.errors == {}
        assert len(supervisor) == 1
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_failed_outcome(self):
        """Test a failed run is reported, not raised."""
        supervisor = make_supervisor(FakeInference(fail=True))

        outcome = await supervisor.execute(llm_definition(), {"text": "hi"})

        assert outcome.status == ExecutionStatus.FAILED
        assert outcome.error == "model unavailable"
        assert outcome.failed_node_id == "llm"
        assert outcome.errors == {"llm": "model unavailable"}
        assert list(outcome.results) == ["start"]
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_graph_error_outcome(self):
        """Test an invalid graph fails at the execution level."""
        supervisor = make_supervisor()
        definition = make_definition([("a", "end", None)], [])

        outcome = await supervisor.execute(definition, {})

        assert outcome.status == ExecutionStatus.FAILED
        assert outcome.failed_node_id is None
        assert outcome.errors == {"execution": "No start node found in workflow"}
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_runs_of_one_workflow_are_serialized(self):
        """Test concurrent runs of the same workflow never overlap."""
        inference = GatedInference()
        supervisor = make_supervisor(inference)
        actor = supervisor.actor("wf-test")

        first = asyncio.create_task(supervisor.execute(llm_definition(), {"text": "one"}))
        second = asyncio.create_task(supervisor.execute(llm_definition(), {"text": "two"}))

        await asyncio.wait_for(inference.entered.wait(), timeout=5)
        await wait_until(lambda: actor.queued == 1)
        assert actor.is_running

        status = supervisor.get_status("wf-test")
        assert status["execution"]["status"] == "running"
        assert status["execution"]["currentNodeId"] == "llm"

        inference.gate.set()
        one, two = await asyncio.wait_for(asyncio.gather(first, second), timeout=5)

        assert inference.max_active == 1
        assert one.results["llm"]["text"] == "one"
        assert two.results["llm"]["text"] == "two"
        assert one.execution_id != two.execution_id
        assert supervisor.get_status("wf-test")["execution"]["executionId"] == two.execution_id
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_workflows_run_independently(self):
        """Test runs of different workflows proceed concurrently."""
        inference = GatedInference()
        supervisor = make_supervisor(inference)

        first = asyncio.create_task(supervisor.execute(llm_definition("wf-a"), {"text": "a"}))
        second = asyncio.create_task(supervisor.execute(llm_definition("wf-b"), {"text": "b"}))

        await wait_until(lambda: inference.active == 2)
        inference.gate.set()
        await asyncio.wait_for(asyncio.gather(first, second), timeout=5)

        assert inference.max_active == 2
        assert len(supervisor) == 2
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_cancel(self):
        """Test cancelling the run in progress."""
        inference = GatedInference()
        supervisor = make_supervisor(inference)

        run = asyncio.create_task(supervisor.execute(llm_definition(), {"text": "hi"}))
        await asyncio.wait_for(inference.entered.wait(), timeout=5)

        assert supervisor.cancel("wf-test", "user asked") is True
        outcome = await asyncio.wait_for(run, timeout=5)

        assert outcome.status == ExecutionStatus.FAILED
        assert outcome.error == "user asked"
        assert outcome.failed_node_id == "llm"
        assert supervisor.cancel("wf-test") is False
        await supervisor.shutdown()

    def test_cancel_unknown_workflow(self):
        """Test cancelling a workflow that never ran."""
        assert make_supervisor().cancel("nope") is False

    def test_status_unknown_workflow(self):
        """Test status of a workflow that never ran."""
        assert make_supervisor().get_status("nope") == {"execution": None, "observerCount": 0}

    @pytest.mark.asyncio
    async def test_late_subscriber_gets_final_state(self):
        """Test an observer joining after a run receives its final state."""
        supervisor = make_supervisor()
        await supervisor.execute(llm_definition(), {"text": "hi"})

        subscription = supervisor.subscribe("wf-test")
        events = subscription.drain()

        assert len(events) == 1
        assert events[0]["type"] == "state"
        assert events[0]["data"]["execution"] == supervisor.get_status("wf-test")["execution"]
        assert events[0]["data"]["execution"]["status"] == "completed"
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_observer_sees_run(self):
        """Test a live observer receives the run's events and is counted."""
        supervisor = make_supervisor()
        subscription = supervisor.subscribe("wf-test")
        assert supervisor.get_status("wf-test")["observerCount"] == 1

        await supervisor.execute(llm_definition(), {"text": "hi"})
        types = [event["type"] for event in subscription.drain()]

        assert types[0] == "execution_started"
        assert types[-1] == "execution_completed"
        assert types.count("node_completed") == 3

        supervisor.unsubscribe("wf-test", subscription)
        assert supervisor.get_status("wf-test")["observerCount"] == 0
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_shutdown_closes_observers(self):
        """Test shutdown closes every subscription."""
        supervisor = make_supervisor()
        subscription = supervisor.subscribe("wf-test")

        await supervisor.shutdown()

        assert subscription.closed
        assert len(supervisor) == 0

    @pytest.mark.asyncio
    async def test_unsubscribe_discards_unused_actor(self):
        """Test an observer of a workflow that never ran leaves no actor behind."""
        supervisor = make_supervisor()
        subscription = supervisor.subscribe("ghost")
        assert len(supervisor) == 1

        supervisor.unsubscribe("ghost", subscription)

        assert len(supervisor) == 0
        assert subscription.closed
        supervisor.unsubscribe("ghost", subscription)
        assert len(supervisor) == 0

    @pytest.mark.asyncio
    async def test_unsubscribe_keeps_actor_with_history(self):
        """Test an actor holding a finished run survives its last observer."""
        supervisor = make_supervisor()
        await supervisor.execute(llm_definition(), {"text": "hi"})
        subscription = supervisor.subscribe("wf-test")

        supervisor.unsubscribe("wf-test", subscription)

        assert len(supervisor) == 1
        assert supervisor.get_status("wf-test")["execution"]["status"] == "completed"
        await supervisor.shutdown()


class TestShutdown:
    """Tests for stopping actors while runs are in flight."""

    @pytest.mark.asyncio
    async def test_shutdown_mid_run_fails_the_run(self):
        """Test shutting down during a run ends it as failed everywhere."""
        inference = GatedInference()
        supervisor = make_supervisor(inference)
        actor = supervisor.actor("wf-test")
        subscription = supervisor.subscribe("wf-test")

        run = asyncio.create_task(supervisor.execute(llm_definition(), {"text": "hi"}))
        await asyncio.wait_for(inference.entered.wait(), timeout=5)

        await asyncio.wait_for(supervisor.shutdown(), timeout=5)
        outcome = await asyncio.wait_for(run, timeout=5)

        assert outcome.status == ExecutionStatus.FAILED
        assert outcome.error == STOPPED_REASON

        state = actor.state_store.status()
        assert state.status == ExecutionStatus.FAILED
        assert state.completed_at is not None

        record = await supervisor.execution_log.get(outcome.execution_id)
        assert record.status == ExecutionStatus.FAILED

        types = [event["type"] for event in subscription.drain()]
        assert types[-1] == "execution_failed"

    @pytest.mark.asyncio
    async def test_stop_without_grace_period(self):
        """Test a run interrupted by cancelling the worker is still failed."""
        inference = GatedInference()
        supervisor = make_supervisor(inference)
        actor = supervisor.actor("wf-test")

        run = asyncio.create_task(actor.execute(llm_definition(), {"text": "hi"}))
        await asyncio.wait_for(inference.entered.wait(), timeout=5)

        await asyncio.wait_for(actor.stop(timeout=0), timeout=5)
        outcome = await asyncio.wait_for(run, timeout=5)

        assert outcome.status == ExecutionStatus.FAILED
        assert outcome.error == STOPPED_REASON
        assert actor.state_store.status().status == ExecutionStatus.FAILED
        record = await supervisor.execution_log.get(outcome.execution_id)
        assert record.status == ExecutionStatus.FAILED

    @pytest.mark.asyncio
    async def test_shutdown_rejects_queued_runs(self):
        """Test runs waiting in the queue are rejected on shutdown."""
        inference = GatedInference()
        supervisor = make_supervisor(inference)
        actor = supervisor.actor("wf-test")

        first = asyncio.create_task(supervisor.execute(llm_definition(), {"text": "one"}))
        second = asyncio.create_task(supervisor.execute(llm_definition(), {"text": "two"}))
        await asyncio.wait_for(inference.entered.wait(), timeout=5)
        await wait_until(lambda: actor.queued == 1)

        await asyncio.wait_for(supervisor.shutdown(), timeout=5)

        assert (await asyncio.wait_for(first, timeout=5)).status == ExecutionStatus.FAILED
        with pytest.raises(ExecutionCancelled):
            await asyncio.wait_for(second, timeout=5)
        assert len(await supervisor.execution_log.list_by_workflow("wf-test")) == 1
