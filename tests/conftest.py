"""
Shared fixtures and fakes for the test suite.
"""

from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from agentflow.backends.inference import InferenceError, InferenceResult
from agentflow.engine.events import EventBroadcaster
from agentflow.engine.executor import ExecutorOptions, WorkflowExecutor
from agentflow.engine.graph import WorkflowDefinition
from agentflow.engine.handlers import HandlerContext
from agentflow.engine.state import ExecutionStateStore
from agentflow.storage.memory import InMemoryExecutionLog


class FakeInference:
    """Inference backend that echoes the user prompt."""

    def __init__(self, reply: Optional[str] = None, fail: bool = False):
        self.reply = reply
        self.fail = fail
        self.calls: List[Dict[str, Any]] = []

    async def infer(self, model: str, messages: List[Dict[str, str]], temperature: float) -> InferenceResult:
        self.calls.append({"model": model, "messages": messages, "temperature": temperature})
        if self.fail:
            raise InferenceError("model unavailable")
        text = self.reply if self.reply is not None else f"echo: {messages[-1]['content']}"
        return InferenceResult(text=text)


def json_responder(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"ok": True})


def make_definition(
    nodes: List[Tuple[str, str, Optional[Dict[str, Any]]]],
    edges: List[Any],
    workflow_id: str = "wf-test",
) -> WorkflowDefinition:
    """
    Build a definition from compact tuples.

    nodes: (id, type, data); edges: (source, target) or (source, target, when)
    """
    edge_dicts = []
    for i, edge in enumerate(edges):
        item = {"id": f"e{i}", "source": edge[0], "target": edge[1]}
        if len(edge) > 2:
            item["when"] = edge[2]
        edge_dicts.append(item)
    return WorkflowDefinition.model_validate({
        "id": workflow_id,
        "name": "Test Workflow",
        "nodes": [{"id": nid, "type": ntype, "data": data or {}} for nid, ntype, data in nodes],
        "edges": edge_dicts,
    })


class Harness:
    """Executor wired to in-memory collaborators, with an observer attached."""

    def __init__(
        self,
        inference: Optional[FakeInference] = None,
        responder=json_responder,
        options: Optional[ExecutorOptions] = None,
    ):
        self.inference = inference or FakeInference()
        self.log = InMemoryExecutionLog()
        self.store = ExecutionStateStore("wf-test", self.log)
        self.broadcaster = EventBroadcaster("wf-test")
        self.http_client = httpx.AsyncClient(transport=httpx.MockTransport(responder))
        self.context = HandlerContext(inference=self.inference, http_client=self.http_client)
        self.executor = WorkflowExecutor(
            self.store,
            self.broadcaster,
            self.context,
            options or ExecutorOptions(node_timeout=5.0),
        )
        self._subscription = None

    def observe(self) -> None:
        self._subscription = self.broadcaster.subscribe()

    def events(self) -> List[Dict[str, Any]]:
        return self._subscription.drain()

    def event_types(self) -> List[Tuple[str, Optional[str]]]:
        return [(e["type"], e["data"].get("nodeId")) for e in self.events()]


@pytest.fixture
def harness() -> Harness:
    return Harness()


@pytest.fixture
def linear_definition() -> WorkflowDefinition:
    return make_definition(
        [
            ("start", "start", None),
            ("llm", "llm", {"prompt": "Say {{text}}", "model": "test-model"}),
            ("end", "end", None),
        ],
        [("start", "llm"), ("llm", "end")],
    )
