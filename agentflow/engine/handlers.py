"""
Node Handlers for the Execution Engine.

One handler per node type. A handler receives the node's configuration
and the payload flowing into the node, and returns the payload for the
node's successors. Handlers are looked up through a registry keyed by
node type.
"""

from typing import Any, Awaitable, Callable, Dict, Mapping, Optional
from dataclasses import dataclass, field
import json
import logging

import httpx

from agentflow.backends.inference import InferenceBackend
from agentflow.config import settings
from agentflow.engine.condition import evaluate_condition
from agentflow.engine.node import NodeType
from agentflow.engine.template import MISSING, get_nested_value, resolve_template


logger = logging.getLogger(__name__)


@dataclass
class HandlerContext:
    """
    Collaborators shared by all handlers of one engine.

    Attributes:
        inference: Backend used by llm nodes
        http_client: Client used by http nodes
        default_model: Model used when an llm node does not set one
        default_temperature: Temperature used when an llm node does not set one
        system_prompt: System instruction sent with every llm call
    """
    inference: InferenceBackend
    http_client: httpx.AsyncClient
    default_model: str = field(default_factory=lambda: settings.DEFAULT_MODEL)
    default_temperature: float = field(default_factory=lambda: settings.DEFAULT_TEMPERATURE)
    system_prompt: str = field(default_factory=lambda: settings.LLM_SYSTEM_PROMPT)


@dataclass
class BranchOutput:
    """Output of a condition node: the selected value and the predicate result."""
    value: Any
    branch: bool


Handler = Callable[[Dict[str, Any], Any, HandlerContext], Awaitable[Any]]

# Registry to hold handlers by node type
_handler_registry: Dict[NodeType, Handler] = {}


def node_handler(node_type: NodeType) -> Callable[[Handler], Handler]:
    """
    Decorator to register the handler for a node type.

    Usage:
        @node_handler(NodeType.START)
        async def handle_start(config, payload, context):
            return payload
    """
    def decorator(func: Handler) -> Handler:
        _handler_registry[node_type] = func
        return func

    return decorator


def get_handler(node_type: NodeType) -> Optional[Handler]:
    """Get the registered handler for a node type."""
    return _handler_registry.get(node_type)


def list_handlers() -> Dict[str, str]:
    """List registered node types and their handler names."""
    return {t.value: h.__name__ for t, h in _handler_registry.items()}


# ============================================================
# Pass-through
# ============================================================

@node_handler(NodeType.START)
async def handle_start(config: Dict[str, Any], payload: Any, context: HandlerContext) -> Any:
    return payload


@node_handler(NodeType.END)
async def handle_end(config: Dict[str, Any], payload: Any, context: HandlerContext) -> Any:
    return payload


# ============================================================
# LLM
# ============================================================

@node_handler(NodeType.LLM)
async def handle_llm(config: Dict[str, Any], payload: Any, context: HandlerContext) -> Dict[str, Any]:
    """
    Send the node's prompt to the inference backend.

    Config:
        prompt: Prompt template, resolved against the payload
        model: Model id (defaults to the configured model)
        temperature: Sampling temperature (defaults to 0.7)

    Returns:
        {"text": completion, "model": model, "input": resolved prompt}
    """
    model = config.get("model") or context.default_model
    temperature = config.get("temperature")
    if temperature is None:
        temperature = context.default_temperature
    prompt = resolve_template(config.get("prompt", ""), payload)

    result = await context.inference.infer(
        model,
        [
            {"role": "system", "content": context.system_prompt},
            {"role": "user", "content": prompt},
        ],
        float(temperature),
    )

    return {"text": result.text, "model": model, "input": prompt}


# ============================================================
# HTTP
# ============================================================

@node_handler(NodeType.HTTP)
async def handle_http(config: Dict[str, Any], payload: Any, context: HandlerContext) -> Dict[str, Any]:
    """
    Issue an HTTP request and return its status and JSON body.

    Placeholders are resolved in the url and in the JSON-encoded body.
    A non-2xx status is returned, not raised. A body that is not JSON
    fails the node.
    """
    url = config.get("url")
    if not url:
        raise ValueError("HTTP node requires a 'url'")

    method = str(config.get("method") or "GET").upper()
    headers = {"Content-Type": "application/json", **(config.get("headers") or {})}

    body = config.get("body")
    content = None
    if body is not None:
        content = resolve_template(json.dumps(body), payload)

    response = await context.http_client.request(
        method,
        resolve_template(url, payload),
        headers=headers,
        content=content,
    )
    logger.debug(f"{method} {response.url} -> {response.status_code}")

    data = response.json() if response.content else None
    return {"status": response.status_code, "data": data}


# ============================================================
# Transform
# ============================================================

def _extract_fields(data: Any, fields: Any) -> Dict[str, Any]:
    result = {}
    for path in fields or []:
        value = get_nested_value(data, path)
        result[path] = None if value is MISSING else value
    return result


@node_handler(NodeType.TRANSFORM)
async def handle_transform(config: Dict[str, Any], payload: Any, context: HandlerContext) -> Any:
    """
    Reshape the payload.

    transformType:
        json: parse a JSON string
        extract: pick config.fields (dot paths) into a flat mapping
        merge: shallow-merge config.data over the payload
        anything else: pass the payload through
    """
    transform_type = config.get("transformType")
    options = config.get("config") or {}

    if transform_type == "json":
        if not isinstance(payload, (str, bytes, bytearray)):
            raise TypeError(
                f"JSON transform expects a string, got {type(payload).__name__}"
            )
        return json.loads(payload)

    if transform_type == "extract":
        return _extract_fields(payload, options.get("fields"))

    if transform_type == "merge":
        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise TypeError(
                f"Merge transform expects an object, got {type(payload).__name__}"
            )
        return {**payload, **(options.get("data") or {})}

    return payload


# ============================================================
# Condition
# ============================================================

@node_handler(NodeType.CONDITION)
async def handle_condition(config: Dict[str, Any], payload: Any, context: HandlerContext) -> BranchOutput:
    """
    Evaluate the node's predicate and select trueValue or falseValue.

    The executor records the selected value as the node output and uses
    the predicate result to filter edges tagged with ``when``.
    """
    condition = config.get("condition")
    if not isinstance(condition, str):
        raise ValueError("Condition node requires a 'condition' string")

    matched = evaluate_condition(condition, payload)
    value = config.get("trueValue") if matched else config.get("falseValue")
    return BranchOutput(value=value, branch=matched)
