"""
Node Definition for the Execution Engine.

Nodes are the building blocks of a workflow. Each node has a type that
selects the handler the engine dispatches it to, and a free-form data bag
holding the handler's configuration.
"""

from typing import Any, Dict, Optional
from enum import Enum
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class NodeType(str, Enum):
    """Types of nodes in the workflow."""
    START = "start"            # Entry point
    LLM = "llm"                # Inference call
    HTTP = "http"              # Outbound HTTP request
    TRANSFORM = "transform"    # Reshape the payload
    CONDITION = "condition"    # Select a value from a predicate
    END = "end"                # Exit point


class Position(BaseModel):
    """Canvas position of a node. Only the editor uses it."""
    x: float = 0
    y: float = 0


class Node(BaseModel):
    """
    A node in the workflow graph.

    Attributes:
        id: Unique identifier within the definition
        type: Node type, selects the handler
        data: Type-specific configuration (prompt, url, condition, ...)
        position: Editor position, ignored by the engine
    """

    id: str = Field(..., min_length=1)
    type: NodeType
    data: Dict[str, Any] = Field(default_factory=dict)
    position: Optional[Position] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    @property
    def label(self) -> str:
        """Human-readable label, falling back to the id."""
        return str(self.data.get("label") or self.id)
