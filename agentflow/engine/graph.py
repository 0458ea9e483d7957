"""
Graph Definition for the Execution Engine.

A WorkflowDefinition is what the editor saves: a list of nodes and a list
of edges. WorkflowGraph is the validated, executable form built once per
run, with the adjacency the executor walks.
"""

from typing import Dict, List, Optional
from dataclasses import dataclass, field
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from agentflow.engine.errors import GraphError
from agentflow.engine.node import Node, NodeType


class Edge(BaseModel):
    """
    A directed edge between two nodes.

    The handles are editor routing hints. ``when`` is an optional branch
    tag: on an edge leaving a condition node it is followed only when the
    predicate result matches it. Untagged edges are always followed.
    """
    id: str
    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None
    when: Optional[bool] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class WorkflowDefinition(BaseModel):
    """A workflow as authored in the editor."""
    id: str = Field(..., min_length=1)
    name: str = "Untitled Workflow"
    description: Optional[str] = None
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)

    class Config:
        alias_generator = to_camel
        populate_by_name = True


@dataclass
class WorkflowGraph:
    """
    Executable view of a WorkflowDefinition.

    Attributes:
        workflow_id: Id of the source definition
        nodes: node id -> Node
        adjacency: node id -> outgoing edges, in declaration order
        start_node: The single start node
    """

    workflow_id: str
    nodes: Dict[str, Node]
    start_node: Node
    adjacency: Dict[str, List[Edge]] = field(default_factory=dict)

    @classmethod
    def from_definition(cls, definition: WorkflowDefinition) -> "WorkflowGraph":
        """
        Validate a definition and build its adjacency.

        Raises:
            GraphError: duplicate node ids, no start node or more than
                one, or an edge pointing at a node that does not exist
        """
        nodes: Dict[str, Node] = {}
        for node in definition.nodes:
            if node.id in nodes:
                raise GraphError(f"Duplicate node id '{node.id}'")
            nodes[node.id] = node

        starts = [n for n in definition.nodes if n.type == NodeType.START]
        if not starts:
            raise GraphError("No start node found in workflow")
        if len(starts) > 1:
            raise GraphError(
                f"Workflow has {len(starts)} start nodes; exactly one is required"
            )

        adjacency: Dict[str, List[Edge]] = {}
        for edge in definition.edges:
            for end in (edge.source, edge.target):
                if end not in nodes:
                    raise GraphError(
                        f"Edge '{edge.id}' references unknown node '{end}'"
                    )
            adjacency.setdefault(edge.source, []).append(edge)

        return cls(
            workflow_id=definition.id,
            nodes=nodes,
            start_node=starts[0],
            adjacency=adjacency,
        )

    def successors(self, node_id: str, branch: Optional[bool] = None) -> List[str]:
        """
        Get the successor ids of a node in edge order.

        Args:
            node_id: Source node id
            branch: Predicate result when the node is a condition node;
                tagged edges whose tag differs are skipped

        Returns:
            Successor node ids (duplicates kept)
        """
        targets = []
        for edge in self.adjacency.get(node_id, []):
            if branch is not None and edge.when is not None and edge.when != branch:
                continue
            targets.append(edge.target)
        return targets

    def __repr__(self) -> str:
        return (
            f"WorkflowGraph(workflow_id='{self.workflow_id}', "
            f"nodes={list(self.nodes.keys())}, start='{self.start_node.id}')"
        )
