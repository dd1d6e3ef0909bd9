"""Validated, read-only view over a FlowDefinition plus a snapshot cache."""

from collections import OrderedDict
from datetime import datetime
from threading import Lock
from typing import Any, Optional

from pydantic import ValidationError

from flowdesk.logging_config import get_logger
from flowdesk.schemas.flow import (
    TERMINAL_NODE_TYPES,
    ConditionNode,
    Edge,
    FlowDefinition,
    Node,
    TriggerNode,
)

logger = get_logger("flow_graph")

SINGLE_SUCCESSOR_TYPES = {"trigger", "message", "input"}


class FlowEngineError(Exception):
    """Base class for failures the caller has to handle."""


class FlowNotFound(FlowEngineError):
    def __init__(self, flow_id: str):
        self.flow_id = flow_id
        super().__init__(f"Flow not found: {flow_id}")


class MalformedFlow(FlowEngineError):
    def __init__(self, flow_id: Optional[str], violations: list[str]):
        self.flow_id = flow_id
        self.violations = violations
        super().__init__(f"Malformed flow {flow_id}: {'; '.join(violations)}")


def parse_flow(raw: dict[str, Any]) -> FlowDefinition:
    """Parse an editor document, mapping schema errors to MalformedFlow."""
    try:
        return FlowDefinition.model_validate(raw)
    except ValidationError as e:
        violations = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise MalformedFlow(raw.get("id") if isinstance(raw, dict) else None, violations) from e


class FlowGraph:
    def __init__(self, definition: FlowDefinition):
        self.definition = definition
        self._nodes: dict[str, Node] = {}
        self._outgoing: dict[str, list[Edge]] = {}
        self._incoming: dict[str, list[Edge]] = {}

        violations = self._index()
        violations.extend(self._check_invariants())
        if violations:
            raise MalformedFlow(definition.id, violations)

    @property
    def flow_id(self) -> str:
        return self.definition.id

    @property
    def version(self) -> Optional[datetime]:
        return self.definition.updated_at

    def _index(self) -> list[str]:
        violations = []
        for node in self.definition.nodes:
            if node.id in self._nodes:
                violations.append(f"duplicate node id '{node.id}'")
                continue
            self._nodes[node.id] = node
            self._outgoing[node.id] = []
            self._incoming[node.id] = []

        for edge in self.definition.edges:
            if edge.source not in self._nodes:
                violations.append(f"edge '{edge.id}' has unknown source '{edge.source}'")
                continue
            if edge.target not in self._nodes:
                violations.append(f"edge '{edge.id}' has unknown target '{edge.target}'")
                continue
            self._outgoing[edge.source].append(edge)
            self._incoming[edge.target].append(edge)
        return violations

    def _check_invariants(self) -> list[str]:
        violations = []

        triggers = [node for node in self._nodes.values() if isinstance(node, TriggerNode)]
        if len(triggers) != 1:
            violations.append(f"expected exactly one trigger node, found {len(triggers)}")
        for node in triggers:
            if self._incoming[node.id]:
                violations.append(f"trigger node '{node.id}' has incoming edges")

        for node in self._nodes.values():
            edges = self._outgoing[node.id]
            if node.type in TERMINAL_NODE_TYPES:
                continue
            if not edges:
                violations.append(f"{node.type} node '{node.id}' has no outgoing edge")
            elif node.type in SINGLE_SUCCESSOR_TYPES and len(edges) > 1:
                violations.append(f"{node.type} node '{node.id}' has {len(edges)} outgoing edges, expected 1")

            if isinstance(node, ConditionNode):
                options = set(node.data.options)
                for edge in edges:
                    if edge.label is None:
                        violations.append(f"condition edge '{edge.id}' has no label")
                    elif edge.label not in options:
                        violations.append(
                            f"condition edge '{edge.id}' label '{edge.label}' is not an option of '{node.id}'"
                        )
        return violations

    def node_by_id(self, node_id: str) -> Optional[Node]:
        return self._nodes.get(node_id)

    def edges_from(self, node_id: str) -> list[Edge]:
        return list(self._outgoing.get(node_id, []))

    def trigger_node(self) -> TriggerNode:
        for node in self._nodes.values():
            if isinstance(node, TriggerNode):
                return node
        raise MalformedFlow(self.flow_id, ["no trigger node"])

    def successor(self, node_id: str) -> str:
        """Target of the single outgoing edge of a non-branching node."""
        return self._outgoing[node_id][0].target


class FlowCache:
    """Validated graphs keyed by (flow id, updated_at), least recently used evicted first."""

    def __init__(self, max_size: int = 128):
        self.max_size = max_size
        self._graphs: OrderedDict[tuple[str, Optional[datetime]], FlowGraph] = OrderedDict()
        self._lock = Lock()

    def graph_for(self, definition: FlowDefinition) -> FlowGraph:
        key = (definition.id, definition.updated_at)
        with self._lock:
            graph = self._graphs.get(key)
            if graph is not None:
                self._graphs.move_to_end(key)
                return graph

        graph = FlowGraph(definition)

        with self._lock:
            # a newer snapshot replaces every older one of the same flow
            for stale in [k for k in self._graphs if k[0] == definition.id]:
                del self._graphs[stale]
            self._graphs[key] = graph
            while len(self._graphs) > self.max_size:
                self._graphs.popitem(last=False)
        logger.debug(f"Cached flow {definition.id} version={definition.updated_at}")
        return graph

    def invalidate(self, flow_id: str) -> None:
        with self._lock:
            for key in [k for k in self._graphs if k[0] == flow_id]:
                del self._graphs[key]
        logger.info(f"Invalidated cached flow {flow_id}")

    def __len__(self) -> int:
        return len(self._graphs)
