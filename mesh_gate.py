"""
MeshFlow — Presence Gate
=========================
Passes a value through only when its companion boolean is true.

A suppressed value is absent (None), never a zero or a stale value
from a previous invocation. Gating an absent value is a no-op, so
applying the same gate twice gives the same result as applying it
once.

Part 3 of 13 — Presence Gate
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from mesh_graph import Graph, Port, Stage, Stream

VALUE_TAG = "VALUE"
ALLOW_TAG = "ALLOW"


def gate(value: Optional[Any], allow: Optional[bool]) -> Optional[Any]:
    """Return value if allow is true, otherwise None."""
    if value is None or not allow:
        return None
    return value


class AllowIfStage(Stage):
    """Gate stage; the VALUE port is typed per instance."""

    def __init__(self, value_type: type = object) -> None:
        self._value_type = value_type

    @property
    def inputs(self) -> Tuple[Port, ...]:
        return (
            Port(VALUE_TAG, self._value_type),
            Port(ALLOW_TAG, bool),
        )

    @property
    def outputs(self) -> Tuple[Port, ...]:
        return (Port(VALUE_TAG, self._value_type),)

    def process(self, VALUE: Any, ALLOW: bool) -> Dict[str, Any]:
        return {VALUE_TAG: gate(VALUE, ALLOW)}


def allow_if(value: Stream, allow: Stream, graph: Graph) -> Stream:
    """Add a gate node to graph and return the gated stream."""
    node = graph.add_node(AllowIfStage(value.type), VALUE=value, ALLOW=allow)
    return node.out(VALUE_TAG)
