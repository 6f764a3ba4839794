"""
MeshFlow — Graph Composition
=============================
Typed stages, ports and streams, and the graph that wires them.

Composition rules (checked while the graph is being built):
  - A stage input may only be connected to a stream of a compatible
    type (same class or subclass; `object` ports accept anything).
  - Every non-optional input port must be connected.
  - A stream can only be consumed after it was produced, so the
    insertion order of nodes is always a valid topological order and
    no cycle can be expressed.

Execution (Graph.run):
  - Nodes run in insertion order, once per invocation.
  - An absent value (None) on a required input skips the node and
    makes all of its outputs absent for that invocation. This is how a
    suppressed value propagates without breaking the graph.

Part 2 of 13 — Stage Registry & Stream Wiring
"""

from __future__ import annotations

import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

_log = logging.getLogger("MeshFlow.Graph")


class ConfigurationError(ValueError):
    """Raised while assembling a graph; fatal to pipeline construction."""


# ═══════════════════════════════════════════════════════════════
# Ports & Streams
# ═══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Port:
    """Named, typed stage input or output."""
    tag: str
    type: type
    optional: bool = False

    def accepts(self, stream_type: type) -> bool:
        if self.type is object:
            return True
        try:
            return issubclass(stream_type, self.type)
        except TypeError:
            return False


class Stream:
    """A typed channel produced by a graph input or a node output."""

    _ids = itertools.count()

    def __init__(self, graph: "Graph", name: str, stream_type: type) -> None:
        self.graph = graph
        self.name = name
        self.type = stream_type
        self.id = next(Stream._ids)

    def __repr__(self) -> str:
        return f"Stream({self.name!r}, {self.type.__name__})"


# ═══════════════════════════════════════════════════════════════
# Stage
# ═══════════════════════════════════════════════════════════════

class Stage(ABC):
    """Base class for every processing unit in a graph.

    Subclasses declare INPUTS / OUTPUTS as tuples of Port and implement
    process(), which receives one keyword argument per input tag and
    returns a dict keyed by output tag. A missing key or a None value
    means the output is absent for this invocation.
    """

    INPUTS: Tuple[Port, ...] = ()
    OUTPUTS: Tuple[Port, ...] = ()

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def inputs(self) -> Tuple[Port, ...]:
        return self.INPUTS

    @property
    def outputs(self) -> Tuple[Port, ...]:
        return self.OUTPUTS

    @abstractmethod
    def process(self, **inputs: Any) -> Dict[str, Any]:
        """Compute this stage's outputs for a single invocation."""


class Node:
    """A stage placed in a graph together with its connected streams."""

    def __init__(
        self,
        graph: "Graph",
        stage: Stage,
        connections: Dict[str, Stream],
    ) -> None:
        self.graph = graph
        self.stage = stage
        self.connections = connections
        self._outputs = {
            port.tag: Stream(graph, f"{stage.name}.{port.tag}", port.type)
            for port in stage.outputs
        }

    def out(self, tag: str) -> Stream:
        try:
            return self._outputs[tag]
        except KeyError:
            raise ConfigurationError(
                f"{self.stage.name} has no output port {tag!r}; "
                f"available: {sorted(self._outputs)}"
            ) from None

    def __getitem__(self, tag: str) -> Stream:
        return self.out(tag)

    @property
    def output_streams(self) -> Dict[str, Stream]:
        return dict(self._outputs)


# ═══════════════════════════════════════════════════════════════
# Graph
# ═══════════════════════════════════════════════════════════════

class Graph:
    """Builder and sequential executor for a stage graph."""

    def __init__(self, name: str = "Graph") -> None:
        self.name = name
        self._inputs: Dict[str, Tuple[Port, Stream]] = {}
        self._outputs: Dict[str, Stream] = {}
        self._nodes: List[Node] = []

    # ── Building ──────────────────────────────────────────────

    def input(self, tag: str, stream_type: type, optional: bool = False) -> Stream:
        """Declare a graph input and return its stream."""
        if tag in self._inputs:
            raise ConfigurationError(f"{self.name}: duplicate input {tag!r}")
        stream = Stream(self, f"{self.name}.in.{tag}", stream_type)
        self._inputs[tag] = (Port(tag, stream_type, optional), stream)
        return stream

    def add_node(self, stage: Stage, **connections: Stream) -> Node:
        """Place a stage and connect its inputs by tag."""
        if not isinstance(stage, Stage):
            raise ConfigurationError(
                f"{self.name}: {type(stage).__name__} is not a Stage"
            )

        ports = {port.tag: port for port in stage.inputs}
        for tag, stream in connections.items():
            port = ports.get(tag)
            if port is None:
                raise ConfigurationError(
                    f"{stage.name} has no input port {tag!r}; "
                    f"available: {sorted(ports)}"
                )
            self._check_stream(stream, f"{stage.name}.{tag}")
            if not port.accepts(stream.type):
                raise ConfigurationError(
                    f"{stage.name}.{tag} expects {port.type.__name__}, "
                    f"got {stream!r}"
                )

        missing = [
            tag for tag, port in ports.items()
            if not port.optional and tag not in connections
        ]
        if missing:
            raise ConfigurationError(
                f"{stage.name}: required input(s) not connected: {missing}"
            )

        node = Node(self, stage, dict(connections))
        self._nodes.append(node)
        return node

    def output(self, tag: str, stream: Stream) -> None:
        """Expose a stream as a graph output."""
        if tag in self._outputs:
            raise ConfigurationError(f"{self.name}: duplicate output {tag!r}")
        self._check_stream(stream, f"{self.name}.out.{tag}")
        self._outputs[tag] = stream

    def _check_stream(self, stream: Stream, where: str) -> None:
        if not isinstance(stream, Stream):
            raise ConfigurationError(
                f"{where}: expected a Stream, got {type(stream).__name__}"
            )
        if stream.graph is not self:
            raise ConfigurationError(
                f"{where}: {stream!r} belongs to graph {stream.graph.name!r}"
            )

    @property
    def nodes(self) -> List[Node]:
        return list(self._nodes)

    @property
    def output_tags(self) -> List[str]:
        return list(self._outputs)

    def output_type(self, tag: str) -> type:
        return self._outputs[tag].type

    # ── Running ───────────────────────────────────────────────

    def run(self, **values: Any) -> Dict[str, Optional[Any]]:
        """Run every node once and return the graph outputs by tag."""
        unknown = set(values) - set(self._inputs)
        if unknown:
            raise ValueError(f"{self.name}: unknown input(s) {sorted(unknown)}")

        packets: Dict[int, Any] = {}
        for tag, (port, stream) in self._inputs.items():
            value = values.get(tag)
            if value is None and not port.optional:
                raise ValueError(f"{self.name}: required input {tag!r} missing")
            packets[stream.id] = value

        for node in self._nodes:
            self._run_node(node, packets)

        return {tag: packets.get(stream.id) for tag, stream in self._outputs.items()}

    @staticmethod
    def _run_node(node: Node, packets: Dict[int, Any]) -> None:
        stage = node.stage
        kwargs: Dict[str, Any] = {}
        skip = False
        for port in stage.inputs:
            stream = node.connections.get(port.tag)
            value = packets.get(stream.id) if stream is not None else None
            if value is None and not port.optional:
                skip = True
                break
            kwargs[port.tag] = value

        if skip:
            _log.debug("%s skipped: absent input", stage.name)
            for stream in node.output_streams.values():
                packets[stream.id] = None
            return

        produced = stage.process(**kwargs) or {}
        extra = set(produced) - set(node.output_streams)
        if extra:
            raise RuntimeError(
                f"{stage.name} produced undeclared output(s) {sorted(extra)}"
            )
        for tag, stream in node.output_streams.items():
            packets[stream.id] = produced.get(tag)
