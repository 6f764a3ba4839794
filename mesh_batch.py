"""
MeshFlow — Batch Lifter (map & zip)
====================================
Runs a per-item function over a list and zips its N outputs back into
N lists, each index-aligned with the input.

Protocol:
  - Scatter: every item gets a sequence number (its input index) and
    all items share one BatchEnd marker.
  - Per-item: per_item_fn(item) returns a tuple of `arity` values.
    Items may run sequentially or on an executor, in any order.
  - Gather: one collector per output kind places each value at its
    sequence number and only hands out the list once every slot of
    the batch is filled.

An absent (None) value is replaced by the collector's placeholder, so
list length is always the input length. If any item fails the whole
batch fails; pending items are cancelled.

Part 9 of 13 — Batch Lifter
"""

from __future__ import annotations

import itertools
import logging
from concurrent.futures import Executor, Future, as_completed
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple

_log = logging.getLogger("MeshFlow.Batch")

_batch_ids = itertools.count()
_PENDING = object()


class BatchError(RuntimeError):
    """Raised when per-item outputs do not line up with their batch."""


@dataclass(frozen=True)
class BatchEnd:
    """Marks which invocations belong to one originating list."""
    batch_id: int
    size: int


class _Collector:
    """Accumulates one output kind of one batch in input order."""

    def __init__(self, batch_end: BatchEnd, placeholder: Optional[Callable[[], Any]] = None) -> None:
        self._batch_end = batch_end
        self._placeholder = placeholder
        self._slots: List[Any] = [_PENDING] * batch_end.size

    def add(self, batch_id: int, seq: int, value: Any) -> None:
        if batch_id != self._batch_end.batch_id:
            raise BatchError(
                f"Item from batch {batch_id} delivered to batch "
                f"{self._batch_end.batch_id}"
            )
        if not 0 <= seq < self._batch_end.size:
            raise BatchError(f"Sequence number {seq} outside batch of {self._batch_end.size}")
        if self._slots[seq] is not _PENDING:
            raise BatchError(f"Sequence number {seq} delivered twice")
        if value is None and self._placeholder is not None:
            value = self._placeholder()
        self._slots[seq] = value

    def close(self) -> List[Any]:
        missing = [i for i, v in enumerate(self._slots) if v is _PENDING]
        if missing:
            raise BatchError(f"Batch closed with missing items {missing}")
        return list(self._slots)


def map_and_zip(
    items: Iterable[Any],
    per_item_fn: Callable[[Any], Sequence[Any]],
    arity: int,
    placeholders: Optional[Sequence[Optional[Callable[[], Any]]]] = None,
    executor: Optional[Executor] = None,
) -> Tuple[List[Any], ...]:
    """Apply per_item_fn to every item and zip the outputs into lists.

    Args:
        items: Input list; one invocation per item.
        per_item_fn: Called with one item, returns `arity` outputs.
        arity: Number of outputs (and of returned lists).
        placeholders: Optional factory per output, used for None values.
        executor: Optional executor for concurrent dispatch.

    Returns:
        Tuple of `arity` lists, each as long as `items`.
    """
    items = list(items)
    if placeholders is None:
        placeholders = [None] * arity
    if len(placeholders) != arity:
        raise ValueError(f"Expected {arity} placeholders, got {len(placeholders)}")

    batch_end = BatchEnd(batch_id=next(_batch_ids), size=len(items))
    collectors = [_Collector(batch_end, p) for p in placeholders]

    def invoke(seq: int, item: Any) -> Tuple[int, Sequence[Any]]:
        outputs = per_item_fn(item)
        if len(outputs) != arity:
            raise BatchError(
                f"Item {seq} produced {len(outputs)} outputs, expected {arity}"
            )
        return seq, outputs

    def gather(seq: int, outputs: Sequence[Any]) -> None:
        for collector, value in zip(collectors, outputs):
            collector.add(batch_end.batch_id, seq, value)

    if executor is None or len(items) <= 1:
        for seq, item in enumerate(items):
            gather(*invoke(seq, item))
    else:
        futures: List[Future] = [
            executor.submit(invoke, seq, item) for seq, item in enumerate(items)
        ]
        try:
            for future in as_completed(futures):
                gather(*future.result())
        except BaseException:
            for future in futures:
                future.cancel()
            raise

    _log.debug("Batch %d closed with %d items", batch_end.batch_id, batch_end.size)
    return tuple(collector.close() for collector in collectors)
