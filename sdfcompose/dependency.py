"""Composite dependency graph and cycle guard.

The graph maps a node id to the set of child ids it currently references.
It is consulted before any recursive recompute so that a composite can
never (directly or through a chain) contain itself.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, FrozenSet, Hashable, Iterable, List, Set

logger = logging.getLogger(__name__)

_DONE = object()

Listener = Callable[[Hashable, FrozenSet[Hashable]], None]

__all__ = ["DependencyGraph"]


class DependencyGraph:
    """Adjacency map ``id -> frozenset(child ids)`` with DFS cycle detection.

    Listeners registered with :meth:`subscribe` receive ``(id, child_ids)``
    after every change; a removed node is reported with an empty set.
    """

    def __init__(self) -> None:
        self._edges: Dict[Hashable, FrozenSet[Hashable]] = {}
        self._listeners: List[Listener] = []

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._edges

    def __len__(self) -> int:
        return len(self._edges)

    def children(self, node_id: Hashable) -> FrozenSet[Hashable]:
        return self._edges.get(node_id, frozenset())

    def update_dependencies(self, node_id: Hashable, child_ids: Iterable[Hashable]) -> None:
        """Replace the adjacency entry for *node_id*."""
        children = frozenset(child_ids)
        if self._edges.get(node_id) == children:
            return
        self._edges[node_id] = children
        self._notify(node_id, children)

    def remove(self, node_id: Hashable) -> None:
        if self._edges.pop(node_id, None) is not None:
            self._notify(node_id, frozenset())

    def clear(self) -> None:
        self._edges.clear()

    def has_cycle(self, start: Hashable) -> bool:
        """True if a cycle is reachable from *start*.

        Iterative DFS: ``on_stack`` holds the current path, ``visited``
        every node already fully explored.
        """
        return self._find_cycle(start, self._edges)

    def would_create_cycle(self, node_id: Hashable, child_ids: Iterable[Hashable]) -> bool:
        """True if setting *node_id*'s children to *child_ids* would close a cycle."""
        edges = dict(self._edges)
        edges[node_id] = frozenset(child_ids)
        return self._find_cycle(node_id, edges)

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        """Register *callback*; returns a function that unregisters it."""
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe

    # ------------------------------------------------------------------

    @staticmethod
    def _find_cycle(start: Hashable, edges: Dict[Hashable, FrozenSet[Hashable]]) -> bool:
        visited: Set[Hashable] = set()
        on_stack: Set[Hashable] = {start}
        stack: List[Any] = [(start, iter(edges.get(start, ())))]
        while stack:
            node, it = stack[-1]
            child = next(it, _DONE)
            if child is _DONE:
                stack.pop()
                on_stack.discard(node)
                visited.add(node)
                continue
            if child in on_stack:
                return True
            if child in visited:
                continue
            on_stack.add(child)
            stack.append((child, iter(edges.get(child, ()))))
        return False

    def _notify(self, node_id: Hashable, children: FrozenSet[Hashable]) -> None:
        for callback in list(self._listeners):
            try:
                callback(node_id, children)
            except Exception:
                logger.exception("Dependency listener failed for node %r", node_id)
