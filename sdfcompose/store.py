"""Shape collection with dependency tracking and update notifications."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from .composition import CompositeNode
from .dependency import DependencyGraph
from .mapping import MapperRegistry, default_registry
from .primitives import Blend

logger = logging.getLogger(__name__)

__all__ = ["ShapeStore"]


class ShapeStore:
    """Owns a set of shapes keyed by id, their dependency graph and a mapper registry.

    Every composite created through :meth:`create_composite` shares the
    store's :class:`~sdfcompose.dependency.DependencyGraph`, so child sets
    that would make a composite reachable from itself are rejected.
    Visual-update callbacks receive the id of the shape that changed.
    """

    def __init__(self, registry: Optional[MapperRegistry] = None,
                 graph: Optional[DependencyGraph] = None) -> None:
        self.registry = registry or default_registry()
        self.graph = graph or DependencyGraph()
        self._shapes: Dict[Any, Any] = {}
        self._callbacks: List[Callable[[Any], None]] = []

    def __len__(self) -> int:
        return len(self._shapes)

    def __contains__(self, shape_id: object) -> bool:
        return shape_id in self._shapes

    # ------------------------------------------------------------------
    # Collection
    # ------------------------------------------------------------------

    def add_shape(self, shape: Any) -> Any:
        self._shapes[shape.id] = shape
        if isinstance(shape, (CompositeNode, Blend)):
            self.graph.update_dependencies(shape.id, [c.id for c in shape.children])
        logger.debug("Shape added: %s (total %d)", shape.id, len(self._shapes))
        return shape.id

    def get_shape(self, shape_id: Any) -> Any:
        return self._shapes.get(shape_id)

    def shapes(self) -> List[Any]:
        return list(self._shapes.values())

    def remove_shape(self, shape_id: Any) -> Any:
        shape = self._shapes.pop(shape_id, None)
        if shape is not None:
            self.graph.remove(shape_id)
            logger.debug("Shape removed: %s (total %d)", shape_id, len(self._shapes))
        return shape

    def clear(self) -> None:
        self._shapes.clear()
        self.graph.clear()
        logger.debug("Shape store cleared")

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    def create_composite(self, shape_ids: Sequence[Any], **params: Any) -> CompositeNode:
        """Build a :class:`CompositeNode` over stored shapes and add it."""
        shapes = [self._shapes[i] for i in shape_ids if i in self._shapes]
        node = CompositeNode(shapes, graph=self.graph, **params)
        self.add_shape(node)
        self.trigger_visual_update(node.id)
        return node

    def create_blended_shape(self, shape_ids: Sequence[Any], **params: Any) -> Optional[Blend]:
        """Blend stored shapes into a new :class:`Blend` and add it; ``None`` if none exist."""
        shapes = [self._shapes[i] for i in shape_ids if i in self._shapes]
        if not shapes:
            logger.warning("No valid shapes found for blending")
            return None
        blend = Blend(shapes, **params)
        self.add_shape(blend)
        self.trigger_visual_update(blend.id)
        return blend

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def on_visual_update(self, callback: Callable[[Any], None]) -> bool:
        if not callable(callback):
            logger.warning("Ignoring non-callable visual update callback %r", callback)
            return False
        self._callbacks.append(callback)
        return True

    def trigger_visual_update(self, shape_id: Any) -> bool:
        """Notify callbacks about *shape_id*; aborted when its dependencies are cyclic."""
        if self.graph.has_cycle(shape_id):
            logger.error("Cycle detected in dependencies of shape %s; update aborted", shape_id)
            return False
        for callback in list(self._callbacks):
            try:
                callback(shape_id)
            except Exception:
                logger.exception("Visual update callback failed for shape %s", shape_id)
        return True

    def update_composite(self, shape_id: Any, **params: Any) -> bool:
        """Forward *params* to the composite's ``update_parameters``.

        The composite's own cycle guard raises
        :class:`~sdfcompose.errors.DependencyCycleError` before any change.
        Child ids in ``shapes`` are resolved against the store.
        """
        shape = self._shapes.get(shape_id)
        if not isinstance(shape, CompositeNode):
            logger.warning("Shape %s is not a composite", shape_id)
            return False
        if "shapes" in params:
            params["shapes"] = [s if hasattr(s, "id") else self._shapes[s] for s in params["shapes"]]
        if shape.graph is None:
            shape.graph = self.graph
        changed = shape.update_parameters(**params)
        if changed:
            self.trigger_visual_update(shape_id)
        return changed

    def update_shape_mapper(self, shape_id: Any, mapper_name: str, **params: Any) -> bool:
        """Give a shape the registry mapper *mapper_name* (built with *params*)."""
        shape = self._shapes.get(shape_id)
        if shape is None:
            return False
        shape.distance_mapper = self.registry.get(mapper_name, **params)
        logger.debug("Shape %s mapper set to %s %r", shape_id, mapper_name, params)
        self.trigger_visual_update(shape_id)
        return True
