"""Canonical-space composition of primitives.

A :class:`CompositeNode` blends heterogeneous primitives in one shared
frame ("blend space"):

1. build ``T = P · make_affine(rotation, scale, position)`` (``P`` is the
   placement accumulated by :meth:`CompositeNode.transform`);
2. clone every base shape and move the clone into blend space with ``T``;
3. combine the clones with the chosen *strategy*
   (``sequential``, ``balanced`` or ``nested``);
4. move the result back with ``T⁻¹``;
5. shift the field so its zero level set falls inside the normalisation
   window.

The composed state is cached and rebuilt lazily after any parameter
change.  Evaluation divides by ``sqrt|det T|`` and subtracts a fixed bias
so interiors read negative.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Any, List, MutableSet, Optional, Sequence, Set, Tuple

import numpy as np
import numpy.typing as npt

from . import affine
from ._math import as_points
from .affine import Affine
from .blending import resolve_operation
from .config import DEFAULT_SETTINGS, Settings
from .dependency import DependencyGraph
from .errors import DependencyCycleError
from .fields import evaluate
from .mapping import DistanceMapper, identity
from .primitives import Blend, Color, Metric, clone_shape, new_id

logger = logging.getLogger(__name__)

_F = npt.NDArray[np.floating]

STRATEGIES = ("sequential", "balanced", "nested")

__all__ = ["CompositeNode", "STRATEGIES"]


@dataclass(frozen=True)
class _Composed:
    transform: Affine
    inverse: Affine
    scale_factor: float
    offset: float
    primitive: Any


def _as_list(value: Any) -> list:
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        return [value]
    return list(value)


class CompositeNode:
    """Primitive whose field is a canonical-space blend of *shapes*.

    Parameters
    ----------
    shapes : sequence of primitives
        Base shapes; they are never modified, only cloned.
    rotation, scale, position :
        Blend-space transform ``make_affine(rotation, max(|scale|, eps), position)``.
    operations : str or sequence of str
        Blend operations cycled through by the strategy.
    weights : float or sequence of float
        Smoothness exponents cycled alongside *operations*.
    strategy : {'sequential', 'balanced', 'nested'}
    graph : DependencyGraph, optional
        When given, the node keeps its entry current and refuses child
        sets that would introduce a cycle.
    settings : Settings, optional
        Normalisation window, bias and tolerance.
    """

    kind = "composite"

    def __init__(
        self,
        shapes: Sequence[Any] = (),
        rotation: float = 0.0,
        scale: float = 1.0,
        position: Sequence[float] = (0.0, 0.0),
        operations: Any = "union",
        weights: Any = None,
        strategy: str = "sequential",
        *,
        color: Optional[Color] = None,
        distance_mapper: Optional[DistanceMapper] = None,
        graph: Optional[DependencyGraph] = None,
        settings: Settings = DEFAULT_SETTINGS,
        id: Optional[str] = None,
    ) -> None:
        self.id = id or new_id(self.kind)
        self.settings = settings
        self.color = color or Color()
        self.distance_mapper = distance_mapper or identity
        self.graph = graph

        self.base_shapes: List[Any] = []
        self.rotation = float(rotation)
        self.scale = float(scale)
        self.position: Tuple[float, float] = (float(position[0]), float(position[1]))
        self.operations: List[str] = _as_list(operations) or ["union"]
        self.weights: List[float] = [
            float(w) for w in _as_list(settings.default_smoothness if weights is None else weights)
        ] or [settings.default_smoothness]
        self.strategy = self._check_strategy(strategy)
        self._placement = affine.identity()
        self._cache: Optional[_Composed] = None

        shapes = list(shapes)
        self._guard_children(shapes)
        self.base_shapes = shapes
        self._sync_graph()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def dirty(self) -> bool:
        return self._cache is None

    @property
    def children(self) -> List[Any]:
        return list(self.base_shapes)

    @property
    def metric(self) -> Metric:
        center = affine.apply_to_point(self._placement, self.position)
        return Metric(center, abs(self.scale) * affine.uniform_scale_factor(self._placement))

    @property
    def placement(self) -> Affine:
        return self._placement

    def invalidate(self) -> None:
        self._cache = None

    def update_parameters(self, **params: Any) -> bool:
        """Merge the given fields; return ``True`` if anything changed.

        Accepted keys: ``shapes``, ``rotation``, ``scale``, ``position``,
        ``operations``, ``weights``, ``strategy``.  A new ``shapes`` list
        that would make this node reachable from itself raises
        :class:`~sdfcompose.errors.DependencyCycleError` before anything
        is modified.
        """
        unknown = set(params) - {"shapes", "rotation", "scale", "position",
                                 "operations", "weights", "strategy"}
        if unknown:
            raise TypeError(f"unexpected composite parameters: {sorted(unknown)}")

        shapes = params.get("shapes")
        if shapes is not None:
            shapes = list(shapes)
            self._guard_children(shapes)

        changed = False
        if params.get("rotation") is not None and float(params["rotation"]) != self.rotation:
            self.rotation = float(params["rotation"])
            changed = True
        if params.get("scale") is not None and float(params["scale"]) != self.scale:
            self.scale = float(params["scale"])
            changed = True
        if params.get("position") is not None:
            position = (float(params["position"][0]), float(params["position"][1]))
            if position != self.position:
                self.position = position
                changed = True
        if params.get("operations") is not None:
            operations = _as_list(params["operations"]) or ["union"]
            if operations != self.operations:
                self.operations = operations
                changed = True
        if params.get("weights") is not None:
            weights = [float(w) for w in _as_list(params["weights"])] or [self.settings.default_smoothness]
            if weights != self.weights:
                self.weights = weights
                changed = True
        if params.get("strategy") is not None:
            strategy = self._check_strategy(params["strategy"])
            if strategy != self.strategy:
                self.strategy = strategy
                changed = True
        if shapes is not None and (
            len(shapes) != len(self.base_shapes)
            or any(a is not b for a, b in zip(shapes, self.base_shapes))
        ):
            self.base_shapes = shapes
            self._sync_graph()
            changed = True

        if changed:
            self._cache = None
        return changed

    def transform(self, matrix: Affine) -> "CompositeNode":
        """Compose *matrix* onto the node's placement (``P <- M·P``)."""
        self._placement = affine.compose(matrix, self._placement)
        self._cache = None
        return self

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def compute_sdf(self, p: Any, call_stack: Optional[MutableSet[Any]] = None,
                    time: float = 0.0, depth: int = 0) -> _F:
        """Signed distance at *p*; ``+inf`` if this node is already being evaluated."""
        pts = as_points(p)
        if call_stack is None:
            call_stack = set()
        if self.id in call_stack:
            logger.debug("Recursive evaluation of %s; returning +inf", self.id)
            return np.full(pts.shape[:-1], np.inf)

        call_stack.add(self.id)
        try:
            state = self._state()
            if state.primitive is None:
                return np.full(pts.shape[:-1], np.inf)
            local = affine.apply_to_points(state.inverse, pts)
            d = evaluate(state.primitive, local, call_stack, time, depth)
            d = (d + state.offset) / state.scale_factor - self.settings.interior_bias
            return np.asarray(self.distance_mapper(d, time, depth), dtype=float)
        finally:
            call_stack.discard(self.id)

    def __call__(self, p: Any) -> _F:
        return self.compute_sdf(p)

    def create_object(self, time: float = 0.0) -> Any:
        """The composed inner primitive, rebuilding it first if stale."""
        return self._state().primitive

    def clone(self, _visiting: Optional[Set[Any]] = None) -> "CompositeNode":
        """Deep copy with the same id; cached state is carried over when clean."""
        visiting = set() if _visiting is None else _visiting
        if self.id in visiting:
            raise DependencyCycleError(self.id, f"cannot clone {self.id!r}: it contains itself")
        visiting.add(self.id)
        try:
            shapes = []
            for shape in self.base_shapes:
                try:
                    shapes.append(clone_shape(shape, visiting))
                except (DependencyCycleError, RecursionError):
                    raise
                except Exception:
                    logger.warning("Failed to clone shape %r; skipping", getattr(shape, "id", shape))
        finally:
            visiting.discard(self.id)

        twin = CompositeNode(
            shapes,
            self.rotation,
            self.scale,
            self.position,
            list(self.operations),
            list(self.weights),
            self.strategy,
            color=self.color,
            distance_mapper=self.distance_mapper,
            settings=self.settings,
            id=self.id,
        )
        twin._placement = self._placement
        if self._cache is not None:
            inner = self._cache.primitive
            twin._cache = replace(self._cache, primitive=inner.clone() if inner is not None else None)
        return twin

    # ------------------------------------------------------------------
    # Composition pipeline
    # ------------------------------------------------------------------

    def _state(self) -> _Composed:
        if self._cache is not None:
            return self._cache
        try:
            self._cache = self._compose()
            return self._cache
        except Exception:
            logger.error("Composition of %s failed; using fallback", self.id, exc_info=True)
            return self._fallback()

    def _fallback(self) -> _Composed:
        # Not cached: the next access retries the full pipeline.
        primitive = None
        if self.base_shapes:
            try:
                primitive = clone_shape(self.base_shapes[0], {self.id})
            except Exception:
                logger.error("Fallback clone for %s failed", self.id, exc_info=True)
        ident = affine.identity()
        return _Composed(ident, ident, 1.0, 0.0, primitive)

    def _compose(self) -> _Composed:
        eps = self.settings.epsilon
        local = affine.make_affine(self.rotation, max(abs(self.scale), eps), self.position)
        t = affine.compose(self._placement, local)
        if affine.is_invertible(t, eps):
            t_inv = affine.invert(t, eps)
            scale_factor = affine.uniform_scale_factor(t)
        else:
            logger.warning("Blend-space transform of %s is singular; using identity", self.id)
            t = t_inv = affine.identity()
            scale_factor = 1.0

        clones = []
        for shape in self.base_shapes:
            try:
                clone = clone_shape(shape, {self.id})
            except (DependencyCycleError, RecursionError):
                raise
            except Exception:
                logger.warning("Failed to clone shape %r; skipping", getattr(shape, "id", shape))
                continue
            clone.transform(t)
            clones.append(clone)

        combined = self._combine(clones)
        if combined is None:
            return _Composed(t, t_inv, scale_factor, 0.0, None)
        combined.transform(t_inv)

        offset, scale_factor = self._normalize(combined, scale_factor)
        logger.debug("Composed %s: %d shapes, strategy=%s, offset=%g, scale=%g",
                     self.id, len(clones), self.strategy, offset, scale_factor)
        return _Composed(t, t_inv, scale_factor, offset, combined)

    def _combine(self, shapes: List[Any]) -> Any:
        if not shapes:
            return None
        if len(shapes) == 1:
            return shapes[0]
        if self.strategy == "balanced":
            return self._balanced(shapes, 0, len(shapes) - 1)
        if self.strategy == "nested":
            return self._nested(shapes)
        return self._sequential(shapes)

    def _blend(self, left: Any, right: Any, index: int, base: Any = None) -> Any:
        if left is None:
            return right
        if right is None:
            return left
        op_name, _ = resolve_operation(self.operations[index % len(self.operations)])
        weight = float(self.weights[index % len(self.weights)])
        return Blend([left, right], op_name, weight, base=base, color=self.color)

    def _sequential(self, shapes: List[Any]) -> Any:
        result = shapes[0]
        for i in range(1, len(shapes)):
            result = self._blend(result, shapes[i], i - 1)
        return result

    def _balanced(self, shapes: List[Any], start: int, end: int) -> Any:
        if start > end:
            return None
        if start == end:
            return shapes[start]
        mid = (start + end) // 2
        left = self._balanced(shapes, start, mid)
        right = self._balanced(shapes, mid + 1, end)
        return self._blend(left, right, int(math.floor(math.log2(end - start + 1))))

    def _nested(self, shapes: List[Any]) -> Any:
        # Each new shape wraps the accumulated one; a difference keeps the
        # accumulator as the minuend.
        result = shapes[0]
        for i in range(1, len(shapes)):
            op_name, _ = resolve_operation(self.operations[(i - 1) % len(self.operations)])
            if op_name == "difference":
                result = self._blend(result, shapes[i], i - 1, base=result)
            else:
                result = self._blend(shapes[i], result, i - 1)
        return result

    def _normalize(self, primitive: Any, scale_factor: float) -> Tuple[float, float]:
        s = self.settings
        axis = np.linspace(-s.normalize_half_width, s.normalize_half_width, s.normalize_samples)
        gx, gy = np.meshgrid(axis, axis, indexing="xy")
        values = evaluate(primitive, np.stack([gx, gy], axis=-1), {self.id}, 0.0, 0)
        finite = values[np.isfinite(values)]
        if finite.size == 0:
            return 0.0, scale_factor

        lo, hi = float(finite.min()), float(finite.max())
        offset = 0.0
        if lo > 0:
            offset = -lo - s.normalize_margin
        elif hi < 0:
            offset = -hi + s.normalize_margin
        if hi - lo < s.flat_range_threshold:
            scale_factor *= s.flat_scale_boost
        return offset, scale_factor

    # ------------------------------------------------------------------
    # Cycle guard
    # ------------------------------------------------------------------

    def _guard_children(self, shapes: List[Any]) -> None:
        # Walk through nested blends and composites, not just direct children.
        pending = list(shapes)
        seen: Set[int] = set()
        while pending:
            shape = pending.pop()
            if shape is self or getattr(shape, "id", None) == self.id:
                raise DependencyCycleError(self.id, f"composite {self.id!r} cannot contain itself")
            if id(shape) in seen:
                continue
            seen.add(id(shape))
            pending.extend(getattr(shape, "children", None) or ())
            if getattr(shape, "base", None) is not None:
                pending.append(shape.base)

        ids = [getattr(s, "id", None) for s in shapes]
        if self.graph is not None and self.graph.would_create_cycle(
            self.id, [i for i in ids if i is not None]
        ):
            logger.error("Cycle detected in dependencies of %s; update aborted", self.id)
            raise DependencyCycleError(self.id)

    def _sync_graph(self) -> None:
        if self.graph is not None:
            self.graph.update_dependencies(
                self.id, [s.id for s in self.base_shapes if getattr(s, "id", None) is not None]
            )

    @staticmethod
    def _check_strategy(strategy: str) -> str:
        key = str(strategy).strip().lower()
        if key not in STRATEGIES:
            logger.warning("Unknown composition strategy %r; using sequential", strategy)
            return "sequential"
        return key

    def __repr__(self) -> str:
        return (f"CompositeNode(id={self.id!r}, shapes={len(self.base_shapes)}, "
                f"strategy={self.strategy!r}, operations={self.operations!r})")
