"""Primitive contract and the leaf primitives built from vertices.

Every primitive satisfies :class:`Primitive`:

* ``compute_sdf(p, call_stack=None, time=0.0, depth=0)`` — signed distance
  at ``(..., 2)`` points, negative inside;
* ``clone()`` — an independent deep copy that keeps the same ``id``;
* ``transform(matrix)`` — apply an :class:`~sdfcompose.affine.Affine` to
  the geometry in place;
* ``metric`` (centre and scale), ``color`` (HSLA) and ``id``.

Leaf variants: :class:`Line`, :class:`Triangle`, :class:`Arc`.
:class:`Blend` is the primitive produced by blending other primitives;
:class:`~sdfcompose.composition.CompositeNode` is the canonical-space
composite.
"""

from __future__ import annotations

import copy
import logging
import math
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, MutableSet, Optional, Protocol, Sequence, Tuple, Union, runtime_checkable

import numpy as np
import numpy.typing as npt

from . import affine
from ._math import as_points, sd_polyline, sd_segment, sd_triangle
from .affine import Affine
from .blending import create_composite_sdf
from .config import DEFAULT_SMOOTHNESS
from .errors import DependencyCycleError
from .mapping import DistanceMapper, MapperRegistry, default_registry, identity

logger = logging.getLogger(__name__)

_F = npt.NDArray[np.floating]

__all__ = [
    "Metric", "Color", "Primitive", "new_id", "get_color", "clone_shape",
    "Line", "Triangle", "Arc", "Blend",
    "equilateral_triangle", "create_primitive",
]


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


# ===========================================================================
# Value types
# ===========================================================================

@dataclass
class Metric:
    """Spatial summary of a primitive: a centre point and a scale."""

    center: _F = field(default_factory=lambda: np.zeros(2))
    scale: float = 1.0

    def __post_init__(self) -> None:
        self.center = as_points(self.center).copy()

    def transform(self, m: Affine) -> None:
        self.center = affine.apply_to_point(m, self.center)
        self.scale *= math.sqrt((m.a ** 2 + m.d ** 2) / 2.0)


@dataclass(frozen=True)
class Color:
    """HSLA colour; hue in degrees, the rest in ``[0, 1]``."""

    h: float = 0.0
    s: float = 1.0
    l: float = 0.5
    a: float = 1.0


def get_color(primitive: Any, sdf_value: Any) -> Color:
    """Fade *primitive*'s colour with distance: lightness and alpha × ``exp(-|d|)``."""
    intensity = np.exp(-np.abs(np.asarray(sdf_value, dtype=float)))
    c = primitive.color
    return Color(c.h, c.s, c.l * intensity, c.a * intensity)


@runtime_checkable
class Primitive(Protocol):
    id: str
    metric: Metric
    color: Color

    def compute_sdf(self, p: Any, call_stack: Optional[MutableSet[Any]] = None,
                    time: float = 0.0, depth: int = 0) -> _F: ...

    def clone(self) -> "Primitive": ...

    def transform(self, matrix: Affine) -> Any: ...


def clone_shape(shape: Any, visiting: MutableSet[Any]) -> Any:
    """Clone *shape*, passing the cycle guard on to shapes that contain others."""
    if hasattr(shape, "children"):
        return shape.clone(visiting)
    return shape.clone()


def _resolve_mapper(mapper: Union[DistanceMapper, str, None],
                    registry: Optional[MapperRegistry]) -> DistanceMapper:
    if mapper is None:
        return identity
    if isinstance(mapper, str):
        return (registry or default_registry()).get(mapper)
    return mapper


# ===========================================================================
# Leaf primitives
# ===========================================================================

class _VertexPrimitive:
    """Shared machinery for primitives whose geometry is a vertex array."""

    kind = "vertex"
    geometry_keys: Tuple[str, ...] = ()

    def __init__(
        self,
        vertices: Sequence[Sequence[float]],
        *,
        thickness: float = 0.0,
        color: Optional[Color] = None,
        distance_mapper: Union[DistanceMapper, str, None] = None,
        registry: Optional[MapperRegistry] = None,
        scale: float = 1.0,
        id: Optional[str] = None,
    ) -> None:
        self.id = id or new_id(self.kind)
        self.vertices = as_points(vertices).reshape(-1, 2).copy()
        self.thickness = float(thickness)
        self.color = color or Color()
        self.registry = registry
        self.distance_mapper = _resolve_mapper(distance_mapper, registry)
        self.metric = Metric(self.vertices.mean(axis=0), scale)

    def raw_sdf(self, p: _F) -> _F:
        raise NotImplementedError

    def geometry(self) -> Dict[str, Any]:
        """Current values of the constructor's geometry arguments."""
        raise NotImplementedError

    def _build(self, **geometry: Any) -> _F:
        raise NotImplementedError

    def _center(self) -> _F:
        return self.vertices.mean(axis=0)

    def update_parameters(self, **params: Any) -> bool:
        """Merge the given fields; return ``True`` if anything changed.

        Every leaf accepts ``thickness``, ``color`` and ``distance_mapper``
        (a callable or a registry name) plus the geometry arguments of its
        constructor, listed in :attr:`geometry_keys`.  A geometry change
        rebuilds the vertices and recentres the metric; ``metric.scale`` is
        kept.  Unknown keys raise :class:`TypeError`.
        """
        unknown = set(params) - set(self.geometry_keys) - {"thickness", "color", "distance_mapper"}
        if unknown:
            raise TypeError(f"unexpected {self.kind} parameters: {sorted(unknown)}")

        changed = False
        if params.get("thickness") is not None and float(params["thickness"]) != self.thickness:
            self.thickness = float(params["thickness"])
            changed = True
        if params.get("color") is not None and params["color"] != self.color:
            self.color = params["color"]
            changed = True
        if params.get("distance_mapper") is not None:
            mapper = _resolve_mapper(params["distance_mapper"], self.registry)
            if mapper is not self.distance_mapper:
                self.distance_mapper = mapper
                changed = True

        updates = {k: params[k] for k in self.geometry_keys if params.get(k) is not None}
        if updates:
            vertices = self._build(**{**self.geometry(), **updates})
            if vertices.shape != self.vertices.shape or not np.array_equal(vertices, self.vertices):
                self._apply_geometry(vertices, updates)
                changed = True
        return changed

    def _apply_geometry(self, vertices: _F, updates: Dict[str, Any]) -> None:
        self.vertices = vertices
        self.metric.center = self._center()

    def compute_sdf(self, p: Any, call_stack: Optional[MutableSet[Any]] = None,
                    time: float = 0.0, depth: int = 0) -> _F:
        return np.asarray(self.distance_mapper(self.raw_sdf(as_points(p)), time, depth), dtype=float)

    def transform(self, matrix: Affine) -> "_VertexPrimitive":
        self.vertices = affine.apply_to_points(matrix, self.vertices)
        self.metric.transform(matrix)
        return self

    def clone(self) -> "_VertexPrimitive":
        twin = copy.copy(self)
        twin.vertices = self.vertices.copy()
        twin.metric = Metric(self.metric.center, self.metric.scale)
        return twin

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, vertices={self.vertices.tolist()!r})"


class Line(_VertexPrimitive):
    """Segment from *a* to *b*; *thickness* widens it into a capsule."""

    kind = "line"
    geometry_keys = ("a", "b")

    def __init__(self, a: Sequence[float], b: Sequence[float], **kwargs: Any) -> None:
        super().__init__([a, b], **kwargs)

    def geometry(self) -> Dict[str, Any]:
        return {"a": self.vertices[0], "b": self.vertices[1]}

    def _build(self, a: Sequence[float], b: Sequence[float]) -> _F:
        return as_points([a, b]).reshape(2, 2).copy()

    def raw_sdf(self, p: _F) -> _F:
        return sd_segment(p, self.vertices[0], self.vertices[1]) - self.thickness


class Triangle(_VertexPrimitive):
    """Filled triangle on three vertices (either winding)."""

    kind = "triangle"
    geometry_keys = ("p0", "p1", "p2")

    def __init__(self, p0: Sequence[float], p1: Sequence[float], p2: Sequence[float],
                 **kwargs: Any) -> None:
        super().__init__([p0, p1, p2], **kwargs)

    def geometry(self) -> Dict[str, Any]:
        return {"p0": self.vertices[0], "p1": self.vertices[1], "p2": self.vertices[2]}

    def _build(self, p0: Sequence[float], p1: Sequence[float], p2: Sequence[float]) -> _F:
        return as_points([p0, p1, p2]).reshape(3, 2).copy()

    def raw_sdf(self, p: _F) -> _F:
        v = self.vertices
        return sd_triangle(p, v[0], v[1], v[2]) - self.thickness


class Arc(_VertexPrimitive):
    """Circular arc approximated by *segments* chords.

    The arc runs counter-clockwise from *start_angle* to *end_angle*
    (radians) around *center*.  With ``thickness > 0`` it is a band of
    that half-width; otherwise its field is the unsigned distance.
    """

    kind = "arc"
    geometry_keys = ("center", "radius", "start_angle", "end_angle", "segments")

    def __init__(
        self,
        center: Sequence[float] = (0.0, 0.0),
        radius: float = 1.0,
        start_angle: float = 0.0,
        end_angle: float = math.pi,
        segments: int = 8,
        **kwargs: Any,
    ) -> None:
        vertices = self._build(center, radius, start_angle, end_angle, segments)
        super().__init__(vertices, **kwargs)
        self._set_geometry(center, radius, start_angle, end_angle, segments)
        # Arc chords average off-centre; the metric centre is the circle's centre.
        self.metric.center = self._center()

    def _set_geometry(self, center: Sequence[float], radius: float, start_angle: float,
                      end_angle: float, segments: int) -> None:
        self.center = np.array([float(v) for v in center])
        self.radius = float(radius)
        self.start_angle = float(start_angle)
        self.end_angle = float(end_angle)
        self.segments = max(int(segments), 1)

    def geometry(self) -> Dict[str, Any]:
        return {"center": self.center, "radius": self.radius, "start_angle": self.start_angle,
                "end_angle": self.end_angle, "segments": self.segments}

    def _build(self, center: Sequence[float], radius: float, start_angle: float,
               end_angle: float, segments: int) -> _F:
        theta = np.linspace(float(start_angle), float(end_angle), max(int(segments), 1) + 1)
        cx, cy = (float(v) for v in center)
        return np.stack([cx + radius * np.cos(theta), cy + radius * np.sin(theta)], axis=-1)

    def _center(self) -> _F:
        return self.center.copy()

    def _apply_geometry(self, vertices: _F, updates: Dict[str, Any]) -> None:
        self._set_geometry(**{**self.geometry(), **updates})
        super()._apply_geometry(vertices, updates)

    def transform(self, matrix: Affine) -> "Arc":
        super().transform(matrix)
        # Re-derive the circle from the moved chords; a reflection reverses the sweep.
        sweep = self.end_angle - self.start_angle
        if affine.determinant(matrix) < 0:
            sweep = -sweep
        self.center = self.metric.center.copy()
        offset = self.vertices[0] - self.center
        self.radius = float(np.hypot(*offset))
        self.start_angle = math.atan2(offset[1], offset[0])
        self.end_angle = self.start_angle + sweep
        return self

    def clone(self) -> "Arc":
        twin = super().clone()
        twin.center = self.center.copy()
        return twin

    def raw_sdf(self, p: _F) -> _F:
        return sd_polyline(p, self.vertices) - self.thickness


def equilateral_triangle(
    size: float = 1.0,
    rotation: float = 0.0,
    position: Sequence[float] = (0.0, 0.0),
    **kwargs: Any,
) -> Triangle:
    """Equilateral triangle of edge *size*, centroid at *position*, apex up before rotation."""
    h = size * math.sqrt(3.0) / 2.0
    base = np.array([
        [0.0, h * 2.0 / 3.0],
        [-size / 2.0, -h / 3.0],
        [size / 2.0, -h / 3.0],
    ])
    m = affine.make_affine(rotation=rotation, translate=position)
    v = affine.apply_to_points(m, base)
    return Triangle(v[0], v[1], v[2], **kwargs)


def create_primitive(kind: str, **params: Any) -> Any:
    """Build a leaf primitive by name: ``line``, ``triangle`` or ``arc``.

    An unknown *kind* logs a warning and builds a triangle.
    """
    key = str(kind).strip().lower()
    if key == "line":
        return Line(params.pop("a", (0.0, 0.0)), params.pop("b", (1.0, 0.0)), **params)
    if key == "arc":
        return Arc(**params)
    if key != "triangle":
        logger.warning("Unknown primitive type %r; defaulting to triangle", kind)
    vertices = params.pop("vertices", None)
    if vertices is not None and len(vertices) == 3:
        for name in ("size", "rotation", "position"):
            params.pop(name, None)
        return Triangle(*vertices, **params)
    return equilateral_triangle(**params)


# ===========================================================================
# Blended primitive
# ===========================================================================

class Blend:
    """Primitive whose field is a smooth boolean fold over *children*.

    ``transform`` is forwarded to every child, so the blend can be moved
    between coordinate frames as a unit.
    """

    kind = "blend"

    def __init__(
        self,
        children: Sequence[Any],
        operation: str = "union",
        smoothness: float = DEFAULT_SMOOTHNESS,
        *,
        base: Any = None,
        color: Optional[Color] = None,
        distance_mapper: Optional[DistanceMapper] = None,
        id: Optional[str] = None,
    ) -> None:
        self.id = id or new_id(self.kind)
        self.children = list(children)
        self.operation = operation
        self.smoothness = smoothness
        self.base = base
        self.color = color or (self.children[0].color if self.children else Color())
        self.distance_mapper = distance_mapper or identity
        center = (np.mean([c.metric.center for c in self.children], axis=0)
                  if self.children else np.zeros(2))
        self.metric = Metric(center, 1.0)
        self._field = create_composite_sdf(self.children, smoothness, operation, base)

    def compute_sdf(self, p: Any, call_stack: Optional[MutableSet[Any]] = None,
                    time: float = 0.0, depth: int = 0) -> _F:
        d = self._field(p, call_stack, time, depth)
        return np.asarray(self.distance_mapper(d, time, depth), dtype=float)

    def transform(self, matrix: Affine) -> "Blend":
        # The base, when set, is also one of the members; move it once.
        for child in self.children:
            child.transform(matrix)
        if self.base is not None and all(c is not self.base for c in self.children):
            self.base.transform(matrix)
        self.metric.transform(matrix)
        return self

    def clone(self, _visiting: Optional[MutableSet[Any]] = None) -> "Blend":
        visiting = set() if _visiting is None else _visiting
        if self.id in visiting:
            raise DependencyCycleError(self.id, f"cannot clone {self.id!r}: it contains itself")
        visiting.add(self.id)
        try:
            mapping = {id(c): clone_shape(c, visiting) for c in self.children}
            base = None
            if self.base is not None:
                base = mapping.get(id(self.base)) or clone_shape(self.base, visiting)
        finally:
            visiting.discard(self.id)
        twin = Blend(
            [mapping[id(c)] for c in self.children],
            self.operation,
            self.smoothness,
            base=base,
            color=self.color,
            distance_mapper=self.distance_mapper,
            id=self.id,
        )
        twin.metric = Metric(self.metric.center, self.metric.scale)
        return twin

    def __repr__(self) -> str:
        return f"Blend(id={self.id!r}, operation={self.operation!r}, children={len(self.children)})"
