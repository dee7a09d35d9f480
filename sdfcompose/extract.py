"""Contour and isosurface extraction from scalar fields.

* :func:`marching_squares` — zero-level contour loops of a 2-D field;
* :func:`marching_cubes`   — triangulated isosurface of a 3-D field
  (Lorensen–Cline, via scikit-image);
* :func:`delaunay_triangulation` — 2-D Delaunay mesh of a point set
  (Qhull, via SciPy);
* :func:`fit_arcs` — circular arcs through consecutive point triples.

Every function consumes a plain scalar field or a primitive and returns
plain data (:class:`ContourLoop`, :class:`Mesh`, :class:`ArcDescriptor`)
with no dependency on a display API.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import numpy.typing as npt
from scipy.spatial import Delaunay, QhullError
from skimage import measure

from ._math import as_points
from .config import DEFAULT_SETTINGS, Settings
from .errors import ExtractionError
from .grid import sample_grid_2d, sample_grid_3d

logger = logging.getLogger(__name__)

_F = npt.NDArray[np.floating]

__all__ = [
    "ContourLoop", "Mesh", "ArcDescriptor",
    "marching_squares", "extract_contours", "marching_cubes",
    "delaunay_triangulation", "fit_arcs",
    "build_line_segments", "contour_mesh", "arc_points",
]


# ===========================================================================
# Output types
# ===========================================================================

@dataclass
class ContourLoop:
    """Ordered ``(n, 2)`` polyline; ``closed`` loops do not repeat their first point."""

    points: _F
    closed: bool = False

    def __len__(self) -> int:
        return len(self.points)


@dataclass
class Mesh:
    """Vertex buffer ``(N, 3)`` and triangle index buffer ``(M, 3)``."""

    vertices: _F
    indices: npt.NDArray[np.integer]

    @classmethod
    def empty(cls) -> "Mesh":
        return cls(np.zeros((0, 3)), np.zeros((0, 3), dtype=np.int64))

    @property
    def is_empty(self) -> bool:
        return len(self.indices) == 0


@dataclass(frozen=True)
class ArcDescriptor:
    """Counter-clockwise arc from ``start_angle`` to ``end_angle`` (radians)."""

    center: Tuple[float, float]
    radius: float
    start_angle: float
    end_angle: float


# ===========================================================================
# Marching squares
# ===========================================================================

# Corners: 0 bottom-left, 1 bottom-right, 2 top-right, 3 top-left.
# Edges:   0 bottom (0-1), 1 right (1-2), 2 top (3-2), 3 left (0-3).
# Each edge is interpolated from its lower-left corner so that the two
# cells sharing an edge produce bit-identical crossings.
_EDGE_CORNERS = ((0, 1), (1, 2), (3, 2), (0, 3))
_CORNER_OFFSETS = ((0, 0), (1, 0), (1, 1), (0, 1))

# Bit k of the case index is set when corner k is inside (value < 0).
_SEGMENTS: Dict[int, Tuple[Tuple[int, int], ...]] = {
    1: ((3, 0),), 2: ((0, 1),), 3: ((3, 1),), 4: ((1, 2),),
    6: ((0, 2),), 7: ((3, 2),), 8: ((2, 3),), 9: ((0, 2),),
    11: ((1, 2),), 12: ((1, 3),), 13: ((0, 1),), 14: ((3, 0),),
}
# Saddles, keyed by (case, centre inside).
_SADDLES: Dict[Tuple[int, bool], Tuple[Tuple[int, int], ...]] = {
    (5, True): ((0, 1), (2, 3)),
    (5, False): ((3, 0), (1, 2)),
    (10, True): ((3, 0), (1, 2)),
    (10, False): ((0, 1), (2, 3)),
}


def _edge_point(edge: int, i: int, j: int, corners: _F, xs: _F, ys: _F) -> _F:
    ca, cb = _EDGE_CORNERS[edge]
    v1, v2 = corners[ca], corners[cb]
    with np.errstate(invalid="ignore", divide="ignore"):
        t = v1 / (v1 - v2) if v1 != v2 else 0.5
    t = min(max(float(t), 0.0), 1.0) if math.isfinite(t) else 0.5
    ax, ay = _CORNER_OFFSETS[ca]
    bx, by = _CORNER_OFFSETS[cb]
    pa = np.array([xs[i + ax], ys[j + ay]])
    pb = np.array([xs[i + bx], ys[j + by]])
    # A crossing on a grid vertex must equal that vertex exactly.
    if t == 1.0:
        return pb
    return pa + t * (pb - pa)


def _cell_segments(values: _F, xs: _F, ys: _F) -> Tuple[_F, npt.NDArray[np.integer]]:
    """Crossing segments ``(m, 2, 2)`` and their cells ``(m, 2)``.

    Segments of zero length (a zero-valued vertex touched by two edges of
    the same cell) are dropped.
    """
    inside = (values < 0).astype(np.int8)
    bl, br = inside[:-1, :-1], inside[:-1, 1:]
    tr, tl = inside[1:, 1:], inside[1:, :-1]
    cases = bl | (br << 1) | (tr << 2) | (tl << 3)

    segments: List[_F] = []
    cells: List[Tuple[int, int]] = []
    for j, i in zip(*np.nonzero((cases != 0) & (cases != 15))):
        case = int(cases[j, i])
        corners = np.array([values[j, i], values[j, i + 1], values[j + 1, i + 1], values[j + 1, i]])
        if case in (5, 10):
            pairs = _SADDLES[case, bool(corners.mean() < 0)]
        else:
            pairs = _SEGMENTS[case]
        for e1, e2 in pairs:
            p1 = _edge_point(e1, i, j, corners, xs, ys)
            p2 = _edge_point(e2, i, j, corners, xs, ys)
            if np.array_equal(p1, p2):
                continue
            segments.append(np.stack([p1, p2]))
            cells.append((int(i), int(j)))
    if not segments:
        return np.zeros((0, 2, 2)), np.zeros((0, 2), dtype=np.int64)
    return np.stack(segments), np.asarray(cells, dtype=np.int64)


def _point_key(p: _F) -> Tuple[float, float]:
    return float(p[0]), float(p[1])


class _Tracer:
    """Stitches cell segments into polylines.

    Neighbouring cells share bit-identical crossings, so endpoints are
    matched exactly first.  Only when no exact match is left does the
    tracer fall back to the nearest free endpoint within *tol* of the
    current point, searched in the current cell and its four neighbours.
    """

    def __init__(self, segments: _F, cells: npt.NDArray[np.integer], tol: float, max_steps: int) -> None:
        self.segments = segments
        self.cells = cells
        self.tol = tol
        self.max_steps = max_steps
        self.used = np.zeros(len(segments), dtype=bool)
        self.by_cell: Dict[Tuple[int, int], List[int]] = {}
        self.by_point: Dict[Tuple[float, float], List[int]] = {}
        for k, (i, j) in enumerate(cells):
            self.by_cell.setdefault((int(i), int(j)), []).append(k)
        for k, (a, b) in enumerate(segments):
            self.by_point.setdefault(_point_key(a), []).append(k)
            self.by_point.setdefault(_point_key(b), []).append(k)

    def _next(self, point: _F, cell: Tuple[int, int]) -> Optional[Tuple[int, _F]]:
        key = _point_key(point)
        for k in self.by_point.get(key, ()):
            if not self.used[k]:
                a, b = self.segments[k]
                return k, (b if _point_key(a) == key else a)

        best: Optional[Tuple[float, int, _F]] = None
        i, j = cell
        for c in ((i, j), (i + 1, j), (i - 1, j), (i, j + 1), (i, j - 1)):
            for k in self.by_cell.get(c, ()):
                if self.used[k]:
                    continue
                a, b = self.segments[k]
                for near, far in ((a, b), (b, a)):
                    dist = float(np.hypot(*(near - point)))
                    if dist <= self.tol and (best is None or dist < best[0]):
                        best = (dist, k, far)
        if best is None:
            return None
        return best[1], best[2]

    def _walk(self, point: _F, cell: Tuple[int, int], budget: List[int],
              stop: Optional[Tuple[float, float]] = None) -> List[_F]:
        out: List[_F] = []
        while budget[0] > 0:
            budget[0] -= 1
            found = self._next(point, cell)
            if found is None:
                break
            k, point = found
            self.used[k] = True
            cell = (int(self.cells[k][0]), int(self.cells[k][1]))
            out.append(point)
            if stop is not None and _point_key(point) == stop:
                break
        return out

    def trace(self) -> List[ContourLoop]:
        loops: List[ContourLoop] = []
        budget = [self.max_steps]
        for seed in range(len(self.segments)):
            if self.used[seed]:
                continue
            self.used[seed] = True
            cell = (int(self.cells[seed][0]), int(self.cells[seed][1]))
            a, b = self.segments[seed]
            line = [a, b] + self._walk(b, cell, budget, stop=_point_key(a))

            closed = len(line) > 3 and np.hypot(*(line[-1] - line[0])) <= self.tol
            if closed:
                line.pop()
            else:
                back = self._walk(a, cell, budget)
                line = back[::-1] + line

            pts = np.asarray(line)
            if len(pts) > 1:
                pts = pts[np.r_[True, np.any(pts[1:] != pts[:-1], axis=1)]]
            if len(pts) <= 2:
                continue
            loops.append(ContourLoop(pts, closed))
            if budget[0] <= 0:
                logger.warning("Contour tracing hit its step limit (%d)", self.max_steps)
                break
        return loops


def marching_squares(field: Any, bounds: Sequence[float], resolution: int = 100) -> List[ContourLoop]:
    """Zero-level contours of *field* over ``(xmin, ymin, xmax, ymax)``.

    The field is sampled at ``(resolution + 1)²`` grid vertices.  Saddle
    cells are resolved with the mean of their corner values.  Polylines
    with two points or fewer are dropped.

    Returns
    -------
    list of ContourLoop
        Empty when the sampled field never changes sign.
    """
    xs, ys, values = sample_grid_2d(field, bounds, resolution)
    finite = values[np.isfinite(values)]
    if finite.size == 0 or finite.min() >= 0 or finite.max() < 0:
        logger.debug("Field does not cross zero over %s", tuple(bounds))
        return []

    segments, cells = _cell_segments(values, xs, ys)
    dx = min(xs[1] - xs[0], ys[1] - ys[0])
    n = max(int(resolution), 1)
    loops = _Tracer(segments, cells, 0.5 * dx, 2 * n * n).trace()
    logger.debug("marching_squares: %d segments -> %d contours at resolution %d",
                 len(segments), len(loops), n)
    return loops


def extract_contours(
    field: Any,
    bounds: Sequence[float],
    resolutions: Optional[Iterable[int]] = None,
    settings: Settings = DEFAULT_SETTINGS,
) -> List[ContourLoop]:
    """Run :func:`marching_squares` at each resolution until contours appear.

    *resolutions* defaults to ``settings.escalation_resolutions``.
    """
    if resolutions is None:
        resolutions = settings.escalation_resolutions
    resolutions = tuple(resolutions)
    for resolution in resolutions:
        loops = marching_squares(field, bounds, resolution)
        if loops:
            logger.info("Extracted %d contours at resolution %d", len(loops), resolution)
            return loops
        logger.debug("No contours at resolution %d", resolution)
    logger.warning("No contours found after trying resolutions %s", resolutions)
    return []


# ===========================================================================
# Marching cubes
# ===========================================================================

def marching_cubes(
    field: Any,
    bounds: Sequence[float],
    resolution: int = 32,
    iso_level: float = 0.0,
) -> Mesh:
    """Isosurface of a 3-D *field* over ``(xmin, ymin, zmin, xmax, ymax, zmax)``.

    The field is sampled on a ``(resolution + 1)³`` vertex grid and
    triangulated with the classic Lorensen–Cline case table.  Returns an
    empty :class:`Mesh` when the field never crosses *iso_level*.
    """
    xs, ys, zs, volume = sample_grid_3d(field, bounds, resolution)
    finite = volume[np.isfinite(volume)]
    if finite.size == 0 or finite.min() >= iso_level or finite.max() <= iso_level:
        logger.debug("Volume does not cross iso level %g", iso_level)
        return Mesh.empty()

    volume = np.nan_to_num(volume, nan=finite.max(), posinf=finite.max(), neginf=finite.min())
    spacing = (xs[1] - xs[0], ys[1] - ys[0], zs[1] - zs[0])
    verts, faces, _normals, _values = measure.marching_cubes(
        volume, level=iso_level, spacing=spacing, method="lorensen"
    )
    verts = verts + np.array([xs[0], ys[0], zs[0]])
    logger.debug("marching_cubes: %d vertices, %d triangles", len(verts), len(faces))
    return Mesh(verts, faces.astype(np.int64))


# ===========================================================================
# Delaunay triangulation
# ===========================================================================

def delaunay_triangulation(points: Any) -> Mesh:
    """2-D Delaunay triangulation of *points* (``(N, 2)``), triangles counter-clockwise.

    Raises
    ------
    ExtractionError
        With fewer than three points, or when every point is collinear.
    """
    pts = as_points(points).reshape(-1, 2)
    if len(pts) < 3:
        raise ExtractionError(f"Delaunay triangulation needs at least 3 points, got {len(pts)}")
    try:
        tri = Delaunay(pts)
    except QhullError as exc:
        raise ExtractionError(f"Delaunay triangulation failed: {exc}") from exc

    simplices = tri.simplices.astype(np.int64)
    a, b, c = pts[simplices[:, 0]], pts[simplices[:, 1]], pts[simplices[:, 2]]
    cross = (b[:, 0] - a[:, 0]) * (c[:, 1] - a[:, 1]) - (b[:, 1] - a[:, 1]) * (c[:, 0] - a[:, 0])
    flip = cross < 0
    simplices[flip] = simplices[flip][:, [0, 2, 1]]

    vertices = np.column_stack([pts, np.zeros(len(pts))])
    return Mesh(vertices, simplices)


# ===========================================================================
# Arc fitting
# ===========================================================================

def fit_arcs(
    points: Any,
    min_arc_radius: float = 1e-6,
    max_arc_radius: float = 1e6,
) -> List[ArcDescriptor]:
    """Fit a circular arc through every overlapping triple ``(A, B, C)``.

    A triple is kept when it is not collinear, its circumradius lies in
    ``[min_arc_radius, max_arc_radius]`` and ``B`` lies between ``A`` and
    ``C`` along the triple's winding.  Clockwise triples are reported with
    their angles swapped so every descriptor runs counter-clockwise.
    """
    pts = as_points(points).reshape(-1, 2)
    if len(pts) < 3:
        logger.warning("Arc fitting needs at least 3 points, got %d", len(pts))
        return []

    two_pi = 2.0 * math.pi
    arcs: List[ArcDescriptor] = []
    skipped_collinear = skipped_radius = 0
    for k in range(len(pts) - 2):
        (ax, ay), (bx, by), (cx_, cy_) = pts[k], pts[k + 1], pts[k + 2]
        a, b = bx - ax, by - ay
        c, d = cx_ - ax, cy_ - ay
        e = a * (ax + bx) + b * (ay + by)
        f = c * (ax + cx_) + d * (ay + cy_)
        g = 2.0 * (a * (cy_ - by) - b * (cx_ - bx))
        if abs(g) < 1e-6:
            skipped_collinear += 1
            continue

        ox = (d * e - b * f) / g
        oy = (a * f - c * e) / g
        r = math.hypot(ax - ox, ay - oy)
        if r < min_arc_radius or r > max_arc_radius:
            skipped_radius += 1
            continue

        start = math.atan2(ay - oy, ax - ox)
        mid = math.atan2(by - oy, bx - ox)
        end = math.atan2(cy_ - oy, cx_ - ox)
        ccw = g > 0
        if ccw:
            on_arc = (mid - start) % two_pi < (end - start) % two_pi
        else:
            on_arc = (start - mid) % two_pi < (start - end) % two_pi
        if not on_arc:
            continue
        if not ccw:
            start, end = end, start
        arcs.append(ArcDescriptor((float(ox), float(oy)), float(r), float(start), float(end)))

    logger.debug("fit_arcs: %d arcs, %d collinear, %d out of radius range",
                 len(arcs), skipped_collinear, skipped_radius)
    return arcs


# ===========================================================================
# Renderer-neutral buffers
# ===========================================================================

def _loop_points(loop: Any) -> _F:
    return as_points(getattr(loop, "points", loop)).reshape(-1, 2)


def build_line_segments(contours: Iterable[Any], close: bool = False) -> _F:
    """Flatten contours into a ``(K, 3)`` segment buffer (vertex pairs, z = 0).

    With *close*, each contour of three or more points also gets its
    closing segment.
    """
    chunks: List[_F] = []
    for loop in contours:
        pts = _loop_points(loop)
        if len(pts) < 2:
            continue
        if close and len(pts) > 2:
            pts = np.vstack([pts, pts[:1]])
        pairs = np.stack([pts[:-1], pts[1:]], axis=1).reshape(-1, 2)
        chunks.append(np.column_stack([pairs, np.zeros(len(pairs))]))
    if not chunks:
        return np.zeros((0, 3))
    return np.vstack(chunks)


def contour_mesh(contours: Iterable[Any]) -> Mesh:
    """Triangulated fill of all contour points; empty when they cannot be triangulated."""
    loops = [_loop_points(loop) for loop in contours]
    pts = np.vstack(loops) if loops else np.zeros((0, 2))
    if len(pts) < 3:
        logger.warning("Too few contour points (%d) for a fill mesh", len(pts))
        return Mesh.empty()
    try:
        return delaunay_triangulation(pts)
    except ExtractionError as exc:
        logger.warning("Contour fill failed: %s", exc)
        return Mesh.empty()


def arc_points(arcs: Iterable[ArcDescriptor], segments: int = 32) -> _F:
    """Sample each arc counter-clockwise with ``segments + 1`` points."""
    chunks: List[_F] = []
    for arc in arcs:
        end = arc.end_angle
        if end < arc.start_angle:
            end += 2.0 * math.pi
        theta = np.linspace(arc.start_angle, end, segments + 1)
        cx, cy = arc.center
        chunks.append(np.column_stack([cx + arc.radius * np.cos(theta), cy + arc.radius * np.sin(theta)]))
    if not chunks:
        return np.zeros((0, 2))
    return np.vstack(chunks)
