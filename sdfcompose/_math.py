"""Internal vector math and raw distance kernels.

All symbols here operate on ``numpy.ndarray`` objects and broadcast over
arbitrary leading batch dimensions.  A point array *p* has shape
``(..., 2)``; scalar results have shape ``(...)``.

The small vector helpers (``vec2``, ``length``, ``dot``, ``dot2``, ``clamp``,
``safe_div``) are the shared helper set of the pySdf family of SDF
libraries.  The segment and triangle kernels follow Inigo Quilez's 2-D
distance reference (https://iquilezles.org/articles/distfunctions2d/);
``sd_triangle`` guards its edge projections with ``safe_div``.
"""

from __future__ import annotations

from typing import Any

import numpy as np
import numpy.typing as npt

# ---------------------------------------------------------------------------
# Type alias
# ---------------------------------------------------------------------------
_F = npt.NDArray[np.floating]


# ===========================================================================
# Construction / coercion
# ===========================================================================

def vec2(x: _F, y: _F) -> _F:
    """Stack *x* and *y* into a ``(..., 2)`` array."""
    x, y = np.broadcast_arrays(x, y)
    return np.stack([x, y], axis=-1)


def as_points(p: Any, dim: int = 2) -> _F:
    """Coerce *p* to a float array whose last axis has length *dim*.

    Accepts sequences, arrays, and ``{"x": .., "y": ..}`` mappings.
    """
    if isinstance(p, dict):
        coords = np.broadcast_arrays(*(np.asarray(p[k], dtype=float) for k in "xyz"[:dim]))
        return np.stack(coords, axis=-1)
    arr = np.asarray(p, dtype=float)
    if arr.shape[-1:] != (dim,):
        raise ValueError(f"expected points with trailing dimension {dim}, got shape {arr.shape}")
    return arr


# ===========================================================================
# Math helpers
# ===========================================================================

def length(v: _F) -> _F:
    """Euclidean length along the last axis."""
    return np.linalg.norm(v, axis=-1)


def dot(a: _F, b: _F) -> _F:
    """Dot product along the last axis."""
    return np.sum(a * b, axis=-1)


def dot2(a: _F) -> _F:
    """Squared length."""
    return dot(a, a)


def clamp(x: _F, lo: float | _F, hi: float | _F) -> _F:
    """Clamp *x* element-wise to ``[lo, hi]``."""
    return np.minimum(np.maximum(x, lo), hi)


def safe_div(n: _F, d: _F, eps: float = 1e-12) -> _F:
    """Division that avoids exact zero in the denominator."""
    return n / np.where(np.abs(d) < eps, np.sign(d) * eps + eps, d)


# ===========================================================================
# Raw distance kernels
# ===========================================================================

def sd_segment(p: _F, a: _F, b: _F) -> _F:
    """Unsigned distance from *p* to the segment ``a -> b``.

    A degenerate segment (``a == b``) is treated as a point.
    """
    pa = p - a
    ba = b - a
    denom = dot2(ba)
    if denom == 0.0:
        return length(pa)
    h = clamp(dot(pa, ba) / denom, 0.0, 1.0)
    return length(pa - ba * h[..., None])


def sd_polyline(p: _F, vertices: _F) -> _F:
    """Unsigned distance from *p* to the open polyline through *vertices*."""
    vertices = np.asarray(vertices, dtype=float)
    if len(vertices) == 1:
        return length(p - vertices[0])
    d = sd_segment(p, vertices[0], vertices[1])
    for a, b in zip(vertices[1:-1], vertices[2:]):
        d = np.minimum(d, sd_segment(p, a, b))
    return d


def sd_triangle(p: _F, p0: _F, p1: _F, p2: _F) -> _F:
    """Signed distance to the filled triangle ``p0, p1, p2`` (either winding)."""
    e0 = p1 - p0;  v0 = p - p0
    e1 = p2 - p1;  v1 = p - p1
    e2 = p0 - p2;  v2 = p - p2
    pq0 = v0 - e0 * clamp(safe_div(dot(v0, e0), dot2(e0)), 0.0, 1.0)[..., None]
    pq1 = v1 - e1 * clamp(safe_div(dot(v1, e1), dot2(e1)), 0.0, 1.0)[..., None]
    pq2 = v2 - e2 * clamp(safe_div(dot(v2, e2), dot2(e2)), 0.0, 1.0)[..., None]
    s = np.sign(e0[0] * e2[1] - e0[1] * e2[0])
    d = np.minimum(np.minimum(
        vec2(dot2(pq0), s * (v0[..., 0] * e0[1] - v0[..., 1] * e0[0])),
        vec2(dot2(pq1), s * (v1[..., 0] * e1[1] - v1[..., 1] * e1[0]))),
        vec2(dot2(pq2), s * (v2[..., 0] * e2[1] - v2[..., 1] * e2[0])))
    return -np.sqrt(d[..., 0]) * np.sign(d[..., 1])
