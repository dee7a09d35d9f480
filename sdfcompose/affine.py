"""2-D affine transform algebra.

An :class:`Affine` is the immutable 6-tuple ``(a, b, c, d, tx, ty)``
representing::

    [x']   [a  b] [x]   [tx]
    [y'] = [c  d] [y] + [ty]

Constructors return new transforms; nothing here mutates its inputs.
Point arguments follow the package convention: an array of shape
``(..., 2)`` (a single point is shape ``(2,)``).
"""

from __future__ import annotations

import math
from typing import Any, NamedTuple, Sequence

import numpy as np
import numpy.typing as npt

from ._math import as_points
from .config import EPSILON
from .errors import SingularTransformError

_F = npt.NDArray[np.floating]

__all__ = [
    "Affine",
    "identity", "determinant", "is_invertible", "invert", "compose",
    "translate", "scale", "rotate", "shear_x", "shear_y",
    "reflect_x", "reflect_y", "reflect", "make_affine",
    "apply_to_point", "apply_to_points", "uniform_scale_factor",
    "to_array", "from_array", "to_matrix",
]


class Affine(NamedTuple):
    a: float = 1.0
    b: float = 0.0
    c: float = 0.0
    d: float = 1.0
    tx: float = 0.0
    ty: float = 0.0


# ===========================================================================
# Core algebra
# ===========================================================================

def identity() -> Affine:
    return Affine()


def determinant(m: Affine) -> float:
    """``a*d - b*c``."""
    return m.a * m.d - m.b * m.c


def is_invertible(m: Affine, eps: float = EPSILON) -> bool:
    return abs(determinant(m)) > eps


def invert(m: Affine, eps: float = EPSILON) -> Affine:
    """Return the inverse of *m*.

    Raises :class:`~sdfcompose.errors.SingularTransformError` when
    ``|det| <= eps``.  Callers that want graceful degradation check
    :func:`is_invertible` first and substitute :func:`identity`.
    """
    det = determinant(m)
    if abs(det) <= eps:
        raise SingularTransformError(f"cannot invert singular affine transform (det={det!r})")
    inv = 1.0 / det
    return Affine(
        a=m.d * inv,
        b=-m.b * inv,
        c=-m.c * inv,
        d=m.a * inv,
        tx=(m.b * m.ty - m.d * m.tx) * inv,
        ty=(m.c * m.tx - m.a * m.ty) * inv,
    )


def compose(m2: Affine, m1: Affine) -> Affine:
    """``m2 ∘ m1``: apply *m1* first, then *m2*."""
    return Affine(
        a=m2.a * m1.a + m2.b * m1.c,
        b=m2.a * m1.b + m2.b * m1.d,
        c=m2.c * m1.a + m2.d * m1.c,
        d=m2.c * m1.b + m2.d * m1.d,
        tx=m2.a * m1.tx + m2.b * m1.ty + m2.tx,
        ty=m2.c * m1.tx + m2.d * m1.ty + m2.ty,
    )


# ===========================================================================
# Constructors
# ===========================================================================

def translate(x: float = 0.0, y: float = 0.0) -> Affine:
    return Affine(tx=x, ty=y)


def scale(sx: float = 1.0, sy: float | None = None) -> Affine:
    """Scale by *sx* horizontally and *sy* (default *sx*) vertically."""
    return Affine(a=sx, d=sx if sy is None else sy)


def rotate(theta: float = 0.0) -> Affine:
    """Counter-clockwise rotation by *theta* radians about the origin."""
    c, s = math.cos(theta), math.sin(theta)
    return Affine(a=c, b=-s, c=s, d=c)


def shear_x(k: float = 0.0) -> Affine:
    return Affine(b=k)


def shear_y(k: float = 0.0) -> Affine:
    return Affine(c=k)


def reflect_x() -> Affine:
    """Mirror across the y axis (``x -> -x``)."""
    return Affine(a=-1.0)


def reflect_y() -> Affine:
    """Mirror across the x axis (``y -> -y``)."""
    return Affine(d=-1.0)


def reflect(theta: float = 0.0) -> Affine:
    """Mirror across the line through the origin at angle *theta*."""
    c2, s2 = math.cos(2.0 * theta), math.sin(2.0 * theta)
    return Affine(a=c2, b=s2, c=s2, d=-c2)


def make_affine(rotation: float = 0.0, scale: float = 1.0,
                translate: Sequence[float] = (0.0, 0.0)) -> Affine:
    """Rotation, then uniform *scale*, then translation, in one transform."""
    c = math.cos(rotation) * scale
    s = math.sin(rotation) * scale
    tx, ty = (float(v) for v in translate)
    return Affine(a=c, b=-s, c=s, d=c, tx=tx, ty=ty)


# ===========================================================================
# Application
# ===========================================================================

def apply_to_point(m: Affine, p: Any) -> _F:
    """``x' = a*x + b*y + tx``, ``y' = c*x + d*y + ty`` (broadcasts over ``(..., 2)``)."""
    p = as_points(p)
    x, y = p[..., 0], p[..., 1]
    return np.stack([m.a * x + m.b * y + m.tx, m.c * x + m.d * y + m.ty], axis=-1)


apply_to_points = apply_to_point


def uniform_scale_factor(m: Affine) -> float:
    """Area-preserving scale estimate ``sqrt(|det m|)``."""
    return math.sqrt(abs(determinant(m)))


# ===========================================================================
# Conversions
# ===========================================================================

def to_array(m: Affine) -> list[float]:
    """Flatten to ``[a, b, c, d, tx, ty]``."""
    return list(m)


def from_array(values: Sequence[float]) -> Affine:
    a, b, c, d, tx, ty = (float(v) for v in values)
    return Affine(a, b, c, d, tx, ty)


def to_matrix(m: Affine) -> _F:
    """3×3 homogeneous matrix."""
    return np.array([[m.a, m.b, m.tx], [m.c, m.d, m.ty], [0.0, 0.0, 1.0]])
