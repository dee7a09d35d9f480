"""Grid sampling utilities for scalar fields."""

from __future__ import annotations

from typing import Any, Sequence, Tuple

import numpy as np
import numpy.typing as npt

from .fields import as_field

_Array = npt.NDArray[np.floating]
_Bounds2D = Tuple[float, float, float, float]
_Bounds3D = Tuple[float, float, float, float, float, float]

__all__ = ["sample_grid_2d", "sample_grid_3d"]


def sample_grid_2d(
    field: Any,
    bounds: Sequence[float],
    resolution: int,
) -> Tuple[_Array, _Array, _Array]:
    """Sample *field* on a uniform 2-D vertex grid.

    Parameters
    ----------
    field:
        A scalar field (callable on ``(..., 2)`` arrays) or a primitive.
    bounds:
        ``(xmin, ymin, xmax, ymax)`` physical extents of the domain.
    resolution:
        Number of cells along each axis; ``resolution + 1`` samples are
        taken per axis, corners included.

    Returns
    -------
    xs, ys, values
        Axis coordinates and a ``(ny, nx)`` array of field values,
        row-major (y first).
    """
    x0, y0, x1, y1 = (float(b) for b in bounds)
    n = max(int(resolution), 1)
    xs = np.linspace(x0, x1, n + 1)
    ys = np.linspace(y0, y1, n + 1)
    Y, X = np.meshgrid(ys, xs, indexing="ij")
    values = as_field(field)(np.stack([X, Y], axis=-1))
    return xs, ys, np.broadcast_to(values, X.shape).astype(float)


def sample_grid_3d(
    field: Any,
    bounds: Sequence[float],
    resolution: int,
) -> Tuple[_Array, _Array, _Array, _Array]:
    """Sample *field* on a uniform 3-D vertex grid.

    *bounds* is ``(xmin, ymin, zmin, xmax, ymax, zmax)``.  The returned
    volume is indexed ``[ix, iy, iz]``.
    """
    x0, y0, z0, x1, y1, z1 = (float(b) for b in bounds)
    n = max(int(resolution), 1)
    xs = np.linspace(x0, x1, n + 1)
    ys = np.linspace(y0, y1, n + 1)
    zs = np.linspace(z0, z1, n + 1)
    X, Y, Z = np.meshgrid(xs, ys, zs, indexing="ij")
    values = as_field(field)(np.stack([X, Y, Z], axis=-1))
    return xs, ys, zs, np.broadcast_to(values, X.shape).astype(float)
