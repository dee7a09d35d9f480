"""
sdfcompose — Implicit 2D Shape Composition and Extraction
==========================================================

A library for composing 2D primitives into smoothly blended signed
distance fields (SDFs) and extracting renderable geometry from them.

Implemented features
--------------------
- Distance mappers: polynomial, exponential, easing curves and
  combinators (composite, periodic, temporal, recursive, sequential, blended)
- Affine algebra: :class:`Affine` and :class:`TransformStack`
- R-function blending: :func:`union`, :func:`intersection`, :func:`difference`
- Primitives: :class:`Line`, :class:`Triangle`, :class:`Arc`, :class:`Blend`
- Canonical-space composition: :class:`CompositeNode`, with a
  :class:`DependencyGraph` cycle guard
- Extraction: marching squares, marching cubes, Delaunay triangulation,
  arc fitting

Quick start
-----------
::

    from sdfcompose import CompositeNode, equilateral_triangle, Line, marching_squares

    tri  = equilateral_triangle(size=2.0)
    bar  = Line((-1.5, 0.0), (1.5, 0.0), thickness=0.2)
    node = CompositeNode([tri, bar], rotation=0.3, operations=["union"], weights=[8.0])

    loops = marching_squares(node, bounds=(-3.0, -3.0, 3.0, 3.0), resolution=150)
"""

import logging

from . import affine
from .affine import Affine, make_affine
from .blending import (
    create_composite_sdf,
    difference,
    evolve_sdf,
    intersection,
    union,
)
from .composition import CompositeNode
from .config import DEFAULT_SETTINGS, Settings
from .dependency import DependencyGraph
from .errors import (
    DependencyCycleError,
    ExtractionError,
    SDFComposeError,
    SingularTransformError,
    TransformStackError,
)
from .extract import (
    ArcDescriptor,
    ContourLoop,
    Mesh,
    arc_points,
    build_line_segments,
    contour_mesh,
    delaunay_triangulation,
    extract_contours,
    fit_arcs,
    marching_cubes,
    marching_squares,
)
from .grid import sample_grid_2d, sample_grid_3d
from .mapping import MapperRegistry, create_mapping, default_registry
from .primitives import (
    Arc,
    Blend,
    Color,
    Line,
    Metric,
    Primitive,
    Triangle,
    create_primitive,
    equilateral_triangle,
    get_color,
)
from .store import ShapeStore
from .transform_stack import TransformStack

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # Affine
    "affine", "Affine", "make_affine", "TransformStack",
    # Blending
    "union", "intersection", "difference", "create_composite_sdf", "evolve_sdf",
    # Mapping
    "create_mapping", "MapperRegistry", "default_registry",
    # Primitives
    "Primitive", "Metric", "Color", "get_color",
    "Line", "Triangle", "Arc", "Blend", "equilateral_triangle", "create_primitive",
    # Composition
    "CompositeNode", "DependencyGraph", "ShapeStore",
    # Extraction
    "ContourLoop", "Mesh", "ArcDescriptor",
    "marching_squares", "extract_contours", "marching_cubes",
    "delaunay_triangulation", "fit_arcs",
    "build_line_segments", "contour_mesh", "arc_points",
    "sample_grid_2d", "sample_grid_3d",
    # Config and errors
    "Settings", "DEFAULT_SETTINGS",
    "SDFComposeError", "SingularTransformError", "TransformStackError",
    "DependencyCycleError", "ExtractionError",
]
