"""Tests for sdfcompose.primitives leaf shapes and the Blend primitive."""

import logging
import math

import numpy as np
import numpy.testing as npt
import pytest

from sdfcompose import affine
from sdfcompose.blending import union
from sdfcompose.mapping import default_registry
from sdfcompose.primitives import (
    Arc,
    Blend,
    Color,
    Line,
    Primitive,
    Triangle,
    create_primitive,
    equilateral_triangle,
    get_color,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _p(*xy) -> np.ndarray:
    """Single 2-D point as shape ``(1, 2)``."""
    return np.array([list(xy)], dtype=float)


def _grid(n: int = 16, half: float = 2.0) -> np.ndarray:
    lin = np.linspace(-half, half, n)
    Y, X = np.meshgrid(lin, lin, indexing="ij")
    return np.stack([X, Y], axis=-1)


# ===========================================================================
# Line
# ===========================================================================

class TestLine:
    def test_distance_to_segment(self):
        line = Line((0.0, 0.0), (2.0, 0.0))
        npt.assert_allclose(line.compute_sdf(_p(1.0, 1.0)), [1.0])

    def test_endpoint_distance(self):
        line = Line((0.0, 0.0), (2.0, 0.0))
        npt.assert_allclose(line.compute_sdf(_p(3.0, 0.0)), [1.0])

    def test_thickness(self):
        line = Line((0.0, 0.0), (2.0, 0.0), thickness=0.5)
        npt.assert_allclose(line.compute_sdf(_p(1.0, 1.0)), [0.5])
        assert line.compute_sdf(_p(1.0, 0.0))[0] < 0

    def test_degenerate_segment_is_point(self):
        line = Line((1.0, 1.0), (1.0, 1.0))
        npt.assert_allclose(line.compute_sdf(_p(4.0, 5.0)), [5.0])

    def test_grid_shape(self):
        assert Line((0, 0), (1, 0)).compute_sdf(_grid()).shape == (16, 16)

    def test_mapper_applied(self):
        line = Line((0.0, 0.0), (2.0, 0.0), distance_mapper=lambda d, t=0.0, depth=0: 2.0 * d)
        npt.assert_allclose(line.compute_sdf(_p(1.0, 1.0)), [2.0])

    def test_mapper_receives_time_and_depth(self):
        seen = []

        def mapper(d, t=0.0, depth=0):
            seen.append((t, depth))
            return d

        Line((0, 0), (1, 0), distance_mapper=mapper).compute_sdf(_p(0, 1), None, 1.5, 3)
        assert seen == [(1.5, 3)]

    def test_mapper_by_name(self):
        line = Line((0.0, 0.0), (2.0, 0.0), distance_mapper="power", registry=default_registry())
        npt.assert_allclose(line.compute_sdf(_p(1.0, 3.0)), [9.0])

    def test_satisfies_protocol(self):
        assert isinstance(Line((0, 0), (1, 0)), Primitive)


# ===========================================================================
# Triangle
# ===========================================================================

class TestTriangle:
    def test_sign(self):
        tri = Triangle((0.0, 0.0), (2.0, 0.0), (0.0, 2.0))
        assert tri.compute_sdf(_p(0.5, 0.5))[0] < 0
        assert tri.compute_sdf(_p(2.0, 2.0))[0] > 0

    def test_edge_distance(self):
        tri = Triangle((0.0, 0.0), (2.0, 0.0), (0.0, 2.0))
        npt.assert_allclose(tri.compute_sdf(_p(1.0, -1.0)), [1.0], atol=1e-12)
        npt.assert_allclose(tri.compute_sdf(_p(0.5, 0.25)), [-0.25], atol=1e-12)

    def test_winding_independent(self):
        a = Triangle((0.0, 0.0), (2.0, 0.0), (0.0, 2.0))
        b = Triangle((0.0, 0.0), (0.0, 2.0), (2.0, 0.0))
        g = _grid()
        npt.assert_allclose(a.compute_sdf(g), b.compute_sdf(g), atol=1e-12)

    def test_equilateral_factory(self):
        tri = equilateral_triangle(size=2.0, position=(1.0, -1.0))
        npt.assert_allclose(tri.vertices.mean(axis=0), [1.0, -1.0], atol=1e-12)
        edges = np.linalg.norm(tri.vertices - np.roll(tri.vertices, 1, axis=0), axis=1)
        npt.assert_allclose(edges, 2.0)
        inradius = 2.0 / (2.0 * math.sqrt(3.0))
        npt.assert_allclose(tri.compute_sdf(_p(1.0, -1.0)), [-inradius], atol=1e-12)


# ===========================================================================
# Arc
# ===========================================================================

class TestArc:
    def test_vertices_on_circle(self):
        arc = Arc(center=(1.0, 2.0), radius=3.0, start_angle=0.0, end_angle=math.pi, segments=16)
        assert arc.vertices.shape == (17, 2)
        npt.assert_allclose(np.linalg.norm(arc.vertices - [1.0, 2.0], axis=1), 3.0)

    def test_distance_near_arc(self):
        arc = Arc(radius=1.0, start_angle=0.0, end_angle=math.pi, segments=64)
        npt.assert_allclose(arc.compute_sdf(_p(0.0, 1.0)), [0.0], atol=1e-12)
        npt.assert_allclose(arc.compute_sdf(_p(0.0, -1.0)), [math.sqrt(2.0)], atol=1e-12)

    def test_metric_center_is_circle_center(self):
        arc = Arc(center=(1.0, 2.0), radius=3.0)
        npt.assert_allclose(arc.metric.center, [1.0, 2.0])

    def test_thickness(self):
        arc = Arc(radius=1.0, end_angle=math.pi, segments=64, thickness=0.1)
        assert arc.compute_sdf(_p(0.0, 1.0))[0] < 0


# ===========================================================================
# Shared behaviour
# ===========================================================================

class TestLeafTransform:
    def test_transform_moves_vertices_and_metric(self):
        line = Line((0.0, 0.0), (2.0, 0.0))
        line.transform(affine.translate(1.0, 1.0))
        npt.assert_allclose(line.vertices, [[1.0, 1.0], [3.0, 1.0]])
        npt.assert_allclose(line.metric.center, [2.0, 1.0])

    def test_transform_rescales_metric(self):
        line = Line((0.0, 0.0), (2.0, 0.0))
        line.transform(affine.scale(2.0))
        assert line.metric.scale == pytest.approx(2.0)

    def test_clone_is_independent(self):
        line = Line((0.0, 0.0), (2.0, 0.0), thickness=0.1)
        twin = line.clone()
        twin.transform(affine.translate(5.0, 0.0))
        assert twin.id == line.id
        npt.assert_allclose(line.vertices, [[0.0, 0.0], [2.0, 0.0]])
        npt.assert_allclose(line.metric.center, [1.0, 0.0])
        assert twin.thickness == line.thickness

    def test_clone_keeps_mapper(self):
        def mapper(d, t=0.0, depth=0):
            return d

        assert Line((0, 0), (1, 0), distance_mapper=mapper).clone().distance_mapper is mapper

    def test_unique_ids(self):
        assert Line((0, 0), (1, 0)).id != Line((0, 0), (1, 0)).id


class TestLeafParameters:
    def test_unchanged_returns_false(self):
        line = Line((0.0, 0.0), (2.0, 0.0), thickness=0.1)
        assert not line.update_parameters(a=(0.0, 0.0), thickness=0.1)

    def test_line_endpoints(self):
        line = Line((0.0, 0.0), (2.0, 0.0))
        assert line.update_parameters(b=(0.0, 4.0))
        npt.assert_allclose(line.vertices, [[0.0, 0.0], [0.0, 4.0]])
        npt.assert_allclose(line.metric.center, [0.0, 2.0])
        npt.assert_allclose(line.compute_sdf(_p(1.0, 3.0)), [1.0])

    def test_triangle_vertex(self):
        tri = Triangle((0.0, 0.0), (3.0, 0.0), (0.0, 3.0))
        assert tri.update_parameters(p1=(6.0, 0.0))
        npt.assert_allclose(tri.vertices[1], [6.0, 0.0])
        npt.assert_allclose(tri.metric.center, [2.0, 1.0])

    def test_thickness_color_and_mapper(self):
        line = Line((0.0, 0.0), (2.0, 0.0), registry=default_registry())
        color = Color(h=120.0)
        assert line.update_parameters(thickness=0.5, color=color, distance_mapper="ease_in_quad")
        assert line.thickness == 0.5
        assert line.color == color
        npt.assert_allclose(line.compute_sdf(_p(1.0, 2.0)), [1.5 ** 2])

    def test_arc_radius_keeps_angles(self):
        arc = Arc(center=(1.0, 2.0), radius=1.0, start_angle=0.0, end_angle=math.pi, segments=16)
        assert arc.update_parameters(radius=3.0)
        assert arc.radius == 3.0
        assert arc.vertices.shape == (17, 2)
        npt.assert_allclose(np.linalg.norm(arc.vertices - [1.0, 2.0], axis=1), 3.0)
        npt.assert_allclose(arc.vertices[0], [4.0, 2.0])
        npt.assert_allclose(arc.metric.center, [1.0, 2.0])

    def test_arc_segments(self):
        arc = Arc(segments=8)
        assert arc.update_parameters(segments=32)
        assert arc.vertices.shape == (33, 2)

    def test_arc_geometry_follows_transform(self):
        arc = Arc(radius=1.0, start_angle=0.0, end_angle=math.pi / 2, segments=4)
        arc.transform(affine.Affine(-1.0, 0.0, 0.0, 1.0, 0.0, 0.0))
        npt.assert_allclose(arc.start_angle, math.pi)
        npt.assert_allclose(arc.end_angle, math.pi / 2)
        arc.update_parameters(radius=2.0)
        npt.assert_allclose(arc.vertices[0], [-2.0, 0.0], atol=1e-12)
        npt.assert_allclose(arc.vertices[-1], [0.0, 2.0], atol=1e-12)

    def test_unknown_key(self):
        with pytest.raises(TypeError):
            Triangle((0, 0), (1, 0), (0, 1)).update_parameters(radius=2.0)

    def test_clone_is_unaffected(self):
        arc = Arc(radius=1.0)
        twin = arc.clone()
        twin.update_parameters(center=(5.0, 5.0))
        npt.assert_allclose(arc.center, [0.0, 0.0])
        npt.assert_allclose(twin.metric.center, [5.0, 5.0])


class TestCreatePrimitive:
    def test_line(self):
        assert isinstance(create_primitive("line", a=(0, 0), b=(1, 1)), Line)

    def test_arc(self):
        arc = create_primitive("arc", radius=2.0, segments=4)
        assert isinstance(arc, Arc)
        assert len(arc.vertices) == 5

    def test_triangle_from_vertices(self):
        tri = create_primitive("triangle", vertices=[(0, 0), (1, 0), (0, 1)])
        npt.assert_allclose(tri.vertices, [[0, 0], [1, 0], [0, 1]])

    def test_unknown_kind_gives_triangle(self, caplog):
        with caplog.at_level(logging.WARNING, logger="sdfcompose.primitives"):
            shape = create_primitive("hexagon", size=1.0)
        assert isinstance(shape, Triangle)
        assert "hexagon" in caplog.text


class TestGetColor:
    def test_on_boundary_full_intensity(self):
        line = Line((0, 0), (1, 0), color=Color(120.0, 1.0, 0.5, 1.0))
        c = get_color(line, 0.0)
        assert (c.h, c.s) == (120.0, 1.0)
        assert float(c.l) == pytest.approx(0.5)
        assert float(c.a) == pytest.approx(1.0)

    def test_fades_with_distance(self):
        c = get_color(Line((0, 0), (1, 0)), np.array([1.0, -3.0]))
        npt.assert_allclose(c.a, np.exp([-1.0, -3.0]))


# ===========================================================================
# Blend
# ===========================================================================

class TestBlend:
    def test_union_field(self):
        a = Line((-1.0, 0.0), (1.0, 0.0), thickness=0.2)
        b = Line((0.0, -1.0), (0.0, 1.0), thickness=0.2)
        g = _grid()
        blend = Blend([a, b], "union", 8.0)
        npt.assert_allclose(blend.compute_sdf(g), union(a.compute_sdf(g), b.compute_sdf(g), 8.0))

    def test_transform_forwards_to_children(self):
        a = Line((0.0, 0.0), (1.0, 0.0))
        blend = Blend([a], "union")
        blend.transform(affine.translate(0.0, 3.0))
        npt.assert_allclose(a.vertices, [[0.0, 3.0], [1.0, 3.0]])

    def test_base_moves_once(self):
        a = Line((0.0, 0.0), (1.0, 0.0))
        b = Line((0.0, 1.0), (1.0, 1.0))
        blend = Blend([a, b], "difference", base=a)
        blend.transform(affine.translate(1.0, 0.0))
        npt.assert_allclose(a.vertices, [[1.0, 0.0], [2.0, 0.0]])

    def test_clone_is_independent(self):
        a = Line((0.0, 0.0), (1.0, 0.0))
        blend = Blend([a], "union")
        twin = blend.clone()
        twin.transform(affine.translate(5.0, 0.0))
        assert twin.id == blend.id
        npt.assert_allclose(a.vertices, [[0.0, 0.0], [1.0, 0.0]])

    def test_empty_blend_is_infinite(self):
        assert np.isinf(Blend([]).compute_sdf(_p(0, 0))).all()

    def test_metric_center_is_mean(self):
        blend = Blend([Line((0, 0), (2, 0)), Line((0, 2), (2, 2))])
        npt.assert_allclose(blend.metric.center, [1.0, 1.0])
