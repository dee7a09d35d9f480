"""Tests for sdfcompose.store.ShapeStore."""

import logging

import numpy as np
import numpy.testing as npt
import pytest

from sdfcompose.composition import CompositeNode
from sdfcompose.errors import DependencyCycleError
from sdfcompose.primitives import Blend, Line, equilateral_triangle
from sdfcompose.store import ShapeStore


def _p(*xy) -> np.ndarray:
    return np.array([list(xy)], dtype=float)


@pytest.fixture
def store():
    return ShapeStore()


@pytest.fixture
def updates(store):
    seen = []
    store.on_visual_update(seen.append)
    return seen


class TestCollection:
    def test_add_get_remove(self, store):
        line = Line((0, 0), (1, 0))
        assert store.add_shape(line) == line.id
        assert line.id in store
        assert store.get_shape(line.id) is line
        assert store.remove_shape(line.id) is line
        assert line.id not in store
        assert store.get_shape(line.id) is None

    def test_remove_missing(self, store):
        assert store.remove_shape("nope") is None

    def test_clear(self, store):
        store.add_shape(Line((0, 0), (1, 0)))
        store.add_shape(equilateral_triangle())
        assert len(store) == 2
        store.clear()
        assert len(store) == 0
        assert store.shapes() == []

    def test_composite_children_registered(self, store):
        tri = equilateral_triangle()
        node = CompositeNode([tri])
        store.add_shape(node)
        assert store.graph.children(node.id) == frozenset({tri.id})
        store.remove_shape(node.id)
        assert node.id not in store.graph


class TestVisualUpdates:
    def test_callbacks_receive_id(self, store, updates):
        assert store.trigger_visual_update("abc")
        assert updates == ["abc"]

    def test_non_callable_rejected(self, store, caplog):
        with caplog.at_level(logging.WARNING, logger="sdfcompose.store"):
            assert not store.on_visual_update("not a function")

    def test_failing_callback_is_logged(self, store, updates, caplog):
        def broken(shape_id):
            raise ValueError("render failed")

        store.on_visual_update(broken)
        with caplog.at_level(logging.ERROR, logger="sdfcompose.store"):
            assert store.trigger_visual_update("x")
        assert updates == ["x"]
        assert "render failed" in caplog.text

    def test_cycle_aborts_update(self, store, updates, caplog):
        store.graph.update_dependencies("x", ["y"])
        store.graph.update_dependencies("y", ["x"])
        with caplog.at_level(logging.ERROR, logger="sdfcompose.store"):
            assert not store.trigger_visual_update("x")
        assert updates == []
        assert "Cycle detected" in caplog.text


class TestComposites:
    def test_create_composite(self, store, updates):
        tri = equilateral_triangle(size=2.0)
        bar = Line((-1.5, 0.0), (1.5, 0.0), thickness=0.2)
        store.add_shape(tri)
        store.add_shape(bar)
        node = store.create_composite([tri.id, bar.id, "missing"], rotation=0.3)
        assert node.id in store
        assert node.graph is store.graph
        assert store.graph.children(node.id) == frozenset({tri.id, bar.id})
        assert updates == [node.id]
        assert node.compute_sdf(_p(0.0, 0.0))[0] < 0

    def test_create_blended_shape(self, store, updates):
        a = Line((-1, 0), (1, 0), thickness=0.2)
        b = Line((0, -1), (0, 1), thickness=0.2)
        store.add_shape(a)
        store.add_shape(b)
        blend = store.create_blended_shape([a.id, b.id], operation="intersection")
        assert isinstance(blend, Blend)
        assert blend.operation == "intersection"
        assert store.graph.children(blend.id) == frozenset({a.id, b.id})
        assert updates == [blend.id]

    def test_create_blended_shape_without_shapes(self, store, caplog):
        with caplog.at_level(logging.WARNING, logger="sdfcompose.store"):
            assert store.create_blended_shape(["ghost"]) is None

    def test_update_composite_resolves_ids(self, store, updates):
        tri = equilateral_triangle()
        bar = Line((0, 0), (1, 0))
        store.add_shape(tri)
        store.add_shape(bar)
        node = store.create_composite([tri.id])
        updates.clear()
        assert store.update_composite(node.id, shapes=[tri.id, bar.id], scale=2.0)
        assert node.base_shapes == [tri, bar]
        assert node.scale == 2.0
        assert updates == [node.id]
        assert not store.update_composite(node.id, scale=2.0)

    def test_update_composite_attaches_graph(self, store):
        tri = equilateral_triangle()
        child = CompositeNode([tri])
        parent = CompositeNode([child])
        store.add_shape(child)
        store.add_shape(parent)
        with pytest.raises(DependencyCycleError):
            store.update_composite(child.id, shapes=[parent.id])
        assert child.graph is store.graph
        assert child.base_shapes == [tri]

    def test_update_composite_rejects_cycle(self, store, updates):
        tri = equilateral_triangle()
        store.add_shape(tri)
        first = store.create_composite([tri.id])
        second = store.create_composite([first.id])
        updates.clear()
        with pytest.raises(DependencyCycleError):
            store.update_composite(first.id, shapes=[second.id])
        assert updates == []
        assert not store.graph.has_cycle(first.id)

    def test_update_non_composite(self, store):
        line = Line((0, 0), (1, 0))
        store.add_shape(line)
        assert not store.update_composite(line.id, scale=3.0)


class TestMappers:
    def test_update_shape_mapper(self, store, updates):
        line = Line((0.0, 0.0), (2.0, 0.0))
        store.add_shape(line)
        assert store.update_shape_mapper(line.id, "power", a=2.0)
        npt.assert_allclose(line.compute_sdf(_p(1.0, 3.0)), [18.0])
        assert updates == [line.id]

    def test_update_missing_shape(self, store):
        assert not store.update_shape_mapper("ghost", "power")

    def test_unknown_mapper_is_identity(self, store):
        line = Line((0.0, 0.0), (2.0, 0.0))
        store.add_shape(line)
        store.update_shape_mapper(line.id, "wobble")
        npt.assert_allclose(line.compute_sdf(_p(1.0, 3.0)), [3.0])
