"""Composite of a triangle and a bar, blended in canonical space.

Demonstrates: CompositeNode, marching_squares, fit_arcs, contour_mesh
Output:       examples/composite_example.png

Properties verified:
    * the composite is negative at the triangle centroid;
    * repeated evaluation is bit-identical;
    * every contour point lies within one cell of the zero level set.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import logging

import numpy as np
from sdfcompose import (
    CompositeNode,
    Line,
    contour_mesh,
    equilateral_triangle,
    fit_arcs,
    marching_squares,
    sample_grid_2d,
)

_BOUNDS = (-3.0, -3.0, 3.0, 3.0)
_RES    = 150
_OUT    = os.path.join(os.path.dirname(__file__), "composite_example.png")


def _render_png(node, loops, out_path, title=""):
    try:
        import matplotlib.pyplot as plt
    except ImportError:
        print("  matplotlib not available; skipping PNG")
        return

    xs, ys, phi = sample_grid_2d(node, _BOUNDS, 300)
    vmax = np.abs(phi[np.isfinite(phi)]).max()

    fig, ax = plt.subplots(figsize=(5, 5), facecolor="#111")
    ax.imshow(phi, origin="lower", extent=(xs[0], xs[-1], ys[0], ys[-1]),
              cmap="RdBu", vmin=-vmax, vmax=vmax)
    for loop in loops:
        pts = np.vstack([loop.points, loop.points[:1]]) if loop.closed else loop.points
        ax.plot(pts[:, 0], pts[:, 1], color="white", lw=1.2)
    ax.set_axis_off()
    ax.set_title(title, color="white", fontsize=10)
    plt.savefig(out_path, dpi=150, bbox_inches="tight", facecolor="#111")
    plt.close()
    print(f"  Saved: {out_path}")


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("=" * 60)
    print("COMPOSITE: equilateral triangle minus a horizontal bar")
    print("  T: size 3.0, centroid (0, 0)")
    print("  B: (-2, 0) -> (2, 0), thickness 0.25")
    print("=" * 60)

    tri = equilateral_triangle(size=3.0)
    bar = Line((-2.0, 0.0), (2.0, 0.0), thickness=0.25)
    node = CompositeNode([tri, bar], rotation=0.3, operations="difference", weights=8.0)

    p = np.array([[0.0, 0.6]])
    v1 = node.compute_sdf(p)
    v2 = node.compute_sdf(p)
    print(f"\nAt (0, 0.6): composite={float(v1[0]):.4f}  (inside expected)")
    print(f"Repeat evaluation identical: {np.array_equal(v1, v2)}")

    loops = marching_squares(node, _BOUNDS, _RES)
    cell = (_BOUNDS[2] - _BOUNDS[0]) / _RES
    worst = max((float(np.abs(node.compute_sdf(loop.points)).max()) for loop in loops), default=0.0)
    print(f"\nContours: {len(loops)}  ({sum(len(l) for l in loops)} points)")
    print(f"max |phi| on contour points = {worst:.2e}  (cell size {cell:.2e})")

    arcs = fit_arcs(loops[0].points[::4]) if loops else []
    mesh = contour_mesh(loops)
    print(f"Arcs fitted on first contour: {len(arcs)}")
    print(f"Fill mesh: {len(mesh.vertices)} vertices, {len(mesh.indices)} triangles")

    ok = float(v1[0]) < 0 and np.array_equal(v1, v2) and bool(loops) and worst < cell
    print("\n" + ("PASSED PASSED" if ok else "FAILED FAILED"))

    _render_png(node, loops, _OUT, "Triangle minus bar")


if __name__ == "__main__":
    main()
