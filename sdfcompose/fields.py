"""Scalar-field adapters.

A scalar field is anything that maps a ``(..., 2)`` point array (or
``(..., 3)`` for volumes) to a ``(...)`` array of signed distances: either
a plain callable or a primitive exposing ``compute_sdf``.
"""

from __future__ import annotations

from typing import Any, Callable, MutableSet, Optional

import numpy as np
import numpy.typing as npt

_F = npt.NDArray[np.floating]
ScalarField = Callable[[_F], _F]

__all__ = ["ScalarField", "evaluate", "as_field"]


def evaluate(
    obj: Any,
    p: _F,
    call_stack: Optional[MutableSet[Any]] = None,
    time: float = 0.0,
    depth: int = 0,
) -> _F:
    """Evaluate *obj* at *p*, threading the recursion context when supported."""
    compute = getattr(obj, "compute_sdf", None)
    if compute is not None:
        return np.asarray(compute(p, call_stack, time, depth), dtype=float)
    return np.asarray(obj(p), dtype=float)


def as_field(obj: Any, time: float = 0.0) -> ScalarField:
    """Return a plain ``p -> distances`` callable for *obj*.

    Primitives are evaluated with a fresh call stack per query.
    """
    if getattr(obj, "compute_sdf", None) is None:
        if not callable(obj):
            raise TypeError(f"{type(obj).__name__} is neither a scalar field nor a primitive")
        return lambda p: np.asarray(obj(p), dtype=float)
    return lambda p: evaluate(obj, p, None, time, 0)
