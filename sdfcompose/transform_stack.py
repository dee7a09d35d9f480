"""Cumulative affine transform stack with undo/redo-style cursor."""

from __future__ import annotations

from typing import Any, List

import numpy as np
import numpy.typing as npt

from . import affine
from .affine import Affine
from .errors import TransformStackError

_F = npt.NDArray[np.floating]

__all__ = ["TransformStack"]


class TransformStack:
    """A list of cumulative transforms plus a cursor.

    ``stack[0]`` is always the identity.  :meth:`push` composes a transform
    onto the entry under the cursor and discards anything above it (the
    same branch semantics as an undo history).  :meth:`pop`,
    :meth:`save`/:meth:`restore` and :meth:`reset` only move the cursor.
    """

    def __init__(self) -> None:
        self._stack: List[Affine] = [affine.identity()]
        self._current = 0

    def __len__(self) -> int:
        return len(self._stack)

    @property
    def index(self) -> int:
        return self._current

    def get(self) -> Affine:
        """The cumulative transform under the cursor."""
        return self._stack[self._current]

    def push(self, transform: Affine) -> "TransformStack":
        combined = affine.compose(transform, self._stack[self._current])
        del self._stack[self._current + 1:]
        self._stack.append(combined)
        self._current += 1
        return self

    def pop(self) -> "TransformStack":
        if self._current <= 0:
            raise TransformStackError("cannot pop beyond the bottom of the transform stack")
        self._current -= 1
        return self

    def reset(self) -> "TransformStack":
        self._current = 0
        return self

    def save(self) -> int:
        return self._current

    def restore(self, position: int) -> "TransformStack":
        if not 0 <= position < len(self._stack):
            raise TransformStackError(f"invalid stack position {position}")
        self._current = position
        return self

    def apply_to_point(self, p: Any) -> _F:
        return affine.apply_to_point(self.get(), p)

    def apply_to_primitive(self, primitive: Any) -> Any:
        """Transform *primitive* in place by the current transform and return it."""
        primitive.transform(self.get())
        return primitive
