"""Exception hierarchy for sdfcompose.

Parameter and configuration problems are handled by degrading (logging and
substituting a neutral value); the exceptions below are reserved for
structural failures the caller has to see.
"""

from __future__ import annotations

__all__ = [
    "SDFComposeError",
    "SingularTransformError",
    "TransformStackError",
    "DependencyCycleError",
    "ExtractionError",
]


class SDFComposeError(Exception):
    """Base class for every error raised by sdfcompose."""


class SingularTransformError(SDFComposeError, ValueError):
    """Raised when inverting an affine transform whose determinant is ~0."""


class TransformStackError(SDFComposeError, IndexError):
    """Raised on an out-of-range pop/restore of a :class:`TransformStack`."""


class DependencyCycleError(SDFComposeError):
    """Raised when a composite would (directly or indirectly) contain itself."""

    def __init__(self, node_id: object, message: str | None = None) -> None:
        self.node_id = node_id
        super().__init__(message or f"dependency cycle through node {node_id!r}")


class ExtractionError(SDFComposeError, ValueError):
    """Raised when extraction input is structurally unusable (e.g. < 3 points)."""
