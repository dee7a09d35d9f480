"""Distance-mapping pipeline.

A *distance mapper* is a pure function ``f(d, t=0.0, depth=0) -> d'`` that
reshapes a raw signed distance *d*, optionally varying with time *t* and
recursion *depth*.  Every mapper here is element-wise, so *d* may be a
scalar or an array of any shape.

Base mappers
------------
:data:`identity`, :func:`polynomial`, :func:`exponential`,
:func:`logarithmic`, :func:`sinusoidal`, :func:`power` and the easing
curves in :data:`EASING`.

Combinators
-----------
:func:`composite`, :func:`periodic`, :func:`temporal`, :func:`recursive`,
:func:`sequential`, :func:`blended`.  All of them terminate: recursion and
periodicity take explicit bounds.

Dispatch
--------
:func:`create_mapping` builds a mapper from a type name and options and
never raises; :class:`MapperRegistry` resolves mappers by name for one
context; there is no module-level registry instance.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Callable, Dict, Iterable, Sequence, Union

import numpy as np

logger = logging.getLogger(__name__)

DistanceMapper = Callable[..., Any]
Combiner = Callable[..., Any]

__all__ = [
    "DistanceMapper",
    "identity", "polynomial", "exponential", "logarithmic", "sinusoidal", "power",
    "EASING", "COMBINERS",
    "composite", "periodic", "temporal", "recursive", "sequential", "blended",
    "create_mapping", "MapperRegistry", "default_registry",
]


# ===========================================================================
# Base mappers
# ===========================================================================

def identity(d, t: float = 0.0, depth: int = 0):
    """Return *d* unchanged."""
    return d


def polynomial(coeffs: Sequence[float]) -> DistanceMapper:
    """``f(d) = c0 + c1*d + c2*d**2 + ...`` evaluated with Horner's rule."""
    coeffs = tuple(float(c) for c in coeffs)

    def _mapper(d, t: float = 0.0, depth: int = 0):
        d = np.asarray(d, dtype=float)
        acc = np.zeros_like(d)
        for c in reversed(coeffs):
            acc = acc * d + c
        return acc

    return _mapper


def exponential(a: float = 1.0, b: float = 1.0, c: float = 0.0) -> DistanceMapper:
    """``f(d) = a * exp(b*d) + c``."""
    def _mapper(d, t: float = 0.0, depth: int = 0):
        return a * np.exp(b * np.asarray(d, dtype=float)) + c

    return _mapper


def logarithmic(a: float = 1.0, b: float = 1.0, c: float = 1.0, e: float = 0.0) -> DistanceMapper:
    """``f(d) = a * ln(b*d + c) + e``; a non-positive argument yields *e*."""
    def _mapper(d, t: float = 0.0, depth: int = 0):
        arg = b * np.asarray(d, dtype=float) + c
        ok = arg > 0
        return np.where(ok, a * np.log(np.where(ok, arg, 1.0)) + e, e)

    return _mapper


def sinusoidal(a: float = 1.0, b: float = 1.0, c: float = 0.0, e: float = 0.0) -> DistanceMapper:
    """``f(d) = a * sin(b*d + c) + e``."""
    def _mapper(d, t: float = 0.0, depth: int = 0):
        return a * np.sin(b * np.asarray(d, dtype=float) + c) + e

    return _mapper


def power(a: float = 1.0, b: float = 2.0, c: float = 0.0) -> DistanceMapper:
    """``f(d) = a * d**b + c``."""
    def _mapper(d, t: float = 0.0, depth: int = 0):
        return a * np.power(np.asarray(d, dtype=float), b) + c

    return _mapper


# ---------------------------------------------------------------------------
# Easing curves (defined on [0, 1], extended naturally outside it)
# ---------------------------------------------------------------------------

_C4 = (2.0 * math.pi) / 3.0


def ease_in_quad(d, t: float = 0.0, depth: int = 0):
    d = np.asarray(d, dtype=float)
    return d * d


def ease_out_quad(d, t: float = 0.0, depth: int = 0):
    d = np.asarray(d, dtype=float)
    return d * (2.0 - d)


def ease_in_out_quad(d, t: float = 0.0, depth: int = 0):
    d = np.asarray(d, dtype=float)
    return np.where(d < 0.5, 2.0 * d * d, -1.0 + (4.0 - 2.0 * d) * d)


def ease_in_cubic(d, t: float = 0.0, depth: int = 0):
    d = np.asarray(d, dtype=float)
    return d * d * d


def ease_out_cubic(d, t: float = 0.0, depth: int = 0):
    d = np.asarray(d, dtype=float) - 1.0
    return d * d * d + 1.0


def ease_in_out_cubic(d, t: float = 0.0, depth: int = 0):
    d = np.asarray(d, dtype=float)
    return np.where(d < 0.5, 4.0 * d ** 3, (d - 1.0) * (2.0 * d - 2.0) ** 2 + 1.0)


def ease_in_elastic(d, t: float = 0.0, depth: int = 0):
    d = np.asarray(d, dtype=float)
    curve = -np.power(2.0, 10.0 * d - 10.0) * np.sin((d * 10.0 - 10.75) * _C4)
    return np.where(d == 0.0, 0.0, np.where(d == 1.0, 1.0, curve))


def ease_out_elastic(d, t: float = 0.0, depth: int = 0):
    d = np.asarray(d, dtype=float)
    curve = np.power(2.0, -10.0 * d) * np.sin((d * 10.0 - 0.75) * _C4) + 1.0
    return np.where(d == 0.0, 0.0, np.where(d == 1.0, 1.0, curve))


def ease_out_bounce(d, t: float = 0.0, depth: int = 0):
    d = np.asarray(d, dtype=float)
    n1, d1 = 7.5625, 2.75
    return np.select(
        [d < 1.0 / d1, d < 2.0 / d1, d < 2.5 / d1],
        [
            n1 * d * d,
            n1 * (d - 1.5 / d1) ** 2 + 0.75,
            n1 * (d - 2.25 / d1) ** 2 + 0.9375,
        ],
        default=n1 * (d - 2.625 / d1) ** 2 + 0.984375,
    )


EASING: Dict[str, DistanceMapper] = {
    "ease_in_quad": ease_in_quad,
    "ease_out_quad": ease_out_quad,
    "ease_in_out_quad": ease_in_out_quad,
    "ease_in_cubic": ease_in_cubic,
    "ease_out_cubic": ease_out_cubic,
    "ease_in_out_cubic": ease_in_out_cubic,
    "ease_in_elastic": ease_in_elastic,
    "ease_out_elastic": ease_out_elastic,
    "ease_out_bounce": ease_out_bounce,
}


# ===========================================================================
# Combiners
# ===========================================================================

def _smooth_min(a, b, k: float = 1.0):
    h = np.maximum(k - np.abs(a - b), 0.0) / k
    return np.minimum(a, b) - h ** 3 * k / 6.0


COMBINERS: Dict[str, Combiner] = {
    "add": lambda a, b, t=0.0: a + b,
    "subtract": lambda a, b, t=0.0: a - b,
    "multiply": lambda a, b, t=0.0: a * b,
    "divide": lambda a, b, t=0.0: np.where(b != 0, a / np.where(b != 0, b, 1.0), a),
    "min": lambda a, b, t=0.0: np.minimum(a, b),
    "max": lambda a, b, t=0.0: np.maximum(a, b),
    "average": lambda a, b, t=0.0: (a + b) / 2.0,
    "smooth_min": lambda a, b, t=0.0: _smooth_min(a, b),
    "lerp": lambda a, b, t=0.0: (1.0 - t) * a + t * b,
}


# ===========================================================================
# Combinators
# ===========================================================================

def composite(mapper_a: DistanceMapper, mapper_b: DistanceMapper,
              combiner: Union[Combiner, str] = "add") -> DistanceMapper:
    """Feed *d* through both mappers and merge the results with *combiner*.

    *combiner* is called as ``combiner(a, b, t)`` or named from :data:`COMBINERS`.
    """
    if isinstance(combiner, str):
        combine = COMBINERS.get(combiner)
        if combine is None:
            logger.warning("Unknown combiner %r; using 'add'", combiner)
            combine = COMBINERS["add"]
    else:
        combine = combiner

    def _mapper(d, t: float = 0.0, depth: int = 0):
        return combine(mapper_a(d, t, depth), mapper_b(d, t, depth), t)

    return _mapper


def periodic(base: DistanceMapper, period: float = 1.0) -> DistanceMapper:
    """Apply *base* to ``d mod period`` (truncated remainder, sign of *d*)."""
    def _mapper(d, t: float = 0.0, depth: int = 0):
        return base(np.fmod(np.asarray(d, dtype=float), period), t, depth)

    return _mapper


def temporal(base: DistanceMapper, frequency: float = 1.0, amplitude: float = 1.0) -> DistanceMapper:
    """Scale *base* by ``1 + amplitude * sin(2*pi*frequency*t)``."""
    def _mapper(d, t: float = 0.0, depth: int = 0):
        factor = 1.0 + amplitude * math.sin(2.0 * math.pi * frequency * t)
        return base(d, t, depth) * factor

    return _mapper


def recursive(base: DistanceMapper, iterations: int = 2, strength: float = 0.5) -> DistanceMapper:
    """Iterate ``r = strength*base(r) + (1-strength)*r`` exactly *iterations* times."""
    iterations = max(int(iterations), 0)

    def _mapper(d, t: float = 0.0, depth: int = 0):
        result = d
        for _ in range(iterations):
            result = strength * base(result, t, depth + 1) + (1.0 - strength) * result
        return result

    return _mapper


def sequential(mappers: Sequence[DistanceMapper], frequency: float = 1.0) -> DistanceMapper:
    """Cycle through *mappers*, switching every ``1/frequency`` time units."""
    mappers = tuple(mappers)
    if not mappers:
        raise ValueError("sequential() needs at least one mapper")

    def _mapper(d, t: float = 0.0, depth: int = 0):
        index = int(math.floor(t * frequency)) % len(mappers)
        return mappers[index](d, t, depth)

    return _mapper


def blended(mapper_a: DistanceMapper, mapper_b: DistanceMapper,
            factor: Union[float, Callable[[float], float]] = 0.5) -> DistanceMapper:
    """Linear interpolation between two mappers.

    *factor* is either a constant or a function of time.
    """
    def _mapper(d, t: float = 0.0, depth: int = 0):
        w = factor(t) if callable(factor) else factor
        return (1.0 - w) * mapper_a(d, t, depth) + w * mapper_b(d, t, depth)

    return _mapper


# ===========================================================================
# Factory
# ===========================================================================

def create_mapping(mapping_type: str, **options: Any) -> DistanceMapper:
    """Build a mapper from its type name.

    Recognised types: ``identity``, ``polynomial``, ``exponential``,
    ``logarithmic``, ``sinusoidal``, ``power``, ``composite``, ``periodic``,
    ``temporal``, ``recursive``, ``sequential``, ``blended`` and every name
    in :data:`EASING`.

    Options (all optional): ``base_mapper``, ``base_mappers``,
    ``blend_factor`` (0.5), ``frequency`` (1), ``amplitude`` (0.5),
    ``iterations`` (2), ``strength`` (0.5), ``poly_coeffs`` ((0, 1, 0)),
    ``a`` (1), ``b`` (1), ``c`` (0), ``e`` (0), ``period`` (1),
    ``combiner`` ("add").

    An unknown type, a combinator missing its sub-mappers, or an option
    value the constructor rejects logs a warning and returns
    :func:`identity`.  This function never raises.
    """
    try:
        return _build_mapping(mapping_type, options)
    except (TypeError, ValueError) as exc:
        logger.warning("Invalid options for %r mapping (%s); using identity", mapping_type, exc)
        return identity


def _build_mapping(mapping_type: str, options: Dict[str, Any]) -> DistanceMapper:
    base_mapper = options.get("base_mapper")
    base_mappers = list(options.get("base_mappers") or [])
    a = options.get("a", 1.0)
    b = options.get("b", 1.0)
    c = options.get("c", 0.0)
    e = options.get("e", 0.0)

    kind = str(mapping_type).strip().lower()

    if kind == "identity":
        return identity
    if kind == "polynomial":
        return polynomial(options.get("poly_coeffs", (0.0, 1.0, 0.0)))
    if kind == "exponential":
        return exponential(a, b, c)
    if kind == "logarithmic":
        return logarithmic(a, b, c, e)
    if kind == "sinusoidal":
        return sinusoidal(a, b, c, e)
    if kind == "power":
        return power(a, b, c)
    if kind in EASING:
        return EASING[kind]

    if kind in ("composite", "blended"):
        if len(base_mappers) < 2 or base_mappers[0] is None or base_mappers[1] is None:
            logger.warning("Missing mappers for %s mapping; using identity", kind)
            return identity
        if kind == "composite":
            return composite(base_mappers[0], base_mappers[1], options.get("combiner", "add"))
        return blended(base_mappers[0], base_mappers[1], options.get("blend_factor", 0.5))

    if kind in ("periodic", "temporal", "recursive"):
        if base_mapper is None:
            logger.warning("Missing base mapper for %s mapping; using identity", kind)
            return identity
        if kind == "periodic":
            return periodic(base_mapper, options.get("period", 1.0))
        if kind == "temporal":
            return temporal(base_mapper, options.get("frequency", 1.0), options.get("amplitude", 0.5))
        return recursive(base_mapper, options.get("iterations", 2), options.get("strength", 0.5))

    if kind == "sequential":
        mappers = [m for m in base_mappers if m is not None]
        if not mappers:
            logger.warning("No mappers provided for sequential mapping; using identity")
            return identity
        return sequential(mappers, options.get("frequency", 1.0))

    logger.warning("Unknown mapping type %r; using identity", mapping_type)
    return identity


# ===========================================================================
# Registry
# ===========================================================================

class MapperRegistry:
    """Name → mapper lookup owned by one context (store, scene, session).

    Plain mappers are returned as-is; factories are called with the keyword
    parameters passed to :meth:`get`.
    """

    def __init__(self) -> None:
        self._mappers: Dict[str, DistanceMapper] = {}
        self._factories: Dict[str, Callable[..., DistanceMapper]] = {}

    def register(self, name: str, mapper: DistanceMapper) -> None:
        self._mappers[name] = mapper

    def register_factory(self, name: str, factory: Callable[..., DistanceMapper]) -> None:
        self._factories[name] = factory

    def names(self) -> Iterable[str]:
        return sorted(set(self._mappers) | set(self._factories))

    def __contains__(self, name: object) -> bool:
        return name in self._mappers or name in self._factories

    def get(self, name: str, **params: Any) -> DistanceMapper:
        """Resolve *name*; unknown names log a warning and give :func:`identity`."""
        factory = self._factories.get(name)
        if factory is not None and (params or name not in self._mappers):
            try:
                return factory(**params)
            except TypeError:
                logger.warning("Bad parameters %r for mapper %r; using identity", params, name)
                return identity
        mapper = self._mappers.get(name)
        if mapper is None:
            logger.warning("Mapper %r not found; using identity", name)
            return identity
        return mapper


def default_registry() -> MapperRegistry:
    """Return a fresh registry populated with every built-in mapper."""
    registry = MapperRegistry()
    registry.register("identity", identity)
    registry.register("polynomial", polynomial((0.0, 1.0, 0.0)))
    registry.register("exponential", exponential())
    registry.register("logarithmic", logarithmic())
    registry.register("sinusoidal", sinusoidal())
    registry.register("power", power())
    for name, curve in EASING.items():
        registry.register(name, curve)

    registry.register_factory("polynomial", lambda coeffs=(0.0, 1.0, 0.0): polynomial(coeffs))
    registry.register_factory("exponential", exponential)
    registry.register_factory("logarithmic", logarithmic)
    registry.register_factory("sinusoidal", sinusoidal)
    registry.register_factory("power", power)
    registry.register_factory("create", lambda mapping_type="identity", **opts: create_mapping(mapping_type, **opts))
    return registry
