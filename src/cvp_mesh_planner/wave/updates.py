"""
Triangle relaxation rules for the wavefront solver.

Every rule answers the same question: given two settled vertices v1, v2 with
potentials u1, u2 and a third vertex v3 of the same triangle, what is the best
potential for v3? Edge weights are named after the opposite vertex:

    c = w(v1, v2)    b = w(v1, v3)    a = w(v2, v3)

The triangle is unfolded into a plane with v1 at the origin, v2 at (c, 0) and
v3 above the x axis. The virtual source S (the point at distance u1 from v1
and u2 from v2) lies below it. If the segment S -> v3 crosses the edge v1 v2
the wavefront "cuts" the triangle and |S v3| is a valid, possibly shorter,
potential for v3. Otherwise the rules fall back to plain edge relaxation.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable

from ..planner.types import InvalidInputError

EPS = 1e-12


@dataclass(slots=True)
class TriangleUpdate:
    potential: float
    predecessor: int
    # unsigned angle at v3 between v3 -> predecessor and v3 -> source
    angle: float = 0.0
    cut: bool = False


RelaxFn = Callable[[float, float, float, float, float, int, int], TriangleUpdate]


def edge_update(u1: float, u2: float, a: float, b: float, v1: int, v2: int) -> TriangleUpdate:
    d1 = u1 + b
    d2 = u2 + a
    if d2 < d1 or (d2 == d1 and v2 < v1):
        return TriangleUpdate(d2, v2)
    return TriangleUpdate(d1, v1)


def _angle(x: float, y: float, opposite: float) -> float:
    """Angle between sides x and y of a triangle whose third side is ``opposite``."""
    cos_t = (x * x + y * y - opposite * opposite) / (2.0 * x * y)
    return math.acos(min(1.0, max(-1.0, cos_t)))


def _degenerate(u1, u2, a, b, c) -> bool:
    return c <= EPS or a <= EPS or b <= EPS or u1 <= EPS or u2 <= EPS


def _unfold(u1, u2, a, b, c):
    """Planar coordinates (sx, sy, px, py) of the source and of v3, or None."""
    sx = (c * c + u1 * u1 - u2 * u2) / (2.0 * c)
    sy_sq = u1 * u1 - sx * sx
    px = (b * b + c * c - a * a) / (2.0 * c)
    py_sq = b * b - px * px
    if sy_sq < 0.0 or py_sq <= 0.0:
        return None
    return sx, -math.sqrt(sy_sq), px, math.sqrt(py_sq)


def _cut_update(u1, u2, a, b, u3, v1, v2) -> TriangleUpdate:
    # Hang the direction on whichever edge lies closer to the source ray.
    phi1 = _angle(b, u3, u1)
    phi2 = _angle(a, u3, u2)
    if phi2 < phi1 or (phi2 == phi1 and v2 < v1):
        return TriangleUpdate(u3, v2, phi2, True)
    return TriangleUpdate(u3, v1, phi1, True)


# ----------------------------- Rules -------------------------------------
def edge_sum_update(u1, u2, a, b, c, v1, v2) -> TriangleUpdate:
    """Plain two-edge comparison; equivalent to Dijkstra on the edge graph."""
    return edge_update(u1, u2, a, b, v1, v2)


def hesse_update(u1, u2, a, b, c, v1, v2) -> TriangleUpdate:
    """Cut test via the Hesse normal form of the line through S and v3."""
    if _degenerate(u1, u2, a, b, c):
        return edge_update(u1, u2, a, b, v1, v2)
    frame = _unfold(u1, u2, a, b, c)
    if frame is None:
        return edge_update(u1, u2, a, b, v1, v2)
    sx, sy, px, py = frame

    dx = px - sx
    dy = py - sy
    u3 = math.hypot(dx, dy)
    if u3 <= EPS:
        return edge_update(u1, u2, a, b, v1, v2)

    # n . x = d with unit normal n; signed distances of v1 = (0, 0) and v2 = (c, 0)
    nx = -dy / u3
    ny = dx / u3
    d = nx * sx + ny * sy
    s1 = -d
    s2 = nx * c - d
    if s1 * s2 > 0.0 or u3 < max(u1, u2):
        return edge_update(u1, u2, a, b, v1, v2)
    return _cut_update(u1, u2, a, b, u3, v1, v2)


def law_of_cosines_update(u1, u2, a, b, c, v1, v2) -> TriangleUpdate:
    """Fast Marching update: convexity test on S v1 v3 v2, law of cosines for |S v3|."""
    if _degenerate(u1, u2, a, b, c):
        return edge_update(u1, u2, a, b, v1, v2)

    alpha = _angle(b, c, a)      # at v1, between v1 v3 and v1 v2
    beta = _angle(a, c, b)       # at v2, between v2 v3 and v2 v1
    theta1 = _angle(u1, c, u2)   # at v1, between v1 S and v1 v2
    theta2 = _angle(u2, c, u1)   # at v2, between v2 S and v2 v1
    if alpha + theta1 >= math.pi or beta + theta2 >= math.pi:
        return edge_update(u1, u2, a, b, v1, v2)

    u3_sq = b * b + u1 * u1 - 2.0 * b * u1 * math.cos(alpha + theta1)
    u3 = math.sqrt(u3_sq) if u3_sq > 0.0 else 0.0
    if u3 < max(u1, u2):
        return edge_update(u1, u2, a, b, v1, v2)
    return _cut_update(u1, u2, a, b, u3, v1, v2)


UPDATE_RULES: dict[str, RelaxFn] = {
    "edge_sum": edge_sum_update,
    "hesse": hesse_update,
    "law_of_cosines": law_of_cosines_update,
}


def get_update_rule(name: str) -> RelaxFn:
    try:
        return UPDATE_RULES[name]
    except KeyError:
        raise InvalidInputError(
            f"unknown update rule '{name}', expected one of {sorted(UPDATE_RULES)}"
        ) from None
