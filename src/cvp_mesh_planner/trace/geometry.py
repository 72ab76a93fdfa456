from __future__ import annotations

import numpy as np
from numba import njit


@njit(cache=True, fastmath=True)
def _dot3(a, b) -> float:
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


@njit(cache=True, fastmath=True)
def barycentric(p, v0, v1, v2):
    """
    Barycentric coordinates of ``p`` projected onto the plane of (v0, v1, v2).

    Coordinates outside [0, 1] mean the projection lies outside the
    triangle. A degenerate triangle maps everything onto ``v0``.
    """
    e0 = v1 - v0
    e1 = v2 - v0
    ep = p - v0
    d00 = _dot3(e0, e0)
    d01 = _dot3(e0, e1)
    d11 = _dot3(e1, e1)
    d20 = _dot3(ep, e0)
    d21 = _dot3(ep, e1)
    denom = d00 * d11 - d01 * d01

    out = np.empty(3, dtype=np.float64)
    if abs(denom) <= 1e-300:
        out[0] = 1.0
        out[1] = 0.0
        out[2] = 0.0
        return out
    b1 = (d11 * d20 - d01 * d21) / denom
    b2 = (d00 * d21 - d01 * d20) / denom
    out[0] = 1.0 - b1 - b2
    out[1] = b1
    out[2] = b2
    return out


@njit(cache=True, fastmath=True)
def closest_point_on_triangle(x, v0, v1, v2):
    # Closest point to x on triangle (v0,v1,v2)
    # (Christer Ericson, "Real-Time Collision Detection", robust form)
    ab = v1 - v0
    ac = v2 - v0
    ap = x - v0
    d1 = _dot3(ab, ap)
    d2 = _dot3(ac, ap)
    if d1 <= 0.0 and d2 <= 0.0:
        return v0.copy()

    bp = x - v1
    d3 = _dot3(ab, bp)
    d4 = _dot3(ac, bp)
    if d3 >= 0.0 and d4 <= d3:
        return v1.copy()

    vc = d1 * d4 - d3 * d2
    if vc <= 0.0 and d1 >= 0.0 and d3 <= 0.0:
        v = d1 / (d1 - d3)
        return v0 + v * ab

    cp = x - v2
    d5 = _dot3(ab, cp)
    d6 = _dot3(ac, cp)
    if d6 >= 0.0 and d5 <= d6:
        return v2.copy()

    vb = d5 * d2 - d1 * d6
    if vb <= 0.0 and d2 >= 0.0 and d6 <= 0.0:
        w = d2 / (d2 - d6)
        return v0 + w * ac

    va = d3 * d6 - d5 * d4
    if va <= 0.0 and (d4 - d3) >= 0.0 and (d5 - d6) >= 0.0:
        w = (d4 - d3) / ((d4 - d3) + (d5 - d6))
        return v1 + w * (v2 - v1)

    # Inside face region
    denom = 1.0 / (va + vb + vc)
    v = vb * denom
    w = vc * denom
    u = 1.0 - v - w
    return u * v0 + v * v1 + w * v2


@njit(cache=True, fastmath=True)
def rotate_about_axis(vec, axis, angle):
    """Rodrigues rotation of ``vec`` about the unit vector ``axis``."""
    c = np.cos(angle)
    s = np.sin(angle)
    k_dot_v = _dot3(axis, vec)
    out = np.empty(3, dtype=np.float64)
    out[0] = vec[0] * c + (axis[1] * vec[2] - axis[2] * vec[1]) * s + axis[0] * k_dot_v * (1.0 - c)
    out[1] = vec[1] * c + (axis[2] * vec[0] - axis[0] * vec[2]) * s + axis[1] * k_dot_v * (1.0 - c)
    out[2] = vec[2] * c + (axis[0] * vec[1] - axis[1] * vec[0]) * s + axis[2] * k_dot_v * (1.0 - c)
    return out


@njit(cache=True, fastmath=True)
def project_to_plane(vec, normal):
    return vec - _dot3(vec, normal) * normal
