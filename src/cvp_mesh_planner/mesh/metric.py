"""
Weight-induced planar metric of a single face.

Edge weights need not equal edge lengths. Each face is therefore mapped onto
the flat triangle whose side lengths are its three weights; barycentric
coordinates carry surface points over. With geometric weights the metric
triangle is congruent to the face and every length below is Euclidean.
"""
from __future__ import annotations

import math

import numpy as np

from ..trace.geometry import barycentric


def metric_triangle(w01: float, w12: float, w20: float) -> np.ndarray:
    """
    Planar coordinates (3, 2) of a triangle with side lengths
    |Q0 Q1| = w01, |Q1 Q2| = w12, |Q2 Q0| = w20.

    Weights violating the triangle inequality collapse the apex onto the
    base line.
    """
    Q = np.zeros((3, 2), dtype=np.float64)
    if w01 <= 0.0:
        Q[2, 0] = w20
        return Q
    px = (w20 * w20 + w01 * w01 - w12 * w12) / (2.0 * w01)
    h_sq = w20 * w20 - px * px
    Q[1, 0] = w01
    Q[2, 0] = px
    Q[2, 1] = math.sqrt(h_sq) if h_sq > 0.0 else 0.0
    return Q


def face_metric(mesh, face: int) -> np.ndarray:
    a, b, c = mesh.vertices_of_face(face)
    return metric_triangle(mesh.edge_weight(a, b), mesh.edge_weight(b, c), mesh.edge_weight(c, a))


def face_corners(mesh, face: int) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    a, b, c = mesh.vertices_of_face(face)
    return (
        np.ascontiguousarray(mesh.position(a), dtype=np.float64),
        np.ascontiguousarray(mesh.position(b), dtype=np.float64),
        np.ascontiguousarray(mesh.position(c), dtype=np.float64),
    )


def metric_length(mesh, face: int, p, q, Q: np.ndarray | None = None) -> float:
    """Length of segment p -> q measured in the metric triangle of ``face``."""
    if Q is None:
        Q = face_metric(mesh, face)
    a, b, c = face_corners(mesh, face)
    lp = barycentric(np.ascontiguousarray(p, dtype=np.float64), a, b, c)
    lq = barycentric(np.ascontiguousarray(q, dtype=np.float64), a, b, c)
    d = (lq - lp) @ Q
    return float(math.hypot(d[0], d[1]))


def metric_distance_to_corner(mesh, face: int, p, corner: int, Q: np.ndarray | None = None) -> float:
    """Metric distance from surface point ``p`` to the face's ``corner``-th vertex (0, 1, 2)."""
    if Q is None:
        Q = face_metric(mesh, face)
    a, b, c = face_corners(mesh, face)
    lp = barycentric(np.ascontiguousarray(p, dtype=np.float64), a, b, c)
    d = lp @ Q - Q[corner]
    return float(math.hypot(d[0], d[1]))
