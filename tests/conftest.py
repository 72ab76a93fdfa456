import math

import numpy as np
import pytest

from cvp_mesh_planner.mesh.model import TriangleMesh
from cvp_mesh_planner.planner.types import CancellationToken


def grid_arrays(n=4, spacing=1.0, height=None):
    """
    (n x n) vertex grid in the z=0 plane, vertex (i, j) at index j * n + i.
    Each cell is split along the diagonal (i, j) -> (i + 1, j + 1).
    """
    verts = []
    for j in range(n):
        for i in range(n):
            x, y = i * spacing, j * spacing
            z = 0.0 if height is None else float(height(x, y))
            verts.append((x, y, z))
    faces = []
    for j in range(n - 1):
        for i in range(n - 1):
            a = j * n + i
            b = a + 1
            c = a + n + 1
            d = a + n
            faces.append((a, b, c))
            faces.append((a, c, d))
    return np.asarray(verts, dtype=float), np.asarray(faces, dtype=np.int64)


def vid(i, j, n=4):
    return j * n + i


class CountingToken(CancellationToken):
    """Reports cancellation after ``after`` polls."""

    def __init__(self, after):
        super().__init__()
        self.after = after
        self.reads = 0

    @property
    def cancelled(self):
        self.reads += 1
        return self.reads > self.after


@pytest.fixture
def grid():
    V, F = grid_arrays(4)
    return TriangleMesh(V, F)


@pytest.fixture
def triangle():
    V = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.5, math.sqrt(3.0) / 2.0, 0.0]])
    F = np.array([[0, 1, 2]])
    return TriangleMesh(V, F)


@pytest.fixture
def noisy_surface():
    rng = np.random.default_rng(0)
    V, F = grid_arrays(7, spacing=0.5, height=lambda x, y: 0.15 * math.sin(x) * math.cos(y))
    V[:, 2] += rng.normal(scale=0.02, size=len(V))
    costs = rng.uniform(0.0, 0.5, size=len(V))
    return TriangleMesh(V, F, vertex_costs=costs, cost_weight=0.5)
