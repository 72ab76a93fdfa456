from __future__ import annotations

import logging

import numpy as np

from ..trace.geometry import project_to_plane, rotate_about_axis

LOG = logging.getLogger(__name__)


def normalize(v: np.ndarray, eps: float = 1e-12) -> np.ndarray:
    n = float(np.linalg.norm(v))
    if n <= eps:
        return np.zeros(3, dtype=np.float64)
    return v / n


class VectorFieldBuilder:
    """
    Turn the solver's predecessor/cutting-face/angle maps into unit tangent
    vectors pointing toward decreasing potential.
    """

    def __init__(self, mesh):
        self.mesh = mesh

    def build(self, potential, predecessor, cutting_face, angle, settled=None) -> np.ndarray:
        """Unit vectors per vertex; zero for seeds and, when ``settled`` is given, for unsettled vertices."""
        mesh = self.mesh
        n = mesh.vertex_count()
        field = np.zeros((n, 3), dtype=np.float64)

        for v in range(n):
            p = int(predecessor[v])
            f = int(cutting_face[v])
            if p < 0 or f < 0 or not np.isfinite(potential[v]):
                continue
            if settled is not None and not settled[v]:
                continue
            normal = np.ascontiguousarray(mesh.face_normal(f), dtype=np.float64)
            edge = np.ascontiguousarray(mesh.position(p) - mesh.position(v), dtype=np.float64)
            edge = project_to_plane(edge, normal)
            if float(np.linalg.norm(edge)) <= 1e-12:
                continue
            if angle[v] != 0.0:
                edge = rotate_about_axis(edge, normal, float(angle[v]))
            field[v] = normalize(edge)

        LOG.debug("Vector field: %d of %d vertices carry a direction.", int(np.count_nonzero(field.any(axis=1))), n)
        return field

    def direction_at(self, vector_field: np.ndarray, face: int, bary) -> np.ndarray:
        """Blend the face's vertex vectors at ``bary`` and project into the face plane."""
        corners = self.mesh.vertices_of_face(face)
        blend = np.asarray(bary, dtype=np.float64) @ vector_field[list(corners)]
        normal = np.ascontiguousarray(self.mesh.face_normal(face), dtype=np.float64)
        return normalize(project_to_plane(np.ascontiguousarray(blend), normal))

    def face_vectors(self, vector_field: np.ndarray) -> np.ndarray:
        """Direction at every face centroid, zero where the blend vanishes."""
        m = self.mesh.face_count()
        out = np.zeros((m, 3), dtype=np.float64)
        third = np.full(3, 1.0 / 3.0)
        for f in range(m):
            out[f] = self.direction_at(vector_field, f, third)
        return out
