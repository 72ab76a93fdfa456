from __future__ import annotations

import logging
from typing import Mapping, Protocol, Sequence

import numpy as np
from scipy.spatial import cKDTree

from ..planner.types import InvalidInputError, MeshStructureError
from ..trace.geometry import barycentric, closest_point_on_triangle

LOG = logging.getLogger(__name__)

# Number of nearest face centroids inspected by ``TriangleMesh.locate``.
LOCATE_CANDIDATES = 16


class MeshCostModel(Protocol):
    """Topology, geometry and cost queries the planner consumes."""

    def vertex_count(self) -> int: ...

    def face_count(self) -> int: ...

    def vertices_of_face(self, face: int) -> tuple[int, int, int]: ...

    def faces_of_vertex(self, vertex: int) -> Sequence[int]: ...

    def neighbor_face_across_edge(self, face: int, edge: tuple[int, int]) -> int | None: ...

    def position(self, vertex: int) -> np.ndarray: ...

    def vertex_normal(self, vertex: int) -> np.ndarray: ...

    def face_normal(self, face: int) -> np.ndarray: ...

    def edge_weight(self, a: int, b: int) -> float: ...

    def vertex_cost(self, vertex: int) -> float: ...

    def locate(self, point, max_distance: float) -> tuple[int, np.ndarray] | None: ...


def _edge_key(a: int, b: int) -> tuple[int, int]:
    return (a, b) if a < b else (b, a)


class TriangleMesh:
    """
    In-memory triangle mesh with per-vertex costs and per-edge weights.

    Parameters
    ----------
    vertices     : (n, 3) float  vertex positions
    faces        : (m, 3) int    vertex indices, counter-clockwise w.r.t. the
                                 outward normal
    vertex_costs : (n,) float    optional, defaults to zeros
    edge_weights : optional mapping ``{(a, b): w}`` or an (e,) array aligned
                   with ``self.edges``; overrides the derived weights
    cost_weight  : derived weights are ``length * (1 + cost_weight * mean cost)``
    """

    def __init__(
        self,
        vertices,
        faces,
        vertex_costs=None,
        edge_weights: Mapping[tuple[int, int], float] | np.ndarray | None = None,
        cost_weight: float = 0.0,
    ):
        V = np.ascontiguousarray(vertices, dtype=np.float64)
        F = np.ascontiguousarray(faces, dtype=np.int64)
        if V.ndim != 2 or V.shape[1] != 3:
            raise InvalidInputError(f"vertices must have shape (n, 3), got {V.shape}")
        if F.size == 0:
            F = F.reshape(0, 3)
        if F.ndim != 2 or F.shape[1] != 3:
            raise InvalidInputError(f"faces must have shape (m, 3), got {F.shape}")
        if F.size and (F.min() < 0 or F.max() >= len(V)):
            raise InvalidInputError("faces reference vertex indices outside [0, n)")

        if vertex_costs is None:
            costs = np.zeros(len(V), dtype=np.float64)
        else:
            costs = np.asarray(vertex_costs, dtype=np.float64).reshape(-1)
            if costs.shape != (len(V),):
                raise InvalidInputError(
                    f"vertex_costs must have one entry per vertex, got {costs.shape}"
                )

        self.vertices = V
        self.faces = F
        self.vertex_costs = costs
        self._build_topology()
        self._build_normals()
        self.edge_lengths = np.linalg.norm(V[self.edges[:, 1]] - V[self.edges[:, 0]], axis=1)
        self.edge_weights = self._derive_weights(edge_weights, float(cost_weight))
        self._tree: cKDTree | None = None

    # ------------------------------------------------------------------
    # construction helpers
    # ------------------------------------------------------------------
    def _build_topology(self) -> None:
        F = self.faces
        n_faces = len(F)
        if n_faces:
            raw = np.stack([F[:, [0, 1]], F[:, [1, 2]], F[:, [2, 0]]], axis=1).reshape(-1, 2)
            raw = np.sort(raw, axis=1)
            edges, inverse = np.unique(raw, axis=0, return_inverse=True)
            face_edges = inverse.reshape(n_faces, 3)
        else:
            edges = np.zeros((0, 2), dtype=np.int64)
            face_edges = np.zeros((0, 3), dtype=np.int64)

        self.edges = edges
        self.face_edges = face_edges
        self._edge_index = {(int(a), int(b)): i for i, (a, b) in enumerate(edges)}

        edge_faces: list[list[int]] = [[] for _ in range(len(edges))]
        vertex_faces: list[list[int]] = [[] for _ in range(len(self.vertices))]
        for f, (e0, e1, e2) in enumerate(face_edges):
            for e in (e0, e1, e2):
                edge_faces[e].append(f)
            for v in F[f]:
                vertex_faces[v].append(f)
        self._edge_faces = edge_faces
        self._vertex_faces = [tuple(sorted(set(fs))) for fs in vertex_faces]

    def _build_normals(self) -> None:
        V, F = self.vertices, self.faces
        if len(F) == 0:
            self.face_normals = np.zeros((0, 3))
            self.face_areas = np.zeros(0)
            self.centroids = np.zeros((0, 3))
            self.centroid_reach = 0.0
            self.vertex_normals = np.zeros_like(V)
            return
        cross = np.cross(V[F[:, 1]] - V[F[:, 0]], V[F[:, 2]] - V[F[:, 0]])
        norms = np.linalg.norm(cross, axis=1)
        self.face_areas = 0.5 * norms
        with np.errstate(divide="ignore", invalid="ignore"):
            self.face_normals = np.where(norms[:, None] > 0.0, cross / norms[:, None], 0.0)
        self.centroids = V[F].mean(axis=1)
        # no point of a face lies farther than this from its centroid
        self.centroid_reach = float(np.linalg.norm(V[F] - self.centroids[:, None, :], axis=2).max())

        # Area-weighted pseudo-normal (Meyer 2003): sum of unnormalised cross products.
        acc = np.zeros_like(V)
        for k in range(3):
            np.add.at(acc, F[:, k], cross)
        lengths = np.linalg.norm(acc, axis=1)
        with np.errstate(divide="ignore", invalid="ignore"):
            self.vertex_normals = np.where(lengths[:, None] > 0.0, acc / lengths[:, None], 0.0)

    def _derive_weights(self, edge_weights, cost_weight: float) -> np.ndarray:
        if edge_weights is None:
            mean_cost = 0.5 * (self.vertex_costs[self.edges[:, 0]] + self.vertex_costs[self.edges[:, 1]])
            return self.edge_lengths * (1.0 + cost_weight * mean_cost)

        if isinstance(edge_weights, Mapping):
            weights = self.edge_lengths.copy()
            for (a, b), w in edge_weights.items():
                key = _edge_key(int(a), int(b))
                if key not in self._edge_index:
                    raise InvalidInputError(f"edge weight given for non-existent edge {key}")
                weights[self._edge_index[key]] = float(w)
            return weights

        weights = np.asarray(edge_weights, dtype=np.float64).reshape(-1)
        if weights.shape != (len(self.edges),):
            raise InvalidInputError(
                f"edge_weights must align with mesh edges ({len(self.edges)}), got {weights.shape}"
            )
        return weights.copy()

    # ------------------------------------------------------------------
    # MeshCostModel interface
    # ------------------------------------------------------------------
    def vertex_count(self) -> int:
        return len(self.vertices)

    def face_count(self) -> int:
        return len(self.faces)

    def vertices_of_face(self, face: int) -> tuple[int, int, int]:
        a, b, c = self.faces[face]
        return int(a), int(b), int(c)

    def faces_of_vertex(self, vertex: int) -> tuple[int, ...]:
        return self._vertex_faces[vertex]

    def neighbor_face_across_edge(self, face: int, edge: tuple[int, int]) -> int | None:
        key = _edge_key(int(edge[0]), int(edge[1]))
        idx = self._edge_index.get(key)
        if idx is None or face not in self._edge_faces[idx]:
            raise MeshStructureError(f"face {face} has no edge {key}")
        for other in self._edge_faces[idx]:
            if other != face:
                return other
        return None

    def position(self, vertex: int) -> np.ndarray:
        return self.vertices[vertex]

    def vertex_normal(self, vertex: int) -> np.ndarray:
        return self.vertex_normals[vertex]

    def face_normal(self, face: int) -> np.ndarray:
        return self.face_normals[face]

    def edge_weight(self, a: int, b: int) -> float:
        idx = self._edge_index.get(_edge_key(a, b))
        if idx is None:
            raise MeshStructureError(f"no edge between vertices {a} and {b}")
        return float(self.edge_weights[idx])

    def vertex_cost(self, vertex: int) -> float:
        return float(self.vertex_costs[vertex])

    def locate(self, point, max_distance: float = 0.4) -> tuple[int, np.ndarray] | None:
        """
        Find the face closest to ``point`` and the barycentric coordinates of
        the closest surface point. Returns None when the mesh is empty or the
        surface is farther than ``max_distance``.
        """
        if len(self.faces) == 0:
            return None
        x = np.ascontiguousarray(point, dtype=np.float64).reshape(3)
        if not np.isfinite(x).all():
            return None
        if self._tree is None:
            self._tree = cKDTree(self.centroids)

        k = min(LOCATE_CANDIDATES, len(self.faces))
        dists, idx = self._tree.query(x, k=k)
        candidates = sorted(int(i) for i in np.atleast_1d(idx))
        best_face, best_dist, best_pt = self._closest_of(x, candidates)

        # Faces outside the k nearest centroids are at least
        # (k-th centroid distance - centroid_reach) away.
        if k < len(self.faces) and best_dist > float(np.max(dists)) - self.centroid_reach:
            wider = self._tree.query_ball_point(x, best_dist + self.centroid_reach)
            candidates = sorted(set(candidates).union(int(i) for i in wider))
            best_face, best_dist, best_pt = self._closest_of(x, candidates)

        if best_pt is None or best_dist > max_distance:
            LOG.debug("locate(%s): nearest face %d at %.4g > %.4g", x, best_face, best_dist, max_distance)
            return None
        a, b, c = self.vertices[self.faces[best_face]]
        bary = np.clip(barycentric(best_pt, a, b, c), 0.0, 1.0)
        bary /= bary.sum()
        return best_face, bary

    def _closest_of(self, x: np.ndarray, candidates: Sequence[int]):
        # candidates ascending, so ties keep the lower face index
        best_face, best_dist, best_pt = -1, np.inf, None
        for f in candidates:
            a, b, c = self.vertices[self.faces[f]]
            pt = closest_point_on_triangle(x, a, b, c)
            d = float(np.linalg.norm(pt - x))
            if d < best_dist - 1e-12:
                best_face, best_dist, best_pt = f, d, pt
        return best_face, best_dist, best_pt

    # ------------------------------------------------------------------
    def point_from_barycentric(self, face: int, bary) -> np.ndarray:
        return np.asarray(bary, dtype=np.float64) @ self.vertices[self.faces[face]]

    def __repr__(self) -> str:
        return f"TriangleMesh(vertices={len(self.vertices)}, faces={len(self.faces)}, edges={len(self.edges)})"
