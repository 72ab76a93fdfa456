from __future__ import annotations

import heapq
import logging
import math
from dataclasses import dataclass
from typing import Iterable

import numpy as np

from ..mesh.metric import face_metric, metric_distance_to_corner
from ..planner.types import (
    CancellationToken,
    InvalidInputError,
    MeshStructureError,
    Outcome,
    UpdateRule,
)
from .updates import _angle, get_update_rule

LOG = logging.getLogger(__name__)


@dataclass(slots=True)
class WavefrontResult:
    outcome: Outcome
    potential: np.ndarray
    predecessor: np.ndarray
    cutting_face: np.ndarray
    angle: np.ndarray
    settled: np.ndarray
    seeds: np.ndarray
    message: str = ""
    iterations: int = 0

    def freeze(self) -> "WavefrontResult":
        for arr in (self.potential, self.predecessor, self.cutting_face, self.angle, self.settled, self.seeds):
            arr.setflags(write=False)
        return self


class WavefrontSolver:
    """
    Label-setting propagation of a geodesic potential from the goal seeds.

    The relaxation rule is bound once at construction; see
    ``cvp_mesh_planner.wave.updates`` for the three variants.
    """

    def __init__(self, mesh, update_rule: UpdateRule = "law_of_cosines"):
        self.mesh = mesh
        self.update_rule = update_rule
        self._relax = get_update_rule(update_rule)

    def _weight(self, a: int, b: int) -> float:
        w = self.mesh.edge_weight(a, b)
        if not w >= 0.0:
            raise InvalidInputError(f"edge {a}-{b} has invalid weight {w}")
        return w

    def _signed_angle(self, v3: int, pred: int, other: int, face: int, phi: float) -> float:
        """
        Turn ``phi``, measured at v3 in the weight-metric triangle, into the
        signed surface angle from edge v3->pred toward the same direction.

        The metric direction is written in the basis of the two edges at v3
        and the coefficients are reused on the surface edges, so the angle
        follows the affine map between metric triangle and face.
        """
        mesh = self.mesh
        p3 = mesh.position(v3)
        e_pred = mesh.position(pred) - p3
        e_other = mesh.position(other) - p3
        side = float(np.dot(np.cross(e_pred, e_other), mesh.face_normal(face)))
        sign = 1.0 if side >= 0.0 else -1.0

        w_pred = self._weight(v3, pred)
        w_other = self._weight(v3, other)
        gamma = _angle(w_pred, w_other, self._weight(pred, other)) if w_pred > 0.0 and w_other > 0.0 else 0.0
        # never rotate past the other edge of the triangle
        phi = min(phi, gamma)
        sin_g = math.sin(gamma)
        if sin_g <= 1e-12:
            return 0.0
        beta = math.sin(phi) / (w_other * sin_g)
        alpha = (math.cos(phi) - beta * w_other * math.cos(gamma)) / w_pred
        d = alpha * e_pred + beta * e_other

        denom = float(np.linalg.norm(e_pred) * np.linalg.norm(d))
        if denom <= 0.0:
            return 0.0
        theta = math.acos(min(1.0, max(-1.0, float(np.dot(e_pred, d)) / denom)))
        return sign * theta

    def propagate(
        self,
        seed_vertices: Iterable[int],
        goal_point,
        cost_limit: float,
        stop_point,
        goal_offset: float,
        cancel_token: CancellationToken | None = None,
        *,
        goal_face: int | None = None,
        stop_vertices: Iterable[int] | None = None,
    ) -> WavefrontResult:
        """
        Propagate from ``seed_vertices`` until the stop region is settled.

        Seeds start at their planar distance from ``goal_point`` (in the
        metric of ``goal_face`` when given, else Euclidean). The run ends
        successfully once every stop vertex is settled and the popped
        potential reaches ``|stop_point - goal_point| + goal_offset``.
        """
        mesh = self.mesh
        token = cancel_token if cancel_token is not None else CancellationToken()
        n = mesh.vertex_count()
        if n == 0 or mesh.face_count() == 0:
            raise InvalidInputError("cannot propagate on an empty mesh")

        goal = np.asarray(goal_point, dtype=np.float64).reshape(3)
        stop = np.asarray(stop_point, dtype=np.float64).reshape(3)
        limit = math.inf if cost_limit is None else float(cost_limit)

        potential = np.full(n, np.inf, dtype=np.float64)
        predecessor = np.full(n, -1, dtype=np.int64)
        cutting_face = np.full(n, -1, dtype=np.int64)
        angle = np.zeros(n, dtype=np.float64)
        settled = np.zeros(n, dtype=bool)
        costs = np.fromiter((mesh.vertex_cost(v) for v in range(n)), dtype=np.float64, count=n)
        blocked = costs >= limit

        if stop_vertices is None:
            located = mesh.locate(stop, math.inf)
            if located is None:
                raise InvalidInputError(f"stop point {stop} is not on the mesh")
            stop_vertices = mesh.vertices_of_face(located[0])
        pending = {int(v) for v in stop_vertices if not blocked[int(v)]}

        seeds = np.asarray(sorted({int(v) for v in seed_vertices}), dtype=np.int64)
        goal_corners = mesh.vertices_of_face(goal_face) if goal_face is not None else ()
        Q = face_metric(mesh, goal_face) if goal_face is not None else None

        def _result(outcome: Outcome, message: str, iterations: int) -> WavefrontResult:
            return WavefrontResult(
                outcome, potential, predecessor, cutting_face, angle, settled, seeds, message, iterations
            )

        if not pending:
            return _result(Outcome.UNREACHABLE, "start region is blocked by the cost limit", 0)

        frontier: list[tuple[float, int]] = []
        for v in seeds:
            v = int(v)
            if blocked[v]:
                continue
            if v in goal_corners:
                d = metric_distance_to_corner(mesh, goal_face, goal, goal_corners.index(v), Q)
            else:
                d = float(np.linalg.norm(mesh.position(v) - goal))
            if d < potential[v]:
                potential[v] = d
                if goal_face is not None:
                    cutting_face[v] = goal_face
                heapq.heappush(frontier, (d, v))
        if not frontier:
            return _result(Outcome.UNREACHABLE, "goal region is blocked by the cost limit", 0)

        stop_potential = float(np.linalg.norm(stop - goal)) + float(goal_offset)
        relax = self._relax
        iterations = 0

        while frontier:
            if token.cancelled:
                LOG.info("Wavefront propagation cancelled after %d iterations.", iterations)
                return _result(Outcome.CANCELLED, "propagation cancelled", iterations)

            u_val, v1 = heapq.heappop(frontier)
            if settled[v1] or u_val > potential[v1]:
                continue  # stale entry
            settled[v1] = True
            iterations += 1
            pending.discard(v1)
            if not pending and u_val >= stop_potential:
                LOG.debug("Stop region settled at potential %.4f after %d iterations.", u_val, iterations)
                return _result(Outcome.SUCCESS, "", iterations)

            for face in mesh.faces_of_vertex(v1):
                corners = mesh.vertices_of_face(face)
                if v1 not in corners:
                    raise MeshStructureError(f"face {face} listed for vertex {v1} does not contain it")
                others = [x for x in corners if x != v1]
                if len(others) != 2:
                    raise MeshStructureError(f"face {face} has repeated vertices {corners}")

                for v3, v2 in ((others[0], others[1]), (others[1], others[0])):
                    if settled[v3] or blocked[v3]:
                        continue
                    if settled[v2]:
                        upd = relax(
                            u_val,
                            potential[v2],
                            self._weight(v2, v3),
                            self._weight(v1, v3),
                            self._weight(v1, v2),
                            v1,
                            v2,
                        )
                        if upd.potential < potential[v3]:
                            potential[v3] = upd.potential
                            predecessor[v3] = upd.predecessor
                            cutting_face[v3] = face
                            if upd.cut and upd.angle > 0.0:
                                other = v2 if upd.predecessor == v1 else v1
                                angle[v3] = self._signed_angle(v3, upd.predecessor, other, face, upd.angle)
                            else:
                                angle[v3] = 0.0
                            heapq.heappush(frontier, (upd.potential, v3))
                    else:
                        cand = u_val + self._weight(v1, v3)
                        if cand < potential[v3]:
                            potential[v3] = cand
                            predecessor[v3] = v1
                            cutting_face[v3] = face
                            angle[v3] = 0.0
                            heapq.heappush(frontier, (cand, v3))

        if pending:
            LOG.info(
                "Frontier exhausted after %d iterations with %d stop vertices unreached.",
                iterations,
                len(pending),
            )
            return _result(Outcome.UNREACHABLE, "no connection between start and goal", iterations)
        return _result(Outcome.SUCCESS, "", iterations)
