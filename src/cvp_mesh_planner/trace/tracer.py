from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable

import numpy as np

from ..field.vectors import VectorFieldBuilder, normalize
from ..mesh.metric import face_corners, face_metric, metric_distance_to_corner, metric_length
from ..planner.types import CancellationToken, InvalidInputError, Outcome
from .geometry import barycentric, project_to_plane

LOG = logging.getLogger(__name__)

# Edge crossings allowed within a single step.
MAX_CROSSINGS = 64
# Consecutive steps without potential decrease before giving up.
STALL_LIMIT = 10
BARY_EPS = 1e-9
PROGRESS_EPS = 1e-9


@dataclass(slots=True)
class TraceResult:
    outcome: Outcome
    points: np.ndarray
    faces: list[int] = field(default_factory=list)
    cost: float = 0.0
    message: str = ""
    steps: int = 0
    # path length in the weight metric of the faces crossed
    length: float = 0.0


class PathIntegrator:
    """
    Follow a per-vertex vector field over the surface from a start point to
    the goal, one fixed-width step at a time.
    """

    def __init__(self, mesh, field_builder: VectorFieldBuilder | None = None):
        self.mesh = mesh
        self.fields = field_builder if field_builder is not None else VectorFieldBuilder(mesh)

    def _bary(self, point, face: int) -> np.ndarray:
        a, b, c = face_corners(self.mesh, face)
        lam = np.clip(barycentric(np.ascontiguousarray(point, dtype=np.float64), a, b, c), 0.0, None)
        s = float(lam.sum())
        return lam / s if s > 0.0 else np.full(3, 1.0 / 3.0)

    def potential_at(self, potential: np.ndarray, point, face: int) -> float:
        """Barycentric interpolation over the face corners with a finite potential."""
        corners = list(self.mesh.vertices_of_face(face))
        vals = np.asarray(potential[corners], dtype=np.float64)
        finite = np.isfinite(vals)
        if not finite.any():
            return math.inf
        lam = self._bary(point, face)[finite]
        if float(lam.sum()) <= 0.0:
            return float(vals[finite].min())
        return float(lam @ vals[finite] / lam.sum())

    def cost_to_go(self, potential: np.ndarray, point, face: int) -> float:
        """
        Potential of a surface point, seeded from the face corners like the
        goal seeds: min over reached corners of corner potential plus metric
        distance to that corner. Never increases when a corner gains a
        finite or lower potential.
        """
        mesh = self.mesh
        Q = face_metric(mesh, face)
        best = math.inf
        for i, v in enumerate(mesh.vertices_of_face(face)):
            u = float(potential[v])
            if math.isfinite(u):
                best = min(best, u + metric_distance_to_corner(mesh, face, point, i, Q))
        return best

    def _walk(self, point, face: int, direction, distance: float):
        """
        Move ``distance`` along ``direction`` over the surface.

        The direction is re-projected into each face plane entered. Returns
        (point, face, pieces, on_mesh); ``pieces`` lists the straight
        (face, from, to) segments walked, ``on_mesh`` is False when a
        boundary edge was hit.
        """
        mesh = self.mesh
        pieces = []
        remaining = distance
        d = np.ascontiguousarray(direction, dtype=np.float64)

        for _ in range(MAX_CROSSINGS):
            a, b, c = face_corners(mesh, face)
            normal = np.ascontiguousarray(mesh.face_normal(face), dtype=np.float64)
            d = normalize(project_to_plane(d, normal))
            if not d.any():
                break

            lam0 = np.maximum(barycentric(point, a, b, c), 0.0)
            target = point + remaining * d
            lam1 = barycentric(target, a, b, c)
            if lam1.min() >= -BARY_EPS:
                pieces.append((face, point, target))
                return target, face, pieces, True

            # first barycentric coordinate to reach zero marks the crossed edge
            t_exit, i_exit = 1.0, int(np.argmin(lam1))
            for i in range(3):
                if lam1[i] < -BARY_EPS:
                    denom = lam0[i] - lam1[i]
                    t = lam0[i] / denom if denom > 0.0 else 0.0
                    if t < t_exit:
                        t_exit, i_exit = t, i
            exit_pt = point + (target - point) * t_exit
            pieces.append((face, point, exit_pt))

            corners = mesh.vertices_of_face(face)
            edge = (corners[(i_exit + 1) % 3], corners[(i_exit + 2) % 3])
            neighbor = mesh.neighbor_face_across_edge(face, edge)
            if neighbor is None:
                return exit_pt, face, pieces, False

            remaining -= float(np.linalg.norm(exit_pt - point))
            point, face = exit_pt, neighbor
            if remaining <= 1e-12:
                break

        return point, face, pieces, True

    def trace(
        self,
        start_point,
        start_face: int,
        vector_field: np.ndarray,
        step_width: float,
        *,
        potential: np.ndarray,
        goal_point,
        goal_face: int,
        terminals: Iterable[int] = (),
        cancel_token: CancellationToken | None = None,
        max_steps: int | None = None,
        goal_threshold: float | None = None,
    ) -> TraceResult:
        """
        Integrate ``vector_field`` from ``start_point`` toward ``goal_point``.

        Near the goal (goal face, faces touching a terminal vertex, or
        interpolated potential below ``goal_threshold``) the field is
        replaced by the straight direction to the goal.

        The returned cost is the potential descended along the path, which
        telescopes to the cost-to-go of the start minus that of the last
        point (zero at the goal; inside the goal face it is the metric
        distance to the goal). ``length`` is the walked length measured in the
        weight metric of the faces crossed.
        """
        mesh = self.mesh
        token = cancel_token if cancel_token is not None else CancellationToken()
        step = float(step_width)
        if not step > 0.0:
            raise InvalidInputError(f"step_width must be positive, got {step_width}")

        goal = np.ascontiguousarray(goal_point, dtype=np.float64).reshape(3)
        point = np.array(start_point, dtype=np.float64).reshape(3)
        face = int(start_face)
        terminal = {int(v) for v in terminals}
        threshold = step if goal_threshold is None else float(goal_threshold)

        points = [point.copy()]
        faces = [face]
        length = 0.0

        def _cost_at(p, f: int) -> float:
            if f == goal_face:
                return metric_length(mesh, f, p, goal)
            return self.cost_to_go(potential, p, f)

        start_cost = _cost_at(point, face)

        def _finish(outcome: Outcome, message: str, steps: int) -> TraceResult:
            cost = 0.0
            if outcome is Outcome.SUCCESS:
                cost = start_cost
            elif math.isfinite(start_cost):
                end_cost = _cost_at(points[-1], faces[-1])
                if math.isfinite(end_cost):
                    cost = max(0.0, start_cost - end_cost)
            if outcome is not Outcome.SUCCESS:
                LOG.info("Path tracing stopped (%s) after %d steps: %s", outcome.value, steps, message)
            return TraceResult(
                outcome, np.asarray(points, dtype=np.float64), faces, cost, message, steps, length
            )

        current = self.potential_at(potential, point, face)
        if not math.isfinite(current):
            return _finish(Outcome.DIVERGED, "start is not covered by the potential field", 0)
        if max_steps is None:
            max_steps = max(100, int(math.ceil(10.0 * current / step)))

        entered = {face: current}
        best = current
        stall = 0

        for it in range(1, max_steps + 1):
            if token.cancelled:
                return _finish(Outcome.CANCELLED, "path tracing cancelled", it - 1)

            corners = mesh.vertices_of_face(face)
            approach = face == goal_face or not terminal.isdisjoint(corners) or current <= threshold
            if approach:
                to_goal = goal - point
                dist = float(np.linalg.norm(to_goal))
                if dist <= step:
                    end, end_face, pieces, on_mesh = self._walk(point, face, to_goal, dist)
                    for f, p, q in pieces:
                        length += metric_length(mesh, f, p, q)
                    if not on_mesh:
                        points.append(np.array(end, dtype=np.float64))
                        faces.append(int(end_face))
                        return _finish(Outcome.OFF_MESH, f"goal approach left the mesh at face {end_face}", it)
                    points.append(goal.copy())
                    faces.append(int(goal_face))
                    LOG.debug("Goal reached after %d steps, cost %.4f.", it, start_cost)
                    return _finish(Outcome.SUCCESS, "", it)
                direction = to_goal
            else:
                direction = self.fields.direction_at(vector_field, face, self._bary(point, face))
                if not direction.any():
                    return _finish(Outcome.DIVERGED, f"vector field vanishes in face {face}", it)

            new_point, new_face, pieces, on_mesh = self._walk(point, face, direction, step)
            for f, p, q in pieces:
                length += metric_length(mesh, f, p, q)
            points.append(np.array(new_point, dtype=np.float64))
            faces.append(int(new_face))
            if not on_mesh:
                return _finish(Outcome.OFF_MESH, f"path left the mesh through a boundary edge of face {new_face}", it)

            value = self.potential_at(potential, new_point, new_face)
            if not approach:
                if new_face != face:
                    prev = entered.get(new_face)
                    if prev is not None and value >= prev - PROGRESS_EPS:
                        return _finish(Outcome.DIVERGED, f"face {new_face} revisited without progress", it)
                    entered[new_face] = value
                if value < best - PROGRESS_EPS:
                    best = value
                    stall = 0
                else:
                    stall += 1
                    if stall >= STALL_LIMIT:
                        return _finish(Outcome.DIVERGED, f"potential stalled for {STALL_LIMIT} steps", it)

            point, face, current = new_point, new_face, value

        return _finish(Outcome.DIVERGED, f"step budget of {max_steps} steps exhausted", max_steps)
