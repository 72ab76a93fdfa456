from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

import numpy as np
from scipy.spatial.transform import Rotation

from ..field.vectors import VectorFieldBuilder
from ..mesh.preprocess import validate_mesh
from ..trace.tracer import PathIntegrator
from ..wave.solver import WavefrontSolver
from .types import (
    CancellationToken,
    InvalidInputError,
    Outcome,
    PlannerConfig,
)

LOG = logging.getLogger(__name__)


@dataclass(slots=True)
class PlanResult:
    outcome: Outcome
    path: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))
    faces: list[int] = field(default_factory=list)
    cost: float = 0.0
    message: str = ""
    # traced length in the weight metric; cost is the potential descended
    length: float = 0.0
    # read-only maps of the request, None when planning stopped before them
    potential: np.ndarray | None = None
    vector_field: np.ndarray | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SUCCESS


def _freeze(arr: np.ndarray) -> np.ndarray:
    arr.setflags(write=False)
    return arr


class CVPMeshPlanner:
    """
    Continuous vector field planner on a triangle mesh.

    Each ``plan`` call owns its own potential, predecessor and vector field
    arrays; only the cancellation token of the request in flight is shared
    with ``cancel``.
    """

    def __init__(self, mesh, config: PlannerConfig | None = None):
        self.mesh = mesh
        self.config = config if config is not None else PlannerConfig()
        self._token: CancellationToken | None = None

    def cancel(self) -> bool:
        token = self._token
        if token is None:
            return False
        token.cancel()
        LOG.info("Cancel requested for the running plan.")
        return True

    def _check_mesh(self) -> None:
        mesh = self.mesh
        if mesh.vertex_count() == 0 or mesh.face_count() == 0:
            raise InvalidInputError("mesh is empty")
        if hasattr(mesh, "edge_weights"):
            ok, issues = validate_mesh(mesh)
            for issue in issues:
                LOG.debug("mesh check: %s", issue)
            if not ok:
                raise InvalidInputError("; ".join(issues[:5]))
            return
        for f in range(mesh.face_count()):
            a, b, c = mesh.vertices_of_face(f)
            for u, v in ((a, b), (b, c), (c, a)):
                w = mesh.edge_weight(u, v)
                if not (w >= 0.0 and np.isfinite(w)):
                    raise InvalidInputError(f"edge {u}-{v} has invalid weight {w}")

    def _locate(self, point, what: str, max_distance: float):
        p = np.asarray(point, dtype=np.float64).reshape(-1)
        if p.shape != (3,) or not np.isfinite(p).all():
            raise InvalidInputError(f"{what} must be a finite 3D point, got {point!r}")
        located = self.mesh.locate(p, max_distance)
        if located is None:
            raise InvalidInputError(f"{what} {p} is farther than {max_distance} from the mesh surface")
        face, bary = located
        corners = self.mesh.vertices_of_face(face)
        on_surface = sum(float(w) * np.asarray(self.mesh.position(v), dtype=np.float64) for w, v in zip(bary, corners))
        return int(face), on_surface

    def plan(
        self,
        start,
        goal,
        config: PlannerConfig | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> PlanResult:
        cfg = config if config is not None else self.config
        token = cancel_token if cancel_token is not None else CancellationToken()
        self._token = token
        t0 = time.perf_counter()

        issues = cfg.validate()
        if issues:
            return PlanResult(Outcome.INVALID_INPUT, message="; ".join(issues))

        try:
            self._check_mesh()
            goal_face, goal_pt = self._locate(goal, "goal", cfg.locate_distance)
            start_face, start_pt = self._locate(start, "start", cfg.locate_distance)
            solver = WavefrontSolver(self.mesh, cfg.update_rule)
            wave = solver.propagate(
                self.mesh.vertices_of_face(goal_face),
                goal_pt,
                cfg.cost_limit,
                start_pt,
                cfg.goal_dist_offset,
                token,
                goal_face=goal_face,
                stop_vertices=self.mesh.vertices_of_face(start_face),
            )
        except InvalidInputError as exc:
            LOG.warning("Invalid planning request: %s", exc)
            return PlanResult(Outcome.INVALID_INPUT, message=str(exc))

        t_wave = time.perf_counter()
        LOG.info(
            "Wavefront (%s): %s, %d vertices settled in %.1f ms.",
            cfg.update_rule,
            wave.outcome.value,
            int(wave.settled.sum()),
            (t_wave - t0) * 1e3,
        )
        if wave.outcome is not Outcome.SUCCESS:
            return PlanResult(wave.outcome, message=wave.message, potential=_freeze(wave.potential))

        builder = VectorFieldBuilder(self.mesh)
        vector_field = builder.build(wave.potential, wave.predecessor, wave.cutting_face, wave.angle, wave.settled)
        terminals = [int(s) for s in wave.seeds if wave.predecessor[s] < 0]

        integrator = PathIntegrator(self.mesh, builder)
        traced = integrator.trace(
            start_pt,
            start_face,
            vector_field,
            cfg.step_width,
            potential=wave.potential,
            goal_point=goal_pt,
            goal_face=goal_face,
            terminals=terminals,
            cancel_token=token,
            max_steps=cfg.max_steps,
            goal_threshold=cfg.goal_threshold,
        )
        LOG.info(
            "Path tracing: %s, %d points, cost %.3f, length %.3f in %.1f ms.",
            traced.outcome.value,
            len(traced.points),
            traced.cost,
            traced.length,
            (time.perf_counter() - t_wave) * 1e3,
        )
        wave.freeze()
        if traced.outcome is Outcome.CANCELLED:
            return PlanResult(Outcome.CANCELLED, message=traced.message)
        return PlanResult(
            traced.outcome,
            path=_freeze(traced.points),
            faces=traced.faces,
            cost=float(traced.cost),
            message=traced.message,
            length=float(traced.length),
            potential=wave.potential,
            vector_field=_freeze(vector_field),
        )


def plan(
    mesh,
    start,
    goal,
    cost_limit: float = 1.0,
    step_width: float = 0.4,
    goal_offset: float = 0.3,
    cancel_token: CancellationToken | None = None,
    **options,
) -> PlanResult:
    """
    Plan a path from ``start`` to ``goal`` on ``mesh``.

    ``options`` are the remaining ``PlannerConfig`` fields (``update_rule``,
    ``max_steps``, ``locate_distance``, ``goal_threshold``). Pass
    ``cost_limit=math.inf`` (or None) to disable cost blocking.
    """
    try:
        cfg = PlannerConfig(
            cost_limit=cost_limit,
            step_width=step_width,
            goal_dist_offset=goal_offset,
            **options,
        )
    except TypeError as exc:
        return PlanResult(Outcome.INVALID_INPUT, message=str(exc))
    return CVPMeshPlanner(mesh, cfg).plan(start, goal, cancel_token=cancel_token)


def path_poses(mesh, result: PlanResult) -> np.ndarray:
    """
    Poses (x, y, z, qx, qy, qz, qw) along a planned path: x axis along the
    next segment, z axis along the containing face's normal.
    """
    pts = np.asarray(result.path, dtype=np.float64)
    n = len(pts)
    poses = np.zeros((n, 7), dtype=np.float64)
    if n == 0:
        return poses
    poses[:, :3] = pts

    heading = None
    for i in range(n):
        z = np.asarray(mesh.face_normal(result.faces[i]), dtype=np.float64)
        if i + 1 < n:
            seg = pts[i + 1] - pts[i]
            seg = seg - np.dot(seg, z) * z
            if np.linalg.norm(seg) > 1e-12:
                heading = seg
        x = heading if heading is not None else _any_perpendicular(z)
        x = x - np.dot(x, z) * z
        x = x / np.linalg.norm(x)
        y = np.cross(z, x)
        poses[i, 3:] = Rotation.from_matrix(np.column_stack([x, y, z])).as_quat()
    return poses


def _any_perpendicular(z: np.ndarray) -> np.ndarray:
    ref = np.array([1.0, 0.0, 0.0]) if abs(z[0]) < 0.9 else np.array([0.0, 1.0, 0.0])
    return np.cross(z, ref)
