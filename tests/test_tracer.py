import math

import numpy as np
import pytest

from conftest import CountingToken
from cvp_mesh_planner.mesh.metric import metric_length
from cvp_mesh_planner.mesh.model import TriangleMesh
from cvp_mesh_planner.planner.types import CancellationToken, InvalidInputError, Outcome
from cvp_mesh_planner.trace.tracer import PathIntegrator


def _euclidean(mesh):
    return np.linalg.norm(mesh.vertices, axis=1)


def _start(mesh, point):
    face, bary = mesh.locate(point, 0.4)
    return mesh.point_from_barycentric(face, bary), face


def _trace(mesh, vf, start, **kwargs):
    point, face = _start(mesh, start)
    kwargs.setdefault("potential", _euclidean(mesh))
    kwargs.setdefault("goal_point", np.zeros(3))
    kwargs.setdefault("goal_face", 0)
    return PathIntegrator(mesh).trace(point, face, vf, 0.4, **kwargs)


def test_field_toward_goal_reaches_it(grid):
    toward_origin = -grid.vertices / np.maximum(np.linalg.norm(grid.vertices, axis=1), 1e-12)[:, None]
    res = _trace(grid, toward_origin, [2.5, 2.2, 0.0])
    assert res.outcome is Outcome.SUCCESS
    np.testing.assert_allclose(res.points[-1], [0.0, 0.0, 0.0])
    assert res.cost == pytest.approx(np.linalg.norm([2.5, 2.2]), rel=0.05)
    steps = np.linalg.norm(np.diff(res.points, axis=0), axis=1)
    assert (steps <= 0.4 + 1e-9).all()


def test_walking_off_the_boundary(grid):
    outward = np.tile([1.0, 0.0, 0.0], (grid.vertex_count(), 1))
    res = _trace(grid, outward, [2.5, 1.5, 0.0])
    assert res.outcome is Outcome.OFF_MESH
    assert res.points[-1][0] == pytest.approx(3.0)
    # partial path is kept
    assert len(res.points) >= 2


def test_vanishing_field_diverges(grid):
    res = _trace(grid, np.zeros((grid.vertex_count(), 3)), [2.5, 2.5, 0.0])
    assert res.outcome is Outcome.DIVERGED
    assert "vanishes" in res.message


def test_field_without_descent_stalls(grid):
    # field converges on the grid centre while the potential stays flat
    centre = np.array([1.5, 1.5, 0.0])
    inward = centre - grid.vertices
    inward /= np.linalg.norm(inward, axis=1)[:, None]
    potential = np.full(grid.vertex_count(), 5.0)
    res = _trace(grid, inward, [2.5, 1.5, 0.0], potential=potential)
    assert res.outcome is Outcome.DIVERGED
    assert res.steps <= 10


def test_step_budget(grid):
    toward_origin = -grid.vertices / np.maximum(np.linalg.norm(grid.vertices, axis=1), 1e-12)[:, None]
    res = _trace(grid, toward_origin, [2.5, 2.2, 0.0], max_steps=2)
    assert res.outcome is Outcome.DIVERGED
    assert res.steps == 2
    assert len(res.points) == 3


def test_start_outside_potential(grid):
    potential = np.full(grid.vertex_count(), math.inf)
    res = _trace(grid, np.zeros((grid.vertex_count(), 3)), [2.5, 2.5, 0.0], potential=potential)
    assert res.outcome is Outcome.DIVERGED
    assert len(res.points) == 1


def test_cancelled(grid):
    token = CancellationToken()
    token.cancel()
    res = _trace(grid, np.zeros((grid.vertex_count(), 3)), [2.5, 2.5, 0.0], cancel_token=token)
    assert res.outcome is Outcome.CANCELLED


def test_terminal_faces_switch_to_straight_approach(grid):
    # field points away from the goal, but every face touching vertex 5 heads straight for it
    away = np.tile([1.0, 1.0, 0.0], (grid.vertex_count(), 1)) / math.sqrt(2.0)
    res = _trace(grid, away, [1.2, 1.1, 0.0], terminals=[5])
    assert res.outcome is Outcome.SUCCESS


def test_bad_step_width(grid):
    point, face = _start(grid, [2.5, 2.5, 0.0])
    with pytest.raises(InvalidInputError):
        PathIntegrator(grid).trace(
            point, face, np.zeros((16, 3)), 0.0, potential=_euclidean(grid), goal_point=np.zeros(3), goal_face=0
        )


def test_potential_at_ignores_unreached_corners(grid):
    potential = _euclidean(grid)
    potential[15] = math.inf
    integ = PathIntegrator(grid)
    face = grid.faces_of_vertex(15)[0]
    value = integ.potential_at(potential, grid.centroids[face], face)
    assert math.isfinite(value)


def test_cancelled_mid_run(grid):
    toward_origin = -grid.vertices / np.maximum(np.linalg.norm(grid.vertices, axis=1), 1e-12)[:, None]
    token = CountingToken(after=2)
    res = _trace(grid, toward_origin, [2.5, 2.2, 0.0], cancel_token=token)
    assert res.outcome is Outcome.CANCELLED
    assert res.steps == 2
    assert len(res.points) == 3
    assert token.reads == 3


def test_final_approach_is_measured_per_face():
    # unit square split along x + y = 1; the upper face is stretched by its weights
    V = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [1.0, 1.0, 0.0]])
    mesh = TriangleMesh(V, [[0, 1, 2], [1, 3, 2]], edge_weights={(1, 3): 3.0, (2, 3): 3.0})
    start = np.array([0.6, 0.6, 0.0])
    goal = np.array([0.2, 0.2, 0.0])
    crossing = np.array([0.5, 0.5, 0.0])
    potential = np.linalg.norm(V - goal, axis=1)

    res = PathIntegrator(mesh).trace(
        start,
        1,
        np.zeros((4, 3)),
        1.0,
        potential=potential,
        goal_point=goal,
        goal_face=0,
        goal_threshold=100.0,
    )
    assert res.outcome is Outcome.SUCCESS
    assert res.faces == [1, 0]
    expected = metric_length(mesh, 1, start, crossing) + metric_length(mesh, 0, crossing, goal)
    assert res.length == pytest.approx(expected)
    assert res.length < metric_length(mesh, 1, start, goal) - 1.0


def test_cost_is_potential_descended(grid):
    toward_origin = -grid.vertices / np.maximum(np.linalg.norm(grid.vertices, axis=1), 1e-12)[:, None]
    point, face = _start(grid, [2.5, 2.2, 0.0])
    integ = PathIntegrator(grid)
    res = integ.trace(point, face, toward_origin, 0.4, potential=_euclidean(grid), goal_point=np.zeros(3), goal_face=0)
    assert res.outcome is Outcome.SUCCESS
    assert res.cost == pytest.approx(integ.cost_to_go(_euclidean(grid), point, face))
    # partial paths report the drop so far
    partial = integ.trace(
        point, face, toward_origin, 0.4, potential=_euclidean(grid), goal_point=np.zeros(3), goal_face=0, max_steps=3
    )
    assert partial.outcome is Outcome.DIVERGED
    assert 0.0 < partial.cost < res.cost
