import math

import numpy as np

from conftest import vid
from cvp_mesh_planner.field.vectors import VectorFieldBuilder, normalize
from cvp_mesh_planner.trace.geometry import rotate_about_axis
from cvp_mesh_planner.wave.solver import WavefrontSolver


def _field(mesh, rule="law_of_cosines"):
    res = WavefrontSolver(mesh, rule).propagate(
        mesh.vertices_of_face(0),
        mesh.position(0),
        math.inf,
        mesh.position(mesh.vertex_count() - 1),
        100.0,
        goal_face=0,
        stop_vertices=[mesh.vertex_count() - 1],
    )
    builder = VectorFieldBuilder(mesh)
    return res, builder, builder.build(res.potential, res.predecessor, res.cutting_face, res.angle)


def test_vectors_point_at_the_goal_on_a_flat_grid(grid):
    res, _, vf = _field(grid)
    goal = grid.position(0)
    for v in range(grid.vertex_count()):
        if res.predecessor[v] < 0:
            assert not vf[v].any()
            continue
        assert abs(float(np.linalg.norm(vf[v])) - 1.0) < 1e-9
        to_goal = normalize(goal - grid.position(v))
        assert float(np.dot(vf[v], to_goal)) > 0.999, v


def test_vectors_are_tangent(noisy_surface):
    res, _, vf = _field(noisy_surface)
    for v in range(noisy_surface.vertex_count()):
        f = res.cutting_face[v]
        if f < 0 or not vf[v].any():
            continue
        assert abs(float(np.dot(vf[v], noisy_surface.face_normal(f)))) < 1e-9


def test_edge_sum_vectors_follow_edges(grid):
    res, _, vf = _field(grid, "edge_sum")
    v = vid(3, 1)
    p = res.predecessor[v]
    np.testing.assert_allclose(vf[v], normalize(grid.position(p) - grid.position(v)))


def test_direction_at_blends_corners(grid):
    _, builder, vf = _field(grid)
    # the face containing (2, 1), (3, 1), (3, 2)
    face = next(f for f in grid.faces_of_vertex(vid(3, 1)) if vid(3, 2) in grid.vertices_of_face(f))
    d = builder.direction_at(vf, face, [1.0 / 3.0] * 3)
    assert abs(np.linalg.norm(d) - 1.0) < 1e-9
    centroid = grid.centroids[face]
    assert float(np.dot(d, normalize(grid.position(0) - centroid))) > 0.99


def test_face_vectors(grid):
    _, builder, vf = _field(grid)
    fv = builder.face_vectors(vf)
    assert fv.shape == (grid.face_count(), 3)
    norms = np.linalg.norm(fv, axis=1)
    assert ((np.abs(norms - 1.0) < 1e-9) | (norms == 0.0)).all()


def test_rotation_is_counter_clockwise_about_axis():
    out = rotate_about_axis(np.array([1.0, 0.0, 0.0]), np.array([0.0, 0.0, 1.0]), math.pi / 2.0)
    np.testing.assert_allclose(out, [0.0, 1.0, 0.0], atol=1e-12)


def test_unsettled_vertices_get_no_direction(grid):
    res, builder, vf = _field(grid)
    settled = np.ones(grid.vertex_count(), dtype=bool)
    settled[vid(3, 3)] = False
    masked = builder.build(res.potential, res.predecessor, res.cutting_face, res.angle, settled)
    assert not masked[vid(3, 3)].any()
    assert vf[vid(3, 3)].any()
    np.testing.assert_array_equal(np.delete(masked, vid(3, 3), axis=0), np.delete(vf, vid(3, 3), axis=0))
