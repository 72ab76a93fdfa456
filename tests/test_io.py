import math

import numpy as np
import pytest

pytest.importorskip("vtkmodules")

from cvp_mesh_planner.main.main import main  # noqa: E402
from cvp_mesh_planner.mesh.io import (  # noqa: E402
    load_mesh_from_vtk_polydata,
    write_field_vtk,
    write_path_vtk,
)
from cvp_mesh_planner.planner.planner import plan  # noqa: E402


@pytest.fixture
def grid_vtp(grid, tmp_path):
    costs = np.linspace(0.0, 0.5, grid.vertex_count())
    return write_field_vtk(tmp_path / "grid.vtp", grid, {"cost": costs}), costs


def test_round_trip(grid, grid_vtp):
    path, costs = grid_vtp
    mesh = load_mesh_from_vtk_polydata(path)
    np.testing.assert_allclose(mesh.vertices, grid.vertices)
    np.testing.assert_array_equal(mesh.faces, grid.faces)
    np.testing.assert_allclose(mesh.vertex_costs, costs)


def test_missing_cost_array_gives_zero_costs(grid_vtp):
    path, _ = grid_vtp
    mesh = load_mesh_from_vtk_polydata(path, cost_array="risk")
    assert not mesh.vertex_costs.any()


def test_cost_weight_scales_edges(grid_vtp):
    path, costs = grid_vtp
    mesh = load_mesh_from_vtk_polydata(path, cost_weight=2.0)
    a, b = mesh.edges[-1]
    expected = mesh.edge_lengths[-1] * (1.0 + 2.0 * 0.5 * (costs[a] + costs[b]))
    assert mesh.edge_weight(int(a), int(b)) == pytest.approx(expected)


def test_bad_extension(tmp_path):
    bad = tmp_path / "mesh.stl"
    bad.write_text("solid")
    with pytest.raises(ValueError):
        load_mesh_from_vtk_polydata(bad)
    with pytest.raises(FileNotFoundError):
        load_mesh_from_vtk_polydata(tmp_path / "missing.vtp")


def test_export_field_with_unreached_vertices(grid, tmp_path):
    res = plan(grid, [3.0, 3.0, 0.0], [0.0, 0.0, 0.0], cost_limit=math.inf)
    out = write_field_vtk(tmp_path / "field.vtp", grid, {"potential": res.potential, "vector_field": res.vector_field})
    assert out.exists()
    assert write_path_vtk(tmp_path / "path.vtp", res.path).exists()
    with pytest.raises(ValueError):
        write_field_vtk(tmp_path / "bad.vtp", grid, {"potential": np.zeros(3)})


def test_cli_plans_and_exports(grid_vtp, tmp_path, capsys):
    path, _ = grid_vtp
    out = tmp_path / "result.vtp"
    summary = tmp_path / "summary.txt"
    code = main(
        [
            "--mesh", str(path),
            "--start", "3", "3", "0",
            "--goal", "0", "0", "0",
            "--cost-limit", "inf",
            "--no-plot",
            "--compare-rules",
            "--export-field", str(out),
            "--save-txt", str(summary),
        ]
    )
    assert code == 0
    printed = capsys.readouterr().out
    assert "law_of_cosines: success" in printed
    assert "cost comparison (n=3)" in printed
    assert out.exists()
    assert (tmp_path / "result_path.vtp").exists()
    assert summary.read_text().startswith("# === law_of_cosines")


def test_cli_reports_failure(grid_vtp):
    path, _ = grid_vtp
    code = main(["--mesh", str(path), "--start", "3", "3", "5", "--goal", "0", "0", "0", "--no-plot"])
    assert code == 1


def test_cli_expert_flags_need_expert(grid_vtp, capsys):
    path, _ = grid_vtp
    args = ["--mesh", str(path), "--start", "3", "3", "0", "--goal", "0", "0", "0", "--no-plot", "--max-steps", "5"]
    with pytest.raises(SystemExit):
        main(args)
    assert "--expert" in capsys.readouterr().out
    assert main(["--expert", *args, "--cost-limit", "inf"]) == 1
