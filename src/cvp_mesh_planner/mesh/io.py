from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping

import numpy as np

from .model import TriangleMesh

LOG = logging.getLogger(__name__)


def load_mesh_from_vtk_polydata(
    mesh_path: Path,
    *,
    cost_array: str | None = "cost",
    cost_weight: float = 0.0,
) -> TriangleMesh:
    """
    Load a triangular surface mesh from .vtp (XML PolyData) or legacy .vtk
    (PolyData) into a ``TriangleMesh``.

    Polygons are triangulated with vtkTriangleFilter. Per-vertex costs are
    read from the PointData array ``cost_array``; when it is missing all
    costs are zero.
    """
    mesh_path = Path(mesh_path)
    if not mesh_path.exists():
        raise FileNotFoundError(mesh_path)

    from vtkmodules.util.numpy_support import vtk_to_numpy
    from vtkmodules.vtkFiltersCore import vtkTriangleFilter
    from vtkmodules.vtkIOLegacy import vtkPolyDataReader
    from vtkmodules.vtkIOXML import vtkXMLPolyDataReader

    suffix = mesh_path.suffix.lower()
    if suffix == ".vtp":
        reader = vtkXMLPolyDataReader()
    elif suffix == ".vtk":
        reader = vtkPolyDataReader()
    else:
        raise ValueError(
            f"Unsupported mesh extension '{suffix}'. Use .vtk or .vtp (PolyData)."
        )

    reader.SetFileName(str(mesh_path))
    reader.Update()
    poly = reader.GetOutput()
    if poly is None:
        raise RuntimeError(f"VTK reader produced no output for {mesh_path}")

    tri_f = vtkTriangleFilter()
    tri_f.SetInputData(poly)
    tri_f.PassVertsOff()
    tri_f.PassLinesOff()
    tri_f.Update()
    tri_poly = tri_f.GetOutput()

    points = tri_poly.GetPoints()
    if points is None:
        raise RuntimeError("Mesh has no points.")
    vertices = np.asarray(vtk_to_numpy(points.GetData()), dtype=np.float64)

    faces = []
    for cid in range(tri_poly.GetNumberOfCells()):
        cell = tri_poly.GetCell(cid)
        if cell is None or cell.GetNumberOfPoints() != 3:
            continue
        faces.append((cell.GetPointId(0), cell.GetPointId(1), cell.GetPointId(2)))
    if not faces:
        raise RuntimeError("No triangles extracted from mesh (unexpected).")

    costs = None
    if cost_array:
        arr = tri_poly.GetPointData().GetArray(cost_array)
        if arr is None:
            LOG.warning("PointData array '%s' not found in %s; using zero costs.", cost_array, mesh_path.name)
        else:
            costs = np.asarray(vtk_to_numpy(arr), dtype=np.float64).reshape(len(vertices), -1)[:, 0]

    mesh = TriangleMesh(vertices, np.asarray(faces, dtype=np.int64), vertex_costs=costs, cost_weight=cost_weight)
    LOG.info("Loaded %s from %s.", mesh, mesh_path.name)
    return mesh


def _polydata(vertices: np.ndarray, faces: np.ndarray | None = None, line: bool = False):
    from vtkmodules.util.numpy_support import numpy_to_vtk
    from vtkmodules.vtkCommonCore import vtkPoints
    from vtkmodules.vtkCommonDataModel import vtkCellArray, vtkPolyData

    pts = vtkPoints()
    pts.SetData(numpy_to_vtk(np.ascontiguousarray(vertices, dtype=np.float64), deep=True))
    cells = vtkCellArray()
    if faces is not None:
        for a, b, c in faces:
            cells.InsertNextCell(3)
            cells.InsertCellPoint(int(a))
            cells.InsertCellPoint(int(b))
            cells.InsertCellPoint(int(c))
    if line and len(vertices) > 1:
        cells.InsertNextCell(len(vertices))
        for i in range(len(vertices)):
            cells.InsertCellPoint(i)

    poly = vtkPolyData()
    poly.SetPoints(pts)
    if line:
        poly.SetLines(cells)
    else:
        poly.SetPolys(cells)
    return poly


def _write_xml(poly, out_path: Path) -> Path:
    from vtkmodules.vtkIOXML import vtkXMLPolyDataWriter

    out_path = Path(out_path)
    writer = vtkXMLPolyDataWriter()
    writer.SetFileName(str(out_path))
    writer.SetInputData(poly)
    if writer.Write() != 1:
        raise RuntimeError(f"Failed to write {out_path}")
    return out_path


def write_field_vtk(
    out_path: Path,
    mesh: TriangleMesh,
    point_arrays: Mapping[str, np.ndarray],
) -> Path:
    """
    Write the mesh with per-vertex arrays (e.g. potential, vector field,
    cost) as XML PolyData. Infinite potentials are stored as NaN.
    """
    from vtkmodules.util.numpy_support import numpy_to_vtk

    poly = _polydata(mesh.vertices, mesh.faces)
    for name, values in point_arrays.items():
        arr = np.asarray(values, dtype=np.float64)
        if arr.shape[0] != len(mesh.vertices):
            raise ValueError(f"array '{name}' has {arr.shape[0]} rows, mesh has {len(mesh.vertices)} vertices")
        arr = np.where(np.isfinite(arr), arr, np.nan)
        vtk_arr = numpy_to_vtk(np.ascontiguousarray(arr), deep=True)
        vtk_arr.SetName(name)
        poly.GetPointData().AddArray(vtk_arr)
    return _write_xml(poly, out_path)


def write_path_vtk(out_path: Path, points: np.ndarray) -> Path:
    """Write a path as a single polyline."""
    return _write_xml(_polydata(np.asarray(points, dtype=np.float64), line=True), out_path)
