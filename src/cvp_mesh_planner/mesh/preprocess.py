from __future__ import annotations

import logging

import numpy as np
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components

LOG = logging.getLogger(__name__)


def count_components(mesh) -> int:
    """Number of edge-connected vertex components (isolated vertices count too)."""
    n = len(mesh.vertices)
    if n == 0:
        return 0
    e = mesh.edges
    G = coo_matrix((np.ones(len(e)), (e[:, 0], e[:, 1])), shape=(n, n))
    n_comp, _ = connected_components(G, directed=False)
    return int(n_comp)


def validate_mesh(
    mesh,
    *,
    area_eps=1e-12,
    normal_unit_tol=1e-2,
    max_issues=20,
):
    """
    Check a ``TriangleMesh`` before planning.

    Returns (ok, issues). Only problems that make planning meaningless
    (empty mesh, non-finite geometry, negative or non-finite weights) clear
    ``ok``; degenerate faces and disconnected components are reported but
    tolerated.
    """
    issues = []
    fatal = False

    if len(mesh.vertices) == 0 or len(mesh.faces) == 0:
        return False, ["mesh must contain at least one vertex and one face"]

    # ---- geometry ----
    if not np.isfinite(mesh.vertices).all():
        bad = np.where(~np.isfinite(mesh.vertices).all(axis=1))[0]
        issues.append(f"{len(bad)} vertices have non-finite positions (first: {int(bad[0])})")
        fatal = True

    degenerate = np.where(mesh.face_areas <= area_eps)[0]
    for f in degenerate[:max_issues]:
        issues.append(f"[face {int(f)}] degenerate area={mesh.face_areas[f]:.3e}")

    nlen = np.linalg.norm(mesh.face_normals, axis=1)
    skewed = np.where((mesh.face_areas > area_eps) & (np.abs(nlen - 1.0) > normal_unit_tol))[0]
    for f in skewed[:max_issues]:
        issues.append(f"[face {int(f)}] normal not ~unit (||n||={nlen[f]:.6f})")

    # ---- weights ----
    w = mesh.edge_weights
    nonfinite = np.where(~np.isfinite(w))[0]
    negative = np.where(w < 0.0)[0]
    for e in nonfinite[:max_issues]:
        a, b = mesh.edges[e]
        issues.append(f"[edge {int(a)}-{int(b)}] weight must be finite, got {w[e]}")
    for e in negative[:max_issues]:
        a, b = mesh.edges[e]
        issues.append(f"[edge {int(a)}-{int(b)}] negative weight {w[e]:.6g}")
    if nonfinite.size or negative.size:
        fatal = True

    if np.isnan(mesh.vertex_costs).any():
        issues.append("vertex costs contain NaN")
        fatal = True

    # ---- topology ----
    n_comp = count_components(mesh)
    if n_comp > 1:
        issues.append(f"mesh has {n_comp} disconnected components")
        LOG.info("Mesh has %d disconnected components; some goals may be unreachable.", n_comp)

    return (not fatal), issues
