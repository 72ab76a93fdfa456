from __future__ import annotations

from typing import Mapping

import numpy as np


def path_length(points) -> float:
    pts = np.asarray(points, dtype=float)
    if len(pts) < 2:
        return 0.0
    return float(np.linalg.norm(np.diff(pts, axis=0), axis=1).sum())


def summarise_path(result, *, label="Path", debug=False, save_txt=None) -> str:
    """One header line with outcome/cost/length, plus every point when ``debug``."""
    def fmt(pt):
        return f"({pt[0]:.5f}, {pt[1]:.5f}, {pt[2]:.5f})"

    pts = np.asarray(result.path, dtype=float)
    lines = [
        f"# === {label}: {result.outcome.value} ===",
        f"points:      {len(pts)}",
        f"cost:        {result.cost:.4f}",
        f"length:      {path_length(pts):.4f}",
    ]
    if result.message:
        lines.append(f"message:     {result.message}")
    if debug or save_txt is not None:
        lines.append("# per-point rows = idx | face | point")
        for i, (pt, face) in enumerate(zip(pts, result.faces)):
            lines.append(f"{i:4d} {face:6d} {fmt(pt)}")

    txt = "\n".join(lines)
    if save_txt is not None:
        with open(save_txt, "w") as fh:
            fh.write(txt + "\n")
    return txt


def compare_costs(results: Mapping[str, object], *, reference: float | None = None) -> str:
    """
    Tabulate cost and geometric length of several plans for the same request.

    ``reference`` (e.g. the straight-line distance) adds a ratio column.
    """
    if not results:
        return "[WARN] No plans to compare."

    lines = [f"# === cost comparison (n={len(results)}) ==="]
    header = f"{'plan':<16} {'outcome':<12} {'cost':>9} {'length':>9}"
    if reference:
        header += f" {'ratio':>7}"
    lines.append(header)
    for label, res in results.items():
        row = f"{label:<16} {res.outcome.value:<12} {res.cost:9.3f} {path_length(res.path):9.3f}"
        if reference:
            ratio = res.cost / reference if res.ok else float("nan")
            row += f" {ratio:7.3f}"
        lines.append(row)

    ok_costs = [res.cost for res in results.values() if res.ok]
    if len(ok_costs) > 1:
        lines.append(f"spread (max-min): {max(ok_costs) - min(ok_costs):.3f}")
    return "\n".join(lines)
