# cvp_mesh_planner/viz/plotting.py
from __future__ import annotations

import matplotlib
import matplotlib.pyplot as plt
import numpy as np
from mpl_toolkits.mplot3d.art3d import Poly3DCollection


def plot_potential_surface(ax, mesh, potential=None, cmap: str = "viridis"):
    """
    Plot the mesh as a Poly3DCollection.

    If ``potential`` is given, faces are coloured by the mean potential of
    their vertices (faces touching an unreached vertex stay grey) and a
    colorbar is added to the figure.
    """
    faces_xyz = mesh.vertices[mesh.faces]
    poly = Poly3DCollection(faces_xyz, linewidths=0.2)
    ax.add_collection3d(poly)
    poly.set_label("Surface")
    V = mesh.vertices
    ax.auto_scale_xyz(V[:, 0], V[:, 1], V[:, 2])

    if potential is not None:
        pot = np.asarray(potential, dtype=float)
        face_vals = pot[mesh.faces].mean(axis=1)
        finite = np.isfinite(face_vals)
        if finite.any():
            norm = plt.Normalize(np.min(face_vals[finite]), np.max(face_vals[finite]))
            colours = matplotlib.colormaps[cmap](norm(np.where(finite, face_vals, 0.0)))
            colours[~finite] = (0.7, 0.7, 0.7, 1.0)
            poly.set_facecolor(colours)

            mappable = plt.cm.ScalarMappable(norm=norm, cmap=cmap)
            mappable.set_array(face_vals[finite])
            ax.figure.colorbar(mappable, ax=ax, shrink=0.5, pad=0.02, label="Potential")
        else:
            poly.set_facecolor("lightgrey")
    else:
        poly.set_facecolor("lightblue")
        poly.set_alpha(0.5)
        poly.set_edgecolors("k")

    return poly


def plot_path(ax, path, label: str = "Path", **kwargs):
    arr = np.asarray(path, dtype=float)
    if len(arr) == 0:
        return None
    (line,) = ax.plot(arr[:, 0], arr[:, 1], arr[:, 2], label=label, **kwargs)
    return line


def plot_vector_field(ax, mesh, vector_field, stride: int = 1, length: float | None = None):
    """Arrows at every ``stride``-th vertex carrying a non-zero direction."""
    vf = np.asarray(vector_field, dtype=float)
    idx = np.where(np.any(vf != 0.0, axis=1))[0][::max(1, int(stride))]
    if idx.size == 0:
        return None
    if length is None:
        length = 0.5 * float(np.median(mesh.edge_lengths)) if len(mesh.edge_lengths) else 1.0
    P = mesh.vertices[idx]
    D = vf[idx]
    return ax.quiver(P[:, 0], P[:, 1], P[:, 2], D[:, 0], D[:, 1], D[:, 2], length=length, color="k")


def set_axes_equal(ax) -> None:
    """
    Sets equal scaling for a 3D plot so that the scale for x, y, and z axes are equal.
    This ensures that a cube appears as a cube rather than a rectangular prism.
    """
    x_limits = ax.get_xlim3d()
    y_limits = ax.get_ylim3d()
    z_limits = ax.get_zlim3d()

    x_range = abs(x_limits[1] - x_limits[0])
    x_middle = np.mean(x_limits)
    y_range = abs(y_limits[1] - y_limits[0])
    y_middle = np.mean(y_limits)
    z_range = abs(z_limits[1] - z_limits[0])
    z_middle = np.mean(z_limits)

    # The plot radius is half of the maximum range
    plot_radius = 0.5 * max([x_range, y_range, z_range])

    ax.set_xlim3d([x_middle - plot_radius, x_middle + plot_radius])
    ax.set_ylim3d([y_middle - plot_radius, y_middle + plot_radius])
    ax.set_zlim3d([z_middle - plot_radius, z_middle + plot_radius])
