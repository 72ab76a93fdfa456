from __future__ import annotations

import argparse
import dataclasses
import logging
import math
import warnings
from pathlib import Path
from typing import Sequence

import numpy as np

from cvp_mesh_planner.mesh.io import load_mesh_from_vtk_polydata, write_field_vtk, write_path_vtk
from cvp_mesh_planner.planner.planner import CVPMeshPlanner
from cvp_mesh_planner.planner.types import PlannerConfig
from cvp_mesh_planner.trace.stats import compare_costs, summarise_path
from cvp_mesh_planner.wave.updates import UPDATE_RULES

LOG = logging.getLogger(__name__)

# Planner defaults
DEFAULT_COST_LIMIT = 1.0
DEFAULT_STEP_WIDTH = 0.4
DEFAULT_GOAL_OFFSET = 0.3
DEFAULT_UPDATE_RULE = "law_of_cosines"

# Expert defaults (hidden unless --expert)
DEFAULT_LOCATE_DISTANCE = 0.4
DEFAULT_COST_WEIGHT = 0.0

EXPERT_ONLY_TOKENS = {
    "--max-steps",
    "--locate-distance",
    "--goal-threshold",
    "--cost-weight",
    "--cost-array",
    "--debug",
}


def _has_expert_flag(argv: Sequence[str]) -> bool:
    return ("--expert" in argv)


def build_argparser(*, expert: bool) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="cvp-plan",
        description=(
            "Plan a geodesic path over a triangle mesh (VTK input) by wavefront propagation\n"
            "and vector field integration. Use --expert to reveal advanced tuning options."
        ),
    )

    p.add_argument(
        "--expert",
        action="store_true",
        help="Show/enable expert options in --help.",
    )
    p.add_argument("--mesh", type=Path, required=True, help="Surface mesh (.vtk or .vtp PolyData).")
    p.add_argument("--start", type=float, nargs=3, required=True, metavar=("X", "Y", "Z"), help="Robot position.")
    p.add_argument("--goal", type=float, nargs=3, required=True, metavar=("X", "Y", "Z"), help="Goal position.")

    p.add_argument(
        "--cost-limit",
        type=float,
        default=DEFAULT_COST_LIMIT,
        help="Vertices with cost >= limit are impassable (use 'inf' to disable).",
    )
    p.add_argument("--step-width", type=float, default=DEFAULT_STEP_WIDTH, help="Path integration step width.")
    p.add_argument(
        "--goal-offset",
        type=float,
        default=DEFAULT_GOAL_OFFSET,
        help="How far beyond the robot position the wavefront keeps propagating.",
    )
    p.add_argument(
        "--update-rule",
        choices=sorted(UPDATE_RULES),
        default=DEFAULT_UPDATE_RULE,
        help="Triangle relaxation rule.",
    )
    p.add_argument(
        "--compare-rules",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Plan once per update rule and print a cost comparison.",
    )
    p.add_argument(
        "--plot",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Enable/disable 3D plot.",
    )
    p.add_argument("--save-txt", type=Path, default=None, help="Write the path summary to this file.")
    p.add_argument(
        "--export-field",
        type=Path,
        default=None,
        help="Write potential and vector field as XML PolyData (.vtp); the path goes to <name>_path.vtp.",
    )
    p.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )

    if expert:
        g = p.add_argument_group("Expert options")
        g.add_argument("--max-steps", type=int, default=None, help="Path integration step budget (None=derived).")
        g.add_argument(
            "--locate-distance",
            type=float,
            default=DEFAULT_LOCATE_DISTANCE,
            help="Max distance of start/goal from the surface.",
        )
        g.add_argument("--goal-threshold", type=float, default=None, help="Potential below which the goal is approached directly.")
        g.add_argument(
            "--cost-weight",
            type=float,
            default=DEFAULT_COST_WEIGHT,
            help="Edge weight = length * (1 + cost_weight * mean vertex cost).",
        )
        g.add_argument("--cost-array", type=str, default="cost", help="PointData array name for vertex costs.")
        g.add_argument("--debug", action="store_true", help="Print every path point.")

    return p


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        import sys
        argv = sys.argv[1:]

    expert = _has_expert_flag(argv)
    parser = build_argparser(expert=expert)

    # If non-expert, fail gracefully when they try expert-only flags.
    try:
        args = parser.parse_args(argv)
    except SystemExit:
        if not expert and any(tok in argv for tok in EXPERT_ONLY_TOKENS):
            print("\nNote: some advanced options are only available with --expert.")
        raise

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s: %(message)s",
    )

    max_steps = getattr(args, "max_steps", None)
    locate_distance = float(getattr(args, "locate_distance", DEFAULT_LOCATE_DISTANCE))
    goal_threshold = getattr(args, "goal_threshold", None)
    cost_weight = float(getattr(args, "cost_weight", DEFAULT_COST_WEIGHT))
    cost_array = getattr(args, "cost_array", "cost")
    debug = bool(getattr(args, "debug", False))

    if args.step_width > locate_distance:
        warnings.warn(
            f"--step-width={args.step_width} exceeds the locate distance {locate_distance}; "
            "coarse steps cut corners on curved surfaces.",
            RuntimeWarning,
            stacklevel=2,
        )
    if math.isinf(args.cost_limit):
        LOG.info("Cost limit disabled; every vertex is passable.")

    LOG.info("Loading mesh from VTK.")
    mesh = load_mesh_from_vtk_polydata(args.mesh, cost_array=cost_array, cost_weight=cost_weight)

    base = PlannerConfig(
        cost_limit=float(args.cost_limit),
        step_width=float(args.step_width),
        goal_dist_offset=float(args.goal_offset),
        update_rule=args.update_rule,
        max_steps=max_steps,
        locate_distance=locate_distance,
        goal_threshold=goal_threshold,
    )
    planner = CVPMeshPlanner(mesh, base)

    LOG.info("Planning from %s to %s (%s).", args.start, args.goal, base.update_rule)
    result = planner.plan(args.start, args.goal)
    print("\n" + summarise_path(result, label=base.update_rule, debug=debug, save_txt=args.save_txt))

    if args.compare_rules:
        results = {base.update_rule: result}
        for rule in sorted(UPDATE_RULES):
            if rule == base.update_rule:
                continue
            results[rule] = planner.plan(args.start, args.goal, dataclasses.replace(base, update_rule=rule))
        straight = float(np.linalg.norm(np.subtract(args.goal, args.start)))
        print("\n" + compare_costs(results, reference=straight))

    if args.export_field is not None and result.potential is not None:
        arrays = {"potential": result.potential, "cost": mesh.vertex_costs}
        if result.vector_field is not None:
            arrays["vector_field"] = result.vector_field
        out = write_field_vtk(args.export_field, mesh, arrays)
        LOG.info("Wrote field to %s.", out)
        if len(result.path):
            path_out = out.with_name(out.stem + "_path.vtp")
            write_path_vtk(path_out, result.path)
            LOG.info("Wrote path to %s.", path_out)

    # ---------------- PLOTTING ----------------
    if bool(args.plot):
        import matplotlib.pyplot as plt

        from cvp_mesh_planner.viz.plotting import (
            plot_path,
            plot_potential_surface,
            plot_vector_field,
            set_axes_equal,
        )

        fig = plt.figure()
        ax = fig.add_subplot(111, projection="3d")
        ax.set_axis_off()
        plot_potential_surface(ax, mesh, result.potential)
        if result.vector_field is not None:
            plot_vector_field(ax, mesh, result.vector_field)
        plot_path(ax, result.path, label=f"{result.outcome.value} (cost {result.cost:.2f})", marker="o", color="r")
        set_axes_equal(ax)
        ax.legend()
        plt.show()

    return 0 if result.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
