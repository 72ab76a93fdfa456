from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import Literal

UpdateRule = Literal["edge_sum", "hesse", "law_of_cosines"]


class InvalidInputError(ValueError):
    """Bad request data: negative weights, unlocatable points, empty mesh."""


class MeshStructureError(RuntimeError):
    """The mesh collaborator answered a topology query inconsistently."""


class Outcome(enum.Enum):
    SUCCESS = "success"
    INVALID_INPUT = "invalid_input"
    UNREACHABLE = "unreachable"
    CANCELLED = "cancelled"
    DIVERGED = "diverged"
    OFF_MESH = "off_mesh"


class CancellationToken:
    """
    Abort flag shared between a running request and whoever may cancel it.

    Setting is a single attribute store, so ``cancel()`` may be called from
    any thread without locking. Workers poll ``cancelled`` once per outer
    loop iteration.
    """

    __slots__ = ("_cancelled",)

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled})"


# ----------------------------- Configuration -----------------------------
@dataclass(frozen=True, slots=True)
class PlannerConfig:
    cost_limit: float | None = 1.0
    step_width: float = 0.4
    goal_dist_offset: float = 0.3
    update_rule: UpdateRule = "law_of_cosines"
    max_steps: int | None = None
    locate_distance: float = 0.4
    goal_threshold: float | None = None

    def __post_init__(self):
        # None disables blocking, same as inf
        if self.cost_limit is None:
            object.__setattr__(self, "cost_limit", math.inf)

    def validate(self) -> list[str]:
        issues = []
        if math.isnan(self.cost_limit):
            issues.append("cost_limit must not be NaN")
        if not math.isfinite(self.step_width) or self.step_width <= 0.0:
            issues.append(f"step_width must be a positive finite float, got {self.step_width}")
        if not math.isfinite(self.goal_dist_offset) or self.goal_dist_offset < 0.0:
            issues.append(f"goal_dist_offset must be >= 0, got {self.goal_dist_offset}")
        if self.update_rule not in ("edge_sum", "hesse", "law_of_cosines"):
            issues.append(f"unknown update_rule '{self.update_rule}'")
        if self.max_steps is not None and self.max_steps <= 0:
            issues.append(f"max_steps must be positive, got {self.max_steps}")
        if not self.locate_distance >= 0.0:
            issues.append(f"locate_distance must be >= 0, got {self.locate_distance}")
        if self.goal_threshold is not None and not self.goal_threshold >= 0.0:
            issues.append(f"goal_threshold must be >= 0, got {self.goal_threshold}")
        return issues
