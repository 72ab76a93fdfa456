import math

import pytest

from cvp_mesh_planner.planner.types import InvalidInputError
from cvp_mesh_planner.wave.updates import (
    UPDATE_RULES,
    edge_update,
    get_update_rule,
    hesse_update,
    law_of_cosines_update,
)

SQ2 = math.sqrt(2.0)

# Source at the origin, v1 = (1, 0), v2 = (1, 1), v3 = (2, 1):
# u1 = 1, u2 = sqrt(2), c = |v1 v2| = 1, b = |v1 v3| = sqrt(2), a = |v2 v3| = 1.
FLAT = dict(u1=1.0, u2=SQ2, a=1.0, b=SQ2, c=1.0, v1=10, v2=11)


def _call(rule, u1, u2, a, b, c, v1, v2):
    return rule(u1, u2, a, b, c, v1, v2)


@pytest.mark.parametrize("rule", [hesse_update, law_of_cosines_update])
def test_cut_recovers_euclidean_distance(rule):
    upd = _call(rule, **FLAT)
    assert upd.cut
    assert upd.potential == pytest.approx(math.sqrt(5.0))
    # v3 -> v1 is closer in angle to v3 -> source than v3 -> v2
    assert upd.predecessor == 10
    assert upd.angle == pytest.approx(math.acos(3.0 / math.sqrt(10.0)))


def test_edge_sum_ignores_the_triangle():
    upd = _call(UPDATE_RULES["edge_sum"], **FLAT)
    assert not upd.cut
    assert upd.potential == pytest.approx(1.0 + SQ2)
    # tie between both edges goes to the lower index
    assert upd.predecessor == 10
    assert upd.angle == 0.0


@pytest.mark.parametrize("rule", [hesse_update, law_of_cosines_update])
def test_no_real_source_falls_back(rule):
    # |u1 - u2| > c: no point has these distances to v1 and v2
    upd = rule(1.0, 3.0, 1.0, SQ2, 1.0, 0, 1)
    assert not upd.cut
    assert upd.potential == pytest.approx(1.0 + SQ2)
    assert upd.predecessor == 0


@pytest.mark.parametrize("rule", [hesse_update, law_of_cosines_update])
def test_source_outside_wedge_falls_back(rule):
    # source at (0, 0), v1 = (1, 0), v2 = (2, 0), v3 = (2, 1): the ray to v3 misses edge v1 v2
    upd = rule(1.0, 2.0, 1.0, SQ2, 1.0, 0, 1)
    assert not upd.cut
    assert upd.potential == pytest.approx(min(1.0 + SQ2, 2.0 + 1.0))


@pytest.mark.parametrize("rule", [hesse_update, law_of_cosines_update])
def test_zero_potential_is_degenerate(rule):
    upd = rule(0.0, 1.0, 1.0, 1.0, 1.0, 3, 4)
    assert not upd.cut
    assert upd.potential == pytest.approx(1.0)
    assert upd.predecessor == 3


def test_edge_update_prefers_smaller_sum():
    upd = edge_update(2.0, 1.0, 0.5, 0.5, 7, 8)
    assert upd.potential == pytest.approx(1.5)
    assert upd.predecessor == 8


@pytest.mark.parametrize("name", sorted(UPDATE_RULES))
def test_rules_never_beat_causality(name):
    rule = get_update_rule(name)
    for u1, u2 in [(1.0, SQ2), (2.0, 2.2), (0.5, 0.9), (3.0, 3.0)]:
        upd = rule(u1, u2, 1.0, SQ2, 1.0, 0, 1)
        assert upd.potential >= max(u1, u2) - 1e-12 or not upd.cut
        assert upd.potential <= min(u1 + SQ2, u2 + 1.0) + 1e-12


def test_unknown_rule():
    with pytest.raises(InvalidInputError):
        get_update_rule("eikonal")
