"""Tests for rule_expander module."""
import pytest

from voxel_wfc.contracts import OUTER_MODULE_NAME, ExpansionConfig
from voxel_wfc.grid import GridIndex
from voxel_wfc.module import Module
from voxel_wfc.rule_expander import (
    ORIGIN_EXPLICIT,
    ORIGIN_INDIFFERENT,
    ORIGIN_TYPED,
    collect_rules,
    expand_rules,
    indifferent_rules_for_unused,
    rules_from_slots,
    to_solver_rules,
)
from voxel_wfc.rules import RuleExplicit, RuleIndifferent, RuleTyped, SolverRule, rule_sort_key
from voxel_wfc.slot import Slot

RULES_ONLY = ExpansionConfig(include_module_types=False, include_indifferent=False)


@pytest.fixture
def cubes():
    return [Module(name, [(0, 0, 0)]) for name in ("a", "b", "c")]


def _codes(expansion):
    return [issue.code for issue in expansion.issues]


class TestExplicitPass:
    """Test validation of explicit rules."""

    def test_valid_rule_kept(self, cubes):
        expansion = expand_rules(cubes, [RuleExplicit("b", 5, "a", 2)], RULES_ONLY)
        assert expansion.explicit == (RuleExplicit("a", 2, "b", 5),)
        assert expansion.explicit[0].source == ("a", 2)
        assert expansion.issues == []
        assert expansion.origins[RuleExplicit("a", 2, "b", 5)] == ORIGIN_EXPLICIT

    def test_problems_reported_batch_continues(self, cubes, bar_module):
        rules = [
            RuleExplicit("a", 2, "b", 5),
            RuleExplicit("b", 5, "a", 2),       # duplicate
            RuleExplicit("a", 2, "a", 2),       # self-connection
            RuleExplicit("a", 2, "b", 4),       # not opposite
            RuleExplicit("ghost", 2, "b", 5),   # unknown module
            RuleExplicit("bar", 0, "a", 3),     # internal connector
        ]
        expansion = expand_rules(cubes + [bar_module], rules, RULES_ONLY)
        assert expansion.explicit == (RuleExplicit("a", 2, "b", 5),)
        assert _codes(expansion) == [
            "rule_duplicate",
            "rule_invalid",
            "rule_not_opposite",
            "module_unknown",
            "connector_unknown",
        ]

    def test_invalid_module_skipped(self, cubes):
        broken = Module("gap", [(0, 0, 0), (2, 0, 0)])
        expansion = expand_rules(cubes + [broken], [RuleExplicit("gap", 0, "a", 3)], RULES_ONLY)
        assert expansion.explicit == ()
        assert "module_invalid" in _codes(expansion)
        assert "module_unknown" in _codes(expansion)

    def test_duplicate_module_name(self, cubes):
        expansion = expand_rules(cubes + [Module("a", [(0, 0, 0)])], [], RULES_ONLY)
        assert _codes(expansion) == ["module_name_duplicate"]

    def test_missing_rules_raise(self, cubes):
        with pytest.raises(ValueError):
            expand_rules(cubes, None)

    def test_not_a_rule(self, cubes):
        with pytest.raises(TypeError):
            expand_rules(cubes, ["a:2 -> b:5"])


class TestTypedPass:
    """Test pairing of typed connectors."""

    def test_pairs_once_with_each_opposite(self, cubes):
        rules = [
            RuleTyped("a", 2, "floor"),
            RuleTyped("b", 5, "floor"),
            RuleTyped("c", 5, "floor"),
        ]
        expansion = expand_rules(cubes, rules, RULES_ONLY)
        assert expansion.explicit == (
            RuleExplicit("a", 2, "b", 5),
            RuleExplicit("a", 2, "c", 5),
        )
        assert expansion.count(ORIGIN_TYPED) == 2

    def test_same_direction_not_paired(self, cubes):
        rules = [RuleTyped("a", 2, "floor"), RuleTyped("b", 2, "floor")]
        expansion = expand_rules(cubes, rules, RULES_ONLY)
        assert expansion.explicit == ()
        assert _codes(expansion) == ["typed_unmatched", "typed_unmatched"]

    def test_no_match_warns(self, cubes):
        expansion = expand_rules(cubes, [RuleTyped("a", 2, "roof")], RULES_ONLY)
        assert expansion.explicit == ()
        assert _codes(expansion) == ["typed_unmatched"]
        assert expansion.issues[0].severity == "warning"

    def test_no_match_warning_can_be_silenced(self, cubes):
        config = ExpansionConfig(include_module_types=False, include_indifferent=False,
                                 warn_unmatched_typed=False)
        assert expand_rules(cubes, [RuleTyped("a", 2, "roof")], config).issues == []

    def test_different_types_not_paired(self, cubes):
        rules = [RuleTyped("a", 2, "floor"), RuleTyped("b", 5, "roof")]
        assert expand_rules(cubes, rules, RULES_ONLY).explicit == ()

    def test_reserved_type_rejected(self, cubes):
        expansion = expand_rules(cubes, [RuleTyped("a", 2, "indifferent")], RULES_ONLY)
        assert _codes(expansion) == ["rule_invalid"]

    def test_declared_types(self, floor_module, ceiling_module):
        config = ExpansionConfig(include_indifferent=False)
        expansion = expand_rules([floor_module, ceiling_module], [], config)
        assert expansion.explicit == (
            RuleExplicit("ceiling", 5, "slab", 2),
            RuleExplicit("slab", 2, "slab", 5),
        )
        # Declared types without a partner are not a warning
        assert expansion.issues == []

    def test_typed_rule_and_declared_type_merge(self, floor_module, ceiling_module):
        config = ExpansionConfig(include_indifferent=False)
        rules = [RuleTyped("slab", 2, "floor")]
        expansion = expand_rules([floor_module, ceiling_module], rules, config)
        assert len(expansion.explicit) == 2


class TestIndifferentPass:
    """Test the indifferent wildcard and its precedence."""

    def test_two_cubes_all_indifferent(self, cubes):
        expansion = expand_rules(cubes[:2], [])
        # Two +/- connectors on each side of three axes: 2 x 2 x 3
        assert len(expansion) == 12
        assert expansion.count(ORIGIN_INDIFFERENT) == 12

    def test_explicit_claims_both_ends(self, cubes):
        rules = [RuleExplicit("a", 2, "b", 5), RuleIndifferent("a", 0)]
        expansion = expand_rules(cubes[:2], rules)
        assert len(expansion) == 10
        assert RuleExplicit("a", 2, "b", 5) in expansion.explicit
        assert RuleExplicit("a", 5, "b", 2) in expansion.explicit
        assert RuleExplicit("a", 2, "a", 5) not in expansion.explicit
        assert RuleExplicit("b", 2, "b", 5) not in expansion.explicit

    def test_explicit_batch_adds_nothing(self, cubes):
        expansion = expand_rules(cubes[:2], [RuleExplicit("b", 5, "a", 2)])
        assert expansion.explicit == (RuleExplicit("a", 2, "b", 5),)
        assert expansion.origins == {RuleExplicit("a", 2, "b", 5): ORIGIN_EXPLICIT}

    def test_typed_connector_excluded(self, floor_module, cube_module):
        expansion = expand_rules([floor_module, cube_module], [])
        assert not any(r.involves(("slab", 2)) and r.involves(("cube", 5)) for r in expansion.explicit)
        assert RuleExplicit("cube", 2, "cube", 5) in expansion.explicit

    def test_indifferent_rules_only(self, cubes):
        rules = [RuleIndifferent("a", 2), RuleIndifferent("b", 5), RuleIndifferent("c", 0)]
        config = ExpansionConfig(include_module_types=False)
        expansion = expand_rules(cubes, rules, config)
        assert expansion.explicit == (RuleExplicit("a", 2, "b", 5),)

    def test_disabled(self, cubes):
        config = ExpansionConfig(include_indifferent=False)
        assert expand_rules(cubes, [], config).explicit == ()


class TestExpansionProperties:
    """Test output shape and idempotence."""

    def test_sorted_and_canonical(self, cubes, floor_module):
        expansion = expand_rules(cubes + [floor_module], [RuleExplicit("b", 5, "a", 2)])
        assert list(expansion.explicit) == sorted(expansion.explicit, key=rule_sort_key)
        assert all(r.source <= r.target for r in expansion.explicit)
        assert len(set(expansion.explicit)) == len(expansion.explicit)

    def test_idempotent(self, cubes, floor_module, ceiling_module, bar_module):
        modules = cubes + [floor_module, ceiling_module, bar_module]
        rules = [
            RuleExplicit("a", 2, "b", 5),
            RuleExplicit("bar", 1, "c", 4),
            RuleTyped("c", 2, "floor"),
            RuleIndifferent("a", 0),
        ]
        first = expand_rules(modules, rules)
        second = expand_rules(modules, list(first.explicit))
        assert second.explicit == first.explicit
        assert second.issues == []

    def test_idempotent_with_unmatched_typed(self):
        modules = [Module("a", [(0, 0, 0)])]
        first = expand_rules(modules, [RuleTyped("a", 2, "roof")])
        assert first.explicit == (RuleExplicit("a", 0, "a", 3), RuleExplicit("a", 1, "a", 4))
        second = expand_rules(modules, list(first.explicit))
        assert second.explicit == first.explicit
        assert RuleExplicit("a", 2, "a", 5) not in second.explicit


class TestCollectRules:
    """Test the final allowed-minus-disallowed rule set."""

    def test_outer_module_added(self, cube_module):
        expansion = collect_rules([cube_module], allowed=[])
        # cube and out: two connectors on each side of each axis
        assert len(expansion) == 12
        assert any(r.involves((OUTER_MODULE_NAME, 2)) for r in expansion.explicit)

    def test_outer_module_not_duplicated(self, cube_module):
        outer, _ = Module.empty_single(OUTER_MODULE_NAME)
        expansion = collect_rules([cube_module, outer], allowed=[])
        assert "module_name_duplicate" not in _codes(expansion)

    def test_disallowed_removed(self, cube_module):
        expansion = collect_rules(
            [cube_module],
            allowed=[],
            disallowed=[RuleExplicit("cube", 0, "cube", 3)],
        )
        assert len(expansion) == 11
        assert RuleExplicit("cube", 3, "cube", 0) not in expansion.explicit
        assert RuleExplicit("cube", 3, "cube", 0) not in expansion.origins

    def test_disallowed_typed_pair_among_themselves(self, floor_module):
        disallowed = [RuleTyped("slab", 2, "floor"), RuleTyped("slab", 5, "floor")]
        expansion = collect_rules([floor_module], allowed=[], disallowed=disallowed)
        assert RuleExplicit("slab", 2, "slab", 5) not in expansion.explicit

    def test_missing_allowed_raises(self, cube_module):
        with pytest.raises(ValueError):
            collect_rules([cube_module], None)


class TestUnusedAndSolverRules:

    def test_indifferent_for_unused(self, cube_module):
        existing = [RuleExplicit("cube", 2, "other", 5), RuleTyped("cube", 0, "wall"), RuleIndifferent("cube", 1)]
        rules = indifferent_rules_for_unused(cube_module, existing)
        assert [r.connector for r in rules] == [1, 3, 4, 5]
        assert all(isinstance(r, RuleIndifferent) for r in rules)

    def test_solver_rule_orientation(self, cubes):
        expected = [SolverRule("z", "a#0", "b#0")]
        assert to_solver_rules([RuleExplicit("a", 2, "b", 5)], cubes[:2]) == expected
        assert to_solver_rules([RuleExplicit("b", 5, "a", 2)], cubes[:2]) == expected

    def test_internal_rules_included(self, bar_module):
        assert to_solver_rules([], [bar_module]) == [SolverRule("x", "bar#0", "bar#1")]

    def test_unresolvable_skipped(self, cubes):
        rules = [RuleExplicit("ghost", 2, "a", 5), RuleExplicit("a", 2, "b", 4)]
        assert to_solver_rules(rules, cubes) == []

    def test_unique_and_sorted(self, cubes):
        rules = [RuleExplicit("a", 2, "b", 5), RuleExplicit("b", 5, "a", 2), RuleExplicit("a", 0, "c", 3)]
        result = to_solver_rules(rules, cubes)
        assert result == sorted(result)
        assert len(result) == 2


class TestRulesFromSlots:
    """Test reading explicit rules off an assembled grid."""

    @staticmethod
    def _boundary(module_name):
        return [RuleExplicit(module_name, f, OUTER_MODULE_NAME, (f + 3) % 6) for f in range(6)]

    def test_single_slot_touches_boundary(self, world_plane, cube_module):
        slots = [Slot(world_plane, GridIndex(0, 0, 0), (1, 1, 1), {"cube"})]
        rules, report = rules_from_slots(slots, [cube_module])
        assert report.is_valid
        assert report.issues == []
        assert rules == self._boundary("cube")

    def test_row(self, slot_row, cube_module):
        rules, _ = rules_from_slots(slot_row, [cube_module])
        assert len(rules) == 7
        assert RuleExplicit("cube", 0, "cube", 3) in rules
        assert not any(r.source_module == r.target_module == OUTER_MODULE_NAME for r in rules)

    def test_multi_part_module_uses_external_faces(self, world_plane, bar_module):
        slots = [Slot(world_plane, GridIndex(x, 0, 0), (1, 1, 1), {"bar"}) for x in range(2)]
        rules, _ = rules_from_slots(slots, [bar_module])
        inside = [r for r in rules if OUTER_MODULE_NAME not in (r.source_module, r.target_module)]
        assert inside == [RuleExplicit("bar", 3, "bar", 6)]
        assert all(
            bar_module.has_connector(index)
            for rule in rules
            for module_name, index in (rule.source, rule.target)
            if module_name == "bar"
        )

    def test_nondeterministic_slot(self, world_plane, cube_module):
        slots = [Slot.with_all(world_plane, GridIndex(0, 0, 0), (1, 1, 1))]
        rules, report = rules_from_slots(slots, [cube_module])
        assert rules == self._boundary("cube")
        assert _codes(report) == ["slots_nondeterministic"]
        assert report.is_valid

    def test_unknown_module_in_domain(self, world_plane, cube_module):
        slots = [Slot(world_plane, GridIndex(0, 0, 0), (1, 1, 1), {"tower"})]
        rules, report = rules_from_slots(slots, [cube_module])
        assert rules == []
        assert _codes(report) == ["slot_module_unknown"]

    def test_inconsistent_grid(self, slot_row, world_plane, cube_module):
        slots = slot_row + [Slot(world_plane, GridIndex(0, 0, 0), (1, 1, 1), {"cube"})]
        rules, report = rules_from_slots(slots, [cube_module])
        assert rules == []
        assert not report.is_valid

    def test_no_valid_modules(self, slot_row):
        rules, report = rules_from_slots(slot_row, [Module("gap", [(0, 0, 0), (2, 0, 0)]), None])
        assert rules == []
        assert not report.is_valid
        assert _codes(report) == ["module_invalid", "module_invalid", "modules_empty"]

    def test_missing_modules(self, slot_row):
        with pytest.raises(ValueError):
            rules_from_slots(slot_row, None)

    def test_scanned_rules_feed_the_solver(self, slot_row, cube_module):
        rules, _ = rules_from_slots(slot_row, [cube_module])
        outer, _ = Module.empty_single(OUTER_MODULE_NAME)
        solver_rules = to_solver_rules(rules, [cube_module, outer])
        assert SolverRule("x", "cube#0", "cube#0") in solver_rules
        assert SolverRule("z", "out#0", "cube#0") in solver_rules
