"""Tests for variants module."""
import numpy as np
import pytest

from voxel_wfc.contracts import VariantConfig
from voxel_wfc.module import Module
from voxel_wfc.rules import RuleExplicit, RuleIndifferent, RuleTyped
from voxel_wfc.variants import (
    cube_rotations,
    cube_symmetries,
    generate_universe,
    generate_variants,
    propagate_rules,
)


@pytest.fixture
def corner_module():
    """Cube with three distinct types on +X, +Y and +Z: no symmetry at all."""
    return Module("corner", [(0, 0, 0)], connector_types={0: "a", 1: "b", 2: "c"})


class TestCubeGroup:
    """Test the cube symmetry matrices."""

    def test_rotation_count(self):
        rotations = cube_rotations()
        assert len(rotations) == 24
        assert len({tuple(r.flatten()) for r in rotations}) == 24

    def test_identity_first(self):
        assert np.array_equal(cube_rotations()[0], np.eye(3, dtype=int))

    def test_proper(self):
        for r in cube_rotations():
            assert round(np.linalg.det(r)) == 1
            assert np.array_equal(r @ r.T, np.eye(3, dtype=int))

    def test_with_mirror(self):
        symmetries = cube_symmetries(allow_mirror=True)
        assert len(symmetries) == 48
        assert len({tuple(m.flatten()) for m in symmetries}) == 48
        assert sum(1 for m in symmetries if round(np.linalg.det(m)) == -1) == 24


class TestGenerateVariants:
    """Test variant counts against the module's symmetry."""

    @pytest.mark.parametrize("fixture_name, rotations, with_mirror", [
        ("cube_module", 1, 1),
        ("bar_module", 3, 3),
        ("floor_module", 3, 3),
        ("ceiling_module", 6, 6),
        ("l_module", 12, 12),
        ("chiral_module", 12, 24),
        ("corner_module", 24, 48),
    ])
    def test_counts(self, request, fixture_name, rotations, with_mirror):
        module = request.getfixturevalue(fixture_name)
        assert len(generate_variants(module)) == rotations
        assert len(generate_variants(module, VariantConfig(allow_mirror=True))) == with_mirror

    def test_count_divides_group_order(self, chiral_module, l_module, ceiling_module):
        for module in (chiral_module, l_module, ceiling_module):
            assert 24 % len(generate_variants(module)) == 0
            assert 48 % len(generate_variants(module, VariantConfig(allow_mirror=True))) == 0

    def test_signatures_unique(self, corner_module):
        variants = generate_variants(corner_module, VariantConfig(allow_mirror=True)).variants
        signatures = [v.signature() for v in variants]
        assert len(set(signatures)) == len(signatures)

    def test_identity_variant_present(self, chiral_module):
        variant_set = generate_variants(chiral_module)
        matches = [
            v for v in variant_set.variants
            if v.parts == chiral_module.parts and v.connector_types == chiral_module.connector_types
        ]
        assert len(matches) == 1

    def test_names(self, bar_module):
        variant_set = generate_variants(bar_module)
        assert variant_set.names == ["bar-0", "bar-1", "bar-2"]
        assert all(v.source_name == "bar" for v in variant_set.variants)

    def test_custom_separator(self, bar_module):
        names = generate_variants(bar_module, VariantConfig(name_separator="_")).names
        assert names[0] == "bar_0"

    def test_types_follow_faces(self, ceiling_module):
        variants = generate_variants(ceiling_module).variants
        typed_faces = sorted(
            index for v in variants for index, t in v.connector_types.items() if t == "floor"
        )
        assert typed_faces == [0, 1, 2, 3, 4, 5]

    def test_source_connectors(self, ceiling_module):
        for variant in generate_variants(ceiling_module).variants:
            floor = [i for i, t in variant.connector_types.items() if t == "floor"]
            assert [variant.source_connectors[i] for i in floor] == [5]

    def test_diagonal_permuted(self):
        module = Module("beam", [(0, 0, 0)], part_diagonal=(1.0, 1.0, 3.0))
        variants = generate_variants(module).variants
        assert sorted(v.part_diagonal for v in variants) == [
            (1.0, 1.0, 3.0), (1.0, 3.0, 1.0), (3.0, 1.0, 1.0),
        ]

    def test_preserve_diagonal(self):
        module = Module("beam", [(0, 0, 0)], part_diagonal=(1.0, 1.0, 3.0))
        variants = generate_variants(module, VariantConfig(preserve_diagonal=True)).variants
        assert [v.part_diagonal for v in variants] == [(1.0, 1.0, 3.0)]

    def test_variants_are_valid(self, chiral_module):
        assert all(v.is_valid for v in generate_variants(chiral_module).variants)

    def test_degenerate_module(self):
        variant_set = generate_variants(Module("gap", [(0, 0, 0), (2, 0, 0)]))
        assert len(variant_set) == 0
        assert variant_set.issues[0].code == "module_degenerate"

    def test_missing_module(self):
        with pytest.raises(ValueError):
            generate_variants(None)


class TestUniverse:

    def test_duplicate_names(self, cube_module, bar_module):
        variant_sets, issues = generate_universe([cube_module, bar_module, Module("cube", [(0, 0, 0)])])
        assert [vs.source_name for vs in variant_sets] == ["cube", "bar"]
        assert [i.code for i in issues] == ["module_name_duplicate"]


class TestPropagateRules:
    """Test restating source-module rules for variants."""

    def test_typed_follows_connector(self, ceiling_module):
        variant_sets, _ = generate_universe([ceiling_module])
        rules = propagate_rules([RuleTyped("ceiling", 5, "floor")], variant_sets)
        assert len(rules) == 6
        for rule in rules:
            variant = next(v for v in variant_sets[0].variants if v.name == rule.module)
            assert variant.connector_type(rule.connector) == "floor"

    def test_indifferent_follows_connector(self, cube_module):
        variant_sets, _ = generate_universe([cube_module])
        rules = propagate_rules([RuleIndifferent("cube", 2)], variant_sets)
        assert rules == [RuleIndifferent("cube-0", 2)]

    def test_explicit_keeps_opposite_pairs(self, cube_module, ceiling_module):
        variant_sets, _ = generate_universe([cube_module, ceiling_module])
        rules = propagate_rules([RuleExplicit("cube", 2, "ceiling", 5)], variant_sets)
        # Only the ceiling variant whose floor still faces down pairs with the cube top
        assert len(rules) == 1
        rule = rules[0]
        assert rule.source == ("cube-0", 2)
        ceiling = next(v for v in variant_sets[1].variants if v.name == rule.target_module)
        assert ceiling.connector_type(rule.target_connector) == "floor"
        assert rule.target_connector == 5

    def test_unknown_module_passes_through(self):
        rule = RuleTyped("other", 1, "x")
        assert propagate_rules([rule], []) == [rule]

    def test_not_a_rule(self):
        with pytest.raises(TypeError):
            propagate_rules(["cube:1"], [])
