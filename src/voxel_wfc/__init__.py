"""Public API for the voxel Wave Function Collapse data and rule model."""

from voxel_wfc.contracts import (
    EMPTY_MODULE_NAME,
    INDIFFERENT_TAG,
    OUTER_MODULE_NAME,
    ExpansionConfig,
    GridConfig,
    ModelIssue,
    VariantConfig,
)
from voxel_wfc.grid import Axis, Direction, GridIndex, Orientation, Plane
from voxel_wfc.grid_consistency import (
    GridReport,
    add_boundary_slots,
    base_planes_compatible,
    boundary_depth,
    boundary_frontier,
    boundary_layers,
    boundary_slots,
    diagonals_compatible,
    locations_unique,
    validate_slots,
)
from voxel_wfc.module import Connector, Module
from voxel_wfc.rule_expander import (
    RuleExpansion,
    collect_rules,
    expand_rules,
    indifferent_rules_for_unused,
    rules_from_slots,
    to_solver_rules,
)
from voxel_wfc.rules import Rule, RuleExplicit, RuleIndifferent, RuleTyped, SolverRule
from voxel_wfc.slot import Slot
from voxel_wfc.variants import VariantSet, generate_universe, generate_variants, propagate_rules

__all__ = [
    "EMPTY_MODULE_NAME",
    "INDIFFERENT_TAG",
    "OUTER_MODULE_NAME",
    "Axis",
    "Connector",
    "Direction",
    "ExpansionConfig",
    "GridConfig",
    "GridIndex",
    "GridReport",
    "ModelIssue",
    "Module",
    "Orientation",
    "Plane",
    "Rule",
    "RuleExpansion",
    "RuleExplicit",
    "RuleIndifferent",
    "RuleTyped",
    "Slot",
    "SolverRule",
    "VariantConfig",
    "VariantSet",
    "add_boundary_slots",
    "base_planes_compatible",
    "boundary_depth",
    "boundary_frontier",
    "boundary_layers",
    "boundary_slots",
    "collect_rules",
    "diagonals_compatible",
    "expand_rules",
    "generate_universe",
    "generate_variants",
    "indifferent_rules_for_unused",
    "locations_unique",
    "propagate_rules",
    "rules_from_slots",
    "to_solver_rules",
    "validate_slots",
]
