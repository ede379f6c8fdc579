"""
Host-agnostic command handlers.

Each handler takes plain inputs, runs one model operation and returns a
HandlerResult: the outputs plus messages for the host to show. Missing
required input aborts the handler with an error message; every other
problem is reported as a warning and the handler still produces what it can.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from voxel_wfc.contracts import (
    EMPTY_MODULE_NAME,
    INDIFFERENT_TAG,
    OUTER_MODULE_NAME,
    RESERVED_NAMES,
    SEVERITY_ERROR,
    SEVERITY_REMARK,
    SEVERITY_WARNING,
    ExpansionConfig,
    GridConfig,
    ModelIssue,
    VariantConfig,
)
from voxel_wfc.grid import Plane
from voxel_wfc.grid_consistency import add_boundary_slots, boundary_slots
from voxel_wfc.module import Module
from voxel_wfc.rule_expander import collect_rules as _collect_rules
from voxel_wfc.rule_expander import indifferent_rules_for_unused
from voxel_wfc.rule_expander import rules_from_slots as _rules_from_slots
from voxel_wfc.rules import Rule, RuleExplicit, RuleIndifferent, RuleTyped
from voxel_wfc.slot import Slot
from voxel_wfc.variants import generate_variants

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HandlerMessage:
    severity: str
    text: str

    def __str__(self) -> str:
        return f"{self.severity}: {self.text}"


@dataclass
class HandlerResult:
    outputs: List[Any] = field(default_factory=list)
    messages: List[HandlerMessage] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not any(m.severity == SEVERITY_ERROR for m in self.messages)

    def error(self, text: str) -> "HandlerResult":
        self.messages.append(HandlerMessage(SEVERITY_ERROR, text))
        return self

    def warning(self, text: str) -> "HandlerResult":
        self.messages.append(HandlerMessage(SEVERITY_WARNING, text))
        return self

    def remark(self, text: str) -> "HandlerResult":
        self.messages.append(HandlerMessage(SEVERITY_REMARK, text))
        return self

    def add_issues(self, issues: Iterable[ModelIssue]) -> "HandlerResult":
        for issue in issues:
            self.messages.append(HandlerMessage(issue.severity, issue.message))
        return self


def construct_module(
    name: Optional[str],
    parts: Optional[Sequence[Sequence[int]]],
    part_diagonal: Optional[Sequence[float]] = (1.0, 1.0, 1.0),
    base_plane: Optional[Plane] = None,
    connector_types: Optional[Mapping[int, str]] = None,
) -> HandlerResult:
    """Build a module from part offsets; outputs [module] when it is valid."""
    result = HandlerResult()
    if not name or not str(name).strip():
        return result.error("Module name is missing")
    if not parts:
        return result.error("Module parts are missing")
    if part_diagonal is None:
        return result.error("Part diagonal is missing")
    if str(name).strip().lower() in RESERVED_NAMES:
        result.warning(f"The module name '{name}' is reserved for modules created automatically")

    module = Module(name, parts, part_diagonal, base_plane, connector_types=connector_types)
    result.add_issues(module.issues)
    if module.is_valid:
        result.outputs.append(module)
    else:
        result.error(f"Module {module.name} is invalid: {module.why_not}")
    return result


def construct_empty_module(
    connector_type: Optional[str] = INDIFFERENT_TAG,
    part_diagonal: Optional[Sequence[float]] = (1.0, 1.0, 1.0),
    base_plane: Optional[Plane] = None,
) -> HandlerResult:
    """The reserved single-part empty module.

    Outputs ``[module, *rules]``: the module followed by one typed rule per
    connector, or just the module when its connectors are indifferent.
    """
    result = HandlerResult()
    if part_diagonal is None:
        return result.error("Part diagonal is missing")
    if min(part_diagonal) <= 0:
        return result.error("One or more part dimensions are not larger than 0")
    if connector_type is None or not str(connector_type).strip():
        connector_type = INDIFFERENT_TAG
    module, rules = Module.empty_single(EMPTY_MODULE_NAME, str(connector_type), part_diagonal, base_plane)
    result.add_issues(module.issues)
    result.outputs.append(module)
    result.outputs.extend(rules)
    return result


def module_variants(modules: Sequence[Module], allow_mirror: bool = False) -> HandlerResult:
    """All distinct rotated (and optionally mirrored) variants of each module."""
    result = HandlerResult()
    if not modules:
        return result.error("No modules collected")
    config = VariantConfig(allow_mirror=allow_mirror)
    for module in modules:
        if module is None:
            result.warning("Module is missing")
            continue
        variant_set = generate_variants(module, config)
        result.add_issues(variant_set.issues)
        result.outputs.extend(variant_set.variants)
        result.remark(f"Module {module.name} has {len(variant_set)} distinct variants")
    return result


def _connectors_at(modules: Sequence[Module], point: Sequence[float]):
    connectors = []
    for module in modules:
        if module is not None:
            connectors.extend(module.connectors_containing_point(point))
    return connectors


def rule_typed_from_point(
    modules: Sequence[Module],
    point: Optional[Sequence[float]],
    connector_type: Optional[str],
) -> HandlerResult:
    """A typed rule for every connector the point lies on."""
    result = HandlerResult()
    if not modules:
        return result.error("No modules collected")
    if point is None:
        return result.error("Point is missing")
    if connector_type is None or not str(connector_type).strip():
        return result.error("Connector type is missing")
    for connector in _connectors_at(modules, point):
        rule = RuleTyped(connector.module_name, connector.index, connector_type)
        if not rule.is_valid:
            return result.error(rule.why_not)
        result.outputs.append(rule)
    if not result.outputs:
        result.warning("The point does not mark any module connector")
    return result


def rule_indifferent_from_point(modules: Sequence[Module], point: Optional[Sequence[float]]) -> HandlerResult:
    result = HandlerResult()
    if not modules:
        return result.error("No modules collected")
    if point is None:
        return result.error("Point is missing")
    for connector in _connectors_at(modules, point):
        result.outputs.append(RuleIndifferent(connector.module_name, connector.index))
    if not result.outputs:
        result.warning("The point does not mark any module connector")
    return result


def rule_empty_from_point(modules: Sequence[Module], point: Optional[Sequence[float]]) -> HandlerResult:
    """Explicit rules letting every connector the point lies on touch the
    empty module."""
    result = HandlerResult()
    if not modules:
        return result.error("No modules collected")
    if point is None:
        return result.error("Point is missing")
    for connector in _connectors_at(modules, point):
        result.outputs.append(RuleExplicit(
            connector.module_name,
            connector.index,
            EMPTY_MODULE_NAME,
            connector.direction.flipped().face_index,
        ))
    if not result.outputs:
        result.warning("The point does not mark any module connector")
    return result


def rule_explicit_from_points(
    modules: Sequence[Module],
    start: Optional[Sequence[float]],
    end: Optional[Sequence[float]],
) -> HandlerResult:
    """Explicit rules between connectors marked by a start and an end point.

    Every connector under ``start`` is paired with every opposite connector
    under ``end``; non-opposite combinations are reported and skipped.
    """
    result = HandlerResult()
    if not modules:
        return result.error("No modules collected")
    if start is None or end is None:
        return result.error("Start or end point is missing")

    start_connectors = _connectors_at(modules, start)
    end_connectors = _connectors_at(modules, end)
    if not start_connectors:
        result.warning("The start point does not mark any module connector")
    if not end_connectors:
        result.warning("The end point does not mark any module connector")

    for a in start_connectors:
        for b in end_connectors:
            if not a.is_opposite(b):
                result.warning(f"Connectors {a} and {b} do not face each other")
                continue
            rule = RuleExplicit(a.module_name, a.index, b.module_name, b.index)
            if rule.is_valid:
                result.outputs.append(rule)
            else:
                result.warning(f"{rule}: {rule.why_not}")
    return result


def rule_indifferent_unused(modules: Sequence[Module], rules: Sequence[Rule]) -> HandlerResult:
    """Indifferent rules for every connector no existing rule mentions."""
    result = HandlerResult()
    if not modules:
        return result.error("No modules collected")
    for module in modules:
        if module is None:
            result.warning("Module is missing")
            continue
        result.outputs.extend(indifferent_rules_for_unused(module, rules or ()))
    if not result.outputs:
        result.remark("Every connector is already used by a rule")
    return result


def collect_rules(
    modules: Sequence[Module],
    allowed: Optional[Sequence[Rule]],
    disallowed: Sequence[Rule] = (),
    config: Optional[ExpansionConfig] = None,
) -> HandlerResult:
    """Final explicit rules for the solver, allowed minus disallowed."""
    result = HandlerResult()
    if not modules:
        return result.error("No modules collected")
    if not allowed:
        return result.error("No allowed rules collected")
    expansion = _collect_rules([m for m in modules if m is not None], allowed, disallowed or (), config)
    result.add_issues(expansion.issues)
    result.outputs.extend(expansion.explicit)
    if not expansion.explicit:
        result.warning("No rules remain after expansion")
    return result


def slots_add_boundary(
    slots: Sequence[Slot],
    layers: int = 1,
    domain: Optional[Iterable[str]] = None,
    config: Optional[GridConfig] = None,
) -> HandlerResult:
    """New slots around the grid, ``layers`` cells deep."""
    result = HandlerResult()
    if not slots:
        return result.error("No slots collected")
    if layers is None:
        return result.error("Layer count is missing")
    new_slots, report = add_boundary_slots(slots, layers, domain, config)
    result.add_issues(report.issues)
    result.outputs.extend(new_slots)
    if layers < 1:
        result.warning("Layer count is smaller than 1, no slots added")
    return result


def slots_are_boundary(
    slots: Sequence[Slot],
    layers: int = 1,
    config: Optional[GridConfig] = None,
) -> HandlerResult:
    """The slots lying within ``layers`` cells of the grid surface."""
    result = HandlerResult()
    if not slots:
        return result.error("No slots collected")
    if layers is None:
        return result.error("Layer count is missing")
    selected, report = boundary_slots(slots, layers, config)
    result.add_issues(report.issues)
    result.outputs.extend(selected)
    return result


def rules_from_slots(
    slots: Sequence[Slot],
    modules: Sequence[Module],
    include_boundary: bool = True,
    config: Optional[GridConfig] = None,
) -> HandlerResult:
    """Explicit rules read off an assembled grid of slots.

    Rules between modules come first, followed by the rules joining a
    module to the boundary of the grid when ``include_boundary`` is set.
    """
    result = HandlerResult()
    if not slots:
        return result.error("No slots collected")
    if not modules:
        return result.error("No modules collected")
    rules, report = _rules_from_slots(slots, modules, config)
    result.add_issues(report.issues)
    if not report.is_valid:
        return result
    inside = [r for r in rules if OUTER_MODULE_NAME not in (r.source_module, r.target_module)]
    boundary = [r for r in rules if OUTER_MODULE_NAME in (r.source_module, r.target_module)]
    result.outputs.extend(inside)
    if include_boundary:
        result.outputs.extend(boundary)
    result.remark(f"{len(inside)} rules between modules, {len(boundary)} on the boundary")
    return result
