"""
Rule expansion: normalize typed, indifferent and explicit rules into one
symmetric relation of explicit connector pairs.

Explicit rules are checked and kept, typed connectors are paired with every
opposite connector of the same type, and indifferent connectors fill in only
between connectors that nothing more specific has claimed. The output is
sorted and canonical, so expanding it again yields the same relation.

rules_from_slots goes the other way: it reads explicit rules off an
assembled grid of slots.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from voxel_wfc.contracts import (
    INDIFFERENT_TAG,
    OUTER_MODULE_NAME,
    SEVERITY_REMARK,
    ExpansionConfig,
    GridConfig,
    ModelIssue,
    error,
    warning,
)
from voxel_wfc.grid import (
    ALL_DIRECTIONS,
    Axis,
    Direction,
    GridIndex,
    Orientation,
    block_bounds,
    block_length,
)
from voxel_wfc.grid_consistency import GridReport, validate_slots
from voxel_wfc.module import Connector, Module
from voxel_wfc.rules import (
    ConnectorRef,
    Rule,
    RuleExplicit,
    RuleIndifferent,
    RuleTyped,
    SolverRule,
    rule_sort_key,
)
from voxel_wfc.slot import Slot

logger = logging.getLogger(__name__)

ORIGIN_EXPLICIT = "explicit"
ORIGIN_TYPED = "typed"
ORIGIN_INDIFFERENT = "indifferent"


@dataclass
class RuleExpansion:
    """Result of expand_rules.

    ``origins`` records which pass first produced each explicit rule.
    """
    explicit: Tuple[RuleExplicit, ...] = ()
    issues: List[ModelIssue] = field(default_factory=list)
    origins: Dict[RuleExplicit, str] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.explicit)

    def count(self, origin: str) -> int:
        return sum(1 for value in self.origins.values() if value == origin)


def _index_modules(modules: Iterable[Module], issues: List[ModelIssue]) -> Dict[str, Module]:
    universe: Dict[str, Module] = {}
    for module in modules:
        if module is None:
            raise ValueError("Module is missing")
        if module.name in universe:
            issues.append(warning(
                "module_name_duplicate",
                "Module name is not unique, only the first module is used",
                module.name,
            ))
            continue
        if not module.is_valid:
            issues.append(warning(
                "module_invalid",
                f"Module is skipped: {module.why_not}",
                module.name,
            ))
            continue
        universe[module.name] = module
    return universe


def _resolve(
    universe: Dict[str, Module],
    ref: ConnectorRef,
    rule: Rule,
    issues: List[ModelIssue],
) -> Optional[Connector]:
    module_name, index = ref
    module = universe.get(module_name)
    if module is None:
        issues.append(warning(
            "module_unknown",
            f"{rule} refers to a module that is not in the working set",
            module_name,
        ))
        return None
    connector = module.connector(index)
    if connector is None:
        issues.append(warning(
            "connector_unknown",
            f"{rule} refers to connector {index}, which is not an external connector",
            module_name,
        ))
        return None
    return connector


def _pair(a: Connector, b: Connector) -> RuleExplicit:
    return RuleExplicit(a.module_name, a.index, b.module_name, b.index).canonical()


def expand_rules(
    modules: Iterable[Module],
    rules: Sequence[Rule],
    config: Optional[ExpansionConfig] = None,
) -> RuleExpansion:
    """Expand ``rules`` over ``modules`` into explicit connector pairs.

    Problems with individual rules (unknown modules or connectors, duplicates,
    self-connections, explicit pairs that do not face each other) are
    reported in the result's issues and the rule is skipped; the rest of the
    batch is still expanded.

    A non-empty batch made only of explicit rules is taken as an already
    expanded relation: the rules are checked and canonicalized, but declared
    module types and indifferent connectors add nothing. Feeding a result's
    ``explicit`` back in therefore returns the same relation.

    Args:
        modules: The working set. Invalid modules are skipped with a warning.
        rules: Explicit, typed and indifferent rules in any order.
        config: Which implicit sources of types to include.

    Returns:
        RuleExpansion with a sorted tuple of canonical explicit rules.
    """
    if rules is None:
        raise ValueError("Rules are missing")
    if config is None:
        config = ExpansionConfig()

    issues: List[ModelIssue] = []
    universe = _index_modules(modules, issues)

    origins: Dict[RuleExplicit, str] = {}
    claimed: Set[ConnectorRef] = set()
    typed: Dict[Tuple[ConnectorRef, str], Connector] = {}
    typed_from_rules: Set[Tuple[ConnectorRef, str]] = set()
    indifferent: Dict[ConnectorRef, Connector] = {}
    seen: Set[Rule] = set()

    for rule in rules:
        if rule is None:
            raise ValueError("Rule is missing")
        if not isinstance(rule, (RuleExplicit, RuleTyped, RuleIndifferent)):
            raise TypeError(f"Not a rule: {rule!r}")
        if rule in seen:
            issues.append(warning("rule_duplicate", f"{rule} is listed more than once"))
            continue
        seen.add(rule)
        if not rule.is_valid:
            issues.append(warning("rule_invalid", f"{rule}: {rule.why_not}"))
            continue

        if isinstance(rule, RuleExplicit):
            source = _resolve(universe, rule.source, rule, issues)
            target = _resolve(universe, rule.target, rule, issues)
            if source is None or target is None:
                continue
            if not source.is_opposite(target):
                issues.append(warning(
                    "rule_not_opposite",
                    f"{rule}: connectors {source.direction} and {target.direction} do not face each other",
                ))
                continue
            origins.setdefault(rule.canonical(), ORIGIN_EXPLICIT)
            claimed.update((rule.source, rule.target))
        elif isinstance(rule, RuleTyped):
            connector = _resolve(universe, rule.ref, rule, issues)
            if connector is None:
                continue
            typed[(rule.ref, rule.connector_type)] = connector
            typed_from_rules.add((rule.ref, rule.connector_type))
            claimed.add(rule.ref)
        else:
            connector = _resolve(universe, rule.ref, rule, issues)
            if connector is None:
                continue
            indifferent[rule.ref] = connector

    # A batch of explicit pairs is already an expanded relation.
    explicit_only = bool(rules) and all(isinstance(rule, RuleExplicit) for rule in rules)
    if explicit_only:
        logger.debug("All %d rules are explicit, skipping implicit passes", len(rules))

    if config.include_module_types and not explicit_only:
        for module in universe.values():
            for connector in module.connectors:
                ref = (module.name, connector.index)
                if connector.is_indifferent:
                    indifferent.setdefault(ref, connector)
                else:
                    typed.setdefault((ref, connector.connector_type), connector)
                    claimed.add(ref)

    # Typed pass: same type, facing each other.
    by_type: Dict[str, List[Tuple[ConnectorRef, Connector]]] = defaultdict(list)
    for (ref, connector_type), connector in sorted(typed.items(), key=lambda item: item[0]):
        by_type[connector_type].append((ref, connector))

    matched: Set[Tuple[ConnectorRef, str]] = set()
    for connector_type, entries in by_type.items():
        for i, (ref_a, a) in enumerate(entries):
            for ref_b, b in entries[i + 1:]:
                if not a.is_opposite(b):
                    continue
                origins.setdefault(_pair(a, b), ORIGIN_TYPED)
                matched.add((ref_a, connector_type))
                matched.add((ref_b, connector_type))

    for key in sorted(typed):
        if key in matched:
            continue
        (module_name, index), connector_type = key
        if key in typed_from_rules and config.warn_unmatched_typed:
            issues.append(warning(
                "typed_unmatched",
                f"No connector faces {module_name}:{index} with type '{connector_type}'",
                module_name,
            ))
        else:
            logger.debug("Declared type '%s' on %s:%d has no counterpart", connector_type, module_name, index)

    # Indifferent pass: only between unclaimed connectors.
    if config.include_indifferent and not explicit_only:
        free = [
            connector for ref, connector in sorted(indifferent.items())
            if ref not in claimed
        ]
        for i, a in enumerate(free):
            for b in free[i + 1:]:
                if a.is_opposite(b):
                    origins.setdefault(_pair(a, b), ORIGIN_INDIFFERENT)

    result = RuleExpansion(
        explicit=tuple(sorted(origins, key=rule_sort_key)),
        issues=issues,
        origins=origins,
    )
    for issue in issues:
        logger.warning("%s", issue)
    logger.info(
        "Expanded %d rules into %d explicit pairs (%d explicit, %d typed, %d indifferent)",
        len(rules), len(result),
        result.count(ORIGIN_EXPLICIT), result.count(ORIGIN_TYPED), result.count(ORIGIN_INDIFFERENT),
    )
    return result


def collect_rules(
    modules: Iterable[Module],
    allowed: Sequence[Rule],
    disallowed: Sequence[Rule] = (),
    config: Optional[ExpansionConfig] = None,
) -> RuleExpansion:
    """Final rule set for the solver.

    Adds the reserved boundary module (all faces indifferent) to the working
    set, expands the allowed rules and removes every pair that the disallowed
    rules expand to. Disallowed typed rules only pair among themselves.
    """
    if allowed is None:
        raise ValueError("Allowed rules are missing")
    if config is None:
        config = ExpansionConfig()

    universe = list(modules)
    if not any(m.name == OUTER_MODULE_NAME for m in universe):
        outer, _ = Module.empty_single(OUTER_MODULE_NAME, INDIFFERENT_TAG)
        universe.append(outer)

    allowed_expansion = expand_rules(universe, allowed, config)
    result = RuleExpansion(
        explicit=allowed_expansion.explicit,
        issues=list(allowed_expansion.issues),
        origins=dict(allowed_expansion.origins),
    )
    if not disallowed:
        return result

    disallowed_expansion = expand_rules(
        universe,
        disallowed,
        replace(config, include_module_types=False, include_indifferent=False),
    )
    result.issues.extend(disallowed_expansion.issues)
    removed = set(disallowed_expansion.explicit)
    result.explicit = tuple(r for r in result.explicit if r not in removed)
    result.origins = {r: o for r, o in result.origins.items() if r not in removed}
    logger.info(
        "Removed %d disallowed pairs, %d remain",
        len(allowed_expansion.explicit) - len(result.explicit), len(result.explicit),
    )
    return result


def indifferent_rules_for_unused(module: Module, existing_rules: Sequence[Rule]) -> List[RuleIndifferent]:
    """An indifferent rule for every connector of ``module`` no explicit or
    typed rule mentions."""
    if module is None:
        raise ValueError("Module is missing")
    used: Set[ConnectorRef] = set()
    for rule in existing_rules or ():
        if isinstance(rule, RuleExplicit):
            used.update((rule.source, rule.target))
        elif isinstance(rule, RuleTyped):
            used.add(rule.ref)
    return [
        RuleIndifferent(module.name, connector.index)
        for connector in module.connectors
        if (module.name, connector.index) not in used
    ]


def to_solver_rules(explicit: Iterable[RuleExplicit], modules: Iterable[Module]) -> List[SolverRule]:
    """Part-level adjacency triples for the solver.

    Each explicit rule becomes ``(axis, low part, high part)`` where the low
    part is the one whose connector faces the positive direction. Internal
    rules of every module are included so multi-part modules hold together.
    Rules that cannot be resolved are skipped with a warning.
    """
    universe = {m.name: m for m in modules}
    rules = list(explicit)
    for module in universe.values():
        rules.extend(module.internal_rules)

    triples: Set[SolverRule] = set()
    for rule in rules:
        source_module = universe.get(rule.source_module)
        target_module = universe.get(rule.target_module)
        if source_module is None or target_module is None:
            logger.warning("Skipping %s: unknown module", rule)
            continue
        source = source_module.face(rule.source_connector)
        target = target_module.face(rule.target_connector)
        if source is None or target is None or not source.is_opposite(target):
            logger.warning("Skipping %s: connectors do not face each other", rule)
            continue
        if source.direction.sign < 0:
            source, target = target, source
            source_module, target_module = target_module, source_module
        triples.add(SolverRule(
            source.direction.axis.value,
            source_module.part_names[source.part_index],
            target_module.part_names[target.part_index],
        ))
    return sorted(triples)


def _part_owners(modules: Iterable[Module]) -> Dict[str, Tuple[Module, int]]:
    return {part: (module, i) for module in modules for i, part in enumerate(module.part_names)}


def _explicit_from_solver_rule(
    rule: SolverRule,
    owners: Mapping[str, Tuple[Module, int]],
) -> Optional[RuleExplicit]:
    """The explicit rule joining the touching faces of two parts, or None
    when either part is unknown or its face is internal."""
    low = owners.get(rule.low_part)
    high = owners.get(rule.high_part)
    if low is None or high is None:
        return None
    (low_module, low_index), (high_module, high_index) = low, high
    positive = Direction(Axis(rule.axis), Orientation.POSITIVE)
    source = low_module.connector(low_index * 6 + positive.face_index)
    target = high_module.connector(high_index * 6 + positive.flipped().face_index)
    if source is None or target is None:
        return None
    return RuleExplicit(low_module.name, source.index, high_module.name, target.index).canonical()


def _add_issue(report: GridReport, issue: ModelIssue) -> None:
    report.issues.append(issue)
    if issue.severity == SEVERITY_REMARK:
        logger.info("%s", issue)
    else:
        logger.warning("%s", issue)


def _in_block(index: GridIndex, minimum: GridIndex, maximum: GridIndex) -> bool:
    return all(
        lo <= value <= hi
        for value, lo, hi in zip(index.as_tuple(), minimum.as_tuple(), maximum.as_tuple())
    )


def rules_from_slots(
    slots: Iterable[Optional[Slot]],
    modules: Iterable[Optional[Module]],
    config: Optional[GridConfig] = None,
) -> Tuple[List[RuleExplicit], GridReport]:
    """Explicit rules describing the connections found in a grid of slots.

    Each slot stands for every part of the modules its domain names, or of
    all modules when it allows everything. The grid is padded with one
    layer of slots holding the reserved boundary module. Every pair of
    neighbouring slots then yields one rule per combination of their parts
    whose touching faces are both external connectors. Rules between two
    boundary parts are left out.

    Slots naming an unavailable module are reported and contribute nothing.
    Non-deterministic slots are allowed and yield every combination.

    Returns:
        Sorted canonical rules and the grid report. The rules are empty when
        the report is not valid.
    """
    if modules is None:
        raise ValueError("Modules are missing")
    report = validate_slots(slots, config)
    if not report.is_valid:
        return [], report

    universe: Dict[str, Module] = {}
    for module in modules:
        if module is None or not module.is_valid:
            _add_issue(report, warning(
                "module_invalid",
                "Module is missing" if module is None else f"Module is invalid: {module.why_not}",
                None if module is None else module.name,
            ))
            continue
        universe.setdefault(module.name, module)
    if not universe:
        _add_issue(report, error("modules_empty", "No valid modules collected"))
        return [], report
    if OUTER_MODULE_NAME not in universe:
        universe[OUTER_MODULE_NAME], _ = Module.empty_single(OUTER_MODULE_NAME, INDIFFERENT_TAG)

    nondeterministic = sum(1 for slot in report.slots if not slot.is_deterministic)
    if nondeterministic:
        _add_issue(report, ModelIssue(
            "slots_nondeterministic",
            SEVERITY_REMARK,
            f"{nondeterministic} slots are non-deterministic, every allowed combination was extracted",
        ))

    all_parts = tuple(part for module in universe.values() for part in module.part_names)
    minimum, maximum = block_bounds(report.centers, GridIndex(1, 1, 1))
    world: List[Optional[Tuple[str, ...]]] = [None] * block_length(minimum, maximum)
    for slot in report.slots:
        index = slot.center.to_1d(minimum, maximum)
        if slot.allowed_everything:
            world[index] = all_parts
            continue
        unknown = sorted(name for name in slot.domain if name not in universe)
        if unknown:
            _add_issue(report, warning(
                "slot_module_unknown",
                f"Slot refers to unavailable modules: {', '.join(unknown)}",
                str(slot.center),
            ))
            world[index] = ()
            continue
        world[index] = tuple(part for name in sorted(slot.domain) for part in universe[name].part_names)

    outer_parts = universe[OUTER_MODULE_NAME].part_names
    owners = _part_owners(universe.values())
    found: Set[RuleExplicit] = set()
    for i, parts in enumerate(world):
        if parts is None:
            parts = outer_parts
        center = GridIndex.from_1d(i, minimum, maximum)
        for direction in ALL_DIRECTIONS[:3]:
            neighbor = center.step(direction)
            if not _in_block(neighbor, minimum, maximum):
                continue
            other_parts = world[neighbor.to_1d(minimum, maximum)]
            if other_parts is None:
                other_parts = outer_parts
            for low in parts:
                for high in other_parts:
                    rule = _explicit_from_solver_rule(SolverRule(direction.axis.value, low, high), owners)
                    if rule is None:
                        continue
                    if rule.source_module == OUTER_MODULE_NAME and rule.target_module == OUTER_MODULE_NAME:
                        continue
                    found.add(rule)

    rules = sorted(found, key=rule_sort_key)
    logger.info("Scanned %d slots into %d rules", len(report.slots), len(rules))
    return rules, report
