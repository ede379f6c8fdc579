"""
Rotated and mirrored module variants.

Applies the symmetry group of the cube (24 proper rotations, 48 with one
mirror) to a module's part lattice, carries every connector's type over to
the face it lands on, and keeps one variant per distinct structural
signature and part diagonal. Symmetric modules therefore yield fewer than
24 (or 48) variants.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from voxel_wfc.contracts import ModelIssue, VariantConfig, warning
from voxel_wfc.grid import Direction, GridIndex
from voxel_wfc.module import Module, ModuleSignature, structural_signature
from voxel_wfc.rules import Rule, RuleExplicit, RuleIndifferent, RuleTyped

logger = logging.getLogger(__name__)

_IDENTITY = np.eye(3, dtype=int)
_MIRROR_X = np.diag([-1, 1, 1])


def cube_rotations() -> List[np.ndarray]:
    """The 24 proper rotations of the cube as integer matrices.

    Identity first, the rest in lexicographic order of their entries.
    """
    matrices = np.rint(Rotation.create_group("O").as_matrix()).astype(int)
    unique = {tuple(m.flatten()): m for m in matrices}
    ordered = sorted(unique.items(), key=lambda item: (bool((item[1] != _IDENTITY).any()), item[0]))
    return [m for _, m in ordered]


def cube_symmetries(allow_mirror: bool = False) -> List[np.ndarray]:
    """24 rotations, followed by their mirrored counterparts if allowed."""
    rotations = cube_rotations()
    if not allow_mirror:
        return rotations
    return rotations + [_MIRROR_X @ r for r in rotations]


@dataclass
class _Candidate:
    transform: np.ndarray
    parts: List[GridIndex]
    diagonal: Tuple[float, float, float]
    connector_types: Dict[int, str]
    source_connectors: Dict[int, int]
    signature: ModuleSignature


@dataclass
class VariantSet:
    """Distinct variants of one module, sorted by structural signature."""
    source_name: str
    variants: List[Module] = field(default_factory=list)
    transforms: List[np.ndarray] = field(default_factory=list)
    issues: List[ModelIssue] = field(default_factory=list)

    @property
    def names(self) -> List[str]:
        return [v.name for v in self.variants]

    def __len__(self) -> int:
        return len(self.variants)


def _transform_module(module: Module, matrix: np.ndarray) -> _Candidate:
    points = np.array([p.as_tuple() for p in module.parts], dtype=int)
    moved = points @ matrix.T
    # Keep the bounding-box minimum in place so the identity is exact.
    moved += points.min(axis=0) - moved.min(axis=0)
    parts = [GridIndex.from_sequence(row) for row in moved]

    diagonal = tuple(float(v) for v in np.abs(matrix) @ np.asarray(module.part_diagonal))

    connector_types: Dict[int, str] = {}
    source_connectors: Dict[int, int] = {}
    typed_faces = []
    for connector in module.connectors:
        direction = Direction.from_unit_vector(matrix @ connector.direction.to_vector())
        index = connector.part_index * 6 + direction.face_index
        connector_types[index] = connector.connector_type
        source_connectors[index] = module.source_connectors.get(connector.index, connector.index)
        typed_faces.append((connector.part_index, direction.face_index, connector.connector_type))

    return _Candidate(
        transform=matrix,
        parts=parts,
        diagonal=diagonal,
        connector_types=connector_types,
        source_connectors=source_connectors,
        signature=structural_signature(parts, typed_faces),
    )


def generate_variants(module: Module, config: Optional[VariantConfig] = None) -> VariantSet:
    """All distinct orientations of ``module``.

    The variant produced by the identity transform has exactly the source's
    parts and connector indices. Variants are named
    ``<name><separator><k>`` with k following signature order.

    An invalid module (no parts, repeated parts, ...) is reported in the
    returned issues and produces no variants.
    """
    if module is None:
        raise ValueError("Module is missing")
    if config is None:
        config = VariantConfig()

    result = VariantSet(source_name=module.name)
    if not module.is_valid:
        message = f"Module is degenerate and has no variants: {module.why_not}"
        logger.warning("%s: %s", module.name, message)
        result.issues.append(warning("module_degenerate", message, module.name))
        return result

    # Anisotropic parts make permuted diagonals distinct.
    unique: Dict[Tuple[ModuleSignature, Tuple[float, float, float]], _Candidate] = {}
    for matrix in cube_symmetries(config.allow_mirror):
        candidate = _transform_module(module, matrix)
        if config.preserve_diagonal and not np.allclose(candidate.diagonal, module.part_diagonal):
            continue
        # First transform wins; the identity comes first.
        unique.setdefault((candidate.signature, candidate.diagonal), candidate)

    for k, key in enumerate(sorted(unique)):
        candidate = unique[key]
        variant = Module(
            f"{module.name}{config.name_separator}{k}",
            candidate.parts,
            candidate.diagonal,
            module.base_plane,
            connector_types=candidate.connector_types,
            source_name=module.source_name,
            source_connectors=candidate.source_connectors,
        )
        result.variants.append(variant)
        result.transforms.append(candidate.transform)

    logger.info(
        "Module %s: %d distinct variants (mirror=%s)",
        module.name, len(result.variants), config.allow_mirror,
    )
    return result


def generate_universe(
    modules: Iterable[Module],
    config: Optional[VariantConfig] = None,
) -> Tuple[List[VariantSet], List[ModelIssue]]:
    """Variants of every module in a working set.

    Modules sharing a name are reported and only the first is expanded.
    """
    variant_sets: List[VariantSet] = []
    issues: List[ModelIssue] = []
    seen = set()
    for module in modules:
        if module.name in seen:
            message = "Module name is not unique within the working set"
            logger.warning("%s: %s", module.name, message)
            issues.append(warning("module_name_duplicate", message, module.name))
            continue
        seen.add(module.name)
        variant_set = generate_variants(module, config)
        issues.extend(variant_set.issues)
        variant_sets.append(variant_set)
    return variant_sets, issues


def _variant_refs(variant_set: VariantSet, connector: int) -> List[Tuple[Module, int]]:
    refs = []
    for variant in variant_set.variants:
        for index, source in variant.source_connectors.items():
            if source == connector:
                refs.append((variant, index))
    return refs


def propagate_rules(rules: Sequence[Rule], variant_sets: Sequence[VariantSet]) -> List[Rule]:
    """Re-state rules written against source modules for all their variants.

    Typed and indifferent rules follow their connector into every variant.
    An explicit rule becomes one rule per pair of variants whose mapped
    connectors face each other. Rules naming modules without a variant set
    are passed through unchanged.
    """
    by_source = {vs.source_name: vs for vs in variant_sets}
    propagated: List[Rule] = []
    for rule in rules:
        if isinstance(rule, RuleExplicit):
            sources = by_source.get(rule.source_module)
            targets = by_source.get(rule.target_module)
            if sources is None or targets is None:
                propagated.append(rule)
                continue
            for source, source_index in _variant_refs(sources, rule.source_connector):
                for target, target_index in _variant_refs(targets, rule.target_connector):
                    a = source.connector(source_index)
                    b = target.connector(target_index)
                    if a.is_opposite(b):
                        propagated.append(RuleExplicit(source.name, source_index, target.name, target_index))
        elif isinstance(rule, RuleTyped):
            variant_set = by_source.get(rule.module)
            if variant_set is None:
                propagated.append(rule)
                continue
            for variant, index in _variant_refs(variant_set, rule.connector):
                propagated.append(RuleTyped(variant.name, index, rule.connector_type))
        elif isinstance(rule, RuleIndifferent):
            variant_set = by_source.get(rule.module)
            if variant_set is None:
                propagated.append(rule)
                continue
            for variant, index in _variant_refs(variant_set, rule.connector):
                propagated.append(RuleIndifferent(variant.name, index))
        else:
            raise TypeError(f"Not a rule: {rule!r}")
    return propagated
