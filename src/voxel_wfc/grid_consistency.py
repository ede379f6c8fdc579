"""
Consistency checks and boundary queries over a snapshot of Slots.

All functions are pure: they read slot geometry and never touch a slot's
domain. A set of slots forms one grid only if the slots share a diagonal
and a base plane and no two of them sit on the same center.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

import numpy as np

from voxel_wfc.contracts import (
    EPSILON,
    OUTER_MODULE_NAME,
    SEVERITY_ERROR,
    GridConfig,
    ModelIssue,
    Vec3,
    error,
    warning,
)
from voxel_wfc.grid import NEIGHBOR_OFFSETS, GridIndex, Plane, block_bounds
from voxel_wfc.slot import Slot

logger = logging.getLogger(__name__)


def diagonals_compatible(slots: Sequence[Slot], tolerance: float = EPSILON) -> bool:
    """True if every slot has the same diagonal as the first one."""
    if not slots:
        return True
    first = np.asarray(slots[0].diagonal)
    return all(np.allclose(slot.diagonal, first, atol=tolerance) for slot in slots[1:])


def base_planes_compatible(slots: Sequence[Slot], tolerance: float = EPSILON) -> bool:
    if not slots:
        return True
    first = slots[0].base_plane
    return all(slot.base_plane.is_close(first, tolerance) for slot in slots[1:])


def locations_unique(items: Iterable[Union[Slot, GridIndex]]) -> bool:
    """True if no two slots (or grid indices) share a center."""
    seen: Set[GridIndex] = set()
    for item in items:
        center = item.center if isinstance(item, Slot) else item
        if center in seen:
            return False
        seen.add(center)
    return True


def boundary_frontier(occupied: Iterable[GridIndex]) -> Set[GridIndex]:
    """Cells adjacent (6-neighborhood) to ``occupied`` but not in it."""
    cells = set(occupied)
    frontier: Set[GridIndex] = set()
    for cell in cells:
        for offset in NEIGHBOR_OFFSETS:
            neighbor = cell + offset
            if neighbor not in cells:
                frontier.add(neighbor)
    return frontier


def boundary_layers(occupied: Iterable[GridIndex], layers: int) -> List[Set[GridIndex]]:
    """Successive frontier shells around ``occupied``.

    Shell k is the frontier of the occupied set grown by shells 1..k-1.
    """
    if layers < 1:
        logger.warning("Requested %d boundary layers, nothing to add", layers)
        return []
    grown = set(occupied)
    shells: List[Set[GridIndex]] = []
    for _ in range(layers):
        shell = boundary_frontier(grown)
        shells.append(shell)
        grown |= shell
    return shells


@dataclass
class GridReport:
    """Outcome of validate_slots.

    ``base_plane`` and ``diagonal`` are set only when all slots agree on them.
    """
    slots: List[Slot] = field(default_factory=list)
    issues: List[ModelIssue] = field(default_factory=list)
    base_plane: Optional[Plane] = None
    diagonal: Optional[Vec3] = None

    @property
    def is_valid(self) -> bool:
        return bool(self.slots) and not any(i.severity == SEVERITY_ERROR for i in self.issues)

    @property
    def centers(self) -> List[GridIndex]:
        return [slot.center for slot in self.slots]


def validate_slots(slots: Iterable[Optional[Slot]], config: Optional[GridConfig] = None) -> GridReport:
    """Drop invalid slots and check that the rest form a single grid."""
    if slots is None:
        raise ValueError("Slots are missing")
    if config is None:
        config = GridConfig()

    report = GridReport()
    for slot in slots:
        if slot is None or not slot.is_valid:
            reason = "Slot is missing" if slot is None else slot.why_not
            report.issues.append(warning("slot_invalid", reason, str(slot.center) if slot is not None else None))
            continue
        report.slots.append(slot)

    if not report.slots:
        report.issues.append(error("slots_empty", "No valid slots collected"))
        return report

    if diagonals_compatible(report.slots, config.diagonal_tolerance):
        report.diagonal = report.slots[0].diagonal
    else:
        report.issues.append(error("slots_diagonal", "Slots are not defined with the same diagonal"))

    if base_planes_compatible(report.slots, config.plane_tolerance):
        report.base_plane = report.slots[0].base_plane
    else:
        report.issues.append(error("slots_base_plane", "Slots are not defined with the same base plane"))

    if not locations_unique(report.slots):
        report.issues.append(error("slots_not_unique", "Slot centers are not unique"))

    for issue in report.issues:
        logger.warning("%s", issue)
    return report


def add_boundary_slots(
    slots: Iterable[Slot],
    layers: int = 1,
    domain: Optional[Iterable[str]] = None,
    config: Optional[GridConfig] = None,
) -> Tuple[List[Slot], GridReport]:
    """New slots filling ``layers`` frontier shells around a valid grid.

    The new slots share the grid's base plane and diagonal; their domain
    defaults to the boundary module only. Returns no slots when the input
    does not form a single grid.
    """
    report = validate_slots(slots, config)
    if not report.is_valid:
        return [], report

    names = {OUTER_MODULE_NAME} if domain is None else set(domain)
    new_slots = []
    for shell in boundary_layers(report.centers, layers):
        for center in sorted(shell):
            new_slots.append(Slot(report.base_plane, center, report.diagonal, set(names)))
    logger.info("Added %d boundary slots in %d layers", len(new_slots), max(layers, 0))
    return new_slots, report


def _axial_runs(occupied: np.ndarray, axis: int, reverse: bool) -> np.ndarray:
    # Count of consecutive occupied cells ending at each cell, walking along axis.
    cells = np.moveaxis(occupied, axis, 0)
    if reverse:
        cells = cells[::-1]
    runs = np.zeros(cells.shape, dtype=int)
    current = np.zeros(cells.shape[1:], dtype=int)
    for i in range(cells.shape[0]):
        current = np.where(cells[i], current + 1, 0)
        runs[i] = current
    if reverse:
        runs = runs[::-1]
    return np.moveaxis(runs, 0, axis)


def boundary_depth(centers: Iterable[GridIndex]) -> Dict[GridIndex, int]:
    """Axial depth of each occupied cell.

    The depth is the smallest number of occupied cells, the cell itself
    included, between it and an empty cell along any of the six axis
    directions. Cells on the surface have depth 1.
    """
    cells = list(centers)
    if not cells:
        return {}
    minimum, maximum = block_bounds(cells, GridIndex(1, 1, 1))
    shape = tuple((maximum - minimum).as_array() + 1)
    occupied = np.zeros(shape, dtype=bool)
    for cell in cells:
        occupied[(cell - minimum).as_tuple()] = True

    depth = np.full(shape, np.iinfo(int).max, dtype=int)
    for axis in range(3):
        for reverse in (False, True):
            depth = np.minimum(depth, _axial_runs(occupied, axis, reverse))
    return {cell: int(depth[(cell - minimum).as_tuple()]) for cell in cells}


def boundary_slots(
    slots: Iterable[Slot],
    layers: int = 1,
    config: Optional[GridConfig] = None,
) -> Tuple[List[Slot], GridReport]:
    """Slots lying within ``layers`` cells of the grid's surface."""
    report = validate_slots(slots, config)
    if not report.is_valid:
        return [], report
    if layers < 1:
        logger.warning("Requested %d boundary layers, no slot qualifies", layers)
        return [], report
    depth = boundary_depth(report.centers)
    selected = [slot for slot in report.slots if depth[slot.center] <= layers]
    logger.info("%d of %d slots lie on the boundary", len(selected), len(report.slots))
    return selected, report
