"""
Modules and their connectors.

A Module is a rigid shape made of unit voxel "parts". Every part has six
faces; faces touching another part of the same module are internal, the rest
are external Connectors that adjacency rules refer to.

Connector numbering convention: ``part_index * 6 + face_index`` where
face_index is X=0, Y=1, Z=2, -X=3, -Y=4, -Z=5.
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from shapely.geometry import Point, Polygon, box

from voxel_wfc.contracts import (
    EPSILON,
    INDIFFERENT_TAG,
    MAX_PARTS,
    ModelIssue,
    Vec3,
    to_vec3,
    warning,
)
from voxel_wfc.grid import ALL_DIRECTIONS, Direction, GridIndex, Plane
from voxel_wfc.rules import RuleExplicit, RuleTyped

logger = logging.getLogger(__name__)

# (axis index, sign) of the face plane's u and v axes, per face index.
# Each pair is chosen so that u x v points out of the face.
_FACE_FRAMES: Tuple[Tuple[Tuple[int, int], Tuple[int, int]], ...] = (
    ((1, 1), (2, 1)),    # +X
    ((0, -1), (2, 1)),   # +Y
    ((0, 1), (1, 1)),    # +Z
    ((1, -1), (2, 1)),   # -X
    ((0, 1), (2, 1)),    # -Y
    ((0, -1), (1, 1)),   # -Z
)

PartSignature = Tuple[Tuple[int, int, int], ...]
ConnectorSignature = Tuple[Tuple[Tuple[int, int, int], int, str], ...]
ModuleSignature = Tuple[PartSignature, ConnectorSignature]


@dataclass(frozen=True)
class Connector:
    """One face of a module part."""
    module_name: str
    part_index: int
    direction: Direction
    anchor_plane: Plane
    face: Polygon = field(compare=False)  # rectangle in anchor_plane's (u, v) frame
    connector_type: str = INDIFFERENT_TAG
    is_external: bool = True

    @property
    def index(self) -> int:
        return self.part_index * 6 + self.direction.face_index

    @property
    def is_indifferent(self) -> bool:
        return self.connector_type == INDIFFERENT_TAG

    def is_opposite(self, other: "Connector") -> bool:
        return self.direction.is_opposite(other.direction)

    def contains_point(self, point: Sequence[float], tolerance: float = EPSILON) -> bool:
        """True if ``point`` lies on the anchor plane, inside the face."""
        local = self.anchor_plane.to_local(point)
        if abs(local[2]) >= tolerance:
            return False
        return self.face.contains(Point(local[0], local[1]))

    def __str__(self) -> str:
        return f"{self.module_name}:{self.index}"


def _face_extents(direction: Direction, diagonal: Vec3) -> Tuple[float, float]:
    (u_axis, _), (v_axis, _) = _FACE_FRAMES[direction.face_index]
    return diagonal[u_axis], diagonal[v_axis]


def _build_face(
    module_name: str,
    part_index: int,
    center: GridIndex,
    direction: Direction,
    diagonal: Vec3,
    base_plane: Plane,
    is_external: bool,
    connector_type: str,
) -> Connector:
    axes = base_plane.axes()
    face_center = center.as_array() + 0.5 * direction.to_vector()
    origin = base_plane.to_world(face_center * np.asarray(diagonal, dtype=float))
    (u_axis, u_sign), (v_axis, v_sign) = _FACE_FRAMES[direction.face_index]
    anchor = Plane(to_vec3(origin), to_vec3(axes[u_axis] * u_sign), to_vec3(axes[v_axis] * v_sign))
    width, height = _face_extents(direction, diagonal)
    face = box(-width / 2, -height / 2, width / 2, height / 2)
    return Connector(
        module_name=module_name,
        part_index=part_index,
        direction=direction,
        anchor_plane=anchor,
        face=face,
        connector_type=connector_type,
        is_external=is_external,
    )


def structural_signature(
    parts: Sequence[GridIndex],
    typed_faces: Iterable[Tuple[int, int, str]],
) -> ModuleSignature:
    """Placement-independent structural key of a module.

    Parts are translated so the bounding-box minimum is the origin; every
    external connector contributes a (translated part, face index, type)
    triple. Two modules with equal signatures are geometrically
    interchangeable, whatever their names.

    Args:
        parts: Part offsets, indexed by part index.
        typed_faces: (part index, face index, connector type) per external
            connector.
    """
    if not parts:
        return ((), ())
    points = np.array([p.as_tuple() for p in parts], dtype=int)
    minimum = points.min(axis=0)
    normalized = [tuple(int(v) for v in row) for row in points - minimum]
    parts_key = tuple(sorted(normalized))
    connectors_key = tuple(sorted(
        (normalized[part_index], face_index, connector_type)
        for part_index, face_index, connector_type in typed_faces
    ))
    return parts_key, connectors_key


def _is_continuous(parts: Sequence[GridIndex]) -> bool:
    if not parts:
        return False
    remaining = set(parts)
    queue = deque([parts[0]])
    remaining.discard(parts[0])
    while queue:
        current = queue.popleft()
        for neighbor in current.neighbors():
            if neighbor in remaining:
                remaining.discard(neighbor)
                queue.append(neighbor)
    return not remaining


class Module:
    """A named rigid multi-voxel tile with typed boundary connectors.

    Construction never raises for bad geometry: empty, repeated or
    disconnected parts and a non-positive diagonal make the module invalid
    (see ``is_valid`` / ``why_not``). Only missing required values raise.

    Args:
        name: Unique module name (stored lower-cased).
        parts: Integer voxel offsets occupied by the module.
        part_diagonal: Voxel size along the base plane's x, y and z.
        base_plane: Frame in which the parts are laid out.
        connector_types: Connector index -> type tag. Unlisted external
            connectors are indifferent.
        source_name: Name of the module this one was derived from.
        source_connectors: Connector index -> connector index on the source.
    """

    def __init__(
        self,
        name: str,
        parts: Iterable[Sequence[int]],
        part_diagonal: Sequence[float] = (1.0, 1.0, 1.0),
        base_plane: Optional[Plane] = None,
        connector_types: Optional[Mapping[int, str]] = None,
        source_name: Optional[str] = None,
        source_connectors: Optional[Mapping[int, int]] = None,
    ):
        if name is None or not str(name).strip():
            raise ValueError("Module name is missing")
        if parts is None:
            raise ValueError("Module parts are missing")
        if part_diagonal is None:
            raise ValueError("Module part diagonal is missing")

        self._name = str(name).strip().lower()
        self._parts: Tuple[GridIndex, ...] = tuple(
            p if isinstance(p, GridIndex) else GridIndex.from_sequence(p) for p in parts
        )
        self._diagonal: Vec3 = to_vec3(part_diagonal)
        self._base_plane = base_plane if base_plane is not None else Plane.world_xy()
        self._source_name = source_name.lower() if source_name else self._name

        self._issues: List[ModelIssue] = self._check_geometry()

        raw_types = {int(k): str(v).strip().lower() for k, v in (connector_types or {}).items()}
        self._faces: Tuple[Connector, ...] = self._compute_faces(raw_types)
        self._external: Dict[int, Connector] = {
            c.index: c for c in self._faces if c.is_external
        }
        # Bad type assignments are dropped, the module itself stays usable.
        self._type_issues: List[ModelIssue] = self._check_connector_types(raw_types)
        self._connector_types: Dict[int, str] = {
            index: c.connector_type for index, c in self._external.items()
        }
        if source_connectors is None:
            self._source_connectors = {index: index for index in self._external}
        else:
            self._source_connectors = dict(source_connectors)

        for issue in self._issues + self._type_issues:
            logger.warning("Module %s: %s", self._name, issue.message)

    # ─── Validation ────────────────────────────────────────────────────────

    def _check_geometry(self) -> List[ModelIssue]:
        issues = []
        if not self._parts:
            issues.append(warning("module_empty", "Module has no parts", self._name))
            return issues
        if len(set(self._parts)) != len(self._parts):
            issues.append(warning("module_parts_repeated", "Part centers are repetitive", self._name))
        if len(self._parts) > MAX_PARTS:
            issues.append(warning(
                "module_too_large",
                f"Module has {len(self._parts)} parts, the limit is {MAX_PARTS}",
                self._name,
            ))
        if min(self._diagonal) <= 0:
            issues.append(warning(
                "module_diagonal",
                "One or more part dimensions are not larger than 0",
                self._name,
            ))
        if not _is_continuous(self._parts):
            issues.append(warning(
                "module_discontinuous",
                "The module is not continuous and therefore will not hold together",
                self._name,
            ))
        return issues

    def _check_connector_types(self, raw_types: Mapping[int, str]) -> List[ModelIssue]:
        issues = []
        for index, connector_type in sorted(raw_types.items()):
            if index not in self._external:
                issues.append(warning(
                    "connector_unknown",
                    f"Type '{connector_type}' assigned to connector {index}, "
                    f"which is not an external connector; the type is ignored",
                    self._name,
                ))
            if not connector_type:
                issues.append(warning(
                    "connector_type_empty",
                    f"Connector {index} has an empty type name",
                    self._name,
                ))
        return issues

    def _compute_faces(self, raw_types: Mapping[int, str]) -> Tuple[Connector, ...]:
        occupied = set(self._parts)
        faces = []
        for part_index, center in enumerate(self._parts):
            for direction in ALL_DIRECTIONS:
                is_external = center.step(direction) not in occupied
                index = part_index * 6 + direction.face_index
                connector_type = raw_types.get(index) or INDIFFERENT_TAG
                faces.append(_build_face(
                    self._name,
                    part_index,
                    center,
                    direction,
                    self._diagonal,
                    self._base_plane,
                    is_external,
                    connector_type if is_external else INDIFFERENT_TAG,
                ))
        return tuple(faces)

    @property
    def is_valid(self) -> bool:
        return not self._issues and len(self._external) > 0

    @property
    def why_not(self) -> str:
        if self._issues:
            return "; ".join(issue.message for issue in self._issues)
        if not self._external:
            return "Module has no external connectors"
        return ""

    @property
    def issues(self) -> List[ModelIssue]:
        """Geometry problems followed by ignored connector type assignments."""
        return self._issues + self._type_issues

    # ─── Accessors ─────────────────────────────────────────────────────────

    @property
    def name(self) -> str:
        return self._name

    @property
    def source_name(self) -> str:
        return self._source_name

    @property
    def parts(self) -> Tuple[GridIndex, ...]:
        return self._parts

    @property
    def part_diagonal(self) -> Vec3:
        return self._diagonal

    @property
    def base_plane(self) -> Plane:
        return self._base_plane

    @property
    def faces(self) -> Tuple[Connector, ...]:
        """All six faces of every part, internal ones included."""
        return self._faces

    @property
    def connectors(self) -> Tuple[Connector, ...]:
        """External connectors, ordered by index."""
        return tuple(self._external[i] for i in sorted(self._external))

    @property
    def connector_types(self) -> Dict[int, str]:
        return dict(self._connector_types)

    @property
    def source_connectors(self) -> Dict[int, int]:
        return dict(self._source_connectors)

    @property
    def part_names(self) -> Tuple[str, ...]:
        return tuple(f"{self._name}#{i}" for i in range(len(self._parts)))

    @property
    def pivot(self) -> Plane:
        """Base plane moved to the center of the first part."""
        if not self._parts:
            return self._base_plane
        return self._base_plane.with_origin(
            self._parts[0].to_cartesian(self._base_plane, self._diagonal)
        )

    def face(self, index: int) -> Optional[Connector]:
        """Any face by connector index, internal faces included."""
        if 0 <= index < len(self._faces):
            return self._faces[index]
        return None

    def connector(self, index: int) -> Optional[Connector]:
        return self._external.get(index)

    def has_connector(self, index: int) -> bool:
        return index in self._external

    def connector_type(self, index: int) -> str:
        return self._connector_types.get(index, INDIFFERENT_TAG)

    def connectors_containing_point(
        self,
        point: Sequence[float],
        tolerance: float = EPSILON,
    ) -> List[Connector]:
        return [c for c in self.connectors if c.contains_point(point, tolerance)]

    @property
    def internal_rules(self) -> Tuple[RuleExplicit, ...]:
        """Rules holding the parts together, one per internal face pair."""
        index_of = {center: i for i, center in enumerate(self._parts)}
        rules = []
        for this_index, center in enumerate(self._parts):
            for direction in ALL_DIRECTIONS[:3]:
                other_index = index_of.get(center.step(direction))
                if other_index is None:
                    continue
                rules.append(RuleExplicit(
                    self._name,
                    this_index * 6 + direction.face_index,
                    self._name,
                    other_index * 6 + direction.flipped().face_index,
                ))
        return tuple(rules)

    def signature(self) -> ModuleSignature:
        """Placement-independent structural key, see structural_signature."""
        return structural_signature(
            self._parts,
            ((c.part_index, c.direction.face_index, c.connector_type) for c in self._external.values()),
        )

    @classmethod
    def empty_single(
        cls,
        name: str,
        connector_type: str = INDIFFERENT_TAG,
        part_diagonal: Sequence[float] = (1.0, 1.0, 1.0),
        base_plane: Optional[Plane] = None,
    ) -> Tuple["Module", List[RuleTyped]]:
        """A one-part module whose six connectors all share one type.

        Returns the module and one typed rule per connector. For the
        indifferent tag the rules list is empty, since the declared connector
        types already make the module indifferent.
        """
        connector_type = connector_type.strip().lower()
        module = cls(
            name,
            [GridIndex(0, 0, 0)],
            part_diagonal,
            base_plane,
            connector_types={i: connector_type for i in range(6)},
        )
        if connector_type == INDIFFERENT_TAG:
            return module, []
        rules = [RuleTyped(module.name, i, connector_type) for i in range(6)]
        return module, rules

    def __repr__(self) -> str:
        return (
            f"Module({self._name!r}, parts={len(self._parts)}, "
            f"connectors={len(self._external)}, valid={self.is_valid})"
        )

    def __str__(self) -> str:
        text = (
            f"Module {self._name} occupies {len(self._parts)} slots "
            f"and has {len(self._external)} connectors."
        )
        if not self.is_valid:
            text += f" WARNING: {self.why_not}"
        return text
