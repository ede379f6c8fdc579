"""A grid cell holding the set of module variants that may still occupy it."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Sequence, Set

import numpy as np

from voxel_wfc.contracts import Vec3, to_vec3
from voxel_wfc.grid import GridIndex, Plane
from voxel_wfc.module import Module


@dataclass
class Slot:
    """One cell of the world grid.

    ``domain`` belongs to the solver; the functions in grid_consistency only
    read it.
    """
    base_plane: Plane
    center: GridIndex
    diagonal: Vec3
    domain: Set[str] = field(default_factory=set)
    allowed_everything: bool = False

    def __post_init__(self):
        if self.base_plane is None:
            raise ValueError("Slot base plane is missing")
        if self.center is None:
            raise ValueError("Slot center is missing")
        if self.diagonal is None:
            raise ValueError("Slot diagonal is missing")
        if not isinstance(self.center, GridIndex):
            self.center = GridIndex.from_sequence(self.center)
        self.diagonal = to_vec3(self.diagonal)
        self.domain = {str(name).lower() for name in self.domain}

    @classmethod
    def with_all(
        cls,
        base_plane: Plane,
        center: GridIndex,
        diagonal: Sequence[float],
        all_names: Iterable[str] = (),
    ) -> "Slot":
        """A slot that accepts every module of the working set."""
        return cls(base_plane, center, diagonal, set(all_names), allowed_everything=True)

    @classmethod
    def with_modules(
        cls,
        base_plane: Plane,
        center: GridIndex,
        diagonal: Sequence[float],
        modules: Iterable[Module],
    ) -> "Slot":
        return cls(base_plane, center, diagonal, {m.name for m in modules})

    @property
    def is_deterministic(self) -> bool:
        return len(self.domain) == 1

    @property
    def allows_nothing(self) -> bool:
        return not self.allowed_everything and not self.domain

    @property
    def is_valid(self) -> bool:
        return not self.why_not

    @property
    def why_not(self) -> str:
        if min(self.diagonal) <= 0:
            return "One or more slot dimensions are not larger than 0"
        return ""

    def absolute_center(self) -> np.ndarray:
        return self.center.to_cartesian(self.base_plane, self.diagonal)

    def cage_corners(self) -> List[np.ndarray]:
        """The eight corners of the slot box in world coordinates."""
        center = self.center.as_array().astype(float)
        corners = []
        for dz in (-0.5, 0.5):
            for dy in (-0.5, 0.5):
                for dx in (-0.5, 0.5):
                    local = (center + (dx, dy, dz)) * np.asarray(self.diagonal)
                    corners.append(self.base_plane.to_world(local))
        return corners

    def __str__(self) -> str:
        if self.allowed_everything:
            contents = "everything"
        elif not self.domain:
            contents = "nothing"
        else:
            contents = ", ".join(sorted(self.domain))
        return f"Slot at {self.center} allows {contents}"
