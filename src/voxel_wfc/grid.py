"""
Integer grid coordinates, face directions and reference planes.

GridIndex addresses a voxel of the discrete world; a Plane plus a per-axis
voxel size ("diagonal") maps it to continuous coordinates. Direction is one
of the six axis-aligned faces of a voxel.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Sequence, Tuple

import numpy as np

from voxel_wfc.contracts import EPSILON, Vec3, to_vec3


class Axis(Enum):
    X = "x"
    Y = "y"
    Z = "z"


class Orientation(Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"


_AXIS_ORDER = (Axis.X, Axis.Y, Axis.Z)


@dataclass(frozen=True)
class Direction:
    """An axis-aligned face direction.

    Face indices follow the connector numbering convention:
    X=0, Y=1, Z=2, -X=3, -Y=4, -Z=5.
    """
    axis: Axis
    orientation: Orientation

    @property
    def axis_index(self) -> int:
        return _AXIS_ORDER.index(self.axis)

    @property
    def sign(self) -> int:
        return 1 if self.orientation is Orientation.POSITIVE else -1

    @property
    def face_index(self) -> int:
        offset = 0 if self.orientation is Orientation.POSITIVE else 3
        return self.axis_index + offset

    def is_opposite(self, other: "Direction") -> bool:
        """True iff both directions lie on the same axis and point apart."""
        return self.axis is other.axis and self.orientation is not other.orientation

    def flipped(self) -> "Direction":
        if self.orientation is Orientation.POSITIVE:
            return Direction(self.axis, Orientation.NEGATIVE)
        return Direction(self.axis, Orientation.POSITIVE)

    def to_vector(self) -> np.ndarray:
        vector = np.zeros(3, dtype=int)
        vector[self.axis_index] = self.sign
        return vector

    @classmethod
    def from_face_index(cls, face_index: int) -> "Direction":
        if not 0 <= face_index < 6:
            raise ValueError(f"Face index out of range: {face_index}")
        orientation = Orientation.POSITIVE if face_index < 3 else Orientation.NEGATIVE
        return cls(_AXIS_ORDER[face_index % 3], orientation)

    @classmethod
    def from_unit_vector(cls, vector: Sequence[int]) -> "Direction":
        """Direction of an integer unit vector such as (0, -1, 0)."""
        v = np.asarray(vector)
        nonzero = np.flatnonzero(v)
        if len(nonzero) != 1 or abs(int(v[nonzero[0]])) != 1:
            raise ValueError(f"Not an axis-aligned unit vector: {tuple(v)}")
        axis = _AXIS_ORDER[int(nonzero[0])]
        orientation = Orientation.POSITIVE if v[nonzero[0]] > 0 else Orientation.NEGATIVE
        return cls(axis, orientation)

    @classmethod
    def from_vector(
        cls,
        vector: Sequence[float],
        base_plane: "Plane",
        tolerance: float = EPSILON,
    ) -> "Direction":
        """Direction of a vector expressed in the axes of ``base_plane``."""
        v = np.asarray(vector, dtype=float)
        length = np.linalg.norm(v)
        if length < tolerance:
            raise ValueError("Cannot determine a direction from a zero vector")
        v = v / length
        for face_index in range(6):
            direction = cls.from_face_index(face_index)
            axis = base_plane.axes()[direction.axis_index] * direction.sign
            if np.allclose(v, axis, atol=tolerance):
                return direction
        raise ValueError(f"The axis cannot be determined from the vector {tuple(v)}")

    def __str__(self) -> str:
        return ("+" if self.sign > 0 else "-") + self.axis.value.upper()


ALL_DIRECTIONS: Tuple[Direction, ...] = tuple(Direction.from_face_index(i) for i in range(6))


def are_normals_opposite(
    normal_a: Sequence[float],
    normal_b: Sequence[float],
    tolerance: float = EPSILON,
) -> bool:
    """True iff two plane normals are anti-parallel.

    The general form of Direction.is_opposite for planes that are not
    aligned with the grid axes.
    """
    a = np.asarray(normal_a, dtype=float)
    b = np.asarray(normal_b, dtype=float)
    len_a = np.linalg.norm(a)
    len_b = np.linalg.norm(b)
    if len_a < tolerance or len_b < tolerance:
        return False
    return bool(abs(float((a / len_a) @ (b / len_b)) + 1.0) < tolerance)


@dataclass(frozen=True)
class Plane:
    """An oriented plane: origin plus orthonormal x and y axes."""
    origin: Vec3
    x_axis: Vec3
    y_axis: Vec3

    @classmethod
    def world_xy(cls) -> "Plane":
        return cls((0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (0.0, 1.0, 0.0))

    @classmethod
    def from_vectors(
        cls,
        origin: Sequence[float],
        x_axis: Sequence[float],
        y_axis: Sequence[float],
    ) -> "Plane":
        """Build a plane, orthonormalizing y against x."""
        x = np.asarray(x_axis, dtype=float)
        y = np.asarray(y_axis, dtype=float)
        if np.linalg.norm(x) < EPSILON:
            raise ValueError("Plane x axis has zero length")
        x = x / np.linalg.norm(x)
        y = y - (y @ x) * x
        if np.linalg.norm(y) < EPSILON:
            raise ValueError("Plane axes are parallel")
        y = y / np.linalg.norm(y)
        return cls(to_vec3(origin), to_vec3(x), to_vec3(y))

    @property
    def z_axis(self) -> Vec3:
        return to_vec3(np.cross(self.x_axis, self.y_axis))

    @property
    def normal(self) -> Vec3:
        return self.z_axis

    def axes(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        return (
            np.asarray(self.x_axis, dtype=float),
            np.asarray(self.y_axis, dtype=float),
            np.asarray(self.z_axis, dtype=float),
        )

    def to_world(self, local: Sequence[float]) -> np.ndarray:
        """Convert plane-local (u, v, w) coordinates to world space."""
        x, y, z = self.axes()
        return np.asarray(self.origin, dtype=float) + local[0] * x + local[1] * y + local[2] * z

    def to_local(self, point: Sequence[float]) -> np.ndarray:
        d = np.asarray(point, dtype=float) - np.asarray(self.origin, dtype=float)
        x, y, z = self.axes()
        return np.array([d @ x, d @ y, d @ z])

    def distance_to(self, point: Sequence[float]) -> float:
        """Signed distance from the plane along its normal."""
        return float(self.to_local(point)[2])

    def with_origin(self, origin: Sequence[float]) -> "Plane":
        return Plane(to_vec3(origin), self.x_axis, self.y_axis)

    def is_close(self, other: "Plane", tolerance: float = EPSILON) -> bool:
        return (
            np.allclose(self.origin, other.origin, atol=tolerance)
            and np.allclose(self.x_axis, other.x_axis, atol=tolerance)
            and np.allclose(self.y_axis, other.y_axis, atol=tolerance)
        )


@dataclass(frozen=True, order=True)
class GridIndex:
    """Integer voxel coordinate. Ordered lexicographically by (x, y, z)."""
    x: int
    y: int
    z: int

    def __add__(self, other: "GridIndex") -> "GridIndex":
        return GridIndex(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: "GridIndex") -> "GridIndex":
        return GridIndex(self.x - other.x, self.y - other.y, self.z - other.z)

    def __neg__(self) -> "GridIndex":
        return GridIndex(-self.x, -self.y, -self.z)

    def as_tuple(self) -> Tuple[int, int, int]:
        return (self.x, self.y, self.z)

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=int)

    @classmethod
    def from_sequence(cls, values: Sequence[int]) -> "GridIndex":
        return cls(int(values[0]), int(values[1]), int(values[2]))

    def step(self, direction: Direction) -> "GridIndex":
        return self + NEIGHBOR_OFFSETS[direction.face_index]

    def neighbors(self) -> Tuple["GridIndex", ...]:
        """The six Von Neumann neighbors, in face-index order."""
        return tuple(self + offset for offset in NEIGHBOR_OFFSETS)

    def is_neighbor(self, other: "GridIndex") -> bool:
        d = self - other
        return abs(d.x) + abs(d.y) + abs(d.z) == 1

    def to_cartesian(self, base_plane: Plane, diagonal: Sequence[float]) -> np.ndarray:
        """Voxel center in world coordinates."""
        scaled = (self.x * diagonal[0], self.y * diagonal[1], self.z * diagonal[2])
        return base_plane.to_world(scaled)

    @classmethod
    def from_cartesian(
        cls,
        point: Sequence[float],
        base_plane: Plane,
        diagonal: Sequence[float],
    ) -> "GridIndex":
        """Nearest voxel whose center is closest to ``point``."""
        local = base_plane.to_local(point)
        return cls(
            int(round(local[0] / diagonal[0])),
            int(round(local[1] / diagonal[1])),
            int(round(local[2] / diagonal[2])),
        )

    def to_1d(self, minimum: "GridIndex", maximum: "GridIndex") -> int:
        """Flat index within the block spanned by ``minimum``..``maximum``."""
        len_x = maximum.x - minimum.x + 1
        len_y = maximum.y - minimum.y + 1
        d = self - minimum
        return d.x + d.y * len_x + d.z * len_x * len_y

    @classmethod
    def from_1d(cls, index: int, minimum: "GridIndex", maximum: "GridIndex") -> "GridIndex":
        len_x = maximum.x - minimum.x + 1
        len_y = maximum.y - minimum.y + 1
        z, rest = divmod(index, len_x * len_y)
        y, x = divmod(rest, len_x)
        return cls(x + minimum.x, y + minimum.y, z + minimum.z)

    def __str__(self) -> str:
        return f"({self.x}, {self.y}, {self.z})"


NEIGHBOR_OFFSETS: Tuple[GridIndex, ...] = (
    GridIndex(1, 0, 0),
    GridIndex(0, 1, 0),
    GridIndex(0, 0, 1),
    GridIndex(-1, 0, 0),
    GridIndex(0, -1, 0),
    GridIndex(0, 0, -1),
)


def block_bounds(
    indices: Iterable[GridIndex],
    offset: GridIndex = GridIndex(0, 0, 0),
) -> Tuple[GridIndex, GridIndex]:
    """Inclusive bounding block of ``indices`` grown by ``offset`` on each side."""
    points = np.array([i.as_tuple() for i in indices], dtype=int)
    if len(points) == 0:
        raise ValueError("Cannot compute bounds of an empty index set")
    minimum = GridIndex.from_sequence(points.min(axis=0)) - offset
    maximum = GridIndex.from_sequence(points.max(axis=0)) + offset
    return minimum, maximum


def block_length(minimum: GridIndex, maximum: GridIndex) -> int:
    d = maximum - minimum
    return (d.x + 1) * (d.y + 1) * (d.z + 1)
