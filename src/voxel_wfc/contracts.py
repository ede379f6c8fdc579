"""Shared constants, configs and issue records for the voxel WFC model."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

Vec2 = Tuple[float, float]
Vec3 = Tuple[float, float, float]

# Reserved connector type: matches only other indifferent connectors.
INDIFFERENT_TAG = "indifferent"

EMPTY_MODULE_NAME = "empty"
OUTER_MODULE_NAME = "out"
RESERVED_NAMES = (EMPTY_MODULE_NAME, OUTER_MODULE_NAME)

MAX_PARTS = 248
EPSILON = 1e-6

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"
SEVERITY_REMARK = "remark"


@dataclass(frozen=True)
class VariantConfig:
    """Options for generating rotated/mirrored module variants."""

    allow_mirror: bool = False
    preserve_diagonal: bool = False  # drop transforms that permute an anisotropic diagonal
    name_separator: str = "-"


@dataclass(frozen=True)
class ExpansionConfig:
    """Options for normalizing rules into the explicit relation."""

    include_module_types: bool = True  # treat declared connector types as typed rules
    include_indifferent: bool = True
    warn_unmatched_typed: bool = True


@dataclass(frozen=True)
class GridConfig:
    """Tolerances for comparing slot geometry."""

    diagonal_tolerance: float = EPSILON
    plane_tolerance: float = EPSILON


@dataclass(frozen=True)
class ModelIssue:
    """A non-fatal problem found while building or expanding the model."""

    code: str
    severity: str  # "error" | "warning" | "remark"
    message: str
    subject: Optional[str] = None

    def __str__(self) -> str:
        if self.subject:
            return f"[{self.severity}] {self.code} ({self.subject}): {self.message}"
        return f"[{self.severity}] {self.code}: {self.message}"


def to_vec3(values: Sequence[float]) -> Vec3:
    return (float(values[0]), float(values[1]), float(values[2]))


def warning(code: str, message: str, subject: Optional[str] = None) -> ModelIssue:
    return ModelIssue(code=code, severity=SEVERITY_WARNING, message=message, subject=subject)


def error(code: str, message: str, subject: Optional[str] = None) -> ModelIssue:
    return ModelIssue(code=code, severity=SEVERITY_ERROR, message=message, subject=subject)
