"""
Slice geometry: stack normal, ordering along the normal and stackability checks.

Ordering never trusts the caller's sequence or the external ``sort_key``;
every consumer re-derives it from ``image_position_patient`` projected onto
the normal of the first slice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Sequence, Tuple

import numpy as np

from core.base import Instance, Vector3
from core.errors import EmptyStackError
from config import (
    GEOMETRY_ORIENTATION_TOLERANCE,
    GEOMETRY_PIXEL_SPACING_TOLERANCE,
    GEOMETRY_DUPLICATE_TOLERANCE,
    GEOMETRY_SPACING_DEVIATION,
    GEOMETRY_MIN_SLICES,
)

logger = logging.getLogger(__name__)


class IssueCode(Enum):
    """Machine-readable validation issue kinds."""
    EMPTY_STACK = "empty_stack"
    TOO_FEW_SLICES = "too_few_slices"
    INCONSISTENT_GEOMETRY = "inconsistent_geometry"
    INCONSISTENT_SPACING = "inconsistent_spacing"
    DUPLICATE_SLICE_POSITION = "duplicate_slice_position"


@dataclass(frozen=True)
class ValidationIssue:
    code: IssueCode
    message: str
    severity: str  # "error" | "warning"


@dataclass
class ValidationResult:
    """Aggregated outcome of ``validate``; errors make a stack unusable."""
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def errors(self) -> List[str]:
        return [i.message for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> List[str]:
        return [i.message for i in self.issues if i.severity == "warning"]

    @property
    def valid(self) -> bool:
        return not self.errors

    def has(self, code: IssueCode) -> bool:
        return any(i.code == code for i in self.issues)

    def error(self, code: IssueCode, message: str) -> None:
        self.issues.append(ValidationIssue(code, message, "error"))

    def warn(self, code: IssueCode, message: str) -> None:
        self.issues.append(ValidationIssue(code, message, "warning"))

    def to_dict(self) -> dict:
        return {"valid": self.valid, "errors": self.errors, "warnings": self.warnings}


@dataclass(frozen=True)
class SortResult:
    sorted_instances: List[Instance]
    average_spacing: float
    normal: Vector3
    positions: Tuple[float, ...]


def compute_normal(orientation: Sequence[float]) -> Vector3:
    """
    Slice normal = row direction x column direction.

    The result is scaled to unit length; a degenerate orientation (parallel or
    zero cosines) yields the zero vector unchanged.
    """
    if len(orientation) != 6:
        raise ValueError(f"Expected 6 direction cosines, got {len(orientation)}")
    row_dir = np.asarray(orientation[0:3], dtype=np.float64)
    col_dir = np.asarray(orientation[3:6], dtype=np.float64)
    normal = np.cross(row_dir, col_dir)
    norm = float(np.linalg.norm(normal))
    if norm > 0.0:
        normal = normal / norm
    return (float(normal[0]), float(normal[1]), float(normal[2]))


def project_onto_normal(position: Sequence[float], normal: Sequence[float]) -> float:
    """Scalar position of a slice along the stack axis."""
    return float(
        position[0] * normal[0] + position[1] * normal[1] + position[2] * normal[2]
    )


def sort_by_position(instances: Sequence[Instance]) -> SortResult:
    """
    Sort slices ascending by their projection onto the first slice's normal.

    Raises:
        EmptyStackError: if ``instances`` is empty.
    """
    if not instances:
        raise EmptyStackError()

    normal = compute_normal(instances[0].image_orientation_patient)
    projected = [
        (project_onto_normal(inst.image_position_patient, normal), inst)
        for inst in instances
    ]
    # Stable: equal positions keep their incoming order
    projected.sort(key=lambda p: p[0])
    positions = tuple(p for p, _ in projected)

    if len(positions) > 1:
        average_spacing = abs((positions[-1] - positions[0]) / (len(positions) - 1))
    else:
        average_spacing = instances[0].slice_thickness or 1.0

    return SortResult(
        sorted_instances=[inst for _, inst in projected],
        average_spacing=float(average_spacing),
        normal=normal,
        positions=positions,
    )


def _orientations_match(a: Sequence[float], b: Sequence[float]) -> bool:
    return all(abs(a[i] - b[i]) <= GEOMETRY_ORIENTATION_TOLERANCE for i in range(6))


def _pixel_spacings_match(a: Sequence[float], b: Sequence[float]) -> bool:
    return (
        abs(a[0] - b[0]) < GEOMETRY_PIXEL_SPACING_TOLERANCE
        and abs(a[1] - b[1]) < GEOMETRY_PIXEL_SPACING_TOLERANCE
    )


def validate(instances: Sequence[Instance]) -> ValidationResult:
    """
    Check whether a series can be stacked into one volume.

    Issues are aggregated and returned, never raised.
    """
    result = ValidationResult()

    if len(instances) < GEOMETRY_MIN_SLICES:
        code = IssueCode.EMPTY_STACK if not instances else IssueCode.TOO_FEW_SLICES
        result.error(code, f"Minimum {GEOMETRY_MIN_SLICES} slices required for MPR")
        return result

    reference = instances[0]

    mismatched_dims = [
        inst for inst in instances
        if inst.rows != reference.rows or inst.columns != reference.columns
    ]
    if mismatched_dims:
        result.error(
            IssueCode.INCONSISTENT_GEOMETRY,
            f"{len(mismatched_dims)} slices have inconsistent dimensions. "
            f"Expected {reference.columns}x{reference.rows}",
        )

    mismatched_orient = [
        inst for inst in instances
        if not _orientations_match(inst.image_orientation_patient, reference.image_orientation_patient)
    ]
    if mismatched_orient:
        result.error(
            IssueCode.INCONSISTENT_GEOMETRY,
            f"{len(mismatched_orient)} slices have inconsistent orientation",
        )

    mismatched_spacing = [
        inst for inst in instances
        if not _pixel_spacings_match(inst.pixel_spacing, reference.pixel_spacing)
    ]
    if mismatched_spacing:
        result.warn(
            IssueCode.INCONSISTENT_SPACING,
            f"{len(mismatched_spacing)} slices have slightly different pixel spacing",
        )

    positions = sort_by_position(instances).positions
    gaps = np.diff(np.asarray(positions, dtype=np.float64))
    if gaps.size:
        mean_gap = float(gaps.mean())
        if mean_gap != 0.0:
            deviating = int(np.count_nonzero(np.abs(gaps - mean_gap) / mean_gap > GEOMETRY_SPACING_DEVIATION))
            if deviating:
                result.warn(
                    IssueCode.INCONSISTENT_SPACING,
                    f"{deviating} slice gaps deviate >10% from average spacing ({mean_gap:.2f}mm)",
                )

        duplicates = int(np.count_nonzero(np.abs(gaps) < GEOMETRY_DUPLICATE_TOLERANCE))
        if duplicates:
            result.error(
                IssueCode.DUPLICATE_SLICE_POSITION,
                f"{duplicates} duplicate slice positions detected",
            )

    if not result.valid:
        logger.info("[Geometry] Stack rejected: %s", "; ".join(result.errors))
    return result


__all__ = [
    "IssueCode",
    "ValidationIssue",
    "ValidationResult",
    "SortResult",
    "compute_normal",
    "project_onto_normal",
    "sort_by_position",
    "validate",
]
