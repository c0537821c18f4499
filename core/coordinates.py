"""
Coordinate conversion helpers for the project-wide 3D convention.

Convention:
- Raw voxel arrays use index order (z, y, x) = (slice, row, col)
- Patient-space geometry uses axis order (x, y, z)
- Spacing/origin tuples are stored as (x, y, z)
- Voxel coordinates returned here are (x, y, z) = (col, row, slice), fractional
"""

from __future__ import annotations

from typing import Tuple
import numpy as np

from core.base import VolumeData


def raw_zyx_to_grid_xyz(raw_data: np.ndarray) -> np.ndarray:
    """
    Reorder a raw volume from (z, y, x) to (x, y, z) for VTK/PyVista grids.
    """
    arr = np.asarray(raw_data)
    if arr.ndim != 3:
        raise ValueError(f"Expected 3D volume, got shape={arr.shape}")
    return np.transpose(arr, (2, 1, 0))


def _check_spacing(spacing_xyz: Tuple[float, float, float]) -> None:
    if any(abs(float(s)) < 1e-12 for s in spacing_xyz):
        raise ValueError("Spacing components must be non-zero.")


def world_to_voxel(volume: VolumeData, world_xyz: Tuple[float, float, float]) -> Tuple[float, float, float]:
    """
    Convert a patient-space point into fractional voxel coordinates (x, y, z).

    The offset from the origin is projected on each axis direction of the
    volume orientation, then divided by the spacing along that axis.
    """
    _check_spacing(volume.spacing)
    delta = np.asarray(world_xyz, dtype=np.float64) - np.asarray(volume.origin, dtype=np.float64)
    axes = volume.orientation.as_matrix()
    voxel = (axes.T @ delta) / np.asarray(volume.spacing, dtype=np.float64)
    return (float(voxel[0]), float(voxel[1]), float(voxel[2]))


def voxel_to_world(volume: VolumeData, voxel_xyz: Tuple[float, float, float]) -> Tuple[float, float, float]:
    """
    Convert fractional voxel coordinates (x, y, z) into a patient-space point.
    """
    scaled = np.asarray(voxel_xyz, dtype=np.float64) * np.asarray(volume.spacing, dtype=np.float64)
    world = np.asarray(volume.origin, dtype=np.float64) + volume.orientation.as_matrix() @ scaled
    return (float(world[0]), float(world[1]), float(world[2]))


def voxel_to_index(voxel_xyz: Tuple[float, float, float], *, rounding: str = "round") -> Tuple[int, int, int]:
    """
    Convert fractional voxel coordinates (x, y, z) to integer indices (x, y, z).

    rounding:
    - "round" (default): nearest integer
    - "floor": floor toward -inf
    - "ceil": ceil toward +inf
    """
    mode = str(rounding).strip().lower()
    if mode == "round":
        op = np.rint
    elif mode == "floor":
        op = np.floor
    elif mode == "ceil":
        op = np.ceil
    else:
        raise ValueError(f"Unknown rounding mode: {rounding}")
    x, y, z = voxel_xyz
    return (int(op(x)), int(op(y)), int(op(z)))
