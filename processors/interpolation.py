"""
Oblique MPR: arbitrary plane definition, rotation/translation and trilinear
resampling of the volume onto that plane.

All plane coordinates are fractional voxel coordinates (x, y, z) =
(col, row, slice). Samples falling outside the volume read as air.
"""

from dataclasses import dataclass, replace
from typing import Sequence, Tuple

import numpy as np
from scipy import ndimage

from core.base import VolumeData
from config import OUT_OF_BOUNDS_HU

Vec3 = Tuple[float, float, float]


def normalize(v: Sequence[float]) -> Vec3:
    """Unit vector along ``v``; a zero vector maps to +z."""
    arr = np.asarray(v, dtype=np.float64)
    length = float(np.linalg.norm(arr))
    if length == 0:
        return (0.0, 0.0, 1.0)
    arr = arr / length
    return (float(arr[0]), float(arr[1]), float(arr[2]))


@dataclass(frozen=True)
class ObliquePlane:
    """
    Sampling plane in voxel space.

    Attributes:
        origin: Plane centre (x, y, z).
        normal: Unit normal.
        u: In-plane horizontal axis (screen right).
        v: In-plane vertical axis (screen down).
        rotation: Rotation about the normal in radians.
    """
    origin: Vec3
    normal: Vec3 = (0.0, 0.0, 1.0)
    u: Vec3 = (1.0, 0.0, 0.0)
    v: Vec3 = (0.0, 1.0, 0.0)
    rotation: float = 0.0


def create_initial_oblique_plane(volume: VolumeData) -> ObliquePlane:
    """Axial plane through the volume centre."""
    cols, rows, slices = volume.dimensions
    return ObliquePlane(origin=(cols / 2, rows / 2, slices / 2))


def _rotation_matrix(axis: str, angle_degrees: float) -> np.ndarray:
    angle = np.deg2rad(angle_degrees)
    c, s = np.cos(angle), np.sin(angle)
    if axis == "x":
        return np.array([[1, 0, 0], [0, c, -s], [0, s, c]])
    if axis == "y":
        return np.array([[c, 0, s], [0, 1, 0], [-s, 0, c]])
    if axis == "z":
        return np.array([[c, -s, 0], [s, c, 0], [0, 0, 1]])
    raise ValueError(f"Unknown rotation axis: {axis!r} (expected 'x', 'y' or 'z')")


def rotate_plane(plane: ObliquePlane, axis: str, angle_degrees: float) -> ObliquePlane:
    """Rotate the plane's normal and in-plane axes about a volume axis."""
    matrix = _rotation_matrix(axis, angle_degrees)
    return replace(
        plane,
        normal=normalize(matrix @ np.asarray(plane.normal)),
        u=normalize(matrix @ np.asarray(plane.u)),
        v=normalize(matrix @ np.asarray(plane.v)),
    )


def translate_plane(plane: ObliquePlane, distance: float) -> ObliquePlane:
    """Move the plane origin ``distance`` voxels along its normal."""
    origin = np.asarray(plane.origin, dtype=np.float64) + np.asarray(plane.normal) * distance
    return replace(plane, origin=(float(origin[0]), float(origin[1]), float(origin[2])))


def plane_voxel_coordinates(plane: ObliquePlane, output_width: int, output_height: int) -> np.ndarray:
    """
    Voxel (x, y, z) position of every output pixel, shape (3, height, width).

    Pixels are laid out symmetrically about the plane origin.
    """
    u_offsets = np.arange(output_width, dtype=np.float64) - (output_width - 1) / 2
    v_offsets = np.arange(output_height, dtype=np.float64) - (output_height - 1) / 2
    vv, uu = np.meshgrid(v_offsets, u_offsets, indexing="ij")

    origin = np.asarray(plane.origin, dtype=np.float64)[:, None, None]
    u = np.asarray(plane.u, dtype=np.float64)[:, None, None]
    v = np.asarray(plane.v, dtype=np.float64)[:, None, None]
    return origin + u * uu + v * vv


def trilinear_sample(volume: VolumeData, points_xyz: np.ndarray) -> np.ndarray:
    """
    Trilinear interpolation at fractional voxel positions.

    Args:
        points_xyz: Array of shape (3, ...) holding x, y, z coordinates.

    Returns:
        float64 samples with the trailing shape of ``points_xyz``. Neighbours
        outside the volume contribute ``OUT_OF_BOUNDS_HU``.
    """
    points = np.asarray(points_xyz, dtype=np.float64)
    # Volume array is indexed (z, y, x)
    coords = points[::-1]
    return ndimage.map_coordinates(
        volume.data.astype(np.float64),
        coords,
        order=1,
        mode="grid-constant",
        cval=float(OUT_OF_BOUNDS_HU),
        prefilter=False,
    )


def sample_oblique_plane(
    volume: VolumeData,
    plane: ObliquePlane,
    output_width: int,
    output_height: int,
) -> np.ndarray:
    """Resample the volume onto ``plane`` as an int16 (height, width) image."""
    coords = plane_voxel_coordinates(plane, output_width, output_height)
    samples = trilinear_sample(volume, coords)
    return np.clip(np.floor(samples + 0.5), -32768, 32767).astype(np.int16)
