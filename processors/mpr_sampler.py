"""
Planar MPR sampling: axial, coronal and sagittal planes, thin-slab MIP on each
plane, crosshair mapping and window/level display conversion.

Planes are returned as 2-D int16 arrays indexed ``[row, col]`` on screen.
Coronal and sagittal planes put the last slice of the stack on the top row.
"""

import math
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Tuple

import numpy as np

from core.base import VolumeData
from config import (
    MIP_DEFAULT_SLAB_HALF_SIZE,
    WINDOW_LEVEL_LUT_OFFSET,
    WINDOW_LEVEL_LUT_SIZE,
    WINDOW_LEVEL_LUT_CACHE,
)


class PlaneType(str, Enum):
    AXIAL = "Axial"
    CORONAL = "Coronal"
    SAGITTAL = "Sagittal"


@dataclass(frozen=True)
class Crosshair:
    """Voxel-index crosshair shared by the three plane views."""
    x: int
    y: int
    z: int


@dataclass(frozen=True)
class SliceGeometry:
    width: int
    height: int
    pixel_spacing_x: float
    pixel_spacing_y: float
    physical_width: float
    physical_height: float
    aspect_ratio: float


@dataclass
class SliceResult:
    data: np.ndarray
    width: int
    height: int
    geometry: SliceGeometry


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def get_slice_geometry(volume: VolumeData, plane: PlaneType) -> SliceGeometry:
    """Pixel size and physical extent of a plane."""
    cols, rows, slices = volume.dimensions
    sp_x, sp_y, sp_z = volume.spacing
    plane = PlaneType(plane)

    if plane is PlaneType.AXIAL:
        width, height, px, py = cols, rows, sp_x, sp_y
    elif plane is PlaneType.CORONAL:
        width, height, px, py = cols, slices, sp_x, sp_z
    else:
        width, height, px, py = rows, slices, sp_y, sp_z

    physical_width = width * px
    physical_height = height * py
    return SliceGeometry(
        width=width,
        height=height,
        pixel_spacing_x=px,
        pixel_spacing_y=py,
        physical_width=physical_width,
        physical_height=physical_height,
        aspect_ratio=physical_width / physical_height if physical_height else 0.0,
    )


def get_max_index(volume: VolumeData, plane: PlaneType) -> int:
    cols, rows, slices = volume.dimensions
    plane = PlaneType(plane)
    if plane is PlaneType.AXIAL:
        return slices - 1
    if plane is PlaneType.CORONAL:
        return rows - 1
    return cols - 1


def get_index_for_plane(crosshair: Crosshair, plane: PlaneType) -> int:
    plane = PlaneType(plane)
    if plane is PlaneType.AXIAL:
        return crosshair.z
    if plane is PlaneType.CORONAL:
        return crosshair.y
    return crosshair.x


def _result(volume: VolumeData, plane: PlaneType, data: np.ndarray) -> SliceResult:
    return SliceResult(
        data=np.ascontiguousarray(data, dtype=np.int16),
        width=int(data.shape[1]),
        height=int(data.shape[0]),
        geometry=get_slice_geometry(volume, plane),
    )


def extract_axial_slice(volume: VolumeData, z_index: float) -> SliceResult:
    slices = volume.data.shape[0]
    z = _clamp(_round_half_up(z_index), 0, slices - 1)
    return _result(volume, PlaneType.AXIAL, volume.data[z].copy())


def extract_coronal_slice(volume: VolumeData, y_index: float) -> SliceResult:
    rows = volume.data.shape[1]
    y = _clamp(_round_half_up(y_index), 0, rows - 1)
    # (slices, cols), slice axis flipped
    return _result(volume, PlaneType.CORONAL, volume.data[::-1, y, :])


def extract_sagittal_slice(volume: VolumeData, x_index: float) -> SliceResult:
    cols = volume.data.shape[2]
    x = _clamp(_round_half_up(x_index), 0, cols - 1)
    # (slices, rows), slice axis flipped
    return _result(volume, PlaneType.SAGITTAL, volume.data[::-1, :, x])


def extract_slice(volume: VolumeData, plane: PlaneType, index: float) -> SliceResult:
    plane = PlaneType(plane)
    if plane is PlaneType.AXIAL:
        return extract_axial_slice(volume, index)
    if plane is PlaneType.CORONAL:
        return extract_coronal_slice(volume, index)
    return extract_sagittal_slice(volume, index)


def extract_mini_mip_slice(
    volume: VolumeData,
    plane: PlaneType,
    center_index: int,
    slab_half_size: int = MIP_DEFAULT_SLAB_HALF_SIZE,
) -> SliceResult:
    """
    Thin-slab maximum intensity projection centred on ``center_index``.

    The slab is clamped to the plane's index range. An empty slab (centre far
    outside the volume) projects to the int16 minimum on coronal/sagittal
    planes; on the axial plane it gives slice 0 below the stack and zeros
    above it.
    """
    plane = PlaneType(plane)
    data = volume.data
    slices, rows, cols = data.shape

    if plane is PlaneType.AXIAL:
        z_min = max(0, center_index - slab_half_size)
        z_max = min(slices - 1, center_index + slab_half_size)
        if z_min >= slices:
            return _result(volume, plane, np.zeros((rows, cols), dtype=np.int16))
        projected = data[z_min:max(z_min, z_max) + 1].max(axis=0)
        return _result(volume, plane, projected)

    if plane is PlaneType.CORONAL:
        lo = max(0, center_index - slab_half_size)
        hi = min(rows - 1, center_index + slab_half_size)
        if hi < lo:
            return _result(volume, plane, np.full((slices, cols), np.iinfo(np.int16).min, dtype=np.int16))
        projected = data[:, lo:hi + 1, :].max(axis=1)
    else:
        lo = max(0, center_index - slab_half_size)
        hi = min(cols - 1, center_index + slab_half_size)
        if hi < lo:
            return _result(volume, plane, np.full((slices, rows), np.iinfo(np.int16).min, dtype=np.int16))
        projected = data[:, :, lo:hi + 1].max(axis=2)

    return _result(volume, plane, projected[::-1])


def update_crosshair_from_click(
    plane: PlaneType,
    click_x: float,
    click_y: float,
    volume: VolumeData,
    current: Crosshair,
) -> Crosshair:
    """
    Move the crosshair to a click given in normalised (0-1) view coordinates.

    Screen Y is inverted against the slice axis on coronal/sagittal views.
    """
    cols, rows, slices = volume.dimensions
    plane = PlaneType(plane)

    if plane is PlaneType.AXIAL:
        return Crosshair(
            x=_round_half_up(click_x * (cols - 1)),
            y=_round_half_up(click_y * (rows - 1)),
            z=current.z,
        )
    if plane is PlaneType.CORONAL:
        return Crosshair(
            x=_round_half_up(click_x * (cols - 1)),
            y=current.y,
            z=_round_half_up((1 - click_y) * (slices - 1)),
        )
    return Crosshair(
        x=current.x,
        y=_round_half_up(click_x * (rows - 1)),
        z=_round_half_up((1 - click_y) * (slices - 1)),
    )


def _ratio(value: float, extent: int) -> float:
    # Single-pixel axes have no range to normalise against
    return value / extent if extent > 0 else 0.0


def get_crosshair_screen_position(
    plane: PlaneType, crosshair: Crosshair, volume: VolumeData
) -> Tuple[float, float]:
    """Normalised (0-1) screen position of the crosshair in a plane view."""
    cols, rows, slices = volume.dimensions
    plane = PlaneType(plane)

    if plane is PlaneType.AXIAL:
        return _ratio(crosshair.x, cols - 1), _ratio(crosshair.y, rows - 1)
    if plane is PlaneType.CORONAL:
        return _ratio(crosshair.x, cols - 1), 1 - _ratio(crosshair.z, slices - 1)
    return _ratio(crosshair.y, rows - 1), 1 - _ratio(crosshair.z, slices - 1)


# ==========================================
# Window / Level
# ==========================================

_lut_cache: "OrderedDict[str, np.ndarray]" = OrderedDict()


def get_window_level_lut(window_center: float, window_width: float) -> np.ndarray:
    """
    65536-entry uint8 table mapping ``hu + 32768`` to a display value.

    Widths below 1 are treated as 1. The most recent tables are kept.
    """
    safe_width = max(float(window_width), 1.0)
    key = f"{float(window_center):.2f}:{safe_width:.2f}"
    cached = _lut_cache.get(key)
    if cached is not None:
        return cached

    hu = np.arange(WINDOW_LEVEL_LUT_SIZE, dtype=np.float64) - WINDOW_LEVEL_LUT_OFFSET
    min_value = window_center - safe_width / 2
    display = np.clip((hu - min_value) * (255.0 / safe_width), 0, 255)
    lut = np.rint(display).astype(np.uint8)
    lut.flags.writeable = False

    _lut_cache[key] = lut
    if len(_lut_cache) > WINDOW_LEVEL_LUT_CACHE:
        _lut_cache.popitem(last=False)
    return lut


def clear_window_level_cache() -> None:
    _lut_cache.clear()


def apply_window_level(
    slice_data: np.ndarray,
    width: int,
    height: int,
    window_center: float,
    window_width: float,
) -> np.ndarray:
    """
    Convert HU values to an opaque grey RGBA image of shape (height, width, 4).
    """
    lut = get_window_level_lut(window_center, window_width)
    grey = lut[np.asarray(slice_data, dtype=np.int32).reshape(-1) + WINDOW_LEVEL_LUT_OFFSET]
    rgba = np.empty((grey.size, 4), dtype=np.uint8)
    rgba[:, 0] = grey
    rgba[:, 1] = grey
    rgba[:, 2] = grey
    rgba[:, 3] = 255
    return rgba.reshape(height, width, 4)
