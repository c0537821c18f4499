"""
Volume assembly: decode, rescale and stack sorted slices into one int16 volume.
"""

import logging
import time
from typing import Callable, Optional, Sequence

import numpy as np

from core.base import Instance, VolumeData, VolumeOrientation
from core.errors import (
    EmptyStackError,
    InvalidDimensionsError,
    DecodeFailureError,
    FetchFailureError,
    VolumeBuildError,
)
from core.geometry import sort_by_position
from data.byte_cache import ByteCache
from loaders.pixel_decoder import PixelDecoder
from config import DEFAULT_WINDOW_CENTER, DEFAULT_WINDOW_WIDTH

logger = logging.getLogger(__name__)

INT16_MIN = np.iinfo(np.int16).min
INT16_MAX = np.iinfo(np.int16).max

ProgressCallback = Callable[[int, int], None]
FetchCallable = Callable[[str], bytes]


def rescale_to_hu(pixels: np.ndarray, slope: float, intercept: float) -> np.ndarray:
    """
    Apply ``value * slope + intercept``, round half up and saturate to int16.

    Out-of-range results clamp to the int16 limits rather than wrapping, so
    70000 stores as 32767 and not as 4464.
    """
    values = pixels.astype(np.float64) * slope + intercept
    return np.clip(np.floor(values + 0.5), INT16_MIN, INT16_MAX).astype(np.int16)


def default_window(instance: Instance):
    """Window of the first slice, falling back to 40/400 when absent or invalid."""
    center = instance.window_center if instance.window_center is not None else DEFAULT_WINDOW_CENTER
    width = instance.window_width
    if width is None or width <= 0:
        width = DEFAULT_WINDOW_WIDTH
    return float(center), float(width)


class VolumeBuilder:
    """
    Builds a ``VolumeData`` from instances already sorted along the stack normal.

    Slices are processed strictly one at a time: fetch (cache first), decode,
    rescale, place. Any failure aborts the build and no volume is returned.
    """

    def __init__(self, decoder: Optional[PixelDecoder] = None):
        self.decoder = decoder or PixelDecoder()

    def build(
        self,
        sorted_instances: Sequence[Instance],
        cache: ByteCache,
        fetch: FetchCallable,
        on_progress: Optional[ProgressCallback] = None,
    ) -> VolumeData:
        """
        Args:
            sorted_instances: Slices in stack order (see ``core.geometry.sort_by_position``).
            cache: Shared byte cache, read first and filled on miss.
            fetch: Byte-fetch collaborator used on cache miss.
            on_progress: Called with (loaded, total) after each slice.

        Raises:
            EmptyStackError: no instances.
            InvalidDimensionsError: first slice has no usable rows/columns.
            VolumeBuildError: any slice failed to fetch or decode.
        """
        if not sorted_instances:
            raise EmptyStackError()

        first = sorted_instances[0]
        cols, rows, total = first.columns, first.rows, len(sorted_instances)
        if not rows or not cols or rows <= 0 or cols <= 0:
            raise InvalidDimensionsError(rows, cols)

        sort_result = sort_by_position(sorted_instances)
        logger.info("[VolumeBuilder] Building %dx%dx%d volume", cols, rows, total)
        t_start = time.perf_counter()

        volume = np.empty((total, rows, cols), dtype=np.int16)
        plane_size = rows * cols

        for index, instance in enumerate(sorted_instances):
            try:
                raw = self._load_bytes(instance.instance_uid, cache, fetch)
                pixels = self.decoder.decode(raw, instance)
                if pixels.size != plane_size:
                    raise DecodeFailureError(
                        f"Slice has {pixels.size} pixels, volume plane expects {plane_size}",
                        buffer_size=len(raw),
                    )
                volume[index] = rescale_to_hu(pixels, instance.slope, instance.intercept).reshape(rows, cols)
            except Exception as exc:
                logger.error("[VolumeBuilder] Slice %d (%s) failed: %s", index, instance.instance_uid, exc)
                raise VolumeBuildError(instance.instance_uid, index, exc) from exc

            if on_progress:
                on_progress(index + 1, total)

        orient = first.image_orientation_patient
        center, width = default_window(first)
        elapsed = time.perf_counter() - t_start
        logger.info("[VolumeBuilder] Complete: %s in %.2fs, spacing z=%.3f mm",
                    volume.shape, elapsed, sort_result.average_spacing)

        return VolumeData(
            data=volume,
            spacing=(
                float(first.pixel_spacing[1]),  # column spacing (x)
                float(first.pixel_spacing[0]),  # row spacing (y)
                sort_result.average_spacing,
            ),
            origin=tuple(float(v) for v in first.image_position_patient),
            orientation=VolumeOrientation(
                row_dir=(float(orient[0]), float(orient[1]), float(orient[2])),
                col_dir=(float(orient[3]), float(orient[4]), float(orient[5])),
                slice_dir=sort_result.normal,
            ),
            window_center=center,
            window_width=width,
            metadata={
                "Modality": first.modality,
                "SliceCount": total,
                "InstanceUIDs": [inst.instance_uid for inst in sorted_instances],
                "BuildSeconds": round(elapsed, 3),
            },
        )

    @staticmethod
    def _load_bytes(instance_uid: str, cache: ByteCache, fetch: FetchCallable) -> bytes:
        cached = cache.get(instance_uid)
        if cached is not None:
            return bytes(cached)
        try:
            data = fetch(instance_uid)
        except FetchFailureError:
            raise
        except Exception as exc:
            raise FetchFailureError(instance_uid, str(exc)) from exc
        data = bytes(data)
        cache.put(instance_uid, data)
        return data


def build_volume(
    sorted_instances: Sequence[Instance],
    cache: ByteCache,
    fetch: FetchCallable,
    on_progress: Optional[ProgressCallback] = None,
    decoder: Optional[PixelDecoder] = None,
) -> VolumeData:
    """Functional shortcut for ``VolumeBuilder(decoder).build(...)``."""
    return VolumeBuilder(decoder).build(sorted_instances, cache, fetch, on_progress)
