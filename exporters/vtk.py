"""
VTK/PyVista adapters for reconstructed volumes, projection planes and
transfer function textures.
"""

import logging
from typing import Optional, Tuple

import numpy as np
import pyvista as pv

from core.base import VolumeData
from core.coordinates import raw_zyx_to_grid_xyz
from config import TF_HU_MIN, TF_HU_MAX, TF_SIZE

logger = logging.getLogger(__name__)

SCALARS_NAME = "HU"


class VTKExporter:
    """
    Converts reconstruction outputs into PyVista objects a render sink can
    consume, and writes volumes to .vti files.
    """

    @staticmethod
    def volume_to_grid(volume: VolumeData) -> pv.ImageData:
        """
        Wrap a volume as point data on an ``ImageData`` carrying its spacing,
        patient origin and direction cosines.
        """
        raw_xyz = raw_zyx_to_grid_xyz(volume.data)
        if not raw_xyz.flags.f_contiguous:
            raw_xyz = np.asfortranarray(raw_xyz)

        grid = pv.ImageData()
        grid.dimensions = raw_xyz.shape
        grid.origin = volume.origin
        grid.spacing = volume.spacing
        grid.direction_matrix = volume.orientation.as_matrix()

        values = raw_xyz.ravel(order="F")
        if not values.flags.c_contiguous:
            values = np.ascontiguousarray(values)
        grid.point_data[SCALARS_NAME] = values
        grid.field_data["WindowCenter"] = np.array([volume.window_center])
        grid.field_data["WindowWidth"] = np.array([volume.window_width])
        return grid

    @staticmethod
    def export_volume(volume: VolumeData, filepath: str) -> bool:
        """Export a volume as .vti."""
        if volume is None:
            raise ValueError("No data to export.")
        if not str(filepath).lower().endswith(".vti"):
            raise ValueError(f"Volume export expects a .vti path, got: {filepath}")

        grid = VTKExporter.volume_to_grid(volume)
        grid.save(filepath)
        logger.info("[Exporter] Volume saved to %s", filepath)
        return True

    @staticmethod
    def plane_to_image(
        plane: np.ndarray,
        width: Optional[int] = None,
        height: Optional[int] = None,
        spacing: Tuple[float, float] = (1.0, 1.0),
    ) -> pv.ImageData:
        """
        Wrap a 2-D intensity plane (MIP/MPR output) as a single-slice image.

        ``plane`` may be flat, in which case ``width`` and ``height`` are
        required. Row 0 of the plane is the top row on screen.
        """
        arr = np.asarray(plane)
        if arr.ndim == 1:
            if not width or not height:
                raise ValueError("Flat planes need explicit width and height.")
            arr = arr.reshape(height, width)
        elif arr.ndim != 2:
            raise ValueError(f"Expected a 2D plane, got shape={arr.shape}")

        rows, cols = arr.shape
        image = pv.ImageData()
        image.dimensions = (cols, rows, 1)
        image.spacing = (float(spacing[0]), float(spacing[1]), 1.0)
        # VTK image rows run bottom-up
        image.point_data[SCALARS_NAME] = np.ascontiguousarray(arr[::-1]).ravel()
        return image

    @staticmethod
    def texture_to_lookup_table(texture: np.ndarray) -> pv.LookupTable:
        """
        Turn a (4096, 4) uint8 RGBA texture into a lookup table over the
        transfer function intensity range.
        """
        rgba = np.asarray(texture, dtype=np.uint8)
        if rgba.shape != (TF_SIZE, 4):
            raise ValueError(f"Expected texture of shape ({TF_SIZE}, 4), got {rgba.shape}")

        lut = pv.LookupTable()
        lut.values = rgba
        lut.scalar_range = (TF_HU_MIN, TF_HU_MAX)
        return lut
