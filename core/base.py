"""
Core data structures and abstract base classes.
"""

from __future__ import annotations

import numpy as np
from dataclasses import dataclass, field
from abc import ABC, abstractmethod
from typing import Tuple, Dict, Any, Optional, List, Sequence

Vector3 = Tuple[float, float, float]


def _floats(values: Optional[Sequence], length: int, default: float = 0.0) -> Tuple[float, ...]:
    """Coerce a (possibly short or missing) sequence into a float tuple."""
    values = list(values or [])
    values += [default] * (length - len(values))
    return tuple(float(v) for v in values[:length])


def _optional_float(value) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


@dataclass(frozen=True)
class Instance:
    """
    Decoded metadata of one slice, as delivered by the metadata source.

    Attributes:
        instance_uid: Unique identifier, also the byte-fetch key.
        rows, columns: Pixel matrix size.
        pixel_spacing: (row spacing, column spacing) in mm.
        image_position_patient: Position of the first transmitted pixel.
        image_orientation_patient: Row cosines followed by column cosines.
        sort_key: Externally assigned ordering hint (never trusted for geometry).
    """
    instance_uid: str
    rows: int
    columns: int
    pixel_spacing: Tuple[float, float] = (1.0, 1.0)
    slice_thickness: Optional[float] = None
    image_position_patient: Vector3 = (0.0, 0.0, 0.0)
    image_orientation_patient: Tuple[float, float, float, float, float, float] = (1.0, 0.0, 0.0, 0.0, 1.0, 0.0)
    window_center: Optional[float] = None
    window_width: Optional[float] = None
    rescale_slope: Optional[float] = None
    rescale_intercept: Optional[float] = None
    photometric_interpretation: str = "MONOCHROME2"
    samples_per_pixel: int = 1
    modality: str = "CT"
    sort_key: float = 0.0
    image_id: str = ""

    @property
    def slope(self) -> float:
        """Rescale slope with the DICOM default applied."""
        return self.rescale_slope if self.rescale_slope else 1.0

    @property
    def intercept(self) -> float:
        """Rescale intercept with the DICOM default applied."""
        return self.rescale_intercept if self.rescale_intercept else 0.0

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "Instance":
        """Build from the metadata source's JSON payload (snake_case keys)."""
        return Instance(
            instance_uid               = str(d["instance_uid"]),
            rows                       = int(d.get("rows") or 0),
            columns                    = int(d.get("columns") or 0),
            pixel_spacing              = _floats(d.get("pixel_spacing"), 2, 1.0),
            slice_thickness            = _optional_float(d.get("slice_thickness")),
            image_position_patient     = _floats(d.get("image_position_patient"), 3),
            image_orientation_patient  = _floats(d.get("image_orientation_patient") or (1, 0, 0, 0, 1, 0), 6),
            window_center              = _optional_float(d.get("window_center")),
            window_width               = _optional_float(d.get("window_width")),
            rescale_slope              = _optional_float(d.get("rescale_slope")),
            rescale_intercept          = _optional_float(d.get("rescale_intercept")),
            photometric_interpretation = str(d.get("photometric_interpretation") or "MONOCHROME2"),
            samples_per_pixel          = int(d.get("samples_per_pixel") or 1),
            modality                   = str(d.get("modality") or "CT"),
            sort_key                   = float(d.get("sort_key") or 0.0),
            image_id                   = str(d.get("imageId") or d.get("image_id") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "instance_uid":               self.instance_uid,
            "rows":                       self.rows,
            "columns":                    self.columns,
            "pixel_spacing":              list(self.pixel_spacing),
            "slice_thickness":            self.slice_thickness,
            "image_position_patient":     list(self.image_position_patient),
            "image_orientation_patient":  list(self.image_orientation_patient),
            "window_center":              self.window_center,
            "window_width":               self.window_width,
            "rescale_slope":              self.rescale_slope,
            "rescale_intercept":          self.rescale_intercept,
            "photometric_interpretation": self.photometric_interpretation,
            "samples_per_pixel":          self.samples_per_pixel,
            "modality":                   self.modality,
            "sort_key":                   self.sort_key,
            "image_id":                   self.image_id,
        }


@dataclass(frozen=True)
class VolumeOrientation:
    """Unit direction vectors of the volume axes in patient space."""
    row_dir: Vector3 = (1.0, 0.0, 0.0)
    col_dir: Vector3 = (0.0, 1.0, 0.0)
    slice_dir: Vector3 = (0.0, 0.0, 1.0)

    def as_matrix(self) -> np.ndarray:
        """3x3 direction matrix with the axis vectors as columns."""
        return np.column_stack([self.row_dir, self.col_dir, self.slice_dir]).astype(np.float64)


@dataclass
class VolumeData:
    """
    Reconstruction product: one contiguous signed 16-bit volume.

    Attributes:
        data (np.ndarray): int16 array shaped (slices, rows, cols), i.e. the flat
            buffer is ordered [slice][row][col].
        spacing (Tuple[float, float, float]): Voxel spacing (x, y, z) in mm.
        origin (Tuple[float, float, float]): Position of the first slice.
        orientation (VolumeOrientation): Row, column and slice directions.
        window_center / window_width: Default display window.
        metadata (Dict[str, Any]): Arbitrary metadata (SeriesUID, Modality, ...).
    """
    data: np.ndarray
    spacing: Vector3 = (1.0, 1.0, 1.0)
    origin: Vector3 = (0.0, 0.0, 0.0)
    orientation: VolumeOrientation = field(default_factory=VolumeOrientation)
    window_center: float = 40.0
    window_width: float = 400.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.data.ndim != 3:
            raise ValueError(f"Expected 3D volume (slices, rows, cols), got shape={self.data.shape}")

    @property
    def dimensions(self) -> Tuple[int, int, int]:
        """Returns (cols, rows, slices)."""
        slices, rows, cols = self.data.shape
        return (cols, rows, slices)

    @property
    def plane_size(self) -> int:
        cols, rows, _ = self.dimensions
        return cols * rows

    @property
    def flat(self) -> np.ndarray:
        """Flat [slice][row][col] view of the intensity buffer."""
        return self.data.reshape(-1)

    def copy_buffer(self) -> np.ndarray:
        """Independent copy of the intensity buffer for another consumer."""
        return np.array(self.flat, dtype=np.int16, copy=True)


class BaseInstanceSource(ABC):
    """Abstract metadata source + byte-fetch collaborator."""

    @abstractmethod
    def instances(self) -> List[Instance]:
        """Return the Instance records of one series (any order)."""
        pass

    @abstractmethod
    def fetch(self, instance_uid: str) -> bytes:
        """
        Return the raw container bytes of one instance.

        Raises:
            FetchFailureError: on any transport or lookup failure.
        """
        pass
