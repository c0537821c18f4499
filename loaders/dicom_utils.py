"""DICOM header helpers shared by the series source and tests."""

import os
import re
from glob import glob
from typing import List, Optional

import pydicom
from pydicom.multival import MultiValue

from core.base import Instance
from config import SOURCE_FILE_EXTENSION


def natural_sort_key(text: str):
    """Natural sort key for filenames (img_1, img_2, ..., img_10)."""
    return [int(c) if c.isdigit() else c.lower() for c in re.split(r'(\d+)', text)]


def validate_path(folder_path: str) -> None:
    """Validate folder path exists."""
    if not os.path.exists(folder_path):
        raise FileNotFoundError(f"Path does not exist: {folder_path}")


def find_dicom_files(folder_path: str) -> List[str]:
    """Find DICOM files in folder (by extension then content check), naturally sorted."""
    files = glob(os.path.join(folder_path, SOURCE_FILE_EXTENSION))
    if not files:
        files = [f for f in glob(os.path.join(folder_path, "*"))
                 if os.path.isfile(f) and _is_dicom(f)]
    if not files:
        raise FileNotFoundError("No valid DICOM files found")
    files.sort(key=lambda f: natural_sort_key(os.path.basename(f)))
    return files


def _is_dicom(filepath: str) -> bool:
    """Check if file is valid DICOM."""
    try:
        pydicom.dcmread(filepath, stop_before_pixels=True)
        return True
    except Exception:
        return False


def _first_value(value) -> Optional[float]:
    """Window center/width may be multi-valued; the first value is the default."""
    if value is None or value == "":
        return None
    if isinstance(value, (list, tuple, MultiValue)):
        if len(value) == 0:
            return None
        value = value[0]
    return float(value)


def instance_from_dataset(ds, sort_key: float = 0.0) -> Instance:
    """Build an Instance record from a pydicom header."""
    slice_thickness = getattr(ds, "SliceThickness", None)
    return Instance(
        instance_uid=str(getattr(ds, "SOPInstanceUID", "")),
        rows=int(getattr(ds, "Rows", 0) or 0),
        columns=int(getattr(ds, "Columns", 0) or 0),
        pixel_spacing=tuple(float(v) for v in getattr(ds, "PixelSpacing", (1.0, 1.0))),
        slice_thickness=float(slice_thickness) if slice_thickness not in (None, "") else None,
        image_position_patient=tuple(float(v) for v in getattr(ds, "ImagePositionPatient", (0.0, 0.0, 0.0))),
        image_orientation_patient=tuple(
            float(v) for v in getattr(ds, "ImageOrientationPatient", (1.0, 0.0, 0.0, 0.0, 1.0, 0.0))
        ),
        window_center=_first_value(getattr(ds, "WindowCenter", None)),
        window_width=_first_value(getattr(ds, "WindowWidth", None)),
        rescale_slope=_first_value(getattr(ds, "RescaleSlope", None)),
        rescale_intercept=_first_value(getattr(ds, "RescaleIntercept", None)),
        photometric_interpretation=str(getattr(ds, "PhotometricInterpretation", "MONOCHROME2")),
        samples_per_pixel=int(getattr(ds, "SamplesPerPixel", 1) or 1),
        modality=str(getattr(ds, "Modality", "CT")),
        sort_key=float(sort_key),
    )
