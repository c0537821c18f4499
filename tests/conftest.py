"""
Shared fixtures: in-memory DICOM containers and Instance records.
"""

import io

import numpy as np
import pytest
from pydicom import dcmwrite
from pydicom.dataset import Dataset, FileMetaDataset
from pydicom.encaps import encapsulate
from pydicom.uid import CTImageStorage, ExplicitVRLittleEndian, JPEG2000Lossless, generate_uid

from core.base import Instance
from data.byte_cache import reset_byte_cache
from processors.mpr_sampler import clear_window_level_cache

J2K_HEADER = b"\xff\x4f\xff\x51"


def build_dicom_bytes(
    pixels=None,
    rows=2,
    columns=2,
    signed=True,
    transfer_syntax=ExplicitVRLittleEndian,
    encapsulated_frame=None,
    include_pixel_data=True,
    instance_uid=None,
    position=(0.0, 0.0, 0.0),
    orientation=(1.0, 0.0, 0.0, 0.0, 1.0, 0.0),
    slope=1.0,
    intercept=0.0,
    window=(40, 400),
    include_dimensions=True,
) -> bytes:
    """Serialise a minimal CT image to Part 10 bytes."""
    uid = instance_uid or generate_uid()

    meta = FileMetaDataset()
    meta.MediaStorageSOPClassUID = CTImageStorage
    meta.MediaStorageSOPInstanceUID = uid
    meta.TransferSyntaxUID = transfer_syntax

    ds = Dataset()
    ds.file_meta = meta
    ds.SOPClassUID = CTImageStorage
    ds.SOPInstanceUID = uid
    ds.Modality = "CT"
    if include_dimensions:
        ds.Rows = rows
        ds.Columns = columns
    ds.SamplesPerPixel = 1
    ds.PhotometricInterpretation = "MONOCHROME2"
    ds.BitsAllocated = 16
    ds.BitsStored = 16
    ds.HighBit = 15
    ds.PixelRepresentation = 1 if signed else 0
    ds.PixelSpacing = [0.5, 0.75]
    ds.SliceThickness = 1.0
    ds.ImagePositionPatient = list(position)
    ds.ImageOrientationPatient = list(orientation)
    ds.RescaleSlope = slope
    ds.RescaleIntercept = intercept
    if window is not None:
        ds.WindowCenter = window[0]
        ds.WindowWidth = window[1]

    if include_pixel_data:
        if encapsulated_frame is not None:
            ds.PixelData = encapsulate([encapsulated_frame])
            ds["PixelData"].VR = "OB"
            ds["PixelData"].is_undefined_length = True
        else:
            if pixels is None:
                pixels = np.zeros(rows * columns)
            dtype = "<i2" if signed else "<u2"
            ds.PixelData = np.asarray(pixels).astype(dtype).tobytes()
            ds["PixelData"].VR = "OW"

    buf = io.BytesIO()
    dcmwrite(buf, ds, enforce_file_format=True)
    return buf.getvalue()


def make_instance(uid="1", z=0.0, rows=2, columns=2, **kwargs) -> Instance:
    params = dict(
        instance_uid=uid,
        rows=rows,
        columns=columns,
        pixel_spacing=(0.5, 0.75),
        slice_thickness=1.0,
        image_position_patient=(0.0, 0.0, float(z)),
        image_orientation_patient=(1.0, 0.0, 0.0, 0.0, 1.0, 0.0),
    )
    params.update(kwargs)
    return Instance(**params)


@pytest.fixture
def dicom_bytes():
    return build_dicom_bytes


@pytest.fixture
def instance_factory():
    return make_instance


@pytest.fixture
def j2k_frame():
    """Encapsulated frame: SOC/SIZ marker prefix followed by raw sample bytes."""
    def _frame(sample_bytes: bytes) -> bytes:
        return J2K_HEADER + sample_bytes
    return _frame


@pytest.fixture
def j2k_syntax():
    return JPEG2000Lossless


@pytest.fixture(autouse=True)
def _reset_shared_state():
    yield
    reset_byte_cache()
    clear_window_level_cache()


@pytest.fixture
def series_dir(tmp_path):
    """Folder with a 3-slice axial series whose file names run opposite to z."""
    folder = tmp_path / "series"
    folder.mkdir()
    for i, name in enumerate(("slice_1.dcm", "slice_2.dcm", "slice_10.dcm")):
        z = 10.0 * (2 - i)
        pixels = np.arange(4, dtype=np.int16) + int(z)
        (folder / name).write_bytes(build_dicom_bytes(
            pixels, instance_uid=f"1.2.3.{i + 1}", position=(0.0, 0.0, z), intercept=-1024.0,
        ))
    return folder
