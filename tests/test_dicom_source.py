"""
Tests for the on-disk series source and header parsing.
"""

import os

import numpy as np
import pydicom
import pytest

from core.errors import FetchFailureError
from core.geometry import sort_by_position, validate
from data.byte_cache import ByteCache
from loaders import DicomFolderSource, build_volume
from loaders.dicom_utils import find_dicom_files, instance_from_dataset, natural_sort_key
from tests.conftest import build_dicom_bytes


def test_natural_sort_key():
    names = ["img_10.dcm", "img_2.dcm", "IMG_1.dcm"]
    assert sorted(names, key=natural_sort_key) == ["IMG_1.dcm", "img_2.dcm", "img_10.dcm"]


def test_find_dicom_files_sorted(series_dir):
    files = find_dicom_files(str(series_dir))
    assert [os.path.basename(f) for f in files] == ["slice_1.dcm", "slice_2.dcm", "slice_10.dcm"]


def test_find_dicom_files_without_extension(tmp_path):
    (tmp_path / "IM0001").write_bytes(build_dicom_bytes())
    (tmp_path / "readme.txt").write_text("not dicom")
    files = find_dicom_files(str(tmp_path))
    assert len(files) == 1 and files[0].endswith("IM0001")


def test_find_dicom_files_empty_folder(tmp_path):
    with pytest.raises(FileNotFoundError):
        find_dicom_files(str(tmp_path))


def test_instance_from_dataset(tmp_path):
    path = tmp_path / "one.dcm"
    path.write_bytes(build_dicom_bytes(instance_uid="1.9", position=(1.0, 2.0, 3.0), slope=2.0, intercept=-1024.0))
    ds = pydicom.dcmread(str(path), stop_before_pixels=True)

    inst = instance_from_dataset(ds, sort_key=4)

    assert inst.instance_uid == "1.9"
    assert (inst.rows, inst.columns) == (2, 2)
    assert inst.pixel_spacing == (0.5, 0.75)
    assert inst.image_position_patient == (1.0, 2.0, 3.0)
    assert (inst.window_center, inst.window_width) == (40.0, 400.0)
    assert (inst.slope, inst.intercept) == (2.0, -1024.0)
    assert inst.sort_key == 4.0


class TestDicomFolderSource:
    def test_scan_reads_headers(self, series_dir):
        progress = []
        source = DicomFolderSource(str(series_dir), max_workers=2)

        instances = source.scan(lambda p, msg: progress.append(p))

        assert [i.instance_uid for i in instances] == ["1.2.3.1", "1.2.3.2", "1.2.3.3"]
        assert [i.sort_key for i in instances] == [0.0, 1.0, 2.0]
        assert progress[0] == 0 and progress[-1] == 100

    def test_unreadable_file_is_skipped(self, series_dir):
        (series_dir / "broken.dcm").write_bytes(b"garbage")
        assert len(DicomFolderSource(str(series_dir)).instances()) == 3

    def test_fetch_returns_file_bytes(self, series_dir):
        source = DicomFolderSource(str(series_dir))
        assert source.fetch("1.2.3.3") == (series_dir / "slice_10.dcm").read_bytes()

    def test_fetch_unknown_instance(self, series_dir):
        with pytest.raises(FetchFailureError, match="unknown instance"):
            DicomFolderSource(str(series_dir)).fetch("9.9.9")

    def test_missing_folder(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            DicomFolderSource(str(tmp_path / "absent")).scan()

    def test_end_to_end_build(self, series_dir):
        source = DicomFolderSource(str(series_dir))
        instances = source.instances()
        assert validate(instances).valid

        ordered = sort_by_position(instances)
        volume = build_volume(ordered.sorted_instances, ByteCache(1 << 20), source.fetch)

        assert [i.instance_uid for i in ordered.sorted_instances] == ["1.2.3.3", "1.2.3.2", "1.2.3.1"]
        assert ordered.average_spacing == pytest.approx(10.0)
        assert volume.data.shape == (3, 2, 2)
        assert volume.spacing == pytest.approx((0.75, 0.5, 10.0))
        for z in range(3):
            assert np.array_equal(volume.data[z].ravel(), np.arange(4) + 10 * z - 1024)
