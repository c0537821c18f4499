import numpy as np
import pytest
import pyvista as pv

from core.base import VolumeData, VolumeOrientation
from exporters import VTKExporter
from rendering import generate_preset_texture


@pytest.fixture
def volume():
    data = np.arange(24, dtype=np.int16).reshape(4, 3, 2)
    return VolumeData(
        data=data,
        spacing=(0.5, 0.75, 2.0),
        origin=(-10.0, 5.0, 100.0),
        orientation=VolumeOrientation(),
        window_center=50.0,
        window_width=350.0,
    )


class TestVolumeGrid:
    def test_grid_geometry(self, volume):
        grid = VTKExporter.volume_to_grid(volume)

        assert grid.dimensions == (2, 3, 4)
        assert grid.spacing == pytest.approx((0.5, 0.75, 2.0))
        assert grid.origin == pytest.approx((-10.0, 5.0, 100.0))
        assert np.allclose(grid.direction_matrix, np.eye(3))

    def test_point_order_matches_flat_buffer(self, volume):
        grid = VTKExporter.volume_to_grid(volume)
        assert np.array_equal(grid.point_data["HU"], volume.flat)
        assert grid.field_data["WindowCenter"][0] == 50.0

    def test_export_vti(self, volume, tmp_path):
        path = str(tmp_path / "volume.vti")
        assert VTKExporter.export_volume(volume, path)

        loaded = pv.read(path)
        assert loaded.dimensions == (2, 3, 4)
        assert np.array_equal(loaded.point_data["HU"], volume.flat)

    def test_export_rejects_other_extensions(self, volume, tmp_path):
        with pytest.raises(ValueError):
            VTKExporter.export_volume(volume, str(tmp_path / "volume.nii"))
        with pytest.raises(ValueError):
            VTKExporter.export_volume(None, str(tmp_path / "volume.vti"))


class TestPlaneImage:
    def test_flat_plane_flipped_bottom_up(self):
        image = VTKExporter.plane_to_image(np.array([1, 2, 3, 4], dtype=np.int16), width=2, height=2, spacing=(0.5, 0.5))

        assert image.dimensions == (2, 2, 1)
        assert list(image.point_data["HU"]) == [3, 4, 1, 2]
        assert image.spacing == pytest.approx((0.5, 0.5, 1.0))

    def test_flat_plane_requires_size(self):
        with pytest.raises(ValueError):
            VTKExporter.plane_to_image(np.zeros(4))

    def test_rejects_volume(self):
        with pytest.raises(ValueError):
            VTKExporter.plane_to_image(np.zeros((2, 2, 2)))


class TestLookupTable:
    def test_texture_to_lookup_table(self):
        texture = generate_preset_texture("CT-Bone")
        lut = VTKExporter.texture_to_lookup_table(texture)

        assert lut.n_values == 4096
        assert lut.scalar_range == pytest.approx((-1024, 3071))
        assert np.array_equal(lut.values, texture)

    def test_wrong_shape(self):
        with pytest.raises(ValueError):
            VTKExporter.texture_to_lookup_table(np.zeros((256, 4), dtype=np.uint8))
