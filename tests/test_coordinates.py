import numpy as np
import pytest

from core import VolumeData, VolumeOrientation
from core.coordinates import raw_zyx_to_grid_xyz, voxel_to_index, voxel_to_world, world_to_voxel


def _volume(orientation=None):
    return VolumeData(
        data=np.zeros((2, 3, 4), dtype=np.int16),
        spacing=(2.0, 3.0, 4.0),
        origin=(10.0, 20.0, 30.0),
        orientation=orientation or VolumeOrientation(),
    )


def test_raw_zyx_to_grid_xyz():
    raw = np.arange(2 * 3 * 4, dtype=np.int32).reshape(2, 3, 4)
    grid = raw_zyx_to_grid_xyz(raw)
    assert grid.shape == (4, 3, 2)
    assert grid[3, 2, 1] == raw[1, 2, 3]

    with pytest.raises(ValueError):
        raw_zyx_to_grid_xyz(np.zeros((2, 2)))


def test_world_to_voxel_axis_aligned():
    assert world_to_voxel(_volume(), (14.0, 26.0, 38.0)) == pytest.approx((2.0, 2.0, 2.0))
    assert voxel_to_world(_volume(), (2.0, 2.0, 2.0)) == pytest.approx((14.0, 26.0, 38.0))


def test_round_trip_with_rotated_orientation():
    orient = VolumeOrientation(row_dir=(0.0, 1.0, 0.0), col_dir=(1.0, 0.0, 0.0), slice_dir=(0.0, 0.0, -1.0))
    vol = _volume(orient)

    world = voxel_to_world(vol, (1.5, 0.5, 1.0))
    # Voxel x steps along +y, y along +x, z along -z
    assert world == pytest.approx((11.5, 23.0, 26.0))
    assert world_to_voxel(vol, world) == pytest.approx((1.5, 0.5, 1.0))


def test_zero_spacing_rejected():
    vol = _volume()
    vol.spacing = (1.0, 0.0, 1.0)
    with pytest.raises(ValueError):
        world_to_voxel(vol, (0.0, 0.0, 0.0))


def test_voxel_to_index_modes():
    assert voxel_to_index((1.4, 1.6, -0.4)) == (1, 2, 0)
    assert voxel_to_index((1.4, 1.6, -0.4), rounding="floor") == (1, 1, -1)
    assert voxel_to_index((1.4, 1.6, -0.4), rounding="ceil") == (2, 2, 0)
    with pytest.raises(ValueError):
        voxel_to_index((0, 0, 0), rounding="nearest")
