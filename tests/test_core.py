import unittest

import numpy as np

from core import (
    DecodeFailureError,
    EmptyStackError,
    FetchFailureError,
    Instance,
    InvalidDimensionsError,
    NotInitializedError,
    ReconstructionError,
    VolumeBuildError,
    VolumeData,
    VolumeOrientation,
)


class TestInstance(unittest.TestCase):
    def test_from_dict_applies_defaults(self):
        inst = Instance.from_dict({"instance_uid": "1.2", "rows": "512", "columns": 512})

        self.assertEqual(inst.rows, 512)
        self.assertEqual(inst.pixel_spacing, (1.0, 1.0))
        self.assertEqual(inst.image_position_patient, (0.0, 0.0, 0.0))
        self.assertEqual(inst.image_orientation_patient, (1.0, 0.0, 0.0, 0.0, 1.0, 0.0))
        self.assertIsNone(inst.window_center)
        self.assertEqual(inst.slope, 1.0)
        self.assertEqual(inst.intercept, 0.0)

    def test_dict_round_trip(self):
        inst = Instance(
            instance_uid="9",
            rows=2,
            columns=3,
            pixel_spacing=(0.5, 0.7),
            image_position_patient=(1.0, 2.0, 3.0),
            rescale_slope=2.0,
            rescale_intercept=-1024.0,
            window_center=40.0,
            window_width=400.0,
            image_id="wadouri:9",
        )
        self.assertEqual(Instance.from_dict(inst.to_dict()), inst)

    def test_zero_slope_falls_back_to_one(self):
        inst = Instance(instance_uid="1", rows=1, columns=1, rescale_slope=0.0, rescale_intercept=-1024.0)
        self.assertEqual(inst.slope, 1.0)
        self.assertEqual(inst.intercept, -1024.0)


class TestVolumeData(unittest.TestCase):
    def test_dimensions_and_plane_size(self):
        vol = VolumeData(data=np.zeros((4, 3, 2), dtype=np.int16))
        self.assertEqual(vol.dimensions, (2, 3, 4))
        self.assertEqual(vol.plane_size, 6)
        self.assertEqual(vol.flat.shape, (24,))

    def test_copy_buffer_is_independent(self):
        vol = VolumeData(data=np.ones((2, 2, 2), dtype=np.int16))
        buf = vol.copy_buffer()
        buf[:] = 7
        self.assertTrue(np.all(vol.data == 1))
        self.assertEqual(buf.dtype, np.int16)

    def test_rejects_non_3d(self):
        with self.assertRaises(ValueError):
            VolumeData(data=np.zeros((4, 4), dtype=np.int16))

    def test_orientation_matrix_columns(self):
        orient = VolumeOrientation(row_dir=(0.0, 1.0, 0.0), col_dir=(1.0, 0.0, 0.0), slice_dir=(0.0, 0.0, -1.0))
        m = orient.as_matrix()
        self.assertEqual(list(m[:, 0]), [0.0, 1.0, 0.0])
        self.assertEqual(list(m[:, 2]), [0.0, 0.0, -1.0])


class TestErrors(unittest.TestCase):
    def test_hierarchy(self):
        for exc in (
            EmptyStackError(),
            InvalidDimensionsError(0, 4),
            DecodeFailureError("x"),
            FetchFailureError("1"),
            NotInitializedError(),
        ):
            self.assertIsInstance(exc, ReconstructionError)
        self.assertIsInstance(EmptyStackError(), ValueError)
        self.assertIsInstance(NotInitializedError(), RuntimeError)

    def test_messages_carry_context(self):
        self.assertIn("buffer size: 12 bytes", str(DecodeFailureError("Short payload", 12)))
        self.assertIn("1.2.3", str(FetchFailureError("1.2.3", "timeout")))
        self.assertEqual(str(NotInitializedError()), "Volume not initialized")

        cause = DecodeFailureError("bad")
        err = VolumeBuildError("7", 3, cause)
        self.assertEqual((err.instance_uid, err.slice_index, err.cause), ("7", 3, cause))
        self.assertIn("slice 3", str(err))


if __name__ == "__main__":
    unittest.main()
