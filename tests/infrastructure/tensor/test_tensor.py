import unittest

import numpy as np

from celldnn.domain import DeviceNotSupportedError, DimensionMismatch
from celldnn.domain.device import Device
from celldnn.infrastructure.tensor import Tensor


class TestTensorShape(unittest.TestCase):
    def test_dims_are_reversed_numpy_shape(self):
        t = Tensor((5, 4, 3, 2))
        self.assertEqual(t.dims, (5, 4, 3, 2))
        self.assertEqual(t.shape, (2, 3, 4, 5))
        self.assertEqual((t.dim_x, t.dim_y, t.dim_z, t.dim_b), (5, 4, 3, 2))
        self.assertEqual(t.size, 120)
        self.assertEqual(t.nb_dims, 4)
        self.assertEqual(len(t), 2)
        self.assertEqual(t.device, Device("cpu"))

    def test_empty_tensor(self):
        t = Tensor()
        self.assertTrue(t.empty())
        self.assertEqual(t.size, 0)
        self.assertEqual(t.dims, ())
        self.assertEqual(len(t), 0)

    def test_initial_value_and_dtype(self):
        t = Tensor((2, 3), 1.5, dtype=np.float64)
        self.assertEqual(t.dtype, np.dtype(np.float64))
        np.testing.assert_array_equal(t.to_numpy(), np.full((3, 2), 1.5))

    def test_from_numpy_derives_dims(self):
        arr = np.arange(6, dtype=np.float32).reshape(2, 3)
        t = Tensor.from_numpy(arr)
        self.assertEqual(t.dims, (3, 2))
        np.testing.assert_array_equal(t.to_numpy(), arr)

        arr[0, 0] = 100.0
        self.assertEqual(t.to_numpy()[0, 0], 0.0)

    def test_resize_and_reshape(self):
        t = Tensor((2, 2), 1.0)
        t.resize((3, 1), 2.0)
        self.assertEqual(t.dims, (3, 1))
        np.testing.assert_array_equal(t.to_numpy(), np.full((1, 3), 2.0))

        t.reshape((1, 3))
        self.assertEqual(t.shape, (3, 1))
        with self.assertRaises(DimensionMismatch):
            t.reshape((2, 2))

    def test_copy_from_numpy_checks_size(self):
        t = Tensor((2, 2))
        with self.assertRaises(DimensionMismatch):
            t.copy_from_numpy(np.zeros(5))
        t.copy_from_numpy(np.arange(4))
        np.testing.assert_array_equal(t.to_numpy().ravel(), np.arange(4))

    def test_host_tensor_has_no_device_side(self):
        t = Tensor((2,))
        with self.assertRaises(DeviceNotSupportedError):
            t.ensure_device()
        # the explicit transfers are no-ops on host tensors
        t.synchronize_h_to_d()
        t.synchronize_d_based_to_h()


class TestTensorAliasing(unittest.TestCase):
    def test_channel_slice_shares_storage(self):
        t = Tensor((2, 2, 4, 3))
        view = t.channel_slice(1, 2)
        self.assertTrue(view.is_view)
        self.assertTrue(view.shares_storage(t))
        self.assertEqual(view.dims, (2, 2, 2, 3))

        view.fill(7.0)
        arr = t.to_numpy()
        self.assertTrue(np.all(arr[:, 1:3] == 7.0))
        self.assertTrue(np.all(arr[:, 0] == 0.0))
        self.assertTrue(np.all(arr[:, 3] == 0.0))

    def test_channel_slice_bounds(self):
        t = Tensor((2, 2, 4, 3))
        with self.assertRaises(DimensionMismatch):
            t.channel_slice(3, 2)
        with self.assertRaises(DimensionMismatch):
            t.channel_slice(0, 0)

    def test_views_cannot_be_resized(self):
        view = Tensor((2, 2, 4, 1)).channel_slice(0, 2)
        with self.assertRaises(DimensionMismatch):
            view.resize((1,))
        with self.assertRaises(DimensionMismatch):
            view.channel_slice(0, 1)

    def test_alias_shares_validity(self):
        t = Tensor((3,))
        a = t.alias()
        self.assertFalse(a.valid)
        t.set_valid()
        self.assertTrue(a.valid)
        a.clear_valid()
        self.assertFalse(t.valid)


class TestAccumulateBeta(unittest.TestCase):
    def test_beta_follows_validity(self):
        t = Tensor((2,), 3.0)
        self.assertEqual(t.accumulate_beta(), 0.0)
        t.set_valid()
        self.assertEqual(t.accumulate_beta(), 1.0)

    def test_partial_view_zeroes_invalid_storage(self):
        t = Tensor((1, 1, 4, 1), 5.0)
        view = t.channel_slice(2, 2)

        self.assertEqual(view.accumulate_beta(), 0.0)
        np.testing.assert_array_equal(t.to_numpy().ravel(), np.zeros(4))

    def test_full_tensor_is_not_zeroed(self):
        t = Tensor((1, 1, 4, 1), 5.0)
        self.assertEqual(t.accumulate_beta(), 0.0)
        np.testing.assert_array_equal(t.to_numpy().ravel(), np.full(4, 5.0))


if __name__ == "__main__":
    unittest.main()
