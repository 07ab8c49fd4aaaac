import unittest

import numpy as np

from celldnn.domain.device import Device
from celldnn.infrastructure.tensor import CudaTensor, SyncState, cuda_available


def _tensor(dims, value=0.0):
    # NumPy stands in for the device array module
    return CudaTensor(dims, value, xp=np, device_index=0)


class TestCudaTensorSyncProtocol(unittest.TestCase):
    def test_new_tensor_is_valid_on_both_sides(self):
        t = _tensor((2, 3), 1.0)
        self.assertIs(t.sync_state, SyncState.BOTH_VALID)
        self.assertEqual(t.device, Device.cuda(0))
        np.testing.assert_array_equal(t.ensure_device(), np.ones((3, 2)))

    def test_host_write_is_pushed_lazily(self):
        t = _tensor((4,))
        t.ensure_host(write=True)[...] = 2.0
        self.assertIs(t.sync_state, SyncState.HOST_VALID)

        t.synchronize_d_based_to_h()
        self.assertIs(t.sync_state, SyncState.HOST_VALID)

        t.synchronize_h_based_to_d()
        self.assertIs(t.sync_state, SyncState.BOTH_VALID)
        np.testing.assert_array_equal(t._storage.device, np.full(4, 2.0))

    def test_device_write_is_pulled_on_host_read(self):
        t = _tensor((4,))
        t.ensure_device(write=True)[...] = 3.0
        self.assertIs(t.sync_state, SyncState.DEVICE_VALID)
        # host copy is stale until synchronized
        np.testing.assert_array_equal(t._storage.array, np.zeros(4))

        np.testing.assert_array_equal(t.ensure_host(), np.full(4, 3.0))
        self.assertIs(t.sync_state, SyncState.BOTH_VALID)

    def test_unconditional_transfers(self):
        t = _tensor((2,))
        t._storage.array[...] = 9.0
        t.synchronize_h_to_d()
        np.testing.assert_array_equal(t._storage.device, np.full(2, 9.0))

        t._storage.device[...] = 4.0
        t.synchronize_d_to_h()
        np.testing.assert_array_equal(t._storage.array, np.full(2, 4.0))

    def test_views_stay_coherent(self):
        t = _tensor((1, 1, 4, 2))
        view = t.channel_slice(1, 2)
        view.ensure_device(write=True)[...] = 1.0

        arr = t.to_numpy()
        self.assertTrue(np.all(arr[:, 1:3] == 1.0))
        self.assertTrue(np.all(arr[:, 0] == 0.0))

    def test_partial_view_zeroes_both_sides(self):
        t = _tensor((1, 1, 4, 1), 5.0)
        view = t.channel_slice(0, 2)
        self.assertEqual(view.accumulate_beta(), 0.0)
        np.testing.assert_array_equal(t._storage.array.ravel(), np.zeros(4))
        np.testing.assert_array_equal(t._storage.device.ravel(), np.zeros(4))

    def test_fill_targets_authoritative_side(self):
        t = _tensor((3,))
        t.ensure_device(write=True)
        t.fill(2.0)
        self.assertIs(t.sync_state, SyncState.DEVICE_VALID)
        np.testing.assert_array_equal(t.to_numpy(), np.full(3, 2.0))

    def test_release_keeps_device_values(self):
        t = _tensor((2,))
        t.ensure_device(write=True)[...] = 6.0
        t.release()
        self.assertTrue(t._storage.released)
        self.assertIsNone(t._storage.device)
        np.testing.assert_array_equal(t._storage.array, np.full(2, 6.0))

    def test_alias_release_keeps_storage_alive(self):
        t = _tensor((2,))
        a = t.alias()
        a.release()
        self.assertFalse(t._storage.released)
        self.assertIsNotNone(t._storage.device)


@unittest.skipUnless(cuda_available(), "CuPy with a CUDA device is required")
class TestCudaTensorCupy(unittest.TestCase):
    def test_round_trip_through_device(self):
        import cupy as cp

        t = CudaTensor((3, 2), 1.0, dtype=np.float32)
        self.assertIs(t.xp, cp)
        d = t.ensure_device(write=True)
        d *= 4
        np.testing.assert_allclose(t.to_numpy(), np.full((2, 3), 4.0))


if __name__ == "__main__":
    unittest.main()
