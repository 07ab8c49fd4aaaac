import unittest
import warnings

import numpy as np

from celldnn.domain import DataType, InvalidConfiguration, UnsupportedBackend
from celldnn.infrastructure.backends import (
    FrameBackend,
    FrameCudaBackend,
    available_backends,
    make_backend,
)
from celldnn.infrastructure.tensor import CudaTensor, Interface, SyncState, Tensor


class TestMakeBackend(unittest.TestCase):
    def test_available(self):
        self.assertEqual(available_backends(), ("Frame", "Frame_CUDA"))

    def test_frame(self):
        backend = make_backend("Frame", "double")
        self.assertIsInstance(backend, FrameBackend)
        self.assertIs(backend.data_type, DataType.DOUBLE)
        self.assertEqual(backend.dtype, np.float64)
        self.assertIs(backend.xp, np)
        self.assertEqual(repr(backend), "FrameBackend(dtype='double')")

    def test_frame_cuda_with_array_module(self):
        backend = make_backend("Frame_CUDA", "float", xp=np, device_index=1)
        self.assertIsInstance(backend, FrameCudaBackend)
        self.assertEqual(backend.device.index, 1)
        t = backend.tensor((2, 3), 1.0)
        self.assertIsInstance(t, CudaTensor)
        self.assertEqual(t.device.index, 1)

    def test_errors(self):
        with self.assertRaises(UnsupportedBackend):
            make_backend("Frame_OpenCL", "float")
        with self.assertRaises(UnsupportedBackend):
            make_backend("Frame", "int8")
        with self.assertRaises(InvalidConfiguration):
            make_backend("Frame", "float", device_index=0)

    def test_half_precision_warning(self):
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            FrameCudaBackend("half", xp=np)
            FrameBackend("half")
        self.assertEqual(len(caught), 1)
        self.assertIs(caught[0].category, RuntimeWarning)


class TestBackendAccess(unittest.TestCase):
    def test_accepts(self):
        host = FrameBackend()
        device = FrameCudaBackend(xp=np)
        h = host.tensor((2,))
        d = device.tensor((2,))
        self.assertTrue(host.accepts(h))
        self.assertTrue(host.accepts(d))
        self.assertFalse(device.accepts(h))
        self.assertTrue(device.accepts(d))

    def test_write_marks_other_side_stale(self):
        device = FrameCudaBackend("double", xp=np)
        t = device.tensor((3,))
        device.write(t)[...] = 4.0
        self.assertIs(t.sync_state, SyncState.DEVICE_VALID)
        FrameBackend("double").read(t)
        self.assertIs(t.sync_state, SyncState.BOTH_VALID)
        np.testing.assert_array_equal(t.to_numpy(), np.full(3, 4.0))

    def test_input_synchronization(self):
        device = FrameCudaBackend("float", xp=np)
        t = device.tensor((2,))
        t.ensure_host(write=True)[...] = 1.0
        device.synchronize_inputs(Interface([t]))
        self.assertIs(t.sync_state, SyncState.BOTH_VALID)

        t.ensure_device(write=True)[...] = 2.0
        FrameBackend().synchronize_inputs(Interface([t]))
        self.assertIs(t.sync_state, SyncState.BOTH_VALID)

    def test_scoped_allocations_release_on_failure(self):
        device = FrameCudaBackend("float", xp=np)
        kept = device.tensor((2,))
        with self.assertRaises(RuntimeError):
            with device.scoped_allocations():
                t = device.tensor((2,))
                raise RuntimeError("boom")
        self.assertTrue(t._storage.released)
        self.assertFalse(kept._storage.released)

        with device.scoped_allocations():
            u = device.tensor((2,))
        self.assertFalse(u._storage.released)

    def test_host_tensor_type(self):
        t = FrameBackend("half").tensor((1, 2))
        self.assertIs(type(t), Tensor)
        self.assertEqual(t.dtype, np.float16)


if __name__ == "__main__":
    unittest.main()
