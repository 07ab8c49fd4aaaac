import os
import tempfile
import unittest

import numpy as np

from celldnn.domain import ParameterFileCorrupt, ParameterIOError
from celldnn.infrastructure.io import load_tensors, save_tensors
from celldnn.infrastructure.tensor import CudaTensor, Tensor


class TestParameterFile(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self._tmp.name, "params.syn")

    def tearDown(self):
        self._tmp.cleanup()

    def test_layout_is_raw_concatenation(self):
        a = Tensor.from_numpy(np.array([[1, 2, 3], [4, 5, 6]], dtype=np.float32))
        b = Tensor.from_numpy(np.array([7.5], dtype=np.float64))
        save_tensors(self.path, [a, b])

        raw = open(self.path, "rb").read()
        self.assertEqual(len(raw), 6 * 4 + 8)
        np.testing.assert_array_equal(np.frombuffer(raw[:24], dtype=np.float32), np.arange(1, 7))
        self.assertEqual(np.frombuffer(raw[24:], dtype=np.float64)[0], 7.5)

    def test_load_into_allocated_tensors(self):
        src = [Tensor.from_numpy(np.arange(4.0).reshape(2, 2)), Tensor.from_numpy(np.ones(3))]
        save_tensors(self.path, src)

        dst = [Tensor((2, 2), dtype=np.float64), Tensor((3,), dtype=np.float64)]
        self.assertTrue(load_tensors(self.path, dst))
        for s, d in zip(src, dst):
            np.testing.assert_array_equal(d.to_numpy(), s.to_numpy())

    def test_device_tensors(self):
        t = CudaTensor((3,), 2.0, dtype=np.float32, xp=np)
        t.ensure_device(write=True)[...] = [1.0, 2.0, 3.0]
        save_tensors(self.path, [t])

        u = CudaTensor((3,), dtype=np.float32, xp=np)
        load_tensors(self.path, [u])
        np.testing.assert_array_equal(u.ensure_device(), [1.0, 2.0, 3.0])

    def test_size_mismatch_leaves_tensors_untouched(self):
        save_tensors(self.path, [Tensor.from_numpy(np.ones(4, dtype=np.float32))])
        for n in (3, 5):
            with self.subTest(n=n):
                t = Tensor((n,), 9.0)
                with self.assertRaises(ParameterFileCorrupt):
                    load_tensors(self.path, [t])
                np.testing.assert_array_equal(t.to_numpy(), np.full(n, 9.0))

    def test_missing_file(self):
        missing = os.path.join(self._tmp.name, "missing.syn")
        with self.assertRaises(ParameterIOError):
            load_tensors(missing, [Tensor((1,))])
        with self.assertLogs("celldnn.infrastructure.io._parameter_file", "INFO"):
            self.assertFalse(load_tensors(missing, [Tensor((1,))], ignore_not_exists=True))

    def test_unwritable_path(self):
        with self.assertRaises(ParameterIOError):
            save_tensors(os.path.join(self._tmp.name, "no", "such", "dir.syn"), [Tensor((1,))])


if __name__ == "__main__":
    unittest.main()
