import unittest

import numpy as np

from celldnn.infrastructure.ops.fc_cpu import (
    fc_backward_data_cpu,
    fc_backward_weights_cpu,
    fc_forward_cpu,
)
from celldnn.infrastructure.ops.fc_cuda import (
    fc_backward_data_cuda,
    fc_backward_weights_cuda,
    fc_forward_cuda,
)


class TestFcKernels(unittest.TestCase):
    def setUp(self):
        rng = np.random.default_rng(4)
        self.x = rng.standard_normal((3, 5))
        self.w = rng.standard_normal((4, 5))
        self.g = rng.standard_normal((3, 4))
        self.y0 = rng.standard_normal((3, 4))

    def test_forward_matches_matmul(self):
        y = self.y0.copy()
        fc_forward_cpu(2.0, self.x, self.w, 1.0, y)
        np.testing.assert_allclose(y, 2.0 * self.x @ self.w.T + self.y0, rtol=1e-12)

    def test_accumulation_of_two_groups(self):
        y = np.full((3, 4), np.nan)
        fc_forward_cpu(1.0, self.x, self.w, 0.0, y)
        fc_forward_cpu(1.0, self.x, self.w, 1.0, y)
        np.testing.assert_allclose(y, 2.0 * self.x @ self.w.T, rtol=1e-12)

    def test_backward(self):
        gw = np.zeros(self.w.shape)
        fc_backward_weights_cpu(1.0, self.x, self.g, 0.0, gw)
        np.testing.assert_allclose(gw, self.g.T @ self.x, rtol=1e-12)

        gx = np.ones(self.x.shape)
        fc_backward_data_cpu(1.0, self.w, self.g, 1.0, gx)
        np.testing.assert_allclose(gx, self.g @ self.w + 1.0, rtol=1e-12)

    def test_vectorized_parity(self):
        y_ref, y_vec = self.y0.copy(), self.y0.copy()
        fc_forward_cpu(0.5, self.x, self.w, 1.0, y_ref)
        fc_forward_cuda(np, 0.5, self.x, self.w, 1.0, y_vec)
        np.testing.assert_allclose(y_vec, y_ref, rtol=1e-12)

        gw_ref, gw_vec = np.ones(self.w.shape), np.ones(self.w.shape)
        fc_backward_weights_cpu(1.0, self.x, self.g, 1.0, gw_ref)
        fc_backward_weights_cuda(np, 1.0, self.x, self.g, 1.0, gw_vec)
        np.testing.assert_allclose(gw_vec, gw_ref, rtol=1e-12)

        gx_ref, gx_vec = np.zeros(self.x.shape), np.zeros(self.x.shape)
        fc_backward_data_cpu(1.0, self.w, self.g, 0.0, gx_ref)
        fc_backward_data_cuda(np, 1.0, self.w, self.g, 0.0, gx_vec)
        np.testing.assert_allclose(gx_vec, gx_ref, rtol=1e-12)


if __name__ == "__main__":
    unittest.main()
