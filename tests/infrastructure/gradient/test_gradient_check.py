import unittest

import numpy as np

from celldnn.infrastructure.gradient import GradientCheck
from celldnn.infrastructure.tensor import Tensor


class _Square:
    """
    y = scale * x**2 with a hand-written backward pass.
    """

    def __init__(self, x, scale=1.0, wrong=False):
        self.x = Tensor.from_numpy(np.asarray(x, dtype=np.float64))
        self.y = Tensor(self.x.dims, dtype=np.float64)
        self.dy = Tensor(self.x.dims, dtype=np.float64)
        self.dx = Tensor(self.x.dims, dtype=np.float64)
        self.scale = scale
        self.wrong = wrong

    def propagate(self):
        self.y.copy_from_numpy(self.scale * self.x.to_numpy() ** 2)

    def back_propagate(self):
        factor = 3.0 if self.wrong else 2.0
        self.dx.copy_from_numpy(factor * self.scale * self.x.to_numpy() * self.dy.to_numpy())


class TestGradientCheck(unittest.TestCase):
    def _check(self, op, **kwargs):
        gc = GradientCheck(epsilon=1e-5, max_error=1e-6, seed=0)
        gc.initialize(op.y, op.dy, op.propagate, op.back_propagate, **kwargs)
        return gc.check("square", op.x, op.dx)

    def test_correct_gradient_passes(self):
        op = _Square([[0.5, -1.0, 2.0]], scale=1.5)
        result = self._check(op)
        self.assertTrue(result.passed)
        self.assertEqual(result.name, "square")
        self.assertEqual(result.nb_checked, 3)
        self.assertEqual(result.nb_skipped, 0)
        self.assertLess(result.max_error, 1e-6)

    def test_wrong_gradient_fails_and_logs(self):
        op = _Square([[0.5, -1.0, 2.0]], wrong=True)
        with self.assertLogs("celldnn.infrastructure.gradient._gradient_check", "WARNING") as cm:
            result = self._check(op)
        self.assertFalse(result.passed)
        self.assertEqual(result.nb_failed, 3)
        self.assertTrue(any("failed on 3 of 3" in line for line in cm.output))

    def test_values_restored(self):
        x = np.array([[0.25, 4.0]])
        op = _Square(x)
        self._check(op)
        np.testing.assert_array_equal(op.x.to_numpy(), x)
        np.testing.assert_allclose(op.y.to_numpy(), x**2)

    def test_switching_elements_are_skipped(self):
        op = _Square([[1.0, 2.0]], wrong=True)
        # the switch flips whenever the first element moves
        result = self._check(op, switch_state=lambda: float(op.x.to_numpy()[0, 0]) == 1.0)
        self.assertEqual(result.nb_skipped, 1)
        self.assertEqual(result.nb_checked, 1)
        self.assertEqual(result.nb_failed, 1)

    def test_arguments(self):
        with self.assertRaises(ValueError):
            GradientCheck(epsilon=0.0)
        with self.assertRaises(ValueError):
            GradientCheck(max_error=-1.0)
        op = _Square([[1.0]])
        with self.assertRaises(RuntimeError):
            GradientCheck().check("square", op.x, op.dx)


if __name__ == "__main__":
    unittest.main()
