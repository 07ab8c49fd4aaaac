import os
import tempfile
import unittest

import numpy as np

from celldnn.domain import (
    InvalidConfiguration,
    ParameterFileCorrupt,
    ParameterIOError,
    UnsupportedConfiguration,
)
from celldnn.infrastructure.backends import FrameBackend
from celldnn.infrastructure.cells import FcCell, PoolCell


def _stimulus(backend, array):
    t = backend.tensor(tuple(reversed(array.shape)))
    t.copy_from_numpy(array)
    return t


def _producer(name, backend, array):
    """
    Identity cell over `array`, so that a consumer gets a gradient slot.
    """
    C = array.shape[1]
    src = PoolCell(name, C, 1, pooling="Average", backend=backend)
    src.add_input(_stimulus(backend, array), mapping=np.eye(C, dtype=bool))
    src.initialize()
    src.propagate()
    return src


class TestFcCellForward(unittest.TestCase):
    def setUp(self):
        self.backend = FrameBackend("double")

    def test_output_dims(self):
        x = _stimulus(self.backend, np.zeros((4, 3, 2, 2)))
        fc = FcCell("fc", 5, backend=self.backend)
        fc.add_input(x)
        self.assertEqual(fc.outputs.dims, (1, 1, 5, 4))
        fc.initialize()
        self.assertEqual(fc.weights_parameter(0).value.dims, (12, 5))
        self.assertEqual(fc.get_biases().dims, (5,))

    def test_input_groups_are_summed(self):
        fc = FcCell("fc", 1, backend=self.backend, no_bias=True)
        fc.add_input(_stimulus(self.backend, np.ones((1, 2, 1, 1))))
        fc.add_input(_stimulus(self.backend, np.ones((1, 1, 1, 1))))
        fc.initialize()
        fc.weights_parameter(0).value.fill(0.5)
        fc.weights_parameter(1).value.fill(0.5)

        fc.propagate()
        self.assertAlmostEqual(float(fc.outputs.to_numpy().ravel()[0]), 1.5)

    def test_forward_matches_numpy(self):
        rng = np.random.default_rng(0)
        x = rng.standard_normal((3, 2, 2, 1))
        fc = FcCell("fc", 4, backend=self.backend, activation="Tanh")
        fc.add_input(_stimulus(self.backend, x))
        fc.initialize()
        fc.get_biases().copy_from_numpy(np.arange(4.0))
        fc.propagate()

        w = fc.weights_parameter(0).value.to_numpy()
        expected = np.tanh(x.reshape(3, -1) @ w.T + np.arange(4.0))
        np.testing.assert_allclose(fc.outputs.to_numpy().reshape(3, 4), expected, rtol=1e-12)

    def test_partial_mapping_is_rejected(self):
        fc = FcCell("fc", 2, backend=self.backend)
        fc.add_input(
            _stimulus(self.backend, np.ones((1, 2, 1, 1))),
            mapping=[[True, False], [True, True]],
        )
        with self.assertRaises(UnsupportedConfiguration):
            fc.initialize()


class TestFcCellAccessors(unittest.TestCase):
    def setUp(self):
        backend = FrameBackend("double")
        self.fc = FcCell("fc", 2, backend=backend)
        self.fc.add_input(_stimulus(backend, np.ones((1, 2, 1, 1))))
        self.fc.add_input(_stimulus(backend, np.ones((1, 1, 1, 1))))
        self.fc.initialize()

    def test_weight_by_output_and_channel(self):
        self.fc.set_weight(1, 2, 0.75)
        w = self.fc.get_weight(1, 2)
        self.assertEqual(w.dims, (1,))
        self.assertEqual(float(w.to_numpy()[0]), 0.75)
        self.assertEqual(float(self.fc.weights_parameter(1).value.to_numpy()[1, 0]), 0.75)

        with self.assertRaises(IndexError):
            self.fc.get_weight(0, 3)

    def test_bias_by_output(self):
        self.fc.set_bias(0, -2.0)
        self.assertEqual(float(self.fc.get_bias(0).to_numpy()[0]), -2.0)

    def test_no_bias(self):
        backend = FrameBackend("double")
        fc = FcCell("fc", 2, backend=backend, no_bias=True)
        fc.add_input(_stimulus(backend, np.ones((1, 2, 1, 1))))
        fc.initialize()
        with self.assertRaises(InvalidConfiguration):
            fc.get_biases()
        with self.assertRaises(InvalidConfiguration):
            fc.set_parameter("no_bias", False)


class TestFcCellBackward(unittest.TestCase):
    def setUp(self):
        np.random.seed(0)
        self.backend = FrameBackend("double")
        rng = np.random.default_rng(1)
        self.src = _producer("src", self.backend, rng.standard_normal((2, 3, 1, 2)))

    def test_gradients(self):
        fc = FcCell("fc", 3, backend=self.backend, no_bias=True)
        fc.add_input(self.src)
        fc.initialize()
        fc.propagate()

        g = np.random.default_rng(2).standard_normal((2, 3))
        fc.diff_inputs.copy_from_numpy(g)
        fc.back_propagate()

        x = self.src.outputs.to_numpy().reshape(2, -1)
        w = fc.weights_parameter(0).value.to_numpy()
        np.testing.assert_allclose(
            fc.weights_parameter(0).grad.to_numpy(), g.T @ x, rtol=1e-12
        )
        np.testing.assert_allclose(
            self.src.diff_inputs.to_numpy().reshape(2, -1), g @ w, rtol=1e-12
        )
        self.assertTrue(self.src.diff_inputs.valid)

    def test_gradient_check(self):
        fc = FcCell("fc", 3, backend=self.backend, activation="Tanh")
        fc.add_input(self.src)
        fc.initialize()
        fc.get_biases().copy_from_numpy(np.array([0.1, -0.2, 0.3]))

        results = fc.check_gradient(epsilon=1e-5, max_error=1e-5)
        self.assertEqual(
            [r.name for r in results],
            ["fc_diff_weights[0]", "fc_diff_bias", "fc_diff_outputs[0]"],
        )
        for r in results:
            with self.subTest(name=r.name):
                self.assertTrue(r.passed)
                self.assertGreater(r.nb_checked, 0)

    def test_update_applies_sgd(self):
        from celldnn.infrastructure.solvers import SGDSolver

        fc = FcCell("fc", 2, backend=self.backend, weights_solver=SGDSolver(0.5))
        fc.add_input(self.src)
        fc.initialize()
        fc.propagate()
        fc.diff_inputs.copy_from_numpy(np.ones((2, 2)))
        fc.back_propagate()

        w0 = fc.weights_parameter(0).value.to_numpy()
        dw = fc.weights_parameter(0).grad.to_numpy()
        fc.update()
        np.testing.assert_allclose(
            fc.weights_parameter(0).value.to_numpy(), w0 - 0.5 * dw / 2, rtol=1e-12
        )
        # gradient is consumed by the update
        self.assertFalse(fc.weights_parameter(0).grad.valid)


class TestFcCellParameterFile(unittest.TestCase):
    def setUp(self):
        np.random.seed(3)
        self.backend = FrameBackend("float")
        self.x = _stimulus(self.backend, np.ones((1, 3, 1, 1), dtype=np.float32))
        self.tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmp.name, "fc.syn")

    def tearDown(self):
        self.tmp.cleanup()

    def _cell(self):
        fc = FcCell("fc", 2, backend=self.backend)
        fc.add_input(self.x)
        fc.initialize()
        return fc

    def test_round_trip(self):
        a = self._cell()
        a.get_biases().copy_from_numpy(np.array([1.0, 2.0]))
        a.save_free_parameters(self.path)
        # weights (2 x 3) then bias (2), float32
        self.assertEqual(os.path.getsize(self.path), (6 + 2) * 4)

        b = self._cell()
        b.load_free_parameters(self.path)
        np.testing.assert_array_equal(
            b.weights_parameter(0).value.to_numpy(), a.weights_parameter(0).value.to_numpy()
        )
        np.testing.assert_array_equal(b.get_biases().to_numpy(), [1.0, 2.0])

    def test_size_mismatch_is_corrupt(self):
        a = self._cell()
        before = a.weights_parameter(0).value.to_numpy()

        with open(self.path, "wb") as f:
            f.write(b"\0" * 4 * 7)
        with self.assertRaises(ParameterFileCorrupt):
            a.load_free_parameters(self.path)

        with open(self.path, "wb") as f:
            f.write(b"\0" * 4 * 9)
        with self.assertRaises(ParameterFileCorrupt):
            a.load_free_parameters(self.path)

        np.testing.assert_array_equal(a.weights_parameter(0).value.to_numpy(), before)

    def test_missing_file(self):
        a = self._cell()
        with self.assertRaises(ParameterIOError):
            a.load_free_parameters(self.path)
        a.load_free_parameters(self.path, ignore_not_exists=True)

    def test_requires_initialize(self):
        fc = FcCell("fc", 2, backend=self.backend)
        fc.add_input(self.x)
        with self.assertRaises(InvalidConfiguration):
            fc.save_free_parameters(self.path)


if __name__ == "__main__":
    unittest.main()
