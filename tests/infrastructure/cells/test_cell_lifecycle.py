import unittest

import numpy as np

from celldnn.domain import CellState, DimensionMismatch, InvalidConfiguration
from celldnn.infrastructure.backends import FrameBackend, FrameCudaBackend
from celldnn.infrastructure.cells import BatchNormCell, ConvCell, DeconvCell, FcCell, PoolCell
from celldnn.infrastructure.tensor import Tensor


def _stimulus(backend, array):
    t = backend.tensor(tuple(reversed(array.shape)))
    t.copy_from_numpy(array)
    return t


class TestCellStates(unittest.TestCase):
    def setUp(self):
        self.backend = FrameBackend("float")
        self.x = np.ones((2, 3, 4, 4), dtype=np.float32)

    def test_state_transitions(self):
        cell = ConvCell("conv", 2, kernel_dims=(3, 3), backend=self.backend)
        self.assertIs(cell.state, CellState.CONSTRUCTED)
        cell.add_input(_stimulus(self.backend, self.x))
        self.assertIs(cell.state, CellState.CONNECTED)
        cell.initialize()
        self.assertIs(cell.state, CellState.INITIALIZED)
        cell.propagate()
        self.assertIs(cell.state, CellState.READY)
        cell.back_propagate()
        cell.update()
        self.assertIs(cell.state, CellState.READY)
        cell.release()
        self.assertIs(cell.state, CellState.DESTROYED)

    def test_outputs_sized_on_connection(self):
        cell = ConvCell("conv", 2, kernel_dims=(3, 3), backend=self.backend)
        self.assertTrue(cell.outputs.empty())
        cell.add_input(_stimulus(self.backend, self.x))
        self.assertEqual(cell.outputs.dims, (2, 2, 2, 2))
        self.assertEqual(cell.diff_inputs.dims, (2, 2, 2, 2))

    def test_nb_outputs_must_be_positive(self):
        with self.assertRaises(InvalidConfiguration):
            FcCell("fc", 0, backend=self.backend)

    def test_add_input_after_initialize(self):
        cell = FcCell("fc", 2, backend=self.backend)
        cell.add_input(_stimulus(self.backend, self.x))
        cell.initialize()
        with self.assertRaises(InvalidConfiguration):
            cell.add_input(_stimulus(self.backend, self.x))

    def test_add_input_validation(self):
        cell = FcCell("fc", 2, backend=self.backend)
        with self.assertRaises(DimensionMismatch):
            cell.add_input(self.backend.tensor((3, 2)))
        with self.assertRaises(DimensionMismatch):
            cell.add_input(self.backend.empty())
        with self.assertRaises(TypeError):
            cell.add_input(self.x)
        self.assertIs(cell.state, CellState.CONSTRUCTED)

    def test_batch_size_must_match(self):
        cell = FcCell("fc", 2, backend=self.backend)
        cell.add_input(_stimulus(self.backend, self.x))
        with self.assertRaises(DimensionMismatch):
            cell.add_input(_stimulus(self.backend, self.x[:1]))

    def test_actions_before_initialize(self):
        cell = FcCell("fc", 2, backend=self.backend)
        with self.assertRaises(InvalidConfiguration):
            cell.initialize()
        cell.add_input(_stimulus(self.backend, self.x))
        for action in (cell.propagate, cell.back_propagate, cell.update, cell.check_gradient):
            with self.subTest(action=action.__name__):
                with self.assertRaises(InvalidConfiguration):
                    action()
        with self.assertRaises(InvalidConfiguration):
            cell.save_free_parameters("unused.syn")

    def test_released_cell_cannot_initialize(self):
        cell = FcCell("fc", 2, backend=self.backend)
        cell.add_input(_stimulus(self.backend, self.x))
        cell.initialize()
        cell.release()
        with self.assertRaises(InvalidConfiguration):
            cell.initialize()
        with self.assertRaises(InvalidConfiguration):
            cell.propagate()

    def test_initialize_twice_keeps_parameters(self):
        cell = FcCell("fc", 2, backend=self.backend)
        cell.add_input(_stimulus(self.backend, self.x))
        cell.initialize()
        w = cell.get_weights()[0].to_numpy()
        cell.initialize()
        np.testing.assert_array_equal(cell.get_weights()[0].to_numpy(), w)


class TestCellParameters(unittest.TestCase):
    def setUp(self):
        self.backend = FrameBackend("float")

    def test_unknown_parameter(self):
        cell = FcCell("fc", 2, backend=self.backend)
        with self.assertRaises(InvalidConfiguration):
            cell.set_parameter("stride", 2)
        with self.assertRaises(InvalidConfiguration):
            cell.get_parameter("stride")

    def test_filler_names(self):
        cell = FcCell("fc", 2, backend=self.backend)
        cell.set_parameter("weights_filler", "ones")
        self.assertEqual(cell.get_parameter("weights_filler"), "ones")
        with self.assertRaises(InvalidConfiguration):
            cell.set_parameter("weights_filler", "glorot")

    def test_filler_is_applied(self):
        cell = FcCell("fc", 2, backend=self.backend, weights_filler="ones")
        cell.add_input(_stimulus(self.backend, np.zeros((1, 3, 1, 1), dtype=np.float32)))
        cell.initialize()
        np.testing.assert_array_equal(cell.get_weights()[0].to_numpy(), np.ones((2, 3)))
        np.testing.assert_array_equal(cell.get_biases().to_numpy().ravel(), np.zeros(2))

    def test_unknown_activation(self):
        with self.assertRaises(InvalidConfiguration):
            FcCell("fc", 2, backend=self.backend, activation="Softplus")

    def test_repr(self):
        cell = PoolCell("pool", 3, 2, backend=self.backend)
        self.assertIn("pool", repr(cell))
        self.assertIn("constructed", repr(cell))


class TestBackendCompatibility(unittest.TestCase):
    def test_device_cell_rejects_host_tensor(self):
        backend = FrameCudaBackend("float", xp=np)
        cell = FcCell("fc", 2, backend=backend)
        host = Tensor((1, 1, 3, 2))
        with self.assertRaises(InvalidConfiguration):
            cell.add_input(host)
        cell.add_input(backend.tensor((1, 1, 3, 2)))
        self.assertIs(cell.state, CellState.CONNECTED)

    def test_host_cell_reads_device_tensor(self):
        backend = FrameCudaBackend("float", xp=np)
        x = backend.tensor((1, 1, 3, 2), 1.0)
        cell = FcCell("fc", 2, backend=FrameBackend("float"), weights_filler="ones")
        cell.add_input(x)
        cell.initialize()
        cell.propagate()
        np.testing.assert_allclose(cell.outputs.to_numpy().reshape(2, 2), np.full((2, 2), 3.0))


class TestZeroParameterOutputs(unittest.TestCase):
    def setUp(self):
        self.backend = FrameBackend("double")
        self.x = np.random.default_rng(4).standard_normal((2, 3, 5, 4))

    def test_zeroed_parameters_give_zero_outputs(self):
        cases = (
            (FcCell("fc", 7, backend=self.backend, weights_filler="zeros"), (1, 1, 7, 2)),
            (
                ConvCell("conv", 2, 3, padding_dims=1, backend=self.backend, weights_filler="zeros"),
                (4, 5, 2, 2),
            ),
            (
                DeconvCell("deconv", 2, 2, stride_dims=2, backend=self.backend, weights_filler="zeros"),
                (8, 10, 2, 2),
            ),
        )
        for cell, dims in cases:
            with self.subTest(cell=cell.name):
                cell.add_input(_stimulus(self.backend, self.x))
                cell.initialize()
                cell.propagate(inference=True)
                self.assertEqual(cell.outputs.dims, dims)
                np.testing.assert_array_equal(cell.outputs.to_numpy(), np.zeros(cell.outputs.shape))

    def test_batchnorm_with_zero_scale_gives_bias(self):
        bn = BatchNormCell("bn", 3, backend=self.backend)
        bn.add_input(_stimulus(self.backend, self.x))
        bn.initialize()
        bn.scale.fill(0.0)
        bn.bias.copy_from_numpy(np.array([1.0, 2.0, 3.0]))
        bn.propagate(inference=True)
        self.assertEqual(bn.outputs.dims, (4, 5, 3, 2))
        expected = np.broadcast_to(np.array([1.0, 2.0, 3.0])[None, :, None, None], (2, 3, 5, 4))
        np.testing.assert_array_equal(bn.outputs.to_numpy(), expected)


class TestMappingInvariance(unittest.TestCase):
    """
    Outputs do not depend on a channel the mapping excludes from every output.
    """

    def setUp(self):
        self.backend = FrameBackend("double")
        self.x = np.random.default_rng(6).standard_normal((2, 3, 4, 4))
        # channel 1 feeds nothing
        self.mapping = np.array([[1, 1], [0, 0], [0, 1]], dtype=bool)

    def _outputs(self, make, x):
        np.random.seed(0)
        cell = make()
        cell.add_input(_stimulus(self.backend, x), mapping=self.mapping)
        cell.initialize()
        cell.propagate()
        return cell.outputs.to_numpy()

    def _check(self, make):
        perturbed = self.x.copy()
        perturbed[:, 1] += np.random.default_rng(7).standard_normal(perturbed[:, 1].shape)
        np.testing.assert_array_equal(self._outputs(make, perturbed), self._outputs(make, self.x))

    def test_conv(self):
        self._check(lambda: ConvCell("conv", 2, 3, padding_dims=1, backend=self.backend))

    def test_max_pool(self):
        self._check(lambda: PoolCell("pool", 2, 2, backend=self.backend))

    def test_average_pool(self):
        self._check(lambda: PoolCell("pool", 2, 2, pooling="Average", backend=self.backend))


if __name__ == "__main__":
    unittest.main()
