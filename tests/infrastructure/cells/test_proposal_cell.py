import unittest

import numpy as np

from celldnn.domain import DimensionMismatch, InvalidConfiguration
from celldnn.infrastructure.backends import FrameBackend
from celldnn.infrastructure.cells import PoolCell, ProposalCell


def _stimulus(backend, array):
    t = backend.tensor(tuple(reversed(array.shape)))
    t.copy_from_numpy(array)
    return t


def _rois(boxes):
    # (N, R, 4) boxes -> (N, 4, 1, R) stimulus array
    return np.asarray(boxes, dtype=np.float32).transpose(0, 2, 1)[:, :, None, :]


class TestProposalCell(unittest.TestCase):
    def setUp(self):
        self.backend = FrameBackend("float")
        # two samples, three anchors each
        self.rois = _rois(
            [
                [(0, 0, 2, 2), (0, 0, 2, 2.1), (10, 10, 2, 2)],
                [(0, 0, 4, 4), (20, 0, 4, 4), (0, 20, 4, 4)],
            ]
        )
        self.deltas = np.zeros_like(self.rois)
        self.scores = np.array(
            [[0.5, 0.9, 0.7], [0.1, 0.3, 0.2]], dtype=np.float32
        ).reshape(2, 1, 1, 3)

    def _cell(self, nb_proposals=3, **kwargs):
        cell = ProposalCell("prop", nb_proposals, backend=self.backend, **kwargs)
        for array in (self.rois, self.deltas, self.scores):
            cell.add_input(_stimulus(self.backend, array))
        cell.initialize()
        return cell

    def test_output_dims(self):
        cell = self._cell(nb_proposals=5)
        self.assertEqual(cell.outputs.dims, (5, 1, 4, 2))
        self.assertEqual(cell.nb_outputs, 4)

    def test_selection_per_sample(self):
        cell = self._cell()
        cell.propagate()
        self.assertEqual(cell.nb_selected, [2, 3])

        out = cell.outputs.to_numpy().reshape(2, 4, 3)
        np.testing.assert_allclose(out[0, :, 0], [0, 0, 2, 2.1], rtol=1e-6)
        np.testing.assert_allclose(out[0, :, 1], [10, 10, 2, 2])
        np.testing.assert_array_equal(out[0, :, 2], np.zeros(4))
        np.testing.assert_allclose(out[1, :, 0], [20, 0, 4, 4])
        np.testing.assert_allclose(out[1, :, 1], [0, 20, 4, 4])

    def test_nms_disabled(self):
        cell = self._cell(apply_nms=False)
        cell.propagate()
        self.assertEqual(cell.nb_selected, [3, 3])

    def test_factors_from_parameters(self):
        cell = self._cell(nb_proposals=1)
        cell.set_parameter("means_factor", [1.0, 0.0, 0.0, 0.0])
        cell.propagate()
        out = cell.outputs.to_numpy().reshape(2, 4, 1)
        # best box of sample 0 shifted right by its width
        self.assertAlmostEqual(float(out[0, 0, 0]), 2.0)

    def test_wrong_number_of_inputs(self):
        cell = ProposalCell("prop", 2, backend=self.backend)
        cell.add_input(_stimulus(self.backend, self.rois))
        cell.add_input(_stimulus(self.backend, self.deltas))
        with self.assertRaises(InvalidConfiguration):
            cell.initialize()

    def test_input_dims(self):
        cell = ProposalCell("prop", 2, backend=self.backend)
        cell.add_input(_stimulus(self.backend, self.rois))
        cell.add_input(_stimulus(self.backend, self.deltas[:, :, :, :2]))
        cell.add_input(_stimulus(self.backend, self.scores))
        with self.assertRaises(DimensionMismatch):
            cell.initialize()

    def test_invalid_parameters(self):
        with self.assertRaises(InvalidConfiguration):
            ProposalCell("prop", 0, backend=self.backend)
        for key, value in (("std_factor", [1.0, 1.0]), ("iou_threshold", 1.5)):
            with self.subTest(key=key):
                cell = ProposalCell("prop", 2, backend=self.backend)
                cell.set_parameter(key, value)
                for array in (self.rois, self.deltas, self.scores):
                    cell.add_input(_stimulus(self.backend, array))
                with self.assertRaises(InvalidConfiguration):
                    cell.initialize()

    def test_no_gradient(self):
        src = PoolCell("src", 4, 1, pooling="Average", backend=self.backend)
        src.add_input(_stimulus(self.backend, self.deltas), mapping=np.eye(4, dtype=bool))
        src.initialize()
        src.propagate()

        cell = ProposalCell("prop", 2, backend=self.backend)
        cell.add_input(_stimulus(self.backend, self.rois))
        cell.add_input(src)
        cell.add_input(_stimulus(self.backend, self.scores))
        cell.initialize()
        cell.propagate()

        cell.back_propagate()
        self.assertFalse(src.diff_inputs.valid)
        self.assertEqual(cell.check_gradient(), [])


if __name__ == "__main__":
    unittest.main()
