import unittest

import numpy as np

from celldnn.infrastructure.activations import (
    LinearActivation,
    LogisticActivation,
    RectifierActivation,
    TanhActivation,
    activation_to_config,
    make_activation,
)


def _numeric_derivative(act, x, eps=1e-6):
    def f(v):
        y = np.array(v, dtype=np.float64)
        act.propagate(np, y)
        return y

    return (f(x + eps) - f(x - eps)) / (2 * eps)


class TestActivations(unittest.TestCase):
    def setUp(self):
        self.x = np.array([-2.0, -0.5, 0.3, 1.7])

    def test_forward_values(self):
        cases = (
            (LinearActivation(), self.x),
            (TanhActivation(), np.tanh(self.x)),
            (LogisticActivation(), 1 / (1 + np.exp(-self.x))),
            (RectifierActivation(), np.maximum(self.x, 0)),
            (RectifierActivation(0.1), np.where(self.x > 0, self.x, 0.1 * self.x)),
        )
        for act, expected in cases:
            with self.subTest(act=repr(act)):
                y = self.x.copy()
                act.propagate(np, y)
                np.testing.assert_allclose(y, expected, rtol=1e-12)

    def test_derivative_from_output(self):
        for act in (
            LinearActivation(),
            TanhActivation(),
            LogisticActivation(),
            RectifierActivation(0.2),
        ):
            with self.subTest(act=repr(act)):
                y = self.x.copy()
                act.propagate(np, y)
                dy = np.full_like(y, 3.0)
                act.back_propagate(np, y, dy)
                np.testing.assert_allclose(
                    dy, 3.0 * _numeric_derivative(act, self.x), rtol=1e-5
                )


class TestActivationConfig(unittest.TestCase):
    def test_default_is_linear(self):
        self.assertIsInstance(make_activation(), LinearActivation)
        self.assertIsInstance(make_activation(None), LinearActivation)

    def test_by_name(self):
        self.assertIsInstance(make_activation("Tanh"), TanhActivation)
        self.assertIsInstance(make_activation("Logistic"), LogisticActivation)

    def test_instance_is_kept(self):
        act = RectifierActivation(0.3)
        self.assertIs(make_activation(act), act)

    def test_config_round_trip(self):
        cfg = activation_to_config(RectifierActivation(0.25))
        self.assertEqual(cfg, {"type": "Rectifier", "config": {"leak_slope": 0.25}})
        act = make_activation(cfg)
        self.assertIsInstance(act, RectifierActivation)
        self.assertEqual(act.leak_slope, 0.25)
        self.assertEqual(activation_to_config(make_activation()), {"type": "Linear", "config": {}})

    def test_unknown_name(self):
        with self.assertRaises(ValueError):
            make_activation("Swish")


if __name__ == "__main__":
    unittest.main()
