import unittest

from celldnn.domain import (
    CellError,
    DeviceNotSupportedError,
    DimensionMismatch,
    InvalidConfiguration,
    ParameterFileCorrupt,
    ParameterIOError,
    PrecedingForwardRequired,
    ShapeMismatch,
    UnsupportedBackend,
    UnsupportedConfiguration,
)


class TestCellErrorHierarchy(unittest.TestCase):
    def test_every_error_is_a_cell_error(self):
        for cls in (
            InvalidConfiguration,
            UnsupportedConfiguration,
            DimensionMismatch,
            ShapeMismatch,
            ParameterFileCorrupt,
            ParameterIOError,
            UnsupportedBackend,
            PrecedingForwardRequired,
            DeviceNotSupportedError,
        ):
            with self.subTest(cls=cls.__name__):
                self.assertTrue(issubclass(cls, CellError))
                self.assertTrue(issubclass(cls, RuntimeError))

    def test_unsupported_configuration_is_invalid_configuration(self):
        self.assertTrue(issubclass(UnsupportedConfiguration, InvalidConfiguration))

    def test_dimension_errors_are_value_errors(self):
        self.assertTrue(issubclass(DimensionMismatch, ValueError))
        self.assertTrue(issubclass(ShapeMismatch, DimensionMismatch))

    def test_parameter_io_error_is_os_error(self):
        self.assertTrue(issubclass(ParameterIOError, OSError))


class TestShapeMismatch(unittest.TestCase):
    def test_message_names_cell_and_dims(self):
        err = ShapeMismatch("bn1", "scale", (1, 1, 4, 1), [1, 1, 3, 1])
        self.assertEqual(err.cell, "bn1")
        self.assertEqual(err.what, "scale")
        self.assertEqual(err.expected, (1, 1, 4, 1))
        self.assertEqual(err.actual, (1, 1, 3, 1))
        self.assertEqual(
            str(err),
            "bn1: scale shape mismatch, expected [1, 1, 4, 1] but got [1, 1, 3, 1].",
        )


class TestUnsupportedBackend(unittest.TestCase):
    def test_keeps_backend_and_dtype(self):
        err = UnsupportedBackend("nope", backend="Frame_CUDA", dtype="half")
        self.assertEqual(str(err), "nope")
        self.assertEqual(err.backend, "Frame_CUDA")
        self.assertEqual(err.dtype, "half")


class TestDeviceNotSupportedError(unittest.TestCase):
    def test_message(self):
        err = DeviceNotSupportedError("ensure_device", "cpu")
        self.assertEqual(err.op, "ensure_device")
        self.assertEqual(err.device, "cpu")
        self.assertIn("ensure_device", str(err))
        self.assertIn("'cpu'", str(err))


if __name__ == "__main__":
    unittest.main()
