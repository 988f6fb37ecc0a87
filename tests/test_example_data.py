import unittest
import numpy as np
from leakcorr import example_data
from leakcorr.protocol import DCEProtocol, DSCProtocol


class TestExampleData(unittest.TestCase):
    def test_reference_curves(self):
        data = example_data.load_reference_data()
        self.assertEqual(len(data["dce_signal_ratio"]), 100)
        self.assertEqual(len(data["aif"]), 100)
        self.assertEqual(len(data["dsc_signal_ratio"]), 44)
        self.assertEqual(len(data["t"]), 100)
        self.assertEqual(data["temporal_resolution"], 2.0)
        for key in ("dce_signal_ratio", "dsc_signal_ratio", "aif"):
            self.assertTrue(np.all(np.isfinite(data[key])))
        self.assertTrue(np.all(data["dsc_signal_ratio"] > 0))

    def test_returns_copies(self):
        data = example_data.load_reference_data()
        data["aif"][:] = -1.0
        self.assertFalse(np.any(example_data.load_reference_data()["aif"] == -1.0))

    def test_time_vector(self):
        np.testing.assert_array_equal(example_data.time_vector(4), [0.0, 2.0, 4.0, 6.0])
        np.testing.assert_array_equal(example_data.time_vector(3, 1.5), [0.0, 1.5, 3.0])
        self.assertEqual(len(example_data.time_vector(0)), 0)

    def test_reference_protocols(self):
        dce, dsc = example_data.reference_protocols()
        self.assertIsInstance(dce, DCEProtocol)
        self.assertIsInstance(dsc, DSCProtocol)


if __name__ == '__main__':
    unittest.main()
