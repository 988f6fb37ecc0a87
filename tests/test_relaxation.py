import unittest
import numpy as np
from leakcorr.relaxation import relaxation_rate, spgr_signal_fraction, t2star_weighting


class TestSignalPhysics(unittest.TestCase):
    def test_spgr_zero_rate_gives_zero_signal(self):
        self.assertEqual(spgr_signal_fraction(0.0, 0.005, 25.0), 0.0)

    def test_spgr_ninety_degrees_is_saturation_recovery(self):
        r1 = np.array([0.5, 1.0, 2.0])
        tr = 2.0
        np.testing.assert_allclose(spgr_signal_fraction(r1, tr, 90.0), 1.0 - np.exp(-tr * r1), rtol=1e-12)

    def test_spgr_hand_calculation(self):
        r1, tr, fa = 1.0 / 1.98, 0.0027, 25.0
        E1 = np.exp(-tr * r1)
        expected = (1 - E1) / (1 - np.cos(np.deg2rad(fa)) * E1)
        self.assertAlmostEqual(float(spgr_signal_fraction(r1, tr, fa)), expected, places=14)

    def test_spgr_increases_with_r1(self):
        r1 = np.linspace(0.3, 20.0, 50)
        s = spgr_signal_fraction(r1, 0.0027, 25.0)
        self.assertTrue(np.all(np.diff(s) > 0))

    def test_spgr_broadcasts_over_arrays(self):
        s = spgr_signal_fraction(np.ones((3, 4)), 0.005, 15.0)
        self.assertEqual(s.shape, (3, 4))

    def test_t2star_weighting(self):
        self.assertEqual(t2star_weighting(0.0, 0.045), 1.0)
        self.assertAlmostEqual(float(t2star_weighting(50.0, 0.045)), np.exp(-2.25), places=14)

    def test_relaxation_rate_is_linear_in_concentration(self):
        conc = np.array([0.0, 1.0, 2.5])
        np.testing.assert_allclose(relaxation_rate(0.5, 4.5, conc), [0.5, 5.0, 11.75])

    def test_relaxation_rate_accepts_lists(self):
        rate = relaxation_rate(1.0, 2.0, [1.0, 2.0])
        self.assertIsInstance(rate, np.ndarray)
        np.testing.assert_allclose(rate, [3.0, 5.0])


if __name__ == '__main__':
    unittest.main()
