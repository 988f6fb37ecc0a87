import unittest
import warnings
import numpy as np
from leakcorr.errors import ConvergenceWarning, InputShapeError, ParameterBoundsError
from scipy.stats import t as student_t
from leakcorr.fitting import FitResult, confidence_intervals, fit_bounded_least_squares, goodness_of_fit


def linear_model(x, a, b):
    return a * x + b


def exp_decay_model(x, s0, rate):
    return s0 * np.exp(-rate * x)


class TestBoundedLeastSquares(unittest.TestCase):
    def setUp(self):
        self.x = np.linspace(0, 10, 40)
        self.y_lin = linear_model(self.x, 2.5, -1.0)
        self.y_exp = exp_decay_model(self.x, 3.0, 0.4)

    def _sse(self, model, params, y):
        return float(np.sum((model(self.x, *params) - y) ** 2))

    def test_recovers_linear_parameters(self):
        fit = fit_bounded_least_squares(linear_model, self.x, self.y_lin, [-10, -10], [10, 10], [0.0, 0.0],
                                        param_names=["a", "b"])
        self.assertIsInstance(fit, FitResult)
        self.assertTrue(fit.converged)
        self.assertAlmostEqual(fit.parameters["a"], 2.5, places=6)
        self.assertAlmostEqual(fit.parameters["b"], -1.0, places=6)
        self.assertAlmostEqual(fit.gof.r_squared, 1.0, places=10)
        self.assertEqual(fit.gof.dfe, len(self.x) - 2)

    def test_recovers_exponential_parameters(self):
        fit = fit_bounded_least_squares(exp_decay_model, self.x, self.y_exp, [0, 0], [10, 5], [1.0, 1.0],
                                        param_names=["s0", "rate"])
        self.assertTrue(fit.converged)
        self.assertAlmostEqual(fit.parameters["s0"], 3.0, places=5)
        self.assertAlmostEqual(fit.parameters["rate"], 0.4, places=5)
        self.assertLess(fit.gof.rmse, 1e-6)

    def test_default_parameter_names(self):
        fit = fit_bounded_least_squares(linear_model, self.x, self.y_lin, [-10, -10], [10, 10], [1.0, 1.0])
        self.assertEqual(list(fit.parameters), ["p0", "p1"])

    def test_parameters_respect_bounds(self):
        # Data want a = 2.5 but the upper bound is 1.0
        lower, upper = [0.0, -10.0], [1.0, 10.0]
        fit = fit_bounded_least_squares(linear_model, self.x, self.y_lin, lower, upper, [0.5, 0.0],
                                        param_names=["a", "b"])
        values = np.array(list(fit.parameters.values()))
        self.assertTrue(np.all(values >= lower))
        self.assertTrue(np.all(values <= upper))
        self.assertAlmostEqual(fit.parameters["a"], 1.0, places=3)

    def test_fit_improves_objective(self):
        p0 = [0.5, 2.0]
        fit = fit_bounded_least_squares(exp_decay_model, self.x, self.y_exp, [0, 0], [10, 5], p0)
        self.assertLessEqual(fit.gof.sse, self._sse(exp_decay_model, p0, self.y_exp))

    def test_predicted_curve_matches_parameters(self):
        fit = fit_bounded_least_squares(exp_decay_model, self.x, self.y_exp, [0, 0], [10, 5], [1.0, 1.0])
        np.testing.assert_allclose(fit.predicted, exp_decay_model(self.x, *fit.parameters.values()))
        self.assertEqual(fit.predicted.shape, self.x.shape)

    def test_predicted_curve_is_read_only(self):
        fit = fit_bounded_least_squares(linear_model, self.x, self.y_lin, [-10, -10], [10, 10], [0.0, 0.0])
        with self.assertRaises(ValueError):
            fit.predicted[0] = 1.0

    def test_equal_bounds_fix_parameter(self):
        fit = fit_bounded_least_squares(linear_model, self.x, self.y_lin, [-10, -1.0], [10, -1.0], [0.0, -1.0],
                                        param_names=["a", "b"])
        self.assertEqual(fit.parameters["b"], -1.0)
        self.assertAlmostEqual(fit.parameters["a"], 2.5, places=6)
        self.assertEqual(fit.gof.dfe, len(self.x) - 1)

    def test_all_parameters_fixed_evaluates_model(self):
        fit = fit_bounded_least_squares(linear_model, self.x, self.y_lin, [2.5, -1.0], [2.5, -1.0], [2.5, -1.0])
        self.assertTrue(fit.converged)
        self.assertEqual(fit.gof.n_iterations, 0)
        self.assertAlmostEqual(fit.gof.sse, 0.0)

    def test_iteration_cap_reports_non_convergence(self):
        p0 = [1.0, 1.0]
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            fit = fit_bounded_least_squares(exp_decay_model, self.x, self.y_exp, [0, 0], [10, 5], p0,
                                            max_iterations=1)
        self.assertFalse(fit.converged)
        self.assertTrue(any(issubclass(w.category, ConvergenceWarning) for w in caught))
        # Best iterate is still returned
        self.assertEqual(len(fit.parameters), 2)
        self.assertLessEqual(fit.gof.sse, self._sse(exp_decay_model, p0, self.y_exp))

    def test_max_iterations_caps_function_evaluations(self):
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", ConvergenceWarning)
            fit = fit_bounded_least_squares(exp_decay_model, self.x, self.y_exp, [0, 0], [10, 5], [9.0, 4.5],
                                            max_iterations=5)
        self.assertLessEqual(fit.gof.n_function_evals, 5)

    def test_non_convergence_is_warned_not_logged(self):
        with self.assertNoLogs("leakcorr.fitting", level="WARNING"):
            with warnings.catch_warnings(record=True) as caught:
                warnings.simplefilter("always")
                fit_bounded_least_squares(exp_decay_model, self.x, self.y_exp, [0, 0], [10, 5], [1.0, 1.0],
                                          max_iterations=1)
        self.assertEqual(sum(issubclass(w.category, ConvergenceWarning) for w in caught), 1)

    # --- Confidence bounds ---
    def _noisy_linear(self, orthogonal=False):
        rng = np.random.default_rng(5)
        noise = rng.normal(0.0, 0.3, size=self.x.shape)
        design = np.column_stack([self.x, np.ones_like(self.x)])
        if orthogonal:
            # Remove the part of the noise the regressors can explain
            noise -= design @ np.linalg.lstsq(design, noise, rcond=None)[0]
        return design, self.y_lin + noise

    def test_confidence_intervals_match_linear_regression(self):
        design, y = self._noisy_linear()
        fit = fit_bounded_least_squares(linear_model, self.x, y, [-10, -10], [10, 10], [0.0, 0.0],
                                        param_names=["a", "b"])
        coef, *_ = np.linalg.lstsq(design, y, rcond=None)
        dfe = len(y) - 2
        sse = float(np.sum((design @ coef - y) ** 2))
        covariance = np.linalg.inv(design.T @ design) * sse / dfe
        half_width = student_t.ppf(0.975, dfe) * np.sqrt(np.diag(covariance))
        for i, name in enumerate(["a", "b"]):
            lo, hi = fit.confidence_intervals[name]
            self.assertAlmostEqual(lo, coef[i] - half_width[i], delta=1e-4 * half_width[i])
            self.assertAlmostEqual(hi, coef[i] + half_width[i], delta=1e-4 * half_width[i])

    def test_confidence_intervals_contain_true_values(self):
        _, y = self._noisy_linear(orthogonal=True)
        fit = fit_bounded_least_squares(linear_model, self.x, y, [-10, -10], [10, 10], [0.0, 0.0],
                                        param_names=["a", "b"])
        for name, truth in (("a", 2.5), ("b", -1.0)):
            lo, hi = fit.confidence_intervals[name]
            self.assertLess(lo, truth)
            self.assertGreater(hi, truth)
            self.assertLess(lo, fit.parameters[name])
            self.assertGreater(hi, fit.parameters[name])

    def test_fixed_parameter_has_nan_interval(self):
        _, y = self._noisy_linear()
        fit = fit_bounded_least_squares(linear_model, self.x, y, [-10, -1.0], [10, -1.0], [0.0, -1.0],
                                        param_names=["a", "b"])
        self.assertTrue(np.all(np.isnan(fit.confidence_intervals["b"])))
        lo, hi = fit.confidence_intervals["a"]
        self.assertTrue(np.isfinite(lo) and np.isfinite(hi))
        self.assertLess(lo, hi)

    def test_all_fixed_parameters_have_nan_intervals(self):
        fit = fit_bounded_least_squares(linear_model, self.x, self.y_lin, [2.5, -1.0], [2.5, -1.0], [2.5, -1.0],
                                        param_names=["a", "b"])
        self.assertEqual(set(fit.confidence_intervals), {"a", "b"})
        for bounds in fit.confidence_intervals.values():
            self.assertTrue(np.all(np.isnan(bounds)))

    def test_no_residual_degrees_of_freedom_gives_nan_intervals(self):
        x = np.array([0.0, 1.0])
        fit = fit_bounded_least_squares(linear_model, x, [1.0, 3.0], [-10, -10], [10, 10], [0.0, 0.0])
        self.assertEqual(fit.gof.dfe, 0)
        for bounds in fit.confidence_intervals.values():
            self.assertTrue(np.all(np.isnan(bounds)))

    def test_invalid_max_iterations_raises(self):
        with self.assertRaises(ValueError):
            fit_bounded_least_squares(linear_model, self.x, self.y_lin, [0, 0], [1, 1], [0.5, 0.5],
                                      max_iterations=0)

    # --- Input validation ---
    def test_lower_above_upper_raises(self):
        with self.assertRaises(ParameterBoundsError):
            fit_bounded_least_squares(linear_model, self.x, self.y_lin, [0, 2], [1, 1], [0.5, 1.0])

    def test_initial_guess_outside_bounds_raises(self):
        with self.assertRaises(ParameterBoundsError):
            fit_bounded_least_squares(linear_model, self.x, self.y_lin, [0, 0], [1, 1], [2.0, 0.5])

    def test_bound_length_mismatch_raises(self):
        with self.assertRaises(InputShapeError):
            fit_bounded_least_squares(linear_model, self.x, self.y_lin, [0, 0, 0], [1, 1], [0.5, 0.5])

    def test_param_name_length_mismatch_raises(self):
        with self.assertRaises(InputShapeError):
            fit_bounded_least_squares(linear_model, self.x, self.y_lin, [0, 0], [1, 1], [0.5, 0.5],
                                      param_names=["a"])

    def test_model_output_length_mismatch_raises(self):
        with self.assertRaises(InputShapeError):
            fit_bounded_least_squares(linear_model, self.x, self.y_lin[:-1], [0, 0], [1, 1], [0.5, 0.5])

    def test_empty_data_raises(self):
        with self.assertRaises(InputShapeError):
            fit_bounded_least_squares(linear_model, np.array([]), [], [0, 0], [1, 1], [0.5, 0.5])

    def test_non_finite_data_raises(self):
        y = self.y_lin.copy()
        y[3] = np.nan
        with self.assertRaises(InputShapeError):
            fit_bounded_least_squares(linear_model, self.x, y, [0, 0], [1, 1], [0.5, 0.5])


class TestGoodnessOfFit(unittest.TestCase):
    def test_metrics(self):
        measured = np.array([1.0, 2.0, 3.0, 4.0])
        predicted = np.array([1.0, 2.0, 3.0, 5.0])
        gof = goodness_of_fit(measured, predicted, n_free_params=1, n_iterations=3, n_function_evals=4)
        self.assertAlmostEqual(gof.sse, 1.0)
        self.assertAlmostEqual(gof.r_squared, 1.0 - 1.0 / 5.0)
        self.assertAlmostEqual(gof.adj_r_squared, 1.0 - 0.2 * 3 / 3)
        self.assertAlmostEqual(gof.rmse, 0.5)
        self.assertAlmostEqual(gof.standard_error, np.sqrt(1.0 / 3.0))
        self.assertEqual(gof.dfe, 3)
        self.assertEqual(gof.n_iterations, 3)

    def test_constant_data_gives_nan_r_squared(self):
        gof = goodness_of_fit(np.ones(5), np.ones(5), n_free_params=2)
        self.assertTrue(np.isnan(gof.r_squared))
        self.assertTrue(np.isnan(gof.adj_r_squared))
        self.assertEqual(gof.sse, 0.0)

    def test_standard_error_undefined_without_degrees_of_freedom(self):
        gof = goodness_of_fit(np.array([1.0, 2.0]), np.array([1.5, 2.5]), n_free_params=2)
        self.assertEqual(gof.dfe, 0)
        self.assertTrue(np.isnan(gof.standard_error))
        self.assertAlmostEqual(gof.rmse, 0.5)


class TestConfidenceIntervals(unittest.TestCase):
    def test_rank_deficient_jacobian_gives_nan(self):
        jacobian = np.column_stack([np.arange(5.0), 2.0 * np.arange(5.0)])
        bounds = confidence_intervals(np.array([1.0, 2.0]), jacobian, sse=0.5, dfe=3)
        self.assertTrue(np.all(np.isnan(bounds)))

    def test_single_parameter_bounds(self):
        jacobian = np.ones((4, 1))
        (lo, hi), = confidence_intervals(np.array([2.0]), jacobian, sse=3.0, dfe=3)
        half_width = student_t.ppf(0.975, 3) * np.sqrt(1.0 / 4.0)
        self.assertAlmostEqual(lo, 2.0 - half_width)
        self.assertAlmostEqual(hi, 2.0 + half_width)


if __name__ == '__main__':
    unittest.main()
