"""
Unit tests for distribution samplers.

STRATEGY:
    For each family:
    1. Sample a few thousand values from a seeded source
    2. Verify bounds (uniform, binomial, triangular, beta)
    3. Compare moments against scipy.stats as an independent reference
    4. Verify construction-time parameter validation and factory dispatch
"""

import unittest

import numpy as np
from scipy import stats

from reasoning_internal.stochastic.distributions import (
    BetaSampler,
    BinomialSampler,
    CategoricalSampler,
    CustomSampler,
    ExponentialSampler,
    GammaSampler,
    LogNormalSampler,
    NormalSampler,
    PoissonSampler,
    TriangularSampler,
    UniformSampler,
    as_uniform_source,
    create_sampler,
    sample_with_statistics,
)
from reasoning_internal.stochastic.errors import ParameterError, UnsupportedDistributionError
from reasoning_internal.stochastic.model import (
    Beta,
    Binomial,
    Categorical,
    Custom,
    Exponential,
    Gamma,
    LogNormal,
    Normal,
    Poisson,
    Triangular,
    Uniform,
)
from reasoning_internal.stochastic.rng import SeededRNG
from reasoning_internal.stochastic.statistics import mean, variance


class TestContinuousSamplers(unittest.TestCase):
    """Moments and bounds of the continuous families."""

    def test_normal_mean_converges(self):
        samples = NormalSampler(3.0, 2.0, SeededRNG(7)).sample_many(100000)
        self.assertAlmostEqual(float(np.mean(samples)), 3.0, delta=0.05)
        self.assertAlmostEqual(float(np.std(samples)), 2.0, delta=0.05)

    def test_normal_spare_is_used(self):
        uniform_calls = []
        rng = SeededRNG(1)

        def counting_uniform():
            uniform_calls.append(1)
            return rng.next()

        sampler = NormalSampler(0.0, 1.0, counting_uniform)
        sampler.sample()
        calls_after_first = len(uniform_calls)
        sampler.sample()
        self.assertEqual(len(uniform_calls), calls_after_first)

    def test_uniform_bounds(self):
        samples = UniformSampler(-2.0, 5.0, SeededRNG(3)).sample_many(5000)
        self.assertTrue(np.all(samples >= -2.0))
        self.assertTrue(np.all(samples < 5.0))
        self.assertAlmostEqual(float(np.mean(samples)), 1.5, delta=0.15)

    def test_exponential_moments(self):
        samples = ExponentialSampler(2.0, SeededRNG(12345)).sample_many(1000)
        self.assertAlmostEqual(mean(samples), 0.5, delta=0.1)
        self.assertAlmostEqual(variance(samples), 0.25, delta=0.1)

    def test_gamma_matches_scipy(self):
        samples = GammaSampler(2.5, 2.0, SeededRNG(11)).sample_many(20000)
        reference = stats.gamma(a=2.5, scale=2.0)
        self.assertTrue(np.all(samples > 0))
        self.assertAlmostEqual(float(np.mean(samples)), reference.mean(), delta=0.1)
        self.assertAlmostEqual(float(np.var(samples)), reference.var(), delta=0.6)

    def test_gamma_shape_below_one(self):
        samples = GammaSampler(0.5, 1.0, SeededRNG(13)).sample_many(20000)
        reference = stats.gamma(a=0.5)
        self.assertTrue(np.all(samples >= 0))
        self.assertAlmostEqual(float(np.mean(samples)), reference.mean(), delta=0.03)

    def test_beta_matches_scipy(self):
        samples = BetaSampler(2.0, 5.0, SeededRNG(17)).sample_many(10000)
        reference = stats.beta(2.0, 5.0)
        self.assertTrue(np.all((samples >= 0) & (samples <= 1)))
        self.assertAlmostEqual(float(np.mean(samples)), reference.mean(), delta=0.01)
        self.assertAlmostEqual(float(np.var(samples)), reference.var(), delta=0.003)
        self.assertGreater(stats.kstest(samples, reference.cdf).pvalue, 0.001)

    def test_lognormal_median(self):
        samples = LogNormalSampler(0.0, 0.5, SeededRNG(19)).sample_many(10000)
        self.assertTrue(np.all(samples > 0))
        self.assertAlmostEqual(float(np.median(samples)), 1.0, delta=0.03)

    def test_triangular_bounds_and_shape(self):
        samples = TriangularSampler(0.0, 2.0, 10.0, SeededRNG(23)).sample_many(10000)
        self.assertTrue(np.all((samples >= 0.0) & (samples <= 10.0)))
        self.assertAlmostEqual(float(np.mean(samples)), 4.0, delta=0.1)
        reference = stats.triang(c=0.2, loc=0.0, scale=10.0)
        self.assertGreater(stats.kstest(samples, reference.cdf).pvalue, 0.001)

    def test_triangular_mode_at_bound(self):
        samples = TriangularSampler(0.0, 0.0, 1.0, SeededRNG(29)).sample_many(1000)
        self.assertTrue(np.all((samples >= 0.0) & (samples <= 1.0)))


class TestDiscreteSamplers(unittest.TestCase):
    """Poisson, binomial and categorical draws."""

    def test_poisson_knuth_branch(self):
        sampler = PoissonSampler(3.0, SeededRNG(31))
        samples = sampler.sample_many(10000)
        self.assertEqual(samples.dtype.kind, "i")
        self.assertTrue(np.all(samples >= 0))
        self.assertAlmostEqual(float(np.mean(samples)), 3.0, delta=0.1)

    def test_poisson_normal_branch(self):
        samples = PoissonSampler(100.0, SeededRNG(37)).sample_many(5000)
        self.assertTrue(np.all(samples >= 0))
        self.assertAlmostEqual(float(np.mean(samples)), 100.0, delta=0.5)

    def test_binomial_range(self):
        for n, p in [(10, 0.3), (200, 0.5), (40, 0.95)]:
            samples = BinomialSampler(n, p, SeededRNG(41)).sample_many(3000)
            self.assertTrue(np.all((samples >= 0) & (samples <= n)), msg=f"n={n}, p={p}")
            self.assertAlmostEqual(float(np.mean(samples)), n * p, delta=0.05 * n)

    def test_binomial_degenerate(self):
        self.assertTrue(np.all(BinomialSampler(30, 0.0, SeededRNG(1)).sample_many(100) == 0))
        self.assertTrue(np.all(BinomialSampler(30, 1.0, SeededRNG(1)).sample_many(100) == 30))
        self.assertTrue(np.all(BinomialSampler(5, 1.0, SeededRNG(1)).sample_many(100) == 5))

    def test_categorical_frequencies(self):
        sampler = CategoricalSampler({"a": 0.2, "b": 0.3, "c": 0.5}, SeededRNG(43))
        indices = sampler.sample_many(10000)
        freqs = np.bincount(indices, minlength=3) / indices.size
        np.testing.assert_allclose(freqs, [0.2, 0.3, 0.5], atol=0.02)

    def test_categorical_labels(self):
        sampler = CategoricalSampler({"red": 0.5, "blue": 0.5}, SeededRNG(47))
        self.assertIn(sampler.sample_category(), {"red", "blue"})
        labels = sampler.sample_many_categories(100)
        self.assertEqual(len(labels), 100)
        self.assertTrue(set(labels) <= {"red", "blue"})

    def test_categorical_sum_outside_tolerance(self):
        with self.assertRaises(ParameterError):
            CategoricalSampler({"a": 0.5, "b": 1.0})

    def test_categorical_sum_within_tolerance(self):
        sampler = CategoricalSampler({"a": 0.5, "b": 0.499}, SeededRNG(1))
        self.assertIn(sampler.sample(), (0, 1))

    def test_categorical_sum_at_tolerance_edge(self):
        self.assertEqual(Categorical({"a": 0.999}).probabilities, {"a": 0.999})
        self.assertEqual(CategoricalSampler({"a": 0.999}, SeededRNG(1)).sample(), 0)

    def test_categorical_negative_probability(self):
        with self.assertRaises(ParameterError):
            Categorical({"a": 1.2, "b": -0.2})


class TestParameterValidation(unittest.TestCase):
    """Invalid parameters fail at construction."""

    def test_invalid_parameters(self):
        cases = [
            lambda: NormalSampler(0.0, 0.0),
            lambda: NormalSampler(float("nan"), 1.0),
            lambda: UniformSampler(5.0, 5.0),
            lambda: ExponentialSampler(-1.0),
            lambda: PoissonSampler(0.0),
            lambda: BinomialSampler(2.5, 0.5),
            lambda: BinomialSampler(-3, 0.5),
            lambda: BinomialSampler(10, 1.5),
            lambda: GammaSampler(0.0),
            lambda: GammaSampler(1.0, -2.0),
            lambda: BetaSampler(1.0, -1.0),
            lambda: LogNormalSampler(0.0, 0.0),
            lambda: TriangularSampler(0.0, 11.0, 10.0),
            lambda: TriangularSampler(10.0, 10.0, 0.0),
            lambda: CustomSampler("not callable"),
        ]
        for build in cases:
            with self.assertRaises(ParameterError):
                build()

    def test_parameter_error_is_value_error(self):
        with self.assertRaises(ValueError):
            Normal(0.0, -1.0)

    def test_error_names_family(self):
        with self.assertRaises(ParameterError) as ctx:
            Exponential(0)
        self.assertIn("exponential", str(ctx.exception))
        self.assertEqual(ctx.exception.family, "exponential")

    def test_numpy_scalars_accepted(self):
        sampler = BinomialSampler(np.int64(10), np.float64(0.5), SeededRNG(1))
        self.assertEqual(sampler.n, 10)


class TestFactory(unittest.TestCase):
    """create_sampler dispatch."""

    def test_dispatch_by_family(self):
        cases = {
            "normal": Normal(0.0, 1.0),
            "uniform": Uniform(0.0, 1.0),
            "exponential": Exponential(1.0),
            "poisson": Poisson(2.0),
            "binomial": Binomial(5, 0.5),
            "categorical": Categorical({"x": 1.0}),
            "beta": Beta(1.0, 1.0),
            "gamma": Gamma(2.0),
            "lognormal": LogNormal(0.0, 1.0),
            "triangular": Triangular(0.0, 0.5, 1.0),
            "custom": Custom(lambda: 1.0),
        }
        for tag, dist in cases.items():
            sampler = create_sampler(dist, SeededRNG(1))
            self.assertEqual(sampler.get_type(), tag)
            self.assertIsInstance(sampler.get_parameters(), dict)

    def test_dict_payload(self):
        sampler = create_sampler({"type": "normal", "mean": 1.0, "stdDev": 2.0}, SeededRNG(1))
        self.assertIsInstance(sampler, NormalSampler)
        self.assertEqual(sampler.get_parameters(), {"mean": 1.0, "std_dev": 2.0})

        sampler = create_sampler({"type": "uniform", "min": 0, "max": 4}, SeededRNG(1))
        self.assertEqual(sampler.get_parameters(), {"low": 0, "high": 4})

    def test_dict_payload_missing_parameter(self):
        with self.assertRaises(ParameterError):
            create_sampler({"type": "beta", "alpha": 2.0})

    def test_unknown_type(self):
        with self.assertRaises(UnsupportedDistributionError):
            create_sampler({"type": "weibull", "k": 1.5})
        with self.assertRaises(UnsupportedDistributionError):
            create_sampler(object())

    def test_same_seed_same_draws(self):
        a = create_sampler(Gamma(3.0, 1.5), SeededRNG(99)).sample_many(500)
        b = create_sampler(Gamma(3.0, 1.5), SeededRNG(99)).sample_many(500)
        self.assertEqual(a.tobytes(), b.tobytes())

    def test_default_source_without_rng(self):
        sampler = create_sampler(Uniform(0.0, 1.0))
        value = sampler.sample()
        self.assertTrue(0.0 <= value < 1.0)

    def test_custom_sampler(self):
        sampler = create_sampler(Custom(lambda: 4))
        self.assertEqual(sampler.sample(), 4.0)
        self.assertEqual(sampler.sample_many(3).tolist(), [4.0, 4.0, 4.0])

    def test_invalid_random_source(self):
        with self.assertRaises(TypeError):
            as_uniform_source(42)

    def test_repr_lists_parameters(self):
        self.assertEqual(repr(ExponentialSampler(2.0, SeededRNG(1))), "ExponentialSampler(rate=2.0)")


class TestSampleWithStatistics(unittest.TestCase):

    def test_summary_matches_samples(self):
        result = sample_with_statistics(Exponential(1.0), 500, SeededRNG(5))
        self.assertEqual(result.samples.shape, (500,))
        self.assertAlmostEqual(result.mean, float(np.mean(result.samples)))
        self.assertAlmostEqual(result.variance, float(np.var(result.samples)))
        self.assertEqual(result.min, float(np.min(result.samples)))
        self.assertGreaterEqual(result.min, 0.0)
        self.assertGreaterEqual(result.time_ms, 0.0)

    def test_rejects_non_positive_count(self):
        with self.assertRaises(ValueError):
            sample_with_statistics(Normal(0.0, 1.0), 0)


if __name__ == "__main__":
    unittest.main()
