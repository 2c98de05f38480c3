"""
PURPOSE: Unit and integration tests for the Monte Carlo engine.

Tests verify:
- Reference run: 1000 iterations, burn-in 100, seed 12345 -> 900 samples
- Identical seeds give byte-identical sample matrices
- Retained count equals floor((iterations - burn_in) / thinning)
- Progress reporting, cooperative timeout and warnings
- Sample matrix growth past its initial block
- Evaluator-based simulation of derived quantities
- Model and configuration validation fails before sampling
"""

import time
import unittest

import numpy as np
from pydantic import ValidationError

from reasoning_internal.stochastic.config import SAMPLE_BLOCK_ROWS
from reasoning_internal.stochastic.errors import ParameterError, UnsupportedDistributionError
from reasoning_internal.stochastic.model import (
    Categorical,
    CategoricalDomain,
    ContinuousDomain,
    Custom,
    Dependency,
    MonteCarloConfig,
    Normal,
    StochasticModel,
    StochasticVariable,
    Uniform,
)
from reasoning_internal.stochastic.rng import SeededRNG
from reasoning_internal.stochastic.simulation import (
    MonteCarloEngine,
    SimulationProgress,
    _grow,
    create_monte_carlo_engine,
    run_monte_carlo_simulation,
)


def xy_model():
    return StochasticModel(
        id="xy",
        variables=[
            StochasticVariable("x", Normal(0.0, 1.0)),
            StochasticVariable("y", Uniform(0.0, 10.0)),
        ],
    )


def slow_model(delay_s=0.002):
    def slow_draw():
        time.sleep(delay_s)
        return 1.0

    return StochasticModel(id="slow", variables=[StochasticVariable("s", Custom(slow_draw))])


class TestReferenceRun(unittest.TestCase):
    """The documented reference scenario."""

    def setUp(self):
        engine = MonteCarloEngine({"iterations": 1000, "burnIn": 100, "seed": 12345})
        self.result = engine.simulate(xy_model())

    def test_sample_count(self):
        self.assertEqual(self.result.effective_samples, 900)
        self.assertEqual(self.result.samples.shape, (900, 2))
        self.assertEqual(self.result.samples.dtype, np.float64)
        self.assertTrue(self.result.success)

    def test_means(self):
        self.assertAlmostEqual(self.result.statistics.mean[0], 0.0, delta=0.15)
        self.assertAlmostEqual(self.result.statistics.mean[1], 5.0, delta=0.4)

    def test_diagnostics(self):
        self.assertGreater(self.result.convergence_diagnostics.effective_sample_size, 0)
        self.assertEqual(self.result.statistics.correlations.shape, (2, 2))

    def test_column_access(self):
        y = self.result.column("y")
        self.assertTrue(np.all((y >= 0.0) & (y < 10.0)))
        with self.assertRaises(KeyError):
            self.result.column("z")

    def test_config_recorded(self):
        self.assertEqual(self.result.config.seed, 12345)
        self.assertEqual(self.result.config.burn_in, 100)
        self.assertEqual(self.result.variable_names, ["x", "y"])

    def test_to_dict(self):
        payload = self.result.to_dict()
        self.assertEqual(len(payload["samples"]), 900)
        self.assertEqual(payload["effective_samples"], 900)
        self.assertEqual(payload["config"]["seed"], 12345)
        self.assertNotIn("samples", self.result.to_dict(include_samples=False))

    def test_summaries(self):
        summaries = self.result.summaries()
        self.assertEqual([s.name for s in summaries], ["x", "y"])


class TestDeterminism(unittest.TestCase):

    def test_same_seed_identical_samples(self):
        config = MonteCarloConfig(iterations=500, burn_in=50, thinning=3, seed=777)
        a = MonteCarloEngine(config).simulate(xy_model())
        b = MonteCarloEngine(config).simulate(xy_model())
        self.assertEqual(a.samples.tobytes(), b.samples.tobytes())

    def test_different_seeds_differ(self):
        a = MonteCarloEngine({"iterations": 200, "seed": 1}).simulate(xy_model())
        b = MonteCarloEngine({"iterations": 200, "seed": 2}).simulate(xy_model())
        self.assertNotEqual(a.samples.tobytes(), b.samples.tobytes())

    def test_supplied_rng(self):
        config = MonteCarloConfig(iterations=300, seed=5)
        a = MonteCarloEngine(config).simulate(xy_model())
        b = MonteCarloEngine(MonteCarloConfig(iterations=300, seed=99), rng=SeededRNG(5)).simulate(xy_model())
        self.assertEqual(a.samples.tobytes(), b.samples.tobytes())

    def test_engine_stream_advances(self):
        engine = MonteCarloEngine({"iterations": 100, "seed": 3})
        first = engine.simulate(xy_model())
        second = engine.simulate(xy_model())
        self.assertNotEqual(first.samples.tobytes(), second.samples.tobytes())


class TestBurnInAndThinning(unittest.TestCase):

    def test_retained_count(self):
        model = StochasticModel(id="u", variables=[StochasticVariable("u", Uniform(0.0, 1.0))])
        for iterations in (10, 37, 100):
            for burn_in in (0, 3, 9):
                for thinning in (1, 2, 3, 7):
                    config = MonteCarloConfig(iterations=iterations, burn_in=burn_in, thinning=thinning, seed=1)
                    result = MonteCarloEngine(config).simulate(model)
                    expected = (iterations - burn_in) // thinning
                    self.assertEqual(result.effective_samples, expected,
                                     msg=f"iterations={iterations}, burn_in={burn_in}, thinning={thinning}")
                    self.assertEqual(result.samples.shape, (expected, 1))
                    self.assertEqual(config.expected_samples, expected)

    def test_thinning_keeps_every_kth_draw(self):
        model = StochasticModel(id="u", variables=[StochasticVariable("u", Uniform(0.0, 1.0))])
        full = MonteCarloEngine(MonteCarloConfig(iterations=40, burn_in=4, seed=8)).simulate(model)
        thinned = MonteCarloEngine(MonteCarloConfig(iterations=40, burn_in=4, thinning=3, seed=8)).simulate(model)
        np.testing.assert_array_equal(thinned.samples[:, 0], full.samples[::3, 0][:thinned.effective_samples])

    def test_default_burn_in(self):
        engine = MonteCarloEngine({"iterations": 1000})
        self.assertEqual(engine.config.burn_in, 100)
        self.assertEqual(engine.config.progress_interval, 10)
        self.assertEqual(engine.config.timeout, 60000)
        self.assertIsNotNone(engine.config.seed)


class TestProgress(unittest.TestCase):

    def test_reports_at_interval_and_completion(self):
        reports = []
        engine = MonteCarloEngine({"iterations": 1000, "burnIn": 0, "progressInterval": 300, "seed": 4})
        engine.simulate(xy_model(), on_progress=reports.append)
        self.assertEqual([r.completed for r in reports], [300, 600, 900, 1000])
        self.assertTrue(all(isinstance(r, SimulationProgress) for r in reports))
        self.assertEqual(reports[-1].percentage, 100.0)
        self.assertEqual(reports[-1].samples_collected, 1000)
        self.assertEqual(reports[-1].total, 1000)
        self.assertIsNotNone(reports[-1].current_convergence)
        self.assertGreaterEqual(reports[-1].current_convergence, 0.0)

    def test_default_interval(self):
        reports = []
        MonteCarloEngine({"iterations": 500, "seed": 4}).simulate(xy_model(), on_progress=reports.append)
        self.assertEqual(len(reports), 100)
        collected = [r.samples_collected for r in reports]
        self.assertEqual(collected, sorted(collected))


class TestTimeout(unittest.TestCase):

    def test_timeout_truncates_run(self):
        engine = MonteCarloEngine({"iterations": 1000, "burnIn": 0, "timeout": 30, "seed": 1})
        result = engine.simulate(slow_model())
        self.assertLess(result.effective_samples, 1000)
        self.assertEqual(result.samples.shape[0], result.effective_samples)
        self.assertTrue(result.success)
        self.assertTrue(any("Timeout" in w for w in result.warnings))

    def test_timeout_during_burn_in(self):
        engine = MonteCarloEngine({"iterations": 1000, "burnIn": 900, "timeout": 20, "seed": 1})
        result = engine.simulate(slow_model())
        self.assertFalse(result.success)
        self.assertEqual(result.effective_samples, 0)
        self.assertEqual(result.samples.shape, (0, 1))
        self.assertTrue(any("No samples" in w for w in result.warnings))

    def test_timeout_with_huge_iteration_count(self):
        engine = MonteCarloEngine({"iterations": 10 ** 9, "burnIn": 0, "timeout": 20, "seed": 1})
        result = engine.simulate(slow_model())
        self.assertTrue(result.success)
        self.assertLess(result.effective_samples, SAMPLE_BLOCK_ROWS)
        self.assertEqual(result.samples.shape, (result.effective_samples, 1))
        self.assertTrue(any("Timeout" in w for w in result.warnings))


class TestSampleGrowth(unittest.TestCase):
    """The sample matrix grows in blocks as rows are retained."""

    def test_run_past_initial_block(self):
        model = StochasticModel(id="u", variables=[StochasticVariable("u", Uniform(0.0, 1.0))])
        long_run = MonteCarloEngine({"iterations": SAMPLE_BLOCK_ROWS + 2500, "burnIn": 0, "seed": 4}).simulate(model)
        short_run = MonteCarloEngine({"iterations": SAMPLE_BLOCK_ROWS, "burnIn": 0, "seed": 4}).simulate(model)
        self.assertEqual(long_run.samples.shape, (SAMPLE_BLOCK_ROWS + 2500, 1))
        np.testing.assert_array_equal(long_run.samples[:SAMPLE_BLOCK_ROWS], short_run.samples)

    def test_grow_doubles_up_to_limit(self):
        samples = np.arange(6, dtype=np.float64).reshape(3, 2)
        grown = _grow(samples, 5)
        self.assertEqual(grown.shape, (5, 2))
        np.testing.assert_array_equal(grown[:3], samples)
        self.assertEqual(_grow(np.empty((2, 1)), 100).shape, (4, 1))


class TestEvaluator(unittest.TestCase):

    def test_derived_quantities(self):
        def sampler(rng):
            return {"a": rng.normal(0.0, 1.0), "b": rng.normal(0.0, 1.0)}

        def evaluator(inputs):
            return {"total": inputs["a"] + inputs["b"], "product": inputs["a"] * inputs["b"]}

        engine = MonteCarloEngine({"iterations": 5000, "burnIn": 0, "seed": 10})
        result = engine.simulate_with_evaluator(["total", "product"], sampler, evaluator)
        self.assertEqual(result.samples.shape, (5000, 2))
        self.assertAlmostEqual(result.statistics.variance[0], 2.0, delta=0.15)
        self.assertAlmostEqual(result.statistics.mean[1], 0.0, delta=0.05)

    def test_sequence_output(self):
        engine = MonteCarloEngine({"iterations": 100, "seed": 10})
        result = engine.simulate_with_evaluator(["u", "twice"], lambda rng: rng.next(), lambda u: [u, 2 * u])
        np.testing.assert_allclose(result.samples[:, 1], 2 * result.samples[:, 0])

    def test_wrong_output_length(self):
        engine = MonteCarloEngine({"iterations": 10, "seed": 10})
        with self.assertRaises(ValueError):
            engine.simulate_with_evaluator(["a", "b"], lambda rng: rng.next(), lambda u: [u])

    def test_empty_names(self):
        engine = MonteCarloEngine({"iterations": 10, "seed": 10})
        with self.assertRaises(ValueError):
            engine.simulate_with_evaluator([], lambda rng: rng.next(), lambda u: [u])

    def test_low_ess_warning(self):
        state = {"x": 0.0}

        def random_walk(rng):
            state["x"] += rng.normal(0.0, 1.0)
            return state["x"]

        engine = MonteCarloEngine({"iterations": 2000, "burnIn": 0, "seed": 6})
        result = engine.simulate_with_evaluator(["walk"], random_walk, lambda x: [x])
        self.assertTrue(any("Low effective sample size" in w for w in result.warnings))


class TestModelVariables(unittest.TestCase):

    def test_categorical_column_holds_indices(self):
        model = StochasticModel(
            id="c",
            variables=[StochasticVariable(
                "colour", Categorical({"red": 0.2, "green": 0.3, "blue": 0.5}),
                domain=CategoricalDomain(("red", "green", "blue")),
            )],
        )
        result = MonteCarloEngine({"iterations": 1000, "seed": 2}).simulate(model)
        self.assertTrue(set(np.unique(result.samples[:, 0])) <= {0.0, 1.0, 2.0})
        self.assertFalse(any("domain" in w for w in result.warnings))

    def test_domain_violation_warns(self):
        model = StochasticModel(
            id="d",
            variables=[StochasticVariable("z", Normal(0.0, 1.0), domain=ContinuousDomain(low=0.0))],
        )
        result = MonteCarloEngine({"iterations": 200, "seed": 2}).simulate(model)
        self.assertTrue(any("outside its domain" in w for w in result.warnings))

    def test_unsupported_distribution_fails_before_sampling(self):
        model = StochasticModel(id="w", variables=[StochasticVariable("w", {"type": "weibull", "k": 2})])
        reports = []
        with self.assertRaises(UnsupportedDistributionError):
            MonteCarloEngine({"iterations": 100, "seed": 1}).simulate(model, on_progress=reports.append)
        self.assertEqual(reports, [])

    def test_model_validation(self):
        with self.assertRaises(ParameterError):
            StochasticModel(id="empty", variables=[])
        with self.assertRaises(ParameterError):
            StochasticModel(id="dup", variables=[
                StochasticVariable("a", Normal(0.0, 1.0)),
                StochasticVariable("a", Normal(0.0, 1.0)),
            ])
        with self.assertRaises(ParameterError):
            StochasticModel(
                id="dep",
                variables=[StochasticVariable("a", Normal(0.0, 1.0))],
                dependencies=[Dependency("a", "b")],
            )


class TestConfig(unittest.TestCase):

    def test_invalid_configs(self):
        for payload in (
            {"iterations": 0},
            {"iterations": 100, "burnIn": 100},
            {"iterations": 100, "thinning": 0},
            {"iterations": 100, "timeout": 0},
            {"iterations": 100, "burn_in": -1},
        ):
            with self.assertRaises(ValidationError, msg=str(payload)):
                MonteCarloEngine(payload)

    def test_metadata_round_trip(self):
        config = MonteCarloConfig(iterations=250, burn_in=25, thinning=2, seed=9).with_defaults()
        self.assertEqual(MonteCarloConfig.from_metadata(config.to_metadata()), config)

    def test_factory_and_one_shot(self):
        engine = create_monte_carlo_engine({"iterations": 50, "seed": 1})
        self.assertIsInstance(engine, MonteCarloEngine)
        self.assertIsInstance(engine.rng, SeededRNG)
        result = run_monte_carlo_simulation(xy_model(), iterations=500, seed=3)
        self.assertEqual(result.effective_samples, 450)


if __name__ == "__main__":
    unittest.main()
