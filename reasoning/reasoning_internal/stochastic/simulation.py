"""
PURPOSE: Monte Carlo engine over a declarative stochastic model.

Draws one value per variable per iteration, discards burn-in, thins, and
summarises the retained sample matrix with descriptive statistics and
convergence diagnostics.

SINGLE RESPONSIBILITY:
- Build one sampler per variable from a StochasticModel
- Run the iterate -> burn-in -> thin loop with progress callbacks and a
  cooperative wall-clock timeout
- Aggregate the retained rows into a MonteCarloResult (no I/O, no formatting)

CONSTRAINTS:
- Single-threaded; the progress callback is invoked synchronously
- Does NOT modify the input model; reads only
- Timeouts never raise, they truncate the run and add a warning
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

import numpy as np

from .config import CONVERGENCE_CHECK_EVERY, DEFAULT_ITERATIONS, ESS_RATIO_THRESHOLD, SAMPLE_BLOCK_ROWS
from .convergence import ConvergenceDiagnostics, compute_convergence_diagnostics
from .distributions import create_sampler
from .model import MonteCarloConfig, StochasticModel
from .rng import SeededRNG
from .statistics import PosteriorSummary, SampleStatistics, compute_sample_statistics, summarize_all_posteriors

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimulationProgress:
    """
    Snapshot passed to the progress callback.

    Attributes:
        completed (int): Iterations drawn so far, burn-in included.
        total (int): Configured iterations.
        percentage (float): completed / total * 100.
        estimated_remaining (float): Milliseconds, extrapolated from the elapsed time.
        samples_collected (int): Rows retained so far.
        current_convergence (float | None): Largest change of any column mean
            since the previous checkpoint, relative to max(|mean|, sd). None
            until two checkpoints exist.
    """
    completed: int
    total: int
    percentage: float
    estimated_remaining: float
    samples_collected: int
    current_convergence: Optional[float] = None


ProgressCallback = Callable[[SimulationProgress], None]


@dataclass(frozen=True)
class MonteCarloResult:
    """
    Output of one engine run.

    ``samples`` has one row per retained iteration and one column per variable
    in ``variable_names`` order. Categorical columns hold category indices.
    ``execution_time`` is in milliseconds.
    """
    samples: np.ndarray
    variable_names: List[str]
    statistics: SampleStatistics
    convergence_diagnostics: ConvergenceDiagnostics
    execution_time: float
    effective_samples: int
    success: bool
    config: MonteCarloConfig
    warnings: List[str] = field(default_factory=list)

    def column(self, name: str) -> np.ndarray:
        """Samples of one variable. Raises KeyError for an unknown name."""
        try:
            index = self.variable_names.index(name)
        except ValueError:
            raise KeyError(name) from None
        return self.samples[:, index]

    def summaries(self) -> List[PosteriorSummary]:
        return summarize_all_posteriors(self.samples, self.variable_names)

    def to_dict(self, include_samples: bool = True) -> Dict[str, Any]:
        """Convert to a JSON-compatible dict."""
        payload = {
            "variable_names": list(self.variable_names),
            "statistics": self.statistics.to_dict(),
            "convergence_diagnostics": self.convergence_diagnostics.to_dict(),
            "execution_time": self.execution_time,
            "effective_samples": self.effective_samples,
            "success": self.success,
            "config": self.config.to_metadata(),
            "warnings": list(self.warnings),
        }
        if include_samples:
            payload["samples"] = self.samples.tolist()
        return payload


class MonteCarloEngine:
    """
    Monte Carlo engine with burn-in, thinning, progress and timeout.

    Two engines built from the same config (seed included) produce identical
    sample matrices for the same model. The random source is owned by the
    engine and advances across calls, so consecutive simulate() calls on one
    engine draw different samples.
    """

    def __init__(self, config: Union[MonteCarloConfig, Mapping[str, Any]], rng: Optional[SeededRNG] = None):
        """
        Args:
            config: MonteCarloConfig or a dict accepted by it (camelCase keys allowed)
            rng: Optional caller-supplied random source; otherwise seeded from config.seed

        Raises:
            pydantic.ValidationError: for an invalid configuration.
        """
        if not isinstance(config, MonteCarloConfig):
            config = MonteCarloConfig.model_validate(config)
        self._config = config.with_defaults()
        self._rng = rng if rng is not None else SeededRNG(self._config.seed)

    @property
    def config(self) -> MonteCarloConfig:
        return self._config

    @property
    def rng(self) -> SeededRNG:
        return self._rng

    def simulate(self, model: StochasticModel, on_progress: Optional[ProgressCallback] = None) -> MonteCarloResult:
        """
        Sample every variable of ``model`` independently.

        Raises:
            ParameterError: if a variable's distribution parameters are invalid.
            UnsupportedDistributionError: for an unknown distribution.
        """
        samplers = []
        for variable in model.variables:
            sampler = create_sampler(variable.distribution, self._rng)
            logger.debug(f"Sampler for {variable.name!r}: {sampler!r}")
            samplers.append(sampler)

        def draw() -> List[float]:
            return [s.sample() for s in samplers]

        domains = [v.domain for v in model.variables]
        return self._run(model.variable_names, draw, on_progress, domains)

    def simulate_with_evaluator(
        self,
        variable_names: Sequence[str],
        sampler: Callable[[SeededRNG], Any],
        evaluator: Callable[[Any], Union[Mapping[str, float], Sequence[float]]],
        on_progress: Optional[ProgressCallback] = None,
    ) -> MonteCarloResult:
        """
        Sample raw inputs, then summarise quantities derived from them.

        Args:
            variable_names: Names of the derived quantities, in column order
            sampler: Called with the engine's SeededRNG, returns the raw inputs of one iteration
            evaluator: Maps raw inputs to the derived quantities, either a dict
                       keyed by name or a sequence in ``variable_names`` order
        """
        names = list(variable_names)
        if not names:
            raise ValueError("variable_names must not be empty")

        def draw() -> List[float]:
            outputs = evaluator(sampler(self._rng))
            if isinstance(outputs, Mapping):
                return [outputs[name] for name in names]
            values = list(outputs)
            if len(values) != len(names):
                raise ValueError(f"evaluator returned {len(values)} values for {len(names)} variables")
            return values

        return self._run(names, draw, on_progress, [None] * len(names))

    def _run(self, variable_names, draw, on_progress, domains) -> MonteCarloResult:
        config = self._config
        iterations = config.iterations
        burn_in = config.burn_in
        thinning = config.thinning
        interval = config.progress_interval
        timeout_s = config.timeout / 1000.0
        expected = (iterations - burn_in) // thinning

        logger.info(
            f"Monte Carlo run: {len(variable_names)} variables, iterations={iterations}, "
            f"burn_in={burn_in}, thinning={thinning}, seed={config.seed}"
        )

        # Capacity doubles on demand up to the expected row count
        samples = np.empty((min(expected, SAMPLE_BLOCK_ROWS), len(variable_names)), dtype=np.float64)
        out_of_domain = [0] * len(variable_names)
        warnings = []
        collected = 0
        completed = 0
        last_reported = 0
        checkpoint_means = None
        current_convergence = None

        start = time.perf_counter()
        for i in range(iterations):
            elapsed = time.perf_counter() - start
            if elapsed > timeout_s:
                message = (
                    f"Timeout reached after {elapsed * 1000.0:.0f} ms: "
                    f"{completed} of {iterations} iterations, {collected} of {expected} samples collected"
                )
                logger.warning(message)
                warnings.append(message)
                break

            row = draw()
            completed = i + 1

            if i >= burn_in and (i - burn_in) % thinning == 0 and collected < expected:
                if collected == samples.shape[0]:
                    samples = _grow(samples, expected)
                samples[collected] = row
                for j, domain in enumerate(domains):
                    if domain is not None and not domain.contains(row[j]):
                        out_of_domain[j] += 1
                collected += 1
                if collected % CONVERGENCE_CHECK_EVERY == 0:
                    retained = samples[:collected]
                    means = retained.mean(axis=0)
                    if checkpoint_means is not None:
                        scale = np.maximum(np.abs(checkpoint_means), retained.std(axis=0))
                        scale[scale == 0] = 1.0
                        current_convergence = float(np.max(np.abs(means - checkpoint_means) / scale))
                    checkpoint_means = means

            if on_progress is not None and completed % interval == 0:
                on_progress(self._progress(completed, collected, start, current_convergence))
                last_reported = completed

        if on_progress is not None and completed == iterations and last_reported != iterations:
            on_progress(self._progress(completed, collected, start, current_convergence))

        samples = samples[:collected]
        execution_time = (time.perf_counter() - start) * 1000.0

        for name, count in zip(variable_names, out_of_domain):
            if count:
                warnings.append(f"{count} samples of {name!r} fall outside its domain")

        statistics = compute_sample_statistics(samples)
        diagnostics = compute_convergence_diagnostics(samples)

        if collected == 0:
            warnings.append("No samples were retained")
        elif diagnostics.effective_sample_size < ESS_RATIO_THRESHOLD * collected:
            message = (
                f"Low effective sample size: {diagnostics.effective_sample_size} "
                f"of {collected} samples ({diagnostics.effective_sample_size / collected * 100:.1f}%)"
            )
            logger.warning(message)
            warnings.append(message)

        logger.info(f"Monte Carlo run finished: {collected} samples in {execution_time:.1f} ms")

        return MonteCarloResult(
            samples=samples,
            variable_names=list(variable_names),
            statistics=statistics,
            convergence_diagnostics=diagnostics,
            execution_time=execution_time,
            effective_samples=collected,
            success=collected > 0,
            config=config,
            warnings=warnings,
        )

    def _progress(self, completed, collected, start, current_convergence) -> SimulationProgress:
        total = self._config.iterations
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        remaining = elapsed_ms / completed * (total - completed) if completed else 0.0
        return SimulationProgress(
            completed=completed,
            total=total,
            percentage=completed / total * 100.0,
            estimated_remaining=remaining,
            samples_collected=collected,
            current_convergence=current_convergence,
        )


def _grow(samples: np.ndarray, limit: int) -> np.ndarray:
    """Copy into a matrix with double the rows, capped at limit."""
    grown = np.empty((min(limit, max(1, 2 * samples.shape[0])), samples.shape[1]), dtype=samples.dtype)
    grown[: samples.shape[0]] = samples
    return grown


def create_monte_carlo_engine(config: Union[MonteCarloConfig, Mapping[str, Any]],
                              rng: Optional[SeededRNG] = None) -> MonteCarloEngine:
    return MonteCarloEngine(config, rng)


def run_monte_carlo_simulation(model: StochasticModel, iterations: int = DEFAULT_ITERATIONS,
                               seed: Optional[int] = None) -> MonteCarloResult:
    """One-shot simulation with engine defaults for everything but iterations and seed."""
    engine = MonteCarloEngine(MonteCarloConfig(iterations=iterations, seed=seed))
    return engine.simulate(model)
