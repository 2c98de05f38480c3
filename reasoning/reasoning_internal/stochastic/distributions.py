"""
PURPOSE: Probability distribution samplers for Monte Carlo simulation.

RESPONSIBILITIES:
- One sampler class per distribution family, each drawing from an injected
  uniform [0, 1) source (a SeededRNG or any zero-argument callable)
- Validate parameters at construction (ParameterError), never at draw time
- Map a Distribution to its sampler (create_sampler)
- Single responsibility: only sampling, no aggregation or diagnostics

Algorithms:
    normal       polar Box-Muller, the paired draw is cached for the next call
    exponential  inverse transform
    poisson      Knuth's product method (lambda < 30), rounded normal otherwise
    binomial     Bernoulli trials (n < 25), clamped rounded normal otherwise
    categorical  cumulative probability walk
    gamma        Marsaglia-Tsang squeeze; shape < 1 boosted via U^(1/shape)
    beta         X / (X + Y) with X, Y gamma draws
    lognormal    exp(normal)
    triangular   two-branch inverse CDF split at the mode
"""

import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import numpy as np

from .config import BINOMIAL_NORMAL_CUTOFF, POISSON_NORMAL_CUTOFF
from .errors import UnsupportedDistributionError
from .model import (
    Beta,
    Binomial,
    Categorical,
    Custom,
    Distribution,
    Exponential,
    Gamma,
    LogNormal,
    Normal,
    Poisson,
    Triangular,
    Uniform,
    check_binomial,
    check_bounds,
    check_finite,
    check_positive,
    check_probabilities,
    distribution_from_dict,
)
from .rng import SeededRNG


UniformSource = Callable[[], float]
RandomSource = Union[SeededRNG, UniformSource, None]


def as_uniform_source(rng: RandomSource) -> UniformSource:
    """
    Normalise a random source to a zero-argument callable returning [0, 1).

    None creates a private SeededRNG seeded from OS entropy, so no two
    samplers ever share hidden state.
    """
    if rng is None:
        return SeededRNG().next
    if isinstance(rng, SeededRNG):
        return rng.next
    if callable(rng):
        return rng
    raise TypeError(f"rng must be a SeededRNG or a callable returning floats, got {type(rng).__name__}")


class DistributionSampler:
    """Base class: subclasses implement ``sample()`` and ``get_parameters()``."""

    type = "abstract"
    dtype = float

    def __init__(self, rng: RandomSource = None):
        self._uniform = as_uniform_source(rng)

    def sample(self) -> float:
        raise NotImplementedError

    def sample_many(self, count: int) -> np.ndarray:
        if count < 0:
            raise ValueError("count must be non-negative")
        return np.fromiter((self.sample() for _ in range(count)), dtype=self.dtype, count=count)

    def get_parameters(self) -> Dict[str, Any]:
        raise NotImplementedError

    def get_type(self) -> str:
        return self.type

    def __repr__(self) -> str:
        params = ", ".join(f"{k}={v!r}" for k, v in self.get_parameters().items())
        return f"{type(self).__name__}({params})"


class NormalSampler(DistributionSampler):
    """Each instance owns one pending spare draw from the Box-Muller pair."""

    type = "normal"

    def __init__(self, mean: float, std_dev: float, rng: RandomSource = None):
        check_finite(self.type, "mean", mean)
        check_positive(self.type, "std_dev", std_dev)
        super().__init__(rng)
        self.mean = mean
        self.std_dev = std_dev
        self._spare: Optional[float] = None

    def standard(self) -> float:
        """One N(0, 1) draw, consuming the cached spare when present."""
        if self._spare is not None:
            spare, self._spare = self._spare, None
            return spare
        while True:
            u = self._uniform() * 2 - 1
            v = self._uniform() * 2 - 1
            s = u * u + v * v
            if 0 < s < 1:
                break
        mul = math.sqrt(-2.0 * math.log(s) / s)
        self._spare = v * mul
        return u * mul

    def sample(self) -> float:
        return self.mean + self.std_dev * self.standard()

    def get_parameters(self):
        return {"mean": self.mean, "std_dev": self.std_dev}


class UniformSampler(DistributionSampler):
    type = "uniform"

    def __init__(self, low: float, high: float, rng: RandomSource = None):
        check_bounds(self.type, low, high)
        super().__init__(rng)
        self.low = low
        self.high = high

    def sample(self) -> float:
        return self.low + self._uniform() * (self.high - self.low)

    def get_parameters(self):
        return {"low": self.low, "high": self.high}


class ExponentialSampler(DistributionSampler):
    type = "exponential"

    def __init__(self, rate: float, rng: RandomSource = None):
        check_positive(self.type, "rate", rate)
        super().__init__(rng)
        self.rate = rate

    def sample(self) -> float:
        return -math.log(1.0 - self._uniform()) / self.rate

    def get_parameters(self):
        return {"rate": self.rate}


class PoissonSampler(DistributionSampler):
    type = "poisson"
    dtype = int

    def __init__(self, lam: float, rng: RandomSource = None):
        check_positive(self.type, "lambda", lam)
        super().__init__(rng)
        self.lam = lam
        self._limit = math.exp(-lam)
        self._normal = None
        if lam >= POISSON_NORMAL_CUTOFF:
            self._normal = NormalSampler(lam, math.sqrt(lam), self._uniform)

    def sample(self) -> int:
        if self._normal is not None:
            return max(0, int(round(self._normal.sample())))
        k = 0
        p = 1.0
        while True:
            k += 1
            p *= self._uniform()
            if p <= self._limit:
                return k - 1

    def get_parameters(self):
        return {"lambda": self.lam}


class BinomialSampler(DistributionSampler):
    type = "binomial"
    dtype = int

    def __init__(self, n: int, p: float, rng: RandomSource = None):
        check_binomial(n, p)
        super().__init__(rng)
        self.n = int(n)
        self.p = p
        self._normal = None
        std_dev = math.sqrt(n * p * (1 - p))
        # Degenerate p in {0, 1} has zero spread and needs no approximation
        if self.n >= BINOMIAL_NORMAL_CUTOFF and std_dev > 0:
            self._normal = NormalSampler(n * p, std_dev, self._uniform)

    def sample(self) -> int:
        if self._normal is not None:
            return max(0, min(self.n, int(round(self._normal.sample()))))
        if self.n >= BINOMIAL_NORMAL_CUTOFF:
            return int(round(self.n * self.p))
        return sum(1 for _ in range(self.n) if self._uniform() < self.p)

    def get_parameters(self):
        return {"n": self.n, "p": self.p}


class CategoricalSampler(DistributionSampler):
    """``sample()`` returns a category index; ``sample_category()`` returns the label."""

    type = "categorical"
    dtype = int

    def __init__(self, probabilities: Mapping[str, float], rng: RandomSource = None):
        check_probabilities(probabilities)
        super().__init__(rng)
        self.probabilities = dict(probabilities)
        self.categories: List[str] = list(self.probabilities)
        self._cumulative = list(np.cumsum(list(self.probabilities.values())))

    def sample(self) -> int:
        u = self._uniform()
        for idx, threshold in enumerate(self._cumulative):
            if u <= threshold:
                return idx
        return len(self.categories) - 1

    def sample_category(self) -> str:
        return self.categories[self.sample()]

    def sample_many_categories(self, count: int) -> List[str]:
        return [self.categories[i] for i in self.sample_many(count)]

    def get_parameters(self):
        return dict(self.probabilities)


def _standard_gamma(shape: float, uniform: UniformSource, normal: NormalSampler) -> float:
    """Gamma(shape, 1) by Marsaglia and Tsang (2000)."""
    if shape < 1:
        return _standard_gamma(shape + 1, uniform, normal) * uniform() ** (1.0 / shape)

    d = shape - 1.0 / 3.0
    c = 1.0 / math.sqrt(9.0 * d)
    while True:
        x = normal.standard()
        v = 1.0 + c * x
        if v <= 0:
            continue
        v = v * v * v
        u = uniform()
        if u < 1 - 0.0331 * (x * x) * (x * x):
            return d * v
        if u > 0 and math.log(u) < 0.5 * x * x + d * (1 - v + math.log(v)):
            return d * v


class GammaSampler(DistributionSampler):
    type = "gamma"

    def __init__(self, shape: float, scale: float = 1.0, rng: RandomSource = None):
        check_positive(self.type, "shape", shape)
        check_positive(self.type, "scale", scale)
        super().__init__(rng)
        self.shape = shape
        self.scale = scale
        self._normal = NormalSampler(0.0, 1.0, self._uniform)

    def sample(self) -> float:
        return _standard_gamma(self.shape, self._uniform, self._normal) * self.scale

    def get_parameters(self):
        return {"shape": self.shape, "scale": self.scale}


class BetaSampler(DistributionSampler):
    type = "beta"

    def __init__(self, alpha: float, beta: float, rng: RandomSource = None):
        check_positive(self.type, "alpha", alpha)
        check_positive(self.type, "beta", beta)
        super().__init__(rng)
        self.alpha = alpha
        self.beta = beta
        self._normal = NormalSampler(0.0, 1.0, self._uniform)

    def sample(self) -> float:
        while True:
            x = _standard_gamma(self.alpha, self._uniform, self._normal)
            y = _standard_gamma(self.beta, self._uniform, self._normal)
            # Both draws can underflow to zero for very small shapes
            if x + y > 0:
                return x / (x + y)

    def get_parameters(self):
        return {"alpha": self.alpha, "beta": self.beta}


class LogNormalSampler(DistributionSampler):
    type = "lognormal"

    def __init__(self, mu: float, sigma: float, rng: RandomSource = None):
        check_finite(self.type, "mu", mu)
        check_positive(self.type, "sigma", sigma)
        super().__init__(rng)
        self.mu = mu
        self.sigma = sigma
        self._normal = NormalSampler(mu, sigma, self._uniform)

    def sample(self) -> float:
        return math.exp(self._normal.sample())

    def get_parameters(self):
        return {"mu": self.mu, "sigma": self.sigma}


class TriangularSampler(DistributionSampler):
    type = "triangular"

    def __init__(self, low: float, mode: float, high: float, rng: RandomSource = None):
        Triangular(low, mode, high)  # raises ParameterError
        super().__init__(rng)
        self.low = low
        self.mode = mode
        self.high = high
        self._split = (mode - low) / (high - low)

    def sample(self) -> float:
        u = self._uniform()
        span = self.high - self.low
        if u < self._split:
            return self.low + math.sqrt(u * span * (self.mode - self.low))
        return self.high - math.sqrt((1 - u) * span * (self.high - self.mode))

    def get_parameters(self):
        return {"low": self.low, "mode": self.mode, "high": self.high}


class CustomSampler(DistributionSampler):
    """Wraps a caller-supplied draw function. It brings its own randomness."""

    type = "custom"

    def __init__(self, sampler: Callable[[], float], rng: RandomSource = None):
        Custom(sampler)  # raises ParameterError
        self._uniform = None
        self._draw = sampler

    def sample(self) -> float:
        return float(self._draw())

    def get_parameters(self):
        return {}


_BUILDERS = {
    Normal: lambda d, u: NormalSampler(d.mean, d.std_dev, u),
    Uniform: lambda d, u: UniformSampler(d.low, d.high, u),
    Exponential: lambda d, u: ExponentialSampler(d.rate, u),
    Poisson: lambda d, u: PoissonSampler(d.lam, u),
    Binomial: lambda d, u: BinomialSampler(d.n, d.p, u),
    Categorical: lambda d, u: CategoricalSampler(d.probabilities, u),
    Beta: lambda d, u: BetaSampler(d.alpha, d.beta, u),
    Gamma: lambda d, u: GammaSampler(d.shape, d.scale, u),
    LogNormal: lambda d, u: LogNormalSampler(d.mu, d.sigma, u),
    Triangular: lambda d, u: TriangularSampler(d.low, d.mode, d.high, u),
    Custom: lambda d, u: CustomSampler(d.sampler, u),
}


def create_sampler(dist: Union[Distribution, Mapping[str, Any]], rng: RandomSource = None) -> DistributionSampler:
    """
    Create the sampler for a Distribution (or a plain dict describing one).

    Args:
        dist: A Distribution instance, or a dict like {"type": "beta", "alpha": 2, "beta": 5}
        rng: SeededRNG or zero-argument uniform callable; None for a private entropy-seeded source

    Raises:
        UnsupportedDistributionError: for an unrecognised distribution.
        ParameterError: for parameters outside their valid domain.
    """
    if isinstance(dist, Mapping):
        dist = distribution_from_dict(dist)
    builder = _BUILDERS.get(type(dist))
    if builder is None:
        raise UnsupportedDistributionError(getattr(dist, "type", type(dist).__name__))
    return builder(dist, rng)


@dataclass(frozen=True)
class SamplingResult:
    """Draws plus quick summary statistics (population variance)."""
    samples: np.ndarray
    mean: float
    variance: float
    min: float
    max: float
    time_ms: float


def sample_with_statistics(dist: Distribution, count: int, rng: RandomSource = None) -> SamplingResult:
    """Draw ``count`` values from ``dist`` and summarise them."""
    if count <= 0:
        raise ValueError("count must be positive")
    start = time.perf_counter()
    samples = create_sampler(dist, rng).sample_many(count)
    return SamplingResult(
        samples=samples,
        mean=float(np.mean(samples)),
        variance=float(np.var(samples)),
        min=float(np.min(samples)),
        max=float(np.max(samples)),
        time_ms=(time.perf_counter() - start) * 1000.0,
    )
