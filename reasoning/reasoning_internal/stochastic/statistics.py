"""
PURPOSE: Statistical summaries of Monte Carlo samples.

This module provides pure functions over numeric vectors (one variable) and
sample matrices (rows = draws, columns = variables): descriptive statistics,
correlation structure, credible intervals, posterior summaries, empirical
probabilities and density estimates.

SRP/DRY: No state, no logging, no sampling. Every function accepts lists or
         numpy arrays and degrades to a neutral value on inputs too small to
         summarise instead of raising.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .config import DEFAULT_PERCENTILES, HISTOGRAM_BINS, KDE_POINTS, MODE_BINS


def _vector(values) -> np.ndarray:
    return np.asarray(values, dtype=float).ravel()


def _matrix(samples) -> np.ndarray:
    arr = np.asarray(samples, dtype=float)
    if arr.size == 0:
        return arr.reshape(0, 0)
    if arr.ndim == 1:
        return arr.reshape(-1, 1)
    return arr


# ============================================================================
# DESCRIPTIVE STATISTICS
# ============================================================================

def mean(values) -> float:
    arr = _vector(values)
    if arr.size == 0:
        return 0.0
    return float(np.sum(arr) / arr.size)


def variance(values, sample_mean: Optional[float] = None) -> float:
    """Unbiased sample variance (N - 1 denominator). 0 for fewer than two values."""
    arr = _vector(values)
    if arr.size < 2:
        return 0.0
    m = mean(arr) if sample_mean is None else sample_mean
    return float(np.sum((arr - m) ** 2) / (arr.size - 1))


def std_dev(values, sample_mean: Optional[float] = None) -> float:
    return math.sqrt(variance(values, sample_mean))


def median(values) -> float:
    arr = np.sort(_vector(values))
    n = arr.size
    if n == 0:
        return 0.0
    mid = n // 2
    if n % 2:
        return float(arr[mid])
    lower = arr[mid - 1]
    return float(lower + (arr[mid] - lower) * 0.5)


def percentile(values, p: float) -> float:
    """
    Percentile with linear interpolation between order statistics.

    Args:
        values: Sample vector
        p: Percentile level in [0, 100]

    Returns:
        Interpolated value; 0 for an empty vector.

    Raises:
        ValueError: if p lies outside [0, 100].
    """
    if p < 0 or p > 100:
        raise ValueError(f"Percentile must be between 0 and 100, got {p}")
    arr = np.sort(_vector(values))
    if arr.size == 0:
        return 0.0
    return _percentile_sorted(arr, p)


def _percentile_sorted(arr: np.ndarray, p: float) -> float:
    idx = (p / 100) * (arr.size - 1)
    lower = int(math.floor(idx))
    upper = int(math.ceil(idx))
    if lower == upper:
        return float(arr[lower])
    return float(arr[lower] + (arr[upper] - arr[lower]) * (idx - lower))


def percentiles(values, levels: Sequence[float]) -> Dict[float, float]:
    """Map each requested level to its percentile, sorting the data once."""
    for p in levels:
        if p < 0 or p > 100:
            raise ValueError(f"Percentile must be between 0 and 100, got {p}")
    arr = np.sort(_vector(values))
    if arr.size == 0:
        return {p: 0.0 for p in levels}
    return {p: _percentile_sorted(arr, p) for p in levels}


def skewness(values) -> float:
    """Bias-corrected sample skewness. 0 for N < 3 or zero spread."""
    arr = _vector(values)
    n = arr.size
    if n < 3:
        return 0.0
    m = mean(arr)
    s = std_dev(arr, m)
    if s == 0:
        return 0.0
    total = float(np.sum(((arr - m) / s) ** 3))
    return (n / ((n - 1) * (n - 2))) * total


def kurtosis(values) -> float:
    """Bias-corrected excess kurtosis. 0 for N < 4 or zero spread."""
    arr = _vector(values)
    n = arr.size
    if n < 4:
        return 0.0
    m = mean(arr)
    s = std_dev(arr, m)
    if s == 0:
        return 0.0
    total = float(np.sum(((arr - m) / s) ** 4))
    raw = (n * (n + 1) / ((n - 1) * (n - 2) * (n - 3))) * total
    correction = (3 * (n - 1) ** 2) / ((n - 2) * (n - 3))
    return raw - correction


def _bin_counts(arr: np.ndarray, num_bins: int) -> Tuple[np.ndarray, float, float]:
    """Equal-width bin counts over [min, max]; the maximum lands in the last bin."""
    low = float(np.min(arr))
    width = (float(np.max(arr)) - low) / num_bins
    idx = np.minimum(np.floor((arr - low) / width).astype(int), num_bins - 1)
    return np.bincount(idx, minlength=num_bins), low, width


def mode(values, num_bins: int = MODE_BINS) -> float:
    """Centre of the most populated histogram bin."""
    arr = _vector(values)
    if arr.size == 0:
        return 0.0
    if np.min(arr) == np.max(arr):
        return float(arr[0])
    counts, low, width = _bin_counts(arr, num_bins)
    return low + (int(np.argmax(counts)) + 0.5) * width


# ============================================================================
# CORRELATION AND COVARIANCE
# ============================================================================

def covariance(x, y) -> float:
    """Unbiased covariance. 0 when lengths differ or fewer than two pairs."""
    a = _vector(x)
    b = _vector(y)
    if a.size != b.size or a.size < 2:
        return 0.0
    return float(np.sum((a - mean(a)) * (b - mean(b))) / (a.size - 1))


def correlation(x, y) -> float:
    """Pearson correlation. 0 when either variable has zero spread."""
    sd_x = std_dev(x)
    sd_y = std_dev(y)
    if sd_x == 0 or sd_y == 0:
        return 0.0
    return covariance(x, y) / (sd_x * sd_y)


def _symmetric_matrix(samples, pair_fn, diagonal_fn) -> np.ndarray:
    arr = _matrix(samples)
    if arr.size == 0:
        return np.zeros((0, 0))
    columns = [arr[:, j] for j in range(arr.shape[1])]
    k = len(columns)
    result = np.zeros((k, k))
    for i in range(k):
        result[i, i] = diagonal_fn(columns[i])
        for j in range(i + 1, k):
            result[i, j] = result[j, i] = pair_fn(columns[i], columns[j])
    return result


def correlation_matrix(samples) -> np.ndarray:
    """k x k Pearson matrix over the columns of a sample matrix; the diagonal is 1."""
    return _symmetric_matrix(samples, correlation, lambda col: 1.0)


def covariance_matrix(samples) -> np.ndarray:
    return _symmetric_matrix(samples, covariance, variance)


# ============================================================================
# CREDIBLE INTERVALS
# ============================================================================

@dataclass(frozen=True)
class CredibleInterval:
    lower: float
    upper: float
    probability: float
    kind: str  # "equal-tailed" | "hpd"

    @property
    def width(self) -> float:
        return self.upper - self.lower

    def to_dict(self) -> Dict[str, object]:
        return {"lower": self.lower, "upper": self.upper, "probability": self.probability, "type": self.kind}


def equal_tailed_interval(values, probability: float = 0.95) -> CredibleInterval:
    """Cut (1 - probability) / 2 of the mass from each tail."""
    alpha = 1 - probability
    lower = percentile(values, (alpha / 2) * 100)
    upper = percentile(values, (1 - alpha / 2) * 100)
    return CredibleInterval(lower, upper, probability, "equal-tailed")


def hpd_interval(values, probability: float = 0.95) -> CredibleInterval:
    """
    Narrowest interval holding ceil(probability * N) sorted samples.

    Assumes a unimodal distribution: on multimodal samples the narrowest
    contiguous window can straddle a low-density gap.
    """
    arr = np.sort(_vector(values))
    n = arr.size
    if n == 0:
        return CredibleInterval(0.0, 0.0, probability, "hpd")
    size = min(n, max(1, int(math.ceil(probability * n))))
    widths = arr[size - 1:] - arr[: n - size + 1]
    best = int(np.argmin(widths))
    return CredibleInterval(float(arr[best]), float(arr[best + size - 1]), probability, "hpd")


# ============================================================================
# SAMPLE STATISTICS
# ============================================================================

@dataclass(frozen=True)
class SampleStatistics:
    """Per-variable summaries in column order, plus the correlation matrix."""
    mean: np.ndarray
    variance: np.ndarray
    std_dev: np.ndarray
    percentiles: Dict[float, np.ndarray]
    correlations: np.ndarray
    skewness: np.ndarray = field(default_factory=lambda: np.zeros(0))
    kurtosis: np.ndarray = field(default_factory=lambda: np.zeros(0))

    def to_dict(self) -> Dict[str, object]:
        return {
            "mean": self.mean.tolist(),
            "variance": self.variance.tolist(),
            "std_dev": self.std_dev.tolist(),
            "percentiles": {str(p): v.tolist() for p, v in self.percentiles.items()},
            "correlations": self.correlations.tolist(),
            "skewness": self.skewness.tolist(),
            "kurtosis": self.kurtosis.tolist(),
        }


def compute_sample_statistics(samples, percentile_points: Sequence[float] = DEFAULT_PERCENTILES) -> SampleStatistics:
    """Moments, percentiles and correlations for every column of a sample matrix."""
    arr = _matrix(samples)
    if arr.size == 0:
        empty = np.zeros(0)
        return SampleStatistics(
            mean=empty, variance=empty, std_dev=empty,
            percentiles={}, correlations=np.zeros((0, 0)),
        )

    columns = [arr[:, j] for j in range(arr.shape[1])]
    means = np.array([mean(col) for col in columns])
    variances = np.array([variance(col, m) for col, m in zip(columns, means)])
    per_column = [percentiles(col, percentile_points) for col in columns]

    return SampleStatistics(
        mean=means,
        variance=variances,
        std_dev=np.sqrt(variances),
        percentiles={p: np.array([pc[p] for pc in per_column]) for p in percentile_points},
        correlations=correlation_matrix(arr),
        skewness=np.array([skewness(col) for col in columns]),
        kurtosis=np.array([kurtosis(col) for col in columns]),
    )


# ============================================================================
# POSTERIOR SUMMARIES
# ============================================================================

@dataclass(frozen=True)
class PosteriorSummary:
    name: str
    mean: float
    std_dev: float
    median: float
    ci95: CredibleInterval
    hpd95: CredibleInterval
    mcse: float
    ess: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "mean": self.mean,
            "std_dev": self.std_dev,
            "median": self.median,
            "ci95": self.ci95.to_dict(),
            "hpd95": self.hpd95.to_dict(),
            "mcse": self.mcse,
            "ess": self.ess,
        }


def estimate_ess(values) -> int:
    """
    Quick ESS from the lag-1 autocorrelation: tau = 1 + 2 * max(0, rho1), ESS = N / tau.

    Never exceeds N and never drops below 1 for N >= 3.
    """
    arr = _vector(values)
    n = arr.size
    if n < 3:
        return n
    m = mean(arr)
    v = variance(arr, m)
    if v == 0:
        return n
    rho1 = float(np.sum((arr[:-1] - m) * (arr[1:] - m))) / ((n - 1) * v)
    tau = 1 + 2 * max(0.0, rho1)
    return max(1, int(n // tau))


def mcse(values, ess: float) -> float:
    """Monte Carlo standard error of the mean: stdDev / sqrt(ESS)."""
    if ess <= 0:
        return 0.0
    return std_dev(values) / math.sqrt(ess)


def summarize_posterior(values, name: str) -> PosteriorSummary:
    ess = estimate_ess(values)
    m = mean(values)
    return PosteriorSummary(
        name=name,
        mean=m,
        std_dev=std_dev(values, m),
        median=median(values),
        ci95=equal_tailed_interval(values, 0.95),
        hpd95=hpd_interval(values, 0.95),
        mcse=mcse(values, ess),
        ess=ess,
    )


def summarize_all_posteriors(samples, variable_names: Sequence[str]) -> List[PosteriorSummary]:
    """One summary per column; columns without a name are called var_<index>."""
    arr = _matrix(samples)
    if arr.size == 0:
        return []
    summaries = []
    for j in range(arr.shape[1]):
        name = variable_names[j] if j < len(variable_names) else f"var_{j}"
        summaries.append(summarize_posterior(arr[:, j], name))
    return summaries


# ============================================================================
# PROBABILITY QUERIES
# ============================================================================

def prob_exceeds_threshold(values, threshold: float) -> float:
    """Empirical P(X > threshold)."""
    arr = _vector(values)
    if arr.size == 0:
        return 0.0
    return float(np.count_nonzero(arr > threshold) / arr.size)


def prob_in_range(values, lower: float, upper: float) -> float:
    """Empirical P(lower <= X <= upper)."""
    arr = _vector(values)
    if arr.size == 0:
        return 0.0
    return float(np.count_nonzero((arr >= lower) & (arr <= upper)) / arr.size)


def prob_a_exceeds_b(a, b) -> float:
    """
    Empirical P(A > B) from paired draws.

    Raises:
        ValueError: if the two sample vectors differ in length.
    """
    xa = _vector(a)
    xb = _vector(b)
    if xa.size != xb.size:
        raise ValueError(f"paired samples must have equal length, got {xa.size} and {xb.size}")
    if xa.size == 0:
        return 0.0
    return float(np.count_nonzero(xa > xb) / xa.size)


# ============================================================================
# DENSITY ESTIMATION
# ============================================================================

@dataclass(frozen=True)
class HistogramBin:
    center: float
    count: int
    density: float


def histogram(values, num_bins: int = HISTOGRAM_BINS) -> List[HistogramBin]:
    """Equal-width bins; density = count / (N * bin width), so the bars integrate to 1."""
    arr = _vector(values)
    if arr.size == 0:
        return []
    if np.min(arr) == np.max(arr):
        return [HistogramBin(center=float(arr[0]), count=int(arr.size), density=1.0)]
    counts, low, width = _bin_counts(arr, num_bins)
    n = arr.size
    return [
        HistogramBin(center=low + (i + 0.5) * width, count=int(c), density=float(c) / (n * width))
        for i, c in enumerate(counts)
    ]


def silverman_bandwidth(values) -> float:
    """Rule-of-thumb Gaussian KDE bandwidth: 1.06 * sd * N^(-1/5)."""
    arr = _vector(values)
    if arr.size == 0:
        return 0.0
    return 1.06 * std_dev(arr) * arr.size ** -0.2


def kde(values, num_points: int = KDE_POINTS, bandwidth: Optional[float] = None) -> Tuple[np.ndarray, np.ndarray]:
    """
    Gaussian kernel density estimate on an even grid spanning [min, max].

    Returns:
        (grid, density) arrays. A zero bandwidth collapses to a point mass
        at the minimum: (array([min]), array([1.0])).
    """
    arr = _vector(values)
    if arr.size == 0:
        return np.zeros(0), np.zeros(0)
    if num_points < 2:
        raise ValueError("num_points must be at least 2")
    h = silverman_bandwidth(arr) if bandwidth is None else bandwidth
    low = float(np.min(arr))
    if h == 0:
        return np.array([low]), np.array([1.0])
    grid = np.linspace(low, float(np.max(arr)), num_points)
    u = (grid[:, None] - arr[None, :]) / h
    density = np.exp(-0.5 * u * u).sum(axis=1) / (arr.size * h * math.sqrt(2 * math.pi))
    return grid, density
