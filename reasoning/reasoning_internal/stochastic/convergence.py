"""
PURPOSE: Convergence diagnostics for Monte Carlo sample chains.

RESPONSIBILITIES:
- Autocorrelation, integrated autocorrelation time and effective sample size
- Geweke z-score (early vs late segment means)
- R-hat, split-chain for one chain and Gelman-Rubin across several chains
- Monte Carlo standard error
- Threshold-based convergence assessment, running-mean trace statistics and
  a human-readable diagnostic summary

SRP/DRY CHECK:
    Pure functions over arrays. Inputs too short to assess degrade to neutral
    values (Geweke 0, R-hat 1, not converged with a reason) and never raise.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from .config import (
    DEFAULT_MAX_AUTOCORR_LAG,
    ESS_RATIO_THRESHOLD,
    GEWEKE_FIRST_PORTION,
    GEWEKE_LAST_PORTION,
    GEWEKE_THRESHOLD,
    LOW_SAMPLE_COUNT,
    MIN_CONVERGENCE_SAMPLES,
    MIN_DIAGNOSTIC_SAMPLES,
    MIN_GEWEKE_LENGTH,
    MIN_STABILIZATION_LENGTH,
    RHAT_THRESHOLD,
    STABILIZATION_TOLERANCE,
    STABILIZATION_WINDOW,
    get_convergence_thresholds,
)
from .statistics import _matrix, _vector, mean, std_dev, variance


def _columns(samples) -> List[np.ndarray]:
    arr = _matrix(samples)
    if arr.size == 0:
        return []
    return [arr[:, j] for j in range(arr.shape[1])]


# ============================================================================
# AUTOCORRELATION
# ============================================================================

def autocorrelation(values, max_lag: Optional[int] = None) -> np.ndarray:
    """
    Sample autocorrelation for lags 0..max_lag. Lag 0 is always 1.

    The default max_lag is min(N - 1, N // 2). A constant chain returns all ones.
    """
    arr = _vector(values)
    n = arr.size
    if n < 2:
        return np.ones(1)
    lag = min(n - 1, n // 2) if max_lag is None else min(max_lag, n - 1)
    lag = max(lag, 0)
    m = mean(arr)
    v = variance(arr, m)
    if v == 0:
        return np.ones(lag + 1)

    # Lagged cross products for every lag at once via zero-padded FFT
    dev = arr - m
    size = 1 << (2 * n - 1).bit_length()
    spectrum = np.fft.rfft(dev, size)
    sums = np.fft.irfft(spectrum * np.conjugate(spectrum), size)[: lag + 1]
    acf = sums / ((n - np.arange(lag + 1)) * v)
    acf[0] = 1.0
    return acf


def integrated_autocorrelation_time(values) -> float:
    """
    Integrated autocorrelation time by Geyer's initial positive sequence.

    Consecutive ACF pairs rho(2k) + rho(2k+1) are summed until a pair turns
    non-positive; tau = -1 + 2 * sum. Clamped to at least 1.
    """
    acf = autocorrelation(values)
    if acf.size < 2:
        return 1.0
    total = 0.0
    for k in range(acf.size // 2):
        pair = acf[2 * k] + acf[2 * k + 1]
        if pair <= 0:
            break
        total += pair
    return max(1.0, -1.0 + 2.0 * total)


# ============================================================================
# EFFECTIVE SAMPLE SIZE
# ============================================================================

def effective_sample_size(values) -> int:
    """N / tau, floored, at least 1 and never more than N."""
    arr = _vector(values)
    if arr.size < 3:
        return int(arr.size)
    iat = integrated_autocorrelation_time(arr)
    return max(1, int(math.floor(arr.size / iat)))


def effective_sample_size_multiple(samples) -> List[int]:
    return [effective_sample_size(col) for col in _columns(samples)]


def min_effective_sample_size(samples) -> int:
    """Worst-case ESS across the columns of a sample matrix; 0 when empty."""
    values = effective_sample_size_multiple(samples)
    return min(values) if values else 0


# ============================================================================
# GEWEKE DIAGNOSTIC
# ============================================================================

def geweke_statistic(values, first_portion: float = GEWEKE_FIRST_PORTION,
                     last_portion: float = GEWEKE_LAST_PORTION) -> float:
    """
    z-score of (mean of first segment - mean of last segment).

    Returns 0 for chains shorter than MIN_GEWEKE_LENGTH or degenerate segments.
    """
    arr = _vector(values)
    n = arr.size
    if n < MIN_GEWEKE_LENGTH:
        return 0.0
    first_end = int(n * first_portion)
    last_start = int(n * (1 - last_portion))
    if first_end <= 0 or last_start >= n or first_end >= last_start:
        return 0.0

    first = arr[:first_end]
    last = arr[last_start:]
    mean_first = mean(first)
    mean_last = mean(last)
    se = math.sqrt(variance(first, mean_first) / first.size + variance(last, mean_last) / last.size)
    if se == 0:
        return 0.0
    return (mean_first - mean_last) / se


def geweke_statistic_multiple(samples) -> List[float]:
    return [geweke_statistic(col) for col in _columns(samples)]


def aggregate_geweke_statistic(samples) -> float:
    """Root mean square of the per-variable Geweke z-scores."""
    stats = geweke_statistic_multiple(samples)
    if not stats:
        return 0.0
    return math.sqrt(sum(s * s for s in stats) / len(stats))


# ============================================================================
# R-HAT
# ============================================================================

def r_hat_multiple_chains(chains: Sequence[Sequence[float]]) -> float:
    """
    Gelman-Rubin potential scale reduction across two or more chains.

    Chains are truncated to the shortest length. Exactly 1 for a single chain.
    """
    m = len(chains)
    if m < 2:
        return 1.0
    arrays = [_vector(c) for c in chains]
    n = min(a.size for a in arrays)
    if n < 2:
        return 1.0
    truncated = [a[:n] for a in arrays]

    w = mean([variance(c) for c in truncated])
    if w == 0:
        return 1.0
    chain_means = np.array([mean(c) for c in truncated])
    grand_mean = mean(chain_means)
    b = (n / (m - 1)) * float(np.sum((chain_means - grand_mean) ** 2))

    var_plus = ((n - 1) / n) * w + b / n
    return math.sqrt(var_plus / w)


def r_hat_single_chain(values) -> float:
    """Split-chain R-hat: compare the first half of one chain with the second."""
    arr = _vector(values)
    n = arr.size
    if n < 4:
        return 1.0
    mid = n // 2
    return r_hat_multiple_chains([arr[:mid], arr[mid:]])


def _max_split_r_hat(columns: List[np.ndarray]) -> float:
    return max((r_hat_single_chain(col) for col in columns), default=1.0)


# ============================================================================
# MONTE CARLO STANDARD ERROR
# ============================================================================

def mcse(values) -> float:
    """Standard error of the chain mean, stdDev / sqrt(ESS)."""
    ess = effective_sample_size(values)
    if ess <= 0:
        return 0.0
    return std_dev(values) / math.sqrt(ess)


def mcse_multiple(samples) -> List[float]:
    return [mcse(col) for col in _columns(samples)]


# ============================================================================
# CONVERGENCE ASSESSMENT
# ============================================================================

@dataclass(frozen=True)
class ConvergenceResult:
    converged: bool
    reason: str
    confidence: float  # 0-1


def assess_convergence(samples, thresholds: Optional[Dict[str, float]] = None) -> ConvergenceResult:
    """
    Check Geweke, split R-hat and ESS ratio against thresholds.

    Args:
        samples: Sample matrix (rows = draws) or a single chain
        thresholds: Optional overrides for the "geweke", "r_hat" and "ess_ratio"
                    keys of config.get_convergence_thresholds()

    Returns:
        ConvergenceResult. Fewer than MIN_CONVERGENCE_SAMPLES rows give
        converged=False with an "Insufficient samples" reason.
    """
    limits = get_convergence_thresholds()
    if thresholds:
        limits.update(thresholds)

    columns = _columns(samples)
    n = columns[0].size if columns else 0
    if n < MIN_CONVERGENCE_SAMPLES:
        return ConvergenceResult(
            converged=False,
            reason=f"Insufficient samples for convergence assessment ({n} < {MIN_CONVERGENCE_SAMPLES})",
            confidence=0.0,
        )

    geweke = aggregate_geweke_statistic(samples)
    ess_ratio = min_effective_sample_size(samples) / n
    r_hat = _max_split_r_hat(columns)

    issues = []
    if abs(geweke) > limits["geweke"]:
        issues.append(f"Geweke statistic ({geweke:.2f}) exceeds threshold")
    if r_hat > limits["r_hat"]:
        issues.append(f"R-hat ({r_hat:.3f}) exceeds threshold")
    if ess_ratio < limits["ess_ratio"]:
        issues.append(f"ESS ratio ({ess_ratio * 100:.1f}%) below threshold")

    if not issues:
        return ConvergenceResult(
            converged=True,
            reason="All diagnostics within acceptable thresholds",
            confidence=0.95,
        )
    return ConvergenceResult(converged=False, reason="; ".join(issues), confidence=1 - len(issues) / 3)


@dataclass(frozen=True)
class ConvergenceDiagnostics:
    """
    Bundle of diagnostics for one sample matrix.

    Attributes:
        geweke_statistic (float): RMS of per-variable Geweke z-scores.
        effective_sample_size (int): Minimum ESS across variables.
        r_hat (float): Worst split-chain R-hat across variables.
        has_converged (bool): Verdict of assess_convergence.
        autocorrelation (np.ndarray): ACF of the first variable.
        mcse (list): Monte Carlo standard error per variable.
        effective_sample_sizes (list): ESS per variable.
        reason (str): Explanation from assess_convergence.
    """
    geweke_statistic: float
    effective_sample_size: int
    r_hat: float
    has_converged: bool
    autocorrelation: np.ndarray = field(default_factory=lambda: np.ones(1))
    mcse: List[float] = field(default_factory=list)
    effective_sample_sizes: List[int] = field(default_factory=list)
    reason: str = ""

    def to_dict(self) -> Dict[str, object]:
        return {
            "geweke_statistic": self.geweke_statistic,
            "effective_sample_size": self.effective_sample_size,
            "r_hat": self.r_hat,
            "has_converged": self.has_converged,
            "autocorrelation": self.autocorrelation.tolist(),
            "mcse": list(self.mcse),
            "effective_sample_sizes": list(self.effective_sample_sizes),
            "reason": self.reason,
        }


def compute_convergence_diagnostics(samples, max_autocorr_lag: int = DEFAULT_MAX_AUTOCORR_LAG,
                                    thresholds: Optional[Dict[str, float]] = None) -> ConvergenceDiagnostics:
    columns = _columns(samples)
    n = columns[0].size if columns else 0
    if n < MIN_DIAGNOSTIC_SAMPLES:
        return ConvergenceDiagnostics(
            geweke_statistic=0.0,
            effective_sample_size=n,
            r_hat=1.0,
            has_converged=False,
            reason=f"Insufficient samples for diagnostics ({n} < {MIN_DIAGNOSTIC_SAMPLES})",
        )

    assessment = assess_convergence(samples, thresholds)
    ess_values = effective_sample_size_multiple(samples)
    return ConvergenceDiagnostics(
        geweke_statistic=aggregate_geweke_statistic(samples),
        effective_sample_size=min(ess_values),
        r_hat=_max_split_r_hat(columns),
        has_converged=assessment.converged,
        autocorrelation=autocorrelation(columns[0], max_autocorr_lag),
        mcse=mcse_multiple(samples),
        effective_sample_sizes=ess_values,
        reason=assessment.reason,
    )


# ============================================================================
# TRACE DIAGNOSTICS
# ============================================================================

@dataclass(frozen=True)
class TraceStats:
    name: str
    running_mean: np.ndarray
    running_variance: np.ndarray
    stabilized: bool
    stabilization_point: int  # -1 when not stabilized


def trace_statistics(values, name: str) -> TraceStats:
    """
    Running mean and unbiased running variance (Welford), plus a stability flag.

    The trace counts as stabilized when, over the trailing STABILIZATION_WINDOW
    of the chain, the running mean never drifts from its final value by more
    than STABILIZATION_TOLERANCE * max(|final mean|, final sd). The
    stabilization point is the first index from which that holds.
    """
    arr = _vector(values)
    n = arr.size
    if n == 0:
        return TraceStats(name, np.zeros(0), np.zeros(0), False, -1)

    running_mean = np.empty(n)
    running_variance = np.empty(n)
    m = 0.0
    m2 = 0.0
    for i, x in enumerate(arr):
        delta = x - m
        m += delta / (i + 1)
        m2 += delta * (x - m)
        running_mean[i] = m
        running_variance[i] = m2 / i if i > 0 else 0.0

    stabilized = False
    point = -1
    if n >= MIN_STABILIZATION_LENGTH:
        final_mean = running_mean[-1]
        scale = max(abs(final_mean), math.sqrt(running_variance[-1])) or 1.0
        within = np.abs(running_mean - final_mean) / scale < STABILIZATION_TOLERANCE
        # Index of the first element of the trailing all-True run
        outside = np.flatnonzero(~within)
        first_stable = int(outside[-1]) + 1 if outside.size else 0
        if first_stable <= int(n * (1 - STABILIZATION_WINDOW)):
            stabilized = True
            point = first_stable

    return TraceStats(name, running_mean, running_variance, stabilized, point)


# ============================================================================
# DIAGNOSTIC SUMMARY
# ============================================================================

@dataclass(frozen=True)
class DiagnosticSummary:
    total_samples: int
    effective_sample_size: int
    ess_ratio: float
    geweke_statistic: float
    r_hat: float
    converged: bool
    confidence: float
    issues: List[str]
    recommendations: List[str]

    def to_dict(self) -> Dict[str, object]:
        return {
            "total_samples": self.total_samples,
            "effective_sample_size": self.effective_sample_size,
            "ess_ratio": self.ess_ratio,
            "geweke_statistic": self.geweke_statistic,
            "r_hat": self.r_hat,
            "converged": self.converged,
            "confidence": self.confidence,
            "issues": list(self.issues),
            "recommendations": list(self.recommendations),
        }


def generate_diagnostic_summary(samples) -> DiagnosticSummary:
    columns = _columns(samples)
    n = columns[0].size if columns else 0
    ess = min_effective_sample_size(samples)
    ess_ratio = ess / n if n > 0 else 0.0
    geweke = aggregate_geweke_statistic(samples)
    r_hat = _max_split_r_hat(columns)
    assessment = assess_convergence(samples)

    issues = []
    recommendations = []
    if n < LOW_SAMPLE_COUNT:
        issues.append("Low sample count")
        recommendations.append(f"Consider increasing to at least {LOW_SAMPLE_COUNT} iterations (currently {n})")
    if ess_ratio < ESS_RATIO_THRESHOLD:
        issues.append("Low effective sample size ratio")
        recommendations.append("Increase thinning interval or run more iterations")
    if abs(geweke) > GEWEKE_THRESHOLD:
        issues.append("Chain not stationary")
        recommendations.append("Increase burn-in period")
    if r_hat > RHAT_THRESHOLD:
        issues.append("Chain not mixed well")
        recommendations.append("Run longer or use better initial values")

    return DiagnosticSummary(
        total_samples=n,
        effective_sample_size=ess,
        ess_ratio=ess_ratio,
        geweke_statistic=geweke,
        r_hat=r_hat,
        converged=assessment.converged,
        confidence=assessment.confidence,
        issues=issues,
        recommendations=recommendations,
    )
