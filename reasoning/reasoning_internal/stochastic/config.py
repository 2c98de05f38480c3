"""
PURPOSE: Default parameters and threshold values for the Monte Carlo engine.

RESPONSIBILITIES:
- Define engine defaults (iterations, burn-in fraction, thinning, timeout)
- Sampling algorithm cutoffs (normal approximation thresholds)
- Convergence diagnostic thresholds and minimum sample floors
- Single responsibility: configuration only, no simulation logic
"""

# Engine Defaults
DEFAULT_ITERATIONS = 10000  # Used by run_monte_carlo_simulation when unspecified
DEFAULT_BURN_IN_FRACTION = 0.1  # burn_in = floor(iterations * fraction)
DEFAULT_THINNING = 1
DEFAULT_CONVERGENCE_THRESHOLD = 0.01
DEFAULT_TIMEOUT_MS = 60000
DEFAULT_CHAINS = 1
PROGRESS_STEPS = 100  # progress_interval = max(1, iterations // PROGRESS_STEPS)
CONVERGENCE_CHECK_EVERY = 100  # Retained samples between running-mean checkpoints
SAMPLE_BLOCK_ROWS = 10000  # Initial sample-matrix capacity; doubled as rows are retained

# Percentile Outputs
DEFAULT_PERCENTILES = [2.5, 25, 50, 75, 97.5]

# Distribution Sampling
CATEGORICAL_TOLERANCE = 0.001  # Probabilities must sum to 1 within this
POISSON_NORMAL_CUTOFF = 30  # lambda >= cutoff uses the normal approximation
BINOMIAL_NORMAL_CUTOFF = 25  # n >= cutoff uses the normal approximation

# Convergence Thresholds
GEWEKE_THRESHOLD = 2.0  # |z| must stay below
RHAT_THRESHOLD = 1.1  # R-hat must stay below
ESS_RATIO_THRESHOLD = 0.1  # ESS must exceed this fraction of the samples
GEWEKE_FIRST_PORTION = 0.1
GEWEKE_LAST_PORTION = 0.5

# Minimum Sample Floors
MIN_CONVERGENCE_SAMPLES = 100  # Below this assess_convergence reports "Insufficient samples"
MIN_DIAGNOSTIC_SAMPLES = 10
MIN_GEWEKE_LENGTH = 20
MIN_STABILIZATION_LENGTH = 100
STABILIZATION_WINDOW = 0.2  # Trailing fraction of the trace checked for stability
STABILIZATION_TOLERANCE = 0.05  # Max drift of the running mean, relative to max(|mean|, sd)
DEFAULT_MAX_AUTOCORR_LAG = 50
LOW_SAMPLE_COUNT = 1000  # generate_diagnostic_summary flags fewer samples than this

# Density Estimation
MODE_BINS = 20
HISTOGRAM_BINS = 30
KDE_POINTS = 100

# Output Configuration
ROUND_STATISTIC = 4
ROUND_PROBABILITY = 3


def get_convergence_thresholds():
    """Return the default thresholds used by assess_convergence."""
    return {
        "geweke": GEWEKE_THRESHOLD,
        "r_hat": RHAT_THRESHOLD,
        "ess_ratio": ESS_RATIO_THRESHOLD,
    }


def get_engine_defaults():
    """Return the defaults applied to a MonteCarloConfig."""
    return {
        "burn_in_fraction": DEFAULT_BURN_IN_FRACTION,
        "thinning": DEFAULT_THINNING,
        "convergence_threshold": DEFAULT_CONVERGENCE_THRESHOLD,
        "timeout": DEFAULT_TIMEOUT_MS,
        "chains": DEFAULT_CHAINS,
    }
