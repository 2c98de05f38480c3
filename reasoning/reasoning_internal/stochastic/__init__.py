"""
Monte Carlo simulation over declarative stochastic models.

PURPOSE:
    Draw reproducible samples from a model of named random variables and
    summarise them with point estimates, correlations, credible intervals and
    convergence diagnostics.

RESPONSIBILITIES:
    - Seeded pseudo-random source with checkpoint/restore and forking
    - Samplers for eleven distribution families
    - Descriptive statistics, intervals and density estimates
    - Convergence diagnostics (ESS, Geweke, R-hat, MCSE)
    - Burn-in/thinning engine and result formatting

SRP/DRY CHECK:
    Each submodule has a single responsibility:
    - rng.py: Pseudo-random stream only
    - distributions.py: Sampling from distribution families only
    - statistics.py: Summaries of sample arrays only
    - convergence.py: Chain diagnostics only
    - simulation.py: Sampling loop and result aggregation only
    - outputs.py: Result formatting only
"""

from .convergence import (
    ConvergenceDiagnostics,
    assess_convergence,
    compute_convergence_diagnostics,
    effective_sample_size,
    geweke_statistic,
    r_hat_multiple_chains,
    r_hat_single_chain,
)
from .distributions import DistributionSampler, create_sampler, sample_with_statistics
from .errors import ParameterError, StochasticError, UnsupportedDistributionError
from .model import (
    Beta,
    Binomial,
    Categorical,
    Custom,
    Exponential,
    Gamma,
    LogNormal,
    MonteCarloConfig,
    Normal,
    Poisson,
    StochasticModel,
    StochasticVariable,
    Triangular,
    Uniform,
)
from .outputs import OutputFormatter, SimulationReport
from .rng import SeededRNG, create_parallel_rngs, create_rng, generate_seed
from .simulation import (
    MonteCarloEngine,
    MonteCarloResult,
    SimulationProgress,
    create_monte_carlo_engine,
    run_monte_carlo_simulation,
)
from .statistics import SampleStatistics, compute_sample_statistics

__version__ = "0.1.0"

__all__ = [
    "Beta",
    "Binomial",
    "Categorical",
    "ConvergenceDiagnostics",
    "Custom",
    "DistributionSampler",
    "Exponential",
    "Gamma",
    "LogNormal",
    "MonteCarloConfig",
    "MonteCarloEngine",
    "MonteCarloResult",
    "Normal",
    "OutputFormatter",
    "ParameterError",
    "Poisson",
    "SampleStatistics",
    "SeededRNG",
    "SimulationProgress",
    "SimulationReport",
    "StochasticError",
    "StochasticModel",
    "StochasticVariable",
    "Triangular",
    "Uniform",
    "UnsupportedDistributionError",
    "assess_convergence",
    "compute_convergence_diagnostics",
    "compute_sample_statistics",
    "create_monte_carlo_engine",
    "create_parallel_rngs",
    "create_rng",
    "create_sampler",
    "effective_sample_size",
    "generate_seed",
    "geweke_statistic",
    "r_hat_multiple_chains",
    "r_hat_single_chain",
    "run_monte_carlo_simulation",
    "sample_with_statistics",
]
