"""
PURPOSE: Declarative stochastic model and run configuration.

RESPONSIBILITIES:
- Define one immutable Distribution type per supported family
- Define variable domains, dependencies and constraints
- Define StochasticModel (ordered variables) and MonteCarloConfig
- Validate parameters at construction so a built model is always drawable

SRP/DRY CHECK:
    Types and validation only. Sampling algorithms live in distributions.py,
    the sample loop in simulation.py.
"""

import math
import numbers
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .config import (
    CATEGORICAL_TOLERANCE,
    DEFAULT_BURN_IN_FRACTION,
    DEFAULT_CHAINS,
    DEFAULT_CONVERGENCE_THRESHOLD,
    DEFAULT_THINNING,
    DEFAULT_TIMEOUT_MS,
    PROGRESS_STEPS,
)
from .errors import ParameterError, UnsupportedDistributionError
from .rng import generate_seed


# ============================================================================
# PARAMETER CHECKS
# ============================================================================

def check_positive(family: str, name: str, value: float) -> None:
    """Raise ParameterError unless value is a finite number strictly above zero."""
    if not (isinstance(value, numbers.Real) and math.isfinite(value) and value > 0):
        raise ParameterError(family, f"{name} must be positive, got {value!r}")


def check_finite(family: str, name: str, value: float) -> None:
    if not (isinstance(value, numbers.Real) and math.isfinite(value)):
        raise ParameterError(family, f"{name} must be a finite number, got {value!r}")


def check_bounds(family: str, low: float, high: float) -> None:
    check_finite(family, "low", low)
    check_finite(family, "high", high)
    if low >= high:
        raise ParameterError(family, f"low must be less than high, got low={low}, high={high}")


def check_binomial(n: int, p: float) -> None:
    if isinstance(n, bool) or not isinstance(n, numbers.Integral) or n <= 0:
        raise ParameterError("binomial", f"n must be a positive integer, got {n!r}")
    if not (isinstance(p, numbers.Real) and 0 <= p <= 1):
        raise ParameterError("binomial", f"p must be between 0 and 1, got {p!r}")


def check_probabilities(probabilities: Mapping[str, float]) -> None:
    if not probabilities:
        raise ParameterError("categorical", "at least one category is required")
    for label, prob in probabilities.items():
        if not (isinstance(prob, numbers.Real) and 0 <= prob <= 1):
            raise ParameterError("categorical", f"probability of {label!r} must be in [0, 1], got {prob!r}")
    total = math.fsum(probabilities.values())
    if abs(total - 1.0) > CATEGORICAL_TOLERANCE + 1e-12:
        raise ParameterError("categorical", f"probabilities must sum to 1, got {total:.6f}")


# ============================================================================
# DISTRIBUTIONS
# ============================================================================

@dataclass(frozen=True)
class Normal:
    type: ClassVar[str] = "normal"
    mean: float
    std_dev: float

    def __post_init__(self):
        check_finite(self.type, "mean", self.mean)
        check_positive(self.type, "std_dev", self.std_dev)


@dataclass(frozen=True)
class Uniform:
    type: ClassVar[str] = "uniform"
    low: float
    high: float

    def __post_init__(self):
        check_bounds(self.type, self.low, self.high)


@dataclass(frozen=True)
class Exponential:
    type: ClassVar[str] = "exponential"
    rate: float

    def __post_init__(self):
        check_positive(self.type, "rate", self.rate)


@dataclass(frozen=True)
class Poisson:
    type: ClassVar[str] = "poisson"
    lam: float

    def __post_init__(self):
        check_positive(self.type, "lambda", self.lam)


@dataclass(frozen=True)
class Binomial:
    type: ClassVar[str] = "binomial"
    n: int
    p: float

    def __post_init__(self):
        check_binomial(self.n, self.p)


@dataclass(frozen=True)
class Categorical:
    """Label -> probability mapping. Iteration order fixes the category indices."""
    type: ClassVar[str] = "categorical"
    probabilities: Mapping[str, float]

    def __post_init__(self):
        check_probabilities(self.probabilities)
        object.__setattr__(self, "probabilities", dict(self.probabilities))

    @property
    def categories(self) -> List[str]:
        return list(self.probabilities)


@dataclass(frozen=True)
class Beta:
    type: ClassVar[str] = "beta"
    alpha: float
    beta: float

    def __post_init__(self):
        check_positive(self.type, "alpha", self.alpha)
        check_positive(self.type, "beta", self.beta)


@dataclass(frozen=True)
class Gamma:
    type: ClassVar[str] = "gamma"
    shape: float
    scale: float = 1.0

    def __post_init__(self):
        check_positive(self.type, "shape", self.shape)
        check_positive(self.type, "scale", self.scale)


@dataclass(frozen=True)
class LogNormal:
    """exp(Normal(mu, sigma)); mu and sigma are log-space parameters."""
    type: ClassVar[str] = "lognormal"
    mu: float
    sigma: float

    def __post_init__(self):
        check_finite(self.type, "mu", self.mu)
        check_positive(self.type, "sigma", self.sigma)


@dataclass(frozen=True)
class Triangular:
    type: ClassVar[str] = "triangular"
    low: float
    mode: float
    high: float

    def __post_init__(self):
        check_bounds(self.type, self.low, self.high)
        check_finite(self.type, "mode", self.mode)
        if not self.low <= self.mode <= self.high:
            raise ParameterError(self.type, f"mode must lie in [low, high], got {self.mode}")


@dataclass(frozen=True)
class Custom:
    """Caller-supplied zero-argument draw function."""
    type: ClassVar[str] = "custom"
    sampler: Callable[[], float]

    def __post_init__(self):
        if not callable(self.sampler):
            raise ParameterError(self.type, "sampler must be callable")


Distribution = Union[
    Normal, Uniform, Exponential, Poisson, Binomial, Categorical,
    Beta, Gamma, LogNormal, Triangular, Custom,
]

DISTRIBUTION_TYPES = {
    cls.type: cls
    for cls in (Normal, Uniform, Exponential, Poisson, Binomial, Categorical,
                Beta, Gamma, LogNormal, Triangular, Custom)
}

# Accepted spellings for parameters in plain-dict payloads
_PARAM_ALIASES = {
    "stdDev": "std_dev",
    "std": "std_dev",
    "min": "low",
    "max": "high",
    "lambda": "lam",
}


def distribution_from_dict(payload: Mapping[str, Any]) -> Distribution:
    """
    Build a Distribution from a plain dict such as {"type": "normal", "mean": 0, "stdDev": 1}.

    Raises:
        UnsupportedDistributionError: if "type" is missing or unknown.
        ParameterError: if a parameter is missing or out of range.
    """
    tag = payload.get("type")
    cls = DISTRIBUTION_TYPES.get(tag)
    if cls is None:
        raise UnsupportedDistributionError(tag)
    kwargs = {_PARAM_ALIASES.get(k, k): v for k, v in payload.items() if k != "type"}
    try:
        return cls(**kwargs)
    except TypeError as e:
        raise ParameterError(tag, f"invalid parameters {sorted(kwargs)}: {e}") from e


# ============================================================================
# DOMAINS
# ============================================================================

@dataclass(frozen=True)
class ContinuousDomain:
    kind: ClassVar[str] = "continuous"
    low: Optional[float] = None
    high: Optional[float] = None

    def contains(self, value: float) -> bool:
        if self.low is not None and value < self.low:
            return False
        if self.high is not None and value > self.high:
            return False
        return True


@dataclass(frozen=True)
class DiscreteDomain:
    kind: ClassVar[str] = "discrete"
    values: Tuple[float, ...]

    def contains(self, value: float) -> bool:
        return value in self.values


@dataclass(frozen=True)
class IntegerDomain:
    kind: ClassVar[str] = "integer"
    low: int
    high: int

    def contains(self, value: float) -> bool:
        return float(value).is_integer() and self.low <= value <= self.high


@dataclass(frozen=True)
class CategoricalDomain:
    """Categorical draws are recorded as indices into ``categories``."""
    kind: ClassVar[str] = "categorical"
    categories: Tuple[str, ...]

    def contains(self, value: float) -> bool:
        return float(value).is_integer() and 0 <= value < len(self.categories)


Domain = Union[ContinuousDomain, DiscreteDomain, IntegerDomain, CategoricalDomain]


# ============================================================================
# MODEL
# ============================================================================

@dataclass(frozen=True)
class StochasticVariable:
    name: str
    distribution: Distribution
    domain: Optional[Domain] = None
    description: Optional[str] = None
    observable: bool = True


@dataclass(frozen=True)
class Dependency:
    """Edge between two variables. Recorded for callers; draws stay independent."""
    source: str
    target: str
    kind: str = "causal"  # causal | correlation | conditional
    strength: Optional[float] = None

    def __post_init__(self):
        if self.kind not in ("causal", "correlation", "conditional"):
            raise ParameterError("dependency", f"unknown kind {self.kind!r}")
        if self.strength is not None and not -1 <= self.strength <= 1:
            raise ParameterError("dependency", f"strength must be in [-1, 1], got {self.strength}")


@dataclass(frozen=True)
class Constraint:
    kind: str  # equality | inequality | range | sum_to_one
    variables: Tuple[str, ...]
    expression: str
    target: Optional[float] = None


@dataclass(frozen=True)
class StochasticModel:
    """
    Ordered collection of named random variables.

    The order of ``variables`` fixes the column order of the sample matrix.

    Raises:
        ParameterError: on an empty model, duplicate names, or dependencies
                        and constraints that reference unknown variables.
    """
    id: str
    variables: Sequence[StochasticVariable]
    dependencies: Sequence[Dependency] = field(default_factory=tuple)
    constraints: Sequence[Constraint] = field(default_factory=tuple)
    kind: str = "mixed"  # discrete | continuous | mixed
    description: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "variables", tuple(self.variables))
        object.__setattr__(self, "dependencies", tuple(self.dependencies))
        object.__setattr__(self, "constraints", tuple(self.constraints))
        if not self.variables:
            raise ParameterError("model", "must contain at least one variable")
        names = [v.name for v in self.variables]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ParameterError("model", f"duplicate variable names: {duplicates}")
        known = set(names)
        for dep in self.dependencies:
            for endpoint in (dep.source, dep.target):
                if endpoint not in known:
                    raise ParameterError("model", f"dependency references unknown variable {endpoint!r}")
        for constraint in self.constraints:
            unknown = [v for v in constraint.variables if v not in known]
            if unknown:
                raise ParameterError("model", f"constraint references unknown variables {unknown}")

    @property
    def variable_names(self) -> List[str]:
        return [v.name for v in self.variables]

    def get_variable(self, name: str) -> StochasticVariable:
        for variable in self.variables:
            if variable.name == name:
                return variable
        raise KeyError(name)


# ============================================================================
# RUN CONFIGURATION
# ============================================================================

class MonteCarloConfig(BaseModel):
    """
    Run configuration. Optional fields are resolved by ``with_defaults()``.

    Accepts both snake_case and camelCase keys (``burn_in`` / ``burnIn``).
    ``timeout`` is wall-clock milliseconds.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    iterations: int = Field(gt=0)
    burn_in: Optional[int] = Field(default=None, ge=0, alias="burnIn")
    thinning: int = Field(default=DEFAULT_THINNING, ge=1)
    convergence_threshold: float = Field(default=DEFAULT_CONVERGENCE_THRESHOLD, gt=0, alias="convergenceThreshold")
    seed: Optional[int] = None
    timeout: Optional[float] = Field(default=None, gt=0)
    progress_interval: Optional[int] = Field(default=None, ge=1, alias="progressInterval")
    chains: int = Field(default=DEFAULT_CHAINS, ge=1)

    @model_validator(mode="after")
    def _burn_in_below_iterations(self):
        if self.burn_in is not None and self.burn_in >= self.iterations:
            raise ValueError(f"burn_in ({self.burn_in}) must be less than iterations ({self.iterations})")
        return self

    def with_defaults(self) -> "MonteCarloConfig":
        """Return a copy with every optional field filled in. Draws a seed if none was given."""
        return self.model_copy(update={
            "burn_in": self.burn_in if self.burn_in is not None else int(self.iterations * DEFAULT_BURN_IN_FRACTION),
            "seed": self.seed if self.seed is not None else generate_seed(),
            "timeout": self.timeout if self.timeout is not None else DEFAULT_TIMEOUT_MS,
            "progress_interval": (
                self.progress_interval if self.progress_interval is not None
                else max(1, self.iterations // PROGRESS_STEPS)
            ),
        })

    @property
    def expected_samples(self) -> int:
        """Rows retained by a run that does not time out."""
        burn_in = self.burn_in if self.burn_in is not None else int(self.iterations * DEFAULT_BURN_IN_FRACTION)
        return (self.iterations - burn_in) // self.thinning

    def to_metadata(self) -> Dict[str, object]:
        """Serialise into a plain dict for persistence."""
        return self.model_dump()

    @classmethod
    def from_metadata(cls, metadata: Dict[str, object]) -> "MonteCarloConfig":
        return cls.model_validate(metadata)
