"""Exceptions raised while building samplers and models.

Both subclass ValueError so callers that already guard against bad input
with ``except ValueError`` keep working.
"""

__all__ = ["StochasticError", "ParameterError", "UnsupportedDistributionError"]


class StochasticError(Exception):
    """Base class for errors raised by the stochastic package."""


class ParameterError(StochasticError, ValueError):
    """A distribution or model parameter lies outside its valid domain."""

    def __init__(self, family: str, message: str):
        self.family = family
        super().__init__(f"{family}: {message}")


class UnsupportedDistributionError(StochasticError, ValueError):
    """The sampler factory received a distribution tag it does not know."""

    def __init__(self, tag):
        self.tag = tag
        super().__init__(f"Unknown distribution type: {tag!r}")
