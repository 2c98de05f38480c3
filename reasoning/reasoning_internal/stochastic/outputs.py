"""
PURPOSE: Format Monte Carlo results for narration and rendering collaborators.

This module transforms a MonteCarloResult into per-variable posterior
summaries, a convergence verdict with issues and recommendations, and a
plain-English narrative.

SRP/DRY: Single responsibility = output formatting. No sampling, no
         diagnostics of its own; reads only public MonteCarloResult fields.
"""

from dataclasses import dataclass
from typing import Any, Dict, List

from .config import ROUND_PROBABILITY, ROUND_STATISTIC
from .convergence import generate_diagnostic_summary
from .simulation import MonteCarloResult
from .statistics import PosteriorSummary


def _round_interval(interval: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "lower": round(interval["lower"], ROUND_STATISTIC),
        "upper": round(interval["upper"], ROUND_STATISTIC),
        "probability": interval["probability"],
        "type": interval["type"],
    }


@dataclass
class SimulationReport:
    """Structured, display-ready view of one simulation run.

    Attributes:
        variable_summaries (list): PosteriorSummary per variable, in column order.
        verdict (str): "CONVERGED", "NOT CONVERGED" or "NO SAMPLES".
        convergence_reason (str): Explanation from the convergence assessment.
        confidence (float): Confidence of the convergence verdict (0-1).
        effective_samples (int): Retained rows.
        execution_time (float): Milliseconds.
        issues (list): Diagnostic issues, e.g. "Low sample count".
        recommendations (list): One recommendation per issue.
        warnings (list): Warnings raised by the engine (timeout, low ESS, ...).
        summary_narrative (str): Plain English summary of key findings.
    """
    variable_summaries: List[PosteriorSummary]
    verdict: str
    convergence_reason: str
    confidence: float
    effective_samples: int
    execution_time: float
    issues: List[str]
    recommendations: List[str]
    warnings: List[str]
    summary_narrative: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert report to dictionary for JSON serialization."""
        variables = []
        for summary in self.variable_summaries:
            data = summary.to_dict()
            variables.append({
                "name": data["name"],
                "mean": round(data["mean"], ROUND_STATISTIC),
                "std_dev": round(data["std_dev"], ROUND_STATISTIC),
                "median": round(data["median"], ROUND_STATISTIC),
                "ci95": _round_interval(data["ci95"]),
                "hpd95": _round_interval(data["hpd95"]),
                "mcse": round(data["mcse"], ROUND_STATISTIC),
                "ess": data["ess"],
            })
        return {
            "variables": variables,
            "verdict": self.verdict,
            "convergence_reason": self.convergence_reason,
            "confidence": round(self.confidence, ROUND_PROBABILITY),
            "effective_samples": self.effective_samples,
            "execution_time": round(self.execution_time, 1),
            "issues": list(self.issues),
            "recommendations": list(self.recommendations),
            "warnings": list(self.warnings),
            "summary_narrative": self.summary_narrative,
        }


class OutputFormatter:
    """
    Formats a MonteCarloResult into a SimulationReport.

    Verdicts:
    - CONVERGED: every convergence diagnostic within its threshold
    - NOT CONVERGED: at least one diagnostic failed, or too few samples
    - NO SAMPLES: the run retained nothing (e.g. immediate timeout)
    """

    CONVERGED = "CONVERGED"
    NOT_CONVERGED = "NOT CONVERGED"
    NO_SAMPLES = "NO SAMPLES"

    @staticmethod
    def format_results(result: MonteCarloResult) -> SimulationReport:
        """
        Format one simulation result.

        Args:
            result: Output of MonteCarloEngine.simulate or simulate_with_evaluator.

        Returns:
            SimulationReport with summaries, verdict and narrative.
        """
        if not result.success:
            return SimulationReport(
                variable_summaries=[],
                verdict=OutputFormatter.NO_SAMPLES,
                convergence_reason="No samples were retained",
                confidence=0.0,
                effective_samples=0,
                execution_time=result.execution_time,
                issues=["No samples"],
                recommendations=["Increase the timeout or reduce burn-in"],
                warnings=list(result.warnings),
                summary_narrative="The simulation produced no samples; nothing can be reported.",
            )

        summaries = result.summaries()
        diagnostic = generate_diagnostic_summary(result.samples)
        verdict = OutputFormatter.CONVERGED if diagnostic.converged else OutputFormatter.NOT_CONVERGED
        reason = result.convergence_diagnostics.reason

        narrative = OutputFormatter._generate_narrative(
            summaries, verdict, diagnostic.effective_sample_size, result.effective_samples, result.warnings
        )

        return SimulationReport(
            variable_summaries=summaries,
            verdict=verdict,
            convergence_reason=reason,
            confidence=diagnostic.confidence,
            effective_samples=result.effective_samples,
            execution_time=result.execution_time,
            issues=diagnostic.issues,
            recommendations=diagnostic.recommendations,
            warnings=list(result.warnings),
            summary_narrative=narrative,
        )

    @staticmethod
    def _generate_narrative(
        summaries: List[PosteriorSummary],
        verdict: str,
        min_ess: int,
        total_samples: int,
        warnings: List[str],
    ) -> str:
        """
        Generate a plain English summary of key findings.

        Args:
            summaries: Posterior summary per variable.
            verdict: CONVERGED or NOT CONVERGED.
            min_ess: Worst-case effective sample size.
            total_samples: Retained rows.
            warnings: Engine warnings.

        Returns:
            Plain English narrative string.
        """
        narrative = f"Based on {total_samples} samples (minimum effective sample size {min_ess}). "
        for summary in summaries:
            narrative += (
                f"{summary.name}: mean {summary.mean:.4g}, "
                f"95% interval [{summary.ci95.lower:.4g}, {summary.ci95.upper:.4g}]. "
            )

        if verdict == OutputFormatter.CONVERGED:
            narrative += "All convergence diagnostics are within acceptable thresholds."
        else:
            narrative += (
                "Convergence diagnostics did not all pass. "
                "Treat these estimates with caution and consider a longer run."
            )

        if warnings:
            narrative += f" {len(warnings)} warning(s) were raised during the run."

        return narrative
