# planner/retirement/aggregate.py
from __future__ import annotations
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

import numpy as np

if TYPE_CHECKING:
    from planner.retirement.inputs import SimulationInputs
    from planner.retirement.monte_carlo import TrialResult

SAFE_WITHDRAWAL_RATE = 0.035
DEPLETION_CHECKPOINTS = (10, 20, 30)


def percentile_index(p: float, n: int) -> int:
    """floor(p * n), kept inside [0, n - 1]. No interpolation."""
    if n <= 0:
        raise ValueError("percentile of an empty sample")
    return min(n - 1, max(0, int(math.floor(p * n))))


def _finite_or_zero(x) -> float:
    try:
        x = float(x)
    except (TypeError, ValueError):
        return 0.0
    return x if math.isfinite(x) else 0.0


def _optional_finite(x) -> Optional[float]:
    # absent stays absent; present-but-bad reads as 0
    if x is None:
        return None
    return _finite_or_zero(x)


@dataclass
class AggregateResults:
    trials: List["TrialResult"]
    success_rate: float
    success_count: int
    num_simulations: int
    sorted_final_values: List[float]
    percentile10: Optional[float]
    percentile50: Optional[float]
    percentile90: Optional[float]
    all_paths: List[List[float]] = field(repr=False)
    median_path: List[float] = field(repr=False)
    p10_path: List[float] = field(repr=False)
    p90_path: List[float] = field(repr=False)

    def to_dict(self, include_trials: bool = True) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "success_rate": self.success_rate,
            "success_count": self.success_count,
            "num_simulations": self.num_simulations,
            "percentile10": self.percentile10,
            "percentile50": self.percentile50,
            "percentile90": self.percentile90,
            "percentiles": {
                "p10": list(self.p10_path),
                "p50": list(self.median_path),
                "p90": list(self.p90_path),
            },
        }
        if include_trials:
            out["sorted_final_values"] = list(self.sorted_final_values)
            out["trials"] = [t.to_dict() for t in self.trials]
        return out

    @classmethod
    def from_summary(cls, d: Dict[str, Any]) -> "AggregateResults":
        """Rebuild from a to_dict(include_trials=False) payload; trials and paths stay empty."""
        pct = d.get("percentiles") or {}
        return cls(
            trials=[],
            success_rate=_finite_or_zero(d.get("success_rate")),
            success_count=int(_finite_or_zero(d.get("success_count"))),
            num_simulations=int(_finite_or_zero(d.get("num_simulations"))),
            sorted_final_values=list(d.get("sorted_final_values") or []),
            percentile10=_optional_finite(d.get("percentile10")),
            percentile50=_optional_finite(d.get("percentile50")),
            percentile90=_optional_finite(d.get("percentile90")),
            all_paths=[],
            median_path=list(pct.get("p50") or []),
            p10_path=list(pct.get("p10") or []),
            p90_path=list(pct.get("p90") or []),
        )


def aggregate_trials(trials: Sequence["TrialResult"]) -> AggregateResults:
    """
    Summarize a completed run.
      success_rate: percent of trials with a positive final balance
      percentile p: sorted_final_values[floor(p * n)]
      median/p10/p90 paths: per-year envelopes across trials (not any one trial's path)
    """
    n = len(trials)
    if n == 0:
        raise ValueError("cannot aggregate an empty run")

    successes = sum(1 for t in trials if t.success)
    finals = sorted(float(t.final_value) for t in trials)

    paths = np.asarray([t.path for t in trials], dtype=float)
    by_year = np.sort(paths, axis=0)

    i10 = percentile_index(0.1, n)
    i50 = percentile_index(0.5, n)
    i90 = percentile_index(0.9, n)

    return AggregateResults(
        trials=list(trials),
        success_rate=100.0 * successes / n,
        success_count=successes,
        num_simulations=n,
        sorted_final_values=finals,
        percentile10=finals[i10],
        percentile50=finals[i50],
        percentile90=finals[i90],
        all_paths=paths.tolist(),
        median_path=by_year[i50].tolist(),
        p10_path=by_year[i10].tolist(),
        p90_path=by_year[i90].tolist(),
    )


# ---------- post-run statistics ----------

def median_trial(results: AggregateResults) -> "TrialResult":
    """Trial at floor(n/2) when trials are ordered by final value."""
    ordered = sorted(results.trials, key=lambda t: t.final_value)
    return ordered[len(ordered) // 2]


def needed_expense_reduction(inputs: "SimulationInputs") -> int:
    """Percent cut that brings expenses/portfolio down to the 3.5% safe rate."""
    if inputs.portfolio_value <= 0:
        return 0
    w = inputs.annual_expenses / inputs.portfolio_value
    if w <= 0:
        return 0
    return max(0, int(round((w - SAFE_WITHDRAWAL_RATE) / w * 100)))


def inflation_impact(inputs: "SimulationInputs") -> float:
    impact = ((1 + inputs.inflation_rate) ** inputs.retirement_years - 1) * inputs.annual_expenses
    if not math.isfinite(impact) or impact <= 0 or impact >= 1e15:
        return 0.0
    return impact


def average_failure_years(trials: Sequence["TrialResult"]) -> int:
    failed = [t.years_lasted for t in trials if not t.success]
    if not failed:
        return 0
    return int(round(sum(failed) / len(failed)))


def depletion_probabilities(
    results: AggregateResults, checkpoints: Sequence[int] = DEPLETION_CHECKPOINTS
) -> Dict[str, float]:
    """Share of trials that hit 0 by each checkpoint year (clamped to the horizon), plus 'ever'."""
    paths = np.asarray(results.all_paths, dtype=float)
    n_years = paths.shape[1] - 1
    depleted = paths[:, 1:] <= 0
    probs: Dict[str, float] = {}
    for cp in checkpoints:
        idx = min(int(cp), n_years)
        probs[str(cp)] = float(depleted[:, :idx].any(axis=1).mean()) if idx > 0 else 0.0
    probs["ever"] = float(depleted.any(axis=1).mean())
    return probs


def compute_statistics(results: AggregateResults, inputs: "SimulationInputs") -> Dict[str, Any]:
    med = median_trial(results)
    years = int(inputs.retirement_years)
    portfolio = float(inputs.portfolio_value)

    final_worth = med.final_value
    total_withdrawn = med.total_withdrawn
    growth_pct = (final_worth + total_withdrawn - portfolio) / portfolio * 100 if portfolio > 0 else 0.0

    return {
        "final_worth": _finite_or_zero(final_worth),
        "total_withdrawn": _finite_or_zero(total_withdrawn),
        "annual_withdrawal": _finite_or_zero(total_withdrawn / years),
        "portfolio_growth_pct": _finite_or_zero(growth_pct),
        "inflation_impact": inflation_impact(inputs),
        "years_sustained": med.years_lasted or years,
        "average_failure_years": average_failure_years(results.trials),
        "needed_expense_reduction": needed_expense_reduction(inputs),
        "depletion_probs": depletion_probabilities(results),
    }


# ---------- analysis text ----------

def success_card_class(success_rate: float) -> str:
    if success_rate >= 90:
        return "success"
    if success_rate >= 75:
        return "warning"
    return "danger"


def analysis_message(success_rate: float, stats: Optional[Dict[str, Any]] = None) -> Dict[str, str]:
    stats = stats or {}
    rate = _finite_or_zero(success_rate)
    if rate >= 95:
        tier = "excellent"
        text = (f"Excellent! Your portfolio succeeded in {rate:.1f}% of simulations. "
                "Your plan is very likely to last through retirement.")
    elif rate >= 80:
        tier = "good"
        text = (f"Good. Your portfolio succeeded in {rate:.1f}% of simulations. "
                "Consider small adjustments to add a safety margin.")
    elif rate >= 60:
        tier = "moderate"
        text = (f"Moderate risk. Your portfolio succeeded in only {rate:.1f}% of simulations. "
                "Consider reducing expenses or adding income sources.")
    else:
        cut = int(stats.get("needed_expense_reduction") or 0)
        failed_at = int(stats.get("average_failure_years") or 0)
        text = f"High risk. Your portfolio succeeded in only {rate:.1f}% of simulations."
        if failed_at:
            text += f" Failed simulations ran out of money after about {failed_at} years."
        if cut:
            text += f" Reducing expenses by about {cut}% would bring you to a 3.5% withdrawal rate."
        tier = "high-risk"
    return {"tier": tier, "message": text, "card_class": success_card_class(rate)}
