# planner/retirement/recommendations.py
from __future__ import annotations
import math
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, Sequence

from planner.retirement.aggregate import AggregateResults, needed_expense_reduction
from planner.retirement.events import CashflowEvent, average_annual_amount
from planner.retirement.inputs import SimulationInputs

MAX_RECOMMENDATIONS = 8
PRIORITY_RANK = {"critical": 4, "high": 3, "medium": 2, "low": 1}


@dataclass(frozen=True)
class Recommendation:
    title: str
    description: str
    action: str
    priority: str
    category: str
    impact: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------- small utilities ----------

def _num(x) -> float:
    """Non-finite numbers read as 0 so they never leak into text."""
    try:
        x = float(x)
    except (TypeError, ValueError):
        return 0.0
    return x if math.isfinite(x) else 0.0


def _money(x) -> str:
    return f"${_num(x):,.0f}"


def _pct(x, digits: int = 1) -> str:
    return f"{_num(x):.{digits}f}%"


def _finalize(items: List[Recommendation]) -> List[Recommendation]:
    # sorted() is stable, ties keep rule order
    ranked = sorted(items, key=lambda r: PRIORITY_RANK.get(r.priority, 0), reverse=True)
    return ranked[:MAX_RECOMMENDATIONS]


# ---------- bootstrap (no results yet) ----------

def _bootstrap(inputs: SimulationInputs, income_events: Sequence[CashflowEvent]) -> List[Recommendation]:
    out = [Recommendation(
        title="Run your Monte Carlo simulation",
        description="Run the simulation to see how your portfolio holds up across 1,000+ market scenarios.",
        action="Click 'Run Simulation' to get personalized recommendations.",
        priority="high",
        category="getting-started",
        impact="Shows the probability your savings last through retirement.",
    )]

    if inputs.withdrawal_rate > 0.045:
        out.append(Recommendation(
            title="High withdrawal rate",
            description=f"A {_pct(inputs.withdrawal_rate * 100)} withdrawal rate is above the commonly cited 4% guideline.",
            action="Consider a withdrawal rate between 3.5% and 4%.",
            priority="high",
            category="withdrawal-rate",
            impact="Lower withdrawal rates materially improve portfolio longevity.",
        ))

    if not income_events:
        out.append(Recommendation(
            title="Add income sources",
            description="No income events are defined. Pensions, Social Security or part-time work reduce portfolio withdrawals.",
            action="Add expected income streams with their start and end years.",
            priority="medium",
            category="income",
            impact="Every dollar of income is a dollar you do not withdraw.",
        ))
    return out


# ---------- result rules ----------

def _success_rate_rule(rate: float, inputs: SimulationInputs) -> Optional[Recommendation]:
    if rate < 60:
        cut = needed_expense_reduction(inputs)
        return Recommendation(
            title="Critical: low success rate",
            description=f"Your plan succeeded in only {_pct(rate)} of simulations.",
            action=f"Reduce annual expenses by about {cut}% to reach a 3.5% withdrawal rate.",
            priority="critical",
            category="success-rate",
            impact="Large spending cuts have the biggest effect on plan survival.",
        )
    if rate < 75:
        return Recommendation(
            title="Improve your success rate",
            description=f"A {_pct(rate)} success rate leaves meaningful risk of running out of money.",
            action="Trim expenses, add income sources or work a few more years.",
            priority="high",
            category="success-rate",
            impact="Moving above 85% success gives a comfortable margin.",
        )
    if rate < 85:
        return Recommendation(
            title="Add a safety margin",
            description=f"A {_pct(rate)} success rate is reasonable but sensitive to poor markets.",
            action="Small expense reductions or extra income would push you above 85%.",
            priority="medium",
            category="success-rate",
            impact="Protects against a bad sequence of early returns.",
        )
    if rate >= 95:
        return Recommendation(
            title="Your plan has headroom",
            description=f"Your plan succeeded in {_pct(rate)} of simulations.",
            action="You may be able to spend a bit more or retire earlier.",
            priority="low",
            category="success-rate",
            impact="Balances security against enjoying your savings.",
        )
    return None


def _withdrawal_rate_rule(inputs: SimulationInputs) -> Optional[Recommendation]:
    wr = inputs.withdrawal_rate * 100
    if wr > 5:
        target = inputs.portfolio_value * 0.04
        return Recommendation(
            title="Withdrawal rate is too high",
            description=f"A {_pct(wr)} withdrawal rate is well above the 4% rule.",
            action=f"Target the 4% rule: about {_money(target)} per year from this portfolio.",
            priority="high",
            category="withdrawal-rate",
            impact="High withdrawal rates are the most common cause of plan failure.",
        )
    if wr > 4:
        return Recommendation(
            title="Withdrawal rate above 4%",
            description=f"A {_pct(wr)} withdrawal rate is slightly aggressive.",
            action="Aim for a withdrawal rate between 3.5% and 4%.",
            priority="medium",
            category="withdrawal-rate",
            impact="A small reduction noticeably improves long-horizon outcomes.",
        )
    if wr < 3:
        return Recommendation(
            title="Conservative withdrawal rate",
            description=f"A {_pct(wr)} withdrawal rate is very conservative.",
            action="You may have room to increase spending.",
            priority="low",
            category="withdrawal-rate",
            impact="Spending more early can improve quality of life in retirement.",
        )
    return None


def _portfolio_rule(inputs: SimulationInputs) -> Optional[Recommendation]:
    if inputs.withdrawal_rate <= 0:
        return None
    target = inputs.annual_expenses / inputs.withdrawal_rate
    if inputs.portfolio_value >= target:
        return None
    shortfall = target - inputs.portfolio_value
    multiple = 1 / inputs.withdrawal_rate
    return Recommendation(
        title="Portfolio below target",
        description=(f"At a {_pct(inputs.withdrawal_rate * 100)} withdrawal rate you need about "
                     f"{multiple:.0f}x annual expenses, or {_money(target)}."),
        action=f"Close the {_money(shortfall)} gap by saving more, working longer or lowering expenses.",
        priority="high" if shortfall > 0.25 * target else "medium",
        category="portfolio",
        impact="Reaching the target multiple supports your spending indefinitely.",
    )


def _income_rule(rate: float, inputs: SimulationInputs, income_events: Sequence[CashflowEvent]) -> Optional[Recommendation]:
    if inputs.annual_expenses <= 0:
        return None
    avg_income = average_annual_amount(income_events, inputs.retirement_years)
    coverage = avg_income / inputs.annual_expenses
    if coverage < 0.30 and rate < 75:
        extra = max(0.0, 0.40 * inputs.annual_expenses - avg_income)
        return Recommendation(
            title="Increase income coverage",
            description=f"Income events cover {_pct(coverage * 100, 0)} of your annual expenses.",
            action=f"Aim for 40-50% coverage: about {_money(extra)} more income per year.",
            priority="high",
            category="income",
            impact="Steady income reduces sequence-of-returns risk.",
        )
    if coverage >= 0.50:
        return Recommendation(
            title="Strong income diversification",
            description=f"Income events cover {_pct(coverage * 100, 0)} of your annual expenses.",
            action="Keep these income streams reliable; consider inflation protection where possible.",
            priority="low",
            category="income",
            impact="Reliable income makes your plan far less market-dependent.",
        )
    return None


def _assumptions_rule(inputs: SimulationInputs) -> Optional[Recommendation]:
    ret = inputs.market_return * 100
    infl = inputs.inflation_rate * 100
    if ret > 10:
        return Recommendation(
            title="Optimistic return assumption",
            description=f"A {_pct(ret)} average return is above long-run market history.",
            action="Test your plan with 6-7% returns.",
            priority="medium",
            category="assumptions",
            impact="Overstated returns make a plan look safer than it is.",
        )
    if ret - infl < 3:
        return Recommendation(
            title="Low real return",
            description=f"Your real return (return minus inflation) is {_pct(ret - infl)}.",
            action="Review your asset allocation if this reflects your actual portfolio.",
            priority="low",
            category="assumptions",
            impact="Real returns drive long-term purchasing power.",
        )
    if infl < 2:
        return Recommendation(
            title="Low inflation assumption",
            description=f"A {_pct(infl)} inflation rate is below the long-run average.",
            action="Consider testing with 2.5-3% inflation.",
            priority="low",
            category="assumptions",
            impact="Inflation compounds expenses over long horizons.",
        )
    return None


def _risk_rule(results: AggregateResults, inputs: SimulationInputs) -> Optional[Recommendation]:
    if results.percentile10 is None:
        return None
    p10 = _num(results.percentile10)
    if p10 <= 0:
        return Recommendation(
            title="Build a cash buffer",
            description="In the worst 10% of simulations your portfolio is fully depleted.",
            action=f"Hold about two years of expenses ({_money(2 * inputs.annual_expenses)}) in cash.",
            priority="high",
            category="risk",
            impact="A buffer avoids selling investments in down markets.",
        )
    if p10 < 0.25 * inputs.portfolio_value:
        return Recommendation(
            title="Downside risk",
            description=f"In the worst 10% of simulations you end with {_money(p10)} or less.",
            action="Consider a more flexible spending plan for poor markets.",
            priority="medium",
            category="risk",
            impact="Spending flexibility cushions bad return sequences.",
        )
    return None


def _horizon_rule(rate: float, inputs: SimulationInputs) -> Optional[Recommendation]:
    years = inputs.retirement_years
    if years > 35:
        return Recommendation(
            title="Long retirement horizon",
            description=f"A {years}-year retirement needs to survive many market cycles.",
            action="Consider a 3.5% withdrawal rate for horizons beyond 35 years.",
            priority="medium",
            category="horizon",
            impact="Longer horizons magnify the effect of withdrawal rates.",
        )
    if years < 20 and rate >= 90:
        return Recommendation(
            title="Short horizon headroom",
            description=f"With a {years}-year horizon your plan looks well funded.",
            action="You may be able to increase spending or leave a larger legacy.",
            priority="low",
            category="horizon",
            impact="Short horizons tolerate higher withdrawal rates.",
        )
    return None


def build_recommendations(
    results: Optional[AggregateResults],
    inputs: SimulationInputs,
    income_events: Sequence[CashflowEvent] = (),
) -> List[Recommendation]:
    """
    Pure: same inputs always give the same list.
    No results -> bootstrap list. Otherwise each rule contributes at most one item;
    the list is stable-sorted by priority and capped at MAX_RECOMMENDATIONS.
    """
    income_events = list(income_events or [])
    if results is None:
        return _finalize(_bootstrap(inputs, income_events))

    rate = _num(results.success_rate)
    candidates = [
        _success_rate_rule(rate, inputs),
        _withdrawal_rate_rule(inputs),
        _portfolio_rule(inputs),
        _income_rule(rate, inputs, income_events),
        _assumptions_rule(inputs),
        _risk_rule(results, inputs),
        _horizon_rule(rate, inputs),
    ]
    return _finalize([r for r in candidates if r is not None])
