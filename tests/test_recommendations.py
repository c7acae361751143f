"""Tests for the rule-based recommendation engine."""

import math

import pytest

from planner.retirement.aggregate import AggregateResults
from planner.retirement.events import CashflowEvent
from planner.retirement.inputs import SimulationInputs
from planner.retirement.recommendations import (
    MAX_RECOMMENDATIONS,
    Recommendation,
    _finalize,
    build_recommendations,
)


def _results(success_rate, p10=500_000.0):
    return AggregateResults.from_summary({"success_rate": success_rate, "percentile10": p10})


def _categories(recs):
    return [r.category for r in recs]


def _by_category(recs, category):
    matches = [r for r in recs if r.category == category]
    assert len(matches) == 1
    return matches[0]


# ---------- bootstrap ----------

def test_bootstrap_defaults():
    recs = build_recommendations(None, SimulationInputs())
    assert recs[0].title == "Run your Monte Carlo simulation"
    assert _categories(recs) == ["getting-started", "income"]
    assert [r.priority for r in recs] == ["high", "medium"]


def test_bootstrap_high_withdrawal_and_income():
    income = [CashflowEvent("pension", 20_000, "recurring", 1, 30)]
    recs = build_recommendations(None, SimulationInputs(withdrawal_rate=0.05), income)
    assert _categories(recs) == ["getting-started", "withdrawal-rate"]


def test_bootstrap_threshold_is_strict():
    recs = build_recommendations(None, SimulationInputs(withdrawal_rate=0.045))
    assert "withdrawal-rate" not in _categories(recs)


# ---------- result rules ----------

def test_struggling_default_plan():
    recs = build_recommendations(_results(50.0, p10=0.0), SimulationInputs())
    assert _categories(recs) == ["success-rate", "portfolio", "income", "risk"]
    assert recs[0].priority == "critical"
    assert "42%" in recs[0].action
    assert _by_category(recs, "portfolio").priority == "high"
    assert "$120,000" in _by_category(recs, "risk").action


@pytest.mark.parametrize("rate,priority", [(65, "high"), (80, "medium"), (96, "low")])
def test_success_rate_tiers(rate, priority):
    recs = build_recommendations(_results(rate), SimulationInputs(annual_expenses=35_000))
    assert _by_category(recs, "success-rate").priority == priority


def test_success_rate_between_85_and_95_is_silent():
    recs = build_recommendations(_results(90), SimulationInputs(annual_expenses=35_000))
    assert "success-rate" not in _categories(recs)


def test_withdrawal_rate_tiers():
    high = build_recommendations(_results(90), SimulationInputs(withdrawal_rate=0.06, annual_expenses=30_000))
    rec = _by_category(high, "withdrawal-rate")
    assert rec.priority == "high"
    assert "$40,000" in rec.action

    medium = build_recommendations(_results(90), SimulationInputs(withdrawal_rate=0.045, annual_expenses=30_000))
    assert _by_category(medium, "withdrawal-rate").priority == "medium"

    low = build_recommendations(_results(90), SimulationInputs(withdrawal_rate=0.025, annual_expenses=20_000))
    assert _by_category(low, "withdrawal-rate").priority == "low"


def test_portfolio_shortfall_medium_when_close():
    # target = 45k / 0.04 = 1.125M, shortfall 125k < 25% of target
    recs = build_recommendations(_results(90), SimulationInputs(annual_expenses=45_000))
    assert _by_category(recs, "portfolio").priority == "medium"


def test_portfolio_at_target_is_silent():
    recs = build_recommendations(_results(90), SimulationInputs(annual_expenses=40_000))
    assert "portfolio" not in _categories(recs)


def test_strong_income_coverage():
    income = [CashflowEvent("pension", 30_000, "recurring", 1, 30)]
    recs = build_recommendations(_results(90), SimulationInputs(), income)
    assert _by_category(recs, "income").priority == "low"


def test_weak_income_coverage_action_amount():
    income = [CashflowEvent("part-time", 6_000, "recurring", 1, 30)]
    recs = build_recommendations(_results(70), SimulationInputs(), income)
    rec = _by_category(recs, "income")
    assert rec.priority == "high"
    # 0.40 * 60k - 6k
    assert "$18,000" in rec.action


def test_assumption_checks():
    optimistic = build_recommendations(_results(90), SimulationInputs(market_return=0.12, annual_expenses=35_000))
    assert _by_category(optimistic, "assumptions").priority == "medium"

    low_real = build_recommendations(_results(90), SimulationInputs(market_return=0.04, annual_expenses=35_000))
    assert _by_category(low_real, "assumptions").title == "Low real return"

    low_infl = build_recommendations(_results(90), SimulationInputs(inflation_rate=0.015, annual_expenses=35_000))
    assert _by_category(low_infl, "assumptions").title == "Low inflation assumption"


def test_downside_risk_medium():
    recs = build_recommendations(_results(90, p10=100_000.0), SimulationInputs(annual_expenses=35_000))
    assert _by_category(recs, "risk").priority == "medium"


def test_horizon_rules():
    long_run = build_recommendations(_results(90), SimulationInputs(retirement_years=40, annual_expenses=35_000))
    assert _by_category(long_run, "horizon").priority == "medium"

    short_run = build_recommendations(_results(92), SimulationInputs(retirement_years=15, annual_expenses=35_000))
    assert _by_category(short_run, "horizon").priority == "low"


def test_non_finite_numbers_never_reach_text():
    res = AggregateResults.from_summary({"success_rate": 50.0})
    res.percentile10 = math.nan
    recs = build_recommendations(res, SimulationInputs())
    for r in recs:
        assert "nan" not in (r.title + r.description + r.action).lower()
    assert _by_category(recs, "risk").priority == "high"


def test_recommendations_are_pure():
    inputs = SimulationInputs(withdrawal_rate=0.06)
    res = _results(55.0, p10=0.0)
    assert build_recommendations(res, inputs) == build_recommendations(res, inputs)


def test_sorted_by_priority_and_capped():
    recs = build_recommendations(_results(50.0, p10=0.0),
                                 SimulationInputs(withdrawal_rate=0.06, market_return=0.12, retirement_years=40))
    ranks = {"critical": 4, "high": 3, "medium": 2, "low": 1}
    values = [ranks[r.priority] for r in recs]
    assert values == sorted(values, reverse=True)
    assert len(recs) <= MAX_RECOMMENDATIONS


def test_finalize_is_stable_and_caps():
    items = [Recommendation(f"r{i}", "", "", "low" if i % 2 else "high", "x", "") for i in range(12)]
    out = _finalize(items)
    assert len(out) == MAX_RECOMMENDATIONS
    assert [r.title for r in out[:6]] == ["r0", "r2", "r4", "r6", "r8", "r10"]
    assert [r.title for r in out[6:]] == ["r1", "r3"]


def test_to_dict():
    rec = build_recommendations(None, SimulationInputs())[0]
    d = rec.to_dict()
    assert set(d) == {"title", "description", "action", "priority", "category", "impact"}


def test_missing_downside_percentile_skips_risk_rule():
    res = AggregateResults.from_summary({"success_rate": 70.0})
    recs = build_recommendations(res, SimulationInputs())
    assert "risk" not in _categories(recs)


@pytest.mark.parametrize("p10,priority", [(0.0, "high"), (100_000.0, "medium")])
def test_reported_downside_percentile_drives_risk_rule(p10, priority):
    recs = build_recommendations(_results(70.0, p10=p10), SimulationInputs())
    assert _by_category(recs, "risk").priority == priority
