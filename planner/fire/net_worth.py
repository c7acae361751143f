# planner/fire/net_worth.py
from __future__ import annotations
import math
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from planner.retirement.inputs import _to_float, _to_int, canonical_keys

ALLOWED_YEARS = (5, 10, 20, 30)

NET_WORTH_DEFAULTS: Dict[str, Any] = {
    "current_net_worth": 0.0,
    "annual_income": 75_000.0,
    "annual_expenses": 50_000.0,
    "annual_savings": 25_000.0,
    "investment_return": 7.0,   # percent
    "income_growth": 3.0,       # percent
    "inflation_rate": 2.5,      # percent
    "years": 10,
}

_NW_LEGACY_KEYS = {
    "currentNetWorth": "current_net_worth",
    "annualIncome": "annual_income",
    "annualSavings": "annual_savings",
    "investmentReturn": "investment_return",
    "incomeGrowth": "income_growth",
}


@dataclass(frozen=True)
class NetWorthInputs:
    current_net_worth: float = 0.0
    annual_income: float = 75_000.0
    annual_expenses: float = 50_000.0
    annual_savings: float = 25_000.0
    investment_return: float = 0.07
    income_growth: float = 0.03
    inflation_rate: float = 0.025
    years: int = 10

    @classmethod
    def from_payload(cls, raw: Optional[Dict[str, Any]]) -> "NetWorthInputs":
        d = {_NW_LEGACY_KEYS.get(k, k): v for k, v in canonical_keys(raw).items()}
        years = _to_int(d.get("years"), NET_WORTH_DEFAULTS["years"])
        if years not in ALLOWED_YEARS:
            years = NET_WORTH_DEFAULTS["years"]

        def pct(key):
            return _to_float(d.get(key), NET_WORTH_DEFAULTS[key]) / 100.0

        return cls(
            current_net_worth=_to_float(d.get("current_net_worth"), NET_WORTH_DEFAULTS["current_net_worth"]),
            annual_income=_to_float(d.get("annual_income"), NET_WORTH_DEFAULTS["annual_income"]),
            annual_expenses=_to_float(d.get("annual_expenses"), NET_WORTH_DEFAULTS["annual_expenses"]),
            annual_savings=_to_float(d.get("annual_savings"), NET_WORTH_DEFAULTS["annual_savings"]),
            investment_return=pct("investment_return"),
            income_growth=pct("income_growth"),
            inflation_rate=pct("inflation_rate"),
            years=years,
        )


def project_net_worth(v: NetWorthInputs, years: Optional[int] = None) -> List[Dict[str, float]]:
    """
    Year-by-year projection. Savings grow with income; existing net worth earns the
    investment return only while positive. net_worth is deflated to today's money.
    """
    years = v.years if years is None else int(years)
    net_worth = v.current_net_worth
    income = v.annual_income
    out = [{
        "year": 0,
        "net_worth": net_worth,
        "nominal_net_worth": net_worth,
        "annual_savings": v.annual_savings,
        "annual_income": income,
    }]
    for year in range(1, years + 1):
        income *= 1 + v.income_growth
        savings = v.annual_savings * (1 + v.income_growth) ** year
        if net_worth > 0:
            net_worth *= 1 + v.investment_return
        net_worth += savings
        out.append({
            "year": year,
            "net_worth": net_worth / (1 + v.inflation_rate) ** year,
            "nominal_net_worth": net_worth,
            "annual_savings": savings,
            "annual_income": income,
        })
    return out


def doubling_time(v: NetWorthInputs) -> float:
    """Rule of 72 with contributions folded into the rate; inf when it cannot double."""
    if v.current_net_worth <= 0 or v.annual_savings <= 0:
        return math.inf
    effective = v.investment_return + v.annual_savings / v.current_net_worth
    return 0.72 / effective


def _money(x: float) -> str:
    return f"-${abs(x):,.0f}" if x < 0 else f"${x:,.0f}"


def analysis_message(v: NetWorthInputs, projection: List[Dict[str, float]]) -> str:
    final = projection[-1]
    years = final["year"]
    nominal_growth = final["nominal_net_worth"] - v.current_net_worth

    growth_rate = 0.0
    if v.current_net_worth > 0 and final["nominal_net_worth"] > 0 and years > 0:
        growth_rate = (final["nominal_net_worth"] / v.current_net_worth) ** (1 / years) - 1

    if v.annual_savings < 0:
        msg = f"WARNING: You're spending {_money(abs(v.annual_savings))} more than you earn annually. "
        if final["nominal_net_worth"] < v.current_net_worth:
            msg += (f"Your net worth will decline from {_money(v.current_net_worth)} to "
                    f"{_money(final['nominal_net_worth'])} over {years} years. "
                    "You need to either increase income or reduce expenses to stop wealth erosion.")
        else:
            msg += ("Despite negative cash flow, investment returns are keeping your net worth growing slowly. "
                    "However, this is not sustainable long-term.")
        return msg

    msg = f"In {years} years, your net worth is projected to "
    if nominal_growth >= 0:
        msg += (f"grow from {_money(v.current_net_worth)} to {_money(final['nominal_net_worth'])} "
                f"({_money(final['net_worth'])} inflation-adjusted). ")
        if growth_rate > 0:
            msg += f"This represents a {growth_rate * 100:.1f}% annual growth rate. "
    else:
        msg += f"decline from {_money(v.current_net_worth)} to {_money(final['nominal_net_worth'])}. "

    if v.annual_savings < v.annual_income * 0.1:
        msg += "Consider increasing your annual savings to accelerate wealth building."
    elif v.annual_savings > v.annual_income * 0.5:
        msg += "Excellent savings amount! You're on track for rapid wealth accumulation."
    else:
        msg += "Good savings amount. Your wealth is growing steadily over time."
    return msg


def calculate_net_worth(raw: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    v = NetWorthInputs.from_payload(raw)
    projection = project_net_worth(v)
    dt = doubling_time(v)
    return {
        "inputs": asdict(v),
        "projection": projection,
        "net_worth_10y": project_net_worth(v, 10)[10]["nominal_net_worth"],
        "annual_savings": v.annual_savings,
        "monthly_savings": v.annual_savings / 12,
        "doubling_time": round(dt, 1) if math.isfinite(dt) else None,
        "message": analysis_message(v, projection),
    }
