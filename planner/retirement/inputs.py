# planner/retirement/inputs.py
from __future__ import annotations
import math
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

# Form / JSON defaults. Rates are in UI percent units here.
DEFAULTS: Dict[str, Any] = {
    "portfolio_value": 1_000_000.0,
    "annual_expenses": 60_000.0,
    "retirement_years": 30,
    "withdrawal_rate": 4.0,
    "market_return": 7.0,
    "inflation_rate": 2.5,
    "num_simulations": 1000,
}

PERCENT_KEYS = {"withdrawal_rate", "market_return", "inflation_rate"}
MAX_SIMULATIONS = 10_000

# Older camelCase payloads (saved scenarios, the JS page) -> canonical keys
_LEGACY_KEYS = {
    "portfolioValue": "portfolio_value",
    "annualExpenses": "annual_expenses",
    "retirementYears": "retirement_years",
    "withdrawalRate": "withdrawal_rate",
    "marketReturn": "market_return",
    "inflationRate": "inflation_rate",
    "numSimulations": "num_simulations",
    "incomeEvents": "income_events",
    "expenseEvents": "expense_events",
}


def _clean_number(x):
    """Strip thousands separators and a trailing '%'; return float or None."""
    if isinstance(x, bool):
        return None
    if isinstance(x, (int, float)):
        return float(x)
    try:
        s = str(x).replace(",", "").strip()
        if s.endswith("%"):
            s = s[:-1]
        return float(s)
    except Exception:
        return None


def _to_float(v, d=0.0):
    n = _clean_number(v)
    if n is None or not math.isfinite(n):
        return d
    return n


def _to_int(v, d=0):
    n = _clean_number(v)
    if n is None or not math.isfinite(n):
        return d
    return int(n)


def canonical_keys(raw: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Rename legacy camelCase keys without touching values. Idempotent. Non-dicts read as {}."""
    out: Dict[str, Any] = {}
    if not isinstance(raw, dict):
        return out
    for k, v in raw.items():
        key = _LEGACY_KEYS.get(k, k)
        # canonical spelling wins if both are present
        if key in out and k != key:
            continue
        out[key] = v
    return out


@dataclass(frozen=True)
class SimulationInputs:
    """Immutable per run. Rates are decimals (0.04 == 4%)."""
    portfolio_value: float = 1_000_000.0
    annual_expenses: float = 60_000.0
    retirement_years: int = 30
    withdrawal_rate: float = 0.04
    market_return: float = 0.07
    inflation_rate: float = 0.025
    num_simulations: int = 1000

    def to_config(self) -> Dict[str, Any]:
        """Scenario-config shape: rates back in percent units."""
        cfg = asdict(self)
        for k in PERCENT_KEYS:
            cfg[k] = round(cfg[k] * 100.0, 10)
        return cfg


def parse_simulation_inputs(raw: Optional[Dict[str, Any]], max_simulations: int = MAX_SIMULATIONS) -> SimulationInputs:
    """
    Build SimulationInputs from a form/JSON payload.
      - absent, non-numeric or non-finite values fall back to DEFAULTS
      - out-of-domain values (portfolio <= 0, negative expenses, years/sims < 1) also fall back
      - rates are read as percentages
    Never raises.
    """
    d = canonical_keys(raw)

    portfolio = _to_float(d.get("portfolio_value"), DEFAULTS["portfolio_value"])
    if portfolio <= 0:
        portfolio = DEFAULTS["portfolio_value"]

    expenses = _to_float(d.get("annual_expenses"), DEFAULTS["annual_expenses"])
    if expenses < 0:
        expenses = DEFAULTS["annual_expenses"]

    years = _to_int(d.get("retirement_years"), DEFAULTS["retirement_years"])
    if years < 1:
        years = DEFAULTS["retirement_years"]

    sims = _to_int(d.get("num_simulations"), DEFAULTS["num_simulations"])
    if sims < 1:
        sims = DEFAULTS["num_simulations"]
    sims = min(sims, int(max_simulations))

    rates = {}
    for k in PERCENT_KEYS:
        rates[k] = _to_float(d.get(k), DEFAULTS[k]) / 100.0
    # a zero/negative withdrawal rate has no target multiple
    if rates["withdrawal_rate"] <= 0:
        rates["withdrawal_rate"] = DEFAULTS["withdrawal_rate"] / 100.0

    return SimulationInputs(
        portfolio_value=portfolio,
        annual_expenses=expenses,
        retirement_years=years,
        withdrawal_rate=rates["withdrawal_rate"],
        market_return=rates["market_return"],
        inflation_rate=rates["inflation_rate"],
        num_simulations=sims,
    )
