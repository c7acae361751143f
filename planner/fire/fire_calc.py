# planner/fire/fire_calc.py
from __future__ import annotations
import math
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from planner.retirement.inputs import _to_float, _to_int, canonical_keys

MAX_YEARS_TO_FIRE = 50

FIRE_DEFAULTS: Dict[str, Any] = {
    "current_age": 30,
    "target_age": 50,
    "current_savings": 0.0,
    "monthly_contribution": 0.0,
    "annual_expenses": 40_000.0,
    "expected_return": 7.0,     # percent
    "withdrawal_rate": 4.0,     # percent
}

_FIRE_LEGACY_KEYS = {
    "currentAge": "current_age",
    "targetAge": "target_age",
    "currentSavings": "current_savings",
    "monthlyContribution": "monthly_contribution",
    "annualExpenses": "annual_expenses",
    "expectedReturn": "expected_return",
    "withdrawalRate": "withdrawal_rate",
}


@dataclass(frozen=True)
class FireInputs:
    """Rates are decimals."""
    current_age: int = 30
    target_age: int = 50
    current_savings: float = 0.0
    monthly_contribution: float = 0.0
    annual_expenses: float = 40_000.0
    expected_return: float = 0.07
    withdrawal_rate: float = 0.04

    @classmethod
    def from_payload(cls, raw: Optional[Dict[str, Any]]) -> "FireInputs":
        d = {_FIRE_LEGACY_KEYS.get(k, k): v for k, v in canonical_keys(raw).items()}
        return cls(
            current_age=_to_int(d.get("current_age"), FIRE_DEFAULTS["current_age"]),
            target_age=_to_int(d.get("target_age"), FIRE_DEFAULTS["target_age"]),
            current_savings=_to_float(d.get("current_savings"), FIRE_DEFAULTS["current_savings"]),
            monthly_contribution=_to_float(d.get("monthly_contribution"), FIRE_DEFAULTS["monthly_contribution"]),
            annual_expenses=_to_float(d.get("annual_expenses"), FIRE_DEFAULTS["annual_expenses"]),
            expected_return=_to_float(d.get("expected_return"), FIRE_DEFAULTS["expected_return"]) / 100.0,
            withdrawal_rate=_to_float(d.get("withdrawal_rate"), FIRE_DEFAULTS["withdrawal_rate"]) / 100.0,
        )


def validate_fire_inputs(v: FireInputs) -> List[str]:
    errors: List[str] = []
    if v.current_age >= v.target_age:
        errors.append("Target retirement age must be greater than current age")
    if v.current_age < 18 or v.current_age > 100:
        errors.append("Current age must be between 18 and 100")
    if v.target_age < 25 or v.target_age > 100:
        errors.append("Target retirement age must be between 25 and 100")
    if v.expected_return < 0 or v.expected_return > 0.2:
        errors.append("Expected return must be between 0% and 20%")
    if v.withdrawal_rate < 0.01 or v.withdrawal_rate > 0.1:
        errors.append("Withdrawal rate must be between 1% and 10%")
    return errors


# ---------- formulas ----------

def future_value(principal: float, monthly_contribution: float, annual_rate: float, years: float) -> float:
    """Lump sum compounded yearly plus monthly contributions compounded monthly."""
    fv_principal = principal * (1 + annual_rate) ** years
    r = annual_rate / 12
    n = years * 12
    if r > 0:
        fv_annuity = monthly_contribution * ((1 + r) ** n - 1) / r
    else:
        fv_annuity = monthly_contribution * n
    return fv_principal + fv_annuity


def required_monthly(target: float, current_savings: float, annual_rate: float, years: float) -> float:
    remaining = target - current_savings * (1 + annual_rate) ** years
    if remaining <= 0:
        return 0.0
    r = annual_rate / 12
    n = years * 12
    if r > 0:
        return remaining * r / ((1 + r) ** n - 1)
    return remaining / n


def years_to_fire(current_savings: float, monthly_contribution: float, target: float, annual_rate: float) -> float:
    """Months of saving until target, in years; capped at MAX_YEARS_TO_FIRE."""
    if current_savings >= target:
        return 0.0
    if monthly_contribution <= 0:
        return math.inf
    r = annual_rate / 12
    balance = current_savings
    months = 0
    while balance < target and months < MAX_YEARS_TO_FIRE * 12:
        balance = balance * (1 + r) + monthly_contribution
        months += 1
    return months / 12


def wealth_projection(v: FireInputs, total_years: int) -> List[Dict[str, float]]:
    r = v.expected_return / 12
    wealth = v.current_savings
    out = [{"year": 0, "wealth": wealth}]
    for year in range(1, total_years + 1):
        for _ in range(12):
            wealth = wealth * (1 + r) + v.monthly_contribution
        out.append({"year": year, "wealth": wealth})
    return out


def _money(x: float) -> str:
    return f"${x:,.0f}"


def scenario_message(v: FireInputs, fire_number: float, projected: float, required: float,
                     years_needed: float) -> Dict[str, str]:
    if projected >= fire_number:
        msg = (f"Great news! You're on track to reach FIRE by age {v.target_age}. "
               f"You'll have an extra {_money(projected - fire_number)} beyond your FIRE number, "
               "giving you additional security.")
        level = "success"
    else:
        extra = required - v.monthly_contribution
        if extra > 0:
            msg = (f"You'll be {_money(fire_number - projected)} short of your FIRE goal by age {v.target_age}. "
                   f"Consider increasing your monthly savings by {_money(extra)} "
                   "or adjusting your target retirement age.")
            level = "warning"
        else:
            msg = (f"You're saving more than needed! You could reduce your monthly savings "
                   f"by {_money(abs(extra))} and still reach your goal.")
            level = "success"

    if math.isfinite(years_needed) and years_needed < MAX_YEARS_TO_FIRE:
        msg += f" At your current savings rate, you'll reach FIRE at age {round(v.current_age + years_needed, 1)}."
    return {"message": msg, "level": level}


def calculate_fire(raw: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Returns {"errors": [...]} when the inputs are invalid, otherwise the full result.
    years_to_fire is None when it can never be reached (no contributions).
    """
    v = FireInputs.from_payload(raw)
    errors = validate_fire_inputs(v)
    if errors:
        return {"errors": errors, "inputs": asdict(v)}

    fire_number = v.annual_expenses / v.withdrawal_rate
    years_to_target = v.target_age - v.current_age
    projected = future_value(v.current_savings, v.monthly_contribution, v.expected_return, years_to_target)
    required = required_monthly(fire_number, v.current_savings, v.expected_return, years_to_target)
    years_needed = years_to_fire(v.current_savings, v.monthly_contribution, fire_number, v.expected_return)

    horizon = years_needed if math.isfinite(years_needed) else 0
    total_years = int(math.ceil(max(horizon, years_to_target))) + 5

    return {
        "errors": [],
        "inputs": asdict(v),
        "fire_number": fire_number,
        "years_to_target": years_to_target,
        "projected_savings": projected,
        "required_monthly": required,
        "current_progress": v.current_savings / fire_number * 100 if fire_number > 0 else 0.0,
        "will_reach_fire": projected >= fire_number,
        "years_to_fire": round(years_needed, 1) if math.isfinite(years_needed) else None,
        "wealth_projection": wealth_projection(v, total_years),
        "scenario": scenario_message(v, fire_number, projected, required, years_needed),
    }
