# planner/retirement/monte_carlo.py
from __future__ import annotations
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from planner.retirement.aggregate import AggregateResults, aggregate_trials
from planner.retirement.events import CashflowEvent, expand_events_to_per_year
from planner.retirement.inputs import SimulationInputs

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100


# ---------- errors ----------

class SimulationError(Exception):
    """Base class for a run that did not complete."""


class SimulationCancelled(SimulationError):
    """Run abandoned between batches; partial trials were discarded."""


class SimulationRunError(SimulationError):
    """A trial raised unexpectedly; the whole run is failed (not a low success rate)."""


# ---------- market model ----------

@dataclass(frozen=True)
class MarketParams:
    """Capped normal annual-return process. Passed explicitly into every trial."""
    mean_return: float = 0.07
    standard_deviation: float = 0.15
    min_return: float = -0.40
    max_return: float = 0.40

    @classmethod
    def for_inputs(cls, inputs: SimulationInputs, **overrides) -> "MarketParams":
        return cls(mean_return=float(inputs.market_return), **overrides)


def _uniform_open(rng, n: int) -> np.ndarray:
    """n uniforms on (0, 1); exact zeros are redrawn so ln(u) stays finite."""
    u = np.asarray(rng.random(n), dtype=float)
    zeros = u <= 0.0
    while zeros.any():
        u[zeros] = rng.random(int(zeros.sum()))
        zeros = u <= 0.0
    return u


def draw_annual_returns(rng, params: MarketParams, n: int) -> np.ndarray:
    """
    n independent capped-normal returns via Box-Muller:
      z = sqrt(-2 ln u1) * cos(2 pi u2);  r = clamp(z * sigma + mu, [min, max])
    Each sample consumes its own (u1, u2) pair.
    """
    if n <= 0:
        return np.zeros(0, dtype=float)
    u1 = _uniform_open(rng, n)
    u2 = np.asarray(rng.random(n), dtype=float)
    z = np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)
    sample = z * float(params.standard_deviation) + float(params.mean_return)
    return np.clip(sample, params.min_return, params.max_return)


def draw_annual_return(rng, params: MarketParams) -> float:
    return float(draw_annual_returns(rng, params, 1)[0])


# ---------- single trial ----------

@dataclass(frozen=True)
class TrialResult:
    success: bool
    final_value: float
    path: Tuple[float, ...]
    total_withdrawn: float
    total_income: float
    years_lasted: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "final_value": self.final_value,
            "path": list(self.path),
            "total_withdrawn": self.total_withdrawn,
            "total_income": self.total_income,
            "years_lasted": self.years_lasted,
        }


def simulate_trial(
    inputs: SimulationInputs,
    income_events: Sequence[CashflowEvent] = (),
    expense_events: Sequence[CashflowEvent] = (),
    *,
    params: Optional[MarketParams] = None,
    rng=None,
    returns: Optional[Sequence[float]] = None,
    income_schedule: Optional[Sequence[float]] = None,
    expense_schedule: Optional[Sequence[float]] = None,
) -> TrialResult:
    """
    Walk one retirement horizon year by year:
      grow -> inflate base expenses -> add events -> withdraw the net need -> record.

    returns: optional fixed sequence of annual returns (bypasses the random generator).
    income_schedule / expense_schedule: per-year totals from expand_events_to_per_year;
    the driver precomputes them once per run, direct callers may pass events instead.

    Growth is applied unconditionally. The running balance is clamped to 0 once depleted,
    so a depleted trial stays at 0 (0 * (1 + r) == 0).
    """
    years = int(inputs.retirement_years)
    inflation = float(inputs.inflation_rate)

    if returns is None:
        if rng is None:
            rng = np.random.default_rng()
        returns = draw_annual_returns(rng, params or MarketParams.for_inputs(inputs), years)
    elif len(returns) < years:
        raise ValueError(f"need {years} annual returns, got {len(returns)}")

    if income_schedule is None:
        income_schedule = expand_events_to_per_year(
            retirement_years=years, inflation_rate=inflation, events=income_events
        )
    if expense_schedule is None:
        expense_schedule = expand_events_to_per_year(
            retirement_years=years, inflation_rate=inflation, events=expense_events
        )

    portfolio = float(inputs.portfolio_value)
    base_expenses = float(inputs.annual_expenses)
    total_withdrawn = 0.0
    total_income = 0.0
    path: List[float] = [portfolio]
    depleted_at: Optional[int] = None

    for year in range(1, years + 1):
        portfolio *= 1.0 + float(returns[year - 1])
        base_expenses *= 1.0 + inflation

        income = float(income_schedule[year])
        total_expenses = base_expenses + float(expense_schedule[year])
        net_withdrawal = max(0.0, total_expenses - income)

        portfolio -= net_withdrawal
        total_withdrawn += net_withdrawal
        total_income += income

        path.append(max(0.0, portfolio))
        if portfolio <= 0:
            portfolio = 0.0
            if depleted_at is None:
                depleted_at = year

    success = portfolio > 0
    return TrialResult(
        success=success,
        final_value=max(0.0, portfolio),
        path=tuple(path),
        total_withdrawn=total_withdrawn,
        total_income=total_income,
        years_lasted=years if success else int(depleted_at if depleted_at is not None else years),
    )


# ---------- driver ----------

class CancellationToken:
    """Thread-safe flag checked by the driver between batches."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class MonteCarloRun:
    """
    One Monte Carlo run. Trials are processed in batches; between batches the run
    checks the cancellation token, reports progress and hands control to the caller.

      run = MonteCarloRun(inputs, income_events, seed=42)
      for done, total in run.batches():   # caller-side scheduling
          ...
      results = run.results

    Each trial draws from its own child stream of one SeedSequence, so the outcome
    for a given seed does not depend on batch_size.
    """
    inputs: SimulationInputs
    income_events: Sequence[CashflowEvent] = ()
    expense_events: Sequence[CashflowEvent] = ()
    params: Optional[MarketParams] = None
    seed: Optional[int] = None
    batch_size: int = DEFAULT_BATCH_SIZE
    cancel_token: Optional[CancellationToken] = None
    on_progress: Optional[Callable[[int, int], None]] = None
    yield_control: Optional[Callable[[], None]] = None
    results: Optional[AggregateResults] = field(default=None, init=False)

    def _trial_streams(self, n: int) -> List[np.random.SeedSequence]:
        return np.random.SeedSequence(self.seed).spawn(n)

    def batches(self) -> Iterator[Tuple[int, int]]:
        inputs = self.inputs
        total = int(inputs.num_simulations)
        size = max(1, int(self.batch_size))
        params = self.params or MarketParams.for_inputs(inputs)

        income_schedule = expand_events_to_per_year(
            retirement_years=inputs.retirement_years,
            inflation_rate=inputs.inflation_rate,
            events=self.income_events,
        )
        expense_schedule = expand_events_to_per_year(
            retirement_years=inputs.retirement_years,
            inflation_rate=inputs.inflation_rate,
            events=self.expense_events,
        )
        streams = self._trial_streams(total)
        self.results = None
        trials: List[TrialResult] = []

        for start in range(0, total, size):
            if self.cancel_token is not None and self.cancel_token.cancelled:
                logger.info("monte carlo cancelled after %d/%d trials", len(trials), total)
                raise SimulationCancelled(f"cancelled after {len(trials)} of {total} trials")

            for i in range(start, min(start + size, total)):
                try:
                    trials.append(simulate_trial(
                        inputs,
                        params=params,
                        rng=np.random.default_rng(streams[i]),
                        income_schedule=income_schedule,
                        expense_schedule=expense_schedule,
                    ))
                except Exception as e:
                    logger.exception("trial %d failed", i)
                    raise SimulationRunError(f"trial {i} failed: {e}") from e

            done = len(trials)
            logger.debug("monte carlo batch done: %d/%d", done, total)
            if self.on_progress is not None:
                self.on_progress(done, total)
            if self.yield_control is not None:
                self.yield_control()
            yield done, total

        # a cancel issued during the final batch still discards the run
        if self.cancel_token is not None and self.cancel_token.cancelled:
            raise SimulationCancelled(f"cancelled after {len(trials)} of {total} trials")

        self.results = aggregate_trials(trials)

    def run(self) -> AggregateResults:
        for _ in self.batches():
            pass
        return self.results


def run_monte_carlo(
    inputs: SimulationInputs,
    income_events: Sequence[CashflowEvent] = (),
    expense_events: Sequence[CashflowEvent] = (),
    **kwargs,
) -> AggregateResults:
    """Blocking entry point: run every batch and return the aggregate."""
    return MonteCarloRun(inputs, income_events, expense_events, **kwargs).run()
