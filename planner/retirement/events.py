# planner/retirement/events.py
from __future__ import annotations
import math
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Literal, Optional, Sequence, Union

from planner.retirement.inputs import _clean_number

EventKind = Literal["one-time", "recurring"]
EVENT_KINDS = ("one-time", "recurring")


@dataclass(frozen=True)
class CashflowEvent:
    """
    An income or expense event on the retirement timeline.

    Years are 1-based retirement years (year 1 is the first year of withdrawals).
    amount is per active year, in today's money; if inflation_adjusted=True it is
    scaled by (1 + inflation) ** (year - 1), i.e. inflated from retirement start,
    not from the event's own start year.

    kind:
      - "one-time":  applies in start_year only (end_year == start_year)
      - "recurring": applies every year from start_year..end_year (inclusive)
    """
    name: str
    amount: float
    kind: EventKind = "one-time"
    start_year: int = 1
    end_year: int = 1
    inflation_adjusted: bool = True

    def is_active(self, year: int) -> bool:
        return self.start_year <= year <= self.end_year

    def amount_in_year(self, year: int, inflation_rate: float) -> float:
        return _inflated(self.amount, year - 1, inflation_rate, self.inflation_adjusted)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _inflated(base: float, years_since_start: int, inflation_rate: float, link: bool) -> float:
    if not link:
        return base
    return base * ((1 + inflation_rate) ** max(0, years_since_start))


def _as_bool(v, default: bool = True) -> bool:
    if v is None:
        return default
    if isinstance(v, str):
        return v.strip().lower() not in ("false", "0", "no", "off", "")
    return bool(v)


def _first(row: Dict[str, Any], *keys):
    for k in keys:
        if k in row and row[k] not in (None, ""):
            return row[k]
    return None


def parse_event(row: Union[dict, CashflowEvent]) -> Optional[CashflowEvent]:
    """Validate one form row. Returns None when the row should be dropped."""
    if isinstance(row, CashflowEvent):
        return row
    if not isinstance(row, dict):
        return None

    name = str(row.get("name") or "").strip()
    amount = _clean_number(row.get("amount"))
    start = _clean_number(_first(row, "start_year", "startYear"))
    if not name or amount is None or start is None:
        return None
    if not math.isfinite(amount) or amount == 0 or not math.isfinite(start) or start < 1:
        return None

    kind = str(_first(row, "kind", "type") or "one-time").strip().lower()
    if kind not in EVENT_KINDS:
        return None

    start_year = int(start)
    end = _clean_number(_first(row, "end_year", "endYear"))
    end_year = int(end) if end and math.isfinite(end) else start_year
    if kind == "one-time":
        end_year = start_year
    if end_year < start_year:
        return None

    return CashflowEvent(
        name=name,
        amount=float(amount),
        kind=kind,
        start_year=start_year,
        end_year=end_year,
        inflation_adjusted=_as_bool(_first(row, "inflation_adjusted", "inflationAdjusted")),
    )


def parse_events(rows: Optional[Sequence[Union[dict, CashflowEvent]]]) -> List[CashflowEvent]:
    """Keep valid rows in their original order; malformed rows are silently dropped."""
    out: List[CashflowEvent] = []
    # a lone row, string or number is not a list of rows
    if not isinstance(rows, (list, tuple)):
        return out
    for row in rows:
        ev = parse_event(row)
        if ev is not None:
            out.append(ev)
    return out


def expand_events_to_per_year(
    *,
    retirement_years: int,
    inflation_rate: float,
    events: Sequence[CashflowEvent],
) -> List[float]:
    """
    Returns a list of length retirement_years + 1 where index y holds the summed
    event cashflow for retirement year y (index 0 is unused and always 0.0).
    Events are the same for every trial, so this is computed once per run.
    """
    per_year = [0.0] * (int(retirement_years) + 1)
    for ev in events or []:
        lo = max(1, ev.start_year)
        hi = min(int(retirement_years), ev.end_year)
        for year in range(lo, hi + 1):
            per_year[year] += ev.amount_in_year(year, inflation_rate)
    return per_year


def average_annual_amount(events: Sequence[CashflowEvent], retirement_years: int, inflation_rate: float = 0.0) -> float:
    """Mean yearly event cashflow across the whole horizon."""
    years = max(1, int(retirement_years))
    per_year = expand_events_to_per_year(
        retirement_years=years, inflation_rate=inflation_rate, events=events
    )
    return sum(per_year) / years
