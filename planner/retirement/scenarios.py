# planner/retirement/scenarios.py
from __future__ import annotations
import copy
import logging
import secrets
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from planner import db
from planner.retirement.inputs import DEFAULTS, canonical_keys
from planner.retirement.retirement_scenario import RetirementScenario

logger = logging.getLogger(__name__)

DEFAULT_SCENARIO_NAME = "Default Scenario"


def new_scenario_id() -> str:
    """scenario_<epoch millis>_<9 hex chars>"""
    return f"scenario_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def default_config() -> Dict[str, Any]:
    cfg = dict(DEFAULTS)
    cfg["income_events"] = []
    cfg["expense_events"] = []
    return cfg


def record_to_json(rec: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(rec)
    for k in ("created_at", "updated_at"):
        if isinstance(out.get(k), datetime):
            out[k] = out[k].isoformat()
    return out


# ---------- stores ----------

class ScenarioStore(ABC):
    """Persistence for scenario records: {id, name, config, results, created_at, updated_at}."""

    @abstractmethod
    def get(self, scenario_id: str) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    def put(self, record: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    def delete(self, scenario_id: str) -> bool: ...

    @abstractmethod
    def list(self) -> List[Dict[str, Any]]: ...


class InMemoryScenarioStore(ScenarioStore):
    def __init__(self):
        self._records: Dict[str, Dict[str, Any]] = {}

    def get(self, scenario_id):
        rec = self._records.get(scenario_id)
        return copy.deepcopy(rec) if rec is not None else None

    def put(self, record):
        self._records[record["id"]] = copy.deepcopy(record)
        return copy.deepcopy(record)

    def delete(self, scenario_id):
        return self._records.pop(scenario_id, None) is not None

    def list(self):
        return [copy.deepcopy(r) for r in self._records.values()]


class SqlScenarioStore(ScenarioStore):
    """Flask-SQLAlchemy backed store; every query is scoped to one owner key."""

    def __init__(self, owner_key: str):
        self.owner_key = owner_key

    def _row(self, scenario_id):
        return RetirementScenario.query.filter_by(id=scenario_id, owner_key=self.owner_key).first()

    def get(self, scenario_id):
        row = self._row(scenario_id)
        return row.to_record() if row else None

    def put(self, record):
        row = self._row(record["id"])
        if row is None:
            row = RetirementScenario(id=record["id"], owner_key=self.owner_key)
            db.session.add(row)
        row.scenario_name = record["name"]
        row.inputs_json = record.get("config") or {}
        row.results_json = record.get("results")
        if record.get("created_at") is not None:
            row.created_at = record["created_at"]
        if record.get("updated_at") is not None:
            row.updated_at = record["updated_at"]
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.exception("failed to save scenario %s", record["id"])
            raise
        return row.to_record()

    def delete(self, scenario_id):
        row = self._row(scenario_id)
        if row is None:
            return False
        try:
            db.session.delete(row)
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.exception("failed to delete scenario %s", scenario_id)
            raise
        return True

    def list(self):
        rows = RetirementScenario.query.filter_by(owner_key=self.owner_key).all()
        return [r.to_record() for r in rows]


# ---------- manager ----------

def _sort_key(rec):
    ts = rec.get("updated_at")
    if isinstance(ts, datetime) and ts.tzinfo is None:
        # SQLite hands back naive datetimes
        ts = ts.replace(tzinfo=timezone.utc)
    return ts or datetime.min.replace(tzinfo=timezone.utc)


class ScenarioManager:
    def __init__(self, store: ScenarioStore):
        self.store = store

    def create(self, name: Optional[str] = None, config: Optional[Dict[str, Any]] = None,
               results: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not name:
            name = f"Scenario {len(self.store.list()) + 1}"
        now = _now()
        record = {
            "id": new_scenario_id(),
            "name": str(name),
            "config": canonical_keys(config) if config is not None else default_config(),
            "results": results,
            "created_at": now,
            "updated_at": now,
        }
        logger.info("created scenario %s (%s)", record["id"], record["name"])
        return self.store.put(record)

    def update(self, scenario_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        record = self.store.get(scenario_id)
        if record is None:
            return None
        for k, v in (updates or {}).items():
            if k in ("id", "created_at"):
                continue
            record[k] = canonical_keys(v) if k == "config" and v is not None else v
        record["updated_at"] = _now()
        return self.store.put(record)

    def delete(self, scenario_id: str) -> bool:
        deleted = self.store.delete(scenario_id)
        if deleted:
            logger.info("deleted scenario %s", scenario_id)
        return deleted

    def get(self, scenario_id: str) -> Optional[Dict[str, Any]]:
        return self.store.get(scenario_id)

    def list_all(self) -> List[Dict[str, Any]]:
        return sorted(self.store.list(), key=_sort_key, reverse=True)

    def duplicate(self, scenario_id: str, new_name: Optional[str] = None) -> Optional[Dict[str, Any]]:
        src = self.store.get(scenario_id)
        if src is None:
            return None
        return self.create(new_name or f"{src['name']} (Copy)", copy.deepcopy(src.get("config")),
                           copy.deepcopy(src.get("results")))

    def ensure_default(self, config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Most recently updated scenario, or a new 'Default Scenario' when there are none."""
        existing = self.list_all()
        if existing:
            return existing[0]
        return self.create(DEFAULT_SCENARIO_NAME, config)
