# planner/retirement/retirement_scenario.py
from datetime import datetime, timezone

from planner import db


def _utcnow():
    return datetime.now(timezone.utc)


class RetirementScenario(db.Model):
    __tablename__ = "retirement_scenarios"

    id = db.Column(db.String(64), primary_key=True)
    # anonymous owner key kept in the Flask session (no user accounts)
    owner_key = db.Column(db.String(64), index=True, nullable=False)
    scenario_name = db.Column(db.String(200), nullable=False)
    inputs_json = db.Column(db.JSON, nullable=False, default=dict)
    results_json = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "name": self.scenario_name,
            "config": dict(self.inputs_json or {}),
            "results": self.results_json,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self):
        return f"<RetirementScenario {self.id} {self.scenario_name!r}>"
