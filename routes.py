from flask import Blueprint, request, jsonify, session, current_app
from secrets import randbits
import secrets

from planner.retirement.aggregate import AggregateResults, analysis_message, compute_statistics
from planner.retirement.events import parse_events
from planner.retirement.inputs import MAX_SIMULATIONS, canonical_keys, parse_simulation_inputs
from planner.retirement.monte_carlo import (
    DEFAULT_BATCH_SIZE,
    SimulationCancelled,
    SimulationRunError,
    run_monte_carlo,
)
from planner.retirement.recommendations import build_recommendations
from planner.retirement.scenarios import ScenarioManager, SqlScenarioStore, record_to_json

retirement_bp = Blueprint("retirement", __name__, url_prefix="/api/retirement")
scenarios_bp = Blueprint("scenarios", __name__, url_prefix="/scenarios")

LAST_SCENARIO_KEY = "last_scenario_id"


# -------------------------
# Session helpers
# -------------------------
def _get_or_create_owner() -> str:
    """Anonymous per-browser key that scopes saved scenarios."""
    owner = session.get("scenario_owner")
    if not owner:
        owner = secrets.token_hex(16)
        session["scenario_owner"] = owner
    return owner


def _get_or_create_seed() -> int:
    try:
        seed = session.get("ret_mc_seed")
        if seed is None:
            seed = randbits(31)
            session["ret_mc_seed"] = int(seed)
        return int(seed)
    except Exception:
        return int(randbits(31))


def _manager() -> ScenarioManager:
    return ScenarioManager(SqlScenarioStore(_get_or_create_owner()))


def _json_body() -> dict:
    """Request JSON as a dict; arrays, scalars and bad JSON read as {}."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _split_payload(payload: dict):
    """Inputs may sit at the top level or under "inputs"; events at the top level win."""
    data = canonical_keys(payload)
    nested = data.get("inputs")
    raw_inputs = canonical_keys(nested if isinstance(nested, dict) and nested else data)
    income = data.get("income_events", raw_inputs.get("income_events"))
    expense = data.get("expense_events", raw_inputs.get("expense_events"))
    return raw_inputs, parse_events(income), parse_events(expense)


def _scenario_config(inputs, income_events, expense_events) -> dict:
    cfg = inputs.to_config()
    cfg["income_events"] = [e.to_dict() for e in income_events]
    cfg["expense_events"] = [e.to_dict() for e in expense_events]
    return cfg


# =======================
#   Simulation API
# =======================
@retirement_bp.route("/simulate", methods=["POST"])
def simulate():
    payload = _json_body()
    raw_inputs, income_events, expense_events = _split_payload(payload)

    inputs = parse_simulation_inputs(
        raw_inputs, max_simulations=current_app.config.get("MC_MAX_SIMULATIONS", MAX_SIMULATIONS)
    )

    scenario_id = payload.get("scenario_id")
    manager = _manager() if scenario_id else None
    if manager is not None and manager.get(scenario_id) is None:
        return jsonify({"error": "Scenario not found"}), 404

    seed = payload.get("seed")
    try:
        seed = int(seed) if seed is not None else _get_or_create_seed()
    except (TypeError, ValueError):
        seed = _get_or_create_seed()

    try:
        results = run_monte_carlo(
            inputs,
            income_events,
            expense_events,
            seed=seed,
            batch_size=current_app.config.get("MC_BATCH_SIZE", DEFAULT_BATCH_SIZE),
        )
    except SimulationCancelled as e:
        current_app.logger.info("simulation cancelled: %s", e)
        return jsonify({"status": "cancelled", "error": str(e)}), 409
    except SimulationRunError as e:
        current_app.logger.exception("simulation failed")
        return jsonify({"status": "failed", "error": str(e)}), 500

    stats = compute_statistics(results, inputs)
    out = {
        "status": "ok",
        "seed": seed,
        "inputs": inputs.to_config(),
        "income_events": [e.to_dict() for e in income_events],
        "expense_events": [e.to_dict() for e in expense_events],
        "results": results.to_dict(include_trials=bool(payload.get("include_trials"))),
        "statistics": stats,
        "analysis": analysis_message(results.success_rate, stats),
        "recommendations": [r.to_dict() for r in build_recommendations(results, inputs, income_events)],
    }

    if manager is not None:
        try:
            manager.update(scenario_id, {
                "config": _scenario_config(inputs, income_events, expense_events),
                "results": results.to_dict(include_trials=False),
            })
            session[LAST_SCENARIO_KEY] = scenario_id
            out["scenario_id"] = scenario_id
        except Exception as e:
            current_app.logger.exception("failed to store results for scenario %s", scenario_id)
            out["scenario_error"] = str(e)

    current_app.logger.info(
        "simulation done: %d trials, success %.1f%%", results.num_simulations, results.success_rate
    )
    return jsonify(out), 200


@retirement_bp.route("/recommendations", methods=["POST"])
def recommendations():
    payload = _json_body()
    raw_inputs, income_events, _ = _split_payload(payload)
    inputs = parse_simulation_inputs(raw_inputs)

    results = None
    if isinstance(payload.get("results"), dict):
        results = AggregateResults.from_summary(payload["results"])

    recs = build_recommendations(results, inputs, income_events)
    return jsonify({"recommendations": [r.to_dict() for r in recs]}), 200


# =======================
#   CRUD for scenarios
# =======================
@scenarios_bp.route("/save", methods=["POST"])
def save_scenario():
    data = _json_body()
    scenario_id = data.get("id")
    name = data.get("name") or data.get("scenario_name")
    config = data.get("config", data.get("inputs_json"))
    if config is not None and not isinstance(config, dict):
        return jsonify({"error": "config must be an object"}), 400

    manager = _manager()
    try:
        if scenario_id and manager.get(scenario_id) is not None:
            updates = {}
            if name:
                updates["name"] = name
            if config is not None:
                updates["config"] = config
            if "results" in data:
                updates["results"] = data.get("results")
            record = manager.update(scenario_id, updates)
        else:
            record = manager.create(name, config, data.get("results"))
    except Exception as e:
        current_app.logger.exception("failed to save scenario")
        return jsonify({"error": "Failed to save scenario.", "details": str(e)}), 500

    session[LAST_SCENARIO_KEY] = record["id"]
    return jsonify({"message": "Scenario saved successfully.", "scenario": record_to_json(record)}), 200


@scenarios_bp.route("/list", methods=["GET"])
def list_scenarios():
    result = []
    for s in map(record_to_json, _manager().list_all()):
        result.append({
            "id": s["id"],
            "name": s["name"],
            "created_at": s["created_at"],
            "updated_at": s["updated_at"],
        })
    return jsonify(result), 200


@scenarios_bp.route("/load/<scenario_id>", methods=["GET"])
def load_scenario(scenario_id):
    record = _manager().get(scenario_id)
    if not record:
        return jsonify({"error": "Scenario not found"}), 404
    session[LAST_SCENARIO_KEY] = scenario_id
    return jsonify(record_to_json(record)), 200


@scenarios_bp.route("/last", methods=["GET"])
def last_scenario():
    manager = _manager()
    last_id = session.get(LAST_SCENARIO_KEY)
    record = manager.get(last_id) if last_id else None
    if record is None:
        try:
            record = manager.ensure_default()
        except Exception as e:
            current_app.logger.exception("failed to create default scenario")
            return jsonify({"error": "Failed to load scenario.", "details": str(e)}), 500
    session[LAST_SCENARIO_KEY] = record["id"]
    return jsonify(record_to_json(record)), 200


@scenarios_bp.route("/duplicate/<scenario_id>", methods=["POST"])
def duplicate_scenario(scenario_id):
    data = _json_body()
    manager = _manager()
    if manager.get(scenario_id) is None:
        return jsonify({"error": "Scenario not found"}), 404
    try:
        record = manager.duplicate(scenario_id, data.get("name"))
    except Exception as e:
        current_app.logger.exception("failed to duplicate scenario %s", scenario_id)
        return jsonify({"error": "Failed to duplicate scenario.", "details": str(e)}), 500
    session[LAST_SCENARIO_KEY] = record["id"]
    return jsonify(record_to_json(record)), 200


@scenarios_bp.route("/delete/<scenario_id>", methods=["DELETE"])
def delete_scenario(scenario_id):
    manager = _manager()
    record = manager.get(scenario_id)
    if not record:
        return jsonify({"error": "Scenario not found"}), 404

    try:
        manager.delete(scenario_id)
    except Exception as e:
        current_app.logger.exception("failed to delete scenario %s", scenario_id)
        return jsonify({"error": "Failed to delete scenario.", "details": str(e)}), 500

    if session.get(LAST_SCENARIO_KEY) == scenario_id:
        session.pop(LAST_SCENARIO_KEY, None)
    return jsonify({"message": f"Scenario '{record['name']}' deleted successfully."}), 200
