from flask import Blueprint, request, jsonify
from planner.fire.fire_calc import calculate_fire
from planner.fire.net_worth import calculate_net_worth
import logging

bp_fire = Blueprint("bp_fire", __name__)
logger = logging.getLogger(__name__)


# ✅ Route: POST → FIRE number, years to FIRE and wealth projection
@bp_fire.route("/api/fire/calculate", methods=["POST"])
def fire_calculate():
    data = request.get_json(silent=True) or {}
    try:
        out = calculate_fire(data)
    except Exception as e:
        logger.exception("FIRE calculation failed")
        return jsonify({"error": "An error occurred during calculation. Please check your inputs.",
                        "details": str(e)}), 500
    if out["errors"]:
        return jsonify(out), 400
    return jsonify(out)


# ✅ Route: POST → Net worth projection (nominal + inflation-adjusted)
@bp_fire.route("/api/net-worth/project", methods=["POST"])
def net_worth_project():
    data = request.get_json(silent=True) or {}
    try:
        return jsonify(calculate_net_worth(data))
    except Exception as e:
        logger.exception("net worth projection failed")
        return jsonify({"error": str(e)}), 500
