# planner/__init__.py
import logging
import os

from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def create_app(test_config=None):
    app = Flask(__name__)

    secret = os.environ.get("FLASK_KEY")
    if not secret:
        secret = "fallback-secret-key"
        app.logger.warning("FLASK_KEY not found. Using fallback.")

    app.config.update(
        SECRET_KEY=secret,
        SQLALCHEMY_DATABASE_URI=os.environ.get("DB_URI", "sqlite:///planner.db"),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        MC_BATCH_SIZE=int(os.environ.get("MC_BATCH_SIZE", 100)),
        MC_MAX_SIMULATIONS=int(os.environ.get("MC_MAX_SIMULATIONS", 10_000)),
    )
    # test_config wins over the environment
    if test_config:
        app.config.update(test_config)

    if not app.testing:
        logging.basicConfig(level=logging.INFO)

    # Initialize DB
    db.init_app(app)

    # Register Blueprints
    from routes import retirement_bp, scenarios_bp
    from planner.fire.fire_routes import bp_fire
    app.register_blueprint(retirement_bp)
    app.register_blueprint(scenarios_bp)
    app.register_blueprint(bp_fire)

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok"}), 200

    with app.app_context():
        from planner.retirement import retirement_scenario  # noqa: F401  (registers the table)
        db.create_all()

    return app
