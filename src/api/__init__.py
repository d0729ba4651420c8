"""
WizardDAO API Package.

Flask blueprints for the engine's HTTP surface.

Blueprints:
- monitoring: health probes and Prometheus metrics
- wizard: mint / fusion / fulfill / claim / revenue and read-only views
- admin: owner-only parameter updates
"""

import logging

from flask import Flask, jsonify

from api.admin import admin_bp
from api.monitoring import monitoring_bp
from api.utils import error_response
from api.wizard import wizard_bp
from monitoring import setup_request_logging
from storage import StorageError
from wizard_exceptions import WizardEngineError

logger = logging.getLogger(__name__)

# Tuple format: (blueprint, url_prefix)
ALL_BLUEPRINTS = [
    (monitoring_bp, None),
    (wizard_bp, None),
    (admin_bp, None),  # Blueprint carries /admin
]


def register_blueprints(app):
    """Register all blueprints with the Flask app."""
    for blueprint, url_prefix in ALL_BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=url_prefix)


def register_error_handlers(app):
    """Map engine rejections and infrastructure failures to JSON responses."""

    @app.errorhandler(WizardEngineError)
    def handle_engine_error(e):
        return error_response(e)

    @app.errorhandler(TimeoutError)
    def handle_lock_timeout(e):
        return jsonify({"error": "Engine busy", "detail": str(e)}), 503

    @app.errorhandler(StorageError)
    def handle_storage_error(e):
        logger.error("Snapshot persistence failed", extra={"detail": str(e)})
        return jsonify({"error": "Storage failure"}), 500

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Endpoint not found"}), 404

    @app.errorhandler(500)
    def internal_error(error):
        return jsonify({"error": "Internal server error"}), 500


def create_app(engine=None, storage=None) -> Flask:
    """
    Build the Flask application.

    Args:
        engine: Optional pre-built WizardEngine (tests)
        storage: Optional storage backend (defaults to STORAGE_BACKEND)
    """
    from api import state

    app = Flask(__name__)
    state.init_state(engine_instance=engine, storage_backend=storage)
    setup_request_logging(app)
    register_blueprints(app)
    register_error_handlers(app)
    return app
