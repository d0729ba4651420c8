"""
Monitoring and metrics API endpoints.

This blueprint provides:
- /metrics: Prometheus-compatible metrics endpoint
- /metrics/json: JSON format metrics
- /health: Basic health check with invariant status
- /health/live: Liveness probe
- /health/ready: Readiness probe
"""

import time

from flask import Blueprint, Response, jsonify

from monitoring import metrics
from wizard_config import ENGINE_VERSION

from . import state

monitoring_bp = Blueprint('monitoring', __name__)

_startup_time = time.time()


@monitoring_bp.route('/metrics', methods=['GET'])
def prometheus_metrics():
    """Prometheus text exposition of engine and HTTP metrics."""
    _update_dynamic_metrics()
    return Response(metrics.to_prometheus(), mimetype='text/plain; charset=utf-8')


@monitoring_bp.route('/metrics/json', methods=['GET'])
def json_metrics():
    _update_dynamic_metrics()
    return jsonify(metrics.get_all())


@monitoring_bp.route('/health', methods=['GET'])
def health():
    """
    Basic health check endpoint.

    Reports "degraded" when any ledger invariant fails.
    """
    engine = state.get_engine()
    invariants = engine.check_invariants()
    healthy = all(invariants.values())

    return jsonify({
        "status": "healthy" if healthy else "degraded",
        "service": "WizardDAO Engine",
        "version": ENGINE_VERSION,
        "uptime_seconds": time.time() - _startup_time,
        "checks": {
            "engine": {
                "status": "ok" if healthy else "invariant_violation",
                "invariants": invariants,
                "pending_requests": len(engine.requests),
            },
            "storage": _check_storage(),
        }
    })


@monitoring_bp.route('/health/live', methods=['GET'])
def liveness():
    """Returns 200 while the process is running."""
    return jsonify({"status": "alive"})


@monitoring_bp.route('/health/ready', methods=['GET'])
def readiness():
    """Returns 200 once the engine and storage are usable."""
    issues = []
    engine = state.get_engine()
    if engine.price_feed is None:
        issues.append("price_feed: not configured")
    if engine.reserves_oracle is None:
        issues.append("reserves_oracle: not configured")
    if not state.get_storage().is_available():
        issues.append("storage: not available")

    if issues:
        return jsonify({"status": "not_ready", "issues": issues}), 503
    return jsonify({"status": "ready"})


def _check_storage() -> dict:
    storage = state.get_storage()
    available = storage.is_available()
    return {
        "status": "ok" if available else "degraded",
        "available": available,
        "backend": storage.__class__.__name__,
    }


def _update_dynamic_metrics():
    """Refresh gauges before export."""
    engine = state.get_engine()
    metrics.record_engine_state(engine.ledger.state.total_shares, len(engine.requests), engine.balance)
    metrics.set_gauge("stranded_requests", len(engine.get_stranded_requests()))
    metrics.set_gauge("storage_available", 1 if state.get_storage().is_available() else 0)
