"""
WizardDAO - Holder API Blueprint

REST endpoints for the mint / fusion / claim lifecycle.

Provides access to:
- Submit mints and fusions
- Deliver randomness for pending requests (coordinator callback)
- Record revenue and claim payouts
- Holder, request, pricing and statistics views
"""

from flask import Blueprint, jsonify, request

from wizard_exceptions import ProtocolError, UnknownRequestError

from . import state
from .utils import (
    MAX_AUDIT_LIMIT,
    MAX_HOLDER_LENGTH,
    parse_int_field,
    require_api_key,
    validate_json_schema,
)

wizard_bp = Blueprint("wizard", __name__)


def _payload(required: dict, optional: dict | None = None):
    data = request.get_json(silent=True)
    if not data:
        return None, (jsonify({"error": "No data provided"}), 400)
    is_valid, error_msg = validate_json_schema(
        data,
        required_fields=required,
        optional_fields=optional,
        max_lengths={"holder": MAX_HOLDER_LENGTH, "source": MAX_HOLDER_LENGTH},
    )
    if not is_valid:
        return None, (jsonify({"error": error_msg}), 400)
    return data, None


# =============================================================================
# Lifecycle Endpoints
# =============================================================================


@wizard_bp.route("/mint", methods=["POST"])
@require_api_key
def submit_mint():
    """
    Burn the holder's asset and request a randomized mint.

    Request body:
        {"holder": "0x...", "category": 0}

    Returns:
        Pending request with burn amount (202)
    """
    data, error = _payload({"holder": str, "category": int})
    if error:
        return error

    result = state.execute(lambda engine: engine.submit_mint(data["holder"], data["category"]))
    return jsonify(result), 202


@wizard_bp.route("/fusion", methods=["POST"])
@require_api_key
def submit_fusion():
    """
    Destroy three same-tier instances and request a fusion roll.

    Request body:
        {"holder": "0x...", "category": 0, "source_tier": 0}
    """
    data, error = _payload({"holder": str, "category": int, "source_tier": int})
    if error:
        return error

    result = state.execute(
        lambda engine: engine.submit_fusion(data["holder"], data["category"], data["source_tier"])
    )
    return jsonify(result), 202


@wizard_bp.route("/fulfill", methods=["POST"])
@require_api_key
def fulfill():
    """
    Deliver a random value for a pending handle.

    Each handle is delivered once. If the engine rejected a delivery, the
    request stays pending and shows up under /requests/stranded.

    Request body:
        {"request_id": "vrf-1", "random_value": "12345"}
    """
    data, error = _payload({"request_id": str, "random_value": (int, str)})
    if error:
        return error

    request_id = data["request_id"]
    random_value = parse_int_field(data, "random_value")

    def deliver(engine):
        provider = engine.randomness
        if request_id in getattr(provider, "pending", []):
            return provider.deliver(request_id, random_value)
        if engine.get_pending_request(request_id) is not None:
            raise ProtocolError(
                "Randomness already delivered for this request",
                action="fulfill",
                details={"request_id": request_id},
            )
        return engine.fulfill(request_id, random_value)

    return jsonify(state.execute(deliver))


@wizard_bp.route("/claim", methods=["POST"])
@require_api_key
def claim():
    """
    Pay out the holder's accrued revenue.

    Request body:
        {"holder": "0x..."}
    """
    data, error = _payload({"holder": str})
    if error:
        return error

    return jsonify(state.execute(lambda engine: engine.claim(data["holder"])))


@wizard_bp.route("/revenue", methods=["POST"])
@require_api_key
def receive_revenue():
    """
    Record native currency arriving at the engine.

    Request body:
        {"amount": "1000000000000000000", "source": "trading_fees"}
    """
    data, error = _payload({"amount": (int, str)}, {"source": str})
    if error:
        return error

    amount = parse_int_field(data, "amount")
    source = data.get("source", "unknown")
    return jsonify(state.execute(lambda engine: engine.receive_revenue(amount, source)))


# =============================================================================
# Views
# =============================================================================


@wizard_bp.route("/holders/<holder>", methods=["GET"])
@require_api_key
def get_holder(holder):
    return jsonify(state.execute(lambda engine: engine.get_holder_info(holder), persist=False))


@wizard_bp.route("/requests/stranded", methods=["GET"])
@require_api_key
def get_stranded_requests():
    """
    Requests still waiting for randomness.

    Query params:
        max_age: Minimum age in seconds (default 3600)
    """
    max_age = request.args.get("max_age", 3600, type=int)
    stranded = state.execute(lambda engine: engine.get_stranded_requests(max_age), persist=False)
    return jsonify({"count": len(stranded), "max_age": max_age, "requests": stranded})


@wizard_bp.route("/requests/<request_id>", methods=["GET"])
@require_api_key
def get_request(request_id):
    pending = state.execute(lambda engine: engine.get_pending_request(request_id), persist=False)
    if pending is None:
        raise UnknownRequestError(request_id)
    return jsonify(pending)


@wizard_bp.route("/mint-cost/<int:category>", methods=["GET"])
def get_mint_cost(category):
    return jsonify(state.execute(lambda engine: engine.get_mint_cost(category), persist=False))


@wizard_bp.route("/nav", methods=["GET"])
def get_nav():
    return jsonify(state.execute(lambda engine: engine.get_nav_per_share(), persist=False))


@wizard_bp.route("/stats", methods=["GET"])
@require_api_key
def get_stats():
    return jsonify(state.execute(lambda engine: engine.get_statistics(), persist=False))


@wizard_bp.route("/invariants", methods=["GET"])
@require_api_key
def get_invariants():
    results = state.execute(lambda engine: engine.check_invariants(), persist=False)
    return jsonify({"ok": all(results.values()), "checks": results})


@wizard_bp.route("/audit", methods=["GET"])
@require_api_key
def get_audit_trail():
    """
    Recent engine events, newest first.

    Query params:
        limit: Max events (default 100)
        event_type: Filter, e.g. MintFulfilled
    """
    limit = max(1, min(request.args.get("limit", 100, type=int), MAX_AUDIT_LIMIT))
    event_type = request.args.get("event_type")
    events = state.execute(lambda engine: engine.get_audit_trail(limit, event_type), persist=False)
    return jsonify({"count": len(events), "events": events})
