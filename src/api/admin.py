"""
WizardDAO - Admin API Blueprint

Owner-only parameter updates. Every request names its caller; the engine
rejects anyone but the configured owner with 403.

The /admin/price and /admin/asset-credit endpoints drive the in-memory
collaborators of the standalone service (static price feed, asset
balances) and are rejected when those collaborators are not in use.
"""

import time

from flask import Blueprint, jsonify, request

from collaborators import InMemoryAssetSource, StaticPriceFeed, StaticReservesOracle
from wizard_exceptions import CollaboratorNotConfiguredError, UnauthorizedError

from . import state
from .utils import MAX_HOLDER_LENGTH, parse_int_field, parse_int_list, require_api_key, validate_json_schema

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


def _admin_payload(required: dict | None = None, optional: dict | None = None):
    data = request.get_json(silent=True)
    if not data:
        return None, (jsonify({"error": "No data provided"}), 400)
    is_valid, error_msg = validate_json_schema(
        data,
        required_fields={"caller": str, **(required or {})},
        optional_fields=optional,
        max_lengths={"caller": MAX_HOLDER_LENGTH, "recipient": MAX_HOLDER_LENGTH, "holder": MAX_HOLDER_LENGTH},
    )
    if not is_valid:
        return None, (jsonify({"error": error_msg}), 400)
    return data, None


def _require_owner(engine, caller: str, action: str) -> None:
    if caller != engine.config.owner:
        raise UnauthorizedError(caller, action)


# =============================================================================
# Engine Parameters
# =============================================================================


@admin_bp.route("/category", methods=["POST"])
@require_api_key
def set_category():
    """
    Create or update a category.

    Request body:
        {"caller": "owner", "category": 3, "base_usd_cost": "...", "base_shares": "..."}
    """
    data, error = _admin_payload({"category": int})
    if error:
        return error
    cost = parse_int_field(data, "base_usd_cost")
    shares = parse_int_field(data, "base_shares")
    return jsonify(state.execute(
        lambda engine: engine.set_category(data["caller"], data["category"], cost, shares)
    ))


@admin_bp.route("/cooldown", methods=["POST"])
@require_api_key
def set_cooldown():
    data, error = _admin_payload({"seconds": int})
    if error:
        return error
    return jsonify(state.execute(lambda engine: engine.set_cooldown_period(data["caller"], data["seconds"])))


@admin_bp.route("/fusion-multiplier", methods=["POST"])
@require_api_key
def set_fusion_multiplier():
    data, error = _admin_payload({"bps": int})
    if error:
        return error
    return jsonify(state.execute(lambda engine: engine.set_fusion_multiplier(data["caller"], data["bps"])))


@admin_bp.route("/fail-return-rate", methods=["POST"])
@require_api_key
def set_fail_return_rate():
    data, error = _admin_payload({"bps": int})
    if error:
        return error
    return jsonify(state.execute(lambda engine: engine.set_fail_return_rate(data["caller"], data["bps"])))


@admin_bp.route("/tier-probabilities", methods=["POST"])
@require_api_key
def set_tier_probabilities():
    data, error = _admin_payload({"table": list})
    if error:
        return error
    table = parse_int_list(data, "table")
    return jsonify(state.execute(lambda engine: engine.set_tier_probabilities(data["caller"], table)))


@admin_bp.route("/tier-multipliers", methods=["POST"])
@require_api_key
def set_tier_multipliers():
    data, error = _admin_payload({"table": list})
    if error:
        return error
    table = parse_int_list(data, "table")
    return jsonify(state.execute(lambda engine: engine.set_tier_multipliers(data["caller"], table)))


@admin_bp.route("/fusion-success-rates", methods=["POST"])
@require_api_key
def set_fusion_success_rates():
    data, error = _admin_payload({"table": list})
    if error:
        return error
    table = parse_int_list(data, "table")
    return jsonify(state.execute(lambda engine: engine.set_fusion_success_rates(data["caller"], table)))


@admin_bp.route("/reserves", methods=["POST"])
@require_api_key
def set_reserves():
    """
    Point the engine at a DEX pair with the given reserves.

    Request body:
        {"caller": "owner", "reserve_asset": "...", "reserve_native": "..."}
    """
    data, error = _admin_payload()
    if error:
        return error
    oracle = StaticReservesOracle(
        parse_int_field(data, "reserve_asset"),
        parse_int_field(data, "reserve_native"),
    )
    return jsonify(state.execute(lambda engine: engine.set_reserves_oracle(data["caller"], oracle)))


@admin_bp.route("/emergency-withdraw", methods=["POST"])
@require_api_key
def emergency_withdraw():
    data, error = _admin_payload(optional={"recipient": str})
    if error:
        return error
    return jsonify(state.execute(
        lambda engine: engine.emergency_withdraw(data["caller"], data.get("recipient"))
    ))


# =============================================================================
# In-memory Collaborators
# =============================================================================


@admin_bp.route("/price", methods=["POST"])
@require_api_key
def set_price():
    """
    Publish a new static native/USD answer, timestamped now.

    Request body:
        {"caller": "owner", "price": 60000000000}
    """
    data, error = _admin_payload()
    if error:
        return error
    price = parse_int_field(data, "price")

    def update(engine):
        _require_owner(engine, data["caller"], "set_price")
        if not isinstance(engine.price_feed, StaticPriceFeed):
            raise CollaboratorNotConfiguredError("static price feed", "set_price")
        engine.price_feed.set_price(price, int(time.time()))
        return {"status": "updated", "price": price, "updated_at": engine.price_feed.updated_at}

    return jsonify(state.execute(update, persist=False))


@admin_bp.route("/asset-credit", methods=["POST"])
@require_api_key
def credit_asset():
    """
    Fund a holder's in-memory asset balance.

    Request body:
        {"caller": "owner", "holder": "0x...", "amount": "..."}
    """
    data, error = _admin_payload({"holder": str})
    if error:
        return error
    amount = parse_int_field(data, "amount")

    def credit(engine):
        _require_owner(engine, data["caller"], "credit_asset")
        if not isinstance(engine.asset_source, InMemoryAssetSource):
            raise CollaboratorNotConfiguredError("in-memory asset source", "credit_asset")
        engine.asset_source.credit(data["holder"], amount)
        return {"status": "credited", "holder": data["holder"], "balance": engine.asset_source.balance_of(data["holder"])}

    return jsonify(state.execute(credit))
