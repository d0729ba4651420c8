"""
Shared utilities for the WizardDAO API.

Authentication, payload validation and the mapping from engine rejections
to HTTP responses.
"""

import os
import secrets
from functools import wraps
from typing import Any

from flask import jsonify, request

from wizard_exceptions import (
    CollaboratorNotConfiguredError,
    ErrorCategory,
    ParameterError,
    UnauthorizedError,
    UnknownRequestError,
    WizardEngineError,
)

# ============================================================
# Security Configuration
# ============================================================

API_KEY = os.getenv("WIZARD_API_KEY", None)
# SECURITY: Default to requiring authentication for production safety
API_KEY_REQUIRED = os.getenv("WIZARD_REQUIRE_AUTH", "true").lower() == "true"

MAX_HOLDER_LENGTH = 128
MAX_AUDIT_LIMIT = 500


# ============================================================
# Validation Utilities
# ============================================================

def validate_json_schema(
    data: dict[str, Any],
    required_fields: dict[str, type | tuple],
    optional_fields: dict[str, type | tuple] | None = None,
    max_lengths: dict[str, int] | None = None
) -> tuple:
    """
    Validate JSON payload against a simple schema.

    Args:
        data: The JSON data to validate
        required_fields: Dict mapping field names to expected types
        optional_fields: Dict mapping optional field names to expected types
        max_lengths: Dict mapping field names to maximum string lengths

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"

    for field_name, expected_type in required_fields.items():
        if field_name not in data:
            return False, f"Missing required field: {field_name}"
        if not isinstance(data[field_name], expected_type):
            return False, f"Field '{field_name}' has the wrong type"

    if optional_fields:
        for field_name, expected_type in optional_fields.items():
            if field_name in data and data[field_name] is not None:
                if not isinstance(data[field_name], expected_type):
                    return False, f"Field '{field_name}' has the wrong type"

    if max_lengths:
        for field_name, max_len in max_lengths.items():
            if field_name in data and isinstance(data[field_name], str):
                if len(data[field_name]) > max_len:
                    return False, f"Field '{field_name}' exceeds maximum length of {max_len}"

    return True, None


def parse_int_field(data: dict[str, Any], field_name: str) -> int:
    """
    Read an integer amount that may arrive as a JSON number or decimal string.

    Large fixed-point amounts are usually sent as strings to survive
    JavaScript clients.

    Raises:
        ParameterError: If the value is not an integer
    """
    value = data.get(field_name)
    if isinstance(value, bool):
        raise ParameterError(f"'{field_name}' must be an integer", field_name, value, action="parse_request")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ParameterError(f"'{field_name}' must be an integer", field_name, value, action="parse_request")


def parse_int_list(data: dict[str, Any], field_name: str) -> list[int]:
    values = data.get(field_name)
    if not isinstance(values, list):
        raise ParameterError(f"'{field_name}' must be a list", field_name, values, action="parse_request")
    return [parse_int_field({field_name: v}, field_name) for v in values]


# ============================================================
# Error Mapping
# ============================================================

CATEGORY_STATUS = {
    ErrorCategory.PARAMETER: 400,
    ErrorCategory.TIMING: 429,
    ErrorCategory.PROTOCOL: 409,
    ErrorCategory.TRANSFER: 502,
}


def error_status(e: WizardEngineError) -> int:
    """HTTP status for an engine rejection."""
    if isinstance(e, UnknownRequestError):
        return 404
    if isinstance(e, UnauthorizedError):
        return 403
    if isinstance(e, CollaboratorNotConfiguredError):
        return 503
    return CATEGORY_STATUS.get(e.context.category, 422)


def error_response(e: WizardEngineError):
    return jsonify({"error": e.message, **e.to_dict()}), error_status(e)


# ============================================================
# Authentication Decorator
# ============================================================

def require_api_key(f):
    """Decorator to require API key authentication."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not API_KEY_REQUIRED:
            return f(*args, **kwargs)

        provided_key = request.headers.get('X-API-Key')

        if not provided_key:
            return jsonify({
                "error": "API key required",
                "hint": "Provide API key in X-API-Key header"
            }), 401

        if not API_KEY:
            return jsonify({
                "error": "Server API key not configured",
                "hint": "Set WIZARD_API_KEY environment variable"
            }), 503

        if not secrets.compare_digest(provided_key, API_KEY):
            return jsonify({"error": "Invalid API key"}), 403

        return f(*args, **kwargs)
    return decorated_function
