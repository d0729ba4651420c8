"""
WizardDAO - Engine Exception Hierarchy

Every rejection raised by the engine carries a structured error context
(category, action, severity, details) so the HTTP layer and the logs can
report it consistently.

Rejections are synchronous and atomic: the entry point that raised leaves
no state behind, and nothing is retried internally.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class ErrorSeverity(Enum):
    """Severity levels for engine errors."""
    LOW = "low"           # Expected rejection (cooldown, nothing to claim)
    MEDIUM = "medium"     # Caller error or bad input
    HIGH = "high"         # External dependency misbehaving
    CRITICAL = "critical" # Funds movement failed


class ErrorCategory(Enum):
    """Rejection taxonomy."""
    LIQUIDITY = "liquidity"   # Insufficient DEX reserves
    ORACLE = "oracle"         # Non-positive or stale price
    TIMING = "timing"         # Cooldown still active
    ECONOMIC = "economic"     # Zero cost, unattributable or too-small shares, nothing to claim
    PROTOCOL = "protocol"     # Unknown handle, max tier, wrong instance count
    PARAMETER = "parameter"   # Admin input out of range
    TRANSFER = "transfer"     # Outbound payment failed


@dataclass
class ErrorContext:
    """Structured context for error tracking and debugging."""
    category: ErrorCategory
    action: str
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    details: dict[str, Any] = field(default_factory=dict)
    severity: ErrorSeverity = ErrorSeverity.MEDIUM

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "category": self.category.value,
            "action": self.action,
            "timestamp": self.timestamp,
            "details": self.details,
            "severity": self.severity.value
        }


class WizardEngineError(Exception):
    """
    Base exception for all engine rejections.

    Includes structured error context for improved debugging
    and integration with monitoring systems.
    """

    category = ErrorCategory.PROTOCOL
    default_severity = ErrorSeverity.MEDIUM

    def __init__(
        self,
        message: str,
        action: str = "unknown",
        severity: ErrorSeverity | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None
    ):
        super().__init__(message)
        self.message = message
        self.context = ErrorContext(
            category=self.category,
            action=action,
            severity=severity or self.default_severity,
            details=details or {}
        )
        self.cause = cause

        if cause:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        result = {
            "error_type": type(self).__name__,
            "message": self.message,
            **self.context.to_dict()
        }
        if self.cause:
            result["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause)
            }
        return result

    def __str__(self) -> str:
        base = f"[{self.context.category.value}:{self.context.action}] {self.message}"
        if self.cause:
            base += f" (caused by: {self.cause})"
        return base


# =============================================================================
# Pricing Errors
# =============================================================================

class LiquidityError(WizardEngineError):
    """DEX reserves below the minimum-liquidity floor."""

    category = ErrorCategory.LIQUIDITY
    default_severity = ErrorSeverity.HIGH

    def __init__(
        self,
        message: str,
        reserve_asset: int | None = None,
        reserve_native: int | None = None,
        minimum: int | None = None,
        cause: Exception | None = None
    ):
        super().__init__(
            message=message,
            action="read_reserves",
            details={
                "reserve_asset": reserve_asset,
                "reserve_native": reserve_native,
                "minimum": minimum,
            },
            cause=cause
        )


class OracleError(WizardEngineError):
    """Price feed returned a non-positive or stale answer."""

    category = ErrorCategory.ORACLE
    default_severity = ErrorSeverity.HIGH

    def __init__(
        self,
        message: str,
        price: int | None = None,
        updated_at: int | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None
    ):
        super().__init__(
            message=message,
            action="read_price",
            details={"price": price, "updated_at": updated_at, **(details or {})},
            cause=cause
        )


# =============================================================================
# Timing Errors
# =============================================================================

class CooldownActiveError(WizardEngineError):
    """Holder acted before their cooldown expired."""

    category = ErrorCategory.TIMING
    default_severity = ErrorSeverity.LOW

    def __init__(self, holder: str, cooldown_until: int, now: int, action: str = "cooldown_check"):
        super().__init__(
            message="Cooldown active",
            action=action,
            details={
                "holder": holder,
                "cooldown_until": cooldown_until,
                "remaining_seconds": max(0, cooldown_until - now),
            },
        )
        self.holder = holder
        self.cooldown_until = cooldown_until


# =============================================================================
# Economic Errors
# =============================================================================

class EconomicError(WizardEngineError):
    """
    Economic rejection.

    Reasons:
    - zero_cost_mint
    - no_tracked_shares
    - shares_too_small
    - nothing_to_claim
    - share_underflow
    - insufficient_asset_balance
    - nothing_to_withdraw
    """

    category = ErrorCategory.ECONOMIC
    default_severity = ErrorSeverity.LOW

    def __init__(
        self,
        message: str,
        reason: str,
        action: str = "economic_check",
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            action=action,
            details={"reason": reason, **(details or {})},
        )
        self.reason = reason


# =============================================================================
# Protocol Errors
# =============================================================================

class ProtocolError(WizardEngineError):
    """Request violates the submit/fulfill protocol."""

    category = ErrorCategory.PROTOCOL


class UnknownRequestError(ProtocolError):
    """Fulfillment for a handle that is not pending (unknown or already fulfilled)."""

    def __init__(self, request_id: str):
        super().__init__(
            message="Unknown or already fulfilled request",
            action="fulfill",
            details={"request_id": request_id},
        )
        self.request_id = request_id


class MaxTierFusionError(ProtocolError):
    """Fusion attempted on the top tier."""

    def __init__(self, source_tier: int):
        super().__init__(
            message="Cannot fuse beyond the maximum tier",
            action="submit_fusion",
            details={"source_tier": source_tier},
        )


class InsufficientInstancesError(ProtocolError):
    """Holder does not own enough instances of the identity for fusion."""

    def __init__(self, holder: str, owned: int, required: int):
        super().__init__(
            message=f"Fusion requires {required} instances, holder owns {owned}",
            action="submit_fusion",
            details={"holder": holder, "owned": owned, "required": required},
        )


class ReentrancyError(ProtocolError):
    """An entry point was re-entered before the running one completed."""

    default_severity = ErrorSeverity.CRITICAL

    def __init__(self, entry_point: str, active: str | None = None):
        super().__init__(
            message="Reentrant call rejected",
            action=entry_point,
            details={"active_entry_point": active},
        )


class UnauthorizedError(ProtocolError):
    """Admin surface called by someone other than the owner."""

    def __init__(self, caller: str, action: str):
        super().__init__(
            message="Caller is not the owner",
            action=action,
            details={"caller": caller},
        )


class CollaboratorNotConfiguredError(ProtocolError):
    """A required external collaborator has not been set yet."""

    def __init__(self, collaborator: str, action: str):
        super().__init__(
            message=f"{collaborator} not configured",
            action=action,
            details={"collaborator": collaborator},
        )


# =============================================================================
# Parameter & Transfer Errors
# =============================================================================

class ParameterError(WizardEngineError):
    """Admin or caller input out of the allowed range."""

    category = ErrorCategory.PARAMETER

    def __init__(
        self,
        message: str,
        parameter: str,
        value: Any = None,
        action: str = "set_parameter",
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            action=action,
            details={"parameter": parameter, "value": value, **(details or {})},
        )
        self.parameter = parameter


class TransferError(WizardEngineError):
    """Outbound payment failed; the whole action was rolled back."""

    category = ErrorCategory.TRANSFER
    default_severity = ErrorSeverity.CRITICAL

    def __init__(
        self,
        message: str,
        recipient: str,
        amount: int,
        action: str = "send",
        cause: Exception | None = None
    ):
        super().__init__(
            message=message,
            action=action,
            details={"recipient": recipient, "amount": amount},
            cause=cause
        )


# =============================================================================
# Utility Functions
# =============================================================================

def log_exception(
    logger,
    e: WizardEngineError,
    level: str = "warning"
) -> None:
    """
    Log an engine error with full context.

    Args:
        logger: Logger instance
        e: The exception to log
        level: Log level (debug, info, warning, error, critical)
    """
    log_func = getattr(logger, level, logger.warning)
    log_func(
        str(e),
        extra={"error": e.to_dict()},
        exc_info=level in ("error", "critical")
    )
