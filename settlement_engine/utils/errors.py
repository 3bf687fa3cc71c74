"""
Domain errors raised by the settlement engine.

Every error names the invariant it protects so callers (admin UI, jobs) can
tell a missing configuration apart from a lost race without parsing messages.
"""
from typing import Any, Dict, Optional

from fastapi import status


class SettlementError(Exception):
    """Base class for all settlement engine errors"""

    code = "settlement_error"
    invariant = "unspecified"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.code,
            "invariant": self.invariant,
            "message": self.message,
            "details": self.details,
        }


class ConfigNotFound(SettlementError):
    code = "config_not_found"
    invariant = "commission_policy_resolvable"
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, scope: str, vendor_id: Optional[str] = None):
        super().__init__(
            f"No commission configuration resolves for scope '{scope}'"
            + (f" and vendor '{vendor_id}'" if vendor_id else ""),
            {"scope": scope, "vendorId": vendor_id},
        )


class InvalidCommissionConfig(SettlementError):
    code = "invalid_commission_config"
    invariant = "family_shares_sum_to_100"
    http_status = 422


class InvalidOrderState(SettlementError):
    code = "invalid_order_state"
    invariant = "legal_order_state"
    http_status = status.HTTP_409_CONFLICT

    @classmethod
    def illegal_transition(cls, order_id: str, current: str, requested: str, action: str):
        err = cls(
            f"Cannot {action.replace('_', ' ')} order {order_id}: "
            f"transition '{current}' -> '{requested}' is not allowed",
            {"orderId": order_id, "currentStatus": current, "requestedStatus": requested, "action": action},
        )
        err.invariant = "legal_status_transition"
        return err

    @classmethod
    def non_positive_total(cls, order_id: str, total: float):
        err = cls(
            f"Order {order_id} has a non-positive total ({total}); settlement refused",
            {"orderId": order_id, "total": total},
        )
        err.invariant = "positive_order_total"
        return err


class RoundingInvariantViolation(SettlementError):
    code = "rounding_invariant_violation"
    invariant = "shares_sum_to_total"
    http_status = 422


class ConcurrentModificationConflict(SettlementError):
    code = "concurrent_modification_conflict"
    invariant = "single_writer_per_order"
    http_status = status.HTTP_409_CONFLICT


class OrderNotFound(SettlementError):
    code = "order_not_found"
    invariant = "order_exists"
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} not found", {"orderId": order_id})


class VendorNotFound(SettlementError):
    code = "vendor_not_found"
    invariant = "vendor_resolvable"
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, vendor_type: str, reference: str):
        super().__init__(
            f"{vendor_type.capitalize()} '{reference}' not found",
            {"vendorType": vendor_type, "reference": reference},
        )
