"""
Order lifecycle API routes – every action goes through the reconciler so the
settlement record moves together with the order status.
"""
from fastapi import APIRouter, Depends
from typing import Optional

from settlement_engine.models.order import OrderActionRequest
from settlement_engine.services.reconciler import StatusTransitionReconciler, TRANSITIONS
from settlement_engine.utils.helpers import serialize_doc

router = APIRouter(prefix="/orders", tags=["Orders"])


def get_reconciler() -> StatusTransitionReconciler:
    return StatusTransitionReconciler()


def _transition_response(result) -> dict:
    return {
        "success": True,
        "previousStatus": result.previous_status.value,
        "order": serialize_doc(result.order.model_dump(by_alias=True)),
        "settlement": serialize_doc(result.settlement.model_dump(by_alias=True)) if result.settlement else None,
        "distribution": result.distribution.model_dump(mode="json") if result.distribution else None,
    }


@router.get("/actions")
async def list_order_actions():
    """Lifecycle actions and the statuses they may be applied from"""
    return {
        action: {
            "from": sorted(s.value for s in rule.allowed_from),
            "to": rule.target.value,
        }
        for action, rule in TRANSITIONS.items()
    }


@router.post("/{order_id}/{action}")
async def apply_order_action(
    order_id: str,
    action: str,
    body: Optional[OrderActionRequest] = None,
    reconciler: StatusTransitionReconciler = Depends(get_reconciler),
):
    """
    Apply a lifecycle action (accept, confirm_payment, reject, start_preparing,
    mark_ready, dispatch, deliver, cancel, collect_payment) to an order.
    `order_id` may be the Mongo id or the order number.
    """
    result = await reconciler.transition(order_id, action, reason=body.reason if body else None)
    return _transition_response(result)
