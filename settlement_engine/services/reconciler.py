"""
Status-Transition Reconciler – applies an order lifecycle action and keeps the
settlement in step with it.

    pending -> confirmed -> preparing -> ready -> out_for_delivery -> delivered
    cancelled is reachable from every state before delivered; delivered and
    cancelled are terminal.

Every transition is one atomic conditional update on (status, statusVersion).
Anything that can fail for configuration reasons (percentage resolution,
rounding) is checked before that update, so a rejected action leaves the order
untouched.
"""
import logging
from typing import Dict, FrozenSet, NamedTuple, Optional

from pydantic import BaseModel

from settlement_engine.database.db_operations import utcnow
from settlement_engine.models.order import (
    Order,
    OrderStatus,
    PaymentStatus,
    TERMINAL_STATUSES,
)
from settlement_engine.models.settlement import SettlementRecord
from settlement_engine.services.commission_distribution import CommissionDistributionService, DistributionResult
from settlement_engine.services.settlement_calculator import SettlementCalculator, compute_split
from settlement_engine.services.notifications import notify_settlement_completed
from settlement_engine.utils.errors import InvalidOrderState
from settlement_engine.utils.money import round2

logger = logging.getLogger(__name__)

NON_TERMINAL: FrozenSet[OrderStatus] = frozenset(s for s in OrderStatus if s not in TERMINAL_STATUSES)


class Transition(NamedTuple):
    allowed_from: FrozenSet[OrderStatus]
    target: OrderStatus


TRANSITIONS: Dict[str, Transition] = {
    "accept": Transition(frozenset({OrderStatus.PENDING}), OrderStatus.CONFIRMED),
    "confirm_payment": Transition(frozenset({OrderStatus.PENDING}), OrderStatus.CONFIRMED),
    "reject": Transition(frozenset({OrderStatus.PENDING}), OrderStatus.CANCELLED),
    "start_preparing": Transition(frozenset({OrderStatus.CONFIRMED}), OrderStatus.PREPARING),
    "mark_ready": Transition(frozenset({OrderStatus.CONFIRMED, OrderStatus.PREPARING}), OrderStatus.READY),
    "dispatch": Transition(frozenset({OrderStatus.READY}), OrderStatus.OUT_FOR_DELIVERY),
    "deliver": Transition(NON_TERMINAL, OrderStatus.DELIVERED),
    "cancel": Transition(NON_TERMINAL, OrderStatus.CANCELLED),
    "collect_payment": Transition(NON_TERMINAL, OrderStatus.DELIVERED),
}

SETTLING_TARGETS = {OrderStatus.CONFIRMED, OrderStatus.DELIVERED}


class TransitionResult(BaseModel):
    order: Order
    previous_status: OrderStatus
    settlement: Optional[SettlementRecord] = None
    distribution: Optional[DistributionResult] = None


class StatusTransitionReconciler:

    def __init__(self, calculator: Optional[SettlementCalculator] = None,
                 distribution: Optional[CommissionDistributionService] = None):
        self.calculator = calculator or SettlementCalculator()
        self.orders = self.calculator.orders
        self.distribution = distribution or CommissionDistributionService(self.orders, self.calculator.configs)

    async def transition(self, order_id: str, action: str, reason: Optional[str] = None) -> TransitionResult:
        order = await self.orders.get(order_id)
        order_label = order.order_number or order.id

        rule = TRANSITIONS.get(action)
        if rule is None:
            raise InvalidOrderState(
                f"Unknown order action '{action}'",
                {"orderId": order.id, "action": action, "allowedActions": sorted(TRANSITIONS)},
            )
        if order.status not in rule.allowed_from:
            raise InvalidOrderState.illegal_transition(order_label, order.status.value, rule.target.value, action)

        set_fields, extra_filter = self._transition_fields(order, action, rule.target, reason)

        if rule.target in SETTLING_TARGETS:
            total = round2(order.pricing.total)
            if total <= 0:
                raise InvalidOrderState.non_positive_total(order_label, total)
            # Surface configuration and rounding errors before mutating
            await compute_split(order, self.calculator.configs)

        updated = await self.orders.apply_transition(order, rule.target, set_fields, extra_filter)
        logger.info("🔄 Order %s: %s -> %s (%s)", order_label, order.status.value, updated.status.value, action)

        result = TransitionResult(order=updated, previous_status=order.status)

        if action == "collect_payment":
            result.distribution = await self.distribution.distribute(updated)
            updated = await self.orders.get(updated.id)
            result.order = updated

        if rule.target == OrderStatus.CANCELLED and round2(updated.pricing.total) <= 0:
            logger.warning("⚠️ Cancelled order %s has no positive total; no settlement written", order_label)
        elif rule.target in SETTLING_TARGETS or rule.target == OrderStatus.CANCELLED:
            result.settlement = await self.calculator.settle(updated)

        if result.settlement is not None and result.settlement.settlement_status == "completed":
            await notify_settlement_completed(result.settlement)

        return result

    def _transition_fields(self, order: Order, action: str, target: OrderStatus, reason: Optional[str]):
        now = utcnow()
        set_fields: Dict = {}
        extra_filter: Dict = {}

        if action == "collect_payment":
            if not order.is_cash_payment:
                err = InvalidOrderState(
                    f"Cannot collect payment for order {order.order_number or order.id}: "
                    f"payment method is '{order.payment.method.value}'",
                    {"orderId": order.id, "paymentMethod": order.payment.method.value,
                     "currentStatus": order.status.value, "requestedStatus": target.value},
                )
                err.invariant = "cash_payment_method"
                raise err
            if order.commission_distributed:
                raise InvalidOrderState.illegal_transition(
                    order.order_number or order.id, order.status.value, target.value, action
                )
            set_fields.update({
                "cashCollected": True,
                "payment.status": PaymentStatus.COMPLETED.value,
            })
            extra_filter["commissionDistributed"] = {"$ne": True}

        if action == "confirm_payment":
            if order.is_cash_payment:
                err = InvalidOrderState(
                    f"Order {order.order_number or order.id} is paid in cash; use collect_payment",
                    {"orderId": order.id, "paymentMethod": order.payment.method.value,
                     "currentStatus": order.status.value, "requestedStatus": target.value},
                )
                err.invariant = "online_payment_method"
                raise err
            set_fields.update({
                "payment.status": PaymentStatus.COMPLETED.value,
                "cashCollected": True,
            })

        if target == OrderStatus.DELIVERED:
            set_fields["deliveredAt"] = now
        elif target == OrderStatus.CANCELLED:
            set_fields["cancelledAt"] = now
            if reason:
                set_fields["cancellationReason"] = reason
        elif target == OrderStatus.CONFIRMED:
            set_fields["confirmedAt"] = now

        return set_fields, extra_filter
