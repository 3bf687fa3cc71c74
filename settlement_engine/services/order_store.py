"""
Order Store – reads orders and applies the engine's few, always-conditional writes
"""
import logging
from typing import Any, Dict, Optional

from settlement_engine.config.database import Collections
from settlement_engine.database.db_operations import db_ops, to_object_id, with_store_retry
from settlement_engine.models.order import CommissionBreakdown, CommissionPercentages, Order, OrderStatus
from settlement_engine.utils.errors import ConcurrentModificationConflict, OrderNotFound

logger = logging.getLogger(__name__)


class OrderStore:

    async def find(self, order_ref: Any) -> Optional[Order]:
        """Look an order up by Mongo _id or by its human-readable order number"""
        doc = None
        if to_object_id(order_ref) is not None:
            doc = await with_store_retry(lambda: db_ops.get_by_id(Collections.ORDERS, order_ref))
        if doc is None:
            doc = await with_store_retry(lambda: db_ops.get_one(Collections.ORDERS, {"orderId": str(order_ref)}))
        return Order(**doc) if doc else None

    async def get(self, order_ref: Any) -> Order:
        order = await self.find(order_ref)
        if order is None:
            raise OrderNotFound(str(order_ref))
        return order

    async def apply_transition(
        self,
        order: Order,
        new_status: OrderStatus,
        set_fields: Optional[Dict] = None,
        extra_filter: Optional[Dict] = None,
    ) -> Order:
        """
        Move the order to `new_status` only if it is still in the status and
        version we read. Losing that race raises ConcurrentModificationConflict.
        """
        filter_query = {
            "_id": to_object_id(order.id),
            "status": order.status.value,
            "$or": [{"statusVersion": order.status_version}]
            + ([{"statusVersion": {"$exists": False}}] if order.status_version == 0 else []),
        }
        if extra_filter:
            filter_query.update(extra_filter)

        updated = await db_ops.conditional_update(
            Collections.ORDERS,
            filter_query,
            {
                "$set": {"status": new_status.value, **(set_fields or {})},
                "$inc": {"statusVersion": 1},
            },
        )
        if updated is None:
            current = await self.find(order.id)
            raise ConcurrentModificationConflict(
                f"Order {order.order_number or order.id} changed while moving "
                f"'{order.status.value}' -> '{new_status.value}'; retry against the current state",
                {
                    "orderId": order.id,
                    "expectedStatus": order.status.value,
                    "expectedVersion": order.status_version,
                    "currentStatus": current.status.value if current else None,
                    "currentVersion": current.status_version if current else None,
                    "requestedStatus": new_status.value,
                },
            )
        return Order(**updated)

    async def store_breakdown_if_absent(
        self,
        order: Order,
        breakdown: CommissionBreakdown,
        percentages: CommissionPercentages,
    ) -> bool:
        """Write the breakdown snapshot back onto a legacy order; never overwrites an existing one"""
        updated = await db_ops.conditional_update(
            Collections.ORDERS,
            {"_id": to_object_id(order.id), "commissionBreakdown": None},
            {"$set": {
                "commissionBreakdown": breakdown.model_dump(),
                "commissionPercentages": percentages.model_dump(),
            }},
        )
        if updated is not None:
            logger.info("🧾 Stored commission breakdown on order %s: %s",
                        order.order_number or order.id, breakdown.model_dump())
        return updated is not None

    async def mark_commission_distributed(
        self,
        order: Order,
        hotel_share: float,
        admin_share: float,
        restaurant_share: float,
    ) -> Optional[Order]:
        """Flip commissionDistributed exactly once; returns None if it was already set"""
        updated = await db_ops.conditional_update(
            Collections.ORDERS,
            {"_id": to_object_id(order.id), "commissionDistributed": {"$ne": True}},
            {"$set": {
                "commissionDistributed": True,
                "hotelCommission": hotel_share,
                "adminCommission": admin_share,
                "restaurantShare": restaurant_share,
            }},
        )
        return Order(**updated) if updated else None
