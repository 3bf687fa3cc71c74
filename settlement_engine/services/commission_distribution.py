"""
QR hotel commission distribution – splits a QR order's money between hotel,
admin and the fulfilling restaurant exactly once, guarded by the order's
commissionDistributed flag.
"""
import logging
from typing import Optional

from pydantic import BaseModel

from settlement_engine.models.order import Order
from settlement_engine.services.commission_config_service import CommissionConfigService
from settlement_engine.services.order_store import OrderStore
from settlement_engine.services.settlement_calculator import compute_split

logger = logging.getLogger(__name__)


class DistributionResult(BaseModel):
    distributed: bool
    message: str
    hotel_share: float = 0
    admin_share: float = 0
    restaurant_share: float = 0


class CommissionDistributionService:

    def __init__(self, orders: Optional[OrderStore] = None, configs: Optional[CommissionConfigService] = None):
        self.orders = orders or OrderStore()
        self.configs = configs or CommissionConfigService()

    async def distribute(self, order: Order) -> DistributionResult:
        if not order.is_qr:
            return DistributionResult(distributed=False, message="Not a QR order")
        if order.commission_distributed:
            logger.warning("⚠️ Commission already distributed for order %s", order.order_number or order.id)
            return DistributionResult(distributed=False, message="Commission already distributed")

        split, _, _ = await compute_split(order, self.configs)

        updated = await self.orders.mark_commission_distributed(order, split.hotel, split.admin, split.restaurant)
        if updated is None:
            # Another request flipped the flag between our read and write
            logger.warning("⚠️ Commission already distributed for order %s", order.order_number or order.id)
            return DistributionResult(distributed=False, message="Commission already distributed")

        logger.info(
            "💰 Distributed commission for order %s: hotel %s, admin %s, restaurant %s",
            order.order_number or order.id, split.hotel, split.admin, split.restaurant,
        )
        return DistributionResult(
            distributed=True,
            message="Commission distributed",
            hotel_share=split.hotel,
            admin_share=split.admin,
            restaurant_share=split.restaurant,
        )
