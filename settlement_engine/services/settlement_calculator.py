"""
Settlement Calculator – derives every party's earning for one order and upserts
its settlement record.

The record is a pure function of the order's current state plus the resolved
percentages, which is what makes repeated calls idempotent: same inputs, same
record, no write.
"""
import logging
from typing import Optional, Tuple

from settlement_engine.config.settings import settings
from settlement_engine.models.order import (
    CommissionBreakdown,
    CommissionPercentages,
    Order,
    OrderStatus,
    OrderType,
    PaymentStatus,
)
from settlement_engine.models.settlement import AdminEarning, HotelEarning, RestaurantEarning, SettlementRecord
from settlement_engine.services.commission_config_service import CommissionConfigService
from settlement_engine.services.order_store import OrderStore
from settlement_engine.services.settlement_store import SettlementStore
from settlement_engine.services.vendor_resolver import VendorResolver
from settlement_engine.utils.errors import InvalidOrderState, RoundingInvariantViolation
from settlement_engine.utils.money import Split, round2, split_total, to_decimal

logger = logging.getLogger(__name__)


def admin_commission_status(order: Order) -> str:
    """Cash and pay-at-hotel money is in hand once collected; online payments wait for a payout run"""
    if order.is_cash_payment and (order.cash_collected or order.payment.status == PaymentStatus.COMPLETED):
        return "received"
    return "pending_settlement"


def settlement_status(order: Order) -> str:
    if order.status == OrderStatus.CANCELLED:
        return "cancelled"
    if order.status == OrderStatus.DELIVERED:
        return "completed"
    return "pending"


def stored_split(order: Order) -> Split:
    """The order's own breakdown amounts, which must still add up to its total"""
    breakdown = order.commission_breakdown
    split = Split(restaurant=round2(breakdown.restaurant), admin=round2(breakdown.admin), hotel=round2(breakdown.hotel))
    total = round2(order.pricing.total)
    remainder = to_decimal(total) - to_decimal(split.total)
    if abs(remainder) > to_decimal(settings.ROUNDING_TOLERANCE):
        raise RoundingInvariantViolation(
            f"Stored breakdown {split.restaurant} + {split.admin} + {split.hotel} "
            f"deviates from total {total} by {float(remainder)}",
            {
                "total": total,
                "shares": split._asdict(),
                "remainder": float(remainder),
                "tolerance": settings.ROUNDING_TOLERANCE,
            },
        )
    return split


def breakdown_percentages(split: Split, total: float) -> CommissionPercentages:
    if total <= 0:
        return CommissionPercentages()
    pct = {party: round2(to_decimal(amount) * 100 / to_decimal(total)) for party, amount in split._asdict().items()}
    return CommissionPercentages(**pct)


async def compute_split(order: Order, configs: CommissionConfigService) -> Tuple[Split, CommissionPercentages, str]:
    """
    Money split for an order; shared with the aggregate reader.
    A stored breakdown is authoritative, otherwise the resolved percentages split the total.
    """
    if order.commission_breakdown is not None:
        split = stored_split(order)
        if order.commission_percentages is not None:
            percentages = order.commission_percentages.normalized()
        else:
            percentages = breakdown_percentages(split, round2(order.pricing.total))
        return split, percentages, "order_breakdown"

    percentages, source = await configs.resolve_for_order(order)
    split = split_total(order.pricing.total, percentages.restaurant, percentages.admin, percentages.hotel)
    return split, percentages, source


class SettlementCalculator:

    def __init__(
        self,
        orders: Optional[OrderStore] = None,
        settlements: Optional[SettlementStore] = None,
        configs: Optional[CommissionConfigService] = None,
        resolver: Optional[VendorResolver] = None,
    ):
        self.resolver = resolver or VendorResolver()
        self.orders = orders or OrderStore()
        self.settlements = settlements or SettlementStore()
        self.configs = configs or CommissionConfigService(self.resolver)

    async def calculate(self, order_id: str) -> SettlementRecord:
        order = await self.orders.get(order_id)
        return await self.settle(order)

    async def get_order_settlement(self, order_id: str) -> SettlementRecord:
        """Stored settlement, calculated on first access"""
        order = await self.orders.get(order_id)
        existing = await self.settlements.get(order.id)
        if existing is not None:
            return existing
        return await self.settle(order)

    async def settle(self, order: Order) -> SettlementRecord:
        total = round2(order.pricing.total)
        if total <= 0:
            raise InvalidOrderState.non_positive_total(order.order_number or order.id, total)

        if order.status == OrderStatus.CANCELLED:
            record = await self.build_record(order, None, order.commission_percentages)
            return await self.settlements.save(record)

        try:
            split, percentages, source = await compute_split(order, self.configs)
        except RoundingInvariantViolation as exc:
            logger.warning("⚠️ Data integrity: order %s – %s", order.order_number or order.id, exc.message)
            exc.details["orderId"] = order.id
            raise

        record = await self.build_record(order, split, percentages)
        saved = await self.settlements.save(record)

        if order.commission_breakdown is None:
            breakdown = CommissionBreakdown(restaurant=split.restaurant, admin=split.admin, hotel=split.hotel)
            await self.orders.store_breakdown_if_absent(order, breakdown, percentages)
        logger.debug("Order %s settled from %s", order.order_number or order.id, source)
        return saved

    async def build_record(self, order: Order, split: Optional[Split],
                           percentages: Optional[CommissionPercentages]) -> SettlementRecord:
        vendor_id = await self.resolver.canonical_id("restaurant", order.restaurant_id)
        hotel_id = await self.resolver.canonical_id("hotel", order.hotel_ref) if order.is_qr else None
        status = settlement_status(order)

        if status == "cancelled":
            # Cancellation wipes every earning regardless of what was calculated before
            return SettlementRecord(
                order_id=order.id,
                order_number=order.order_number,
                order_type=OrderType.QR if order.is_qr else OrderType.DIRECT,
                vendor_id=vendor_id,
                hotel_id=hotel_id,
                restaurant_earning=RestaurantEarning(),
                admin_earning=AdminEarning(),
                hotel_earning=HotelEarning(hotel_id=hotel_id) if hotel_id else None,
                commission_percentages=percentages,
                settlement_status=status,
                source_version=order.status_version,
            )

        total = round2(order.pricing.total)
        pricing = order.pricing
        return SettlementRecord(
            order_id=order.id,
            order_number=order.order_number,
            order_type=OrderType.QR if order.is_qr else OrderType.DIRECT,
            vendor_id=vendor_id,
            hotel_id=hotel_id,
            restaurant_earning=RestaurantEarning(
                food_price=total,
                # everything withheld from the restaurant (admin + hotel); party_total is the reconciling sum
                commission=round2(total - split.restaurant),
                net_earning=split.restaurant,
            ),
            admin_earning=AdminEarning(
                commission=split.admin,
                platform_fee=round2(pricing.platform_fee),
                delivery_fee=round2(pricing.delivery_fee),
                gst=round2(pricing.tax),
                hotel_commission=split.hotel,
                admin_commission_status=admin_commission_status(order),
            ),
            hotel_earning=HotelEarning(
                hotel_id=hotel_id,
                commission=split.hotel,
                status="completed" if status == "completed" else "pending",
            ) if hotel_id else None,
            commission_percentages=percentages,
            settlement_status=status,
            source_version=order.status_version,
        )
