"""
Aggregate Reporting Reader – commission rollups across many orders.

Orders are partitioned on whether they carry a stored commissionBreakdown:

    known   -> sum_known_breakdowns()         MongoDB $group over the stored amounts
    unknown -> recompute_unknown_breakdowns() same percentages + split the calculator uses

The two partition filters are exact complements ({$ne: null} / null), so every
order lands in exactly one pass; the passes are merged once at the end.
This module never writes.
"""
import logging
from typing import Any, Dict, List, Optional

from settlement_engine.config.database import Collections
from settlement_engine.database.db_operations import db_ops
from settlement_engine.models.order import Order, OrderStatus, OrderType, PaymentStatus
from settlement_engine.models.report import (
    CommissionSummary,
    CommissionTotals,
    HotelOrderStats,
    ReportFilter,
    VendorCommissionSummary,
)
from settlement_engine.services.commission_config_service import CommissionConfigService
from settlement_engine.services.settlement_calculator import compute_split
from settlement_engine.services.vendor_resolver import VendorResolver, order_vendor_filter
from settlement_engine.utils.errors import ConfigNotFound, InvalidCommissionConfig, RoundingInvariantViolation
from settlement_engine.utils.money import round2, to_decimal

logger = logging.getLogger(__name__)

HAS_BREAKDOWN = {"commissionBreakdown": {"$ne": None}}
MISSING_BREAKDOWN = {"commissionBreakdown": None}

QR_ORDER = {"$or": [
    {"orderType": "QR"},
    {"hotelReference": {"$ne": None}},
    {"hotelId": {"$ne": None}},
    {"payment.method": "pay_at_hotel"},
]}

# A group key of None means "everything in one bucket"
GroupKey = Optional[str]


class AggregateReader:

    def __init__(self, configs: Optional[CommissionConfigService] = None,
                 resolver: Optional[VendorResolver] = None):
        self.resolver = resolver or (configs.resolver if configs else VendorResolver())
        self.configs = configs or CommissionConfigService(self.resolver)

    # ─── public API ──────────────────────────────────────────────────────────

    async def summarize(self, report_filter: ReportFilter) -> CommissionSummary:
        match = await self.build_match(report_filter)
        known = await self.sum_known_breakdowns(match)
        unknown = await self.recompute_unknown_breakdowns(match)
        totals = known.get(None, CommissionTotals()) + unknown.get(None, CommissionTotals())
        return CommissionSummary.from_totals(totals)

    async def summarize_by_vendor(self, report_filter: ReportFilter) -> List[VendorCommissionSummary]:
        vendor_type = report_filter.vendor_type or "restaurant"
        group_field = "hotel" if vendor_type == "hotel" else "restaurant"
        match = await self.build_match(report_filter)
        if vendor_type == "hotel":
            match = {"$and": [match, QR_ORDER]}

        known = await self.sum_known_breakdowns(match, group_by=group_field)
        unknown = await self.recompute_unknown_breakdowns(match, group_by=group_field)

        merged: Dict[str, CommissionTotals] = {}
        names: Dict[str, Optional[str]] = {}
        for partition in (known, unknown):
            for raw_key, totals in partition.items():
                if raw_key is None:
                    continue
                vendor = await self.resolver.resolve(vendor_type, raw_key)
                key = vendor.canonical_id if vendor else str(raw_key)
                names.setdefault(key, vendor.name if vendor else None)
                merged[key] = merged.get(key, CommissionTotals()) + totals

        return [
            VendorCommissionSummary(
                vendor_type=vendor_type,
                vendor_id=key,
                vendor_name=names.get(key),
                earnings=CommissionSummary.from_totals(totals),
            )
            for key, totals in sorted(merged.items(), key=lambda kv: kv[1].combined_commission, reverse=True)
        ]

    async def hotel_order_stats(self, hotel_reference: str) -> HotelOrderStats:
        """Request counts, revenue, distributed hotel earnings and cash collected for one hotel"""
        hotel = await self.resolver.require("hotel", hotel_reference)
        orders = await db_ops.get_all(Collections.ORDERS, order_vendor_filter(hotel))

        stats = HotelOrderStats()
        revenue = earnings = cash = to_decimal(0)
        for doc in orders:
            order = Order(**doc)
            stats.total_requests += 1
            if order.status == OrderStatus.PENDING:
                stats.pending += 1
            elif order.status == OrderStatus.CONFIRMED:
                stats.confirmed += 1
            elif order.status == OrderStatus.DELIVERED:
                stats.completed += 1
            elif order.status == OrderStatus.CANCELLED:
                stats.cancelled += 1

            if order.status != OrderStatus.CANCELLED:
                revenue += to_decimal(order.pricing.total)
            if order.commission_distributed:
                earnings += to_decimal(order.hotel_commission)
            if order.is_cash_payment and order.cash_collected:
                cash += to_decimal(order.pricing.total)

        stats.total_revenue = round2(revenue)
        stats.your_earnings = round2(earnings)
        stats.total_cash_collected = round2(cash)
        return stats

    # ─── filters ─────────────────────────────────────────────────────────────

    async def build_match(self, report_filter: ReportFilter) -> Dict:
        """Settled, non-cancelled orders narrowed by the report filter"""
        clauses: List[Dict] = [
            {"status": {"$ne": OrderStatus.CANCELLED.value}},
            {"$or": [
                {"payment.status": PaymentStatus.COMPLETED.value},
                {"payment.method": {"$in": ["cash", "pay_at_hotel"]}, "status": OrderStatus.DELIVERED.value},
            ]},
        ]

        created: Dict[str, Any] = {}
        if report_filter.date_from:
            created["$gte"] = report_filter.date_from
        if report_filter.date_to:
            created["$lte"] = report_filter.date_to
        if created:
            clauses.append({"createdAt": created})

        if report_filter.zone_id:
            clauses.append({"zoneId": report_filter.zone_id})

        if report_filter.order_type == OrderType.QR:
            clauses.append(QR_ORDER)
        elif report_filter.order_type == OrderType.DIRECT:
            clauses.append({"$nor": [QR_ORDER]})

        if report_filter.vendor_id:
            vendor_type = report_filter.vendor_type or "restaurant"
            vendor = await self.resolver.require(vendor_type, report_filter.vendor_id)
            clauses.append(order_vendor_filter(vendor))

        return {"$and": clauses}

    # ─── pass 1: stored breakdowns ───────────────────────────────────────────

    async def sum_known_breakdowns(self, match: Dict, group_by: Optional[str] = None) -> Dict[GroupKey, CommissionTotals]:
        pipeline = [
            {"$match": {"$and": [match, HAS_BREAKDOWN]}},
            {"$group": {
                "_id": _group_expression(group_by),
                "orderCount": {"$sum": 1},
                "revenue": {"$sum": "$pricing.total"},
                "restaurant": {"$sum": "$commissionBreakdown.restaurant"},
                "admin": {"$sum": "$commissionBreakdown.admin"},
                "hotel": {"$sum": "$commissionBreakdown.hotel"},
            }},
        ]
        rows = await db_ops.aggregate(Collections.ORDERS, pipeline)

        results: Dict[GroupKey, CommissionTotals] = {}
        for row in rows:
            key = None if group_by is None else _key(row.get("_id"))
            totals = CommissionTotals(
                order_count=row.get("orderCount", 0),
                revenue=round2(row.get("revenue") or 0),
                restaurant_commission=round2(row.get("restaurant") or 0),
                admin_commission=round2(row.get("admin") or 0),
                hotel_commission=round2(row.get("hotel") or 0),
            )
            results[key] = results.get(key, CommissionTotals()) + totals
        return results

    # ─── pass 2: legacy orders without a breakdown ───────────────────────────

    async def recompute_unknown_breakdowns(self, match: Dict, group_by: Optional[str] = None) -> Dict[GroupKey, CommissionTotals]:
        docs = await db_ops.get_all(Collections.ORDERS, {"$and": [match, MISSING_BREAKDOWN]})

        results: Dict[GroupKey, CommissionTotals] = {}
        for doc in docs:
            order = Order(**doc)
            key = None if group_by is None else _order_key(order, group_by)
            totals = await self._fallback_totals(order)
            results[key] = results.get(key, CommissionTotals()) + totals

        if docs:
            logger.info("📊 Recomputed commission for %d legacy order(s) without a stored breakdown", len(docs))
        return results

    async def _fallback_totals(self, order: Order) -> CommissionTotals:
        revenue = round2(order.pricing.total)
        try:
            split, _, _ = await compute_split(order, self.configs)
        except (ConfigNotFound, InvalidCommissionConfig, RoundingInvariantViolation) as exc:
            logger.warning("⚠️ Legacy order %s left out of commission totals: %s",
                           order.order_number or order.id, exc.message)
            return CommissionTotals(order_count=1, revenue=revenue, unresolved_orders=1)

        return CommissionTotals(
            order_count=1,
            revenue=revenue,
            restaurant_commission=split.restaurant,
            admin_commission=split.admin,
            hotel_commission=split.hotel,
            fallback_orders=1,
        )


def _group_expression(group_by: Optional[str]):
    if group_by == "hotel":
        return {"$ifNull": ["$hotelId", "$hotelReference"]}
    if group_by == "restaurant":
        return "$restaurantId"
    return None


def _key(value: Any) -> GroupKey:
    return None if value is None else str(value)


def _order_key(order: Order, group_by: str) -> GroupKey:
    if group_by == "hotel":
        return order.hotel_ref
    return order.restaurant_id
