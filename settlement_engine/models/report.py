"""
Reporting models – filters and the commission accumulator
"""
from pydantic import Field
from typing import Optional
from datetime import datetime

from settlement_engine.models.commission import VendorType
from settlement_engine.models.order import CamelModel, OrderType
from settlement_engine.utils.money import round2, to_decimal


class ReportFilter(CamelModel):
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    vendor_type: Optional[VendorType] = None
    vendor_id: Optional[str] = None
    zone_id: Optional[str] = None
    order_type: Optional[OrderType] = None


class CommissionTotals(CamelModel):
    """
    Running totals over a set of orders.

    merge() adds field by field in Decimal and rounds to 2 places; since every
    input is already a 2-decimal amount the result is exact, so merge is
    associative and commutative and partitions can be combined in any order.
    """
    order_count: int = 0
    revenue: float = 0
    restaurant_commission: float = 0
    admin_commission: float = 0
    hotel_commission: float = 0
    fallback_orders: int = 0
    unresolved_orders: int = 0

    @property
    def combined_commission(self) -> float:
        return round2(to_decimal(self.admin_commission) + to_decimal(self.hotel_commission))

    def merge(self, other: "CommissionTotals") -> "CommissionTotals":
        return CommissionTotals(
            order_count=self.order_count + other.order_count,
            revenue=round2(to_decimal(self.revenue) + to_decimal(other.revenue)),
            restaurant_commission=round2(to_decimal(self.restaurant_commission) + to_decimal(other.restaurant_commission)),
            admin_commission=round2(to_decimal(self.admin_commission) + to_decimal(other.admin_commission)),
            hotel_commission=round2(to_decimal(self.hotel_commission) + to_decimal(other.hotel_commission)),
            fallback_orders=self.fallback_orders + other.fallback_orders,
            unresolved_orders=self.unresolved_orders + other.unresolved_orders,
        )

    __add__ = merge


class CommissionSummary(CommissionTotals):
    combined: float = 0

    @classmethod
    def from_totals(cls, totals: CommissionTotals) -> "CommissionSummary":
        return cls(**totals.model_dump(), combined=totals.combined_commission)


class VendorCommissionSummary(CamelModel):
    vendor_type: VendorType
    vendor_id: str
    vendor_name: Optional[str] = None
    earnings: CommissionSummary = Field(default_factory=CommissionSummary)


class HotelOrderStats(CamelModel):
    total_requests: int = 0
    pending: int = 0
    confirmed: int = 0
    completed: int = 0
    cancelled: int = 0
    total_revenue: float = 0
    your_earnings: float = 0
    total_cash_collected: float = 0
