"""
Settlement record model – one normalized financial outcome per order.

Field names are stored camelCase (restaurantEarning.netEarning, adminEarning.gst, ...)
so records stay readable by the existing dashboards.
"""
from pydantic import Field
from typing import Optional, Literal
from datetime import datetime

from settlement_engine.models.order import CamelModel, CommissionPercentages, OrderType
from settlement_engine.utils.money import round2


class RestaurantEarning(CamelModel):
    food_price: float = 0
    commission: float = 0
    net_earning: float = 0


class AdminEarning(CamelModel):
    commission: float = 0
    platform_fee: float = 0
    delivery_fee: float = 0
    gst: float = 0
    hotel_commission: float = 0
    admin_commission_status: Literal["pending_settlement", "received"] = "pending_settlement"


class HotelEarning(CamelModel):
    hotel_id: Optional[str] = None
    commission: float = 0
    status: Literal["pending", "completed"] = "pending"


class SettlementRecord(CamelModel):
    order_id: str
    order_number: Optional[str] = None
    order_type: OrderType = OrderType.DIRECT
    vendor_id: Optional[str] = None
    hotel_id: Optional[str] = None

    restaurant_earning: RestaurantEarning = Field(default_factory=RestaurantEarning)
    admin_earning: AdminEarning = Field(default_factory=AdminEarning)
    hotel_earning: Optional[HotelEarning] = None
    commission_percentages: Optional[CommissionPercentages] = None

    settlement_status: Literal["pending", "completed", "cancelled"] = "pending"
    source_version: int = 0

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def party_total(self) -> float:
        """Restaurant net + admin commission + hotel commission"""
        return round2(
            self.restaurant_earning.net_earning
            + self.admin_earning.commission
            + self.admin_earning.hotel_commission
        )

    def payload(self) -> dict:
        """Stored representation without bookkeeping timestamps"""
        return self.model_dump(by_alias=True, mode="json", exclude={"created_at", "updated_at"})
