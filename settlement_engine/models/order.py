"""
Order model – the slice of the marketplace order aggregate the settlement engine reads and writes
"""
from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional
from datetime import datetime
from enum import Enum
from bson import ObjectId


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}


class PaymentMethod(str, Enum):
    ONLINE = "online"
    RAZORPAY = "razorpay"
    CASH = "cash"
    PAY_AT_HOTEL = "pay_at_hotel"


CASH_METHODS = {PaymentMethod.CASH, PaymentMethod.PAY_AT_HOTEL}


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class OrderType(str, Enum):
    DIRECT = "DIRECT"
    QR = "QR"


class CamelModel(BaseModel):
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
    }


class Payment(CamelModel):
    method: PaymentMethod = PaymentMethod.ONLINE
    status: PaymentStatus = PaymentStatus.PENDING


class Pricing(CamelModel):
    subtotal: float = Field(default=0, ge=0)
    discount: float = Field(default=0, ge=0)
    delivery_fee: float = Field(default=0, ge=0)
    platform_fee: float = Field(default=0, ge=0)
    tax: float = Field(default=0, ge=0)
    total: float = 0


class CommissionBreakdown(CamelModel):
    """Per-order money split snapshot (amounts, not percentages)"""
    restaurant: float = 0
    admin: float = 0
    hotel: float = 0


class CommissionPercentages(CamelModel):
    """Percentages applied at order time. A missing party is the implicit remainder."""
    restaurant: Optional[float] = None
    admin: Optional[float] = None
    hotel: Optional[float] = None

    def normalized(self) -> "CommissionPercentages":
        hotel = self.hotel or 0
        admin = self.admin
        restaurant = self.restaurant
        if admin is None and restaurant is None:
            admin = 0
        if restaurant is None:
            restaurant = 100 - hotel - admin
        elif admin is None:
            admin = 100 - hotel - restaurant
        return CommissionPercentages(restaurant=restaurant, admin=admin, hotel=hotel)


class Order(CamelModel):
    id: str = Field(alias="_id")
    order_number: Optional[str] = Field(default=None, alias="orderId")
    status: OrderStatus = OrderStatus.PENDING
    status_version: int = 0
    payment: Payment = Field(default_factory=Payment)
    pricing: Pricing = Field(default_factory=Pricing)

    restaurant_id: Optional[str] = None
    restaurant_name: Optional[str] = None
    hotel_reference: Optional[str] = None
    hotel_id: Optional[str] = None
    hotel_name: Optional[str] = None
    order_type: Optional[OrderType] = None
    zone_id: Optional[str] = None

    commission_breakdown: Optional[CommissionBreakdown] = None
    commission_percentages: Optional[CommissionPercentages] = None

    cash_collected: bool = False
    commission_distributed: bool = False
    hotel_commission: Optional[float] = None
    admin_commission: Optional[float] = None
    restaurant_share: Optional[float] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    @field_validator("id", "restaurant_id", "hotel_reference", "hotel_id", "zone_id", mode="before")
    @classmethod
    def stringify_object_ids(cls, v):
        if isinstance(v, ObjectId):
            return str(v)
        return v

    @property
    def hotel_ref(self) -> Optional[str]:
        """Whichever hotel identifier the order carries (id or code)"""
        return self.hotel_id or self.hotel_reference

    @property
    def is_qr(self) -> bool:
        if self.order_type is not None:
            return self.order_type == OrderType.QR
        return bool(self.hotel_ref) or self.payment.method == PaymentMethod.PAY_AT_HOTEL

    @property
    def is_cash_payment(self) -> bool:
        return self.payment.method in CASH_METHODS


class OrderActionRequest(CamelModel):
    reason: Optional[str] = Field(default=None, max_length=500)
