"""
Commission configuration model and schemas – versioned percentage policies
"""
from pydantic import AliasChoices, Field, field_validator
from typing import Optional, Literal
from datetime import datetime
from bson import ObjectId

from settlement_engine.models.order import CamelModel, CommissionPercentages

CommissionScope = Literal["direct", "qr"]
VendorType = Literal["restaurant", "hotel"]
ConfigSource = Literal["vendor_config", "vendor_directory", "global", "system_default", "order_snapshot", "order_breakdown"]


class CommissionShares(CamelModel):
    """
    Percentage shares of one policy family.
    direct: admin + restaurant = 100
    qr:     hotel + admin + restaurant = 100 ("user" is the legacy name of the restaurant remainder)
    """
    restaurant: float = Field(default=0, ge=0, le=100, validation_alias=AliasChoices("restaurant", "user"))
    admin: float = Field(default=0, ge=0, le=100)
    hotel: float = Field(default=0, ge=0, le=100)

    def family_total(self) -> float:
        return round(self.restaurant + self.admin + self.hotel, 6)

    def as_percentages(self) -> CommissionPercentages:
        return CommissionPercentages(restaurant=self.restaurant, admin=self.admin, hotel=self.hotel)


class CommissionConfigCreate(CamelModel):
    scope: CommissionScope
    shares: CommissionShares
    vendor_type: Optional[VendorType] = None
    vendor_id: Optional[str] = Field(default=None, description="Vendor id or code; omit for the global default")
    updated_by: Optional[str] = None


class CommissionConfig(CamelModel):
    id: Optional[str] = Field(default=None, alias="_id")
    scope: CommissionScope
    vendor_id: Optional[str] = None
    version: int = 0
    is_active: bool = True
    shares: CommissionShares
    source: ConfigSource = "global"
    updated_by: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_validator("id", "vendor_id", mode="before")
    @classmethod
    def stringify_object_ids(cls, v):
        if isinstance(v, ObjectId):
            return str(v)
        return v

    def percentages(self) -> CommissionPercentages:
        return self.shares.as_percentages()
