"""
Vendor resolver – restaurants and hotels are referenced either by their Mongo _id
or by a human-readable code (restaurantId / slug, hotelId such as HOTEL-...).
Everything downstream works with one canonical id: the _id hex string.
"""
import logging
from typing import Dict, List, Optional, Any, Tuple

from pydantic import BaseModel, Field

from settlement_engine.config.database import Collections
from settlement_engine.database.db_operations import db_ops, to_object_id
from settlement_engine.models.commission import VendorType
from settlement_engine.utils.errors import VendorNotFound

logger = logging.getLogger(__name__)

# Secondary code fields per vendor type
CODE_FIELDS = {
    "restaurant": ("restaurantId", "slug"),
    "hotel": ("hotelId",),
}

COLLECTIONS = {
    "restaurant": Collections.RESTAURANTS,
    "hotel": Collections.HOTELS,
}


class VendorRef(BaseModel):
    vendor_type: VendorType
    canonical_id: str
    codes: List[str] = Field(default_factory=list)
    name: Optional[str] = None
    document: Dict[str, Any] = Field(default_factory=dict)

    @property
    def identifiers(self) -> List[str]:
        """Every string form an order may carry for this vendor"""
        return [self.canonical_id] + [c for c in self.codes if c != self.canonical_id]


class VendorResolver:
    """Resolves id-or-code references; memoizes lookups for the lifetime of the instance"""

    def __init__(self):
        self._cache: Dict[Tuple[str, str], Optional[VendorRef]] = {}

    async def resolve(self, vendor_type: VendorType, reference: Any) -> Optional[VendorRef]:
        if reference is None or reference == "":
            return None
        key = (vendor_type, str(reference))
        if key not in self._cache:
            self._cache[key] = await self._lookup(vendor_type, reference)
        return self._cache[key]

    async def require(self, vendor_type: VendorType, reference: Any) -> VendorRef:
        vendor = await self.resolve(vendor_type, reference)
        if vendor is None:
            raise VendorNotFound(vendor_type, str(reference))
        return vendor

    async def canonical_id(self, vendor_type: VendorType, reference: Any) -> Optional[str]:
        """Canonical id when the vendor exists, otherwise the raw reference"""
        if reference is None or reference == "":
            return None
        vendor = await self.resolve(vendor_type, reference)
        return vendor.canonical_id if vendor else str(reference)

    async def _lookup(self, vendor_type: VendorType, reference: Any) -> Optional[VendorRef]:
        collection = COLLECTIONS[vendor_type]
        code_fields = CODE_FIELDS[vendor_type]

        doc = None
        oid = to_object_id(reference)
        if oid is not None:
            doc = await db_ops.get_by_id(collection, oid)
        if doc is None:
            doc = await db_ops.get_one(
                collection,
                {"$or": [{field: str(reference)} for field in code_fields]},
            )
        if doc is None:
            logger.debug("Vendor %s '%s' not found in directory", vendor_type, reference)
            return None

        codes = [str(doc[f]) for f in code_fields if doc.get(f)]
        return VendorRef(
            vendor_type=vendor_type,
            canonical_id=str(doc["_id"]),
            codes=codes,
            name=doc.get("name") or doc.get("hotelName"),
            document=doc,
        )


def order_vendor_filter(vendor: VendorRef) -> Dict:
    """
    The one place that knows how orders point at vendors.
    Hotel orders may carry hotelId (ObjectId) or hotelReference (id hex or code);
    restaurant orders carry restaurantId (ObjectId, id hex or code).
    """
    oid = to_object_id(vendor.canonical_id)
    string_forms = vendor.identifiers
    any_forms: List[Any] = string_forms + ([oid] if oid is not None else [])
    if vendor.vendor_type == "hotel":
        return {"$or": [
            {"hotelId": {"$in": any_forms}},
            {"hotelReference": {"$in": string_forms}},
        ]}
    return {"restaurantId": {"$in": any_forms}}
