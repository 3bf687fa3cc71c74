"""
Commission Configuration Store – append-only, versioned percentage policies.

Resolution order for a scope (direct | qr) and optional vendor:
    1. active vendor-scoped version in commission_settings
    2. override fields on the vendor's own directory record
    3. active global version for the scope
    4. system default from settings (only if configured)
    5. ConfigNotFound – the engine never guesses a split
"""
import logging
from typing import Dict, List, Optional, Tuple

from pymongo.errors import DuplicateKeyError

from settlement_engine.config.database import db_config, Collections
from settlement_engine.config.settings import settings
from settlement_engine.database.db_operations import db_ops, utcnow, with_store_retry
from settlement_engine.models.commission import (
    CommissionConfig,
    CommissionConfigCreate,
    CommissionScope,
    CommissionShares,
    VendorType,
)
from settlement_engine.models.order import CommissionPercentages, Order
from settlement_engine.services.vendor_resolver import VendorResolver, VendorRef
from settlement_engine.utils.errors import (
    ConcurrentModificationConflict,
    ConfigNotFound,
    InvalidCommissionConfig,
)

logger = logging.getLogger(__name__)

SCOPE_VENDOR_TYPE = {"direct": "restaurant", "qr": "hotel"}


def validate_shares(scope: CommissionScope, shares: CommissionShares) -> None:
    """Each family must sum to exactly 100; direct policies carry no hotel share"""
    if scope == "direct" and shares.hotel:
        raise InvalidCommissionConfig(
            "Direct commission has no hotel share",
            {"scope": scope, "shares": shares.model_dump()},
        )
    total = shares.family_total()
    if total != 100:
        label = "Direct" if scope == "direct" else "QR"
        raise InvalidCommissionConfig(
            f"{label} commission percentages must sum to 100% (got {total}%)",
            {"scope": scope, "shares": shares.model_dump(), "total": total},
        )


def _remainder_shares(scope: CommissionScope, admin_pct: float, hotel_pct: float, origin: Dict) -> CommissionShares:
    """Shares where the restaurant takes whatever admin and hotel leave; each part must stay within 0..100"""
    restaurant_pct = 100 - admin_pct - hotel_pct
    parts = {"restaurant": restaurant_pct, "admin": admin_pct, "hotel": hotel_pct}
    if any(pct < 0 or pct > 100 for pct in parts.values()):
        err = InvalidCommissionConfig(
            f"{scope.upper()} commission override leaves an out-of-range share "
            f"(admin {admin_pct}%, hotel {hotel_pct}%, restaurant {restaurant_pct}%)",
            {"scope": scope, "shares": parts, **origin},
        )
        err.invariant = "shares_within_0_and_100"
        raise err
    return CommissionShares(**parts)


def _directory_override(scope: CommissionScope, vendor: VendorRef) -> Optional[CommissionShares]:
    doc = vendor.document
    origin = {"source": "vendor_directory", "vendorType": vendor.vendor_type, "vendorId": vendor.canonical_id}
    if scope == "qr":
        hotel_pct = doc.get("commission")
        admin_pct = doc.get("adminCommission")
        if hotel_pct is None and admin_pct is None:
            return None
        return _remainder_shares(scope, float(admin_pct or 0), float(hotel_pct or 0), origin)

    admin_pct = doc.get("commissionPercentage")
    if admin_pct is None:
        return None
    return _remainder_shares(scope, float(admin_pct), 0, origin)


def _system_default(scope: CommissionScope) -> Optional[CommissionShares]:
    origin = {"source": "system_default"}
    if scope == "direct":
        if settings.DEFAULT_DIRECT_ADMIN_SHARE is None:
            return None
        return _remainder_shares(scope, settings.DEFAULT_DIRECT_ADMIN_SHARE, 0, origin)

    if settings.DEFAULT_QR_HOTEL_SHARE is None and settings.DEFAULT_QR_ADMIN_SHARE is None:
        return None
    hotel_pct = settings.DEFAULT_QR_HOTEL_SHARE or 0
    admin_pct = settings.DEFAULT_QR_ADMIN_SHARE or 0
    return _remainder_shares(scope, admin_pct, hotel_pct, origin)


class CommissionConfigService:

    def __init__(self, resolver: Optional[VendorResolver] = None):
        self.resolver = resolver or VendorResolver()

    async def get_active_config(
        self,
        scope: CommissionScope,
        vendor_id: Optional[str] = None,
        vendor_type: Optional[VendorType] = None,
    ) -> CommissionConfig:
        vendor_type = vendor_type or SCOPE_VENDOR_TYPE[scope]

        if vendor_id:
            vendor = await self.resolver.resolve(vendor_type, vendor_id)
            canonical = vendor.canonical_id if vendor else str(vendor_id)

            doc = await self._latest_active(scope, canonical)
            if doc:
                return CommissionConfig(**doc, source="vendor_config")

            if vendor is not None:
                shares = _directory_override(scope, vendor)
                if shares is not None:
                    return CommissionConfig(scope=scope, vendor_id=canonical, shares=shares, source="vendor_directory")

        doc = await self._latest_active(scope, None)
        if doc:
            return CommissionConfig(**doc, source="global")

        shares = _system_default(scope)
        if shares is not None:
            logger.warning("⚠️ Falling back to system default %s commission: %s", scope, shares.model_dump())
            return CommissionConfig(scope=scope, shares=shares, source="system_default")

        raise ConfigNotFound(scope, vendor_id)

    async def set_config(self, new_config: CommissionConfigCreate) -> CommissionConfig:
        """
        Persist a new version. Validation happens before any write, so a rejected
        config leaves the previously active version in place.
        """
        validate_shares(new_config.scope, new_config.shares)

        vendor_id = None
        if new_config.vendor_id:
            vendor_type = new_config.vendor_type or SCOPE_VENDOR_TYPE[new_config.scope]
            vendor = await self.resolver.require(vendor_type, new_config.vendor_id)
            vendor_id = vendor.canonical_id

        latest = await db_ops.get_one(
            Collections.COMMISSION_SETTINGS,
            {"scope": new_config.scope, "vendorId": vendor_id},
            sort=[("version", -1)],
        )
        version = (latest or {}).get("version", 0) + 1

        document = {
            "scope": new_config.scope,
            "vendorId": vendor_id,
            "version": version,
            "isActive": True,
            "shares": new_config.shares.model_dump(),
            "updatedBy": new_config.updated_by,
            "createdAt": utcnow(),
        }
        try:
            await db_ops.create(Collections.COMMISSION_SETTINGS, document)
        except DuplicateKeyError:
            raise ConcurrentModificationConflict(
                f"Commission config version {version} for scope '{new_config.scope}' was written concurrently",
                {"scope": new_config.scope, "vendorId": vendor_id, "version": version},
            )

        # Readers always take the highest active version, so the brief overlap
        # before this update never exposes two policies.
        coll = db_config.get_collection(Collections.COMMISSION_SETTINGS)
        await coll.update_many(
            {"scope": new_config.scope, "vendorId": vendor_id, "isActive": True, "version": {"$lt": version}},
            {"$set": {"isActive": False, "deactivatedAt": utcnow()}},
        )

        logger.info(
            "💼 Commission config v%d saved for %s%s: %s",
            version,
            new_config.scope,
            f" (vendor {vendor_id})" if vendor_id else "",
            document["shares"],
        )
        return CommissionConfig(**document, source="vendor_config" if vendor_id else "global")

    async def list_versions(self, scope: CommissionScope, vendor_id: Optional[str] = None,
                            vendor_type: Optional[VendorType] = None,
                            skip: int = 0, limit: int = 0) -> Tuple[List[CommissionConfig], int]:
        """Versions newest first, plus the total number of versions for paging"""
        canonical = None
        if vendor_id:
            canonical = await self.resolver.canonical_id(vendor_type or SCOPE_VENDOR_TYPE[scope], vendor_id)
        query = {"scope": scope, "vendorId": canonical}
        docs = await db_ops.get_all(
            Collections.COMMISSION_SETTINGS,
            query,
            skip=skip,
            limit=limit,
            sort=[("version", -1)],
        )
        total = await db_ops.count(Collections.COMMISSION_SETTINGS, query)
        source = "vendor_config" if canonical else "global"
        return [CommissionConfig(**doc, source=source) for doc in docs], total

    async def resolve_for_order(self, order: Order) -> Tuple[CommissionPercentages, str]:
        """
        Percentages that apply to an order: its own snapshot if it has one,
        otherwise the currently active policy for its vendor.
        Shared by the calculator and the aggregate reader.
        """
        if order.commission_percentages is not None:
            percentages = order.commission_percentages.normalized()
            source = "order_snapshot"
        elif order.is_qr:
            config = await self.get_active_config("qr", order.hotel_ref, "hotel")
            percentages, source = config.percentages(), config.source
        else:
            config = await self.get_active_config("direct", order.restaurant_id, "restaurant")
            percentages, source = config.percentages(), config.source

        if not percentages.restaurant:
            logger.warning(
                "⚠️ Order %s resolves to a 0%% vendor share (source: %s)",
                order.order_number or order.id,
                source,
            )
        return percentages, source

    async def _latest_active(self, scope: CommissionScope, vendor_id: Optional[str]):
        return await with_store_retry(lambda: db_ops.get_one(
            Collections.COMMISSION_SETTINGS,
            {"scope": scope, "vendorId": vendor_id, "isActive": True},
            sort=[("version", -1)],
        ))
