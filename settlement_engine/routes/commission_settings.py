"""
Commission settings API routes – versioned direct / QR percentage policies.
Every save appends a new version; nothing is edited in place.
"""
from fastapi import APIRouter, Depends, Query, status
from typing import Optional

from settlement_engine.config.settings import settings
from settlement_engine.models.commission import CommissionConfigCreate, CommissionScope, VendorType
from settlement_engine.services.commission_config_service import CommissionConfigService
from settlement_engine.utils.helpers import serialize_doc, serialize_docs

router = APIRouter(prefix="/commission-settings", tags=["Commission Settings"])


def get_config_service() -> CommissionConfigService:
    return CommissionConfigService()


@router.get("/active")
async def get_active_commission(
    scope: CommissionScope = Query(...),
    vendor_id: Optional[str] = Query(None, alias="vendorId"),
    vendor_type: Optional[VendorType] = Query(None, alias="vendorType"),
    service: CommissionConfigService = Depends(get_config_service),
):
    """Policy in force for a scope, optionally for one vendor (id or code)"""
    config = await service.get_active_config(scope, vendor_id, vendor_type)
    return {"success": True, "config": serialize_doc(config.model_dump(by_alias=True))}


@router.get("/history")
async def list_commission_history(
    scope: CommissionScope = Query(...),
    vendor_id: Optional[str] = Query(None, alias="vendorId"),
    vendor_type: Optional[VendorType] = Query(None, alias="vendorType"),
    skip: int = Query(0, ge=0),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    service: CommissionConfigService = Depends(get_config_service),
):
    versions, total = await service.list_versions(scope, vendor_id, vendor_type, skip=skip, limit=limit)
    return {
        "success": True,
        "total": total,
        "count": len(versions),
        "versions": serialize_docs([v.model_dump(by_alias=True) for v in versions]),
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def save_commission_settings(
    body: CommissionConfigCreate,
    service: CommissionConfigService = Depends(get_config_service),
):
    config = await service.set_config(body)
    return {
        "success": True,
        "message": f"Commission settings saved (version {config.version})",
        "config": serialize_doc(config.model_dump(by_alias=True)),
    }
