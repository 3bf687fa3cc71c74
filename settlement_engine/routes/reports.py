"""
Commission reporting API routes – dashboard totals over many orders
"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import Optional

from settlement_engine.models.commission import VendorType
from settlement_engine.models.order import OrderType
from settlement_engine.models.report import ReportFilter
from settlement_engine.services.aggregate_reader import AggregateReader
from settlement_engine.utils.helpers import parse_date_bound

router = APIRouter(prefix="/reports", tags=["Reports"])


def get_reader() -> AggregateReader:
    return AggregateReader()


def report_filter(
    date_from: Optional[str] = Query(None, alias="dateFrom", description="YYYY-MM-DD or ISO timestamp"),
    date_to: Optional[str] = Query(None, alias="dateTo", description="YYYY-MM-DD (inclusive) or ISO timestamp"),
    vendor_type: Optional[VendorType] = Query(None, alias="vendorType"),
    vendor_id: Optional[str] = Query(None, alias="vendorId"),
    zone_id: Optional[str] = Query(None, alias="zoneId"),
    order_type: Optional[OrderType] = Query(None, alias="orderType"),
) -> ReportFilter:
    try:
        start = parse_date_bound(date_from)
        end = parse_date_bound(date_to, end_of_day=True)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid date format")

    return ReportFilter(
        date_from=start,
        date_to=end,
        vendor_type=vendor_type,
        vendor_id=vendor_id,
        zone_id=zone_id,
        order_type=order_type,
    )


@router.get("/commission-summary")
async def commission_summary(
    filters: ReportFilter = Depends(report_filter),
    reader: AggregateReader = Depends(get_reader),
):
    """Revenue and commission totals; legacy orders without a breakdown are recomputed"""
    summary = await reader.summarize(filters)
    return {"success": True, "summary": summary.model_dump(by_alias=True, mode="json")}


@router.get("/commission-summary/by-vendor")
async def commission_summary_by_vendor(
    filters: ReportFilter = Depends(report_filter),
    reader: AggregateReader = Depends(get_reader),
):
    vendors = await reader.summarize_by_vendor(filters)
    return {
        "success": True,
        "count": len(vendors),
        "vendors": [v.model_dump(by_alias=True, mode="json") for v in vendors],
    }


@router.get("/hotels/{hotel_id}/order-stats")
async def hotel_order_stats(hotel_id: str, reader: AggregateReader = Depends(get_reader)):
    """Request counts, revenue, distributed hotel earnings and cash collected for one hotel"""
    stats = await reader.hotel_order_stats(hotel_id)
    return {"success": True, "stats": stats.model_dump(by_alias=True, mode="json")}
