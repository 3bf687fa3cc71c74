"""
Settlement API routes
"""
from fastapi import APIRouter, Depends

from settlement_engine.services.settlement_calculator import SettlementCalculator
from settlement_engine.utils.helpers import serialize_doc

router = APIRouter(prefix="/settlements", tags=["Settlements"])


def get_calculator() -> SettlementCalculator:
    return SettlementCalculator()


@router.get("/{order_id}")
async def get_order_settlement(order_id: str, calculator: SettlementCalculator = Depends(get_calculator)):
    """Stored settlement for an order, calculated on first access"""
    record = await calculator.get_order_settlement(order_id)
    return {"success": True, "settlement": serialize_doc(record.model_dump(by_alias=True))}


@router.post("/{order_id}/calculate")
async def calculate_order_settlement(order_id: str, calculator: SettlementCalculator = Depends(get_calculator)):
    """Recompute the settlement from the order's current state; unchanged results are not rewritten"""
    record = await calculator.calculate(order_id)
    return {"success": True, "settlement": serialize_doc(record.model_dump(by_alias=True))}
