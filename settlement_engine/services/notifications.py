"""
Settlement notifications – the engine tells interested parties (push dispatch,
wallet sync, dashboards) that a settlement completed. Delivery is somebody
else's job; a failing listener is logged and never undoes the settlement write.
"""
import logging
from typing import Awaitable, Callable, List

from settlement_engine.models.settlement import SettlementRecord

logger = logging.getLogger(__name__)

SettlementListener = Callable[[SettlementRecord], Awaitable[None]]

_listeners: List[SettlementListener] = []


def register_listener(listener: SettlementListener) -> None:
    if listener not in _listeners:
        _listeners.append(listener)


def clear_listeners() -> None:
    _listeners.clear()


async def notify_settlement_completed(record: SettlementRecord) -> None:
    logger.info(
        "📣 Settlement completed for order %s (admin %s, restaurant %s, hotel %s)",
        record.order_number or record.order_id,
        record.admin_earning.commission,
        record.restaurant_earning.net_earning,
        record.admin_earning.hotel_commission,
    )
    for listener in list(_listeners):
        try:
            await listener(record)
        except Exception as e:
            # Never roll back a settlement because a listener failed
            logger.error("❌ Settlement listener %r failed for order %s: %s",
                         getattr(listener, "__name__", listener), record.order_id, e)
