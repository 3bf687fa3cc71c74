import asyncio

import pytest

from settlement_engine.config.database import Collections
from settlement_engine.models.order import OrderStatus
from settlement_engine.services.notifications import register_listener
from settlement_engine.services.reconciler import StatusTransitionReconciler
from settlement_engine.utils.errors import (
    ConcurrentModificationConflict,
    ConfigNotFound,
    InvalidOrderState,
    SettlementError,
)


async def _stored_order(db, order):
    return await db[Collections.ORDERS].find_one({"_id": order["_id"]})


async def _stored_settlement(db, order):
    return await db[Collections.ORDER_SETTLEMENTS].find_one({"orderId": str(order["_id"])})


async def test_online_order_lifecycle_completes_settlement(db, set_policy, make_order):
    await set_policy("direct", admin=25, restaurant=75)
    order = await make_order(total=1000, method="razorpay")
    order_id = str(order["_id"])
    reconciler = StatusTransitionReconciler()

    confirmed = await reconciler.transition(order_id, "confirm_payment")
    assert confirmed.order.status.value == "confirmed"
    assert confirmed.order.payment.status.value == "completed"
    assert confirmed.settlement.settlement_status == "pending"
    assert confirmed.settlement.admin_earning.commission == 250

    for action in ("start_preparing", "mark_ready", "dispatch"):
        result = await reconciler.transition(order_id, action)
        assert result.settlement is None

    delivered = await reconciler.transition(order_id, "deliver")
    assert delivered.previous_status.value == "out_for_delivery"
    assert delivered.settlement.settlement_status == "completed"
    assert delivered.settlement.admin_earning.admin_commission_status == "pending_settlement"
    assert delivered.settlement.source_version == 5

    stored = await _stored_settlement(db, order)
    assert stored["settlementStatus"] == "completed"
    assert stored["restaurantEarning"]["netEarning"] == 750


async def test_cancel_after_settlement_zeroes_earnings(db, set_policy, make_order):
    await set_policy("direct", admin=25, restaurant=75)
    order = await make_order(total=1000)
    reconciler = StatusTransitionReconciler()

    await reconciler.transition(str(order["_id"]), "accept")
    result = await reconciler.transition(str(order["_id"]), "cancel", reason="Customer changed mind")

    record = result.settlement
    assert record.settlement_status == "cancelled"
    assert record.restaurant_earning.net_earning == 0
    assert record.admin_earning.commission == 0
    assert record.admin_earning.hotel_commission == 0
    assert record.party_total == 0

    stored = await _stored_order(db, order)
    assert stored["status"] == "cancelled"
    assert stored["cancellationReason"] == "Customer changed mind"
    assert (await _stored_settlement(db, order))["adminEarning"]["commission"] == 0


async def test_cancel_needs_no_commission_policy(db, make_order):
    order = await make_order(total=400)

    result = await StatusTransitionReconciler().transition(str(order["_id"]), "reject")

    assert result.order.status.value == "cancelled"
    assert result.settlement.settlement_status == "cancelled"


async def test_illegal_transition_leaves_order_untouched(db, set_policy, make_order):
    await set_policy("direct", admin=25, restaurant=75)
    order = await make_order(total=1000, status="delivered", statusVersion=4)

    with pytest.raises(InvalidOrderState) as exc_info:
        await StatusTransitionReconciler().transition(str(order["_id"]), "cancel")

    assert exc_info.value.details["currentStatus"] == "delivered"
    assert exc_info.value.details["requestedStatus"] == "cancelled"
    stored = await _stored_order(db, order)
    assert stored["status"] == "delivered"
    assert stored["statusVersion"] == 4
    assert await _stored_settlement(db, order) is None


async def test_unknown_action_is_rejected(db, make_order):
    order = await make_order()
    with pytest.raises(InvalidOrderState):
        await StatusTransitionReconciler().transition(str(order["_id"]), "teleport")


async def test_missing_policy_blocks_confirmation_before_any_write(db, make_order):
    order = await make_order(total=1000)

    with pytest.raises(ConfigNotFound):
        await StatusTransitionReconciler().transition(str(order["_id"]), "accept")

    stored = await _stored_order(db, order)
    assert stored["status"] == "pending"
    assert "statusVersion" not in stored


async def test_stale_version_loses_the_race(db, set_policy, make_order):
    await set_policy("direct", admin=25, restaurant=75)
    order = await make_order(total=1000)
    reconciler = StatusTransitionReconciler()
    snapshot = await reconciler.orders.get(str(order["_id"]))

    await reconciler.transition(str(order["_id"]), "accept")

    with pytest.raises(ConcurrentModificationConflict) as exc_info:
        await reconciler.orders.apply_transition(snapshot, OrderStatus.CANCELLED)
    assert exc_info.value.details["currentStatus"] == "confirmed"


async def test_cash_collection_distributes_qr_commission_once(db, set_policy, make_hotel, make_order):
    await make_hotel("HOTEL-001")
    await set_policy("qr", hotel=10, admin=20, restaurant=70)
    order = await make_order(
        total=500, status="out_for_delivery", method="pay_at_hotel",
        orderType="QR", hotelReference="HOTEL-001",
    )
    reconciler = StatusTransitionReconciler()

    result = await reconciler.transition(str(order["_id"]), "collect_payment")

    assert result.distribution.distributed is True
    assert result.distribution.hotel_share == 50
    assert result.settlement.settlement_status == "completed"
    assert result.settlement.admin_earning.admin_commission_status == "received"
    assert result.settlement.hotel_earning.status == "completed"

    stored = await _stored_order(db, order)
    assert stored["commissionDistributed"] is True
    assert stored["cashCollected"] is True
    assert stored["hotelCommission"] == 50
    assert stored["adminCommission"] == 100
    assert stored["restaurantShare"] == 350

    with pytest.raises(InvalidOrderState):
        await reconciler.transition(str(order["_id"]), "collect_payment")
    assert (await _stored_order(db, order))["hotelCommission"] == 50


async def test_concurrent_cash_collection_distributes_exactly_once(db, set_policy, make_hotel, make_order):
    await make_hotel("HOTEL-001")
    await set_policy("qr", hotel=10, admin=20, restaurant=70)
    order = await make_order(
        total=500, status="ready", method="cash",
        orderType="QR", hotelReference="HOTEL-001",
    )

    results = await asyncio.gather(
        StatusTransitionReconciler().transition(str(order["_id"]), "collect_payment"),
        StatusTransitionReconciler().transition(str(order["_id"]), "collect_payment"),
        return_exceptions=True,
    )

    succeeded = [r for r in results if not isinstance(r, Exception)]
    failed = [r for r in results if isinstance(r, Exception)]
    assert len(succeeded) == 1
    assert len(failed) == 1
    assert isinstance(failed[0], SettlementError)
    assert succeeded[0].distribution.distributed is True

    stored = await _stored_order(db, order)
    assert stored["statusVersion"] == 1
    assert stored["hotelCommission"] == 50


async def test_collect_payment_requires_cash_method(db, set_policy, make_order):
    await set_policy("direct", admin=25, restaurant=75)
    order = await make_order(total=1000, status="ready", method="online")

    with pytest.raises(InvalidOrderState) as exc_info:
        await StatusTransitionReconciler().transition(str(order["_id"]), "collect_payment")

    assert exc_info.value.invariant == "cash_payment_method"
    assert (await _stored_order(db, order))["status"] == "ready"


async def test_listeners_hear_completed_settlements_and_cannot_break_them(db, set_policy, make_order):
    await set_policy("direct", admin=25, restaurant=75)
    order = await make_order(total=1000, status="out_for_delivery", method="cash")
    heard = []

    async def broken_listener(record):
        raise RuntimeError("push gateway down")

    async def recording_listener(record):
        heard.append(record.order_id)

    register_listener(broken_listener)
    register_listener(recording_listener)

    result = await StatusTransitionReconciler().transition(str(order["_id"]), "collect_payment")

    assert result.settlement.settlement_status == "completed"
    assert heard == [str(order["_id"])]
    assert (await _stored_settlement(db, order))["settlementStatus"] == "completed"
