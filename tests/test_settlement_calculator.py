import pytest

from settlement_engine.config.database import Collections
from settlement_engine.models.report import ReportFilter
from settlement_engine.services.aggregate_reader import AggregateReader
from settlement_engine.services.settlement_calculator import SettlementCalculator
from settlement_engine.utils.errors import (
    ConfigNotFound,
    InvalidCommissionConfig,
    InvalidOrderState,
    RoundingInvariantViolation,
)


async def test_direct_order_settles_with_global_policy(db, set_policy, make_restaurant, make_order):
    restaurant = await make_restaurant("REST-001")
    await set_policy("direct", admin=25, restaurant=75)
    order = await make_order(total=1000, restaurantId="REST-001")

    record = await SettlementCalculator().calculate(str(order["_id"]))

    assert record.restaurant_earning.food_price == 1000
    assert record.restaurant_earning.net_earning == 750
    assert record.restaurant_earning.commission == 250
    assert record.admin_earning.commission == 250
    assert record.admin_earning.hotel_commission == 0
    assert record.hotel_earning is None
    assert record.vendor_id == str(restaurant["_id"])
    assert record.settlement_status == "pending"
    assert record.party_total == 1000


async def test_breakdown_is_written_back_to_legacy_order(db, set_policy, make_order):
    await set_policy("direct", admin=25, restaurant=75)
    order = await make_order(total=1000)

    await SettlementCalculator().calculate(order["orderId"])

    stored = await db[Collections.ORDERS].find_one({"_id": order["_id"]})
    assert stored["commissionBreakdown"] == {"restaurant": 750.0, "admin": 250.0, "hotel": 0.0}
    assert stored["commissionPercentages"]["admin"] == 25


async def test_qr_order_splits_between_hotel_admin_and_restaurant(db, set_policy, make_hotel, make_order):
    hotel = await make_hotel("HOTEL-001")
    await set_policy("qr", hotel=10, admin=20, restaurant=70)
    order = await make_order(total=500, orderType="QR", hotelReference="HOTEL-001")

    record = await SettlementCalculator().calculate(str(order["_id"]))

    assert record.order_type.value == "QR"
    assert record.admin_earning.hotel_commission == 50
    assert record.admin_earning.commission == 100
    assert record.restaurant_earning.net_earning == 350
    assert record.hotel_earning.hotel_id == str(hotel["_id"])
    assert record.hotel_earning.commission == 50
    assert record.hotel_earning.status == "pending"
    assert record.party_total == 500


async def test_recalculation_is_idempotent(db, set_policy, make_order):
    await set_policy("direct", admin=25, restaurant=75)
    order = await make_order(total=1000)
    calculator = SettlementCalculator()

    first = await calculator.calculate(str(order["_id"]))
    stored_first = await db[Collections.ORDER_SETTLEMENTS].find_one({"orderId": str(order["_id"])})
    second = await calculator.calculate(str(order["_id"]))
    stored_second = await db[Collections.ORDER_SETTLEMENTS].find_one({"orderId": str(order["_id"])})

    assert first.payload() == second.payload()
    assert stored_first["updatedAt"] == stored_second["updatedAt"]
    assert await db[Collections.ORDER_SETTLEMENTS].count_documents({}) == 1


async def test_policy_change_does_not_move_snapshotted_orders(db, set_policy, make_order):
    await set_policy("direct", admin=25, restaurant=75)
    order = await make_order(total=1000)
    calculator = SettlementCalculator()
    await calculator.calculate(str(order["_id"]))

    await set_policy("direct", admin=40, restaurant=60)
    record = await calculator.calculate(str(order["_id"]))

    assert record.admin_earning.commission == 250
    assert record.commission_percentages.admin == 25


async def test_stored_breakdown_drives_settlement_and_report(db, set_policy, make_order):
    await set_policy("direct", admin=25, restaurant=75)
    order = await make_order(
        total=1000,
        payment_status="completed",
        commissionBreakdown={"restaurant": 800, "admin": 200, "hotel": 0},
    )

    record = await SettlementCalculator().calculate(str(order["_id"]))
    summary = await AggregateReader().summarize(ReportFilter())

    assert record.admin_earning.commission == 200
    assert record.restaurant_earning.net_earning == 800
    assert record.commission_percentages.admin == 20
    assert summary.admin_commission == record.admin_earning.commission
    assert summary.restaurant_commission == record.restaurant_earning.net_earning
    stored = await db[Collections.ORDERS].find_one({"_id": order["_id"]})
    assert stored["commissionBreakdown"] == {"restaurant": 800, "admin": 200, "hotel": 0}


async def test_stored_breakdown_that_misses_the_total_is_refused(db, set_policy, make_order):
    await set_policy("direct", admin=25, restaurant=75)
    order = await make_order(total=1000, commissionBreakdown={"restaurant": 800, "admin": 150, "hotel": 0})

    with pytest.raises(RoundingInvariantViolation) as exc_info:
        await SettlementCalculator().calculate(str(order["_id"]))

    assert exc_info.value.details["remainder"] == 50
    assert exc_info.value.details["orderId"] == str(order["_id"])
    assert await db[Collections.ORDER_SETTLEMENTS].count_documents({}) == 0


async def test_restaurant_commission_is_everything_withheld(db, set_policy, make_hotel, make_order):
    await make_hotel("HOTEL-001")
    await set_policy("qr", hotel=10, admin=20, restaurant=70)
    order = await make_order(total=333.33, orderType="QR", hotelReference="HOTEL-001")

    record = await SettlementCalculator().calculate(str(order["_id"]))

    withheld = round(record.admin_earning.commission + record.admin_earning.hotel_commission, 2)
    assert record.restaurant_earning.commission == withheld
    assert round(record.restaurant_earning.net_earning + withheld, 2) == 333.33
    assert record.party_total == record.restaurant_earning.food_price == 333.33


async def test_hotel_override_beyond_100_percent_is_a_config_error(db, make_hotel, make_order):
    hotel = await make_hotel("HOTEL-OVER", commission=60, adminCommission=50)
    order = await make_order(total=500, orderType="QR", hotelReference="HOTEL-OVER")

    with pytest.raises(InvalidCommissionConfig) as exc_info:
        await SettlementCalculator().calculate(str(order["_id"]))

    details = exc_info.value.details
    assert exc_info.value.invariant == "shares_within_0_and_100"
    assert details["vendorType"] == "hotel"
    assert details["vendorId"] == str(hotel["_id"])
    assert details["shares"]["restaurant"] == -10
    assert await db[Collections.ORDER_SETTLEMENTS].count_documents({}) == 0


async def test_non_positive_total_is_refused(db, set_policy, make_order):
    await set_policy("direct", admin=25, restaurant=75)
    order = await make_order(total=0)

    with pytest.raises(InvalidOrderState) as exc_info:
        await SettlementCalculator().calculate(str(order["_id"]))

    assert exc_info.value.invariant == "positive_order_total"
    assert await db[Collections.ORDER_SETTLEMENTS].count_documents({}) == 0


async def test_missing_policy_is_reported_not_guessed(db, make_order):
    order = await make_order(total=300)

    with pytest.raises(ConfigNotFound):
        await SettlementCalculator().calculate(str(order["_id"]))
    assert await db[Collections.ORDER_SETTLEMENTS].count_documents({}) == 0


async def test_broken_snapshot_percentages_raise_rounding_violation(db, make_order):
    order = await make_order(
        total=1000,
        commissionPercentages={"restaurant": 70, "admin": 20, "hotel": 0},
    )

    with pytest.raises(RoundingInvariantViolation) as exc_info:
        await SettlementCalculator().calculate(str(order["_id"]))

    assert exc_info.value.details["orderId"] == str(order["_id"])
    assert await db[Collections.ORDER_SETTLEMENTS].count_documents({}) == 0


async def test_get_order_settlement_calculates_on_first_access(db, set_policy, make_order):
    await set_policy("direct", admin=25, restaurant=75)
    order = await make_order(total=200)
    calculator = SettlementCalculator()

    record = await calculator.get_order_settlement(order["orderId"])
    again = await calculator.get_order_settlement(str(order["_id"]))

    assert record.admin_earning.commission == 50
    assert again.payload() == record.payload()
