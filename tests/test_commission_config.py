import asyncio

import pytest

from settlement_engine.config.database import Collections
from settlement_engine.config.settings import settings
from settlement_engine.models.commission import CommissionConfigCreate, CommissionShares
from settlement_engine.services.commission_config_service import CommissionConfigService
from settlement_engine.utils.errors import (
    ConcurrentModificationConflict,
    ConfigNotFound,
    InvalidCommissionConfig,
    VendorNotFound,
)


async def test_no_policy_anywhere_raises_config_not_found(db):
    with pytest.raises(ConfigNotFound) as exc_info:
        await CommissionConfigService().get_active_config("direct")
    assert exc_info.value.http_status == 404


async def test_system_default_used_only_when_configured(db, monkeypatch):
    monkeypatch.setattr(settings, "DEFAULT_DIRECT_ADMIN_SHARE", 20.0)
    config = await CommissionConfigService().get_active_config("direct")
    assert config.source == "system_default"
    assert config.shares.admin == 20.0
    assert config.shares.restaurant == 80.0


async def test_global_policy_versions_increase(db, set_policy):
    first = await set_policy("direct", admin=25, restaurant=75)
    second = await set_policy("direct", admin=20, restaurant=80)
    assert (first.version, second.version) == (1, 2)

    active = await CommissionConfigService().get_active_config("direct")
    assert active.version == 2
    assert active.shares.admin == 20

    history, total = await CommissionConfigService().list_versions("direct")
    assert total == 2
    assert [v.version for v in history] == [2, 1]
    assert [v.is_active for v in history] == [True, False]

    page, _ = await CommissionConfigService().list_versions("direct", skip=1, limit=1)
    assert [v.version for v in page] == [1]


async def test_rejected_policy_keeps_previous_version_active(db, set_policy):
    await set_policy("qr", hotel=10, admin=20, restaurant=70)

    with pytest.raises(InvalidCommissionConfig) as exc_info:
        await set_policy("qr", hotel=10, admin=20, restaurant=60)
    assert "100" in exc_info.value.message
    assert exc_info.value.details["total"] == 90

    active = await CommissionConfigService().get_active_config("qr")
    assert active.version == 1
    assert active.shares.restaurant == 70


async def test_direct_policy_cannot_carry_hotel_share(db, set_policy):
    with pytest.raises(InvalidCommissionConfig):
        await set_policy("direct", admin=20, restaurant=70, hotel=10)


def test_qr_user_key_is_restaurant_share():
    shares = CommissionShares.model_validate({"hotel": 10, "admin": 20, "user": 70})
    assert shares.restaurant == 70
    assert shares.family_total() == 100


async def test_vendor_policy_takes_precedence_over_global(db, set_policy, make_restaurant):
    restaurant = await make_restaurant("REST-777")
    await set_policy("direct", admin=25, restaurant=75)
    await set_policy("direct", vendor_id="REST-777", admin=10, restaurant=90)

    service = CommissionConfigService()
    by_code = await service.get_active_config("direct", "REST-777")
    by_id = await service.get_active_config("direct", str(restaurant["_id"]))

    assert by_code.source == "vendor_config"
    assert by_code.vendor_id == str(restaurant["_id"])
    assert by_id.shares.admin == by_code.shares.admin == 10

    other = await service.get_active_config("direct", "REST-OTHER")
    assert other.source == "global"
    assert other.shares.admin == 25


async def test_vendor_directory_fields_override_global(db, set_policy, make_hotel, make_restaurant):
    await set_policy("qr", hotel=10, admin=20, restaurant=70)
    await set_policy("direct", admin=25, restaurant=75)
    await make_hotel("HOTEL-9", commission=15, adminCommission=5)
    await make_restaurant("REST-9", commissionPercentage=12)

    service = CommissionConfigService()
    qr = await service.get_active_config("qr", "HOTEL-9")
    assert qr.source == "vendor_directory"
    assert (qr.shares.hotel, qr.shares.admin, qr.shares.restaurant) == (15, 5, 80)

    direct = await service.get_active_config("direct", "REST-9")
    assert direct.source == "vendor_directory"
    assert (direct.shares.admin, direct.shares.restaurant) == (12, 88)


async def test_vendor_policy_for_unknown_vendor_is_rejected(db):
    with pytest.raises(VendorNotFound):
        await CommissionConfigService().set_config(CommissionConfigCreate(
            scope="direct",
            vendor_id="REST-MISSING",
            shares=CommissionShares(admin=20, restaurant=80),
        ))


async def test_concurrent_saves_leave_one_active_version(db, set_policy, interleaved_reads):
    results = await asyncio.gather(
        set_policy("direct", admin=20, restaurant=80),
        set_policy("direct", admin=30, restaurant=70),
        return_exceptions=True,
    )

    conflicts = [r for r in results if isinstance(r, ConcurrentModificationConflict)]
    assert len(conflicts) == 1
    assert conflicts[0].details["version"] == 1
    assert await db[Collections.COMMISSION_SETTINGS].count_documents({"scope": "direct", "isActive": True}) == 1


async def test_directory_override_beyond_100_percent_names_the_vendor(db, set_policy, make_hotel):
    await set_policy("qr", hotel=10, admin=20, restaurant=70)
    hotel = await make_hotel("HOTEL-OVER", commission=60, adminCommission=50)

    with pytest.raises(InvalidCommissionConfig) as exc_info:
        await CommissionConfigService().get_active_config("qr", "HOTEL-OVER")

    details = exc_info.value.details
    assert details["source"] == "vendor_directory"
    assert details["vendorId"] == str(hotel["_id"])
    assert details["shares"] == {"restaurant": -10, "admin": 50, "hotel": 60}


async def test_out_of_range_system_default_is_rejected(db, monkeypatch):
    monkeypatch.setattr(settings, "DEFAULT_DIRECT_ADMIN_SHARE", 120)

    with pytest.raises(InvalidCommissionConfig) as exc_info:
        await CommissionConfigService().get_active_config("direct")

    assert exc_info.value.details["source"] == "system_default"
    assert exc_info.value.invariant == "shares_within_0_and_100"
    assert exc_info.value.http_status == 422
