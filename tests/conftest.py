"""
Shared fixtures: an in-memory Motor-compatible database per test plus small
factories for orders, vendors and commission policies.
"""
import asyncio
import uuid
from datetime import datetime

import pytest
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient

from settlement_engine.config.database import Collections, db_config, ensure_indexes
from settlement_engine.services.notifications import clear_listeners


@pytest.fixture
async def db():
    client = AsyncMongoMockClient()
    db_config.use_client(client, f"settlement_test_{uuid.uuid4().hex[:8]}")
    await ensure_indexes()
    yield db_config.database
    clear_listeners()


@pytest.fixture
def make_order(db):
    async def _make(total=1000.0, status="pending", method="online", payment_status="pending", **fields):
        doc = {
            "_id": ObjectId(),
            "orderId": fields.pop("orderId", f"ORD-{uuid.uuid4().hex[:6].upper()}"),
            "status": status,
            "payment": {"method": method, "status": payment_status},
            "pricing": {"subtotal": total, "total": total},
            "createdAt": fields.pop("createdAt", datetime(2026, 3, 10, 12, 0)),
        }
        doc.update(fields)
        await db[Collections.ORDERS].insert_one(doc)
        return doc
    return _make


@pytest.fixture
def make_restaurant(db):
    async def _make(code="REST-001", **fields):
        doc = {"_id": ObjectId(), "restaurantId": code, "name": fields.pop("name", "Spice Route"), **fields}
        await db[Collections.RESTAURANTS].insert_one(doc)
        return doc
    return _make


@pytest.fixture
def make_hotel(db):
    async def _make(code="HOTEL-001", **fields):
        doc = {"_id": ObjectId(), "hotelId": code, "hotelName": fields.pop("hotelName", "Lakeview Inn"), **fields}
        await db[Collections.HOTELS].insert_one(doc)
        return doc
    return _make


@pytest.fixture
def set_policy(db):
    """Save a commission policy through the service, the way the admin API does"""
    from settlement_engine.models.commission import CommissionConfigCreate, CommissionShares
    from settlement_engine.services.commission_config_service import CommissionConfigService

    async def _set(scope, vendor_id=None, vendor_type=None, **shares):
        return await CommissionConfigService().set_config(CommissionConfigCreate(
            scope=scope,
            vendor_id=vendor_id,
            vendor_type=vendor_type,
            shares=CommissionShares(**shares),
            updated_by="tests",
        ))
    return _set


@pytest.fixture
def interleaved_reads(monkeypatch):
    """Hand control back to the loop after every read so concurrent writers see the same snapshot"""
    from settlement_engine.database.db_operations import db_ops

    original = db_ops.get_one

    async def get_one(*args, **kwargs):
        doc = await original(*args, **kwargs)
        await asyncio.sleep(0)
        return doc

    monkeypatch.setattr(db_ops, "get_one", get_one)
