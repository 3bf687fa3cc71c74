"""
Settlement Record Store – exactly one settlement document per order (unique orderId).

Writes are compare-and-set on `sourceVersion`, the order statusVersion the record
was computed from, so a recompute triggered by an older event can never
overwrite a newer one.
"""
import logging
from typing import Optional

from pymongo.errors import DuplicateKeyError

from settlement_engine.config.database import Collections
from settlement_engine.database.db_operations import db_ops, with_store_retry
from settlement_engine.models.settlement import SettlementRecord
from settlement_engine.utils.errors import ConcurrentModificationConflict

logger = logging.getLogger(__name__)


def _stale_writer(record: SettlementRecord, stored_version: int) -> ConcurrentModificationConflict:
    return ConcurrentModificationConflict(
        f"Settlement for order {record.order_id} is already at version {stored_version}; "
        f"refusing write computed from version {record.source_version}",
        {"orderId": record.order_id, "storedVersion": stored_version, "writerVersion": record.source_version},
    )


class SettlementStore:

    async def get(self, order_id: str) -> Optional[SettlementRecord]:
        doc = await with_store_retry(
            lambda: db_ops.get_one(Collections.ORDER_SETTLEMENTS, {"orderId": order_id})
        )
        return SettlementRecord(**doc) if doc else None

    async def save(self, record: SettlementRecord) -> SettlementRecord:
        """
        Upsert the settlement for record.order_id.
        An unchanged recompute is a no-op and returns the stored record untouched.
        """
        existing = await with_store_retry(
            lambda: db_ops.get_one(Collections.ORDER_SETTLEMENTS, {"orderId": record.order_id})
        )
        payload = record.payload()

        if existing is None:
            try:
                created = await db_ops.create(Collections.ORDER_SETTLEMENTS, dict(payload))
            except DuplicateKeyError:
                stored = await self.get(record.order_id)
                raise _stale_writer(record, stored.source_version if stored else record.source_version)
            logger.info("🧮 Settlement created for order %s (%s)", record.order_number or record.order_id,
                        record.settlement_status)
            return SettlementRecord(**created)

        stored = SettlementRecord(**existing)
        if record.source_version < stored.source_version:
            raise _stale_writer(record, stored.source_version)
        if stored.payload() == payload:
            return stored

        version_filter = (
            {"sourceVersion": stored.source_version}
            if "sourceVersion" in existing
            else {"sourceVersion": {"$exists": False}}
        )
        updated = await db_ops.conditional_update(
            Collections.ORDER_SETTLEMENTS,
            {"_id": existing["_id"], **version_filter},
            {"$set": payload},
        )
        if updated is None:
            raise _stale_writer(record, stored.source_version)

        logger.info("🧮 Settlement updated for order %s (%s, v%d)", record.order_number or record.order_id,
                    record.settlement_status, record.source_version)
        return SettlementRecord(**updated)
