"""
Database configuration and connection management for MongoDB
"""
import logging
from motor.motor_asyncio import AsyncIOMotorClient
from typing import Optional
import os
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


class DatabaseConfig:
    """MongoDB database configuration"""

    def __init__(self):
        self.MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
        self.DATABASE_NAME = os.getenv("DATABASE_NAME", "settlement_db")
        self.client: Optional[AsyncIOMotorClient] = None
        self.database = None

    async def connect_db(self):
        """Connect to MongoDB"""
        try:
            self.client = AsyncIOMotorClient(self.MONGO_URI)
            self.database = self.client[self.DATABASE_NAME]
            # Test connection
            await self.client.admin.command('ping')
            logger.info("✅ Connected to MongoDB: %s", self.DATABASE_NAME)
        except Exception as e:
            logger.error("❌ Error connecting to MongoDB: %s", e)
            raise

    def use_client(self, client, database_name: Optional[str] = None):
        """Attach an already-built client (tests, scripts)"""
        self.client = client
        self.database = client[database_name or self.DATABASE_NAME]

    async def close_db(self):
        """Close MongoDB connection"""
        if self.client:
            self.client.close()
            logger.info("✅ MongoDB connection closed")

    def get_collection(self, collection_name: str):
        """Get a specific collection"""
        if self.database is None:
            raise Exception("Database not connected")
        return self.database[collection_name]


# Global database instance
db_config = DatabaseConfig()


# Collection names
class Collections:
    ORDERS = "orders"
    ORDER_SETTLEMENTS = "order_settlements"
    COMMISSION_SETTINGS = "commission_settings"

    # Vendor directory (read-only for the engine)
    RESTAURANTS = "restaurants"
    HOTELS = "hotels"


async def ensure_indexes():
    """Create the indexes the settlement engine relies on for uniqueness"""
    settlements = db_config.get_collection(Collections.ORDER_SETTLEMENTS)
    await settlements.create_index("orderId", unique=True)

    configs = db_config.get_collection(Collections.COMMISSION_SETTINGS)
    await configs.create_index(
        [("scope", 1), ("vendorId", 1), ("version", 1)], unique=True
    )

    orders = db_config.get_collection(Collections.ORDERS)
    await orders.create_index("orderId")
    await orders.create_index("createdAt")
