from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
import os
import logging
from pathlib import Path

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

class Database:
    client: AsyncIOMotorClient = None
    db = None

    async def connect(self):
        try:
            mongo_url = os.environ['MONGO_URL']
            self.client = AsyncIOMotorClient(mongo_url)
            self.db = self.client[os.environ['DB_NAME']]
            # Verify connection
            await self.db.command("ping")
            logger.info(f"Connected to MongoDB: {os.environ['DB_NAME']}")

            await self._create_indexes()
            await self._seed_capabilities()
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    def get_db(self):
        return self.db

    async def _create_indexes(self):
        """Create MongoDB indexes for entitlement lookups."""
        try:
            # Accounts and plans - primary lookup keys
            await self.db.accounts.create_index("account_id", unique=True)
            await self.db.accounts.create_index("plan_id")
            await self.db.plans.create_index("plan_id", unique=True)
            await self.db.plans.create_index("price_monthly")

            # Capability catalog
            await self.db.capabilities.create_index("capability_id", unique=True)
            await self.db.capabilities.create_index([("category", 1), ("display_name", 1)])

            # Grants - one row per (plan, capability); upserts rely on this
            await self.db.plan_capability_grants.create_index(
                [("plan_id", 1), ("capability_id", 1)],
                unique=True
            )
            await self.db.plan_capability_grants.create_index("capability_id")

            # Audit log indexes - for timeline queries
            await self.db.audit_logs.create_index([("account_id", 1), ("timestamp", -1)])
            await self.db.audit_logs.create_index([("action", 1), ("timestamp", -1)])
            await self.db.audit_logs.create_index([("resource_type", 1), ("resource_id", 1)])
            logger.info("MongoDB indexes created/verified")
        except Exception as e:
            # Indexes may already exist, log but don't fail
            logger.warning(f"Index creation note: {e}")

    async def _seed_capabilities(self):
        """Seed the static capability catalog (idempotent, never overwrites admin edits)."""
        from services.capability_registry import CAPABILITY_CATALOG
        from datetime import datetime, timezone
        now = datetime.now(timezone.utc).isoformat()
        for capability_id, info in CAPABILITY_CATALOG.items():
            category = info.get("category")
            await self.db.capabilities.update_one(
                {"capability_id": capability_id},
                {"$setOnInsert": {
                    "capability_id": capability_id,
                    "display_name": info["display_name"],
                    "category": getattr(category, "value", category) or "other",
                    "is_active": True,
                    "description": None,
                    "created_at": now,
                }},
                upsert=True,
            )
        logger.info(f"Capability catalog seeded: {len(CAPABILITY_CATALOG)} entries")

# Global database instance
database = Database()

