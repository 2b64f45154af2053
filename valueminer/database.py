import logging

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING

from . import config

logger = logging.getLogger(__name__)

# MongoDB connection
client = AsyncIOMotorClient(config.MONGODB_URL, tz_aware=True)
database = client[config.DATABASE_NAME]

# Collections
users_collection = database["users"]
otp_collection = database["otps"]
clips_collection = database["clips"]
folders_collection = database["folders"]
intake_requests_collection = database["intake_requests"]
api_tokens_collection = database["api_tokens"]
report_preferences_collection = database["report_preferences"]


async def create_indexes():
    """Create database indexes for lookups, uniqueness and OTP auto-deletion"""
    try:
        # User indexes
        await users_collection.create_index("email", unique=True)
        await users_collection.create_index("user_id", unique=True)

        # OTP indexes with TTL (Time To Live) - auto-delete expired OTPs
        await otp_collection.create_index("expires_at", expireAfterSeconds=0)
        await otp_collection.create_index("email")

        # Clip indexes
        await clips_collection.create_index("id", unique=True)
        await clips_collection.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
        await clips_collection.create_index([("user_id", ASCENDING), ("video_id", ASCENDING)])

        # Folder names are unique per user, case-insensitively
        await folders_collection.create_index("id", unique=True)
        await folders_collection.create_index(
            [("user_id", ASCENDING), ("name_key", ASCENDING)], unique=True
        )

        await intake_requests_collection.create_index("id", unique=True)
        await api_tokens_collection.create_index("token_hash", unique=True)
        await api_tokens_collection.create_index([("user_id", ASCENDING), ("revoked_at", ASCENDING)])
        await report_preferences_collection.create_index("user_id", unique=True)

        logger.info("✅ Database indexes created successfully")
    except Exception as e:
        logger.warning(f"⚠️  Index creation warning: {e}")


async def close_db_connection():
    """Close database connection"""
    client.close()
    logger.info("📤 Database connection closed")


async def test_connection():
    """Test MongoDB connection"""
    try:
        await client.admin.command("ping")
        logger.info("✅ MongoDB connected successfully")
        return True
    except Exception as e:
        logger.error(f"❌ MongoDB connection failed: {e}")
        return False
