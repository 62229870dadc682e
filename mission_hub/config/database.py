# mission_hub/config/database.py - MongoDB connection lifecycle and indexes

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
import logging
from .settings import settings

logger = logging.getLogger(__name__)

# Global database client
_client: AsyncIOMotorClient = None
_database: AsyncIOMotorDatabase = None

async def connect_to_mongo():
    """Create database connection"""
    global _client, _database

    try:
        logger.info("🔌 Connecting to MongoDB...")

        _client = AsyncIOMotorClient(
            settings.mongodb_url,
            maxPoolSize=settings.mongodb_max_pool_size,
            minPoolSize=settings.mongodb_min_pool_size,
            maxIdleTimeMS=settings.mongodb_max_idle_time_ms,
            serverSelectionTimeoutMS=settings.mongodb_server_selection_timeout_ms
        )

        _database = _client[settings.database_name]

        # Test connection
        await _database.command("ping")
        logger.info("✅ Connected to MongoDB successfully")

    except Exception as e:
        logger.error(f"❌ Failed to connect to MongoDB: {e}")
        raise

def set_database(database: AsyncIOMotorDatabase):
    """Install an already-built database handle (used by tests and scripts)"""
    global _database
    _database = database

def get_database() -> AsyncIOMotorDatabase:
    """Get database instance"""
    if _database is None:
        raise RuntimeError("Database not initialized. Call connect_to_mongo() first.")
    return _database

async def close_mongo_connection():
    """Close database connection"""
    global _client, _database
    if _client:
        _client.close()
        _client = None
        _database = None
        logger.info("🔌 MongoDB connection closed")

async def create_indexes():
    """Create indexes for the mission, enrollment, group and mentor collections"""
    try:
        db = get_database()
        logger.info("📊 Creating database indexes...")

        # ============================================================================
        # MISSIONS
        # ============================================================================
        await db.missions.create_index("code", unique=True)
        await db.missions.create_index([("batch_id", 1), ("status", 1)])
        await db.missions.create_index("students.student_id")  # Legacy embedded roster

        # ============================================================================
        # STUDENT MISSIONS
        # ============================================================================
        # Not unique: dropped records are kept as history next to a fresh enrollment
        await db.student_missions.create_index([("mission_id", 1), ("student_id", 1)])
        await db.student_missions.create_index([("mission_id", 1), ("status", 1)])
        await db.student_missions.create_index([("mission_id", 1), ("mentor_id", 1)])
        await db.student_missions.create_index("mentorship_group_id")
        await db.student_missions.create_index([("student_id", 1), ("status", 1)])

        # ============================================================================
        # MENTORSHIP GROUPS
        # ============================================================================
        await db.mentorship_groups.create_index([("mission_id", 1), ("status", 1)])
        await db.mentorship_groups.create_index("students")
        await db.mentorship_groups.create_index("mentors")
        await db.mentorship_groups.create_index("primary_mentor_id")
        await db.mentorship_groups.create_index([("mission_id", 1), ("is_recovery", 1)])

        # ============================================================================
        # GROUP TRANSFER LOGS
        # ============================================================================
        await db.group_transfer_logs.create_index([("mission_id", 1), ("created_at", -1)])
        await db.group_transfer_logs.create_index("student_id")

        # ============================================================================
        # MISSION MENTORS
        # ============================================================================
        await db.mission_mentors.create_index([("mission_id", 1), ("mentor_id", 1)], unique=True)
        await db.mission_mentors.create_index([("mission_id", 1), ("status", 1)])

        # ============================================================================
        # COLLABORATOR COLLECTIONS (read-only here)
        # ============================================================================
        await db.batch_memberships.create_index([("batch_id", 1), ("status", 1)])
        await db.batch_memberships.create_index([("student_id", 1), ("batch_id", 1)])
        await db.users.create_index("role")

        logger.info("✅ Database indexes created")

    except Exception as e:
        logger.error(f"❌ Error creating indexes: {e}")
        raise

# Export functions
__all__ = [
    "get_database",
    "set_database",
    "connect_to_mongo",
    "close_mongo_connection",
    "create_indexes",
]
