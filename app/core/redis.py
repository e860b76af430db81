import redis.asyncio as redis
from typing import Optional
from app.core.config import settings
import logging

logger = logging.getLogger(__name__)

class RedisClient:
    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.REDIS_URL
        self.redis = None

    async def connect(self):
        """Connect to Redis"""
        try:
            self.redis = redis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True
            )
            # Test connection
            await self.redis.ping()
            logger.info("✅ Redis connected successfully")
        except Exception as e:
            logger.error(f"❌ Redis connection failed: {str(e)}")
            raise

    async def disconnect(self):
        """Disconnect from Redis"""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            logger.info("Redis disconnected")

    async def client(self):
        """Return a connected redis.asyncio client"""
        if not self.redis:
            await self.connect()
        return self.redis

    async def get(self, key: str):
        """Get value by key"""
        conn = await self.client()
        return await conn.get(key)

    async def delete(self, key: str):
        """Delete key"""
        conn = await self.client()
        return await conn.delete(key)

    async def scan_keys(self, prefix: str):
        """Collect all keys starting with prefix"""
        conn = await self.client()
        return [key async for key in conn.scan_iter(match=f"{prefix}*")]

    async def set_many(self, mapping: dict):
        """Write several keys in one MULTI/EXEC transaction"""
        conn = await self.client()
        async with conn.pipeline(transaction=True) as pipe:
            for key, value in mapping.items():
                pipe.set(key, value)
            return await pipe.execute()

# Global Redis client instance
redis_client = RedisClient()
