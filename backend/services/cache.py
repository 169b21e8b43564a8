"""
Redis Cache Service for Portal Data

Caches the Firestore reads that every dashboard page repeats: the batch
list, the active teacher list and the management dashboard counters.

Features:
- JSON serialization of cached documents
- Configurable TTL per data type
- Graceful fallback if Redis unavailable
- Invalidation from the services that write the underlying collections
"""

import os
import json
from typing import Optional, List, Dict, Any

import redis
from dotenv import load_dotenv
from pathlib import Path

# Load environment variables
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(env_path)


REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_DB = int(os.getenv("REDIS_DB", "0"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

# Cache key prefixes
CACHE_PREFIX = "fsp_portal:"
BATCH_PREFIX = f"{CACHE_PREFIX}batch:"
ALL_BATCHES_KEY = f"{CACHE_PREFIX}all_batches"
ACTIVE_TEACHERS_KEY = f"{CACHE_PREFIX}active_teachers"
DASHBOARD_STATS_KEY = f"{CACHE_PREFIX}dashboard_stats"

# TTL settings (in seconds)
BATCH_TTL = 300  # 5 minutes for individual batches
ALL_BATCHES_TTL = 300  # 5 minutes for the batch list
TEACHERS_TTL = 600  # 10 minutes for the active teacher list
DASHBOARD_TTL = 60  # 1 minute for dashboard counters


class RedisCache:
    """Redis caching service for portal data"""

    def __init__(self):
        self._client: Optional[redis.Redis] = None
        self._connected = False

    def connect(self) -> bool:
        """
        Connect to Redis server.

        Returns:
            True if connected successfully, False otherwise
        """
        try:
            # Try URL first, then host/port
            if REDIS_URL and REDIS_URL != "redis://localhost:6379/0":
                self._client = redis.from_url(
                    REDIS_URL,
                    decode_responses=True,
                    socket_timeout=5,
                    socket_connect_timeout=5
                )
            else:
                self._client = redis.Redis(
                    host=REDIS_HOST,
                    port=REDIS_PORT,
                    db=REDIS_DB,
                    password=REDIS_PASSWORD,
                    decode_responses=True,
                    socket_timeout=5,
                    socket_connect_timeout=5
                )

            # Test connection
            self._client.ping()
            self._connected = True
            print(f"[CACHE] Connected to Redis at {REDIS_HOST}:{REDIS_PORT}")
            return True

        except Exception as e:
            print(f"[CACHE] Failed to connect to Redis: {e}")
            self._client = None
            self._connected = False
            return False

    @property
    def is_connected(self) -> bool:
        """Check if Redis is connected"""
        if not self._connected or not self._client:
            return False
        try:
            self._client.ping()
            return True
        except Exception:
            self._connected = False
            return False

    def _ensure_connected(self) -> bool:
        """Ensure Redis is connected, attempt reconnect if not"""
        if self.is_connected:
            return True
        return self.connect()

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        if not self._ensure_connected():
            return None

        try:
            data = self._client.get(key)
            if data:
                return json.loads(data)
            return None
        except Exception as e:
            print(f"[CACHE] Get error for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: int = BATCH_TTL) -> bool:
        """Set value in cache with TTL"""
        if not self._ensure_connected():
            return False

        try:
            self._client.setex(key, ttl, json.dumps(value, default=str))
            return True
        except Exception as e:
            print(f"[CACHE] Set error for {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        """Delete a key from cache"""
        if not self._ensure_connected():
            return False

        try:
            self._client.delete(key)
            return True
        except Exception as e:
            print(f"[CACHE] Delete error for {key}: {e}")
            return False

    def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching pattern"""
        if not self._ensure_connected():
            return 0

        try:
            keys = self._client.keys(pattern)
            if keys:
                return self._client.delete(*keys)
            return 0
        except Exception as e:
            print(f"[CACHE] Delete pattern error for {pattern}: {e}")
            return 0

    def clear_all(self) -> bool:
        """Clear all cache keys for this application"""
        if not self._ensure_connected():
            return False

        try:
            deleted = self.delete_pattern(f"{CACHE_PREFIX}*")
            print(f"[CACHE] Cleared {deleted} keys")
            return True
        except Exception as e:
            print(f"[CACHE] Clear error: {e}")
            return False

    def get_batch(self, batch_id: str) -> Optional[Dict[str, Any]]:
        """Get a single batch from cache"""
        return self.get(f"{BATCH_PREFIX}{self._sanitize_key(batch_id)}")

    def set_batch(self, batch_id: str, batch: Dict[str, Any]) -> bool:
        """Cache a single batch"""
        return self.set(f"{BATCH_PREFIX}{self._sanitize_key(batch_id)}", batch, BATCH_TTL)

    def get_all_batches(self) -> Optional[List[Dict[str, Any]]]:
        return self.get(ALL_BATCHES_KEY)

    def set_all_batches(self, batches: List[Dict[str, Any]]) -> bool:
        return self.set(ALL_BATCHES_KEY, batches, ALL_BATCHES_TTL)

    def invalidate_batches(self, batch_id: Optional[str] = None) -> int:
        """
        Invalidate the batch list and, when given, one cached batch.

        Dashboard counters include batches by status, so they go too.
        """
        count = 0
        if batch_id:
            count += int(self.delete(f"{BATCH_PREFIX}{self._sanitize_key(batch_id)}"))
        count += int(self.delete(ALL_BATCHES_KEY))
        count += int(self.delete(DASHBOARD_STATS_KEY))
        return count

    def get_active_teachers(self) -> Optional[List[Dict[str, Any]]]:
        return self.get(ACTIVE_TEACHERS_KEY)

    def set_active_teachers(self, teachers: List[Dict[str, Any]]) -> bool:
        return self.set(ACTIVE_TEACHERS_KEY, teachers, TEACHERS_TTL)

    def invalidate_people(self) -> int:
        """Invalidate caches derived from teacher, admin, host or student documents"""
        count = int(self.delete(ACTIVE_TEACHERS_KEY))
        count += int(self.delete(DASHBOARD_STATS_KEY))
        return count

    def get_dashboard_stats(self) -> Optional[Dict[str, Any]]:
        return self.get(DASHBOARD_STATS_KEY)

    def set_dashboard_stats(self, stats: Dict[str, Any]) -> bool:
        return self.set(DASHBOARD_STATS_KEY, stats, DASHBOARD_TTL)

    def _sanitize_key(self, key: str) -> str:
        """Sanitize a string for use as Redis key"""
        return key.replace(" ", "_").replace("/", "-")

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics"""
        if not self._ensure_connected():
            return {"connected": False}

        try:
            info = self._client.info("stats")
            memory = self._client.info("memory")

            batch_keys = len(self._client.keys(f"{BATCH_PREFIX}*"))
            total_keys = len(self._client.keys(f"{CACHE_PREFIX}*"))

            return {
                "connected": True,
                "hits": info.get("keyspace_hits", 0),
                "misses": info.get("keyspace_misses", 0),
                "memory_used": memory.get("used_memory_human", "unknown"),
                "batch_keys": batch_keys,
                "total_keys": total_keys
            }
        except Exception as e:
            return {"connected": True, "error": str(e)}


_cache_instance: Optional[RedisCache] = None


def get_cache() -> RedisCache:
    """Get the singleton cache instance"""
    global _cache_instance
    if _cache_instance is None:
        _cache_instance = RedisCache()
        _cache_instance.connect()
    return _cache_instance


def is_cache_available() -> bool:
    """Check if cache is available and connected"""
    cache = get_cache()
    return cache.is_connected
