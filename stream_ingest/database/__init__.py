"""Shared state backends."""

from stream_ingest.database.redis import LeaseManager, close_redis, get_lease_manager, init_redis

__all__ = ["LeaseManager", "close_redis", "get_lease_manager", "init_redis"]
