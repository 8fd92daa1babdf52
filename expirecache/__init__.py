"""Thread-safe in-memory cache with per-item expiration, numeric counters and sharding."""

__version__ = "3.0.0"
__all__ = ["cache", "sharded"]