"""
Messaging utilities for VoxGuard.

Provides the Redis client used for per-session transcript intake streams
and for publishing live compliance violations.
"""

from vg_common.messaging.redis_client import (
    RedisClient,
    transcript_stream_key,
    violation_channel,
)

__all__ = ["RedisClient", "transcript_stream_key", "violation_channel"]
