from .client import RedisStreamClient, StreamMessage

__all__ = ["RedisStreamClient", "StreamMessage"]
