import redis.asyncio as redis


def get_redis(url: str | None):
    if not url:
        raise RuntimeError("REDIS_URL environment variable is not set")
    return redis.from_url(url, decode_responses=True)
