# config/cache.py
from redis.asyncio import Redis, from_url


async def open_redis(url: str) -> Redis:
    client = from_url(
        url,
        encoding="utf-8",
        decode_responses=False,  # repositories decode what they read
        socket_keepalive=True,
        health_check_interval=30,
    )
    # Fail fast on startup if Redis is unreachable.
    await client.ping()
    return client


async def close_redis(client: Redis) -> None:
    await client.aclose()
