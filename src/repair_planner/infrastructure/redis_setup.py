"""Redis Connection Factory with Sentinel Support

Redis backs the monotonic work-order number sequence. Both deployment styles
are supported:
- Standalone Redis (development/self-hosted)
- Redis Sentinel (HA deployments)

Environment Variables:
    REDIS_MODE: "standalone" (default) or "sentinel"
    REDIS_HOST / REDIS_PORT: Standalone address (default: localhost:6379)
    REDIS_DB: Database index (default: 0)
    REDIS_PASSWORD: Password (optional)
    REDIS_SENTINEL_HOSTS: Comma-separated "host:port" pairs (sentinel mode)
    REDIS_MASTER_SET: Sentinel master set name (default: "mymaster")
"""

import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Tuple

from redis.asyncio import Redis
from redis.asyncio.sentinel import Sentinel

from repair_planner.exceptions import ConfigurationError
from repair_planner.utils import service_startup_retry

logger = logging.getLogger(__name__)

DEFAULT_SENTINEL_PORT = 26379


@dataclass
class RedisConfig:
    """Redis connection settings."""

    mode: str = "standalone"
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    sentinel_hosts: str = ""
    master_set: str = "mymaster"

    @classmethod
    def from_env(cls) -> "RedisConfig":
        return cls(
            mode=os.getenv("REDIS_MODE", "standalone").lower(),
            host=os.getenv("REDIS_HOST", "localhost"),
            port=int(os.getenv("REDIS_PORT", "6379")),
            db=int(os.getenv("REDIS_DB", "0")),
            password=os.getenv("REDIS_PASSWORD") or None,
            sentinel_hosts=os.getenv("REDIS_SENTINEL_HOSTS", ""),
            master_set=os.getenv("REDIS_MASTER_SET", "mymaster"),
        )


def parse_sentinel_hosts(hosts_str: str) -> List[Tuple[str, int]]:
    """Parse comma-separated sentinel host:port string.

    Example:
        >>> parse_sentinel_hosts("sentinel1:26379,sentinel2")
        [('sentinel1', 26379), ('sentinel2', 26379)]
    """
    sentinels = []

    for host_port in hosts_str.split(","):
        host_port = host_port.strip()
        if not host_port:
            continue

        if ":" in host_port:
            host, port_str = host_port.rsplit(":", 1)
            sentinels.append((host, int(port_str)))
        else:
            sentinels.append((host_port, DEFAULT_SENTINEL_PORT))

    return sentinels


@service_startup_retry
async def _verify_redis_connection(client: Redis) -> None:
    """Ping Redis, retrying while it comes up."""
    await client.ping()
    logger.info("Redis connection verified")


async def get_redis_client(config: Optional[RedisConfig] = None) -> Redis:
    """Get a verified async Redis client for the configured mode.

    Args:
        config: Connection settings (default: RedisConfig.from_env())

    Returns:
        Async Redis client (either standalone or Sentinel-managed)

    Raises:
        ConfigurationError: If Sentinel mode is configured without sentinel hosts
        ConnectionError: If Redis connection fails after retries
    """
    config = config or RedisConfig.from_env()
    logger.info(f"Initializing Redis client in {config.mode} mode")

    if config.mode == "sentinel":
        sentinels = parse_sentinel_hosts(config.sentinel_hosts)
        if not sentinels:
            raise ConfigurationError(
                "REDIS_SENTINEL_HOSTS is required for Sentinel mode",
                context={"sentinel_hosts": config.sentinel_hosts},
            )

        logger.info(
            f"Connecting to Redis Sentinel: master={config.master_set}, sentinels={sentinels}"
        )
        sentinel_client = Sentinel(
            sentinels,
            sentinel_kwargs={"password": config.password} if config.password else {},
            socket_keepalive=True,
        )
        # Master connection follows failover automatically
        redis_client = sentinel_client.master_for(
            config.master_set,
            db=config.db,
            password=config.password,
            decode_responses=True,
            socket_keepalive=True,
        )
    else:
        logger.info(f"Connecting to standalone Redis: {config.host}:{config.port}/{config.db}")
        redis_client = Redis(
            host=config.host,
            port=config.port,
            db=config.db,
            password=config.password,
            decode_responses=True,
            socket_keepalive=True,
            socket_connect_timeout=5,
        )

    await _verify_redis_connection(redis_client)
    return redis_client
