"""
Redis-backed lock store.

Acquisition is ``SET key value PX ttl NX``; release is a Lua script so the
token check and the delete happen in one server-side step. A read followed by
a client-side delete could remove a key that expired and was re-acquired by
someone else in between.
"""

from redis.asyncio import Redis
from redis.exceptions import RedisError

from quorumlock.config import RedisServer
from quorumlock.constants import COMPARE_DELETE_SCRIPT
from quorumlock.exceptions import StoreError


class RedisLockStore:
    """Lock store on a single Redis server."""

    def __init__(self, client: Redis, name: str | None = None):
        """
        Initialize the store.

        Args:
            client: An asyncio Redis client for one independent server.
            name: Label used in logs and metrics. Defaults to the client's address.
        """
        self._client = client
        self._compare_delete = client.register_script(COMPARE_DELETE_SCRIPT)
        self.name = name or _describe(client)

    @classmethod
    def from_server(
        cls,
        server: RedisServer,
        socket_timeout: float | None = None,
    ) -> "RedisLockStore":
        """Build a store from an endpoint descriptor."""
        client = Redis(
            host=server.host,
            port=server.port,
            password=server.password,
            db=server.database,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client, name=f"{server.host}:{server.port}/{server.database}")

    @classmethod
    def from_url(cls, url: str, socket_timeout: float | None = None) -> "RedisLockStore":
        """Build a store from a ``redis://`` URL. The name keeps host, port and db only."""
        client = Redis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client)

    async def try_set(self, key: str, value: str, ttl_ms: int) -> bool:
        try:
            return bool(await self._client.set(key, value, px=ttl_ms, nx=True))
        except RedisError as e:
            raise StoreError(self.name, "try_set", e) from e

    async def compare_delete(self, key: str, value: str) -> bool:
        try:
            return bool(await self._compare_delete(keys=[key], args=[value]))
        except RedisError as e:
            raise StoreError(self.name, "compare_delete", e) from e

    async def close(self) -> None:
        await self._client.aclose()

    def __repr__(self) -> str:
        return f"RedisLockStore({self.name!r})"


def _describe(client: Redis) -> str:
    kwargs = client.connection_pool.connection_kwargs
    return f"{kwargs.get('host', 'redis')}:{kwargs.get('port', 6379)}/{kwargs.get('db', 0)}"
