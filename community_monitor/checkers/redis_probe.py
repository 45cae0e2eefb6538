"""Redis 可达性探测器"""

from typing import Dict, Any, Optional

import redis.asyncio as redis

from .base import BaseDependencyProbe
from .factory import register_probe


@register_probe('redis')
class RedisProbe(BaseDependencyProbe):
    """对 Redis 执行 PING"""

    def __init__(self, name: str, config: Dict[str, Any]):
        super().__init__(name, config)
        self._client: Optional[redis.Redis] = None

    def validate_config(self) -> bool:
        if 'url' in self.config:
            return isinstance(self.config['url'], str) and \
                self.config['url'].startswith(('redis://', 'rediss://', 'unix://'))

        if 'host' not in self.config:
            return False

        port = self.config.get('port', 6379)
        if not isinstance(port, int) or port <= 0 or port > 65535:
            return False

        database = self.config.get('database', 0)
        return isinstance(database, int) and database >= 0

    def _get_client(self) -> redis.Redis:
        if self._client is None:
            if 'url' in self.config:
                self._client = redis.Redis.from_url(
                    self.config['url'],
                    socket_timeout=self.get_timeout(),
                    socket_connect_timeout=self.get_timeout()
                )
            else:
                self._client = redis.Redis(
                    host=self.config.get('host', 'localhost'),
                    port=self.config.get('port', 6379),
                    db=self.config.get('database', 0),
                    password=self.config.get('password'),
                    socket_timeout=self.get_timeout(),
                    socket_connect_timeout=self.get_timeout()
                )
        return self._client

    async def check_health(self) -> bool:
        client = self._get_client()
        try:
            return bool(await client.ping())
        finally:
            await self.close()

    async def close(self):
        """关闭 Redis 连接"""
        if self._client:
            try:
                await self._client.aclose()
            except Exception as e:
                self.logger.warning(f"关闭Redis客户端连接时出错: {e}")
            self._client = None
