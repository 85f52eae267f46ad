"""Redis连接模块

提供Redis异步连接池和跨进程单调计数器
"""

from typing import Optional

import redis.asyncio as redis
from loguru import logger

from .config import Settings


class RedisManager:
    """Redis管理器

    管理Redis连接池。未配置Redis URL时所有操作降级为空操作
    """

    key_prefix = "filebroker"

    def __init__(self, settings: Settings) -> None:
        """初始化Redis管理器

        创建Redis连接池，配置连接参数。
        如果Redis URL未配置，则跳过初始化
        """
        self.redis_pool = None
        self.redis_client = None

        if not settings.async_redis_url:
            logger.warning("Redis URL未配置，跳过Redis初始化")
            return

        self.redis_pool = redis.ConnectionPool.from_url(
            settings.async_redis_url,
            max_connections=20,
            retry_on_timeout=True,
            socket_keepalive=True,
            health_check_interval=30,  # 健康检查间隔（秒）
            decode_responses=True,
        )

        self.redis_client = redis.Redis(connection_pool=self.redis_pool)

        logger.info("Redis连接池已初始化")

    @property
    def configured(self) -> bool:
        return self.redis_client is not None

    async def ping(self) -> bool:
        """检查Redis连接状态

        Returns:
            bool: 连接是否正常
        """
        if not self.redis_client:
            logger.warning("Redis未初始化，无法检查连接")
            return False

        try:
            await self.redis_client.ping()
            return True
        except Exception as e:
            logger.error(f"Redis连接检查失败: {e}")
            return False

    async def close(self) -> None:
        """关闭Redis连接

        在应用关闭时调用，清理资源
        """
        if self.redis_client:
            await self.redis_client.aclose()
            logger.info("Redis连接已关闭")
        else:
            logger.info("Redis未初始化，无需关闭")

    def _build_key(self, *parts: str) -> str:
        """构建键名，格式: filebroker:part1:part2"""
        return ":".join((self.key_prefix, *parts))

    async def next_sequence(self, name: str) -> Optional[int]:
        """分配下一个单调递增序号

        Args:
            name: 计数器名称

        Returns:
            Optional[int]: 新序号；Redis不可用时返回None
        """
        if not self.redis_client:
            return None

        key = self._build_key("seq", name)
        try:
            return int(await self.redis_client.incr(key))
        except Exception as e:
            logger.error(f"Redis分配序号失败 {key}: {e}")
            return None
