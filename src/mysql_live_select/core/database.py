"""
查询驱动 - 使用 aiomysql 执行实时查询
"""

from typing import Any, Dict, List, Optional

import aiomysql

from mysql_live_select.errors import ConnectError, QueryExecutionError
from mysql_live_select.models.settings import ConnectionSettings
from mysql_live_select.utils.logging import get_logger

logger = get_logger(__name__)


class Database:
    """
    MySQL 查询连接池

    使用 aiomysql 连接池，resume() 时多个订阅可以并发查询。
    """

    def __init__(self, settings: ConnectionSettings):
        self.settings = settings
        self._pool: Optional[aiomysql.Pool] = None

    def is_connected(self) -> bool:
        return self._pool is not None

    async def connect(self) -> None:
        """建立连接池"""
        try:
            self._pool = await aiomysql.create_pool(
                host=self.settings.host,
                port=self.settings.port,
                user=self.settings.user,
                password=self.settings.password,
                db=self.settings.database,
                charset=self.settings.charset,
                minsize=1,
                maxsize=self.settings.pool_size,
                autocommit=True,
            )
        except Exception as e:
            logger.error(
                "mysql_connect_failed",
                host=self.settings.host,
                port=self.settings.port,
                error=str(e)
            )
            raise ConnectError(f"连接 MySQL 失败: {e}") from e

        logger.info(
            "mysql_connected",
            host=self.settings.host,
            database=self.settings.database
        )

    async def execute(self, query: str) -> List[Dict[str, Any]]:
        """
        执行查询

        返回:
            结果行（字典列表，保持查询顺序）

        异常:
            QueryExecutionError: 未连接或执行失败
        """
        if self._pool is None:
            raise QueryExecutionError("MySQL 未连接", query=query)

        try:
            async with self._pool.acquire() as conn:
                async with conn.cursor(aiomysql.DictCursor) as cursor:
                    await cursor.execute(query)
                    rows = await cursor.fetchall()
        except Exception as e:
            raise QueryExecutionError(f"查询执行失败: {e}", query=query) from e

        return list(rows)

    async def ping(self) -> bool:
        """健康检查"""
        if self._pool is None:
            return False
        try:
            await self.execute("SELECT 1")
            return True
        except QueryExecutionError:
            return False

    async def close(self) -> None:
        """立即关闭所有连接，不等待进行中的查询"""
        pool, self._pool = self._pool, None
        if pool is None:
            return
        pool.terminate()
        await pool.wait_closed()
        logger.info("mysql_disconnected", host=self.settings.host)
