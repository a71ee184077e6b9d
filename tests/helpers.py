"""
测试工具 - 假读取器、假数据库和事件工厂
"""

import asyncio
from typing import Any, Dict, List, Optional

from mysql_live_select.core.schema_filter import schema_includes
from mysql_live_select.errors import ConnectError, QueryExecutionError
from mysql_live_select.models.event import ChangeEvent, EventType, RowChange
from mysql_live_select.models.settings import ConnectionSettings, ReplicationSettings


# ============================================================================
# 假复制读取器
# ============================================================================

class FakeReader:
    """
    模拟 BinlogReader

    ready_after_polls: 启动后第几次读取 ready 时变为 True，None 表示永不就绪
    """

    def __init__(self, ready_after_polls: Optional[int] = 0):
        self.on_event = None
        self.include_schema: Optional[Dict[str, List[str]]] = None
        self.started = False
        self.stopped = False
        self.set_calls: List[Dict[str, List[str]]] = []
        self._ready_after_polls = ready_after_polls
        self._polls = 0

    @property
    def ready(self) -> bool:
        if not self.started or self.stopped or self._ready_after_polls is None:
            return False
        self._polls += 1
        return self._polls > self._ready_after_polls

    def make_ready(self) -> None:
        """之后读取 ready 立即为 True"""
        self._ready_after_polls = 0
        self._polls = 0

    def start(self, include_schema: Dict[str, List[str]]) -> None:
        self.started = True
        self.include_schema = include_schema

    def set(self, include_schema: Dict[str, List[str]]) -> None:
        self.include_schema = include_schema
        self.set_calls.append(include_schema)

    def stop(self) -> None:
        self.stopped = True

    def emit(self, event: ChangeEvent) -> bool:
        """和真实读取器一样按过滤映射筛选后回调"""
        if self.include_schema is None or self.on_event is None:
            return False
        if not schema_includes(self.include_schema, event.database, event.table):
            return False
        self.on_event(event)
        return True


# ============================================================================
# 假数据库
# ============================================================================

class FakeDatabase:
    """
    模拟 Database

    results: query -> rows
    fail(query, n): 该查询接下来 n 次执行失败
    """

    def __init__(
        self,
        results: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        fail_connect: bool = False
    ):
        self.results = results or {}
        self.calls: List[str] = []
        self.connected = False
        self.closed = False
        self._fail_connect = fail_connect
        self._failures: Dict[str, int] = {}

    def fail(self, query: str, times: int = 1) -> None:
        self._failures[query] = self._failures.get(query, 0) + times

    async def connect(self) -> None:
        await asyncio.sleep(0)
        if self._fail_connect:
            raise ConnectError("Connection refused")
        self.connected = True

    async def execute(self, query: str) -> List[Dict[str, Any]]:
        self.calls.append(query)
        await asyncio.sleep(0)
        if self._failures.get(query, 0) > 0:
            self._failures[query] -= 1
            raise QueryExecutionError("Table doesn't exist", query=query)
        return [dict(row) for row in self.results.get(query, [])]

    async def close(self) -> None:
        self.closed = True
        self.connected = False


class FakeOwner:
    """LiveSelect 的所属引擎，只转发 execute"""

    def __init__(self, database: FakeDatabase):
        self.database = database

    async def execute(self, query: str) -> List[Dict[str, Any]]:
        return await self.database.execute(query)


# ============================================================================
# 工厂函数
# ============================================================================

def make_settings(database: Optional[str] = "shop", server_id: int = 42) -> ConnectionSettings:
    """返回测试连接配置"""
    return ConnectionSettings(
        host="localhost",
        user="repl",
        password="secret",
        database=database,
        server_id=server_id,
    )


def make_replication(init_timeout: float = 0.2, poll: float = 0.01) -> ReplicationSettings:
    """返回短超时的复制配置"""
    return ReplicationSettings(init_timeout=init_timeout, ready_poll_interval=poll)


def make_event(
    table: str,
    database: str = "shop",
    event_type: EventType = EventType.WRITEROWS,
    rows: Optional[List[RowChange]] = None
) -> ChangeEvent:
    """返回测试变更事件"""
    if event_type == EventType.TABLEMAP:
        return ChangeEvent(event_type=event_type, database=database, table=table)
    if rows is None:
        if event_type == EventType.UPDATEROWS:
            rows = [RowChange(before={"id": 1, "status": "open"},
                              after={"id": 1, "status": "paid"})]
        elif event_type == EventType.DELETEROWS:
            rows = [RowChange(before={"id": 1, "status": "open"})]
        else:
            rows = [RowChange(after={"id": 1, "status": "open"})]
    return ChangeEvent(event_type=event_type, database=database, table=table, rows=rows)


def get_sample_order_rows() -> List[Dict[str, Any]]:
    """返回样本订单数据"""
    return [
        {"id": 1, "user_id": 7, "total": 19.5, "status": "open"},
        {"id": 2, "user_id": 8, "total": 5.0, "status": "open"},
    ]
