"""
实时查询 - 一个已注册的 SELECT 及其触发器和缓存结果
"""

from typing import Any, Callable, Dict, List, Optional, Sequence

from mysql_live_select.errors import QueryExecutionError
from mysql_live_select.models.event import ChangeEvent
from mysql_live_select.models.trigger import Trigger
from mysql_live_select.utils.logging import get_logger

logger = get_logger(__name__)

Row = Dict[str, Any]
UpdateCallback = Callable[[Optional[QueryExecutionError], Optional[List[Row]]], None]
UpdateListener = Callable[[List[Row]], None]
ErrorListener = Callable[[QueryExecutionError], None]


class LiveSelect:
    """
    实时查询订阅

    由 LiveMySQL.select() 创建，调用方通过 on_update() / on_error()
    接收结果。query 只用作去重键，多个订阅可以有相同的 query。

    属性:
        query: 查询语句
        triggers: 已解析数据库名的触发器
    """

    def __init__(self, query: str, triggers: Sequence[Trigger], base: Any):
        """
        参数:
            query: 查询语句
            triggers: 触发器（database 已确定）
            base: 所属引擎，提供 async execute(query)，不持有所有权
        """
        self.query = query
        self.triggers = tuple(triggers)
        self._base = base
        self._rows: List[Row] = []
        self._update_listeners: List[UpdateListener] = []
        self._error_listeners: List[ErrorListener] = []

    @property
    def rows(self) -> List[Row]:
        """最近一次的结果行（副本）"""
        return list(self._rows)

    def on_update(self, listener: UpdateListener) -> "LiveSelect":
        """注册结果变化监听器，返回自身便于链式调用"""
        self._update_listeners.append(listener)
        return self

    def on_error(self, listener: ErrorListener) -> "LiveSelect":
        """注册查询失败监听器"""
        self._error_listeners.append(listener)
        return self

    def match_row_event(self, event: ChangeEvent) -> bool:
        """事件是否命中任一触发器（无副作用）"""
        return any(trigger.matches(event) for trigger in self.triggers)

    async def update(self, callback: Optional[UpdateCallback] = None) -> List[Row]:
        """
        重新执行查询并替换缓存结果

        参数:
            callback: 可选，完成后以 (error, rows) 调用

        返回:
            新的结果行

        异常:
            QueryExecutionError: 查询失败，缓存结果保持不变
        """
        try:
            rows = await self._base.execute(self.query)
        except QueryExecutionError as e:
            self._fail(e, callback)
            raise
        except Exception as e:
            error = QueryExecutionError(f"查询执行失败: {e}", query=self.query)
            self._fail(error, callback)
            raise error from e

        self.set_rows(rows)
        if callback is not None:
            callback(None, self.rows)
        return self.rows

    def set_rows(self, rows: Sequence[Row]) -> None:
        """直接替换缓存结果，不执行查询；结果变化时通知监听器"""
        new_rows = list(rows)
        changed = new_rows != self._rows
        self._rows = new_rows
        if changed:
            for listener in list(self._update_listeners):
                self._call_listener(listener, self.rows)

    def _fail(
        self,
        error: QueryExecutionError,
        callback: Optional[UpdateCallback]
    ) -> None:
        logger.warning("live_select_update_failed", query=self.query, error=str(error))
        if callback is not None:
            callback(error, None)
        for listener in list(self._error_listeners):
            self._call_listener(listener, error)

    def _call_listener(self, listener: Callable[[Any], None], payload: Any) -> None:
        try:
            listener(payload)
        except Exception as e:
            logger.error(
                "live_select_listener_failed",
                query=self.query,
                listener=getattr(listener, "__name__", repr(listener)),
                error=str(e)
            )

    def __repr__(self) -> str:
        tables = ", ".join(f"{t.database}.{t.table}" for t in self.triggers)
        return f"<LiveSelect {self.query!r} on [{tables}]>"
