"""
LiveMySQL - 实时查询引擎入口
"""

from typing import Any, Callable, Mapping, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from mysql_live_select.core.database import Database
from mysql_live_select.core.dispatcher import EventDispatcher
from mysql_live_select.core.lifecycle import LifecycleController
from mysql_live_select.core.reader import BinlogReader
from mysql_live_select.core.schema_filter import SchemaFilter
from mysql_live_select.core.select import LiveSelect, Row
from mysql_live_select.errors import (
    ConnectError,
    InitializationTimeoutError,
    LifecycleError,
    LiveSelectError,
    TriggerValidationError,
    ValidationError,
)
from mysql_live_select.models.event import ChangeEvent
from mysql_live_select.models.settings import (
    ConnectionSettings,
    LiveConfig,
    ReplicationSettings,
)
from mysql_live_select.models.state import LifecycleState, LiveStatus
from mysql_live_select.models.trigger import Trigger
from mysql_live_select.utils.logging import get_logger

logger = get_logger(__name__)

TriggerLike = Union[Trigger, Mapping[str, Any]]
ReadyCallback = Callable[[Optional[LiveSelectError]], None]

# 这些状态下收到的事件会进入调度队列
_ACCEPTING_STATES = (LifecycleState.INITIALIZING, LifecycleState.READY)


class LiveMySQL:
    """
    实时查询引擎

    监听 MySQL binlog，当触发器中的表发生变化时重新执行对应的查询。

    示例:
        ```python
        live = LiveMySQL(ConnectionSettings(
            user="root", password="secret", database="shop", server_id=42
        ))
        await live.start()

        orders = live.select("SELECT * FROM orders", [{"table": "orders"}])
        orders.on_update(lambda rows: print(len(rows)))
        ...
        await live.end()
        ```
    """

    def __init__(
        self,
        settings: ConnectionSettings,
        replication: Optional[ReplicationSettings] = None,
        *,
        database: Optional[Any] = None,
        reader: Optional[Any] = None
    ):
        """
        参数:
            settings: 连接配置
            replication: 复制读取器配置
            database: 自定义查询驱动（默认 aiomysql）
            reader: 自定义复制读取器（默认 python-mysql-replication）
        """
        self.settings = settings
        self.replication = replication or ReplicationSettings()
        self.status = LiveStatus()
        self.schema_filter = SchemaFilter()
        self.dispatcher = EventDispatcher(self.status)

        self._database = database if database is not None else Database(settings)
        self._reader = reader if reader is not None else BinlogReader(
            settings, self.replication
        )
        self._reader.on_event = self._on_binlog_event

        self.lifecycle = LifecycleController(
            database=self._database,
            reader=self._reader,
            schema_filter=self.schema_filter,
            replication=self.replication,
            status=self.status,
        )

    @classmethod
    def from_config(cls, config: LiveConfig, **kwargs: Any) -> "LiveMySQL":
        """从配置对象创建"""
        return cls(config.connection, config.replication, **kwargs)

    @property
    def state(self) -> LifecycleState:
        return self.lifecycle.state

    async def start(self, callback: Optional[ReadyCallback] = None) -> None:
        """
        连接数据库并等待复制读取器就绪

        参数:
            callback: 可选。就绪时以 None 调用，失败时以异常调用，只调用一次；
                提供 callback 时连接和超时错误不再抛出

        异常:
            ConnectError: 数据库连接失败
            InitializationTimeoutError: 读取器初始化超时（读取器保持运行）
            LifecycleError: 初始化期间 end() 已被调用
        """
        self.lifecycle.ensure_open("start")
        self.dispatcher.start()
        try:
            await self.lifecycle.start()
        except (ConnectError, InitializationTimeoutError, LifecycleError) as e:
            if self.state == LifecycleState.STOPPED:
                await self.dispatcher.stop()
            if callback is None:
                raise
            callback(e)
            return

        logger.info(
            "live_mysql_ready",
            server_id=self.settings.server_id,
            subscriptions=len(self.dispatcher.selects)
        )
        if callback is not None:
            callback(None)

    def select(self, query: str, triggers: Sequence[TriggerLike]) -> LiveSelect:
        """
        注册实时查询

        参数:
            query: 查询语句
            triggers: 触发器列表，元素为 Trigger 或 {"table": ..., "database": ...}

        返回:
            LiveSelect 订阅对象

        异常:
            ValidationError: 查询为空、触发器缺失或无法确定数据库
        """
        self.lifecycle.ensure_open("select")

        if not isinstance(query, str) or not query.strip():
            raise ValidationError("query 不能为空")
        if not isinstance(triggers, (list, tuple)) or len(triggers) == 0:
            raise TriggerValidationError("triggers 必须是非空列表")

        # 全部校验通过后再修改过滤器
        resolved = [
            self._coerce_trigger(trigger).resolve(self.settings.database)
            for trigger in triggers
        ]
        for trigger in resolved:
            self.schema_filter.add_trigger(trigger.database, trigger.table)

        select = LiveSelect(query, resolved, self)
        self.dispatcher.register(select)
        logger.info(
            "select_registered",
            query=query,
            triggers=[f"{t.database}.{t.table}" for t in resolved]
        )
        return select

    def pause(self) -> None:
        """暂停：复制读取器使用空过滤器"""
        self.lifecycle.pause()

    async def resume(self) -> int:
        """
        恢复过滤器并刷新所有订阅

        返回:
            刷新失败的订阅数
        """
        return await self.lifecycle.resume(self.dispatcher.selects)

    async def end(self) -> None:
        """停止复制并关闭连接（终态）"""
        await self.lifecycle.stop()
        await self.dispatcher.stop()
        logger.info("live_mysql_ended", server_id=self.settings.server_id)

    async def execute(self, query: str) -> list[Row]:
        """执行查询，供 LiveSelect.update() 使用"""
        return await self._database.execute(query)

    async def wait_idle(self) -> None:
        """等待已收到的事件全部分发完"""
        await self.dispatcher.drain()

    def get_status(self) -> LiveStatus:
        """获取当前状态"""
        self.status.watched_schema = self.schema_filter.as_dict()
        return self.status

    def _on_binlog_event(self, event: ChangeEvent) -> None:
        if self.state not in _ACCEPTING_STATES or not self.dispatcher.is_running():
            self.status.events_ignored += 1
            return
        self.dispatcher.submit(event)

    @staticmethod
    def _coerce_trigger(trigger: TriggerLike) -> Trigger:
        if isinstance(trigger, Trigger):
            return trigger
        if isinstance(trigger, Mapping):
            try:
                return Trigger.model_validate(dict(trigger))
            except PydanticValidationError as e:
                raise TriggerValidationError(f"触发器格式错误: {e}") from e
        raise TriggerValidationError(f"不支持的触发器类型: {type(trigger).__name__}")

    async def __aenter__(self) -> "LiveMySQL":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.end()
