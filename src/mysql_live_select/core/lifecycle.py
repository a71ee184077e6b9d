"""
生命周期控制 - 连接、初始化握手、暂停/恢复、关闭
"""

import asyncio
from typing import Any, Iterable, Optional

from mysql_live_select.core.schema_filter import SchemaFilter
from mysql_live_select.core.select import LiveSelect
from mysql_live_select.errors import (
    ConnectError,
    InitializationTimeoutError,
    LifecycleError,
)
from mysql_live_select.models.settings import ReplicationSettings
from mysql_live_select.models.state import LifecycleState, LiveStatus
from mysql_live_select.utils.logging import get_logger

logger = get_logger(__name__)

# 允许 pause()/resume() 的状态
_RUNNING_STATES = (LifecycleState.READY, LifecycleState.PAUSED)


class LifecycleController:
    """
    生命周期控制器

    状态机: connecting -> initializing -> ready <-> paused -> stopped

    - 连接失败直接进入 stopped
    - 初始化超时时读取器保持运行，状态停留在 initializing，
      后台继续等待读取器就绪，就绪后进入 ready（不再回调）
    - stopped 是终态
    """

    def __init__(
        self,
        database: Any,
        reader: Any,
        schema_filter: SchemaFilter,
        replication: ReplicationSettings,
        status: LiveStatus
    ):
        """
        参数:
            database: 查询驱动，提供 connect()/close()
            reader: 复制读取器，提供 start()/set()/stop() 和 ready
            schema_filter: 复制过滤器
            replication: 初始化超时等配置
            status: 共享的状态对象
        """
        self._database = database
        self._reader = reader
        self._filter = schema_filter
        self._replication = replication
        self._status = status
        self._late_ready_task: Optional["asyncio.Task[None]"] = None

    @property
    def state(self) -> LifecycleState:
        return self._status.state

    def _transition(self, state: LifecycleState) -> None:
        logger.info("lifecycle_transition", previous=self._status.state.value, state=state.value)
        self._status.state = state

    def ensure_open(self, action: str) -> None:
        """stopped 之后不允许任何操作"""
        if self.state == LifecycleState.STOPPED:
            raise LifecycleError(f"连接已关闭，不能执行 {action}")

    async def start(self) -> None:
        """
        连接数据库并等待复制读取器就绪

        异常:
            ConnectError: 数据库连接失败
            InitializationTimeoutError: 读取器在超时时间内未就绪
            LifecycleError: 重复启动或初始化期间被关闭
        """
        if self.state != LifecycleState.CONNECTING:
            raise LifecycleError(f"当前状态 {self.state.value} 不能启动")

        try:
            await self._database.connect()
        except ConnectError as e:
            self._status.record_error(str(e))
            self._transition(LifecycleState.STOPPED)
            raise

        self._transition(LifecycleState.INITIALIZING)
        self._reader.start(self._filter.active())
        try:
            await self._wait_ready()
        except InitializationTimeoutError:
            self._late_ready_task = asyncio.create_task(self._watch_late_ready())
            raise
        self._transition(LifecycleState.READY)

    async def _watch_late_ready(self) -> None:
        """超时后继续轮询读取器，就绪时补上 initializing -> ready"""
        while self.state == LifecycleState.INITIALIZING:
            if self._reader.ready:
                logger.info("reader_ready_after_timeout")
                self._transition(LifecycleState.READY)
                return
            await asyncio.sleep(self._replication.ready_poll_interval)

    async def _wait_ready(self) -> None:
        """轮询 reader.ready，先到者为准：就绪或超时"""
        loop = asyncio.get_running_loop()
        timeout = self._replication.init_timeout
        started = loop.time()

        while True:
            if self.state == LifecycleState.STOPPED:
                raise LifecycleError("初始化期间连接已关闭")
            if self._reader.ready:
                logger.debug("reader_ready", waited=round(loop.time() - started, 3))
                return
            if loop.time() - started > timeout:
                error = InitializationTimeoutError(timeout)
                self._status.record_error(str(error))
                logger.error("reader_init_timeout", timeout=timeout)
                raise error
            await asyncio.sleep(self._replication.ready_poll_interval)

    def pause(self) -> None:
        """读取器切换到空过滤器，事件流不停止"""
        self.ensure_open("pause")
        if self.state not in _RUNNING_STATES:
            raise LifecycleError(f"当前状态 {self.state.value} 不能暂停")
        self._reader.set(self._filter.paused())
        self._transition(LifecycleState.PAUSED)

    async def resume(self, selects: Iterable[LiveSelect]) -> int:
        """
        恢复过滤器并强制刷新所有订阅

        参数:
            selects: 需要刷新的订阅

        返回:
            刷新失败的订阅数
        """
        self.ensure_open("resume")
        if self.state not in _RUNNING_STATES:
            raise LifecycleError(f"当前状态 {self.state.value} 不能恢复")
        self._reader.set(self._filter.active())
        self._transition(LifecycleState.READY)

        # 每个订阅独立查询，不走事件内去重
        results = await asyncio.gather(
            *(select.update() for select in selects),
            return_exceptions=True
        )
        failed = sum(1 for result in results if isinstance(result, BaseException))
        logger.info("selects_refreshed", total=len(results), failed=failed)
        return failed

    async def stop(self) -> None:
        """停止读取器并关闭数据库连接，不等待进行中的查询"""
        if self.state == LifecycleState.STOPPED:
            return
        self._transition(LifecycleState.STOPPED)
        if self._late_ready_task is not None:
            self._late_ready_task.cancel()
            self._late_ready_task = None
        self._reader.stop()
        await self._database.close()
