"""
事件调度器 - 把变更事件分发给实时查询
"""

import asyncio
from typing import Dict, List, Optional, Tuple

from mysql_live_select.core.select import LiveSelect, Row
from mysql_live_select.errors import LifecycleError, QueryExecutionError
from mysql_live_select.models.event import ChangeEvent
from mysql_live_select.models.state import LiveStatus
from mysql_live_select.utils.logging import get_logger

logger = get_logger(__name__)


class EventDispatcher:
    """
    事件调度器

    - 按注册顺序逐个检查订阅，同一时刻只有一个查询在执行
    - 同一事件内相同 query 只执行一次，其余订阅直接复用结果
    - 查询失败只影响当前订阅，失败结果不进入事件内缓存
    - 事件按到达顺序排队处理，两个事件的分发不会交错
    """

    def __init__(self, status: Optional[LiveStatus] = None):
        self.status = status or LiveStatus()
        self._selects: List[LiveSelect] = []
        self._queue: Optional["asyncio.Queue[ChangeEvent]"] = None
        self._worker: Optional["asyncio.Task[None]"] = None

    @property
    def selects(self) -> Tuple[LiveSelect, ...]:
        """已注册的订阅（注册顺序）"""
        return tuple(self._selects)

    def register(self, select: LiveSelect) -> None:
        """追加订阅"""
        self._selects.append(select)
        self.status.subscriptions = len(self._selects)

    def is_running(self) -> bool:
        return self._worker is not None

    def start(self) -> None:
        """启动事件队列消费任务（需要在事件循环中调用）"""
        if self._worker is not None:
            return
        self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._run(), name="live-select-dispatcher")
        logger.debug("dispatcher_started")

    async def stop(self) -> None:
        """停止消费任务，丢弃未处理的事件"""
        worker, queue = self._worker, self._queue
        if worker is None:
            return
        self._worker = None
        self._queue = None

        worker.cancel()
        try:
            await worker
        except asyncio.CancelledError:
            pass

        logger.info("dispatcher_stopped", dropped=queue.qsize() if queue else 0)

    def submit(self, event: ChangeEvent) -> None:
        """事件入队，由消费任务按顺序处理"""
        if self._queue is None:
            raise LifecycleError("调度器未启动")
        self.status.events_received += 1
        self._queue.put_nowait(event)

    async def drain(self) -> None:
        """等待已入队的事件全部处理完"""
        if self._queue is not None:
            await self._queue.join()

    async def _run(self) -> None:
        queue = self._queue
        if queue is None:
            raise LifecycleError("调度器未启动")
        while True:
            event = await queue.get()
            try:
                await self.dispatch(event)
            except Exception as e:
                logger.error(
                    "dispatch_failed",
                    database=event.database,
                    table=event.table,
                    error=str(e)
                )
                self.status.record_error(str(e))
            finally:
                queue.task_done()

    async def dispatch(self, event: ChangeEvent) -> int:
        """
        处理单个事件

        参数:
            event: 变更事件

        返回:
            本次事件实际执行的查询次数
        """
        if event.is_table_map() or not self._selects:
            self.status.events_ignored += 1
            return 0

        # 只在本事件内有效的 query -> rows 缓存
        event_results: Dict[str, List[Row]] = {}
        executed = 0

        for select in list(self._selects):
            if not self._matches(select, event):
                continue

            if select.query in event_results:
                select.set_rows(event_results[select.query])
                self.status.cache_hits += 1
                continue

            executed += 1
            self.status.queries_executed += 1
            try:
                rows = await select.update()
            except QueryExecutionError as e:
                self.status.query_errors += 1
                self.status.record_error(str(e))
                continue
            event_results[select.query] = rows

        self.status.events_dispatched += 1
        logger.debug(
            "event_dispatched",
            event_type=event.event_type.value,
            database=event.database,
            table=event.table,
            executed=executed,
            cached=len(event_results)
        )
        return executed

    def _matches(self, select: LiveSelect, event: ChangeEvent) -> bool:
        try:
            return select.match_row_event(event)
        except Exception as e:
            # 触发器 condition 抛出的异常按未命中处理
            logger.error("match_row_event_failed", select=repr(select), error=str(e))
            self.status.record_error(str(e))
            return False
