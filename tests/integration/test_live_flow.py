"""
LiveMySQL 集成测试 (unittest)

使用假读取器和假数据库走完整流程：注册 -> 就绪 -> 事件 -> 暂停/恢复 -> 关闭
"""

import asyncio
import unittest
from unittest import IsolatedAsyncioTestCase
from unittest.mock import MagicMock

from helpers import (
    FakeDatabase,
    FakeReader,
    get_sample_order_rows,
    make_event,
    make_replication,
    make_settings,
)
from mysql_live_select.core.live import LiveMySQL
from mysql_live_select.errors import (
    ConnectError,
    InitializationTimeoutError,
    LifecycleError,
    TriggerValidationError,
    ValidationError,
)
from mysql_live_select.models.event import EventType
from mysql_live_select.models.state import LifecycleState
from mysql_live_select.models.trigger import Trigger

QUERY = "SELECT * FROM t"


class TestLiveMySQLFlow(IsolatedAsyncioTestCase):
    """端到端流程测试"""

    def setUp(self):
        self.database = FakeDatabase({
            QUERY: [{"id": 1}],
            "SELECT * FROM orders": get_sample_order_rows(),
        })
        self.reader = FakeReader()
        self.live = LiveMySQL(
            make_settings(),
            make_replication(),
            database=self.database,
            reader=self.reader,
        )

    async def asyncTearDown(self):
        await self.live.end()

    async def _emit(self, event):
        self.reader.emit(event)
        await self.live.wait_idle()

    async def test_matching_event_updates_select(self):
        """表 t 的事件触发一次查询，无关表 u 不触发"""
        select = self.live.select(QUERY, [{"table": "t"}])
        updates = []
        select.on_update(updates.append)
        await self.live.start()

        await self._emit(make_event("t"))
        self.assertEqual(self.database.calls, [QUERY])
        self.assertEqual(select.rows, [{"id": 1}])
        self.assertEqual(updates, [[{"id": 1}]])

        await self._emit(make_event("u"))
        self.assertEqual(self.database.calls, [QUERY])

    async def test_database_mismatch(self):
        """第二个订阅的数据库不同，不命中"""
        first = self.live.select(QUERY, [{"table": "t"}])
        second = self.live.select(QUERY, [{"table": "t", "database": "other"}])
        await self.live.start()

        await self._emit(make_event("t", database="shop"))

        self.assertEqual(self.database.calls, [QUERY])
        self.assertEqual(first.rows, [{"id": 1}])
        self.assertEqual(second.rows, [])
        self.assertEqual(self.live.get_status().cache_hits, 0)

    async def test_dedup_identical_queries(self):
        """相同 query 的多个订阅只执行一次"""
        selects = [self.live.select(QUERY, [Trigger(table="t")]) for _ in range(3)]
        await self.live.start()

        await self._emit(make_event("t"))

        self.assertEqual(self.database.calls, [QUERY])
        for select in selects:
            self.assertEqual(select.rows, [{"id": 1}])

    async def test_failed_query_retried_by_sibling(self):
        """第一次执行失败，第二个相同 query 的订阅自行执行"""
        first = self.live.select(QUERY, [{"table": "t"}])
        second = self.live.select(QUERY, [{"table": "t"}])
        errors = []
        first.on_error(errors.append)
        await self.live.start()
        self.database.fail(QUERY)

        await self._emit(make_event("t"))

        self.assertEqual(self.database.calls, [QUERY, QUERY])
        self.assertEqual(first.rows, [])
        self.assertEqual(second.rows, [{"id": 1}])
        self.assertEqual(len(errors), 1)

    async def test_select_validation(self):
        """非法触发器同步失败，不注册也不修改过滤器"""
        with self.assertRaises(TriggerValidationError):
            self.live.select(QUERY, [])
        with self.assertRaises(TriggerValidationError):
            self.live.select(QUERY, None)
        with self.assertRaises(TriggerValidationError):
            self.live.select(QUERY, [{"database": "shop"}])
        with self.assertRaises(TriggerValidationError):
            self.live.select(QUERY, ["t"])
        with self.assertRaises(ValidationError):
            self.live.select("  ", [{"table": "t"}])

        self.assertEqual(self.live.dispatcher.selects, ())
        self.assertEqual(self.live.schema_filter.active(), {})

    async def test_select_without_default_database(self):
        """没有默认数据库时触发器必须指定数据库，且整组不生效"""
        live = LiveMySQL(
            make_settings(database=None),
            database=FakeDatabase(),
            reader=FakeReader(),
        )

        with self.assertRaises(TriggerValidationError):
            live.select(QUERY, [{"table": "t", "database": "shop"}, {"table": "u"}])

        self.assertEqual(live.schema_filter.active(), {})
        self.assertEqual(live.select(QUERY, [{"table": "t", "database": "shop"}]).triggers[0].database, "shop")

    async def test_select_updates_filter(self):
        """注册后过滤器包含触发表，读取器持有同一个映射"""
        await self.live.start()

        self.live.select(QUERY, [{"table": "t"}, {"table": "t"}, {"table": "x", "database": "crm"}])

        self.assertEqual(self.reader.include_schema, {"shop": ["t"], "crm": ["x"]})
        self.assertEqual(self.live.get_status().watched_schema, {"shop": ["t"], "crm": ["x"]})

    async def test_pause_then_resume(self):
        """暂停后事件不触发更新；恢复后全部刷新，新事件重新生效"""
        select = self.live.select(QUERY, [{"table": "t"}])
        await self.live.start()

        self.live.pause()
        await self._emit(make_event("t"))
        self.assertEqual(self.database.calls, [])
        self.assertEqual(self.live.state, LifecycleState.PAUSED)

        await self.live.resume()
        self.assertEqual(self.database.calls, [QUERY])
        self.assertEqual(select.rows, [{"id": 1}])

        await self._emit(make_event("t"))
        self.assertEqual(self.database.calls, [QUERY, QUERY])

    async def test_resume_refreshes_without_events(self):
        """resume 刷新所有订阅，不经过触发器匹配和去重"""
        self.live.select(QUERY, [{"table": "t"}])
        self.live.select(QUERY, [{"table": "t"}])
        self.live.select("SELECT * FROM orders", [{"table": "orders"}])
        await self.live.start()

        failed = await self.live.resume()

        self.assertEqual(failed, 0)
        self.assertEqual(sorted(self.database.calls), sorted([QUERY, QUERY, "SELECT * FROM orders"]))

    async def test_events_dropped_while_paused_in_flight(self):
        """暂停后到达的事件即使绕过过滤器也被丢弃"""
        self.live.select(QUERY, [{"table": "t"}])
        await self.live.start()
        self.live.pause()

        self.live._on_binlog_event(make_event("t"))
        await self.live.wait_idle()

        self.assertEqual(self.database.calls, [])
        self.assertEqual(self.live.get_status().events_ignored, 1)

    async def test_table_map_events_ignored(self):
        """tablemap 事件不触发查询"""
        self.live.select(QUERY, [{"table": "t"}])
        await self.live.start()

        await self._emit(make_event("t", event_type=EventType.TABLEMAP))

        self.assertEqual(self.database.calls, [])

    async def test_start_callback_success(self):
        """就绪回调只调用一次"""
        callback = MagicMock()

        await self.live.start(callback)

        callback.assert_called_once_with(None)
        self.assertEqual(self.live.state, LifecycleState.READY)

    async def test_connect_failure_callback(self):
        """连接失败通过回调报告"""
        live = LiveMySQL(
            make_settings(),
            database=FakeDatabase(fail_connect=True),
            reader=FakeReader(),
        )
        callback = MagicMock()

        await live.start(callback)

        error = callback.call_args[0][0]
        self.assertIsInstance(error, ConnectError)
        self.assertEqual(live.state, LifecycleState.STOPPED)
        self.assertFalse(live.dispatcher.is_running())

    async def test_connect_failure_raises(self):
        """无回调时抛出连接错误"""
        live = LiveMySQL(
            make_settings(),
            database=FakeDatabase(fail_connect=True),
            reader=FakeReader(),
        )

        with self.assertRaises(ConnectError):
            await live.start()

    async def test_init_timeout(self):
        """读取器未就绪时报告 INIT_TIMEOUT，读取器保持运行"""
        reader = FakeReader(ready_after_polls=None)
        live = LiveMySQL(
            make_settings(),
            make_replication(init_timeout=0.05, poll=0.01),
            database=FakeDatabase(),
            reader=reader,
        )
        callback = MagicMock()

        await live.start(callback)

        error = callback.call_args[0][0]
        self.assertIsInstance(error, InitializationTimeoutError)
        self.assertEqual(error.code, "INIT_TIMEOUT")
        self.assertFalse(reader.stopped)
        callback.assert_called_once()

        await live.end()
        self.assertTrue(reader.stopped)

    async def test_pause_after_late_ready(self):
        """初始化超时后读取器就绪，仍可暂停和恢复"""
        reader = FakeReader(ready_after_polls=None)
        live = LiveMySQL(
            make_settings(),
            make_replication(init_timeout=0.05, poll=0.01),
            database=FakeDatabase({QUERY: [{"id": 1}]}),
            reader=reader,
        )
        select = live.select(QUERY, [{"table": "t"}])
        callback = MagicMock()
        await live.start(callback)
        self.assertIsInstance(callback.call_args[0][0], InitializationTimeoutError)

        reader.make_ready()
        for _ in range(50):
            if live.state == LifecycleState.READY:
                break
            await asyncio.sleep(0.01)

        live.pause()
        self.assertEqual(live.state, LifecycleState.PAUSED)
        await live.resume()
        self.assertEqual(select.rows, [{"id": 1}])
        callback.assert_called_once()
        await live.end()

    async def test_end_during_start_reports_to_callback(self):
        """初始化期间 end()，回调收到 LifecycleError"""
        live = LiveMySQL(
            make_settings(),
            make_replication(init_timeout=1.0, poll=0.01),
            database=FakeDatabase(),
            reader=FakeReader(ready_after_polls=None),
        )
        callback = MagicMock()

        starting = asyncio.create_task(live.start(callback))
        await asyncio.sleep(0.05)
        await live.end()
        await starting

        callback.assert_called_once()
        self.assertIsInstance(callback.call_args[0][0], LifecycleError)
        self.assertEqual(live.state, LifecycleState.STOPPED)

    async def test_end_is_terminal(self):
        """关闭后停止读取器、关闭连接，拒绝后续操作"""
        await self.live.start()

        await self.live.end()

        self.assertTrue(self.reader.stopped)
        self.assertTrue(self.database.closed)
        self.assertEqual(self.live.state, LifecycleState.STOPPED)
        with self.assertRaises(LifecycleError):
            self.live.select(QUERY, [{"table": "t"}])
        with self.assertRaises(LifecycleError):
            self.live.pause()

    async def test_context_manager(self):
        """async with 自动启动和关闭"""
        live = LiveMySQL(make_settings(), database=FakeDatabase(), reader=FakeReader())

        async with live:
            self.assertEqual(live.state, LifecycleState.READY)

        self.assertEqual(live.state, LifecycleState.STOPPED)

    async def test_status_counters(self):
        """状态统计"""
        self.live.select(QUERY, [{"table": "t"}])
        self.live.select(QUERY, [{"table": "t"}])
        await self.live.start()

        await self._emit(make_event("t"))
        await self._emit(make_event("t", event_type=EventType.TABLEMAP))

        status = self.live.get_status()
        self.assertEqual(status.subscriptions, 2)
        self.assertEqual(status.events_received, 2)
        self.assertEqual(status.events_dispatched, 1)
        self.assertEqual(status.events_ignored, 1)
        self.assertEqual(status.queries_executed, 1)
        self.assertEqual(status.cache_hits, 1)
        self.assertTrue(status.is_running())


if __name__ == "__main__":
    unittest.main()
