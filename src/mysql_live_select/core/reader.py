"""
复制读取器 - 使用 python-mysql-replication 读取 binlog 行事件
"""

import asyncio
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import pymysql
from pymysqlreplication import BinLogStreamReader
from pymysqlreplication.row_event import (
    DeleteRowsEvent,
    TableMapEvent,
    UpdateRowsEvent,
    WriteRowsEvent,
)

from mysql_live_select.core.schema_filter import IncludeSchema, schema_includes
from mysql_live_select.errors import LifecycleError
from mysql_live_select.models.event import ChangeEvent, EventType, RowChange
from mysql_live_select.models.settings import ConnectionSettings, ReplicationSettings
from mysql_live_select.utils.logging import get_logger

logger = get_logger(__name__)

INCLUDE_EVENTS = (TableMapEvent, WriteRowsEvent, UpdateRowsEvent, DeleteRowsEvent)


def _decode(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def _event_time(binlog_event: Any) -> datetime:
    timestamp = getattr(binlog_event, "timestamp", None)
    if isinstance(timestamp, (int, float)):
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return datetime.now(timezone.utc)


def event_from_binlog(binlog_event: Any) -> Optional[ChangeEvent]:
    """
    把 pymysqlreplication 事件转换为 ChangeEvent

    返回:
        ChangeEvent，不关心的事件类型返回 None
    """
    if isinstance(binlog_event, TableMapEvent):
        return ChangeEvent(
            event_type=EventType.TABLEMAP,
            database=_decode(binlog_event.schema),
            table=_decode(binlog_event.table),
            timestamp=_event_time(binlog_event),
        )

    if isinstance(binlog_event, UpdateRowsEvent):
        event_type = EventType.UPDATEROWS
        rows = [
            RowChange(before=row["before_values"], after=row["after_values"])
            for row in binlog_event.rows
        ]
    elif isinstance(binlog_event, WriteRowsEvent):
        event_type = EventType.WRITEROWS
        rows = [RowChange(after=row["values"]) for row in binlog_event.rows]
    elif isinstance(binlog_event, DeleteRowsEvent):
        event_type = EventType.DELETEROWS
        rows = [RowChange(before=row["values"]) for row in binlog_event.rows]
    else:
        return None

    return ChangeEvent(
        event_type=event_type,
        database=_decode(binlog_event.schema),
        table=_decode(binlog_event.table),
        rows=rows,
        timestamp=_event_time(binlog_event),
    )


class BinlogReader:
    """
    binlog 读取器

    BinLogStreamReader 是阻塞迭代器，在守护线程中运行，
    解码后的事件通过 call_soon_threadsafe 交回事件循环。
    include_schema 以引用方式持有，set() 可以随时替换。

    属性:
        ready: 复制源已连通且 binlog 开启，可以接收事件
        on_event: 事件回调，在事件循环线程中调用
    """

    def __init__(self, settings: ConnectionSettings, replication: ReplicationSettings):
        self.settings = settings
        self.replication = replication
        self.ready = False
        self.on_event: Optional[Callable[[ChangeEvent], None]] = None
        self._include_schema: IncludeSchema = {}
        self._stream: Optional[BinLogStreamReader] = None
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stopping = threading.Event()

    @property
    def include_schema(self) -> IncludeSchema:
        return self._include_schema

    def stream_params(self) -> Dict[str, Any]:
        """BinLogStreamReader 构造参数"""
        return {
            "connection_settings": self.settings.replication_params(),
            "server_id": self.settings.server_id,
            "resume_stream": self.replication.start_at_end,
            "blocking": True,
            "only_events": list(INCLUDE_EVENTS),
        }

    def start(self, include_schema: IncludeSchema) -> None:
        """启动读取线程（需要在事件循环中调用）"""
        if self._thread is not None:
            raise LifecycleError("复制读取器已启动")

        self._include_schema = include_schema
        self._loop = asyncio.get_running_loop()
        self._stopping.clear()
        self._thread = threading.Thread(
            target=self._run,
            name=f"binlog-reader-{self.settings.server_id}",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "binlog_reader_started",
            server_id=self.settings.server_id,
            include_schema=include_schema
        )

    def set(self, include_schema: IncludeSchema) -> None:
        """热更新过滤映射"""
        self._include_schema = include_schema
        logger.debug("binlog_reader_reconfigured", include_schema=include_schema)

    def stop(self) -> None:
        """停止读取，不等待线程退出"""
        self._stopping.set()
        self.ready = False
        stream, self._stream = self._stream, None
        if stream is not None:
            try:
                stream.close()
            except Exception as e:
                logger.warning("binlog_stream_close_failed", error=str(e))
        self._thread = None
        logger.info("binlog_reader_stopped", server_id=self.settings.server_id)

    def check_binlog(self) -> bool:
        """
        连接复制源并确认 binlog 已开启（阻塞，在读取线程中调用）

        BinLogStreamReader 直到第一次读取才连接，就绪状态以这里的结果为准。

        返回:
            True 表示可以开始复制
        """
        try:
            connection = pymysql.connect(
                host=self.settings.host,
                port=self.settings.port,
                user=self.settings.user,
                password=self.settings.password,
                charset=self.settings.charset,
                connect_timeout=self.replication.connect_timeout,
            )
        except pymysql.MySQLError as e:
            logger.error(
                "binlog_connect_failed",
                host=self.settings.host,
                port=self.settings.port,
                error=str(e)
            )
            return False

        try:
            with connection.cursor() as cursor:
                cursor.execute("SELECT @@GLOBAL.log_bin")
                row = cursor.fetchone()
        except pymysql.MySQLError as e:
            logger.error("binlog_status_failed", error=str(e))
            return False
        finally:
            connection.close()

        if not row or not int(row[0]):
            logger.error("binlog_disabled", host=self.settings.host)
            return False
        return True

    def _run(self) -> None:
        if self._stopping.is_set():
            return
        if not self.check_binlog() or self._stopping.is_set():
            return
        try:
            stream = BinLogStreamReader(**self.stream_params())
        except Exception as e:
            logger.error("binlog_stream_create_failed", error=str(e))
            return

        self._stream = stream
        self.ready = True
        logger.info("binlog_reader_ready", server_id=self.settings.server_id)

        try:
            for binlog_event in stream:
                if self._stopping.is_set():
                    break
                self.handle_binlog_event(binlog_event)
        except Exception as e:
            # stop() 关闭流时读取会抛出异常
            if not self._stopping.is_set():
                logger.error("binlog_stream_failed", error=str(e))
                self.ready = False

    def handle_binlog_event(self, binlog_event: Any) -> None:
        """转换并按过滤映射筛选事件，然后交给事件循环"""
        event = event_from_binlog(binlog_event)
        if event is None:
            return
        if not schema_includes(self._include_schema, event.database, event.table):
            return

        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._emit, event)

    def _emit(self, event: ChangeEvent) -> None:
        if self.on_event is not None and not self._stopping.is_set():
            self.on_event(event)
