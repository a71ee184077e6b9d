"""
变更事件模型 - 表示一次解码后的 binlog 行事件
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class EventType(str, Enum):
    """binlog 事件类型"""
    TABLEMAP = "tablemap"      # 表定义事件，只供解析器使用
    WRITEROWS = "writerows"    # INSERT
    UPDATEROWS = "updaterows"  # UPDATE
    DELETEROWS = "deleterows"  # DELETE


ROW_EVENT_TYPES = (EventType.WRITEROWS, EventType.UPDATEROWS, EventType.DELETEROWS)


class RowChange(BaseModel):
    """
    单行变更

    属性:
        before: 变更前数据 (UPDATE/DELETE 时有值)
        after: 变更后数据 (INSERT/UPDATE 时有值)
    """
    before: Optional[Dict[str, Any]] = Field(default=None, description="变更前数据")
    after: Optional[Dict[str, Any]] = Field(default=None, description="变更后数据")

    @model_validator(mode="after")
    def validate_not_empty(self) -> "RowChange":
        """before 和 after 至少有一个"""
        if self.before is None and self.after is None:
            raise ValueError("RowChange 必须提供 before 或 after")
        return self


class ChangeEvent(BaseModel):
    """
    变更事件对象

    由复制读取器从 binlog 解码得到，调度器只读使用。

    属性:
        event_type: 事件类型
        database: 所属数据库
        table: 所属表
        rows: 变更行列表（tablemap 事件为空）
        timestamp: 事件时间

    示例:
        ```python
        event = ChangeEvent(
            event_type=EventType.WRITEROWS,
            database="shop",
            table="orders",
            rows=[RowChange(after={"id": 1, "total": 9.5})]
        )
        ```
    """
    event_type: EventType = Field(..., description="事件类型")
    database: str = Field(..., min_length=1, description="数据库名")
    table: str = Field(..., min_length=1, description="表名")
    rows: List[RowChange] = Field(default_factory=list, description="变更行")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="事件时间"
    )

    @model_validator(mode="after")
    def validate_rows(self) -> "ChangeEvent":
        """行事件必须携带变更行"""
        if self.event_type in ROW_EVENT_TYPES and not self.rows:
            raise ValueError(f"{self.event_type.value} 事件必须包含变更行")
        if self.event_type == EventType.TABLEMAP and self.rows:
            raise ValueError("tablemap 事件不能包含变更行")
        return self

    def is_table_map(self) -> bool:
        """是否为表定义事件"""
        return self.event_type == EventType.TABLEMAP
