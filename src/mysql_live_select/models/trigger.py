"""
触发器模型 - 实时查询关心的 (database, table)
"""

from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from mysql_live_select.errors import TriggerValidationError
from mysql_live_select.models.event import ChangeEvent, EventType

# condition(row) 或 condition(before, after)
RowCondition = Callable[..., bool]


class Trigger(BaseModel):
    """
    触发器

    属性:
        database: 数据库名（为空时使用连接的默认数据库）
        table: 表名
        condition: 行级过滤函数（可选）。UPDATE 事件调用
            condition(before, after)，其余调用 condition(values)
    """
    model_config = ConfigDict(frozen=True)

    database: Optional[str] = Field(default=None, description="数据库名")
    table: str = Field(..., min_length=1, description="表名")
    condition: Optional[RowCondition] = Field(
        default=None, exclude=True, description="行级过滤函数"
    )

    def resolve(self, default_database: Optional[str]) -> "Trigger":
        """
        填充数据库名

        参数:
            default_database: 连接配置的默认数据库

        返回:
            database 已确定的 Trigger

        异常:
            TriggerValidationError: 无法确定数据库
        """
        database = self.database or default_database
        if not database:
            raise TriggerValidationError(f"触发器 {self.table} 未指定数据库")
        if database == self.database:
            return self
        return self.model_copy(update={"database": database})

    def matches(self, event: ChangeEvent) -> bool:
        """检查事件是否命中此触发器"""
        if event.database != self.database or event.table != self.table:
            return False
        if self.condition is None:
            return True
        return any(self._check_row(event.event_type, row) for row in event.rows)

    def _check_row(self, event_type: EventType, row: Any) -> bool:
        if event_type == EventType.UPDATEROWS:
            return bool(self.condition(row.before, row.after))
        values = row.after if row.after is not None else row.before
        return bool(self.condition(values))
