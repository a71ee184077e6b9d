"""
运行状态模型 - 生命周期状态和统计
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class LifecycleState(str, Enum):
    """连接生命周期状态"""
    CONNECTING = "connecting"      # 正在连接数据库
    INITIALIZING = "initializing"  # 等待复制读取器就绪
    READY = "ready"                # 运行中
    PAUSED = "paused"              # 暂停（空过滤器）
    STOPPED = "stopped"            # 已停止，终态


class LiveStatus(BaseModel):
    """
    运行状态信息

    get_status() 返回的数据。
    """
    state: LifecycleState = Field(default=LifecycleState.CONNECTING, description="当前状态")
    subscriptions: int = Field(default=0, description="已注册的实时查询数")
    watched_schema: Dict[str, List[str]] = Field(
        default_factory=dict, description="复制过滤器"
    )

    # 统计信息
    events_received: int = Field(default=0, description="收到的事件数")
    events_dispatched: int = Field(default=0, description="完成调度的事件数")
    events_ignored: int = Field(default=0, description="被忽略的事件数")
    queries_executed: int = Field(default=0, description="查询执行次数")
    cache_hits: int = Field(default=0, description="事件内去重命中次数")
    query_errors: int = Field(default=0, description="查询失败次数")

    # 错误信息
    last_error: Optional[str] = Field(default=None, description="最后错误信息")
    last_error_at: Optional[datetime] = Field(default=None, description="最后错误时间")

    def is_running(self) -> bool:
        """检查是否运行中"""
        return self.state == LifecycleState.READY

    def record_error(self, error: str) -> None:
        """记录错误"""
        self.last_error = error
        self.last_error_at = datetime.now(timezone.utc)
