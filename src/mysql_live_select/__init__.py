"""
MySQL Live Select

基于 MySQL binlog 复制流的实时查询引擎：注册查询和触发表，
触发表发生变更时自动重新执行查询并推送最新结果。
"""

from typing import Any

__version__ = "0.1.0"

# 延迟导入，避免未安装驱动时 import 失败
__all__ = [
    "LiveMySQL",
    "LiveSelect",
    "Trigger",
    "ChangeEvent",
    "ConnectionSettings",
    "ReplicationSettings",
    "load_config",
]


def __getattr__(name: str) -> Any:
    """延迟加载核心类"""
    if name == "LiveMySQL":
        from mysql_live_select.core.live import LiveMySQL
        return LiveMySQL
    elif name == "LiveSelect":
        from mysql_live_select.core.select import LiveSelect
        return LiveSelect
    elif name == "Trigger":
        from mysql_live_select.models.trigger import Trigger
        return Trigger
    elif name == "ChangeEvent":
        from mysql_live_select.models.event import ChangeEvent
        return ChangeEvent
    elif name == "ConnectionSettings":
        from mysql_live_select.models.settings import ConnectionSettings
        return ConnectionSettings
    elif name == "ReplicationSettings":
        from mysql_live_select.models.settings import ReplicationSettings
        return ReplicationSettings
    elif name == "load_config":
        from mysql_live_select.config import load_config
        return load_config
    raise AttributeError(f"module 'mysql_live_select' has no attribute '{name}'")
