"""
配置模型 - 使用 Pydantic 进行配置验证
"""

import os
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from mysql_live_select.models.trigger import Trigger


class ConnectionSettings(BaseModel):
    """
    MySQL 连接配置

    属性:
        host: 主机地址
        port: 端口
        user: 用户名（需要 REPLICATION SLAVE / REPLICATION CLIENT 权限）
        password: 密码
        database: 默认数据库，未指定数据库的触发器使用它
        charset: 字符集
        server_id: 复制客户端标识，不能与其他从库重复
        pool_size: 查询连接池大小
    """
    model_config = ConfigDict(title="MySQL Connection")

    host: str = Field(default="localhost", description="主机地址")
    port: int = Field(default=3306, ge=1, le=65535, description="端口")
    user: str = Field(..., min_length=1, description="用户名")
    password: str = Field(default="", description="密码")
    database: Optional[str] = Field(default=None, description="默认数据库")
    charset: str = Field(default="utf8mb4", description="字符集")
    server_id: int = Field(..., ge=1, description="复制客户端 server_id")
    pool_size: int = Field(default=5, ge=1, le=50, description="连接池大小")

    def replication_params(self) -> Dict[str, Any]:
        """转换为 pymysqlreplication 的 connection_settings"""
        return {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "passwd": self.password,
            "charset": self.charset,
        }


class ReplicationSettings(BaseModel):
    """
    复制读取器配置

    属性:
        init_timeout: 等待读取器就绪的最长时间（秒）
        ready_poll_interval: 就绪状态轮询间隔（秒）
        start_at_end: 从 binlog 末尾开始读取
        connect_timeout: 读取器连接复制源的超时（秒）
    """
    init_timeout: float = Field(default=1.5, gt=0, description="初始化超时（秒）")
    ready_poll_interval: float = Field(default=0.04, gt=0, description="就绪轮询间隔（秒）")
    start_at_end: bool = Field(default=True, description="从 binlog 末尾开始")
    connect_timeout: float = Field(default=10.0, gt=0, description="复制源连接超时（秒）")

    @model_validator(mode="after")
    def validate_interval(self) -> "ReplicationSettings":
        """轮询间隔不能超过超时时间"""
        if self.ready_poll_interval > self.init_timeout:
            raise ValueError("ready_poll_interval 不能大于 init_timeout")
        return self


class QueryDefinition(BaseModel):
    """
    配置文件中声明的实时查询

    属性:
        name: 查询名称，用于输出标识
        query: SELECT 语句
        triggers: 触发器列表（至少一个）
    """
    name: str = Field(..., min_length=1, description="查询名称")
    query: str = Field(..., min_length=1, description="查询语句")
    triggers: List[Trigger] = Field(..., min_length=1, description="触发器列表")


class LiveConfig(BaseModel):
    """
    配置根对象

    属性:
        connection: MySQL 连接配置
        replication: 复制读取器配置
        queries: 实时查询列表
        log_level: 日志级别，默认 INFO
    """
    connection: ConnectionSettings = Field(..., description="连接配置")
    replication: ReplicationSettings = Field(
        default_factory=ReplicationSettings, description="复制配置"
    )
    queries: List[QueryDefinition] = Field(default_factory=list, description="实时查询")
    log_level: str = Field(default="INFO", description="日志级别")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """验证日志级别"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR"]
        if v.upper() not in valid_levels:
            raise ValueError(f"日志级别必须是以下之一: {valid_levels}")
        return v.upper()

    @model_validator(mode="after")
    def validate_query_names_unique(self) -> "LiveConfig":
        """验证查询名称唯一"""
        names = [q.name for q in self.queries]
        if len(names) != len(set(names)):
            raise ValueError("查询名称必须唯一")
        return self

    def get_query(self, name: str) -> Optional[QueryDefinition]:
        """按名称获取查询定义"""
        for definition in self.queries:
            if definition.name == name:
                return definition
        return None


def expand_env_vars(value: Any) -> Any:
    """
    递归展开值中的环境变量

    支持格式:
        - ${VAR_NAME}
        - ${VAR_NAME:-default_value}
    """
    if isinstance(value, str):
        import re

        pattern = r'\$\{([^}:-]+)(?::-([^}]*))?\}'

        def replacer(match: "re.Match[str]") -> str:
            var_name = match.group(1)
            default_val = match.group(2)
            env_value = os.getenv(var_name)
            if env_value is None:
                if default_val is not None:
                    return default_val
                raise ValueError(f"环境变量 {var_name} 未设置且无默认值")
            return env_value

        result: Any = re.sub(pattern, replacer, value)
        return result
    elif isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    return value
