"""
异常定义 - 实时查询引擎的错误分类
"""

from typing import Optional


class LiveSelectError(Exception):
    """所有实时查询错误的基类"""

    def __init__(self, message: str, code: Optional[str] = None):
        self.message = message
        self.code = code
        super().__init__(message)


class ConnectError(LiveSelectError):
    """数据库连接失败（致命，不重试）"""
    pass


class InitializationTimeoutError(LiveSelectError):
    """
    复制读取器初始化超时

    读取器不会被自动停止，由调用方决定是否 end()。
    """

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"复制读取器在 {timeout:.3f}s 内未就绪",
            code="INIT_TIMEOUT"
        )


class ValidationError(LiveSelectError, ValueError):
    """select() 参数不合法，同步抛出"""
    pass


class TriggerValidationError(ValidationError):
    """触发器缺失或无法确定数据库"""
    pass


class QueryExecutionError(LiveSelectError):
    """实时查询执行失败，只影响单个订阅"""

    def __init__(self, message: str, query: Optional[str] = None):
        self.query = query
        super().__init__(message)


class LifecycleError(LiveSelectError, RuntimeError):
    """在当前生命周期状态下不允许的操作"""
    pass
