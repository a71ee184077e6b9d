"""
测试配置 (unittest 兼容)

共享的假对象和工厂函数在 tests/helpers.py。
"""

from mysql_live_select.utils.logging import configure_logging


def pytest_configure(config):
    """测试期间输出 DEBUG 日志"""
    configure_logging(log_level="DEBUG", json_format=False)
