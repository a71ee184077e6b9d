"""
配置加载模块 - 支持 YAML 和环境变量
"""

from pathlib import Path

import yaml

from mysql_live_select.models.settings import LiveConfig, expand_env_vars


class ConfigError(Exception):
    """配置错误"""
    pass


def load_config(path: str | Path) -> LiveConfig:
    """
    加载 YAML 配置文件

    支持环境变量替换，格式:
        - ${VAR_NAME}
        - ${VAR_NAME:-default_value}

    参数:
        path: 配置文件路径

    返回:
        LiveConfig: 验证后的配置对象

    异常:
        ConfigError: 配置文件不存在、格式错误或验证失败
    """
    config_path = Path(path)

    if not config_path.exists():
        raise ConfigError(f"配置文件不存在: {config_path}")

    try:
        content = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"读取配置文件失败: {e}") from e

    return load_config_from_string(content)


def load_config_from_string(content: str) -> LiveConfig:
    """
    从字符串加载配置

    参数:
        content: YAML 配置字符串

    返回:
        LiveConfig: 验证后的配置对象
    """
    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"YAML 解析失败: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigError("配置文件必须是一个对象")

    try:
        expanded_config = expand_env_vars(raw_config)
        return LiveConfig(**expanded_config)
    except ValueError as e:
        raise ConfigError(f"配置验证失败: {e}") from e


def generate_config_template() -> str:
    """
    生成配置模板

    返回:
        str: YAML 配置模板
    """
    return '''# MySQL 实时查询配置
# 需要开启 binlog_format=ROW，用户需要 REPLICATION SLAVE / REPLICATION CLIENT 权限

connection:
  host: "localhost"
  port: 3306
  user: "${MYSQL_USER}"
  password: "${MYSQL_PASSWORD:-}"
  database: "shop"        # 触发器未指定 database 时使用
  server_id: 42           # 复制客户端标识，不能与其他从库重复
  pool_size: 5

replication:
  init_timeout: 1.5         # 等待复制读取器就绪（秒）
  ready_poll_interval: 0.04 # 就绪轮询间隔（秒）
  start_at_end: true

queries:
  - name: "open_orders"
    query: "SELECT id, user_id, total FROM orders WHERE status = 'open' ORDER BY id"
    triggers:
      - table: "orders"

  - name: "user_totals"
    query: >-
      SELECT u.id, u.name, SUM(o.total) AS total
      FROM users u JOIN orders o ON o.user_id = u.id
      GROUP BY u.id, u.name
    triggers:
      - table: "users"
      - table: "orders"

log_level: "INFO"
'''


def save_config_template(path: str | Path) -> None:
    """
    保存配置模板到文件

    参数:
        path: 输出文件路径
    """
    config_path = Path(path)
    config_path.write_text(generate_config_template(), encoding="utf-8")
