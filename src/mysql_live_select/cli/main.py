"""
CLI 命令行入口 - 使用 Click 框架
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List

import click

from mysql_live_select import __version__
from mysql_live_select.config import ConfigError, load_config, save_config_template
from mysql_live_select.errors import LiveSelectError
from mysql_live_select.models.settings import LiveConfig
from mysql_live_select.utils.logging import configure_logging, get_logger
from mysql_live_select.utils.sql_parser import uncovered_tables

logger = get_logger(__name__)


@click.group()
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    default="INFO",
    help="日志级别",
)
@click.option("--json-logs", is_flag=True, help="使用 JSON 格式输出日志")
@click.version_option(version=__version__, prog_name="mysql-live-select")
@click.pass_context
def cli(ctx: click.Context, log_level: str, json_logs: bool) -> None:
    """
    MySQL 实时查询 CLI

    监听 binlog，触发表变更时重新执行查询并输出结果。
    """
    configure_logging(log_level=log_level, json_format=json_logs)

    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level


@cli.command()
@click.argument("output_path", type=click.Path(), default="live.yaml")
def init(output_path: str) -> None:
    """
    生成配置文件模板

    示例:
        mysql-live-select init live.yaml
    """
    path = Path(output_path)

    if path.exists():
        click.confirm(f"文件 {output_path} 已存在，是否覆盖？", abort=True)

    save_config_template(output_path)
    click.echo(f"✓ 配置模板已生成: {output_path}")


@cli.command()
@click.argument("config_path", type=click.Path(exists=True))
def validate(config_path: str) -> None:
    """
    验证配置文件并检查触发器覆盖

    示例:
        mysql-live-select validate live.yaml
    """
    try:
        config = load_config(config_path)
    except ConfigError as e:
        click.echo(f"✗ 配置错误: {e}", err=True)
        sys.exit(1)

    click.echo("✓ 配置验证通过")
    click.echo(f"  主机: {config.connection.host}:{config.connection.port}")
    click.echo(f"  server_id: {config.connection.server_id}")
    click.echo(f"  查询数: {len(config.queries)}")

    for definition in config.queries:
        missing = uncovered_tables(
            definition.query,
            definition.triggers,
            config.connection.database
        )
        if missing:
            tables = ", ".join(f"{db or '?'}.{table}" for db, table in missing)
            click.echo(f"  ⚠ {definition.name}: 以下表没有触发器: {tables}")


@cli.command()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True),
    required=True,
    help="配置文件路径",
)
@click.option(
    "--query",
    "-q",
    "names",
    multiple=True,
    help="只监听指定名称的查询（可重复，默认全部）",
)
def watch(config_path: str, names: tuple[str, ...]) -> None:
    """
    运行实时查询，每次结果变化输出一行 JSON

    示例:
        mysql-live-select watch -c live.yaml
        mysql-live-select watch -c live.yaml -q open_orders
    """
    try:
        config = load_config(config_path)
    except ConfigError as e:
        click.echo(f"✗ 配置错误: {e}", err=True)
        sys.exit(1)

    try:
        asyncio.run(_run_watch(config, list(names)))
    except KeyboardInterrupt:
        click.echo("\n已停止", err=True)
    except LiveSelectError as e:
        click.echo(f"✗ 运行失败: {e}", err=True)
        sys.exit(1)


# ============================================================================
# 异步执行函数
# ============================================================================

def _emit_rows(name: str, rows: List[Dict[str, Any]]) -> None:
    """把结果输出为一行 JSON"""
    click.echo(json.dumps({"query": name, "rows": rows}, ensure_ascii=False, default=str))


async def _run_watch(config: LiveConfig, names: List[str]) -> None:
    """注册查询并保持运行"""
    from mysql_live_select.core.live import LiveMySQL

    definitions = [q for q in config.queries if not names or q.name in names]
    if not definitions:
        raise LiveSelectError("没有可运行的查询")

    live = LiveMySQL.from_config(config)
    for definition in definitions:
        select = live.select(definition.query, definition.triggers)
        select.on_update(lambda rows, name=definition.name: _emit_rows(name, rows))

    try:
        await live.start()
        # 输出初始结果
        await live.resume()
        while True:
            await asyncio.sleep(1)
    finally:
        await live.end()


if __name__ == "__main__":
    cli()
