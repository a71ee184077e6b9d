"""
SQL 解析工具 - 提取 SELECT 读取的表，检查触发器覆盖
"""

from typing import Iterable, List, Optional, Tuple

import sqlparse
from sqlparse.sql import Identifier, IdentifierList, Parenthesis, TokenList
from sqlparse.tokens import Keyword

from mysql_live_select.models.trigger import Trigger

TableRef = Tuple[Optional[str], str]


def _is_table_keyword(token: sqlparse.sql.Token) -> bool:
    """FROM / JOIN / LEFT JOIN ... 之后跟的是表"""
    if token.ttype is not Keyword:
        return False
    normalized = token.normalized.upper()
    return normalized == "FROM" or normalized.endswith("JOIN")


def _add_identifier(token: sqlparse.sql.Token, tables: List[TableRef]) -> None:
    if isinstance(token, Identifier):
        first = token.token_first(skip_cm=True)
        if isinstance(first, Parenthesis):
            # 派生表: (SELECT ...) AS x
            _collect_tables(first, tables)
            return
        name = token.get_real_name()
        if name:
            tables.append((token.get_parent_name(), name.strip("`")))
    elif isinstance(token, Parenthesis):
        _collect_tables(token, tables)
    elif token.ttype is not None and not token.is_whitespace:
        tables.append((None, token.value.strip("`")))


def _collect_tables(token_list: TokenList, tables: List[TableRef]) -> None:
    expecting_table = False
    for token in token_list.tokens:
        if token.is_whitespace or token.ttype in sqlparse.tokens.Comment:
            continue

        if _is_table_keyword(token):
            expecting_table = True
            continue

        if expecting_table:
            expecting_table = False
            if isinstance(token, IdentifierList):
                for identifier in token.get_identifiers():
                    _add_identifier(identifier, tables)
                continue
            if isinstance(token, (Identifier, Parenthesis)) or token.ttype is not None:
                _add_identifier(token, tables)
                continue

        if token.is_group:
            _collect_tables(token, tables)


def extract_tables(query: str) -> List[TableRef]:
    """
    提取查询读取的表

    参数:
        query: SELECT 语句

    返回:
        (database, table) 列表，未限定数据库时 database 为 None，按出现顺序去重

    示例:
        >>> extract_tables("SELECT * FROM shop.orders o JOIN users u ON u.id = o.user_id")
        [('shop', 'orders'), (None, 'users')]
    """
    tables: List[TableRef] = []
    for statement in sqlparse.parse(query):
        _collect_tables(statement, tables)

    seen = set()
    unique: List[TableRef] = []
    for ref in tables:
        if ref not in seen:
            seen.add(ref)
            unique.append(ref)
    return unique


def uncovered_tables(
    query: str,
    triggers: Iterable[Trigger],
    default_database: Optional[str] = None
) -> List[TableRef]:
    """
    查询读取但没有触发器监听的表

    这些表变更时结果不会刷新。

    参数:
        query: SELECT 语句
        triggers: 触发器
        default_database: 连接默认数据库

    返回:
        未覆盖的 (database, table) 列表
    """
    watched = {
        (trigger.database or default_database, trigger.table)
        for trigger in triggers
    }
    missing = []
    for database, table in extract_tables(query):
        if (database or default_database, table) not in watched:
            missing.append((database or default_database, table))
    return missing
