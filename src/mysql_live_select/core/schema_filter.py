"""
复制过滤器 - 维护复制流需要解码的 database -> tables 映射
"""

import copy
from typing import Dict, List, Mapping, Sequence

IncludeSchema = Dict[str, List[str]]


def schema_includes(
    include_schema: Mapping[str, Sequence[str]],
    database: str,
    table: str
) -> bool:
    """检查 (database, table) 是否在过滤映射中"""
    tables = include_schema.get(database)
    return tables is not None and table in tables


class SchemaFilter:
    """
    复制过滤器注册表

    映射只增不减：每个注册过的触发器在连接生命周期内一直被监听。
    active() 每次返回同一个字典对象，读取器持有该引用即可看到之后新增的表。
    """

    def __init__(self) -> None:
        self._schema: IncludeSchema = {}

    def add_trigger(self, database: str, table: str) -> None:
        """幂等地加入一个 (database, table)"""
        tables = self._schema.get(database)
        if tables is None:
            self._schema[database] = [table]
        elif table not in tables:
            tables.append(table)

    def active(self) -> IncludeSchema:
        """运行时使用的过滤映射（实时引用）"""
        return self._schema

    def paused(self) -> IncludeSchema:
        """暂停时使用的空映射"""
        return {}

    def includes(self, database: str, table: str) -> bool:
        return schema_includes(self._schema, database, table)

    def as_dict(self) -> IncludeSchema:
        """快照，用于状态展示"""
        return copy.deepcopy(self._schema)

    def __len__(self) -> int:
        return sum(len(tables) for tables in self._schema.values())
