"""
计数器解码

把节点导出的计数器名解析为分区级计数器。支持两种命名：
- <app_id>.<partition_index>.<metric>
- <section>*...*<metric>@<app_id>.<partition_index>（存储节点原生命名）

其余形式一律视为节点级计数器，由聚合器忽略。
"""

import re
from typing import Iterable, Optional

from .models import Gpid, PartitionCounter

# 拉取计数器时使用的过滤条件
MATCH_ALL = ""
PARTITION_COUNTERS = "@"

READ_OPERATIONS = ("get", "multi_get", "scan")
WRITE_OPERATIONS = (
    "put",
    "remove",
    "multi_put",
    "multi_remove",
    "check_and_set",
    "check_and_mutate",
)

AGGREGATABLE_COUNTERS = frozenset(
    [
        f"{op}_{kind}"
        for op in READ_OPERATIONS + WRITE_OPERATIONS + ("incr",)
        for kind in ("qps", "bytes")
    ]
    + [
        "recent.read.cu",
        "recent.write.cu",
        "recent.expire.count",
        "recent.filter.count",
        "recent.abnormal.count",
        "disk.storage.sst(MB)",
        "disk.storage.sst.count",
        "rdb.estimate_num_keys",
        "rdb.memtable.memory_usage",
        "rdb.index_and_filter_blocks.memory_usage",
    ]
)

_CANONICAL_NAME = re.compile(r"^(?P<app_id>[0-9]+)\.(?P<index>[0-9]+)\.(?P<metric>.+)$")
_NATIVE_NAME = re.compile(r"^(?P<prefix>.+)@(?P<app_id>[0-9]+)\.(?P<index>[0-9]+)$")


def decode_partition_counter(name: str, value: float) -> Optional[PartitionCounter]:
    """
    解析分区级计数器

    Args:
        name: 原始计数器名
        value: 计数器值

    Returns:
        PartitionCounter；不是分区级计数器（或无法解析）时返回 None
    """
    if not isinstance(name, str):
        return None

    match = _NATIVE_NAME.match(name)
    if match:
        metric = match.group("prefix").rsplit("*", 1)[-1]
    else:
        match = _CANONICAL_NAME.match(name)
        if not match:
            return None
        metric = match.group("metric")

    if not metric:
        return None

    try:
        value = float(value)
    except (TypeError, ValueError):
        return None

    return PartitionCounter(
        gpid=Gpid(app_id=int(match.group("app_id")), partition_index=int(match.group("index"))),
        name=metric,
        value=value,
    )


def aggregatable(counter: PartitionCounter, whitelist: Optional[Iterable[str]] = None) -> bool:
    """
    判断分区计数器是否参与表/集群聚合

    延迟、分位数等诊断类计数器相加没有意义，不在白名单内。
    """
    allowed = AGGREGATABLE_COUNTERS if whitelist is None else whitelist
    return counter.name in allowed
