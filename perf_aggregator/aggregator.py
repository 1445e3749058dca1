"""
分区 -> 表 -> 集群 三级聚合

- 只有分区主副本上报的计数器计入分区指标
- 每一级在基础指标求和之后再计算派生指标（read_qps 等）
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .decoder import READ_OPERATIONS, WRITE_OPERATIONS, aggregatable, decode_partition_counter
from .models import ClusterStats, Gpid, NodeStats, PartitionStats, TableInfo, TableStats

logger = logging.getLogger(__name__)


def aggregate_custom_stats(elements: Iterable[str], stats: Dict[str, float], result_name: str):
    """把 elements 中各指标之和写入 stats[result_name]，缺失的指标按 0 计"""
    stats[result_name] = float(sum(stats.get(ele, 0.0) for ele in elements))


def extend_stats(stats: Dict[str, float]):
    """
    计算派生指标

    读类操作 {get, multi_get, scan} -> read_qps / read_bytes
    写类操作 {put, remove, multi_put, multi_remove, check_and_set, check_and_mutate}
        -> write_qps / write_bytes

    派生指标只依赖基础指标，重复调用结果不变。空的 stats 保持为空。
    """
    if not stats:
        return
    aggregate_custom_stats([f"{op}_qps" for op in READ_OPERATIONS], stats, "read_qps")
    aggregate_custom_stats([f"{op}_bytes" for op in READ_OPERATIONS], stats, "read_bytes")
    aggregate_custom_stats([f"{op}_qps" for op in WRITE_OPERATIONS], stats, "write_qps")
    aggregate_custom_stats([f"{op}_bytes" for op in WRITE_OPERATIONS], stats, "write_bytes")


def prepare_partition_stats(primaries: Dict[Gpid, str]) -> Dict[Gpid, PartitionStats]:
    """为每个有主副本的分区创建空的 PartitionStats"""
    return {
        gpid: PartitionStats(gpid=gpid, addr=addr)
        for gpid, addr in primaries.items()
    }


def attribute_counters(
    partitions: Dict[Gpid, PartitionStats],
    nodes: Iterable[NodeStats],
    whitelist: Optional[Iterable[str]] = None,
) -> Dict[Gpid, PartitionStats]:
    """
    把节点计数器归属到分区

    丢弃：节点级计数器、不可聚合的计数器、未知分区的计数器、
    以及非主副本上报的计数器（过期数据或从副本）。
    """
    for node in nodes:
        for name, value in node.stats.items():
            counter = decode_partition_counter(name, value)
            if counter is None or not aggregatable(counter, whitelist):
                continue

            part = partitions.get(counter.gpid)
            if part is None or part.addr != node.addr:
                # 该节点不是这个分区的主副本
                continue

            if counter.name in part.stats:
                logger.warning(
                    f"Duplicate counter {counter.name} for partition {counter.gpid} "
                    f"from {node.addr}, keeping the latest value"
                )
            part.stats[counter.name] = counter.value

    for part in partitions.values():
        extend_stats(part.stats)
    return partitions


def new_table_stats(info: TableInfo) -> TableStats:
    """按表的分区数创建空的 TableStats"""
    tb = TableStats(table_name=info.table_name, app_id=info.app_id)
    for i in range(info.partition_count):
        tb.partitions[i] = PartitionStats(
            gpid=Gpid(app_id=info.app_id, partition_index=i),
        )
    return tb


def aggregate_table(tb: TableStats) -> TableStats:
    """分区指标逐项求和得到表指标，再计算表级派生指标"""
    tb.timestamp = datetime.utcnow()
    stats: Dict[str, float] = defaultdict(float)
    for part in tb.partitions.values():
        for name, value in part.stats.items():
            stats[name] += value
    tb.stats = dict(stats)
    extend_stats(tb.stats)
    return tb


def build_table_stats(tables: Iterable[TableInfo], partitions: Iterable[PartitionStats]) -> List[TableStats]:
    """
    把分区指标按表分组并聚合

    未出现在 tables 中的分区（例如表在本周期内被删除）会被忽略。
    """
    by_app_id = {info.app_id: new_table_stats(info) for info in tables}
    for part in partitions:
        tb = by_app_id.get(part.gpid.app_id)
        if tb is None:
            continue
        tb.partitions[part.gpid.partition_index] = part

    return [aggregate_table(tb) for tb in by_app_id.values()]


def aggregate_cluster(tables: Iterable[TableStats]) -> ClusterStats:
    """
    所有表的指标逐项求和

    派生指标在表级已经计算过，这里直接累加。
    """
    stats: Dict[str, float] = defaultdict(float)
    for tb in tables:
        for name, value in tb.stats.items():
            stats[name] += value
    return ClusterStats(timestamp=datetime.utcnow(), stats=dict(stats))
