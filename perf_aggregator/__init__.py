"""
Perf Aggregator - 分片 KV 集群性能计数器聚合引擎

负责：
- 从协调者发现存活节点和可用表
- 并发拉取所有存储节点的性能计数器
- 只按分区主副本归属计数器
- 逐级聚合：分区 -> 表 -> 集群
"""

__version__ = "1.0.0"

from .client import PerfClient
from .exceptions import CollectionError, DiscoveryError, PartialCollectionError
from .models import ClusterStats, Gpid, NodeStats, PartitionStats, TableStats

__all__ = [
    "PerfClient",
    "CollectionError",
    "DiscoveryError",
    "PartialCollectionError",
    "ClusterStats",
    "Gpid",
    "NodeStats",
    "PartitionStats",
    "TableStats",
]
