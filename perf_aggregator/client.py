"""
性能计数器聚合引擎

一个采集周期：
1. 刷新节点会话（严格模式下列出节点失败即周期失败；部分成功模式沿用上一次的非空节点集合）
2. 并发执行：拓扑解析（表 -> 分区主副本） 与 节点计数器采集
3. 两者都完成后，按分区归属计数器，再逐级聚合到表和集群
"""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from .aggregator import aggregate_cluster, attribute_counters, build_table_stats, prepare_partition_stats
from .config import AppConfig, CollectorConfig, get_config
from .decoder import AGGREGATABLE_COUNTERS, MATCH_ALL
from .exceptions import DiscoveryError
from .models import ClusterStats, CycleReport, NodeStats, PartitionStats, PrimaryMap, TableInfo, TableStats
from .registry import NodeRegistry
from .collector import FanOutCollector
from .topology import TopologyResolver
from .transport import HttpMetaClient, HttpNodeSession, MetaClient, SessionFactory

logger = logging.getLogger(__name__)


class PerfClient:
    """
    管理到所有存储节点的会话，并提供三级聚合结果

    只有分区主副本上报的计数器会被计入。没有任何数据的分区、表或集群，stats 为空字典，
    读取派生指标时请使用 stats.get()。

    Example:
        async with PerfClient.from_config() as client:
            cluster = await client.collect_cluster_stats()
            print(cluster.stats.get("read_qps", 0.0))
    """

    def __init__(
        self,
        meta: MetaClient,
        session_factory: SessionFactory,
        config: Optional[CollectorConfig] = None,
    ):
        self.config = config or CollectorConfig()
        self._meta = meta
        self._owns_meta = False

        self.registry = NodeRegistry(meta, session_factory, self.config.list_timeout)
        self.topology = TopologyResolver(
            meta,
            list_timeout=self.config.list_timeout,
            query_deadline=self.config.query_deadline,
            allow_partial=self.config.allow_partial,
        )
        self.collector = FanOutCollector(
            deadline=self.config.counters_deadline,
            allow_partial=self.config.allow_partial,
        )
        self._whitelist = AGGREGATABLE_COUNTERS | frozenset(self.config.extra_aggregatable)

        # 最近一次采集周期的概况
        self.last_cycle: Optional[CycleReport] = None

    @classmethod
    def from_config(cls, app_config: Optional[AppConfig] = None) -> "PerfClient":
        """使用默认 HTTP 传输层创建引擎"""
        app_config = app_config or get_config()
        timeout = app_config.meta.timeout

        def session_factory(addr: str) -> HttpNodeSession:
            return HttpNodeSession(addr, timeout=timeout)

        client = cls(
            HttpMetaClient(app_config.meta.servers, timeout=timeout),
            session_factory,
            app_config.collector,
        )
        client._owns_meta = True
        return client

    async def __aenter__(self) -> "PerfClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        """关闭所有节点会话"""
        await self.registry.close()
        if self._owns_meta:
            await self._meta.close()

    # =========================================================================
    # 对外接口
    # =========================================================================

    async def collect_node_stats(self, name_filter: str = MATCH_ALL) -> List[NodeStats]:
        """拉取所有节点中匹配 name_filter 的计数器（不做聚合）"""
        report = self._begin_cycle()
        await self._refresh_nodes(report)
        collection = await self.collector.collect(self.registry.snapshot(), name_filter)
        report.skipped_nodes = collection.failed_nodes
        return collection.nodes

    async def collect_partition_stats(self) -> List[PartitionStats]:
        """拉取所有分区的指标（只计主副本）"""
        _, partitions = await self._run_cycle()
        return partitions

    async def collect_table_stats(self) -> List[TableStats]:
        """拉取所有表的聚合指标"""
        tables, partitions = await self._run_cycle()
        return build_table_stats(tables, partitions)

    async def collect_cluster_stats(self) -> ClusterStats:
        """拉取集群级聚合指标"""
        return aggregate_cluster(await self.collect_table_stats())

    # =========================================================================
    # 采集周期
    # =========================================================================

    def _begin_cycle(self) -> CycleReport:
        self.last_cycle = CycleReport(timestamp=datetime.utcnow())
        return self.last_cycle

    async def _refresh_nodes(self, report: CycleReport):
        """
        刷新节点会话

        Raises:
            DiscoveryError: 严格模式下列出节点失败，或没有可沿用的节点
        """
        try:
            await self.registry.refresh()
        except DiscoveryError as e:
            report.node_discovery_error = e.reason
            if not self.config.allow_partial or not self.registry.addresses:
                raise
            logger.warning(f"Using previous node set ({len(self.registry.addresses)} nodes)")

    async def _resolve_topology(self) -> Tuple[List[TableInfo], PrimaryMap]:
        tables = await self.topology.list_tables()
        return tables, await self.topology.resolve_primaries(tables)

    async def _run_cycle(self) -> Tuple[List[TableInfo], List[PartitionStats]]:
        """
        执行一个完整的采集周期

        Returns:
            (本周期成功解析的表, 分区指标列表)

        Raises:
            CollectionError: 拓扑或计数器采集失败，本周期不产出任何数据
        """
        report = self._begin_cycle()
        await self._refresh_nodes(report)
        sessions = self.registry.snapshot()

        topology, collection = await asyncio.gather(
            self._resolve_topology(),
            self.collector.collect(sessions, self.config.counter_filter),
            return_exceptions=True,
        )
        for outcome in (topology, collection):
            if isinstance(outcome, BaseException):
                raise outcome

        tables, primary_map = topology
        report.skipped_tables = primary_map.failed_tables
        report.skipped_nodes = collection.failed_nodes
        if report.degraded:
            logger.warning(
                f"Degraded cycle: skipped {len(report.skipped_nodes)} nodes, "
                f"{len(report.skipped_tables)} tables"
            )

        partitions = prepare_partition_stats(primary_map.primaries)
        attribute_counters(partitions, collection.nodes, self._whitelist)

        live_tables = [tb for tb in tables if tb.table_name not in primary_map.failed_tables]
        logger.debug(
            f"Cycle done: {len(live_tables)} tables, {len(partitions)} partitions, "
            f"{len(collection.nodes)} nodes"
        )
        ordered = sorted(partitions.values(), key=lambda p: (p.gpid.app_id, p.gpid.partition_index))
        return live_tables, ordered
