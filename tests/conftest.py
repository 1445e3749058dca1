"""
测试公共夹具

FakeMeta / FakeSession 在内存中模拟协调者和存储节点。
"""

import asyncio
import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# 添加项目路径到 sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))

from perf_aggregator.config import CollectorConfig
from perf_aggregator.models import NodeInfo, PartitionConfiguration, PerfCounter, TableInfo


class FakeSession:
    """模拟存储节点会话"""

    def __init__(
        self,
        address: str,
        counters: Optional[Dict[str, float]] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.address = address
        self.counters = dict(counters or {})
        self.error = error
        self.delay = delay
        self.closed = False
        self.filters: List[str] = []

    async def get_perf_counters(self, name_filter: str = "") -> List[PerfCounter]:
        self.filters.append(name_filter)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return [PerfCounter(name=n, value=v) for n, v in self.counters.items()]

    async def close(self) -> None:
        self.closed = True


class FakeMeta:
    """
    模拟协调者

    Args:
        nodes: 存活节点地址
        tables: 可用表
        configs: 表名 -> {分区序号: 主副本地址}
    """

    def __init__(
        self,
        nodes: Optional[List[str]] = None,
        tables: Optional[List[TableInfo]] = None,
        configs: Optional[Dict[str, Dict[int, Optional[str]]]] = None,
    ):
        self.nodes = list(nodes or [])
        self.tables = list(tables or [])
        self.configs = dict(configs or {})
        self.nodes_error: Optional[Exception] = None
        self.tables_error: Optional[Exception] = None
        self.config_errors: Dict[str, Exception] = {}
        self.config_delays: Dict[str, float] = {}
        self.list_nodes_delay = 0.0

    async def list_nodes(self) -> List[NodeInfo]:
        if self.list_nodes_delay:
            await asyncio.sleep(self.list_nodes_delay)
        if self.nodes_error is not None:
            raise self.nodes_error
        return [NodeInfo(address=addr) for addr in self.nodes]

    async def list_tables(self) -> List[TableInfo]:
        if self.tables_error is not None:
            raise self.tables_error
        return list(self.tables)

    async def query_table_config(self, table_name: str) -> List[PartitionConfiguration]:
        delay = self.config_delays.get(table_name)
        if delay:
            await asyncio.sleep(delay)
        if table_name in self.config_errors:
            raise self.config_errors[table_name]
        return [
            PartitionConfiguration(partition_index=pidx, primary_address=primary)
            for pidx, primary in self.configs.get(table_name, {}).items()
        ]


class SessionPool:
    """会话工厂：按地址返回预先准备的 FakeSession，未准备的地址返回空会话"""

    def __init__(self, sessions: Optional[Dict[str, FakeSession]] = None):
        self.sessions = dict(sessions or {})
        self.opened: List[str] = []

    def __call__(self, address: str) -> FakeSession:
        self.opened.append(address)
        session = self.sessions.get(address)
        if session is None:
            session = FakeSession(address)
            self.sessions[address] = session
        return session


@pytest.fixture
def scenario():
    """
    1 张表 2 个分区：
    - 分区 0 的主副本是 X，上报 get_qps=10、put_qps=5
    - 分区 1 的主副本是 Y，上报 get_qps=20
    - Z 上有分区 0 的过期副本，上报 get_qps=999
    """
    meta = FakeMeta(
        nodes=["X:1", "Y:1", "Z:1"],
        tables=[TableInfo(table_name="temp", app_id=1, partition_count=2)],
        configs={"temp": {0: "X:1", 1: "Y:1"}},
    )
    pool = SessionPool({
        "X:1": FakeSession("X:1", {"1.0.get_qps": 10, "1.0.put_qps": 5}),
        "Y:1": FakeSession("Y:1", {"1.1.get_qps": 20}),
        "Z:1": FakeSession("Z:1", {"1.0.get_qps": 999}),
    })
    return meta, pool


@pytest.fixture
def fast_config():
    """短超时的采集配置"""
    return CollectorConfig(list_timeout=0.5, query_deadline=0.5, counters_deadline=0.5)
