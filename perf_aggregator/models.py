"""
数据模型定义

包括：
- 协调者/存储节点返回的记录（NodeInfo、TableInfo、PartitionConfiguration、PerfCounter）
- 三级聚合结果（PartitionStats、TableStats、ClusterStats）
- 单个采集周期的中间结果（PrimaryMap、NodeCollection、CycleReport）
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# 分区标识
# =============================================================================

class Gpid(BaseModel):
    """分区标识：(表 ID, 分区序号)，集群内全局唯一"""
    model_config = ConfigDict(frozen=True)

    app_id: int
    partition_index: int

    def __str__(self) -> str:
        return f"{self.app_id}.{self.partition_index}"


# =============================================================================
# 协调者 / 节点返回的记录
# =============================================================================

class NodeInfo(BaseModel):
    """存储节点信息"""
    address: str
    status: str = "ALIVE"


class TableInfo(BaseModel):
    """表信息"""
    table_name: str
    app_id: int
    partition_count: int


class PartitionConfiguration(BaseModel):
    """单个分区的配置（主副本地址）"""
    partition_index: int
    primary_address: Optional[str] = None


class PerfCounter(BaseModel):
    """节点导出的性能计数器"""
    name: str
    value: float


class PartitionCounter(BaseModel):
    """解码后的分区级计数器"""
    gpid: Gpid
    name: str  # 去掉分区前缀/后缀后的指标名
    value: float


# =============================================================================
# 聚合结果
# =============================================================================

class NodeStats(BaseModel):
    """单个节点的原始计数器"""
    addr: str
    stats: Dict[str, float] = Field(default_factory=dict)  # 计数器名 -> 值


class PartitionStats(BaseModel):
    """分区级指标（只来自该分区的主副本）"""
    gpid: Gpid
    addr: Optional[str] = None  # 主副本地址
    stats: Dict[str, float] = Field(default_factory=dict)


class TableStats(BaseModel):
    """表级指标"""
    table_name: str
    app_id: int
    partitions: Dict[int, PartitionStats] = Field(default_factory=dict)
    stats: Dict[str, float] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class ClusterStats(BaseModel):
    """集群级指标（所有表之和）"""
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    stats: Dict[str, float] = Field(default_factory=dict)


# =============================================================================
# 采集周期中间结果
# =============================================================================

@dataclass
class PrimaryMap:
    """分区 -> 主副本地址，以及查询失败的表"""
    primaries: Dict[Gpid, str] = field(default_factory=dict)
    failed_tables: Dict[str, str] = field(default_factory=dict)


@dataclass
class NodeCollection:
    """节点计数器采集结果，以及失败的节点"""
    nodes: List[NodeStats] = field(default_factory=list)
    failed_nodes: Dict[str, str] = field(default_factory=dict)


@dataclass
class CycleReport:
    """最近一次采集周期的概况（部分成功模式下用于查看被跳过的对象）"""
    timestamp: datetime
    skipped_nodes: Dict[str, str] = field(default_factory=dict)
    skipped_tables: Dict[str, str] = field(default_factory=dict)
    node_discovery_error: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return bool(self.skipped_nodes or self.skipped_tables or self.node_discovery_error)
