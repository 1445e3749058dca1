"""
集群 RPC 客户端

MetaClient / NodeSession 描述聚合引擎依赖的协调者和存储节点接口，
引擎只依赖这两个协议。HttpMetaClient / HttpNodeSession 是基于 httpx 的默认实现。

HTTP 接口：
- GET http://<meta>/meta/nodes?status=alive        -> {"nodes": [{"address", "status"}]}
- GET http://<meta>/meta/apps?status=available     -> {"apps": [{"app_name", "app_id", "partition_count"}]}
- GET http://<meta>/meta/app?name=<table>          -> {"app_name", "app_id", "partitions": [{"pidx", "primary"}]}
- GET http://<node>/perf_counters?name=<filter>    -> {"counters": [{"name", "value"}]}
"""

import logging
from typing import Callable, List, Optional, Protocol

import httpx
from pydantic import BaseModel, Field

from .models import NodeInfo, PartitionConfiguration, PerfCounter, TableInfo

logger = logging.getLogger(__name__)


# =============================================================================
# 协议
# =============================================================================

class MetaClient(Protocol):
    """协调者接口"""

    async def list_nodes(self) -> List[NodeInfo]:
        ...

    async def list_tables(self) -> List[TableInfo]:
        ...

    async def query_table_config(self, table_name: str) -> List[PartitionConfiguration]:
        ...


class NodeSession(Protocol):
    """单个存储节点的会话"""

    address: str

    async def get_perf_counters(self, name_filter: str = "") -> List[PerfCounter]:
        ...

    async def close(self) -> None:
        ...


SessionFactory = Callable[[str], NodeSession]


# =============================================================================
# HTTP 响应模型
# =============================================================================

class _NodesResponse(BaseModel):
    nodes: List[NodeInfo] = Field(default_factory=list)


class _AppEntry(BaseModel):
    app_name: str
    app_id: int
    partition_count: int


class _AppsResponse(BaseModel):
    apps: List[_AppEntry] = Field(default_factory=list)


class _PartitionEntry(BaseModel):
    pidx: int
    primary: Optional[str] = None


class _AppConfigResponse(BaseModel):
    app_name: str
    app_id: int
    partitions: List[_PartitionEntry] = Field(default_factory=list)


class _CountersResponse(BaseModel):
    counters: List[PerfCounter] = Field(default_factory=list)


# =============================================================================
# HTTP 实现
# =============================================================================

class HttpMetaClient:
    """
    协调者 HTTP 客户端

    按顺序尝试每个 meta server，第一个成功的响应生效。

    Args:
        servers: meta server 地址列表（host:port）
        timeout: 单次请求超时（秒）
        transport: 自定义 httpx 传输层（测试用）
    """

    def __init__(
        self,
        servers: List[str],
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not servers:
            raise ValueError("at least one meta server is required")
        self.servers = list(servers)
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def _get(self, path: str, params: dict) -> dict:
        last_error: Optional[Exception] = None
        for server in self.servers:
            url = f"http://{server}{path}"
            try:
                response = await self._http.get(url, params=params)
                response.raise_for_status()
                return response.json()
            except httpx.HTTPError as e:
                logger.debug(f"Meta server {server} failed on {path}: {e!r}")
                last_error = e
        raise last_error

    async def list_nodes(self) -> List[NodeInfo]:
        data = _NodesResponse.model_validate(await self._get("/meta/nodes", {"status": "alive"}))
        return data.nodes

    async def list_tables(self) -> List[TableInfo]:
        data = _AppsResponse.model_validate(await self._get("/meta/apps", {"status": "available"}))
        return [
            TableInfo(table_name=a.app_name, app_id=a.app_id, partition_count=a.partition_count)
            for a in data.apps
        ]

    async def query_table_config(self, table_name: str) -> List[PartitionConfiguration]:
        data = _AppConfigResponse.model_validate(await self._get("/meta/app", {"name": table_name}))
        return [
            PartitionConfiguration(partition_index=p.pidx, primary_address=p.primary)
            for p in data.partitions
        ]

    async def close(self) -> None:
        await self._http.aclose()


class HttpNodeSession:
    """
    存储节点 HTTP 会话

    每个节点持有一个 httpx.AsyncClient，节点下线时由 NodeRegistry 关闭。
    """

    def __init__(
        self,
        address: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.address = address
        self._http = httpx.AsyncClient(
            base_url=f"http://{address}", timeout=timeout, transport=transport
        )

    async def get_perf_counters(self, name_filter: str = "") -> List[PerfCounter]:
        """
        拉取节点的性能计数器

        Raises:
            httpx.HTTPError: 请求失败
            pydantic.ValidationError: 响应格式错误
        """
        params = {"name": name_filter} if name_filter else None
        response = await self._http.get("/perf_counters", params=params)
        response.raise_for_status()
        return _CountersResponse.model_validate(response.json()).counters

    async def close(self) -> None:
        await self._http.aclose()

    def __repr__(self) -> str:
        return f"HttpNodeSession({self.address!r})"
