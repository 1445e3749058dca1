"""
拓扑解析

从协调者获取可用表列表，并并发查询每张表的分区配置，
得到 分区 -> 主副本地址 的映射。
"""

import asyncio
import logging
from typing import List

from .exceptions import DiscoveryError, PartialCollectionError
from .models import Gpid, PrimaryMap, TableInfo
from .transport import MetaClient
from .utils import describe_error, gather_with_deadline

logger = logging.getLogger(__name__)

# 未选出主副本时协调者返回的地址
INVALID_ADDRESSES = frozenset(["", "0.0.0.0:0"])


class TopologyResolver:
    """
    分区主副本解析器

    Args:
        meta: 协调者客户端
        list_timeout: 列出表的超时（秒）
        query_deadline: 所有表配置查询共享的截止时间（秒）
        allow_partial: 为 True 时跳过查询失败的表，否则整个周期失败
    """

    def __init__(
        self,
        meta: MetaClient,
        list_timeout: float = 5.0,
        query_deadline: float = 10.0,
        allow_partial: bool = False,
    ):
        self._meta = meta
        self._list_timeout = list_timeout
        self._query_deadline = query_deadline
        self._allow_partial = allow_partial

    async def list_tables(self) -> List[TableInfo]:
        """
        列出当前可用的表

        Raises:
            DiscoveryError: 协调者不可达
        """
        try:
            return await asyncio.wait_for(self._meta.list_tables(), self._list_timeout)
        except Exception as e:
            logger.error(f"Unable to list tables: {describe_error(e)}")
            raise DiscoveryError("tables", describe_error(e)) from e

    async def resolve_primaries(self, tables: List[TableInfo]) -> PrimaryMap:
        """
        查询每张表的分区配置

        Returns:
            PrimaryMap，没有主副本的分区不在映射中

        Raises:
            PartialCollectionError: 严格模式下任意一张表查询失败或超时
        """
        calls = {tb.table_name: self._meta.query_table_config(tb.table_name) for tb in tables}
        configs, failures = await gather_with_deadline(calls, self._query_deadline)

        if failures:
            for name, reason in failures.items():
                logger.warning(f"[{name}] unable to query config: {reason}")
            if not self._allow_partial:
                raise PartialCollectionError("tables", failures)

        result = PrimaryMap(failed_tables=failures)
        for tb in tables:
            for p in configs.get(tb.table_name, []):
                if p.primary_address is None or p.primary_address in INVALID_ADDRESSES:
                    logger.debug(f"[{tb.table_name}] partition {p.partition_index} has no primary")
                    continue
                gpid = Gpid(app_id=tb.app_id, partition_index=p.partition_index)
                result.primaries[gpid] = p.primary_address
        return result
