"""
节点计数器采集

每个存活节点并发发起一次计数器查询，所有查询共享同一个截止时间，
结果在全部任务结束后统一合并。
"""

import logging
from typing import Mapping

from .decoder import MATCH_ALL
from .exceptions import PartialCollectionError
from .models import NodeCollection, NodeStats
from .transport import NodeSession
from .utils import gather_with_deadline

logger = logging.getLogger(__name__)


async def fetch_node_stats(session: NodeSession, name_filter: str = MATCH_ALL) -> NodeStats:
    """
    拉取单个节点的计数器

    Raises:
        Exception: 拉取失败时抛出（由调用方记录）
    """
    counters = await session.get_perf_counters(name_filter)
    stats = {}
    for c in counters:
        stats[c.name] = c.value
    return NodeStats(addr=session.address, stats=stats)


class FanOutCollector:
    """
    并发采集器

    Args:
        deadline: 所有节点查询共享的截止时间（秒）
        allow_partial: 为 True 时跳过失败节点，否则整个周期失败
    """

    def __init__(self, deadline: float = 10.0, allow_partial: bool = False):
        self._deadline = deadline
        self._allow_partial = allow_partial

    async def collect(
        self,
        sessions: Mapping[str, NodeSession],
        name_filter: str = MATCH_ALL,
    ) -> NodeCollection:
        """
        并发拉取所有节点的计数器

        Args:
            sessions: 本周期的会话快照
            name_filter: 计数器名过滤条件

        Raises:
            PartialCollectionError: 严格模式下任意节点失败或超时
        """
        calls = {
            addr: fetch_node_stats(session, name_filter)
            for addr, session in sessions.items()
        }
        results, failures = await gather_with_deadline(calls, self._deadline)

        if failures:
            for addr, reason in failures.items():
                logger.warning(f"[{addr}] unable to query perf-counters: {reason}")
            if not self._allow_partial:
                raise PartialCollectionError("nodes", failures)

        logger.debug(f"Collected perf-counters from {len(results)}/{len(calls)} nodes")
        return NodeCollection(
            nodes=[results[addr] for addr in sorted(results)],
            failed_nodes=failures,
        )
