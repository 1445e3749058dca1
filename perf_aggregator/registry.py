"""
存储节点会话管理

NodeRegistry 独占节点地址 -> 会话的映射：
- 每个采集周期调用一次 refresh()，与协调者返回的存活节点做差异更新
- 采集器只拿到 snapshot() 返回的只读快照
- 引擎关闭时 close() 释放所有会话
"""

import asyncio
import logging
from types import MappingProxyType
from typing import Dict, List, Mapping

from .exceptions import DiscoveryError
from .transport import MetaClient, NodeSession, SessionFactory
from .utils import describe_error

logger = logging.getLogger(__name__)


class NodeRegistry:
    """
    存活节点会话注册表

    Args:
        meta: 协调者客户端
        session_factory: 地址 -> 新会话
        list_timeout: 列出节点的超时（秒）
    """

    def __init__(self, meta: MetaClient, session_factory: SessionFactory, list_timeout: float = 5.0):
        self._meta = meta
        self._session_factory = session_factory
        self._list_timeout = list_timeout
        self._sessions: Dict[str, NodeSession] = {}
        self._lock = asyncio.Lock()

    @property
    def addresses(self) -> List[str]:
        return sorted(self._sessions)

    def snapshot(self) -> Mapping[str, NodeSession]:
        """当前会话的只读快照（供单个采集周期使用）"""
        return MappingProxyType(dict(self._sessions))

    async def refresh(self) -> Mapping[str, NodeSession]:
        """
        按最新的存活节点列表更新会话

        新节点建立会话，消失的节点关闭会话，未变化的节点复用原会话。

        Returns:
            更新后的会话快照

        Raises:
            DiscoveryError: 无法列出节点，此时会话集合保持不变
        """
        async with self._lock:
            try:
                nodes = await asyncio.wait_for(self._meta.list_nodes(), self._list_timeout)
            except Exception as e:
                logger.error(f"Skip updating nodes due to list-nodes RPC failure: {describe_error(e)}")
                raise DiscoveryError("nodes", describe_error(e)) from e

            new_sessions: Dict[str, NodeSession] = {}
            opened: Dict[str, NodeSession] = {}
            for node in nodes:
                addr = node.address
                if addr in new_sessions:
                    continue
                session = self._sessions.get(addr)
                if session is None:
                    logger.info(f"Opening session to new node {addr}")
                    try:
                        session = self._session_factory(addr)
                    except Exception as e:
                        logger.error(f"Failed to open session to {addr}: {describe_error(e)}")
                        # 本次刷新新建的会话全部释放，原会话集合不变
                        for new_addr, new_session in opened.items():
                            await self._close_session(new_addr, new_session)
                        raise DiscoveryError("nodes", f"open session to {addr}: {describe_error(e)}") from e
                    opened[addr] = session
                new_sessions[addr] = session

            stale = [
                (addr, session)
                for addr, session in self._sessions.items()
                if addr not in new_sessions
            ]
            self._sessions = new_sessions

            for addr, session in stale:
                logger.info(f"Closing session to removed node {addr}")
                await self._close_session(addr, session)

            return self.snapshot()

    async def close(self) -> None:
        """关闭所有会话"""
        async with self._lock:
            sessions, self._sessions = self._sessions, {}
            for addr, session in sessions.items():
                await self._close_session(addr, session)
        logger.debug(f"Node registry closed ({len(sessions)} sessions released)")

    @staticmethod
    async def _close_session(addr: str, session: NodeSession) -> None:
        try:
            await session.close()
        except Exception as e:
            logger.warning(f"Failed to close session to {addr}: {describe_error(e)}")
