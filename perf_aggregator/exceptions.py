"""
采集周期异常

周期级错误统一继承 CollectionError：
- DiscoveryError: 协调者（meta server）不可达，无法列出节点或表
- PartialCollectionError: 某个表配置查询或节点计数器查询失败/超时

解码异常和归属不匹配属于拓扑变化带来的正常噪声，不会抛出。
"""

from typing import Dict


class CollectionError(Exception):
    """采集周期失败（基类）"""


class DiscoveryError(CollectionError):
    """
    协调者发现失败

    Attributes:
        target: 发现目标，"nodes" 或 "tables"
        reason: 底层错误描述
    """

    def __init__(self, target: str, reason: str) -> None:
        self.target = target
        self.reason = reason
        super().__init__(f"Unable to list {target} from meta servers: {reason}")


class PartialCollectionError(CollectionError):
    """
    部分查询失败

    Attributes:
        kind: 查询类型，"tables" 或 "nodes"
        failures: 失败对象 -> 失败原因
    """

    def __init__(self, kind: str, failures: Dict[str, str]) -> None:
        self.kind = kind
        self.failures = dict(failures)
        names = ", ".join(sorted(self.failures))
        super().__init__(
            f"{len(self.failures)} {kind} failed in this cycle: {names}"
        )
