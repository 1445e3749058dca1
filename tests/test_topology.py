"""
单元测试：拓扑解析

测试覆盖：
- 所有表的分区 -> 主副本映射
- 无主副本的分区被跳过
- 单表查询失败/超时：严格模式整个周期失败，部分成功模式跳过该表
- 共享截止时间
"""

import asyncio
import time

import pytest

from perf_aggregator.exceptions import DiscoveryError, PartialCollectionError
from perf_aggregator.models import Gpid, TableInfo
from perf_aggregator.topology import TopologyResolver
from perf_aggregator.utils import gather_with_deadline

from conftest import FakeMeta


@pytest.fixture
def meta():
    return FakeMeta(
        tables=[
            TableInfo(table_name="a", app_id=1, partition_count=2),
            TableInfo(table_name="b", app_id=2, partition_count=2),
        ],
        configs={
            "a": {0: "X:1", 1: "Y:1"},
            "b": {0: "Y:1", 1: None},
        },
    )


class TestTopologyResolver:
    """TopologyResolver 测试"""

    @pytest.mark.asyncio
    async def test_resolve_primaries(self, meta):
        resolver = TopologyResolver(meta)
        tables = await resolver.list_tables()

        result = await resolver.resolve_primaries(tables)

        assert result.primaries == {
            Gpid(app_id=1, partition_index=0): "X:1",
            Gpid(app_id=1, partition_index=1): "Y:1",
            Gpid(app_id=2, partition_index=0): "Y:1",
        }
        assert result.failed_tables == {}

    @pytest.mark.asyncio
    async def test_invalid_primary_address_is_skipped(self, meta):
        """测试：未选出主副本的分区不在映射中"""
        meta.configs["b"] = {0: "0.0.0.0:0", 1: ""}
        resolver = TopologyResolver(meta)

        result = await resolver.resolve_primaries(await resolver.list_tables())

        assert Gpid(app_id=2, partition_index=0) not in result.primaries
        assert Gpid(app_id=2, partition_index=1) not in result.primaries

    @pytest.mark.asyncio
    async def test_list_tables_failure(self, meta):
        meta.tables_error = ConnectionError("refused")
        resolver = TopologyResolver(meta)

        with pytest.raises(DiscoveryError) as exc_info:
            await resolver.list_tables()

        assert exc_info.value.target == "tables"

    @pytest.mark.asyncio
    async def test_single_table_failure_fails_cycle(self, meta):
        """测试：严格模式下单表失败导致整个周期失败"""
        meta.config_errors["b"] = RuntimeError("ERR_OBJECT_NOT_FOUND")
        resolver = TopologyResolver(meta)

        with pytest.raises(PartialCollectionError) as exc_info:
            await resolver.resolve_primaries(await resolver.list_tables())

        assert exc_info.value.kind == "tables"
        assert list(exc_info.value.failures) == ["b"]
        assert "ERR_OBJECT_NOT_FOUND" in exc_info.value.failures["b"]

    @pytest.mark.asyncio
    async def test_partial_mode_skips_failed_table(self, meta):
        """测试：部分成功模式跳过失败的表"""
        meta.config_errors["b"] = RuntimeError("boom")
        resolver = TopologyResolver(meta, allow_partial=True)

        result = await resolver.resolve_primaries(await resolver.list_tables())

        assert set(result.primaries) == {
            Gpid(app_id=1, partition_index=0),
            Gpid(app_id=1, partition_index=1),
        }
        assert list(result.failed_tables) == ["b"]

    @pytest.mark.asyncio
    async def test_slow_table_times_out(self, meta):
        meta.config_delays["b"] = 2.0
        resolver = TopologyResolver(meta, query_deadline=0.1)

        with pytest.raises(PartialCollectionError) as exc_info:
            await resolver.resolve_primaries(await resolver.list_tables())

        assert "timed out" in exc_info.value.failures["b"]

    @pytest.mark.asyncio
    async def test_no_tables(self):
        resolver = TopologyResolver(FakeMeta())

        result = await resolver.resolve_primaries([])

        assert result.primaries == {}


class TestGatherWithDeadline:
    """共享截止时间的并发执行"""

    @pytest.mark.asyncio
    async def test_requests_run_concurrently(self):
        """测试：请求并发执行，总耗时约等于单个请求"""
        async def slow(value):
            await asyncio.sleep(0.15)
            return value

        start = time.monotonic()
        results, failures = await gather_with_deadline(
            {i: slow(i) for i in range(5)}, deadline=0.3
        )
        elapsed = time.monotonic() - start

        assert results == {i: i for i in range(5)}
        assert failures == {}
        assert elapsed < 0.3

    @pytest.mark.asyncio
    async def test_outcomes_are_independent(self):
        async def ok():
            return 1

        async def fail():
            raise ValueError("bad")

        async def hang():
            await asyncio.sleep(5)

        results, failures = await gather_with_deadline(
            {"ok": ok(), "fail": fail(), "hang": hang()}, deadline=0.1
        )

        assert results == {"ok": 1}
        assert failures["fail"] == "ValueError: bad"
        assert "timed out" in failures["hang"]

    @pytest.mark.asyncio
    async def test_empty(self):
        assert await gather_with_deadline({}, deadline=1.0) == ({}, {})
