"""
主程序入口

按配置的间隔循环采集集群指标并输出到日志。
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .client import PerfClient
from .config import AppConfig, get_config
from .exceptions import CollectionError

logger = logging.getLogger(__name__)


def setup_logging(config: Optional[AppConfig] = None):
    """配置日志"""
    config = config or get_config()

    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    level = getattr(logging, config.logging.level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    # 如果配置了文件日志
    if config.logging.file:
        log_path = Path(config.logging.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(str(log_path), encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(log_format))
        logging.getLogger().addHandler(file_handler)

    # 降低第三方库日志级别
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


async def run_collector(client: PerfClient, interval: float, max_cycles: Optional[int] = None):
    """
    运行采集循环

    单个周期失败只记录日志，不影响下一个周期。

    Args:
        client: 聚合引擎
        interval: 采集间隔（秒）
        max_cycles: 最多执行的周期数，None 表示一直运行
    """
    logger.info(f"Starting collector loop (interval={interval}s)")

    cycles = 0
    while max_cycles is None or cycles < max_cycles:
        cycles += 1
        try:
            cluster = await client.collect_cluster_stats()
            stats = cluster.stats
            logger.info(
                f"Cluster stats: read_qps={stats.get('read_qps', 0.0):.1f} "
                f"write_qps={stats.get('write_qps', 0.0):.1f} "
                f"read_bytes={stats.get('read_bytes', 0.0):.1f} "
                f"write_bytes={stats.get('write_bytes', 0.0):.1f}"
            )
        except CollectionError as e:
            logger.error(f"Collection cycle failed: {e}")

        if max_cycles is None or cycles < max_cycles:
            await asyncio.sleep(interval)


async def main():
    """主函数"""
    setup_logging()
    config = get_config()

    logger.info(f"Perf Aggregator v{__version__}")
    logger.info(f"Meta servers: {', '.join(config.meta.servers)}")

    async with PerfClient.from_config(config) as client:
        try:
            await run_collector(client, config.collector.interval)
        except asyncio.CancelledError:
            logger.info("Collector cancelled, shutting down...")


def cli():
    """命令行入口"""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutdown requested, exiting...")
        sys.exit(0)


if __name__ == "__main__":
    cli()
