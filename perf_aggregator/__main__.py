"""
Perf Aggregator 主程序入口

使用方式:
    python -m perf_aggregator
    或
    perf-aggregator
"""

from perf_aggregator.main import cli


if __name__ == "__main__":
    cli()
