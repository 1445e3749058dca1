"""
配置加载模块

从 config.yaml 加载配置，支持 Pydantic 验证和环境变量覆盖。

环境变量前缀为 PERF_AGGREGATOR_，嵌套字段用双下划线分隔，例如：
    PERF_AGGREGATOR_COLLECTOR__ALLOW_PARTIAL=true
"""

import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .decoder import PARTITION_COUNTERS


class MetaConfig(BaseModel):
    """协调者（meta server）配置"""
    servers: List[str] = ["127.0.0.1:34601"]
    timeout: float = 5.0


class CollectorConfig(BaseModel):
    """采集配置"""
    interval: int = 10
    list_timeout: float = 5.0       # 列出节点/表的超时
    query_deadline: float = 10.0    # 所有表配置查询共享的截止时间
    counters_deadline: float = 10.0  # 所有节点计数器查询共享的截止时间
    counter_filter: str = PARTITION_COUNTERS  # 只拉取分区级计数器
    allow_partial: bool = False     # True: 跳过失败的节点/表，继续聚合
    extra_aggregatable: List[str] = Field(default_factory=list)


class LoggingConfig(BaseModel):
    """日志配置"""
    level: str = "INFO"
    file: Optional[str] = None


class AppConfig(BaseSettings):
    """应用配置（完整配置）"""
    model_config = SettingsConfigDict(
        env_prefix="PERF_AGGREGATOR_",
        env_nested_delimiter="__",
    )

    meta: MetaConfig = Field(default_factory=MetaConfig)
    collector: CollectorConfig = Field(default_factory=CollectorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # 环境变量优先于配置文件
        return env_settings, init_settings


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    加载配置文件

    优先级：
    1. 参数指定的路径
    2. 环境变量 PERF_AGGREGATOR_CONFIG
    3. 默认路径 config.yaml
    """
    if config_path is None:
        config_path = os.environ.get("PERF_AGGREGATOR_CONFIG", "config.yaml")

    config_file = Path(config_path)

    if config_file.exists():
        with open(config_file, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
            if raw_config:
                log_file = (raw_config.get("logging") or {}).get("file")
                if log_file and not Path(log_file).is_absolute():
                    # 日志路径相对于配置文件所在目录
                    raw_config["logging"]["file"] = str(
                        (config_file.resolve().parent / log_file).resolve()
                    )
                return AppConfig(**raw_config)

    # 配置文件不存在时使用默认配置
    return AppConfig()


# 全局配置实例（延迟加载）
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """获取全局配置实例（单例模式）"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config():
    """重置配置（主要用于测试）"""
    global _config
    _config = None
