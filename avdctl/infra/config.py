"""配置管理 — 基于 Pydantic v2。

配置从 YAML 文件加载，经过 Pydantic 校验后生成不可变的配置对象。

使用方式::

    from avdctl.infra.config import ConfigManager

    config = ConfigManager.load("avdctl.yaml")
    print(config.android.min_supported_runtime)
"""

from __future__ import annotations

import datetime
from pathlib import Path
from typing import Literal

import yaml
from loguru import logger
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .exceptions import ConfigError
from .file_utils import load_yaml
from avdctl.types import OSType


# ── 子配置模型 ──


class AndroidConfig(BaseModel):
    """Android SDK / 模拟器行为配置。"""

    model_config = {"frozen": True}

    min_supported_runtime: str = "24"
    """最低支持的 Android API 级别"""
    supported_images: list[str] = Field(
        default_factory=lambda: ["google_apis", "default"]
    )
    """支持的系统镜像类型，按优先级排列"""
    supported_architectures: list[str] = Field(
        default_factory=lambda: ["x86_64", "x86", "arm64-v8a"]
    )
    """支持的 CPU 架构，按优先级排列（优先于镜像类型比较）"""
    supported_device_types: list[str] = Field(
        default_factory=lambda: [
            "pixel",
            "pixel_xl",
            "pixel_2",
            "pixel_2_xl",
            "pixel_3",
            "pixel_3_xl",
            "pixel_3a",
            "pixel_3a_xl",
            "pixel_4",
            "pixel_4_xl",
            "pixel_4a",
            "pixel_5",
            "pixel_c",
        ]
    )
    """可用于创建 AVD 的设备配置名"""
    default_adb_port: int = 5572
    """没有正在运行的模拟器时使用的控制台端口"""
    device_readiness_wait_time: float = 120.0
    """等待启动 / 关机的超时（秒）"""
    adb_retry_attempts: int = 6
    """ADB 命令失败后的重试次数"""
    adb_retry_delay: float = 1.0
    """两次重试之间的间隔（秒）"""
    boot_poll_interval: float = 1.0
    """轮询启动 / 关机状态的间隔（秒）"""
    power_off_settle_delay: float = 5.0
    """设备从 adb devices 列表消失后的额外等待（秒）"""

    @field_validator("min_supported_runtime")
    @classmethod
    def _validate_runtime(cls, v: str) -> str:
        from avdctl.sdk.version import Version

        Version.parse(v)
        return v

    @field_validator("default_adb_port")
    @classmethod
    def _validate_port(cls, v: int) -> int:
        if v <= 0 or v % 2 != 0:
            raise ValueError("default_adb_port 必须为正偶数（控制台端口）")
        return v

    @field_validator("supported_images", "supported_architectures")
    @classmethod
    def _validate_non_empty(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("列表不能为空")
        return v

    @field_validator("adb_retry_attempts")
    @classmethod
    def _validate_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("adb_retry_attempts 不能为负数")
        return v


class LogConfig(BaseModel):
    """日志配置。"""

    model_config = {"frozen": True}

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    """日志级别"""
    root: Path = Path("log")
    """日志保存根目录"""
    dir: Path | None = None
    """日志保存路径。自动按日期生成"""
    to_file: bool = False
    """是否写入日志文件"""

    @model_validator(mode="after")
    def _set_log_dir(self) -> LogConfig:
        if self.dir is None:
            ts = datetime.datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
            object.__setattr__(self, "dir", self.root / ts)
        return self


# ── 顶层配置 ──


class UserConfig(BaseModel):
    """用户配置（顶层聚合）。"""

    model_config = {"frozen": True}

    android: AndroidConfig = Field(default_factory=AndroidConfig)
    log: LogConfig = Field(default_factory=LogConfig)

    os_type: OSType = Field(default_factory=OSType.auto)
    """操作系统类型，自动检测"""

    @classmethod
    def from_yaml(cls, path: str | Path) -> UserConfig:
        """从 YAML 文件加载配置。"""
        data = load_yaml(path)
        return cls.model_validate(data)


# ── ConfigManager ──


class ConfigManager:
    """配置管理器 — 提供加载入口。"""

    @staticmethod
    def load(path: str | Path | None) -> UserConfig:
        """从文件加载用户配置。不存在时返回默认配置。"""
        if path is None:
            return UserConfig()
        path = Path(path)
        if not path.exists():
            logger.warning("配置文件 {} 不存在，使用默认配置", path)
            return UserConfig()
        try:
            config = UserConfig.from_yaml(path)
        except (ValidationError, yaml.YAMLError) as exc:
            raise ConfigError(f"配置文件 {path} 无效: {exc}") from exc
        logger.info("已加载配置: {}", path)
        return config
