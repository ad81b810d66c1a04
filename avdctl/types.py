"""全局枚举类型定义。

所有与 SDK / 模拟器语义相关的枚举集中于此，供各层引用。
"""

from __future__ import annotations

import sys
from enum import Enum


# ── 枚举基类 ──


class BaseEnum(Enum):
    """提供更友好的中文报错信息。"""

    @classmethod
    def _missing_(cls, value: object) -> None:
        supported = ", ".join(str(m.value) for m in cls)
        raise ValueError(f'"{value}" 不是合法的 {cls.__name__} 取值。 支持: [{supported}]')


class StrEnum(str, BaseEnum):
    """字符串枚举基类。"""


# ── 系统 / 环境 ──


class OSType(StrEnum):
    """宿主操作系统类型。"""

    windows = "Windows"
    linux = "linux"
    macos = "macOS"

    @classmethod
    def auto(cls) -> OSType:
        """根据当前运行环境自动检测。"""
        if sys.platform.startswith("win"):
            return cls.windows
        if sys.platform == "darwin":
            return cls.macos
        if sys.platform.startswith("linux"):
            return cls.linux
        raise ValueError(f"不支持的操作系统: {sys.platform}")


class SdkRootSource(StrEnum):
    """SDK 根目录的来源环境变量（按优先级排列）。"""

    android_home = "ANDROID_HOME"
    android_sdk_root = "ANDROID_SDK_ROOT"


# ── SDK 包 ──


class PackageKind(StrEnum):
    """sdkmanager 包类别。"""

    platform = "platforms"
    system_image = "system-images"
    build_tools = "build-tools"

    @property
    def prefix(self) -> str:
        """sdkmanager 路径中的类别前缀（含分号）。"""
        return f"{self.value};"
