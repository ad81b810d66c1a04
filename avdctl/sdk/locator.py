"""Android SDK 路径定位。

所有路径 getter 遵循同一模式：有缓存直接返回；否则由 SDK 根目录与固定相对路径推导、
写入缓存后返回。:meth:`SdkLocator.clear_caches` 是唯一的失效入口，
同时清空已解析的包清单。
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from avdctl.infra import SdkRootNotSetError
from avdctl.sdk.packages import AndroidPackages
from avdctl.types import OSType, SdkRootSource

ANDROID_SDK_MANAGER_NAME = "sdkmanager"
ANDROID_AVD_MANAGER_NAME = "avdmanager"
ANDROID_ADB_NAME = "adb"
ANDROID_EMULATOR_NAME = "emulator"


@dataclass(frozen=True, slots=True)
class SdkRoot:
    """已解析的 SDK 根目录及其来源环境变量。"""

    location: Path
    source: SdkRootSource


def convert_to_unix_path(path: str | Path) -> str:
    """将反斜杠统一替换为正斜杠。"""
    return re.sub(r"\\+", "/", str(path))


class SdkLocator:
    """SDK 根目录与工具可执行文件定位器，持有全部记忆化状态。

    Parameters
    ----------
    environ:
        环境变量映射；``None`` 时读取 :data:`os.environ`。
    os_type:
        宿主系统；``None`` 时自动检测。Windows 下工具名会补上扩展名。
    """

    def __init__(
        self,
        environ: Mapping[str, str] | None = None,
        os_type: OSType | None = None,
    ) -> None:
        self._environ = environ if environ is not None else os.environ
        self._os_type = os_type or OSType.auto()
        self.package_cache = AndroidPackages()
        self._sdk_root: SdkRoot | None = None
        self._platform_tools: Path | None = None
        self._cmdline_tools_bin: Path | None = None
        self._emulator_command: Path | None = None
        self._avd_manager_command: Path | None = None
        self._sdk_manager_command: Path | None = None
        self._adb_command: Path | None = None

    @property
    def os_type(self) -> OSType:
        return self._os_type

    # ── 缓存管理 ──

    def clear_caches(self) -> None:
        """清空所有缓存的路径与包清单，下次访问时重新检测。"""
        self._sdk_root = None
        self._platform_tools = None
        self._cmdline_tools_bin = None
        self._emulator_command = None
        self._avd_manager_command = None
        self._sdk_manager_command = None
        self._adb_command = None
        self.package_cache = AndroidPackages()
        logger.debug("[SDK] 已清空路径与包清单缓存")

    def is_cached(self) -> bool:
        """包清单是否已缓存。"""
        return not self.package_cache.is_empty()

    # ── 环境 ──

    def _env_dir(self, name: str) -> Path | None:
        value = (self._environ.get(name) or "").strip()
        if value and os.path.isdir(value):
            return Path(value)
        return None

    def is_java_home_set(self) -> bool:
        return bool((self._environ.get("JAVA_HOME") or "").strip())

    def sdk_root(self) -> SdkRoot | None:
        """按 ANDROID_HOME → ANDROID_SDK_ROOT 的顺序解析 SDK 根目录。

        变量必须已设置、去空白后非空，且指向已存在的目录。两者都不满足时返回 ``None``。
        """
        if self._sdk_root is None:
            for source in SdkRootSource:
                location = self._env_dir(source.value)
                if location is not None:
                    self._sdk_root = SdkRoot(location=location, source=source)
                    logger.debug("[SDK] SDK 根目录: {} (来自 {})", location, source.value)
                    break
        return self._sdk_root

    def require_sdk_root(self) -> SdkRoot:
        """同 :meth:`sdk_root`，未设置时抛出 :class:`SdkRootNotSetError`。"""
        root = self.sdk_root()
        if root is None:
            raise SdkRootNotSetError()
        return root

    def _root_dir(self) -> Path:
        root = self.sdk_root()
        return root.location if root is not None else Path("")

    def avd_home(self) -> Path:
        """AVD 配置目录，默认为 ``~/.android/avd``。"""
        override = (self._environ.get("ANDROID_AVD_HOME") or "").strip()
        if override:
            return Path(override)
        return Path.home() / ".android" / "avd"

    # ── 目录 ──

    def platform_tools_dir(self) -> Path:
        if self._platform_tools is None:
            self._platform_tools = self._root_dir() / "platform-tools"
        return self._platform_tools

    def cmdline_tools_bin(self) -> Path:
        """命令行工具 bin 目录。

        多个版本并存时（``cmdline-tools/3.0``、``cmdline-tools/latest`` …），
        将子目录名按字符串降序排序后取第一个。
        """
        if self._cmdline_tools_bin is None:
            base = self._root_dir() / "cmdline-tools"
            resolved = base
            if base.is_dir():
                children = sorted((p.name for p in base.iterdir()), reverse=True)
                if children:
                    resolved = base / children[0] / "bin"
            self._cmdline_tools_bin = resolved
        return self._cmdline_tools_bin

    # ── 可执行文件 ──

    def _exe(self, name: str, batch: bool = False) -> str:
        if self._os_type == OSType.windows:
            return name + (".bat" if batch else ".exe")
        return name

    def emulator_command(self) -> Path:
        if self._emulator_command is None:
            self._emulator_command = (
                self._root_dir() / "emulator" / self._exe(ANDROID_EMULATOR_NAME)
            )
        return self._emulator_command

    def avd_manager_command(self) -> Path:
        if self._avd_manager_command is None:
            self._avd_manager_command = self.cmdline_tools_bin() / self._exe(
                ANDROID_AVD_MANAGER_NAME, batch=True
            )
        return self._avd_manager_command

    def sdk_manager_command(self) -> Path:
        if self._sdk_manager_command is None:
            self._sdk_manager_command = self.cmdline_tools_bin() / self._exe(
                ANDROID_SDK_MANAGER_NAME, batch=True
            )
        return self._sdk_manager_command

    def adb_command(self) -> Path:
        if self._adb_command is None:
            self._adb_command = self.platform_tools_dir() / self._exe(ANDROID_ADB_NAME)
        return self._adb_command
