"""AVD 列表解析与名称解析。

``avdmanager list avd`` 输出示例::

    Available Android Virtual Devices:
        Name: Pixel_XL_API_30
      Device: pixel_xl (Google)
        Path: /home/user/.android/avd/Pixel_XL_API_30.avd
      Target: Google APIs (Google Inc.)
              Based on: Android 11.0 (R) Tag/ABI: google_apis/x86_64
        Skin: pixel_xl_silver
    ---------
        Name: Nexus_6_API_28
      ...

每次查询都重新执行命令，不做缓存：AVD 可能在外部被创建或删除。
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from avdctl.infra import (
    EmulatorNotFoundError,
    ToolInvocationError,
    UnsupportedDeviceError,
    VersionParseError,
    parse_key_values,
)
from avdctl.infra.process import CommandRunner
from avdctl.sdk.locator import SdkLocator
from avdctl.sdk.version import Version

_BLOCK_SEPARATOR = re.compile(r"^\s*-{3,}\s*$", re.MULTILINE)
_FIELD_RE = re.compile(r"^\s*(Name|Device|Path|Target|Based on):\s*(.*)$")
_SYSDIR_API_RE = re.compile(r"android-(\d+)")
_BASED_ON_API_RE = re.compile(r"API\s+(\d+)")
_BASED_ON_OS_RE = re.compile(r"Android\s+(\d+(?:\.\d+)?)")

# Android 系统版本 → API 级别（"Based on" 行只给出系统版本时使用）
_OS_VERSION_TO_API: dict[str, str] = {
    "7.0": "24",
    "7.1": "25",
    "8.0": "26",
    "8.1": "27",
    "9": "28",
    "10": "29",
    "11": "30",
    "12": "31",
    "12L": "32",
    "13": "33",
    "14": "34",
    "15": "35",
    "16": "36",
}


@dataclass(frozen=True, slots=True)
class VirtualDevice:
    """一个已创建的 AVD。

    Attributes
    ----------
    name:
        AVD id，例如 ``Pixel_XL_API_30``。
    display_name:
        用户友好名称，``_`` 替换为空格。
    device_name:
        设备配置，例如 ``pixel_xl (Google)``。
    path:
        ``.avd`` 目录。
    target:
        目标描述，例如 ``Google APIs (Google Inc.)``。
    api_level:
        API 级别；无法确定时为 ``Version(0)``。
    """

    name: str
    display_name: str
    device_name: str
    path: str
    target: str
    api_level: Version


def _api_from_based_on(text: str) -> str | None:
    m = _BASED_ON_API_RE.search(text)
    if m:
        return m.group(1)
    if "Android 12L" in text:
        return _OS_VERSION_TO_API["12L"]
    m = _BASED_ON_OS_RE.search(text)
    if not m:
        return None
    os_version = m.group(1)
    if os_version.endswith(".0") and os_version not in _OS_VERSION_TO_API:
        os_version = os_version[:-2]
    return _OS_VERSION_TO_API.get(os_version)


def _api_from_config(avd_path: str) -> str | None:
    """从 ``<avd>/config.ini`` 的 ``image.sysdir.1`` 读取 API 级别。"""
    if not avd_path:
        return None
    try:
        text = (Path(avd_path) / "config.ini").read_text(encoding="utf-8")
    except OSError:
        return None
    m = _SYSDIR_API_RE.search(parse_key_values(text).get("image.sysdir.1", ""))
    return m.group(1) if m else None


def parse_avd_block(block: str) -> VirtualDevice | None:
    """解析单个设备块；没有 ``Name`` 字段时返回 ``None``。"""
    fields: dict[str, str] = {}
    for line in block.splitlines():
        m = _FIELD_RE.match(line)
        if m:
            key, value = m.groups()
            fields.setdefault(key, value.strip())
        elif "Based on:" in line:
            # 旧版 avdmanager 把 Based on 接在 Target 同一行
            fields.setdefault("Based on", line.split("Based on:", 1)[1].strip())

    name = fields.get("Name")
    if not name:
        return None

    target = fields.get("Target", "")
    if "Based on:" in target:
        target, based_on = (part.strip() for part in target.split("Based on:", 1))
        fields.setdefault("Based on", based_on)

    path = fields.get("Path", "")
    raw_api = _api_from_config(path) or _api_from_based_on(fields.get("Based on", ""))
    try:
        api_level = Version.parse(raw_api) if raw_api else Version(0)
    except VersionParseError:
        api_level = Version(0)
    if raw_api is None:
        logger.debug("[AVD] 无法确定 {} 的 API 级别", name)

    return VirtualDevice(
        name=name,
        display_name=name.replace("_", " "),
        device_name=fields.get("Device", ""),
        path=path,
        target=target,
        api_level=api_level,
    )


def parse_avd_list(raw: str) -> list[VirtualDevice]:
    """解析 ``avdmanager list avd`` 的完整输出。"""
    devices: list[VirtualDevice] = []
    for block in _BLOCK_SEPARATOR.split(raw):
        device = parse_avd_block(block)
        if device is not None:
            devices.append(device)
    return devices


def _display_key(name: str) -> str:
    """名称比较键：``_`` / ``-`` 视作空格，忽略大小写。"""
    return re.sub(r"[_-]", " ", name).strip().lower()


class AvdCatalog:
    """已创建 AVD 的查询入口。"""

    def __init__(
        self,
        locator: SdkLocator,
        runner: CommandRunner | None = None,
    ) -> None:
        self._locator = locator
        self._runner = runner or CommandRunner()

    def fetch_emulators(self) -> list[VirtualDevice]:
        """列出全部 AVD；命令失败时返回空列表。"""
        try:
            result = self._runner.run([self._locator.avd_manager_command(), "list", "avd"])
        except ToolInvocationError as exc:
            logger.warning("[AVD] 无法获取模拟器列表: {}", exc)
            return []
        if not result.stdout:
            return []
        return parse_avd_list(result.stdout)

    def list_avd_ids(self) -> list[str]:
        """``emulator -list-avds`` 给出的 AVD id 列表。"""
        result = self._runner.run([self._locator.emulator_command(), "-list-avds"])
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def resolve_emulator_image(self, name: str) -> str | None:
        """把显示名或 id 解析为 AVD id。

        ``Pixel XL``、``pixel_xl``、``Pixel-XL`` 都能匹配 ``Pixel_XL``。
        """
        try:
            ids = self.list_avd_ids()
        except ToolInvocationError as exc:
            logger.error("[AVD] 无法列出 AVD: {}", exc)
            return None

        wanted = _display_key(name)
        for avd_id in ids:
            if avd_id == name or _display_key(avd_id) == wanted:
                return avd_id
        return None

    def has_emulator(self, name: str) -> bool:
        return self.resolve_emulator_image(name) is not None

    def fetch_emulator(self, name: str) -> VirtualDevice | None:
        resolved = self.resolve_emulator_image(name)
        if resolved is None:
            return None
        for device in self.fetch_emulators():
            if device.name == resolved:
                return device
        return None

    def ensure_device_is_not_google_play(self, name: str) -> None:
        """Google Play 镜像无法 root，也就无法挂载可写系统分区。

        Raises
        ------
        EmulatorNotFoundError
            找不到该 AVD。
        UnsupportedDeviceError
            目标镜像为 Google Play。
        """
        device = self.fetch_emulator(name)
        if device is None:
            raise EmulatorNotFoundError(f"Unable to find device {name}")
        if "play" in device.target.lower():
            raise UnsupportedDeviceError(
                f"Device {name} is a Google Play device, which is not supported."
            )
