"""AVD ``config.ini`` 读写与规范化。

文件位于 ``<avd_home>/<name>.avd/config.ini``，每行一个 ``key=value``。
读写失败只记录警告，不向上抛出：配置无法修改时模拟器仍可使用，只是体验降级。
"""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from avdctl.infra import dump_key_values, parse_key_values
from avdctl.sdk.locator import SdkLocator, convert_to_unix_path

# hw.device.name → 皮肤名；未列出的设备直接使用设备名
_SKIN_OVERRIDES: dict[str, str] = {
    "pixel": "pixel_silver",
    "pixel_xl": "pixel_xl_silver",
}

_LOWERCASE_KEYS = ("runtime.network.latency", "runtime.network.speed")

_HARDWARE_DEFAULTS: dict[str, str] = {
    "hw.keyboard": "yes",
    "hw.gpu.mode": "auto",
    "hw.gpu.enabled": "yes",
}


def skin_for_device(device_name: str) -> str:
    return _SKIN_OVERRIDES.get(device_name, device_name)


class EmulatorConfigEditor:
    """单个 AVD 配置文件的读写器。"""

    def __init__(self, locator: SdkLocator) -> None:
        self._locator = locator

    def config_path(self, name: str) -> Path:
        return self._locator.avd_home() / f"{name}.avd" / "config.ini"

    def read(self, name: str) -> dict[str, str]:
        """读取配置；文件不存在或无法读取时返回空字典。"""
        path = self.config_path(name)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            logger.warning("[Config] 无法读取模拟器配置 {}: {}", path, exc)
            return {}
        return parse_key_values(text)

    def write(self, name: str, config: dict[str, str]) -> None:
        """按映射顺序写回配置，失败时仅记录警告。"""
        path = self.config_path(name)
        try:
            path.write_text(dump_key_values(config), encoding="utf-8")
        except OSError as exc:
            logger.warning("[Config] 无法写入模拟器配置 {}: {}", path, exc)

    def normalize(self, name: str) -> None:
        """修正新建 AVD 的配置，使其能被 AVD Manager 正常启动并带上设备外框。

        - ``runtime.network.latency`` / ``runtime.network.speed`` 转为小写
        - 启用硬件键盘与 GPU 加速
        - 按 ``hw.device.name`` 设置皮肤
        """
        config = self.read(name)
        if not config:
            return

        for key in _LOWERCASE_KEYS:
            value = config.get(key)
            if value:
                config[key] = value.strip().lower()

        config.update(_HARDWARE_DEFAULTS)

        device_name = config.get("hw.device.name", "").strip()
        if device_name:
            skin = skin_for_device(device_name)
            root = self._locator.sdk_root()
            root_dir = convert_to_unix_path(root.location) if root is not None else ""
            config["skin.name"] = skin
            config["skin.path"] = f"{root_dir}/skins/{skin}"
            config["skin.dynamic"] = "yes"
            config["showDeviceFrame"] = "yes"

        self.write(name, config)
        logger.debug("[Config] 已规范化 {} 的配置", name)
