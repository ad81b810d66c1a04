"""模拟器端口登记。

"模拟器是否在运行" 完全由 ``adb devices`` 决定，不保存任何进程句柄。
``adb devices`` 输出示例::

    List of devices attached
    emulator-5554	device
    emulator-5556	offline
"""

from __future__ import annotations

import re

from loguru import logger

from avdctl.emulator.adb import AdbExecutor
from avdctl.infra import AdbCommandError, AndroidConfig, ToolInvocationError
from avdctl.infra.process import CommandRunner
from avdctl.sdk.locator import SdkLocator

_PORT_RE = re.compile(r"\d+")


class PortRegistry:
    """枚举正在运行的模拟器端口并分配新端口。"""

    def __init__(
        self,
        locator: SdkLocator,
        adb: AdbExecutor,
        config: AndroidConfig | None = None,
        runner: CommandRunner | None = None,
    ) -> None:
        self._locator = locator
        self._adb = adb
        self._config = config or AndroidConfig()
        self._runner = runner or CommandRunner()

    def list_active_ports(self, timeout: float | None = None) -> list[int]:
        """返回 ``adb devices`` 中所有模拟器的控制台端口（保持输出顺序）。"""
        result = self._runner.run([self._locator.adb_command(), "devices"], timeout=timeout)
        ports: list[int] = []
        for line in result.stdout.splitlines():
            if not line.strip().lower().startswith("emulator"):
                continue
            m = _PORT_RE.search(line)
            if m:
                ports.append(int(m.group()))
        return ports

    def allocate_next_port(self) -> int:
        """当前最大端口 + 2；没有运行中的模拟器时使用配置的默认端口。

        每个模拟器占用两个连续端口（控制台 + adb），因此步长为 2。
        """
        ports = self.list_active_ports()
        port = max(ports) + 2 if ports else self._config.default_adb_port
        logger.debug("[Ports] 已占用端口 {} → 分配 {}", ports, port)
        return port

    def is_port_active(self, port: int, timeout: float | None = None) -> bool:
        return port in self.list_active_ports(timeout)

    def emulator_name_for_port(self, port: int) -> str:
        """查询端口上运行的 AVD 名称（``emu avd name`` 的首行）。"""
        output = self._adb.execute("emu avd name", port)
        lines = output.splitlines()
        return lines[0].strip() if lines else ""

    def find_port_for_name(self, name: str) -> int | None:
        """返回运行 ``name`` 的端口；未运行或查询失败时返回 ``None``。"""
        try:
            ports = self.list_active_ports()
        except ToolInvocationError as exc:
            logger.warning("[Ports] 无法确定模拟器 {} 是否已在运行: {}", name, exc)
            return None

        for port in ports:
            try:
                if self.emulator_name_for_port(port) == name:
                    return port
            except (ToolInvocationError, AdbCommandError) as exc:
                # 离线或尚未就绪的实例不影响其余端口
                logger.warning("[Ports] 无法查询端口 {} 上的模拟器名称: {}", port, exc)
        return None
