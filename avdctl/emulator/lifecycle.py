"""模拟器生命周期 — 创建、启动、停止、重启与可写挂载。

状态流转::

    NotRunning ──start──▶ Booting ──boot_completed=1──▶ Running
    Running ──reboot──▶ Rebooting ──▶ Running
    Running ──stop──▶ PoweringOff ──离开 adb devices──▶ NotRunning

模拟器进程以脱离模式启动，不保存句柄；是否在运行、运行在哪个端口，
都通过 :class:`~avdctl.emulator.ports.PortRegistry` 重新查询。
等待超时只抛出异常，不会终止外部进程。

使用方式::

    from avdctl.emulator import EmulatorLifecycle
    from avdctl.sdk import SdkLocator

    lifecycle = EmulatorLifecycle(SdkLocator())
    port = lifecycle.start_emulator("Pixel XL", writable=True)
    lifecycle.stop_emulator(port)
"""

from __future__ import annotations

import shlex
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from avdctl.emulator.adb import AdbExecutor, emulator_serial
from avdctl.emulator.avd import AvdCatalog, VirtualDevice
from avdctl.emulator.config_editor import EmulatorConfigEditor
from avdctl.emulator.ports import PortRegistry
from avdctl.infra import (
    AdbCommandError,
    AndroidConfig,
    AvdCreationError,
    BootTimeoutError,
    EmulatorNotFoundError,
    PowerOffTimeoutError,
    ToolInvocationError,
)
from avdctl.infra.process import CommandRunner, format_command
from avdctl.sdk.locator import SdkLocator
from avdctl.sdk.version import Version

# 从 API 29 起，remount 之前必须先关闭 AVB 校验
_AVB_MIN_API = Version(29)

# 等待过程中单次 adb 调用的最短超时（秒）
_MIN_CALL_TIMEOUT = 0.05

_WRITABLE_FLAG = "-writable-system"
_LAUNCH_PARAMS_FILE = "emu-launch-params.txt"

# 传给预览应用的 intent extra 键名
COMPONENT_NAME_ARG = "ComponentName"
PROJECT_DIR_ARG = "ProjectDir"
SERVER_ADDRESS_ARG = "ServerAddress"
SERVER_PORT_ARG = "ServerPort"


@dataclass(frozen=True, slots=True)
class LaunchArgument:
    """启动应用时附带的一个字符串 extra（``--es name value``）。"""

    name: str
    value: str


class EmulatorLifecycle:
    """组合端口登记、adb 执行与 AVD 查询，实现模拟器的完整生命周期。

    Parameters
    ----------
    locator:
        SDK 路径定位器。
    config:
        超时、重试与端口等行为配置。
    runner:
        进程执行器；所有子组件共用同一个实例。
    """

    def __init__(
        self,
        locator: SdkLocator,
        config: AndroidConfig | None = None,
        runner: CommandRunner | None = None,
    ) -> None:
        self._locator = locator
        self._config = config or AndroidConfig()
        self._runner = runner or CommandRunner()
        self.adb = AdbExecutor(locator, self._config, self._runner)
        self.ports = PortRegistry(locator, self.adb, self._config, self._runner)
        self.catalog = AvdCatalog(locator, self._runner)
        self.config_editor = EmulatorConfigEditor(locator)

    # ── AVD 查询（委托给 AvdCatalog）──

    def fetch_emulators(self) -> list[VirtualDevice]:
        return self.catalog.fetch_emulators()

    def fetch_emulator(self, name: str) -> VirtualDevice | None:
        return self.catalog.fetch_emulator(name)

    def has_emulator(self, name: str) -> bool:
        return self.catalog.has_emulator(name)

    def resolve_emulator_image(self, name: str) -> str | None:
        return self.catalog.resolve_emulator_image(name)

    def ensure_device_is_not_google_play(self, name: str) -> None:
        self.catalog.ensure_device_is_not_google_play(name)

    # ── 创建 ──

    def create_new_virtual_device(
        self,
        name: str,
        image: str,
        platform_api: str,
        device: str,
        abi: str,
    ) -> str:
        """用 avdmanager 创建 AVD，并规范化其配置。

        Parameters
        ----------
        name:
            AVD 名称，空格会替换为 ``_`` 作为 id。
        image:
            镜像类型，例如 ``google_apis``。
        platform_api:
            平台 API，例如 ``android-30``。
        device:
            设备配置，例如 ``pixel_xl``。
        abi:
            CPU 架构，例如 ``x86_64``。

        Returns
        -------
        str
            新 AVD 的 id。

        Raises
        ------
        AvdCreationError
            avdmanager 执行失败或输出中含有 ``Error:``。
        """
        avd_id = name.replace(" ", "_")
        package = f"system-images;{platform_api};{image};{abi}"
        args = [
            self._locator.avd_manager_command(),
            "create", "avd",
            "-n", avd_id,
            "--force",
            "-k", package,
            "--device", device,
            "--abi", abi,
        ]
        logger.info("[Emulator] 创建 AVD {} ({}, {})", avd_id, package, device)
        # avdmanager 会询问是否创建自定义硬件配置，回答 no
        try:
            result = self._runner.run(args, input="no\n")
        except ToolInvocationError as exc:
            raise AvdCreationError(
                f"Could not create emulator. Command failed: {format_command(args)}\n{exc}"
            ) from exc

        output = f"{result.stderr}\n{result.stdout}"
        if "Error:" in output:
            raise AvdCreationError(
                f"Could not create emulator. Command failed: "
                f"{format_command(args)}\n{output.strip()}"
            )

        self.config_editor.normalize(avd_id)
        return avd_id

    # ── 启动 / 停止 / 重启 ──

    def start_emulator(
        self, name: str, writable: bool = False, wait_for_boot: bool = True
    ) -> int:
        """启动模拟器，返回其控制台端口。

        已在运行且满足可写要求时直接返回原端口；
        已在运行但不可写而又要求可写时，先关机再在同一端口以可写模式重新启动。

        Raises
        ------
        EmulatorNotFoundError
            找不到该 AVD。
        BootTimeoutError
            等待启动超时。
        """
        avd_id = self.catalog.resolve_emulator_image(name)
        if avd_id is None:
            raise EmulatorNotFoundError(f"Invalid emulator: {name}")

        running_port = self.ports.find_port_for_name(avd_id)
        if running_port is not None:
            if not writable or self.is_emulator_system_writable(running_port):
                logger.debug("[Emulator] {} 已在端口 {} 运行", avd_id, running_port)
                return running_port
            logger.info("[Emulator] {} 未以可写系统模式运行，先关机", avd_id)
            self.stop_emulator(running_port)
            port = running_port
            action = "重新启动"
        else:
            port = self.ports.allocate_next_port()
            action = "启动"

        mode = "可写系统" if writable else "普通"
        logger.info("[Emulator] {} {} ({}模式) 端口={}", action, avd_id, mode, port)

        args: list = [self._locator.emulator_command(), f"@{avd_id}", "-port", str(port)]
        if writable:
            args.append(_WRITABLE_FLAG)
        self._runner.spawn_detached(args)

        if wait_for_boot:
            logger.info("[Emulator] 等待 {} 启动完成", avd_id)
            self.wait_until_device_is_ready(port)
        return port

    def stop_emulator(self, port: int, wait_for_power_off: bool = True) -> None:
        """关闭模拟器（``shell reboot -p``）。"""
        logger.info("[Emulator] 关闭 {}", emulator_serial(port))
        self.adb.execute("shell reboot -p", port)
        if wait_for_power_off:
            self.wait_until_device_is_powered_off(port)

    def reboot_emulator(self, port: int, wait_for_boot: bool = True) -> None:
        logger.info("[Emulator] 重启 {}", emulator_serial(port))
        self.adb.execute("shell reboot", port)
        if wait_for_boot:
            self.wait_until_device_is_ready(port)

    # ── 等待 ──

    def wait_until_device_is_ready(self, port: int) -> None:
        """轮询 ``sys.boot_completed`` 直到为 ``1``。

        Raises
        ------
        BootTimeoutError
            超过 ``device_readiness_wait_time`` 仍未启动完成。
        """
        timeout = self._config.device_readiness_wait_time
        interval = self._config.boot_poll_interval
        deadline = time.monotonic() + timeout
        while True:
            try:
                value = self.adb.execute(
                    "shell getprop sys.boot_completed", port, timeout=_remaining(deadline)
                )
                if value.strip() == "1":
                    logger.debug("[Emulator] {} 启动完成", emulator_serial(port))
                    return
            except AdbCommandError:
                # 启动早期 adb 连接不上属于正常情况
                pass
            if time.monotonic() >= deadline:
                raise BootTimeoutError(emulator_serial(port), timeout)
            time.sleep(interval)

    def wait_until_device_is_powered_off(self, port: int) -> None:
        """轮询 ``adb devices`` 直到端口消失，再额外等待一段稳定时间。

        Raises
        ------
        PowerOffTimeoutError
            超过 ``device_readiness_wait_time`` 设备仍在列表中。
        """
        timeout = self._config.device_readiness_wait_time
        interval = self._config.boot_poll_interval
        deadline = time.monotonic() + timeout
        while self._still_listed(port, deadline):
            if time.monotonic() >= deadline:
                raise PowerOffTimeoutError(emulator_serial(port), timeout)
            time.sleep(interval)

        # 设备有时过早地从 adb devices 中消失（Windows 上尤其明显）
        settle = self._config.power_off_settle_delay
        if settle > 0:
            time.sleep(settle)
        logger.debug("[Emulator] {} 已关机", emulator_serial(port))

    def _still_listed(self, port: int, deadline: float) -> bool:
        """``adb devices`` 超时或失败时按仍在运行处理。"""
        try:
            return self.ports.is_port_active(port, timeout=_remaining(deadline))
        except ToolInvocationError as exc:
            logger.debug("[Emulator] 查询 adb devices 失败: {}", exc)
            return True

    # ── 可写系统 ──

    def is_emulator_system_writable(self, port: int) -> bool:
        """检查模拟器是否以 ``-writable-system`` 启动；无法判断时返回 ``False``。"""
        try:
            output = self.adb.execute("emu avd path", port)
            lines = output.splitlines()
            avd_path = lines[0].strip() if lines else ""
            params = (Path(avd_path) / _LAUNCH_PARAMS_FILE).read_text(encoding="utf-8")
        except (AdbCommandError, OSError) as exc:
            logger.warning("[Emulator] 无法确定模拟器是否为可写系统: {}", exc)
            return False
        return _WRITABLE_FLAG in params

    def mount_as_root_writable_system(self, name: str) -> int:
        """以 root 身份将系统分区重新挂载为可写，返回端口。

        流程：可写模式启动 → ``root`` → (API ≥ 29) 关闭 AVB 校验 → ``remount``。
        只有确实执行了关闭校验的命令时才会重启设备并再次 ``root``。

        Raises
        ------
        EmulatorNotFoundError
            找不到该 AVD。
        AdbCommandError
            任一 adb 命令在重试后仍然失败。
        """
        port = self.start_emulator(name, writable=True, wait_for_boot=True)
        self.adb.execute_with_retry("root", port)

        device = self.catalog.fetch_emulator(name)
        if device is None:
            raise EmulatorNotFoundError(
                f"Unable to determine device info: Port = {port} , Name = {name}"
            )

        if device.api_level.same_or_newer(_AVB_MIN_API):
            verification_disabled = "disabled" in self.adb.execute_with_retry(
                "shell avbctl get-verification", port
            )
            verity_disabled = "disabled" in self.adb.execute_with_retry(
                "shell avbctl get-verity", port
            )

            if not verification_disabled or not verity_disabled:
                logger.info("[Emulator] 关闭 AVB 校验")
            if not verification_disabled:
                self.adb.execute_with_retry("shell avbctl disable-verification", port)
            if not verity_disabled:
                self.adb.execute_with_retry("disable-verity", port)

            if not verification_disabled or not verity_disabled:
                logger.info("[Emulator] 重启设备使校验设置生效")
                self.reboot_emulator(port, wait_for_boot=True)
                self.adb.execute_with_retry("root", port)

        logger.info("[Emulator] 重新挂载系统分区为可写")
        self.adb.execute_with_retry("remount", port)
        return port

    # ── 应用 ──

    def launch_url_intent(self, url: str, port: int) -> None:
        """在模拟器浏览器中打开 URL。"""
        logger.info("[Emulator] 打开 URL {}", url)
        self.adb.execute(
            ["shell", "am", "start", "-a", "android.intent.action.VIEW", "-d", shlex.quote(url)],
            port,
        )

    def launch_native_app(
        self,
        component_name: str,
        project_dir: str,
        app_bundle_path: str | None,
        target_app: str,
        target_app_arguments: Sequence[LaunchArgument],
        launch_activity: str,
        port: int,
        server_address: str | None = None,
        server_port: str | None = None,
    ) -> None:
        """（可选）安装应用并以指定 activity 启动，附带预览参数。

        Parameters
        ----------
        app_bundle_path:
            APK 路径；非空时先执行 ``install -r -t``。
        target_app:
            应用包名。
        target_app_arguments:
            额外的 ``--es`` 参数。
        """
        if app_bundle_path and app_bundle_path.strip():
            apk = app_bundle_path.strip()
            logger.info("[Emulator] 安装应用 {}", apk)
            self.adb.execute(["install", "-r", "-t", apk], port)

        extras: list[tuple[str, str]] = [
            (COMPONENT_NAME_ARG, component_name),
            (PROJECT_DIR_ARG, project_dir),
        ]
        if server_address:
            extras.append((SERVER_ADDRESS_ARG, server_address))
        if server_port:
            extras.append((SERVER_PORT_ARG, server_port))
        extras.extend((arg.name, arg.value) for arg in target_app_arguments)

        command = [
            "shell", "am", "start", "-S",
            "-n", shlex.quote(f"{target_app}/{launch_activity}"),
            "-a", "android.intent.action.MAIN",
            "-c", "android.intent.category.LAUNCHER",
        ]
        for key, value in extras:
            command.extend(["--es", shlex.quote(key), shlex.quote(value)])

        logger.info("[Emulator] 启动应用 {}", target_app)
        self.adb.execute(command, port)


def _remaining(deadline: float) -> float:
    """距截止时间的剩余秒数，作为单次调用的超时。"""
    return max(deadline - time.monotonic(), _MIN_CALL_TIMEOUT)
