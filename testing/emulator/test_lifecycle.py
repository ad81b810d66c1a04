"""测试 EmulatorLifecycle。

用一个有状态的假 SDK 代替真实的 emulator / adb / avdmanager：
``spawn_detached`` 会把模拟器 "启动" 到对应端口，``shell reboot -p`` 会使其下线。
"""

from __future__ import annotations

import time
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from avdctl.emulator.lifecycle import EmulatorLifecycle, LaunchArgument
from avdctl.infra import (
    AdbCommandError,
    AndroidConfig,
    AvdCreationError,
    BootTimeoutError,
    CommandResult,
    EmulatorNotFoundError,
    PowerOffTimeoutError,
    ToolInvocationError,
)


def _avd_block(name: str, based_on: str, target: str = "Google APIs (Google Inc.)") -> str:
    return (
        f"    Name: {name}\n"
        f"  Device: pixel_xl (Google)\n"
        f"    Path: /nonexistent/{name}.avd\n"
        f"  Target: {target}\n"
        f"          Based on: {based_on} Tag/ABI: google_apis/x86_64\n"
    )


class FakeSdk:
    """模拟 SDK 工具链的行为。"""

    def __init__(self, tmp_path: Path) -> None:
        self.tmp_path = tmp_path
        self.avds = {
            "Pixel_XL_API_30": "Android 11.0 (R)",
            "Nexus_5_API_28": "Android 9.0 (Pie)",
        }
        self.running: dict[int, str] = {}
        self.verification_disabled = False
        self.verity_disabled = False
        self.boot_completed = "1"
        self.ignore_power_off = False
        self.adb_log: list[str] = []
        self.spawned: list[list[str]] = []
        self.create_output = ""

    # ── 状态操作 ──

    def boot(self, name: str, port: int, writable: bool = False) -> None:
        avd_dir = self.tmp_path / f"{name}.avd"
        avd_dir.mkdir(exist_ok=True)
        params = "-port\n" + str(port) + ("\n-writable-system\n" if writable else "\n")
        (avd_dir / "emu-launch-params.txt").write_text(params, encoding="utf-8")
        self.running[port] = name

    # ── CommandRunner 替身 ──

    def run(self, args, input=None, timeout=None) -> CommandResult:
        argv = [str(a) for a in args]
        tool, rest = Path(argv[0]).name, argv[1:]
        match tool:
            case "emulator" if rest == ["-list-avds"]:
                return self._ok("\n".join(self.avds) + "\n")
            case "avdmanager" if rest[:2] == ["list", "avd"]:
                return self._ok(
                    "---------\n".join(_avd_block(n, b) for n, b in self.avds.items())
                )
            case "avdmanager" if rest[:2] == ["create", "avd"]:
                return self._ok(self.create_output)
            case "adb" if rest == ["devices"]:
                lines = [f"emulator-{p}\tdevice" for p in self.running]
                return self._ok("List of devices attached\n" + "\n".join(lines) + "\n")
            case "adb":
                return self._adb(int(rest[1].removeprefix("emulator-")), " ".join(rest[2:]))
        raise AssertionError(f"unexpected command: {argv}")

    def spawn_detached(self, args) -> None:
        argv = [str(a) for a in args]
        self.spawned.append(argv)
        self.boot(argv[1].lstrip("@"), int(argv[3]), "-writable-system" in argv)

    def _adb(self, port: int, command: str) -> CommandResult:
        self.adb_log.append(command)
        if port not in self.running:
            return CommandResult([], "", f"error: device 'emulator-{port}' not found", 1)
        match command:
            case "emu avd name":
                return self._ok(f"{self.running[port]}\r\nOK\r\n")
            case "emu avd path":
                return self._ok(f"{self.tmp_path / (self.running[port] + '.avd')}\r\nOK\r\n")
            case "shell getprop sys.boot_completed":
                return self._ok(self.boot_completed + "\n")
            case "shell reboot -p":
                if not self.ignore_power_off:
                    del self.running[port]
                return self._ok("", "Done\n")
            case "shell avbctl get-verification":
                state = "disabled" if self.verification_disabled else "enabled"
                return self._ok(f"verification is {state}\n")
            case "shell avbctl get-verity":
                state = "disabled" if self.verity_disabled else "enabled"
                return self._ok(f"verity is {state}\n")
            case "shell avbctl disable-verification":
                self.verification_disabled = True
                return self._ok("Successfully disabled verification\n")
            case "disable-verity":
                self.verity_disabled = True
                return self._ok("Verity disabled\n")
        return self._ok("")

    @staticmethod
    def _ok(stdout: str, stderr: str = "") -> CommandResult:
        return CommandResult([], stdout, stderr, 0)


def _hanging_runner() -> MagicMock:
    """每条命令都卡到超时为止；未指定超时时卡 2 秒。"""

    def _run(args, input=None, timeout=None):
        time.sleep(timeout if timeout is not None else 2.0)
        raise ToolInvocationError(" ".join(str(a) for a in args), reason="timed out")

    runner = MagicMock()
    runner.run.side_effect = _run
    return runner


@pytest.fixture
def sdk(tmp_path: Path) -> FakeSdk:
    return FakeSdk(tmp_path)


@pytest.fixture
def lifecycle(locator, fast_config, sdk: FakeSdk) -> EmulatorLifecycle:
    runner = MagicMock()
    runner.run.side_effect = sdk.run
    runner.spawn_detached.side_effect = sdk.spawn_detached
    return EmulatorLifecycle(locator, fast_config, runner)


# ═══════════════════════════════════════════════
# 启动
# ═══════════════════════════════════════════════


class TestStartEmulator:
    def test_launch_on_default_port(self, lifecycle, sdk):
        port = lifecycle.start_emulator("Pixel XL API 30")
        assert port == 5572
        assert sdk.spawned[0][1:] == ["@Pixel_XL_API_30", "-port", "5572"]
        assert "shell getprop sys.boot_completed" in sdk.adb_log

    def test_launch_after_highest_port(self, lifecycle, sdk):
        sdk.boot("Nexus_5_API_28", 5554)
        assert lifecycle.start_emulator("Pixel_XL_API_30", wait_for_boot=False) == 5556
        assert "shell getprop sys.boot_completed" not in sdk.adb_log

    def test_writable_flag(self, lifecycle, sdk):
        lifecycle.start_emulator("Pixel_XL_API_30", writable=True)
        assert sdk.spawned[0][-1] == "-writable-system"

    def test_unknown_emulator(self, lifecycle, sdk):
        with pytest.raises(EmulatorNotFoundError):
            lifecycle.start_emulator("Pixel 9")
        assert sdk.spawned == []

    def test_already_running_returns_port(self, lifecycle, sdk):
        sdk.boot("Pixel_XL_API_30", 5560)
        assert lifecycle.start_emulator("Pixel_XL_API_30") == 5560
        assert sdk.spawned == []

    def test_idempotent_writable_start(self, lifecycle, sdk):
        """已可写运行时重复调用不会关机也不会重新启动。"""
        first = lifecycle.start_emulator("Pixel_XL_API_30", writable=True)
        second = lifecycle.start_emulator("Pixel_XL_API_30", writable=True)
        assert first == second
        assert len(sdk.spawned) == 1
        assert "shell reboot -p" not in sdk.adb_log

    def test_relaunch_writable_on_same_port(self, lifecycle, sdk):
        sdk.boot("Pixel_XL_API_30", 5558)
        port = lifecycle.start_emulator("Pixel_XL_API_30", writable=True)
        assert port == 5558
        assert "shell reboot -p" in sdk.adb_log
        assert sdk.spawned[0][1:] == ["@Pixel_XL_API_30", "-port", "5558", "-writable-system"]


# ═══════════════════════════════════════════════
# 等待 / 停止 / 重启
# ═══════════════════════════════════════════════


class TestWaiting:
    def test_boot_timeout(self, lifecycle, sdk):
        sdk.boot("Pixel_XL_API_30", 5554)
        sdk.boot_completed = ""
        with pytest.raises(BootTimeoutError, match="emulator-5554"):
            lifecycle.wait_until_device_is_ready(5554)

    def test_boot_polls_until_ready(self, lifecycle, sdk):
        sdk.boot("Pixel_XL_API_30", 5554)
        answers = iter(["", "0", "1"])
        original = sdk._adb

        def _adb(port, command):
            if command == "shell getprop sys.boot_completed":
                sdk.boot_completed = next(answers)
            return original(port, command)

        sdk._adb = _adb
        lifecycle.wait_until_device_is_ready(5554)
        assert sdk.adb_log.count("shell getprop sys.boot_completed") == 3

    def test_boot_wait_tolerates_offline_device(self, lifecycle, sdk):
        """设备尚未出现在 adb 中时继续轮询，直到超时。"""
        with pytest.raises(BootTimeoutError):
            lifecycle.wait_until_device_is_ready(5590)

    def test_boot_wait_bounded_by_hanging_adb(self, locator):
        runner = _hanging_runner()
        config = AndroidConfig(
            adb_retry_delay=0, boot_poll_interval=0.01, device_readiness_wait_time=0.3
        )
        lifecycle = EmulatorLifecycle(locator, config, runner)
        start = time.monotonic()
        with pytest.raises(BootTimeoutError):
            lifecycle.wait_until_device_is_ready(5554)
        assert time.monotonic() - start < 1.0
        timeouts = [c.kwargs["timeout"] for c in runner.run.call_args_list]
        assert all(t is not None and t <= 0.3 for t in timeouts)

    def test_power_off_wait_bounded_by_hanging_adb(self, locator):
        runner = _hanging_runner()
        config = AndroidConfig(
            boot_poll_interval=0.01, power_off_settle_delay=0, device_readiness_wait_time=0.3
        )
        lifecycle = EmulatorLifecycle(locator, config, runner)
        start = time.monotonic()
        with pytest.raises(PowerOffTimeoutError):
            lifecycle.wait_until_device_is_powered_off(5554)
        assert time.monotonic() - start < 1.0
        timeouts = [c.kwargs["timeout"] for c in runner.run.call_args_list]
        assert all(t is not None and t <= 0.3 for t in timeouts)

    def test_stop(self, lifecycle, sdk):
        sdk.boot("Pixel_XL_API_30", 5554)
        with patch("avdctl.emulator.lifecycle.time.sleep") as mock_sleep:
            lifecycle.stop_emulator(5554)
        assert 5554 not in sdk.running
        mock_sleep.assert_not_called()

    def test_stop_settle_delay(self, locator, sdk):
        sdk.boot("Pixel_XL_API_30", 5554)
        runner = MagicMock()
        runner.run.side_effect = sdk.run
        lifecycle = EmulatorLifecycle(locator, AndroidConfig(power_off_settle_delay=5.0), runner)
        with patch("avdctl.emulator.lifecycle.time.sleep") as mock_sleep:
            lifecycle.stop_emulator(5554)
        mock_sleep.assert_called_once_with(5.0)

    def test_power_off_timeout(self, lifecycle, sdk):
        sdk.boot("Pixel_XL_API_30", 5554)
        sdk.ignore_power_off = True
        with pytest.raises(PowerOffTimeoutError, match="emulator-5554"):
            lifecycle.stop_emulator(5554)

    def test_stop_without_waiting(self, lifecycle, sdk):
        sdk.boot("Pixel_XL_API_30", 5554)
        sdk.ignore_power_off = True
        lifecycle.stop_emulator(5554, wait_for_power_off=False)
        assert sdk.adb_log == ["shell reboot -p"]

    def test_stop_unknown_port(self, lifecycle):
        with pytest.raises(AdbCommandError):
            lifecycle.stop_emulator(5600)

    def test_reboot(self, lifecycle, sdk):
        sdk.boot("Pixel_XL_API_30", 5554)
        lifecycle.reboot_emulator(5554)
        assert sdk.adb_log == ["shell reboot", "shell getprop sys.boot_completed"]


# ═══════════════════════════════════════════════
# 可写系统
# ═══════════════════════════════════════════════


class TestWritableSystem:
    def test_is_writable(self, lifecycle, sdk):
        sdk.boot("Pixel_XL_API_30", 5554, writable=True)
        sdk.boot("Nexus_5_API_28", 5556, writable=False)
        assert lifecycle.is_emulator_system_writable(5554)
        assert not lifecycle.is_emulator_system_writable(5556)

    def test_is_writable_failure(self, lifecycle):
        assert not lifecycle.is_emulator_system_writable(5600)

    def test_remount_avb_already_disabled(self, lifecycle, sdk):
        sdk.verification_disabled = sdk.verity_disabled = True
        port = lifecycle.mount_as_root_writable_system("Pixel_XL_API_30")
        assert port == 5572
        actions = [c for c in sdk.adb_log if c not in _QUERIES]
        assert actions == ["root", "remount"]

    def test_remount_disables_avb_and_reboots(self, lifecycle, sdk):
        lifecycle.mount_as_root_writable_system("Pixel_XL_API_30")
        actions = [c for c in sdk.adb_log if c not in _QUERIES]
        assert actions == [
            "root",
            "shell avbctl disable-verification",
            "disable-verity",
            "shell reboot",
            "root",
            "remount",
        ]

    def test_remount_only_missing_step(self, lifecycle, sdk):
        sdk.verification_disabled = True
        lifecycle.mount_as_root_writable_system("Pixel_XL_API_30")
        actions = [c for c in sdk.adb_log if c not in _QUERIES]
        assert actions == ["root", "disable-verity", "shell reboot", "root", "remount"]

    def test_remount_below_api_29_skips_avb(self, lifecycle, sdk):
        lifecycle.mount_as_root_writable_system("Nexus_5_API_28")
        assert not any("avbctl" in c for c in sdk.adb_log)
        actions = [c for c in sdk.adb_log if c not in _QUERIES]
        assert actions == ["root", "remount"]


_QUERIES = {
    "emu avd name",
    "emu avd path",
    "shell getprop sys.boot_completed",
    "shell avbctl get-verification",
    "shell avbctl get-verity",
}


# ═══════════════════════════════════════════════
# 创建
# ═══════════════════════════════════════════════


class TestCreate:
    def test_create_and_normalize(self, lifecycle, sdk, avd_home: Path):
        avd_dir = avd_home / "My_Pixel.avd"
        avd_dir.mkdir()
        (avd_dir / "config.ini").write_text("hw.device.name=pixel\n", encoding="utf-8")

        runner = lifecycle._runner
        avd_id = lifecycle.create_new_virtual_device(
            "My Pixel", "google_apis", "android-30", "pixel", "x86_64"
        )
        assert avd_id == "My_Pixel"
        args = [str(a) for a in runner.run.call_args.args[0]]
        assert args[1:] == [
            "create", "avd",
            "-n", "My_Pixel",
            "--force",
            "-k", "system-images;android-30;google_apis;x86_64",
            "--device", "pixel",
            "--abi", "x86_64",
        ]
        assert runner.run.call_args.kwargs["input"].startswith("no")
        config = (avd_dir / "config.ini").read_text(encoding="utf-8")
        assert "skin.name=pixel_silver" in config

    def test_error_in_output(self, lifecycle, sdk):
        sdk.create_output = "Error: Package path is not valid.\n"
        with pytest.raises(AvdCreationError, match="Package path is not valid"):
            lifecycle.create_new_virtual_device("X", "default", "android-99", "pixel", "x86")

    def test_tool_failure(self, lifecycle):
        lifecycle._runner.run.side_effect = ToolInvocationError("avdmanager", returncode=1)
        with pytest.raises(AvdCreationError):
            lifecycle.create_new_virtual_device("X", "default", "android-30", "pixel", "x86")


# ═══════════════════════════════════════════════
# 应用
# ═══════════════════════════════════════════════


class TestLaunch:
    def test_launch_url(self, lifecycle, sdk):
        sdk.boot("Pixel_XL_API_30", 5554)
        lifecycle.launch_url_intent("https://example.com/?a=1&b=2", 5554)
        assert sdk.adb_log == [
            "shell am start -a android.intent.action.VIEW -d 'https://example.com/?a=1&b=2'"
        ]

    def test_launch_native_app(self, lifecycle, sdk):
        sdk.boot("Pixel_XL_API_30", 5554)
        lifecycle.launch_native_app(
            component_name="c/helloWorld",
            project_dir="/work/my project",
            app_bundle_path=" /apps/preview.apk ",
            target_app="com.example.preview",
            target_app_arguments=[LaunchArgument("theme", "dark")],
            launch_activity=".MainActivity",
            port=5554,
            server_address="10.0.2.2",
            server_port="3333",
        )
        install, launch = sdk.adb_log
        assert install == "install -r -t /apps/preview.apk"
        assert launch.startswith(
            "shell am start -S -n com.example.preview/.MainActivity "
            "-a android.intent.action.MAIN -c android.intent.category.LAUNCHER"
        )
        assert "--es ComponentName c/helloWorld" in launch
        assert "--es ProjectDir '/work/my project'" in launch
        assert "--es ServerAddress 10.0.2.2" in launch
        assert "--es ServerPort 3333" in launch
        assert launch.endswith("--es theme dark")

    def test_launch_without_install(self, lifecycle, sdk):
        sdk.boot("Pixel_XL_API_30", 5554)
        lifecycle.launch_native_app(
            "c/cmp", "/proj", None, "com.example", [], "Main", 5554
        )
        assert len(sdk.adb_log) == 1
        assert "ServerAddress" not in sdk.adb_log[0]


# ═══════════════════════════════════════════════
# 查询委托
# ═══════════════════════════════════════════════


class TestQueries:
    def test_fetch_emulators(self, lifecycle):
        names = [d.name for d in lifecycle.fetch_emulators()]
        assert names == ["Pixel_XL_API_30", "Nexus_5_API_28"]

    def test_has_and_resolve(self, lifecycle):
        assert lifecycle.has_emulator("nexus 5 api 28")
        assert lifecycle.resolve_emulator_image("Pixel XL API 30") == "Pixel_XL_API_30"
        assert lifecycle.fetch_emulator("Pixel 9") is None

    def test_google_play_guard(self, lifecycle):
        lifecycle.ensure_device_is_not_google_play("Pixel_XL_API_30")
