"""avdctl 异常层级体系。

层级树::

    AvdCtlError
    ├── ConfigError
    ├── SdkError
    │   ├── SdkRootNotSetError
    │   ├── JavaHomeNotSetError
    │   ├── UnsupportedJavaError
    │   ├── SdkManagerNotFoundError
    │   ├── VersionParseError
    │   └── PackageNotFoundError
    ├── ToolInvocationError
    └── EmulatorError
        ├── EmulatorNotFoundError
        ├── UnsupportedDeviceError
        ├── AvdCreationError
        ├── AdbCommandError
        └── DeviceTimeoutError
            ├── BootTimeoutError
            └── PowerOffTimeoutError
"""

from __future__ import annotations


# ── 基类 ──


class AvdCtlError(Exception):
    """所有 avdctl 异常的基类。"""


# ── 基础设施异常 ──


class ConfigError(AvdCtlError):
    """配置错误（文件缺失、字段非法等）。"""


# ── SDK 异常 ──


class SdkError(AvdCtlError):
    """Android SDK 相关错误。"""


class SdkRootNotSetError(SdkError):
    """ANDROID_HOME / ANDROID_SDK_ROOT 均未指向有效目录。"""

    def __init__(self) -> None:
        super().__init__("Android SDK root is not set.")


class JavaHomeNotSetError(SdkError):
    """JAVA_HOME 未设置。"""

    def __init__(self) -> None:
        super().__init__("JAVA_HOME is not set.")


class UnsupportedJavaError(SdkError):
    """当前 Java 版本无法运行 sdkmanager。"""

    def __init__(self) -> None:
        super().__init__("unsupported Java version.")


class SdkManagerNotFoundError(SdkError):
    """在预期位置找不到 sdkmanager。"""

    def __init__(self, expected_path: str) -> None:
        self.expected_path = expected_path
        super().__init__(f"SDK Manager not found. Expected at {expected_path}")


class VersionParseError(SdkError, ValueError):
    """版本字符串无法解析。"""

    def __init__(self, raw: str) -> None:
        self.raw = raw
        super().__init__(f"无法解析版本号: '{raw}'")


class PackageNotFoundError(SdkError):
    """找不到满足条件的 SDK 包。"""


# ── 外部工具异常 ──


class ToolInvocationError(AvdCtlError):
    """外部命令退出码非 0 或无法启动。

    Attributes
    ----------
    command:
        执行的命令行。
    stdout, stderr:
        已捕获的输出（可能为空）。
    returncode:
        退出码；进程未能启动时为 ``None``。
    """

    def __init__(
        self,
        command: str,
        stdout: str = "",
        stderr: str = "",
        returncode: int | None = None,
        reason: str = "",
    ) -> None:
        self.command = command
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode
        msg = f"Command failed: {command}"
        if returncode is not None:
            msg += f" (exit {returncode})"
        if reason:
            msg += f"\n{reason}"
        if stderr:
            msg += f"\n{stderr.rstrip()}"
        super().__init__(msg)

    @property
    def output(self) -> str:
        """stderr 与 stdout 拼接后的全部输出。"""
        return "\n".join(part for part in (self.stderr, self.stdout) if part)


# ── 模拟器异常 ──


class EmulatorError(AvdCtlError):
    """模拟器操作失败。"""


class EmulatorNotFoundError(EmulatorError):
    """找不到指定的 AVD。"""


class UnsupportedDeviceError(EmulatorError):
    """设备类型不受支持（如 Google Play 镜像）。"""


class AvdCreationError(EmulatorError):
    """avdmanager 创建 AVD 失败。"""


class AdbCommandError(EmulatorError):
    """ADB 命令在全部重试后仍然失败。"""

    def __init__(self, command: str, output: str, attempts: int) -> None:
        self.command = command
        self.output = output
        self.attempts = attempts
        super().__init__(output)


class DeviceTimeoutError(EmulatorError):
    """等待设备状态变化超时。"""

    def __init__(self, message: str, device: str, timeout: float) -> None:
        self.device = device
        self.timeout = timeout
        super().__init__(message)


class BootTimeoutError(DeviceTimeoutError):
    """设备启动超时。"""

    def __init__(self, device: str, timeout: float) -> None:
        super().__init__(
            f"Timed out waiting for {device} to boot ({timeout:.1f}s)", device, timeout
        )


class PowerOffTimeoutError(DeviceTimeoutError):
    """设备关机超时。"""

    def __init__(self, device: str, timeout: float) -> None:
        super().__init__(
            f"Timed out waiting for {device} to power off ({timeout:.1f}s)",
            device,
            timeout,
        )
