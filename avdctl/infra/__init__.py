"""基础设施层 — 日志、配置、异常体系、文件工具。"""

from .config import (
    AndroidConfig,
    ConfigManager,
    LogConfig,
    UserConfig,
)
from .exceptions import (
    AdbCommandError,
    AvdCreationError,
    AvdCtlError,
    BootTimeoutError,
    ConfigError,
    DeviceTimeoutError,
    EmulatorError,
    EmulatorNotFoundError,
    JavaHomeNotSetError,
    PackageNotFoundError,
    PowerOffTimeoutError,
    SdkError,
    SdkManagerNotFoundError,
    SdkRootNotSetError,
    ToolInvocationError,
    UnsupportedDeviceError,
    UnsupportedJavaError,
    VersionParseError,
)
from .file_utils import dump_key_values, load_yaml, parse_key_values, save_yaml
from .logger import setup_logger
from .process import CommandResult, CommandRunner

__all__ = [
    # config
    "AndroidConfig",
    "ConfigManager",
    "LogConfig",
    "UserConfig",
    # exceptions
    "AdbCommandError",
    "AvdCreationError",
    "AvdCtlError",
    "BootTimeoutError",
    "ConfigError",
    "DeviceTimeoutError",
    "EmulatorError",
    "EmulatorNotFoundError",
    "JavaHomeNotSetError",
    "PackageNotFoundError",
    "PowerOffTimeoutError",
    "SdkError",
    "SdkManagerNotFoundError",
    "SdkRootNotSetError",
    "ToolInvocationError",
    "UnsupportedDeviceError",
    "UnsupportedJavaError",
    "VersionParseError",
    # file_utils
    "dump_key_values",
    "load_yaml",
    "parse_key_values",
    "save_yaml",
    # logger
    "setup_logger",
    # process
    "CommandResult",
    "CommandRunner",
]
