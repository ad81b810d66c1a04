"""模拟器层 — adb 执行、端口登记、AVD 查询与生命周期管理。

提供三类能力：

1. **adb 执行** (`AdbExecutor`)：带重试、以输出文本判定成败的 adb 命令执行。

2. **查询** (`PortRegistry` / `AvdCatalog`)：
   正在运行的模拟器端口、已创建的 AVD 及其名称解析。

3. **生命周期** (`EmulatorLifecycle`)：
   创建、启动、停止、重启模拟器，以及以 root 挂载可写系统分区。
"""

from avdctl.emulator.adb import AdbExecutor, emulator_serial
from avdctl.emulator.avd import AvdCatalog, VirtualDevice, parse_avd_list
from avdctl.emulator.config_editor import EmulatorConfigEditor
from avdctl.emulator.lifecycle import EmulatorLifecycle, LaunchArgument
from avdctl.emulator.ports import PortRegistry

__all__ = [
    # adb
    "AdbExecutor",
    "emulator_serial",
    # avd
    "AvdCatalog",
    "VirtualDevice",
    "parse_avd_list",
    # config_editor
    "EmulatorConfigEditor",
    # lifecycle
    "EmulatorLifecycle",
    "LaunchArgument",
    # ports
    "PortRegistry",
]
