"""avdctl 命令行入口。

用法
----
检查 SDK 环境::

    avdctl check

列出已安装的 SDK 包 / 已创建的 AVD::

    avdctl packages
    avdctl list

启动、停止、重启::

    avdctl start "Pixel XL" --writable
    avdctl stop 5572
    avdctl reboot 5572

以 root 挂载可写系统分区::

    avdctl remount Pixel_XL_API_30

创建 AVD（默认使用最新的受支持 API 级别）::

    avdctl create "My Pixel" --device pixel_xl --api-level 30
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence

from loguru import logger

from avdctl.emulator import EmulatorLifecycle
from avdctl.infra import (
    AvdCtlError,
    ConfigManager,
    PackageNotFoundError,
    UserConfig,
    setup_logger,
)
from avdctl.sdk import PackageInventory, SdkLocator
from avdctl.types import PackageKind


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="avdctl",
        description="Android SDK 与模拟器 (AVD) 管理工具",
    )
    parser.add_argument("--config", default=None, help="YAML 配置文件路径")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="日志级别（覆盖配置文件）",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("check", help="检查 SDK 与 Java 环境")
    sub.add_parser("packages", help="列出已安装的 SDK 包")
    sub.add_parser("list", help="列出已创建的 AVD")

    p_start = sub.add_parser("start", help="启动模拟器")
    p_start.add_argument("name", help="AVD 名称或显示名")
    p_start.add_argument("--writable", action="store_true", help="以可写系统模式启动")
    p_start.add_argument("--no-wait", action="store_true", help="不等待启动完成")

    p_stop = sub.add_parser("stop", help="关闭模拟器")
    p_stop.add_argument("port", type=int, help="控制台端口")

    p_reboot = sub.add_parser("reboot", help="重启模拟器")
    p_reboot.add_argument("port", type=int, help="控制台端口")

    p_remount = sub.add_parser("remount", help="以 root 挂载可写系统分区")
    p_remount.add_argument("name", help="AVD 名称或显示名")

    p_create = sub.add_parser("create", help="创建 AVD")
    p_create.add_argument("name", help="AVD 名称")
    p_create.add_argument("--device", required=True, help="设备配置，例如 pixel_xl")
    p_create.add_argument("--api-level", default=None, help="API 级别，默认取最新")

    return parser


def _run(args: argparse.Namespace, config: UserConfig) -> None:
    locator = SdkLocator(os_type=config.os_type)
    inventory = PackageInventory(locator, config.android)
    lifecycle = EmulatorLifecycle(locator, config.android)

    match args.command:
        case "check":
            print(f"cmdline-tools: {inventory.prerequisites_check()}")
            print(f"platform-tools: {inventory.fetch_platform_tools_location()}")
        case "packages":
            packages = inventory.fetch_installed()
            for kind in PackageKind:
                print(f"{kind.value}:")
                for pkg in packages.by_kind(kind):
                    print(f"  {pkg.path:<40} {pkg.version}")
        case "list":
            for device in lifecycle.fetch_emulators():
                print(f"{device.name:<30} API {device.api_level}  {device.target}")
        case "start":
            port = lifecycle.start_emulator(
                args.name, writable=args.writable, wait_for_boot=not args.no_wait
            )
            print(port)
        case "stop":
            lifecycle.stop_emulator(args.port)
        case "reboot":
            lifecycle.reboot_emulator(args.port)
        case "remount":
            lifecycle.ensure_device_is_not_google_play(args.name)
            print(lifecycle.mount_as_root_writable_system(args.name))
        case "create":
            if args.device not in inventory.supported_device_types():
                logger.warning("[AVD] 设备配置 {} 不在受支持列表中", args.device)
            image = inventory.fetch_supported_emulator_image_package(args.api_level)
            info = image.system_image
            if info is None:
                raise PackageNotFoundError(f"{image.sdk_path} 不是系统镜像包")
            print(
                lifecycle.create_new_virtual_device(
                    args.name, info.image, info.platform_api, args.device, info.abi
                )
            )


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        config = ConfigManager.load(args.config)
        level = args.log_level or config.log.level
        setup_logger(config.log.dir if config.log.to_file else None, level=level)
        _run(args, config)
    except AvdCtlError as exc:
        logger.error("{}", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
