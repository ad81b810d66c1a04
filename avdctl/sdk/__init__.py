"""SDK 层 — 版本号、包清单解析、路径定位与包查询。

使用方式::

    from avdctl.sdk import PackageInventory, SdkLocator

    locator = SdkLocator()
    inventory = PackageInventory(locator)
    pkg = inventory.fetch_supported_api_package()
"""

from avdctl.sdk.inventory import PackageInventory
from avdctl.sdk.locator import SdkLocator, SdkRoot, convert_to_unix_path
from avdctl.sdk.packages import AndroidPackage, AndroidPackages, SystemImageInfo
from avdctl.sdk.version import Version

__all__ = [
    "AndroidPackage",
    "AndroidPackages",
    "PackageInventory",
    "SdkLocator",
    "SdkRoot",
    "SystemImageInfo",
    "Version",
    "convert_to_unix_path",
]
