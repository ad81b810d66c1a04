"""已安装 SDK 包的查询与解析。

解析流程（:meth:`PackageInventory.fetch_supported_api_package`）
------------------------------------------------------------------
1. SDK 根目录未设置 → 失败
2. 获取包清单；为空 → 失败
3. 平台包按 ``min_supported_runtime`` 过滤；无剩余 → 失败
4. 仅保留存在匹配系统镜像的平台包（架构外层、镜像类型内层，首个命中即止）
5. 按版本降序稳定排序
6. 指定 ``api_level`` 时按 :meth:`Version.same` 精确过滤，否则取最新
"""

from __future__ import annotations

from loguru import logger

from avdctl.infra import (
    AndroidConfig,
    JavaHomeNotSetError,
    PackageNotFoundError,
    SdkManagerNotFoundError,
    ToolInvocationError,
    UnsupportedJavaError,
)
from avdctl.infra.process import CommandRunner
from avdctl.sdk.locator import SdkLocator
from avdctl.sdk.packages import AndroidPackage, AndroidPackages
from avdctl.sdk.version import Version

_JAVA_XML_BIND_MISSING = (
    "java.lang.NoClassDefFoundError: javax/xml/bind/annotation/XmlSchema"
)


class PackageInventory:
    """基于 ``sdkmanager`` 的已安装包查询。

    包清单缓存在 :attr:`SdkLocator.package_cache` 中，进程内只解析一次，
    直到调用 :meth:`SdkLocator.clear_caches`。
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

    @property
    def min_supported_runtime(self) -> Version:
        return Version.parse(self._config.min_supported_runtime)

    def supported_device_types(self) -> list[str]:
        return list(self._config.supported_device_types)

    # ── 前置检查 ──

    def fetch_cmdline_tools_location(self) -> str:
        """运行 ``sdkmanager --version`` 确认可用，返回命令行工具 bin 目录。"""
        self._locator.require_sdk_root()
        self._runner.run([self._locator.sdk_manager_command(), "--version"])
        return str(self._locator.cmdline_tools_bin())

    def fetch_platform_tools_location(self) -> str:
        """运行 ``adb --version`` 确认可用，返回 platform-tools 目录。"""
        self._locator.require_sdk_root()
        self._runner.run([self._locator.adb_command(), "--version"])
        return str(self._locator.platform_tools_dir())

    def prerequisites_check(self) -> str:
        """检查 sdkmanager 能否运行，失败时给出可操作的错误原因。

        Raises
        ------
        JavaHomeNotSetError
            JAVA_HOME 未设置。
        UnsupportedJavaError
            Java 版本过新，缺少 ``javax.xml.bind``。
        SdkManagerNotFoundError
            预期位置没有 sdkmanager（退出码 127）。
        """
        try:
            return self.fetch_cmdline_tools_location()
        except ToolInvocationError as exc:
            if not self._locator.is_java_home_set():
                raise JavaHomeNotSetError() from exc
            if _JAVA_XML_BIND_MISSING in exc.output or _JAVA_XML_BIND_MISSING in str(exc):
                raise UnsupportedJavaError() from exc
            if exc.returncode == 127:
                raise SdkManagerNotFoundError(
                    str(self._locator.sdk_manager_command())
                ) from exc
            raise

    # ── 包清单 ──

    def fetch_installed(self) -> AndroidPackages:
        """返回已安装的包清单（首次调用时执行 ``sdkmanager --list``）。"""
        self._locator.require_sdk_root()
        if self._locator.is_cached():
            return self._locator.package_cache

        result = self._runner.run([self._locator.sdk_manager_command(), "--list"])
        if result.stdout:
            self._locator.package_cache = AndroidPackages.parse(result.stdout)
        return self._locator.package_cache

    def fetch_installed_system_images(self) -> list[AndroidPackage]:
        return self.fetch_installed().system_images

    def package_with_required_emulator_images(
        self, package: AndroidPackage
    ) -> AndroidPackage | None:
        """查找与平台包匹配的、受支持的系统镜像包。"""
        images = self.fetch_installed_system_images()
        platform_api = package.platform_api
        for architecture in self._config.supported_architectures:
            for image in self._config.supported_images:
                wanted = f"{platform_api};{image};{architecture}"
                for img in images:
                    if wanted in img.path:
                        return img
        return None

    def fetch_all_available_api_packages(
        self, must_have_supported_emulator_images: bool
    ) -> list[AndroidPackage]:
        """返回满足最低运行时要求的平台包，按版本从新到旧排列。

        Raises
        ------
        PackageNotFoundError
            未安装任何包，或没有满足最低版本的平台包。
        """
        min_runtime = self.min_supported_runtime
        all_packages = self.fetch_installed()
        if all_packages.is_empty():
            raise PackageNotFoundError(
                "No Android API packages are installed. Minimum supported Android "
                f"API package version is {self._config.min_supported_runtime}"
            )

        matching = [
            pkg for pkg in all_packages.platforms if pkg.version.same_or_newer(min_runtime)
        ]
        if not matching:
            raise PackageNotFoundError(
                "Could not locate a supported Android API package. Minimum supported "
                f"Android API package version is {self._config.min_supported_runtime}"
            )

        if must_have_supported_emulator_images:
            results: list[AndroidPackage] = []
            for pkg in matching:
                try:
                    if self.package_with_required_emulator_images(pkg) is not None:
                        results.append(pkg)
                except ToolInvocationError as exc:
                    logger.warning(
                        "[SDK] 无法查找 {} 的模拟器镜像: {}", pkg.sdk_path, exc
                    )
        else:
            results = matching

        # sorted 是稳定排序，同版本保持原有相对顺序
        return sorted(results, key=lambda p: p.version, reverse=True)

    def fetch_supported_api_package(self, api_level: str | None = None) -> AndroidPackage:
        """返回受支持且已安装匹配模拟器镜像的平台包。

        Parameters
        ----------
        api_level:
            指定 API 级别；为 ``None`` 时返回最新的一个。
        """
        target = Version.parse(api_level) if api_level else None
        packages = self.fetch_all_available_api_packages(True)

        if target is not None:
            packages = [pkg for pkg in packages if pkg.version.same(target)]
            if not packages:
                raise PackageNotFoundError(
                    "Could not locate Android API package (with matching emulator "
                    f"images) for API level {api_level}."
                )

        if not packages:
            raise PackageNotFoundError(
                "Could not locate a supported Android API package with matching "
                "emulator images. Minimum supported Android API package version is "
                f"{self._config.min_supported_runtime}"
            )
        return packages[0]

    def fetch_supported_emulator_image_package(
        self, api_level: str | None = None
    ) -> AndroidPackage:
        """返回受支持的系统镜像包（Google APIs / default 等）。"""
        try:
            package = self.fetch_supported_api_package(api_level)
            image = self.package_with_required_emulator_images(package)
            if image is None:
                raise PackageNotFoundError(
                    "Could not locate an emulator image. Requires any one of these "
                    f"[{','.join(self._config.supported_images)}] for "
                    f"[{package.platform_api}]"
                )
            return image
        except (PackageNotFoundError, ToolInvocationError) as exc:
            logger.error("[SDK] Could not find android emulator packages.\n{}", exc)
            raise PackageNotFoundError(
                "Could not find android emulator packages."
            ) from exc
