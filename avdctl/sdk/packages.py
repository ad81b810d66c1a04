"""``sdkmanager --list`` 输出解析。

输出格式（节选）::

    Installed packages:
      Path                                        | Version | Description                    | Location
      -------                                     | ------- | -------                        | -------
      build-tools;30.0.3                          | 30.0.3  | Android SDK Build-Tools 30.0.3 | build-tools/30.0.3/
      platforms;android-30                        | 3       | Android SDK Platform 30        | platforms/android-30/
      system-images;android-30;google_apis;x86_64 | 9       | Google APIs Intel x86_64 Atom  | system-images/android-30/google_apis/x86_64/

    Available Packages:
      ...

只解析 ``Installed packages`` 段；格式不符或版本无法解析的行直接跳过。
"""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from avdctl.infra import VersionParseError
from avdctl.sdk.version import Version
from avdctl.types import PackageKind

_INSTALLED_HEADING = "installed packages:"
_SECTION_END_HEADINGS = ("available packages:", "available updates:")


@dataclass(frozen=True, slots=True)
class SystemImageInfo:
    """系统镜像包路径分解结果：``<platform_api>;<image>;<abi>``。"""

    platform_api: str
    image: str
    abi: str


@dataclass(frozen=True, slots=True)
class AndroidPackage:
    """已安装的单个 SDK 包。

    Attributes
    ----------
    kind:
        包类别。
    path:
        去掉类别前缀后的包路径，例如 ``android-30``、
        ``android-30;google_apis;x86_64``、``30.0.3``。
    version:
        平台 / 镜像包取自 API 级别，构建工具取自路径。
    description:
        sdkmanager 给出的描述。
    location:
        相对 SDK 根目录的安装位置，可能为空。
    system_image:
        仅系统镜像包有值。
    """

    kind: PackageKind
    path: str
    version: Version
    description: str
    location: str = ""
    system_image: SystemImageInfo | None = None

    @property
    def platform_api(self) -> str | None:
        """平台 API 名称（如 ``android-30``）；构建工具包为 ``None``。"""
        match self.kind:
            case PackageKind.platform:
                return self.path
            case PackageKind.system_image:
                return self.system_image.platform_api if self.system_image else None
            case _:
                return None

    @property
    def sdk_path(self) -> str:
        """完整的 sdkmanager 包路径。"""
        return self.kind.prefix + self.path


@dataclass
class AndroidPackages:
    """按类别索引的已安装包清单。"""

    platforms: list[AndroidPackage] = field(default_factory=list)
    system_images: list[AndroidPackage] = field(default_factory=list)
    build_tools: list[AndroidPackage] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.platforms or self.system_images or self.build_tools)

    def by_kind(self, kind: PackageKind) -> list[AndroidPackage]:
        match kind:
            case PackageKind.platform:
                return self.platforms
            case PackageKind.system_image:
                return self.system_images
            case PackageKind.build_tools:
                return self.build_tools

    def add(self, package: AndroidPackage) -> None:
        self.by_kind(package.kind).append(package)

    @classmethod
    def parse(cls, raw: str) -> AndroidPackages:
        """解析 ``sdkmanager --list`` 的原始输出。"""
        packages = cls()
        for line in _installed_section(raw):
            package = parse_package_line(line)
            if package is not None:
                packages.add(package)
        logger.debug(
            "[SDK] 解析到 {} 个平台包, {} 个系统镜像, {} 个构建工具",
            len(packages.platforms),
            len(packages.system_images),
            len(packages.build_tools),
        )
        return packages


def _installed_section(raw: str) -> list[str]:
    """截取 ``Installed packages:`` 段的数据行（跳过表头与分隔线）。"""
    lines = raw.splitlines()
    lowered = [line.strip().lower() for line in lines]
    start = 0
    if _INSTALLED_HEADING in lowered:
        start = lowered.index(_INSTALLED_HEADING) + 1

    section: list[str] = []
    for line, low in zip(lines[start:], lowered[start:]):
        if low in _SECTION_END_HEADINGS:
            break
        if not low or low.startswith("path") or low.startswith("---"):
            continue
        section.append(line)
    return section


def parse_package_line(line: str) -> AndroidPackage | None:
    """解析单行包记录；不是可识别的包时返回 ``None``。"""
    columns = [col.strip() for col in line.split("|")]
    if len(columns) < 3 or not columns[0]:
        return None

    sdk_path, _revision, description = columns[0], columns[1], columns[2]
    location = columns[3] if len(columns) > 3 else ""

    kind = next((k for k in PackageKind if sdk_path.startswith(k.prefix)), None)
    if kind is None:
        return None
    path = sdk_path[len(kind.prefix):]

    system_image = None
    try:
        match kind:
            case PackageKind.platform:
                if not path.startswith("android-"):
                    return None
                version = Version.parse(path)
            case PackageKind.system_image:
                parts = path.split(";")
                if len(parts) != 3 or not parts[0].startswith("android-"):
                    return None
                system_image = SystemImageInfo(*parts)
                version = Version.parse(parts[0])
            case PackageKind.build_tools:
                version = Version.parse(path)
    except VersionParseError:
        logger.debug("[SDK] 跳过无法解析版本的包: {}", sdk_path)
        return None

    return AndroidPackage(
        kind=kind,
        path=path,
        version=version,
        description=description,
        location=location,
        system_image=system_image,
    )
