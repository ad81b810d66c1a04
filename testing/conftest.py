"""测试公共 fixtures。"""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from avdctl.infra import AndroidConfig, CommandResult, CommandRunner
from avdctl.sdk import SdkLocator
from avdctl.types import OSType


@pytest.fixture
def tmp_yaml(tmp_path: Path):
    """创建临时 YAML 文件的工厂 fixture。"""

    def _factory(name: str, content: str) -> Path:
        p = tmp_path / name
        p.write_text(content, encoding="utf-8")
        return p

    return _factory


# ── SDK / 进程替身 ──


@pytest.fixture
def sdk_root(tmp_path: Path) -> Path:
    """带有标准目录结构的假 SDK 根目录。"""
    root = tmp_path / "sdk"
    (root / "platform-tools").mkdir(parents=True)
    (root / "emulator").mkdir()
    (root / "cmdline-tools" / "latest" / "bin").mkdir(parents=True)
    return root


@pytest.fixture
def avd_home(tmp_path: Path) -> Path:
    home = tmp_path / "avd"
    home.mkdir()
    return home


@pytest.fixture
def locator(sdk_root: Path, avd_home: Path) -> SdkLocator:
    env = {
        "ANDROID_HOME": str(sdk_root),
        "ANDROID_AVD_HOME": str(avd_home),
        "JAVA_HOME": "/opt/java",
    }
    return SdkLocator(environ=env, os_type=OSType.linux)


@pytest.fixture
def runner() -> MagicMock:
    """``CommandRunner`` 的 mock；默认所有命令成功且无输出。"""
    mock = MagicMock(spec=CommandRunner)
    mock.run.return_value = CommandResult(args=[], stdout="", stderr="", returncode=0)
    return mock


@pytest.fixture
def fast_config() -> AndroidConfig:
    """去掉所有等待间隔的配置，避免测试中真实 sleep。"""
    return AndroidConfig(
        adb_retry_delay=0,
        boot_poll_interval=0,
        power_off_settle_delay=0,
        device_readiness_wait_time=0.2,
    )


@pytest.fixture
def result():
    """构造 ``CommandResult`` 的工厂 fixture。"""

    def _factory(stdout: str = "", stderr: str = "") -> CommandResult:
        return CommandResult(args=[], stdout=stdout, stderr=stderr, returncode=0)

    return _factory
