"""ADB 命令执行与重试。

模拟器刚启动或负载较高时 adb 传输通道经常出现瞬时错误；adb 还会把错误写进 stdout、把成功信息写进 stderr。
因此每次执行后都把异常信息、stderr、stdout 拼接起来，
只要其中出现 ``error:``（不区分大小写）就视为失败并重试；
命令本身无法执行或退出码非 0 同样视为失败。

使用方式::

    from avdctl.emulator.adb import AdbExecutor

    adb = AdbExecutor(locator)
    out = adb.execute_with_retry("shell getprop ro.build.version.sdk", 5554)
"""

from __future__ import annotations

import shlex
import time
from collections.abc import Sequence

from loguru import logger

from avdctl.infra import AdbCommandError, AndroidConfig, ToolInvocationError
from avdctl.infra.process import CommandRunner
from avdctl.sdk.locator import SdkLocator

_ERROR_MARKER = "error:"


def emulator_serial(port: int) -> str:
    """控制台端口对应的 adb serial，例如 ``emulator-5554``。"""
    return f"emulator-{port}"


class AdbExecutor:
    """针对单个模拟器端口执行 adb 命令。

    Parameters
    ----------
    locator:
        用于定位 adb 可执行文件。
    config:
        提供默认重试次数与间隔。
    runner:
        进程执行器，测试中可替换为 mock。
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

    def build_args(self, command: str | Sequence[str], port: int) -> list[str]:
        """拼出 ``adb -s emulator-<port> <command>`` 参数列表。"""
        parts = shlex.split(command) if isinstance(command, str) else list(command)
        return [str(self._locator.adb_command()), "-s", emulator_serial(port), *parts]

    def execute_with_retry(
        self,
        command: str | Sequence[str],
        port: int,
        retries: int | None = None,
        retry_delay: float | None = None,
        timeout: float | None = None,
    ) -> str:
        """执行 adb 命令，失败时最多重试 ``retries`` 次。

        Parameters
        ----------
        command:
            adb 子命令，如 ``"shell getprop sys.boot_completed"``。
        port:
            模拟器控制台端口。
        retries:
            重试次数；``None`` 时取 ``AndroidConfig.adb_retry_attempts``。
        retry_delay:
            两次尝试之间的等待（秒）；``None`` 时取 ``AndroidConfig.adb_retry_delay``。
        timeout:
            单次 adb 调用的超时（秒）；超时按失败处理。``None`` 表示不限。

        Returns
        -------
        str
            成功那次执行的原始 stdout。

        Raises
        ------
        AdbCommandError
            全部 ``retries + 1`` 次尝试均失败，消息中包含每次尝试的输出。
        """
        if retries is None:
            retries = self._config.adb_retry_attempts
        if retry_delay is None:
            retry_delay = self._config.adb_retry_delay

        args = self.build_args(command, port)
        display = " ".join(args[3:])
        failures: list[str] = []
        total = retries + 1

        for attempt in range(1, total + 1):
            error_text, stdout, stderr = "", "", ""
            invocation_failed = False
            try:
                result = self._runner.run(args, timeout=timeout)
                stdout, stderr = result.stdout, result.stderr
            except ToolInvocationError as exc:
                invocation_failed = True
                error_text = str(exc)
                stdout, stderr = exc.stdout, exc.stderr

            aggregated = f"{error_text}\n{stderr}\n{stdout}"
            if not invocation_failed and _ERROR_MARKER not in aggregated.lower():
                if attempt > 1:
                    logger.debug("[ADB] {} 第 {} 次尝试成功", display, attempt)
                return stdout

            failures.append(aggregated.strip())
            remaining = total - attempt
            logger.warning(
                "[ADB] {} @ {} 执行失败，剩余重试 {} 次: {}",
                display,
                emulator_serial(port),
                remaining,
                aggregated.strip(),
            )
            if remaining > 0 and retry_delay > 0:
                time.sleep(retry_delay)

        message = (
            f"adb command '{display}' failed on {emulator_serial(port)} "
            f"after {total} attempt(s):\n" + "\n".join(failures)
        )
        raise AdbCommandError(display, message, total)

    def execute(
        self, command: str | Sequence[str], port: int, timeout: float | None = None
    ) -> str:
        """执行一次，不重试。"""
        return self.execute_with_retry(
            command, port, retries=0, retry_delay=0, timeout=timeout
        )
