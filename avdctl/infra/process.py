"""外部进程执行原语。

两种用法：

- :meth:`CommandRunner.run` — 同步执行并捕获输出；退出码非 0 或无法启动时抛出
  :class:`~avdctl.infra.exceptions.ToolInvocationError`。注意 adb 等工具的退出码并不可靠，
  调用方仍需检查输出文本。
- :meth:`CommandRunner.spawn_detached` — 启动与当前进程生命周期脱钩的长驻进程
  （模拟器本体），不保留句柄。
"""

from __future__ import annotations

import shlex
import subprocess
import sys
from collections.abc import Sequence
from dataclasses import dataclass

from loguru import logger

from .exceptions import ToolInvocationError


@dataclass(frozen=True, slots=True)
class CommandResult:
    """一次命令执行的结果。"""

    args: list[str]
    stdout: str
    stderr: str
    returncode: int


def format_command(args: Sequence[str]) -> str:
    """将参数列表拼成便于日志阅读的命令行。"""
    return " ".join(shlex.quote(str(a)) for a in args)


class CommandRunner:
    """基于 :mod:`subprocess` 的命令执行器。

    Parameters
    ----------
    timeout:
        单条命令的默认超时（秒），``None`` 表示不限。
    """

    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout

    def run(
        self,
        args: Sequence[str],
        input: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """执行命令并返回输出。

        Raises
        ------
        ToolInvocationError
            退出码非 0、超时或可执行文件不存在。
        """
        argv = [str(a) for a in args]
        cmdline = format_command(argv)
        logger.debug("[Process] 执行: {}", cmdline)
        try:
            proc = subprocess.run(
                argv,
                input=input,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout if timeout is not None else self._timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise ToolInvocationError(
                cmdline,
                stdout=_as_text(exc.stdout),
                stderr=_as_text(exc.stderr),
                reason=f"timed out after {exc.timeout}s",
            ) from exc
        except FileNotFoundError as exc:
            # 与 shell 的 "command not found" 对齐
            raise ToolInvocationError(cmdline, returncode=127, reason=str(exc)) from exc
        except OSError as exc:
            raise ToolInvocationError(cmdline, reason=str(exc)) from exc

        if proc.returncode != 0:
            raise ToolInvocationError(
                cmdline,
                stdout=proc.stdout or "",
                stderr=proc.stderr or "",
                returncode=proc.returncode,
            )
        return CommandResult(
            args=argv,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
            returncode=proc.returncode,
        )

    def spawn_detached(self, args: Sequence[str]) -> None:
        """启动脱离当前进程的长驻进程，丢弃其全部输出。

        Raises
        ------
        ToolInvocationError
            进程无法启动。
        """
        argv = [str(a) for a in args]
        cmdline = format_command(argv)
        kwargs: dict = {
            "stdin": subprocess.DEVNULL,
            "stdout": subprocess.DEVNULL,
            "stderr": subprocess.DEVNULL,
        }
        if sys.platform.startswith("win"):
            kwargs["creationflags"] = (
                subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP
            )
        else:
            kwargs["start_new_session"] = True
        logger.debug("[Process] 后台启动: {}", cmdline)
        try:
            subprocess.Popen(argv, **kwargs)
        except OSError as exc:
            raise ToolInvocationError(cmdline, reason=str(exc)) from exc


def _as_text(data: str | bytes | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data
