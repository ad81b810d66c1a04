"""文件 / YAML / ini 工具函数。"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


def load_yaml(path: str | Path) -> dict[str, Any]:
    """加载 YAML 文件并返回字典。

    Parameters
    ----------
    path:
        YAML 文件路径。

    Returns
    -------
    dict[str, Any]
        解析后的字典，空文件返回 ``{}``。

    Raises
    ------
    FileNotFoundError
        文件不存在。
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"YAML 文件不存在: {path}")
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def save_yaml(data: dict[str, Any], path: str | Path) -> None:
    """将字典保存为 YAML 文件，父目录会自动创建。"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, allow_unicode=True, default_flow_style=False)


def parse_key_values(text: str) -> dict[str, str]:
    """解析 ``key=value`` 形式的文本（AVD ``config.ini``）。

    仅按第一个 ``=`` 切分；不含 ``=`` 的行被丢弃。只去掉键两侧的空白，值原样保留。
    """
    result: dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition("=")
        if not sep:
            continue
        result[key.strip()] = value
    return result


def dump_key_values(data: dict[str, str]) -> str:
    """按映射顺序序列化为 ``key=value`` 行。"""
    return "".join(f"{key}={value}\n" for key, value in data.items())
