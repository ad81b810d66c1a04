"""可比较的点分版本号。

``Version`` 对缺失分量有两套语义：

- :meth:`Version.same` 把缺失分量视为通配（``29`` 与 ``29.1`` 相同）；
- :meth:`Version.compare` / :meth:`Version.same_or_newer` 把缺失分量视为 0。
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from avdctl.infra import VersionParseError

# 可选前缀：``v30`` 或 ``android-30`` 一类的字母限定词
_QUALIFIER = re.compile(r"^(?:[A-Za-z][A-Za-z_]*-|[vV](?=\d))")
_SEGMENT = re.compile(r"^\d+$")


@dataclass(frozen=True, slots=True, eq=False)
class Version:
    """``major[.minor[.patch]]`` 版本号。

    相等与哈希都按补 0 后的分量计算，与大小比较一致：``Version(29) == Version(29, 0)``。
    """

    major: int
    minor: int | None = None
    patch: int | None = None

    @classmethod
    def parse(cls, raw: str) -> Version:
        """从字符串解析版本号。

        Raises
        ------
        VersionParseError
            分段不是纯数字，或分段数不在 1–3 之间。
        """
        text = _QUALIFIER.sub("", str(raw).strip(), count=1)
        parts = text.split(".")
        if not 1 <= len(parts) <= 3 or not all(_SEGMENT.match(p) for p in parts):
            raise VersionParseError(raw)
        numbers = [int(p) for p in parts]
        numbers += [None] * (3 - len(numbers))
        return cls(*numbers)

    def _key(self) -> tuple[int, int, int]:
        return (self.major, self.minor or 0, self.patch or 0)

    def compare(self, other: Version) -> int:
        """按分量逐级比较，缺失分量视为 0。返回 -1 / 0 / 1。"""
        a, b = self._key(), other._key()
        return (a > b) - (a < b)

    def same(self, other: Version) -> bool:
        """两边都存在的分量全部相等即视为相同。"""
        pairs = (
            (self.major, other.major),
            (self.minor, other.minor),
            (self.patch, other.patch),
        )
        return all(a == b for a, b in pairs if a is not None and b is not None)

    def same_or_newer(self, other: Version) -> bool:
        return self.compare(other) >= 0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __lt__(self, other: Version) -> bool:
        return self.compare(other) < 0

    def __le__(self, other: Version) -> bool:
        return self.compare(other) <= 0

    def __gt__(self, other: Version) -> bool:
        return self.compare(other) > 0

    def __ge__(self, other: Version) -> bool:
        return self.compare(other) >= 0

    def __str__(self) -> str:
        parts = [self.major, self.minor, self.patch]
        return ".".join(str(p) for p in parts if p is not None)
