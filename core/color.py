"""
Color — 归一化 RGBA 浮点颜色值类型

- 分量范围 [0, 1]，但运算过程中允许越界 (误差扩散会产生溢出)
- 只有 to_rgba8() 时才会钳位
- 距离计算中 alpha 分量加权，避免透明与不透明条目在 RGB 上"看起来很近"
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

# alpha 差值在距离中的权重
ALPHA_WEIGHT = 2.0

# 用于 numpy 批量距离计算的通道权重
CHANNEL_WEIGHTS = np.array([1.0, 1.0, 1.0, ALPHA_WEIGHT], dtype=np.float64)


@dataclass(frozen=True)
class Color:
    """不可变 RGBA 颜色，所有运算返回新实例"""
    r: float = 0.0
    g: float = 0.0
    b: float = 0.0
    a: float = 1.0

    # ── 具名构造 ────────────────────────────────────────────────

    @classmethod
    def from_rgba8(cls, r: int, g: int, b: int, a: int = 255) -> "Color":
        """从 0-255 的字节分量构造"""
        return cls(r / 255.0, g / 255.0, b / 255.0, a / 255.0)

    @classmethod
    def from_sequence(cls, values: Sequence[float]) -> "Color":
        """从 (r, g, b) 或 (r, g, b, a) 序列构造，缺省 alpha 为 1"""
        if len(values) == 3:
            return cls(float(values[0]), float(values[1]), float(values[2]))
        if len(values) == 4:
            return cls(float(values[0]), float(values[1]), float(values[2]), float(values[3]))
        raise ValueError(f"Color needs 3 or 4 components, got {len(values)}")

    # ── 转换 ────────────────────────────────────────────────────

    def to_tuple(self) -> Tuple[float, float, float, float]:
        return (self.r, self.g, self.b, self.a)

    def to_array(self) -> np.ndarray:
        return np.array(self.to_tuple(), dtype=np.float64)

    def to_rgba8(self) -> Tuple[int, int, int, int]:
        """钳位到 [0, 255] 的整数分量"""
        return tuple(int(round(min(max(c, 0.0), 1.0) * 255.0)) for c in self.to_tuple())

    def with_alpha(self, a: float = 1.0) -> "Color":
        return Color(self.r, self.g, self.b, a)

    # ── 运算 ────────────────────────────────────────────────────

    @staticmethod
    def distance(a: "Color", b: "Color") -> float:
        """RGB 欧氏距离，alpha 差值乘以 ALPHA_WEIGHT"""
        return float(np.sqrt(
            (b.r - a.r) ** 2
            + (b.g - a.g) ** 2
            + (b.b - a.b) ** 2
            + ((b.a - a.a) * ALPHA_WEIGHT) ** 2
        ))

    @staticmethod
    def add(a: "Color", b: "Color") -> "Color":
        return Color(a.r + b.r, a.g + b.g, a.b + b.b, a.a + b.a)

    @staticmethod
    def sub(a: "Color", b: "Color") -> "Color":
        return Color(a.r - b.r, a.g - b.g, a.b - b.b, a.a - b.a)

    @staticmethod
    def mul(a: "Color", k: float) -> "Color":
        return Color(a.r * k, a.g * k, a.b * k, a.a * k)

    @staticmethod
    def div(a: "Color", k: float) -> "Color":
        return Color.mul(a, 1.0 / k)

    def __add__(self, other: "Color") -> "Color":
        return Color.add(self, other)

    def __sub__(self, other: "Color") -> "Color":
        return Color.sub(self, other)

    def __mul__(self, k: float) -> "Color":
        return Color.mul(self, k)

    __rmul__ = __mul__

    def __truediv__(self, k: float) -> "Color":
        return Color.div(self, k)
