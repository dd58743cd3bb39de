"""
MapForge 异常类型

所有错误都是调用方契约违例，同步抛出，不做重试或静默修正。
"""

from __future__ import annotations


class MapForgeError(Exception):
    """所有 MapForge 异常的基类"""


class InvalidDimensionsError(MapForgeError, ValueError):
    """宽高非正数或非整数"""


class OutOfBoundsError(MapForgeError, IndexError):
    """坐标超出图像 / 区域范围"""


class EmptyPaletteError(MapForgeError, ValueError):
    """对空调色板做量化"""


class AmbiguousEncodingError(MapForgeError, TypeError):
    """无法确定 NBT 标签类型 (空列表未声明类型、列表元素类型不一致、裸数值)"""


class UnsupportedArityError(MapForgeError, ValueError):
    """值超出目标格式的位宽 (调色板过大、数组元素越界)"""
