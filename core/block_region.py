"""
Region — 带独立方块调色板的三维方块体

- 尺寸为负时平移位置使其归一化为非负
- 调色板索引 0 固定为 minecraft:air，零初始化的索引数组即合法
- 调色板条目按结构去重 (名称 + 属性)
- 索引公式 (局部坐标): x + (y + z * size_y) * size_x
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from core.errors import OutOfBoundsError

logger = logging.getLogger(__name__)

AIR_NAME = "minecraft:air"


@dataclass(frozen=True)
class Vec3:
    """整数三维向量"""
    x: int = 0
    y: int = 0
    z: int = 0

    @classmethod
    def from_sequence(cls, values: Sequence[int]) -> "Vec3":
        if len(values) != 3:
            raise ValueError(f"Vec3 needs 3 components, got {len(values)}")
        return cls(int(values[0]), int(values[1]), int(values[2]))

    def to_tuple(self) -> Tuple[int, int, int]:
        return (self.x, self.y, self.z)

    def __add__(self, other: "Vec3") -> "Vec3":
        return Vec3(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: "Vec3") -> "Vec3":
        return Vec3(self.x - other.x, self.y - other.y, self.z - other.z)


class BlockSpec:
    """
    方块状态: 名称 + 可选属性表

    properties=None 与 properties={} 视为不同 (前者编码时不写 Properties)。
    """
    __slots__ = ("name", "properties")

    def __init__(self, name: str, properties: Optional[Dict[str, str]] = None) -> None:
        self.name = name
        self.properties = dict(properties) if properties is not None else None

    @classmethod
    def parse(cls, text: str) -> "BlockSpec":
        """解析 "minecraft:oak_log[axis=y]" 形式的字符串"""
        if "[" not in text:
            return cls(text)
        if not text.endswith("]"):
            raise ValueError(f"Malformed block state: {text}")
        name, _, props_str = text[:-1].partition("[")
        props: Dict[str, str] = {}
        for part in filter(None, props_str.split(",")):
            key, sep, value = part.partition("=")
            if not sep:
                raise ValueError(f"Malformed block property '{part}' in {text}")
            props[key.strip()] = value.strip()
        return cls(name, props)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BlockSpec):
            return NotImplemented
        return self.name == other.name and self.properties == other.properties

    def __hash__(self) -> int:
        props = tuple(sorted(self.properties.items())) if self.properties is not None else None
        return hash((self.name, props))

    def __str__(self) -> str:
        if not self.properties:
            return self.name
        props = ",".join(f"{k}={v}" for k, v in self.properties.items())
        return f"{self.name}[{props}]"

    def __repr__(self) -> str:
        return f"BlockSpec({self.name!r}, {self.properties!r})"


AIR = BlockSpec(AIR_NAME)


class Region:
    """
    Litematica 区域

    Usage::

        region = Region(Vec3(0, 0, 0), Vec3(16, 4, 16))
        region.set(Vec3(1, 0, 2), BlockSpec("minecraft:stone"))
        region.get(Vec3(1, 0, 2))        # -> BlockSpec('minecraft:stone', None)
    """

    def __init__(self, pos: Vec3, size: Vec3) -> None:
        px, py, pz = pos.to_tuple()
        sx, sy, sz = size.to_tuple()
        # 负尺寸: 位置向负方向平移，尺寸取绝对值
        if sx < 0:
            sx = -sx
            px -= sx
        if sy < 0:
            sy = -sy
            py -= sy
        if sz < 0:
            sz = -sz
            pz -= sz

        self.pos = Vec3(px, py, pz)
        self.size = Vec3(sx, sy, sz)
        self._palette: List[BlockSpec] = [AIR]
        self._lookup: Dict[BlockSpec, int] = {AIR: 0}
        self._indices = np.zeros(sx * sy * sz, dtype=np.uint32)

    # ── 属性 ────────────────────────────────────────────────────

    @property
    def palette(self) -> List[BlockSpec]:
        return list(self._palette)

    @property
    def indices(self) -> np.ndarray:
        """只读视图，长度恒等于 volume"""
        view = self._indices.view()
        view.flags.writeable = False
        return view

    @property
    def volume(self) -> int:
        return self.size.x * self.size.y * self.size.z

    @property
    def block_count(self) -> int:
        """非空气方块数量"""
        return int(np.count_nonzero(self._indices))

    @property
    def end(self) -> Vec3:
        """不包含的终点 pos + size"""
        return self.pos + self.size

    # ── 读写 ────────────────────────────────────────────────────

    def contains_pos(self, pos: Vec3) -> bool:
        return (
            self.pos.x <= pos.x < self.pos.x + self.size.x
            and self.pos.y <= pos.y < self.pos.y + self.size.y
            and self.pos.z <= pos.z < self.pos.z + self.size.z
        )

    def local_index(self, x: int, y: int, z: int) -> int:
        """局部坐标 → 扁平索引"""
        return x + (y + z * self.size.y) * self.size.x

    def _index_of(self, pos: Vec3) -> int:
        if not self.contains_pos(pos):
            raise OutOfBoundsError(
                f"Position {pos.to_tuple()} outside region {self.pos.to_tuple()} + {self.size.to_tuple()}"
            )
        local = pos - self.pos
        return self.local_index(local.x, local.y, local.z)

    def palette_index(self, block: BlockSpec) -> int:
        """查找或插入调色板条目"""
        idx = self._lookup.get(block)
        if idx is None:
            idx = len(self._palette)
            self._palette.append(block)
            self._lookup[block] = idx
        return idx

    def set(self, pos: Vec3, block: BlockSpec) -> None:
        self._indices[self._index_of(pos)] = self.palette_index(block)

    def get(self, pos: Vec3) -> BlockSpec:
        return self._palette[int(self._indices[self._index_of(pos)])]

    def iter_scan_order(self) -> Iterator[int]:
        """按 x → y → z (z 最内层) 顺序产出调色板索引，供位打包使用"""
        for x in range(self.size.x):
            for y in range(self.size.y):
                for z in range(self.size.z):
                    yield int(self._indices[self.local_index(x, y, z)])

    def scan_order_indices(self) -> np.ndarray:
        """iter_scan_order() 的向量化版本"""
        sx, sy, sz = self.size.to_tuple()
        # 扁平索引按 (z, y, x) 排列，转置成 (x, y, z) 后展平
        grid = self._indices.reshape(sz, sy, sx)
        return np.ascontiguousarray(grid.transpose(2, 1, 0)).reshape(-1)

    @classmethod
    def from_parts(cls, pos: Vec3, size: Vec3, palette: List[BlockSpec], indices: np.ndarray) -> "Region":
        """由已解码的调色板与扁平索引重建 (导入器使用)"""
        region = cls(pos, size)
        if len(indices) != region.volume:
            raise ValueError(f"Index array has {len(indices)} entries, expected {region.volume}")
        if not palette or palette[0] != AIR:
            logger.warning("Region palette does not start with air; entry 0 is treated as empty")
        region._palette = list(palette)
        region._lookup = {}
        for i, block in enumerate(region._palette):
            region._lookup.setdefault(block, i)
        region._indices = np.asarray(indices, dtype=np.uint32).copy()
        return region
