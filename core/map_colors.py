"""
Minecraft 地图颜色表

参考: https://minecraft.wiki/w/Map_item_format#Base_colors

- 每个基础色 (base color) 在地图上有 4 种色调 (tone)
- 地图颜色 ID = base_id * 4 + tone
- 第 4 种色调 (LOWEST, 135) 在生存中无法获得，只为保持索引兼容
- base_id 0 (NONE) 为透明
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from core.color import Color
from core.palette import Palette

logger = logging.getLogger(__name__)

RGB = Tuple[int, int, int]


class ColorTone(IntEnum):
    """地图色调，值即 ID 的低两位"""
    DARK = 0
    NORMAL = 1
    LIGHT = 2
    LOWEST = 3  # 不可获得


TONE_MULTIPLIERS = {
    ColorTone.DARK: 180,
    ColorTone.NORMAL: 220,
    ColorTone.LIGHT: 255,
    ColorTone.LOWEST: 135,
}

ALL_TONES: Tuple[ColorTone, ...] = tuple(ColorTone)
# 阶梯式地图可以得到的色调
STAIRCASE_TONES: Tuple[ColorTone, ...] = (ColorTone.DARK, ColorTone.NORMAL, ColorTone.LIGHT)
# 平面地图只有 NORMAL
FLAT_TONES: Tuple[ColorTone, ...] = (ColorTone.NORMAL,)


@dataclass(frozen=True)
class MapColor:
    """一个基础色及其代表方块"""
    name: str
    rgb: RGB
    block: Optional[str]


# 每个基础色配一个代表方块 (扁平颜色→方块表，不做方块选择)
MAP_COLORS: List[MapColor] = [
    MapColor("NONE", (0, 0, 0), None),
    MapColor("GRASS", (127, 178, 56), "minecraft:grass_block"),
    MapColor("SAND", (247, 233, 163), "minecraft:sandstone"),
    MapColor("WOOL", (199, 199, 199), "minecraft:mushroom_stem"),
    MapColor("FIRE", (255, 0, 0), "minecraft:redstone_block"),
    MapColor("ICE", (160, 160, 255), "minecraft:packed_ice"),
    MapColor("METAL", (167, 167, 167), "minecraft:iron_block"),
    MapColor("PLANT", (0, 124, 0), "minecraft:oak_leaves[persistent=true]"),
    MapColor("SNOW", (255, 255, 255), "minecraft:white_wool"),
    MapColor("CLAY", (164, 168, 184), "minecraft:clay"),
    MapColor("DIRT", (151, 109, 77), "minecraft:dirt"),
    MapColor("STONE", (112, 112, 112), "minecraft:stone"),
    MapColor("WATER", (64, 64, 255), "minecraft:water"),
    MapColor("WOOD", (143, 119, 72), "minecraft:oak_planks"),
    MapColor("QUARTZ", (255, 252, 245), "minecraft:quartz_block"),
    MapColor("COLOR_ORANGE", (216, 127, 51), "minecraft:orange_wool"),
    MapColor("COLOR_MAGENTA", (178, 76, 216), "minecraft:magenta_wool"),
    MapColor("COLOR_LIGHT_BLUE", (102, 153, 216), "minecraft:light_blue_wool"),
    MapColor("COLOR_YELLOW", (229, 229, 51), "minecraft:yellow_wool"),
    MapColor("COLOR_LIGHT_GREEN", (127, 204, 25), "minecraft:lime_wool"),
    MapColor("COLOR_PINK", (242, 127, 165), "minecraft:pink_wool"),
    MapColor("COLOR_GRAY", (76, 76, 76), "minecraft:gray_wool"),
    MapColor("COLOR_LIGHT_GRAY", (153, 153, 153), "minecraft:light_gray_wool"),
    MapColor("COLOR_CYAN", (76, 127, 153), "minecraft:cyan_wool"),
    MapColor("COLOR_PURPLE", (127, 63, 178), "minecraft:purple_wool"),
    MapColor("COLOR_BLUE", (51, 76, 178), "minecraft:blue_wool"),
    MapColor("COLOR_BROWN", (102, 76, 51), "minecraft:brown_wool"),
    MapColor("COLOR_GREEN", (102, 127, 51), "minecraft:green_wool"),
    MapColor("COLOR_RED", (153, 51, 51), "minecraft:red_wool"),
    MapColor("COLOR_BLACK", (25, 25, 25), "minecraft:black_wool"),
    MapColor("GOLD", (250, 238, 77), "minecraft:gold_block"),
    MapColor("DIAMOND", (92, 219, 213), "minecraft:diamond_block"),
    MapColor("LAPIS", (74, 128, 255), "minecraft:lapis_block"),
    MapColor("EMERALD", (0, 217, 58), "minecraft:emerald_block"),
    MapColor("PODZOL", (129, 86, 49), "minecraft:podzol"),
    MapColor("NETHER", (112, 2, 0), "minecraft:netherrack"),
    MapColor("TERRACOTTA_WHITE", (209, 177, 161), "minecraft:white_terracotta"),
    MapColor("TERRACOTTA_ORANGE", (159, 82, 36), "minecraft:orange_terracotta"),
    MapColor("TERRACOTTA_MAGENTA", (149, 87, 108), "minecraft:magenta_terracotta"),
    MapColor("TERRACOTTA_LIGHT_BLUE", (112, 108, 138), "minecraft:light_blue_terracotta"),
    MapColor("TERRACOTTA_YELLOW", (186, 133, 36), "minecraft:yellow_terracotta"),
    MapColor("TERRACOTTA_LIGHT_GREEN", (103, 117, 53), "minecraft:lime_terracotta"),
    MapColor("TERRACOTTA_PINK", (160, 77, 78), "minecraft:pink_terracotta"),
    MapColor("TERRACOTTA_GRAY", (57, 41, 35), "minecraft:gray_terracotta"),
    MapColor("TERRACOTTA_LIGHT_GRAY", (135, 107, 98), "minecraft:light_gray_terracotta"),
    MapColor("TERRACOTTA_CYAN", (87, 92, 92), "minecraft:cyan_terracotta"),
    MapColor("TERRACOTTA_PURPLE", (122, 73, 88), "minecraft:purple_terracotta"),
    MapColor("TERRACOTTA_BLUE", (76, 62, 92), "minecraft:blue_terracotta"),
    MapColor("TERRACOTTA_BROWN", (76, 50, 35), "minecraft:brown_terracotta"),
    MapColor("TERRACOTTA_GREEN", (76, 82, 42), "minecraft:green_terracotta"),
    MapColor("TERRACOTTA_RED", (142, 60, 46), "minecraft:red_terracotta"),
    MapColor("TERRACOTTA_BLACK", (37, 22, 16), "minecraft:black_terracotta"),
    MapColor("CRIMSON_NYLIUM", (189, 48, 49), "minecraft:crimson_nylium"),
    MapColor("CRIMSON_STEM", (148, 63, 97), "minecraft:crimson_planks"),
    MapColor("CRIMSON_HYPHAE", (92, 25, 29), "minecraft:crimson_hyphae"),
    MapColor("WARPED_NYLIUM", (22, 126, 134), "minecraft:warped_nylium"),
    MapColor("WARPED_STEM", (58, 142, 140), "minecraft:warped_planks"),
    MapColor("WARPED_HYPHAE", (86, 44, 62), "minecraft:warped_hyphae"),
    MapColor("WARPED_WART_BLOCK", (20, 180, 133), "minecraft:warped_wart_block"),
    MapColor("DEEPSLATE", (100, 100, 100), "minecraft:deepslate"),
    MapColor("RAW_IRON", (216, 175, 147), "minecraft:raw_iron_block"),
    MapColor("GLOW_LICHEN", (127, 167, 150), "minecraft:verdant_froglight"),
]

TRANSPARENT_BASE_ID = 0


def evaluate_color(rgb: RGB, tone: ColorTone) -> RGB:
    """按色调计算地图上显示的颜色: floor(channel * multiplier / 255)"""
    m = TONE_MULTIPLIERS[tone]
    return (rgb[0] * m // 255, rgb[1] * m // 255, rgb[2] * m // 255)


def map_color_id(base_id: int, tone: ColorTone) -> int:
    return base_id * 4 + int(tone)


def split_map_color_id(color_id: int) -> Tuple[int, ColorTone]:
    """地图颜色 ID → (base_id, tone)"""
    return color_id // 4, ColorTone(color_id % 4)


class MapPalette:
    """
    Minecraft 地图调色板

    palette 只包含允许的色调; ids[i] 为 palette 第 i 个条目对应的地图颜色 ID，
    因此不同色调子集下 ID 始终与游戏兼容。

    Usage::

        mp = MapPalette()                           # 全部 4 种色调
        mp = MapPalette(tones=STAIRCASE_TONES)
        color_ids = mp.to_map_ids(paletted.indices)
    """

    def __init__(
        self,
        tones: Iterable[ColorTone] = ALL_TONES,
        colors: Sequence[MapColor] = MAP_COLORS,
    ) -> None:
        self.tones: Tuple[ColorTone, ...] = tuple(sorted(set(ColorTone(t) for t in tones)))
        if not self.tones:
            raise ValueError("MapPalette needs at least one tone")
        self.colors = list(colors)

        entries: List[Color] = []
        ids: List[int] = []
        for base_id, mc in enumerate(self.colors):
            for tone in ColorTone:
                if tone not in self.tones:
                    continue
                r, g, b = evaluate_color(mc.rgb, tone)
                alpha = 0 if base_id == TRANSPARENT_BASE_ID else 255
                entries.append(Color.from_rgba8(r, g, b, alpha))
                ids.append(map_color_id(base_id, tone))

        self.palette = Palette(entries)
        self.ids = np.array(ids, dtype=np.int64)
        logger.debug("MapPalette: %d entries, tones=%s", len(entries), [t.name for t in self.tones])

    def __len__(self) -> int:
        return len(self.palette)

    def to_map_ids(self, indices: np.ndarray) -> np.ndarray:
        """调色板索引 → 地图颜色 ID"""
        return self.ids[np.asarray(indices, dtype=np.int64)]

    def block_for(self, color_id: int) -> Optional[str]:
        """地图颜色 ID 对应的代表方块，透明返回 None"""
        base_id, _ = split_map_color_id(color_id)
        return self.colors[base_id].block
