"""
MapArtBuilder — 地图颜色网格 → Litematica 区域

每个 128×128 地图块生成一个区域，局部 z = 0 为支撑行 (地图北侧的参照方块)，
像素行 r 位于 z = r + 1。

模式:
    flat:      所有方块在 y = 0，只能还原 NORMAL 色调
    staircase: 按色调决定相对北侧方块的高度差:
                DARK -1 / NORMAL 0 / LIGHT +1，每列平移使最低方块位于 y = 0
透明像素 (NONE) 留空，高度沿用上一个方块。
透明像素之后的第一个不透明像素与首行一样，北侧放一个支撑方块作为明暗参照。
"""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence, Tuple

import numpy as np

from core.block_region import BlockSpec, Region, Vec3
from core.map_colors import TRANSPARENT_BASE_ID, ColorTone, MapPalette, split_map_color_id
from core.map_tiles import MAP_SIZE, MapTile

logger = logging.getLogger(__name__)

BUILD_MODES = ("flat", "staircase")

_TONE_STEP = {
    ColorTone.DARK: -1,
    ColorTone.NORMAL: 0,
    ColorTone.LIGHT: 1,
}


class MapArtBuilder:
    """
    Usage::

        builder = MapArtBuilder(map_palette, mode="staircase")
        for name, region in builder.build(tiles):
            document.add_region(name, region)
    """

    def __init__(
        self,
        map_palette: MapPalette,
        mode: str = "flat",
        support_block: str = "minecraft:stone",
    ) -> None:
        if mode not in BUILD_MODES:
            raise ValueError(f"Unknown build mode: {mode}")
        self.map_palette = map_palette
        self.mode = mode
        self.support_block = BlockSpec.parse(support_block)
        self._block_cache: Dict[int, BlockSpec] = {}

    def build(self, tiles: Sequence[MapTile]) -> List[Tuple[str, Region]]:
        regions = [(tile.name, self.build_tile(tile)) for tile in tiles]
        logger.info("Built %d region(s) in %s mode", len(regions), self.mode)
        return regions

    def build_tile(self, tile: MapTile) -> Region:
        ids = np.asarray(tile.color_ids, dtype=np.int64)
        rows, cols = ids.shape
        heights = np.zeros((rows + 1, cols), dtype=np.int64)
        solid = np.zeros((rows + 1, cols), dtype=bool)
        support = np.zeros((rows + 1, cols), dtype=bool)

        for x in range(cols):
            self._column_heights(ids[:, x], heights[:, x], solid[:, x], support[:, x])

        height = int(heights[solid].max()) + 1 if solid.any() else 1
        origin = Vec3(tile.tile_x * MAP_SIZE, 0, tile.tile_y * (MAP_SIZE + 1))
        region = Region(origin, Vec3(cols, height, rows + 1))

        for x in range(cols):
            for z in range(rows + 1):
                if not solid[z, x]:
                    continue
                block = self.support_block if support[z, x] else self._block_for(int(ids[z - 1, x]))
                region.set(origin + Vec3(x, int(heights[z, x]), z), block)

        logger.debug("Region %s: size=%s, %d blocks", tile.name, region.size.to_tuple(), region.block_count)
        return region

    # ── 内部 ────────────────────────────────────────────────────

    def _column_heights(
        self,
        column: np.ndarray,
        heights: np.ndarray,
        solid: np.ndarray,
        support: np.ndarray,
    ) -> None:
        """计算一列的方块高度 (heights[0] 为支撑行)，结果原地写入"""
        current = 0

        for r, color_id in enumerate(column):
            base_id, tone = split_map_color_id(int(color_id))
            if base_id == TRANSPARENT_BASE_ID:
                heights[r + 1] = current
                continue

            # 北侧为空: 首行或透明像素之后
            if not solid[r]:
                heights[r] = current
                solid[r] = True
                support[r] = True

            if self.mode == "flat":
                if tone != ColorTone.NORMAL:
                    raise ValueError(f"Flat build cannot reproduce tone {tone.name} (map color {color_id})")
            else:
                if tone not in _TONE_STEP:
                    raise ValueError(f"Tone {tone.name} is not obtainable in a staircase build")
                current += _TONE_STEP[tone]

            heights[r + 1] = current
            solid[r + 1] = True

        placed = heights[solid]
        if placed.size:
            heights -= placed.min()

    def _block_for(self, color_id: int) -> BlockSpec:
        block = self._block_cache.get(color_id)
        if block is None:
            name = self.map_palette.block_for(color_id)
            if name is None:
                raise ValueError(f"Map color {color_id} has no block")
            block = BlockSpec.parse(name)
            self._block_cache[color_id] = block
        return block
