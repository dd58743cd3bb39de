"""
MapTiler — 将整幅图像切分为 128×128 地图并逐块量化

- 地图网格: ceil(width / 128) × ceil(height / 128)
- 超出图像范围的像素视为全透明 (映射到 NONE)
- 每个地图块相互独立，可交给进程池并行量化
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import numpy as np
import psutil

from core.dithering import DitherEngine, Kernel
from core.image_data import FloatImage
from core.map_colors import MapPalette

logger = logging.getLogger(__name__)

MAP_SIZE = 128
MAP_PIXELS = MAP_SIZE * MAP_SIZE


@dataclass
class MapTile:
    """一个地图块的量化结果"""
    tile_x: int
    tile_y: int
    color_ids: np.ndarray    # (128, 128) 地图颜色 ID

    @property
    def name(self) -> str:
        return f"map_{self.tile_x}_{self.tile_y}"


def tile_grid(width: int, height: int) -> Tuple[int, int]:
    """(横向地图数, 纵向地图数)"""
    return math.ceil(width / MAP_SIZE), math.ceil(height / MAP_SIZE)


def usable_workers(reserved_cores: int = 2) -> int:
    """可用于并行量化的进程数 (总核数减去保留核数，至少 1)"""
    total = psutil.cpu_count(logical=True) or 1
    return max(1, total - min(reserved_cores, total - 1))


def _quantize_tile(args) -> MapTile:
    """进程池入口，必须是模块级函数"""
    tile_x, tile_y, section, map_palette, kernel, include_alpha = args
    paletted = DitherEngine().quantize(section, map_palette.palette, kernel, include_alpha)
    return MapTile(tile_x, tile_y, map_palette.to_map_ids(paletted.indices))


class MapTiler:
    """
    Usage::

        tiler = MapTiler(MapPalette(tones=STAIRCASE_TONES), kernel=FLOYD_STEINBERG)
        tiles = tiler.quantize_tiles(image, workers=4)
        for tile in tiles:
            tile.color_ids        # (128, 128)
    """

    def __init__(
        self,
        map_palette: Optional[MapPalette] = None,
        kernel: Optional[Kernel] = None,
        include_alpha: bool = False,
    ) -> None:
        self.map_palette = map_palette or MapPalette()
        self.kernel = kernel
        self.include_alpha = include_alpha

    def sections(self, image: FloatImage) -> List[Tuple[int, int, FloatImage]]:
        """按列优先 (tile_x 外层, tile_y 内层) 切出所有地图块"""
        cols, rows = tile_grid(image.width, image.height)
        result = []
        for tx in range(cols):
            for ty in range(rows):
                section = image.get_section(tx * MAP_SIZE, ty * MAP_SIZE, MAP_SIZE, MAP_SIZE)
                result.append((tx, ty, section))
        return result

    def quantize_tiles(
        self,
        image: FloatImage,
        workers: int = 1,
        progress_callback: Optional[Callable[[float, str], None]] = None,
    ) -> List[MapTile]:
        """
        量化所有地图块。

        workers > 1 时使用进程池；结果顺序与 sections() 一致。
        任一块失败则整个调用失败。
        """
        def report(pct: float, msg: str) -> None:
            if progress_callback:
                progress_callback(pct, msg)

        jobs = [
            (tx, ty, section, self.map_palette, self.kernel, self.include_alpha)
            for tx, ty, section in self.sections(image)
        ]
        cols, rows = tile_grid(image.width, image.height)
        logger.info("Quantizing %d map tiles (%dx%d) with %d worker(s)", len(jobs), cols, rows, workers)

        tiles: List[MapTile] = []
        if workers > 1 and len(jobs) > 1:
            with ProcessPoolExecutor(max_workers=min(workers, len(jobs))) as executor:
                for i, tile in enumerate(executor.map(_quantize_tile, jobs)):
                    tiles.append(tile)
                    report(100.0 * (i + 1) / len(jobs), f"量化地图 {tile.name}")
        else:
            for i, job in enumerate(jobs):
                tile = _quantize_tile(job)
                tiles.append(tile)
                report(100.0 * (i + 1) / len(jobs), f"量化地图 {tile.name}")

        return tiles
