"""
地图物品导出器 — Minecraft 地图数据文件 (data/map_<id>.dat)

map_<id>.dat 结构:
    (root, 空名 Compound)
    ├── DataVersion (Int)
    └── data (Compound)
        ├── unlimitedTracking (Byte)
        ├── frames (List<Compound>, 空)
        ├── banners (List<Compound>, 空)
        ├── trackingPosition (Byte)
        ├── zCenter (Int)
        ├── locked (Byte)
        ├── xCenter (Int)
        ├── dimension (String)
        ├── scale (Byte)
        └── colors (Byte[16384])   每像素一个地图颜色 ID

idcounts.dat:
    DataVersion (Int), data: {map (Int) = 最后分配的地图 ID}
"""

from __future__ import annotations

import gzip
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from core.errors import UnsupportedArityError
from core.map_tiles import MAP_PIXELS, MapTile
from io_formats.nbt_encoder import (
    NBTEncoder, NBTTag,
    TAG_COMPOUND,
    nbt_byte, nbt_byte_array, nbt_compound, nbt_int, nbt_list, nbt_string,
)

logger = logging.getLogger(__name__)

# MC 1.20.2 data version
DEFAULT_DATA_VERSION = 3578
# 地图颜色以有符号字节存储，ID 上限 255
MAX_MAP_COLOR_ID = 255


@dataclass
class MapItemConfig:
    """地图物品元数据"""
    data_version: int = DEFAULT_DATA_VERSION
    dimension: str = "minecraft:overworld"
    x_center: int = 0
    z_center: int = 0
    scale: int = 0
    locked: bool = True
    tracking_position: bool = False
    unlimited_tracking: bool = False


def encode_colors(color_ids: np.ndarray) -> bytes:
    """
    校验并编码 128×128 地图颜色 ID。

    ID 0..255 按补码写入有符号字节 (128 → -128)。
    """
    ids = np.asarray(color_ids).reshape(-1)
    if ids.size != MAP_PIXELS:
        raise ValueError(f"Map colors must have {MAP_PIXELS} entries, got {ids.size}")
    if ids.size and (ids.min() < 0 or ids.max() > MAX_MAP_COLOR_ID):
        raise UnsupportedArityError(
            f"Map color ids must be within 0..{MAX_MAP_COLOR_ID}, got {ids.min()}..{ids.max()}"
        )
    return ids.astype(np.uint8).tobytes()


def map_item_nbt(color_ids: np.ndarray, config: Optional[MapItemConfig] = None) -> Dict[str, NBTTag]:
    """构建单个地图物品文档"""
    config = config or MapItemConfig()
    return {
        "DataVersion": nbt_int(config.data_version),
        "data": nbt_compound({
            "unlimitedTracking": nbt_byte(config.unlimited_tracking),
            "frames": nbt_list(TAG_COMPOUND, []),
            "banners": nbt_list(TAG_COMPOUND, []),
            "trackingPosition": nbt_byte(config.tracking_position),
            "zCenter": nbt_int(config.z_center),
            "locked": nbt_byte(config.locked),
            "xCenter": nbt_int(config.x_center),
            "dimension": nbt_string(config.dimension),
            "scale": nbt_byte(config.scale),
            "colors": nbt_byte_array(encode_colors(color_ids)),
        }),
    }


def idcounts_nbt(last_map_id: int, data_version: int = DEFAULT_DATA_VERSION) -> Dict[str, NBTTag]:
    return {
        "DataVersion": nbt_int(data_version),
        "data": nbt_compound({"map": nbt_int(last_map_id)}),
    }


def encode_map_tiles(tiles: Sequence[MapTile], config: Optional[MapItemConfig] = None) -> List[bytes]:
    """每个地图块编码为一份未压缩 NBT 文档"""
    return [NBTEncoder.encode_root(map_item_nbt(tile.color_ids, config)) for tile in tiles]


class MapExporter:
    """
    地图物品导出器

    Usage::

        exporter = MapExporter(MapItemConfig(x_center=64, z_center=64))
        paths = exporter.export(tiles, "world/data", start_id=0)
    """

    def __init__(
        self,
        config: Optional[MapItemConfig] = None,
        compress: Callable[[bytes], bytes] = gzip.compress,
    ) -> None:
        self.config = config or MapItemConfig()
        self.compress = compress

    def export(
        self,
        tiles: Sequence[MapTile],
        output_dir: str | Path,
        start_id: int = 0,
        write_idcounts: bool = True,
        progress_callback: Optional[Callable[[float, str], None]] = None,
    ) -> List[Path]:
        """
        写出 map_<id>.dat，ID 从 start_id 开始按块顺序递增。

        Returns
        -------
        List[Path]: 地图文件路径 (不含 idcounts.dat)
        """
        output_dir = Path(output_dir)

        def report(pct: float, msg: str) -> None:
            if progress_callback:
                progress_callback(pct, msg)

        if not tiles:
            raise ValueError("No map tiles to export")
        if start_id < 0:
            raise ValueError(f"Map id must be non-negative, got {start_id}")

        # 先全部编码，任何一块失败都不会留下半成品文件
        documents = encode_map_tiles(tiles, self.config)

        output_dir.mkdir(parents=True, exist_ok=True)
        paths: List[Path] = []
        for i, raw in enumerate(documents):
            map_id = start_id + i
            path = output_dir / f"map_{map_id}.dat"
            NBTEncoder.write_raw(raw, str(path), compress=self.compress)
            paths.append(path)
            report(100.0 * (i + 1) / len(documents), f"写入 {path.name}")

        if write_idcounts:
            last_id = start_id + len(documents) - 1
            raw = NBTEncoder.encode_root(idcounts_nbt(last_id, self.config.data_version))
            NBTEncoder.write_raw(raw, str(output_dir / "idcounts.dat"), compress=self.compress)

        logger.info("Exported %d map files to %s (ids %d..%d)",
                    len(paths), output_dir, start_id, start_id + len(paths) - 1)
        return paths
