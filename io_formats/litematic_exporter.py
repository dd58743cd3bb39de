"""
Litematic 导出器 — Litematica 结构文件 (.litematic)

参考: https://github.com/maruohon/litematica/tree/pre-rewrite/fabric/1.20.x

Litematic 结构 (Version 6):
    (root, 空名 Compound)
    ├── Metadata (Compound)
    │   ├── EnclosingSize: {x, y, z} (Int)
    │   ├── Author / Description / Name (String)
    │   ├── RegionCount (Int)
    │   ├── TimeCreated / TimeModified (Long, ms)
    │   └── TotalBlocks / TotalVolume (Int)
    ├── Regions (Compound)
    │   └── <name> (Compound)
    │       ├── Position / Size: {x, y, z} (Int)
    │       ├── BlockStatePalette: List<Compound{Name, Properties?}>
    │       ├── Entities / PendingBlockTicks / PendingFluidTicks / TileEntities: List<Compound> (空)
    │       └── BlockStates: Long[] (位打包索引)
    ├── MinecraftDataVersion (Int)
    ├── SubVersion (Int)
    └── Version (Int)
"""

from __future__ import annotations

import gzip
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

from core.block_region import BlockSpec, Region, Vec3
from io_formats.bit_packing import BitPackedArrayCodec, PackingMode
from io_formats.nbt_encoder import (
    NBTEncoder, NBTTag,
    TAG_COMPOUND,
    nbt_compound, nbt_int, nbt_list, nbt_long, nbt_long_array, nbt_string,
)

logger = logging.getLogger(__name__)

# MC 1.20.2 data version
DEFAULT_DATA_VERSION = 3578
LITEMATIC_VERSION = 6
LITEMATIC_SUB_VERSION = 1
# Version 6 的 BlockStates 每项至少 4 位，且不跨 long
MIN_BITS_PER_ENTRY = 4


@dataclass
class LitematicConfig:
    """Litematic 导出配置"""
    data_version: int = DEFAULT_DATA_VERSION
    version: int = LITEMATIC_VERSION
    sub_version: int = LITEMATIC_SUB_VERSION
    minimum_bits: int = MIN_BITS_PER_ENTRY
    packing_mode: PackingMode = PackingMode.PADDED

    def codec(self) -> BitPackedArrayCodec:
        return BitPackedArrayCodec(minimum_bits=self.minimum_bits, mode=self.packing_mode)


def _vec_tag(v: Vec3) -> NBTTag:
    return nbt_compound({"x": nbt_int(v.x), "y": nbt_int(v.y), "z": nbt_int(v.z)})


def block_to_nbt(block: BlockSpec) -> NBTTag:
    """BlockSpec → {Name, Properties?}"""
    tags: Dict[str, NBTTag] = {"Name": nbt_string(block.name)}
    if block.properties is not None:
        tags["Properties"] = nbt_compound({k: nbt_string(v) for k, v in block.properties.items()})
    return nbt_compound(tags)


def region_to_nbt(region: Region, codec: BitPackedArrayCodec) -> NBTTag:
    """编码单个区域，BlockStates 按 x → y → z 扫描顺序打包"""
    palette = region.palette
    block_states = codec.pack(region.scan_order_indices(), palette_size=len(palette))

    return nbt_compound({
        "Position": _vec_tag(region.pos),
        "Size": _vec_tag(region.size),
        "BlockStatePalette": nbt_list(TAG_COMPOUND, [block_to_nbt(b) for b in palette]),
        "Entities": nbt_list(TAG_COMPOUND, []),
        "PendingBlockTicks": nbt_list(TAG_COMPOUND, []),
        "PendingFluidTicks": nbt_list(TAG_COMPOUND, []),
        "TileEntities": nbt_list(TAG_COMPOUND, []),
        "BlockStates": nbt_long_array(block_states),
    })


class LitematicDocument:
    """
    一组命名区域 + 元数据

    Usage::

        doc = LitematicDocument(author="me", name="Map art")
        doc.add_region("map_0_0", region)
        raw = doc.encode()                  # 未压缩 NBT 字节
    """

    def __init__(
        self,
        author: str = "",
        name: str = "Unnamed",
        description: str = "",
        config: Optional[LitematicConfig] = None,
    ) -> None:
        self.author = author
        self.name = name
        self.description = description
        self.config = config or LitematicConfig()
        self.regions: Dict[str, Region] = {}

    def add_region(self, name: str, region: Region) -> None:
        if name in self.regions:
            raise ValueError(f"Duplicate region name: {name}")
        self.regions[name] = region

    # ── 统计 ────────────────────────────────────────────────────

    @property
    def total_blocks(self) -> int:
        return sum(r.block_count for r in self.regions.values())

    @property
    def total_volume(self) -> int:
        return sum(r.volume for r in self.regions.values())

    def enclosing_bounds(self) -> Tuple[Vec3, Vec3]:
        """所有区域的包围盒 (min, size)"""
        if not self.regions:
            return Vec3(), Vec3()
        regions = list(self.regions.values())
        lo = Vec3(
            min(r.pos.x for r in regions),
            min(r.pos.y for r in regions),
            min(r.pos.z for r in regions),
        )
        hi = Vec3(
            max(r.end.x for r in regions),
            max(r.end.y for r in regions),
            max(r.end.z for r in regions),
        )
        return lo, hi - lo

    # ── 编码 ────────────────────────────────────────────────────

    def to_nbt(self, timestamp_ms: Optional[int] = None) -> Dict[str, NBTTag]:
        if timestamp_ms is None:
            timestamp_ms = int(time.time() * 1000)
        codec = self.config.codec()
        _, enclosing = self.enclosing_bounds()

        metadata = {
            "EnclosingSize": _vec_tag(enclosing),
            "Author": nbt_string(self.author),
            "Description": nbt_string(self.description),
            "Name": nbt_string(self.name),
            "RegionCount": nbt_int(len(self.regions)),
            "TimeCreated": nbt_long(timestamp_ms),
            "TimeModified": nbt_long(timestamp_ms),
            "TotalBlocks": nbt_int(self.total_blocks),
            "TotalVolume": nbt_int(self.total_volume),
        }

        return {
            "Metadata": nbt_compound(metadata),
            "Regions": nbt_compound({
                name: region_to_nbt(region, codec) for name, region in self.regions.items()
            }),
            "MinecraftDataVersion": nbt_int(self.config.data_version),
            "SubVersion": nbt_int(self.config.sub_version),
            "Version": nbt_int(self.config.version),
        }

    def encode(self, timestamp_ms: Optional[int] = None) -> bytes:
        return NBTEncoder.encode_root(self.to_nbt(timestamp_ms))


class LitematicExporter:
    """
    Litematic 导出器

    Usage::

        exporter = LitematicExporter()
        exporter.export(document, "build.litematic")
    """

    def __init__(self, compress: Callable[[bytes], bytes] = gzip.compress) -> None:
        self.compress = compress

    def export(
        self,
        document: LitematicDocument,
        output_path: str | Path,
        progress_callback: Optional[Callable[[float, str], None]] = None,
        encoded: Optional[bytes] = None,
    ) -> Path:
        """
        编码并写出 .litematic 文件。

        encoded 为 document.encode() 的预先结果时跳过编码，
        便于调用方在写出任何文件之前完成全部编码。
        """
        output_path = Path(output_path)

        def report(pct: float, msg: str) -> None:
            if progress_callback:
                progress_callback(pct, msg)

        if not document.regions:
            raise ValueError("Empty schematic, nothing to export")

        if encoded is None:
            report(0.0, "编码 Litematic…")
            raw = document.encode()
        else:
            raw = encoded

        report(80.0, "写入文件…")
        output_path.parent.mkdir(parents=True, exist_ok=True)
        NBTEncoder.write_raw(raw, str(output_path), compress=self.compress)

        logger.info("Exported Litematic: %s (%d regions, %d blocks)",
                    output_path.name, len(document.regions), document.total_blocks)
        report(100.0, f"导出完成: {output_path.name}")
        return output_path
