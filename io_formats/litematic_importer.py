"""
Litematic 导入器 — 从 .litematic 文件读回 LitematicDocument

使用自带的 NBTDecoder 与 BitPackedArrayCodec，与导出器互为逆操作。
"""

from __future__ import annotations

import gzip
import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional

import numpy as np

from core.block_region import BlockSpec, Region, Vec3
from io_formats.bit_packing import BitPackedArrayCodec
from io_formats.litematic_exporter import LitematicConfig, LitematicDocument
from io_formats.nbt_encoder import TAG_COMPOUND, NBTDecoder, NBTTag

logger = logging.getLogger(__name__)


def _vec(tag: NBTTag) -> Vec3:
    v = tag.value
    return Vec3(int(v["x"].value), int(v["y"].value), int(v["z"].value))


def block_from_nbt(tag: NBTTag) -> BlockSpec:
    entry = tag.value
    properties = None
    if "Properties" in entry:
        properties = {k: str(v.value) for k, v in entry["Properties"].value.items()}
    return BlockSpec(entry["Name"].value, properties)


def region_from_nbt(tag: NBTTag, codec: BitPackedArrayCodec) -> Region:
    """解码单个区域; BlockStates 为 x → y → z 扫描顺序，需要还原为扁平索引"""
    entry = tag.value
    pos = _vec(entry["Position"])
    size = _vec(entry["Size"])

    elem_type, elements = entry["BlockStatePalette"].value
    if elem_type != TAG_COMPOUND and elements:
        raise ValueError(f"BlockStatePalette must be a list of compounds, got tag type {elem_type}")
    palette: List[BlockSpec] = [block_from_nbt(e) for e in elements]
    if not palette:
        raise ValueError("Region has an empty block palette")

    # 以规范化后的尺寸计算体积
    shell = Region(pos, size)
    sx, sy, sz = shell.size.to_tuple()
    scan = codec.unpack(entry["BlockStates"].value, count=shell.volume, palette_size=len(palette))
    if scan.size and int(scan.max()) >= len(palette):
        raise ValueError("BlockStates reference an index outside the palette")

    # (x, y, z) → (z, y, x)
    flat = np.ascontiguousarray(scan.reshape(sx, sy, sz).transpose(2, 1, 0)).reshape(-1)
    return Region.from_parts(shell.pos, shell.size, palette, flat)


class LitematicImporter:
    """
    从 .litematic 文件导入为 LitematicDocument。

    Usage::

        importer = LitematicImporter()
        doc = importer.load("my_build.litematic")
        for name, region in doc.regions.items():
            ...
    """

    def __init__(
        self,
        config: Optional[LitematicConfig] = None,
        decompress: Callable[[bytes], bytes] = gzip.decompress,
    ) -> None:
        self.config = config or LitematicConfig()
        self.decompress = decompress

    def loads(self, raw: bytes) -> LitematicDocument:
        """解码未压缩的 NBT 字节"""
        _, root = NBTDecoder.decode(raw)
        metadata: Dict[str, NBTTag] = root["Metadata"].value if "Metadata" in root else {}

        config = LitematicConfig(
            data_version=int(root["MinecraftDataVersion"].value),
            version=int(root["Version"].value),
            sub_version=int(root["SubVersion"].value) if "SubVersion" in root else self.config.sub_version,
            minimum_bits=self.config.minimum_bits,
            packing_mode=self.config.packing_mode,
        )
        if config.version != self.config.version:
            logger.warning("Litematic version %d differs from expected %d", config.version, self.config.version)

        doc = LitematicDocument(
            author=metadata["Author"].value if "Author" in metadata else "",
            name=metadata["Name"].value if "Name" in metadata else "Unnamed",
            description=metadata["Description"].value if "Description" in metadata else "",
            config=config,
        )
        codec = config.codec()
        for name, tag in root["Regions"].value.items():
            doc.add_region(name, region_from_nbt(tag, codec))
        return doc

    def load(
        self,
        path: str | Path,
        progress_callback: Optional[Callable[[float, str], None]] = None,
    ) -> LitematicDocument:
        """加载 .litematic → LitematicDocument"""
        path = Path(path)

        def report(pct: float, msg: str) -> None:
            if progress_callback:
                progress_callback(pct, msg)

        report(0.0, "加载 Litematic…")
        doc = self.loads(self.decompress(path.read_bytes()))

        logger.info("Imported Litematic: %s (%d blocks from %d regions)",
                    path.name, doc.total_blocks, len(doc.regions))
        report(100.0, f"导入完成: {doc.total_blocks} 方块")
        return doc
