"""
Map Art 管线 — 图像 → 地图物品 + Litematica 结构

流程:
  加载图像 (Pillow)
  → (可选) 缩放
  → 切分 128×128 地图块并抖动量化
  → 构建方块区域 (flat / staircase)
  → 导出 map_<id>.dat + idcounts.dat
  → 导出 .litematic
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from PIL import Image

from core.dithering import get_kernel
from core.image_data import FloatImage
from core.map_builder import MapArtBuilder
from core.map_colors import FLAT_TONES, STAIRCASE_TONES, MapPalette
from core.map_tiles import MapTiler, tile_grid, usable_workers
from io_formats.litematic_exporter import DEFAULT_DATA_VERSION, LitematicConfig, LitematicDocument, LitematicExporter
from io_formats.map_exporter import MapExporter, MapItemConfig

logger = logging.getLogger(__name__)


@dataclass
class MapArtPipelineConfig:
    """Map Art 管线配置"""
    input_path: str = ""
    output_dir: str = "output"
    # 元数据
    name: str = "Map Art"
    author: str = ""
    description: str = ""
    # 缩放 (任一为 None 时保持原尺寸)
    resize_width: Optional[int] = None
    resize_height: Optional[int] = None
    resize_method: str = "contain"
    # 量化
    dither: str = "floyd_steinberg"
    dither_spread: float = 0.125
    include_alpha: bool = False
    # 建造
    build_mode: str = "staircase"
    support_block: str = "minecraft:stone"
    # 地图物品
    export_maps: bool = True
    start_map_id: int = 0
    x_center: int = 0
    z_center: int = 0
    dimension: str = "minecraft:overworld"
    # Litematic
    export_litematic: bool = True
    data_version: int = DEFAULT_DATA_VERSION
    # 并行 (0 = 按 CPU 核数自动)
    workers: int = 0
    reserved_cores: int = 2


@dataclass
class MapArtPipelineResult:
    """Map Art 管线结果"""
    success: bool = True
    image_size: Tuple[int, int] = (0, 0)
    tile_grid: Tuple[int, int] = (0, 0)
    map_paths: List[str] = field(default_factory=list)
    litematic_path: str = ""
    total_blocks: int = 0
    elapsed_sec: float = 0.0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _safe_filename(name: str) -> str:
    cleaned = re.sub(r"[^\w\-. ]+", "_", name).strip()
    return cleaned or "map_art"


class PipelineMapArt:
    """
    图像 → Minecraft 地图画转换管线

    Usage::

        pipeline = PipelineMapArt()
        result = pipeline.run(MapArtPipelineConfig(
            input_path="photo.png",
            output_dir="out",
            resize_width=256, resize_height=256,
        ))
    """

    def __init__(self) -> None:
        self.exporter = LitematicExporter()
        # 中间结果
        self.current_image: Optional[FloatImage] = None
        self.current_document: Optional[LitematicDocument] = None

    def run(
        self,
        config: MapArtPipelineConfig,
        progress_callback: Optional[Callable[[float, str], None]] = None,
    ) -> MapArtPipelineResult:
        """执行 Map Art 管线"""
        t0 = time.perf_counter()
        result = MapArtPipelineResult()

        def report(pct: float, msg: str) -> None:
            if progress_callback:
                progress_callback(pct, msg)

        try:
            if config.build_mode not in ("flat", "staircase"):
                raise ValueError(f"Unknown build mode: {config.build_mode}")
            if not config.export_maps and not config.export_litematic:
                raise ValueError("Nothing to export: both maps and litematic are disabled")

            # ── Step 1: 加载图像 ──
            report(0.0, "加载图像…")
            with Image.open(config.input_path) as src:
                image = FloatImage.from_pil(src)
            logger.info("Image loaded: %s (%dx%d)", config.input_path, image.width, image.height)

            # ── Step 2: 缩放 ──
            if config.resize_width and config.resize_height:
                report(5.0, "缩放图像…")
                image = image.resize(config.resize_width, config.resize_height, config.resize_method)
            elif config.resize_width or config.resize_height:
                result.warnings.append("Both resize_width and resize_height are required; resize skipped")

            self.current_image = image
            result.image_size = (image.width, image.height)
            result.tile_grid = tile_grid(image.width, image.height)

            # ── Step 3: 量化 ──
            tones = FLAT_TONES if config.build_mode == "flat" else STAIRCASE_TONES
            map_palette = MapPalette(tones=tones)
            kernel = get_kernel(config.dither, config.dither_spread)
            workers = config.workers if config.workers > 0 else usable_workers(config.reserved_cores)

            report(10.0, "量化地图…")
            tiler = MapTiler(map_palette, kernel=kernel, include_alpha=config.include_alpha)
            tiles = tiler.quantize_tiles(
                image, workers=workers,
                progress_callback=lambda p, m: report(10 + p * 0.5, m),
            )

            # ── Step 4: 构建区域 ──
            # 先构建并编码完整文档再写任何文件
            document = None
            encoded = None
            if config.export_litematic:
                report(60.0, "构建方块区域…")
                builder = MapArtBuilder(map_palette, mode=config.build_mode, support_block=config.support_block)
                document = LitematicDocument(
                    author=config.author,
                    name=config.name,
                    description=config.description,
                    config=LitematicConfig(data_version=config.data_version),
                )
                for name, region in builder.build(tiles):
                    document.add_region(name, region)
                self.current_document = document
                result.total_blocks = document.total_blocks
                report(70.0, "编码 Litematic…")
                encoded = document.encode()

            output_dir = Path(config.output_dir)

            # ── Step 5: 地图物品 ──
            if config.export_maps:
                report(75.0, "导出地图…")
                map_exporter = MapExporter(MapItemConfig(
                    data_version=config.data_version,
                    dimension=config.dimension,
                    x_center=config.x_center,
                    z_center=config.z_center,
                ))
                paths = map_exporter.export(
                    tiles, output_dir / "data", start_id=config.start_map_id,
                    progress_callback=lambda p, m: report(75 + p * 0.1, m),
                )
                result.map_paths = [str(p) for p in paths]

            # ── Step 6: Litematic ──
            if document is not None:
                report(85.0, "导出 Litematic…")
                path = self.exporter.export(
                    document, output_dir / f"{_safe_filename(config.name)}.litematic",
                    progress_callback=lambda p, m: report(85 + p * 0.14, m),
                    encoded=encoded,
                )
                result.litematic_path = str(path)

            result.success = True
            elapsed = time.perf_counter() - t0
            result.elapsed_sec = elapsed

            report(100.0, f"完成! ({elapsed:.1f}s, {len(tiles)} 张地图)")
            logger.info("Map art pipeline: %dx%d → %d maps, %d blocks in %.1fs",
                        image.width, image.height, len(tiles), result.total_blocks, elapsed)

        except Exception as e:
            result.success = False
            result.errors.append(str(e))
            logger.error("Map art pipeline failed: %s", e, exc_info=True)
            report(100.0, f"错误: {e}")

        return result
