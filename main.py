#!/usr/bin/env python3
"""
MapForge — 图像 → Minecraft 地图画转换器

入口点：加载配置、解析命令行参数、运行 Map Art 管线。
命令行参数覆盖 config/settings.yaml 中的同名设置。
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import fields
from pathlib import Path
from typing import List, Optional

# 确保项目根目录在 sys.path
PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


def setup_logging(level: str = "INFO") -> None:
    """配置日志系统"""
    log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=log_format,
        datefmt="%H:%M:%S",
    )
    # 降低第三方库日志级别
    for lib in ("PIL", "urllib3"):
        logging.getLogger(lib).setLevel(logging.WARNING)


def load_config(path: Optional[str | Path] = None) -> dict:
    """加载配置文件"""
    import yaml

    config_path = Path(path) if path else PROJECT_ROOT / "config" / "settings.yaml"
    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    return {}


def build_parser() -> argparse.ArgumentParser:
    from core.dithering import kernel_names
    from core.image_data import RESIZE_METHODS

    parser = argparse.ArgumentParser(
        prog="mapforge",
        description="Convert an image into Minecraft map items and a Litematica schematic.",
    )
    parser.add_argument("input_path", help="source image")
    parser.add_argument("-o", "--output-dir", dest="output_dir", help="output directory")
    parser.add_argument("--config", help="settings YAML (default: config/settings.yaml)")
    parser.add_argument("--name", help="schematic name")
    parser.add_argument("--author", help="schematic author")
    parser.add_argument("--description", help="schematic description")
    parser.add_argument("--width", dest="resize_width", type=int, help="resize width in pixels")
    parser.add_argument("--height", dest="resize_height", type=int, help="resize height in pixels")
    parser.add_argument("--resize-method", dest="resize_method", choices=RESIZE_METHODS)
    parser.add_argument("--dither", choices=list(kernel_names()), help="dither kernel")
    parser.add_argument("--dither-spread", dest="dither_spread", type=float)
    parser.add_argument("--include-alpha", dest="include_alpha", action="store_true", default=None,
                        help="diffuse alpha error as well")
    parser.add_argument("--mode", dest="build_mode", choices=("flat", "staircase"))
    parser.add_argument("--support-block", dest="support_block")
    parser.add_argument("--start-id", dest="start_map_id", type=int, help="first map id")
    parser.add_argument("--x-center", dest="x_center", type=int)
    parser.add_argument("--z-center", dest="z_center", type=int)
    parser.add_argument("--no-maps", dest="export_maps", action="store_false", default=None)
    parser.add_argument("--no-litematic", dest="export_litematic", action="store_false", default=None)
    parser.add_argument("-j", "--workers", type=int, help="worker processes (0 = auto)")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def merge_config(settings: dict, args: argparse.Namespace):
    """settings.yaml 的 map_art / compute 节 + 命令行参数 → MapArtPipelineConfig"""
    from pipelines.pipeline_map_art import MapArtPipelineConfig

    known = {f.name for f in fields(MapArtPipelineConfig)}
    values = {k: v for k, v in (settings.get("map_art") or {}).items() if k in known}

    compute = settings.get("compute") or {}
    if "workers" in compute:
        values["workers"] = compute["workers"]
    if "cpu_reserved_cores" in compute:
        values["reserved_cores"] = compute["cpu_reserved_cores"]

    for key, value in vars(args).items():
        if key in known and value is not None:
            values[key] = value
    return MapArtPipelineConfig(**values)


def main(argv: Optional[List[str]] = None) -> int:
    """主入口"""
    args = build_parser().parse_args(argv)
    settings = load_config(args.config)

    level = "DEBUG" if args.verbose else (settings.get("logging") or {}).get("level", "INFO")
    setup_logging(level)
    logger = logging.getLogger("MapForge")
    logger.info("Starting MapForge...")
    logger.info("Config loaded: %d sections", len(settings))

    from pipelines.pipeline_map_art import PipelineMapArt

    config = merge_config(settings, args)
    result = PipelineMapArt().run(config)

    if not result.success:
        for err in result.errors:
            logger.error("%s", err)
        return 1

    for warning in result.warnings:
        logger.warning("%s", warning)
    logger.info("Maps: %d file(s), schematic: %s", len(result.map_paths), result.litematic_path or "-")
    return 0


if __name__ == "__main__":
    sys.exit(main())
