"""MapForge core — 颜色量化与方块区域计算包"""

from core.errors import (
    MapForgeError,
    InvalidDimensionsError,
    OutOfBoundsError,
    EmptyPaletteError,
    AmbiguousEncodingError,
    UnsupportedArityError,
)
from core.color import Color
from core.palette import Palette
from core.image_data import FloatImage, PalettedImage
from core.dithering import DitherEngine, DiffusionKernel, OrderedMatrix, get_kernel
from core.map_colors import ColorTone, MapPalette
from core.block_region import BlockSpec, Region, Vec3
from core.map_tiles import MapTile, MapTiler
from core.map_builder import MapArtBuilder

__all__ = [
    "MapForgeError",
    "InvalidDimensionsError",
    "OutOfBoundsError",
    "EmptyPaletteError",
    "AmbiguousEncodingError",
    "UnsupportedArityError",
    "Color",
    "Palette",
    "FloatImage",
    "PalettedImage",
    "DitherEngine",
    "DiffusionKernel",
    "OrderedMatrix",
    "get_kernel",
    "ColorTone",
    "MapPalette",
    "BlockSpec",
    "Region",
    "Vec3",
    "MapTile",
    "MapTiler",
    "MapArtBuilder",
]
