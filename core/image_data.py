"""
图像缓冲区 — FloatImage (RGBA 浮点) 与 PalettedImage (调色板索引)

两者都实现 ImageBuffer 协议: get / set / clear_alpha / to_bytes。
像素按行优先存储，原点在左上角，数组形状为 (height, width[, 4])。
"""

from __future__ import annotations

import logging
from typing import Protocol

import numpy as np
from PIL import Image

from core.color import Color
from core.errors import InvalidDimensionsError, OutOfBoundsError
from core.palette import Palette

logger = logging.getLogger(__name__)

RESIZE_METHODS = ("stretch", "contain", "cover")


class ImageBuffer(Protocol):
    """图像缓冲区的公共接口"""
    width: int
    height: int

    def get(self, x: int, y: int) -> Color: ...

    def set(self, x: int, y: int, color: Color) -> None: ...

    def clear_alpha(self) -> None: ...

    def to_bytes(self) -> bytes: ...


def _check_dimensions(width, height) -> None:
    if (
        not isinstance(width, (int, np.integer))
        or not isinstance(height, (int, np.integer))
        or isinstance(width, bool)
        or isinstance(height, bool)
        or width <= 0
        or height <= 0
    ):
        raise InvalidDimensionsError(f"Image invalid size: {width}x{height}")


class FloatImage:
    """
    RGBA 浮点图像，分量归一化到 [0, 1]

    Usage::

        img = FloatImage.from_pil(Image.open("photo.png"))
        tile = img.get_section(0, 0, 128, 128)
        c = tile.get(3, 4)
    """

    def __init__(self, data: np.ndarray) -> None:
        data = np.asarray(data)
        if data.ndim != 3 or data.shape[2] != 4:
            raise InvalidDimensionsError(f"Image data must have shape (H, W, 4), got {data.shape}")
        _check_dimensions(int(data.shape[1]), int(data.shape[0]))
        self.data = data.astype(np.float64, copy=False)
        self.height = int(data.shape[0])
        self.width = int(data.shape[1])

    # ── 具名构造 ────────────────────────────────────────────────

    @classmethod
    def empty(cls, width: int, height: int) -> "FloatImage":
        """全透明 (全零) 图像"""
        _check_dimensions(width, height)
        return cls(np.zeros((height, width, 4), dtype=np.float64))

    @classmethod
    def from_rgba8(cls, pixels: bytes | np.ndarray, width: int, height: int) -> "FloatImage":
        """从 RGBA 字节缓冲区构造 (长度必须为 width*height*4)"""
        _check_dimensions(width, height)
        arr = np.frombuffer(bytes(pixels), dtype=np.uint8) if isinstance(pixels, (bytes, bytearray)) \
            else np.asarray(pixels, dtype=np.uint8)
        if arr.size != width * height * 4:
            raise InvalidDimensionsError(
                f"Pixel buffer has {arr.size} values, expected {width * height * 4}"
            )
        return cls(arr.reshape(height, width, 4).astype(np.float64) / 255.0)

    @classmethod
    def from_pil(cls, image: Image.Image) -> "FloatImage":
        """从 PIL Image 构造 (自动转 RGBA)"""
        rgba = np.asarray(image.convert("RGBA"), dtype=np.uint8)
        return cls(rgba.astype(np.float64) / 255.0)

    # ── 像素访问 ────────────────────────────────────────────────

    def is_in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def get(self, x: int, y: int) -> Color:
        if not self.is_in_bounds(x, y):
            raise OutOfBoundsError(f"Cannot get ({x}, {y}) outside of {self.width}x{self.height} image")
        return Color.from_sequence(self.data[y, x])

    def set(self, x: int, y: int, color: Color) -> None:
        if not self.is_in_bounds(x, y):
            raise OutOfBoundsError(f"Cannot set ({x}, {y}) outside of {self.width}x{self.height} image")
        self.data[y, x] = color.to_tuple()

    def clear_alpha(self) -> None:
        self.data[:, :, 3] = 1.0

    def to_bytes(self) -> bytes:
        """钳位后导出为 RGBA 字节"""
        return (np.clip(self.data, 0.0, 1.0) * 255.0).round().astype(np.uint8).tobytes()

    def to_pil(self) -> Image.Image:
        return Image.frombytes("RGBA", (self.width, self.height), self.to_bytes())

    def copy(self) -> "FloatImage":
        return FloatImage(self.data.copy())

    # ── 裁剪 / 缩放 ─────────────────────────────────────────────

    def get_section(self, x: int, y: int, width: int, height: int) -> "FloatImage":
        """
        截取子矩形。超出图像范围的部分填充为透明黑 (0, 0, 0, 0)。
        """
        _check_dimensions(width, height)
        section = np.zeros((height, width, 4), dtype=np.float64)

        x0, y0 = max(x, 0), max(y, 0)
        x1, y1 = min(x + width, self.width), min(y + height, self.height)
        if x0 < x1 and y0 < y1:
            section[y0 - y:y1 - y, x0 - x:x1 - x] = self.data[y0:y1, x0:x1]
        return FloatImage(section)

    def resize(self, width: int, height: int, method: str = "contain") -> "FloatImage":
        """
        使用 Pillow 缩放到 width × height。

        method:
            stretch: 拉伸填满
            contain: 等比缩放并居中，空白处透明
            cover:   等比缩放覆盖整个画布，居中裁剪
        """
        _check_dimensions(width, height)
        if method not in RESIZE_METHODS:
            raise ValueError(f"Unknown resize method: {method}")

        src = self.to_pil()
        if method == "stretch":
            return FloatImage.from_pil(src.resize((width, height), Image.LANCZOS))

        pick = min if method == "contain" else max
        ratio = pick(width / self.width, height / self.height)
        new_w = max(1, round(self.width * ratio))
        new_h = max(1, round(self.height * ratio))
        scaled = src.resize((new_w, new_h), Image.LANCZOS)

        canvas = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        canvas.paste(scaled, ((width - new_w) // 2, (height - new_h) // 2))
        logger.debug("Resized %dx%d -> %dx%d (%s)", self.width, self.height, width, height, method)
        return FloatImage.from_pil(canvas)


class PalettedImage:
    """
    调色板索引图像 (IndexBuffer)

    indices 形状为 (height, width)，dtype uint32。
    """

    def __init__(self, palette: Palette, indices: np.ndarray) -> None:
        indices = np.asarray(indices)
        if indices.ndim != 2:
            raise InvalidDimensionsError(f"Index buffer must be 2D, got shape {indices.shape}")
        _check_dimensions(int(indices.shape[1]), int(indices.shape[0]))
        self.palette = palette
        self.indices = indices.astype(np.uint32, copy=False)
        self.height = int(indices.shape[0])
        self.width = int(indices.shape[1])

    @classmethod
    def empty(cls, palette: Palette, width: int, height: int) -> "PalettedImage":
        _check_dimensions(width, height)
        return cls(palette, np.zeros((height, width), dtype=np.uint32))

    def is_in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def get_index(self, x: int, y: int) -> int:
        if not self.is_in_bounds(x, y):
            raise OutOfBoundsError(f"Cannot get ({x}, {y}) outside of {self.width}x{self.height} image")
        return int(self.indices[y, x])

    def set_index(self, x: int, y: int, index: int) -> None:
        if not self.is_in_bounds(x, y):
            raise OutOfBoundsError(f"Cannot set ({x}, {y}) outside of {self.width}x{self.height} image")
        self.indices[y, x] = index

    def get(self, x: int, y: int) -> Color:
        return self.palette.get(self.get_index(x, y))

    def set(self, x: int, y: int, color: Color) -> None:
        self.set_index(x, y, self.palette.quantize(color))

    def clear_alpha(self) -> None:
        self.palette.clear_alpha()

    def to_bytes(self) -> bytes:
        """按调色板还原为 RGBA 字节 (用于预览)"""
        colors = self.palette.as_array()[self.indices.astype(np.int64)]
        return (np.clip(colors, 0.0, 1.0) * 255.0).round().astype(np.uint8).tobytes()
