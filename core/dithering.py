"""
DitherEngine — 调色板量化与抖动

两类核:
1. 误差扩散 (DiffusionKernel): 行优先扫描，量化当前像素后把误差
   按权重 / 权重和 累加到邻域像素上
2. 有序抖动 (OrderedMatrix): 阈值矩阵平铺在图像上，
   按像素位置确定性地扰动颜色后再量化

输入图像不会被修改，误差累积在内部的 float64 工作副本上。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from core.image_data import FloatImage, PalettedImage
from core.palette import Palette

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiffusionKernel:
    """
    误差扩散矩阵。

    matrix 为整数权重网格，(offset_x, offset_y) 标记当前像素在网格中的位置。
    """
    name: str
    matrix: Tuple[Tuple[int, ...], ...]
    offset_x: int
    offset_y: int

    @property
    def divisor(self) -> int:
        return sum(sum(row) for row in self.matrix)

    def taps(self) -> List[Tuple[int, int, float]]:
        """非零权重的 (dx, dy, 归一化权重) 列表"""
        div = self.divisor
        result = []
        for j, row in enumerate(self.matrix):
            for i, weight in enumerate(row):
                if weight:
                    result.append((i - self.offset_x, j - self.offset_y, weight / div))
        return result


@dataclass(frozen=True)
class OrderedMatrix:
    """
    有序抖动阈值矩阵。

    矩阵值表示阈值的排名，不要求从 0 开始 (Bayer 为 1..M²)。
    """
    name: str
    matrix: Tuple[Tuple[int, ...], ...]
    spread: float = 0.125

    def thresholds(self) -> np.ndarray:
        """归一化阈值，范围 (-0.5, 0.5)"""
        m = np.array(self.matrix, dtype=np.float64)
        return (m - m.min() + 0.5) / m.size - 0.5


Kernel = Union[DiffusionKernel, OrderedMatrix]


# ── 内置误差扩散核 ──────────────────────────────────────────────

FLOYD_STEINBERG = DiffusionKernel(
    "floyd_steinberg",
    ((0, 0, 0, 7, 0),
     (0, 3, 5, 1, 0),
     (0, 0, 0, 0, 0)),
    offset_x=2, offset_y=0,
)

MIN_AVG_ERR = DiffusionKernel(
    "min_avg_err",
    ((0, 0, 0, 7, 5),
     (3, 5, 7, 5, 3),
     (1, 3, 5, 3, 1)),
    offset_x=2, offset_y=0,
)

BURKES = DiffusionKernel(
    "burkes",
    ((0, 0, 0, 8, 4),
     (2, 4, 8, 4, 2),
     (0, 0, 0, 0, 0)),
    offset_x=2, offset_y=0,
)

SIERRA_LITE = DiffusionKernel(
    "sierra_lite",
    ((0, 0, 0, 2, 0),
     (0, 1, 1, 0, 0),
     (0, 0, 0, 0, 0)),
    offset_x=2, offset_y=0,
)

STUCKI = DiffusionKernel(
    "stucki",
    ((0, 0, 0, 8, 4),
     (2, 4, 8, 4, 2),
     (1, 2, 4, 2, 1)),
    offset_x=2, offset_y=0,
)

ATKINSON = DiffusionKernel(
    "atkinson",
    ((0, 0, 0, 1, 1),
     (0, 1, 1, 1, 0),
     (0, 0, 1, 0, 0)),
    offset_x=2, offset_y=0,
)

ORDERED_3X3 = OrderedMatrix(
    "ordered3x3",
    ((1, 7, 4),
     (5, 8, 3),
     (6, 2, 9)),
)

DIFFUSION_KERNELS: Dict[str, DiffusionKernel] = {
    k.name: k for k in (FLOYD_STEINBERG, MIN_AVG_ERR, BURKES, SIERRA_LITE, STUCKI, ATKINSON)
}


# ── Bayer 矩阵 ──────────────────────────────────────────────────

def bayer_matrix(power: int) -> np.ndarray:
    """
    生成 2^power × 2^power 的 Bayer 矩阵，值为 1..M²。

    每次倍增: 原值 ×4，四个象限分别加上 0 / 2 / 3 / 1
        [ 4m+0  4m+2 ]
        [ 4m+3  4m+1 ]
    """
    if power <= 0 or power > 4:
        # 超过 16×16 没有意义
        raise ValueError(f"Bayer power must be in 1..4, got {power}")

    matrix = np.array([[0, 2], [3, 1]], dtype=np.int64)
    for _ in range(1, power):
        n = matrix.shape[0]
        up = np.zeros((n * 2, n * 2), dtype=np.int64)
        up[:n, :n] = 4 * matrix
        up[:n, n:] = 4 * matrix + 2
        up[n:, :n] = 4 * matrix + 3
        up[n:, n:] = 4 * matrix + 1
        matrix = up
    return matrix + 1


def make_bayer(power: int, spread: float = 0.125) -> OrderedMatrix:
    m = bayer_matrix(power)
    return OrderedMatrix(f"bayer{power}", tuple(tuple(int(v) for v in row) for row in m), spread)


def get_kernel(name: Optional[str], spread: float = 0.125) -> Optional[Kernel]:
    """
    按名称解析抖动核。

    "none" / None → 不抖动; "bayer1".."bayer4"、"ordered3x3" → 有序抖动;
    其余查 DIFFUSION_KERNELS。
    """
    if name is None or name == "none":
        return None
    if name in DIFFUSION_KERNELS:
        return DIFFUSION_KERNELS[name]
    if name == ORDERED_3X3.name:
        return OrderedMatrix(ORDERED_3X3.name, ORDERED_3X3.matrix, spread)
    if name.startswith("bayer") and name[5:].isdigit():
        return make_bayer(int(name[5:]), spread)
    raise ValueError(f"Unknown dither kernel: {name}")


# ── 抖动引擎 ────────────────────────────────────────────────────

class DitherEngine:
    """
    将 FloatImage 量化为 PalettedImage

    Usage::

        engine = DitherEngine()
        paletted = engine.quantize(image, palette, kernel=FLOYD_STEINBERG)
        paletted = engine.quantize(image, palette, kernel=make_bayer(3))
        paletted = engine.quantize(image, palette)        # 最近色，无抖动
    """

    def quantize(
        self,
        image: FloatImage,
        palette: Palette,
        kernel: Optional[Kernel] = None,
        include_alpha: bool = False,
    ) -> PalettedImage:
        if kernel is None:
            indices = self._quantize_direct(image, palette)
        elif isinstance(kernel, OrderedMatrix):
            indices = self._quantize_ordered(image, palette, kernel)
        elif isinstance(kernel, DiffusionKernel):
            indices = self._quantize_diffusion(image, palette, kernel, include_alpha)
        else:
            raise TypeError(f"Unsupported kernel type: {type(kernel)}")
        return PalettedImage(palette, indices)

    # ── 无抖动 ──────────────────────────────────────────────────

    @staticmethod
    def _quantize_direct(image: FloatImage, palette: Palette) -> np.ndarray:
        flat = image.data.reshape(-1, 4)
        return palette.quantize_many(flat).reshape(image.height, image.width).astype(np.uint32)

    # ── 有序抖动 ────────────────────────────────────────────────

    @staticmethod
    def _quantize_ordered(image: FloatImage, palette: Palette, kernel: OrderedMatrix) -> np.ndarray:
        thresholds = kernel.thresholds()
        th, tw = thresholds.shape
        reps = (-(-image.height // th), -(-image.width // tw))
        tiled = np.tile(thresholds, reps)[:image.height, :image.width]

        work = image.data.copy()
        # 只扰动 RGB，alpha 保持原值
        work[:, :, :3] += (tiled * kernel.spread)[:, :, np.newaxis]
        flat = work.reshape(-1, 4)
        return palette.quantize_many(flat).reshape(image.height, image.width).astype(np.uint32)

    # ── 误差扩散 ────────────────────────────────────────────────

    @staticmethod
    def _quantize_diffusion(
        image: FloatImage,
        palette: Palette,
        kernel: DiffusionKernel,
        include_alpha: bool,
    ) -> np.ndarray:
        height, width = image.height, image.width
        work = image.data.copy()
        colors = palette.as_array()
        taps = kernel.taps()
        indices = np.zeros((height, width), dtype=np.uint32)

        for y in range(height):
            for x in range(width):
                current = work[y, x]
                idx = palette.quantize_array(current)
                indices[y, x] = idx

                error = current - colors[idx]
                if not include_alpha:
                    error[3] = 0.0

                for dx, dy, weight in taps:
                    xx = x + dx
                    yy = y + dy
                    if 0 <= xx < width and 0 <= yy < height:
                        work[yy, xx] += error * weight

        logger.debug("Diffused %dx%d image with %s", width, height, kernel.name)
        return indices


def kernel_names() -> Sequence[str]:
    """所有可用抖动核名称 (用于配置校验 / CLI 帮助)"""
    return ["none", *DIFFUSION_KERNELS, ORDERED_3X3.name, "bayer1", "bayer2", "bayer3", "bayer4"]
