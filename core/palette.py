"""
Palette — 有序颜色表与最近色量化

索引是下游唯一的身份标识：多个源颜色可能量化到同一索引，
而一个索引永远只对应一个颜色。

- quantize():       单色线性搜索 (误差扩散逐像素使用)
- quantize_many():  批量 KD-Tree 查找 (无抖动 / 有序抖动使用)
两者的平局规则一致：取索引最小的条目。
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

import numpy as np
from scipy.spatial import KDTree

from core.color import CHANNEL_WEIGHTS, Color
from core.errors import EmptyPaletteError

logger = logging.getLogger(__name__)

# 与最近距离相差不超过此值的条目视为等距
_TIE_EPSILON = 1e-12


class Palette:
    """
    有序调色板

    Usage::

        palette = Palette([Color(0, 0, 0), Color(1, 1, 1)])
        idx = palette.quantize(Color(0.9, 0.9, 0.9))    # -> 1
        color = palette.get(idx)
    """

    def __init__(self, colors: Optional[Iterable[Color]] = None) -> None:
        self._colors: List[Color] = list(colors) if colors is not None else []
        self._array: Optional[np.ndarray] = None
        self._tree: Optional[KDTree] = None
        self._tree_ids: Optional[np.ndarray] = None

    # ── 基本访问 ────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._colors)

    def __iter__(self):
        return iter(self._colors)

    @property
    def colors(self) -> List[Color]:
        return list(self._colors)

    def get(self, index: int) -> Color:
        return self._colors[index]

    def set(self, index: int, color: Color) -> None:
        self._colors[index] = color
        self._invalidate()

    def clear_alpha(self) -> None:
        """将所有条目的 alpha 设为 1"""
        self._colors = [c.with_alpha(1.0) for c in self._colors]
        self._invalidate()

    def as_array(self) -> np.ndarray:
        """(N, 4) float64 数组，按索引顺序"""
        if self._array is None:
            self._array = np.array([c.to_tuple() for c in self._colors], dtype=np.float64).reshape(-1, 4)
        return self._array

    # ── 量化 ────────────────────────────────────────────────────

    def quantize(self, color: Color) -> int:
        """返回最近条目的索引 (线性搜索，平局取最小索引)"""
        return self.quantize_array(color.to_array())

    def quantize_array(self, rgba: np.ndarray) -> int:
        """quantize() 的数组版本，rgba 为长度 4 的向量"""
        if not self._colors:
            raise EmptyPaletteError("Cannot quantize against an empty palette")
        diff = (self.as_array() - rgba) * CHANNEL_WEIGHTS
        # argmin 返回第一个最小值，即最小索引
        return int(np.argmin(np.einsum("ij,ij->i", diff, diff)))

    def quantize_many(self, rgba: np.ndarray) -> np.ndarray:
        """
        批量量化。

        Parameters
        ----------
        rgba : ndarray (M, 4)

        Returns
        -------
        indices : ndarray (M,) int64
        """
        if not self._colors:
            raise EmptyPaletteError("Cannot quantize against an empty palette")
        if self._tree is None:
            self._build_tree()

        points = np.asarray(rgba, dtype=np.float64).reshape(-1, 4) * CHANNEL_WEIGHTS
        dist, nearest = self._tree.query(points, k=1)
        result = self._tree_ids[nearest].astype(np.int64)
        if len(self._tree_ids) == 1:
            return result

        # 最近距离球内的全部条目都参与平局判定，取最小索引
        balls = self._tree.query_ball_point(points, dist + _TIE_EPSILON)
        for i, ball in enumerate(balls):
            if len(ball) > 1:
                result[i] = self._tree_ids[ball].min()
        return result

    # ── KD-Tree ─────────────────────────────────────────────────

    def _build_tree(self) -> None:
        """在 alpha 加权空间中构建 KD-Tree，重复颜色只保留最小索引"""
        weighted = self.as_array() * CHANNEL_WEIGHTS
        unique, first = np.unique(weighted, axis=0, return_index=True)
        self._tree = KDTree(unique)
        self._tree_ids = first.astype(np.int64)
        logger.debug("Palette KD-Tree built: %d entries (%d unique)", len(self._colors), len(unique))

    def _invalidate(self) -> None:
        self._array = None
        self._tree = None
        self._tree_ids = None
