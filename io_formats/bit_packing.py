"""
位打包长整型数组编解码 — Litematica BlockStates

每个索引使用 bits = max(ceil(log2(palette_size)), minimum_bits) 位，
在 64 位字内按低位在前 (LSB first) 依次排列。

两种边界策略:
    PADDED: 值不跨字，字尾放不下时跳到下一个字 (每字 floor(64/bits) 个)
    SPLIT:  值可跨越字边界，紧密排列 (共 ceil(n*bits/64) 个字)

输出为有符号 int64 (NBT TAG_Long_Array 的元素类型)。
"""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Iterable

import numpy as np

from core.errors import UnsupportedArityError

logger = logging.getLogger(__name__)

WORD_BITS = 64
_WORD_MASK = (1 << WORD_BITS) - 1


class PackingMode(str, Enum):
    PADDED = "padded"
    SPLIT = "split"


def bits_for_palette(palette_size: int, minimum_bits: int = 0) -> int:
    """表示 palette_size 个不同值所需的位数，不低于 minimum_bits，且至少 1 位"""
    if palette_size <= 0:
        raise ValueError(f"Palette size must be positive, got {palette_size}")
    needed = math.ceil(math.log2(palette_size)) if palette_size > 1 else 0
    return max(needed, minimum_bits, 1)


def _to_signed(word: int) -> int:
    return word - (1 << WORD_BITS) if word >= (1 << (WORD_BITS - 1)) else word


class BitPackedArrayCodec:
    """
    索引数组 ↔ long 数组

    Usage::

        codec = BitPackedArrayCodec(minimum_bits=4, mode=PackingMode.PADDED)
        longs = codec.pack(indices, palette_size=len(palette))
        back = codec.unpack(longs, count=len(indices), palette_size=len(palette))
    """

    def __init__(
        self,
        minimum_bits: int = 0,
        mode: PackingMode = PackingMode.PADDED,
        max_bits: int = 32,
    ) -> None:
        if not 1 <= max_bits <= WORD_BITS:
            raise ValueError(f"max_bits must be in 1..{WORD_BITS}, got {max_bits}")
        self.minimum_bits = minimum_bits
        self.mode = PackingMode(mode)
        self.max_bits = max_bits

    def bits_per_entry(self, palette_size: int) -> int:
        bits = bits_for_palette(palette_size, self.minimum_bits)
        if bits > self.max_bits:
            raise UnsupportedArityError(
                f"Palette of {palette_size} entries needs {bits} bits, format allows {self.max_bits}"
            )
        return bits

    def word_count(self, count: int, bits: int) -> int:
        if self.mode is PackingMode.PADDED:
            per_word = WORD_BITS // bits
            return -(-count // per_word)
        return -(-(count * bits) // WORD_BITS)

    # ── 打包 ────────────────────────────────────────────────────

    def pack(self, indices: Iterable[int], palette_size: int) -> np.ndarray:
        """
        Returns
        -------
        ndarray (n_longs,) int64
        """
        bits = self.bits_per_entry(palette_size)
        values = np.asarray(list(indices) if not isinstance(indices, np.ndarray) else indices, dtype=np.int64)
        if values.size and (values.min() < 0 or values.max() >= palette_size):
            raise ValueError(f"Index out of range for palette of {palette_size} entries")

        mask = (1 << bits) - 1
        words = [0] * self.word_count(values.size, bits)
        word_idx = 0
        bit_idx = 0

        for value in values.tolist():
            value &= mask
            if self.mode is PackingMode.PADDED:
                if bit_idx + bits > WORD_BITS:
                    word_idx += 1
                    bit_idx = 0
                words[word_idx] |= value << bit_idx
                bit_idx += bits
            else:
                words[word_idx] |= (value << bit_idx) & _WORD_MASK
                spill = bit_idx + bits - WORD_BITS
                if spill > 0:
                    # 高位溢出到下一个字
                    words[word_idx + 1] |= value >> (bits - spill)
                bit_idx += bits
                if bit_idx >= WORD_BITS:
                    word_idx += 1
                    bit_idx -= WORD_BITS

        logger.debug("Packed %d entries (%d bits, %s) into %d longs",
                     values.size, bits, self.mode.value, len(words))
        return np.array([_to_signed(w) for w in words], dtype=np.int64)

    # ── 解包 ────────────────────────────────────────────────────

    def unpack(self, longs: Iterable[int], count: int, palette_size: int) -> np.ndarray:
        """pack() 的逆操作，返回 (count,) uint32"""
        bits = self.bits_per_entry(palette_size)
        words = [int(w) & _WORD_MASK for w in (longs.tolist() if isinstance(longs, np.ndarray) else longs)]
        expected = self.word_count(count, bits)
        if len(words) < expected:
            raise ValueError(f"Need {expected} longs for {count} entries, got {len(words)}")

        mask = (1 << bits) - 1
        out = np.zeros(count, dtype=np.uint32)

        if self.mode is PackingMode.PADDED:
            per_word = WORD_BITS // bits
            for i in range(count):
                word = words[i // per_word]
                out[i] = (word >> ((i % per_word) * bits)) & mask
        else:
            for i in range(count):
                start = i * bits
                word_idx, bit_idx = divmod(start, WORD_BITS)
                value = words[word_idx] >> bit_idx
                if bit_idx + bits > WORD_BITS:
                    value |= words[word_idx + 1] << (WORD_BITS - bit_idx)
                out[i] = value & mask
        return out
