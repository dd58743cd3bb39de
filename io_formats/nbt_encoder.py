"""
NBT 编码器 — Minecraft NBT 二进制格式编/解码

支持所有 NBT 标签类型:
TAG_End(0), TAG_Byte(1), TAG_Short(2), TAG_Int(3), TAG_Long(4),
TAG_Float(5), TAG_Double(6), TAG_Byte_Array(7), TAG_String(8),
TAG_List(9), TAG_Compound(10), TAG_Int_Array(11), TAG_Long_Array(12)

编码规则:
- 整数 / 浮点: 定宽大端
- 字符串: 2 字节大端字节长度 + UTF-8
- 数组: 4 字节大端元素个数 + 大端元素
- List: 1 字节元素类型 + 4 字节个数 + 元素负载 (无逐元素头)
- Compound: {类型}{名称长度}{名称}{负载} ... TAG_End
- 根: TAG_Compound + 名称 (文档为空名) + Compound 负载
"""

from __future__ import annotations

import gzip
import io
import logging
import struct
from typing import Any, BinaryIO, Callable, Dict, List, Optional, Tuple

import numpy as np

from core.errors import AmbiguousEncodingError, UnsupportedArityError

logger = logging.getLogger(__name__)

# ── NBT 标签类型 ID ──────────────────────────────────────────
TAG_END = 0
TAG_BYTE = 1
TAG_SHORT = 2
TAG_INT = 3
TAG_LONG = 4
TAG_FLOAT = 5
TAG_DOUBLE = 6
TAG_BYTE_ARRAY = 7
TAG_STRING = 8
TAG_LIST = 9
TAG_COMPOUND = 10
TAG_INT_ARRAY = 11
TAG_LONG_ARRAY = 12

TAG_NAMES = {
    TAG_END: "End", TAG_BYTE: "Byte", TAG_SHORT: "Short", TAG_INT: "Int",
    TAG_LONG: "Long", TAG_FLOAT: "Float", TAG_DOUBLE: "Double",
    TAG_BYTE_ARRAY: "Byte_Array", TAG_STRING: "String", TAG_LIST: "List",
    TAG_COMPOUND: "Compound", TAG_INT_ARRAY: "Int_Array", TAG_LONG_ARRAY: "Long_Array",
}

# 标量类型的 struct 格式
_SCALAR_FORMATS = {
    TAG_BYTE: ">b",
    TAG_SHORT: ">h",
    TAG_INT: ">i",
    TAG_LONG: ">q",
    TAG_FLOAT: ">f",
    TAG_DOUBLE: ">d",
}

# 数组类型的大端 numpy dtype
_ARRAY_DTYPES = {
    TAG_BYTE_ARRAY: np.dtype(">i1"),
    TAG_INT_ARRAY: np.dtype(">i4"),
    TAG_LONG_ARRAY: np.dtype(">i8"),
}


class NBTTag:
    """
    NBT 标签值包装

    - 标量: value 为 int / float
    - TAG_STRING: str
    - 数组: bytes / list / ndarray
    - TAG_LIST: (elem_type, elements)
    - TAG_COMPOUND: Dict[str, NBTTag]
    """
    __slots__ = ("tag_type", "value")

    def __init__(self, tag_type: int, value: Any) -> None:
        self.tag_type = tag_type
        self.value = value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NBTTag):
            return NotImplemented
        if self.tag_type != other.tag_type:
            return False
        if self.tag_type in _ARRAY_DTYPES:
            return np.array_equal(_as_array(self), _as_array(other))
        return self.value == other.value

    def __repr__(self) -> str:
        return f"NBTTag(type={TAG_NAMES.get(self.tag_type, self.tag_type)}, value={self.value!r})"


def _as_array(tag: NBTTag) -> np.ndarray:
    v = tag.value
    if isinstance(v, (bytes, bytearray)):
        return np.frombuffer(bytes(v), dtype=np.int8)
    return np.asarray(v, dtype=np.int64)


class NBTEncoder:
    """
    低级 NBT 二进制编码器。

    Usage::

        data = {
            "Version": nbt_int(6),
            "Name": nbt_string("Map art"),
            "BlockStates": nbt_long_array(longs),
        }
        raw = NBTEncoder.encode_root(data)              # 空名根 Compound
        raw = NBTEncoder.encode_compound("Schematic", data)
        NBTEncoder.write_raw(raw, "output.litematic", compress=gzip.compress)
    """

    @staticmethod
    def encode_compound(name: str, tags: Dict[str, Any]) -> bytes:
        """编码一个命名的 Compound 标签"""
        buf = io.BytesIO()
        # 写入 Compound 标签头
        buf.write(struct.pack(">b", TAG_COMPOUND))
        NBTEncoder._write_name(buf, name)
        # 写入内容
        NBTEncoder._write_compound_payload(buf, _compound_tags(tags))
        return buf.getvalue()

    @staticmethod
    def encode_root(tags: Dict[str, Any]) -> bytes:
        """编码文档根 (名称为空的 Compound)"""
        return NBTEncoder.encode_compound("", tags)

    @staticmethod
    def encode_payload(tag: NBTTag) -> bytes:
        """只编码标签负载 (无类型 / 名称头)"""
        buf = io.BytesIO()
        NBTEncoder._write_payload(buf, tag)
        return buf.getvalue()

    @staticmethod
    def write_raw(data: bytes, path: str, compress: Optional[Callable[[bytes], bytes]] = None) -> None:
        """写入 NBT 数据，可选传入压缩函数"""
        if compress is not None:
            data = compress(data)
        with open(path, "wb") as f:
            f.write(data)

    # ── 内部编码方法 ────────────────────────────────────────────

    @staticmethod
    def _write_name(buf: BinaryIO, name: str) -> None:
        name_bytes = name.encode("utf-8")
        buf.write(struct.pack(">H", len(name_bytes)))
        buf.write(name_bytes)

    @staticmethod
    def _write_compound_payload(buf: BinaryIO, tags: Dict[str, NBTTag]) -> None:
        for key, tag in tags.items():
            NBTEncoder._write_named_tag(buf, key, tag)
        buf.write(struct.pack(">b", TAG_END))

    @staticmethod
    def _write_named_tag(buf: BinaryIO, name: str, tag: NBTTag) -> None:
        buf.write(struct.pack(">b", tag.tag_type))
        NBTEncoder._write_name(buf, name)
        NBTEncoder._write_payload(buf, tag)

    @staticmethod
    def _write_payload(buf: BinaryIO, tag: NBTTag) -> None:
        t = tag.tag_type
        v = tag.value

        if t in _SCALAR_FORMATS:
            buf.write(struct.pack(_SCALAR_FORMATS[t], v))
        elif t == TAG_STRING:
            NBTEncoder._write_name(buf, v)
        elif t in _ARRAY_DTYPES:
            if t == TAG_BYTE_ARRAY and isinstance(v, (bytes, bytearray)):
                data = bytes(v)
                count = len(data)
            else:
                arr = np.asarray(v)
                data = _to_big_endian(arr, _ARRAY_DTYPES[t])
                count = arr.size
            buf.write(struct.pack(">i", count))
            buf.write(data)
        elif t == TAG_LIST:
            elem_type, elements = v
            buf.write(struct.pack(">b", elem_type))
            buf.write(struct.pack(">i", len(elements)))
            for elem in elements:
                NBTEncoder._write_payload(buf, _list_element(elem_type, elem))
        elif t == TAG_COMPOUND:
            if isinstance(v, dict):
                NBTEncoder._write_compound_payload(buf, _compound_tags(v))
            else:
                raise TypeError(f"TAG_COMPOUND value must be dict, got {type(v)}")
        else:
            raise ValueError(f"Unknown tag type: {t}")


def _to_big_endian(arr: np.ndarray, dtype: np.dtype) -> bytes:
    """
    按目标宽度转为大端字节。

    同宽度的无符号输入按补码解释 (例如 uint8 200 → -56)；
    其余输入必须落在目标有符号范围内，否则抛出 UnsupportedArityError。
    """
    flat = arr.reshape(-1)
    if not flat.size:
        return flat.astype(dtype).tobytes()
    if flat.dtype.kind not in "iub":
        raise AmbiguousEncodingError(f"Array elements must be integers, got {flat.dtype}")

    target = np.dtype(dtype)
    twos_complement = flat.dtype.kind == "u" and flat.dtype.itemsize == target.itemsize
    if flat.dtype.kind != "b" and not twos_complement:
        info = np.iinfo(target.newbyteorder("="))
        lo, hi = int(flat.min()), int(flat.max())
        if lo < info.min or hi > info.max:
            raise UnsupportedArityError(
                f"Array values [{lo}, {hi}] do not fit {target.itemsize * 8}-bit signed elements"
            )
    return flat.astype(dtype).tobytes()


def _compound_tags(tags: Dict[str, Any]) -> Dict[str, NBTTag]:
    return {key: to_tag(value) for key, value in tags.items()}


def _list_element(elem_type: int, elem: Any) -> NBTTag:
    """列表元素: 原始数值 / 数组按列表类型包装，其余推断后必须与列表类型一致"""
    if isinstance(elem, NBTTag):
        tag = elem
    elif elem_type in _SCALAR_FORMATS and isinstance(elem, (int, float, np.integer, np.floating)) \
            and not isinstance(elem, bool):
        tag = NBTTag(elem_type, elem)
    elif elem_type in _ARRAY_DTYPES and isinstance(elem, (bytes, bytearray, list, np.ndarray)):
        tag = NBTTag(elem_type, elem)
    else:
        tag = to_tag(elem)

    if tag.tag_type != elem_type:
        raise AmbiguousEncodingError(
            f"List element tag {TAG_NAMES.get(tag.tag_type)} does not match list tag "
            f"{TAG_NAMES.get(elem_type)}"
        )
    return tag


def to_tag(value: Any) -> NBTTag:
    """
    将原始 Python 值推断为 NBTTag。

    - NBTTag        → 原样返回
    - bool          → TAG_BYTE (0 / 1)
    - str           → TAG_STRING
    - dict          → TAG_COMPOUND
    - bytes         → TAG_BYTE_ARRAY
    - ndarray       → int8/uint8 → BYTE_ARRAY, int32 → INT_ARRAY, int64 → LONG_ARRAY
    - list / tuple  → TAG_LIST，类型取第一个元素；空列表或类型不一致时报错
    - int / float   → 报错 (宽度不明，请用 nbt_int 等显式构造)
    """
    if isinstance(value, NBTTag):
        return value
    if isinstance(value, (bool, np.bool_)):
        return NBTTag(TAG_BYTE, 1 if value else 0)
    if isinstance(value, str):
        return NBTTag(TAG_STRING, value)
    if isinstance(value, dict):
        return NBTTag(TAG_COMPOUND, value)
    if isinstance(value, (bytes, bytearray)):
        return NBTTag(TAG_BYTE_ARRAY, bytes(value))
    if isinstance(value, np.ndarray):
        if value.dtype in (np.int8, np.uint8):
            return NBTTag(TAG_BYTE_ARRAY, value)
        if value.dtype in (np.int32, np.uint32):
            return NBTTag(TAG_INT_ARRAY, value)
        if value.dtype in (np.int64, np.uint64):
            return NBTTag(TAG_LONG_ARRAY, value)
        raise AmbiguousEncodingError(f"Cannot infer NBT array type from dtype {value.dtype}")
    if isinstance(value, (list, tuple)):
        if len(value) == 0:
            raise AmbiguousEncodingError(
                "Cannot infer NBT list type from an empty list; use nbt_list(elem_type, []) instead"
            )
        elements = [to_tag(v) for v in value]
        elem_type = elements[0].tag_type
        for elem in elements:
            if elem.tag_type != elem_type:
                raise AmbiguousEncodingError("List items do not share one tag type")
        return NBTTag(TAG_LIST, (elem_type, elements))
    if isinstance(value, (int, float, np.integer, np.floating)):
        raise AmbiguousEncodingError(
            f"Numeric value {value!r} has no declared width; use nbt_int / nbt_long / nbt_double"
        )
    raise AmbiguousEncodingError(f"Cannot infer NBT tag for {type(value).__name__}")


# ── 便捷构造函数 ────────────────────────────────────────────────

def nbt_byte(v: int | bool) -> NBTTag:
    return NBTTag(TAG_BYTE, int(v))

def nbt_short(v: int) -> NBTTag:
    return NBTTag(TAG_SHORT, v)

def nbt_int(v: int) -> NBTTag:
    return NBTTag(TAG_INT, v)

def nbt_long(v: int) -> NBTTag:
    return NBTTag(TAG_LONG, v)

def nbt_float(v: float) -> NBTTag:
    return NBTTag(TAG_FLOAT, v)

def nbt_double(v: float) -> NBTTag:
    return NBTTag(TAG_DOUBLE, v)

def nbt_string(v: str) -> NBTTag:
    return NBTTag(TAG_STRING, v)

def nbt_byte_array(v: bytes | bytearray | list | np.ndarray) -> NBTTag:
    return NBTTag(TAG_BYTE_ARRAY, v)

def nbt_int_array(v: list | np.ndarray) -> NBTTag:
    return NBTTag(TAG_INT_ARRAY, v)

def nbt_long_array(v: list | np.ndarray) -> NBTTag:
    return NBTTag(TAG_LONG_ARRAY, v)

def nbt_list(elem_type: int, elements: list) -> NBTTag:
    return NBTTag(TAG_LIST, (elem_type, list(elements)))

def nbt_compound(v: Dict[str, Any]) -> NBTTag:
    return NBTTag(TAG_COMPOUND, v)


# ── 解码 ────────────────────────────────────────────────────────

class NBTDecoder:
    """
    NBT 二进制解码器，输出与编码器相同的 NBTTag 结构。

    Usage::

        name, root = NBTDecoder.decode(raw)
        root["Version"].value          # -> 6
        name, root = NBTDecoder.decode_gzipped(gz_bytes)
    """

    def __init__(self, data: bytes) -> None:
        self.data = data
        self.pos = 0

    @classmethod
    def decode(cls, data: bytes) -> Tuple[str, Dict[str, NBTTag]]:
        """解码根 Compound，返回 (根名称, 内容)"""
        reader = cls(data)
        tag_type = reader._read_scalar(">b", 1)
        if tag_type != TAG_COMPOUND:
            raise ValueError(f"Root tag must be Compound, got {TAG_NAMES.get(tag_type, tag_type)}")
        name = reader._read_string()
        body = reader._read_payload(TAG_COMPOUND)
        return name, body

    @classmethod
    def decode_gzipped(cls, data: bytes) -> Tuple[str, Dict[str, NBTTag]]:
        return cls.decode(gzip.decompress(data))

    # ── 内部读取 ────────────────────────────────────────────────

    def _read(self, n: int) -> bytes:
        if self.pos + n > len(self.data):
            raise ValueError(f"Truncated NBT data at offset {self.pos} (need {n} bytes)")
        chunk = self.data[self.pos:self.pos + n]
        self.pos += n
        return chunk

    def _read_scalar(self, fmt: str, size: int):
        return struct.unpack(fmt, self._read(size))[0]

    def _read_string(self) -> str:
        length = self._read_scalar(">H", 2)
        return self._read(length).decode("utf-8")

    def _read_payload(self, tag_type: int) -> Any:
        if tag_type in _SCALAR_FORMATS:
            fmt = _SCALAR_FORMATS[tag_type]
            return self._read_scalar(fmt, struct.calcsize(fmt))
        if tag_type == TAG_STRING:
            return self._read_string()
        if tag_type in _ARRAY_DTYPES:
            count = self._read_scalar(">i", 4)
            dtype = _ARRAY_DTYPES[tag_type]
            raw = self._read(count * dtype.itemsize)
            return np.frombuffer(raw, dtype=dtype).astype(dtype.newbyteorder("="))
        if tag_type == TAG_LIST:
            elem_type = self._read_scalar(">b", 1)
            count = self._read_scalar(">i", 4)
            elements = [NBTTag(elem_type, self._read_payload(elem_type)) for _ in range(count)]
            return (elem_type, elements)
        if tag_type == TAG_COMPOUND:
            result: Dict[str, NBTTag] = {}
            while True:
                child_type = self._read_scalar(">b", 1)
                if child_type == TAG_END:
                    break
                child_name = self._read_string()
                result[child_name] = NBTTag(child_type, self._read_payload(child_type))
            return result
        raise ValueError(f"Unknown tag type: {tag_type}")
