"""
测试导入/导出格式 — NBT 编解码, 位打包, Litematic, 地图物品
"""

import gzip
import struct
import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


# ── NBT 编码 ───────────────────────────────────────────────────

class TestNBTEncoder:

    def test_root_framing(self):
        from io_formats.nbt_encoder import NBTEncoder, nbt_byte
        raw = NBTEncoder.encode_root({"a": nbt_byte(1)})
        assert raw == b"\x0a\x00\x00" + b"\x01\x00\x01a\x01" + b"\x00"

    def test_encode_compound(self):
        from io_formats.nbt_encoder import NBTEncoder, nbt_int, nbt_short, nbt_string
        data = {
            "Version": nbt_int(2),
            "Name": nbt_string("Test"),
            "Width": nbt_short(16),
        }
        raw = NBTEncoder.encode_compound("Schematic", data)
        assert raw[0] == 10
        assert raw[1:3] == struct.pack(">H", 9)
        assert raw[3:12] == b"Schematic"
        assert raw[-1] == 0
        assert b"\x03\x00\x07Version\x00\x00\x00\x02" in raw
        assert b"\x02\x00\x05Width\x00\x10" in raw

    def test_scalar_widths(self):
        from io_formats.nbt_encoder import (
            NBTEncoder, nbt_double, nbt_float, nbt_int, nbt_long, nbt_short,
        )
        assert NBTEncoder.encode_payload(nbt_short(-2)) == b"\xff\xfe"
        assert NBTEncoder.encode_payload(nbt_int(1)) == b"\x00\x00\x00\x01"
        assert NBTEncoder.encode_payload(nbt_long(-1)) == b"\xff" * 8
        assert NBTEncoder.encode_payload(nbt_float(1.0)) == struct.pack(">f", 1.0)
        assert NBTEncoder.encode_payload(nbt_double(0.5)) == struct.pack(">d", 0.5)

    def test_string_uses_byte_length(self):
        from io_formats.nbt_encoder import NBTEncoder, nbt_string
        assert NBTEncoder.encode_payload(nbt_string("é")) == b"\x00\x02\xc3\xa9"

    def test_arrays(self):
        from io_formats.nbt_encoder import NBTEncoder, nbt_byte_array, nbt_int_array, nbt_long_array
        assert NBTEncoder.encode_payload(nbt_byte_array(b"\x01\xff")) == b"\x00\x00\x00\x02\x01\xff"
        assert NBTEncoder.encode_payload(nbt_int_array([1, -1])) == \
            b"\x00\x00\x00\x02" + b"\x00\x00\x00\x01" + b"\xff\xff\xff\xff"
        assert NBTEncoder.encode_payload(nbt_long_array(np.array([1], dtype=np.int64))) == \
            b"\x00\x00\x00\x01" + b"\x00" * 7 + b"\x01"

    def test_array_values_must_fit_element_width(self):
        from core.errors import UnsupportedArityError
        from io_formats.nbt_encoder import NBTEncoder, nbt_byte_array, nbt_int_array
        with pytest.raises(UnsupportedArityError):
            NBTEncoder.encode_payload(nbt_int_array(np.array([2**32 + 7], dtype=np.int64)))
        with pytest.raises(UnsupportedArityError):
            NBTEncoder.encode_payload(nbt_byte_array(np.array([200], dtype=np.int16)))
        with pytest.raises(UnsupportedArityError):
            NBTEncoder.encode_payload(nbt_int_array([-(2**31) - 1]))
        # 同宽度无符号输入按补码写入
        assert NBTEncoder.encode_payload(nbt_byte_array(np.array([200], dtype=np.uint8))) == \
            b"\x00\x00\x00\x01\xc8"
        assert NBTEncoder.encode_payload(nbt_int_array(np.array([2**32 - 1], dtype=np.uint32))) == \
            b"\x00\x00\x00\x01\xff\xff\xff\xff"
        # 有符号范围内的宽类型照常收窄
        assert NBTEncoder.encode_payload(nbt_int_array(np.array([-(2**31)], dtype=np.int64))) == \
            b"\x00\x00\x00\x01\x80\x00\x00\x00"

    def test_empty_compound_and_list(self):
        from io_formats.nbt_encoder import TAG_COMPOUND, NBTEncoder, nbt_compound, nbt_list
        assert NBTEncoder.encode_payload(nbt_compound({})) == b"\x00"
        assert NBTEncoder.encode_payload(nbt_list(TAG_COMPOUND, [])) == b"\x0a\x00\x00\x00\x00"

    def test_list_payload_has_no_element_headers(self):
        from io_formats.nbt_encoder import TAG_INT, NBTEncoder, nbt_list
        raw = NBTEncoder.encode_payload(nbt_list(TAG_INT, [1, 2]))
        assert raw == b"\x03\x00\x00\x00\x02" + b"\x00\x00\x00\x01" + b"\x00\x00\x00\x02"


class TestTagInference:

    def test_inferred_types(self):
        from io_formats.nbt_encoder import (
            TAG_BYTE, TAG_BYTE_ARRAY, TAG_COMPOUND, TAG_INT_ARRAY, TAG_LIST,
            TAG_LONG_ARRAY, TAG_STRING, to_tag,
        )
        assert to_tag(True).tag_type == TAG_BYTE
        assert to_tag(True).value == 1
        assert to_tag("x").tag_type == TAG_STRING
        assert to_tag({}).tag_type == TAG_COMPOUND
        assert to_tag(b"\x00").tag_type == TAG_BYTE_ARRAY
        assert to_tag(np.zeros(2, dtype=np.int32)).tag_type == TAG_INT_ARRAY
        assert to_tag(np.zeros(2, dtype=np.int64)).tag_type == TAG_LONG_ARRAY
        tag = to_tag(["a", "b"])
        assert tag.tag_type == TAG_LIST
        assert tag.value[0] == TAG_STRING

    def test_empty_list_is_ambiguous(self):
        from core.errors import AmbiguousEncodingError
        from io_formats.nbt_encoder import NBTEncoder, to_tag
        with pytest.raises(AmbiguousEncodingError):
            to_tag([])
        with pytest.raises(AmbiguousEncodingError):
            NBTEncoder.encode_root({"frames": []})

    def test_heterogeneous_list(self):
        from core.errors import AmbiguousEncodingError
        from io_formats.nbt_encoder import TAG_STRING, NBTEncoder, nbt_list, nbt_int, to_tag
        with pytest.raises(AmbiguousEncodingError):
            to_tag(["a", True])
        with pytest.raises(AmbiguousEncodingError):
            NBTEncoder.encode_payload(nbt_list(TAG_STRING, ["a", nbt_int(1)]))

    def test_bare_number_is_ambiguous(self):
        from core.errors import AmbiguousEncodingError
        from io_formats.nbt_encoder import to_tag
        with pytest.raises(AmbiguousEncodingError):
            to_tag(5)
        with pytest.raises(AmbiguousEncodingError):
            to_tag(0.5)
        with pytest.raises(AmbiguousEncodingError):
            to_tag(np.zeros(2, dtype=np.float32))


class TestNBTDecoder:

    def test_decode_document(self):
        from io_formats.nbt_encoder import (
            TAG_COMPOUND, NBTDecoder, NBTEncoder,
            nbt_byte, nbt_compound, nbt_int, nbt_list, nbt_long_array, nbt_string,
        )
        doc = {
            "DataVersion": nbt_int(3578),
            "data": nbt_compound({
                "locked": nbt_byte(True),
                "frames": nbt_list(TAG_COMPOUND, []),
                "dimension": nbt_string("minecraft:overworld"),
                "states": nbt_long_array(np.array([-1, 2], dtype=np.int64)),
            }),
        }
        name, root = NBTDecoder.decode_gzipped(gzip.compress(NBTEncoder.encode_root(doc)))
        assert name == ""
        assert list(root) == ["DataVersion", "data"]
        assert root["DataVersion"].value == 3578
        data = root["data"].value
        assert data["locked"].value == 1
        assert data["frames"].value == (TAG_COMPOUND, [])
        assert data["dimension"].value == "minecraft:overworld"
        assert data["states"].value.tolist() == [-1, 2]

    def test_write_raw_with_compressor(self, tmp_path):
        from io_formats.nbt_encoder import NBTDecoder, NBTEncoder, nbt_int
        raw = NBTEncoder.encode_root({"Version": nbt_int(6)})
        path = tmp_path / "doc.nbt.gz"
        NBTEncoder.write_raw(raw, str(path), compress=gzip.compress)
        _, root = NBTDecoder.decode_gzipped(path.read_bytes())
        assert root["Version"].value == 6
        plain = tmp_path / "doc.nbt"
        NBTEncoder.write_raw(raw, str(plain))
        assert plain.read_bytes() == raw

    def test_signed_bytes(self):
        from io_formats.nbt_encoder import NBTDecoder, NBTEncoder, nbt_byte_array
        raw = NBTEncoder.encode_root({"colors": nbt_byte_array(bytes([200, 1]))})
        _, root = NBTDecoder.decode(raw)
        assert root["colors"].value.tolist() == [-56, 1]

    def test_truncated(self):
        from io_formats.nbt_encoder import NBTDecoder, NBTEncoder, nbt_int
        raw = NBTEncoder.encode_root({"x": nbt_int(1)})
        with pytest.raises(ValueError):
            NBTDecoder.decode(raw[:-3])

    def test_root_must_be_compound(self):
        from io_formats.nbt_encoder import NBTDecoder
        with pytest.raises(ValueError):
            NBTDecoder.decode(b"\x03\x00\x00\x00\x00\x00\x01")


# ── 位打包 ─────────────────────────────────────────────────────

class TestBitPacking:

    def test_bits_for_palette(self):
        from io_formats.bit_packing import bits_for_palette
        assert bits_for_palette(1) == 1
        assert bits_for_palette(2) == 1
        assert bits_for_palette(5) == 3
        assert bits_for_palette(2, minimum_bits=4) == 4
        assert bits_for_palette(17, minimum_bits=4) == 5
        with pytest.raises(ValueError):
            bits_for_palette(0)

    def test_padded_does_not_straddle(self):
        from io_formats.bit_packing import BitPackedArrayCodec, PackingMode
        codec = BitPackedArrayCodec(minimum_bits=4, mode=PackingMode.PADDED)
        values = [0] * 12 + [19]
        longs = codec.pack(values, palette_size=32)
        assert len(longs) == 2
        assert longs.tolist() == [0, 19]

    def test_split_straddles(self):
        from io_formats.bit_packing import BitPackedArrayCodec, PackingMode
        codec = BitPackedArrayCodec(minimum_bits=4, mode=PackingMode.SPLIT)
        values = [0] * 12 + [0b10011]
        longs = codec.pack(values, palette_size=32)
        assert len(longs) == 2
        assert longs.tolist() == [0b0011 << 60, 1]

    def test_lsb_first_and_signed_output(self):
        from io_formats.bit_packing import BitPackedArrayCodec
        codec = BitPackedArrayCodec(minimum_bits=4)
        assert codec.pack([1, 2], palette_size=3).tolist() == [0x21]
        assert codec.pack([15] * 16, palette_size=16).tolist() == [-1]

    @pytest.mark.parametrize("mode", ["padded", "split"])
    def test_unpack_inverts_pack(self, mode):
        from io_formats.bit_packing import BitPackedArrayCodec
        codec = BitPackedArrayCodec(minimum_bits=4, mode=mode)
        values = np.random.default_rng(3).integers(0, 37, size=301)
        longs = codec.pack(values, palette_size=37)
        assert codec.unpack(longs, count=301, palette_size=37).tolist() == values.tolist()

    def test_word_count(self):
        from io_formats.bit_packing import BitPackedArrayCodec, PackingMode
        assert BitPackedArrayCodec(mode=PackingMode.PADDED).word_count(8, 4) == 1
        assert BitPackedArrayCodec(mode=PackingMode.PADDED).word_count(13, 5) == 2
        assert BitPackedArrayCodec(mode=PackingMode.SPLIT).word_count(64, 3) == 3

    def test_unsupported_arity(self):
        from core.errors import UnsupportedArityError
        from io_formats.bit_packing import BitPackedArrayCodec
        with pytest.raises(UnsupportedArityError):
            BitPackedArrayCodec(minimum_bits=4, max_bits=4).pack([0], palette_size=17)

    def test_index_out_of_range(self):
        from io_formats.bit_packing import BitPackedArrayCodec
        with pytest.raises(ValueError):
            BitPackedArrayCodec().pack([0, 4], palette_size=4)


# ── Litematic ──────────────────────────────────────────────────

def _two_block_region():
    from core.block_region import BlockSpec, Region, Vec3
    region = Region(Vec3(0, 0, 0), Vec3(2, 2, 2))
    region.set(Vec3(0, 0, 0), BlockSpec("minecraft:stone"))
    region.set(Vec3(1, 1, 1), BlockSpec("minecraft:oak_log", {"axis": "y"}))
    return region


class TestLitematicExporter:

    def test_region_block_states_length(self):
        """2×2×2 两种方块: 4 位/项，一个 long"""
        from io_formats.bit_packing import BitPackedArrayCodec
        from io_formats.litematic_exporter import region_to_nbt
        tag = region_to_nbt(_two_block_region(), BitPackedArrayCodec(minimum_bits=4))
        assert len(tag.value["BlockStates"].value) == 1
        assert list(tag.value) == [
            "Position", "Size", "BlockStatePalette", "Entities",
            "PendingBlockTicks", "PendingFluidTicks", "TileEntities", "BlockStates",
        ]

    def test_block_properties_only_when_present(self):
        from core.block_region import BlockSpec
        from io_formats.litematic_exporter import block_to_nbt
        assert "Properties" not in block_to_nbt(BlockSpec("minecraft:stone")).value
        assert "Properties" in block_to_nbt(BlockSpec("minecraft:stone", {})).value

    def test_document_metadata(self):
        from io_formats.litematic_exporter import LitematicDocument
        doc = LitematicDocument(author="me", name="Test", description="d")
        doc.add_region("main", _two_block_region())
        root = doc.to_nbt(timestamp_ms=1234)
        meta = root["Metadata"].value
        assert meta["TotalBlocks"].value == 2
        assert meta["TotalVolume"].value == 8
        assert meta["RegionCount"].value == 1
        assert meta["TimeCreated"].value == 1234
        assert meta["EnclosingSize"].value["x"].value == 2
        assert root["Version"].value == 6
        assert root["SubVersion"].value == 1
        assert root["MinecraftDataVersion"].value == 3578

    def test_enclosing_bounds_covers_all_regions(self):
        from core.block_region import Region, Vec3
        from io_formats.litematic_exporter import LitematicDocument
        doc = LitematicDocument()
        doc.add_region("a", Region(Vec3(0, 0, 0), Vec3(2, 2, 2)))
        doc.add_region("b", Region(Vec3(5, 1, -1), Vec3(1, 1, 1)))
        lo, size = doc.enclosing_bounds()
        assert lo == Vec3(0, 0, -1)
        assert size == Vec3(6, 2, 3)

    def test_duplicate_region_name(self):
        from io_formats.litematic_exporter import LitematicDocument
        doc = LitematicDocument()
        doc.add_region("a", _two_block_region())
        with pytest.raises(ValueError):
            doc.add_region("a", _two_block_region())

    def test_export_empty_document(self, tmp_path):
        from io_formats.litematic_exporter import LitematicDocument, LitematicExporter
        with pytest.raises(ValueError):
            LitematicExporter().export(LitematicDocument(), tmp_path / "x.litematic")
        assert not (tmp_path / "x.litematic").exists()

    def test_custom_compress(self, tmp_path):
        from io_formats.litematic_exporter import LitematicDocument, LitematicExporter
        doc = LitematicDocument()
        doc.add_region("main", _two_block_region())
        path = LitematicExporter(compress=lambda b: b).export(doc, tmp_path / "raw.litematic")
        assert path.read_bytes()[:3] == b"\x0a\x00\x00"

    def test_export_pre_encoded(self, tmp_path, monkeypatch):
        """传入预编码字节时不再调用 encode()"""
        from io_formats.litematic_exporter import LitematicDocument, LitematicExporter
        doc = LitematicDocument()
        doc.add_region("main", _two_block_region())
        raw = doc.encode(timestamp_ms=1)

        def broken_encode(self, timestamp_ms=None):
            raise RuntimeError("encode called twice")

        monkeypatch.setattr(LitematicDocument, "encode", broken_encode)
        path = LitematicExporter(compress=lambda b: b).export(doc, tmp_path / "pre.litematic", encoded=raw)
        assert path.read_bytes() == raw


class TestLitematicImporter:

    @pytest.mark.parametrize("mode", ["padded", "split"])
    def test_export_then_import(self, tmp_path, mode):
        from core.block_region import BlockSpec, Region, Vec3
        from io_formats.bit_packing import PackingMode
        from io_formats.litematic_exporter import LitematicConfig, LitematicDocument, LitematicExporter
        from io_formats.litematic_importer import LitematicImporter

        config = LitematicConfig(packing_mode=PackingMode(mode))
        doc = LitematicDocument(author="me", name="Round", config=config)
        region = Region(Vec3(10, 64, -5), Vec3(3, 2, 4))
        for i, (x, y, z) in enumerate([(10, 64, -5), (12, 65, -2), (11, 64, -3)]):
            region.set(Vec3(x, y, z), BlockSpec(f"minecraft:block_{i}", {"n": str(i)} if i else None))
        doc.add_region("main", region)

        path = LitematicExporter().export(doc, tmp_path / "round.litematic")
        loaded = LitematicImporter(config=config).load(path)

        assert loaded.author == "me"
        assert loaded.name == "Round"
        back = loaded.regions["main"]
        assert back.pos == region.pos
        assert back.size == region.size
        assert back.palette == region.palette
        assert back.indices.tolist() == region.indices.tolist()
        assert back.get(Vec3(12, 65, -2)) == BlockSpec("minecraft:block_1", {"n": "1"})


# ── 地图物品 ────────────────────────────────────────────────────

def _tiles(n=2):
    from core.map_tiles import MapTile
    return [MapTile(i, 0, np.full((128, 128), 4 * i + 1, dtype=np.int64)) for i in range(n)]


class TestMapExporter:

    def test_encode_colors(self):
        from core.errors import UnsupportedArityError
        from io_formats.map_exporter import encode_colors
        ids = np.zeros((128, 128), dtype=np.int64)
        ids[0, 0] = 200
        raw = encode_colors(ids)
        assert len(raw) == 16384
        assert struct.unpack(">b", raw[:1])[0] == -56
        with pytest.raises(ValueError):
            encode_colors(np.zeros(100))
        ids[0, 0] = 256
        with pytest.raises(UnsupportedArityError):
            encode_colors(ids)

    def test_map_item_field_order(self):
        from io_formats.map_exporter import map_item_nbt
        root = map_item_nbt(np.zeros((128, 128), dtype=np.int64))
        assert list(root) == ["DataVersion", "data"]
        assert list(root["data"].value) == [
            "unlimitedTracking", "frames", "banners", "trackingPosition", "zCenter",
            "locked", "xCenter", "dimension", "scale", "colors",
        ]
        assert root["data"].value["locked"].value == 1

    def test_export_files(self, tmp_path):
        from io_formats.map_exporter import MapExporter, MapItemConfig
        from io_formats.nbt_encoder import NBTDecoder
        exporter = MapExporter(MapItemConfig(x_center=64, z_center=-64))
        paths = exporter.export(_tiles(2), tmp_path, start_id=5)
        assert [p.name for p in paths] == ["map_5.dat", "map_6.dat"]

        _, root = NBTDecoder.decode_gzipped(paths[1].read_bytes())
        data = root["data"].value
        assert data["xCenter"].value == 64
        assert data["zCenter"].value == -64
        colors = data["colors"].value
        assert colors.size == 16384
        assert int(colors[0]) == 5

        _, counts = NBTDecoder.decode_gzipped((tmp_path / "idcounts.dat").read_bytes())
        assert counts["data"].value["map"].value == 6

    def test_export_rejects_empty_and_negative(self, tmp_path):
        from io_formats.map_exporter import MapExporter
        with pytest.raises(ValueError):
            MapExporter().export([], tmp_path)
        with pytest.raises(ValueError):
            MapExporter().export(_tiles(1), tmp_path, start_id=-1)

    def test_bad_tile_writes_nothing(self, tmp_path):
        from core.errors import UnsupportedArityError
        from io_formats.map_exporter import MapExporter
        tiles = _tiles(2)
        tiles[1].color_ids[0, 0] = 999
        with pytest.raises(UnsupportedArityError):
            MapExporter().export(tiles, tmp_path / "data")
        assert not (tmp_path / "data").exists()

    def test_image_to_map_documents(self):
        """200×130 图像 → 4 份文档，每份 colors 为 16384 字节"""
        from core.image_data import FloatImage
        from core.map_tiles import MapTiler
        from io_formats.map_exporter import encode_map_tiles
        from io_formats.nbt_encoder import NBTDecoder
        img = FloatImage(np.random.default_rng(1).random((130, 200, 4)))
        docs = encode_map_tiles(MapTiler().quantize_tiles(img))
        assert len(docs) == 4
        for raw in docs:
            _, root = NBTDecoder.decode(raw)
            assert root["data"].value["colors"].value.size == 16384
