"""
测试 Map Art 管线与命令行入口
"""

import sys
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


@pytest.fixture
def image_path(tmp_path):
    """40×30 渐变图像"""
    x = np.linspace(0, 255, 40, dtype=np.uint8)
    rgb = np.zeros((30, 40, 3), dtype=np.uint8)
    rgb[:, :, 0] = x
    rgb[:, :, 1] = 255 - x
    rgb[:, :, 2] = 80
    path = tmp_path / "input.png"
    Image.fromarray(rgb, "RGB").save(path)
    return path


class TestPipelineMapArt:

    def _config(self, image_path, tmp_path, **kwargs):
        from pipelines.pipeline_map_art import MapArtPipelineConfig
        defaults = dict(
            input_path=str(image_path),
            output_dir=str(tmp_path / "out"),
            name="Test Art",
            dither="none",
            workers=1,
        )
        defaults.update(kwargs)
        return MapArtPipelineConfig(**defaults)

    def test_full_run(self, image_path, tmp_path):
        from io_formats.litematic_importer import LitematicImporter
        from pipelines.pipeline_map_art import PipelineMapArt
        progress = []
        result = PipelineMapArt().run(
            self._config(image_path, tmp_path, dither="floyd_steinberg"),
            progress_callback=lambda p, m: progress.append(p),
        )
        assert result.success, result.errors
        assert result.image_size == (40, 30)
        assert result.tile_grid == (1, 1)
        assert len(result.map_paths) == 1
        assert (tmp_path / "out" / "data" / "idcounts.dat").exists()
        assert progress[-1] == 100.0

        doc = LitematicImporter().load(result.litematic_path)
        assert list(doc.regions) == ["map_0_0"]
        assert doc.total_blocks == result.total_blocks
        # 40 列各有一个支撑方块 + 40×30 像素
        assert result.total_blocks == 40 + 40 * 30

    def test_flat_mode_is_one_block_high(self, image_path, tmp_path):
        from io_formats.litematic_importer import LitematicImporter
        from pipelines.pipeline_map_art import PipelineMapArt
        result = PipelineMapArt().run(self._config(image_path, tmp_path, build_mode="flat"))
        assert result.success, result.errors
        region = LitematicImporter().load(result.litematic_path).regions["map_0_0"]
        assert region.size.y == 1

    def test_resize(self, image_path, tmp_path):
        from pipelines.pipeline_map_art import PipelineMapArt
        result = PipelineMapArt().run(self._config(
            image_path, tmp_path,
            resize_width=256, resize_height=128, resize_method="stretch",
            export_litematic=False,
        ))
        assert result.success, result.errors
        assert result.image_size == (256, 128)
        assert result.tile_grid == (2, 1)
        assert [Path(p).name for p in result.map_paths] == ["map_0.dat", "map_1.dat"]
        assert result.litematic_path == ""

    def test_partial_resize_warns(self, image_path, tmp_path):
        from pipelines.pipeline_map_art import PipelineMapArt
        result = PipelineMapArt().run(self._config(image_path, tmp_path, resize_width=64, export_litematic=False))
        assert result.success
        assert result.image_size == (40, 30)
        assert result.warnings

    def test_maps_disabled(self, image_path, tmp_path):
        from pipelines.pipeline_map_art import PipelineMapArt
        result = PipelineMapArt().run(self._config(image_path, tmp_path, export_maps=False))
        assert result.success, result.errors
        assert result.map_paths == []
        assert not (tmp_path / "out" / "data").exists()
        assert Path(result.litematic_path).name == "Test Art.litematic"

    def test_missing_input_fails(self, tmp_path):
        from pipelines.pipeline_map_art import PipelineMapArt
        result = PipelineMapArt().run(self._config(tmp_path / "nope.png", tmp_path))
        assert not result.success
        assert result.errors
        assert not (tmp_path / "out").exists()

    def test_encode_failure_writes_nothing(self, image_path, tmp_path, monkeypatch):
        """Litematic 编码失败时不留下任何地图文件"""
        from io_formats.litematic_exporter import LitematicDocument
        from pipelines.pipeline_map_art import PipelineMapArt

        def broken_encode(self, timestamp_ms=None):
            raise RuntimeError("encode failed")

        monkeypatch.setattr(LitematicDocument, "encode", broken_encode)
        result = PipelineMapArt().run(self._config(image_path, tmp_path))
        assert not result.success
        assert "encode failed" in result.errors[0]
        assert result.map_paths == []
        assert not (tmp_path / "out").exists()

    def test_invalid_options_fail(self, image_path, tmp_path):
        from pipelines.pipeline_map_art import PipelineMapArt
        pipeline = PipelineMapArt()
        assert not pipeline.run(self._config(image_path, tmp_path, build_mode="tower")).success
        assert not pipeline.run(self._config(image_path, tmp_path, dither="nope")).success
        assert not pipeline.run(self._config(
            image_path, tmp_path, export_maps=False, export_litematic=False,
        )).success


class TestMain:

    def test_cli_overrides_settings(self):
        import main
        args = main.build_parser().parse_args(["in.png", "--name", "B", "--no-maps"])
        settings = {
            "map_art": {"dither": "atkinson", "name": "A", "unknown_key": 1},
            "compute": {"workers": 3, "cpu_reserved_cores": 1},
        }
        config = main.merge_config(settings, args)
        assert config.input_path == "in.png"
        assert config.dither == "atkinson"
        assert config.name == "B"
        assert config.export_maps is False
        assert config.export_litematic is True
        assert config.workers == 3
        assert config.reserved_cores == 1

    def test_load_config(self, tmp_path):
        import main
        path = tmp_path / "settings.yaml"
        path.write_text("map_art:\n  build_mode: flat\n", encoding="utf-8")
        assert main.load_config(path) == {"map_art": {"build_mode": "flat"}}
        assert main.load_config(tmp_path / "missing.yaml") == {}

    def test_bundled_settings_parse(self):
        import main
        settings = main.load_config()
        args = main.build_parser().parse_args(["in.png"])
        config = main.merge_config(settings, args)
        assert config.build_mode in ("flat", "staircase")

    def test_main_exit_codes(self, image_path, tmp_path):
        import main
        out = tmp_path / "cli"
        assert main.main([str(image_path), "-o", str(out), "--dither", "none", "-j", "1"]) == 0
        assert (out / "data" / "map_0.dat").exists()
        assert main.main([str(tmp_path / "missing.png"), "-o", str(out), "-j", "1"]) == 1
