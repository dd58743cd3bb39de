"""MapForge io_formats — NBT 编解码与导入/导出格式包"""

__all__ = [
    "nbt_encoder",
    "bit_packing",
    "litematic_exporter",
    "litematic_importer",
    "map_exporter",
]

# 便捷重导出
from io_formats.litematic_exporter import LitematicDocument, LitematicExporter  # noqa: F401
from io_formats.litematic_importer import LitematicImporter  # noqa: F401
from io_formats.map_exporter import MapExporter  # noqa: F401
