"""
Map preview rendering.

Every .scmap starts with a fixed header followed by the length-prefixed DDS
image the map editor stores as the map's minimap. That image is decoded with
Pillow and scaled to the requested preview size.
"""
import io
import os
import struct
from pathlib import Path

import structlog
from PIL import Image, UnidentifiedImageError

logger = structlog.get_logger("preview")

SCMAP_MAGIC = b"Map\x1a"
# magic, version, two markers, width/height floats, int32 and int16 padding
SCMAP_PREVIEW_OFFSET = 30
PLACEHOLDER_COLOR = (32, 32, 32)


def read_embedded_preview(scmap_path):
    with open(scmap_path, "rb") as scmap:
        header = scmap.read(SCMAP_PREVIEW_OFFSET + 4)
        if len(header) < SCMAP_PREVIEW_OFFSET + 4 or not header.startswith(SCMAP_MAGIC):
            return None
        (length,) = struct.unpack_from("<i", header, SCMAP_PREVIEW_OFFSET)
        if length <= 0:
            return None
        data = scmap.read(length)
    if len(data) != length:
        return None
    return data


class PreviewGenerator:
    """Renders map previews from the files of a map folder."""

    def generate_preview(self, map_folder, width: int, height: int) -> Image.Image:
        scmap_files = sorted(Path(map_folder).glob("*.scmap"))
        image = None
        if scmap_files:
            image = self._decode(scmap_files[0])
        if image is None:
            logger.warning("preview_placeholder_used", folder=Path(map_folder).name)
            return Image.new("RGB", (width, height), PLACEHOLDER_COLOR)
        return image.convert("RGB").resize((width, height), Image.LANCZOS)

    @staticmethod
    def _decode(scmap_path):
        try:
            data = read_embedded_preview(scmap_path)
            if data is None:
                return None
            image = Image.open(io.BytesIO(data))
            image.load()
            return image
        except (OSError, UnidentifiedImageError, struct.error, ValueError) as e:
            logger.warning("preview_decode_failed", scmap=scmap_path.name, error=str(e))
            return None


def write_preview(image: Image.Image, target):
    os.makedirs(os.path.dirname(os.path.abspath(target)), exist_ok=True)
    image.save(target, "PNG")
    return target
