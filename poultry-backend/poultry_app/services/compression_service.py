# poultry_app/services/compression_service.py
"""
Kompresi adaptif sebelum gambar dikirim ke classifier dan disimpan.

Ladder (deterministik, terbatas):
  1. fit ke bounding box (default 1024x1024), tanpa upscale, JPEG q80
  2. masih > budget: turunkan quality per 10 (70, 60, ... sampai floor 10),
     berhenti begitu budget terpenuhi
  3. floor tercapai dan masih > budget: box dikecilkan ke 80% lalu encode
     sekali lagi di q70
  4. hasil langkah terakhir dikembalikan walaupun masih > budget
"""
import logging
import struct
from dataclasses import dataclass, field

from PIL import Image, UnidentifiedImageError

from poultry_app.core.errors import CompressionError
from poultry_app.utils.image_io import open_image, to_rgb, encode_jpeg, JPEG_CONTENT_TYPE

logger = logging.getLogger(__name__)


@dataclass
class ProcessedImage:
    data: bytes
    width: int
    height: int
    quality: int
    box: tuple
    content_type: str = JPEG_CONTENT_TYPE
    # (box, quality) tiap encode yang dicoba, urut
    attempts: list = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.data)


class ImageCompressor:
    def __init__(
        self,
        max_bytes: int = 1048576,
        max_box=(1024, 1024),
        quality: int = 80,
        quality_step: int = 10,
        quality_floor: int = 10,
        shrink_factor: float = 0.8,
        fallback_quality: int = 70,
    ):
        if quality_step <= 0:
            raise ValueError("quality_step harus > 0")
        self.max_bytes = int(max_bytes)
        self.max_box = (int(max_box[0]), int(max_box[1]))
        self.quality = int(quality)
        self.quality_step = int(quality_step)
        self.quality_floor = int(quality_floor)
        self.shrink_factor = float(shrink_factor)
        self.fallback_quality = int(fallback_quality)

    def quality_ladder(self) -> list[int]:
        """[80, 70, ..., floor] sesuai konfigurasi."""
        steps = []
        q = self.quality
        while q >= self.quality_floor:
            steps.append(q)
            q -= self.quality_step
        if not steps:
            steps.append(self.quality)
        return steps

    def shrunk_box(self) -> tuple:
        w = max(1, int(self.max_box[0] * self.shrink_factor))
        h = max(1, int(self.max_box[1] * self.shrink_factor))
        return (w, h)

    def _decode(self, image_bytes: bytes) -> Image.Image:
        try:
            img = open_image(image_bytes)
            img.load()
            return to_rgb(img)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError, struct.error) as e:
            raise CompressionError("Failed to decode image", detail=str(e)) from e

    def encode_step(self, img: Image.Image, box: tuple, quality: int) -> tuple:
        """Fit ke box (tanpa upscale) lalu encode JPEG; return (bytes, w, h)."""
        try:
            resized = img.copy()
            # thumbnail() = fit "inside", aspect ratio dijaga, tidak pernah memperbesar
            resized.thumbnail(box, Image.LANCZOS)
            data = encode_jpeg(resized, quality)
        except (OSError, ValueError) as e:
            raise CompressionError("Failed to encode image", detail=str(e)) from e
        return data, resized.width, resized.height

    def compress(self, image_bytes: bytes) -> ProcessedImage:
        img = self._decode(image_bytes)

        attempts = []
        box = self.max_box

        for quality in self.quality_ladder():
            data, width, height = self.encode_step(img, box, quality)
            attempts.append((box, quality))
            if len(data) <= self.max_bytes:
                return ProcessedImage(data, width, height, quality, box, attempts=attempts)

        # quality floor tercapai, masih over budget -> kecilkan dimensi
        box = self.shrunk_box()
        quality = self.fallback_quality
        data, width, height = self.encode_step(img, box, quality)
        attempts.append((box, quality))

        if len(data) > self.max_bytes:
            logger.warning(
                "Compression ladder exhausted: %d bytes > budget %d (box=%s, q=%d)",
                len(data), self.max_bytes, box, quality,
            )
        return ProcessedImage(data, width, height, quality, box, attempts=attempts)
