# poultry_app/services/validation_service.py
import logging
import struct
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from poultry_app.core.errors import ValidationError
from poultry_app.utils.image_io import open_image

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageInfo:
    width: int
    height: int
    format: str


class ImageValidator:
    """
    Cek struktur + dimensi gambar mentah sebelum diproses.
    Header + verify() dulu; decode piksel penuh hanya setelah dimensi lolos batas.
    """

    def __init__(self, min_size=(100, 100), max_size=(4000, 4000)):
        self.min_width, self.min_height = (int(v) for v in min_size)
        self.max_width, self.max_height = (int(v) for v in max_size)

    def validate(self, image_bytes: bytes) -> ImageInfo:
        if not image_bytes:
            raise ValidationError("Invalid image format: empty payload", ValidationError.UNRECOGNIZED_FORMAT)

        try:
            img = open_image(image_bytes)
            fmt = img.format
            width, height = img.size
            # verify() membaca ulang struktur file (chunk PNG, marker JPEG, ...)
            img.verify()
        except Image.DecompressionBombError as e:
            # header melebihi batas piksel PIL, jauh di atas max_size
            logger.info("Image validation failed: %s", e)
            raise self._too_large(detail=str(e)) from e
        except (UnidentifiedImageError, OSError, SyntaxError, ValueError, struct.error) as e:
            logger.info("Image validation failed: %s", e)
            raise self._unrecognized(detail=str(e)) from e

        if not fmt:
            raise self._unrecognized()

        if width < self.min_width or height < self.min_height:
            raise ValidationError(
                f"Image too small. Minimum dimensions: {self.min_width}x{self.min_height}px",
                ValidationError.TOO_SMALL,
            )

        if width > self.max_width or height > self.max_height:
            raise self._too_large()

        # verify() tidak mendeteksi JPEG terpotong; decode penuh (dibatasi max_size)
        try:
            open_image(image_bytes).load()
        except (OSError, SyntaxError, ValueError, struct.error) as e:
            logger.info("Image validation failed on decode: %s", e)
            raise self._unrecognized(detail=str(e)) from e

        return ImageInfo(width=int(width), height=int(height), format=fmt.lower())

    def _too_large(self, detail: str | None = None) -> ValidationError:
        return ValidationError(
            f"Image too large. Maximum dimensions: {self.max_width}x{self.max_height}px",
            ValidationError.TOO_LARGE,
            detail=detail,
        )

    def _unrecognized(self, detail: str | None = None) -> ValidationError:
        return ValidationError(
            "Invalid image format: unrecognized format",
            ValidationError.UNRECOGNIZED_FORMAT,
            detail=detail,
        )
