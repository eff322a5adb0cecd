# poultry_app/utils/image_io.py
import base64
import io
import os
import time
import uuid

import numpy as np
from PIL import Image, ImageOps

JPEG_CONTENT_TYPE = "image/jpeg"


def open_image(image_bytes: bytes) -> Image.Image:
    """Buka bytes dengan PIL (lazy, hanya header yang dibaca)."""
    return Image.open(io.BytesIO(image_bytes))


def to_rgb(img: Image.Image, background=(255, 255, 255)) -> Image.Image:
    """
    JPEG tidak punya alpha: flatten RGBA/LA/P ke background putih,
    mode lain cukup di-convert.
    """
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        bg = Image.new("RGB", rgba.size, background)
        bg.paste(rgba, mask=rgba.split()[3])
        return bg
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def encode_jpeg(img: Image.Image, quality: int) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=int(quality))
    return buf.getvalue()


def image_to_base64(image_bytes: bytes) -> str:
    """Bytes -> string base64 untuk payload ML service."""
    return base64.b64encode(image_bytes).decode("utf-8")


def generate_file_name(original_name: str | None, user_id=None, ext: str = ".jpg") -> str:
    """
    "<user_id>_<epoch_ms>_<uuid8>.jpg"

    Buffer hasil kompresi selalu JPEG, jadi ekstensi tidak diambil dari
    nama file asli (original_name hanya dipakai untuk log).
    """
    timestamp = int(time.time() * 1000)
    short = uuid.uuid4().hex[:8]
    ext = "." + ext.lower().lstrip(".") if ext else ".jpg"
    if user_id is not None:
        return f"{user_id}_{timestamp}_{short}{ext}"
    return f"{timestamp}_{short}{ext}"


def safe_basename(name: str | None) -> str:
    # nama file dari client bisa berisi path Windows
    return os.path.basename((name or "").replace("\\", "/")) or "upload"


def create_thumbnail(image_bytes: bytes, size: int = 200, quality: int = 80) -> bytes:
    """
    Thumbnail persegi size x size (crop tengah / "cover"), JPEG.
    """
    img = to_rgb(open_image(image_bytes))
    thumb = ImageOps.fit(img, (size, size), Image.LANCZOS, centering=(0.5, 0.5))
    return encode_jpeg(thumb, quality)


def get_image_analysis(image_bytes: bytes) -> dict:
    """
    Metadata + statistik sederhana channel pertama (brightness = mean,
    contrast = std) untuk ditampilkan di detail.
    """
    img = open_image(image_bytes)
    fmt = img.format
    mode = img.mode
    info = dict(img.info)
    width, height = img.size

    arr = np.asarray(img.convert(mode if mode in ("L", "RGB", "RGBA") else "RGB"), dtype=np.float32)
    first = arr if arr.ndim == 2 else arr[..., 0]

    return {
        "format": (fmt or "").lower() or None,
        "width": int(width),
        "height": int(height),
        "channels": len(img.getbands()),
        "mode": mode,
        "density": info.get("dpi"),
        "has_alpha": "A" in img.getbands() or "transparency" in info,
        "is_progressive": bool(info.get("progressive") or info.get("progression")),
        "size": len(image_bytes),
        "brightness": float(first.mean()) if first.size else None,
        "contrast": float(first.std()) if first.size else None,
    }
