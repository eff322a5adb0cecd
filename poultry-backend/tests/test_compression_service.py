import io

import pytest
from PIL import Image

from poultry_app.core.errors import CompressionError
from poultry_app.services.compression_service import ImageCompressor


def _open(data):
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


def test_default_ladder():
    c = ImageCompressor()
    assert c.quality_ladder() == [80, 70, 60, 50, 40, 30, 20, 10]
    assert c.shrunk_box() == (819, 819)


def test_small_image_is_not_upscaled(image_bytes):
    out = ImageCompressor().compress(image_bytes(300, 200))
    assert (out.width, out.height) == (300, 200)
    assert out.quality == 80
    assert out.attempts == [((1024, 1024), 80)]
    assert out.content_type == "image/jpeg"
    assert _open(out.data).format == "JPEG"


def test_resize_keeps_aspect_ratio(image_bytes):
    out = ImageCompressor().compress(image_bytes(2000, 1000))
    assert (out.width, out.height) == (1024, 512)
    assert out.size == len(out.data)
    assert _open(out.data).size == (1024, 512)


def test_png_with_alpha_is_flattened(image_bytes):
    out = ImageCompressor().compress(image_bytes(400, 400, fmt="PNG", mode="RGBA"))
    assert _open(out.data).mode == "RGB"


def test_stops_at_first_quality_meeting_budget(image_bytes):
    raw = image_bytes(800, 800, noise=True, quality=95)
    probe = ImageCompressor()
    img = probe._decode(raw)
    sizes = {q: len(probe.encode_step(img, (1024, 1024), q)[0]) for q in probe.quality_ladder()}
    budget = sizes[50]

    out = ImageCompressor(max_bytes=budget).compress(raw)

    expected_q = next(q for q in probe.quality_ladder() if sizes[q] <= budget)
    assert out.quality == expected_q
    assert out.size <= budget
    assert [q for _, q in out.attempts] == [q for q in probe.quality_ladder() if q >= expected_q]


def test_exhausted_ladder_returns_last_step(image_bytes):
    raw = image_bytes(1500, 1500, noise=True)
    c = ImageCompressor(max_bytes=100)

    out = c.compress(raw)

    expected = [((1024, 1024), q) for q in [80, 70, 60, 50, 40, 30, 20, 10]] + [((819, 819), 70)]
    assert out.attempts == expected
    assert out.quality == 70
    assert (out.width, out.height) == (819, 819)
    assert out.size > 100

    last, w, h = c.encode_step(c._decode(raw), (819, 819), 70)
    assert out.data == last
    assert (w, h) == (819, 819)


def test_compression_is_deterministic(image_bytes):
    raw = image_bytes(1200, 900, noise=True)
    c = ImageCompressor(max_bytes=200_000)
    assert c.compress(raw).data == c.compress(raw).data


def test_corrupt_input_raises_compression_error(image_bytes):
    data = image_bytes(600, 600, noise=True)
    with pytest.raises(CompressionError):
        ImageCompressor().compress(data[: len(data) // 3])


def test_garbage_raises_compression_error():
    with pytest.raises(CompressionError) as exc:
        ImageCompressor().compress(b"garbage")
    assert exc.value.http_status == 500
