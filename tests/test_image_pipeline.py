import base64
import io

import pytest
from PIL import Image

from chital.utils.image_pipeline import (
    bounded_size,
    encode_images_for_request,
    load_image_file,
    prepare_attachment,
    prepare_attachments,
    resize_for_transmission,
)

from conftest import make_image


def _open(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


def test_bounded_size():
    assert bounded_size(3000, 1500, 1024) == (1024, 512)
    assert bounded_size(1500, 3000, 1024) == (512, 1024)
    assert bounded_size(500, 500, 1024) == (500, 500)
    assert bounded_size(1024, 10, 1024) == (1024, 10)


def test_large_attachment_is_scaled_down():
    result = prepare_attachment(make_image(3000, 1500))

    image = _open(result)
    assert image.format == "JPEG"
    assert image.size == (1024, 512)


def test_small_attachment_keeps_size_but_is_reencoded():
    source = make_image(500, 500)

    result = prepare_attachment(source)

    image = _open(result)
    assert image.format == "JPEG"
    assert image.size == (500, 500)
    assert result != source


def test_attachment_with_alpha_is_flattened():
    buffer = io.BytesIO()
    Image.new("RGBA", (40, 20), (255, 0, 0, 128)).save(buffer, "PNG")

    image = _open(prepare_attachment(buffer.getvalue()))
    assert image.mode == "RGB"


def test_attachment_applies_exif_orientation():
    exif = Image.Exif()
    exif[0x0112] = 6  # rotate 90 degrees clockwise
    buffer = io.BytesIO()
    Image.new("RGB", (200, 100), (10, 20, 30)).save(buffer, "JPEG", exif=exif)

    image = _open(prepare_attachment(buffer.getvalue()))
    assert image.size == (100, 200)


def test_undecodable_attachment_falls_back_to_original():
    garbage = b"definitely not an image"
    assert prepare_attachment(garbage) == garbage


def test_empty_attachment_is_dropped():
    assert prepare_attachment(b"") is None


def test_transmission_resize_to_square():
    result = resize_for_transmission(make_image(1024, 512, "JPEG"))

    image = _open(result)
    assert image.format == "JPEG"
    assert image.size == (896, 896)


def test_transmission_resize_fallback():
    garbage = b"\x00\x01\x02"
    assert resize_for_transmission(garbage) == garbage


def test_encode_images_for_request():
    source = make_image(100, 50, "JPEG")

    encoded = encode_images_for_request([source, b""])
    assert len(encoded) == 1
    assert _open(base64.b64decode(encoded[0])).size == (896, 896)

    raw = encode_images_for_request([source], resize=False)
    assert base64.b64decode(raw[0]) == source


@pytest.mark.asyncio
async def test_prepare_attachments_keeps_order(tmp_path):
    path = tmp_path / "picked.png"
    path.write_bytes(make_image(2048, 2048))

    results = await prepare_attachments([
        make_image(3000, 1500),
        b"",
        str(path),
        tmp_path / "missing.png",
        make_image(300, 200),
    ])

    assert [_open(r).size for r in results] == [(1024, 512), (1024, 1024), (300, 200)]


def test_load_image_file_missing(tmp_path):
    assert load_image_file(tmp_path / "nope.png") is None
