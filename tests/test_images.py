"""
Tests for image resizing, data URLs and URL import.
"""

import base64

import httpx
import pytest

from espelho.services.images import (
    ImageImportError,
    ImageProcessingError,
    decode_base64_image,
    fit_within,
    parse_data_url,
    resize_data_url,
    resize_image,
    strip_data_url_prefix,
    to_data_url,
    url_to_base64,
)
from tests.conftest import image_size, make_image_bytes


class TestFitWithin:
    def test_landscape_is_bounded_by_width(self):
        assert fit_within(1600, 1200, 800, 800) == (800, 600)

    def test_portrait_is_bounded_by_height(self):
        assert fit_within(1000, 2000, 800, 800) == (400, 800)

    def test_small_images_are_not_upscaled(self):
        assert fit_within(300, 200, 800, 800) == (300, 200)


class TestResizeImage:
    @pytest.mark.parametrize("size", [(1600, 1200), (900, 3000), (801, 801)])
    def test_output_fits_box_and_keeps_aspect(self, size):
        width, height = size
        out = resize_image(make_image_bytes(width, height))
        out_w, out_h = image_size(out)

        assert out_w <= 800 and out_h <= 800
        assert abs(out_w / out_h - width / height) < 0.01

    def test_small_image_keeps_size(self):
        out = resize_image(make_image_bytes(120, 90))
        assert image_size(out) == (120, 90)

    def test_output_is_jpeg(self):
        out = resize_image(make_image_bytes(50, 50, fmt="PNG"))
        assert out[:3] == b"\xff\xd8\xff"

    def test_rgba_is_converted(self):
        from io import BytesIO
        from PIL import Image

        buffer = BytesIO()
        Image.new("RGBA", (40, 40), (0, 0, 0, 0)).save(buffer, format="PNG")
        out = resize_image(buffer.getvalue())
        assert image_size(out) == (40, 40)

    def test_garbage_raises(self):
        with pytest.raises(ImageProcessingError):
            resize_image(b"definitely not an image")

    def test_decompression_bomb_raises_processing_error(self, monkeypatch):
        from PIL import Image

        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)
        with pytest.raises(ImageProcessingError):
            resize_image(make_image_bytes(64, 48))

    def test_resize_data_url_returns_jpeg_data_url(self):
        data_url = to_data_url(make_image_bytes(1000, 500), "image/png")
        resized = resize_data_url(data_url)

        assert resized.startswith("data:image/jpeg;base64,")
        _, raw = parse_data_url(resized)
        assert image_size(raw) == (800, 400)


class TestDataUrls:
    def test_parse_data_url(self):
        mime, data = parse_data_url("data:image/png;base64," + base64.b64encode(b"abc").decode())
        assert mime == "image/png"
        assert data == b"abc"

    def test_bare_base64_is_jpeg(self):
        mime, data = parse_data_url(base64.b64encode(b"xyz").decode())
        assert mime == "image/jpeg"
        assert data == b"xyz"

    def test_empty_raises(self):
        with pytest.raises(ImageProcessingError):
            parse_data_url("")

    def test_strip_prefix(self):
        assert strip_data_url_prefix("data:image/jpeg;base64,QUJD") == "QUJD"
        assert strip_data_url_prefix("QUJD") == "QUJD"

    def test_strict_decode(self):
        assert decode_base64_image("QUJD") == b"ABC"
        assert decode_base64_image("data:image/png;base64,QUJD") == b"ABC"

    @pytest.mark.parametrize("value", ["", "   ", "not base64!!", "QUJ"])
    def test_strict_decode_rejects_garbage(self, value):
        with pytest.raises(ImageProcessingError):
            decode_base64_image(value)


class TestUrlImport:
    async def test_uses_image_proxy_first(self):
        seen = []

        def handler(request: httpx.Request):
            seen.append(request.url.host)
            return httpx.Response(200, content=b"jpeg-bytes", headers={"content-type": "image/jpeg"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            image = await url_to_base64("https://shop.example/a.png", client=client)

        assert image.data == b"jpeg-bytes"
        assert image.mime_type == "image/jpeg"
        assert seen == ["wsrv.nl"]

    async def test_falls_back_to_direct_fetch(self):
        def handler(request: httpx.Request):
            if request.url.host == "wsrv.nl":
                return httpx.Response(502)
            return httpx.Response(200, content=b"png-bytes", headers={"content-type": "image/png; charset=binary"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            image = await url_to_base64("https://shop.example/a.png", client=client)

        assert image.data == b"png-bytes"
        assert image.mime_type == "image/png"
        assert image.data_url.startswith("data:image/png;base64,")

    async def test_both_fail(self):
        def handler(request: httpx.Request):
            return httpx.Response(403)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(ImageImportError) as exc:
                await url_to_base64("https://shop.example/a.png", client=client)

        assert "upload manual" in exc.value.message
