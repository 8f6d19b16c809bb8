"""
ROI Processor Tests - fixed centre crop and detector selection.
"""

import io

import numpy as np
import pytest
from PIL import Image

from roicrop.errors import ImageDecodeError
from roicrop.utils.roi import (
    CenterCropDetector,
    center_box,
    get_detector,
    output_media_type,
)


class TestCenterBox:
    """Crop rectangle arithmetic."""

    def test_800_by_600(self):
        assert center_box(800, 600) == (200, 150, 600, 450)

    def test_odd_dimensions_floor(self):
        """Offsets and sizes are floored independently."""
        assert center_box(801, 601) == (200, 150, 600, 450)
        assert center_box(7, 5) == (1, 1, 4, 3)

    def test_tiny_image_gives_empty_box(self):
        assert center_box(1, 1) == (0, 0, 0, 0)


class TestCenterCropDetector:
    """Bytes in, bytes out, same format."""

    def test_png_content_matches_source_rectangle(self, make_image):
        src = make_image(800, 600, "PNG")

        out = CenterCropDetector().detect_and_crop(src, "image/png")

        cropped = Image.open(io.BytesIO(out))
        assert cropped.format == "PNG"
        assert cropped.size == (400, 300)
        original = np.asarray(Image.open(io.BytesIO(src)))
        assert np.array_equal(np.asarray(cropped), original[150:450, 200:600])

    def test_jpeg_800x600_becomes_400x300(self, make_image):
        src = make_image(800, 600, "JPEG")

        out = CenterCropDetector().detect_and_crop(src, "image/jpeg")

        cropped = Image.open(io.BytesIO(out))
        assert cropped.format == "JPEG"
        assert cropped.size == (400, 300)
        # re-encoding is lossy, so compare within a tolerance
        original = np.asarray(Image.open(io.BytesIO(src))).astype(int)
        diff = np.abs(np.asarray(cropped).astype(int) - original[150:450, 200:600])
        assert diff.mean() < 3

    @pytest.mark.parametrize("fmt", ["PNG", "JPEG", "GIF", "BMP", "WEBP"])
    def test_format_is_preserved(self, make_image, fmt):
        out = CenterCropDetector().detect_and_crop(make_image(101, 57, fmt), "application/octet-stream")

        cropped = Image.open(io.BytesIO(out))
        assert cropped.format == fmt
        assert cropped.size == (50, 28)

    def test_gif_colours_survive_crop(self, make_image):
        src = make_image(64, 48, "GIF")

        out = CenterCropDetector().detect_and_crop(src, "image/gif")

        expected = np.asarray(Image.open(io.BytesIO(src)).convert("RGB"))[12:36, 16:48]
        assert np.array_equal(np.asarray(Image.open(io.BytesIO(out)).convert("RGB")), expected)

    def test_rgba_png_keeps_alpha(self):
        img = Image.new("RGBA", (40, 20), (10, 20, 30, 128))
        buf = io.BytesIO()
        img.save(buf, format="PNG")

        out = Image.open(io.BytesIO(CenterCropDetector().detect_and_crop(buf.getvalue(), "image/png")))

        assert out.mode == "RGBA"
        assert out.getpixel((0, 0)) == (10, 20, 30, 128)

    def test_garbage_raises_decode_error(self):
        with pytest.raises(ImageDecodeError):
            CenterCropDetector().detect_and_crop(b"definitely not an image", "image/png")

    def test_truncated_image_raises_decode_error(self, make_image):
        data = make_image(200, 200, "PNG")

        with pytest.raises(ImageDecodeError):
            CenterCropDetector().detect_and_crop(data[: len(data) // 2], "image/png")

    def test_read_only_format_raises_decode_error(self, xpm_image):
        """Pillow reads XPM but cannot write it."""
        assert Image.open(io.BytesIO(xpm_image)).size == (8, 8)

        with pytest.raises(ImageDecodeError, match="Cannot re-encode XPM"):
            CenterCropDetector().detect_and_crop(xpm_image, "image/x-xpixmap")

    def test_one_pixel_image_cannot_be_cropped(self, make_image):
        with pytest.raises(ImageDecodeError, match="too small"):
            CenterCropDetector().detect_and_crop(make_image(1, 1, "PNG"), "image/png")

    def test_empty_bytes_raise_decode_error(self):
        with pytest.raises(ImageDecodeError):
            CenterCropDetector().detect_and_crop(b"", "image/png")


class TestDetectorRegistry:

    def test_center_crop_by_name(self):
        assert isinstance(get_detector("center-crop"), CenterCropDetector)

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="Unknown ROI detector"):
            get_detector("yolo")


class TestOutputMediaType:

    def test_uses_decoded_format(self, make_image):
        assert output_media_type(make_image(4, 4, "PNG"), "image/jpeg") == "image/png"

    def test_falls_back_to_declared(self):
        assert output_media_type(b"???", "image/heic") == "image/heic"

    def test_falls_back_to_octet_stream(self):
        assert output_media_type(b"???", None) == "application/octet-stream"
