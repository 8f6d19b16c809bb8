import io
from typing import Protocol
from PIL import Image, UnidentifiedImageError
from ..errors import ImageDecodeError

class RoiDetector(Protocol):
    """Turns raw image bytes into the bytes of the region of interest.

    Implementations must return an image encoded in the same format as the
    input so callers can store it under the declared media type.
    """

    def detect_and_crop(self, data: bytes, media_type: str) -> bytes: ...

def center_box(width: int, height: int) -> tuple[int, int, int, int]:
    """Fixed 25%-offset, 50%-size rectangle as a Pillow (left, upper, right, lower) box."""
    x, y = int(width * 0.25), int(height * 0.25)
    w, h = int(width * 0.5), int(height * 0.5)
    return (x, y, x + w, y + h)

def decode_image(data: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except Exception as e:
        raise ImageDecodeError(f"Unsupported image format: {e}") from e
    if not img.format:
        raise ImageDecodeError()
    return img

def output_media_type(data: bytes, declared: str | None) -> str:
    """MIME type of the decoded format, falling back to what the client declared."""
    try:
        fmt = Image.open(io.BytesIO(data)).format
    except (UnidentifiedImageError, OSError):
        fmt = None
    return Image.MIME.get(fmt or "", None) or declared or "application/octet-stream"

class CenterCropDetector:
    """Placeholder detector: crops the centre half of the frame, no content analysis."""

    name = "center-crop"

    def detect_and_crop(self, data: bytes, media_type: str) -> bytes:
        img = decode_image(data)
        # multi-picture JPEGs from phones decode as MPO
        fmt = "JPEG" if img.format == "MPO" else img.format
        left, upper, right, lower = box = center_box(*img.size)
        if right <= left or lower <= upper:
            raise ImageDecodeError(f"Image too small to crop: {img.size[0]}x{img.size[1]}")
        Image.init()
        if fmt not in Image.SAVE:
            raise ImageDecodeError(f"Cannot re-encode {fmt} images")
        roi = img.crop(box)
        buf = io.BytesIO()
        save_kwargs = {}
        if fmt == "JPEG":
            save_kwargs["quality"] = 95
            if roi.mode not in ("RGB", "L", "CMYK"):
                roi = roi.convert("RGB")
        try:
            roi.save(buf, format=fmt, **save_kwargs)
        except (KeyError, OSError, ValueError) as e:
            raise ImageDecodeError(f"Cannot re-encode {fmt} images: {e}") from e
        return buf.getvalue()

DETECTORS = {
    CenterCropDetector.name: CenterCropDetector,
}

def get_detector(name: str) -> RoiDetector:
    try:
        return DETECTORS[name]()
    except KeyError:
        raise ValueError(f"Unknown ROI detector {name!r}; available: {', '.join(sorted(DETECTORS))}")
