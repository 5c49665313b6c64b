"""
Normalize arbitrary source images into a baseline JPEG before uploading.

The conversion is deliberately lossy: EXIF orientation is applied to the
pixels, every metadata block is dropped and transparency is flattened onto
white, which keeps Canva's asset import on its most compatible path.
"""

import io

from PIL import Image, ImageOps, UnidentifiedImageError

from canva_bridge.core.errors import MalformedRequest

JPEG_QUALITY = 92


def _flatten(img: Image.Image) -> Image.Image:
    if img.mode in ("RGB", "L"):
        return img
    if img.mode in ("RGBA", "LA", "PA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return img.convert("RGB")


def normalize_to_jpeg(data: bytes, *, quality: int = JPEG_QUALITY) -> bytes:
    """Return baseline (non-progressive, 4:2:0) JPEG bytes for ``data``."""
    try:
        with Image.open(io.BytesIO(data)) as source:
            # Animated formats contribute their first frame only.
            source.seek(0)
            img = _flatten(ImageOps.exif_transpose(source))
            out = io.BytesIO()
            img.save(
                out,
                format="JPEG",
                quality=quality,
                progressive=False,
                optimize=False,
                subsampling="4:2:0",
            )
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise MalformedRequest("Source image could not be decoded") from exc
    return out.getvalue()


__all__ = ["JPEG_QUALITY", "normalize_to_jpeg"]
