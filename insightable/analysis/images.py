from PIL import Image, UnidentifiedImageError
import io
import logging
import os

from insightable.analysis.errors import UploadError

LOGGER = logging.getLogger(__name__)

JPEG_QUALITY = 80


def to_jpeg(content: bytes, quality: int = JPEG_QUALITY) -> bytes:
    """Re-encode an image as JPEG before upload. Transparent areas are flattened onto white."""
    try:
        with Image.open(io.BytesIO(content)) as image:
            if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
                rgba = image.convert("RGBA")
                image = Image.new("RGB", rgba.size, (255, 255, 255))
                image.paste(rgba, mask=rgba.getchannel("A"))
            elif image.mode not in ("RGB", "L"):
                image = image.convert("RGB")
            buffer = io.BytesIO()
            image.save(buffer, format="JPEG", quality=quality)
    except (UnidentifiedImageError, OSError) as e:
        LOGGER.error(f"Failed to process image: {e}")
        raise UploadError("Failed to process image.") from e
    LOGGER.debug(f"Converted image of {len(content)} bytes to JPEG of {buffer.tell()} bytes")
    return buffer.getvalue()


def jpeg_filename(filename: str) -> str:
    base, _ = os.path.splitext(os.path.basename(filename) or "image")
    return f"{base or 'image'}.jpg"
