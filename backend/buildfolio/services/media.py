"""
Image crop/resize before upload: center crop to a fixed aspect ratio,
scale to fixed pixel dimensions, re-encode as JPEG.
"""
import io
from dataclasses import dataclass
from pathlib import PurePath

from PIL import Image, UnidentifiedImageError

from buildfolio.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_JPEG_QUALITY = 90


class MediaTransformError(Exception):
    """Raised when the source image cannot be read or re-encoded."""

    pass


@dataclass(frozen=True)
class ImageTransformOptions:
    aspect_ratio: float
    width: int
    height: int
    quality: int = DEFAULT_JPEG_QUALITY


@dataclass(frozen=True)
class TransformedImage:
    filename: str
    content: bytes
    content_type: str = "image/jpeg"


PROFILE_PHOTO = ImageTransformOptions(aspect_ratio=1, width=800, height=800)
PROJECT_IMAGE = ImageTransformOptions(aspect_ratio=16 / 9, width=1600, height=900)

PRESETS: dict[str, ImageTransformOptions] = {
    "profile_photo": PROFILE_PHOTO,
    "project_image": PROJECT_IMAGE,
}


def center_crop_box(
    source_width: int, source_height: int, aspect_ratio: float
) -> tuple[float, float, float, float]:
    """Largest centered (left, top, right, bottom) box with the given width/height ratio."""
    crop_width = float(source_width)
    crop_height = float(source_height)
    left = top = 0.0
    source_ratio = source_width / source_height
    if source_ratio > aspect_ratio:
        crop_width = source_height * aspect_ratio
        left = (source_width - crop_width) / 2
    elif source_ratio < aspect_ratio:
        crop_height = source_width / aspect_ratio
        top = (source_height - crop_height) / 2
    return left, top, left + crop_width, top + crop_height


def _to_rgb(img: Image.Image) -> Image.Image:
    """Flatten transparency onto white; JPEG has no alpha channel."""
    if img.mode in ("RGBA", "LA", "P"):
        if img.mode == "P":
            img = img.convert("RGBA")
        background = Image.new("RGB", img.size, (255, 255, 255))
        background.paste(img, mask=img.split()[-1])
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def optimized_filename(filename: str) -> str:
    stem = PurePath(filename or "image").stem or "image"
    return f"{stem}-optimized.jpg"


def crop_and_resize(
    content: bytes, filename: str, options: ImageTransformOptions
) -> TransformedImage:
    """
    Produce a JPEG of exactly options.width x options.height from the
    centered crop of the source. Raises MediaTransformError for unreadable input.
    """
    if options.width <= 0 or options.height <= 0 or options.aspect_ratio <= 0:
        raise MediaTransformError("Invalid image dimensions requested.")
    try:
        with Image.open(io.BytesIO(content)) as source:
            source.load()
            img = _to_rgb(source)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.info("Unreadable image upload", extra={"image_name": filename, "error": str(e)[:200]})
        raise MediaTransformError("Unable to read selected image.") from e

    box = center_crop_box(img.width, img.height, options.aspect_ratio)
    resized = img.resize(
        (options.width, options.height), resample=Image.Resampling.LANCZOS, box=box
    )
    buffer = io.BytesIO()
    try:
        resized.save(buffer, format="JPEG", quality=options.quality)
    except OSError as e:
        raise MediaTransformError("Image transformation failed.") from e
    return TransformedImage(filename=optimized_filename(filename), content=buffer.getvalue())
