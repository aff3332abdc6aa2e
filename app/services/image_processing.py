"""
Image normalization for uploads.

Decodes an uploaded image with Pillow, optionally resizes it, and re-encodes
it as lossy WebP. Output is checked (non-empty, really WebP) before being
handed back. When conversion or the check fails, callers can ask for the
original bytes instead of an error.
"""

from dataclasses import dataclass, replace
from PIL import Image, ImageOps, UnidentifiedImageError
from app.config import settings
from app.utils.exceptions import ImageProcessingError, UnsupportedFileTypeError
from typing import Optional, Tuple
from pathlib import Path
import io
import logging
import time
import uuid

logger = logging.getLogger(__name__)

WEBP_EXTENSION = "webp"
WEBP_CONTENT_TYPE = "image/webp"
DEFAULT_FALLBACK_EXTENSION = "jpg"

FIT_MODES = ("cover", "contain", "fill", "inside", "outside")

# Pillow format name -> file extension, where they differ
_FORMAT_EXTENSIONS = {
    "JPEG": "jpg",
    "MPO": "jpg",
    "TIFF": "tiff",
}


@dataclass(frozen=True)
class ImageProcessingOptions:
    """Encoder and resize settings for a single conversion."""
    quality: int = 85
    width: Optional[int] = None
    height: Optional[int] = None
    fit: str = "cover"
    effort: int = 6
    lossless: bool = False
    allow_enlargement: bool = False
    validate_output: bool = True
    fallback_to_original: bool = False

    @classmethod
    def from_settings(cls, **overrides) -> "ImageProcessingOptions":
        """Options used by the upload endpoints, taken from configuration."""
        defaults = {
            "quality": settings.image_quality,
            "width": settings.image_max_width,
            "height": settings.image_max_height,
            "fit": settings.image_fit,
            "effort": settings.image_effort,
        }
        defaults.update(overrides)
        return cls(**defaults)


@dataclass(frozen=True)
class ConversionResult:
    data: bytes
    extension: str
    format: str
    width: Optional[int] = None
    height: Optional[int] = None
    converted: bool = True


@dataclass(frozen=True)
class ProcessedImage:
    """An image ready to be stored, with the name and type it should be stored under."""
    data: bytes
    filename: str
    content_type: str
    format: str
    width: Optional[int]
    height: Optional[int]
    converted: bool
    original_size: int

    @property
    def size(self) -> int:
        return len(self.data)


def generate_filename(extension: str = WEBP_EXTENSION) -> str:
    """Unique name of the form ``<epoch millis>-<random>.<ext>``."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}.{extension}"


def detect_format(data: bytes) -> Optional[str]:
    """Pillow format name of ``data`` (e.g. "JPEG"), or None if it cannot be identified."""
    if not data:
        return None
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.format
    except (UnidentifiedImageError, OSError, ValueError):
        return None


def original_extension(data: bytes, filename: Optional[str] = None) -> str:
    """
    Extension to keep when falling back to the original bytes:
    the detected format, else the filename's suffix, else jpg.
    """
    image_format = detect_format(data)
    if image_format:
        return _FORMAT_EXTENSIONS.get(image_format, image_format.lower())
    if filename:
        suffix = Path(filename).suffix.lower().lstrip(".")
        if suffix:
            return "jpg" if suffix == "jpeg" else suffix
    return DEFAULT_FALLBACK_EXTENSION


def _target_size(source: Tuple[int, int], options: ImageProcessingOptions) -> Tuple[int, int]:
    src_w, src_h = source
    width, height = options.width, options.height

    # Only one dimension given: scale the other to keep the aspect ratio
    if width and not height:
        return width, max(1, round(src_h * width / src_w))
    if height and not width:
        return max(1, round(src_w * height / src_h)), height
    return width, height


def _resize(img: Image.Image, options: ImageProcessingOptions) -> Image.Image:
    if options.fit not in FIT_MODES:
        raise ImageProcessingError(f"Unsupported fit mode '{options.fit}'")

    target = _target_size(img.size, options)
    if not (options.width and options.height):
        return img.resize(target, Image.Resampling.LANCZOS)

    if options.fit == "fill":
        return img.resize(target, Image.Resampling.LANCZOS)
    if options.fit == "cover":
        return ImageOps.fit(img, target, Image.Resampling.LANCZOS)
    if options.fit == "contain":
        background = (0, 0, 0, 0) if img.mode == "RGBA" else (0, 0, 0)
        return ImageOps.pad(img, target, Image.Resampling.LANCZOS, color=background)

    # inside / outside keep the aspect ratio and never crop
    ratios = (target[0] / img.width, target[1] / img.height)
    ratio = min(ratios) if options.fit == "inside" else max(ratios)
    if not options.allow_enlargement:
        ratio = min(ratio, 1.0)
    if ratio == 1.0:
        return img
    new_size = (max(1, round(img.width * ratio)), max(1, round(img.height * ratio)))
    return img.resize(new_size, Image.Resampling.LANCZOS)


def _encodable(img: Image.Image) -> Image.Image:
    """WebP only takes RGB(A); keep alpha when the source has any."""
    if img.mode in ("RGB", "RGBA"):
        return img
    has_alpha = img.mode in ("LA", "PA") or (img.mode == "P" and "transparency" in img.info)
    return img.convert("RGBA" if has_alpha else "RGB")


def _validation_problem(output: bytes) -> Optional[str]:
    if not output:
        return "output buffer is empty"
    output_format = detect_format(output)
    if output_format != "WEBP":
        return f"output format is {output_format or 'unknown'}, expected WEBP"
    return None


def _fallback(data: bytes, filename: Optional[str], reason: str) -> ConversionResult:
    extension = original_extension(data, filename)
    logger.warning(f"WebP conversion fell back to original .{extension} bytes: {reason}")
    return ConversionResult(
        data=data,
        extension=extension,
        format=detect_format(data) or extension.upper(),
        converted=False,
    )


def convert_to_webp(
    data: bytes,
    options: Optional[ImageProcessingOptions] = None,
    filename: Optional[str] = None
) -> ConversionResult:
    """
    Re-encode an image as WebP.

    Args:
        data: Raw image bytes
        options: Resize/encoder settings; defaults to quality 85, effort 6, no resize
        filename: Original filename, only used to pick a fallback extension

    Returns:
        ConversionResult with WebP bytes, or the original bytes when
        fallback_to_original is set and conversion did not produce valid WebP

    Raises:
        ImageProcessingError: Empty input, or conversion/validation failure with fallback disabled
    """
    options = options or ImageProcessingOptions()

    if not data:
        raise ImageProcessingError("Input buffer is empty")

    try:
        with Image.open(io.BytesIO(data)) as source:
            source.load()
            if not source.width or not source.height:
                raise ImageProcessingError("Invalid image metadata: missing dimensions")

            img = _encodable(source)
            if options.width or options.height:
                img = _resize(img, options)

            buffer = io.BytesIO()
            img.save(
                buffer,
                format="WEBP",
                quality=options.quality,
                method=options.effort,
                lossless=options.lossless,
            )
            output = buffer.getvalue()
            width, height = img.size
    except Exception as e:
        if options.fallback_to_original:
            return _fallback(data, filename, str(e))
        if isinstance(e, ImageProcessingError):
            raise
        raise ImageProcessingError(f"Failed to convert image to WebP: {e}", cause=e)

    if options.validate_output:
        problem = _validation_problem(output)
        if problem:
            if options.fallback_to_original:
                return _fallback(data, filename, problem)
            raise ImageProcessingError(f"WebP conversion validation failed: {problem}")

    logger.debug(f"Converted image to WebP: {len(data)} -> {len(output)} bytes ({width}x{height})")
    return ConversionResult(
        data=output,
        extension=WEBP_EXTENSION,
        format="WEBP",
        width=width,
        height=height,
    )


def process_image_file(
    data: bytes,
    filename: str,
    content_type: Optional[str],
    options: Optional[ImageProcessingOptions] = None
) -> ProcessedImage:
    """
    Normalize an uploaded file for storage.

    Raises:
        UnsupportedFileTypeError: If the content type is not image/*; checked before decoding
        ImageProcessingError: If conversion fails and fallback is disabled
    """
    if not content_type or not content_type.startswith(settings.allowed_mime_prefix):
        raise UnsupportedFileTypeError(content_type or "unknown", filename)

    result = convert_to_webp(data, options or ImageProcessingOptions(), filename=filename)

    return ProcessedImage(
        data=result.data,
        filename=generate_filename(result.extension),
        content_type=WEBP_CONTENT_TYPE if result.converted else content_type,
        format=result.format,
        width=result.width,
        height=result.height,
        converted=result.converted,
        original_size=len(data),
    )


def process_image_file_safe(
    data: bytes,
    filename: str,
    content_type: Optional[str],
    options: Optional[ImageProcessingOptions] = None
) -> ProcessedImage:
    """
    Like process_image_file, but a failed conversion yields the original bytes
    (under their own extension and content type) instead of an error.
    """
    options = replace(
        options or ImageProcessingOptions.from_settings(),
        fallback_to_original=True,
        validate_output=True,
    )
    return process_image_file(data, filename, content_type, options)
