"""Format detection and validation for raw image bytes."""
import enum
import io
import logging
import warnings
from dataclasses import dataclass
from typing import Tuple

from PIL import Image, UnidentifiedImageError
from pillow_heif import register_heif_opener

from medialib.errors import DecodeError

register_heif_opener()

logger = logging.getLogger(__name__)

class FormatTag(str, enum.Enum):
    JPEG = "JPEG"
    PNG = "PNG"
    WEBP = "WEBP"
    GIF = "GIF"
    BMP = "BMP"
    TIFF = "TIFF"
    HEIF = "HEIF"
    UNKNOWN = "UNKNOWN"

_MIME_TYPES = {
    FormatTag.JPEG: "image/jpeg",
    FormatTag.PNG: "image/png",
    FormatTag.WEBP: "image/webp",
    FormatTag.GIF: "image/gif",
    FormatTag.BMP: "image/bmp",
    FormatTag.TIFF: "image/tiff",
    FormatTag.HEIF: "image/heif",
}

_EXTENSIONS = {
    FormatTag.JPEG: ".jpg",
    FormatTag.PNG: ".png",
    FormatTag.WEBP: ".webp",
    FormatTag.GIF: ".gif",
    FormatTag.BMP: ".bmp",
    FormatTag.TIFF: ".tif",
    FormatTag.HEIF: ".heic",
}

# errors Pillow raises for data it cannot read
_DECODE_ERRORS = (UnidentifiedImageError, OSError, SyntaxError, ValueError, EOFError, Image.DecompressionBombError)

@dataclass(frozen=True)
class ImageInfo:
    format: FormatTag
    width: int
    height: int

    @property
    def mime_type(self) -> str:
        return mime_type_for(self.format)

    @property
    def extension(self) -> str:
        return extension_for(self.format)

def to_format_tag(pil_format: str | None) -> FormatTag:
    if not pil_format:
        return FormatTag.UNKNOWN
    name = pil_format.upper()
    if name == "MPO":  # multi-picture JPEG from phone cameras
        return FormatTag.JPEG
    try:
        return FormatTag(name)
    except ValueError:
        return FormatTag.UNKNOWN

def mime_type_for(fmt: FormatTag) -> str:
    return _MIME_TYPES.get(fmt, "application/octet-stream")

def extension_for(fmt: FormatTag) -> str:
    return _EXTENSIONS.get(fmt, ".bin")

def validate(data: bytes) -> bool:
    """True when the bytes fully decode as a supported raster image."""
    if not data:
        return False
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("error", Image.DecompressionBombWarning)
            with Image.open(io.BytesIO(data)) as img:
                if to_format_tag(img.format) is FormatTag.UNKNOWN:
                    return False
                img.load()
    except (_DECODE_ERRORS + (Image.DecompressionBombWarning,)) as e:
        logger.debug("Rejected image bytes: %s", e)
        return False
    return True

def detect_format(data: bytes) -> FormatTag:
    if not data:
        return FormatTag.UNKNOWN
    try:
        with Image.open(io.BytesIO(data)) as img:
            return to_format_tag(img.format)
    except _DECODE_ERRORS:
        return FormatTag.UNKNOWN

def inspect(data: bytes) -> ImageInfo:
    """Format and dimensions from a header read. Callers validate first."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return ImageInfo(format=to_format_tag(img.format), width=img.width, height=img.height)
    except _DECODE_ERRORS as e:
        raise DecodeError(f"Cannot read image header: {e}")

def probe(data: bytes) -> Tuple[int, int]:
    info = inspect(data)
    return info.width, info.height
