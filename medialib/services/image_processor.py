import io
import logging
from typing import Dict, Iterable, Tuple

from PIL import Image, ImageOps

from medialib.errors import DecodeError, MediaLibraryError
from medialib.models import ResizeMode
from medialib.services.asset_store import AssetStore
from medialib.services.image_probe import FormatTag, detect_format, extension_for
from medialib.utils.paths import variant_path

logger = logging.getLogger(__name__)

# sources that may carry transparency and are not already web-optimized
LOSSLESS_SOURCES = {FormatTag.PNG, FormatTag.GIF, FormatTag.TIFF, FormatTag.BMP}

class ImageProcessor:
    @staticmethod
    def load(data: bytes) -> Image.Image:
        """Decode bytes into an upright image (EXIF orientation applied)."""
        try:
            with Image.open(io.BytesIO(data)) as loaded:
                image = ImageOps.exif_transpose(loaded)
                image.load()
        except Exception as e:
            raise DecodeError(f"Image decoding failed: {e}")
        # palette and bilevel images only resample with NEAREST
        if image.mode in ("P", "1"):
            image = image.convert("RGBA")
        elif image.mode == "CMYK":
            image = image.convert("RGB")
        return image

    @staticmethod
    def resize(image: Image.Image, width: int, height: int, mode: ResizeMode = ResizeMode.FIT) -> Image.Image:
        if width <= 0 or height <= 0:
            raise ValueError(f"Target size must be positive, got {width}x{height}")
        mode = ResizeMode(mode)
        if mode is ResizeMode.CROP:
            return ImageOps.fit(image, (width, height), method=Image.Resampling.LANCZOS, centering=(0.5, 0.5))
        if mode is ResizeMode.STRETCH:
            return image.resize((width, height), Image.Resampling.LANCZOS)

        # FIT: only ever shrink, never exceed the box
        w, h = image.size
        scale = min(1.0, width / w, height / h)
        if scale >= 1.0:
            return image.copy()
        new_size = (max(1, round(w * scale)), max(1, round(h * scale)))
        return image.resize(new_size, Image.Resampling.LANCZOS)

    @staticmethod
    def choose_output_format(source_format: FormatTag) -> FormatTag:
        if source_format in LOSSLESS_SOURCES:
            return FormatTag.PNG
        return FormatTag.WEBP

    @staticmethod
    def encode(image: Image.Image, fmt: FormatTag, quality: int) -> bytes:
        if not 0 <= quality <= 100:
            raise ValueError(f"Quality must be between 0 and 100, got {quality}")
        buffer = io.BytesIO()
        if fmt is FormatTag.PNG:
            if image.mode not in ("RGB", "RGBA", "L", "LA", "P"):
                image = image.convert("RGBA")
            image.save(buffer, format="PNG", optimize=True)
        elif fmt is FormatTag.WEBP:
            if image.mode not in ("RGB", "RGBA"):
                image = image.convert("RGBA" if "A" in image.getbands() or image.mode == "P" else "RGB")
            image.save(buffer, format="WEBP", quality=quality, method=4)
        elif fmt is FormatTag.JPEG:
            if image.mode != "RGB":
                # flatten transparency onto white
                rgba = image.convert("RGBA")
                background = Image.new("RGB", rgba.size, (255, 255, 255))
                background.paste(rgba, mask=rgba.split()[-1])
                image = background
            image.save(buffer, format="JPEG", quality=quality, optimize=True)
        else:
            raise ValueError(f"Unsupported output format: {fmt}")
        return buffer.getvalue()

    @staticmethod
    def optimize_for_web(image: Image.Image, quality: int = 85) -> bytes:
        """Compact display rendition, always WebP."""
        return ImageProcessor.encode(image, FormatTag.WEBP, quality)

    @staticmethod
    def render_variant(data: bytes, width: int, height: int, mode: ResizeMode, quality: int) -> Tuple[bytes, FormatTag]:
        source_format = detect_format(data)
        image = ImageProcessor.load(data)
        resized = ImageProcessor.resize(image, width, height, mode)
        fmt = ImageProcessor.choose_output_format(source_format)
        return ImageProcessor.encode(resized, fmt, quality), fmt

    @staticmethod
    def generate_variant_set(
        asset_id: str,
        original: bytes,
        sizes: Iterable[Tuple],
        store: AssetStore,
        prefix: str,
        quality: int = 85,
    ) -> Dict[str, str]:
        """Resize every (label, width, height[, mode]) and write it through the store.

        Entries without a mode are cropped to fill, so grid thumbnails stay uniform.

        A size that fails is logged and left out of the result; the rest of the
        batch still runs.
        """
        variants: Dict[str, str] = {}
        try:
            image = ImageProcessor.load(original)
        except DecodeError as e:
            logger.error("Cannot generate variants for asset %s: %s", asset_id, e)
            return variants
        fmt = ImageProcessor.choose_output_format(detect_format(original))

        for entry in sizes:
            label, width, height = entry[:3]
            mode = entry[3] if len(entry) > 3 else ResizeMode.CROP
            try:
                path = variant_path(prefix, asset_id, label, width, height, extension_for(fmt))
                thumb = ImageProcessor.resize(image, width, height, mode)
                store.save(path, ImageProcessor.encode(thumb, fmt, quality))
            except (MediaLibraryError, ValueError, OSError) as e:
                logger.warning("Skipping variant %s (%dx%d) for asset %s: %s", label, width, height, asset_id, e)
                continue
            variants[label] = path
        return variants
