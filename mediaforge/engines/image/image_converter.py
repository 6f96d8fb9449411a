"""
Raster image re-encoding with Pillow.
Supports JPEG, PNG, WebP and GIF output with optional resizing.
SVG sources are rasterized with CairoSVG first.
"""

import io
import logging
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from PIL import Image, UnidentifiedImageError

from ...shared.errors import ImageProcessingError, InputNotFound, InvalidConversionOptions
from ...shared.interfaces import ConversionOptions
from ...shared.utils import FileUtils, atomic_output

logger = logging.getLogger(__name__)

DEFAULT_QUALITY = 80

PIL_FORMATS: Dict[str, str] = {
    'jpg': 'JPEG',
    'jpeg': 'JPEG',
    'png': 'PNG',
    'webp': 'WEBP',
    'gif': 'GIF',
}

LOSSY_FORMATS = ('jpg', 'jpeg', 'webp')


def resolve_target_size(
    source_size: Tuple[int, int],
    width: Optional[int] = None,
    height: Optional[int] = None
) -> Optional[Tuple[int, int]]:
    """
    Work out the output size for a resize request.

    Both dimensions given: used as-is (aspect ratio is not kept).
    One dimension given: the other follows the source aspect ratio.
    Neither: None, meaning no resize.
    """
    if width is None and height is None:
        return None

    src_w, src_h = source_size
    if width is not None and height is not None:
        return (width, height)
    if width is not None:
        return (width, max(1, round(src_h * width / src_w)))
    return (max(1, round(src_w * height / src_h)), height)


def png_compress_level(quality: int) -> int:
    """Map a 1-100 quality hint onto zlib's 0-9 compress level."""
    return max(0, min(9, round((100 - quality) * 9 / 100)))


def rasterize_svg(svg_path: Union[str, Path]) -> bytes:
    """Render an SVG file to PNG bytes at its intrinsic size."""
    # cairosvg loads libcairo on import; only SVG sources need it
    import cairosvg

    try:
        return cairosvg.svg2png(url=str(svg_path))
    except Exception as e:
        raise ImageProcessingError(f"SVG rasterization failed for {svg_path}: {e}") from e


class ImageCodecConverter:
    """Decode -> resize -> encode pipeline for raster images."""

    def __init__(self, default_quality: int = DEFAULT_QUALITY):
        self.default_quality = default_quality

    def convert_image(
        self,
        input_path: Union[str, Path],
        output_path: Union[str, Path],
        format: str,
        options: Optional[ConversionOptions] = None
    ) -> Path:
        """
        Re-encode input_path as format and write it to output_path.

        The encoded bytes are written to a temporary file first and moved
        into place afterwards, so a failed encode never leaves a partial
        output behind.
        """
        input_path = Path(input_path)
        output_path = Path(output_path)
        options = options or ConversionOptions()
        fmt = FileUtils.normalize_format(format)

        if fmt not in PIL_FORMATS:
            raise InvalidConversionOptions(f"Not a raster output format: {format}")
        self._validate_options(options)

        if not input_path.exists():
            raise InputNotFound(input_path)

        quality = options.quality if options.quality is not None else self.default_quality

        try:
            with self._open_source(input_path) as img:
                img.load()
                target_size = resolve_target_size(img.size, options.width, options.height)
                image = img
                if target_size is not None and target_size != img.size:
                    image = img.resize(target_size, Image.Resampling.LANCZOS)

                image = self._prepare_mode(image, fmt)
                save_kwargs = self._save_kwargs(fmt, quality)

                with atomic_output(output_path) as tmp_path:
                    image.save(tmp_path, format=PIL_FORMATS[fmt], **save_kwargs)
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise ImageProcessingError(f"Image conversion failed for {input_path}: {e}") from e

        logger.info(f"Converted image {input_path} -> {output_path} ({fmt})")
        return output_path

    def _open_source(self, input_path: Path) -> Image.Image:
        if FileUtils.get_file_extension(input_path) == 'svg':
            return Image.open(io.BytesIO(rasterize_svg(input_path)))
        return Image.open(input_path)

    def _validate_options(self, options: ConversionOptions):
        if options.quality is not None and not 1 <= options.quality <= 100:
            raise InvalidConversionOptions(f"quality must be between 1 and 100, got {options.quality}")
        for name in ('width', 'height'):
            value = getattr(options, name)
            if value is not None and value <= 0:
                raise InvalidConversionOptions(f"{name} must be positive, got {value}")

    def _prepare_mode(self, image: Image.Image, fmt: str) -> Image.Image:
        """Convert to a pixel mode the target encoder accepts."""
        if fmt in ('jpg', 'jpeg'):
            # JPEG has no alpha: flatten onto white
            if image.mode in ('RGBA', 'LA') or (image.mode == 'P' and 'transparency' in image.info):
                rgba = image.convert('RGBA')
                background = Image.new('RGB', rgba.size, (255, 255, 255))
                background.paste(rgba, mask=rgba.split()[-1])
                return background
            if image.mode != 'RGB':
                return image.convert('RGB')
            return image

        if image.mode == 'CMYK':
            return image.convert('RGB')
        if fmt == 'webp' and image.mode not in ('RGB', 'RGBA'):
            return image.convert('RGBA')
        return image

    def _save_kwargs(self, fmt: str, quality: int) -> Dict[str, object]:
        if fmt in LOSSY_FORMATS:
            return {'quality': quality}
        if fmt == 'png':
            return {'compress_level': png_compress_level(quality)}
        # GIF: no quality parameter
        return {}
