"""
File-level visible watermarking: reads the base image, builds an overlay of
the same size, composites it and writes {basename}_watermarked{ext}.
"""
import logging
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Union

from PIL import Image, UnidentifiedImageError

from ..shared.config import AppConfig, get_settings
from ..shared.errors import ImageProcessingError, InputNotFound, MetadataUnavailable
from ..shared.interfaces import BatchInput, BatchItem
from ..shared.utils import FileUtils, atomic_output
from .batch import BatchOrchestrator
from .image.visible_watermark import VisibleWatermarkProcessor, WatermarkSpec

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Pillow encoder names by extension, for inputs whose format Pillow did not record.
_FORMATS_BY_EXTENSION = {
    'jpg': 'JPEG', 'jpeg': 'JPEG', 'png': 'PNG', 'webp': 'WEBP',
    'gif': 'GIF', 'tif': 'TIFF', 'tiff': 'TIFF', 'bmp': 'BMP',
}


class WatermarkService:
    """Applies visible watermarks to image files."""

    def __init__(self, config: Optional[AppConfig] = None,
                 processor: Optional[VisibleWatermarkProcessor] = None):
        config = config or get_settings()
        settings = config.watermark
        self.processor = processor or VisibleWatermarkProcessor(
            font_paths=settings.font_paths,
            corner_margin=settings.corner_margin,
            default_opacity=settings.default_opacity,
        )
        self.settings = settings
        self.batch = BatchOrchestrator(max_workers=config.converter.max_workers)

    def apply_watermark(self, input_path: PathLike, spec: Union[WatermarkSpec, Mapping[str, Any]]) -> Path:
        """
        Watermark input_path and return the path of the new file.

        Raises InputNotFound, InvalidWatermarkSpec, MetadataUnavailable or
        ImageProcessingError.
        """
        input_path = Path(input_path)
        if not isinstance(spec, WatermarkSpec):
            spec = self._spec_from_dict(spec)

        if not input_path.exists():
            raise InputNotFound(input_path)
        spec.validate()

        try:
            with Image.open(input_path) as base:
                base.load()
                base_format = base.format
                width, height = base.size
                if not width or not height:
                    raise MetadataUnavailable(f"Could not retrieve image metadata for {input_path}")
                base_image = base.copy()
        except (UnidentifiedImageError, OSError) as e:
            raise MetadataUnavailable(f"Could not retrieve image metadata for {input_path}: {e}") from e

        overlay = self.processor.build_overlay((width, height), spec)
        result = self.processor.apply_watermark(base_image, overlay)

        output_path = FileUtils.watermarked_output_path(input_path)
        self._save(result, base_image, base_format, output_path)

        logger.info(f"Watermarked {input_path} -> {output_path} "
                    f"({spec.kind.value}, {spec.position.value})")
        return output_path

    def apply_watermark_batch(self, inputs: Iterable[Union[BatchInput, PathLike]],
                              default_spec: Union[WatermarkSpec, Mapping[str, Any]]) -> List[BatchItem]:
        """
        Watermark several images; one failing image never stops the others.

        A BatchInput's options may be a WatermarkSpec (used as-is) or a
        mapping of fields that override default_spec.
        """
        if not isinstance(default_spec, WatermarkSpec):
            default_spec = self._spec_from_dict(default_spec)
        entries = [entry if isinstance(entry, BatchInput) else BatchInput(path=entry) for entry in inputs]

        def _watermark_entry(entry: BatchInput) -> Path:
            return self.apply_watermark(entry.path, default_spec.merged_with(entry.options))

        return self.batch.run(entries, _watermark_entry, describe=lambda entry: str(entry.path))

    def _spec_from_dict(self, data: Mapping[str, Any]) -> WatermarkSpec:
        return WatermarkSpec.from_dict(
            data,
            default_opacity=self.settings.default_opacity,
            default_scale=self.settings.default_scale,
            default_color=self.settings.default_color,
        )

    def _save(self, result: Image.Image, base_image: Image.Image,
              base_format: Optional[str], output_path: Path):
        """Encode in the input's own format, keeping alpha only where the input had it."""
        fmt = base_format or _FORMATS_BY_EXTENSION.get(FileUtils.get_file_extension(output_path))
        if fmt is None:
            raise ImageProcessingError(f"Cannot determine output format for {output_path}")

        has_alpha = 'A' in base_image.getbands() or 'transparency' in base_image.info
        if fmt == 'JPEG' or not has_alpha:
            result = result.convert('RGB')

        try:
            with atomic_output(output_path) as tmp_path:
                result.save(tmp_path, format=fmt)
        except (OSError, ValueError) as e:
            raise ImageProcessingError(f"Failed to write {output_path}: {e}") from e
