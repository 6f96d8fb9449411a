"""
Conversion dispatcher: routes an input file and a target format to the
image codec converter or the office document converter.
"""
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from ..shared.config import AppConfig, get_settings
from ..shared.errors import InputNotFound
from ..shared.interfaces import BatchInput, BatchItem, ConversionOptions, ConversionSpec
from ..shared.utils import FileUtils
from . import formats
from .batch import BatchOrchestrator
from .document.conversion_service import LibreOfficeConverter
from .formats import ConversionStrategy
from .image.image_converter import ImageCodecConverter

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class FileConverterService:
    """Entry point for single-file and batch format conversion."""

    def __init__(self, config: Optional[AppConfig] = None,
                 image_converter: Optional[ImageCodecConverter] = None,
                 document_converter: Optional[LibreOfficeConverter] = None):
        settings = (config or get_settings()).converter
        self.image_converter = image_converter or ImageCodecConverter(settings.default_quality)
        self.document_converter = document_converter or LibreOfficeConverter(
            soffice_path=settings.soffice_path,
            timeout=settings.timeout_seconds,
            temp_dir=settings.temp_dir,
            max_concurrent=settings.max_concurrent_tools,
            verify_output=settings.verify_output,
        )
        self.batch = BatchOrchestrator(max_workers=settings.max_workers)

    def convert(self, input_path: PathLike, target_format: str,
                options: Optional[ConversionOptions] = None) -> Path:
        """
        Convert input_path to target_format.

        Returns the path of {basename}_converted.{format} next to the input.
        The target format is checked against the whitelist before the
        filesystem is touched.
        """
        spec = ConversionSpec(
            input_path=Path(input_path),
            target_format=formats.validate_target_format(target_format),
            options=options or ConversionOptions(),
        )
        return self._convert_spec(spec)

    def _convert_spec(self, spec: ConversionSpec) -> Path:
        if not spec.input_path.exists():
            raise InputNotFound(spec.input_path)

        source = FileUtils.get_file_extension(spec.input_path)
        strategy = formats.route(source, spec.target_format)
        output_path = FileUtils.converted_output_path(spec.input_path, spec.target_format)

        if strategy == ConversionStrategy.IMAGE:
            return self.image_converter.convert_image(
                spec.input_path, output_path, spec.target_format, spec.options
            )
        return self.document_converter.convert_document(
            spec.input_path, output_path, spec.target_format
        )

    def convert_batch(self, inputs: Iterable[Union[BatchInput, PathLike]], default_format: str,
                      default_options: Optional[ConversionOptions] = None) -> List[BatchItem]:
        """
        Convert several files; one failing file never stops the others.

        Each input may carry its own format and options, which override
        default_format/default_options field by field.
        """
        default_options = default_options or ConversionOptions()
        entries = [entry if isinstance(entry, BatchInput) else BatchInput(path=entry) for entry in inputs]

        def _convert_entry(entry: BatchInput) -> Path:
            return self.convert(
                entry.path,
                entry.format or default_format,
                default_options.merged_with(entry.options),
            )

        return self.batch.run(entries, _convert_entry, describe=lambda entry: str(entry.path))

    def extract_text(self, input_path: PathLike) -> str:
        """Extract the plain text of a document via LibreOffice."""
        return self.document_converter.extract_text(input_path)

    def get_supported_formats(self) -> Dict[str, List[str]]:
        return formats.get_supported_formats()
