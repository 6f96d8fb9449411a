"""
mediaforge - format conversion and visible watermarking for uploaded media.
"""

from .engines.file_converter import FileConverterService
from .engines.watermark_service import WatermarkService
from .engines.image.visible_watermark import WatermarkSpec, WatermarkType, PositionType
from .shared.interfaces import BatchInput, BatchItem, ConversionOptions

__version__ = "1.0.0"

__all__ = [
    'FileConverterService',
    'WatermarkService',
    'WatermarkSpec',
    'WatermarkType',
    'PositionType',
    'BatchInput',
    'BatchItem',
    'ConversionOptions',
]
