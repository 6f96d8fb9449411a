"""
Conversion and watermark engines.
"""

from .batch import BatchOrchestrator
from .file_converter import FileConverterService
from .watermark_service import WatermarkService

__all__ = [
    'BatchOrchestrator',
    'FileConverterService',
    'WatermarkService',
]
