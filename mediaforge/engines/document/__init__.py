"""
Document format conversion through LibreOffice.
"""

from .conversion_service import LibreOfficeConverter, sanitize_path
from .quality_checker import ConversionQualityChecker

__all__ = [
    'LibreOfficeConverter',
    'ConversionQualityChecker',
    'sanitize_path',
]
