"""
Format registry: classifies extensions and picks a conversion strategy.
"""
from enum import Enum
from typing import Dict, FrozenSet, List

from ..shared.errors import InvalidTargetFormat, UnsupportedConversion
from ..shared.utils import FileUtils


class MediaFamily(Enum):
    """Format family."""
    IMAGE = "image"
    DOCUMENT = "document"
    UNKNOWN = "unknown"


class ConversionStrategy(Enum):
    """Which converter handles a source/target pair."""
    IMAGE = "image"
    DOCUMENT = "document"


# Whitelisted target formats, in the order they are reported to callers.
ALLOWED_FORMATS = (
    'jpg', 'jpeg', 'png', 'webp', 'gif',
    'pdf', 'docx', 'doc', 'txt', 'rtf', 'odt',
    'csv', 'xls', 'xlsx', 'ods',
    'ppt', 'pptx', 'odp',
)

IMAGE_FORMATS: FrozenSet[str] = frozenset({'jpg', 'jpeg', 'png', 'webp', 'gif', 'svg', 'tiff'})
DOCUMENT_FORMATS: FrozenSet[str] = frozenset({
    'doc', 'docx', 'txt', 'rtf', 'odt',
    'csv', 'xls', 'xlsx', 'ods',
    'ppt', 'pptx', 'odp', 'pdf',
})


def is_image(ext: str) -> bool:
    return ext in IMAGE_FORMATS


def is_document(ext: str) -> bool:
    return ext in DOCUMENT_FORMATS


def classify(ext: str) -> MediaFamily:
    """Classify an extension (without dot) as image or document."""
    ext = FileUtils.normalize_format(ext)
    if is_image(ext):
        return MediaFamily.IMAGE
    if is_document(ext):
        return MediaFamily.DOCUMENT
    return MediaFamily.UNKNOWN


def validate_target_format(target_format: str) -> str:
    """
    Check target_format against the whitelist.

    The match is exact: 'PNG', '.png' and ' png' are rejected rather than
    normalized.
    """
    if target_format not in ALLOWED_FORMATS:
        raise InvalidTargetFormat(target_format, list(ALLOWED_FORMATS))
    return target_format


def route(source: str, target: str) -> ConversionStrategy:
    """
    Pick the converter for source -> target.

    Rules are checked in order:
      1. image -> image goes to the image codec converter
      2. document source, pdf target, or pdf -> document goes to the
         office converter
      3. anything else is unsupported
    """
    source = FileUtils.normalize_format(source)
    target = FileUtils.normalize_format(target)

    if is_image(source) and is_image(target):
        return ConversionStrategy.IMAGE

    if is_document(source) or target == 'pdf' or (is_document(target) and source == 'pdf'):
        return ConversionStrategy.DOCUMENT

    raise UnsupportedConversion(source, target)


def get_supported_formats() -> Dict[str, List[str]]:
    """Whitelisted targets grouped by family."""
    return {
        'image': [fmt for fmt in ALLOWED_FORMATS if is_image(fmt)],
        'document': [fmt for fmt in ALLOWED_FORMATS if is_document(fmt)],
    }
