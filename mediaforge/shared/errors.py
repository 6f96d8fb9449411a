"""
Exception hierarchy for the media transformation engines.
"""
from typing import Optional


class MediaProcessingError(Exception):
    """Base exception for conversion and watermark errors."""
    http_status = 500


class ValidationError(MediaProcessingError):
    """Raised when a request can never succeed as given."""
    http_status = 400


class ProcessingError(MediaProcessingError):
    """Raised when a valid request fails while being processed."""
    pass


class InvalidTargetFormat(ValidationError):
    """Raised when the requested target format is not whitelisted."""

    def __init__(self, target_format: str, allowed: Optional[list] = None):
        self.target_format = target_format
        message = f"Invalid format: {target_format}"
        if allowed:
            message += f". Allowed: {', '.join(allowed)}"
        super().__init__(message)


class InputNotFound(ValidationError):
    """Raised when the input file does not exist."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"Input file not found: {path}")


class UnsupportedConversion(ValidationError):
    """Raised when no strategy can convert source to target."""

    def __init__(self, source: str, target: str):
        self.source = source
        self.target = target
        super().__init__(f"Unsupported conversion: {source or '<none>'} to {target}")


class InvalidWatermarkSpec(ValidationError):
    """Raised when a watermark request is missing text/image or has bad values."""
    pass


class MetadataUnavailable(ProcessingError):
    """Raised when image dimensions cannot be determined."""
    pass


class ImageProcessingError(ProcessingError):
    """Raised when Pillow fails to decode or encode an image."""
    pass


class ExternalToolFailure(ProcessingError):
    """Raised when the office converter exits non-zero or produces nothing."""

    def __init__(self, message: str, returncode: Optional[int] = None,
                 stderr: Optional[str] = None):
        self.returncode = returncode
        self.stderr = stderr
        if stderr:
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)


class InvalidConversionOptions(ValidationError):
    """Raised when quality/width/height are out of range."""
    pass
