# Image Processing Engine

from .image_converter import ImageCodecConverter
from .visible_watermark import VisibleWatermarkProcessor, WatermarkSpec, Overlay

__all__ = [
    'ImageCodecConverter',
    'VisibleWatermarkProcessor',
    'WatermarkSpec',
    'Overlay'
]
