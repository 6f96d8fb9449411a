"""
明水印处理器 - 生成与底图等大的水印覆盖层并合成到底图上
支持文字水印、图片水印、旋转、透明度、缩放以及平铺
"""

import math
from dataclasses import dataclass, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from PIL import Image, ImageColor, ImageDraw, ImageEnhance, ImageFont, UnidentifiedImageError

from ...shared.errors import InvalidWatermarkSpec

# 平铺模式固定参数
TILE_CELL_SIZE = 300
TILE_FONT_SIZE = 40
TILE_OPACITY = 0.3
TILE_ROTATION = -45.0

DEFAULT_OPACITY = 0.5
DEFAULT_SCALE = 0.2
DEFAULT_COLOR = "#000000"
DEFAULT_CORNER_MARGIN = 20
# 未指定字号时取底图宽度的 5%
FONT_SIZE_RATIO = 0.05

DEFAULT_FONT_PATHS = [
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",  # Linux
    "/usr/share/fonts/dejavu/DejaVuSans-Bold.ttf",
    "/System/Library/Fonts/Supplemental/Arial Bold.ttf",  # macOS
    "C:/Windows/Fonts/arialbd.ttf",  # Windows
]

TRANSPARENT = (0, 0, 0, 0)


class WatermarkType(Enum):
    """水印类型枚举"""
    TEXT = "text"
    IMAGE = "image"


class PositionType(Enum):
    """位置类型枚举"""
    CENTER = "center"
    TOP_LEFT = "top-left"
    TOP_RIGHT = "top-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"
    TILE = "tile"


# 字段别名 -> 字段名
_FIELD_ALIASES = {
    'type': 'kind',
    'imagePath': 'image_path',
    'fontSize': 'font_size',
    'rotationDegrees': 'rotation',
}

_FLOAT_FIELDS = ('opacity', 'rotation', 'scale')


@dataclass
class WatermarkSpec:
    """
    水印配置

    opacity 为 None 时: 文字水印使用默认透明度 (平铺时 0.3);
    图片水印按 gravity 直接贴合到锚点, 不做透明处理。
    """
    kind: WatermarkType
    text: Optional[str] = None
    image_path: Optional[Union[str, Path]] = None
    opacity: Optional[float] = None
    rotation: float = 0.0
    position: PositionType = PositionType.CENTER
    scale: float = DEFAULT_SCALE
    color: str = DEFAULT_COLOR
    font_size: Optional[int] = None

    def __post_init__(self):
        self.kind = _coerce_enum(WatermarkType, self.kind, 'type')
        self.position = _coerce_enum(PositionType, self.position, 'position')

    def validate(self) -> 'WatermarkSpec':
        """检查配置完整性, 不合法时抛出 InvalidWatermarkSpec"""
        if self.kind == WatermarkType.TEXT:
            if not self.text or not self.text.strip():
                raise InvalidWatermarkSpec("Watermark text is required for text type")
            parse_color(self.color)
        else:
            if not self.image_path:
                raise InvalidWatermarkSpec("Watermark image is required for image type")
            if not Path(self.image_path).is_file():
                raise InvalidWatermarkSpec(f"Watermark image not found: {self.image_path}")

        if self.opacity is not None and not 0.0 <= self.opacity <= 1.0:
            raise InvalidWatermarkSpec(f"opacity must be within [0, 1], got {self.opacity}")
        if not 0.0 < self.scale <= 1.0:
            raise InvalidWatermarkSpec(f"scale must be within (0, 1], got {self.scale}")
        if self.font_size is not None and self.font_size <= 0:
            raise InvalidWatermarkSpec(f"fontSize must be positive, got {self.font_size}")
        if not math.isfinite(self.rotation):
            raise InvalidWatermarkSpec(f"rotation must be a finite number, got {self.rotation}")
        return self

    def merged_with(self, overrides: Optional[Union['WatermarkSpec', Mapping[str, Any]]]) -> 'WatermarkSpec':
        """
        批处理时用单项配置覆盖默认配置

        字典形式的覆盖项与 from_dict 一样接受字符串数值和字段别名,
        值为 None 或空字符串的字段保留默认配置
        """
        if overrides is None:
            return self
        if isinstance(overrides, WatermarkSpec):
            return overrides
        values = _coerce_numbers(_normalize_keys(overrides))
        return replace(self, **{key: value for key, value in values.items() if value is not None})

    @classmethod
    def from_dict(cls, data: Mapping[str, Any],
                  default_opacity: float = DEFAULT_OPACITY,
                  default_scale: float = DEFAULT_SCALE,
                  default_color: str = DEFAULT_COLOR) -> 'WatermarkSpec':
        """
        解析上传层传入的松散配置 (数值可能为字符串)

        未给出 opacity 时总是填入 default_opacity, 平铺文字也不例外;
        因此 TILE_OPACITY 只对直接构造且 opacity=None 的 WatermarkSpec 生效。

        Args:
            data: 配置字典, 支持 type/kind、imagePath/image_path、fontSize/font_size
            default_opacity: 未给出 opacity 时填入的透明度
            default_scale: 未给出 scale 时的缩放比例
            default_color: 未给出 color 时的文字颜色

        Returns:
            WatermarkSpec实例
        """
        values = _coerce_numbers(_normalize_keys(data))
        return cls(
            kind=values.get('kind') or WatermarkType.TEXT,
            text=values.get('text'),
            image_path=values.get('image_path'),
            opacity=_or_default(values.get('opacity'), default_opacity),
            rotation=_or_default(values.get('rotation'), 0.0),
            position=values.get('position') or PositionType.CENTER,
            scale=_or_default(values.get('scale'), default_scale),
            color=values.get('color') or default_color,
            font_size=values.get('font_size'),
        )


@dataclass
class Overlay:
    """与底图等大的RGBA覆盖层"""
    image: Image.Image
    cell_size: Optional[int] = None

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.size


class VisibleWatermarkProcessor:
    """可见水印处理器"""

    def __init__(
        self,
        font_paths: Optional[List[str]] = None,
        corner_margin: int = DEFAULT_CORNER_MARGIN,
        default_opacity: float = DEFAULT_OPACITY
    ):
        self.default_font_paths = font_paths or DEFAULT_FONT_PATHS
        self.corner_margin = corner_margin
        self.default_opacity = default_opacity

    def build_overlay(
        self,
        canvas_size: Tuple[int, int],
        spec: WatermarkSpec,
        watermark_image: Optional[Image.Image] = None
    ) -> Overlay:
        """
        按配置生成覆盖层

        Args:
            canvas_size: 底图尺寸 (W, H)
            spec: 水印配置
            watermark_image: 图片水印; 为None时从 spec.image_path 读取

        Returns:
            尺寸恰为 (W, H) 的 Overlay
        """
        if spec.kind == WatermarkType.TEXT:
            if spec.position == PositionType.TILE:
                overlay = self.generate_tiled_text_overlay(spec.text, canvas_size, spec)
            else:
                overlay = self.generate_text_overlay(spec.text, canvas_size, spec)
        else:
            if watermark_image is None:
                watermark_image = self.load_watermark_image(spec.image_path)
            if spec.position == PositionType.TILE:
                overlay = self.generate_tiled_image_overlay(watermark_image, canvas_size, spec)
            else:
                overlay = self.generate_image_overlay(watermark_image, canvas_size, spec)

        assert overlay.size == tuple(canvas_size), (
            f"overlay {overlay.size} does not match canvas {canvas_size}"
        )
        return overlay

    def generate_text_overlay(
        self,
        text: str,
        canvas_size: Tuple[int, int],
        spec: WatermarkSpec
    ) -> Overlay:
        """
        生成文字覆盖层

        字号默认取画布宽度的5%, 文字中心默认位于画布中心,
        并绕文字中心顺时针旋转 spec.rotation 度
        """
        width, height = canvas_size
        font_size = spec.font_size or max(1, math.floor(width * FONT_SIZE_RATIO))
        opacity = spec.opacity if spec.opacity is not None else self.default_opacity
        font = self._load_font(font_size)
        fill = self._parse_color(spec.color, opacity)

        layer = Image.new('RGBA', canvas_size, TRANSPARENT)
        draw = ImageDraw.Draw(layer)
        left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
        text_width, text_height = right - left, bottom - top

        x, y = self._calculate_position(canvas_size, (text_width, text_height), spec.position)
        center = (x + text_width / 2, y + text_height / 2)
        draw.text((x - left, y - top), text, font=font, fill=fill)

        if spec.rotation:
            layer = layer.rotate(
                -spec.rotation,
                resample=Image.Resampling.BICUBIC,
                center=center,
                fillcolor=TRANSPARENT
            )

        return Overlay(layer)

    def generate_tiled_text_overlay(
        self,
        text: str,
        canvas_size: Tuple[int, int],
        spec: WatermarkSpec
    ) -> Overlay:
        """
        生成平铺文字覆盖层

        单元格固定为 300x300, 文字居中于 (150, 150);
        未指定时字号40、透明度0.3、旋转-45度
        """
        font_size = spec.font_size or TILE_FONT_SIZE
        opacity = spec.opacity if spec.opacity is not None else TILE_OPACITY
        rotation = spec.rotation or TILE_ROTATION
        font = self._load_font(font_size)
        fill = self._parse_color(spec.color, opacity)

        cell = Image.new('RGBA', (TILE_CELL_SIZE, TILE_CELL_SIZE), TRANSPARENT)
        draw = ImageDraw.Draw(cell)
        half = TILE_CELL_SIZE / 2
        left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
        draw.text(
            (half - (left + right) / 2, half - (top + bottom) / 2),
            text, font=font, fill=fill
        )
        cell = cell.rotate(
            -rotation,
            resample=Image.Resampling.BICUBIC,
            center=(half, half),
            fillcolor=TRANSPARENT
        )

        return self._tile(cell, canvas_size)

    def generate_image_overlay(
        self,
        watermark: Image.Image,
        canvas_size: Tuple[int, int],
        spec: WatermarkSpec
    ) -> Overlay:
        """
        生成图片覆盖层

        水印宽度 = 画布宽度 * scale, 高度按水印自身宽高比计算。
        设置了 opacity 时, 水印按角落内缩20px定位并绕自身中心旋转;
        否则按 gravity 贴合画布中心或角落。
        """
        width, height = canvas_size
        mark, (new_width, new_height) = self._scale_and_rotate(watermark, width * spec.scale, spec.rotation)

        canvas = Image.new('RGBA', canvas_size, TRANSPARENT)

        if spec.opacity is not None:
            mark = self._adjust_opacity(mark, spec.opacity)
            x, y = self._calculate_position(canvas_size, (new_width, new_height), spec.position)
            # 旋转后的水印与未旋转时同心
            paste_x = round(x + new_width / 2 - mark.width / 2)
            paste_y = round(y + new_height / 2 - mark.height / 2)
        else:
            paste_x, paste_y = self._calculate_position(
                canvas_size, mark.size, spec.position, margin=0
            )

        canvas.paste(mark, (paste_x, paste_y))
        return Overlay(canvas)

    def generate_tiled_image_overlay(
        self,
        watermark: Image.Image,
        canvas_size: Tuple[int, int],
        spec: WatermarkSpec
    ) -> Overlay:
        """生成平铺图片覆盖层, 水印缩放后放入 300x300 单元格中心"""
        target_width = min(canvas_size[0] * spec.scale, TILE_CELL_SIZE)
        mark, _ = self._scale_and_rotate(watermark, target_width, spec.rotation)
        mark.thumbnail((TILE_CELL_SIZE, TILE_CELL_SIZE), Image.Resampling.LANCZOS)

        if spec.opacity is not None:
            mark = self._adjust_opacity(mark, spec.opacity)

        cell = Image.new('RGBA', (TILE_CELL_SIZE, TILE_CELL_SIZE), TRANSPARENT)
        cell.paste(mark, ((TILE_CELL_SIZE - mark.width) // 2, (TILE_CELL_SIZE - mark.height) // 2))
        return self._tile(cell, canvas_size)

    def apply_watermark(self, image: Image.Image, overlay: Overlay) -> Image.Image:
        """
        将覆盖层以 alpha "over" 方式合成到底图上

        Args:
            image: 原始图像
            overlay: 与原始图像等大的覆盖层

        Returns:
            RGBA模式的合成结果
        """
        assert overlay.size == image.size, (
            f"overlay {overlay.size} does not match image {image.size}"
        )

        # 确保图像为RGBA模式
        if image.mode != 'RGBA':
            image = image.convert('RGBA')

        return Image.alpha_composite(image, overlay.image)

    def load_watermark_image(self, image_path: Union[str, Path]) -> Image.Image:
        """读取图片水印并转换为RGBA"""
        try:
            with Image.open(image_path) as wm:
                wm.load()
                if not wm.width or not wm.height:
                    raise InvalidWatermarkSpec("Invalid watermark image")
                return wm.convert('RGBA')
        except (UnidentifiedImageError, OSError) as e:
            raise InvalidWatermarkSpec(f"Invalid watermark image: {e}") from e

    def _scale_and_rotate(
        self,
        watermark: Image.Image,
        target_width: float,
        rotation: float
    ) -> Tuple[Image.Image, Tuple[int, int]]:
        """缩放水印 (保持水印自身宽高比) 后旋转, 旋转露出的角填充透明"""
        if watermark.mode != 'RGBA':
            watermark = watermark.convert('RGBA')

        new_width = max(1, math.floor(target_width))
        new_height = max(1, math.floor(watermark.height * (new_width / watermark.width)))
        mark = watermark.resize((new_width, new_height), Image.Resampling.LANCZOS)

        if rotation:
            mark = mark.rotate(
                -rotation,
                expand=True,
                resample=Image.Resampling.BICUBIC,
                fillcolor=TRANSPARENT
            )

        return mark, (new_width, new_height)

    def _tile(self, cell: Image.Image, canvas_size: Tuple[int, int]) -> Overlay:
        """从原点开始重复单元格铺满整个画布"""
        width, height = canvas_size
        canvas = Image.new('RGBA', canvas_size, TRANSPARENT)
        for y in range(0, height, cell.height):
            for x in range(0, width, cell.width):
                canvas.paste(cell, (x, y))
        return Overlay(canvas, cell_size=cell.width)

    def _load_font(self, font_size: int) -> ImageFont.ImageFont:
        """加载字体"""
        for font_path in self.default_font_paths:
            try:
                return ImageFont.truetype(font_path, font_size)
            except OSError:
                continue

        # 系统字体都不可用时使用Pillow内置的可缩放字体
        return ImageFont.load_default(size=font_size)

    def _parse_color(self, color_str: str, opacity: float) -> Tuple[int, int, int, int]:
        """解析颜色字符串"""
        r, g, b = parse_color(color_str)
        a = int(255 * opacity)
        return (r, g, b, a)

    def _calculate_position(
        self,
        image_size: Tuple[int, int],
        watermark_size: Tuple[int, int],
        position: PositionType,
        margin: Optional[int] = None
    ) -> Tuple[int, int]:
        """计算水印左上角位置"""
        img_width, img_height = image_size
        wm_width, wm_height = watermark_size
        margin = self.corner_margin if margin is None else margin

        if position == PositionType.TOP_LEFT:
            x = y = margin
        elif position == PositionType.TOP_RIGHT:
            x = img_width - wm_width - margin
            y = margin
        elif position == PositionType.BOTTOM_LEFT:
            x = margin
            y = img_height - wm_height - margin
        elif position == PositionType.BOTTOM_RIGHT:
            x = img_width - wm_width - margin
            y = img_height - wm_height - margin
        else:  # CENTER
            x = (img_width - wm_width) // 2
            y = (img_height - wm_height) // 2

        return (x, y)

    def _adjust_opacity(self, image: Image.Image, opacity: float) -> Image.Image:
        """调整图像透明度"""
        if image.mode != 'RGBA':
            image = image.convert('RGBA')
        else:
            image = image.copy()

        alpha = image.split()[-1]
        alpha = ImageEnhance.Brightness(alpha).enhance(opacity)

        image.putalpha(alpha)
        return image


def parse_color(color_str: str) -> Tuple[int, int, int]:
    """解析 #RGB / #RRGGBB / CSS颜色名, 非法时抛出 InvalidWatermarkSpec"""
    try:
        return ImageColor.getrgb(color_str)[:3]
    except (ValueError, AttributeError) as e:
        raise InvalidWatermarkSpec(f"Invalid color: {color_str!r}") from e


def _coerce_enum(enum_cls, value, name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = ', '.join(member.value for member in enum_cls)
        raise InvalidWatermarkSpec(f"Invalid watermark {name}: {value}. Allowed: {allowed}")


def _normalize_keys(data: Mapping[str, Any]) -> Dict[str, Any]:
    known = {f.name for f in fields(WatermarkSpec)}
    values = {}
    for key, value in data.items():
        key = _FIELD_ALIASES.get(key, key)
        if key in known:
            values[key] = value
    return values


def _coerce_numbers(values: Dict[str, Any]) -> Dict[str, Any]:
    """把字符串数值转换为 float/int, 非法时抛出 InvalidWatermarkSpec"""
    try:
        for key in _FLOAT_FIELDS:
            if key in values:
                values[key] = _to_float(values[key], None)
        if 'font_size' in values:
            values['font_size'] = _to_int(values['font_size'])
    except (TypeError, ValueError) as e:
        raise InvalidWatermarkSpec(f"Invalid watermark options: {e}") from e
    return values


def _or_default(value: Any, default: Any) -> Any:
    return default if value is None else value


def _to_float(value: Any, default: Optional[float]) -> Optional[float]:
    if value is None or value == '':
        return default
    return float(value)


def _to_int(value: Any) -> Optional[int]:
    if value is None or value == '':
        return None
    return int(float(value))
