"""
Unit tests for file-level visible watermarking.
"""
import pytest
import tempfile
import shutil
from pathlib import Path
from unittest.mock import patch

from PIL import Image, ImageChops

from mediaforge.engines.image.visible_watermark import PositionType, WatermarkSpec
from mediaforge.engines.watermark_service import WatermarkService
from mediaforge.shared.config import AppConfig, ConverterSettings, WatermarkSettings
from mediaforge.shared.errors import (
    ImageProcessingError, InputNotFound, InvalidWatermarkSpec, MetadataUnavailable
)
from mediaforge.shared.interfaces import BatchInput


@pytest.fixture
def temp_dir():
    """Create temporary directory for test files."""
    temp_dir = Path(tempfile.mkdtemp())
    yield temp_dir
    shutil.rmtree(temp_dir)


@pytest.fixture
def sample_png(temp_dir):
    path = temp_dir / 'sample.png'
    Image.new('RGB', (800, 600), color='red').save(path)
    return path


@pytest.fixture
def service():
    return WatermarkService(AppConfig())


class TestWatermarkService:
    """Test WatermarkService."""

    def test_confidential_text_watermark(self, service, sample_png):
        spec = {'type': 'text', 'text': 'CONFIDENTIAL', 'color': '#FFFFFF'}

        output_path = service.apply_watermark(sample_png, spec)

        assert output_path == sample_png.parent / 'sample_watermarked.png'
        with Image.open(sample_png) as original, Image.open(output_path) as marked:
            assert marked.size == (800, 600)
            assert marked.format == 'PNG'
            bbox = ImageChops.difference(original.convert('RGB'), marked.convert('RGB')).getbbox()

        assert bbox is not None
        left, top, right, bottom = bbox
        assert abs((left + right) / 2 - 400) <= 5
        assert abs((top + bottom) / 2 - 300) <= 5
        # outside the text the base image is untouched
        assert right - left < 800 and bottom - top < 600

    def test_input_is_not_modified(self, service, sample_png):
        before = sample_png.read_bytes()

        service.apply_watermark(sample_png, WatermarkSpec(kind='text', text='DRAFT'))

        assert sample_png.read_bytes() == before

    def test_jpeg_stays_jpeg(self, service, temp_dir):
        source = temp_dir / 'photo.jpg'
        Image.new('RGB', (320, 240), color='blue').save(source)

        output_path = service.apply_watermark(source, WatermarkSpec(kind='text', text='DRAFT'))

        assert output_path.name == 'photo_watermarked.jpg'
        with Image.open(output_path) as img:
            assert img.format == 'JPEG'
            assert img.mode == 'RGB'
            assert img.size == (320, 240)

    def test_alpha_is_kept_for_rgba_png(self, service, temp_dir):
        source = temp_dir / 'icon.png'
        Image.new('RGBA', (200, 200), (0, 255, 0, 128)).save(source)

        output_path = service.apply_watermark(source, WatermarkSpec(kind='text', text='X'))

        with Image.open(output_path) as img:
            assert img.mode == 'RGBA'

    def test_opaque_png_stays_opaque(self, service, sample_png):
        output_path = service.apply_watermark(sample_png, WatermarkSpec(kind='text', text='X'))

        with Image.open(output_path) as img:
            assert img.mode == 'RGB'

    def test_image_watermark(self, service, sample_png, temp_dir):
        logo = temp_dir / 'logo.png'
        Image.new('RGBA', (100, 50), (0, 0, 255, 255)).save(logo)
        spec = WatermarkSpec(kind='image', image_path=logo, position=PositionType.BOTTOM_RIGHT)

        output_path = service.apply_watermark(sample_png, spec)

        with Image.open(output_path) as img:
            rgb = img.convert('RGB')
            assert rgb.getpixel((790, 590)) == (0, 0, 255)
            assert rgb.getpixel((10, 10)) == (255, 0, 0)

    def test_dict_spec_uses_configured_defaults(self, sample_png):
        config = AppConfig(watermark=WatermarkSettings(
            default_opacity=0.7, default_scale=0.5, default_color='#FFFFFF'
        ))
        service = WatermarkService(config)

        with patch.object(service.processor, 'build_overlay',
                          wraps=service.processor.build_overlay) as mock_build:
            service.apply_watermark(sample_png, {'type': 'text', 'text': 'X'})

        spec = mock_build.call_args.args[1]
        assert spec.opacity == 0.7
        assert spec.scale == 0.5
        assert spec.color == '#FFFFFF'

    def test_missing_input(self, service, temp_dir):
        with pytest.raises(InputNotFound):
            service.apply_watermark(temp_dir / 'missing.png', WatermarkSpec(kind='text', text='X'))

    def test_missing_text(self, service, sample_png):
        with pytest.raises(InvalidWatermarkSpec):
            service.apply_watermark(sample_png, {'type': 'text'})

        assert not (sample_png.parent / 'sample_watermarked.png').exists()

    def test_missing_watermark_image(self, service, sample_png, temp_dir):
        spec = {'type': 'image', 'imagePath': str(temp_dir / 'nologo.png')}

        with pytest.raises(InvalidWatermarkSpec):
            service.apply_watermark(sample_png, spec)

    def test_undecodable_input(self, service, temp_dir):
        source = temp_dir / 'fake.png'
        source.write_bytes(b'definitely not a png')

        with pytest.raises(MetadataUnavailable):
            service.apply_watermark(source, WatermarkSpec(kind='text', text='X'))

        assert not (temp_dir / 'fake_watermarked.png').exists()

    def test_encoder_failure_leaves_no_output(self, service, sample_png, temp_dir):
        with patch.object(Image.Image, 'save', side_effect=OSError('disk full')):
            with pytest.raises(ImageProcessingError, match='disk full'):
                service.apply_watermark(sample_png, WatermarkSpec(kind='text', text='X'))

        assert [p.name for p in temp_dir.iterdir()] == ['sample.png']


class TestWatermarkBatch:
    """Test WatermarkService.apply_watermark_batch."""

    def _make_images(self, temp_dir, *names):
        paths = []
        for name in names:
            path = temp_dir / name
            Image.new('RGB', (120, 80), color='white').save(path)
            paths.append(path)
        return paths

    def test_failure_is_isolated(self, service, temp_dir):
        a, c = self._make_images(temp_dir, 'a.png', 'c.png')
        missing = temp_dir / 'b.png'

        results = service.apply_watermark_batch([a, missing, c], {'type': 'text', 'text': 'X'})

        assert len(results) == 3
        assert results[0].path == str(temp_dir / 'a_watermarked.png')
        assert results[0].error is None
        assert results[1].path == ''
        assert 'Input file not found' in results[1].error
        assert results[2].path == str(temp_dir / 'c_watermarked.png')

    def test_per_item_overrides(self, service, temp_dir):
        a, b = self._make_images(temp_dir, 'a.png', 'b.png')
        default = WatermarkSpec(kind='text', text='DEFAULT', opacity=0.4)
        custom = WatermarkSpec(kind='text', text='CUSTOM', position='tile')

        with patch.object(service.processor, 'build_overlay',
                          wraps=service.processor.build_overlay) as mock_build:
            results = service.apply_watermark_batch([
                BatchInput(path=a, options={'text': 'OVERRIDE', 'position': 'top-left'}),
                BatchInput(path=b, options=custom),
            ], default)

        assert all(item.ok for item in results)
        first, second = [c.args[1] for c in mock_build.call_args_list]
        assert first.text == 'OVERRIDE'
        assert first.position == PositionType.TOP_LEFT
        assert first.opacity == 0.4
        assert second is custom

    def test_parallel_batch_keeps_order(self, temp_dir):
        service = WatermarkService(AppConfig(converter=ConverterSettings(max_workers=3)))
        paths = self._make_images(temp_dir, *[f'img{i}.png' for i in range(6)])

        results = service.apply_watermark_batch(paths, WatermarkSpec(kind='text', text='X'))

        assert [item.path for item in results] == [
            str(temp_dir / f'img{i}_watermarked.png') for i in range(6)
        ]

    def test_string_valued_overrides(self, service, temp_dir):
        a, b = self._make_images(temp_dir, 'a.png', 'b.png')

        with patch.object(service.processor, 'build_overlay',
                          wraps=service.processor.build_overlay) as mock_build:
            results = service.apply_watermark_batch([
                BatchInput(path=a, options={'opacity': '0.3', 'rotationDegrees': '30'}),
                BatchInput(path=b, options={'opacity': 'half'}),
            ], {'type': 'text', 'text': 'X'})

        assert results[0].ok
        assert results[0].path == str(temp_dir / 'a_watermarked.png')
        spec = mock_build.call_args_list[0].args[1]
        assert spec.opacity == 0.3
        assert spec.rotation == 30.0
        assert results[1].path == ''
        assert 'Invalid watermark options' in results[1].error
