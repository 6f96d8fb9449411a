"""
Unit tests for runtime configuration.
"""
import pytest
from unittest.mock import patch
from pydantic import ValidationError

from mediaforge.shared.config import (
    AppConfig,
    ConverterSettings,
    LoggingSettings,
    WatermarkSettings,
    get_settings,
    validate_config,
)


class TestSettings:
    """Test settings defaults and environment overrides."""

    def test_defaults(self, monkeypatch):
        for name in ('CONVERTER_MAX_WORKERS', 'CONVERTER_DEFAULT_QUALITY', 'CONVERTER_SOFFICE_PATH'):
            monkeypatch.delenv(name, raising=False)

        config = AppConfig()

        assert config.converter.soffice_path is None
        assert config.converter.timeout_seconds == 300
        assert config.converter.default_quality == 80
        assert config.converter.max_workers == 1
        assert config.converter.max_concurrent_tools == 1
        assert config.watermark.default_opacity == 0.5
        assert config.watermark.corner_margin == 20
        assert config.log.level == 'INFO'

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv('CONVERTER_MAX_WORKERS', '4')
        monkeypatch.setenv('CONVERTER_SOFFICE_PATH', '/opt/lo/soffice')
        monkeypatch.setenv('WATERMARK_DEFAULT_OPACITY', '0.25')
        monkeypatch.setenv('LOG_LEVEL', 'DEBUG')

        config = AppConfig()

        assert config.converter.max_workers == 4
        assert config.converter.soffice_path == '/opt/lo/soffice'
        assert config.watermark.default_opacity == 0.25
        assert config.log.level == 'DEBUG'

    @pytest.mark.parametrize('value', ['0', '101'])
    def test_quality_range(self, monkeypatch, value):
        monkeypatch.setenv('CONVERTER_DEFAULT_QUALITY', value)

        with pytest.raises(ValidationError):
            ConverterSettings()

    @pytest.mark.parametrize('field', ['timeout_seconds', 'max_workers', 'max_concurrent_tools'])
    def test_positive_fields(self, field):
        with pytest.raises(ValidationError):
            ConverterSettings(**{field: 0})

    @pytest.mark.parametrize('kwargs', [
        {'default_opacity': 1.5},
        {'default_opacity': -0.1},
        {'default_scale': 0},
        {'default_scale': 2},
    ])
    def test_watermark_ranges(self, kwargs):
        with pytest.raises(ValidationError):
            WatermarkSettings(**kwargs)

    def test_logging_configure(self):
        with patch('mediaforge.shared.config.logging.basicConfig') as mock_basic:
            LoggingSettings(level='debug', format='%(message)s').configure()

        mock_basic.assert_called_once_with(level='DEBUG', format='%(message)s')

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()


class TestValidateConfig:
    """Test validate_config."""

    def test_valid(self, tmp_path):
        config = AppConfig(converter=ConverterSettings(temp_dir=str(tmp_path / 'work')))

        assert validate_config(config) == []
        assert (tmp_path / 'work').is_dir()

    def test_bad_soffice_path(self, tmp_path):
        config = AppConfig(converter=ConverterSettings(
            soffice_path='/nonexistent/soffice', temp_dir=str(tmp_path)
        ))

        errors = validate_config(config)

        assert len(errors) == 1
        assert 'soffice_path' in errors[0]

    def test_unknown_log_level(self, tmp_path):
        config = AppConfig(
            converter=ConverterSettings(temp_dir=str(tmp_path)),
            log=LoggingSettings(level='CHATTY'),
        )

        assert validate_config(config) == ['Unknown log level: CHATTY']
