"""
Runtime configuration for the conversion and watermark engines.
Every value can be overridden through environment variables.
"""

import logging
import os
import shutil
import tempfile
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConverterSettings(BaseSettings):
    """Format conversion settings"""
    soffice_path: Optional[str] = None
    timeout_seconds: int = 300
    temp_dir: str = os.path.join(tempfile.gettempdir(), "mediaforge-conversion")
    default_quality: int = 80
    max_workers: int = 1
    max_concurrent_tools: int = 1
    verify_output: bool = True

    model_config = SettingsConfigDict(env_prefix="CONVERTER_")

    @field_validator('default_quality')
    @classmethod
    def check_quality(cls, v):
        if not 1 <= v <= 100:
            raise ValueError("default_quality must be between 1 and 100")
        return v

    @field_validator('timeout_seconds', 'max_workers', 'max_concurrent_tools')
    @classmethod
    def check_positive(cls, v):
        if v <= 0:
            raise ValueError("must be greater than 0")
        return v


class WatermarkSettings(BaseSettings):
    """Visible watermark defaults"""
    default_opacity: float = 0.5
    default_scale: float = 0.2
    default_color: str = "#000000"
    corner_margin: int = 20
    font_paths: List[str] = [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",  # Linux
        "/usr/share/fonts/dejavu/DejaVuSans-Bold.ttf",
        "/System/Library/Fonts/Supplemental/Arial Bold.ttf",  # macOS
        "C:/Windows/Fonts/arialbd.ttf",  # Windows
    ]

    model_config = SettingsConfigDict(env_prefix="WATERMARK_")

    @field_validator('default_opacity')
    @classmethod
    def check_opacity(cls, v):
        if not 0.0 <= v <= 1.0:
            raise ValueError("default_opacity must be within [0, 1]")
        return v

    @field_validator('default_scale')
    @classmethod
    def check_scale(cls, v):
        if not 0.0 < v <= 1.0:
            raise ValueError("default_scale must be within (0, 1]")
        return v


class LoggingSettings(BaseSettings):
    """Logging settings"""
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

    model_config = SettingsConfigDict(env_prefix="LOG_")

    def configure(self) -> None:
        """Install a root handler. Library code never calls this itself."""
        logging.basicConfig(level=self.level.upper(), format=self.format)


class AppConfig(BaseSettings):
    """Top-level configuration"""
    app_name: str = "mediaforge"
    environment: str = "production"

    converter: ConverterSettings = Field(default_factory=ConverterSettings)
    watermark: WatermarkSettings = Field(default_factory=WatermarkSettings)
    log: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> AppConfig:
    """Return the cached application configuration."""
    return AppConfig()


def validate_config(config: AppConfig) -> List[str]:
    """Check that the configuration can actually be used."""
    errors = []

    soffice_path = config.converter.soffice_path
    if soffice_path and not (os.path.exists(soffice_path) or shutil.which(soffice_path)):
        errors.append(f"soffice_path does not point to an executable: {soffice_path}")

    temp_dir = config.converter.temp_dir
    if not os.path.exists(temp_dir):
        try:
            os.makedirs(temp_dir, exist_ok=True)
        except OSError as e:
            errors.append(f"Cannot create temp directory {temp_dir}: {e}")

    if not isinstance(logging.getLevelName(config.log.level.upper()), int):
        errors.append(f"Unknown log level: {config.log.level}")

    return errors
