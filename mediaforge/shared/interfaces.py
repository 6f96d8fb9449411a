"""
Data transfer objects shared by the conversion and watermark engines.
"""

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union


# ============= Conversion =============

@dataclass(frozen=True)
class ConversionOptions:
    """Optional knobs for a single conversion; None means "use the default"."""
    quality: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    density: Optional[int] = None

    def merged_with(self, overrides: Optional['ConversionOptions']) -> 'ConversionOptions':
        """Return a copy where every field set on overrides wins."""
        if overrides is None:
            return self
        changes = {
            f.name: getattr(overrides, f.name)
            for f in fields(overrides)
            if getattr(overrides, f.name) is not None
        }
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'ConversionOptions':
        """Build options from a loose mapping (form fields, JSON)."""
        data = data or {}

        def _int(key):
            value = data.get(key)
            if value is None or value == '':
                return None
            return int(float(value))

        return cls(
            quality=_int('quality'),
            width=_int('width'),
            height=_int('height'),
            density=_int('density'),
        )


@dataclass(frozen=True)
class ConversionSpec:
    """A single conversion request."""
    input_path: Path
    target_format: str
    options: ConversionOptions = field(default_factory=ConversionOptions)


# ============= Batch =============

@dataclass(frozen=True)
class BatchInput:
    """One batch entry; format/options override the batch defaults."""
    path: Union[str, Path]
    format: Optional[str] = None
    options: Optional[Any] = None


@dataclass(frozen=True)
class BatchItem:
    """Outcome of one batch entry: either path or error is set, never both."""
    path: str = ""
    error: Optional[str] = None

    def __post_init__(self):
        if bool(self.path) == (self.error is not None):
            raise ValueError("BatchItem needs exactly one of path or error")

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'path': self.path}
        if self.error is not None:
            result['error'] = self.error
        return result
