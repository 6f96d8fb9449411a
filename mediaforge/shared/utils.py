"""
Shared file helpers: extension handling, output naming, atomic writes
and best-effort cleanup.
"""

import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]


class FileUtils:
    """File handling helpers"""

    @staticmethod
    def get_file_extension(filename: PathLike) -> str:
        """Lower-case extension without the leading dot ('' if none)."""
        return Path(filename).suffix.lower().lstrip('.')

    @staticmethod
    def normalize_format(fmt: str) -> str:
        return fmt.strip().lower().lstrip('.')

    @staticmethod
    def converted_output_path(input_path: PathLike, target_format: str) -> Path:
        """{basename}_converted.{format} next to the input."""
        input_path = Path(input_path)
        return input_path.parent / f"{input_path.stem}_converted.{target_format}"

    @staticmethod
    def watermarked_output_path(input_path: PathLike) -> Path:
        """{basename}_watermarked{ext} next to the input."""
        input_path = Path(input_path)
        return input_path.parent / f"{input_path.stem}_watermarked{input_path.suffix}"


@contextmanager
def atomic_output(output_path: PathLike) -> Iterator[Path]:
    """
    Yield a temporary path in the destination directory and move it onto
    output_path only if the block completes.

    The temporary file keeps the destination suffix so that libraries
    which infer a format from the filename still work.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{output_path.stem}.", suffix=output_path.suffix, dir=output_path.parent
    )
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        yield tmp_path
        os.replace(tmp_path, output_path)
    finally:
        if tmp_path.exists():
            remove_file_quietly(tmp_path)


def remove_file_quietly(path: PathLike) -> None:
    """Delete a file; failures are logged, never raised."""
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Failed to remove temporary file {path}: {e}")


def remove_dir_quietly(path: PathLike) -> None:
    """Delete a directory tree; failures are logged, never raised."""
    try:
        if Path(path).is_dir():
            shutil.rmtree(path)
    except OSError as e:
        logger.warning(f"Failed to cleanup temp directory {path}: {e}")
