"""
Document format conversion using LibreOffice headless mode.
Also provides plain-text extraction through the same conversion path.
"""
import logging
import re
import shutil
import subprocess
import tempfile
import threading
import time
from pathlib import Path
from typing import List, Optional, Union

from ...shared.errors import ExternalToolFailure, InputNotFound
from ...shared.utils import FileUtils, remove_dir_quietly
from .quality_checker import ConversionQualityChecker

logger = logging.getLogger(__name__)

# Characters stripped from every path handed to the converter.
SHELL_METACHARACTERS = re.compile(r'["$`\\]')

# UTF-8 text export filter; plain "txt" lets LibreOffice pick the system encoding.
TEXT_EXPORT_FILTER = 'txt:Text (encoded):UTF8'

# Targets that need the PDF to be opened in Writer rather than Draw.
WRITER_TARGETS = ('doc', 'docx', 'odt', 'rtf', 'txt')
PDF_IMPORT_FILTER = 'writer_pdf_import'


def sanitize_path(path: Union[str, Path]) -> str:
    """Strip shell metacharacters (" $ ` \\) from a path."""
    return SHELL_METACHARACTERS.sub('', str(path))


class LibreOfficeConverter:
    """LibreOffice headless converter."""

    def __init__(self, soffice_path: Optional[str] = None, timeout: int = 300,
                 temp_dir: Optional[Union[str, Path]] = None,
                 max_concurrent: int = 1, verify_output: bool = True):
        self._soffice_path = soffice_path
        self.timeout = timeout
        self.temp_dir = Path(temp_dir) if temp_dir else Path(tempfile.gettempdir()) / 'mediaforge-conversion'
        self.verify_output = verify_output
        self.quality_checker = ConversionQualityChecker()
        self._slots = threading.BoundedSemaphore(max_concurrent)

    @property
    def soffice_path(self) -> str:
        if self._soffice_path is None:
            self._soffice_path = self._find_libreoffice()
        return self._soffice_path

    def _find_libreoffice(self) -> str:
        """Find LibreOffice executable."""
        possible_paths = [
            'soffice',
            'libreoffice',
            '/usr/bin/soffice',
            '/opt/libreoffice/program/soffice',
            '/Applications/LibreOffice.app/Contents/MacOS/soffice',
            'C:\\Program Files\\LibreOffice\\program\\soffice.exe',
        ]

        for path in possible_paths:
            found = shutil.which(path)
            if found:
                return found

        raise ExternalToolFailure("LibreOffice not found. Please install LibreOffice.")

    def convert_document(self, input_path: Union[str, Path], output_path: Union[str, Path],
                         format: str) -> Path:
        """
        Convert input_path to format and store the result at output_path.

        LibreOffice always names its output {basename}.{format}; it runs
        against a private staging directory next to output_path and the
        result is moved into place afterwards, so converting a file to its
        own format cannot overwrite the input.

        With verify_output on, the staged file is checked before the move.
        An unusable file raises ExternalToolFailure and never reaches
        output_path.
        """
        input_path = Path(input_path)
        output_path = Path(output_path)
        fmt = FileUtils.normalize_format(format)

        if not input_path.exists():
            raise InputNotFound(input_path)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        staging_dir = Path(tempfile.mkdtemp(prefix='.soffice-', dir=output_path.parent))

        start_time = time.time()
        try:
            logger.info(f"Converting {input_path} to {fmt}")
            produced = self._run_conversion(
                input_path, staging_dir, TEXT_EXPORT_FILTER if fmt == 'txt' else fmt, fmt,
                infilter=self._import_filter(input_path, fmt)
            )
            if self.verify_output:
                self._verify(produced, fmt)
            shutil.move(str(produced), str(output_path))
        finally:
            remove_dir_quietly(staging_dir)

        logger.info(f"Conversion completed: {input_path} -> {output_path} "
                    f"({time.time() - start_time:.2f}s)")
        return output_path

    def _verify(self, produced: Path, fmt: str):
        report = self.quality_checker.check_output(produced, fmt)
        if not report.is_valid:
            raise ExternalToolFailure(
                f"LibreOffice produced an unusable {fmt} file: {'; '.join(report.errors)}"
            )
        if report.warnings:
            logger.warning(f"Quality warnings for {fmt} output: {', '.join(report.warnings)}")

    def extract_text(self, input_path: Union[str, Path]) -> str:
        """
        Extract the plain text of a document.

        The intermediate .txt lives in a working directory under temp_dir
        that is removed whether or not extraction succeeds.
        """
        input_path = Path(input_path)
        if not input_path.exists():
            raise InputNotFound(input_path)

        self.temp_dir.mkdir(parents=True, exist_ok=True)
        work_dir = Path(tempfile.mkdtemp(prefix='extract-', dir=self.temp_dir))
        try:
            txt_path = self._run_conversion(
                input_path, work_dir, TEXT_EXPORT_FILTER, 'txt',
                infilter=self._import_filter(input_path, 'txt')
            )
            return txt_path.read_text(encoding='utf-8', errors='replace')
        finally:
            remove_dir_quietly(work_dir)

    def build_conversion_command(self, input_path: Union[str, Path], outdir: Union[str, Path],
                                 convert_to: str, infilter: Optional[str] = None) -> List[str]:
        """Build the soffice argument vector."""
        cmd = [self.soffice_path, '--headless']
        if infilter:
            cmd.append(f'--infilter={infilter}')
        cmd.extend([
            '--convert-to', convert_to,
            sanitize_path(input_path),
            '--outdir', sanitize_path(outdir),
        ])
        return cmd

    def _import_filter(self, input_path: Path, fmt: str) -> Optional[str]:
        if FileUtils.get_file_extension(input_path) == 'pdf' and fmt in WRITER_TARGETS:
            return PDF_IMPORT_FILTER
        return None

    def _run_conversion(self, input_path: Path, outdir: Path, convert_to: str,
                        output_ext: str, infilter: Optional[str] = None) -> Path:
        """Run soffice and return the file it produced."""
        cmd = self.build_conversion_command(input_path, outdir, convert_to, infilter)
        expected = Path(sanitize_path(outdir)) / f"{Path(sanitize_path(input_path)).stem}.{output_ext}"

        with self._slots:
            try:
                result = subprocess.run(
                    cmd,
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                )
            except subprocess.TimeoutExpired:
                raise ExternalToolFailure(f"Conversion timeout after {self.timeout} seconds")
            except OSError as e:
                raise ExternalToolFailure(f"Could not start LibreOffice ({cmd[0]}): {e}")

        if result.returncode != 0:
            raise ExternalToolFailure(
                "LibreOffice conversion failed",
                returncode=result.returncode,
                stderr=result.stderr
            )

        if not expected.exists():
            raise ExternalToolFailure(
                "Conversion completed but output file not found",
                returncode=result.returncode,
                stderr=result.stderr
            )

        return expected
