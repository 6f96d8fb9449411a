"""
Checks on files produced by the office converter.

An output that cannot be opened as the requested format is an error and
fails the conversion. Softer findings, such as a document without text,
are reported as warnings.
"""
import csv
import io
import logging
import zipfile
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Any, Dict, List

import fitz  # PyMuPDF
import openpyxl
from docx import Document
from pptx import Presentation

logger = logging.getLogger(__name__)

# Compound File Binary header shared by legacy .doc/.xls/.ppt files.
OLE2_SIGNATURE = b'\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1'
RTF_SIGNATURE = b'{\\rtf'

OPENDOCUMENT_MIMETYPES = {
    'odt': 'application/vnd.oasis.opendocument.text',
    'ods': 'application/vnd.oasis.opendocument.spreadsheet',
    'odp': 'application/vnd.oasis.opendocument.presentation',
}


@dataclass
class QualityReport:
    """Result of checking one output file."""
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    metrics: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors


class ConversionQualityChecker:
    """Checks that a converted file really is a usable file of the target format."""

    def check_output(self, output_path: Path, target_format: str) -> QualityReport:
        report = QualityReport()

        if not output_path.exists():
            report.errors.append("Output file does not exist")
            return report

        output_size = output_path.stat().st_size
        report.metrics['output_size'] = output_size
        if output_size == 0:
            report.errors.append("Output file is empty")
            return report

        validator = self._validators().get(target_format)
        if validator is not None:
            validator(output_path, report)
        return report

    def _validators(self):
        return {
            'pdf': self._validate_pdf,
            'docx': self._validate_docx,
            'xlsx': self._validate_xlsx,
            'pptx': self._validate_pptx,
            'odt': partial(self._validate_opendocument, fmt='odt'),
            'ods': partial(self._validate_opendocument, fmt='ods'),
            'odp': partial(self._validate_opendocument, fmt='odp'),
            'doc': self._validate_ole2,
            'xls': self._validate_ole2,
            'ppt': self._validate_ole2,
            'rtf': self._validate_rtf,
            'txt': self._validate_text,
            'csv': self._validate_csv,
        }

    def _validate_pdf(self, path: Path, report: QualityReport):
        try:
            doc = fitz.open(str(path))
        except Exception as e:
            report.errors.append(f"Not a readable PDF: {e}")
            return

        try:
            report.metrics['page_count'] = len(doc)
            if len(doc) == 0:
                report.errors.append("PDF has no pages")
        finally:
            doc.close()

    def _validate_docx(self, path: Path, report: QualityReport):
        try:
            document = Document(str(path))
        except Exception as e:
            report.errors.append(f"Not a readable DOCX document: {e}")
            return

        report.metrics['paragraph_count'] = len(document.paragraphs)
        report.metrics['table_count'] = len(document.tables)
        if not any(p.text.strip() for p in document.paragraphs) and not document.tables:
            report.warnings.append("Document contains no text")

    def _validate_xlsx(self, path: Path, report: QualityReport):
        try:
            workbook = openpyxl.load_workbook(str(path), read_only=True)
        except Exception as e:
            report.errors.append(f"Not a readable XLSX workbook: {e}")
            return

        try:
            report.metrics['worksheet_count'] = len(workbook.worksheets)
            if not workbook.worksheets:
                report.errors.append("Workbook has no worksheets")
        finally:
            workbook.close()

    def _validate_pptx(self, path: Path, report: QualityReport):
        try:
            presentation = Presentation(str(path))
        except Exception as e:
            report.errors.append(f"Not a readable PPTX presentation: {e}")
            return

        report.metrics['slide_count'] = len(presentation.slides)
        if len(presentation.slides) == 0:
            report.warnings.append("Presentation has no slides")

    def _validate_opendocument(self, path: Path, report: QualityReport, fmt: str):
        expected = OPENDOCUMENT_MIMETYPES[fmt]
        try:
            with zipfile.ZipFile(path) as archive:
                mimetype = archive.read('mimetype').decode('ascii').strip()
        except (zipfile.BadZipFile, KeyError, UnicodeDecodeError) as e:
            report.errors.append(f"Not an OpenDocument package: {e}")
            return

        report.metrics['mimetype'] = mimetype
        if mimetype != expected:
            report.errors.append(f"Unexpected OpenDocument type {mimetype}, expected {expected}")

    def _validate_ole2(self, path: Path, report: QualityReport):
        with open(path, 'rb') as f:
            header = f.read(len(OLE2_SIGNATURE))
        if header != OLE2_SIGNATURE:
            report.errors.append("Missing OLE2 header for legacy Office format")

    def _validate_rtf(self, path: Path, report: QualityReport):
        with open(path, 'rb') as f:
            header = f.read(len(RTF_SIGNATURE))
        if header != RTF_SIGNATURE:
            report.errors.append("Missing {\\rtf header")

    def _validate_text(self, path: Path, report: QualityReport):
        """Text is exported with the UTF-8 filter, so it must decode strictly."""
        try:
            content = path.read_bytes().decode('utf-8')
        except UnicodeDecodeError as e:
            report.errors.append(f"Text output is not valid UTF-8: {e}")
            return

        report.metrics['character_count'] = len(content)
        report.metrics['line_count'] = len(content.splitlines())
        if not content.strip():
            report.warnings.append("Text output is blank")

    def _validate_csv(self, path: Path, report: QualityReport):
        data = path.read_bytes()
        if b'\x00' in data:
            report.errors.append("CSV output contains binary data")
            return

        rows = list(csv.reader(io.StringIO(data.decode('utf-8', errors='replace'))))
        report.metrics['row_count'] = len(rows)
        if not any(any(cell.strip() for cell in row) for row in rows):
            report.warnings.append("CSV output has no values")
