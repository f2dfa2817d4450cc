"""
Document text extraction.

Parses PDF, DOCX, TXT, CSV and Excel uploads into plain text and splits the
text into overlapping chunks. Parsing is blocking, so it runs in a worker
thread to keep the event loop free.
"""

import asyncio
import csv
import io
import logging
from typing import List

from docx import Document as DocxDocument
from langchain_text_splitters import RecursiveCharacterTextSplitter
from openpyxl import load_workbook
from pypdf import PdfReader
import xlrd

from ..config import settings
from ..domain.models import ContentMetadata, ProcessedContent, UploadedFile
from ..services.exceptions import ExtractionError
from .interface import ContentIngestor

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {"pdf", "docx", "txt", "csv", "xlsx", "xls"}


class DocumentExtractor(ContentIngestor):
    def __init__(
        self,
        chunk_size: int = settings.CHUNK_SIZE,
        chunk_overlap: int = settings.CHUNK_OVERLAP,
    ):
        self.text_splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
        )

    async def extract(self, upload: UploadedFile) -> List[ProcessedContent]:
        extension = upload.extension
        if extension not in SUPPORTED_EXTENSIONS:
            raise ExtractionError(f"Unsupported file format: {extension or upload.filename}")

        text = await asyncio.to_thread(self._extract_text, upload)
        chunks = self.text_splitter.split_text(text)

        processed = [
            ProcessedContent(
                type="document",
                content=chunk,
                metadata=ContentMetadata(
                    filename=upload.filename,
                    media_type=upload.media_type,
                    file_type=extension,
                    size=upload.size,
                    chunk_index=index,
                    total_chunks=len(chunks),
                ),
            )
            for index, chunk in enumerate(chunks)
        ]
        logger.info(
            f"Processed document '{upload.filename}' | type={extension} "
            f"| chars={len(text)} | chunks={len(processed)}"
        )
        return processed

    # ==========================================================================
    # Format Parsers
    # ==========================================================================

    def _extract_text(self, upload: UploadedFile) -> str:
        parsers = {
            "pdf": self._parse_pdf,
            "docx": self._parse_docx,
            "txt": self._parse_txt,
            "csv": self._parse_csv,
            "xlsx": self._parse_excel,
            "xls": self._parse_xls,
        }
        try:
            return parsers[upload.extension](upload.data)
        except ExtractionError:
            raise
        except Exception as e:
            raise ExtractionError(f"Failed to parse '{upload.filename}': {e}") from e

    def _parse_pdf(self, data: bytes) -> str:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
        return "\n".join(pages)

    def _parse_docx(self, data: bytes) -> str:
        document = DocxDocument(io.BytesIO(data))
        return "\n".join(p.text for p in document.paragraphs if p.text and p.text.strip())

    def _parse_txt(self, data: bytes) -> str:
        return data.decode("utf-8", errors="replace")

    def _parse_csv(self, data: bytes) -> str:
        # One block per row, "column: value" per line
        reader = csv.DictReader(io.StringIO(data.decode("utf-8-sig", errors="replace")))
        rows = []
        for row in reader:
            lines = [f"{key}: {value}" for key, value in row.items() if key is not None]
            rows.append("\n".join(lines))
        return "\n".join(rows)

    def _parse_excel(self, data: bytes) -> str:
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        try:
            content = ""
            for sheet in workbook.worksheets:
                content += f"Sheet: {sheet.title}\n"
                lines = [
                    "\t".join("" if cell is None else str(cell) for cell in row)
                    for row in sheet.iter_rows(values_only=True)
                ]
                content += "\n".join(lines)
                content += "\n\n"
            return content
        finally:
            workbook.close()

    def _parse_xls(self, data: bytes) -> str:
        # Legacy binary workbooks; xlrd reports every number as a float
        book = xlrd.open_workbook(file_contents=data)
        try:
            content = ""
            for sheet in book.sheets():
                content += f"Sheet: {sheet.name}\n"
                lines = [
                    "\t".join(_xls_cell_text(value) for value in sheet.row_values(row))
                    for row in range(sheet.nrows)
                ]
                content += "\n".join(lines)
                content += "\n\n"
            return content
        finally:
            book.release_resources()


def _xls_cell_text(value) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
