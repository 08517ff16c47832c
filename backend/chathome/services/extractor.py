"""Attachment extraction: turns an uploaded blob into model input.

Each attachment becomes exactly one of an inline image (base64 data URI, for
vision-capable tiers) or an annotated text block naming the source file.
Extraction is total: failures produce an explicit marker instead of raising.
"""

import base64
import csv
import io
import logging
from dataclasses import dataclass
from enum import Enum

import docx2txt
from openpyxl import load_workbook
from pypdf import PdfReader

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp", "bmp", "tiff", "tif", "heic", "heif"}

TEXT_EXTENSIONS = {
    "txt", "md", "json", "csv", "xml", "html", "css", "js", "ts", "tsx", "jsx", "py",
    "yaml", "yml", "rtf", "log", "ini", "cfg", "conf", "sh", "bash", "sql", "java",
    "c", "cpp", "h", "hpp", "cs", "go", "rs", "php", "rb", "swift", "kt",
}
TEXT_CONTENT_TYPES = {"application/json", "application/xml", "application/x-yaml"}

# openpyxl reads OOXML workbooks only; legacy .xls falls through to the unsupported marker.
SPREADSHEET_EXTENSIONS = {"xlsx", "xlsm"}

DOCX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

_IMAGE_MIME_BY_EXT = {"jpg": "image/jpeg", "tif": "image/tiff"}


class AttachmentKind(str, Enum):
    IMAGE = "image"
    TEXT = "text"


@dataclass
class ExtractedAttachment:
    kind: AttachmentKind
    file_name: str
    text: str = ""
    data_uri: str = ""
    degraded: bool = False

    @property
    def is_image(self) -> bool:
        return self.kind is AttachmentKind.IMAGE


def _text_block(label: str, file_name: str, body: str, end: str, degraded: bool = False) -> ExtractedAttachment:
    return ExtractedAttachment(
        kind=AttachmentKind.TEXT,
        file_name=file_name,
        text=f"[{label}: {file_name}]\n{body}\n[{end}]",
        degraded=degraded,
    )


def file_extension(file_name: str) -> str:
    if "." not in file_name:
        return ""
    return file_name.rsplit(".", 1)[-1].lower()


class AttachmentExtractor:
    """Content-type dispatch, in priority order: image, PDF, Word, spreadsheet, text."""

    def extract(self, data: bytes, content_type: str, file_name: str) -> ExtractedAttachment:
        content_type = (content_type or "").split(";")[0].strip().lower()
        ext = file_extension(file_name)
        try:
            if content_type.startswith("image/") or ext in IMAGE_EXTENSIONS:
                return self._image(data, content_type, ext, file_name)
            if content_type == "application/pdf" or ext == "pdf" or data.startswith(b"%PDF-"):
                return self._pdf(data, file_name)
            if ext == "docx" or content_type == DOCX_CONTENT_TYPE:
                return self._docx(data, file_name)
            if ext in SPREADSHEET_EXTENSIONS or "spreadsheet" in content_type:
                return self._spreadsheet(data, file_name)
            if content_type.startswith("text/") or content_type in TEXT_CONTENT_TYPES or ext in TEXT_EXTENSIONS:
                return self._text(data, file_name)
        except Exception as e:
            logger.warning(f"Attachment extraction failed for {file_name}: {e}")
            return _text_block("File", file_name, "(Failed to extract content from file)", "End of file", True)

        return _text_block(
            "File",
            file_name,
            f"(Unsupported file type: {content_type or ext or 'unknown'}. Cannot extract content.)",
            "End of file",
            degraded=True,
        )

    def _image(self, data: bytes, content_type: str, ext: str, file_name: str) -> ExtractedAttachment:
        mime = content_type if content_type.startswith("image/") else _IMAGE_MIME_BY_EXT.get(ext, f"image/{ext}")
        encoded = base64.b64encode(data).decode("ascii")
        return ExtractedAttachment(
            kind=AttachmentKind.IMAGE,
            file_name=file_name,
            data_uri=f"data:{mime};base64,{encoded}",
        )

    def _pdf(self, data: bytes, file_name: str) -> ExtractedAttachment:
        try:
            reader = PdfReader(io.BytesIO(data))
            text = "\n".join(page.extract_text() or "" for page in reader.pages).strip()
        except Exception as e:
            logger.warning(f"PDF extraction error for {file_name}: {e}")
            return _text_block("PDF Document", file_name, "(Failed to extract text from PDF)", "End of PDF", True)

        if not text:
            return _text_block(
                "PDF Document",
                file_name,
                "(Could not extract text - PDF may be scanned/image-based)",
                "End of PDF",
                degraded=True,
            )
        return _text_block("PDF Document", file_name, text, "End of PDF")

    def _docx(self, data: bytes, file_name: str) -> ExtractedAttachment:
        try:
            text = (docx2txt.process(io.BytesIO(data)) or "").strip()
        except Exception as e:
            logger.warning(f"Word document extraction error for {file_name}: {e}")
            return _text_block(
                "Word Document", file_name, "(Failed to extract text from Word document)", "End of Document", True
            )

        if not text:
            return _text_block("Word Document", file_name, "(Document appears to be empty)", "End of Document", True)
        return _text_block("Word Document", file_name, text, "End of Document")

    def _spreadsheet(self, data: bytes, file_name: str) -> ExtractedAttachment:
        try:
            workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
            sheets = []
            for sheet in workbook.worksheets:
                out = io.StringIO()
                writer = csv.writer(out, lineterminator="\n")
                for row in sheet.iter_rows(values_only=True):
                    writer.writerow(["" if v is None else v for v in row])
                sheets.append(f"[Sheet: {sheet.title}]\n{out.getvalue()}")
            workbook.close()
        except Exception as e:
            logger.warning(f"Spreadsheet extraction error for {file_name}: {e}")
            return _text_block(
                "Excel Spreadsheet", file_name, "(Failed to extract data from Excel file)", "End of Spreadsheet", True
            )

        return _text_block("Excel Spreadsheet", file_name, "\n".join(sheets).rstrip("\n"), "End of Spreadsheet")

    def _text(self, data: bytes, file_name: str) -> ExtractedAttachment:
        return _text_block("File", file_name, data.decode("utf-8", errors="replace"), "End of file")
