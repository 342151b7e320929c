import io
import logging
import os
import re
import shutil
from typing import List, Optional

try:
    import fitz  # PyMuPDF
except ImportError:  # pragma: no cover - library optional at runtime
    fitz = None

try:
    from pdfminer.high_level import extract_text as pdfminer_extract_text
except ImportError:  # pragma: no cover - library optional at runtime
    pdfminer_extract_text = None

try:
    from pdf2image import convert_from_bytes
    import pytesseract
except ImportError:  # pragma: no cover - OCR is an optional fallback
    convert_from_bytes = None
    pytesseract = None

try:
    import docx
except ImportError:  # pragma: no cover - library optional at runtime
    docx = None

SUPPORTED_EXTENSIONS = ("pdf", "docx", "txt", "text")
MAX_FILE_SIZE = 10 * 1024 * 1024
PDF_TEXT_MIN_LENGTH = 80  # Heuristic threshold to trigger fallbacks

_configured_poppler_path: Optional[str] = None
logger = logging.getLogger(__name__)

PDF_BACKENDS_AVAILABLE = bool(fitz) or bool(pdfminer_extract_text) or (
    convert_from_bytes is not None and pytesseract is not None
)


class DocumentError(Exception):
    """Base class for documents that cannot be turned into plain text."""


class UnsupportedFileError(DocumentError):
    pass


class DocumentTooLargeError(DocumentError):
    pass


class UnreadableDocumentError(DocumentError):
    pass


def _configure_ocr_backends() -> None:
    """Pick up Tesseract/Poppler locations from the environment."""
    global _configured_poppler_path

    env_tesseract_cmd = os.getenv("TESSERACT_CMD")
    if env_tesseract_cmd and shutil.which(env_tesseract_cmd):
        pytesseract.pytesseract.tesseract_cmd = env_tesseract_cmd

    poppler_env = os.getenv("POPPLER_PATH")
    if poppler_env and os.path.isdir(poppler_env):
        _configured_poppler_path = poppler_env


if convert_from_bytes and pytesseract:
    _configure_ocr_backends()


def file_extension(filename: str) -> str:
    return os.path.splitext(filename or "")[1].lstrip(".").lower()


def extract_text_from_file(file_path: str) -> str:
    """Extract text from a PDF, DOCX, or TXT file on disk."""
    with open(file_path, "rb") as handle:
        data = handle.read()
    return extract_text_from_bytes(data, os.path.basename(file_path))


def extract_text_from_bytes(data: bytes, filename: str) -> str:
    """Extract text from an in-memory PDF, DOCX, or TXT document."""
    ext = file_extension(filename)
    if ext not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFileError("Only PDF, DOCX, or TXT files are supported.")
    if len(data) > MAX_FILE_SIZE:
        raise DocumentTooLargeError("Maximum file size is 10 MB.")

    if ext == "pdf":
        text = _extract_pdf_text(data, filename)
    elif ext == "docx":
        text = _extract_docx_text(data, filename)
    else:
        text = data.decode("utf-8", errors="replace")

    normalized = normalize_text(text)
    if not normalized:
        raise UnreadableDocumentError(f"Unable to read any text from {filename}.")
    return normalized


def _extract_pdf_text(data: bytes, filename: str) -> str:
    """Attempt PyMuPDF, fall back to pdfminer, then OCR if needed."""
    if not PDF_BACKENDS_AVAILABLE:
        raise UnreadableDocumentError(
            "No PDF extraction backend available. Install PyMuPDF or pdfminer.six."
        )

    text = ""

    if fitz:
        try:
            with fitz.open(stream=data, filetype="pdf") as doc:
                text = "\n".join(page.get_text("text", sort=True) for page in doc)
        except Exception as exc:
            logger.warning("PyMuPDF failed to read %s: %s", filename, exc)
            text = ""

    if len(text.strip()) < PDF_TEXT_MIN_LENGTH and fitz:
        try:
            with fitz.open(stream=data, filetype="pdf") as doc:
                block_chunks: List[str] = []
                for page in doc:
                    for block in page.get_text("blocks"):
                        if block[4]:
                            block_chunks.append(block[4].strip())
            alt_text = "\n".join(block_chunks)
            if len(alt_text.strip()) > len(text.strip()):
                text = alt_text
        except Exception as exc:
            logger.debug("PyMuPDF block extraction failed for %s: %s", filename, exc)

    if len(text.strip()) < PDF_TEXT_MIN_LENGTH and pdfminer_extract_text:
        try:
            text = pdfminer_extract_text(io.BytesIO(data)) or text
        except Exception as exc:
            logger.warning("pdfminer failed to read %s: %s", filename, exc)

    if len(text.strip()) < PDF_TEXT_MIN_LENGTH and convert_from_bytes and pytesseract:
        try:
            ocr_text = _extract_pdf_via_ocr(data)
        except Exception as exc:
            logger.warning("OCR fallback failed for %s: %s", filename, exc)
        else:
            if ocr_text.strip():
                logger.info("OCR fallback succeeded for %s", filename)
                text = ocr_text
            else:
                logger.warning("OCR fallback yielded empty text for %s", filename)
    elif len(text.strip()) < PDF_TEXT_MIN_LENGTH:
        logger.warning(
            "PDF text extraction produced < %s characters for %s",
            PDF_TEXT_MIN_LENGTH,
            filename,
        )

    return text


def _extract_pdf_via_ocr(data: bytes) -> str:
    """Last-resort OCR extraction for image-based PDFs."""
    kwargs = {}
    if _configured_poppler_path:
        kwargs["poppler_path"] = _configured_poppler_path

    images = convert_from_bytes(data, dpi=300, **kwargs)
    return "\n".join(pytesseract.image_to_string(image) for image in images)


def _extract_docx_text(data: bytes, filename: str) -> str:
    if not docx:
        raise UnreadableDocumentError("python-docx is required to read .docx files.")
    try:
        document = docx.Document(io.BytesIO(data))
    except Exception as exc:
        raise UnreadableDocumentError(f"Unable to read DOCX contents of {filename}.") from exc

    lines = [para.text for para in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            lines.append(" | ".join(cell.text.strip() for cell in row.cells if cell.text.strip()))
    return "\n".join(lines)


def normalize_text(text: str) -> str:
    """Normalize whitespace and replace common unicode bullets/dashes."""
    if not text:
        return ""

    char_replacements = {
        "\u2022": "-",
        "\u2023": "-",
        "\u25e6": "-",
        "\u2043": "-",
        "\u2212": "-",
        "\u2013": "-",
        "\u2014": "-",
        "\u2010": "-",
        "\u2012": "-",
        "\u2015": "-",
        "\uf0b7": "-",
        "\u2018": "'",
        "\u2019": "'",
        "\u201c": '"',
        "\u201d": '"',
        "\ufb01": "fi",
        "\ufb02": "fl",
        "\u00ad": "",
        "\u00b7": "-",
        "\u00a0": " ",
        "\u2024": ".",
        "\ufffd": "",
    }

    cleaned = text.translate(str.maketrans(char_replacements))
    cleaned = re.sub(r"\r\n?", "\n", cleaned)
    cleaned = re.sub(r"[ \t]+\n", "\n", cleaned)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()
