"""
Resume parser: plain-text extraction from resume attachments.

PDF (two attempts, in order):
  1. pdfminer.six  — layout analysis, page by page
  2. PyPDF2        — page text fallback for PDFs pdfminer chokes on

  Each page's text items are joined with single spaces and every page is
  terminated with a newline.

Word:  python-docx (paragraphs, then table cells)

Anything else is rejected with UnsupportedFileTypeError. Files that cannot be
read raise TextExtractionError; the email monitor records either one against
the attachment and moves on.

Security:
  • Extracted text is sanitised before it is sent to an LLM: common prompt-
    injection patterns are stripped or neutralised (see sanitise_text).
"""
import logging
import mimetypes
import re
from io import BytesIO
from pathlib import Path

from pdfminer.high_level import extract_pages
from pdfminer.layout import LTTextContainer

logger = logging.getLogger(__name__)

PDF = "application/pdf"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
DOC = "application/msword"

SUPPORTED_CONTENT_TYPES: frozenset[str] = frozenset({PDF, DOCX, DOC})

_EXTENSION_TYPES = {
    ".pdf": PDF,
    ".docx": DOCX,
    ".doc": DOC,
}


# ── Custom exceptions ─────────────────────────────────────────────────────────

class TextExtractionError(RuntimeError):
    """Raised when a resume document cannot be read."""


class UnsupportedFileTypeError(TextExtractionError):
    """Raised for content types other than PDF and Word."""


# ── Text extraction ───────────────────────────────────────────────────────────

def resolve_content_type(filename: str, declared: str | None) -> str:
    """
    Pick the content type to parse with.

    Mail clients frequently send resumes as application/octet-stream, so a
    declared type is only trusted when it is one we can parse; otherwise the
    file extension decides.
    """
    declared = (declared or "").split(";")[0].strip().lower()
    if declared in SUPPORTED_CONTENT_TYPES:
        return declared
    suffix = Path(filename or "").suffix.lower()
    if suffix in _EXTENSION_TYPES:
        return _EXTENSION_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(filename or "")
    return guessed or declared or "application/octet-stream"


def extract_text(content: bytes, content_type: str, filename: str = "") -> str:
    """
    Extract plain text from a resume file buffer.

    Raises UnsupportedFileTypeError for anything but PDF / Word, and
    TextExtractionError when the document is corrupt or has no text.
    """
    name = filename or "document"
    if content_type == PDF:
        return _from_pdf(content, name)
    if content_type in (DOCX, DOC):
        return _from_docx(content, name)
    raise UnsupportedFileTypeError(
        f"Unsupported file type '{content_type}' for {name}. "
        "Please upload a PDF or Word document."
    )


def _from_pdf(content: bytes, name: str) -> str:
    """Try pdfminer → PyPDF2, in that order."""
    problems: list[str] = []

    for label, extractor in (("pdfminer", _pdf_pdfminer), ("PyPDF2", _pdf_pypdf2)):
        try:
            text = extractor(content)
        except Exception as e:
            logger.debug("%s failed on %s: %s", label, name, e)
            problems.append(f"{label}: {e}")
            continue
        if text.strip():
            logger.debug("PDF extracted via %s: %s", label, name)
            return text
        problems.append(f"{label}: no text layer")

    raise TextExtractionError(
        f"Could not extract readable text from PDF '{name}' ({'; '.join(problems)}). "
        "The file may be corrupted or a scanned image."
    )


def _pdf_pdfminer(content: bytes) -> str:
    text = ""
    for page in extract_pages(BytesIO(content)):
        items = []
        for element in page:
            if not isinstance(element, LTTextContainer):
                continue
            items.extend(line.strip() for line in element.get_text().splitlines() if line.strip())
        text += " ".join(items) + "\n"
    return text


def _pdf_pypdf2(content: bytes) -> str:
    import PyPDF2

    reader = PyPDF2.PdfReader(BytesIO(content))
    text = ""
    for page in reader.pages:
        items = (page.extract_text() or "").split()
        text += " ".join(items) + "\n"
    return text


def _from_docx(content: bytes, name: str) -> str:
    try:
        from docx import Document
        doc = Document(BytesIO(content))
        parts = [p.text for p in doc.paragraphs]
        for table in doc.tables:
            for row in table.rows:
                parts.extend(cell.text for cell in row.cells)
    except Exception as e:
        raise TextExtractionError(f"Word extraction failed for {name}: {e}") from e

    text = "\n".join(parts)
    if not text.strip():
        raise TextExtractionError(f"Word document appears empty: {name}")
    return text


# ── Input sanitisation (anti prompt-injection) ────────────────────────────────

# Patterns commonly used in prompt-injection attacks.
_INJECTION_PATTERNS: list[re.Pattern] = [
    # Direct instruction overrides
    re.compile(
        r"(ignore|disregard|forget|override|bypass)\s+"
        r"(all\s+)?(previous|prior|above|earlier|system|original)\s+"
        r"(instructions?|prompts?|rules?|context|guidelines?)",
        re.IGNORECASE,
    ),
    # Role hijacking: "you are now ...", "act as ..."
    re.compile(
        r"(you\s+are\s+now|act\s+as|pretend\s+(to\s+be|you\s+are)|"
        r"from\s+now\s+on\s+you|switch\s+to\s+role|new\s+instructions?)",
        re.IGNORECASE,
    ),
    # Score manipulation: "set aiScore to 100"
    re.compile(
        r"(set|assign|return|output|give)\s+(the\s+|my\s+)?(ai\s*)?(score|rating|rank|result)\s*(=|to|:)\s*",
        re.IGNORECASE,
    ),
    # System/assistant framing
    re.compile(
        r"<\s*/?\s*(system|assistant|user|function)\s*>",
        re.IGNORECASE,
    ),
]


def sanitise_text(text: str) -> str:
    """
    Neutralise known prompt-injection patterns in resume text.

    Detected patterns are replaced with [REDACTED] and a warning is logged.
    Never raises.
    """
    cleaned = text
    injection_found = False

    for pattern in _INJECTION_PATTERNS:
        if pattern.search(cleaned):
            injection_found = True
            cleaned = pattern.sub("[REDACTED]", cleaned)

    if injection_found:
        logger.warning(
            "resume_parser: possible prompt-injection detected and sanitised "
            "(text length=%d chars). Review the resume for malicious content.",
            len(text),
        )

    return cleaned
