import logging
import mimetypes
import re
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from gateway.core.logging import log_security_event

logger = logging.getLogger(__name__)


class FileParsingError(ValueError):
    pass


class EmptyFileError(FileParsingError):
    pass


class UnsupportedFileTypeError(FileParsingError):
    pass


SUSPICIOUS_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"data:text/html", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
)

ACADEMIC_INDICATORS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(word, re.IGNORECASE)
    for word in (
        r"syllabus",
        r"course",
        r"assignment",
        r"semester",
        r"professor",
        r"due date",
        r"exam",
        r"quiz",
    )
)

REMOVED_PLACEHOLDER = "[CONTENT_REMOVED]"


@dataclass(slots=True)
class ContentValidation:
    is_valid: bool
    sanitized_content: str
    warnings: list[str] = field(default_factory=list)


def detect_content_type(filename: str, declared: str | None = None) -> str:
    if declared and "/" in declared:
        return declared.lower()
    guessed, _ = mimetypes.guess_type(filename)
    if guessed:
        return guessed
    if Path(filename).suffix.lower() in {".md", ".markdown", ".rst", ".csv"}:
        return "text/plain"
    return "application/octet-stream"


def _decode_text(raw_bytes: bytes) -> str:
    for encoding in ("utf-8", "utf-16", "latin-1"):
        try:
            return raw_bytes.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise FileParsingError("Could not decode file text content")


def _parse_pdf(raw_bytes: bytes) -> str:
    try:
        reader = PdfReader(BytesIO(raw_bytes))
        page_text = [(page.extract_text() or "").strip() for page in reader.pages]
    except PdfReadError as exc:
        raise FileParsingError(f"Could not read PDF: {exc}") from exc
    return "\n\n".join(chunk for chunk in page_text if chunk).strip()


def extract_text(raw_bytes: bytes, content_type: str) -> str:
    """Extract plain text from a PDF or ``text/*`` payload."""
    if not raw_bytes:
        raise EmptyFileError("File is empty")

    if content_type == "application/pdf":
        return _parse_pdf(raw_bytes)
    if content_type.startswith("text/"):
        return _decode_text(raw_bytes).strip()

    raise UnsupportedFileTypeError(f"Unsupported file type: {content_type}")


def validate_document_text(
    content: str,
    file_name: str,
    max_chars: int = 1_000_000,
    min_chars: int = 50,
) -> ContentValidation:
    """Truncate oversized text, strip injected markup and judge if it is usable.

    Any suspicious pattern makes the document invalid even after removal.
    """
    warnings: list[str] = []
    sanitized = content

    if len(content) > max_chars:
        log_security_event(
            "warn",
            "Document content exceeds size limit",
            file_name=file_name,
            content_length=len(content),
            max_length=max_chars,
        )
        sanitized = content[:max_chars]
        warnings.append("Content truncated due to size limit")

    suspicious = False
    for pattern in SUSPICIOUS_PATTERNS:
        if pattern.search(content):
            suspicious = True
            log_security_event(
                "warn",
                "Suspicious pattern detected in document content",
                file_name=file_name,
                pattern=pattern.pattern,
            )
            sanitized = pattern.sub(REMOVED_PLACEHOLDER, sanitized)
            warnings.append("Suspicious content was removed for security")

    indicators = sum(1 for pattern in ACADEMIC_INDICATORS if pattern.search(content))
    if indicators < 2:
        warnings.append("Content does not appear to be academic material")

    is_valid = len(sanitized) >= min_chars and not suspicious
    logger.info(
        "Validated %s: valid=%s warnings=%d length=%d",
        file_name,
        is_valid,
        len(warnings),
        len(sanitized),
    )
    return ContentValidation(is_valid=is_valid, sanitized_content=sanitized, warnings=warnings)
