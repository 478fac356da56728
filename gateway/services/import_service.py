from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

from gateway.core.logging import log_security_event
from gateway.schemas.imports import ImportMetadata, ImportRequest, ImportResponse

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 5 * 1024 * 1024
MAX_CSV_ROWS = 10_000
MAX_ICS_EVENTS = 5_000
LARGE_IMPORT_THRESHOLD = 1_000
MAX_CSV_CELL_CHARS = 10_000
CSV_SAMPLE_ROWS = 100
MAX_ICS_LINE_CHARS = 50_000

ALLOWED_MIME_TYPES: dict[str, frozenset[str]] = {
    "csv": frozenset({"text/csv", "application/csv", "text/plain"}),
    "ics": frozenset({"text/calendar", "application/ics", "text/plain"}),
}
REQUIRED_CSV_HEADERS = ("title", "due")

_MARKUP_PATTERNS = (
    re.compile(r"<script[\s\S]*?</script>", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"data:text/html", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
    re.compile(r"<iframe[\s\S]*?>", re.IGNORECASE),
)
CSV_SUSPICIOUS_PATTERNS = _MARKUP_PATTERNS + (
    re.compile(r"<object[\s\S]*?>", re.IGNORECASE),
    re.compile(r"<embed[\s\S]*?>", re.IGNORECASE),
)
ICS_SUSPICIOUS_PATTERNS = _MARKUP_PATTERNS + (
    re.compile(
        r"ATTACH;VALUE=URI:https?://(?!.*\.(ics|pdf|doc|docx|txt)).*$",
        re.IGNORECASE | re.MULTILINE,
    ),
)
_VEVENT = re.compile(r"BEGIN:VEVENT")


class ImportValidationError(ValueError):
    """Request rejected before or during content validation."""

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        details: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details

    def to_body(self) -> dict:
        body: dict = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


@dataclass(slots=True)
class ContentCheck:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def validate_csv_content(content: str) -> ContentCheck:
    check = ContentCheck()
    lines = [line for line in content.split("\n") if line.strip()]
    if not lines:
        check.errors.append("CSV file appears to be empty")
        return check

    data_rows = lines[1:]
    if len(data_rows) > MAX_CSV_ROWS:
        check.errors.append(
            f"CSV file has too many rows ({len(data_rows)}). Maximum allowed: {MAX_CSV_ROWS}"
        )
        return check

    headers = [re.sub(r"['\"]", "", header.strip()) for header in lines[0].lower().split(",")]
    if not all(any(required in header for header in headers) for required in REQUIRED_CSV_HEADERS):
        check.errors.append("CSV must contain at least Title and Due Date columns")
        return check

    if any(pattern.search(content) for pattern in CSV_SUSPICIOUS_PATTERNS):
        check.errors.append("CSV contains potentially malicious content")
        return check

    for index, row in enumerate(data_rows[:CSV_SAMPLE_ROWS]):
        if any(len(cell) > MAX_CSV_CELL_CHARS for cell in row.split(",")):
            check.errors.append(f"Row {index + 2} contains suspiciously long content")
            return check

    if len(data_rows) > LARGE_IMPORT_THRESHOLD:
        check.warnings.append(
            f"Large CSV file with {len(data_rows)} rows may take longer to process"
        )
    return check


def validate_ics_content(content: str) -> ContentCheck:
    check = ContentCheck()
    if "BEGIN:VCALENDAR" not in content or "END:VCALENDAR" not in content:
        check.errors.append("Invalid ICS file structure - missing VCALENDAR block")
        return check

    event_count = len(_VEVENT.findall(content))
    if event_count == 0:
        check.errors.append("ICS file contains no events")
        return check
    if event_count > MAX_ICS_EVENTS:
        check.errors.append(
            f"ICS file has too many events ({event_count}). Maximum allowed: {MAX_ICS_EVENTS}"
        )
        return check

    if any(pattern.search(content) for pattern in ICS_SUSPICIOUS_PATTERNS):
        check.errors.append("ICS contains potentially malicious content")
        return check

    for index, line in enumerate(content.split("\n"), start=1):
        if len(line) > MAX_ICS_LINE_CHARS:
            check.errors.append(f"Line {index} is suspiciously long")
            return check

    if event_count > LARGE_IMPORT_THRESHOLD:
        check.warnings.append(
            f"Large ICS file with {event_count} events may take longer to process"
        )
    return check


CONTENT_VALIDATORS = {
    "csv": validate_csv_content,
    "ics": validate_ics_content,
}


_WHITESPACE = re.compile(r"\s+")


def _decode_file(encoded: str) -> bytes:
    try:
        return base64.b64decode(_WHITESPACE.sub("", encoded), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImportValidationError("Invalid file encoding") from exc


def _as_text(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def validate_import(request: ImportRequest, user_id: str | None = None) -> ImportResponse:
    """Check an uploaded calendar/task file and return its vetted content.

    Raises ``ImportValidationError`` carrying the HTTP status for every rejection.
    """
    if not request.file or not request.filename or not request.format:
        raise ImportValidationError("Missing required fields: file, filename, format")
    if request.format not in CONTENT_VALIDATORS:
        raise ImportValidationError("Invalid format. Only CSV and ICS files are allowed.")

    raw = _decode_file(request.file)
    if len(raw) > MAX_FILE_SIZE:
        raise ImportValidationError(
            f"File too large. Maximum size is {MAX_FILE_SIZE // (1024 * 1024)}MB.",
            status_code=413,
        )

    extension = request.filename.lower().rsplit(".", 1)[-1]
    if extension != request.format:
        raise ImportValidationError("File extension does not match specified format")
    if request.content_type and request.content_type not in ALLOWED_MIME_TYPES[request.format]:
        raise ImportValidationError(f"Invalid content type for {request.format} file")

    content = _as_text(raw)
    check = CONTENT_VALIDATORS[request.format](content)
    if not check.is_valid:
        log_security_event(
            "warn",
            "Import security validation failed",
            user_id=user_id,
            filename=request.filename,
            format=request.format,
            errors=check.errors,
        )
        raise ImportValidationError("Security validation failed", details=check.errors)

    logger.info(
        "Validated %s import %s (%d bytes, %d warnings)",
        request.format,
        request.filename,
        len(raw),
        len(check.warnings),
    )
    return ImportResponse(
        content=content,
        warnings=check.warnings,
        metadata=ImportMetadata(
            filename=request.filename,
            format=request.format,
            size=len(raw),
            processed_at=datetime.now(timezone.utc),
        ),
    )
