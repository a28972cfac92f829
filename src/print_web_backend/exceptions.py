"""
Exception hierarchy for the print web backend.

Exception Hierarchy:
    PrintServiceError (base)
    ├── UserInputError              - bad request from the client (400)
    │   ├── UnsupportedMediaTypeError  - upload is not a PDF (415)
    │   ├── UploadTooLargeError        - upload exceeds the size limit (413)
    │   └── InvalidJobStateError       - job missing or not resumable (400)
    ├── NotFoundError               - uploaded file or job id absent (404)
    ├── DocumentProcessingError     - PDF could not be transformed (500)
    │   ├── DocumentLoadError          - source unreadable or corrupt
    │   └── OutOfRangeError            - page index outside the source
    └── SpoolerError                - print spooler unreachable or rejected (502)

The HTTP layer maps each class to ``status_code``; nothing here retries.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class PrintServiceError(Exception):
    """Base class for all errors raised by the service."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class UserInputError(PrintServiceError):
    """The request is missing data or carries data the service cannot accept."""

    status_code = 400


class UnsupportedMediaTypeError(UserInputError):
    status_code = 415

    def __init__(self, content_type: Optional[str]):
        super().__init__("Only PDF files are allowed", {"content_type": content_type})
        self.content_type = content_type


class UploadTooLargeError(UserInputError):
    status_code = 413

    def __init__(self, limit_bytes: int):
        super().__init__(
            f"File exceeds the maximum upload size of {limit_bytes} bytes",
            {"limit_bytes": limit_bytes},
        )
        self.limit_bytes = limit_bytes


class InvalidJobStateError(UserInputError):
    """
    A state transition was requested for a job that cannot take it.

    Raised by the resume operation when the job id is unknown or the job is
    not waiting for its even pages. The job table is left untouched.
    """

    def __init__(self, job_id: str, status: Optional[str] = None):
        super().__init__(
            "Invalid job or job not awaiting even pages",
            {"job_id": job_id, "status": status},
        )
        self.job_id = job_id
        self.status = status


class NotFoundError(PrintServiceError):
    status_code = 404


class DocumentProcessingError(PrintServiceError):
    """A source document could not be transformed into an output document."""

    status_code = 500


class DocumentLoadError(DocumentProcessingError):
    def __init__(self, path: str, reason: str):
        super().__init__(f"Unable to read PDF document: {path}", {"path": path, "reason": reason})
        self.path = path
        self.reason = reason


class OutOfRangeError(DocumentProcessingError):
    """A page index outside ``1..page_count`` reached the composer."""

    def __init__(self, index: int, page_count: int):
        super().__init__(
            f"Page {index} is outside the document (1-{page_count})",
            {"index": index, "page_count": page_count},
        )
        self.index = index
        self.page_count = page_count


class SpoolerError(PrintServiceError):
    status_code = 502
