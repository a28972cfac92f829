"""
Print job orchestration and lifecycle management.

This module manages the end-to-end lifecycle of print jobs:
- Job creation and registration in the in-memory job table
- Choosing the transformation (duplex split, N-up, page range, passthrough)
- Submission of the resulting document to the print spooler
- The paused two-phase duplex workflow and its resume transition
- Hand-off of generated documents to the artifact store for cleanup

Job states:
    pending -> processing -> completed | failed
    pending -> processing -> awaiting-even-pages -> completed | failed

``awaiting-even-pages`` is left only through :meth:`PrintJobCoordinator.resume_even`,
which the client calls once the user has flipped the printed odd pages.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import string
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional

from .artifacts import TempArtifactStore
from .composer import DocumentComposer
from .exceptions import InvalidJobStateError, PrintServiceError, UserInputError
from .models import (
    JobEvent,
    JobStatus,
    PageLayout,
    PageStep,
    PrinterInfo,
    PrintJob,
    PrintResponse,
    PrintSettings,
    SpoolerJobStatus,
    SpoolerSubmission,
)
from .page_ranges import select_pages
from .spooler import PrintSpooler
from .uploads import UploadStore

logger = logging.getLogger(__name__)

_JOB_ID_ALPHABET = string.digits + string.ascii_lowercase

FLIP_PAPER_MESSAGE = "Odd pages sent to printer. Please flip the paper and print even pages."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_job_id() -> str:
    """Return ``job-<epoch ms>-<9 base36 chars>``."""
    millis = int(_utcnow().timestamp() * 1000)
    suffix = "".join(secrets.choice(_JOB_ID_ALPHABET) for _ in range(9))
    return f"job-{millis}-{suffix}"


@dataclass
class JobRecord:
    """
    Internal representation of a print job.

    Attributes:
        id: Unique job identifier
        status: Current lifecycle state
        message: Human-readable description of the current state
        created_at: Creation timestamp (UTC)
        updated_at: Last modification timestamp (UTC)
        filename: Stored upload the job prints
        printer_name: Queue requested by the client (empty for the default)
        page_range: Range expression used for the first pass
        copies: Copies requested for the first pass
        total_pages: Page count of the original document (duplex jobs)
        current_step: Duplex half in progress or expected next
        events: Chronological list of lifecycle events
    """

    id: str
    status: JobStatus
    message: str
    created_at: datetime
    updated_at: datetime
    filename: str
    printer_name: str = ""
    page_range: Optional[str] = None
    copies: int = 1
    total_pages: Optional[int] = None
    current_step: Optional[PageStep] = None
    events: List[JobEvent] = field(default_factory=list)

    def to_model(self) -> PrintJob:
        return PrintJob(
            id=self.id,
            status=self.status,
            message=self.message,
            total_pages=self.total_pages,
            current_step=self.current_step,
            created_at=self.created_at,
            updated_at=self.updated_at,
            events=list(self.events),
        )


@dataclass
class PrintResult:
    """Outcome of a successful submission (first pass or even-page pass)."""

    job_id: str
    spooler_job_id: Optional[int]
    job: PrintJob

    def to_response(self) -> PrintResponse:
        return PrintResponse(job_id=self.job_id, cups_job_id=self.spooler_job_id, status=self.job)


class JobStore:
    """
    Process-local job table.

    Reads and writes of the table go through a lock; each job additionally
    owns an ``asyncio.Lock`` that serialises its state transitions across
    awaits, so two resume requests for one job cannot both proceed.
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, JobRecord] = {}
        self._transition_locks: Dict[str, asyncio.Lock] = {}
        self._lock = Lock()

    def register(self, record: JobRecord) -> None:
        with self._lock:
            self._jobs[record.id] = record
            self._transition_locks[record.id] = asyncio.Lock()

    def get(self, job_id: str) -> Optional[PrintJob]:
        with self._lock:
            record = self._jobs.get(job_id)
            return record.to_model() if record else None

    def snapshot(self, job_id: str) -> Optional[JobRecord]:
        with self._lock:
            record = self._jobs.get(job_id)
            if record is None:
                return None
            return replace(record, events=list(record.events))

    def list_all(self) -> List[PrintJob]:
        with self._lock:
            records = sorted(self._jobs.values(), key=lambda r: r.created_at, reverse=True)
            return [record.to_model() for record in records]

    def transition_lock(self, job_id: str) -> Optional[asyncio.Lock]:
        with self._lock:
            return self._transition_locks.get(job_id)

    def update(self, job_id: str, event: Optional[str] = None, **changes: Any) -> PrintJob:
        """
        Apply ``changes`` to a job, refresh ``updated_at`` and optionally log an event.

        Returns:
            Snapshot of the job after the update
        """
        now = _utcnow()
        with self._lock:
            record = self._jobs[job_id]
            for key, value in changes.items():
                setattr(record, key, value)
            record.updated_at = now
            if event:
                record.events.append(JobEvent(timestamp=now, message=event))
            return record.to_model()


class PrintJobCoordinator:
    """
    Central coordinator for print jobs.

    Owns the job table and is the only component that mutates job state.
    Document transformations are delegated to :class:`DocumentComposer`,
    device submission to a :class:`PrintSpooler`.
    """

    def __init__(
        self,
        uploads: UploadStore,
        composer: DocumentComposer,
        spooler: PrintSpooler,
        artifacts: TempArtifactStore,
    ) -> None:
        self.uploads = uploads
        self.composer = composer
        self.spooler = spooler
        self.artifacts = artifacts
        self.jobs = JobStore()

    def get_job(self, job_id: str) -> Optional[PrintJob]:
        return self.jobs.get(job_id)

    def list_jobs(self) -> List[PrintJob]:
        return self.jobs.list_all()

    async def list_printers(self) -> List[PrinterInfo]:
        return await self.spooler.list_printers()

    async def spooler_job_status(self, spooler_job_id: int) -> SpoolerJobStatus:
        return await self.spooler.get_job_status(spooler_job_id)

    async def submit(self, filename: str, settings: PrintSettings, printer_name: str = "") -> PrintResult:
        """
        Create a job for an uploaded file and run its first (or only) pass.

        Transformation precedence: duplex, then N-up layout, then page range,
        then the unmodified original.

        Args:
            filename: Stored upload name returned by the upload endpoint
            settings: Print settings chosen by the client
            printer_name: Target queue; empty selects the spooler default

        Returns:
            PrintResult with the internal job id, spooler job id and job snapshot

        Raises:
            NotFoundError: If the upload does not exist (no job is created)
            UserInputError: If the selection contains no pages
            DocumentProcessingError: If the document cannot be transformed
            SpoolerError: If the spooler cannot be reached or rejects the job

        Note:
            Once the job exists, any failure marks it ``failed`` before the
            error propagates.
        """
        source = self.uploads.resolve(filename)

        now = _utcnow()
        record = JobRecord(
            id=generate_job_id(),
            status=JobStatus.PENDING,
            message="Job registered",
            created_at=now,
            updated_at=now,
            filename=filename,
            printer_name=printer_name,
            page_range=settings.page_range,
            copies=settings.copies,
            events=[JobEvent(timestamp=now, message="Job registered and awaiting processing.")],
        )
        self.jobs.register(record)
        job_id = record.id
        logger.info(f"Job {job_id}: {filename} duplex={settings.duplex} layout={settings.layout.value} range={settings.page_range!r}")

        async with self.jobs.transition_lock(job_id):
            output: Optional[Path] = None
            try:
                total_pages = await self.composer.page_count(source)

                if settings.duplex:
                    self.jobs.update(
                        job_id,
                        event="Extracting odd pages.",
                        status=JobStatus.PROCESSING,
                        current_step=PageStep.ODD,
                        message="Printing odd pages...",
                    )
                    pages = self._require_pages(select_pages(total_pages, settings.page_range, PageStep.ODD))
                    output = await self.composer.extract(source, pages, PageStep.ODD.value)
                elif settings.layout is not PageLayout.ONE_UP:
                    self.jobs.update(
                        job_id,
                        event=f"Composing {settings.layout.value} layout.",
                        status=JobStatus.PROCESSING,
                        message=f"Creating {settings.layout.value} layout...",
                    )
                    pages = self._require_pages(select_pages(total_pages, settings.page_range))
                    output = await self.composer.compose_n_up(source, pages, settings.layout.cells_per_sheet)
                elif settings.page_range:
                    self.jobs.update(
                        job_id,
                        event="Extracting page range.",
                        status=JobStatus.PROCESSING,
                        message="Extracting page range...",
                    )
                    pages = self._require_pages(select_pages(total_pages, settings.page_range))
                    output = await self.composer.extract(source, pages, "range")
                else:
                    self.jobs.update(
                        job_id,
                        event="Submitting original document.",
                        status=JobStatus.PROCESSING,
                        message="Sending to printer...",
                    )
                    output = source

                submission = await self._send(output, printer_name, f"Print Job - {filename}", settings.copies)
            except Exception as exc:
                self._mark_failed(job_id, exc)
                raise
            finally:
                if output is not None:
                    self.artifacts.schedule_removal(output, source)

            if settings.duplex:
                job = self.jobs.update(
                    job_id,
                    event=f"Odd pages submitted as spooler job {submission.job_id}; waiting for paper flip.",
                    status=JobStatus.AWAITING_EVEN_PAGES,
                    current_step=PageStep.EVEN,
                    total_pages=total_pages,
                    message=FLIP_PAPER_MESSAGE,
                )
            else:
                job = self.jobs.update(
                    job_id,
                    event=f"Submitted as spooler job {submission.job_id}.",
                    status=JobStatus.COMPLETED,
                    message="Print job submitted successfully",
                )

        logger.info(f"Job {job_id}: {job.status.value} (spooler job {submission.job_id})")
        return PrintResult(job_id=job_id, spooler_job_id=submission.job_id, job=job)

    async def resume_even(
        self,
        job_id: str,
        filename: str,
        printer_name: str = "",
        page_range: Optional[str] = None,
        copies: int = 1,
    ) -> PrintResult:
        """
        Run the even-page pass of a duplex job.

        The caller's request is the signal that the odd pages have been
        printed and flipped; the coordinator does not poll the spooler.

        Args:
            job_id: Job returned by :meth:`submit`
            filename: Stored upload name
            printer_name: Target queue; empty selects the spooler default
            page_range: Range used for the odd pass; when omitted the range
                recorded on the job is reused
            copies: Number of copies for the even pass

        Raises:
            InvalidJobStateError: If the job is unknown or not awaiting even
                pages; the job is not modified
            NotFoundError: If the upload no longer exists; the job is not modified
        """
        lock = self.jobs.transition_lock(job_id)
        if lock is None:
            raise InvalidJobStateError(job_id)

        async with lock:
            record = self.jobs.snapshot(job_id)
            if record is None or record.status is not JobStatus.AWAITING_EVEN_PAGES:
                raise InvalidJobStateError(job_id, record.status.value if record else None)

            source = self.uploads.resolve(filename)
            effective_range = page_range if page_range is not None else record.page_range

            self.jobs.update(job_id, event="Resume requested; extracting even pages.", message="Printing even pages...")
            output: Optional[Path] = None
            try:
                total_pages = await self.composer.page_count(source)
                pages = select_pages(total_pages, effective_range, PageStep.EVEN)
                if not pages:
                    job = self.jobs.update(
                        job_id,
                        event="No even pages in the selection; nothing to submit.",
                        status=JobStatus.COMPLETED,
                        current_step=None,
                        message="Duplex printing completed",
                    )
                    return PrintResult(job_id=job_id, spooler_job_id=None, job=job)

                output = await self.composer.extract(source, pages, PageStep.EVEN.value)
                submission = await self._send(output, printer_name, f"Print Job - {filename} (Even Pages)", copies)
            except Exception as exc:
                self._mark_failed(job_id, exc)
                raise
            finally:
                if output is not None:
                    self.artifacts.schedule_removal(output, source)

            job = self.jobs.update(
                job_id,
                event=f"Even pages submitted as spooler job {submission.job_id}.",
                status=JobStatus.COMPLETED,
                current_step=None,
                message="Duplex printing completed",
            )

        logger.info(f"Job {job_id}: duplex completed (spooler job {submission.job_id})")
        return PrintResult(job_id=job_id, spooler_job_id=submission.job_id, job=job)

    @staticmethod
    def _require_pages(pages: List[int]) -> List[int]:
        if not pages:
            raise UserInputError("The selected page range contains no pages")
        return pages

    async def _send(self, document: Path, printer_name: str, job_name: str, copies: int) -> SpoolerSubmission:
        return await self.spooler.submit(document, printer_name or None, job_name, copies)

    def _mark_failed(self, job_id: str, exc: BaseException) -> None:
        message = exc.message if isinstance(exc, PrintServiceError) else f"Unexpected error: {exc}"
        if isinstance(exc, PrintServiceError) and exc.status_code < 500:
            logger.warning(f"Job {job_id} failed: {message}")
        else:
            logger.exception(f"Job {job_id} failed: {message}")
        self.jobs.update(job_id, event=f"Job failed: {message}", status=JobStatus.FAILED, message=message)
