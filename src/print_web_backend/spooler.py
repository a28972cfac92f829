"""
Print spooler interface and the CUPS implementation.

The coordinator only depends on :class:`PrintSpooler`; :class:`CupsSpooler`
submits to a CUPS server through pycups. pycups is blocking, so every call
runs in a worker thread with its own connection.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar
from urllib.parse import urlsplit

from .exceptions import SpoolerError
from .models import PrinterInfo, PrinterState, SpoolerJobState, SpoolerJobStatus, SpoolerSubmission

try:
    import cups  # type: ignore
except ImportError:  # pragma: no cover - pycups needs libcups at build time
    cups = None

logger = logging.getLogger(__name__)

T = TypeVar("T")

PRINTER_STATES: Dict[int, PrinterState] = {
    3: PrinterState.IDLE,
    4: PrinterState.PROCESSING,
    5: PrinterState.STOPPED,
}

JOB_STATES: Dict[int, SpoolerJobState] = {
    3: SpoolerJobState.PENDING,
    4: SpoolerJobState.PENDING_HELD,
    5: SpoolerJobState.PROCESSING,
    6: SpoolerJobState.PROCESSING_STOPPED,
    7: SpoolerJobState.CANCELED,
    8: SpoolerJobState.ABORTED,
    9: SpoolerJobState.COMPLETED,
}

# client-error-not-found; CUPS answers CUPS-Get-Printers with it when no queue exists
IPP_STATUS_NOT_FOUND = 0x0406

JOB_ATTRIBUTES = ["job-state", "job-state-reasons"]


def printer_state(code: Any) -> PrinterState:
    return PRINTER_STATES.get(code, PrinterState.UNKNOWN) if isinstance(code, int) else PrinterState.UNKNOWN


def job_state(code: Any) -> SpoolerJobState:
    return JOB_STATES.get(code, SpoolerJobState.UNKNOWN) if isinstance(code, int) else SpoolerJobState.UNKNOWN


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    return [str(value)]


class PrintSpooler(ABC):
    """Capabilities the service needs from a print queue."""

    @abstractmethod
    async def list_printers(self) -> List[PrinterInfo]:
        """Enumerate printers known to the spooler."""

    @abstractmethod
    async def submit(
        self,
        document: Path,
        printer_name: Optional[str],
        job_name: str,
        copies: int = 1,
    ) -> SpoolerSubmission:
        """Queue the PDF at ``document`` and return the spooler-assigned job id."""

    @abstractmethod
    async def get_job_status(self, job_id: int) -> SpoolerJobStatus:
        """Report the spooler's view of a submitted job."""

    async def aclose(self) -> None:
        return None


class CupsSpooler(PrintSpooler):
    """
    CUPS client built on pycups.

    Attributes:
        base_url: CUPS server URL, e.g. ``http://localhost:631``
        default_printer: Queue used when a submission names no printer
        requesting_user: User name CUPS records as the job owner
        timeout_seconds: Upper bound on a single spooler call
    """

    def __init__(
        self,
        base_url: str = "http://localhost:631",
        default_printer: str = "",
        requesting_user: str = "print-web-app",
        timeout_seconds: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        parts = urlsplit(self.base_url)
        self.host = parts.hostname or "localhost"
        self.port = parts.port or 631
        self.default_printer = default_printer
        self.requesting_user = requesting_user
        self.timeout_seconds = timeout_seconds

    def _connect(self):
        if cups is None:
            raise SpoolerError("pycups is not installed; CUPS printing is unavailable")
        cups.setUser(self.requesting_user)
        return cups.Connection(host=self.host, port=self.port)

    async def _call(self, operation: str, request: Callable[[Any], T]) -> T:
        """Run ``request(connection)`` in a worker thread and translate pycups failures."""

        def _run() -> T:
            return request(self._connect())

        try:
            return await asyncio.wait_for(asyncio.to_thread(_run), self.timeout_seconds)
        except SpoolerError:
            raise
        except asyncio.TimeoutError as exc:
            logger.error(f"CUPS {operation} at {self.base_url} timed out after {self.timeout_seconds}s")
            raise SpoolerError(f"Print spooler at {self.base_url} did not answer", {"operation": operation}) from exc
        except cups.IPPError as exc:
            status, description = (tuple(exc.args) + (None, None))[:2]
            raise SpoolerError(
                f"CUPS {operation} failed: {description or status}",
                {"operation": operation, "ipp_status": status},
            ) from exc
        except (cups.HTTPError, RuntimeError, OSError) as exc:
            logger.error(f"CUPS {operation} request to {self.base_url} failed: {exc}")
            raise SpoolerError(f"Print spooler unreachable at {self.base_url}", {"operation": operation}) from exc

    async def list_printers(self) -> List[PrinterInfo]:
        def _get_printers(connection) -> Dict[str, Dict[str, Any]]:
            try:
                return connection.getPrinters()
            except cups.IPPError as exc:
                if exc.args and exc.args[0] == IPP_STATUS_NOT_FOUND:
                    return {}
                raise

        logger.debug(f"Listing printers at {self.base_url}")
        queues = await self._call("CUPS-Get-Printers", _get_printers)

        printers = []
        for name, attributes in queues.items():
            printers.append(
                PrinterInfo(
                    name=str(name),
                    description=str(attributes.get("printer-info") or ""),
                    location=str(attributes.get("printer-location") or ""),
                    state=printer_state(attributes.get("printer-state")),
                    state_reasons=_as_list(attributes.get("printer-state-reasons")) or ["none"],
                )
            )
        logger.info(f"CUPS reported {len(printers)} printer(s)")
        return printers

    async def submit(
        self,
        document: Path,
        printer_name: Optional[str],
        job_name: str,
        copies: int = 1,
    ) -> SpoolerSubmission:
        printer = printer_name or self.default_printer
        if not printer:
            raise SpoolerError("No printer specified")

        options = {"copies": str(max(1, int(copies)))}
        job_id = await self._call(
            "Print-Job",
            lambda connection: connection.printFile(printer, str(document), job_name, options),
        )
        if not isinstance(job_id, int) or job_id <= 0:
            raise SpoolerError("Failed to get job ID from CUPS response", {"printer": printer})

        logger.info(f"Submitted '{job_name}' to {printer} as CUPS job {job_id} ({copies} copies)")
        return SpoolerSubmission(job_id=job_id, job_uri=f"ipp://{self.host}:{self.port}/jobs/{job_id}")

    async def get_job_status(self, job_id: int) -> SpoolerJobStatus:
        attributes = await self._call(
            "Get-Job-Attributes",
            lambda connection: connection.getJobAttributes(int(job_id), requested_attributes=JOB_ATTRIBUTES),
        )
        return SpoolerJobStatus(
            state=job_state(attributes.get("job-state")),
            state_reasons=_as_list(attributes.get("job-state-reasons")),
        )
