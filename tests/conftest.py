"""
Pytest configuration and fixtures for Print Web Backend tests.
"""

import io
import os
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient
from pypdf import PdfReader, PdfWriter
from pypdf.generic import DecodedStreamObject, NameObject

# Set test environment variables before importing the app
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="print_test_uploads_")
os.environ["TEMP_DIR"] = tempfile.mkdtemp(prefix="print_test_temp_")
os.environ["CUPS_URL"] = "http://cups.invalid:631"

from print_web_backend.artifacts import TempArtifactStore
from print_web_backend.composer import DocumentComposer
from print_web_backend.configuration import make_runtime_config
from print_web_backend.coordinator import PrintJobCoordinator
from print_web_backend.exceptions import SpoolerError
from print_web_backend.main import create_app
from print_web_backend.models import (
    PrinterInfo,
    PrinterState,
    SpoolerJobState,
    SpoolerJobStatus,
    SpoolerSubmission,
)
from print_web_backend.spooler import PrintSpooler
from print_web_backend.uploads import UploadStore


class FakeSpooler(PrintSpooler):
    """In-memory spooler that records every submission."""

    def __init__(self, printers: Optional[List[PrinterInfo]] = None):
        self.printers = printers if printers is not None else [
            PrinterInfo(name="Office", description="Office laser", location="2nd floor", state=PrinterState.IDLE)
        ]
        self.submissions: List[dict] = []
        self.fail_with: Optional[Exception] = None
        self.next_job_id = 100

    async def list_printers(self) -> List[PrinterInfo]:
        return list(self.printers)

    async def submit(self, document, printer_name, job_name, copies=1) -> SpoolerSubmission:
        if self.fail_with is not None:
            raise self.fail_with
        self.next_job_id += 1
        self.submissions.append(
            {
                "document": Path(document).read_bytes(),
                "printer_name": printer_name,
                "job_name": job_name,
                "copies": copies,
                "job_id": self.next_job_id,
            }
        )
        return SpoolerSubmission(job_id=self.next_job_id)

    async def get_job_status(self, job_id: int) -> SpoolerJobStatus:
        if job_id not in {submission["job_id"] for submission in self.submissions}:
            raise SpoolerError(f"Unknown job {job_id}")
        return SpoolerJobStatus(state=SpoolerJobState.COMPLETED, state_reasons=["job-completed-successfully"])

    def page_widths(self, index: int = -1) -> List[int]:
        """Widths of the pages in a recorded submission; test PDFs encode the page number in the width."""
        reader = PdfReader(io.BytesIO(self.submissions[index]["document"]))
        return [round(float(page.mediabox.width)) for page in reader.pages]


def build_pdf(page_count: int, size: Optional[Tuple[float, float]] = None) -> bytes:
    """
    PDF whose page N draws an N x N square.

    Without ``size`` page N is (200 + N) points wide, so pages can be told
    apart by their media box as well.
    """
    writer = PdfWriter()
    for number in range(1, page_count + 1):
        width, height = size or (200 + number, 400)
        page = writer.add_blank_page(width=width, height=height)
        content = DecodedStreamObject()
        content.set_data(f"0 0 {number} {number} re f".encode("ascii"))
        page[NameObject("/Contents")] = writer._add_object(content)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def page_numbers(path: Path) -> List[int]:
    reader = PdfReader(str(path))
    return [round(float(page.mediabox.width)) - 200 for page in reader.pages]


@pytest.fixture(scope="session", autouse=True)
def test_dirs():
    """Cleanup the import-time directories after all tests."""
    upload_dir = os.environ["UPLOAD_DIR"]
    temp_dir = os.environ["TEMP_DIR"]

    yield {"upload": upload_dir, "temp": temp_dir}

    shutil.rmtree(upload_dir, ignore_errors=True)
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def pdf_factory():
    return build_pdf


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def temp_dir(tmp_path):
    path = tmp_path / "temp"
    path.mkdir()
    return path


@pytest.fixture
def runtime_config(upload_dir, temp_dir):
    return make_runtime_config(
        {
            "uploads": {"directory": str(upload_dir)},
            "artifacts": {"directory": str(temp_dir)},
        },
        environ={},
    )


@pytest.fixture
def spooler():
    return FakeSpooler()


@pytest.fixture
def client(runtime_config, spooler):
    """Create a test client with its lifespan running against the fake spooler."""
    app = create_app(runtime_config, spooler=spooler)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def uploaded(client, pdf_factory):
    """Upload a PDF through the API and return the response body."""

    def _upload(page_count: int = 5, name: str = "report.pdf") -> dict:
        response = client.post(
            "/api/upload",
            files={"file": (name, io.BytesIO(pdf_factory(page_count)), "application/pdf")},
        )
        assert response.status_code == 200, response.text
        return response.json()

    return _upload


@pytest.fixture
def coordinator_factory(upload_dir, temp_dir, spooler):
    """Build a coordinator wired to temporary directories and the fake spooler."""

    def _build(retention_seconds: float = 3600.0) -> PrintJobCoordinator:
        artifacts = TempArtifactStore(temp_dir, retention_seconds=retention_seconds)
        return PrintJobCoordinator(
            UploadStore(upload_dir),
            DocumentComposer(artifacts),
            spooler,
            artifacts,
        )

    return _build


@pytest.fixture
def stored_pdf(upload_dir, pdf_factory):
    """Write a PDF straight into the upload directory and return its stored name."""

    def _store(page_count: int = 5, filename: str = "file-1-1.pdf") -> str:
        (upload_dir / filename).write_bytes(pdf_factory(page_count))
        return filename

    return _store
