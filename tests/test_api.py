"""
Tests for Print Web Backend API endpoints.

Tests cover:
- Health check
- Uploads (validation, page count, storage)
- Printer listing and spooler job status
- Print submission (plain, page range, N-up, duplex)
- Duplex resume and job status
- Error mapping to HTTP status codes
"""

import io

from print_web_backend.exceptions import SpoolerError


class TestHealthCheck:
    """Tests for the /api/health endpoint."""

    def test_health_check_returns_ok(self, client):
        """Health check should return status ok with a timestamp."""
        response = client.get("/api/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "ok"
        assert "timestamp" in data


class TestUpload:
    """Tests for the /api/upload endpoint."""

    def test_upload_pdf(self, client, pdf_factory, upload_dir):
        """A valid PDF is stored under a generated name and its pages are counted."""
        response = client.post(
            "/api/upload",
            files={"file": ("Quarterly.pdf", io.BytesIO(pdf_factory(3)), "application/pdf")},
        )
        assert response.status_code == 200

        data = response.json()
        assert data["originalName"] == "Quarterly.pdf"
        assert data["pageCount"] == 3
        assert data["size"] > 0
        assert data["filename"].startswith("file-")
        assert data["filename"].endswith(".pdf")
        assert (upload_dir / data["filename"]).is_file()

    def test_upload_non_pdf_rejected(self, client, upload_dir):
        """Non-PDF media types are rejected before anything is stored."""
        response = client.post(
            "/api/upload",
            files={"file": ("notes.txt", io.BytesIO(b"not a pdf"), "text/plain")},
        )
        assert response.status_code == 415
        assert response.json() == {"error": "Only PDF files are allowed"}
        assert list(upload_dir.iterdir()) == []

    def test_upload_without_file(self, client):
        """A request with no file part is a client error."""
        response = client.post("/api/upload", data={"other": "value"})
        assert response.status_code == 400
        assert response.json()["error"] == "No file uploaded"

    def test_upload_corrupt_pdf_is_discarded(self, client, upload_dir):
        """A file declared as PDF that cannot be parsed is removed again."""
        response = client.post(
            "/api/upload",
            files={"file": ("broken.pdf", io.BytesIO(b"this is not really a pdf"), "application/pdf")},
        )
        assert response.status_code == 500
        assert "Unable to read PDF document" in response.json()["error"]
        assert list(upload_dir.iterdir()) == []


class TestPrinters:
    """Tests for the /api/printers endpoints."""

    def test_list_printers(self, client):
        """Printers reported by the spooler are returned in camelCase."""
        response = client.get("/api/printers")
        assert response.status_code == 200

        data = response.json()
        assert data == [
            {
                "name": "Office",
                "description": "Office laser",
                "location": "2nd floor",
                "state": "idle",
                "stateReasons": ["none"],
            }
        ]

    def test_list_printers_spooler_down(self, client, spooler):
        """Spooler failures surface as 502."""

        async def broken():
            raise SpoolerError("Print spooler unreachable at http://cups.invalid:631")

        spooler.list_printers = broken
        response = client.get("/api/printers")
        assert response.status_code == 502
        assert "unreachable" in response.json()["error"]

    def test_spooler_job_status(self, client, uploaded, spooler):
        """Spooler job state can be queried for submitted jobs."""
        upload = uploaded(2)
        client.post("/api/print", json={"filename": upload["filename"], "settings": {}})
        cups_job_id = spooler.submissions[-1]["job_id"]

        response = client.get(f"/api/printers/jobs/{cups_job_id}")
        assert response.status_code == 200
        assert response.json() == {"state": "completed", "stateReasons": ["job-completed-successfully"]}


class TestPrint:
    """Tests for the /api/print endpoint."""

    def test_print_original(self, client, uploaded, spooler):
        """Without transformations the original upload is submitted as-is."""
        upload = uploaded(4)
        response = client.post(
            "/api/print",
            json={"filename": upload["filename"], "settings": {"copies": 2}, "printerName": "Office"},
        )
        assert response.status_code == 200

        data = response.json()
        assert data["jobId"].startswith("job-")
        assert data["cupsJobId"] == spooler.submissions[-1]["job_id"]
        assert data["status"]["status"] == "completed"
        assert data["status"]["message"] == "Print job submitted successfully"

        submission = spooler.submissions[-1]
        assert submission["printer_name"] == "Office"
        assert submission["copies"] == 2
        assert submission["job_name"] == f"Print Job - {upload['filename']}"
        assert spooler.page_widths() == [201, 202, 203, 204]

    def test_print_page_range(self, client, uploaded, spooler):
        """A page range submits only the selected pages, in ascending order."""
        upload = uploaded(6)
        response = client.post(
            "/api/print",
            json={"filename": upload["filename"], "settings": {"pageRange": "5,1-2"}},
        )
        assert response.status_code == 200
        assert spooler.page_widths() == [201, 202, 205]

    def test_print_two_up(self, client, uploaded, spooler):
        """2-up layout produces landscape sheets holding two pages each."""
        upload = uploaded(5)
        response = client.post(
            "/api/print",
            json={"filename": upload["filename"], "settings": {"layout": "2-up"}},
        )
        assert response.status_code == 200
        assert spooler.page_widths() == [842, 842, 842]

    def test_print_duplex_first_pass(self, client, uploaded, spooler):
        """Duplex jobs print odd pages and pause for the paper flip."""
        upload = uploaded(5)
        response = client.post(
            "/api/print",
            json={"filename": upload["filename"], "settings": {"duplex": True}},
        )
        assert response.status_code == 200

        job = response.json()["status"]
        assert job["status"] == "awaiting-even-pages"
        assert job["currentStep"] == "even"
        assert job["totalPages"] == 5
        assert job["message"] == "Odd pages sent to printer. Please flip the paper and print even pages."
        assert spooler.page_widths() == [201, 203, 205]

    def test_print_missing_file(self, client):
        """Printing an unknown upload is a 404 and creates no job."""
        response = client.post("/api/print", json={"filename": "file-0-0.pdf", "settings": {}})
        assert response.status_code == 404
        assert response.json() == {"error": "File not found"}
        assert client.get("/api/jobs").json() == []

    def test_print_missing_fields(self, client):
        """Requests without filename or settings are rejected with 400."""
        response = client.post("/api/print", json={"filename": "x.pdf"})
        assert response.status_code == 400
        assert response.json()["error"] == "Missing required fields"

    def test_print_spooler_failure_marks_job_failed(self, client, uploaded, spooler):
        """A spooler rejection is reported as 502 and the job ends failed."""
        upload = uploaded(2)
        spooler.fail_with = SpoolerError("No printer specified")

        response = client.post("/api/print", json={"filename": upload["filename"], "settings": {}})
        assert response.status_code == 502
        assert response.json() == {"error": "No printer specified"}

        jobs = client.get("/api/jobs").json()
        assert len(jobs) == 1
        assert jobs[0]["status"] == "failed"
        assert jobs[0]["message"] == "No printer specified"


class TestPrintEven:
    """Tests for the /api/print-even endpoint."""

    def test_duplex_round_trip(self, client, uploaded, spooler):
        """Resuming a paused job prints the even pages and completes it."""
        upload = uploaded(5)
        first = client.post(
            "/api/print",
            json={"filename": upload["filename"], "settings": {"duplex": True}},
        ).json()

        response = client.post(
            "/api/print-even",
            json={"jobId": first["jobId"], "filename": upload["filename"], "copies": 1},
        )
        assert response.status_code == 200

        data = response.json()
        assert data["jobId"] == first["jobId"]
        assert data["status"]["status"] == "completed"
        assert data["status"]["message"] == "Duplex printing completed"
        assert data["status"]["currentStep"] is None
        assert spooler.page_widths() == [202, 204]
        assert spooler.submissions[-1]["job_name"] == f"Print Job - {upload['filename']} (Even Pages)"

    def test_resume_twice_rejected(self, client, uploaded):
        """A completed job cannot be resumed again."""
        upload = uploaded(4)
        first = client.post(
            "/api/print",
            json={"filename": upload["filename"], "settings": {"duplex": True}},
        ).json()
        payload = {"jobId": first["jobId"], "filename": upload["filename"]}

        assert client.post("/api/print-even", json=payload).status_code == 200
        response = client.post("/api/print-even", json=payload)
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid job or job not awaiting even pages"}

    def test_resume_unknown_job(self, client, uploaded):
        upload = uploaded(2)
        response = client.post(
            "/api/print-even",
            json={"jobId": "job-0-missing", "filename": upload["filename"]},
        )
        assert response.status_code == 400

    def test_resume_non_duplex_job(self, client, uploaded):
        """Jobs that never paused are not resumable."""
        upload = uploaded(2)
        first = client.post("/api/print", json={"filename": upload["filename"], "settings": {}}).json()
        response = client.post(
            "/api/print-even",
            json={"jobId": first["jobId"], "filename": upload["filename"]},
        )
        assert response.status_code == 400


class TestJobStatus:
    """Tests for the /api/status and /api/jobs endpoints."""

    def test_status_unknown_job(self, client):
        response = client.get("/api/status/job-0-nothing")
        assert response.status_code == 404
        assert response.json() == {"error": "Job not found"}

    def test_status_tracks_duplex_job(self, client, uploaded):
        """Status reflects the paused state and records lifecycle events."""
        upload = uploaded(3)
        job_id = client.post(
            "/api/print",
            json={"filename": upload["filename"], "settings": {"duplex": True}},
        ).json()["jobId"]

        response = client.get(f"/api/status/{job_id}")
        assert response.status_code == 200

        job = response.json()
        assert job["id"] == job_id
        assert job["status"] == "awaiting-even-pages"
        assert job["events"]
        assert job["createdAt"] <= job["updatedAt"]

    def test_list_jobs(self, client, uploaded):
        upload = uploaded(1)
        first = client.post("/api/print", json={"filename": upload["filename"], "settings": {}}).json()
        second = client.post("/api/print", json={"filename": upload["filename"], "settings": {}}).json()

        jobs = client.get("/api/jobs").json()
        assert {job["id"] for job in jobs} == {first["jobId"], second["jobId"]}
        assert jobs[0]["createdAt"] >= jobs[1]["createdAt"]
