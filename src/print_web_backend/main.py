from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, File, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from omegaconf import DictConfig

from .artifacts import TempArtifactStore
from .composer import DocumentComposer
from .configuration import configure_logging, make_runtime_config
from .coordinator import PrintJobCoordinator
from .exceptions import DocumentLoadError, NotFoundError, PrintServiceError, SpoolerError, UserInputError
from .models import (
    HealthStatus,
    PrinterInfo,
    PrintEvenRequest,
    PrintJob,
    PrintRequest,
    PrintResponse,
    SpoolerJobStatus,
    UploadResponse,
)
from .spooler import CupsSpooler, PrintSpooler
from .uploads import UploadStore

logger = logging.getLogger(__name__)


def get_coordinator(request: Request) -> PrintJobCoordinator:
    return request.app.state.coordinator


def build_spooler(config: DictConfig) -> PrintSpooler:
    return CupsSpooler(
        base_url=config.spooler.url,
        default_printer=config.spooler.default_printer,
        requesting_user=config.spooler.requesting_user,
        timeout_seconds=float(config.spooler.timeout_seconds),
    )


async def _probe_spooler(spooler: PrintSpooler) -> None:
    try:
        printers = await spooler.list_printers()
    except SpoolerError as exc:
        logger.warning(f"Print spooler not reachable at startup: {exc}")
        return
    logger.info(f"Connected to print spooler; {len(printers)} printer(s) available")


@asynccontextmanager
async def lifespan(app: FastAPI):
    config: DictConfig = app.state.config
    artifacts = TempArtifactStore(
        Path(config.artifacts.directory),
        retention_seconds=float(config.artifacts.retention_seconds),
        sweep_interval_seconds=float(config.artifacts.sweep_interval_seconds),
        max_age_seconds=float(config.artifacts.max_age_seconds),
    )
    uploads = UploadStore(
        Path(config.uploads.directory),
        max_bytes=int(config.uploads.max_bytes),
        field_name=config.uploads.field_name,
        chunk_bytes=int(config.uploads.chunk_bytes),
    )
    composer = DocumentComposer(
        artifacts,
        sheet_width=config.layout.sheet_width,
        sheet_height=config.layout.sheet_height,
        margin_factor=config.layout.margin_factor,
    )
    spooler = app.state.spooler or build_spooler(config)
    app.state.coordinator = PrintJobCoordinator(uploads, composer, spooler, artifacts)

    logger.info(f"Upload directory: {uploads.directory}")
    logger.info(f"Temp directory: {artifacts.directory}")
    logger.info(f"Print spooler: {config.spooler.url}")

    artifacts.start()
    await _probe_spooler(spooler)
    try:
        yield
    finally:
        await artifacts.stop()
        await spooler.aclose()


router = APIRouter()


@router.get("/health", response_model=HealthStatus)
def healthcheck() -> HealthStatus:
    return HealthStatus(status="ok", timestamp=datetime.now(timezone.utc))


@router.post("/upload", response_model=UploadResponse)
async def upload_document(
    file: Optional[UploadFile] = File(None),
    coordinator: PrintJobCoordinator = Depends(get_coordinator),
) -> UploadResponse:
    if file is None:
        raise UserInputError("No file uploaded")

    stored = await coordinator.uploads.save(file)
    try:
        page_count = await coordinator.composer.page_count(stored.path)
    except DocumentLoadError:
        coordinator.uploads.discard(stored.path)
        raise

    return UploadResponse(
        filename=stored.filename,
        original_name=stored.original_name,
        size=stored.size,
        page_count=page_count,
    )


@router.get("/printers", response_model=List[PrinterInfo])
async def list_printers(coordinator: PrintJobCoordinator = Depends(get_coordinator)) -> List[PrinterInfo]:
    return await coordinator.list_printers()


@router.get("/printers/jobs/{cups_job_id}", response_model=SpoolerJobStatus)
async def spooler_job_status(
    cups_job_id: int,
    coordinator: PrintJobCoordinator = Depends(get_coordinator),
) -> SpoolerJobStatus:
    return await coordinator.spooler_job_status(cups_job_id)


@router.post("/print", response_model=PrintResponse)
async def print_document(
    payload: PrintRequest,
    coordinator: PrintJobCoordinator = Depends(get_coordinator),
) -> PrintResponse:
    result = await coordinator.submit(payload.filename, payload.settings, payload.printer_name)
    return result.to_response()


@router.post("/print-even", response_model=PrintResponse)
async def print_even_pages(
    payload: PrintEvenRequest,
    coordinator: PrintJobCoordinator = Depends(get_coordinator),
) -> PrintResponse:
    result = await coordinator.resume_even(
        payload.job_id,
        payload.filename,
        printer_name=payload.printer_name,
        page_range=payload.page_range,
        copies=payload.copies,
    )
    return result.to_response()


@router.get("/status/{job_id}", response_model=PrintJob)
def job_status(job_id: str, coordinator: PrintJobCoordinator = Depends(get_coordinator)) -> PrintJob:
    job = coordinator.get_job(job_id)
    if not job:
        raise NotFoundError("Job not found", {"job_id": job_id})
    return job


@router.get("/jobs", response_model=List[PrintJob])
def list_jobs(coordinator: PrintJobCoordinator = Depends(get_coordinator)) -> List[PrintJob]:
    return coordinator.list_jobs()


async def _service_error_handler(request: Request, exc: PrintServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Missing required fields", "details": jsonable_encoder(exc.errors())},
    )


def create_app(config: Optional[DictConfig] = None, spooler: Optional[PrintSpooler] = None) -> FastAPI:
    """
    Build the ASGI application.

    Services (upload store, artifact store, composer, spooler client and the
    coordinator with its job table) are created in the lifespan and live on
    ``app.state`` until shutdown.
    """
    config = config if config is not None else make_runtime_config()
    configure_logging(config.logging.level)

    app = FastAPI(title="Print Web API", version="0.1.0", lifespan=lifespan)
    app.state.config = config
    app.state.spooler = spooler

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.server.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(PrintServiceError, _service_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.include_router(router, prefix=config.server.api_prefix)

    frontend_dir = config.server.frontend_dir
    if frontend_dir and Path(frontend_dir).is_dir():
        app.mount("/", StaticFiles(directory=frontend_dir, html=True), name="frontend")

    return app


app = create_app()


def run() -> None:
    config: DictConfig = app.state.config
    uvicorn.run(app, host=config.server.host, port=int(config.server.port))


if __name__ == "__main__":
    run()
