"""
Print Web Backend - REST API for preparing and printing PDF documents

This package provides a FastAPI-based web service that sits between a
browser client and a CUPS print server. It enables:

- PDF uploads with size and media-type validation
- Page range extraction and N-up (2-up, 4-up) sheet composition
- Manual duplex printing on single-sided printers: odd pages first, then a
  paused job that resumes with the even pages once the paper is flipped
- Job status tracking with an in-memory job table
- Automatic cleanup of generated intermediate PDFs

Key Components:
    - main: FastAPI application and HTTP endpoint definitions
    - coordinator: Print job lifecycle and duplex state machine
    - page_ranges: Page range parsing and odd/even selection
    - layout: N-up grid geometry
    - composer: PDF extraction and N-up composition (pypdf)
    - artifacts: Scratch-file naming, retention and age sweep
    - spooler: Print spooler interface and the CUPS client (pycups)
    - uploads: Upload validation and storage
    - configuration: Config loading, environment overrides and logging
    - models: Pydantic models for request/response validation

Usage:
    Run the API server with:
        uvicorn print_web_backend.main:app --host 0.0.0.0 --port 3000

    Or use the console script:
        print-web-backend
"""
