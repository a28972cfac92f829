from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    # Wire format is camelCase; Python code uses snake_case attributes.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    AWAITING_EVEN_PAGES = "awaiting-even-pages"
    COMPLETED = "completed"
    FAILED = "failed"


class PageStep(str, Enum):
    ODD = "odd"
    EVEN = "even"


class PageLayout(str, Enum):
    ONE_UP = "1-up"
    TWO_UP = "2-up"
    FOUR_UP = "4-up"

    @property
    def cells_per_sheet(self) -> int:
        return int(self.value.split("-", 1)[0])


class PrinterState(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    STOPPED = "stopped"
    UNKNOWN = "unknown"


class SpoolerJobState(str, Enum):
    PENDING = "pending"
    PENDING_HELD = "pending-held"
    PROCESSING = "processing"
    PROCESSING_STOPPED = "processing-stopped"
    CANCELED = "canceled"
    ABORTED = "aborted"
    COMPLETED = "completed"
    UNKNOWN = "unknown"


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class PrintSettings(ApiModel):
    duplex: bool = False
    layout: PageLayout = PageLayout.ONE_UP
    page_range: Optional[str] = None
    copies: int = Field(default=1, ge=1)

    @field_validator("page_range")
    @classmethod
    def _normalize_page_range(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)


class PrintRequest(ApiModel):
    filename: str = Field(min_length=1)
    settings: PrintSettings
    printer_name: str = ""


class PrintEvenRequest(ApiModel):
    job_id: str = Field(min_length=1)
    filename: str = Field(min_length=1)
    printer_name: str = ""
    page_range: Optional[str] = None
    copies: int = Field(default=1, ge=1)

    @field_validator("page_range")
    @classmethod
    def _normalize_page_range(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)


class JobEvent(ApiModel):
    timestamp: datetime
    message: str


class PrintJob(ApiModel):
    id: str
    status: JobStatus
    message: str = ""
    total_pages: Optional[int] = None
    current_step: Optional[PageStep] = None
    created_at: datetime
    updated_at: datetime
    events: List[JobEvent] = Field(default_factory=list)


class PrintResponse(ApiModel):
    job_id: str
    cups_job_id: Optional[int] = None
    status: PrintJob


class UploadResponse(ApiModel):
    filename: str
    original_name: str
    size: int
    page_count: int


class PrinterInfo(ApiModel):
    name: str
    description: str = ""
    location: str = ""
    state: PrinterState = PrinterState.UNKNOWN
    state_reasons: List[str] = Field(default_factory=lambda: ["none"])


class SpoolerSubmission(ApiModel):
    job_id: int
    job_uri: Optional[str] = None


class SpoolerJobStatus(ApiModel):
    state: SpoolerJobState
    state_reasons: List[str] = Field(default_factory=list)


class HealthStatus(BaseModel):
    status: str
    timestamp: datetime
