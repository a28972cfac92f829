"""
Builds print-ready PDFs from selected pages of an uploaded document.

Two transformations are supported:

- ``extract``: copy pages verbatim, used for page ranges and for the odd/even
  halves of a manual duplex job
- ``compose_n_up``: shrink 2 or 4 pages onto each landscape sheet

Both write their result to a fresh path handed out by the
:class:`~print_web_backend.artifacts.TempArtifactStore`. Disk reads and writes
are awaited off the event loop; page manipulation itself is done with pypdf.
"""

from __future__ import annotations

import asyncio
import io
import logging
from pathlib import Path
from typing import List, Sequence, Tuple

from pypdf import PageObject, PdfReader, PdfWriter, Transformation
from pypdf.errors import PyPdfError

from .artifacts import TempArtifactStore
from .exceptions import DocumentLoadError, DocumentProcessingError, OutOfRangeError
from .layout import MARGIN_FACTOR, SHEET_HEIGHT_PT, SHEET_WIDTH_PT, grid_for, plan_sheets

logger = logging.getLogger(__name__)


class DocumentComposer:
    """
    Produces new PDF documents from pages of a source PDF.

    Attributes:
        artifacts: Store that names and later removes every output file
        sheet_width: Width of N-up output sheets in points
        sheet_height: Height of N-up output sheets in points
        margin_factor: Shrink factor applied on top of fit-to-cell scaling
    """

    def __init__(
        self,
        artifacts: TempArtifactStore,
        sheet_width: float = SHEET_WIDTH_PT,
        sheet_height: float = SHEET_HEIGHT_PT,
        margin_factor: float = MARGIN_FACTOR,
    ) -> None:
        self.artifacts = artifacts
        self.sheet_width = float(sheet_width)
        self.sheet_height = float(sheet_height)
        self.margin_factor = float(margin_factor)

    async def load(self, source: Path) -> PdfReader:
        """
        Read and parse ``source``.

        Raises:
            DocumentLoadError: If the file is missing, unreadable or not a PDF
        """
        path = Path(source)
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise DocumentLoadError(str(path), str(exc)) from exc

        try:
            reader = PdfReader(io.BytesIO(data))
            # Force the page tree to be parsed so corruption surfaces here.
            len(reader.pages)
        except (PyPdfError, ValueError, KeyError, TypeError) as exc:
            raise DocumentLoadError(str(path), str(exc)) from exc
        return reader

    async def page_count(self, source: Path) -> int:
        reader = await self.load(source)
        return len(reader.pages)

    async def extract(self, source: Path, indices: Sequence[int], operation: str) -> Path:
        """
        Copy the 1-based ``indices`` of ``source`` into a new document.

        Args:
            source: Path of the uploaded PDF
            indices: Pages to copy, in output order
            operation: Label embedded in the output filename (odd, even, range)

        Returns:
            Path of the generated document inside the scratch directory

        Raises:
            DocumentLoadError: If ``source`` cannot be read
            OutOfRangeError: If an index is outside the source document
            DocumentProcessingError: If the output cannot be built or written
        """
        reader = await self.load(source)
        pages = self._select(reader, indices)

        writer = PdfWriter()
        try:
            for page in pages:
                writer.add_page(page)
        except PyPdfError as exc:
            raise DocumentProcessingError(f"Failed to copy pages from {source}: {exc}") from exc

        output = self.artifacts.artifact_path(Path(source), operation)
        await self._write(writer, output)
        logger.info(f"Extracted {len(pages)} page(s) [{operation}] from {Path(source).name} -> {output.name}")
        return output

    async def compose_n_up(self, source: Path, indices: Sequence[int], cells_per_sheet: int) -> Path:
        """
        Place ``cells_per_sheet`` pages on each landscape output sheet.

        Pages are taken in the order of ``indices``; each is scaled to fit its
        cell (keeping aspect ratio, minus the margin) and centred. The final
        sheet may have empty cells.
        """
        grid = grid_for(cells_per_sheet, self.sheet_width, self.sheet_height)
        reader = await self.load(source)
        pages = self._select(reader, indices)

        writer = PdfWriter()
        try:
            for page in pages:
                if page.rotation:
                    page.transfer_rotation_to_content()
            sizes: List[Tuple[float, float]] = [
                (float(page.mediabox.width), float(page.mediabox.height)) for page in pages
            ]
            sheets = plan_sheets(sizes, grid, self.margin_factor)

            cursor = 0
            for placements in sheets:
                sheet = writer.add_blank_page(width=grid.sheet_width, height=grid.sheet_height)
                for placement in placements:
                    self._draw(sheet, pages[cursor], placement.scale, placement.x, placement.y)
                    cursor += 1
        except PyPdfError as exc:
            raise DocumentProcessingError(f"Failed to compose {cells_per_sheet}-up layout from {source}: {exc}") from exc

        output = self.artifacts.artifact_path(Path(source), f"{cells_per_sheet}-up")
        await self._write(writer, output)
        logger.info(
            f"Composed {len(pages)} page(s) onto {len(sheets)} {cells_per_sheet}-up sheet(s) "
            f"from {Path(source).name} -> {output.name}"
        )
        return output

    @staticmethod
    def _draw(sheet: PageObject, page: PageObject, scale: float, x: float, y: float) -> None:
        box = page.mediabox
        transform = (
            Transformation()
            .translate(-float(box.left), -float(box.bottom))
            .scale(scale, scale)
            .translate(x, y)
        )
        sheet.merge_transformed_page(page, transform)

    @staticmethod
    def _select(reader: PdfReader, indices: Sequence[int]) -> List[PageObject]:
        page_count = len(reader.pages)
        selected = []
        for index in indices:
            if not 1 <= index <= page_count:
                raise OutOfRangeError(index, page_count)
            selected.append(reader.pages[index - 1])
        return selected

    @staticmethod
    async def _write(writer: PdfWriter, output: Path) -> None:
        buffer = io.BytesIO()
        try:
            writer.write(buffer)
            await asyncio.to_thread(output.write_bytes, buffer.getvalue())
        except (PyPdfError, OSError) as exc:
            raise DocumentProcessingError(f"Failed to write {output}: {exc}") from exc
