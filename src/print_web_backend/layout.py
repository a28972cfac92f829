"""Sheet geometry for N-up composition."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, List, Sequence, Tuple, TypeVar

# A4 landscape in points
SHEET_WIDTH_PT = 842.0
SHEET_HEIGHT_PT = 595.0
MARGIN_FACTOR = 0.95

# cells per sheet -> (rows, columns)
GRID_SHAPES: Dict[int, Tuple[int, int]] = {
    2: (1, 2),
    4: (2, 2),
}

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Grid:
    rows: int
    columns: int
    sheet_width: float = SHEET_WIDTH_PT
    sheet_height: float = SHEET_HEIGHT_PT

    @property
    def cells(self) -> int:
        return self.rows * self.columns

    @property
    def cell_width(self) -> float:
        return self.sheet_width / self.columns

    @property
    def cell_height(self) -> float:
        return self.sheet_height / self.rows


@dataclass(frozen=True, slots=True)
class Placement:
    """Where a source page lands on a sheet, in PDF user space (origin bottom-left)."""

    x: float
    y: float
    scale: float
    width: float
    height: float


def grid_for(
    cells_per_sheet: int,
    sheet_width: float = SHEET_WIDTH_PT,
    sheet_height: float = SHEET_HEIGHT_PT,
) -> Grid:
    try:
        rows, columns = GRID_SHAPES[cells_per_sheet]
    except KeyError:
        raise ValueError(f"Unsupported N-up layout: {cells_per_sheet} cells per sheet") from None
    return Grid(rows=rows, columns=columns, sheet_width=sheet_width, sheet_height=sheet_height)


def chunk(items: Sequence[T], size: int) -> Iterator[List[T]]:
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


def place_in_cell(
    grid: Grid,
    position: int,
    page_width: float,
    page_height: float,
    margin_factor: float = MARGIN_FACTOR,
) -> Placement:
    """
    Fit a page into cell ``position`` of ``grid``.

    Cells are filled row-major with row 0 at the top of the sheet. The page
    keeps its aspect ratio, is shrunk by ``margin_factor`` and is centred in
    its cell on both axes.
    """
    if not 0 <= position < grid.cells:
        raise ValueError(f"Cell {position} does not exist in a {grid.rows}x{grid.columns} grid")

    column = position % grid.columns
    row = position // grid.columns
    cell_w = grid.cell_width
    cell_h = grid.cell_height

    pw = max(1.0, float(page_width))
    ph = max(1.0, float(page_height))
    scale = min(cell_w / pw, cell_h / ph) * margin_factor
    draw_w = pw * scale
    draw_h = ph * scale

    x = column * cell_w + (cell_w - draw_w) / 2.0
    # PDF y grows upwards, so row 0 occupies the top band of the sheet.
    y = grid.sheet_height - (row + 1) * cell_h + (cell_h - draw_h) / 2.0
    return Placement(x=x, y=y, scale=scale, width=draw_w, height=draw_h)


def plan_sheets(
    page_sizes: Sequence[Tuple[float, float]],
    grid: Grid,
    margin_factor: float = MARGIN_FACTOR,
) -> List[List[Placement]]:
    """
    Lay out pages, in order, onto as many sheets as needed.

    Each inner list holds the placements of one sheet; the last sheet may be
    shorter than ``grid.cells`` and its remaining cells stay blank.
    """
    sheets: List[List[Placement]] = []
    for group in chunk(page_sizes, grid.cells):
        sheets.append(
            [place_in_cell(grid, position, width, height, margin_factor) for position, (width, height) in enumerate(group)]
        )
    return sheets
