"""Page range parsing and odd/even page selection."""

from __future__ import annotations

from typing import List, Optional, Union

from .models import PageStep


def _to_int(token: str) -> Optional[int]:
    try:
        return int(token.strip())
    except ValueError:
        return None


def parse_page_range(range_expr: str, total_pages: int) -> List[int]:
    """
    Return the 1-based pages selected by ``range_expr``.

    The parser is lenient: tokens that are not integers or ``start-end``
    pairs are skipped, and pages outside ``1..total_pages`` are dropped
    instead of raising. ``"3-1"`` selects nothing, and fields after the
    second in ``"1-3-5"`` are ignored.

    >>> parse_page_range("1-5,8,11-13", 20)
    [1, 2, 3, 4, 5, 8, 11, 12, 13]
    >>> parse_page_range("0,5,100", 10)
    [5]
    """
    pages = set()
    for part in range_expr.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            start_s, end_s = part.split("-")[:2]
            start, end = _to_int(start_s), _to_int(end_s)
            if start is None or end is None:
                continue
            pages.update(range(max(start, 1), min(end, total_pages) + 1))
        else:
            page = _to_int(part)
            if page is not None and 1 <= page <= total_pages:
                pages.add(page)
    return sorted(pages)


def select_pages(
    total_pages: int,
    range_expr: Optional[str] = None,
    parity: Union[PageStep, str, None] = None,
) -> List[int]:
    """
    Resolve the final ascending list of 1-based pages.

    The range restriction is applied first, then the odd/even filter, so
    ``select_pages(10, "2-4", "odd")`` keeps only page 3.
    """
    if range_expr and range_expr.strip():
        pages = parse_page_range(range_expr, total_pages)
    else:
        pages = list(range(1, total_pages + 1))

    if parity is None:
        return pages
    step = PageStep(parity)
    remainder = 1 if step is PageStep.ODD else 0
    return [page for page in pages if page % 2 == remainder]
