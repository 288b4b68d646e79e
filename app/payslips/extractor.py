"""Parse the payslip history table into document descriptors."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from . import config
from .error_codes import RowExtractionError
from .logging_utils import _payslips_event
from .selectors import PORTAL_SELECTORS, PortalSelectors
from .utils import pdf_filename


@dataclass(frozen=True)
class DocumentDescriptor:
    source_url: str
    label: str

    @property
    def filename(self) -> str:
        return pdf_filename(self.label)


@dataclass
class ExtractionResult:
    descriptors: List[DocumentDescriptor] = field(default_factory=list)
    errors: List[RowExtractionError] = field(default_factory=list)


def _row_cells(row: Tag) -> List[Tag]:
    return row.find_all(["td", "th"], recursive=False)


def _locate_link_column(header_rows: List[Tag], selectors: PortalSelectors) -> int:
    """Return the link column index, preferring a header cell match."""

    wanted = selectors.link_column_header.strip().lower()
    if wanted:
        for row in header_rows:
            for index, cell in enumerate(_row_cells(row)):
                if cell.get_text(" ", strip=True).lower() == wanted:
                    return index
    return selectors.link_column_index


def _descriptor_from_row(
    row: Tag, row_index: int, column: int, page_url: str
) -> DocumentDescriptor:
    cells = _row_cells(row)
    if len(cells) <= column:
        raise RowExtractionError(
            row_index, f"expected at least {column + 1} cells, found {len(cells)}"
        )

    link = cells[column].find("a", href=True)
    if link is None:
        raise RowExtractionError(row_index, f"no link in column {column}")

    label = link.get_text(" ", strip=True)
    if not label:
        raise RowExtractionError(row_index, "link has no visible text")

    return DocumentDescriptor(source_url=urljoin(page_url, link["href"]), label=label)


def extract_documents(
    table_html: str,
    *,
    page_url: str = "",
    header_rows: Optional[int] = None,
    selectors: PortalSelectors = PORTAL_SELECTORS,
) -> ExtractionResult:
    """Return descriptors for every document row of the history table.

    Args:
        table_html: Outer HTML of the listing table.
        page_url: URL of the listing page; relative links resolve against it.
        header_rows: Leading rows to drop (column headers and the
            "Year to Date" summary row).
        selectors: Portal DOM hints naming the link column.

    Rows that do not carry the expected link produce a
    :class:`RowExtractionError` in ``errors`` and do not stop the others.
    """

    header_rows = config.TABLE_HEADER_ROW_COUNT if header_rows is None else header_rows

    soup = BeautifulSoup(table_html or "", "html5lib")
    rows = soup.select("tr")
    column = _locate_link_column(rows[:header_rows], selectors)

    result = ExtractionResult()
    for offset, row in enumerate(rows[header_rows:]):
        row_index = header_rows + offset
        try:
            result.descriptors.append(_descriptor_from_row(row, row_index, column, page_url))
        except RowExtractionError as exc:
            _payslips_event("error", phase="table", row_index=row_index, error=str(exc))
            result.errors.append(exc)

    _payslips_event(
        "table",
        rows=len(rows),
        header_rows=header_rows,
        link_column=column,
        descriptors=len(result.descriptors),
        row_errors=len(result.errors),
    )
    return result


__all__ = ["DocumentDescriptor", "ExtractionResult", "extract_documents"]
