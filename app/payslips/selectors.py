from __future__ import annotations

"""Selectors and DOM hints for the payroll self-service portal."""

from dataclasses import dataclass


@dataclass(frozen=True)
class PortalSelectors:
    """DOM contract for the entry page and the payslip history listing.

    The entry page exposes a "My Details" menu button whose panel contains a
    table cell with the employee identity text. The history listing is an
    Oracle APEX report table tagged with a ``summary`` attribute; the
    "Period End" column carries one link per payslip.
    """

    menu_button_id: str = "pt1:pt_sdi8::btn"
    identity_cells: str = "div[id='pt1:pt_pfl1'] td"
    listing_table: str = "table[summary='Pehistpay']"
    link_column_header: str = "Period End"
    # Used when no header cell carries ``link_column_header``.
    link_column_index: int = 5

    @property
    def listing_rows(self) -> str:
        return f"{self.listing_table} tr"


PORTAL_SELECTORS = PortalSelectors()

__all__ = [
    "PortalSelectors",
    "PORTAL_SELECTORS",
]
