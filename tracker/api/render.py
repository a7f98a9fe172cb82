"""HTML rendering of the stats page."""
from html import escape
from typing import Iterable

from ..event_models import CoverageEvent

_STYLE = """
body { font-family: sans-serif; margin: 2em; }
table { border-collapse: collapse; }
th, td { border: 1px solid #ccc; padding: 4px 8px; text-align: left; }
th { background: #f0f0f0; }
td.coverage { text-align: right; }
"""


def _cells(event: CoverageEvent) -> str:
    cells = []
    for column, value in zip(CoverageEvent.COLUMNS, event.row()):
        if column == "coverage":
            cells.append(f'<td class="coverage">{value:.1f}%</td>')
        else:
            cells.append(f"<td>{escape(str(value))}</td>")
    return "".join(cells)


def render_stats(events: Iterable[CoverageEvent]) -> str:
    """Render all events as a single HTML table, one row per event."""
    header = "".join(f"<th>{escape(column)}</th>" for column in CoverageEvent.COLUMNS)
    rows = "\n".join(f"<tr>{_cells(event)}</tr>" for event in events)
    return (
        "<!DOCTYPE html>\n"
        "<html><head><meta charset=\"utf-8\"><title>Test statistics</title>"
        f"<style>{_STYLE}</style></head>\n"
        "<body><h1>Test statistics</h1>\n"
        f"<table><thead><tr>{header}</tr></thead>\n<tbody>\n{rows}\n</tbody></table>\n"
        "</body></html>\n"
    )
