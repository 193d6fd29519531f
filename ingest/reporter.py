from __future__ import annotations

from typing import Iterable, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from ingest.domain.models import Page, Record

PREVIEW_CHARS = 60


def _preview(content: str, limit: int = PREVIEW_CHARS) -> str:
    flat = content.replace("\n", " ")
    return flat if len(flat) <= limit else flat[: limit - 1] + "…"


def records_table(records: Iterable[Record], title: str = "Messages") -> Table:
    """Build a rich table listing records newest first."""
    table = Table(title=title, box=box.SIMPLE_HEAVY, show_lines=False)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Status", style="magenta")
    table.add_column("Created", style="green")
    table.add_column("Content")

    for record in records:
        created = record.created_at.strftime("%Y-%m-%d %H:%M:%S") if record.created_at else "-"
        table.add_row(record.id, record.status.value, created, _preview(record.content))
    return table


def print_records(
    records: Iterable[Record], title: str = "Messages", console: Optional[Console] = None
) -> None:
    console = console or Console()
    console.print(records_table(records, title=title))


def print_page(page: Page, console: Optional[Console] = None) -> None:
    console = console or Console()
    title = (
        f"Messages page {page.page_number + 1}/{max(page.total_pages, 1)} "
        f"({page.total} total)"
    )
    console.print(records_table(page.items, title=title))


__all__ = ["print_page", "print_records", "records_table"]
