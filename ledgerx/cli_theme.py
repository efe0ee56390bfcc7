# ledgerx/cli_theme.py
"""Rich styling for the LEDGERX CLI (teal on sand).

Status helpers return markup strings for ``console.print``; the banner,
section and progress helpers print directly.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Generator

from rich import box
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn
from rich.style import Style
from rich.table import Table
from rich.text import Text

BRAND = "L E D G E R X"
TAGLINE = "Segment, extract, merge and verify financial ledgers"

TEAL = "#2A9D8F"
SAND = "#C9B79C"
MUTED = "dim"
RULE = "─" * len(TAGLINE)

_BADGE_COLORS = {"ok": "green", "warn": "yellow", "error": "red"}


def print_banner(version: str, console: Console, lm: str = "") -> None:
    """Brand, tagline, version and (if known) the oracle model."""
    console.print()
    console.print(f"  [bold {TEAL}]{BRAND}[/]")
    console.print(f"  [{SAND}]{TAGLINE}[/]")
    console.print(f"  [{MUTED}]v{version}[/]")
    if lm:
        provider, _, name = lm.partition("/")
        console.print(f"  [{SAND}]{RULE}[/]")
        console.print(f"  {badge('oracle')} [{MUTED}]▸[/] [{TEAL}]{name or provider}[/]")
    console.print()


def print_version(version: str, console: Console) -> None:
    console.print(Text.assemble((BRAND, f"bold {TEAL}"), (f"  v{version}", MUTED)))


def section(title: str, console: Console, number: str | None = None) -> None:
    """``01 · TITLE`` followed by a sand rule."""
    head = Text("  ")
    if number:
        head.append(number, style=f"bold {TEAL}")
        head.append(" · ", style=MUTED)
    head.append(title.upper(), style="bold")
    console.print()
    console.print(head)
    console.print(f"  {RULE}", style=SAND)


def make_table(title: str | None = None, **kwargs: object) -> Table:
    return Table(
        title=title,
        box=box.ROUNDED,
        border_style=SAND,
        title_style=f"bold {TEAL}",
        header_style="bold",
        padding=(0, 1),
        **kwargs,
    )


def make_kv_table() -> Table:
    table = make_table(show_header=False)
    table.add_column("Key", style=f"bold {TEAL}", no_wrap=True)
    table.add_column("Value")
    return table


def badge(label: str, variant: str = "default") -> str:
    color = _BADGE_COLORS.get(variant, TEAL)
    return f"[reverse {color}] {label} [/]"


def _status(symbol: str, color: str, msg: str, body_style: str | None = None) -> str:
    body = f"[{body_style}]{msg}[/]" if body_style else msg
    return f"  [bold {color}]{symbol}[/] {body}"


def info(msg: str) -> str:
    return _status("›", TEAL, msg, MUTED)


def ok(msg: str) -> str:
    return _status("✓", "green", msg)


def warn(msg: str) -> str:
    return _status("!", "yellow", msg, "yellow")


def err(msg: str) -> str:
    return _status("✗", "red", msg)


@contextmanager
def progress(total: int, label: str, console: Console) -> Generator[Callable[[], None], None, None]:
    """Transient bar; yields a callable that advances it by one."""
    bar = Progress(
        TextColumn(f"  [{TEAL}]▸[/]"),
        BarColumn(complete_style=Style(color=TEAL), finished_style=Style(color=TEAL)),
        MofNCompleteColumn(),
        TextColumn(f"[{MUTED}]{label}[/]"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )
    with bar:
        task = bar.add_task(label, total=total)
        yield lambda: bar.advance(task)
