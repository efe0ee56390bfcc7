# ledgerx/cli.py
"""
LEDGERX CLI -- Click commands with a rich terminal UI.

Provides the ``ledgerx`` console entry-point declared in pyproject.toml as
``ledgerx.cli:cli``:

- extract:  segment -> extract (DSPy oracle) -> merge -> verify
- verify:   re-check a saved aggregate against its source document
- segment:  show the segmentation plan without calling the oracle
- config:   LedgerxConfig display
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Callable, Optional

import click
from rich.console import Console
from rich.markup import escape as _esc

from . import __version__
from . import cli_theme as theme
from .config import get_config
from .documents.loader import load_document
from .documents.models import DocumentLoadError, LoadedDocument
from .documents.segmenter import segment_pages
from .errors import SegmentationError
from .extraction.dispatcher import CancelToken
from .extraction.models import Aggregate
from .extraction.oracle import Oracle
from .pipeline import PipelineResult, run_pipeline
from .verify.checker import format_number
from .verify.models import ValidationReport

console = Console()

# Exit status for a run cancelled with Ctrl+C (128 + SIGINT).
EXIT_ABORTED = 130


def _print_version(
    ctx: click.Context,
    _param: click.Parameter,
    value: bool,
) -> None:
    if not value or ctx.resilient_parsing:
        return
    theme.print_version(__version__, console)
    ctx.exit()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_oracle() -> Oracle:
    """Build the default DSPy oracle from LedgerxConfig.

    Raises ``click.ClickException`` when neither an API key nor a local
    ``api_base`` is configured.
    """
    cfg = get_config()
    if not cfg.api_key and not cfg.api_base:
        raise click.ClickException(
            "No API key configured. Set LEDGERX_API_KEY (or LEDGERX_API_BASE for a local server)."
        )
    try:
        import dspy  # noqa: F401
    except ImportError:
        raise click.ClickException(
            "DSPy is required for this command. Install with: pip install dspy"
        )
    import logging

    logging.getLogger("LiteLLM").setLevel(logging.ERROR)
    logging.getLogger("litellm").setLevel(logging.ERROR)

    from .extraction.oracle import DspyOracle
    from .metrics import TokenTracker, set_tracker

    set_tracker(TokenTracker())
    return DspyOracle.from_config(cfg)


def _load(path: Path) -> LoadedDocument:
    try:
        doc = load_document(path)
    except (FileNotFoundError, DocumentLoadError) as exc:
        raise click.ClickException(str(exc))
    if doc.is_empty:
        raise click.ClickException(f"Document is empty: {path}")
    return doc


def _run_cancellable(fn: Callable[[], PipelineResult], token: CancelToken) -> PipelineResult:
    """Run *fn* on a worker thread so Ctrl+C can set the cancel token.

    After an interrupt the worker is joined: in-flight oracle calls finish
    and their results are discarded, queued segments never start.
    """
    box: dict[str, Any] = {}

    def _target() -> None:
        try:
            box["result"] = fn()
        except BaseException as exc:  # re-raised on the calling thread
            box["error"] = exc

    worker = threading.Thread(target=_target, name="ledgerx-pipeline", daemon=True)
    worker.start()
    try:
        while worker.is_alive():
            worker.join(0.2)
    except KeyboardInterrupt:
        token.cancel()
        console.print(theme.warn("Cancelling; waiting for in-flight segments to return..."))
        worker.join()

    if "error" in box:
        raise box["error"]
    return box["result"]


def _write_json(path: Path, data: dict[str, Any]) -> Path:
    if not path.suffix:
        path = path.with_suffix(".json")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, default=str, ensure_ascii=False), encoding="utf-8")
    return path


def _document_info(doc: LoadedDocument) -> dict[str, Any]:
    return {
        "filename": doc.source_path.name,
        "format": doc.format,
        "pages": doc.page_count,
    }


def _render_report(report: ValidationReport) -> None:
    if report.is_valid:
        console.print(theme.ok(f"Verified {len(report.verified_fields)} field(s) against the source"))
    else:
        console.print(theme.err(f"Validation failed with {len(report.errors)} error(s)"))
    for message in report.errors:
        console.print(theme.err(_esc(message)))
    for message in report.warnings:
        console.print(theme.warn(_esc(message)))


def _render_aggregate(aggregate: Aggregate) -> None:
    t = theme.make_table()
    t.add_column("ID", style=f"bold {theme.TEAL}", no_wrap=True)
    t.add_column("Name")
    t.add_column("Total", justify="right")
    t.add_column("Revenue", justify="right")
    t.add_column("Details", justify="right")
    for identity in aggregate.identities:
        ledger = aggregate.ledgers.get(identity.id)
        t.add_row(
            _esc(identity.id),
            _esc(identity.name),
            format_number(ledger.total_primary) if ledger else "-",
            format_number(ledger.derived.total_secondary) if ledger else "-",
            str(len(ledger.details)) if ledger else "0",
        )
    console.print(t)

    kv = theme.make_kv_table()
    kv.add_row("overall total", format_number(aggregate.overall_totals.total_primary))
    kv.add_row("overall revenue", format_number(aggregate.overall_totals.total_secondary))
    kv.add_row("document date", aggregate.metadata.document_date or "[dim]unknown[/dim]")
    kv.add_row("period", aggregate.metadata.period or "[dim]unknown[/dim]")
    console.print(kv)


# ---------------------------------------------------------------------------
# Main CLI group
# ---------------------------------------------------------------------------


@click.group(invoke_without_command=True)
@click.option(
    "--version",
    is_flag=True,
    callback=_print_version,
    expose_value=False,
    is_eager=True,
    help="Show version and exit.",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Write a DEBUG session log and echo it to stderr.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """LEDGERX -- segment, extract, merge and verify financial ledgers."""
    cfg = get_config()
    if verbose:
        from .utils.logging import setup_logging

        log_file = setup_logging(level="DEBUG", log_dir=cfg.log_dir, console_output=True)
        console.print(theme.info(f"Logging to {log_file}"))
    if ctx.invoked_subcommand is not None:
        theme.print_banner(__version__, console, lm=cfg.lm)
    else:
        click.echo(ctx.get_help())


# ---------------------------------------------------------------------------
# extract
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("document", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--output", "-o", type=click.Path(path_type=Path), default=None, help="Save the result artifact (.json).")
@click.option("--max-chars", type=click.IntRange(min=1), default=None, help="Maximum characters per segment.")
@click.option("--workers", type=click.IntRange(min=1), default=None, help="Maximum concurrent oracle calls.")
@click.option("--allow-partial", is_flag=True, default=False, help="Skip failed segments instead of failing the run.")
@click.option("--csv", "csv_path", type=click.Path(path_type=Path), default=None, help="Also export one row per ledger detail to CSV.")
@click.pass_context
def extract(
    ctx: click.Context,
    document: Path,
    output: Optional[Path],
    max_chars: Optional[int],
    workers: Optional[int],
    allow_partial: bool,
    csv_path: Optional[Path],
) -> None:
    """Extract merged, verified ledgers from a document.

    \b
    Examples:
      ledgerx extract statement.pdf
      ledgerx extract statement.pdf -o result.json --csv details.csv
      ledgerx extract report.txt --workers 8 --allow-partial
    """
    cfg = get_config()
    oracle = _make_oracle()
    doc = _load(document)

    chars = max_chars or cfg.segment_max_chars
    try:
        plan = segment_pages(doc.pages, chars)
    except SegmentationError as exc:
        raise click.ClickException(str(exc))
    console.print(theme.info(
        f"{doc.format} document · {doc.page_count} page(s) · {len(plan)} segment(s)"
    ))

    token = CancelToken()
    with theme.progress(len(plan), "Extracting segments", console) as advance:
        result = _run_cancellable(
            lambda: run_pipeline(
                doc.pages,
                oracle,
                max_segment_chars=chars,
                concurrency_limit=workers,
                fail_on_segment_error=False if allow_partial else None,
                cancel_token=token,
                on_progress=lambda _fraction: advance(),
                document_name=str(document),
            ),
            token,
        )

    if result.status == "aborted":
        console.print(theme.warn(f"Extraction aborted: {result.error}"))
        ctx.exit(EXIT_ABORTED)
    if result.status == "failed":
        raise click.ClickException(f"{type(result.error).__name__}: {result.error}")

    assert result.aggregate is not None and result.validation is not None
    console.print(theme.ok(
        f"Extracted {len(result.aggregate.identities)} identity record(s) in {result.duration_s:.1f}s"
    ))
    if result.skipped_segments:
        console.print(theme.warn(
            f"Skipped segment(s): {', '.join(str(i) for i in result.skipped_segments)}"
        ))

    theme.section("Ledgers", console, "01")
    _render_aggregate(result.aggregate)
    theme.section("Verification", console, "02")
    _render_report(result.validation)

    if output is not None:
        saved = _write_json(output, result.to_dict(document=_document_info(doc)))
        console.print(theme.ok(f"Saved to {saved}"))
        from .export.tabular import export_csv, export_jsonl

        if "csv" in cfg.default_export_formats and csv_path is None:
            console.print(theme.ok(f"Saved to {export_csv(result.aggregate, saved.with_suffix('.csv'))}"))
        if "jsonl" in cfg.default_export_formats:
            console.print(theme.ok(f"Saved to {export_jsonl(result.aggregate, saved.with_suffix('.jsonl'))}"))
    if csv_path is not None:
        from .export.tabular import export_csv

        console.print(theme.ok(f"Saved to {export_csv(result.aggregate, csv_path)}"))

    if output is None:
        console.print()
        console.print(theme.info("Use -o/--output file.json to save the full result"))


# ---------------------------------------------------------------------------
# verify
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--document", type=click.Path(exists=True, dir_okay=False, path_type=Path), required=True, help="Source document the aggregate was extracted from.")
@click.option("--aggregate", "aggregate_path", type=click.Path(exists=True, dir_okay=False, path_type=Path), required=True, help="Saved aggregate or extract artifact (.json).")
@click.option("--output", "-o", type=click.Path(path_type=Path), default=None, help="Save the validation report (.json).")
@click.pass_context
def verify(ctx: click.Context, document: Path, aggregate_path: Path, output: Optional[Path]) -> None:
    """Re-check a saved aggregate against its source document.

    Exits with status 1 when the report is invalid.

    \b
    Examples:
      ledgerx verify --document statement.pdf --aggregate result.json
    """
    from pydantic import ValidationError

    from .envelope import build_envelope
    from .verify.checker import verify as run_verify

    doc = _load(document)
    try:
        payload = json.loads(aggregate_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"Invalid JSON in {aggregate_path}: {exc}")
    # Accept both a bare aggregate and a full extract artifact.
    if isinstance(payload, dict) and isinstance(payload.get("aggregate"), dict):
        payload = payload["aggregate"]
    try:
        aggregate = Aggregate.model_validate(payload)
    except ValidationError as exc:
        raise click.ClickException(f"Not a valid aggregate: {exc.error_count()} error(s)")

    report = run_verify(aggregate, doc.page_text_map())
    theme.section("Verification", console)
    _render_report(report)

    if output is not None:
        data = report.to_dict()
        data["_ledgerx"] = build_envelope(
            pipeline="verify",
            verification=report.summary(),
            document=_document_info(doc),
        )
        saved = _write_json(output, data)
        console.print(theme.ok(f"Saved to {saved}"))

    if not report.is_valid:
        ctx.exit(1)


# ---------------------------------------------------------------------------
# segment
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("document", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--max-chars", type=click.IntRange(min=1), default=None, help="Maximum characters per segment.")
def segment(document: Path, max_chars: Optional[int]) -> None:
    """Show how a document would be segmented (no oracle calls)."""
    doc = _load(document)
    chars = max_chars or get_config().segment_max_chars
    try:
        segments = segment_pages(doc.pages, chars)
    except SegmentationError as exc:
        raise click.ClickException(str(exc))

    t = theme.make_table()
    t.add_column("#", justify="right")
    t.add_column("Pages")
    t.add_column("Chars", justify="right")
    t.add_column("Start", justify="right")
    for seg in segments:
        t.add_row(
            str(seg.segment_index),
            f"{seg.page_range.start}-{seg.page_range.end}",
            f"{seg.char_count:,}",
            f"{seg.start_position:,}",
        )
    console.print(t)
    console.print(theme.info(
        f"{len(segments)} segment(s) from {doc.page_count} page(s), max {chars:,} chars"
    ))


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


@cli.command()
def config() -> None:
    """Show the effective configuration."""
    cfg = get_config()
    key = cfg.api_key
    masked_key = (f"{key[:4]}···{key[-4:]}" if len(key) > 8 else "***") if key else "[dim]not set[/dim]"

    sections = [
        ("Oracle", [
            ("lm", cfg.lm),
            ("api_base", cfg.api_base or "[dim]default[/dim]"),
            ("api_key", masked_key),
            ("lm_temperature", cfg.lm_temperature),
            ("lm_max_tokens", cfg.lm_max_tokens),
            ("oracle_timeout", f"{cfg.oracle_timeout}s"),
        ]),
        ("Processing", [
            ("segment_max_chars", cfg.segment_max_chars),
            ("concurrency_limit", cfg.concurrency_limit),
            ("fail_on_segment_error", cfg.fail_on_segment_error),
            ("retry_max_attempts", cfg.retry_max_attempts),
            ("retry_backoff", f"{cfg.retry_backoff_base}s (max {cfg.retry_backoff_max}s)"),
        ]),
        ("Paths & Export", [
            ("home_dir", cfg.home_dir),
            ("log_dir", cfg.log_dir),
            ("output_dir", cfg.output_dir),
            ("export_formats", ", ".join(cfg.default_export_formats)),
        ]),
    ]
    for number, (title, rows) in enumerate(sections, start=1):
        theme.section(title, console, f"{number:02d}")
        table = theme.make_kv_table()
        for name, value in rows:
            table.add_row(name, str(value))
        console.print(table)
    console.print()


if __name__ == "__main__":
    cli()
