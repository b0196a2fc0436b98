from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

import structlog
import typer

from trainee_import.config import Settings, settings as default_settings
from trainee_import.exceptions import (
    ConfigError,
    ImportRejected,
    ImportTransportError,
    MalformedSummary,
    SessionStateError,
    WorkbookError,
)
from trainee_import.services.reconciler import render_summary
from trainee_import.services.session import ImportSession, PreviewTable, RecordSet

cli = typer.Typer(help="Trainee import: preview and submit trainee workbooks")

EXIT_OK = 0
EXIT_LOCAL_ERROR = 1
EXIT_TRANSPORT_ERROR = 2
EXIT_REJECTED = 3
EXIT_MALFORMED_SUMMARY = 4

logger = logging.getLogger("trainee_import")


def setup_logging(settings: Settings, verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else getattr(logging, settings.logging.level.upper(), logging.INFO)
    # stdout carries the preview and the import summary
    handler = logging.StreamHandler(sys.stderr)
    if settings.logging.format == "json":
        shared_processors = [
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.ExtraAdder(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
        ]
        handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                foreign_pre_chain=shared_processors,
                processors=[
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.processors.JSONRenderer(ensure_ascii=False),
                ],
            )
        )
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    logging.basicConfig(level=level, handlers=[handler], force=True)


def _load_settings(config_path: Optional[Path]) -> Settings:
    if config_path is None:
        return default_settings
    try:
        return Settings.load(config_path)
    except ConfigError as e:
        typer.echo(f"Config error: {e}", err=True)
        raise typer.Exit(code=EXIT_LOCAL_ERROR)


def _render_preview(table: PreviewTable, limit: Optional[int]) -> str:
    if not table.count:
        return f"{table.heading}\n(no rows)"
    frame = table.to_frame()
    if limit is not None:
        frame = frame.head(limit)
    return f"{table.heading}\n{frame.to_string()}"


def _load_or_exit(session: ImportSession, file: Path) -> None:
    try:
        session.load_path(file)
    except OSError as e:
        typer.echo(f"Cannot read {file}: {e}", err=True)
        raise typer.Exit(code=EXIT_LOCAL_ERROR)
    except WorkbookError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=EXIT_LOCAL_ERROR)


@cli.command()
def version() -> None:
    """Print runtime version."""
    typer.echo(f"{default_settings.app.name} {default_settings.app.version}")


@cli.command()
def preview(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Excel workbook (.xlsx, .xls)"),
    sheet: RecordSet = typer.Option(RecordSet.TRAINEES, "--sheet", "-s", help="Record set to display"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", min=1, help="Show at most N rows"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Settings YAML"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Parse and normalize a workbook locally; nothing is sent to the server."""
    settings = _load_settings(config)
    setup_logging(settings, verbose)
    session = ImportSession(settings=settings)
    _load_or_exit(session, file)

    counts = session.counts()
    typer.echo(
        f"Trainee ({counts[RecordSet.TRAINEES]}) | External Certificate ({counts[RecordSet.CERTIFICATES]})"
    )
    typer.echo(_render_preview(session.view(sheet), limit))


@cli.command()
def submit(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Excel workbook (.xlsx, .xls)"),
    token: Optional[str] = typer.Option(None, "--token", "-t", help="Bearer token (defaults to api.token)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
    limit: Optional[int] = typer.Option(20, "--limit", "-n", min=1, help="Preview rows shown before confirming"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Settings YAML"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Preview a workbook, confirm, upload it and print the per-row outcome."""
    settings = _load_settings(config)
    setup_logging(settings, verbose)
    session = ImportSession(settings=settings)
    _load_or_exit(session, file)

    typer.echo(_render_preview(session.view(RecordSet.TRAINEES), limit))
    if session.counts()[RecordSet.CERTIFICATES]:
        typer.echo(_render_preview(session.view(RecordSet.CERTIFICATES), limit))

    if not yes and not typer.confirm("Confirm Import?", default=False):
        typer.echo("Import cancelled.")
        session.reset()
        raise typer.Exit(code=EXIT_OK)

    auth_token = token or settings.api.token
    try:
        reconciled = session.submit(auth_token)
    except ImportTransportError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=EXIT_TRANSPORT_ERROR)
    except ImportRejected as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(code=EXIT_REJECTED)
    except MalformedSummary as e:
        logger.debug(f"Malformed summary detail: {e}")
        typer.echo("Error: the server returned an inconsistent import summary.", err=True)
        raise typer.Exit(code=EXIT_MALFORMED_SUMMARY)
    except SessionStateError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=EXIT_LOCAL_ERROR)

    typer.echo(render_summary(reconciled))
    session.reset()


if __name__ == "__main__":
    cli()
