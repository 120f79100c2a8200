"""CLI entry point."""

import logging
from pathlib import Path

import typer
from rich.console import Console

from .config import Settings
from .database import create_db_engine, init_db, make_session_factory
from .importer import CSV_COLUMNS, import_csv

app = typer.Typer(
    name="iceout-import",
    help="Import historical sightings from CSV",
    no_args_is_help=True,
)
console = Console()


@app.command()
def main(
    csv_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="CSV file to import"),
) -> None:
    """Import sightings row by row, reporting per-row errors.

    Expected columns: timestamp,lat,lng,activity_type,notes,media_urls
    """
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level)
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    session_factory = make_session_factory(engine)

    console.print(f"Reading CSV file: {csv_path}")
    db = session_factory()
    try:
        report = import_csv(db, csv_path)
    finally:
        db.close()
        engine.dispose()

    console.print("\n[bold]=== Import Summary ===[/bold]")
    console.print(f"Success: {report.success_count}/{report.total}")
    console.print(f"Errors: {report.error_count}")
    if report.errors:
        console.print("\n[bold red]=== Errors ===[/bold red]")
        for err in report.errors:
            console.print(f"Row {err.row}: {err.error}", markup=False)
    if report.total == 0:
        console.print(f"No rows found. Expected header: {','.join(CSV_COLUMNS)}")


if __name__ == "__main__":
    app()
